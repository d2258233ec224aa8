import argparse
import asyncio
import logging
import sys
import traceback

from app.console_renderer import ConsoleRenderer
from feed.feed_config import FeedSyncConfig
from feed.sync.feed_sync_engine import FeedSyncEngine
from feed.transport.http_gateway import HttpGateway
from utils.logging_utils import setup_enhanced_logging

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "Commands: /older [n]  load n older messages (default page)\n"
    "          /all        load the whole remaining history\n"
    "          /delete id  delete a message (remotely if permitted)\n"
    "          /hide id    remove a message from this view only\n"
    "          /quit       exit\n"
    "Anything else is sent as a message."
)


def exception_hook(exc_type, exc_value, exc_traceback):
    """Global exception handler to log uncaught exceptions"""
    logger.critical("UNCAUGHT EXCEPTION")
    for line in traceback.format_exception(exc_type, exc_value, exc_traceback):
        logger.critical(line.rstrip())
    sys.__excepthook__(exc_type, exc_value, exc_traceback)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Follow a polled chat feed from the terminal.")
    parser.add_argument("--config", default="feedsync.yml", help="YAML settings file")
    parser.add_argument("--base-url", help="Server root, overrides the settings file")
    parser.add_argument("--user", help="Local user name, overrides the settings file")
    parser.add_argument("--log-level", help="Logging level, overrides the settings file")
    return parser.parse_args(argv)


def load_config(args) -> FeedSyncConfig:
    config = FeedSyncConfig.load(args.config)
    if args.base_url:
        config.base_url = args.base_url
    if args.user:
        config.user_name = args.user
    if args.log_level:
        config.log_level = args.log_level
    return config


async def handle_command(engine: FeedSyncEngine, line: str) -> bool:
    """Run one input line. Returns False when the runner should exit."""
    line = line.strip()
    if not line:
        return True
    if not line.startswith("/"):
        await engine.send_message(line)
        return True

    command, _, argument = line.partition(" ")
    argument = argument.strip()
    try:
        number = int(argument) if argument else None
    except ValueError:
        print(f"Invalid argument for {command}: {argument!r}")
        return True

    if command == "/quit":
        return False
    elif command == "/older":
        await engine.load_older(number)
    elif command == "/all":
        await engine.load_older(-1)
    elif command in ("/delete", "/hide") and number is None:
        print(f"{command} needs a message id")
    elif command == "/delete":
        await engine.delete_remote(number)
    elif command == "/hide":
        engine.delete_locally(number)
    else:
        print(HELP_TEXT)
    return True


async def run(config: FeedSyncConfig) -> None:
    gateway = HttpGateway(config.base_url, default_timeout=config.request_timeout)
    engine = FeedSyncEngine(gateway, config)
    renderer = ConsoleRenderer()
    renderer.attach(engine.signals)

    engine.start()
    loop = asyncio.get_running_loop()
    try:
        while True:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break
            if not await handle_command(engine, line):
                break
    finally:
        engine.stop()
        gateway.close()


def main(argv=None):
    args = parse_args(argv)
    config = load_config(args)
    setup_enhanced_logging(config.log_file, config.log_level)
    sys.excepthook = exception_hook

    logger.info(f"Following {config.base_url} as {config.user_name or 'anonymous'}")
    print(HELP_TEXT)
    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user (Ctrl+C)")
        sys.exit(0)


if __name__ == "__main__":
    main()
