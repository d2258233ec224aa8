"""
Configuration Module

Provides FeedSyncConfig with YAML-based storage.
"""

import logging
import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

from feed.feed_errors import FeedConfigError
from utils.yaml_utils import load_yaml

logger = logging.getLogger(__name__)


@dataclass
class FeedSyncConfig:
    """
    Settings for one feed synchronization engine.

    Attributes:
        base_url: Server root used by the HTTP gateway
        user_name: Identity of the local user (decides remote delete permission)
        is_admin: Whether the local user may delete any message remotely
        init_size: Number of recent messages for the initial load; also the history page size
        poll_interval: Seconds between poll ticks
        poll_timeout: Seconds a long poll may stay open before it times out
        request_timeout: Timeout in seconds for history, delete and send requests
        deduplicate: Drop inserts for message ids that are already in the timeline
        log_level: Logging level name for the runner
        log_file: Optional log file path for the runner
    """
    DEFAULT_SEED_SIZE = 50
    DEFAULT_PAGE_SIZE = 20

    base_url: str = "http://localhost:8080"
    user_name: Optional[str] = None
    is_admin: bool = False
    init_size: Optional[int] = None
    poll_interval: float = 1.0
    poll_timeout: float = 420.0
    request_timeout: float = 30.0
    deduplicate: bool = True
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def __post_init__(self):
        if self.init_size is not None:
            if isinstance(self.init_size, bool) or not isinstance(self.init_size, int) or self.init_size == 0:
                raise FeedConfigError(f"init_size must be a non-zero integer, got {self.init_size!r}")
        for name in ("poll_interval", "poll_timeout", "request_timeout"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or value <= 0:
                raise FeedConfigError(f"{name} must be a positive number, got {value!r}")
        if not self.base_url:
            raise FeedConfigError("base_url must not be empty")

    @property
    def seed_high_watermark(self) -> int:
        """Negative seed meaning "the most recent N messages"."""
        if self.init_size:
            return -abs(self.init_size)
        return -self.DEFAULT_SEED_SIZE

    @property
    def page_size(self) -> int:
        """Default number of messages per history page."""
        if self.init_size:
            return abs(self.init_size)
        return self.DEFAULT_PAGE_SIZE

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeedSyncConfig":
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in (data or {}).items():
            if key in known:
                values[key] = value
            else:
                logger.warning(f"Ignoring unknown feed setting: {key}")
        try:
            return cls(**values)
        except TypeError as e:
            raise FeedConfigError(str(e)) from e

    @classmethod
    def load(cls, config_file: str) -> "FeedSyncConfig":
        """
        Load settings from a YAML file.

        The settings may live at the top level or under a ``feed`` key.
        A missing file yields the defaults.
        """
        if not os.path.exists(config_file):
            logger.warning(f"Config file not found, using defaults: {config_file}")
            return cls()

        data = load_yaml(config_file) or {}
        if not isinstance(data, dict):
            raise FeedConfigError(f"Config file must contain a mapping: {config_file}")
        if isinstance(data.get("feed"), dict):
            data = data["feed"]
        config = cls.from_dict(data)
        logger.info(f"Feed settings loaded from {config_file}")
        return config
