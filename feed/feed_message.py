"""
Message module for the feed synchronization system.
Defines FeedMessage, its optional Attachment and the FeedBatch container,
together with parsing of the server wire format.
"""
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from feed.feed_errors import FeedFormatError

logger = logging.getLogger(__name__)

# Locally synthesized notices use negative ids so they can never collide
# with a server-assigned identifier used as a cursor.
_local_notice_ids = itertools.count(-1, -1)


@dataclass
class Attachment:
    """A file attached to a message."""
    name: str
    byte_size: int
    mime_type: str = ""

    @property
    def is_image(self) -> bool:
        return bool(self.mime_type) and self.mime_type.startswith("image/")


@dataclass
class FeedMessage:
    """
    One record of the remote message log.

    A record carrying ``deletion_target`` is not a message but an
    instruction to remove the message with that id from the local view.
    """
    id: int
    author: Optional[str] = None
    created_at: Optional[str] = None
    local_composed_at: Optional[str] = None
    body: str = ""
    attachment: Optional[Attachment] = None
    is_error: bool = False
    deletion_target: Optional[int] = None

    @property
    def is_system(self) -> bool:
        """True for notifications without an author."""
        return not self.author

    @property
    def is_deletion(self) -> bool:
        return self.deletion_target is not None

    @property
    def is_local(self) -> bool:
        """True for notices synthesized on this client."""
        return self.id < 0 and self.is_error

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeedMessage":
        """
        Build a FeedMessage from one wire record.

        Args:
            data: Record with the keys msgid, xfrom, mtime, lmtime, xmsg,
                  fname, fsize, fmime, isError and mdel (all but msgid optional)

        Returns:
            The parsed FeedMessage

        Raises:
            FeedFormatError: If the record is not an object or a numeric field
                is malformed
        """
        if not isinstance(data, dict):
            raise FeedFormatError(f"Feed record must be an object, got {type(data).__name__}")
        try:
            message_id = int(data["msgid"])
        except (KeyError, TypeError, ValueError) as e:
            raise FeedFormatError(f"Feed record has no valid msgid: {data!r}") from e

        deletion_target = data.get("mdel")
        if deletion_target is not None:
            try:
                deletion_target = int(deletion_target)
            except (TypeError, ValueError) as e:
                raise FeedFormatError(f"Invalid mdel in record {message_id}: {deletion_target!r}") from e

        try:
            file_size = int(data.get("fsize") or 0)
        except (TypeError, ValueError) as e:
            raise FeedFormatError(
                f"Invalid fsize in record {message_id}: {data.get('fsize')!r}", message_id
            ) from e

        attachment = None
        if file_size > 0:
            attachment = Attachment(
                name=data.get("fname") or "",
                byte_size=file_size,
                mime_type=data.get("fmime") or "",
            )

        return cls(
            id=message_id,
            author=data.get("xfrom") or None,
            created_at=data.get("mtime"),
            local_composed_at=data.get("lmtime"),
            body=data.get("xmsg") or "",
            attachment=attachment,
            is_error=data.get("isError") is True,
            deletion_target=deletion_target,
        )

    @classmethod
    def local_notice(cls, *parts: Any) -> "FeedMessage":
        """
        Create a client-side error notice shown in the feed.

        The notice gets a fresh negative id and is never sent to the server.
        """
        now = datetime.now().isoformat(timespec="seconds")
        return cls(
            id=next(_local_notice_ids),
            author=None,
            created_at=now,
            local_composed_at=now,
            body="".join(str(p) for p in parts),
            is_error=True,
        )


@dataclass
class FeedBatch:
    """
    The set of records returned by one request.

    Records that fail to parse are kept in ``malformed`` rather than
    failing the whole batch, so a lane can still move past their ids.
    """
    messages: List[FeedMessage] = field(default_factory=list)
    malformed: List[FeedFormatError] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.messages)

    def __iter__(self):
        return iter(self.messages)

    @property
    def received_count(self) -> int:
        """Number of records the server sent, malformed ones included."""
        return len(self.messages) + len(self.malformed)

    @classmethod
    def from_records(cls, records: List[Any]) -> "FeedBatch":
        batch = cls()
        for record in records:
            try:
                batch.messages.append(FeedMessage.from_dict(record))
            except FeedFormatError as e:
                logger.warning(f"Skipping malformed feed record: {e}")
                batch.malformed.append(e)
        return batch

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "FeedBatch":
        """
        Parse a ``{"msgs": [...]}`` response body.

        A single record (as returned by the send endpoint) is accepted too.
        A missing body or missing ``msgs`` key is an empty batch.
        """
        if not data:
            return cls()
        if not isinstance(data, dict):
            raise FeedFormatError(f"Feed response must be an object, got {type(data).__name__}")
        if "msgs" not in data:
            if "msgid" in data:
                return cls.from_records([data])
            return cls()
        records = data["msgs"]
        if not isinstance(records, list):
            raise FeedFormatError(f"'msgs' must be a list, got {type(records).__name__}")
        return cls.from_records(records)
