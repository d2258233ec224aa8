"""Watermark state shared by the poll and history lanes."""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Watermarks:
    """Track the highest and lowest message ids observed.

    Only the Reconciler writes this state, synchronously, while handling a
    completed batch. Other components read it through WatermarkView.

    Attributes:
        high: Maximum id ever observed; starts at a negative seed meaning
              "load the most recent N messages"
        low: Minimum id ever observed; None until a message has been seen
    """
    high: int
    low: Optional[int] = None

    def observe(self, message_id: int) -> None:
        """Fold one content id into both watermarks."""
        if message_id > self.high:
            self.high = message_id
        if self.low is None or message_id < self.low:
            self.low = message_id


class WatermarkView:
    """Read-only view over Watermarks."""

    def __init__(self, watermarks: Watermarks):
        self._watermarks = watermarks

    @property
    def high(self) -> int:
        return self._watermarks.high

    @property
    def low(self) -> Optional[int]:
        return self._watermarks.low

    def __repr__(self) -> str:
        return f"WatermarkView(high={self.high}, low={self.low})"
