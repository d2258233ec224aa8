"""
Feed synchronization core.

Components:
- FeedSyncEngine: Public surface (start, load_older, delete_locally, delete_remote, send_message)
- PollScheduler: Single outstanding long poll against the high watermark
- HistoryLoader: Backward pagination against the low watermark
- Reconciler: Single writer of watermarks and producer of feed events
- BusyCounter: In-flight counter for requests that disable input
"""

from .busy_counter import BusyCounter
from .feed_sync_engine import FeedSyncEngine
from .history_loader import HistoryLoader
from .poll_scheduler import PollScheduler
from .reconciler import ReconcileResult, Reconciler
from .watermarks import WatermarkView, Watermarks

__all__ = [
    'BusyCounter',
    'FeedSyncEngine',
    'HistoryLoader',
    'PollScheduler',
    'ReconcileResult',
    'Reconciler',
    'WatermarkView',
    'Watermarks',
]
