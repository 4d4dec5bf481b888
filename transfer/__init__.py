"""Transfer layer - pull/push/move batches."""

from .engine import Direction, ItemResult, ItemStatus, TransferSummary, local_item, pull, push
from .progress import ProgressSnapshot, format_eta, poll_interval

__all__ = [
    "Direction",
    "ItemResult",
    "ItemStatus",
    "TransferSummary",
    "local_item",
    "pull",
    "push",
    "ProgressSnapshot",
    "format_eta",
    "poll_interval",
]
