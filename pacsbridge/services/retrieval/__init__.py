"""Progress tracking for C-MOVE retrievals."""

from pacsbridge.services.retrieval.models import (
    TERMINAL_STATUSES,
    RetrievalProgress,
    RetrievalStatus,
)
from pacsbridge.services.retrieval.tracker import RetrievalJobHandle, RetrievalProgressTracker

__all__ = [
    "TERMINAL_STATUSES",
    "RetrievalJobHandle",
    "RetrievalProgress",
    "RetrievalProgressTracker",
    "RetrievalStatus",
]
