"""Models for tracking C-MOVE retrieval progress."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, computed_field


class RetrievalStatus(str, Enum):
    """Lifecycle states of a retrieval job."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    COMPLETED_WITH_ERRORS = "COMPLETED_WITH_ERRORS"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {
        RetrievalStatus.COMPLETED,
        RetrievalStatus.COMPLETED_WITH_ERRORS,
        RetrievalStatus.FAILED,
        RetrievalStatus.CANCELLED,
    }
)


class RetrievalProgress(BaseModel):
    """Immutable snapshot of a retrieval job.

    ``total`` may be 0 until the peer reports the number of remaining
    sub-operations.
    """

    model_config = ConfigDict(frozen=True)

    retrieval_id: str
    status: RetrievalStatus = RetrievalStatus.PENDING
    total: int = 0
    completed: int = 0
    failed: int = 0
    warnings: int = 0
    error_message: str | None = None
    start_time: datetime
    end_time: datetime | None = None
    pacs_id: str | None = None
    study_instance_uid: str | None = None
    destination_aet: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def remaining(self) -> int:
        return max(0, self.total - self.completed - self.failed - self.warnings)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def percent_complete(self) -> int:
        if self.total <= 0:
            return 0
        return (self.completed * 100) // self.total

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal
