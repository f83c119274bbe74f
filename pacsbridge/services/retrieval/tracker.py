"""In-memory tracker for in-flight C-MOVE retrievals.

Each job has exactly one writer: the :class:`RetrievalJobHandle` returned by
:meth:`RetrievalProgressTracker.create`, owned by the move operation consuming
the response stream. Every write replaces the job's frozen
:class:`RetrievalProgress` snapshot in a single reference assignment, so
readers polling :meth:`RetrievalProgressTracker.get` never see a half-applied
update.
"""

import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from pacsbridge.exceptions.domain import RetrievalJobNotFoundError, RetrievalJobTerminalError
from pacsbridge.services.retrieval.models import RetrievalProgress, RetrievalStatus
from pacsbridge.utils.logger import logger


def _now() -> datetime:
    return datetime.now(UTC)


class RetrievalJobHandle:
    """Write access to a single retrieval job."""

    def __init__(self, progress: RetrievalProgress):
        self._progress = progress
        self._cancel_event = threading.Event()
        self._abort_lock = threading.Lock()
        self._abort: Callable[[], None] | None = None

    @property
    def job_id(self) -> str:
        return self._progress.retrieval_id

    @property
    def progress(self) -> RetrievalProgress:
        """Current snapshot."""
        return self._progress

    @property
    def cancellation_requested(self) -> bool:
        return self._cancel_event.is_set()

    def _ensure_mutable(self) -> None:
        if self._progress.is_terminal:
            raise RetrievalJobTerminalError(self.job_id, self._progress.status.value)

    def start(self) -> None:
        """Move the job from PENDING to IN_PROGRESS."""
        self._ensure_mutable()
        if self._progress.status == RetrievalStatus.PENDING:
            self._progress = self._progress.model_copy(
                update={"status": RetrievalStatus.IN_PROGRESS}
            )

    def update_counts(
        self,
        completed: int | None = None,
        failed: int | None = None,
        warnings: int | None = None,
        remaining: int | None = None,
    ) -> RetrievalProgress:
        """Apply cumulative sub-operation counts reported by the peer.

        Counts are overwritten, never added, but a count lower than the one
        already recorded is ignored so counters stay monotonic. ``total`` is
        refined from ``remaining`` whenever the peer reports it.

        Args:
            completed: Number of completed sub-operations
            failed: Number of failed sub-operations
            warnings: Number of sub-operations completed with warnings
            remaining: Number of sub-operations still to run

        Returns:
            The updated snapshot

        Raises:
            RetrievalJobTerminalError: If the job has already finished
        """
        self._ensure_mutable()
        current = self._progress

        new_completed = max(current.completed, completed or 0)
        new_failed = max(current.failed, failed or 0)
        new_warnings = max(current.warnings, warnings or 0)
        done = new_completed + new_failed + new_warnings

        total = max(current.total, done)
        if remaining is not None:
            total = max(total, done + remaining)

        self._progress = current.model_copy(
            update={
                "status": RetrievalStatus.IN_PROGRESS,
                "completed": new_completed,
                "failed": new_failed,
                "warnings": new_warnings,
                "total": total,
            }
        )
        return self._progress

    def finish(
        self, status: RetrievalStatus, error_message: str | None = None
    ) -> RetrievalProgress:
        """Set a terminal status and fix the end timestamp.

        Args:
            status: One of the terminal statuses
            error_message: Optional failure description

        Returns:
            The final snapshot

        Raises:
            ValueError: If status is not terminal
            RetrievalJobTerminalError: If the job has already finished
        """
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")
        self._ensure_mutable()

        current = self._progress
        total = max(current.total, current.completed + current.failed + current.warnings)
        self._progress = current.model_copy(
            update={
                "status": status,
                "error_message": error_message,
                "total": total,
                "end_time": _now(),
            }
        )
        self.bind_abort(None)
        logger.info(
            f"Retrieval {self.job_id} finished: {status.value} "
            f"({current.completed} completed, {current.failed} failed, {current.warnings} warnings)"
        )
        return self._progress

    def bind_abort(self, abort: Callable[[], None] | None) -> None:
        """Register the callable that tears down the live association.

        If cancellation was requested before the association existed, the
        callable runs immediately.
        """
        with self._abort_lock:
            self._abort = abort
            run_now = abort is not None and self._cancel_event.is_set()
        if run_now and abort is not None:
            abort()

    def request_cancel(self) -> None:
        """Flag the job for cancellation and abort its association if one is bound."""
        with self._abort_lock:
            self._cancel_event.set()
            abort = self._abort
        if abort is not None:
            abort()


class RetrievalProgressTracker:
    """Arena of retrieval jobs addressed by opaque id."""

    def __init__(self) -> None:
        self._jobs: dict[str, RetrievalJobHandle] = {}

    def create(
        self,
        pacs_id: str | None = None,
        study_instance_uid: str | None = None,
        destination_aet: str | None = None,
    ) -> RetrievalJobHandle:
        """Register a new PENDING job and return its writer handle."""
        progress = RetrievalProgress(
            retrieval_id=uuid4().hex,
            start_time=_now(),
            pacs_id=pacs_id,
            study_instance_uid=study_instance_uid,
            destination_aet=destination_aet,
        )
        handle = RetrievalJobHandle(progress)
        self._jobs[handle.job_id] = handle
        logger.debug(f"Created retrieval job {handle.job_id}")
        return handle

    def _handle(self, job_id: str) -> RetrievalJobHandle:
        handle = self._jobs.get(job_id)
        if handle is None:
            raise RetrievalJobNotFoundError(job_id)
        return handle

    def get(self, job_id: str) -> RetrievalProgress:
        """Return the latest snapshot of a job.

        Raises:
            RetrievalJobNotFoundError: If the id is unknown
        """
        return self._handle(job_id).progress

    def list_jobs(self) -> list[RetrievalProgress]:
        """Snapshots of all known jobs, oldest first."""
        return sorted(
            (handle.progress for handle in list(self._jobs.values())),
            key=lambda p: p.start_time,
        )

    def cancel(self, job_id: str) -> RetrievalProgress:
        """Request cancellation of a job.

        The owning move operation observes the request and finalizes the job
        as CANCELLED. Cancelling a finished job does nothing.

        Raises:
            RetrievalJobNotFoundError: If the id is unknown
        """
        handle = self._handle(job_id)
        if handle.progress.is_terminal:
            logger.info(
                f"Retrieval {job_id} already {handle.progress.status.value}, not cancelling"
            )
            return handle.progress
        logger.info(f"Cancellation requested for retrieval {job_id}")
        handle.request_cancel()
        return handle.progress

    def purge_finished(self, older_than: timedelta) -> int:
        """Drop terminal jobs that ended more than ``older_than`` ago.

        Returns:
            Number of jobs removed
        """
        cutoff = _now() - older_than
        expired = [
            job_id
            for job_id, handle in list(self._jobs.items())
            if handle.progress.end_time is not None and handle.progress.end_time <= cutoff
        ]
        for job_id in expired:
            self._jobs.pop(job_id, None)
        if expired:
            logger.debug(f"Purged {len(expired)} finished retrieval jobs")
        return len(expired)
