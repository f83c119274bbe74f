"""Unit tests for retrieval progress tracking."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from pacsbridge.exceptions import RetrievalJobNotFoundError, RetrievalJobTerminalError
from pacsbridge.services.retrieval import (
    RetrievalProgress,
    RetrievalProgressTracker,
    RetrievalStatus,
)


@pytest.fixture
def tracker() -> RetrievalProgressTracker:
    return RetrievalProgressTracker()


class TestJobLifecycle:
    """Tests for job creation and status transitions."""

    def test_create_pending_job(self, tracker):
        handle = tracker.create(
            pacs_id="orthanc", study_instance_uid="1.2.3", destination_aet="VIEWER"
        )
        progress = tracker.get(handle.job_id)

        assert progress.status == RetrievalStatus.PENDING
        assert progress.pacs_id == "orthanc"
        assert progress.start_time is not None
        assert progress.end_time is None
        assert progress.total == 0
        assert progress.percent_complete == 0

    def test_job_ids_are_unique(self, tracker):
        ids = {tracker.create().job_id for _ in range(20)}
        assert len(ids) == 20

    def test_start_moves_to_in_progress(self, tracker):
        handle = tracker.create()
        handle.start()
        assert tracker.get(handle.job_id).status == RetrievalStatus.IN_PROGRESS

    def test_unknown_job(self, tracker):
        with pytest.raises(RetrievalJobNotFoundError):
            tracker.get("missing")
        with pytest.raises(RetrievalJobNotFoundError):
            tracker.cancel("missing")


class TestCounters:
    """Counters are overwritten from cumulative values and stay consistent."""

    def test_total_refined_from_remaining(self, tracker):
        """Pending (3 done, 2 remaining) then 5 done gives a total of 5."""
        handle = tracker.create()

        progress = handle.update_counts(completed=3, failed=0, warnings=0, remaining=2)
        assert progress.total == 5
        assert progress.remaining == 2
        assert progress.percent_complete == 60

        progress = handle.update_counts(completed=5, failed=0, warnings=0)
        assert progress.total == 5
        assert progress.remaining == 0
        assert progress.percent_complete == 100

    def test_completed_plus_failed_never_exceeds_total(self, tracker):
        """The invariant holds after every update, whatever the peer reports."""
        handle = tracker.create()
        updates = [
            {"completed": 0, "remaining": 4},
            {"completed": 2, "failed": 1, "remaining": 1},
            {"completed": 4, "failed": 1, "remaining": 0},
            {"completed": 6, "failed": 2},
            {"completed": 6, "failed": 2, "warnings": 1, "remaining": 3},
        ]
        for update in updates:
            progress = handle.update_counts(**update)
            assert progress.completed + progress.failed <= progress.total
            assert progress.completed + progress.failed + progress.warnings <= progress.total

    def test_counters_are_monotonic(self, tracker):
        """A lower count than already recorded is ignored."""
        handle = tracker.create()
        handle.update_counts(completed=4, failed=2, remaining=1)

        progress = handle.update_counts(completed=1, failed=0, remaining=1)

        assert progress.completed == 4
        assert progress.failed == 2
        assert progress.total == 7

    def test_snapshots_are_immutable(self, tracker):
        """A snapshot handed to a reader never changes afterwards."""
        handle = tracker.create()
        before = tracker.get(handle.job_id)

        handle.update_counts(completed=3, remaining=2)

        assert before.completed == 0
        assert tracker.get(handle.job_id).completed == 3
        with pytest.raises(ValidationError):
            before.completed = 10  # type: ignore[misc]


class TestFinish:
    """Terminal transitions."""

    def test_end_time_set_once(self, tracker):
        """The end timestamp is fixed by the first terminal transition."""
        handle = tracker.create()
        handle.update_counts(completed=2, remaining=0)

        final = handle.finish(RetrievalStatus.COMPLETED)
        end_time = final.end_time

        assert end_time is not None
        with pytest.raises(RetrievalJobTerminalError):
            handle.finish(RetrievalStatus.FAILED, "late failure")

        progress = tracker.get(handle.job_id)
        assert progress.status == RetrievalStatus.COMPLETED
        assert progress.end_time == end_time
        assert progress.error_message is None

    def test_updates_rejected_after_finish(self, tracker):
        handle = tracker.create()
        handle.finish(RetrievalStatus.FAILED, "boom")

        with pytest.raises(RetrievalJobTerminalError):
            handle.update_counts(completed=1)
        with pytest.raises(RetrievalJobTerminalError):
            handle.start()

    def test_non_terminal_status_rejected(self, tracker):
        handle = tracker.create()
        with pytest.raises(ValueError):
            handle.finish(RetrievalStatus.IN_PROGRESS)

    def test_is_terminal(self):
        assert RetrievalStatus.CANCELLED.is_terminal
        assert RetrievalStatus.COMPLETED_WITH_ERRORS.is_terminal
        assert not RetrievalStatus.PENDING.is_terminal


class TestCancellation:
    """Cancellation requests and association abort."""

    def test_cancel_aborts_bound_association(self, tracker):
        handle = tracker.create()
        abort = MagicMock()
        handle.bind_abort(abort)

        tracker.cancel(handle.job_id)

        assert handle.cancellation_requested
        abort.assert_called_once()
        # The owning move operation finalizes the job
        assert tracker.get(handle.job_id).status == RetrievalStatus.PENDING

    def test_cancel_before_association_aborts_on_bind(self, tracker):
        """An association bound after the request is aborted immediately."""
        handle = tracker.create()
        tracker.cancel(handle.job_id)
        abort = MagicMock()

        handle.bind_abort(abort)

        abort.assert_called_once()

    def test_cancel_finished_job_is_noop(self, tracker):
        handle = tracker.create()
        abort = MagicMock()
        handle.bind_abort(abort)
        handle.finish(RetrievalStatus.COMPLETED)

        progress = tracker.cancel(handle.job_id)

        assert progress.status == RetrievalStatus.COMPLETED
        assert not handle.cancellation_requested
        abort.assert_not_called()


class TestListing:
    """Listing and purging jobs."""

    def test_list_jobs_oldest_first(self, tracker):
        first = tracker.create()
        second = tracker.create()

        jobs = tracker.list_jobs()

        assert [j.retrieval_id for j in jobs] == [first.job_id, second.job_id]
        assert all(isinstance(j, RetrievalProgress) for j in jobs)

    def test_purge_finished_keeps_running_jobs(self, tracker):
        running = tracker.create()
        done = tracker.create()
        done.finish(RetrievalStatus.COMPLETED)

        removed = tracker.purge_finished(timedelta(0))

        assert removed == 1
        assert tracker.get(running.job_id).status == RetrievalStatus.PENDING
        with pytest.raises(RetrievalJobNotFoundError):
            tracker.get(done.job_id)

    def test_purge_respects_age(self, tracker):
        done = tracker.create()
        done.finish(RetrievalStatus.FAILED)

        assert tracker.purge_finished(timedelta(hours=1)) == 0
        assert tracker.get(done.job_id).status == RetrievalStatus.FAILED
