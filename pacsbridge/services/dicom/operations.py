"""Synchronous DICOM operations using pynetdicom."""

import time
from typing import Any

from pydicom import Dataset
from pynetdicom.association import Association  # type: ignore[import-not-found]
from pynetdicom.sop_class import (  # type: ignore[import-not-found,attr-defined]
    StudyRootQueryRetrieveInformationModelFind,
    StudyRootQueryRetrieveInformationModelMove,
)

from pacsbridge.exceptions.domain import AssociationError, DicomTransportError
from pacsbridge.services.attributes import DicomAttributes
from pacsbridge.services.dicom.association import (
    AssociationClient,
    build_find_contexts,
    build_move_contexts,
    build_tls_args,
    build_verification_contexts,
)
from pacsbridge.services.dicom.models import (
    AssociationConfig,
    EchoResult,
    MoveResult,
    QueryRetrieveLevel,
    RetrieveRequest,
    StudyQuery,
)
from pacsbridge.services.dicom.query_keys import (
    build_move_identifier,
    build_query_keys,
    build_retrieve_request,
)
from pacsbridge.services.retrieval import (
    RetrievalJobHandle,
    RetrievalProgress,
    RetrievalProgressTracker,
    RetrievalStatus,
)
from pacsbridge.utils.logger import logger

# Errors pynetdicom raises while a DIMSE exchange is running
_ENGINE_ERRORS = (OSError, RuntimeError, ValueError)


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _suboperation_count(status: Dataset, keyword: str) -> int | None:
    """Get a C-MOVE sub-operation counter from a status dataset."""
    value: Any = getattr(status, keyword, None)
    if value is None or value == "":
        return None
    return int(value)


class DicomOperations:
    """Synchronous C-ECHO, C-FIND and C-MOVE over scoped associations."""

    def __init__(
        self,
        associations: AssociationClient | None = None,
        tracker: RetrievalProgressTracker | None = None,
    ):
        """Initialize DICOM operations.

        Args:
            associations: Association client used to reach the peer
            tracker: Tracker for moves started without an explicit job handle
        """
        self._associations = associations or AssociationClient()
        self._tracker = tracker or RetrievalProgressTracker()

    def echo(self, config: AssociationConfig) -> EchoResult:
        """Verify connectivity with a C-ECHO.

        Failures never raise; they are reported through the result.

        Args:
            config: Association configuration

        Returns:
            Echo result with the time from dialing to the response
        """

        def result(success: bool, message: str, response_time_ms: int = 0) -> EchoResult:
            return EchoResult(
                success=success,
                response_time_ms=response_time_ms,
                message=message,
                ae_title=config.called_aet,
                host=config.peer_host,
                port=config.peer_port,
            )

        try:
            tls_args = build_tls_args(config.tls)
        except AssociationError as e:
            logger.error(f"C-ECHO to {config.label} not attempted: {e}")
            return result(False, str(e))

        start = time.perf_counter()
        try:
            with self._associations.open(
                config, build_verification_contexts(), tls_args=tls_args
            ) as assoc:
                status = assoc.send_c_echo()
        except AssociationError as e:
            logger.error(f"C-ECHO to {config.label} failed: {e}")
            return result(False, str(e), _elapsed_ms(start))
        except _ENGINE_ERRORS as e:
            logger.error(f"C-ECHO to {config.label} failed: {e}")
            return result(False, f"Echo failed: {e}", _elapsed_ms(start))

        elapsed = _elapsed_ms(start)
        if not status:
            logger.warning(f"C-ECHO to {config.label} got no response")
            return result(False, "No response (timeout or association aborted)", elapsed)

        match status.Status:
            case 0x0000:
                logger.info(f"C-ECHO to {config.label} succeeded in {elapsed} ms")
                return result(True, "Connection successful", elapsed)
            case _:
                logger.warning(f"C-ECHO to {config.label} returned status 0x{status.Status:04X}")
                return result(False, f"Unexpected status: 0x{status.Status:04X}", elapsed)

    def find(
        self,
        config: AssociationConfig,
        level: QueryRetrieveLevel,
        filters: dict[str, str] | None = None,
    ) -> list[DicomAttributes]:
        """Execute a Study Root C-FIND.

        Args:
            config: Association configuration
            level: STUDY, SERIES or IMAGE
            filters: Keyword-named filter values (parent UIDs below STUDY level)

        Returns:
            All matches, in the order the peer sent them

        Raises:
            QueryValidationError: If the query keys are incomplete (before connecting)
            AssociationError: If the association cannot be established
            DicomTransportError: If the response stream breaks off
        """
        identifier = build_query_keys(level, filters)
        results: list[DicomAttributes] = []

        with self._associations.open(config, build_find_contexts()) as assoc:
            try:
                responses = assoc.send_c_find(
                    identifier, StudyRootQueryRetrieveInformationModelFind
                )

                for status, ds in responses:
                    if not status:
                        raise DicomTransportError(
                            f"C-FIND on {config.label} ended without a response "
                            "(timeout or association aborted)"
                        )

                    match status.Status:
                        case 0xFF00 | 0xFF01:
                            if ds:
                                results.append(DicomAttributes.from_dataset(ds))
                        case 0x0000:
                            logger.info(
                                f"C-FIND completed successfully, found {len(results)} "
                                f"{level.value.lower()} matches on {config.label}"
                            )
                        case _:
                            logger.warning(
                                f"C-FIND status 0x{status.Status:04x} from {config.label}"
                            )
            except _ENGINE_ERRORS as e:
                raise DicomTransportError(f"C-FIND on {config.label} failed: {e}") from e

        return results

    def find_studies(self, config: AssociationConfig, query: StudyQuery) -> list[DicomAttributes]:
        """Execute C-FIND for studies."""
        return self.find(config, QueryRetrieveLevel.STUDY, query.to_filters())

    def find_series(
        self, config: AssociationConfig, study_instance_uid: str
    ) -> list[DicomAttributes]:
        """Execute C-FIND for the series of a study."""
        return self.find(
            config, QueryRetrieveLevel.SERIES, {"StudyInstanceUID": study_instance_uid}
        )

    def find_instances(
        self, config: AssociationConfig, study_instance_uid: str, series_instance_uid: str
    ) -> list[DicomAttributes]:
        """Execute C-FIND for the instances of a series."""
        return self.find(
            config,
            QueryRetrieveLevel.IMAGE,
            {"StudyInstanceUID": study_instance_uid, "SeriesInstanceUID": series_instance_uid},
        )

    def move(
        self,
        config: AssociationConfig,
        request: RetrieveRequest,
        destination_aet: str,
        handle: RetrievalJobHandle | None = None,
    ) -> MoveResult:
        """Execute a Study Root C-MOVE, streaming progress into a retrieval job.

        The peer pushes the instances to ``destination_aet`` over separate
        C-STORE associations; this call only drives and observes the move.
        Association and transport failures do not raise; the job is finalized
        and the result reports them.

        Args:
            config: Association configuration
            request: Retrieve scope
            destination_aet: AE title the peer sends the instances to
            handle: Writer handle of the job to update; a new job is created if omitted

        Returns:
            Move result mirroring the final job snapshot

        Raises:
            RetrievalJobTerminalError: If ``handle`` belongs to a job that has
                already finished
        """
        if handle is None:
            handle = self._tracker.create(
                study_instance_uid=request.study_instance_uid, destination_aet=destination_aet
            )
        identifier = build_move_identifier(request)
        handle.start()

        if handle.cancellation_requested:
            return self._stop_move(handle, "Retrieval cancelled before the association was opened")

        logger.info(
            f"C-MOVE {request.level.value} {request.study_instance_uid} "
            f"from {config.label} to {destination_aet} (job {handle.job_id})"
        )

        try:
            with self._associations.open(
                config,
                build_move_contexts(),
                on_open=lambda assoc: handle.bind_abort(assoc.abort),
            ) as assoc:
                try:
                    return self._consume_move(assoc, identifier, config, destination_aet, handle)
                except _ENGINE_ERRORS as e:
                    return self._stop_move(handle, f"C-MOVE on {config.label} failed: {e}")
                finally:
                    handle.bind_abort(None)
        except AssociationError as e:
            logger.error(f"C-MOVE from {config.label} failed: {e}")
            return self._stop_move(handle, str(e))

    def _consume_move(
        self,
        assoc: Association,
        identifier: Dataset,
        config: AssociationConfig,
        destination_aet: str,
        handle: RetrievalJobHandle,
    ) -> MoveResult:
        responses = assoc.send_c_move(
            identifier, destination_aet, StudyRootQueryRetrieveInformationModelMove
        )

        for status, _identifier in responses:
            if not status:
                return self._stop_move(
                    handle,
                    f"C-MOVE on {config.label} ended without a response "
                    "(timeout or association aborted)",
                )

            progress = handle.update_counts(
                completed=_suboperation_count(status, "NumberOfCompletedSuboperations"),
                failed=_suboperation_count(status, "NumberOfFailedSuboperations"),
                warnings=_suboperation_count(status, "NumberOfWarningSuboperations"),
                remaining=_suboperation_count(status, "NumberOfRemainingSuboperations"),
            )

            match status.Status:
                case 0xFF00 | 0xFF01:
                    logger.debug(
                        f"C-MOVE job {handle.job_id}: {progress.completed}/{progress.total} "
                        f"completed, {progress.failed} failed"
                    )
                case 0x0000:
                    final = (
                        RetrievalStatus.COMPLETED_WITH_ERRORS
                        if progress.failed > 0
                        else RetrievalStatus.COMPLETED
                    )
                    logger.info(
                        f"C-MOVE completed: {progress.completed} completed, "
                        f"{progress.failed} failed, destination: {destination_aet}"
                    )
                    return self._move_result(handle.finish(final), success=True)
                case 0xB000:
                    message = f"C-MOVE completed with failures (status 0x{status.Status:04X})"
                    logger.warning(f"{message} on {config.label}")
                    return self._move_result(
                        handle.finish(RetrievalStatus.COMPLETED_WITH_ERRORS, message),
                        success=False,
                    )
                case _:
                    if handle.cancellation_requested:
                        return self._stop_move(handle, "Retrieval cancelled")
                    message = f"C-MOVE failed with status 0x{status.Status:04X}"
                    logger.error(f"{message} on {config.label}")
                    return self._move_result(
                        handle.finish(RetrievalStatus.FAILED, message), success=False
                    )

        return self._stop_move(handle, f"C-MOVE on {config.label} ended without a final status")

    def _stop_move(self, handle: RetrievalJobHandle, message: str) -> MoveResult:
        """Finalize an interrupted move as CANCELLED or FAILED."""
        if handle.cancellation_requested:
            logger.info(f"Retrieval {handle.job_id} cancelled")
            progress = handle.finish(RetrievalStatus.CANCELLED, "Retrieval cancelled")
        else:
            logger.error(f"Retrieval {handle.job_id} failed: {message}")
            progress = handle.finish(RetrievalStatus.FAILED, message)
        return self._move_result(progress, success=False)

    @staticmethod
    def _move_result(progress: RetrievalProgress, success: bool) -> MoveResult:
        return MoveResult(
            retrieval_id=progress.retrieval_id,
            success=success,
            status=progress.status,
            completed_suboperations=progress.completed,
            failed_suboperations=progress.failed,
            warning_suboperations=progress.warnings,
            error_message=progress.error_message,
        )

    def move_study(
        self,
        config: AssociationConfig,
        study_instance_uid: str,
        destination_aet: str,
        handle: RetrievalJobHandle | None = None,
    ) -> MoveResult:
        """Execute C-MOVE for a whole study."""
        request = build_retrieve_request(QueryRetrieveLevel.STUDY, study_instance_uid)
        return self.move(config, request, destination_aet, handle)

    def move_series(
        self,
        config: AssociationConfig,
        study_instance_uid: str,
        series_instance_uid: str,
        destination_aet: str,
        handle: RetrievalJobHandle | None = None,
    ) -> MoveResult:
        """Execute C-MOVE for one series."""
        request = build_retrieve_request(
            QueryRetrieveLevel.SERIES, study_instance_uid, series_instance_uid
        )
        return self.move(config, request, destination_aet, handle)

    def move_instance(
        self,
        config: AssociationConfig,
        study_instance_uid: str,
        series_instance_uid: str,
        sop_instance_uid: str,
        destination_aet: str,
        handle: RetrievalJobHandle | None = None,
    ) -> MoveResult:
        """Execute C-MOVE for a single instance."""
        request = build_retrieve_request(
            QueryRetrieveLevel.IMAGE, study_instance_uid, series_instance_uid, sop_instance_uid
        )
        return self.move(config, request, destination_aet, handle)
