"""Protocol-agnostic facade over legacy DICOM and DICOMweb PACS nodes.

Each operation looks up the PACS descriptor and dispatches on its protocol
family. Operations that only exist for one family fail with
``UnsupportedOperationError`` before any network activity.
"""

import asyncio
import time
from datetime import timedelta
from typing import Any, assert_never

from pacsbridge.exceptions.domain import (
    DicomWebRequestError,
    PacsConfigurationError,
    UnsupportedOperationError,
)
from pacsbridge.services.attributes import DicomAttributes
from pacsbridge.services.dicom.client import DicomClient
from pacsbridge.services.dicom.models import (
    EchoResult,
    MoveResult,
    QueryRetrieveLevel,
    RetrieveRequest,
    StudyQuery,
)
from pacsbridge.services.dicom.query_keys import build_retrieve_request
from pacsbridge.services.dicomweb.client import DicomWebClient
from pacsbridge.services.pacs.models import DicomWebPacs, LegacyPacs
from pacsbridge.services.pacs.registry import PacsRegistry
from pacsbridge.services.retrieval import (
    RetrievalJobHandle,
    RetrievalProgress,
    RetrievalProgressTracker,
)
from pacsbridge.settings import settings
from pacsbridge.utils.logger import logger


class PacsRouter:
    """Single entry point for echo, query and retrieve against any configured PACS."""

    def __init__(
        self,
        registry: PacsRegistry,
        dicom_client: DicomClient | None = None,
        dicomweb_client: DicomWebClient | None = None,
        tracker: RetrievalProgressTracker | None = None,
        retrieval_retention: timedelta | None = None,
    ):
        """Initialize the router.

        Args:
            registry: Source of PACS descriptors
            dicom_client: Client for legacy DICOM nodes
            dicomweb_client: Client for DICOMweb nodes
            tracker: Tracker holding retrieval jobs
            retrieval_retention: How long finished jobs stay queryable;
                ``retrieval_retention_minutes`` from settings if None
        """
        self.registry = registry
        self.dicom = dicom_client or DicomClient()
        self.dicomweb = dicomweb_client or DicomWebClient(timeout=settings.dicomweb_timeout)
        self.tracker = tracker or RetrievalProgressTracker()
        if retrieval_retention is None:
            retrieval_retention = timedelta(minutes=settings.retrieval_retention_minutes)
        self.retrieval_retention = retrieval_retention
        self._tasks: set[asyncio.Task[MoveResult]] = set()

    def _require_legacy(self, pacs: LegacyPacs | DicomWebPacs, operation: str) -> LegacyPacs:
        match pacs:
            case LegacyPacs():
                return pacs
            case DicomWebPacs():
                raise UnsupportedOperationError(operation, pacs.pacs_type)
            case _:
                assert_never(pacs)

    def _require_dicomweb(self, pacs: LegacyPacs | DicomWebPacs, operation: str) -> DicomWebPacs:
        match pacs:
            case DicomWebPacs():
                return pacs
            case LegacyPacs():
                raise UnsupportedOperationError(operation, pacs.pacs_type)
            case _:
                assert_never(pacs)

    @staticmethod
    def _dicomweb_params(pacs: DicomWebPacs, filters: dict[str, Any] | None) -> dict[str, Any]:
        """Rename keyword filters to the query parameter names the PACS expects."""
        return {
            pacs.query_param_name(key): value
            for key, value in (filters or {}).items()
            if value is not None and value != ""
        }

    async def test_connection(self, pacs_id: str) -> EchoResult:
        """Check that a PACS answers.

        Legacy nodes get a C-ECHO; DICOMweb nodes get a one-result QIDO-RS study
        query. Failures are reported through the result.

        Raises:
            PacsNotFoundError: If the PACS id is unknown
        """
        pacs = self.registry.get(pacs_id)
        match pacs:
            case LegacyPacs():
                return await self.dicom.echo(pacs)
            case DicomWebPacs():
                return await self._test_dicomweb(pacs)
            case _:
                assert_never(pacs)

    async def _test_dicomweb(self, pacs: DicomWebPacs) -> EchoResult:
        def result(success: bool, message: str, response_time_ms: int = 0) -> EchoResult:
            return EchoResult(
                success=success,
                response_time_ms=response_time_ms,
                message=message,
                ae_title=pacs.ae_title,
                host=pacs.host,
                port=pacs.port,
            )

        if not pacs.qido_rs_url:
            return result(False, f"PACS '{pacs.id}' has no qido_rs_url configured")

        start = time.perf_counter()
        try:
            await self.dicomweb.query_studies(pacs, {"limit": "1"})
        except (PacsConfigurationError, DicomWebRequestError) as e:
            elapsed = int((time.perf_counter() - start) * 1000)
            logger.error(f"DICOMweb connection test for {pacs.id} failed: {e}")
            return result(False, str(e), elapsed)

        elapsed = int((time.perf_counter() - start) * 1000)
        logger.info(f"DICOMweb connection test for {pacs.id} succeeded in {elapsed} ms")
        return result(True, "Connection successful", elapsed)

    async def query_studies(
        self, pacs_id: str, filters: dict[str, Any] | None = None
    ) -> list[DicomAttributes]:
        """Search studies.

        Args:
            pacs_id: PACS identifier
            filters: Keyword-named filters (``PatientID``, ``PatientName``,
                ``StudyDate``, ``ModalitiesInStudy``, ``AccessionNumber``)

        Returns:
            Matching studies as normalized attributes
        """
        pacs = self.registry.get(pacs_id)
        match pacs:
            case LegacyPacs():
                query = StudyQuery.from_filters(filters or {})
                return await self.dicom.find_studies(pacs, query)
            case DicomWebPacs():
                return await self.dicomweb.query_studies(
                    pacs, self._dicomweb_params(pacs, filters)
                )
            case _:
                assert_never(pacs)

    async def query_series(self, pacs_id: str, study_instance_uid: str) -> list[DicomAttributes]:
        """List the series of a study."""
        pacs = self.registry.get(pacs_id)
        match pacs:
            case LegacyPacs():
                return await self.dicom.find_series(pacs, study_instance_uid)
            case DicomWebPacs():
                return await self.dicomweb.query_series(pacs, study_instance_uid)
            case _:
                assert_never(pacs)

    async def query_instances(
        self, pacs_id: str, study_instance_uid: str, series_instance_uid: str
    ) -> list[DicomAttributes]:
        """List the instances of a series."""
        pacs = self.registry.get(pacs_id)
        match pacs:
            case LegacyPacs():
                return await self.dicom.find_instances(
                    pacs, study_instance_uid, series_instance_uid
                )
            case DicomWebPacs():
                return await self.dicomweb.query_instances(
                    pacs, study_instance_uid, series_instance_uid
                )
            case _:
                assert_never(pacs)

    def _prepare_move(
        self,
        operation: str,
        pacs_id: str,
        level: QueryRetrieveLevel,
        study_instance_uid: str,
        series_instance_uid: str | None,
        sop_instance_uid: str | None,
        destination_ae: str | None,
    ) -> tuple[LegacyPacs, RetrieveRequest, str]:
        pacs = self._require_legacy(self.registry.get(pacs_id), operation)
        request = build_retrieve_request(
            level, study_instance_uid, series_instance_uid, sop_instance_uid
        )
        return pacs, request, destination_ae or settings.calling_aet

    def _create_job(
        self, pacs_id: str, study_instance_uid: str, destination: str
    ) -> RetrievalJobHandle:
        self.purge_retrievals()
        return self.tracker.create(
            pacs_id=pacs_id, study_instance_uid=study_instance_uid, destination_aet=destination
        )

    async def _retrieve(
        self,
        operation: str,
        pacs_id: str,
        level: QueryRetrieveLevel,
        study_instance_uid: str,
        series_instance_uid: str | None = None,
        sop_instance_uid: str | None = None,
        destination_ae: str | None = None,
    ) -> MoveResult:
        pacs, request, destination = self._prepare_move(
            operation,
            pacs_id,
            level,
            study_instance_uid,
            series_instance_uid,
            sop_instance_uid,
            destination_ae,
        )
        handle = self._create_job(pacs.id, study_instance_uid, destination)
        return await self.dicom.move(pacs, request, destination, handle)

    async def retrieve_study(
        self, pacs_id: str, study_instance_uid: str, destination_ae: str | None = None
    ) -> MoveResult:
        """Move a study to ``destination_ae`` and wait for the outcome.

        Args:
            pacs_id: PACS identifier
            study_instance_uid: Study to move
            destination_ae: Destination AE title; defaults to the local calling AE

        Returns:
            Move result with the final sub-operation counts

        Raises:
            UnsupportedOperationError: If the PACS is a DICOMweb node
        """
        return await self._retrieve(
            "retrieve_study",
            pacs_id,
            QueryRetrieveLevel.STUDY,
            study_instance_uid,
            destination_ae=destination_ae,
        )

    async def retrieve_series(
        self,
        pacs_id: str,
        study_instance_uid: str,
        series_instance_uid: str,
        destination_ae: str | None = None,
    ) -> MoveResult:
        """Move one series to ``destination_ae`` and wait for the outcome."""
        return await self._retrieve(
            "retrieve_series",
            pacs_id,
            QueryRetrieveLevel.SERIES,
            study_instance_uid,
            series_instance_uid,
            destination_ae=destination_ae,
        )

    async def retrieve_instance(
        self,
        pacs_id: str,
        study_instance_uid: str,
        series_instance_uid: str,
        sop_instance_uid: str,
        destination_ae: str | None = None,
    ) -> MoveResult:
        """Move a single instance to ``destination_ae`` and wait for the outcome."""
        return await self._retrieve(
            "retrieve_instance",
            pacs_id,
            QueryRetrieveLevel.IMAGE,
            study_instance_uid,
            series_instance_uid,
            sop_instance_uid,
            destination_ae=destination_ae,
        )

    async def start_retrieval(
        self,
        pacs_id: str,
        study_instance_uid: str,
        destination_ae: str | None = None,
        series_instance_uid: str | None = None,
        sop_instance_uid: str | None = None,
    ) -> RetrievalProgress:
        """Start a move in the background and return its job snapshot.

        The level follows from the UIDs given: study, series or instance.
        Poll the job with :meth:`get_retrieval_progress`.

        Raises:
            UnsupportedOperationError: If the PACS is a DICOMweb node
            QueryValidationError: If the UIDs do not form a valid scope
        """
        if sop_instance_uid:
            level = QueryRetrieveLevel.IMAGE
        elif series_instance_uid:
            level = QueryRetrieveLevel.SERIES
        else:
            level = QueryRetrieveLevel.STUDY

        pacs, request, destination = self._prepare_move(
            "start_retrieval",
            pacs_id,
            level,
            study_instance_uid,
            series_instance_uid,
            sop_instance_uid,
            destination_ae,
        )
        handle = self._create_job(pacs.id, study_instance_uid, destination)
        task = asyncio.create_task(self.dicom.move(pacs, request, destination, handle))
        self._tasks.add(task)
        task.add_done_callback(self._on_retrieval_done)
        logger.info(f"Started retrieval {handle.job_id} of {study_instance_uid} from {pacs.id}")
        return handle.progress

    def _on_retrieval_done(self, task: asyncio.Task[MoveResult]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Background retrieval crashed: {task.exception()}")

    def get_retrieval_progress(self, job_id: str) -> RetrievalProgress:
        """Latest snapshot of a retrieval job."""
        return self.tracker.get(job_id)

    def cancel_retrieval(self, job_id: str) -> RetrievalProgress:
        """Request cancellation of a running retrieval job."""
        return self.tracker.cancel(job_id)

    def list_retrievals(self) -> list[RetrievalProgress]:
        return self.tracker.list_jobs()

    def purge_retrievals(self, older_than: timedelta | None = None) -> int:
        """Forget finished jobs that ended more than ``older_than`` ago.

        Runs on every new retrieval with the router's ``retrieval_retention``.
        Running jobs are never removed.

        Returns:
            Number of jobs removed
        """
        return self.tracker.purge_finished(
            self.retrieval_retention if older_than is None else older_than
        )

    async def fetch_instance(
        self,
        pacs_id: str,
        study_instance_uid: str,
        series_instance_uid: str,
        sop_instance_uid: str,
    ) -> bytes:
        """Download one instance over WADO-RS.

        Raises:
            UnsupportedOperationError: If the PACS is a legacy DICOM node
        """
        pacs = self._require_dicomweb(self.registry.get(pacs_id), "fetch_instance")
        return await self.dicomweb.retrieve_instance(
            pacs, study_instance_uid, series_instance_uid, sop_instance_uid
        )

    async def fetch_rendered(
        self,
        pacs_id: str,
        study_instance_uid: str,
        series_instance_uid: str,
        sop_instance_uid: str,
        media_type: str = "image/jpeg",
    ) -> bytes:
        """Download a rendered instance over WADO-RS."""
        pacs = self._require_dicomweb(self.registry.get(pacs_id), "fetch_rendered")
        return await self.dicomweb.retrieve_rendered(
            pacs, study_instance_uid, series_instance_uid, sop_instance_uid, media_type
        )

    async def wait_for_retrievals(self) -> None:
        """Wait until every background retrieval has finished."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Wait for background retrievals and close the HTTP client."""
        await self.wait_for_retrievals()
        await self.dicomweb.close()
