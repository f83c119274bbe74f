"""Async DICOM client for verification and query-retrieve operations."""

import asyncio

from pacsbridge.services.attributes import DicomAttributes
from pacsbridge.services.dicom.models import (
    AssociationConfig,
    EchoResult,
    MoveResult,
    QueryRetrieveLevel,
    RetrieveRequest,
    StudyQuery,
)
from pacsbridge.services.dicom.operations import DicomOperations
from pacsbridge.services.pacs.models import LegacyPacs
from pacsbridge.services.retrieval import RetrievalJobHandle
from pacsbridge.settings import settings
from pacsbridge.utils.logger import logger


class DicomClient:
    """Async DICOM client for C-ECHO, C-FIND and C-MOVE.

    This client provides async interface to DICOM operations while using
    synchronous pynetdicom library under the hood via asyncio.to_thread().
    Association defaults (calling AE title, PDU size, timeouts) come from the
    application settings unless given explicitly; a PACS descriptor overrides them.
    """

    def __init__(
        self,
        calling_aet: str | None = None,
        max_pdu: int | None = None,
        operations: DicomOperations | None = None,
    ):
        """Initialize DICOM client.

        Args:
            calling_aet: Calling AE title
            max_pdu: Maximum PDU size (0 for unlimited)
            operations: Synchronous operations to run in worker threads
        """
        self.calling_aet = calling_aet or settings.calling_aet
        self.max_pdu = max_pdu if max_pdu is not None else settings.max_pdu
        self._operations = operations or DicomOperations()

    def _create_association_config(self, pacs: LegacyPacs) -> AssociationConfig:
        """Resolve the association configuration for a PACS.

        Args:
            pacs: Legacy PACS descriptor

        Returns:
            Association configuration
        """
        return AssociationConfig.for_pacs(
            pacs,
            calling_aet=self.calling_aet,
            max_pdu=self.max_pdu,
            connection_timeout=settings.connection_timeout,
            acse_timeout=settings.acse_timeout,
            dimse_timeout=settings.dimse_timeout,
            network_timeout=settings.network_timeout,
        )

    async def echo(self, pacs: LegacyPacs) -> EchoResult:
        """Verify connectivity with a PACS.

        Args:
            pacs: Legacy PACS descriptor

        Returns:
            Echo result; failures are reported, not raised
        """
        logger.info(f"Testing connection to {pacs.label}")
        config = self._create_association_config(pacs)
        return await asyncio.to_thread(self._operations.echo, config)

    async def find(
        self,
        pacs: LegacyPacs,
        level: QueryRetrieveLevel,
        filters: dict[str, str] | None = None,
    ) -> list[DicomAttributes]:
        """Find matches at a query level.

        Args:
            pacs: Legacy PACS descriptor
            level: STUDY, SERIES or IMAGE
            filters: Keyword-named filter values

        Returns:
            List of matches

        Raises:
            QueryValidationError: If parent UIDs are missing
            AssociationError: If association fails
            DicomTransportError: If the response stream breaks off
        """
        logger.info(f"Searching {level.value.lower()} level on {pacs.label}")
        config = self._create_association_config(pacs)
        results = await asyncio.to_thread(self._operations.find, config, level, filters)
        logger.info(f"Found {len(results)} {level.value.lower()} matches")
        return results

    async def find_studies(self, pacs: LegacyPacs, query: StudyQuery) -> list[DicomAttributes]:
        """Find studies matching query criteria."""
        return await self.find(pacs, QueryRetrieveLevel.STUDY, query.to_filters())

    async def find_series(self, pacs: LegacyPacs, study_instance_uid: str) -> list[DicomAttributes]:
        """Find the series of a study."""
        return await self.find(
            pacs, QueryRetrieveLevel.SERIES, {"StudyInstanceUID": study_instance_uid}
        )

    async def find_instances(
        self, pacs: LegacyPacs, study_instance_uid: str, series_instance_uid: str
    ) -> list[DicomAttributes]:
        """Find the instances of a series."""
        return await self.find(
            pacs,
            QueryRetrieveLevel.IMAGE,
            {"StudyInstanceUID": study_instance_uid, "SeriesInstanceUID": series_instance_uid},
        )

    async def move(
        self,
        pacs: LegacyPacs,
        request: RetrieveRequest,
        destination_aet: str,
        handle: RetrievalJobHandle | None = None,
    ) -> MoveResult:
        """Move a study, series or instance to another AE.

        Args:
            pacs: Legacy PACS descriptor
            request: Retrieve scope
            destination_aet: Destination AE title
            handle: Writer handle of the tracked job

        Returns:
            Move result; failures are reported, not raised
        """
        logger.info(
            f"Moving {request.level.value.lower()} {request.study_instance_uid} "
            f"from {pacs.label} to {destination_aet}"
        )
        config = self._create_association_config(pacs)
        return await asyncio.to_thread(
            self._operations.move, config, request, destination_aet, handle
        )
