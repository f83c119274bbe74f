"""Async DICOMweb client (QIDO-RS queries and WADO-RS retrieval)."""

from typing import Any

import httpx

from pacsbridge.exceptions.domain import (
    DicomWebRequestError,
    PacsConfigurationError,
    QueryValidationError,
)
from pacsbridge.services.attributes import DicomAttributes
from pacsbridge.services.pacs.models import DicomWebPacs
from pacsbridge.utils.logger import logger

DICOM_JSON = "application/dicom+json"
DICOM = "application/dicom"
RENDERED_MEDIA_TYPES = frozenset({"image/jpeg", "image/png"})


def _clean_params(params: dict[str, Any] | None) -> dict[str, str]:
    """Drop empty query parameters."""
    if not params:
        return {}
    return {key: str(value) for key, value in params.items() if value is not None and value != ""}


def _require_uids(resource: str, **uids: str) -> None:
    """Reject blank UIDs before they end up as empty path segments."""
    missing = [keyword for keyword, uid in uids.items() if not uid or not uid.strip()]
    if missing:
        raise QueryValidationError(f"{', '.join(missing)} required for {resource}")


class DicomWebClient:
    """Async HTTP client for DICOMweb endpoints of a PACS.

    Args:
        timeout: Default HTTP request timeout in seconds; a PACS descriptor may override it.
        client: Optional pre-built ``httpx.AsyncClient`` (used with a mock transport in tests).
    """

    def __init__(self, timeout: float = 30.0, client: httpx.AsyncClient | None = None) -> None:
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @staticmethod
    def _base_url(pacs: DicomWebPacs, attr: str) -> str:
        url: str | None = getattr(pacs, attr)
        if not url:
            raise PacsConfigurationError(f"PACS '{pacs.id}' has no {attr} configured")
        return url

    async def _get(
        self,
        pacs: DicomWebPacs,
        url: str,
        accept: str,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Issue a GET and map failures to domain errors.

        Raises:
            DicomWebRequestError: On transport failure or a non-2xx response
        """
        timeout = pacs.timeout if pacs.timeout is not None else self.timeout
        try:
            response = await self._client.get(
                url, params=params or None, headers={"Accept": accept}, timeout=timeout
            )
        except httpx.ConnectError as e:
            raise DicomWebRequestError(f"Cannot connect to {url}") from e
        except httpx.TimeoutException as e:
            raise DicomWebRequestError(f"Request to {url} timed out") from e
        except httpx.HTTPError as e:
            raise DicomWebRequestError(f"Request to {url} failed: {e}") from e

        if response.is_error:
            logger.error(f"DICOMweb error from {pacs.id}: {response.status_code} - {response.text}")
            raise DicomWebRequestError(
                f"DICOMweb request to {url} failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response

    async def _qido(
        self, pacs: DicomWebPacs, path: str, params: dict[str, Any] | None
    ) -> list[DicomAttributes]:
        url = f"{self._base_url(pacs, 'qido_rs_url')}{path}"
        response = await self._get(pacs, url, DICOM_JSON, _clean_params(params))

        if response.status_code == 204 or not response.content.strip():
            return []
        try:
            body = response.json()
        except ValueError as e:
            raise DicomWebRequestError(
                f"Invalid DICOM JSON from {url}", response.status_code
            ) from e
        if not isinstance(body, list):
            raise DicomWebRequestError(f"Expected a JSON array from {url}", response.status_code)

        results = [
            DicomAttributes.from_dicom_json(item) for item in body if isinstance(item, dict)
        ]
        logger.debug(f"QIDO-RS {url} returned {len(results)} matches")
        return results

    async def query_studies(
        self, pacs: DicomWebPacs, params: dict[str, Any] | None = None
    ) -> list[DicomAttributes]:
        """Search for studies (QIDO-RS).

        Args:
            pacs: DICOMweb PACS descriptor
            params: Query string parameters; empty values are dropped

        Returns:
            Matching studies

        Raises:
            PacsConfigurationError: If the PACS has no QIDO-RS URL
            DicomWebRequestError: If the request fails
        """
        return await self._qido(pacs, "/studies", params)

    async def query_series(
        self, pacs: DicomWebPacs, study_instance_uid: str, params: dict[str, Any] | None = None
    ) -> list[DicomAttributes]:
        """Search for the series of a study (QIDO-RS)."""
        _require_uids("series query", StudyInstanceUID=study_instance_uid)
        return await self._qido(pacs, f"/studies/{study_instance_uid}/series", params)

    async def query_instances(
        self,
        pacs: DicomWebPacs,
        study_instance_uid: str,
        series_instance_uid: str,
        params: dict[str, Any] | None = None,
    ) -> list[DicomAttributes]:
        """Search for the instances of a series (QIDO-RS)."""
        _require_uids(
            "instance query",
            StudyInstanceUID=study_instance_uid,
            SeriesInstanceUID=series_instance_uid,
        )
        return await self._qido(
            pacs,
            f"/studies/{study_instance_uid}/series/{series_instance_uid}/instances",
            params,
        )

    def _instance_url(
        self,
        pacs: DicomWebPacs,
        study_instance_uid: str,
        series_instance_uid: str,
        sop_instance_uid: str,
    ) -> str:
        _require_uids(
            "instance retrieval",
            StudyInstanceUID=study_instance_uid,
            SeriesInstanceUID=series_instance_uid,
            SOPInstanceUID=sop_instance_uid,
        )
        return (
            f"{self._base_url(pacs, 'wado_rs_url')}/studies/{study_instance_uid}"
            f"/series/{series_instance_uid}/instances/{sop_instance_uid}"
        )

    async def retrieve_instance(
        self,
        pacs: DicomWebPacs,
        study_instance_uid: str,
        series_instance_uid: str,
        sop_instance_uid: str,
    ) -> bytes:
        """Retrieve one instance as a DICOM file (WADO-RS).

        Returns:
            Raw response body

        Raises:
            QueryValidationError: If a UID is blank
            PacsConfigurationError: If the PACS has no WADO-RS URL
            DicomWebRequestError: If the request fails
        """
        url = self._instance_url(pacs, study_instance_uid, series_instance_uid, sop_instance_uid)
        response = await self._get(pacs, url, DICOM)
        logger.info(
            f"Retrieved instance {sop_instance_uid} from {pacs.id} ({len(response.content)} bytes)"
        )
        return response.content

    async def retrieve_rendered(
        self,
        pacs: DicomWebPacs,
        study_instance_uid: str,
        series_instance_uid: str,
        sop_instance_uid: str,
        media_type: str = "image/jpeg",
    ) -> bytes:
        """Retrieve a rendered instance (WADO-RS ``/rendered``).

        Args:
            media_type: ``image/jpeg`` or ``image/png``

        Raises:
            QueryValidationError: If the media type is not supported or a UID is blank
            PacsConfigurationError: If the PACS has no WADO-RS URL
            DicomWebRequestError: If the request fails
        """
        if media_type not in RENDERED_MEDIA_TYPES:
            raise QueryValidationError(f"Unsupported rendered media type: {media_type}")
        url = self._instance_url(pacs, study_instance_uid, series_instance_uid, sop_instance_uid)
        response = await self._get(pacs, f"{url}/rendered", media_type)
        return response.content

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "DicomWebClient":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
