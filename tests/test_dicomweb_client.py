"""Unit tests for the DICOMweb client using an httpx mock transport."""

import httpx
import pytest

from pacsbridge.exceptions import (
    DicomWebRequestError,
    PacsConfigurationError,
    QueryValidationError,
)
from pacsbridge.services.dicomweb import DicomWebClient
from tests.utils import RecordingTransport

pytestmark = pytest.mark.asyncio

STUDY_JSON = [
    {
        "0020000D": {"vr": "UI", "Value": ["1.2.3"]},
        "00100020": {"vr": "LO", "Value": ["P1"]},
        "00100010": {"vr": "PN", "Value": [{"Alphabetic": "Doe^Jane"}]},
    },
    {
        "0020000D": {"vr": "UI", "Value": ["1.2.4"]},
        "00100020": {"vr": "LO", "Value": ["P1"]},
    },
]


def _client(transport: RecordingTransport) -> DicomWebClient:
    return DicomWebClient(client=httpx.AsyncClient(transport=httpx.MockTransport(transport)))


async def test_query_studies(dicomweb_pacs):
    transport = RecordingTransport(httpx.Response(200, json=STUDY_JSON))

    async with _client(transport) as client:
        results = await client.query_studies(
            dicomweb_pacs, {"PatientID": "P1", "StudyDate": "", "limit": 10}
        )

    assert [r.study_instance_uid for r in results] == ["1.2.3", "1.2.4"]
    assert results[0]["PatientName"] == "Doe^Jane"
    request = transport.requests[0]
    assert request.url.host == "pacs.test"
    assert request.url.path == "/dicom-web/studies"
    assert request.headers["Accept"] == "application/dicom+json"
    assert dict(request.url.params) == {"PatientID": "P1", "limit": "10"}


async def test_query_series_and_instances_paths(dicomweb_pacs):
    transport = RecordingTransport(httpx.Response(200, json=[]))

    async with _client(transport) as client:
        await client.query_series(dicomweb_pacs, "1.2.3")
        await client.query_instances(dicomweb_pacs, "1.2.3", "1.2.3.4")

    assert [r.url.path for r in transport.requests] == [
        "/dicom-web/studies/1.2.3/series",
        "/dicom-web/studies/1.2.3/series/1.2.3.4/instances",
    ]


@pytest.mark.parametrize(
    "response",
    [httpx.Response(204), httpx.Response(200, content=b""), httpx.Response(200, json=[])],
)
async def test_no_matches(dicomweb_pacs, response):
    """No content and an empty body both mean no matches."""
    async with _client(RecordingTransport(response)) as client:
        assert await client.query_studies(dicomweb_pacs) == []


async def test_missing_qido_url_makes_no_request(dicomweb_pacs):
    pacs = dicomweb_pacs.model_copy(update={"qido_rs_url": None})
    transport = RecordingTransport(httpx.Response(200, json=STUDY_JSON))

    async with _client(transport) as client:
        with pytest.raises(PacsConfigurationError):
            await client.query_studies(pacs)

    assert transport.requests == []


async def test_http_error_carries_status_code(dicomweb_pacs):
    transport = RecordingTransport(httpx.Response(500, text="Internal error"))

    async with _client(transport) as client:
        with pytest.raises(DicomWebRequestError) as exc_info:
            await client.query_studies(dicomweb_pacs)

    assert exc_info.value.status_code == 500


async def test_connect_error(dicomweb_pacs):
    transport = RecordingTransport(httpx.ConnectError("refused"))

    async with _client(transport) as client:
        with pytest.raises(DicomWebRequestError, match="Cannot connect") as exc_info:
            await client.query_studies(dicomweb_pacs)

    assert exc_info.value.status_code is None


async def test_invalid_json_body(dicomweb_pacs):
    transport = RecordingTransport(httpx.Response(200, content=b"<html>login</html>"))

    async with _client(transport) as client:
        with pytest.raises(DicomWebRequestError, match="Invalid DICOM JSON"):
            await client.query_studies(dicomweb_pacs)


async def test_retrieve_instance(dicomweb_pacs):
    transport = RecordingTransport(httpx.Response(200, content=b"DICM-bytes"))

    async with _client(transport) as client:
        data = await client.retrieve_instance(dicomweb_pacs, "1.2.3", "1.2.3.4", "1.2.3.4.5")

    assert data == b"DICM-bytes"
    request = transport.requests[0]
    assert request.url.path == "/dicom-web/studies/1.2.3/series/1.2.3.4/instances/1.2.3.4.5"
    assert request.headers["Accept"] == "application/dicom"


async def test_retrieve_rendered_png(dicomweb_pacs):
    transport = RecordingTransport(httpx.Response(200, content=b"\x89PNG"))

    async with _client(transport) as client:
        data = await client.retrieve_rendered(
            dicomweb_pacs, "1.2.3", "1.2.3.4", "1.2.3.4.5", media_type="image/png"
        )

    assert data == b"\x89PNG"
    assert transport.requests[0].url.path.endswith("/instances/1.2.3.4.5/rendered")
    assert transport.requests[0].headers["Accept"] == "image/png"


async def test_retrieve_rendered_rejects_media_type(dicomweb_pacs):
    transport = RecordingTransport(httpx.Response(200))

    async with _client(transport) as client:
        with pytest.raises(QueryValidationError):
            await client.retrieve_rendered(
                dicomweb_pacs, "1.2.3", "1.2.3.4", "1.2.3.4.5", media_type="image/gif"
            )

    assert transport.requests == []


async def test_blank_study_uid_makes_no_request(dicomweb_pacs):
    transport = RecordingTransport(httpx.Response(200, json=[]))

    async with _client(transport) as client:
        with pytest.raises(QueryValidationError, match="StudyInstanceUID"):
            await client.query_series(dicomweb_pacs, "")

    assert transport.requests == []


async def test_blank_series_uid_makes_no_request(dicomweb_pacs):
    transport = RecordingTransport(httpx.Response(200, json=[]))

    async with _client(transport) as client:
        with pytest.raises(QueryValidationError, match="SeriesInstanceUID"):
            await client.query_instances(dicomweb_pacs, "1.2.3", " ")
        with pytest.raises(QueryValidationError, match="SOPInstanceUID"):
            await client.retrieve_instance(dicomweb_pacs, "1.2.3", "1.2.3.4", "")

    assert transport.requests == []
