"""Unit tests for the async DICOM client."""

from unittest.mock import MagicMock

import pytest

from pacsbridge.services.dicom.client import DicomClient
from pacsbridge.services.dicom.models import (
    EchoResult,
    QueryRetrieveLevel,
    RetrieveRequest,
    StudyQuery,
)
from pacsbridge.services.dicom.operations import DicomOperations
from pacsbridge.settings import settings


@pytest.fixture
def operations() -> MagicMock:
    return MagicMock(spec=DicomOperations)


@pytest.fixture
def client(operations) -> DicomClient:
    return DicomClient(calling_aet="TESTSCU", max_pdu=32768, operations=operations)


class TestAssociationConfig:
    """The descriptor overrides client and settings defaults."""

    def test_defaults_from_client_and_settings(self, client, legacy_pacs):
        config = client._create_association_config(legacy_pacs)

        assert config.calling_aet == "TESTSCU"
        assert config.called_aet == "ORTHANC"
        assert config.peer_host == "127.0.0.1"
        assert config.peer_port == 4242
        assert config.max_pdu == 32768
        assert config.acse_timeout == settings.acse_timeout
        assert config.network_timeout == settings.network_timeout

    def test_descriptor_overrides(self, client, legacy_pacs):
        pacs = legacy_pacs.model_copy(
            update={"max_pdu": 0, "dimse_timeout": 120.0, "connection_timeout": 2.5}
        )

        config = client._create_association_config(pacs)

        assert config.max_pdu == 0
        assert config.dimse_timeout == 120.0
        assert config.connection_timeout == 2.5
        assert config.acse_timeout == settings.acse_timeout

    def test_calling_aet_defaults_to_settings(self, operations):
        assert DicomClient(operations=operations).calling_aet == settings.calling_aet


class TestDelegation:
    """Async methods run the synchronous operations with a resolved config."""

    @pytest.mark.asyncio
    async def test_echo(self, client, operations, legacy_pacs):
        expected = EchoResult(success=True, message="Connection successful")
        operations.echo.return_value = expected

        result = await client.echo(legacy_pacs)

        assert result is expected
        config = operations.echo.call_args.args[0]
        assert config.called_aet == "ORTHANC"

    @pytest.mark.asyncio
    async def test_find_studies(self, client, operations, legacy_pacs):
        operations.find.return_value = []

        await client.find_studies(legacy_pacs, StudyQuery(patient_id="P1", modality="CT"))

        _config, level, filters = operations.find.call_args.args
        assert level == QueryRetrieveLevel.STUDY
        assert filters == {"PatientID": "P1", "ModalitiesInStudy": "CT"}

    @pytest.mark.asyncio
    async def test_find_instances(self, client, operations, legacy_pacs):
        operations.find.return_value = []

        await client.find_instances(legacy_pacs, "1.2.3", "1.2.3.4")

        _config, level, filters = operations.find.call_args.args
        assert level == QueryRetrieveLevel.IMAGE
        assert filters == {"StudyInstanceUID": "1.2.3", "SeriesInstanceUID": "1.2.3.4"}

    @pytest.mark.asyncio
    async def test_move(self, client, operations, legacy_pacs):
        request = RetrieveRequest(level=QueryRetrieveLevel.STUDY, study_instance_uid="1.2.3")

        await client.move(legacy_pacs, request, "VIEWER")

        _config, sent_request, destination, handle = operations.move.call_args.args
        assert sent_request is request
        assert destination == "VIEWER"
        assert handle is None
