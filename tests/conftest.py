"""Shared fixtures: PACS descriptors and a fake association client."""

import pytest

from pacsbridge.services.dicom.models import AssociationConfig
from pacsbridge.services.pacs.models import DicomWebPacs, LegacyPacs
from tests.utils import FakeAssociationClient


@pytest.fixture
def legacy_pacs() -> LegacyPacs:
    return LegacyPacs(
        id="orthanc",
        name="Test Orthanc",
        host="127.0.0.1",
        port=4242,
        ae_title="ORTHANC",
    )


@pytest.fixture
def dicomweb_pacs() -> DicomWebPacs:
    return DicomWebPacs(
        id="orthanc-web",
        name="Test Orthanc DICOMweb",
        pacs_type="DICOMWEB",
        host="127.0.0.1",
        port=8042,
        ae_title="ORTHANC",
        qido_rs_url="http://pacs.test/dicom-web/",
        wado_rs_url="http://pacs.test/dicom-web",
    )


@pytest.fixture
def association_config(legacy_pacs: LegacyPacs) -> AssociationConfig:
    return AssociationConfig.for_pacs(legacy_pacs, calling_aet="PACSBRIDGE")


@pytest.fixture
def fake_associations() -> FakeAssociationClient:
    return FakeAssociationClient()
