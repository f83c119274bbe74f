"""DICOM networking: associations, C-ECHO, C-FIND, C-MOVE and a storage receiver."""

from pacsbridge.services.dicom.association import AssociationClient
from pacsbridge.services.dicom.client import DicomClient
from pacsbridge.services.dicom.models import (
    AssociationConfig,
    EchoResult,
    MoveResult,
    QueryRetrieveLevel,
    RetrieveRequest,
    StudyQuery,
)
from pacsbridge.services.dicom.operations import DicomOperations
from pacsbridge.services.dicom.receiver import StorageReceiver

__all__ = [
    "AssociationClient",
    "AssociationConfig",
    "DicomClient",
    "DicomOperations",
    "EchoResult",
    "MoveResult",
    "QueryRetrieveLevel",
    "RetrieveRequest",
    "StorageReceiver",
    "StudyQuery",
]
