"""
Test utilities and helpers for PACS Bridge tests.
"""

from .dicom_helpers import (
    FakeAssociationClient,
    RecordingTransport,
    make_identifier,
    make_status,
    move_status,
)

__all__ = [
    "FakeAssociationClient",
    "RecordingTransport",
    "make_identifier",
    "make_status",
    "move_status",
]
