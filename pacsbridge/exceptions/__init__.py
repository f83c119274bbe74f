"""Exceptions for PACS Bridge."""

from pacsbridge.exceptions.domain import (
    AssociationError,
    ConnectFailedError,
    DicomTransportError,
    DicomWebRequestError,
    IncompatibleConnectionError,
    PacsBridgeError,
    PacsConfigurationError,
    PacsNotFoundError,
    QueryValidationError,
    RetrievalJobError,
    RetrievalJobNotFoundError,
    RetrievalJobTerminalError,
    SecurityFailureError,
    TransportError,
    UnsupportedOperationError,
    UsageError,
)

__all__ = [
    "AssociationError",
    "ConnectFailedError",
    "DicomTransportError",
    "DicomWebRequestError",
    "IncompatibleConnectionError",
    "PacsBridgeError",
    "PacsConfigurationError",
    "PacsNotFoundError",
    "QueryValidationError",
    "RetrievalJobError",
    "RetrievalJobNotFoundError",
    "RetrievalJobTerminalError",
    "SecurityFailureError",
    "TransportError",
    "UnsupportedOperationError",
    "UsageError",
]
