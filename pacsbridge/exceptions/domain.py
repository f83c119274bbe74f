"""
Domain exceptions for the PACS orchestration layer.

These exceptions represent configuration mistakes, association failures,
transport failures and usage errors without coupling to any outer surface.
Expected protocol outcomes (a failed C-ECHO, a C-MOVE ending with a failure
status) are reported as result objects, not raised.
"""

from typing import Self


class PacsBridgeError(Exception):
    """Base exception for all PACS Bridge errors."""

    def with_context(self, detail: str) -> Self:
        """Add context information to the exception.

        Args:
            detail: Additional details about the error

        Returns:
            Self with updated message
        """
        self.args = (detail,)
        return self


# Configuration errors
class PacsConfigurationError(PacsBridgeError):
    """Raised when a PACS descriptor is missing or invalid (never retried)."""

    pass


class PacsNotFoundError(PacsConfigurationError):
    """Raised when no PACS is configured under the given identifier."""

    def __init__(self, pacs_id: str):
        super().__init__(f"PACS configuration '{pacs_id}' not found")
        self.pacs_id = pacs_id


# Usage errors
class UsageError(PacsBridgeError):
    """Raised when an operation is invoked in a way that can never succeed."""

    pass


class UnsupportedOperationError(UsageError):
    """Raised when an operation is not available for a PACS protocol family."""

    def __init__(self, operation: str, pacs_type: str):
        super().__init__(f"{operation} is not supported for {pacs_type} PACS")
        self.operation = operation
        self.pacs_type = pacs_type


class QueryValidationError(UsageError):
    """Raised when query or retrieve parameters are incomplete."""

    pass


# Association errors
class AssociationError(PacsBridgeError):
    """Base exception for association establishment failures."""

    pass


class ConnectFailedError(AssociationError):
    """Raised when the peer is unreachable, rejects or aborts the association."""

    pass


class IncompatibleConnectionError(AssociationError):
    """Raised when none of the required presentation contexts were accepted."""

    pass


class SecurityFailureError(AssociationError):
    """Raised when the TLS setup or handshake fails."""

    pass


# Transport errors
class TransportError(PacsBridgeError):
    """Raised when I/O fails after the operation has started."""

    pass


class DicomTransportError(TransportError):
    """Raised when a DIMSE response stream breaks off."""

    pass


class DicomWebRequestError(TransportError):
    """Raised when a DICOMweb request fails."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


# Retrieval tracking errors
class RetrievalJobError(PacsBridgeError):
    """Base exception for retrieval tracking errors."""

    pass


class RetrievalJobNotFoundError(RetrievalJobError):
    """Raised when a retrieval job id is unknown."""

    def __init__(self, job_id: str):
        super().__init__(f"Retrieval job '{job_id}' not found")
        self.job_id = job_id


class RetrievalJobTerminalError(RetrievalJobError):
    """Raised when a finished retrieval job is mutated."""

    def __init__(self, job_id: str, status: str):
        super().__init__(f"Retrieval job '{job_id}' is already {status}")
        self.job_id = job_id
