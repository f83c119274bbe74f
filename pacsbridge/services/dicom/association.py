"""Scoped DICOM associations built on pynetdicom.

An association is only ever handed out inside :meth:`AssociationClient.open`,
which releases it exactly once when the ``with`` block exits, whatever
happened inside.
"""

import ssl
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from pydicom.uid import (
    JPEG2000,
    ExplicitVRBigEndian,
    ExplicitVRLittleEndian,
    ImplicitVRLittleEndian,
    JPEG2000Lossless,
    JPEGBaseline8Bit,
    JPEGLossless,
    JPEGLosslessSV1,
)
from pynetdicom import AE, build_context  # type: ignore[import-not-found]
from pynetdicom.association import Association  # type: ignore[import-not-found]
from pynetdicom.presentation import PresentationContext  # type: ignore[import-not-found]
from pynetdicom.sop_class import (  # type: ignore[import-not-found,attr-defined]
    ComputedRadiographyImageStorage,
    CTImageStorage,
    DigitalXRayImageStorageForPresentation,
    MRImageStorage,
    NuclearMedicineImageStorage,
    PatientRootQueryRetrieveInformationModelFind,
    SecondaryCaptureImageStorage,
    StudyRootQueryRetrieveInformationModelFind,
    StudyRootQueryRetrieveInformationModelMove,
    UltrasoundImageStorage,
    Verification,
    XRayAngiographicImageStorage,
)

from pacsbridge.exceptions.domain import (
    ConnectFailedError,
    IncompatibleConnectionError,
    SecurityFailureError,
)
from pacsbridge.services.dicom.models import AssociationConfig
from pacsbridge.services.pacs.models import TlsConfig
from pacsbridge.utils.logger import logger

# Transfer syntaxes offered for Verification and Query/Retrieve
CONTROL_TRANSFER_SYNTAXES: list[str] = [
    ImplicitVRLittleEndian,
    ExplicitVRLittleEndian,
    ExplicitVRBigEndian,
]

# Transfer syntaxes accepted for incoming C-STORE sub-operations
IMAGE_TRANSFER_SYNTAXES: list[str] = [
    ImplicitVRLittleEndian,
    ExplicitVRLittleEndian,
    JPEGLosslessSV1,
    JPEGLossless,
    JPEGBaseline8Bit,
    JPEG2000Lossless,
    JPEG2000,
]

STORAGE_SOP_CLASSES: list[str] = [
    CTImageStorage,
    MRImageStorage,
    ComputedRadiographyImageStorage,
    DigitalXRayImageStorageForPresentation,
    SecondaryCaptureImageStorage,
    UltrasoundImageStorage,
    XRayAngiographicImageStorage,
    NuclearMedicineImageStorage,
]


def build_verification_contexts() -> list[PresentationContext]:
    """Presentation contexts for C-ECHO."""
    return [build_context(Verification, CONTROL_TRANSFER_SYNTAXES)]


def build_find_contexts(include_patient_root: bool = False) -> list[PresentationContext]:
    """Presentation contexts for C-FIND (Study Root, optionally Patient Root)."""
    contexts = [
        build_context(StudyRootQueryRetrieveInformationModelFind, CONTROL_TRANSFER_SYNTAXES)
    ]
    if include_patient_root:
        contexts.append(
            build_context(PatientRootQueryRetrieveInformationModelFind, CONTROL_TRANSFER_SYNTAXES)
        )
    return contexts


def build_move_contexts() -> list[PresentationContext]:
    """Presentation contexts for C-MOVE (Study Root)."""
    return [build_context(StudyRootQueryRetrieveInformationModelMove, CONTROL_TRANSFER_SYNTAXES)]


def build_storage_contexts() -> list[PresentationContext]:
    """Presentation contexts accepted for C-STORE, plus Verification."""
    contexts = [build_context(uid, IMAGE_TRANSFER_SYNTAXES) for uid in STORAGE_SOP_CLASSES]
    contexts.append(build_context(Verification, CONTROL_TRANSFER_SYNTAXES))
    return contexts


def build_tls_args(tls: TlsConfig | None) -> tuple[ssl.SSLContext, str] | None:
    """Build the ``tls_args`` tuple pynetdicom expects.

    Args:
        tls: TLS settings of the PACS, or None for a plain TCP association

    Returns:
        ``(ssl_context, server_hostname)`` or None

    Raises:
        SecurityFailureError: If the certificate material cannot be loaded
    """
    if tls is None:
        return None
    try:
        context = ssl.create_default_context(
            ssl.Purpose.SERVER_AUTH,
            cafile=str(tls.ca_file) if tls.ca_file else None,
        )
        if tls.cert_file:
            context.load_cert_chain(
                certfile=str(tls.cert_file),
                keyfile=str(tls.key_file) if tls.key_file else None,
            )
    except (OSError, ssl.SSLError) as e:
        raise SecurityFailureError(f"Invalid TLS configuration: {e}") from e
    return context, tls.server_hostname or ""


class AssociationClient:
    """Opens and releases associations with a remote Application Entity."""

    def _create_ae(self, config: AssociationConfig) -> AE:
        """Create an Application Entity carrying the association timeouts.

        Args:
            config: Association configuration

        Returns:
            Configured AE instance
        """
        ae = AE(ae_title=config.calling_aet)
        ae.maximum_pdu_size = config.max_pdu
        ae.connection_timeout = config.connection_timeout
        ae.acse_timeout = config.acse_timeout
        ae.dimse_timeout = config.dimse_timeout
        ae.network_timeout = config.network_timeout
        return ae

    def connect(
        self,
        config: AssociationConfig,
        contexts: Sequence[PresentationContext],
        tls_args: tuple[ssl.SSLContext, str] | None = None,
        evt_handlers: list[tuple[Any, Any]] | None = None,
    ) -> Association:
        """Request an association and check that it can carry the operation.

        Prefer :meth:`open`; an association returned here must be released by the caller.

        Args:
            config: Association configuration
            contexts: Presentation contexts to propose
            tls_args: Pre-built TLS arguments; built from ``config.tls`` if omitted
            evt_handlers: Optional pynetdicom event handlers

        Returns:
            Established association

        Raises:
            ConnectFailedError: If the peer cannot be reached, rejects or aborts
            IncompatibleConnectionError: If no proposed context was accepted
            SecurityFailureError: If TLS fails
        """
        if tls_args is None and config.tls is not None:
            tls_args = build_tls_args(config.tls)

        ae = self._create_ae(config)
        kwargs: dict[str, Any] = {
            "contexts": list(contexts),
            "ae_title": config.called_aet,
            "max_pdu": config.max_pdu,
        }
        if tls_args is not None:
            kwargs["tls_args"] = tls_args
        if evt_handlers:
            kwargs["evt_handlers"] = evt_handlers

        try:
            assoc = ae.associate(config.peer_host, config.peer_port, **kwargs)
        except ssl.SSLError as e:
            raise SecurityFailureError(f"TLS handshake with {config.label} failed: {e}") from e
        except OSError as e:
            raise ConnectFailedError(f"Cannot connect to {config.label}: {e}") from e

        if not assoc.is_established:
            if assoc.is_rejected:
                reason = "association rejected"
            elif assoc.is_aborted:
                reason = "association aborted"
            else:
                reason = "no response"
            logger.error(f"Failed to establish association with {config.label}: {reason}")
            raise ConnectFailedError(
                f"Failed to establish DICOM association with {config.label}: {reason}"
            )

        requested = {cx.abstract_syntax for cx in contexts}
        accepted = {cx.abstract_syntax for cx in assoc.accepted_contexts}
        if not requested & accepted:
            logger.error(f"{config.label} accepted none of the proposed presentation contexts")
            self.release(assoc)
            raise IncompatibleConnectionError(
                f"{config.label} accepted none of the proposed presentation contexts"
            )

        logger.debug(f"Association established with {config.label}")
        return assoc

    def release(self, assoc: Association) -> None:
        """Release an association; does nothing if it is no longer established."""
        if not assoc.is_established:
            return
        try:
            assoc.release()
        except (OSError, RuntimeError) as e:
            logger.warning(f"Failed to release association: {e}")

    @contextmanager
    def open(
        self,
        config: AssociationConfig,
        contexts: Sequence[PresentationContext],
        tls_args: tuple[ssl.SSLContext, str] | None = None,
        evt_handlers: list[tuple[Any, Any]] | None = None,
        on_open: Callable[[Association], None] | None = None,
    ) -> Iterator[Association]:
        """Yield an established association, releasing it on exit.

        Args:
            config: Association configuration
            contexts: Presentation contexts to propose
            tls_args: Pre-built TLS arguments
            evt_handlers: Optional pynetdicom event handlers
            on_open: Called with the live association before it is yielded

        Yields:
            Established association
        """
        assoc = self.connect(config, contexts, tls_args=tls_args, evt_handlers=evt_handlers)
        try:
            if on_open is not None:
                on_open(assoc)
            yield assoc
        finally:
            self.release(assoc)
