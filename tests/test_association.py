"""Unit tests for the association client with a mocked pynetdicom AE."""

import ssl
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from pydicom.uid import ExplicitVRBigEndian, JPEG2000Lossless
from pynetdicom.sop_class import (  # type: ignore[attr-defined]
    CTImageStorage,
    StudyRootQueryRetrieveInformationModelFind,
    Verification,
)

from pacsbridge.exceptions import (
    ConnectFailedError,
    IncompatibleConnectionError,
    SecurityFailureError,
)
from pacsbridge.services.dicom.association import (
    STORAGE_SOP_CLASSES,
    AssociationClient,
    build_find_contexts,
    build_move_contexts,
    build_storage_contexts,
    build_tls_args,
    build_verification_contexts,
)
from pacsbridge.services.pacs.models import TlsConfig


def _assoc(established: bool = True, accepted: list[str] | None = None) -> MagicMock:
    assoc = MagicMock()
    assoc.is_established = established
    assoc.is_rejected = False
    assoc.is_aborted = False
    assoc.accepted_contexts = [MagicMock(abstract_syntax=uid) for uid in (accepted or [])]

    def release():
        assoc.is_established = False

    assoc.release.side_effect = release
    return assoc


@pytest.fixture
def mock_ae():
    with patch("pacsbridge.services.dicom.association.AE") as ae_cls:
        yield ae_cls.return_value


class TestPresentationContexts:
    """Tests for the presentation context builders."""

    def test_control_contexts_offer_big_endian(self):
        all_contexts = (build_verification_contexts(), build_find_contexts(), build_move_contexts())
        for contexts in all_contexts:
            for cx in contexts:
                assert ExplicitVRBigEndian in cx.transfer_syntax

    def test_find_contexts(self):
        assert [cx.abstract_syntax for cx in build_find_contexts()] == [
            StudyRootQueryRetrieveInformationModelFind
        ]
        assert len(build_find_contexts(include_patient_root=True)) == 2

    def test_storage_contexts(self):
        contexts = build_storage_contexts()
        syntaxes = {cx.abstract_syntax for cx in contexts}

        assert len(contexts) == len(STORAGE_SOP_CLASSES) + 1
        assert {CTImageStorage, Verification} <= syntaxes
        ct = next(cx for cx in contexts if cx.abstract_syntax == CTImageStorage)
        assert JPEG2000Lossless in ct.transfer_syntax


class TestOpen:
    """Tests for AssociationClient.open."""

    def test_open_applies_timeouts_and_releases(self, mock_ae, association_config):
        """Timeouts come from the config; exiting the block releases once."""
        assoc = _assoc(accepted=[Verification])
        mock_ae.associate.return_value = assoc

        with AssociationClient().open(association_config, build_verification_contexts()) as opened:
            assert opened is assoc

        assert mock_ae.acse_timeout == association_config.acse_timeout
        assert mock_ae.dimse_timeout == association_config.dimse_timeout
        assert mock_ae.network_timeout == association_config.network_timeout
        assert mock_ae.connection_timeout == association_config.connection_timeout
        args, kwargs = mock_ae.associate.call_args
        assert args == ("127.0.0.1", 4242)
        assert kwargs["ae_title"] == "ORTHANC"
        assert "tls_args" not in kwargs
        assoc.release.assert_called_once()

    def test_release_on_error_inside_block(self, mock_ae, association_config):
        assoc = _assoc(accepted=[Verification])
        mock_ae.associate.return_value = assoc

        with pytest.raises(RuntimeError):
            with AssociationClient().open(association_config, build_verification_contexts()):
                raise RuntimeError("boom")

        assoc.release.assert_called_once()

    def test_on_open_sees_live_association(self, mock_ae, association_config):
        assoc = _assoc(accepted=[Verification])
        mock_ae.associate.return_value = assoc
        seen = []

        with AssociationClient().open(
            association_config, build_verification_contexts(), on_open=seen.append
        ):
            pass

        assert seen == [assoc]

    def test_aborted_association_not_released(self, mock_ae, association_config):
        """Release is a no-op once the association is gone."""
        assoc = _assoc(accepted=[Verification])
        mock_ae.associate.return_value = assoc

        with AssociationClient().open(association_config, build_verification_contexts()):
            assoc.is_established = False

        assoc.release.assert_not_called()


class TestFailures:
    """Association failures map to domain errors."""

    def test_rejected(self, mock_ae, association_config):
        assoc = _assoc(established=False)
        assoc.is_rejected = True
        mock_ae.associate.return_value = assoc

        with pytest.raises(ConnectFailedError, match="rejected"):
            with AssociationClient().open(association_config, build_verification_contexts()):
                pass

    def test_socket_error(self, mock_ae, association_config):
        mock_ae.associate.side_effect = ConnectionRefusedError("refused")

        with pytest.raises(ConnectFailedError, match="refused"):
            with AssociationClient().open(association_config, build_verification_contexts()):
                pass

    def test_tls_handshake_error(self, mock_ae, association_config):
        mock_ae.associate.side_effect = ssl.SSLError("handshake failure")

        with pytest.raises(SecurityFailureError):
            with AssociationClient().open(association_config, build_verification_contexts()):
                pass

    def test_no_accepted_context(self, mock_ae, association_config):
        """An association that cannot carry the operation is released and reported."""
        assoc = _assoc(accepted=[Verification])
        mock_ae.associate.return_value = assoc

        with pytest.raises(IncompatibleConnectionError):
            with AssociationClient().open(association_config, build_find_contexts()):
                pass

        assoc.release.assert_called_once()


class TestTls:
    """Tests for TLS argument construction."""

    def test_no_tls(self):
        assert build_tls_args(None) is None

    def test_missing_certificate_file(self, tmp_path: Path):
        tls = TlsConfig(ca_file=tmp_path / "missing-ca.pem")
        with pytest.raises(SecurityFailureError):
            build_tls_args(tls)

    def test_tls_args_passed_to_associate(self, mock_ae, association_config):
        assoc = _assoc(accepted=[Verification])
        mock_ae.associate.return_value = assoc
        context = ssl.create_default_context()

        with AssociationClient().open(
            association_config, build_verification_contexts(), tls_args=(context, "pacs.test")
        ):
            pass

        assert mock_ae.associate.call_args.kwargs["tls_args"] == (context, "pacs.test")
