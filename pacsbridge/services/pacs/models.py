"""Pydantic models describing remote PACS nodes."""

from enum import Enum
from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PacsType(str, Enum):
    """Protocol family spoken by a PACS."""

    LEGACY = "LEGACY"
    DICOMWEB = "DICOMWEB"


class TlsConfig(BaseModel):
    """TLS material for a DICOM association."""

    model_config = ConfigDict(frozen=True)

    ca_file: Path | None = None
    cert_file: Path | None = None
    key_file: Path | None = None
    server_hostname: str | None = None


class _PacsBase(BaseModel):
    """Fields shared by every PACS descriptor."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    host: str
    port: int = Field(ge=1, le=65535)
    ae_title: str = Field(min_length=1, max_length=16)
    is_active: bool = True

    @property
    def label(self) -> str:
        """Short ``AET@host:port`` label for log messages."""
        return f"{self.ae_title}@{self.host}:{self.port}"


class LegacyPacs(_PacsBase):
    """PACS reached over DICOM associations (C-ECHO, C-FIND, C-MOVE).

    Timeouts left as ``None`` fall back to the application settings.
    """

    pacs_type: Literal["LEGACY"] = "LEGACY"
    connection_timeout: float | None = None
    acse_timeout: float | None = None
    dimse_timeout: float | None = None
    network_timeout: float | None = None
    max_pdu: int | None = None
    tls: TlsConfig | None = None


class DicomWebPacs(_PacsBase):
    """PACS reached over DICOMweb (QIDO-RS, WADO-RS, STOW-RS).

    ``query_param_names`` maps normalized filter keywords (e.g. ``PatientID``)
    to the names this PACS expects in the query string (e.g. ``00100020``).
    """

    pacs_type: Literal["DICOMWEB"] = "DICOMWEB"
    qido_rs_url: str | None = None
    wado_rs_url: str | None = None
    stow_rs_url: str | None = None
    timeout: float | None = None
    query_param_names: dict[str, str] = Field(default_factory=dict)

    @field_validator("qido_rs_url", "wado_rs_url", "stow_rs_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip().rstrip("/")

    def query_param_name(self, keyword: str) -> str:
        """Return the PACS-specific query parameter name for a filter keyword."""
        return self.query_param_names.get(keyword, keyword)


PacsConfiguration = Annotated[LegacyPacs | DicomWebPacs, Field(discriminator="pacs_type")]
