"""Pydantic models for DICOM client operations."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from pacsbridge.services.pacs.models import LegacyPacs, TlsConfig
from pacsbridge.services.retrieval.models import RetrievalStatus


class QueryRetrieveLevel(str, Enum):
    """DICOM Query/Retrieve levels."""

    PATIENT = "PATIENT"
    STUDY = "STUDY"
    SERIES = "SERIES"
    IMAGE = "IMAGE"


class StudyQuery(BaseModel):
    """Caller-supplied filters for a study-level C-FIND."""

    patient_id: str | None = None
    patient_name: str | None = None
    study_date: str | None = None
    modality: str | None = None
    accession_number: str | None = None

    @classmethod
    def from_filters(cls, filters: dict[str, str]) -> Self:
        """Build a query from keyword-named filters (``PatientID``, ``StudyDate``...)."""
        return cls(
            patient_id=filters.get("PatientID"),
            patient_name=filters.get("PatientName"),
            study_date=filters.get("StudyDate"),
            modality=filters.get("ModalitiesInStudy"),
            accession_number=filters.get("AccessionNumber"),
        )

    def to_filters(self) -> dict[str, str]:
        """Keyword-named filters with empty values dropped."""
        data = {
            "PatientID": self.patient_id,
            "PatientName": self.patient_name,
            "StudyDate": self.study_date,
            "ModalitiesInStudy": self.modality,
            "AccessionNumber": self.accession_number,
        }
        return {key: value for key, value in data.items() if value}


class RetrieveRequest(BaseModel):
    """Scope of a C-MOVE request."""

    level: QueryRetrieveLevel
    study_instance_uid: str = Field(min_length=1)
    series_instance_uid: str | None = None
    sop_instance_uid: str | None = None

    @model_validator(mode="after")
    def _check_scope(self) -> Self:
        if self.level == QueryRetrieveLevel.PATIENT:
            raise ValueError("C-MOVE at PATIENT level is not supported with Study Root")
        if self.level in (QueryRetrieveLevel.SERIES, QueryRetrieveLevel.IMAGE):
            if not self.series_instance_uid:
                raise ValueError(f"series_instance_uid is required at {self.level.value} level")
        if self.level == QueryRetrieveLevel.IMAGE and not self.sop_instance_uid:
            raise ValueError("sop_instance_uid is required at IMAGE level")
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for dataset creation."""
        data: dict[str, Any] = {
            "QueryRetrieveLevel": self.level.value,
            "StudyInstanceUID": self.study_instance_uid,
        }
        if self.level in (QueryRetrieveLevel.SERIES, QueryRetrieveLevel.IMAGE):
            data["SeriesInstanceUID"] = self.series_instance_uid
        if self.level == QueryRetrieveLevel.IMAGE:
            data["SOPInstanceUID"] = self.sop_instance_uid
        return data


class EchoResult(BaseModel):
    """Outcome of one connectivity check."""

    model_config = ConfigDict(frozen=True)

    success: bool
    response_time_ms: int = 0
    message: str
    ae_title: str | None = None
    host: str | None = None
    port: int | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class MoveResult(BaseModel):
    """Outcome of a C-MOVE operation."""

    retrieval_id: str
    success: bool = False
    status: RetrievalStatus
    completed_suboperations: int = 0
    failed_suboperations: int = 0
    warning_suboperations: int = 0
    error_message: str | None = None


class AssociationConfig(BaseModel):
    """Resolved configuration for one DICOM association."""

    calling_aet: str
    called_aet: str
    peer_host: str
    peer_port: int
    max_pdu: int = 16384
    connection_timeout: float | None = 10.0
    acse_timeout: float = 30.0
    dimse_timeout: float = 30.0
    network_timeout: float = 60.0
    tls: TlsConfig | None = None

    @classmethod
    def for_pacs(
        cls,
        pacs: LegacyPacs,
        calling_aet: str,
        max_pdu: int = 16384,
        connection_timeout: float = 10.0,
        acse_timeout: float = 30.0,
        dimse_timeout: float = 30.0,
        network_timeout: float = 60.0,
    ) -> Self:
        """Resolve a PACS descriptor against defaults; the descriptor wins."""
        return cls(
            calling_aet=calling_aet,
            called_aet=pacs.ae_title,
            peer_host=pacs.host,
            peer_port=pacs.port,
            max_pdu=pacs.max_pdu if pacs.max_pdu is not None else max_pdu,
            connection_timeout=(
                pacs.connection_timeout
                if pacs.connection_timeout is not None
                else connection_timeout
            ),
            acse_timeout=pacs.acse_timeout if pacs.acse_timeout is not None else acse_timeout,
            dimse_timeout=pacs.dimse_timeout if pacs.dimse_timeout is not None else dimse_timeout,
            network_timeout=(
                pacs.network_timeout if pacs.network_timeout is not None else network_timeout
            ),
            tls=pacs.tls,
        )

    @property
    def label(self) -> str:
        return f"{self.called_aet}@{self.peer_host}:{self.peer_port}"
