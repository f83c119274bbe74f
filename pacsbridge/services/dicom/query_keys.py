"""Identifier datasets for Study Root C-FIND and C-MOVE requests.

Every level carries a fixed set of return keys, sent with an empty value so the
peer includes them in each match. Caller filters only ever fill in values; they
never remove a return key.
"""

from typing import Any

from pydantic import ValidationError
from pydicom import Dataset

from pacsbridge.exceptions.domain import QueryValidationError
from pacsbridge.services.dicom.models import QueryRetrieveLevel, RetrieveRequest
from pacsbridge.utils.logger import logger

STUDY_RETURN_KEYS: tuple[str, ...] = (
    "StudyInstanceUID",
    "PatientID",
    "PatientName",
    "PatientBirthDate",
    "PatientSex",
    "StudyDate",
    "StudyTime",
    "StudyDescription",
    "AccessionNumber",
    "ModalitiesInStudy",
    "NumberOfStudyRelatedSeries",
    "NumberOfStudyRelatedInstances",
    "ReferringPhysicianName",
)

SERIES_RETURN_KEYS: tuple[str, ...] = (
    "SeriesInstanceUID",
    "SeriesNumber",
    "SeriesDescription",
    "Modality",
    "NumberOfSeriesRelatedInstances",
    "BodyPartExamined",
)

IMAGE_RETURN_KEYS: tuple[str, ...] = (
    "SOPInstanceUID",
    "SOPClassUID",
    "InstanceNumber",
    "Rows",
    "Columns",
)

RETURN_KEYS: dict[QueryRetrieveLevel, tuple[str, ...]] = {
    QueryRetrieveLevel.STUDY: STUDY_RETURN_KEYS,
    QueryRetrieveLevel.SERIES: SERIES_RETURN_KEYS,
    QueryRetrieveLevel.IMAGE: IMAGE_RETURN_KEYS,
}

# Filters a caller may set on a study-level query
STUDY_FILTER_KEYS: frozenset[str] = frozenset(
    {"PatientID", "PatientName", "StudyDate", "ModalitiesInStudy", "AccessionNumber"}
)

# Unique keys identifying the parent entity, required below STUDY level
_REQUIRED_UIDS: dict[QueryRetrieveLevel, tuple[str, ...]] = {
    QueryRetrieveLevel.STUDY: (),
    QueryRetrieveLevel.SERIES: ("StudyInstanceUID",),
    QueryRetrieveLevel.IMAGE: ("StudyInstanceUID", "SeriesInstanceUID"),
}

# US-valued return keys cannot be sent as an empty string
_BINARY_NUMBER_KEYS = frozenset({"Rows", "Columns"})


def _set_ds_fields(ds: Dataset, fields: dict[str, Any]) -> None:
    """Set DICOM dataset fields, using an empty value for None."""
    for attr, value in fields.items():
        if value is None or value == "":
            value = None if attr in _BINARY_NUMBER_KEYS else ""
        setattr(ds, attr, value)


def build_query_keys(level: QueryRetrieveLevel, filters: dict[str, str] | None = None) -> Dataset:
    """Build the C-FIND identifier for a query level.

    Args:
        level: STUDY, SERIES or IMAGE
        filters: Keyword-named filter values. At SERIES level ``StudyInstanceUID``
            is required; at IMAGE level ``SeriesInstanceUID`` as well.

    Returns:
        Identifier dataset with QueryRetrieveLevel, the level's return keys and filters

    Raises:
        QueryValidationError: If the level is unsupported or a parent UID is missing
    """
    filters = filters or {}
    if level not in RETURN_KEYS:
        raise QueryValidationError(
            f"C-FIND at {level.value} level is not supported with Study Root"
        )

    missing = [uid for uid in _REQUIRED_UIDS[level] if not filters.get(uid)]
    if missing:
        raise QueryValidationError(f"{', '.join(missing)} required for {level.value} level query")

    ds = Dataset()
    ds.QueryRetrieveLevel = level.value

    fields: dict[str, Any] = {key: None for key in RETURN_KEYS[level]}
    for uid in _REQUIRED_UIDS[level]:
        fields[uid] = filters[uid]

    if level == QueryRetrieveLevel.STUDY:
        for key, value in filters.items():
            if key in STUDY_FILTER_KEYS:
                if value:
                    fields[key] = value
            else:
                logger.debug(f"Ignoring unsupported study filter {key}")

    _set_ds_fields(ds, fields)
    return ds


def build_retrieve_request(
    level: QueryRetrieveLevel,
    study_instance_uid: str,
    series_instance_uid: str | None = None,
    sop_instance_uid: str | None = None,
) -> RetrieveRequest:
    """Build a validated C-MOVE scope.

    Raises:
        QueryValidationError: If a UID needed for the level is missing
    """
    try:
        return RetrieveRequest(
            level=level,
            study_instance_uid=study_instance_uid,
            series_instance_uid=series_instance_uid,
            sop_instance_uid=sop_instance_uid,
        )
    except ValidationError as e:
        raise QueryValidationError(f"Invalid {level.value} retrieve scope: {e}") from e


def build_move_identifier(request: RetrieveRequest) -> Dataset:
    """Build the C-MOVE identifier for a retrieve scope."""
    ds = Dataset()
    for key, value in request.to_dict().items():
        setattr(ds, key, value)
    return ds
