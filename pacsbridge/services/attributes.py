"""Protocol-agnostic attribute model for query results.

Both C-FIND identifiers (pydicom Datasets) and QIDO-RS responses (DICOM JSON,
PS3.18 Annex F) are projected onto the same set of keywords, with every value
rendered as a plain string. Multi-valued elements are joined with a backslash,
as they are on the wire.
"""

from collections.abc import Iterator
from typing import Any

from pydantic import ConfigDict, RootModel
from pydicom import Dataset
from pydicom.datadict import dictionary_VR, keyword_for_tag, tag_for_keyword
from pydicom.multival import MultiValue
from pydicom.valuerep import PersonName

# Keywords exposed by the attribute model, patient level first
NORMALIZED_KEYWORDS: tuple[str, ...] = (
    # Patient level
    "PatientID",
    "PatientName",
    "PatientBirthDate",
    "PatientSex",
    # Study level
    "StudyInstanceUID",
    "StudyDate",
    "StudyTime",
    "StudyDescription",
    "AccessionNumber",
    "ModalitiesInStudy",
    "ReferringPhysicianName",
    "NumberOfStudyRelatedSeries",
    "NumberOfStudyRelatedInstances",
    # Series level
    "SeriesInstanceUID",
    "SeriesNumber",
    "SeriesDescription",
    "Modality",
    "BodyPartExamined",
    "NumberOfSeriesRelatedInstances",
    # Instance level
    "SOPInstanceUID",
    "SOPClassUID",
    "InstanceNumber",
    "Rows",
    "Columns",
)

_NORMALIZED_SET = frozenset(NORMALIZED_KEYWORDS)

# VRs whose DICOM JSON "Value" entries are numbers rather than strings
_NUMERIC_VRS = frozenset({"IS", "DS", "US", "UL", "SS", "SL", "FL", "FD"})


def _scalar_to_str(value: Any) -> str:
    """Render one element value as the string used by the model."""
    if isinstance(value, PersonName):
        return str(value)
    if isinstance(value, dict):
        # DICOM JSON person name
        return str(value.get("Alphabetic", ""))
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _normalize_value(value: Any) -> str | None:
    """Render a (possibly multi-valued) element value, or None if empty."""
    if value is None:
        return None
    if isinstance(value, (list, tuple, MultiValue)):
        parts = [_scalar_to_str(v) for v in value if v is not None]
        rendered = "\\".join(parts)
    else:
        rendered = _scalar_to_str(value)
    return rendered or None


class DicomAttributes(RootModel[dict[str, str]]):
    """Normalized DICOM attributes keyed by keyword (e.g. ``StudyInstanceUID``).

    Behaves as a read-only mapping. Missing or empty elements are absent rather
    than present with an empty value.
    """

    model_config = ConfigDict(frozen=True)

    def __getitem__(self, keyword: str) -> str:
        return self.root[keyword]

    def __iter__(self) -> Iterator[str]:  # type: ignore[override]
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def __contains__(self, keyword: object) -> bool:
        return keyword in self.root

    def get(self, keyword: str, default: str | None = None) -> str | None:
        return self.root.get(keyword, default)

    def keys(self):  # noqa: ANN201
        return self.root.keys()

    def items(self):  # noqa: ANN201
        return self.root.items()

    @property
    def study_instance_uid(self) -> str | None:
        return self.root.get("StudyInstanceUID")

    @property
    def series_instance_uid(self) -> str | None:
        return self.root.get("SeriesInstanceUID")

    @property
    def sop_instance_uid(self) -> str | None:
        return self.root.get("SOPInstanceUID")

    @property
    def patient_id(self) -> str | None:
        return self.root.get("PatientID")

    @classmethod
    def from_dataset(cls, ds: Dataset) -> "DicomAttributes":
        """Build attributes from a C-FIND response identifier.

        Args:
            ds: pydicom Dataset returned by the peer

        Returns:
            Normalized attributes
        """
        values: dict[str, str] = {}
        for keyword in NORMALIZED_KEYWORDS:
            rendered = _normalize_value(ds.get(keyword))
            if rendered is not None:
                values[keyword] = rendered
        return cls(values)

    @classmethod
    def from_dicom_json(cls, obj: dict[str, Any]) -> "DicomAttributes":
        """Build attributes from one DICOM JSON object of a QIDO-RS response.

        Args:
            obj: DICOM JSON dict keyed by 8-digit hex tag

        Returns:
            Normalized attributes
        """
        values: dict[str, str] = {}
        for tag, entry in obj.items():
            try:
                keyword = keyword_for_tag(int(tag, 16))
            except ValueError:
                continue
            if keyword not in _NORMALIZED_SET or not isinstance(entry, dict):
                continue
            rendered = _normalize_value(entry.get("Value"))
            if rendered is not None:
                values[keyword] = rendered
        # Keep the canonical keyword order regardless of response order
        return cls({k: values[k] for k in NORMALIZED_KEYWORDS if k in values})

    def to_dicom_json(self) -> dict[str, Any]:
        """Convert back to DICOM JSON for callers that speak DICOMweb.

        Returns:
            DICOM JSON dict keyed by tag
        """
        result: dict[str, Any] = {}
        for keyword, value in self.root.items():
            tag = tag_for_keyword(keyword)
            if tag is None:
                continue
            vr = dictionary_VR(tag)
            parts = value.split("\\")
            if vr == "PN":
                json_values: list[Any] = [{"Alphabetic": p} for p in parts]
            elif vr in _NUMERIC_VRS:
                json_values = [float(p) if vr in {"DS", "FL", "FD"} else int(p) for p in parts]
            else:
                json_values = parts
            result[f"{tag:08X}"] = {"vr": vr, "Value": json_values}
        return result
