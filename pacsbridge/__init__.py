"""PACS Bridge: query and retrieve orchestration for legacy DICOM and DICOMweb PACS."""

__version__ = "0.1.0"
