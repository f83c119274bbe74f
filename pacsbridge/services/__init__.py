"""Service layer: DICOM, DICOMweb, PACS routing and retrieval tracking."""
