"""DICOMweb (QIDO-RS / WADO-RS) access."""

from pacsbridge.services.dicomweb.client import DicomWebClient

__all__ = ["DicomWebClient"]
