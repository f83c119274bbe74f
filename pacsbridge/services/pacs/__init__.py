"""PACS descriptors, configuration lookup and protocol routing.

The router lives in ``pacsbridge.services.pacs.router``; it is not re-exported
here because the settings module imports the descriptor models from this package.
"""

from pacsbridge.services.pacs.models import (
    DicomWebPacs,
    LegacyPacs,
    PacsConfiguration,
    PacsType,
    TlsConfig,
)

__all__ = [
    "DicomWebPacs",
    "LegacyPacs",
    "PacsConfiguration",
    "PacsType",
    "TlsConfig",
]
