"""Lookup of configured PACS nodes by identifier."""

from collections.abc import Iterable
from typing import Protocol

from pacsbridge.exceptions.domain import PacsConfigurationError, PacsNotFoundError
from pacsbridge.services.pacs.models import DicomWebPacs, LegacyPacs
from pacsbridge.settings import Settings, settings
from pacsbridge.utils.logger import logger


class PacsRegistry(Protocol):
    """Read-only source of PACS descriptors."""

    def get(self, pacs_id: str) -> LegacyPacs | DicomWebPacs:
        """Return the descriptor for ``pacs_id``.

        Raises:
            PacsNotFoundError: If no PACS has that id
            PacsConfigurationError: If the PACS is disabled
        """
        ...

    def list_all(self, active_only: bool = False) -> list[LegacyPacs | DicomWebPacs]:
        """Return all descriptors in configuration order."""
        ...


class InMemoryPacsRegistry:
    """Registry over a fixed list of descriptors."""

    def __init__(self, nodes: Iterable[LegacyPacs | DicomWebPacs] = ()):
        self._nodes: dict[str, LegacyPacs | DicomWebPacs] = {}
        for node in nodes:
            if node.id in self._nodes:
                raise PacsConfigurationError(f"Duplicate PACS id '{node.id}'")
            self._nodes[node.id] = node

    @classmethod
    def from_settings(cls, app_settings: Settings | None = None) -> "InMemoryPacsRegistry":
        """Build a registry from the ``pacs`` nodes of the application settings."""
        app_settings = app_settings or settings
        registry = cls(app_settings.pacs)
        logger.debug(f"Loaded {len(registry._nodes)} PACS configurations")
        return registry

    def get(self, pacs_id: str) -> LegacyPacs | DicomWebPacs:
        node = self._nodes.get(pacs_id)
        if node is None:
            raise PacsNotFoundError(pacs_id)
        if not node.is_active:
            raise PacsConfigurationError(f"PACS '{pacs_id}' is disabled")
        return node

    def list_all(self, active_only: bool = False) -> list[LegacyPacs | DicomWebPacs]:
        return [node for node in self._nodes.values() if node.is_active or not active_only]
