"""
Application settings: local AE identity, association defaults and PACS nodes.

Values come from ``settings.toml`` (then ``settings.custom.toml``) in the working
directory, overridden by ``PACSBRIDGE_*`` environment variables.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

from pacsbridge.services.pacs.models import PacsConfiguration


class Settings(BaseSettings):
    """PACS Bridge settings.

    Association timeouts here are defaults; a ``LegacyPacs`` node may override
    each of them.
    """

    model_config = SettingsConfigDict(
        toml_file=["settings.toml", "settings.custom.toml"],
        env_prefix="PACSBRIDGE_",
        extra="ignore",
    )

    # Local DICOM identity
    calling_aet: str = "PACSBRIDGE"
    max_pdu: int = 16384

    # Association timeouts (seconds), used when a PACS node does not override them
    connection_timeout: float = 10.0
    acse_timeout: float = 30.0
    dimse_timeout: float = 30.0
    network_timeout: float = 60.0

    # DICOMweb settings
    dicomweb_timeout: float = 30.0

    # Storage receiver (C-STORE SCP accepting C-MOVE sub-operations)
    receiver_enabled: bool = False
    receiver_host: str = "0.0.0.0"
    receiver_port: int = 11112

    # Finished retrieval jobs are dropped after this many minutes
    retrieval_retention_minutes: float = 60.0

    # Configured PACS nodes
    pacs: list[PacsConfiguration] = Field(default_factory=list)

    # Logging settings
    log_level: str = "INFO"
    library_log_level: str = "WARNING"  # pynetdicom, httpx
    log_to_file: bool = False
    log_dir: str | None = None  # If None, will use ~/pacsbridge/logs
    log_rotation: str = "20 MB"
    log_retention: str = "1 week"
    log_format: str | None = None  # Use default if None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Init arguments win over environment variables, which win over TOML files."""
        return init_settings, env_settings, TomlConfigSettingsSource(settings_cls)

    def get_log_dir(self) -> Path:
        """Directory for the rotating log file (``log_dir`` or ~/pacsbridge/logs)."""
        if self.log_dir:
            return Path(self.log_dir)
        return Path.home() / "pacsbridge" / "logs"


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings, loaded once."""
    return Settings()


settings = get_settings()
