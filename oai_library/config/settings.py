"""Settings models for the oaid repository endpoint.

Contract:
- Inputs: Environment variables, YAML files
- Outputs: Validated settings objects
- Side Effects: None (read-only)
"""

import re
from pathlib import Path
from typing import Literal

from pydantic import BaseModel
from pydantic import Field
from pydantic import field_validator
from pydantic_settings import BaseSettings
from pydantic_settings import SettingsConfigDict

DAY_GRANULARITY = "YYYY-MM-DD"
SECOND_GRANULARITY = "YYYY-MM-DDThh:mm:ssZ"

DEFAULT_MODS_FIELD_MAP = {
    "title": "title",
    "name": "creator",
    "abstract": "description",
    "dateIssued": "date",
    "genre": "type",
    "language": "language",
}


class SetSourceConfig(BaseModel):
    """One configured content view exposed to OAI-PMH as a set.

    Attributes:
        set_id: setSpec used in the protocol
        label: Human-readable setName
        display_reference: Opaque pointer to the source view/display
        page_limit: Page size used when indexing this set
        entity_type: Entity type of the set itself
        arguments: Arguments passed to the Set Source on every page
    """

    set_id: str = Field(..., min_length=1, description="setSpec exposed to harvesters")
    label: str = Field(..., description="setName exposed to harvesters")
    display_reference: str = Field(..., min_length=1, description="Source view/display reference")
    page_limit: int = Field(default=50, ge=1, description="Page size used when indexing this set")
    entity_type: str = Field(default="view", description="Entity type of the set")
    arguments: list[str] = Field(default_factory=list, description="Arguments for the Set Source")


class OaiSettings(BaseSettings):
    """Configuration for the oaid daemon and the OAI-PMH endpoint.

    Attributes:
        host: Listen address (default: 127.0.0.1)
        port: Listen port (default: 8430)
        log_level: Logging level (default: info)
        workers: Number of uvicorn workers (default: 1)
        repository_name: Name reported by Identify
        repository_email: Admin e-mail reported by Identify
        repository_path: HTTP path of the OAI-PMH endpoint
        expiration: Resumption token lifetime in seconds

    Example:
        >>> settings = OaiSettings()
        >>> assert settings.repository_path == "/oai/request"
        >>> assert settings.expiration == 3600
    """

    model_config = SettingsConfigDict(
        env_prefix="OAID_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    host: str = "127.0.0.1"
    port: int = 8430
    log_level: str = "info"
    workers: int = 1

    repository_name: str = "OAI-PMH Repository"
    repository_email: str = "admin@example.org"
    repository_path: str = "/oai/request"

    expiration: int = Field(default=3600, gt=0)
    support_sets: bool = True
    granularity: Literal["YYYY-MM-DD", "YYYY-MM-DDThh:mm:ssZ"] = DAY_GRANULARITY
    default_page_size: int = Field(default=100, ge=1)

    metadata_map_plugins: dict[str, str] = Field(default_factory=lambda: {"oai_dc": "dublin_core"})
    mods_field_map: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_MODS_FIELD_MAP))
    sets: list[SetSourceConfig] = Field(default_factory=list)

    database_path: str | None = None
    content_path: str | None = None

    cache_technique: Literal["liberal", "conservative"] = "liberal"
    reconcile_memberships: bool = False

    scheduler_enabled: bool = True
    sync_interval: str = "1h"
    queue_poll_seconds: int = Field(default=5, ge=1)

    @field_validator("repository_path")
    @classmethod
    def normalize_repository_path(cls, v: str) -> str:
        """Normalize to a single leading slash and no trailing slash.

        Args:
            v: Path as configured (e.g. "oai/request/")

        Returns:
            Normalized path (e.g. "/oai/request")
        """
        path = "/" + v.strip("\r\n\t /")
        if path == "/":
            raise ValueError("repository_path cannot be the site root")
        return path

    @field_validator("sync_interval")
    @classmethod
    def validate_sync_interval(cls, v: str) -> str:
        if not re.match(r"^\d+[smhd]$", v):
            raise ValueError(f"Invalid interval format: {v}")
        return v

    @field_validator("database_path", "content_path")
    @classmethod
    def expand_and_resolve_path(cls, v: str | None) -> str | None:
        """Expand ~ and resolve to absolute path."""
        if v is None or v == ":memory:":
            return v
        return str(Path(v).expanduser().resolve())

    def enabled_metadata_prefixes(self) -> list[str]:
        """Metadata prefixes bound to a plugin, in configuration order."""
        return [prefix for prefix, plugin_id in self.metadata_map_plugins.items() if plugin_id]

    def get_set_source(self, set_id: str) -> SetSourceConfig | None:
        for set_source in self.sets:
            if set_source.set_id == set_id:
                return set_source
        return None
