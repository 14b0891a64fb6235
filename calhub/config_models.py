from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

from calhub import CONFIG_PATH, PROJECT_ROOT
from calhub.models import CalendarSource, SourceStatus, SourceType

logger = logging.getLogger(__name__)


# =============================================================================
# CalhubConfig (args/calhub.yaml)
# =============================================================================

class FetchSettings(BaseModel):
    model_config = ConfigDict(extra="allow")
    max_concurrent_fetches: int = Field(default=5, ge=1)
    fetch_timeout: float = Field(default=30.0, gt=0)  # seconds per attempt
    retry_attempts: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=1.0, ge=0)  # backoff base, seconds


class CacheSettings(BaseModel):
    model_config = ConfigDict(extra="allow")
    memory_ttl: float = Field(default=3600, gt=0)
    persistent_ttl: float = Field(default=86400, gt=0)
    max_memory_events: int = Field(default=1000, ge=1)
    cleanup_interval: float = Field(default=300, gt=0)
    db_path: str = Field(default="data/calhub_cache.db")

    def resolved_db_path(self) -> Path:
        path = Path(self.db_path)
        if not path.is_absolute():
            path = PROJECT_ROOT / path
        return path


class SourceSettings(BaseModel):
    model_config = ConfigDict(extra="allow")
    id: str
    name: str
    type: SourceType
    url: str
    enabled: bool = Field(default=True)
    refresh_interval: Optional[int] = Field(default=None, ge=1)

    def to_source(self) -> CalendarSource:
        return CalendarSource(
            id=self.id,
            name=self.name,
            type=self.type,
            url=self.url,
            enabled=self.enabled,
            status=SourceStatus.ACTIVE,
            refresh_interval=self.refresh_interval,
        )


class CalhubConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    sources: list[SourceSettings] = Field(default_factory=list)


def load_config(path: Path | None = None) -> CalhubConfig:
    yaml_path = path or CONFIG_PATH

    try:
        if yaml_path.exists():
            with open(yaml_path) as f:
                raw = yaml.safe_load(f) or {}
        else:
            raw = {}

        return CalhubConfig.model_validate(raw)
    except Exception as e:
        logger.warning(f"Config validation failed for {yaml_path}: {e}, using defaults")
        return CalhubConfig()
