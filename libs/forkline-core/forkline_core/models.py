"""Core data models for Forkline."""

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

TargetKind = Literal["page", "component"]


class ForklineConfig(BaseModel):
    """Project configuration (in forkline.yaml)."""

    # Accept both alias keys (e.g., "poll-interval") and field names ("poll_interval")
    model_config = ConfigDict(populate_by_name=True)

    port: int = Field(default=3030, description="Watch server port")
    host: str = Field(default="localhost", description="Watch server bind host")
    poll_interval: float = Field(
        default=0.5, gt=0, description="Seconds between filesystem scans", alias="poll-interval"
    )
    lazy: bool = Field(default=False, description="Render versions through dynamic import()")
    runtime_package: str = Field(
        default="forkline",
        description="Module that exports ForkedComponent in the app",
        alias="runtime-package",
    )
    ignore_dirs: list[str] = Field(
        default_factory=lambda: ["node_modules"], alias="ignore-dirs"
    )


class VersionInfo(BaseModel):
    """Version key with its display label."""

    key: str
    label: str | None = None


class ComponentInfo(BaseModel):
    """Broadcast representation of one target."""

    model_config = ConfigDict(populate_by_name=True)

    target_id: str = Field(alias="targetId")
    name: str
    kind: TargetKind | None = None
    path: str = ""
    versions: list[VersionInfo] = Field(default_factory=list)

    @field_validator("versions", mode="before")
    @classmethod
    def _accept_bare_keys(cls, value):
        # Older servers broadcast plain key strings instead of {key, label}.
        if isinstance(value, list):
            return [{"key": v} if isinstance(v, str) else v for v in value]
        return value

    @property
    def version_keys(self) -> list[str]:
        return [v.key for v in self.versions]

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class VersionFile:
    """One version file found in a target directory."""

    key: str
    path: Path

    @property
    def extension(self) -> str:
        return self.path.suffix

    @property
    def file_version(self) -> str:
        return self.key[1:]
