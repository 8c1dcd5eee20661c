# extpack/build/models.py
from __future__ import annotations
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = [
    "PackageManifest", "ProjectManifest", "LocaleRecord",
    "ExtensionProperties", "LocaleMetadata", "BuildResult",
]



class PackageManifest(BaseModel):
    """The extension's package.json. Only `name` is required for packaging."""
    model_config = ConfigDict(extra="allow")

    name: str = Field(min_length=1)
    version: str | None = None
    description: str | None = None



class ProjectManifest(BaseModel):
    """Compiled main source plus the ordered set of files that ship with it."""
    model_config = ConfigDict(extra="forbid")

    code: str
    files: list[str] = Field(default_factory=list)

    def withFiles(self, files: list[str]) -> ProjectManifest:
        return self.model_copy(update={"files": list(dict.fromkeys(files))})



class LocaleRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    locale: str
    strings: dict[str, Any] = Field(default_factory=dict)



class ExtensionProperties(BaseModel):
    """What an extension declares about itself, as reported by the sandbox."""
    model_config = ConfigDict(extra="ignore")

    title: str | None = None
    description: str | None = None
    preview: Any = None
    params: dict[str, dict[str, Any]] = Field(default_factory=dict)

    @field_validator("params", mode="before")
    @classmethod
    def _nullParams(cls, value: Any) -> Any:
        return {} if value is None else value



class LocaleMetadata(BaseModel):
    """
    Extension properties with every translatable leaf keyed by locale:
        {"title": {"en": "Hi", "pt_BR": "Oi"}, "params": {"name": {"description": {...}, ...}}}
    Used both for a single locale projection and for the merged result.
    """
    title: dict[str, Any] = Field(default_factory=dict)
    description: dict[str, Any] = Field(default_factory=dict)
    preview: dict[str, Any] = Field(default_factory=dict)
    params: dict[str, dict[str, Any]] = Field(default_factory=dict)



class BuildResult(BaseModel):
    target: Path
    files: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
