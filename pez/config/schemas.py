"""Pydantic schemas for pez configuration files.

This module defines the data models for:
- pez.toml (declared plugin configuration)
- pez-lock.toml (lockfile recording what is installed)
"""

import re
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

# =============================================================================
# Common Types
# =============================================================================

AssetDir = Literal["functions", "completions", "conf.d", "themes"]
SourceKind = Literal["repo", "url", "path"]
SelectorField = Literal["version", "branch", "tag", "commit"]

ASSET_DIRS: tuple[AssetDir, ...] = ("functions", "completions", "conf.d", "themes")
SOURCE_FIELDS: tuple[SourceKind, ...] = ("repo", "url", "path")
SELECTOR_FIELDS: tuple[SelectorField, ...] = ("version", "branch", "tag", "commit")

LOCKFILE_VERSION = 1
LOCAL_COMMIT_SHA = "local"

_REPO_PATTERN = re.compile(r"^(?:[A-Za-z0-9.-]+/)?[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")
_PATH_PATTERN = re.compile(r"^(?:/|~(?:/|$))")


# =============================================================================
# Plugin Spec (within pez.toml)
# =============================================================================


class PluginSpec(BaseModel):
    """A declared plugin entry.

    Exactly one of ``repo``, ``url`` or ``path`` names the source. At most one of
    ``version``, ``branch``, ``tag`` or ``commit`` pins it; ``path`` sources take none.
    """

    model_config = {"extra": "forbid"}

    repo: str | None = None
    url: str | None = None
    path: str | None = None
    name: str | None = None
    version: str | None = None
    branch: str | None = None
    tag: str | None = None
    commit: str | None = None

    @field_validator("repo")
    @classmethod
    def validate_repo(cls, v: str | None) -> str | None:
        """Validate owner/repo or host/owner/repo shorthand."""
        if v is not None and not _REPO_PATTERN.match(v):
            raise ValueError(f"repo must be 'owner/repo' or 'host/owner/repo', got '{v}'")
        return v

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str | None) -> str | None:
        """Validate that local paths are absolute or home-relative."""
        if v is not None and not _PATH_PATTERN.match(v):
            raise ValueError(f"path must be absolute or start with '~', got '{v}'")
        return v

    @field_validator("url", "name", "version", "branch", "tag", "commit")
    @classmethod
    def validate_not_empty(cls, v: str | None) -> str | None:
        """Reject empty strings for optional text fields."""
        if v is not None and not v.strip():
            raise ValueError("value cannot be empty")
        return v

    @model_validator(mode="after")
    def validate_spec(self) -> "PluginSpec":
        """Validate source and selector cardinality."""
        sources = [f for f in SOURCE_FIELDS if getattr(self, f) is not None]
        if len(sources) != 1:
            raise ValueError("plugin entry must set exactly one of 'repo', 'url' or 'path'")

        selectors = [f for f in SELECTOR_FIELDS if getattr(self, f) is not None]
        if len(selectors) > 1:
            raise ValueError(
                f"plugin entry may set at most one of 'version', 'branch', 'tag' or 'commit' "
                f"(got {', '.join(selectors)})"
            )
        if self.path is not None and selectors:
            raise ValueError(f"'path' entries cannot set '{selectors[0]}'")
        return self

    @property
    def source_kind(self) -> SourceKind:
        """Which source field this entry uses."""
        for field in SOURCE_FIELDS:
            if getattr(self, field) is not None:
                return field
        raise AssertionError("validated spec has no source")

    @property
    def source_value(self) -> str:
        """The raw value of the source field."""
        value = getattr(self, self.source_kind)
        assert value is not None
        return value

    @property
    def selector_field(self) -> tuple[SelectorField, str] | None:
        """The declared selector as a (field, value) pair, if any."""
        for field in SELECTOR_FIELDS:
            value = getattr(self, field)
            if value is not None:
                return field, value
        return None


# =============================================================================
# Declared Configuration (pez.toml)
# =============================================================================


class PezConfig(BaseModel):
    """Declared configuration (pez.toml) schema."""

    model_config = {"extra": "forbid"}

    plugins: list[PluginSpec] = Field(default_factory=list)


# =============================================================================
# Lock File (pez-lock.toml)
# =============================================================================


class PluginFile(BaseModel):
    """A file copied into the fish configuration tree."""

    dir: AssetDir
    name: str

    @property
    def relative_path(self) -> str:
        return f"{self.dir}/{self.name}"


class LockedPlugin(BaseModel):
    """A locked plugin entry in the lock file."""

    name: str
    repo: str
    source: str
    commit_sha: str
    files: list[PluginFile] = Field(default_factory=list)


class LockFile(BaseModel):
    """Lock file (pez-lock.toml) schema."""

    version: int = LOCKFILE_VERSION
    plugins: list[LockedPlugin] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_sources(self) -> "LockFile":
        """Each source may be recorded at most once."""
        seen: set[str] = set()
        for plugin in self.plugins:
            if plugin.source in seen:
                raise ValueError(f"duplicate lock entry for source '{plugin.source}'")
            seen.add(plugin.source)
        return self
