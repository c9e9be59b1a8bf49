"""Plugin identifier parsing.

Turns command-line arguments and declared configuration entries into a
canonical source plus a selector. Recognized command-line forms:

- ``owner/repo`` and ``owner/repo@<ref>`` (github.com)
- ``host/owner/repo`` and ``host/owner/repo@<ref>``
- ``https://host/owner/repo`` (a trailing ``@...`` stays part of the URL)
- ``/abs/path``, ``~/path``, ``./relative`` or ``../relative``

where ``<ref>`` is ``latest``, ``version:<v>``, ``branch:<b>``, ``tag:<t>``
or ``commit:<sha>``.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Literal
from urllib.parse import urlparse

from pydantic import ValidationError

from pez.config.schemas import PluginSpec
from pez.errors import MalformedTargetError

SelectorKind = Literal["latest", "version", "branch", "tag", "commit"]
Origin = Literal["cli", "config"]

DEFAULT_HOST = "github.com"

_REF_PATTERN = re.compile(r"^(?P<kind>version|branch|tag|commit):(?P<value>.+)$")


@dataclass(frozen=True)
class Selector:
    """A rule for choosing which commit of a repository to install."""

    kind: SelectorKind
    value: str | None = None

    def __str__(self) -> str:
        if self.kind == "latest":
            return "latest"
        return f"{self.kind}:{self.value}"


LATEST = Selector("latest")


@dataclass(frozen=True)
class CloneIdentity:
    """Where a remote repository lives, split into path components."""

    host: str
    owner: str
    repo: str

    @property
    def repo_id(self) -> str:
        """Display id: ``owner/repo`` on github.com, ``host/owner/repo`` elsewhere."""
        if self.host == DEFAULT_HOST:
            return f"{self.owner}/{self.repo}"
        return f"{self.host}/{self.owner}/{self.repo}"

    def clone_dir(self, data_dir: Path) -> Path:
        return data_dir.joinpath(self.host, *self.owner.split("/"), self.repo)


@dataclass(frozen=True)
class InstallTarget:
    """A plugin spec plus where it came from."""

    spec: PluginSpec
    origin: Origin

    @property
    def selector(self) -> Selector:
        return selector_of(self.spec)


@dataclass(frozen=True)
class ResolvedInstallTarget:
    """An install target with its canonical identity computed."""

    target: InstallTarget
    source: str
    name: str
    repo_id: str
    identity: CloneIdentity | None = None
    local_path: Path | None = None

    @property
    def is_local(self) -> bool:
        return self.local_path is not None

    @property
    def spec(self) -> PluginSpec:
        return self.target.spec

    @property
    def selector(self) -> Selector:
        return self.target.selector

    @property
    def from_cli(self) -> bool:
        return self.target.origin == "cli"

    def clone_dir(self, data_dir: Path) -> Path | None:
        """Directory holding the clone, or None for local sources."""
        if self.identity is None:
            return None
        return self.identity.clone_dir(data_dir)


# =============================================================================
# Selectors
# =============================================================================


def parse_selector(text: str) -> Selector:
    """Parse an inline ``@ref`` suffix.

    Args:
        text: Text after the ``@``

    Returns:
        The parsed selector

    Raises:
        MalformedTargetError: If the suffix is empty or not a known form
    """
    if not text:
        raise MalformedTargetError("Empty ref after '@'", target=text)
    if text == "latest":
        return LATEST

    match = _REF_PATTERN.match(text)
    if not match:
        raise MalformedTargetError(
            f"Invalid ref '{text}': expected latest, version:<v>, branch:<b>, tag:<t> or commit:<sha>",
            target=text,
        )
    return Selector(match.group("kind"), match.group("value"))  # type: ignore[arg-type]


def selector_of(spec: PluginSpec) -> Selector:
    """Return the selector a declared spec asks for (Latest when none is set)."""
    declared = spec.selector_field
    if declared is None:
        return LATEST
    field, value = declared
    if field == "version" and value == "latest":
        return LATEST
    return Selector(field, value)


# =============================================================================
# Command-line targets
# =============================================================================


def is_local_target(raw: str) -> bool:
    return raw in (".", "..", "~") or raw.startswith(("/", "~/", "./", "../"))


def parse_target(raw: str, cwd: Path | None = None) -> PluginSpec:
    """Parse a command-line plugin identifier into a plugin spec.

    Relative and home-relative paths are made absolute before they are recorded.

    Args:
        raw: Identifier as typed by the user
        cwd: Base directory for relative paths (defaults to the process cwd)

    Returns:
        A validated plugin spec

    Raises:
        MalformedTargetError: If the identifier cannot be parsed
    """
    raw = raw.strip()
    if not raw:
        raise MalformedTargetError("Empty plugin identifier", target=raw)

    if is_local_target(raw):
        expanded = Path(os.path.expanduser(raw))
        if not expanded.is_absolute():
            expanded = (cwd or Path.cwd()) / expanded
        return _build_spec(raw, path=os.path.normpath(expanded))

    if "://" in raw:
        return _build_spec(raw, url=raw)

    base, sep, ref = raw.partition("@")
    fields: dict[str, str] = {"repo": base}
    if sep:
        selector = parse_selector(ref)
        if selector.kind != "latest":
            assert selector.value is not None
            fields[selector.kind] = selector.value
    return _build_spec(raw, **fields)


def _build_spec(raw: str, **fields: str) -> PluginSpec:
    try:
        return PluginSpec(**fields)
    except ValidationError as e:
        raise MalformedTargetError(f"Invalid plugin identifier '{raw}': {e}", target=raw) from e


# =============================================================================
# Canonical identity
# =============================================================================


def normalize_url(url: str) -> str:
    """Promote bare ``host/...`` strings to https URLs."""
    if "://" in url:
        return url
    return f"https://{url}"


def identity_from_url(url: str) -> CloneIdentity:
    """Split a repository URL into host, owner and repo.

    Raises:
        MalformedTargetError: If the URL has no host or fewer than two path segments
    """
    parsed = urlparse(normalize_url(url))
    segments = [s for s in parsed.path.split("/") if s]
    if not parsed.hostname or len(segments) < 2:
        raise MalformedTargetError(f"Cannot derive owner/repo from URL '{url}'", target=url)
    repo = segments[-1].removesuffix(".git")
    return CloneIdentity(host=parsed.hostname, owner="/".join(segments[:-1]), repo=repo)


def identity_from_repo(repo: str) -> CloneIdentity:
    """Split ``owner/repo`` or ``host/owner/repo`` shorthand."""
    segments = repo.split("/")
    if len(segments) == 2:
        return CloneIdentity(host=DEFAULT_HOST, owner=segments[0], repo=segments[1])
    return CloneIdentity(host=segments[0], owner="/".join(segments[1:-1]), repo=segments[-1])


def expand_path(path: str) -> Path:
    return Path(os.path.normpath(os.path.expanduser(path)))


def canonical_source(spec: PluginSpec) -> str:
    """The source string recorded in the lockfile for a spec."""
    kind = spec.source_kind
    value = spec.source_value
    if kind == "path":
        return str(expand_path(value))
    if kind == "url":
        return normalize_url(value)
    identity = identity_from_repo(value)
    return f"https://{identity.host}/{identity.owner}/{identity.repo}"


def identity_key(spec: PluginSpec) -> str:
    """Key under which two specs name the same repository.

    Remote sources compare by host, owner and repo, so a ``.git`` suffix, a
    trailing slash or the scheme do not make a different plugin. Paths compare
    as expanded absolute paths.
    """
    if spec.source_kind == "path":
        return canonical_source(spec)
    try:
        if spec.source_kind == "url":
            identity = identity_from_url(spec.source_value)
        else:
            identity = identity_from_repo(spec.source_value)
    except MalformedTargetError:
        return canonical_source(spec)
    return f"{identity.host.lower()}/{identity.owner}/{identity.repo}"


def resolve_target(target: InstallTarget) -> ResolvedInstallTarget:
    """Compute the canonical identity of an install target.

    Raises:
        MalformedTargetError: If a URL source has no owner/repo path
    """
    spec = target.spec
    source = canonical_source(spec)

    if spec.source_kind == "path":
        local_path = expand_path(spec.source_value)
        return ResolvedInstallTarget(
            target=target,
            source=source,
            name=spec.name or local_path.name,
            repo_id=source,
            local_path=local_path,
        )

    if spec.source_kind == "url":
        identity = identity_from_url(spec.source_value)
    else:
        identity = identity_from_repo(spec.source_value)

    return ResolvedInstallTarget(
        target=target,
        source=source,
        name=spec.name or identity.repo,
        repo_id=identity.repo_id,
        identity=identity,
    )
