"""Ordering of release tags for ``version:`` prefix selectors."""

from __future__ import annotations

import re
from dataclasses import dataclass

_TAG_PATTERN = re.compile(
    r"^v?(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<prerelease>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?$"
)
_PREFIX_PATTERN = re.compile(r"^v?(?P<major>0|[1-9]\d*)(?:\.(?P<minor>0|[1-9]\d*))?$")


@dataclass(frozen=True)
class TagVersion:
    """A release tag such as ``v1.4.2`` or ``2.0.0-rc.1``.

    Build metadata (``+...``) is accepted and ignored for ordering.
    """

    name: str
    major: int
    minor: int
    patch: int
    prerelease: str | None = None

    @classmethod
    def from_tag(cls, name: str) -> TagVersion | None:
        """Parse a tag name, returning None when it is not a semver release tag."""
        match = _TAG_PATTERN.match(name)
        if not match:
            return None
        return cls(
            name=name,
            major=int(match.group("major")),
            minor=int(match.group("minor")),
            patch=int(match.group("patch")),
            prerelease=match.group("prerelease"),
        )

    @property
    def is_stable(self) -> bool:
        return self.prerelease is None

    def matches(self, major: int, minor: int | None = None) -> bool:
        return self.major == major and (minor is None or self.minor == minor)

    def sort_key(self) -> tuple:
        """Key ordering tags by semver precedence.

        A release sorts after its own prereleases. Numeric prerelease fields
        compare as numbers and sort before alphanumeric ones.
        """
        fields: tuple = ()
        if self.prerelease is not None:
            fields = tuple(
                (0, int(part), "") if part.isdigit() else (1, 0, part)
                for part in self.prerelease.split(".")
            )
        return (self.major, self.minor, self.patch, self.is_stable, fields)


def find_tag_for_prefix(prefix: str, tags: list[str]) -> str | None:
    """Pick the highest stable tag matching a numeric version prefix.

    ``"1"`` and ``"v1"`` match any ``1.x.y`` tag, ``"1.2"`` matches ``1.2.x``.
    Prerelease tags and tags that are not semver are never picked.

    Args:
        prefix: Major or major.minor prefix, with or without a leading ``v``
        tags: Tag names to choose from

    Returns:
        The winning tag name as it appears in ``tags``, or None
    """
    match = _PREFIX_PATTERN.match(prefix)
    if not match:
        return None

    major = int(match.group("major"))
    minor = int(match.group("minor")) if match.group("minor") is not None else None

    candidates = [
        version
        for version in (TagVersion.from_tag(tag) for tag in tags)
        if version is not None and version.is_stable and version.matches(major, minor)
    ]
    if not candidates:
        return None
    return max(candidates, key=TagVersion.sort_key).name
