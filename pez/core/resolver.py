"""Selector resolution against a repository's refs."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from pez.backend.base import RefSet
from pez.core.target import Selector
from pez.errors import RefNotFoundError
from pez.utils.version import find_tag_for_prefix

logger = logging.getLogger(__name__)

RefKind = Literal["latest", "branch", "tag", "commit"]


@dataclass(frozen=True)
class Selection:
    """The commit a selector resolved to and the kind of ref that produced it."""

    commit_sha: str
    ref_kind: RefKind
    ref_name: str | None = None


def resolve_selector(
    selector: Selector,
    refs: RefSet,
    default_head: Callable[[], str],
) -> Selection:
    """Pick one commit for a selector.

    ``version`` selectors try an exact branch name first, then an exact tag name,
    so a branch wins over an identically named tag. A numeric prefix such as
    ``v1`` or ``1.2`` then falls back to the highest matching stable semver tag.
    ``latest`` only ever asks for the default head.

    Args:
        selector: Selector to resolve
        refs: Branches and tags of the clone
        default_head: Returns the remote default branch tip

    Returns:
        The resolved selection

    Raises:
        RefNotFoundError: If no branch or tag matches
    """
    kind = selector.kind
    value = selector.value

    if kind == "latest":
        return Selection(commit_sha=default_head(), ref_kind="latest")

    assert value is not None

    if kind == "commit":
        return Selection(commit_sha=value, ref_kind="commit", ref_name=value)

    if kind == "branch":
        if value not in refs.branches:
            raise RefNotFoundError(f"Branch '{value}' not found", ref=value)
        return Selection(commit_sha=refs.branches[value], ref_kind="branch", ref_name=value)

    if kind == "tag":
        if value not in refs.tags:
            raise RefNotFoundError(f"Tag '{value}' not found", ref=value)
        return Selection(commit_sha=refs.tags[value], ref_kind="tag", ref_name=value)

    # version
    if value in refs.branches:
        return Selection(commit_sha=refs.branches[value], ref_kind="branch", ref_name=value)
    if value in refs.tags:
        return Selection(commit_sha=refs.tags[value], ref_kind="tag", ref_name=value)

    tag = find_tag_for_prefix(value, list(refs.tags))
    if tag is not None:
        logger.debug("Version '%s' matched tag %s", value, tag)
        return Selection(commit_sha=refs.tags[tag], ref_kind="tag", ref_name=tag)

    raise RefNotFoundError(f"Version '{value}' matches no branch or tag", ref=value)
