"""Tests for pez.core.resolver module."""

import pytest

from pez.backend.base import RefSet
from pez.core.resolver import Selection, resolve_selector
from pez.core.target import LATEST, Selector
from pez.errors import RefNotFoundError


def default_head() -> str:
    return "head-sha"


def no_default_head() -> str:
    raise AssertionError("default head must not be consulted")


class TestResolveSelector:
    """Tests for resolve_selector()."""

    def test_latest_uses_default_head(self):
        """Latest resolves to the default branch tip."""
        refs = RefSet(branches={"main": "head-sha"}, tags={"latest": "tag-sha"})

        selection = resolve_selector(LATEST, refs, default_head)

        assert selection == Selection(commit_sha="head-sha", ref_kind="latest")

    def test_latest_ignores_tags(self):
        """A tag named 'latest' does not affect Latest resolution."""
        refs = RefSet(tags={"latest": "tag-sha", "v9.9.9": "newest"})

        assert resolve_selector(LATEST, refs, default_head).commit_sha == "head-sha"

    def test_commit_is_returned_unchecked(self):
        """Commit selectors are not checked against refs."""
        selection = resolve_selector(Selector("commit", "deadbeef"), RefSet(), no_default_head)

        assert selection.commit_sha == "deadbeef"
        assert selection.ref_kind == "commit"

    def test_branch(self):
        """Branch selectors resolve through the branch list."""
        refs = RefSet(branches={"dev": "dev-sha"})

        selection = resolve_selector(Selector("branch", "dev"), refs, no_default_head)

        assert selection.commit_sha == "dev-sha"
        assert selection.ref_kind == "branch"

    def test_missing_branch(self):
        """Unknown branches are RefNotFound."""
        with pytest.raises(RefNotFoundError, match="Branch 'dev'"):
            resolve_selector(Selector("branch", "dev"), RefSet(tags={"dev": "x"}), no_default_head)

    def test_tag(self):
        """Tag selectors resolve through the tag list."""
        refs = RefSet(tags={"v1.0.0": "tag-sha"})

        selection = resolve_selector(Selector("tag", "v1.0.0"), refs, no_default_head)

        assert selection.commit_sha == "tag-sha"

    def test_missing_tag(self):
        """Unknown tags are RefNotFound, even if a branch has that name."""
        with pytest.raises(RefNotFoundError):
            resolve_selector(Selector("tag", "v1"), RefSet(branches={"v1": "x"}), no_default_head)

    def test_version_prefers_branch_over_tag(self):
        """When a branch and a tag share a name, the branch wins."""
        refs = RefSet(branches={"v3": "branch-sha"}, tags={"v3": "tag-sha"})

        selection = resolve_selector(Selector("version", "v3"), refs, no_default_head)

        assert selection.commit_sha == "branch-sha"
        assert selection.ref_kind == "branch"

    def test_version_falls_back_to_tag(self):
        """Without a branch match, an exact tag is used."""
        refs = RefSet(branches={"main": "m"}, tags={"v3": "tag-sha"})

        selection = resolve_selector(Selector("version", "v3"), refs, no_default_head)

        assert selection.commit_sha == "tag-sha"
        assert selection.ref_kind == "tag"

    def test_version_prefix_picks_highest_stable_tag(self):
        """A major prefix picks the highest stable tag in that major."""
        refs = RefSet(
            tags={
                "v1.2.0": "a",
                "v1.10.1": "b",
                "v1.11.0-beta.1": "c",
                "v2.0.0": "d",
            }
        )

        selection = resolve_selector(Selector("version", "v1"), refs, no_default_head)

        assert selection.commit_sha == "b"
        assert selection.ref_name == "v1.10.1"

    def test_version_minor_prefix(self):
        """A major.minor prefix stays within that minor."""
        refs = RefSet(tags={"1.2.3": "a", "1.2.9": "b", "1.3.0": "c"})

        assert resolve_selector(Selector("version", "1.2"), refs, no_default_head).commit_sha == "b"

    def test_version_without_match(self):
        """No branch, tag or prefix match is RefNotFound."""
        with pytest.raises(RefNotFoundError, match="Version 'v4'"):
            resolve_selector(Selector("version", "v4"), RefSet(tags={"v3.0.0": "x"}), no_default_head)
