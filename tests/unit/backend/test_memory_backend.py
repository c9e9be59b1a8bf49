"""Tests for pez.backend.memory module."""

from pathlib import Path

import pytest

from pez.backend.memory import InMemoryGitBackend
from pez.errors import CloneFailedError, GitError, RefNotFoundError

SOURCE = "https://github.com/o/r"


@pytest.fixture
def backend() -> InMemoryGitBackend:
    backend = InMemoryGitBackend()
    backend.add_repository(
        SOURCE,
        branches={"main": "m1", "dev": "d1"},
        tags={"v1": "m1"},
        trees={"m1": {"functions/a.fish": "main"}, "d1": {"functions/b.fish": "dev"}},
    )
    return backend


class TestInMemoryGitBackend:
    """Tests for InMemoryGitBackend."""

    def test_clone_writes_default_branch(self, temp_dir: Path, backend: InMemoryGitBackend):
        """A clone contains the default branch tree."""
        destination = temp_dir / "clone"

        backend.clone(SOURCE, destination)

        assert (destination / "functions" / "a.fish").read_text() == "main"
        assert backend.resolve_default_head(destination) == "m1"

    def test_clone_unknown_source(self, temp_dir: Path, backend: InMemoryGitBackend):
        """Unknown sources fail to clone."""
        with pytest.raises(CloneFailedError):
            backend.clone("https://github.com/x/y", temp_dir / "clone")

        assert not (temp_dir / "clone").exists()

    def test_clone_existing_destination(self, temp_dir: Path, backend: InMemoryGitBackend):
        """Cloning over an existing directory fails."""
        (temp_dir / "clone").mkdir()

        with pytest.raises(CloneFailedError, match="already exists"):
            backend.clone(SOURCE, temp_dir / "clone")

    def test_checkout_replaces_tree(self, temp_dir: Path, backend: InMemoryGitBackend):
        """Checkout swaps the working tree for the commit's files."""
        destination = temp_dir / "clone"
        backend.clone(SOURCE, destination)

        backend.checkout(destination, "d1")

        assert not (destination / "functions" / "a.fish").exists()
        assert (destination / "functions" / "b.fish").read_text() == "dev"

    def test_checkout_unknown_commit(self, temp_dir: Path, backend: InMemoryGitBackend):
        """Unknown commits are RefNotFound."""
        destination = temp_dir / "clone"
        backend.clone(SOURCE, destination)

        with pytest.raises(RefNotFoundError):
            backend.checkout(destination, "zzz")

    def test_refs_follow_repository_changes(self, temp_dir: Path, backend: InMemoryGitBackend):
        """New commits on the canned remote are visible to existing clones."""
        destination = temp_dir / "clone"
        backend.clone(SOURCE, destination)
        backend.repositories[SOURCE].commit("main", "m2", {})

        backend.fetch(destination)

        assert backend.fetch_refs(destination).branches["main"] == "m2"
        assert backend.resolve_default_head(destination) == "m2"

    def test_not_a_clone(self, temp_dir: Path, backend: InMemoryGitBackend):
        """Operations on a plain directory fail."""
        with pytest.raises(GitError, match="Not a git repository"):
            backend.fetch_refs(temp_dir)

    def test_records_calls(self, temp_dir: Path, backend: InMemoryGitBackend):
        """Calls are recorded per operation."""
        backend.clone(SOURCE, temp_dir / "clone")
        backend.checkout(temp_dir / "clone", "m1")

        assert backend.calls_for("clone") == [SOURCE]
        assert backend.calls_for("checkout") == ["m1"]
        assert backend.max_concurrent_clones == 1
