"""In-memory Git backend with canned repositories.

Clones are real directories: the working tree is written from the canned file
tree of the checked-out commit, and ``.git/pez-origin`` remembers which canned
repository the clone came from so a fresh backend instance can reopen it.
"""

from __future__ import annotations

import logging
import shutil
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path

from pez.backend.base import GitBackend, RefSet
from pez.errors import CloneFailedError, GitError, RefNotFoundError

logger = logging.getLogger(__name__)

_ORIGIN_FILE = "pez-origin"
_HEAD_FILE = "HEAD"


@dataclass
class FakeRepository:
    """A canned remote: refs plus the file tree of each commit."""

    branches: dict[str, str] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)
    default_branch: str = "main"
    trees: dict[str, dict[str, str]] = field(default_factory=dict)
    fail_clone: bool = False

    def has_commit(self, commit_sha: str) -> bool:
        return (
            commit_sha in self.trees
            or commit_sha in self.branches.values()
            or commit_sha in self.tags.values()
        )

    def commit(self, branch: str, commit_sha: str, files: dict[str, str]) -> None:
        """Point a branch at a new commit with the given file tree."""
        self.branches[branch] = commit_sha
        self.trees[commit_sha] = dict(files)


class InMemoryGitBackend(GitBackend):
    """Git backend backed by canned repositories keyed by source URL."""

    def __init__(
        self,
        repositories: dict[str, FakeRepository] | None = None,
        clone_delay: float = 0.0,
    ):
        """Initialize the backend.

        Args:
            repositories: Canned repositories keyed by canonical source
            clone_delay: Seconds each clone blocks, to make concurrency observable
        """
        self.repositories: dict[str, FakeRepository] = dict(repositories or {})
        self.clone_delay = clone_delay
        self.calls: list[tuple[str, str]] = []
        self.max_concurrent_clones = 0
        self._active_clones = 0
        self._lock = threading.Lock()

    def add_repository(
        self,
        source: str,
        branches: dict[str, str] | None = None,
        tags: dict[str, str] | None = None,
        default_branch: str = "main",
        trees: dict[str, dict[str, str]] | None = None,
    ) -> FakeRepository:
        """Register a canned repository and return it for further mutation."""
        repository = FakeRepository(
            branches=dict(branches or {}),
            tags=dict(tags or {}),
            default_branch=default_branch,
            trees=dict(trees or {}),
        )
        self.repositories[source] = repository
        return repository

    def calls_for(self, operation: str) -> list[str]:
        """Arguments recorded for one operation, in call order."""
        with self._lock:
            return [arg for op, arg in self.calls if op == operation]

    def _record(self, operation: str, argument: str) -> None:
        with self._lock:
            self.calls.append((operation, argument))

    def _repository_for(self, destination: Path) -> FakeRepository:
        origin_file = destination / ".git" / _ORIGIN_FILE
        if not origin_file.exists():
            raise GitError(f"Not a git repository: {destination}")
        source = origin_file.read_text(encoding="utf-8").strip()
        repository = self.repositories.get(source)
        if repository is None:
            raise GitError(f"Remote {source} is no longer available", source=source)
        return repository

    def clone(self, source: str, destination: Path) -> None:
        self._record("clone", source)
        with self._lock:
            self._active_clones += 1
            self.max_concurrent_clones = max(self.max_concurrent_clones, self._active_clones)
        try:
            if self.clone_delay:
                time.sleep(self.clone_delay)
            repository = self.repositories.get(source)
            if repository is None or repository.fail_clone:
                raise CloneFailedError(f"Repository not found: {source}", source=source)
            if destination.exists():
                raise CloneFailedError(f"Destination already exists: {destination}", source=source)

            git_dir = destination / ".git"
            git_dir.mkdir(parents=True)
            (git_dir / _ORIGIN_FILE).write_text(source, encoding="utf-8")
            head = repository.branches.get(repository.default_branch)
            if head is not None:
                self._write_tree(destination, repository, head)
        finally:
            with self._lock:
                self._active_clones -= 1

    def fetch(self, destination: Path) -> None:
        self._record("fetch", str(destination))
        self._repository_for(destination)

    def fetch_refs(self, destination: Path) -> RefSet:
        self._record("fetch_refs", str(destination))
        repository = self._repository_for(destination)
        return RefSet(branches=dict(repository.branches), tags=dict(repository.tags))

    def resolve_default_head(self, destination: Path) -> str:
        self._record("resolve_default_head", str(destination))
        repository = self._repository_for(destination)
        head = repository.branches.get(repository.default_branch)
        if head is None:
            raise GitError(f"Default branch '{repository.default_branch}' has no commits")
        return head

    def checkout(self, destination: Path, commit_sha: str) -> None:
        self._record("checkout", commit_sha)
        repository = self._repository_for(destination)
        if not repository.has_commit(commit_sha):
            raise RefNotFoundError(f"Commit {commit_sha} not found", ref=commit_sha)
        self._write_tree(destination, repository, commit_sha)

    @staticmethod
    def _write_tree(destination: Path, repository: FakeRepository, commit_sha: str) -> None:
        for child in destination.iterdir():
            if child.name == ".git":
                continue
            if child.is_dir():
                shutil.rmtree(child)
            else:
                child.unlink()
        for relative, content in repository.trees.get(commit_sha, {}).items():
            path = destination / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        (destination / ".git" / _HEAD_FILE).write_text(commit_sha, encoding="utf-8")
        logger.debug("Checked out %s in %s", commit_sha, destination)
