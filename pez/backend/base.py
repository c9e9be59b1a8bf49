"""Base class for Git backends."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class RefSet:
    """Branches and tags of a clone, each mapped to the commit it points at."""

    branches: dict[str, str] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)


class GitBackend(ABC):
    """Everything pez needs from a Git repository.

    Implementations must be safe to call from several worker threads at once
    as long as each call targets a different destination directory.
    """

    @abstractmethod
    def clone(self, source: str, destination: Path) -> None:
        """Clone a repository.

        Args:
            source: Repository URL
            destination: Directory to clone into (must not exist)

        Raises:
            CloneFailedError: If the repository cannot be cloned
        """
        ...

    @abstractmethod
    def fetch(self, destination: Path) -> None:
        """Update an existing clone's refs from its remote.

        Raises:
            GitError: If the fetch fails
        """
        ...

    @abstractmethod
    def fetch_refs(self, destination: Path) -> RefSet:
        """List the branches and tags known to a clone without touching the network.

        Raises:
            GitError: If the refs cannot be read
        """
        ...

    @abstractmethod
    def resolve_default_head(self, destination: Path) -> str:
        """Return the commit at the tip of the remote's default branch.

        Raises:
            GitError: If the default branch cannot be determined
        """
        ...

    @abstractmethod
    def checkout(self, destination: Path, commit_sha: str) -> None:
        """Make the working tree match a commit.

        Raises:
            RefNotFoundError: If the commit does not exist in the clone
        """
        ...
