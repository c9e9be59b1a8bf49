"""Git backend that shells out to the system ``git``."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from pez.backend.base import GitBackend, RefSet
from pez.errors import CloneFailedError, GitError, RefNotFoundError
from pez.utils.filesystem import ensure_directory

logger = logging.getLogger(__name__)

_REMOTE_PREFIX = "refs/remotes/origin/"
_TAG_PREFIX = "refs/tags/"


class SubprocessGitBackend(GitBackend):
    """Git backend using the system ``git`` command (no gitpython dependency)."""

    def __init__(self, git: str = "git"):
        self._git = git

    def _run_git(
        self,
        args: list[str],
        cwd: Path | None = None,
        check: bool = True,
        error_cls: type[GitError] = GitError,
        source: str | None = None,
        ref: str | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Run a git command.

        Args:
            args: Git command arguments (without 'git')
            cwd: Working directory
            check: Whether to raise on non-zero exit
            error_cls: Error type raised on failure
            source: Repository the command concerns, for error context
            ref: Ref the command concerns, for error context

        Returns:
            Completed process

        Raises:
            GitError: If the command fails and check=True
        """
        cmd = [self._git] + args
        logger.debug("Running git command: %s", " ".join(cmd))
        try:
            return subprocess.run(
                cmd,
                cwd=cwd,
                capture_output=True,
                text=True,
                check=check,
            )
        except subprocess.CalledProcessError as e:
            logger.debug("Git command failed: %s - %s", " ".join(cmd), e.stderr.strip())
            raise error_cls(
                f"Git command failed: {' '.join(cmd)}\n{e.stderr.strip()}",
                source=source,
                ref=ref,
            ) from e
        except FileNotFoundError as e:
            logger.error("Git is not installed or not in PATH")
            raise error_cls("Git is not installed or not in PATH", source=source, ref=ref) from e

    def clone(self, source: str, destination: Path) -> None:
        logger.info("Cloning %s to %s", source, destination)
        ensure_directory(destination.parent)
        self._run_git(
            ["clone", "--quiet", source, str(destination)],
            error_cls=CloneFailedError,
            source=source,
        )

    def fetch(self, destination: Path) -> None:
        logger.info("Fetching %s", destination)
        self._run_git(["fetch", "--quiet", "--tags", "--prune", "--force", "origin"], cwd=destination)
        # Follow a default branch that moved on the remote
        self._run_git(["remote", "set-head", "origin", "--auto"], cwd=destination, check=False)

    def fetch_refs(self, destination: Path) -> RefSet:
        result = self._run_git(
            [
                "for-each-ref",
                "--format=%(refname)%00%(objectname)%00%(*objectname)",
                "refs/remotes/origin",
                "refs/tags",
            ],
            cwd=destination,
        )
        refs = RefSet()
        for line in result.stdout.splitlines():
            if not line:
                continue
            refname, sha, peeled = (line.split("\0") + ["", ""])[:3]
            if refname.startswith(_REMOTE_PREFIX):
                name = refname[len(_REMOTE_PREFIX) :]
                if name != "HEAD":
                    refs.branches[name] = sha
            elif refname.startswith(_TAG_PREFIX):
                # Annotated tags point at a tag object; record the commit it wraps
                refs.tags[refname[len(_TAG_PREFIX) :]] = peeled or sha
        logger.debug(
            "Found %d branches and %d tags in %s", len(refs.branches), len(refs.tags), destination
        )
        return refs

    def resolve_default_head(self, destination: Path) -> str:
        result = self._run_git(
            ["rev-parse", "--verify", "--quiet", "refs/remotes/origin/HEAD^{commit}"],
            cwd=destination,
            check=False,
        )
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip()

        logger.debug("origin/HEAD is not set in %s, using the local HEAD", destination)
        result = self._run_git(["rev-parse", "HEAD"], cwd=destination)
        return result.stdout.strip()

    def checkout(self, destination: Path, commit_sha: str) -> None:
        logger.debug("Checking out %s in %s", commit_sha, destination)
        self._run_git(
            [
                "-c",
                "advice.detachedHead=false",
                "checkout",
                "--quiet",
                "--force",
                "--detach",
                commit_sha,
            ],
            cwd=destination,
            error_cls=RefNotFoundError,
            ref=commit_sha,
        )
