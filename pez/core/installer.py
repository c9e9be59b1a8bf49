"""Plugin installation orchestrator.

This module contains the PluginInstaller which drives each target through
clone, resolve and copy. Cloning and resolving may run on a worker pool;
copying always runs on the calling thread in batch order so that the shared
destination set sees a deterministic first-writer-wins order.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from pez.backend.base import GitBackend
from pez.config.schemas import LOCAL_COMMIT_SHA, LockedPlugin, PluginFile
from pez.core.hooks import HookEmitter, HookEvent
from pez.core.materializer import DestinationSet, FileMaterializer, conf_d_stems, file_path
from pez.core.resolver import Selection, resolve_selector
from pez.core.target import (
    InstallTarget,
    ResolvedInstallTarget,
    identity_key,
    parse_target,
    resolve_target,
)
from pez.core.workspace import Workspace
from pez.errors import (
    DuplicateDestinationError,
    FilesystemError,
    LockfileInconsistencyError,
    MalformedTargetError,
    PezError,
)
from pez.utils.filesystem import remove_directory

logger = logging.getLogger("pez.installer")

ResultStatus = Literal["installed", "upgraded", "removed", "skipped", "failed"]
JobState = Literal["pending", "cloning", "resolving", "copying", "recorded", "skipped", "failed"]
JobMode = Literal["install", "upgrade"]


@dataclass
class PluginResult:
    """Outcome for one plugin in a batch."""

    name: str
    source: str
    status: ResultStatus
    message: str = ""
    commit_sha: str | None = None
    files: list[PluginFile] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status != "failed"


@dataclass
class Report:
    """Summary of a batch operation."""

    results: list[PluginResult] = field(default_factory=list)
    notices: list[str] = field(default_factory=list)
    events: list[HookEvent] = field(default_factory=list)
    needs_confirmation: bool = False

    def _with_status(self, status: ResultStatus) -> list[PluginResult]:
        return [r for r in self.results if r.status == status]

    @property
    def installed(self) -> list[PluginResult]:
        return self._with_status("installed")

    @property
    def upgraded(self) -> list[PluginResult]:
        return self._with_status("upgraded")

    @property
    def removed(self) -> list[PluginResult]:
        return self._with_status("removed")

    @property
    def skipped(self) -> list[PluginResult]:
        return self._with_status("skipped")

    @property
    def failed(self) -> list[PluginResult]:
        return self._with_status("failed")

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def all_successful(self) -> bool:
        return all(r.success for r in self.results)


@dataclass
class InstallJob:
    """Mutable per-target state while a batch runs."""

    target: ResolvedInstallTarget
    entry: LockedPlugin | None
    mode: JobMode = "install"
    remove_clone: bool = False
    pin_sha: str | None = None
    fresh_clone: bool = False
    state: JobState = "pending"
    selection: Selection | None = None
    result: PluginResult | None = None

    @property
    def done(self) -> bool:
        return self.result is not None

    def transition(self, state: JobState) -> None:
        logger.debug("%s: %s -> %s", self.target.name, self.state, state)
        self.state = state

    def finish(self, status: ResultStatus, message: str = "", commit_sha: str | None = None) -> None:
        if status == "failed":
            self.transition("failed")
        elif status == "skipped":
            self.transition("skipped")
        self.result = PluginResult(
            name=self.target.name,
            source=self.target.source,
            status=status,
            message=message,
            commit_sha=commit_sha,
        )


class PluginInstaller:
    """Orchestrates plugin installation and upgrade batches."""

    def __init__(
        self,
        workspace: Workspace,
        backend: GitBackend,
        emitter: HookEmitter | None = None,
        force: bool = False,
        jobs: int | None = None,
    ):
        """Initialize the installer.

        Args:
            workspace: Configuration, lockfile and directories to work against
            backend: Git backend used for clone, fetch and checkout
            emitter: Hook emitter for conf.d events (defaults to one honoring the settings)
            force: Re-clone existing plugins and overwrite unmanaged files
            jobs: Worker count for concurrent clones (defaults to the settings)
        """
        settings = workspace.settings
        self.workspace = workspace
        self.backend = backend
        self.force = force
        self.jobs = max(1, jobs if jobs is not None else settings.jobs)
        self.emitter = emitter or HookEmitter(suppress=settings.suppress_emit)
        self.materializer = FileMaterializer(settings.target_dir)

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def install_targets(self, raw_targets: list[str], cwd: Path | None = None) -> Report:
        """Install plugins named on the command line.

        Clones run concurrently. Successful targets are also declared in pez.toml.

        Args:
            raw_targets: Plugin identifiers as typed by the user
            cwd: Base directory for relative paths

        Returns:
            Report with one result per identifier
        """
        report = Report()
        targets: list[ResolvedInstallTarget] = []
        seen: set[str] = set()

        for raw in raw_targets:
            try:
                target = resolve_target(InstallTarget(parse_target(raw, cwd), "cli"))
            except MalformedTargetError as e:
                logger.error("%s", e)
                report.results.append(
                    PluginResult(name=raw, source=raw, status="failed", message=str(e))
                )
                continue
            key = identity_key(target.spec)
            if key in seen:
                logger.warning("%s is listed more than once, installing it once", raw)
                report.results.append(
                    PluginResult(
                        name=target.name,
                        source=target.source,
                        status="skipped",
                        message="listed more than once",
                    )
                )
                continue
            seen.add(key)
            targets.append(target)

        return self.run(targets, concurrent=True, report=report)

    def install_declared(self, report: Report | None = None) -> Report:
        """Install every plugin declared in pez.toml, one at a time in file order."""
        report = report or Report()
        targets: list[ResolvedInstallTarget] = []
        for target in self.workspace.declared_targets():
            try:
                targets.append(resolve_target(target))
            except MalformedTargetError as e:
                logger.error("%s", e)
                report.results.append(
                    PluginResult(
                        name=target.spec.name or target.spec.source_value,
                        source=target.spec.source_value,
                        status="failed",
                        message=str(e),
                    )
                )
        return self.run(targets, concurrent=False, report=report)

    def run(
        self,
        targets: list[ResolvedInstallTarget],
        concurrent: bool,
        report: Report | None = None,
        mode: JobMode = "install",
    ) -> Report:
        """Run a batch of resolved targets.

        Args:
            targets: Targets in batch order
            concurrent: Clone and resolve on the worker pool
            report: Report to append to
            mode: "install" applies the existing-clone policy, "upgrade" re-resolves
                locked plugins and copies only when the commit changed

        Returns:
            The report
        """
        report = report or Report()
        first_event = len(self.emitter.events)

        if targets:
            logger.info("Starting %s of %d plugin(s)", mode, len(targets))

        jobs = [self._plan(target, mode) for target in targets]
        claimed = self._seed_claims()

        # Plugins recorded before an unexpected error must still reach the lockfile
        try:
            if concurrent and self.jobs > 1 and len(jobs) > 1:
                with ThreadPoolExecutor(
                    max_workers=self.jobs, thread_name_prefix="pez-clone"
                ) as executor:
                    futures: list[Future[None] | None] = [
                        None if job.done else executor.submit(self._fetch, job) for job in jobs
                    ]
                    for job, future in zip(jobs, futures, strict=True):
                        if future is not None:
                            future.result()
                        self._copy(job, claimed)
            else:
                for job in jobs:
                    if not job.done:
                        self._fetch(job)
                    self._copy(job, claimed)
        finally:
            self.workspace.save()

        for job in jobs:
            assert job.result is not None
            report.results.append(job.result)

        report.events.extend(self.emitter.events[first_event:])

        logger.info(
            "%s complete: %d succeeded, %d failed",
            mode.capitalize(),
            report.success_count,
            report.failure_count,
        )
        return report

    # -------------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------------

    def _plan(self, target: ResolvedInstallTarget, mode: JobMode) -> InstallJob:
        """Apply the existing-clone policy before any work is done."""
        entry = self.workspace.lock.get_locked_plugin(target.source)
        job = InstallJob(target=target, entry=entry, mode=mode)

        if mode == "upgrade":
            if target.is_local:
                job.finish("skipped", "local plugins are not upgraded", LOCAL_COMMIT_SHA)
            return job

        if target.is_local:
            assert target.local_path is not None
            if entry is not None and not self.force:
                job.finish("skipped", "already installed", entry.commit_sha)
            elif not target.local_path.is_dir():
                job.finish("failed", f"{target.local_path} is not a directory")
            return job

        clone_dir = self._clone_dir(target)
        has_clone = clone_dir.exists()

        if entry is None and has_clone:
            if self.force:
                job.remove_clone = True
            elif target.from_cli:
                logger.warning(
                    "%s already exists but is not in the lockfile, skipping (use --force to reinstall)",
                    clone_dir,
                )
                job.finish("skipped", f"{clone_dir} exists without a lock entry")
            else:
                error = LockfileInconsistencyError(
                    f"{clone_dir} exists but {target.repo_id} has no lock entry; "
                    "remove it or rerun with --force",
                    clone_dir,
                )
                logger.error("%s", error)
                job.finish("failed", str(error))
        elif entry is not None and has_clone:
            if self.force:
                job.remove_clone = True
            else:
                logger.info("%s is already installed", target.repo_id)
                job.finish("skipped", "already installed", entry.commit_sha)
        elif entry is not None and not self.force:
            logger.info(
                "Clone of %s is missing, restoring commit %s", target.repo_id, entry.commit_sha
            )
            job.pin_sha = entry.commit_sha

        return job

    def _fetch(self, job: InstallJob) -> None:
        """Clone and resolve one target. Runs on a worker thread."""
        target = job.target
        if target.is_local:
            return

        clone_dir = self._clone_dir(target)
        try:
            if job.remove_clone:
                logger.info("Removing existing clone %s", clone_dir)
                remove_directory(clone_dir)
            if not clone_dir.exists():
                job.transition("cloning")
                self.backend.clone(target.source, clone_dir)
                job.fresh_clone = True
            elif job.mode == "upgrade":
                self.backend.fetch(clone_dir)

            job.transition("resolving")
            selection = self._select(job, clone_dir)
            unchanged = job.entry is not None and selection.commit_sha == job.entry.commit_sha
            if job.mode == "upgrade" and unchanged and not job.fresh_clone:
                logger.info("%s is up to date", target.repo_id)
                job.finish("skipped", "already up to date", selection.commit_sha)
                return

            self.backend.checkout(clone_dir, selection.commit_sha)
            job.selection = selection
            if job.mode == "upgrade" and unchanged:
                job.finish("skipped", "already up to date", selection.commit_sha)
        except PezError as e:
            logger.error("Failed to install %s: %s", target.repo_id, e)
            job.finish("failed", str(e))
            self._discard_clone(job)
        except OSError as e:
            error = FilesystemError(f"Cannot prepare {clone_dir}: {e}", clone_dir)
            logger.error("Failed to install %s: %s", target.repo_id, error)
            job.finish("failed", str(error))
            self._discard_clone(job)

    def _select(self, job: InstallJob, clone_dir: Path) -> Selection:
        if job.pin_sha is not None:
            return Selection(commit_sha=job.pin_sha, ref_kind="commit", ref_name=job.pin_sha)
        refs = self.backend.fetch_refs(clone_dir)
        selection = resolve_selector(
            job.target.selector,
            refs,
            lambda: self.backend.resolve_default_head(clone_dir),
        )
        logger.debug(
            "Resolved %s (%s) to %s via %s",
            job.target.repo_id,
            job.target.selector,
            selection.commit_sha,
            selection.ref_kind,
        )
        return selection

    def _copy(self, job: InstallJob, claimed: DestinationSet) -> None:
        """Copy one target's files. Always runs on the calling thread."""
        if job.done:
            return

        target = job.target
        job.transition("copying")
        root = target.local_path if target.local_path is not None else self._clone_dir(target)
        previous = job.entry.files if job.entry is not None else []

        logger.info("Copying files for %s:", target.name)
        try:
            files = self.materializer.materialize(
                target.name,
                root,
                claimed,
                owner=target.source,
                previous=previous,
                skip_existing=not self.force,
            )
        except DuplicateDestinationError as e:
            logger.warning("%s", e)
            job.finish("skipped", str(e))
            if job.entry is not None:
                self._restore_locked_commit(job)
            else:
                self._discard_clone(job)
            return
        except FilesystemError as e:
            logger.error("Failed to copy files for %s: %s", target.name, e)
            job.finish("failed", str(e))
            return
        except OSError as e:
            logger.error("Failed to copy files for %s from %s: %s", target.name, root, e)
            job.finish("failed", f"Cannot copy files from {root}: {e}")
            return

        if target.is_local:
            commit_sha = LOCAL_COMMIT_SHA
        else:
            assert job.selection is not None
            commit_sha = job.selection.commit_sha

        self.workspace.lock.lock_plugin(
            name=target.name,
            repo=target.repo_id,
            source=target.source,
            commit_sha=commit_sha,
            files=files,
        )
        job.transition("recorded")

        if target.from_cli and self.workspace.add_plugin(target.spec):
            logger.debug("Declared %s in pez.toml", target.repo_id)

        event = "update" if job.mode == "upgrade" else "install"
        self.emitter.emit(conf_d_stems(files), event)

        job.result = PluginResult(
            name=target.name,
            source=target.source,
            status="upgraded" if job.mode == "upgrade" else "installed",
            commit_sha=commit_sha,
            files=files,
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _clone_dir(self, target: ResolvedInstallTarget) -> Path:
        clone_dir = target.clone_dir(self.workspace.settings.data_dir)
        assert clone_dir is not None
        return clone_dir

    def _seed_claims(self) -> DestinationSet:
        """Claim every destination already recorded in the lockfile."""
        claimed = DestinationSet()
        target_dir = self.workspace.settings.target_dir
        for entry in self.workspace.lock.entries:
            for record in entry.files:
                claimed.claim(file_path(target_dir, record), entry.source)
        return claimed

    def _restore_locked_commit(self, job: InstallJob) -> None:
        """Move a skipped plugin's clone back to the commit its lock entry records."""
        assert job.entry is not None
        if job.target.is_local or job.selection is None:
            return
        if job.selection.commit_sha == job.entry.commit_sha:
            return
        clone_dir = self._clone_dir(job.target)
        logger.info("Restoring %s to %s", job.target.repo_id, job.entry.commit_sha)
        try:
            self.backend.checkout(clone_dir, job.entry.commit_sha)
        except PezError as e:
            logger.warning(
                "Could not restore %s to %s: %s", job.target.repo_id, job.entry.commit_sha, e
            )

    def _discard_clone(self, job: InstallJob) -> None:
        """Remove a clone this run created or no lock entry owns."""
        if job.target.is_local or (job.entry is not None and not job.fresh_clone):
            return
        clone_dir = self._clone_dir(job.target)
        try:
            remove_directory(clone_dir)
        except FilesystemError as e:
            logger.warning("Could not remove %s: %s", clone_dir, e)
