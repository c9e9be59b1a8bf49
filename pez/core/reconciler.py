"""Reconciliation of declared configuration, lockfile and disk.

Every operation here is a projection of one three-way diff between the
plugins declared in pez.toml, the entries recorded in pez-lock.toml and what
actually exists in the data and target directories.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path

from pez.backend.base import GitBackend
from pez.config.schemas import LOCAL_COMMIT_SHA, AssetDir, LockedPlugin, PluginSpec
from pez.core.hooks import HookEmitter
from pez.core.installer import PluginInstaller, PluginResult, Report
from pez.core.materializer import conf_d_stems, file_path
from pez.core.resolver import resolve_selector
from pez.core.target import InstallTarget, ResolvedInstallTarget, resolve_target
from pez.core.workspace import Workspace
from pez.errors import FilesystemError, PezError
from pez.utils.filesystem import prune_empty_parents, remove_directory

logger = logging.getLogger(__name__)


@dataclass
class ReconcileDiff:
    """Where declared plugins, lock entries and the filesystem disagree."""

    not_installed: list[str] = field(default_factory=list)
    installed: list[str] = field(default_factory=list)
    undeclared: list[str] = field(default_factory=list)
    missing_clones: list[str] = field(default_factory=list)
    missing_files: dict[str, list[Path]] = field(default_factory=dict)

    @property
    def in_sync(self) -> bool:
        return not (self.not_installed or self.undeclared or self.missing_clones or self.missing_files)


@dataclass
class OutdatedEntry:
    entry: LockedPlugin
    latest_sha: str


def compute_diff(workspace: Workspace) -> ReconcileDiff:
    """Compare declared sources, lock entries and disk state.

    Args:
        workspace: Loaded workspace

    Returns:
        The diff, with sources listed in declaration or lockfile order
    """
    diff = ReconcileDiff()
    declared = workspace.declared_sources()
    locked = workspace.lock.list_sources()
    locked_set = set(locked)
    declared_set = set(declared)

    for source in declared:
        if source in locked_set:
            diff.installed.append(source)
        else:
            diff.not_installed.append(source)
    diff.undeclared = [source for source in locked if source not in declared_set]

    target_dir = workspace.settings.target_dir
    for entry in workspace.lock.entries:
        clone_dir = workspace.clone_dir_for(entry)
        if clone_dir is not None and not clone_dir.exists():
            diff.missing_clones.append(entry.source)
        missing = [p for p in (file_path(target_dir, f) for f in entry.files) if not p.exists()]
        if missing:
            diff.missing_files[entry.source] = missing
    return diff


class Reconciler:
    """Drives install, upgrade, prune and uninstall against a workspace."""

    def __init__(
        self,
        workspace: Workspace,
        backend: GitBackend,
        emitter: HookEmitter | None = None,
        force: bool = False,
        jobs: int | None = None,
    ):
        self.workspace = workspace
        self.backend = backend
        self.force = force
        self.installer = PluginInstaller(workspace, backend, emitter=emitter, force=force, jobs=jobs)

    @property
    def emitter(self) -> HookEmitter:
        return self.installer.emitter

    def diff(self) -> ReconcileDiff:
        return compute_diff(self.workspace)

    # -------------------------------------------------------------------------
    # Install / upgrade
    # -------------------------------------------------------------------------

    def install(self, targets: list[str] | None = None, cwd: Path | None = None) -> Report:
        """Install named targets, or everything declared when none are given.

        Args:
            targets: Command-line identifiers; None or empty installs from pez.toml
            cwd: Base directory for relative paths

        Returns:
            Report with per-plugin results
        """
        if targets:
            return self.installer.install_targets(targets, cwd)

        report = Report()
        for source in self.diff().undeclared:
            entry = self.workspace.lock.get_locked_plugin(source)
            assert entry is not None
            report.notices.append(
                f"{entry.repo} is installed but not declared in pez.toml; run 'pez prune' to remove it"
            )
        return self.installer.install_declared(report)

    def upgrade(self, names: list[str] | None = None) -> Report:
        """Re-resolve installed plugins and copy again where the commit moved.

        A selector declared in pez.toml is honored; plugins without one follow
        the remote default branch.

        Args:
            names: Plugins to upgrade (source, repo id or name); all when empty

        Returns:
            Report with per-plugin results
        """
        report = Report()
        entries = self._select_entries(names, report)

        targets: list[ResolvedInstallTarget] = []
        for entry in entries:
            spec = self.workspace.get_plugin_spec(entry.source)
            if spec is None:
                spec = _spec_for_entry(entry)
            try:
                target = resolve_target(InstallTarget(spec, "config"))
            except PezError as e:
                report.results.append(_failed(entry, str(e)))
                continue
            targets.append(replace(target, name=entry.name, repo_id=entry.repo))

        return self.installer.run(targets, concurrent=True, report=report, mode="upgrade")

    # -------------------------------------------------------------------------
    # Removal
    # -------------------------------------------------------------------------

    def prune(self, dry_run: bool = False, yes: bool = False) -> Report:
        """Remove installed plugins that pez.toml no longer declares.

        When pez.toml declares nothing, nothing is removed unless ``yes`` is set.

        Args:
            dry_run: Only report what would be removed
            yes: Confirm removing everything when the configuration is empty

        Returns:
            Report with per-plugin results
        """
        report = Report()
        undeclared = self.diff().undeclared
        if not undeclared:
            logger.info("Nothing to prune")
            return report

        if not self.workspace.plugins and not yes and not dry_run:
            report.needs_confirmation = True
            report.notices.append(
                f"pez.toml declares no plugins; confirm to remove all "
                f"{len(undeclared)} installed plugin(s)"
            )
            return report

        first_event = len(self.emitter.events)
        for source in undeclared:
            entry = self.workspace.lock.get_locked_plugin(source)
            assert entry is not None
            if dry_run:
                report.notices.append(f"Would remove {entry.name} ({entry.repo})")
                continue
            report.results.append(self._remove(entry))

        self.workspace.save()
        report.events.extend(self.emitter.events[first_event:])
        return report

    def uninstall(self, names: list[str]) -> Report:
        """Remove named plugins from disk, the lockfile and pez.toml.

        Args:
            names: Plugins to remove (source, repo id or name)

        Returns:
            Report with per-plugin results
        """
        report = Report()
        first_event = len(self.emitter.events)
        for entry in self._select_entries(names, report):
            result = self._remove(entry)
            if result.status == "removed":
                self.workspace.remove_plugin(entry.source)
            report.results.append(result)

        self.workspace.save()
        report.events.extend(self.emitter.events[first_event:])
        return report

    def _remove(self, entry: LockedPlugin) -> PluginResult:
        """Delete a plugin's clone and files, then its lock entry."""
        clone_dir = self.workspace.clone_dir_for(entry)
        target_dir = self.workspace.settings.target_dir

        if clone_dir is not None and not clone_dir.exists() and not self.force:
            listing = ", ".join(str(file_path(target_dir, f)) for f in entry.files) or "none"
            logger.warning(
                "Clone of %s is missing at %s, skipping (use --force to remove its files: %s)",
                entry.repo,
                clone_dir,
                listing,
            )
            return PluginResult(
                name=entry.name,
                source=entry.source,
                status="skipped",
                message=f"clone missing at {clone_dir}; files: {listing}",
                commit_sha=entry.commit_sha,
                files=list(entry.files),
            )

        self.emitter.emit(conf_d_stems(entry.files), "uninstall")
        try:
            if clone_dir is not None and remove_directory(clone_dir):
                prune_empty_parents(clone_dir.parent, self.workspace.settings.data_dir)
            removed = self.installer.materializer.remove(entry.files)
        except FilesystemError as e:
            logger.error("Failed to remove %s: %s", entry.repo, e)
            return _failed(entry, str(e))

        self.workspace.lock.unlock_plugin(entry.source)
        logger.info("Removed %s (%d file(s))", entry.repo, len(removed))
        return PluginResult(
            name=entry.name,
            source=entry.source,
            status="removed",
            commit_sha=entry.commit_sha,
            files=list(entry.files),
        )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def list_entries(self, names: list[str] | None = None) -> list[LockedPlugin]:
        """Lock entries, optionally filtered by source, repo id or name."""
        return self._select_entries(names, Report())

    def outdated(self, names: list[str] | None = None) -> list[OutdatedEntry]:
        """Lock entries whose selector now resolves to a different commit.

        Fetches each clone. Local plugins and plugins whose clone is missing
        or cannot be fetched are left out.
        """
        outdated: list[OutdatedEntry] = []
        for entry in self.list_entries(names):
            clone_dir = self.workspace.clone_dir_for(entry)
            if clone_dir is None or not clone_dir.exists():
                continue
            spec = self.workspace.get_plugin_spec(entry.source) or _spec_for_entry(entry)
            selector = InstallTarget(spec, "config").selector
            try:
                self.backend.fetch(clone_dir)
                refs = self.backend.fetch_refs(clone_dir)
                selection = resolve_selector(
                    selector, refs, lambda d=clone_dir: self.backend.resolve_default_head(d)
                )
            except PezError as e:
                logger.warning("Cannot check %s for updates: %s", entry.repo, e)
                continue
            if selection.commit_sha != entry.commit_sha:
                outdated.append(OutdatedEntry(entry=entry, latest_sha=selection.commit_sha))
        return outdated

    def files(self, names: list[str] | None = None, dirs: list[AssetDir] | None = None) -> list[Path]:
        """Absolute destination paths recorded for plugins.

        Args:
            names: Plugins to include; all when empty
            dirs: Only include files from these asset directories

        Returns:
            Paths in lockfile order
        """
        target_dir = self.workspace.settings.target_dir
        return [
            file_path(target_dir, record)
            for entry in self.list_entries(names)
            for record in entry.files
            if dirs is None or record.dir in dirs
        ]

    def _select_entries(self, names: list[str] | None, report: Report) -> list[LockedPlugin]:
        lock = self.workspace.lock
        if not names:
            return list(lock.entries)

        selected: list[LockedPlugin] = []
        for name in names:
            entry = lock.find(name)
            if entry is None:
                logger.error("%s is not installed", name)
                report.results.append(
                    PluginResult(name=name, source=name, status="failed", message="not installed")
                )
            elif entry not in selected:
                selected.append(entry)
        return selected


def _spec_for_entry(entry: LockedPlugin) -> PluginSpec:
    if entry.commit_sha == LOCAL_COMMIT_SHA:
        return PluginSpec(path=entry.source, name=entry.name)
    return PluginSpec(url=entry.source, name=entry.name)


def _failed(entry: LockedPlugin, message: str) -> PluginResult:
    return PluginResult(name=entry.name, source=entry.source, status="failed", message=message)
