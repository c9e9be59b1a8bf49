"""Tests for pez.core.materializer module."""

from collections.abc import Callable
from pathlib import Path

import pytest

from pez.config.schemas import PluginFile
from pez.core.materializer import DestinationSet, FileMaterializer, conf_d_stems, file_path
from pez.errors import DuplicateDestinationError


@pytest.fixture
def target_dir(temp_dir: Path) -> Path:
    return temp_dir / "fish"


@pytest.fixture
def materializer(target_dir: Path) -> FileMaterializer:
    return FileMaterializer(target_dir)


class TestPlan:
    """Tests for FileMaterializer.plan()."""

    def test_only_recognized_assets(
        self, temp_dir: Path, materializer: FileMaterializer, make_local_plugin: Callable[..., Path]
    ):
        """Only .fish files in the fish dirs and .theme files in themes are planned."""
        root = make_local_plugin(
            temp_dir / "plugin",
            "functions/foo.fish",
            "functions/README.md",
            "completions/foo.fish",
            "conf.d/foo.fish",
            "themes/dark.theme",
            "themes/notes.fish",
            "tests/foo.fish",
            "foo.fish",
        )

        records = [p.record.relative_path for p in materializer.plan(root)]

        assert records == [
            "functions/foo.fish",
            "completions/foo.fish",
            "conf.d/foo.fish",
            "themes/dark.theme",
        ]

    def test_nested_files_keep_relative_path(
        self, temp_dir: Path, materializer: FileMaterializer, make_local_plugin: Callable[..., Path]
    ):
        """Files in subdirectories keep their path below the asset dir."""
        root = make_local_plugin(temp_dir / "plugin", "functions/sub/bar.fish")

        planned = materializer.plan(root)

        assert planned[0].record == PluginFile(dir="functions", name="sub/bar.fish")
        assert planned[0].destination == materializer.target_dir / "functions" / "sub" / "bar.fish"

    def test_plugin_without_assets(self, temp_dir: Path, materializer: FileMaterializer):
        """A plugin with no asset dirs plans nothing."""
        (temp_dir / "plugin").mkdir()

        assert materializer.plan(temp_dir / "plugin") == []


class TestMaterialize:
    """Tests for FileMaterializer.materialize()."""

    def test_copies_and_claims(
        self,
        temp_dir: Path,
        target_dir: Path,
        materializer: FileMaterializer,
        make_local_plugin: Callable[..., Path],
    ):
        """Files are copied and claimed for the owner."""
        root = make_local_plugin(temp_dir / "plugin", "functions/foo.fish", "conf.d/foo.fish")
        claimed = DestinationSet()

        files = materializer.materialize("foo", root, claimed, owner="src-a")

        assert [f.relative_path for f in files] == ["functions/foo.fish", "conf.d/foo.fish"]
        assert (target_dir / "functions" / "foo.fish").read_text() == "# functions/foo.fish\n"
        assert claimed.owner(target_dir / "conf.d" / "foo.fish") == "src-a"

    def test_conflict_with_other_owner_writes_nothing(
        self,
        temp_dir: Path,
        target_dir: Path,
        materializer: FileMaterializer,
        make_local_plugin: Callable[..., Path],
    ):
        """A destination claimed by another plugin aborts the whole copy."""
        root = make_local_plugin(temp_dir / "plugin", "completions/bar.fish", "functions/foo.fish")
        claimed = DestinationSet()
        claimed.claim(target_dir / "functions" / "foo.fish", "src-a")

        with pytest.raises(DuplicateDestinationError) as exc_info:
            materializer.materialize("bar", root, claimed, owner="src-b")

        assert exc_info.value.conflicts == [target_dir / "functions" / "foo.fish"]
        assert not (target_dir / "completions" / "bar.fish").exists()
        assert claimed.owner(target_dir / "functions" / "foo.fish") == "src-a"

    def test_unmanaged_file_is_conflict(
        self,
        temp_dir: Path,
        target_dir: Path,
        materializer: FileMaterializer,
        make_local_plugin: Callable[..., Path],
    ):
        """A file already on disk that nobody owns is not overwritten."""
        root = make_local_plugin(temp_dir / "plugin", "functions/foo.fish")
        existing = target_dir / "functions" / "foo.fish"
        existing.parent.mkdir(parents=True)
        existing.write_text("mine")

        with pytest.raises(DuplicateDestinationError, match="an unmanaged file"):
            materializer.materialize("foo", root, DestinationSet(), owner="src-a")

        assert existing.read_text() == "mine"

    def test_unmanaged_file_overwritten_without_skip(
        self,
        temp_dir: Path,
        target_dir: Path,
        materializer: FileMaterializer,
        make_local_plugin: Callable[..., Path],
    ):
        """With skip_existing off, unowned files are overwritten."""
        root = make_local_plugin(temp_dir / "plugin", "functions/foo.fish")
        existing = target_dir / "functions" / "foo.fish"
        existing.parent.mkdir(parents=True)
        existing.write_text("mine")

        materializer.materialize("foo", root, DestinationSet(), owner="src-a", skip_existing=False)

        assert existing.read_text() == "# functions/foo.fish\n"

    def test_own_claims_are_not_conflicts(
        self,
        temp_dir: Path,
        target_dir: Path,
        materializer: FileMaterializer,
        make_local_plugin: Callable[..., Path],
    ):
        """Re-copying a plugin over its own recorded files succeeds."""
        root = make_local_plugin(temp_dir / "plugin", "functions/foo.fish")
        claimed = DestinationSet()
        first = materializer.materialize("foo", root, claimed, owner="src-a")

        second = materializer.materialize("foo", root, claimed, owner="src-a", previous=first)

        assert second == first
        assert (target_dir / "functions" / "foo.fish").exists()

    def test_previous_files_replaced(
        self,
        temp_dir: Path,
        target_dir: Path,
        materializer: FileMaterializer,
        make_local_plugin: Callable[..., Path],
    ):
        """Files recorded previously but no longer shipped are removed."""
        old_root = make_local_plugin(temp_dir / "old", "functions/old.fish", "themes/t.theme")
        claimed = DestinationSet()
        previous = materializer.materialize("p", old_root, claimed, owner="src-a")
        new_root = make_local_plugin(temp_dir / "new", "functions/new.fish")

        files = materializer.materialize("p", new_root, claimed, owner="src-a", previous=previous)

        assert [f.name for f in files] == ["new.fish"]
        assert not (target_dir / "functions" / "old.fish").exists()
        assert not (target_dir / "themes" / "t.theme").exists()
        assert target_dir / "functions" / "old.fish" not in claimed

    def test_plugin_without_assets_returns_empty(
        self, temp_dir: Path, materializer: FileMaterializer
    ):
        """A plugin with nothing to copy records no files."""
        (temp_dir / "empty").mkdir()

        assert materializer.materialize("empty", temp_dir / "empty", DestinationSet(), owner="x") == []


class TestRemove:
    """Tests for FileMaterializer.remove()."""

    def test_removes_files_and_empty_subdirs(
        self,
        temp_dir: Path,
        target_dir: Path,
        materializer: FileMaterializer,
        make_local_plugin: Callable[..., Path],
    ):
        """Recorded files are deleted and emptied subdirectories pruned."""
        root = make_local_plugin(temp_dir / "plugin", "functions/sub/deep.fish", "functions/top.fish")
        files = materializer.materialize("p", root, DestinationSet(), owner="src")

        removed = materializer.remove(files)

        assert len(removed) == 2
        assert not (target_dir / "functions" / "sub").exists()
        assert (target_dir / "functions").is_dir()

    def test_missing_files_are_ignored(self, materializer: FileMaterializer):
        """Files already gone are not reported."""
        assert materializer.remove([PluginFile(dir="functions", name="gone.fish")]) == []


class TestHelpers:
    """Tests for module helpers."""

    def test_file_path(self, target_dir: Path):
        """file_path joins dir and name under the target."""
        record = PluginFile(dir="conf.d", name="x.fish")

        assert file_path(target_dir, record) == target_dir / "conf.d" / "x.fish"

    def test_conf_d_stems(self):
        """Only conf.d files produce stems."""
        files = [
            PluginFile(dir="functions", name="a.fish"),
            PluginFile(dir="conf.d", name="b.fish"),
            PluginFile(dir="conf.d", name="c.fish"),
        ]

        assert conf_d_stems(files) == ["b", "c"]

    def test_destination_set_release_only_own(self, target_dir: Path):
        """Releasing paths leaves other owners' claims alone."""
        claimed = DestinationSet()
        claimed.claim(target_dir / "a", "one")
        claimed.claim(target_dir / "b", "two")

        claimed.release([target_dir / "a", target_dir / "b"], "one")

        assert target_dir / "a" not in claimed
        assert claimed.owner(target_dir / "b") == "two"
        assert len(claimed) == 1
