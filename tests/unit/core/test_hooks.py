"""Tests for pez.core.hooks module."""

import logging
import subprocess
from unittest.mock import MagicMock

import pytest

from pez.core.hooks import HookEmitter, HookEvent


class TestHookEvent:
    """Tests for HookEvent."""

    def test_name(self):
        """Event names join stem and event with an underscore."""
        assert HookEvent("nvm", "install").name == "nvm_install"


class TestHookEmitter:
    """Tests for HookEmitter.emit()."""

    def test_suppressed_records_without_running(self):
        """Suppressed emitters only record."""
        runner = MagicMock()
        emitter = HookEmitter(suppress=True, runner=runner)

        emitter.emit(["a", "b"], "update")

        assert [e.name for e in emitter.events] == ["a_update", "b_update"]
        runner.assert_not_called()

    def test_runs_fish_emit(self):
        """Each event is emitted through fish -c."""
        runner = MagicMock(return_value=subprocess.CompletedProcess([], 0, "", ""))
        emitter = HookEmitter(runner=runner, fish="/usr/bin/fish")

        emitter.emit(["nvm"], "uninstall")

        runner.assert_called_once_with(
            ["/usr/bin/fish", "-c", "emit nvm_uninstall"],
            capture_output=True,
            text=True,
            check=False,
        )

    def test_no_stems_no_events(self):
        """Plugins without conf.d files emit nothing."""
        runner = MagicMock()
        emitter = HookEmitter(runner=runner)

        emitter.emit([], "install")

        assert emitter.events == []
        runner.assert_not_called()

    def test_missing_fish_is_a_warning(self, caplog: pytest.LogCaptureFixture):
        """A missing fish binary is logged, not raised."""
        runner = MagicMock(side_effect=FileNotFoundError("fish"))
        emitter = HookEmitter(runner=runner)

        with caplog.at_level(logging.WARNING, logger="pez.core.hooks"):
            emitter.emit(["x"], "install")

        assert "fish not found" in caplog.text
        assert len(emitter.events) == 1

    def test_failed_emit_is_logged(self, caplog: pytest.LogCaptureFixture):
        """A non-zero exit is logged as an error and later events still run."""
        runner = MagicMock(return_value=subprocess.CompletedProcess([], 2, "", "boom"))
        emitter = HookEmitter(runner=runner)

        with caplog.at_level(logging.ERROR, logger="pez.core.hooks"):
            emitter.emit(["x", "y"], "install")

        assert "x_install failed" in caplog.text
        assert runner.call_count == 2
