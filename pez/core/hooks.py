"""Lifecycle notifications for conf.d snippets.

Each affected ``conf.d`` file stem produces a ``<stem>_<event>`` fish event.
Events are always recorded; unless suppressed they are also emitted by running
``fish -c "emit <stem>_<event>"``.
"""

import logging
import subprocess
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

logger = logging.getLogger(__name__)

HookEventKind = Literal["install", "update", "uninstall"]


@dataclass(frozen=True)
class HookEvent:
    stem: str
    event: HookEventKind

    @property
    def name(self) -> str:
        return f"{self.stem}_{self.event}"


class HookEmitter:
    """Records hook events and dispatches them to fish."""

    def __init__(
        self,
        suppress: bool = False,
        runner: Callable[..., Any] = subprocess.run,
        fish: str = "fish",
    ):
        """Initialize the emitter.

        Args:
            suppress: Record events without running fish
            runner: subprocess.run compatible callable
            fish: fish executable
        """
        self.suppress = suppress
        self.events: list[HookEvent] = []
        self._runner = runner
        self._fish = fish

    def emit(self, stems: list[str], event: HookEventKind) -> None:
        for stem in stems:
            hook = HookEvent(stem, event)
            self.events.append(hook)
            if self.suppress:
                logger.debug("Suppressed event %s", hook.name)
                continue
            self._dispatch(hook)

    def _dispatch(self, hook: HookEvent) -> None:
        try:
            result = self._runner(
                [self._fish, "-c", f"emit {hook.name}"],
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError:
            logger.warning("fish not found, cannot emit %s", hook.name)
            return
        if result.returncode != 0:
            logger.error("Emitting %s failed with exit code %d", hook.name, result.returncode)
        else:
            logger.debug("Emitted event %s", hook.name)
