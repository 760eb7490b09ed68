from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Callable
import logging
import time

from .config import HotkeyConfig
from .core import STATE_NOT_STARTED, RunEngine, now_utc
from .errors import RunFileError
from .hotkeys import (
    ACTION_CANCEL,
    ACTION_CONFIRM,
    ACTION_EDIT,
    ACTION_QUIT,
    ACTION_RESET,
    ACTION_SAVE_RESET,
    ACTION_SKIP,
    ACTION_SPLIT,
    ACTION_UNDO,
    available_actions,
    available_hotkeys_text,
    resolve_action,
)
from .lss import load_run, save_run
from .persistence import save_and_reset
from .runfile import RunDefinition


class SplitSession:
    """One open run file plus the engine timing it.

    Every UI event funnels through ``handle_key``/``handle_action`` so the
    host only needs to render ``status`` and the engine afterwards.
    """

    def __init__(
        self,
        run_path: Path,
        definition: RunDefinition,
        hotkey_config: HotkeyConfig,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.run_path = Path(run_path)
        self.hotkey_config = hotkey_config
        self.engine = RunEngine(definition, clock=clock, wall_clock=wall_clock)
        self.log = logging.getLogger("splitrunner.session")
        self.status = ""
        self.last_error: str | None = None

    @property
    def definition(self) -> RunDefinition:
        return self.engine.definition

    def available_actions(self) -> frozenset[str]:
        return available_actions(self.engine)

    def hotkeys_text(self) -> str:
        return available_hotkeys_text(self.hotkey_config.bindings, self.engine)

    def tick(self) -> int:
        return self.engine.tick()

    def handle_key(self, key: str, source: str = "window") -> str | None:
        action = resolve_action(key, self.hotkey_config.bindings, self.engine)
        if action is None:
            return None
        return self.handle_action(action, source)

    def handle_action(self, action: str, source: str = "unknown") -> str:
        self.log.info("action_received source=%s action=%s state=%s", source, action, self.engine.state)
        if action not in self.available_actions():
            self.log.info("action_ignored source=%s action=%s state=%s", source, action, self.engine.state)
            return "ignored"

        engine = self.engine
        result = "ignored"
        if action == ACTION_QUIT:
            result = "quit"

        elif action == ACTION_SPLIT:
            if engine.state == STATE_NOT_STARTED:
                engine.start()
                result = "started"
                self.status = "Run started."
            elif engine.split() is not None:
                result = "completed" if engine.completed else "split"
                if engine.completed:
                    self.status = "Run complete. New personal best!" if engine.is_personal_best() else "Run complete."
                else:
                    self.status = ""

        elif action == ACTION_SKIP:
            if engine.skip():
                result = "skipped"
                self.status = "Split skipped."

        elif action == ACTION_UNDO:
            was_completed = engine.completed
            if engine.undo():
                result = "resumed" if was_completed else "undone"
                self.status = "Run resumed." if was_completed else "Split undone."

        elif action == ACTION_RESET:
            if engine.request_reset():
                result = "reset_requested"
                self.status = "Reset run? (Y)es, (S)ave and reset, (N)o"

        elif action == ACTION_CONFIRM:
            if engine.confirm_reset():
                result = "reset"
                self.status = "Run reset without saving."

        elif action == ACTION_SAVE_RESET:
            result = self._save_and_reset()

        elif action == ACTION_CANCEL:
            if engine.cancel_reset():
                result = "reset_cancelled"
                self.status = ""

        elif action == ACTION_EDIT:
            result = "edit"

        self.log.info(
            "action_applied source=%s action=%s result=%s state=%s split=%s elapsed_ms=%s",
            source,
            action,
            result,
            self.engine.state,
            self.engine.current_split,
            self.engine.current_elapsed_ms,
        )
        return result

    def _save_and_reset(self) -> str:
        try:
            merged = save_and_reset(self.run_path, self.engine)
        except RunFileError as exc:
            # Engine stays in the reset confirmation so the save can be retried or discarded.
            self.last_error = str(exc)
            self.status = f"Save failed: {exc}"
            self.log.exception("run_save_failed path=%s", self.run_path)
            return "save_failed"
        self.last_error = None
        self.status = f"Saved attempt #{merged.attempts[-1].attempt_id}."
        return "saved"

    # Structural editing. Each edit restarts the engine with the new segment count.

    def _after_edit(self, changed: bool) -> bool:
        if changed:
            self.engine.reinitialize()
        return changed

    def insert_segment_after(self, index: int, name: str) -> bool:
        return self._after_edit(self.definition.insert_after(index, name))

    def remove_segment(self, index: int) -> bool:
        return self._after_edit(self.definition.remove(index))

    def rename_segment(self, index: int, name: str) -> bool:
        return self._after_edit(self.definition.rename(index, name))

    def move_segment_up(self, index: int) -> bool:
        return self._after_edit(self.definition.move_up(index))

    def move_segment_down(self, index: int) -> bool:
        return self._after_edit(self.definition.move_down(index))

    def save_definition(self) -> None:
        """Write structural edits to disk. Raises RunFileError."""
        save_run(self.run_path, self.definition)
        self.status = "Splits saved."

    def discard_edits(self) -> None:
        """Reload the run file, dropping unsaved structural edits."""
        self.engine.reinitialize(load_run(self.run_path))
        self.status = "Edits discarded."
