from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable
import logging
import sys
import time

from .core import RunEngine


KeyHandler = Callable[[str], None]

ACTION_SPLIT = "split"
ACTION_RESET = "reset"
ACTION_UNDO = "undo"
ACTION_QUIT = "quit"
ACTION_CONFIRM = "confirm"
ACTION_SAVE_RESET = "save_reset"
ACTION_CANCEL = "cancel"
ACTION_SKIP = "skip"
ACTION_EDIT = "edit"

ACTION_ORDER = (
    ACTION_SPLIT,
    ACTION_SKIP,
    ACTION_UNDO,
    ACTION_RESET,
    ACTION_CONFIRM,
    ACTION_SAVE_RESET,
    ACTION_CANCEL,
    ACTION_EDIT,
    ACTION_QUIT,
)

ACTION_TITLES = {
    ACTION_SPLIT: "Start/Split",
    ACTION_RESET: "Reset",
    ACTION_UNDO: "Undo Split",
    ACTION_QUIT: "Quit",
    ACTION_CONFIRM: "Confirm",
    ACTION_SAVE_RESET: "Save and Reset",
    ACTION_CANCEL: "Cancel",
    ACTION_SKIP: "Skip Split",
    ACTION_EDIT: "Edit Splits",
}

CONFIRM_ACTIONS = frozenset({ACTION_CONFIRM, ACTION_SAVE_RESET, ACTION_CANCEL})

_KEY_ALIASES = {
    " ": "space",
    "escape": "esc",
    "return": "enter",
    "command": "cmd",
    "option": "alt",
    "control": "ctrl",
    "meta": "cmd",
}
_MODIFIERS = ("ctrl", "alt", "shift", "cmd")


@dataclass(frozen=True)
class Binding:
    key: str
    action: str
    label: str


def normalize_key(key: str) -> str:
    """Canonical key identifier: ``"ctrl+shift+k"``, ``"space"``, ``"esc"``."""
    if key == " ":
        return "space"
    parts = [p.strip().lower() for p in key.split("+") if p.strip()]
    if not parts and "+" in key:
        return "+"
    mods: set[str] = set()
    name = ""
    for part in parts:
        part = _KEY_ALIASES.get(part, part)
        if part in _MODIFIERS:
            mods.add(part)
        else:
            name = part
    ordered = [m for m in _MODIFIERS if m in mods]
    if not name:
        return "+".join(ordered)
    return "+".join([*ordered, name])


def available_actions(engine: RunEngine) -> frozenset[str]:
    """Actions permitted for the engine's current state.

    Recomputed on every call; nothing is cached between transitions.
    """
    if engine.confirming_reset:
        return CONFIRM_ACTIONS

    allowed = {ACTION_QUIT}
    not_started = not engine.started and not engine.completed
    if not_started or (engine.started and not engine.completed):
        allowed.add(ACTION_SPLIT)
    if (engine.started and engine.current_split > 0 and not engine.completed) or engine.completed:
        allowed.add(ACTION_UNDO)
    if engine.started and not engine.completed and engine.current_split < engine.segment_count:
        allowed.add(ACTION_SKIP)
    if engine.started or engine.completed:
        allowed.add(ACTION_RESET)
    if not_started:
        allowed.add(ACTION_EDIT)
    return frozenset(allowed)


def resolve_action(key: str, bindings: Iterable[Binding], engine: RunEngine) -> str | None:
    token = normalize_key(key)
    allowed = available_actions(engine)
    for binding in bindings:
        if binding.key == token and binding.action in allowed:
            return binding.action
    return None


def available_hotkeys_text(bindings: Iterable[Binding], engine: RunEngine) -> str:
    allowed = available_actions(engine)
    keys_by_action: dict[str, list[str]] = {}
    labels: dict[str, str] = {}
    for binding in bindings:
        labels.setdefault(binding.action, binding.label)
        if binding.action in allowed:
            keys_by_action.setdefault(binding.action, []).append(binding.key)
    return "  ".join(
        f"{'/'.join(sorted(keys))}: {labels[action]}" for action, keys in keys_by_action.items()
    )


class HotkeyBackend:
    """Global keyboard hook feeding key identifiers to ``on_key``.

    Only keys present in ``bound_keys`` are reported. The callback runs on the
    pynput listener thread, so it should only enqueue.
    """

    def __init__(self, on_key: KeyHandler, bound_keys: Iterable[str], repeat_guard_ms: int = 150) -> None:
        self.on_key = on_key
        self._listener = None
        self.available = False
        self.error: str | None = None
        self.log = logging.getLogger("splitrunner.hotkeys")
        self._pressed_mods: set[str] = set()
        self._fired_keys: set[str] = set()
        self._last_fired_at: dict[str, float] = {}
        self.repeat_guard_ms = repeat_guard_ms
        self.bound_keys = frozenset(normalize_key(k) for k in bound_keys)

    def start(self) -> None:
        try:
            from pynput import keyboard  # type: ignore
        except Exception as exc:  # pragma: no cover
            self.error = f"pynput unavailable: {exc}"
            self.available = False
            return

        self.log.info("hotkeys_backend_start platform=%s keys=%s", sys.platform, sorted(self.bound_keys))
        try:
            self._listener = keyboard.Listener(
                on_press=self._make_on_press(keyboard),
                on_release=self._make_on_release(keyboard),
            )
            self._listener.start()
            self.available = True
        except Exception as exc:  # pragma: no cover
            self.error = f"global hotkeys unavailable: {exc}"
            self.log.exception("hotkeys_backend_failed")
            self.available = False

    def stop(self) -> None:
        if self._listener is not None:
            self._listener.stop()
            self._listener = None

    @staticmethod
    def _modifier_name(key: object, keyboard_module: object) -> str | None:
        Key = getattr(keyboard_module, "Key")
        if key in {Key.cmd, Key.cmd_l, Key.cmd_r}:
            return "cmd"
        if key in {Key.alt, Key.alt_l, Key.alt_r, getattr(Key, "alt_gr", None)}:
            return "alt"
        if key in {Key.ctrl, Key.ctrl_l, Key.ctrl_r}:
            return "ctrl"
        if key in {Key.shift, Key.shift_l, Key.shift_r}:
            return "shift"
        return None

    @staticmethod
    def _key_token(key: object, keyboard_module: object) -> str | None:
        KeyCode = getattr(keyboard_module, "KeyCode")
        if isinstance(key, KeyCode):
            ch = getattr(key, "char", None)
            return str(ch).lower() if ch else None
        key_name = getattr(key, "name", None)
        if key_name:
            return _KEY_ALIASES.get(str(key_name).lower(), str(key_name).lower())
        return None

    def key_event(self, token: str) -> str:
        return normalize_key("+".join([*sorted(self._pressed_mods), token]))

    def _make_on_press(self, keyboard_module: object):
        def _on_press(key: object) -> None:
            mod = self._modifier_name(key, keyboard_module)
            if mod:
                self._pressed_mods.add(mod)
                return
            token = self._key_token(key, keyboard_module)
            if not token or token in self._fired_keys:
                return
            self._fired_keys.add(token)
            combo = self.key_event(token)
            if combo not in self.bound_keys:
                return
            if self._should_throttle(combo):
                self.log.info("hotkey_throttled key=%s repeat_guard_ms=%s", combo, self.repeat_guard_ms)
                return
            self.on_key(combo)

        return _on_press

    def _make_on_release(self, keyboard_module: object):
        def _on_release(key: object) -> None:
            mod = self._modifier_name(key, keyboard_module)
            if mod:
                self._pressed_mods.discard(mod)
                return
            token = self._key_token(key, keyboard_module)
            if token:
                self._fired_keys.discard(token)

        return _on_release

    def _should_throttle(self, key: str) -> bool:
        now = time.monotonic()
        last = self._last_fired_at.get(key)
        self._last_fired_at[key] = now
        if last is None:
            return False
        return (now - last) * 1000 < max(self.repeat_guard_ms, 0)
