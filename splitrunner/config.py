from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import json
import logging

from .errors import ConfigError
from .hotkeys import ACTION_ORDER, ACTION_TITLES, Binding, normalize_key


@dataclass
class HotkeyConfig:
    bindings: list[Binding] = field(default_factory=list)
    global_hotkeys: bool = False
    repeat_guard_ms: int = 150

    @property
    def keys(self) -> list[str]:
        return [b.key for b in self.bindings]


def default_hotkey_config_data() -> dict[str, object]:
    return {
        "global_hotkeys": False,
        "repeat_guard_ms": 150,
        "bindings": [
            {"key": "space", "action": "split", "label": "Start/Split"},
            {"key": "r", "action": "reset", "label": "Reset"},
            {"key": "z", "action": "undo", "label": "Undo Split"},
            {"key": "q", "action": "quit", "label": "Quit"},
            {"key": "y", "action": "confirm", "label": "Confirm"},
            {"key": "s", "action": "save_reset", "label": "Save and Reset"},
            {"key": "n", "action": "cancel", "label": "Cancel"},
            {"key": "esc", "action": "cancel", "label": "Cancel"},
            {"key": "k", "action": "skip", "label": "Skip Split"},
            {"key": "e", "action": "edit", "label": "Edit Splits"},
        ],
    }


def _parse_bindings(raw: object, logger: logging.Logger, config_path: Path) -> list[Binding]:
    if not isinstance(raw, list):
        raise ConfigError(f"'bindings' must be a list in {config_path}")
    bindings: list[Binding] = []
    for entry in raw:
        if not isinstance(entry, dict):
            logger.warning("hotkey_config_invalid_entry entry=%r path=%s", entry, config_path)
            continue
        action = str(entry.get("action", ""))
        key = normalize_key(str(entry.get("key", "")))
        if action not in ACTION_ORDER or not key:
            logger.warning(
                "hotkey_config_invalid_binding key=%r action=%r path=%s",
                entry.get("key"),
                action,
                config_path,
            )
            continue
        label = str(entry.get("label") or ACTION_TITLES[action])
        bindings.append(Binding(key=key, action=action, label=label))
    return bindings


def parse_hotkey_config(raw: dict[str, object], config_path: Path, logger: logging.Logger | None = None) -> HotkeyConfig:
    logger = logger or logging.getLogger("splitrunner.config")
    defaults = default_hotkey_config_data()
    bindings = _parse_bindings(raw.get("bindings", defaults["bindings"]), logger, config_path)
    try:
        repeat_guard_ms = int(raw.get("repeat_guard_ms", defaults["repeat_guard_ms"]))  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid repeat_guard_ms in {config_path}: {exc}") from exc
    return HotkeyConfig(
        bindings=bindings,
        global_hotkeys=bool(raw.get("global_hotkeys", defaults["global_hotkeys"])),
        repeat_guard_ms=repeat_guard_ms,
    )


def load_hotkey_config(config_path: Path, log: logging.Logger | None = None) -> HotkeyConfig:
    """Read the binding config; a missing file means the default bindings."""
    config_path = Path(config_path)
    logger = log or logging.getLogger("splitrunner.config")

    if not config_path.exists():
        logger.info("hotkey_config_missing path=%s fallback=defaults", config_path)
        return parse_hotkey_config(default_hotkey_config_data(), config_path, logger)

    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigError(f"error loading hotkey config {config_path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"hotkey config {config_path} must be a JSON object")

    cfg = parse_hotkey_config(raw, config_path, logger)
    logger.info(
        "hotkey_config_loaded path=%s bindings=%s global_hotkeys=%s repeat_guard_ms=%s",
        config_path,
        len(cfg.bindings),
        cfg.global_hotkeys,
        cfg.repeat_guard_ms,
    )
    return cfg

