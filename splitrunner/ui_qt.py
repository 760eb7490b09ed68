from __future__ import annotations

import logging
from queue import Empty, Queue
import sys

from .core import STATE_COMPLETED, STATE_RUNNING
from .errors import RunFileError
from .hotkeys import (
    ACTION_CANCEL,
    ACTION_CONFIRM,
    ACTION_EDIT,
    ACTION_ORDER,
    ACTION_RESET,
    ACTION_SAVE_RESET,
    ACTION_SKIP,
    ACTION_SPLIT,
    ACTION_TITLES,
    ACTION_UNDO,
    HotkeyBackend,
)
from .session import SplitSession
from .timecodec import format_delta, format_display


TICK_INTERVAL_MS = 10

AHEAD_COLOR = "#1B9E3E"
BEHIND_COLOR = "#C62828"
GOLD_COLOR = "#C9A227"
PB_COLOR = "#86868b"


def _qt_imports():
    from PySide6.QtCore import QTimer, Qt
    from PySide6.QtGui import QKeySequence, QShortcut
    from PySide6.QtWidgets import (
        QApplication,
        QDialog,
        QFrame,
        QGridLayout,
        QHBoxLayout,
        QInputDialog,
        QLabel,
        QListWidget,
        QMessageBox,
        QPushButton,
        QVBoxLayout,
        QWidget,
    )

    return {
        "QApplication": QApplication,
        "QDialog": QDialog,
        "QFrame": QFrame,
        "QGridLayout": QGridLayout,
        "QHBoxLayout": QHBoxLayout,
        "QInputDialog": QInputDialog,
        "QKeySequence": QKeySequence,
        "QLabel": QLabel,
        "QListWidget": QListWidget,
        "QMessageBox": QMessageBox,
        "QPushButton": QPushButton,
        "QShortcut": QShortcut,
        "QTimer": QTimer,
        "Qt": Qt,
        "QVBoxLayout": QVBoxLayout,
        "QWidget": QWidget,
    }


def key_to_qt_portable(key: str) -> str:
    if not key:
        return ""
    out: list[str] = []
    for p in key.split("+"):
        out.append(
            {
                "cmd": "Meta",
                "ctrl": "Ctrl",
                "alt": "Alt",
                "shift": "Shift",
                "enter": "Return",
                "esc": "Esc",
                "space": "Space",
                "tab": "Tab",
                "up": "Up",
                "down": "Down",
            }.get(p, p.upper() if len(p) == 1 else p.title())
        )
    return "+".join(out)


class SplitRunnerQtApp:
    BUTTON_ACTIONS = (ACTION_SPLIT, ACTION_SKIP, ACTION_UNDO, ACTION_RESET, ACTION_EDIT)
    CONFIRM_BUTTON_ACTIONS = (ACTION_CONFIRM, ACTION_SAVE_RESET, ACTION_CANCEL)

    def __init__(self, session: SplitSession, start_in_edit: bool = False) -> None:
        self.qt = _qt_imports()
        self.QTimer = self.qt["QTimer"]
        self.Qt = self.qt["Qt"]
        self.QApplication = self.qt["QApplication"]
        self.QWidget = self.qt["QWidget"]
        self.QVBoxLayout = self.qt["QVBoxLayout"]
        self.QHBoxLayout = self.qt["QHBoxLayout"]
        self.QGridLayout = self.qt["QGridLayout"]
        self.QFrame = self.qt["QFrame"]
        self.QLabel = self.qt["QLabel"]
        self.QListWidget = self.qt["QListWidget"]
        self.QPushButton = self.qt["QPushButton"]
        self.QShortcut = self.qt["QShortcut"]
        self.QKeySequence = self.qt["QKeySequence"]
        self.QDialog = self.qt["QDialog"]
        self.QInputDialog = self.qt["QInputDialog"]
        self.QMessageBox = self.qt["QMessageBox"]

        self.log = logging.getLogger("splitrunner.ui")
        self.session = session
        self.start_in_edit = start_in_edit
        # Global hotkeys arrive on the pynput thread; everything else is drained on the UI thread.
        self.command_queue: Queue[tuple[str, str]] = Queue()
        self.hotkeys: HotkeyBackend | None = None
        if session.hotkey_config.global_hotkeys:
            self.hotkeys = HotkeyBackend(
                lambda key: self.command_queue.put(("global_hotkey", key)),
                session.hotkey_config.keys,
                repeat_guard_ms=session.hotkey_config.repeat_guard_ms,
            )

        self.qt_app = self.QApplication.instance() or self.QApplication(sys.argv)
        self.window = self.QWidget()
        self.window.setWindowTitle("splitrunner")
        self.window.setWindowFlag(self.Qt.WindowStaysOnTopHint, True)
        self.window.setMinimumWidth(420)
        self.window.setObjectName("MainWindow")

        self._qt_shortcuts: list[object] = []
        self._segment_rows: list[tuple[object, object, object]] = []
        self._build_theme()
        self._build_ui()
        self._rebuild_segment_rows()
        self._refresh()

        self.ui_timer = self.QTimer(self.window)
        self.ui_timer.timeout.connect(self._tick)  # type: ignore[attr-defined]
        self.ui_timer.start(TICK_INTERVAL_MS)

    def _build_theme(self) -> None:
        self.window.setStyleSheet(
            """
            QWidget#MainWindow { background: #111827; color: #e5e7eb; }
            QLabel#Title { font-size: 18px; font-weight: 700; color: #f472b6; }
            QLabel#Meta { font-size: 12px; color: #9ca3af; }
            QLabel#Timer {
                font-family: "SF Mono", Menlo, Monaco, "Courier New", monospace;
                font-size: 44px; font-weight: 700;
            }
            QLabel#Segment { font-size: 14px; }
            QLabel#Status { font-size: 13px; padding: 6px 10px; border-radius: 10px; }
            QLabel#Help { font-size: 11px; color: #9ca3af; }
            QPushButton {
                background: #1f2937; color: #e5e7eb; border: 1px solid #374151;
                border-radius: 8px; padding: 4px 12px; min-height: 26px;
            }
            QPushButton:disabled { color: #4b5563; border-color: #1f2937; }
            QPushButton#Danger { color: #fca5a5; }
            """
        )

    def _build_ui(self) -> None:
        vbox = self.QVBoxLayout(self.window)
        vbox.setContentsMargins(16, 16, 16, 16)
        vbox.setSpacing(10)

        self.title_label = self.QLabel()
        self.title_label.setObjectName("Title")
        self.title_label.setAlignment(self.Qt.AlignCenter)
        vbox.addWidget(self.title_label)
        self.category_label = self.QLabel()
        self.category_label.setObjectName("Meta")
        self.category_label.setAlignment(self.Qt.AlignCenter)
        vbox.addWidget(self.category_label)
        self.sob_label = self.QLabel()
        self.sob_label.setObjectName("Meta")
        self.sob_label.setAlignment(self.Qt.AlignCenter)
        vbox.addWidget(self.sob_label)

        self.segments_frame = self.QFrame()
        self.segments_grid = self.QGridLayout(self.segments_frame)
        self.segments_grid.setColumnStretch(0, 1)
        self.segments_grid.setHorizontalSpacing(16)
        vbox.addWidget(self.segments_frame)

        self.timer_label = self.QLabel()
        self.timer_label.setObjectName("Timer")
        self.timer_label.setAlignment(self.Qt.AlignRight)
        vbox.addWidget(self.timer_label)

        self.previous_label = self.QLabel()
        self.previous_label.setObjectName("Meta")
        vbox.addWidget(self.previous_label)

        self.buttons: dict[str, object] = {}
        row1 = self.QHBoxLayout()
        for action in self.BUTTON_ACTIONS:
            row1.addWidget(self._make_button(action))
        row1.addStretch(1)
        vbox.addLayout(row1)

        row2 = self.QHBoxLayout()
        for action in self.CONFIRM_BUTTON_ACTIONS:
            btn = self._make_button(action)
            if action == ACTION_CONFIRM:
                btn.setObjectName("Danger")
            row2.addWidget(btn)
        row2.addStretch(1)
        vbox.addLayout(row2)

        self.status_label = self.QLabel()
        self.status_label.setObjectName("Status")
        self.status_label.setWordWrap(True)
        vbox.addWidget(self.status_label)

        self.help_label = self.QLabel()
        self.help_label.setObjectName("Help")
        self.help_label.setWordWrap(True)
        vbox.addWidget(self.help_label)

        self._rebuild_qt_shortcuts()

    def _make_button(self, action: str):
        btn = self.QPushButton(ACTION_TITLES[action])
        # Keys must reach the shortcuts, not a focused button.
        btn.setFocusPolicy(self.Qt.NoFocus)
        btn.clicked.connect(lambda a=action: self.handle_action(a, "button"))  # type: ignore[attr-defined]
        self.buttons[action] = btn
        return btn

    def _rebuild_segment_rows(self) -> None:
        while self.segments_grid.count():
            item = self.segments_grid.takeAt(0)
            widget = item.widget()
            if widget is not None:
                widget.deleteLater()
        self._segment_rows = []
        for i, segment in enumerate(self.session.definition.segments):
            name = self.QLabel(segment.name)
            name.setObjectName("Segment")
            delta = self.QLabel()
            delta.setObjectName("Segment")
            delta.setAlignment(self.Qt.AlignRight)
            time_label = self.QLabel()
            time_label.setObjectName("Segment")
            time_label.setAlignment(self.Qt.AlignRight)
            self.segments_grid.addWidget(name, i, 0)
            self.segments_grid.addWidget(delta, i, 1)
            self.segments_grid.addWidget(time_label, i, 2)
            self._segment_rows.append((name, delta, time_label))

    def _rebuild_qt_shortcuts(self) -> None:
        for sc in self._qt_shortcuts:
            sc.setEnabled(False)
            sc.deleteLater()
        self._qt_shortcuts = []
        if self.hotkeys is not None and self.hotkeys.available:
            return

        for key in sorted(set(self.session.hotkey_config.keys)):
            portable = key_to_qt_portable(key)
            seq = self.QKeySequence(portable)
            if seq.isEmpty():
                self.log.warning("qt_shortcut_invalid key=%s", key)
                continue
            sc = self.QShortcut(seq, self.window)
            sc.setContext(self.Qt.WindowShortcut)
            sc.activated.connect(lambda k=key: self.handle_key(k, "local_hotkey"))  # type: ignore[attr-defined]
            self._qt_shortcuts.append(sc)

    def _refresh_segments(self) -> None:
        engine = self.session.engine
        for i, (name, delta, time_label) in enumerate(self._segment_rows):
            segment = engine.definition.segments[i]
            result = engine.results[i]
            name.setText(segment.name)
            weight = "700" if i == engine.current_split else "400"
            if i < engine.current_split and result.recorded:
                color = GOLD_COLOR if result.gold else (
                    AHEAD_COLOR if result.delta_ms is not None and result.delta_ms < 0 else BEHIND_COLOR
                )
                delta.setText(format_delta(result.delta_ms))
                delta.setStyleSheet(f"color: {color}; font-weight: {weight};")
                time_label.setText(format_display(result.elapsed_ms))
                time_label.setStyleSheet(f"font-weight: {weight};")
            elif i < engine.current_split and result.skipped:
                delta.setText("")
                time_label.setText("-")
                time_label.setStyleSheet(f"color: {PB_COLOR};")
            else:
                pb_ms = segment.pb_ms
                delta.setText("")
                time_label.setText(format_display(pb_ms) if pb_ms is not None else "-")
                time_label.setStyleSheet(f"color: {PB_COLOR}; font-weight: {weight};")
            name.setStyleSheet(f"font-weight: {weight};")

    def _timer_color(self) -> str:
        engine = self.session.engine
        if engine.state == STATE_COMPLETED or engine.current_split <= 0:
            return "#f472b6"
        last = engine.results[engine.current_split - 1]
        if last.delta_ms is not None and last.delta_ms < 0:
            return AHEAD_COLOR
        return BEHIND_COLOR

    def _refresh(self) -> None:
        engine = self.session.engine
        definition = engine.definition
        self.title_label.setText(definition.game_name or "Untitled")
        self.category_label.setText(f"{definition.category_name}  ·  Attempts: {definition.attempt_count}")
        sob = engine.sum_of_best()
        self.sob_label.setText(f"Sum of Best: {format_display(sob)}" if sob is not None else "")
        self._refresh_segments()
        self._refresh_timer()

        prev = engine.previous_segment_delta()
        self.previous_label.setText(f"Previous Segment: {format_delta(prev)}" if prev is not None else "")

        allowed = self.session.available_actions()
        for action, btn in self.buttons.items():
            btn.setEnabled(action in allowed)
            btn.setVisible(action not in self.CONFIRM_BUTTON_ACTIONS or engine.confirming_reset)

        self.status_label.setText(self.session.status)
        if self.session.last_error:
            self.status_label.setStyleSheet("QLabel#Status { background: rgba(198,40,40,60); color: #fca5a5; }")
        elif engine.confirming_reset:
            self.status_label.setStyleSheet("QLabel#Status { background: #374151; color: #fca5a5; font-weight: 700; }")
        else:
            self.status_label.setStyleSheet("")
        self.help_label.setText(self.session.hotkeys_text())

    def _refresh_timer(self) -> None:
        self.timer_label.setText(format_display(self.session.engine.current_elapsed_ms))
        self.timer_label.setStyleSheet(f"color: {self._timer_color()};")

    def _drain_queue(self) -> None:
        while True:
            try:
                source, key = self.command_queue.get_nowait()
            except Empty:
                break
            self.handle_key(key, source)

    def _tick(self) -> None:
        self._drain_queue()
        if self.session.engine.state == STATE_RUNNING:
            self.session.tick()
            self._refresh_timer()

    def handle_key(self, key: str, source: str) -> None:
        action = self.session.handle_key(key, source)
        if action is not None:
            self._after_action(action)

    def handle_action(self, action: str, source: str) -> None:
        self._after_action(self.session.handle_action(action, source))

    def _after_action(self, result: str) -> None:
        if result == "quit":
            self.log.info("quit_requested")
            self.qt_app.quit()
            return
        if result == "edit":
            self._open_edit_dialog()
        elif result == "save_failed":
            self.QMessageBox.warning(self.window, "Save failed", self.session.last_error or "unknown error")
        self._refresh()

    def _open_edit_dialog(self) -> None:
        dlg = self.QDialog(self.window)
        dlg.setWindowTitle("Edit Splits")
        dlg.setModal(True)
        dlg.resize(420, 460)

        layout = self.QVBoxLayout(dlg)
        layout.setContentsMargins(20, 16, 20, 16)
        layout.setSpacing(10)

        segment_list = self.QListWidget()
        layout.addWidget(segment_list)

        def _reload(select: int) -> None:
            segment_list.clear()
            for segment in self.session.definition.segments:
                segment_list.addItem(segment.name)
            if segment_list.count():
                segment_list.setCurrentRow(max(0, min(select, segment_list.count() - 1)))

        def _current() -> int:
            return segment_list.currentRow()

        def _add() -> None:
            index = _current()
            if self.session.insert_segment_after(index, "New Split"):
                _reload(index + 1)

        def _remove() -> None:
            index = _current()
            if self.session.remove_segment(index):
                _reload(index)

        def _rename() -> None:
            index = _current()
            if index < 0:
                return
            name, ok = self.QInputDialog.getText(
                dlg, "Rename Split", "Name:", text=self.session.definition.segments[index].name
            )
            if ok and self.session.rename_segment(index, name):
                _reload(index)

        def _move_up() -> None:
            index = _current()
            if self.session.move_segment_up(index):
                _reload(index - 1)

        def _move_down() -> None:
            index = _current()
            if self.session.move_segment_down(index):
                _reload(index + 1)

        edit_row = self.QHBoxLayout()
        for title, handler in (
            ("Add", _add),
            ("Remove", _remove),
            ("Rename", _rename),
            ("Up", _move_up),
            ("Down", _move_down),
        ):
            btn = self.QPushButton(title)
            btn.clicked.connect(handler)  # type: ignore[attr-defined]
            edit_row.addWidget(btn)
        layout.addLayout(edit_row)

        btn_row = self.QHBoxLayout()
        btn_row.addStretch(1)
        btn_cancel = self.QPushButton("Cancel")
        btn_cancel.clicked.connect(dlg.reject)  # type: ignore[attr-defined]
        btn_row.addWidget(btn_cancel)
        btn_save = self.QPushButton("Save")
        btn_row.addWidget(btn_save)
        layout.addLayout(btn_row)

        def _save() -> None:
            try:
                self.session.save_definition()
            except RunFileError as exc:
                self.log.exception("qt_edit_save_failed")
                self.QMessageBox.critical(dlg, "Save Error", str(exc))
                return
            dlg.accept()

        btn_save.clicked.connect(_save)  # type: ignore[attr-defined]
        _reload(0)

        if not dlg.exec():
            try:
                self.session.discard_edits()
            except RunFileError as exc:
                self.log.exception("qt_edit_discard_failed")
                self.QMessageBox.critical(self.window, "Reload Error", str(exc))
        self._rebuild_segment_rows()
        self._refresh()

    def run(self) -> None:
        if self.hotkeys is not None:
            self.hotkeys.start()
            if self.hotkeys.available:
                self._rebuild_qt_shortcuts()
                self.session.status = "Global hotkeys active."
            else:
                self.session.status = f"{self.hotkeys.error} (window hotkeys still work)"
                self.log.warning("global_hotkeys_unavailable error=%s", self.hotkeys.error)
        self.log.info("ui_start actions=%s", ",".join(ACTION_ORDER))
        self._refresh()

        self.window.show()
        if self.start_in_edit:
            self._open_edit_dialog()
        try:
            self.qt_app.exec()
        finally:
            if self.hotkeys is not None:
                self.hotkeys.stop()
