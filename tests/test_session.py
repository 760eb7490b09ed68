from __future__ import annotations

import pytest

from splitrunner import lss
from splitrunner.core import STATE_COMPLETED, STATE_NOT_STARTED, STATE_RUNNING
from splitrunner.errors import RunFileError
from splitrunner.session import SplitSession


@pytest.fixture
def session(sample_lss_path, hotkey_config, clock, wall_clock):
    return SplitSession(
        sample_lss_path,
        lss.load_run(sample_lss_path),
        hotkey_config,
        clock=clock,
        wall_clock=wall_clock,
    )


def test_unbound_or_unavailable_keys_do_nothing(session):
    assert session.handle_key("x") is None
    assert session.handle_key("z") is None
    assert session.handle_action("undo") == "ignored"
    assert session.engine.state == STATE_NOT_STARTED


def test_split_through_run(session, clock):
    assert session.handle_key("space") == "started"
    assert session.engine.state == STATE_RUNNING

    clock.set_elapsed_ms(session.engine, 11_000)
    assert session.handle_key("space") == "split"
    clock.set_elapsed_ms(session.engine, 28_000)
    assert session.handle_key("space") == "completed"
    assert session.engine.state == STATE_COMPLETED
    assert "personal best" in session.status

    assert session.handle_key("z") == "resumed"
    assert session.engine.state == STATE_RUNNING
    assert session.handle_key("z") == "undone"


def test_skip_action(session):
    session.handle_key("space")
    assert session.handle_key("k") == "skipped"
    assert session.engine.results[0].skipped


def test_reset_cancel_and_discard(session, clock):
    session.handle_key("space")
    clock.set_elapsed_ms(session.engine, 5_000)
    session.handle_key("space")

    assert session.handle_key("r") == "reset_requested"
    assert session.handle_key("space") is None
    assert session.handle_key("esc") == "reset_cancelled"
    assert session.engine.current_split == 1

    session.handle_key("r")
    assert session.handle_key("y") == "reset"
    assert session.engine.state == STATE_NOT_STARTED
    assert lss.load_run(session.run_path).attempt_count == 2


def test_save_and_reset_persists_attempt(session, clock):
    session.handle_key("space")
    clock.set_elapsed_ms(session.engine, 5_000)
    session.handle_key("space")
    session.handle_key("r")

    assert session.handle_key("s") == "saved"
    assert session.status == "Saved attempt #3."
    assert session.last_error is None
    assert session.engine.state == STATE_NOT_STARTED
    assert session.definition.attempt_count == 3

    reloaded = lss.load_run(session.run_path)
    assert reloaded.attempt_count == 3
    assert reloaded.segments[0].history_ms()[-1] == 5_000
    assert reloaded.segments[0].gold_ms == 5_000


def test_save_failure_keeps_confirmation(session, clock, monkeypatch):
    import splitrunner.persistence as persistence

    def _fail(path, definition):
        raise RunFileError(f"error writing file {path}: disk full")

    monkeypatch.setattr(persistence, "save_run", _fail)
    session.handle_key("space")
    clock.set_elapsed_ms(session.engine, 5_000)
    session.handle_key("space")
    session.handle_key("r")

    assert session.handle_key("s") == "save_failed"
    assert "disk full" in session.last_error
    assert session.engine.confirming_reset is True
    assert session.engine.results[0].elapsed_ms == 5_000
    assert session.handle_key("n") == "reset_cancelled"


def test_edit_only_before_start(session):
    assert session.handle_key("e") == "edit"
    session.handle_key("space")
    assert session.handle_key("e") is None


def test_structural_edits_reinitialize_engine(session):
    assert session.insert_segment_after(0, "Bridge") is True
    assert [s.name for s in session.definition.segments] == ["Forest", "Bridge", "Castle"]
    assert len(session.engine.results) == 3

    assert session.move_segment_up(2) is True
    assert session.rename_segment(0, "Woods") is True
    assert [s.name for s in session.definition.segments] == ["Woods", "Castle", "Bridge"]

    assert session.remove_segment(2) is True
    assert session.remove_segment(9) is False
    assert len(session.engine.results) == 2


def test_edits_are_reset_mid_run(session):
    session.handle_key("space")
    session.insert_segment_after(1, "Extra")
    assert session.engine.state == STATE_NOT_STARTED
    assert len(session.engine.results) == 3


def test_save_definition_and_discard(session):
    session.rename_segment(0, "Woods")
    session.save_definition()
    assert lss.load_run(session.run_path).segments[0].name == "Woods"

    session.move_segment_down(0)
    session.discard_edits()
    assert [s.name for s in session.definition.segments] == ["Woods", "Castle"]
    assert session.status == "Edits discarded."
