from __future__ import annotations

import copy

from conftest import WALL_START, make_definition

from splitrunner.core import (
    NOT_STARTED_INDEX,
    STATE_COMPLETED,
    STATE_NOT_STARTED,
    STATE_RUNNING,
    RunEngine,
)


def _engine(clock, wall_clock, **kwargs) -> RunEngine:
    return RunEngine(make_definition(**kwargs), clock=clock, wall_clock=wall_clock)


def test_new_engine_is_not_started(clock, wall_clock):
    engine = _engine(clock, wall_clock)
    assert engine.state == STATE_NOT_STARTED
    assert engine.current_split == NOT_STARTED_INDEX
    assert len(engine.results) == 3
    assert not any(r.recorded for r in engine.results)
    assert engine.tick() == 0


def test_start_sets_pointer_and_wall_time(clock, wall_clock):
    engine = _engine(clock, wall_clock)
    assert engine.start() is True
    assert engine.state == STATE_RUNNING
    assert engine.current_split == 0
    assert engine.started_at == WALL_START
    assert engine.start() is False


def test_tick_follows_clock(clock, wall_clock):
    engine = _engine(clock, wall_clock)
    engine.start()
    clock.advance_ms(1234)
    assert engine.tick() == 1234
    assert engine.current_elapsed_ms == 1234


def test_fresh_run_all_gold_and_personal_best(clock, wall_clock):
    engine = _engine(clock, wall_clock)
    engine.start()
    for elapsed in (10_000, 25_000, 40_000):
        clock.set_elapsed_ms(engine, elapsed)
        result = engine.split()
        assert result is not None
        assert result.gold is True
        assert result.delta_ms is None

    assert engine.state == STATE_COMPLETED
    assert engine.current_split == 3
    assert [r.elapsed_ms for r in engine.results] == [10_000, 25_000, 40_000]
    assert engine.segment_durations() == [10_000, 15_000, 15_000]
    assert engine.is_personal_best() is True


def test_split_against_existing_pb_and_golds(clock, wall_clock):
    engine = _engine(
        clock,
        wall_clock,
        pbs=["00:00:10.0000000", "00:00:25.0000000", "00:00:40.0000000"],
        golds=["00:00:09.0000000", "00:00:14.0000000", "00:00:15.0000000"],
    )
    engine.start()

    clock.set_elapsed_ms(engine, 9_500)
    first = engine.split()
    assert first.delta_ms == -500
    assert first.gold is False

    clock.set_elapsed_ms(engine, 23_000)
    second = engine.split()
    # 13.5s segment beats the 14s gold.
    assert second.gold is True
    assert second.delta_ms == -2_000
    assert engine.previous_segment_delta() == 13_500 - 15_000

    clock.set_elapsed_ms(engine, 41_000)
    third = engine.split()
    assert third.gold is False
    assert third.delta_ms == 1_000
    assert engine.is_personal_best() is False


def test_equal_time_is_not_gold(clock, wall_clock):
    engine = _engine(clock, wall_clock, golds=["00:00:10.0000000", "", ""])
    engine.start()
    clock.set_elapsed_ms(engine, 10_000)
    assert engine.split().gold is False


def test_skip_marks_result_and_advances(clock, wall_clock):
    engine = _engine(clock, wall_clock, golds=["00:00:05.0000000", "00:00:05.0000000", "00:00:05.0000000"])
    engine.start()
    clock.set_elapsed_ms(engine, 6_000)
    engine.split()
    assert engine.skip() is True
    assert engine.results[1].skipped
    assert not engine.results[1].recorded

    clock.set_elapsed_ms(engine, 9_000)
    result = engine.split()
    # 3s measured across the skipped segment never counts as a gold.
    assert result.gold is False
    assert engine.segment_ms(2) == 3_000
    assert engine.state == STATE_COMPLETED


def test_after_skip_without_stored_gold_is_gold(clock, wall_clock):
    engine = _engine(clock, wall_clock)
    engine.start()
    engine.skip()
    clock.set_elapsed_ms(engine, 7_000)
    assert engine.split().gold is True


def test_skipping_last_segment_completes_without_pb(clock, wall_clock):
    engine = _engine(clock, wall_clock)
    engine.start()
    clock.set_elapsed_ms(engine, 1_000)
    engine.split()
    engine.split()
    assert engine.skip() is True
    assert engine.state == STATE_COMPLETED
    assert engine.is_personal_best() is False
    assert engine.skip() is False


def test_undo_clears_previous_result(clock, wall_clock):
    engine = _engine(clock, wall_clock)
    assert engine.undo() is False
    engine.start()
    assert engine.undo() is False

    clock.set_elapsed_ms(engine, 4_000)
    engine.split()
    assert engine.undo() is True
    assert engine.current_split == 0
    assert not engine.results[0].recorded
    assert engine.state == STATE_RUNNING


def test_undo_after_completion_resumes_clock(clock, wall_clock):
    engine = _engine(clock, wall_clock, names=("Only",))
    engine.start()
    clock.set_elapsed_ms(engine, 30_000)
    engine.split()
    assert engine.state == STATE_COMPLETED

    clock.advance_ms(5_000)
    assert engine.tick() == 30_000

    assert engine.undo() is True
    assert engine.state == STATE_RUNNING
    assert engine.tick() == 30_000
    clock.advance_ms(250)
    assert engine.tick() == 30_250


def test_reset_then_cancel_leaves_state_identical(clock, wall_clock):
    engine = _engine(clock, wall_clock)
    engine.start()
    clock.set_elapsed_ms(engine, 10_000)
    engine.split()
    engine.tick()
    before = copy.deepcopy(
        (engine.current_split, engine.results, engine.started, engine.completed, engine.current_elapsed_ms)
    )

    assert engine.request_reset() is True
    assert engine.request_reset() is False
    clock.advance_ms(2_000)
    # Clock and splits are frozen while the prompt is up.
    assert engine.tick() == 10_000
    assert engine.split() is None
    assert engine.skip() is False
    assert engine.undo() is False

    assert engine.cancel_reset() is True
    after = (engine.current_split, engine.results, engine.started, engine.completed, engine.current_elapsed_ms)
    assert after == before
    assert engine.confirming_reset is False


def test_confirm_reset_discards_attempt(clock, wall_clock):
    engine = _engine(clock, wall_clock)
    assert engine.request_reset() is False
    engine.start()
    clock.set_elapsed_ms(engine, 3_000)
    engine.split()
    engine.request_reset()
    assert engine.confirm_reset() is True
    assert engine.state == STATE_NOT_STARTED
    assert engine.current_split == NOT_STARTED_INDEX
    assert engine.started_at is None
    assert not any(r.recorded for r in engine.results)
    assert engine.confirm_reset() is False


def test_reinitialize_resizes_results(clock, wall_clock):
    engine = _engine(clock, wall_clock)
    engine.start()
    engine.reinitialize(make_definition(names=("A", "B", "C", "D", "E")))
    assert engine.segment_count == 5
    assert len(engine.results) == 5
    assert engine.state == STATE_NOT_STARTED


def test_sum_of_best_and_pb_segments(clock, wall_clock):
    engine = _engine(
        clock,
        wall_clock,
        pbs=["00:00:10.0000000", "", "00:00:40.0000000"],
        golds=["00:00:09.0000000", "00:00:14.0000000", ""],
    )
    assert engine.sum_of_best() == 23_000
    assert engine.pb_segment_ms(0) == 10_000
    assert engine.pb_segment_ms(1) is None
    assert engine.pb_segment_ms(2) is None
    assert _engine(clock, wall_clock).sum_of_best() is None


def test_repeated_undo_from_completed_stops_at_first_segment(clock, wall_clock):
    engine = _engine(clock, wall_clock)
    engine.start()
    for elapsed in (10_000, 25_000, 40_000):
        clock.set_elapsed_ms(engine, elapsed)
        engine.split()
    assert engine.state == STATE_COMPLETED

    undone = 0
    while engine.undo():
        undone += 1

    assert undone == 3
    assert engine.state == STATE_RUNNING
    assert engine.current_split == 0
    assert not any(r.recorded for r in engine.results)
    # Leaving the run entirely goes through reset.
    assert engine.request_reset() is True
    assert engine.confirm_reset() is True
    assert engine.current_split == NOT_STARTED_INDEX
