from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Sequence
import copy
import logging

from .core import RunEngine, SplitResult
from .lss import save_run
from .runfile import Attempt, RunDefinition, SegmentTime
from .timecodec import format_persisted


ATTEMPT_TIMESTAMP_FORMAT = "%m/%d/%Y %H:%M:%S"

log = logging.getLogger("splitrunner.persistence")


def format_attempt_timestamp(dt: datetime) -> str:
    return dt.strftime(ATTEMPT_TIMESTAMP_FORMAT)


def merge_attempt(
    definition: RunDefinition,
    results: Sequence[SplitResult],
    is_pb: bool,
    started_at: datetime,
    ended_at: datetime,
) -> int:
    """Fold one attempt into ``definition`` in place and return its id.

    Segments without a captured time (skipped or never reached) keep their
    history and bests untouched.
    """
    attempt_id = definition.next_attempt_id()
    definition.attempts.append(
        Attempt(
            attempt_id=attempt_id,
            started=format_attempt_timestamp(started_at),
            ended=format_attempt_timestamp(ended_at),
        )
    )
    definition.attempt_count += 1

    previous_ms = 0
    for segment, result in zip(definition.segments, results):
        if not result.recorded:
            continue
        elapsed = result.elapsed_ms
        isolated = elapsed - previous_ms
        previous_ms = elapsed
        segment.history.append(SegmentTime(attempt_id=attempt_id, real_time=format_persisted(isolated)))
        if result.gold:
            segment.best_segment_time = format_persisted(isolated)
        if is_pb:
            segment.pb_split_time = format_persisted(elapsed)

    log.info(
        "attempt_merged id=%s pb=%s recorded=%s attempts=%s",
        attempt_id,
        is_pb,
        sum(1 for r in results if r.recorded),
        definition.attempt_count,
    )
    return attempt_id


def save_attempt(path: Path, engine: RunEngine) -> RunDefinition:
    """Merge the engine's attempt into a copy of its run and write it.

    The engine and its definition are left untouched; the caller swaps in the
    returned definition once the write succeeded. Raises RunFileError.
    """
    merged = copy.deepcopy(engine.definition)
    ended_at = engine.wall_clock()
    merge_attempt(
        merged,
        engine.results,
        is_pb=engine.is_personal_best(),
        started_at=engine.started_at or ended_at,
        ended_at=ended_at,
    )
    save_run(path, merged)
    return merged


def save_and_reset(path: Path, engine: RunEngine) -> RunDefinition:
    merged = save_attempt(path, engine)
    engine.reinitialize(merged)
    return merged
