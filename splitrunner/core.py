from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable
import logging
import time

from .runfile import RunDefinition


STATE_NOT_STARTED = "not_started"
STATE_RUNNING = "running"
STATE_COMPLETED = "completed"

NOT_STARTED_INDEX = -1


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SplitResult:
    """What happened to one segment during the current attempt."""

    elapsed_ms: int | None = None
    delta_ms: int | None = None
    gold: bool = False
    skipped: bool = False

    @property
    def recorded(self) -> bool:
        return self.elapsed_ms is not None


class RunEngine:
    def __init__(
        self,
        definition: RunDefinition,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.definition = definition
        self.clock = clock
        self.wall_clock = wall_clock
        self.log = logging.getLogger("splitrunner.engine")
        self.current_split = NOT_STARTED_INDEX
        self.results: list[SplitResult] = []
        self.started = False
        self.completed = False
        self.confirming_reset = False
        self.current_elapsed_ms = 0
        self.started_at: datetime | None = None
        self._started_monotonic: float | None = None
        self.reset()

    @property
    def segment_count(self) -> int:
        return self.definition.segment_count

    @property
    def state(self) -> str:
        if self.completed:
            return STATE_COMPLETED
        if self.started:
            return STATE_RUNNING
        return STATE_NOT_STARTED

    def _elapsed_now_ms(self) -> int:
        if self._started_monotonic is None:
            return self.current_elapsed_ms
        return max(int(round((self.clock() - self._started_monotonic) * 1000)), 0)

    def tick(self) -> int:
        if self.started and not self.confirming_reset:
            self.current_elapsed_ms = self._elapsed_now_ms()
        return self.current_elapsed_ms

    def start(self) -> bool:
        if self.state != STATE_NOT_STARTED or self.confirming_reset:
            return False
        self.started = True
        self._started_monotonic = self.clock()
        self.started_at = self.wall_clock()
        self.current_elapsed_ms = 0
        self.current_split = 0
        self.log.info("run_started segments=%s", self.segment_count)
        return True

    def _previous_recorded_ms(self, index: int) -> int:
        for i in range(index - 1, -1, -1):
            if self.results[i].recorded:
                return self.results[i].elapsed_ms  # type: ignore[return-value]
        return 0

    def _advance(self) -> None:
        self.current_split += 1
        if self.current_split >= self.segment_count:
            self.started = False
            self.completed = True
            self.log.info("run_completed elapsed_ms=%s", self.current_elapsed_ms)

    def split(self) -> SplitResult | None:
        if self.state != STATE_RUNNING or self.confirming_reset:
            return None
        if self.current_split >= self.segment_count:
            return None

        index = self.current_split
        elapsed = self.tick()
        segment = self.definition.segments[index]
        isolated = elapsed - self._previous_recorded_ms(index)
        gold_ms = segment.gold_ms
        follows_skip = index > 0 and self.results[index - 1].skipped
        if gold_ms is None:
            gold = True
        else:
            # A segment timed across a skipped one is not a single-segment time.
            gold = not follows_skip and isolated < gold_ms
        pb_ms = segment.pb_ms
        result = SplitResult(
            elapsed_ms=elapsed,
            delta_ms=None if pb_ms is None else elapsed - pb_ms,
            gold=gold,
        )
        self.results[index] = result
        self.log.info(
            "split index=%s name=%r elapsed_ms=%s segment_ms=%s gold=%s delta_ms=%s",
            index,
            segment.name,
            elapsed,
            isolated,
            gold,
            result.delta_ms,
        )
        self._advance()
        return result

    def skip(self) -> bool:
        if self.state != STATE_RUNNING or self.confirming_reset:
            return False
        if self.current_split >= self.segment_count:
            return False
        self.results[self.current_split] = SplitResult(skipped=True)
        self.log.info("split_skipped index=%s", self.current_split)
        self._advance()
        return True

    def undo(self) -> bool:
        if self.confirming_reset or self.current_split <= 0:
            return False
        self.current_split -= 1
        self.results[self.current_split] = SplitResult()
        if self.completed:
            self.completed = False
            self.started = True
            # Resume the clock from where it stopped.
            self._started_monotonic = self.clock() - self.current_elapsed_ms / 1000
        self.log.info("split_undone index=%s state=%s", self.current_split, self.state)
        return True

    def request_reset(self) -> bool:
        if self.confirming_reset or not (self.started or self.completed):
            return False
        self.confirming_reset = True
        return True

    def cancel_reset(self) -> bool:
        if not self.confirming_reset:
            return False
        self.confirming_reset = False
        return True

    def confirm_reset(self) -> bool:
        if not self.confirming_reset:
            return False
        self.log.info("run_discarded split=%s elapsed_ms=%s", self.current_split, self.current_elapsed_ms)
        self.reset()
        return True

    def reset(self) -> None:
        self.current_split = NOT_STARTED_INDEX
        self.results = [SplitResult() for _ in range(self.segment_count)]
        self.started = False
        self.completed = False
        self.confirming_reset = False
        self.current_elapsed_ms = 0
        self.started_at = None
        self._started_monotonic = None

    def reinitialize(self, definition: RunDefinition | None = None) -> None:
        """Resize per-segment state after the segment list changed."""
        if definition is not None:
            self.definition = definition
        self.reset()

    # Derived views.

    def segment_ms(self, index: int) -> int | None:
        if index < 0 or index >= len(self.results) or not self.results[index].recorded:
            return None
        return self.results[index].elapsed_ms - self._previous_recorded_ms(index)  # type: ignore[operator]

    def segment_durations(self) -> list[int | None]:
        return [self.segment_ms(i) for i in range(len(self.results))]

    def pb_segment_ms(self, index: int) -> int | None:
        return self.definition.pb_segment_ms(index)

    def previous_segment_delta(self) -> int | None:
        index = self.current_split - 1
        actual = self.segment_ms(index)
        baseline = self.pb_segment_ms(index)
        if actual is None or baseline is None:
            return None
        return actual - baseline

    def sum_of_best(self) -> int | None:
        return self.definition.sum_of_best()

    def is_personal_best(self) -> bool:
        if self.segment_count == 0 or self.current_split != self.segment_count:
            return False
        final = self.results[-1]
        if not final.recorded:
            return False
        previous_pb = self.definition.segments[-1].pb_ms
        return previous_pb is None or final.elapsed_ms < previous_pb  # type: ignore[operator]
