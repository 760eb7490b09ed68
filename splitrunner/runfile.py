from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
import logging

from .timecodec import parse_optional, parse_strict


PB_COMPARISON = "Personal Best"
DEFAULT_SEGMENT_NAME = "New Split"

log = logging.getLogger("splitrunner.runfile")


def stored_ms(text: str) -> int | None:
    # Malformed text counts as absent; the loader logs it once.
    if not text or not text.strip():
        return None
    try:
        return parse_strict(text)
    except ValueError:
        return None


@dataclass
class Attempt:
    attempt_id: int
    started: str
    ended: str
    started_synced: bool = True
    ended_synced: bool = True


@dataclass
class SegmentTime:
    attempt_id: int
    real_time: str
    # Children other than RealTime (GameTime and the like), written back as-is.
    extras: list[Any] = field(default_factory=list)


@dataclass
class Segment:
    name: str
    icon: str = ""
    # Persisted text is kept verbatim so untouched segments re-serialize unchanged.
    pb_split_time: str = ""
    best_segment_time: str = ""
    history: list[SegmentTime] = field(default_factory=list)
    # SplitTime comparisons other than "Personal Best", never interpreted.
    passthrough_split_times: list[Any] = field(default_factory=list)
    # Non-RealTime children of the PB SplitTime and of BestSegmentTime.
    pb_extras: list[Any] = field(default_factory=list)
    best_extras: list[Any] = field(default_factory=list)
    # Segment children this package does not own, in document order.
    passthrough: list[Any] = field(default_factory=list)

    @property
    def pb_ms(self) -> int | None:
        return stored_ms(self.pb_split_time)

    @property
    def gold_ms(self) -> int | None:
        return stored_ms(self.best_segment_time)

    def history_ms(self) -> list[int]:
        return [ms for ms in (parse_optional(t.real_time) for t in self.history) if ms is not None]


@dataclass
class RunDefinition:
    game_name: str
    category_name: str
    segments: list[Segment]
    attempt_count: int = 0
    attempts: list[Attempt] = field(default_factory=list)
    root_attributes: dict[str, str] = field(default_factory=dict)
    # Top-level XML elements this package does not own, in document order.
    passthrough: list[Any] = field(default_factory=list)
    element_order: list[str] = field(default_factory=list)

    @classmethod
    def new(cls, game_name: str = "", category_name: str = "", segment_name: str = DEFAULT_SEGMENT_NAME) -> "RunDefinition":
        return cls(
            game_name=game_name,
            category_name=category_name,
            segments=[Segment(name=segment_name)],
            root_attributes={"version": "1.7.0"},
        )

    @property
    def segment_count(self) -> int:
        return len(self.segments)

    def next_attempt_id(self) -> int:
        return max((a.attempt_id for a in self.attempts), default=0) + 1

    def sum_of_best(self) -> int | None:
        known = [g for g in (s.gold_ms for s in self.segments) if g is not None]
        if not known:
            return None
        return sum(known)

    def cumulative_pb_ms(self, index: int) -> int | None:
        if 0 <= index < len(self.segments):
            return self.segments[index].pb_ms
        return None

    def pb_segment_ms(self, index: int) -> int | None:
        """Isolated PB duration of one segment, or None without a baseline."""
        current = self.cumulative_pb_ms(index)
        if current is None:
            return None
        if index == 0:
            return current
        previous = self.cumulative_pb_ms(index - 1)
        if previous is None:
            return None
        return current - previous

    # Structural edits. Out-of-range indices are ignored.

    def _valid(self, index: int) -> bool:
        return 0 <= index < len(self.segments)

    def insert_after(self, index: int, name: str = DEFAULT_SEGMENT_NAME) -> bool:
        if not self.segments:
            self.segments.append(Segment(name=name))
            return True
        if not self._valid(index):
            return False
        self.segments.insert(index + 1, Segment(name=name))
        log.info("segment_inserted index=%s name=%r count=%s", index + 1, name, len(self.segments))
        return True

    def remove(self, index: int) -> bool:
        if len(self.segments) <= 1 or not self._valid(index):
            return False
        removed = self.segments.pop(index)
        log.info("segment_removed index=%s name=%r count=%s", index, removed.name, len(self.segments))
        return True

    def rename(self, index: int, name: str) -> bool:
        if not self._valid(index):
            return False
        self.segments[index].name = name
        return True

    def move_up(self, index: int) -> bool:
        if not self._valid(index) or index == 0:
            return False
        self.segments[index - 1], self.segments[index] = self.segments[index], self.segments[index - 1]
        return True

    def move_down(self, index: int) -> bool:
        if not self._valid(index) or index >= len(self.segments) - 1:
            return False
        self.segments[index + 1], self.segments[index] = self.segments[index], self.segments[index + 1]
        return True
