"""Shared pytest fixtures: run-file builders and a controllable clock."""
from __future__ import annotations

from datetime import datetime, timezone
import os
import sys

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from splitrunner.config import parse_hotkey_config, default_hotkey_config_data
from splitrunner.core import RunEngine
from splitrunner.runfile import RunDefinition, Segment


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: int) -> None:
        self.now += ms / 1000

    def set_elapsed_ms(self, engine: RunEngine, ms: int) -> None:
        """Move the clock so the running engine reads ``ms`` elapsed."""
        self.now = engine._started_monotonic + ms / 1000


WALL_START = datetime(2024, 3, 9, 14, 5, 0, tzinfo=timezone.utc)


def make_definition(names=("One", "Two", "Three"), pbs=None, golds=None) -> RunDefinition:
    segments = []
    for i, name in enumerate(names):
        segments.append(
            Segment(
                name=name,
                pb_split_time=(pbs[i] if pbs else "") or "",
                best_segment_time=(golds[i] if golds else "") or "",
            )
        )
    return RunDefinition(game_name="Game", category_name="Any%", segments=segments)


SAMPLE_LSS = """<?xml version="1.0" encoding="UTF-8"?>
<Run version="1.7.0">
  <GameIcon />
  <GameName>Super Example</GameName>
  <CategoryName>Any%</CategoryName>
  <Metadata>
    <Run id="" />
    <Platform usesEmulator="False">PC</Platform>
    <Region />
    <Variables />
  </Metadata>
  <Offset>00:00:00</Offset>
  <AttemptCount>2</AttemptCount>
  <AttemptHistory>
    <Attempt id="1" started="01/02/2024 10:00:00" isStartedSynced="True" ended="01/02/2024 10:01:00" isEndedSynced="True" />
    <Attempt id="2" started="01/03/2024 10:00:00" isStartedSynced="True" ended="01/03/2024 10:01:00" isEndedSynced="True" />
  </AttemptHistory>
  <Segments>
    <Segment>
      <Name>Forest</Name>
      <Icon />
      <SplitTimes>
        <SplitTime name="Personal Best">
          <RealTime>00:00:12.3456789</RealTime>
        </SplitTime>
      </SplitTimes>
      <BestSegmentTime>
        <RealTime>00:00:11.0000000</RealTime>
      </BestSegmentTime>
      <SegmentHistory>
        <Time id="1">
          <RealTime>00:00:12.3456789</RealTime>
        </Time>
        <Time id="2">
          <RealTime>00:00:11.0000000</RealTime>
        </Time>
      </SegmentHistory>
    </Segment>
    <Segment>
      <Name>Castle</Name>
      <Icon />
      <SplitTimes>
        <SplitTime name="Personal Best">
          <RealTime>00:00:30.0000000</RealTime>
        </SplitTime>
        <SplitTime name="Ghost">
          <RealTime>00:00:29.0000000</RealTime>
        </SplitTime>
      </SplitTimes>
      <BestSegmentTime>
        <RealTime>00:00:17.5000000</RealTime>
      </BestSegmentTime>
      <SegmentHistory>
        <Time id="1">
          <RealTime>00:00:17.6543211</RealTime>
        </Time>
      </SegmentHistory>
    </Segment>
  </Segments>
  <AutoSplitterSettings>
    <Version>1.2</Version>
    <CustomSettings>
      <Setting id="split_on_boss" type="bool">True</Setting>
    </CustomSettings>
  </AutoSplitterSettings>
</Run>
"""


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def wall_clock():
    return lambda: WALL_START


@pytest.fixture
def hotkey_config(tmp_path):
    return parse_hotkey_config(default_hotkey_config_data(), tmp_path / "splitrunner.json")


@pytest.fixture
def sample_lss_path(tmp_path):
    path = tmp_path / "run.lss"
    path.write_text(SAMPLE_LSS, encoding="utf-8")
    return path
