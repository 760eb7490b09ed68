"""Load and save LiveSplit ``.lss`` run files.

Only the elements the run engine owns are interpreted (names, attempt history,
PB split times, gold times and segment history). Everything else, such as
``Metadata``, ``Offset`` or ``AutoSplitterSettings``, is carried through as
opaque XML in its original position.
"""

from __future__ import annotations

from collections import defaultdict, deque
from pathlib import Path
import copy
import logging
import os
import tempfile
import xml.etree.ElementTree as StdET

from defusedxml import DefusedXmlException
from defusedxml.ElementTree import ParseError, fromstring

from .errors import RunFileError
from .runfile import PB_COMPARISON, Attempt, RunDefinition, Segment, SegmentTime, stored_ms


OWNED_TAGS = ("GameName", "CategoryName", "AttemptCount", "AttemptHistory", "Segments")
SEGMENT_OWNED_TAGS = ("Name", "Icon", "SplitTimes", "BestSegmentTime", "SegmentHistory")
DEFAULT_ORDER = (
    "GameIcon",
    "GameName",
    "CategoryName",
    "Metadata",
    "Offset",
    "AttemptCount",
    "AttemptHistory",
    "Segments",
    "AutoSplitterSettings",
)
INDENT = "  "
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'

log = logging.getLogger("splitrunner.lss")


def _text(elem, tag: str) -> str:
    child = elem.find(tag)
    if child is None or child.text is None:
        return ""
    return child.text


def _bool_attr(value: str | None) -> bool:
    return (value or "True").strip().lower() == "true"


def _parse_int(value: str | None, what: str) -> int:
    try:
        return int((value or "0").strip())
    except ValueError as exc:
        raise RunFileError(f"invalid {what}: {value!r}") from exc


def _parse_attempts(elem) -> list[Attempt]:
    attempts: list[Attempt] = []
    if elem is None:
        return attempts
    for node in elem.findall("Attempt"):
        attempts.append(
            Attempt(
                attempt_id=_parse_int(node.get("id"), "attempt id"),
                started=node.get("started", ""),
                ended=node.get("ended", ""),
                started_synced=_bool_attr(node.get("isStartedSynced")),
                ended_synced=_bool_attr(node.get("isEndedSynced")),
            )
        )
    return attempts


def _warn_if_malformed(segment_name: str, field_name: str, text: str) -> None:
    if text.strip() and stored_ms(text) is None:
        log.warning(
            "stored_time_malformed segment=%r field=%s value=%r treated_as=absent",
            segment_name,
            field_name,
            text,
        )


def _extras(holder) -> list:
    return [copy.deepcopy(child) for child in holder if child.tag != "RealTime"]


def _parse_segment(node) -> Segment:
    segment = Segment(name=_text(node, "Name"), icon=_text(node, "Icon"))

    split_times = node.find("SplitTimes")
    if split_times is not None:
        for split_time in split_times.findall("SplitTime"):
            if split_time.get("name") == PB_COMPARISON and not segment.pb_split_time and not segment.pb_extras:
                segment.pb_split_time = _text(split_time, "RealTime")
                segment.pb_extras = _extras(split_time)
            else:
                segment.passthrough_split_times.append(copy.deepcopy(split_time))

    best = node.find("BestSegmentTime")
    if best is not None:
        segment.best_segment_time = _text(best, "RealTime")
        segment.best_extras = _extras(best)

    history = node.find("SegmentHistory")
    if history is not None:
        for time_node in history.findall("Time"):
            segment.history.append(
                SegmentTime(
                    attempt_id=_parse_int(time_node.get("id"), "segment history id"),
                    real_time=_text(time_node, "RealTime"),
                    extras=_extras(time_node),
                )
            )

    segment.passthrough = [copy.deepcopy(child) for child in node if child.tag not in SEGMENT_OWNED_TAGS]

    _warn_if_malformed(segment.name, "SplitTime", segment.pb_split_time)
    _warn_if_malformed(segment.name, "BestSegmentTime", segment.best_segment_time)
    return segment


def loads(data: bytes | str) -> RunDefinition:
    try:
        root = fromstring(data)
    except (ParseError, DefusedXmlException) as exc:
        raise RunFileError(f"error parsing run file: {exc}") from exc

    if root.tag != "Run":
        raise RunFileError(f"unexpected root element <{root.tag}>, expected <Run>")

    definition = RunDefinition(
        game_name="",
        category_name="",
        segments=[],
        root_attributes=dict(root.attrib),
    )
    for child in root:
        definition.element_order.append(child.tag)
        if child.tag == "GameName":
            definition.game_name = child.text or ""
        elif child.tag == "CategoryName":
            definition.category_name = child.text or ""
        elif child.tag == "AttemptCount":
            definition.attempt_count = _parse_int(child.text, "attempt count")
        elif child.tag == "AttemptHistory":
            definition.attempts = _parse_attempts(child)
        elif child.tag == "Segments":
            definition.segments = [_parse_segment(node) for node in child.findall("Segment")]
        else:
            definition.passthrough.append(child)

    if not definition.segments:
        raise RunFileError("run file has no segments")
    return definition


def load_run(path: Path) -> RunDefinition:
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise RunFileError(f"error reading file {path}: {exc}") from exc
    definition = loads(data)
    log.info(
        "run_loaded path=%s game=%r category=%r segments=%s attempts=%s",
        path,
        definition.game_name,
        definition.category_name,
        definition.segment_count,
        definition.attempt_count,
    )
    return definition


def _leaf(parent, tag: str, text: str, attrib: dict[str, str] | None = None):
    elem = StdET.SubElement(parent, tag, attrib or {})
    elem.text = text
    return elem


def _real_time_holder(parent, tag: str, real_time: str, extras=(), attrib: dict[str, str] | None = None):
    elem = StdET.SubElement(parent, tag, attrib or {})
    if real_time:
        _leaf(elem, "RealTime", real_time)
    for extra in extras:
        elem.append(copy.deepcopy(extra))
    return elem


def _build_attempt_history(definition: RunDefinition):
    elem = StdET.Element("AttemptHistory")
    for attempt in definition.attempts:
        StdET.SubElement(
            elem,
            "Attempt",
            {
                "id": str(attempt.attempt_id),
                "started": attempt.started,
                "isStartedSynced": "True" if attempt.started_synced else "False",
                "ended": attempt.ended,
                "isEndedSynced": "True" if attempt.ended_synced else "False",
            },
        )
    return elem


def _build_segments(definition: RunDefinition):
    elem = StdET.Element("Segments")
    for segment in definition.segments:
        node = StdET.SubElement(elem, "Segment")
        _leaf(node, "Name", segment.name)
        _leaf(node, "Icon", segment.icon)
        split_times = StdET.SubElement(node, "SplitTimes")
        _real_time_holder(
            split_times, "SplitTime", segment.pb_split_time, segment.pb_extras, {"name": PB_COMPARISON}
        )
        for extra in segment.passthrough_split_times:
            split_times.append(copy.deepcopy(extra))
        _real_time_holder(node, "BestSegmentTime", segment.best_segment_time, segment.best_extras)
        history = StdET.SubElement(node, "SegmentHistory")
        for entry in segment.history:
            _real_time_holder(history, "Time", entry.real_time, entry.extras, {"id": str(entry.attempt_id)})
        for extra in segment.passthrough:
            node.append(copy.deepcopy(extra))
    return elem


def _build_owned(tag: str, definition: RunDefinition):
    if tag == "GameName":
        elem = StdET.Element(tag)
        elem.text = definition.game_name
    elif tag == "CategoryName":
        elem = StdET.Element(tag)
        elem.text = definition.category_name
    elif tag == "AttemptCount":
        elem = StdET.Element(tag)
        elem.text = str(definition.attempt_count)
    elif tag == "AttemptHistory":
        elem = _build_attempt_history(definition)
    else:
        elem = _build_segments(definition)
    StdET.indent(elem, space=INDENT, level=1)
    return elem


def dumps(definition: RunDefinition) -> bytes:
    root = StdET.Element("Run", dict(definition.root_attributes))

    order = list(definition.element_order or DEFAULT_ORDER)
    for tag in OWNED_TAGS:
        if tag not in order:
            order.append(tag)

    pending: dict[str, deque] = defaultdict(deque)
    for elem in definition.passthrough:
        pending[elem.tag].append(elem)

    emitted_owned: set[str] = set()
    for tag in order:
        if tag in OWNED_TAGS:
            if tag in emitted_owned:
                continue
            emitted_owned.add(tag)
            root.append(_build_owned(tag, definition))
        elif pending[tag]:
            root.append(copy.deepcopy(pending[tag].popleft()))
    for leftovers in pending.values():
        for elem in leftovers:
            root.append(copy.deepcopy(elem))

    # Only the whitespace between top-level children is rewritten.
    children = list(root)
    root.text = "\n" + INDENT if children else None
    for i, child in enumerate(children):
        child.tail = "\n" + INDENT if i < len(children) - 1 else "\n"

    return (XML_DECLARATION + StdET.tostring(root, encoding="unicode")).encode("utf-8")


def save_run(path: Path, definition: RunDefinition) -> None:
    """Write the whole run file, replacing the previous content atomically."""
    path = Path(path)
    data = dumps(definition)
    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(dir=str(path.parent or Path(".")), prefix=f".{path.name}.", suffix=".tmp")
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as exc:
        raise RunFileError(f"error writing file {path}: {exc}") from exc
    finally:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.remove(tmp_name)
    log.info("run_saved path=%s bytes=%s attempts=%s", path, len(data), definition.attempt_count)


def new_definition(game_name: str = "", category_name: str = "") -> RunDefinition:
    definition = RunDefinition.new(game_name=game_name, category_name=category_name)
    definition.element_order = list(DEFAULT_ORDER)

    game_icon = StdET.Element("GameIcon")
    metadata = StdET.Element("Metadata")
    StdET.SubElement(metadata, "Run", {"id": ""})
    StdET.SubElement(metadata, "Platform", {"usesEmulator": "False"})
    StdET.SubElement(metadata, "Region")
    StdET.SubElement(metadata, "Variables")
    StdET.indent(metadata, space=INDENT, level=1)
    offset = StdET.Element("Offset")
    offset.text = "00:00:00"
    auto_splitter = StdET.Element("AutoSplitterSettings")
    definition.passthrough = [game_icon, metadata, offset, auto_splitter]
    return definition


def create_run_file(path: Path, game_name: str = "", category_name: str = "") -> RunDefinition:
    path = Path(path)
    if path.exists():
        raise RunFileError(f"refusing to overwrite existing file {path}")
    definition = new_definition(game_name=game_name, category_name=category_name)
    if path.parent and not path.parent.exists():
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise RunFileError(f"error creating directory {path.parent}: {exc}") from exc
    save_run(path, definition)
    log.info("run_file_created path=%s", path)
    return definition
