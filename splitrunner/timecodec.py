from __future__ import annotations


MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_HOUR = 60 * MS_PER_MINUTE

# Persisted times carry seven fractional digits (100ns ticks).
TICKS_PER_MS = 10_000
_FRACTION_DIGITS = 7


def _split_clock(ms: int) -> tuple[int, int, int, int]:
    hours, rest = divmod(ms, MS_PER_HOUR)
    minutes, rest = divmod(rest, MS_PER_MINUTE)
    seconds, ms_part = divmod(rest, MS_PER_SECOND)
    return hours, minutes, seconds, ms_part


def _seconds_field_to_ms(field: str) -> int:
    whole, _, fraction = field.partition(".")
    if not whole.isdigit() or (fraction and not fraction.isdigit()):
        raise ValueError(f"invalid seconds field {field!r}")
    ms = int(whole) * MS_PER_SECOND
    if fraction:
        ticks = int(fraction[:_FRACTION_DIGITS].ljust(_FRACTION_DIGITS, "0"))
        ms += (ticks + TICKS_PER_MS // 2) // TICKS_PER_MS
    return ms


def parse_strict(text: str) -> int:
    """Parse ``H:MM:SS.fff`` or ``MM:SS.fff`` into milliseconds.

    Raises ValueError for anything else, including empty text.
    """
    parts = text.strip().split(":")
    if len(parts) == 3:
        hours_field, minutes_field = parts[0], parts[1]
    elif len(parts) == 2:
        hours_field, minutes_field = "0", parts[0]
    else:
        raise ValueError(f"invalid duration {text!r}")
    if not hours_field.isdigit() or not minutes_field.isdigit():
        raise ValueError(f"invalid duration {text!r}")
    return (
        int(hours_field) * MS_PER_HOUR
        + int(minutes_field) * MS_PER_MINUTE
        + _seconds_field_to_ms(parts[2] if len(parts) == 3 else parts[1])
    )


def parse(text: str | None) -> int:
    # Empty and malformed input both collapse to zero.
    if not text:
        return 0
    try:
        return parse_strict(text)
    except ValueError:
        return 0


def parse_optional(text: str | None) -> int | None:
    if text is None or not text.strip():
        return None
    return parse(text)


def format_display(ms: int) -> str:
    hours, minutes, seconds, ms_part = _split_clock(max(int(round(ms)), 0))
    if hours > 0:
        return f"{hours}:{minutes:02d}:{seconds:02d}.{ms_part:03d}"
    return f"{minutes:02d}:{seconds:02d}.{ms_part:03d}"


def format_persisted(ms: int) -> str:
    hours, minutes, seconds, ms_part = _split_clock(max(int(round(ms)), 0))
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}.{ms_part * TICKS_PER_MS:07d}"


def format_delta(ms: int | None) -> str:
    if ms is None:
        return "-"
    sign = "-" if ms < 0 else "+"
    return sign + format_display(abs(ms))
