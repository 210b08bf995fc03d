"""
Duration and byte-size parsing for configuration values.

Example Usage:
    >>> parse_duration('1h30m')
    datetime.timedelta(seconds=5400)

    >>> parse_duration('250ms')
    datetime.timedelta(microseconds=250000)

    >>> parse_size('1.5MiB')
    1572864

    >>> parse_size('2KB')
    2000
"""

import datetime
import math
import re

# Time conversion constants
SECONDS_PER_DAY = 86400
SECONDS_PER_HOUR = 3600
SECONDS_PER_MINUTE = 60
MILLISECONDS_PER_SECOND = 1000
MICROSECONDS_PER_SECOND = 1_000_000
NANOSECONDS_PER_SECOND = 1_000_000_000

_DURATION_UNITS = {
    "d": SECONDS_PER_DAY,
    "h": SECONDS_PER_HOUR,
    "m": SECONDS_PER_MINUTE,
    "s": 1.0,
    "ms": 1.0 / MILLISECONDS_PER_SECOND,
    "us": 1.0 / MICROSECONDS_PER_SECOND,
    "µs": 1.0 / MICROSECONDS_PER_SECOND,
    "μs": 1.0 / MICROSECONDS_PER_SECOND,
    "ns": 1.0 / NANOSECONDS_PER_SECOND,
}

# Longer units first so "ms" is never read as "m" followed by "s"
_DURATION_PATTERN = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|μs|ms|d|h|m|s)")

# IEC suffixes are binary, SI suffixes are decimal
_SIZE_UNITS = {
    "b": 1,
    "kb": 1000,
    "mb": 1000**2,
    "gb": 1000**3,
    "tb": 1000**4,
    "pb": 1000**5,
    "kib": 1024,
    "mib": 1024**2,
    "gib": 1024**3,
    "tib": 1024**4,
    "pib": 1024**5,
}

_SIZE_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)\s*([a-zA-Z]+)$")


class InvalidDurationError(ValueError):
    """Raised when a duration string cannot be parsed."""

    pass


class InvalidSizeError(ValueError):
    """Raised when a size string cannot be parsed."""

    pass


class ByteSize(int):
    """
    Integer number of bytes parsed from a human-readable size.

    Declare a field as ByteSize to accept values such as "64MiB" from
    defaults, files and environment variables.
    """

    @classmethod
    def scan(cls, raw: object) -> "ByteSize":
        if isinstance(raw, bool):
            raise InvalidSizeError(f"Size must be a number or string, got {raw!r}")
        if isinstance(raw, int):
            return cls(raw)
        if isinstance(raw, float):
            if not raw.is_integer():
                raise InvalidSizeError(f"Size must be a whole number of bytes: {raw}")
            return cls(int(raw))
        if isinstance(raw, str):
            return cls(parse_size(raw))
        raise InvalidSizeError(f"Size must be a number or string, got {raw!r}")


def _validate_text(text: str, kind: str, error: type[ValueError]) -> str:
    """Validate and normalize a unit string input."""
    if not isinstance(text, str):
        raise error(f"{kind} must be a string, got {type(text).__name__}")
    text = text.strip()
    if not text:
        raise error(f"{kind} string cannot be empty")
    return text


def parse_duration(text: str) -> datetime.timedelta:
    """
    Parse a duration string such as "1h30m", "45.5s" or "2d12h".

    Bare numbers are read as seconds. A leading "-" is accepted.

    Raises:
        InvalidDurationError: If the string cannot be parsed
    """
    text = _validate_text(text, "Duration", InvalidDurationError)

    negative = text.startswith("-")
    body = text.lstrip("+-")

    try:
        secs = float(body)
    except ValueError:
        secs = _sum_duration_components(body, text)

    if math.isnan(secs) or math.isinf(secs):
        raise InvalidDurationError(f"Duration must be finite: '{text}'")

    try:
        return datetime.timedelta(seconds=-secs if negative else secs)
    except OverflowError as e:
        raise InvalidDurationError(f"Duration out of range: '{text}'") from e


def _sum_duration_components(body: str, original: str) -> float:
    matches = _DURATION_PATTERN.findall(body.replace(" ", ""))
    if not matches:
        raise InvalidDurationError(f"Could not parse duration string: '{original}'")

    reconstructed = "".join(f"{val}{unit}" for val, unit in matches)
    if reconstructed != body.replace(" ", ""):
        raise InvalidDurationError(
            f"Invalid characters in duration string: '{original}'"
        )

    seen: set[str] = set()
    total = 0.0
    for value, unit in matches:
        if unit in seen:
            raise InvalidDurationError(f"Duplicate unit '{unit}' in duration string")
        seen.add(unit)
        total += float(value) * _DURATION_UNITS[unit]
    return total


def parse_size(text: str) -> int:
    """
    Parse a size string such as "512", "10MB" or "1.5GiB" to bytes.

    SI suffixes (KB, MB, ...) are powers of 1000, IEC suffixes (KiB, MiB, ...)
    are powers of 1024. Fractional byte results are rejected.

    Raises:
        InvalidSizeError: If the string cannot be parsed
    """
    text = _validate_text(text, "Size", InvalidSizeError)

    if text.isascii() and text.isdigit():
        return int(text)

    match = _SIZE_PATTERN.match(text)
    if not match:
        raise InvalidSizeError(f"Could not parse size string: '{text}'")

    value, unit = match.group(1), match.group(2).lower()
    if unit not in _SIZE_UNITS:
        raise InvalidSizeError(f"Unknown size unit: '{match.group(2)}'")

    result = float(value) * _SIZE_UNITS[unit]
    if not result.is_integer():
        raise InvalidSizeError(f"Size is not a whole number of bytes: '{text}'")
    return int(result)


__all__ = [
    "ByteSize",
    "InvalidDurationError",
    "InvalidSizeError",
    "parse_duration",
    "parse_size",
]
