"""
Value normalization: canonical forms for names, team names, heights,
dates, clock strings and scalar text. Every function here is pure and total.
"""
from __future__ import annotations

import math
import re
import unicodedata
from datetime import date, datetime
from typing import Any, Optional

_QUOTES = str.maketrans({
    "‘": "'",
    "’": "'",
    "′": "'",
    "“": '"',
    "”": '"',
    "″": '"',
})
_WHITESPACE = re.compile(r"\s+")
_SUFFIXES = re.compile(r",?\s*\b(?:jr|sr)\b\.?|,?\s*\b(?:ii|iii|iv)\b", re.IGNORECASE)

_INCHES_ONLY = re.compile(r"^\d+$")
_FEET_INCHES = re.compile(r"(\d+)\s*['\-]\s*(\d+)")
_FEET_INCHES_LABELLED = re.compile(r"(\d+)\s*(?:ft|feet)\.?\s*(\d+)", re.IGNORECASE)
_CENTIMETRES = re.compile(r"(\d+(?:\.\d+)?)\s*cm", re.IGNORECASE)

_CLOCK = re.compile(r"^(\d+):(\d{1,2}(?:\.\d+)?)$")
_ISO_DURATION = re.compile(r"^PT(?:(\d+)M)?(?:([\d.]+)S)?$", re.IGNORECASE)
_LEADING_NUMBER = re.compile(r"^\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")


def value_text(value: Any) -> str:
    """Trimmed text of a scalar; integral floats print as ints and ``None`` is empty."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def parse_number(value: Any) -> Optional[float]:
    """Leading numeric prefix of ``value`` ("215 lbs" -> 215.0), or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        m = _LEADING_NUMBER.match(str(value))
        if not m:
            return None
        number = float(m.group(1))
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def fold_text(value: Any) -> str:
    """NFC-normalized text with curly quotes straightened."""
    return unicodedata.normalize("NFC", value_text(value)).translate(_QUOTES)


def normalize_name(name: Any) -> str:
    """
    Matching key for a person's name.

    NFC fold, straight quotes, lower case, single spaces, and generational
    suffixes (Jr., Sr., II, III, IV) dropped wherever they stand as a token.
    """
    text = fold_text(name).lower()
    if not text:
        return ""
    text = _SUFFIXES.sub("", text)
    return _WHITESPACE.sub(" ", text).strip(" ,")


def normalize_team_name(name: Any) -> str:
    """Case/whitespace-insensitive form of a team or opponent name."""
    return _WHITESPACE.sub(" ", fold_text(name).lower()).strip()


def normalize_height(height: Any) -> Optional[int]:
    """Height in whole inches from ``74``, ``6'2"``, ``6-2``, ``6 ft 2`` or ``188 cm``."""
    text = fold_text(height)
    if not text:
        return None
    if _INCHES_ONLY.match(text):
        return int(text)
    m = _FEET_INCHES.search(text) or _FEET_INCHES_LABELLED.search(text)
    if m:
        return int(m.group(1)) * 12 + int(m.group(2))
    m = _CENTIMETRES.search(text)
    if m:
        # half-up, not banker's rounding
        return int(float(m.group(1)) / 2.54 + 0.5)
    return None


def normalize_date(value: Any) -> str:
    """Calendar date part (``YYYY-MM-DD``) of a date, datetime or ISO string; timezone-naive."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    return text.split("T", 1)[0].split(" ", 1)[0]


def parse_minutes(value: Any) -> Optional[float]:
    """Decimal minutes from ``32:45``, ``PT32M45.00S`` or a plain number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if not text:
        return None
    m = _CLOCK.match(text)
    if m:
        return int(m.group(1)) + float(m.group(2)) / 60
    m = _ISO_DURATION.match(text)
    if m and (m.group(1) or m.group(2)):
        return int(m.group(1) or 0) + float(m.group(2) or 0) / 60
    try:
        return float(text)
    except ValueError:
        return None
