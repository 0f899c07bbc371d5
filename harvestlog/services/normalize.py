"""
String and number normalization shared by the extractor, duplicate detector
and backup reconciler.

- canonical_key: equality key for dealer/area names and composite trip keys.
- display_dealer_name: presentation-only cleanup. Never compare with it.
- parse_date_text / parse_number / parse_money: review-form and import parsing.

Everything here is pure and total: bad input gives '' / None, never an error.
"""

from __future__ import annotations

import datetime as dt
import math
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional

_KEY_STRIP = str.maketrans("", "", ".,#")

_LEGAL_SUFFIX = re.compile(
    r"[\s,]+(?:inc\.?|incorporated|llc|l\.l\.c\.?|co\.?|company|corp\.?|corporation)\s*$",
    re.IGNORECASE,
)

_ISO_DATE = re.compile(r"^\s*(\d{4})-(\d{1,2})-(\d{1,2})\s*$")
_MDY_DATE = re.compile(r"^\s*(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{2}|\d{4})\s*$")
_NUMBER = re.compile(r"-?\d*\.?\d+")
_COMMA_DECIMAL = re.compile(r"^\s*(\d+),(\d{1,2})\s*$")


def canonical_key(text: Any) -> str:
    """Strip '.', ',' and '#', lowercase, trim, collapse whitespace runs."""
    s = "" if text is None else str(text)
    s = s.translate(_KEY_STRIP).lower()
    return " ".join(s.split())


def unique_by_key(names: Iterable[Any]) -> List[str]:
    """Trimmed non-blank strings, first spelling of each canonical key kept."""
    seen = set()
    out: List[str] = []
    for n in names:
        if not isinstance(n, str):
            continue
        v = n.strip()
        k = canonical_key(v)
        if not k or k in seen:
            continue
        seen.add(k)
        out.append(v)
    return out


def display_dealer_name(name: Any) -> str:
    """'ACME SEAFOOD CO., INC.' -> 'Acme Seafood'. Short all-caps tokens stay."""
    s = " ".join(str(name or "").split())
    if not s:
        return ""
    prev = None
    while prev != s:
        prev = s
        s = _LEGAL_SUFFIX.sub("", s).rstrip(" ,")
    words = []
    for w in s.split(" "):
        if len(w) <= 3 and w.upper() == w:
            words.append(w)
            continue
        lower = w.lower()
        words.append(lower[:1].upper() + lower[1:])
    return " ".join(words)


def expand_year(yy: int) -> int:
    """Two-digit years: 00-79 -> 2000s, 80-99 -> 1900s."""
    if yy >= 100:
        return yy
    return 2000 + yy if yy <= 79 else 1900 + yy


def make_date(year: int, month: int, day: int) -> Optional[dt.date]:
    if not (1900 <= year <= 2100):
        return None
    try:
        return dt.date(year, month, day)
    except ValueError:
        return None


def parse_date_text(s: Any) -> Optional[dt.date]:
    """ISO 'YYYY-MM-DD' or 'M/D/YY(YY)' (also '-' and '.') -> date, else None."""
    t = str(s or "")
    m = _ISO_DATE.match(t)
    if m:
        y, mo, d = (int(g) for g in m.groups())
        return make_date(y, mo, d)
    m = _MDY_DATE.match(t)
    if m:
        mo, d, y = (int(g) for g in m.groups())
        return make_date(expand_year(y), mo, d)
    return None


def format_mdy(d: Optional[dt.date]) -> str:
    return f"{d.month:02d}/{d.day:02d}/{d.year:04d}" if d else ""


def to2(v: Any) -> float:
    """Round half-up to cents; non-numbers become 0.0."""
    try:
        f = float(v)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(f):
        return 0.0
    try:
        return float(Decimal(str(f)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        return 0.0


def parse_number(s: Any) -> Optional[float]:
    """'43.5 lbs' -> 43.5, '1,204.5' -> 1204.5, '59,5' -> 59.5."""
    raw = str(s or "").strip()
    cd = _COMMA_DECIMAL.match(raw)
    if cd:
        raw = f"{cd.group(1)}.{cd.group(2)}"
    m = _NUMBER.search(raw.replace(",", ""))
    if not m:
        return None
    try:
        return float(m.group(0))
    except ValueError:
        return None


def parse_money(s: Any) -> Optional[float]:
    """
    '$1,234.56' -> 1234.56.

    Digits-only input stays whole dollars ('189' -> 189.0); cents are never
    inferred, since transcribers often drop '.00'.
    """
    raw = str(s or "").replace("$", "").strip()
    if not raw:
        return None
    return parse_number(raw)
