# harvestlog/services/extract.py
"""
Extraction rules (pasted slip/receipt text -> ParsedDraft):

- Every field walks a fallback chain; the tier that produced the value sets the
  confidence:
    label-anchored            -> high
    structural position       -> med
    frequency / heuristics    -> low
    nothing found             -> Absent (never a guess)

- Date:
    * M/D/YYYY, M/D/YY (separators / - .) and glued MMDDYY / MMDD-YY.
    * Two-digit years: 00-79 -> 20xx, 80-99 -> 19xx.
    * Score +2 when the same or previous line has a "date" label, +1 for a
      4-digit year. Best score wins; ties go to the first one seen.

- Amount:
    * First money value within LABEL_WINDOW_TOKENS tokens after a
      "(check) amount" label, marked or not, leftmost wins; dates in the
      window are ignored.
    * Else the largest currency-marked value ("$189", "USD 152.25").
    * Else the largest decimal in AMOUNT_RANGE on a line without
      phone/account/routing noise.
    * A decimal point is never inferred from bare digits ("15225" stays
      unparsed, not 152.25).
    * Dealer profiles can switch the fallbacks off (labelled amount or nothing).

- Pounds:
    * Number followed by a weight marker (lb, lbs, pounds, OCR'd IBS/1BS/|BS).
    * Else a number alone on a line in the block under "DESCRIPTION".
    * Else the most frequent number in POUNDS_RANGE that isn't the amount and
      isn't on a noise line.

- Dealer: longest known dealer present in the text, then a dealer profile's
  name, then the first line with a seller marker (INC/LLC/CO/SEAFOOD...), then
  the first mostly-alphabetic line that isn't form boilerplate.

- Area: first known area (caller's order) present in the text.

extract() is total: empty, garbage or huge input still yields a draft with all
five fields, each Present or Absent. The draft is advisory; the review form
decides what gets saved.
"""

from __future__ import annotations

import re
from collections import Counter
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from harvestlog.models.schemas import Absent, Confidence, FieldResult, ParsedDraft, Present
from harvestlog.services.normalize import canonical_key, expand_year, format_mdy, make_date
from harvestlog.util.logger import get_logger
from extraction.patterns import (
    AMOUNT_RANGE,
    BOILERPLATE_LINES,
    CURRENCY_REGEX,
    DATE_FULL_REGEX,
    DATE_GLUED_REGEX,
    DATE_LABELS,
    DATE_SHORT_REGEX,
    DEALER_MAX_LEN,
    DEALER_PROFILES,
    DEALER_SCAN_LINES,
    DEFAULT_PROFILE,
    DESCRIPTION_BLOCK_LINES,
    LABEL_WINDOW_CHARS,
    LABEL_WINDOW_TOKENS,
    MAX_INPUT_CHARS,
    MONEY_DECIMAL_REGEX,
    NOISE_MARKERS,
    POUNDS_RANGE,
    SELLER_MARKERS,
)

# ---------- regexes / helpers ----------


def label_regex(labels: Iterable[str]) -> re.Pattern:
    """Case-insensitive alternation, longest label first, not inside a word."""
    parts = sorted({lb for lb in labels if lb}, key=len, reverse=True)
    body = "|".join(r"\s+".join(re.escape(w) for w in lb.split()) for lb in parts)
    return re.compile(rf"(?<![A-Za-z0-9])(?:{body})(?![A-Za-z0-9])", re.IGNORECASE)


money_pat = re.compile(MONEY_DECIMAL_REGEX)
currency_pat = re.compile(CURRENCY_REGEX, re.IGNORECASE)
DATE_FULL_PAT = re.compile(DATE_FULL_REGEX)
DATE_SHORT_PAT = re.compile(DATE_SHORT_REGEX)
DATE_GLUED_PAT = re.compile(DATE_GLUED_REGEX)
DATE_LABEL_PAT = label_regex(DATE_LABELS)
NOISE_PAT = label_regex(NOISE_MARKERS)
SELLER_PAT = label_regex(SELLER_MARKERS)

# numbers that might be a weight: "43", "43.5", "59,5"
WEIGHT_TOKEN_PAT = re.compile(r"(?<![\w.,/\-$])(\d{1,3}(?:[.,]\d{1,2})?)(?![\w/\-]|[.,]\d)")
DESC_DECIMAL_LINE_PAT = re.compile(r"^\s*(\d{1,3}[.,]\d{1,2})\s*$")
DESC_INTEGER_LINE_PAT = re.compile(r"^\s*(\d{1,3})\s*$")

# scanner artefacts: "O" read for "0" next to digits
_OCR_ZERO_PAT = re.compile(r"(?<=[\d.,])[Oo]|[Oo](?=[\d.,]?\d)")

_WS = r"[\t\u00A0\u2007\u202F]"
_DASH = r"[\u2010\u2011\u2012\u2013\u2014]"


def _boilerplate_regex() -> re.Pattern:
    parts = sorted(BOILERPLATE_LINES, key=len, reverse=True)
    body = "|".join(r"\s+".join(re.escape(w) for w in p.split()) for p in parts)
    return re.compile(rf"^\W*(?:{body})(?![A-Za-z])", re.IGNORECASE)


BOILERPLATE_PAT = _boilerplate_regex()


def _normalize_slip_text(s: str) -> str:
    s = re.sub(_WS, " ", s)
    s = re.sub(_DASH, "-", s)
    return s


def lines_from_text(text: Any) -> Tuple[str, List[str], List[str]]:
    """
    Coerce any input to (raw_text, non-empty stripped lines, flags).

    Input longer than MAX_INPUT_CHARS is cut and flagged.
    """
    flags: List[str] = []
    if text is None:
        raw = ""
    elif isinstance(text, bytes):
        raw = text.decode("utf-8", errors="replace")
    else:
        raw = str(text)
    if len(raw) > MAX_INPUT_CHARS:
        flags.append(f"text truncated to {MAX_INPUT_CHARS} characters")
        raw = raw[:MAX_INPUT_CHARS]
    raw = raw.replace("\r\n", "\n").replace("\r", "\n")
    lines = [_normalize_slip_text(ln).strip() for ln in raw.split("\n")]
    return raw, [ln for ln in lines if ln], flags


def clean_known(items: Any) -> List[str]:
    """Caller-supplied dealer/area lists: keep non-blank strings, in order."""
    if items is None or isinstance(items, (str, bytes)):
        return []
    try:
        return [s.strip() for s in items if isinstance(s, str) and s.strip()]
    except TypeError:
        return []


def money_value(s: str) -> Optional[float]:
    """'1,204.50' -> 1204.5, '59,50' -> 59.5; None if it doesn't parse."""
    t = s.strip()
    if re.fullmatch(r"\d{1,6},\d{2}", t):
        t = t.replace(",", ".")
    else:
        t = t.replace(",", "")
    try:
        return float(t)
    except ValueError:
        return None


def format_pounds(v: float) -> str:
    """43.5 -> '43.5', 40.0 -> '40'."""
    return f"{v:.2f}".rstrip("0").rstrip(".")


def _in_range(v: Optional[float], bounds: Tuple[float, float]) -> bool:
    return v is not None and bounds[0] <= v <= bounds[1]


def choose_profile(text: str) -> Dict[str, Any]:
    """DEFAULT_PROFILE, overlaid with the first dealer quirk whose trigger appears."""
    upper = text.upper()
    for trigger, quirk in DEALER_PROFILES.items():
        if trigger in upper:
            return {**DEFAULT_PROFILE, **quirk}
    return dict(DEFAULT_PROFILE)


def _strip_dates(line: str) -> str:
    for pat in (DATE_FULL_PAT, DATE_SHORT_PAT, DATE_GLUED_PAT):
        line = pat.sub(" ", line)
    return line


# ---------- date ----------

def find_date(lines: List[str]) -> FieldResult:
    # (score, line_idx, pos, value, confidence)
    candidates: List[Tuple[int, int, int, str, Confidence]] = []
    for idx, line in enumerate(lines):
        labelled = bool(DATE_LABEL_PAT.search(line)) or (idx > 0 and bool(DATE_LABEL_PAT.search(lines[idx - 1])))
        noisy = bool(NOISE_PAT.search(line))

        for m in DATE_FULL_PAT.finditer(line):
            mm, dd, yyyy = (int(g) for g in m.groups())
            d = make_date(yyyy, mm, dd)
            if d:
                candidates.append((2 * labelled + 1, idx, m.start(), format_mdy(d), Confidence.HIGH))

        for m in DATE_SHORT_PAT.finditer(line):
            mm, dd, yy = (int(g) for g in m.groups())
            d = make_date(expand_year(yy), mm, dd)
            if d:
                conf = Confidence.HIGH if labelled else Confidence.MED
                candidates.append((2 * labelled, idx, m.start(), format_mdy(d), conf))

        if noisy:
            continue
        for m in DATE_GLUED_PAT.finditer(line):
            mm, dd, yy = (int(g) for g in m.groups())
            d = make_date(expand_year(yy), mm, dd)
            if d:
                conf = Confidence.MED if labelled else Confidence.LOW
                candidates.append((2 * labelled, idx, m.start(), format_mdy(d), conf))

    if not candidates:
        return Absent()
    best = min(candidates, key=lambda c: (-c[0], c[1], c[2]))
    return Present(value=best[3], confidence=best[4])


# ---------- amount ----------

def _money_in_window(window: str) -> Optional[float]:
    """Leftmost plausible money value, marked or not; dates never count."""
    w = _strip_dates(_OCR_ZERO_PAT.sub("0", window))
    hits = [m for pat in (currency_pat, money_pat) for m in pat.finditer(w)]
    for m in sorted(hits, key=lambda m: m.start()):
        v = money_value(m.group(1))
        if _in_range(v, AMOUNT_RANGE):
            return v
    return None


def find_amount(lines: List[str], profile: Optional[Dict[str, Any]] = None,
                flags: Optional[List[str]] = None) -> FieldResult:
    profile = profile or DEFAULT_PROFILE
    flags = flags if flags is not None else []
    logger = get_logger()

    joined = "\n".join(lines)
    label_pat = label_regex(profile["amount_labels"])
    for m in label_pat.finditer(joined):
        span = joined[m.end():m.end() + LABEL_WINDOW_CHARS]
        window = " ".join(span.split()[:LABEL_WINDOW_TOKENS])
        v = _money_in_window(window)
        if v is not None:
            logger.debug(f"amount {v:.2f} from label '{m.group(0)}'")
            return Present(value=f"{v:.2f}", confidence=Confidence.HIGH)

    if not profile.get("amount_fallback", True):
        logger.debug(f"amount fallback disabled for profile '{profile.get('name')}'")
        return Absent()

    marked: List[float] = []
    for line in lines:
        if NOISE_PAT.search(line):
            continue
        for m in currency_pat.finditer(line):
            v = money_value(m.group(1))
            if _in_range(v, AMOUNT_RANGE):
                marked.append(v)
    if marked:
        best = max(marked)
        if len(set(marked)) > 1:
            flags.append(f"amount: several currency values, picked largest {best:.2f}")
        return Present(value=f"{best:.2f}", confidence=Confidence.MED)

    loose: List[float] = []
    for line in lines:
        if NOISE_PAT.search(line):
            continue
        for m in money_pat.finditer(_strip_dates(line)):
            v = money_value(m.group(1))
            if _in_range(v, AMOUNT_RANGE):
                loose.append(v)
    if loose:
        best = max(loose)
        if len(set(loose)) > 1:
            others = ", ".join(f"{v:.2f}" for v in sorted(set(loose)) if v != best)
            flags.append(f"amount: picked largest {best:.2f}; also saw {others}")
        return Present(value=f"{best:.2f}", confidence=Confidence.LOW)

    return Absent()


# ---------- pounds ----------

def _weight_marker_regex(markers: Iterable[str]) -> re.Pattern:
    body = "|".join(re.escape(mk) for mk in sorted(markers, key=len, reverse=True))
    return re.compile(rf"(?<![\d.,])(\d{{1,4}}(?:[.,]\d{{1,2}})?)\s*(?:{body})(?![A-Za-z])", re.IGNORECASE)


def find_pounds(lines: List[str], amount: Optional[float] = None,
                profile: Optional[Dict[str, Any]] = None) -> FieldResult:
    profile = profile or DEFAULT_PROFILE

    def not_amount(v: float) -> bool:
        return amount is None or round(v, 2) != round(amount, 2)

    # 1) explicit unit marker
    marker_pat = _weight_marker_regex(profile["weight_markers"])
    for line in lines:
        for m in marker_pat.finditer(line):
            v = money_value(m.group(1))
            if v is not None and v > 0:
                return Present(value=format_pounds(v), confidence=Confidence.HIGH)

    # 2) a number alone on its line under DESCRIPTION
    desc_pat = label_regex(profile["description_labels"])
    desc_idx = next((i for i, ln in enumerate(lines) if desc_pat.search(ln)), None)
    if desc_idx is not None:
        block = lines[desc_idx + 1: desc_idx + 1 + DESCRIPTION_BLOCK_LINES]
        for line in block:
            m = DESC_DECIMAL_LINE_PAT.match(line)
            if m:
                v = money_value(m.group(1))
                if _in_range(v, POUNDS_RANGE) and not_amount(v):
                    return Present(value=format_pounds(v), confidence=Confidence.HIGH)
        for line in block:
            m = DESC_INTEGER_LINE_PAT.match(line)
            if m:
                v = float(m.group(1))
                if _in_range(v, POUNDS_RANGE) and not_amount(v):
                    return Present(value=format_pounds(v), confidence=Confidence.MED)

    # 3) most frequent plausible number
    counts: Counter = Counter()
    first_seen: Dict[float, int] = {}
    order = 0
    for line in lines:
        if NOISE_PAT.search(line):
            continue
        for m in WEIGHT_TOKEN_PAT.finditer(_strip_dates(line)):
            v = money_value(m.group(1))
            if not _in_range(v, POUNDS_RANGE) or not not_amount(v):
                continue
            counts[v] += 1
            first_seen.setdefault(v, order)
            order += 1
    if not counts:
        return Absent()
    best = min(counts, key=lambda v: (-counts[v], first_seen[v]))
    return Present(value=format_pounds(best), confidence=Confidence.LOW)


# ---------- dealer / area ----------

def _canonical_haystack(lines: List[str]) -> str:
    return f" {canonical_key(' '.join(lines))} "


def _longest_known_match(lines: List[str], known: List[str]) -> Optional[str]:
    hay = _canonical_haystack(lines)
    best: Optional[str] = None
    best_len = 0
    for name in known:
        key = canonical_key(name)
        if key and f" {key} " in hay and len(key) > best_len:
            best, best_len = name, len(key)
    return best


def _alpha_enough(line: str) -> bool:
    letters = sum(c.isalpha() for c in line)
    digits = sum(c.isdigit() for c in line)
    visible = sum(not c.isspace() for c in line)
    return letters >= 3 and digits < max(2, letters // 3) and letters >= 0.6 * visible


def find_dealer(lines: List[str], known_dealers: Optional[List[str]] = None,
                profile: Optional[Dict[str, Any]] = None) -> FieldResult:
    profile = profile or DEFAULT_PROFILE

    hit = _longest_known_match(lines, known_dealers or [])
    if hit:
        return Present(value=hit, confidence=Confidence.HIGH)

    if profile.get("dealer_name"):
        return Present(value=profile["dealer_name"], confidence=Confidence.HIGH)

    head = lines[:DEALER_SCAN_LINES]
    for line in head:
        if SELLER_PAT.search(line) and not BOILERPLATE_PAT.match(line) and _alpha_enough(line):
            return Present(value=line[:DEALER_MAX_LEN].strip(), confidence=Confidence.MED)

    for line in head:
        if BOILERPLATE_PAT.match(line) or DATE_FULL_PAT.search(line) or DATE_SHORT_PAT.search(line):
            continue
        if _alpha_enough(line):
            return Present(value=line[:DEALER_MAX_LEN].strip(), confidence=Confidence.LOW)

    return Absent()


def find_area(lines: List[str], known_areas: Optional[List[str]] = None) -> FieldResult:
    hay = _canonical_haystack(lines)
    for area in known_areas or []:
        key = canonical_key(area)
        if key and f" {key} " in hay:
            return Present(value=area, confidence=Confidence.MED)
    return Absent()


# ---------- main entry ----------

def _guarded(field: str, fn: Callable[..., FieldResult], *args: Any) -> FieldResult:
    # one field failing degrades to Absent; the other four still come back
    try:
        return fn(*args)
    except Exception:
        get_logger().exception(f"{field} extraction failed; marking absent")
        return Absent()


def extract(text: Any, known_dealers: Any = None, known_areas: Any = None) -> ParsedDraft:
    logger = get_logger()
    raw, lines, flags = lines_from_text(text)
    draft = ParsedDraft(raw_text=raw, flags=flags)
    if not lines:
        logger.info("Extraction skipped: no text")
        return draft

    dealers = clean_known(known_dealers)
    areas = clean_known(known_areas)
    profile = choose_profile(raw)
    logger.info(f"Starting extraction: {len(lines)} lines, profile '{profile['name']}', "
                f"{len(dealers)} known dealers, {len(areas)} known areas")

    draft.date = _guarded("date", find_date, lines)
    draft.amount = _guarded("amount", find_amount, lines, profile, draft.flags)
    amount_val = money_value(draft.amount.value) if draft.amount.value else None
    draft.pounds = _guarded("pounds", find_pounds, lines, amount_val, profile)
    draft.dealer = _guarded("dealer", find_dealer, lines, dealers, profile)
    draft.area = _guarded("area", find_area, lines, areas)

    summary = ", ".join(f"{k}={v.label}" for k, v in draft.confidence.items())
    logger.info(f"Extraction complete: {summary}")
    if draft.flags:
        logger.debug(f"Extraction flags: {draft.flags}")
    return draft
