"""Low-level helpers shared by the base and deep extractors.

Scanning a rule set over a text always follows the same steps:

- run every rule as a global scan;
- pull the configured capture group, or the whole match when the rule has no
  such group or the group did not participate;
- skip values already produced by the same rule set in this call, compared
  without case, whitespace or hyphens;
- record the absolute match offset and a fixed-width context window.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Callable, Iterable, Iterator, List, Optional, Set, Tuple

from freight_extract.extraction.models import Candidate, EntityType, PatternRule
from freight_extract.extraction.validators import normalize_for_grounding

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

DEFAULT_CONTEXT_WINDOW = 30


def match_value(match: re.Match[str], rule: PatternRule) -> str:
    """Configured capture group of ``match``, falling back to the whole match."""
    group = rule.capture_group if rule.capture_group <= (match.re.groups or 0) else 0
    value = match.group(group)
    if value is None:
        value = match.group(0)
    return value.strip()


def iter_rule_matches(rule: PatternRule, text: str) -> Iterator[Tuple[str, int]]:
    """Yield ``(value, start)`` for every non-empty match of ``rule``."""
    # finditer already steps past zero-length matches.
    for match in rule.regex.finditer(text):
        value = match_value(match, rule)
        if not value:
            continue
        yield value, match.start()


def context_around(text: str, position: int, window: int = DEFAULT_CONTEXT_WINDOW) -> Tuple[str, str]:
    """``(snippet, before)`` for a match starting at ``position``."""
    start = max(0, position - window)
    snippet = text[start:position + window].replace("\n", " ").strip()
    return snippet, text[start:position]


def make_candidate(
    entity_type: EntityType,
    value: str,
    confidence: int,
    text: str,
    position: int,
    *,
    offset: int = 0,
    window: int = DEFAULT_CONTEXT_WINDOW,
    normalized: Optional[str] = None,
    description: str = "",
    method: str = "regex",
) -> Candidate:
    snippet, before = context_around(text, position, window)
    return Candidate(
        entity_type=entity_type,
        raw_value=value,
        confidence=max(0, min(int(confidence), 100)),
        method=method,
        position_start=offset + position,
        context_snippet=snippet,
        context_before=before,
        normalized=normalized,
        description=description,
    )


def scan_rules(
    text: str,
    rules: Iterable[PatternRule],
    entity_type: EntityType,
    *,
    carrier: Optional[str] = None,
    offset: int = 0,
    window: int = DEFAULT_CONTEXT_WINDOW,
    seen: Optional[Set[str]] = None,
    transform: Optional[Callable[[str], str]] = None,
    boost: Callable[[PatternRule], int] = lambda rule: 0,
    max_confidence: int = 100,
) -> List[Candidate]:
    """Scan ``rules`` over ``text`` and return de-duplicated candidates.

    Rules tagged for a carrier other than ``carrier`` are skipped. ``seen`` may
    be shared across calls to dedup across several texts (subject and body).
    """
    seen = set() if seen is None else seen
    candidates: List[Candidate] = []

    for rule in rules:
        if rule.carrier and carrier and rule.carrier != carrier:
            continue
        for value, position in iter_rule_matches(rule, text):
            if transform is not None:
                value = transform(value)
            key = normalize_for_grounding(value)
            if key in seen:
                continue
            seen.add(key)
            candidates.append(
                make_candidate(
                    entity_type,
                    value,
                    min(rule.confidence + boost(rule), max_confidence),
                    text,
                    position,
                    offset=offset,
                    window=window,
                    description=rule.description,
                )
            )

    return candidates


# ----------------------------------------------------------------------
# Dates
# ----------------------------------------------------------------------
def parse_date_match(
    match: re.Match[str],
    rule: PatternRule,
    min_year: int = 2020,
    max_year: int = 2030,
) -> Optional[str]:
    """ISO form of a date match, or ``None`` for impossible or out-of-range dates."""
    fmt = rule.date_format
    try:
        if fmt == "iso":
            parsed = date.fromisoformat(match.group(1))
        elif fmt == "dmy":
            parsed = date(int(match.group(3)), int(match.group(2)), int(match.group(1)))
        elif fmt == "mdy":
            parsed = date(int(match.group(3)), int(match.group(1)), int(match.group(2)))
        elif fmt == "dmy_text":
            month = MONTHS.get(match.group(2)[:3].lower())
            if month is None:
                return None
            parsed = date(int(match.group(3)), month, int(match.group(1)))
        elif fmt == "mdy_text":
            month = MONTHS.get(match.group(1)[:3].lower())
            if month is None:
                return None
            parsed = date(int(match.group(3)), month, int(match.group(2)))
        else:
            return None
    except (ValueError, IndexError):
        return None

    if not min_year <= parsed.year <= max_year:
        return None

    iso = parsed.isoformat()
    if rule.has_time and fmt == "iso" and match.re.groups >= 2 and match.group(2):
        iso = f"{iso} {match.group(2)}"
    return iso


class DateHit:
    """A parsed date found inside a search window."""

    __slots__ = ("raw", "normalized", "confidence", "position", "description")

    def __init__(self, raw: str, normalized: str, confidence: int, position: int, description: str) -> None:
        self.raw = raw
        self.normalized = normalized
        self.confidence = confidence
        self.position = position
        self.description = description


def find_dates(
    text: str,
    rules: Iterable[PatternRule],
    *,
    first_only: bool = False,
    min_year: int = 2020,
    max_year: int = 2030,
) -> List[DateHit]:
    """Parsed dates in ``text``.

    With ``first_only`` the rules are tried in order and the first match that
    parses wins. Otherwise every parsed date is returned once (dedup by ISO
    form) sorted by confidence, highest first.
    """
    hits: List[DateHit] = []
    seen: Set[str] = set()

    for rule in rules:
        matches = [rule.regex.search(text)] if first_only else list(rule.regex.finditer(text))
        for match in matches:
            if match is None:
                continue
            normalized = parse_date_match(match, rule, min_year, max_year)
            if normalized is None or normalized in seen:
                continue
            hit = DateHit(match.group(0), normalized, rule.confidence, match.start(), rule.description)
            if first_only:
                return [hit]
            seen.add(normalized)
            hits.append(hit)

    hits.sort(key=lambda h: -h.confidence)
    return hits
