"""Base pattern extractor: identifiers, sailing dates, cutoffs, routing.

Runs for every input regardless of sender category. Candidates carry offsets
relative to ``subject + "\\n" + body``; nothing here validates values beyond
what the patterns themselves enforce.
"""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Set

from loguru import logger

from freight_extract.extraction.models import Candidate, EntityType, SenderCategory
from freight_extract.extraction.pattern_library import PatternLibrary, load_default_library
from freight_extract.extraction.pattern_scanner import (
    DEFAULT_CONTEXT_WINDOW,
    find_dates,
    make_candidate,
    scan_rules,
)

# Window scanned around a keyword for the date it labels.
KEYWORD_DATE_WINDOW = 100
MAX_CONFIDENCE = 99

_LOCODE = re.compile(r"^([A-Z]{2}[A-Z0-9]{3})\b")
_PLACE_NAME = re.compile(r"^([A-Za-z][A-Za-z\s,]+?)(?:\s*[-–|]|\s*\n|\s*[A-Z]{2,}:)")

_ROUTING_FIELDS = (
    ("port_of_loading", EntityType.PORT_OF_LOADING),
    ("port_of_discharge", EntityType.PORT_OF_DISCHARGE),
    ("place_of_receipt", EntityType.PLACE_OF_RECEIPT),
    ("place_of_delivery", EntityType.PLACE_OF_DELIVERY),
)


class BaseExtractor:
    """Category-independent extraction of the core shipment identifiers."""

    def __init__(
        self,
        library: Optional[PatternLibrary] = None,
        *,
        context_window: int = DEFAULT_CONTEXT_WINDOW,
        subject_boost: int = 3,
        date_min_year: int = 2020,
        date_max_year: int = 2030,
    ) -> None:
        self.library = library or load_default_library()
        self.context_window = context_window
        self.subject_boost = subject_boost
        self.date_min_year = date_min_year
        self.date_max_year = date_max_year

    def extract(
        self,
        body: str,
        subject: str = "",
        category: SenderCategory = SenderCategory.OTHER,
    ) -> List[Candidate]:
        """Run every base extraction over one message.

        Args:
            body: Message body or document text.
            subject: Message subject. Scanned first for booking numbers.
            category: Detected sender category, used to pick the carrier tag.

        Returns:
            Unvalidated candidates in extraction order.
        """
        text = f"{subject}\n{body}"
        carrier = self.resolve_carrier(text, category)

        candidates: List[Candidate] = []
        candidates.extend(self.extract_booking_numbers(subject, body, carrier))
        candidates.extend(self.extract_identifiers(text, carrier))
        candidates.extend(self.extract_sailing_dates(text))
        candidates.extend(self.extract_cutoffs(text))
        candidates.extend(self.extract_routing(text))
        candidates.extend(self.extract_vessel_and_voyage(text))

        logger.debug("Base extraction finished", carrier=carrier, candidates=len(candidates))
        return candidates

    def resolve_carrier(self, text: str, category: SenderCategory) -> Optional[str]:
        """Carrier tag from the sender category, else detected from the text."""
        tag = SenderCategory(category).carrier_tag
        if tag:
            return tag
        return self.library.detect_carrier(text)

    # ------------------------------------------------------------------
    # Identifiers
    # ------------------------------------------------------------------
    def extract_booking_numbers(self, subject: str, body: str, carrier: Optional[str]) -> List[Candidate]:
        """Subject hits first with a boost, then body hits.

        Body hits from the detected carrier's own rules get the same boost.
        """
        rules = self.library.rules("booking_number")
        seen: Set[str] = set()

        found = scan_rules(
            subject,
            rules,
            EntityType.BOOKING_NUMBER,
            carrier=carrier,
            window=self.context_window,
            seen=seen,
            boost=lambda rule: self.subject_boost,
            max_confidence=MAX_CONFIDENCE,
        )
        found += scan_rules(
            body,
            rules,
            EntityType.BOOKING_NUMBER,
            carrier=carrier,
            offset=len(subject) + 1,
            window=self.context_window,
            seen=seen,
            boost=lambda rule: self.subject_boost if carrier and rule.carrier == carrier else 0,
            max_confidence=MAX_CONFIDENCE,
        )
        found.sort(key=lambda c: -c.confidence)
        return found

    def extract_identifiers(self, text: str, carrier: Optional[str]) -> List[Candidate]:
        """Container, BL and entry numbers over subject plus body."""
        candidates = scan_rules(
            text,
            self.library.rules("container_number"),
            EntityType.CONTAINER_NUMBER,
            carrier=carrier,
            window=self.context_window,
            transform=str.upper,
        )
        candidates += scan_rules(
            text,
            self.library.rules("bl_number"),
            EntityType.BL_NUMBER,
            carrier=carrier,
            window=self.context_window,
            transform=str.upper,
        )
        candidates += scan_rules(
            text,
            self.library.rules("entry_number"),
            EntityType.ENTRY_NUMBER,
            carrier=carrier,
            window=self.context_window,
        )
        return candidates

    # ------------------------------------------------------------------
    # Dates
    # ------------------------------------------------------------------
    def extract_sailing_dates(self, text: str) -> List[Candidate]:
        """ETD/ETA: first parseable date after each keyword hit."""
        candidates: List[Candidate] = []
        date_rules = self.library.rules("date")

        for name, entity_type in (("etd", EntityType.ETD), ("eta", EntityType.ETA)):
            for keyword in self.library.context_keywords(name):
                match = keyword.search(text)
                if match is None:
                    continue
                window_start = match.end()
                hits = find_dates(
                    text[window_start:window_start + KEYWORD_DATE_WINDOW],
                    date_rules,
                    first_only=True,
                    min_year=self.date_min_year,
                    max_year=self.date_max_year,
                )
                if not hits:
                    continue
                hit = hits[0]
                candidates.append(
                    make_candidate(
                        entity_type,
                        hit.raw,
                        min(hit.confidence + 5, MAX_CONFIDENCE),
                        text,
                        window_start + hit.position,
                        window=self.context_window,
                        normalized=hit.normalized,
                        description=hit.description,
                    )
                )
        return candidates

    def extract_cutoffs(self, text: str) -> List[Candidate]:
        """Best dated hit per cutoff type.

        A date after the keyword scores ``(date + keyword) / 2 + 5``; a date
        found only before the keyword scores ``(date + keyword) / 2`` capped at
        95, since the label usually precedes its value.
        """
        date_rules = self.library.rules("date")
        best: Dict[str, Candidate] = {}

        for group in self.library.keyword_groups("cutoff"):
            entity_type = EntityType(group.entity_type)
            for keyword in group.keywords:
                match = keyword.search(text)
                if match is None:
                    continue

                after_start = match.end()
                hits = find_dates(
                    text[after_start:after_start + KEYWORD_DATE_WINDOW],
                    date_rules,
                    min_year=self.date_min_year,
                    max_year=self.date_max_year,
                )
                if hits:
                    hit = hits[0]
                    confidence = min((hit.confidence + group.confidence) // 2 + 5, MAX_CONFIDENCE)
                    position = after_start + hit.position
                else:
                    before_start = max(0, match.start() - KEYWORD_DATE_WINDOW)
                    hits = find_dates(
                        text[before_start:match.start()],
                        date_rules,
                        min_year=self.date_min_year,
                        max_year=self.date_max_year,
                    )
                    if not hits:
                        continue
                    hit = hits[0]
                    confidence = min((hit.confidence + group.confidence) // 2, 95)
                    position = before_start + hit.position

                current = best.get(group.entity_type)
                if current is None or confidence > current.confidence:
                    best[group.entity_type] = make_candidate(
                        entity_type,
                        hit.raw,
                        confidence,
                        text,
                        position,
                        window=self.context_window,
                        normalized=hit.normalized,
                        description=hit.description,
                    )

        return list(best.values())

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------
    def extract_routing(self, text: str) -> List[Candidate]:
        """Ports and places: the value right after the first matching label."""
        candidates: List[Candidate] = []

        for name, entity_type in _ROUTING_FIELDS:
            for keyword in self.library.context_keywords(name):
                match = keyword.search(text)
                if match is None:
                    continue

                after = text[match.end():]
                code = _LOCODE.match(after)
                if code:
                    value, confidence = code.group(1), 92
                else:
                    place = _PLACE_NAME.match(after)
                    value, confidence = (place.group(1).strip(), 78) if place else ("", 0)

                if value:
                    candidates.append(
                        make_candidate(
                            entity_type,
                            value,
                            confidence,
                            text,
                            match.end(),
                            window=self.context_window,
                            description=f"{name} label",
                        )
                    )
                break

        return candidates

    def extract_vessel_and_voyage(self, text: str) -> List[Candidate]:
        candidates: List[Candidate] = []

        vessel = self._first_match(text, "vessel_name", EntityType.VESSEL_NAME, min_length=3, max_length=50)
        if vessel is not None:
            candidates.append(vessel)

        voyage = self._first_match(text, "voyage_number", EntityType.VOYAGE_NUMBER)
        if voyage is not None:
            candidates.append(voyage)

        return candidates

    def _first_match(
        self,
        text: str,
        group: str,
        entity_type: EntityType,
        min_length: int = 1,
        max_length: int = 200,
    ) -> Optional[Candidate]:
        for rule in self.library.rules(group):
            for candidate in scan_rules(text, [rule], entity_type, window=self.context_window):
                if min_length <= len(candidate.raw_value) <= max_length:
                    return candidate
        return None
