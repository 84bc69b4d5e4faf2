"""Category-gated deep extraction.

Each registered step declares the entity types it can produce and runs only
when the active extraction config asks for at least one of them. Adding a type
means adding a pattern group to ``patterns.yaml`` and one :class:`DeepStep`
entry to :data:`DEEP_STEPS`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Set

from loguru import logger

from freight_extract.extraction.models import Candidate, EntityType
from freight_extract.extraction.pattern_library import PatternLibrary, load_default_library
from freight_extract.extraction.pattern_scanner import (
    DEFAULT_CONTEXT_WINDOW,
    find_dates,
    iter_rule_matches,
    make_candidate,
    scan_rules,
)
from freight_extract.extraction.validators import normalize_for_grounding

KEYWORD_DATE_WINDOW = 100

StepRunner = Callable[["DeepExtractor", str, FrozenSet[str]], List[Candidate]]


@dataclass(frozen=True)
class DeepStep:
    """One gated sub-extractor."""

    name: str
    entity_types: FrozenSet[EntityType]
    run: StepRunner


# ----------------------------------------------------------------------
# Step factories
# ----------------------------------------------------------------------
def _group_step(entity_type: EntityType, group: str) -> DeepStep:
    """Plain scan of one pattern group into one entity type."""

    def run(extractor: "DeepExtractor", text: str, wanted: FrozenSet[str]) -> List[Candidate]:
        return scan_rules(
            text,
            extractor.library.rules(group),
            entity_type,
            window=extractor.context_window,
        )

    return DeepStep(group, frozenset({entity_type}), run)


def _routed_step(
    group: str,
    attribute: str,
    routes: Dict[str, EntityType],
    *,
    unit: Optional[str] = None,
    strip_commas: bool = False,
    first_only: bool = True,
) -> DeepStep:
    """Matches routed to an entity type by a rule attribute.

    With ``first_only`` each rule contributes its first match; otherwise every
    match in the text is kept.

    Rules whose attribute has no route (or whose unit differs from ``unit``)
    are ignored. The raw matched text is kept as the value so it stays
    grounded; the comma-free form goes to ``normalized``.
    """

    def run(extractor: "DeepExtractor", text: str, wanted: FrozenSet[str]) -> List[Candidate]:
        candidates: List[Candidate] = []
        seen: Set[tuple] = set()

        for rule in extractor.library.rules(group):
            entity_type = routes.get(getattr(rule, attribute) or "")
            if entity_type is None or entity_type.value not in wanted:
                continue
            if unit is not None and rule.unit != unit:
                continue

            for value, position in iter_rule_matches(rule, text):
                key = (entity_type, normalize_for_grounding(value))
                if key not in seen:
                    seen.add(key)
                    candidates.append(
                        make_candidate(
                            entity_type,
                            value,
                            rule.confidence,
                            text,
                            position,
                            window=extractor.context_window,
                            normalized=value.replace(",", "") if strip_commas else None,
                            description=rule.description,
                        )
                    )
                if first_only:
                    break
        return candidates

    return DeepStep(group, frozenset(routes.values()), run)


def _run_demurrage_dates(extractor: "DeepExtractor", text: str, wanted: FrozenSet[str]) -> List[Candidate]:
    """First keyword hit per demurrage type, then the first date after it."""
    candidates: List[Candidate] = []
    date_rules = extractor.library.rules("date")

    for group in extractor.library.keyword_groups("demurrage"):
        if group.entity_type not in wanted:
            continue
        for keyword in group.keywords:
            match = keyword.search(text)
            if match is None:
                continue
            window_start = match.end()
            hits = find_dates(
                text[window_start:window_start + KEYWORD_DATE_WINDOW],
                date_rules,
                first_only=True,
                min_year=extractor.date_min_year,
                max_year=extractor.date_max_year,
            )
            if hits:
                hit = hits[0]
                candidates.append(
                    make_candidate(
                        EntityType(group.entity_type),
                        hit.raw,
                        (hit.confidence + group.confidence) // 2,
                        text,
                        window_start + hit.position,
                        window=extractor.context_window,
                        normalized=hit.normalized,
                        description=hit.description,
                    )
                )
            break

    return candidates


_INLAND_TYPES = (
    EntityType.INLAND_DESTINATION,
    EntityType.RAMP_LOCATION,
    EntityType.WAREHOUSE_LOCATION,
    EntityType.DEPOT_LOCATION,
)


def _run_inland_locations(extractor: "DeepExtractor", text: str, wanted: FrozenSet[str]) -> List[Candidate]:
    """Inland location names, offered to every requested inland type."""
    found = scan_rules(
        text,
        extractor.library.rules("inland_location"),
        EntityType.INLAND_DESTINATION,
        window=extractor.context_window,
    )
    candidates: List[Candidate] = []
    for entity_type in _INLAND_TYPES:
        if entity_type.value in wanted:
            candidates.extend(c.model_copy(update={"entity_type": entity_type}) for c in found)
    return candidates


DEEP_STEPS: List[DeepStep] = [
    _group_step(EntityType.IT_NUMBER, "it_number"),
    _group_step(EntityType.ISF_NUMBER, "isf_number"),
    _group_step(EntityType.AMS_NUMBER, "ams_number"),
    _group_step(EntityType.HS_CODE, "hs_code"),
    _group_step(EntityType.SEAL_NUMBER, "seal_number"),
    _group_step(EntityType.CONTAINER_TYPE, "container_type"),
    _routed_step(
        "weight",
        "weight_type",
        {
            "gross": EntityType.GROSS_WEIGHT_KG,
            "net": EntityType.NET_WEIGHT_KG,
            "tare": EntityType.TARE_WEIGHT_KG,
            "vgm": EntityType.VGM_WEIGHT_KG,
        },
        unit="kg",
        strip_commas=True,
    ),
    _group_step(EntityType.VOLUME_CBM, "volume"),
    _group_step(EntityType.PACKAGE_COUNT, "package"),
    _group_step(EntityType.FREE_TIME_DAYS, "free_time"),
    DeepStep(
        "demurrage_dates",
        frozenset(
            {
                EntityType.LAST_FREE_DAY,
                EntityType.CARGO_AVAILABLE_DATE,
                EntityType.EMPTY_RETURN_DATE,
                EntityType.DEMURRAGE_START,
                EntityType.DETENTION_START,
            }
        ),
        _run_demurrage_dates,
    ),
    _group_step(EntityType.APPOINTMENT_NUMBER, "appointment"),
    DeepStep("inland_location", frozenset(_INLAND_TYPES), _run_inland_locations),
    _group_step(EntityType.TEMPERATURE_SETTING, "temperature"),
    _group_step(EntityType.INCOTERMS, "incoterms"),
    _routed_step(
        "amount",
        "amount_type",
        {
            "freight": EntityType.FREIGHT_AMOUNT,
            "demurrage": EntityType.DEMURRAGE_AMOUNT,
            "detention": EntityType.DETENTION_AMOUNT,
            "total": EntityType.TOTAL_AMOUNT,
        },
        strip_commas=True,
    ),
    _routed_step(
        "reference",
        "reference_type",
        {
            "po": EntityType.PO_NUMBER,
            "job": EntityType.JOB_NUMBER,
            "invoice": EntityType.INVOICE_NUMBER,
            "customer": EntityType.REFERENCE_NUMBER,
        },
        first_only=False,
    ),
]


class DeepExtractor:
    """Runs the registered deep steps that the active config asks for."""

    def __init__(
        self,
        library: Optional[PatternLibrary] = None,
        *,
        steps: Optional[Iterable[DeepStep]] = None,
        context_window: int = DEFAULT_CONTEXT_WINDOW,
        date_min_year: int = 2020,
        date_max_year: int = 2030,
    ) -> None:
        self.library = library or load_default_library()
        self.steps = list(DEEP_STEPS if steps is None else steps)
        self.context_window = context_window
        self.date_min_year = date_min_year
        self.date_max_year = date_max_year

    @property
    def supported_types(self) -> FrozenSet[EntityType]:
        supported: Set[EntityType] = set()
        for step in self.steps:
            supported |= step.entity_types
        return frozenset(supported)

    def extract(self, text: str, entity_types: Iterable[str]) -> List[Candidate]:
        """Run the deep steps that can produce a requested entity type.

        Args:
            text: Subject plus body, or document text.
            entity_types: Entity type ids (or ``EntityType`` members) from the
                active extraction config.

        Returns:
            Unvalidated candidates, in step order. Empty when nothing is
            requested or the text is blank.
        """
        wanted = frozenset(str(getattr(t, "value", t)) for t in entity_types)
        if not wanted or not text.strip():
            return []

        candidates: List[Candidate] = []
        for step in self.steps:
            if not any(t.value in wanted for t in step.entity_types):
                continue
            found = step.run(self, text, wanted)
            candidates.extend(found)
            logger.debug(f"Deep step {step.name} produced {len(found)} candidates")
        return candidates
