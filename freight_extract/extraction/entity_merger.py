"""Validate, de-duplicate and prioritise extraction candidates.

Merging is a single pass over the candidates in the order the extractors
produced them:

- every candidate (base or deep) is validated against the full source text;
- the config entry for its entity type supplies priority and flags
  (priority 50 and all flags false when the type is not configured);
- the first accepted candidate for an ``(entity_type, normalized value)`` pair
  wins, ignoring case, whitespace and hyphens; later duplicates are dropped
  whatever their confidence;
- survivors are stably sorted by priority then confidence, both descending,
  so identical input always produces an identical list.
"""

from __future__ import annotations

from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from loguru import logger
from pydantic import BaseModel, Field

from freight_extract.extraction.models import (
    Candidate,
    EntityType,
    ExtractionConfigEntry,
    ExtractionMetadata,
    SourceType,
    ValidatedEntity,
)
from freight_extract.extraction.validators import check_entity, normalize_for_grounding

DEFAULT_PRIORITY = 50


class MergeOutcome(BaseModel):
    """Accepted entities plus rejection counters for one merge."""

    entities: List[ValidatedEntity] = Field(default_factory=list)
    rejected_count: int = 0
    rejections: Dict[str, int] = Field(default_factory=dict)


class EntityMerger:
    """Turns raw candidates into the final ordered entity list."""

    def __init__(self, apply_confidence_thresholds: bool = False) -> None:
        self.apply_confidence_thresholds = apply_confidence_thresholds

    def merge(
        self,
        candidates: Iterable[Candidate],
        config_entries: Sequence[ExtractionConfigEntry],
        source_text: str,
        source_type: SourceType = SourceType.EMAIL,
    ) -> MergeOutcome:
        """Validate, de-duplicate and order candidates.

        Args:
            candidates: Base then deep candidates, in extraction order.
            config_entries: Active extraction config for the sender category.
            source_text: Full text the candidates must be grounded in.
            source_type: Stamped onto every accepted entity.

        Returns:
            MergeOutcome with the ordered entities and rejection counts by reason.
        """
        config = _index_config(config_entries)
        accepted: List[ValidatedEntity] = []
        seen: set[Tuple[EntityType, str]] = set()
        rejections: Counter[str] = Counter()

        for candidate in candidates:
            value = candidate.raw_value.strip()
            reason = check_entity(candidate.entity_type, value, candidate.context_before, source_text)

            entry = config.get(candidate.entity_type.value)
            if reason is None and self.apply_confidence_thresholds and entry is not None:
                if candidate.confidence < entry.confidence_threshold:
                    reason = "below_threshold"

            if reason is not None:
                rejections[reason] += 1
                logger.debug(
                    "Rejected candidate",
                    entity_type=candidate.entity_type.value,
                    value=value,
                    reason=reason,
                )
                continue

            key = (candidate.entity_type, normalize_for_grounding(value))
            if key in seen:
                continue
            seen.add(key)

            accepted.append(
                ValidatedEntity(
                    entity_type=candidate.entity_type,
                    value=value,
                    confidence=candidate.confidence,
                    priority=entry.priority if entry else DEFAULT_PRIORITY,
                    is_required=entry.is_required if entry else False,
                    is_critical=entry.is_critical if entry else False,
                    is_linkable=entry.is_linkable if entry else False,
                    source_type=source_type,
                    method=candidate.method,
                    context=candidate.context_snippet,
                    normalized=candidate.normalized,
                )
            )

        accepted.sort(key=lambda e: (-e.priority, -e.confidence))
        return MergeOutcome(
            entities=accepted,
            rejected_count=sum(rejections.values()),
            rejections=dict(rejections),
        )

    @staticmethod
    def build_metadata(
        entities: Sequence[ValidatedEntity],
        config_entries: Sequence[ExtractionConfigEntry],
        *,
        rejected_count: int = 0,
        processing_time_ms: float = 0.0,
    ) -> ExtractionMetadata:
        """Summarise one extraction run.

        Args:
            entities: Accepted entities from :meth:`merge`.
            config_entries: Active extraction config, source of the required types.
            rejected_count: Candidates rejected during the merge.
            processing_time_ms: Wall-clock time of the whole run.

        Returns:
            ExtractionMetadata with counts, missing required types and the
            rounded average confidence (0 when nothing was accepted).
        """
        found_types = {e.entity_type.value for e in entities}
        required = [e.entity_type_id for e in _index_config(config_entries).values() if e.is_required]

        avg: Optional[int] = None
        if entities:
            avg = round(sum(e.confidence for e in entities) / len(entities))

        return ExtractionMetadata(
            total_extracted=len(entities),
            required_found=sum(1 for t in required if t in found_types),
            required_missing=[t for t in required if t not in found_types],
            critical_found=sum(1 for e in entities if e.is_critical),
            linkable_found=sum(1 for e in entities if e.is_linkable),
            avg_confidence=avg or 0,
            processing_time_ms=round(processing_time_ms, 3),
            rejected_count=rejected_count,
        )


def _index_config(entries: Iterable[ExtractionConfigEntry]) -> Dict[str, ExtractionConfigEntry]:
    index: Dict[str, ExtractionConfigEntry] = {}
    for entry in entries:
        index.setdefault(entry.entity_type_id, entry)
    return index
