from __future__ import annotations

from typing import List

from freight_extract.extraction.entity_merger import DEFAULT_PRIORITY, EntityMerger
from freight_extract.extraction.models import (
    Candidate,
    EntityType,
    ExtractionConfigEntry,
    SourceType,
)

SOURCE = "Booking 262226938 for containers MSCU1234566 / MSCU1234567, vessel MAERSK LIMA 245W"


def _candidate(
    entity_type: EntityType,
    value: str,
    confidence: int,
    context_before: str = "",
    method: str = "regex",
) -> Candidate:
    return Candidate(
        entity_type=entity_type,
        raw_value=value,
        confidence=confidence,
        method=method,
        context_snippet=value,
        context_before=context_before,
    )


def _config() -> List[ExtractionConfigEntry]:
    return [
        ExtractionConfigEntry(
            entity_type_id="booking_number",
            priority=100,
            is_required=True,
            is_critical=True,
            is_linkable=True,
            confidence_threshold=85,
        ),
        ExtractionConfigEntry(entity_type_id="container_number", priority=95, is_required=True, confidence_threshold=90),
        ExtractionConfigEntry(entity_type_id="etd", priority=90, is_required=True),
    ]


def test_merge_applies_config_and_orders() -> None:
    candidates = [
        _candidate(EntityType.VOYAGE_NUMBER, "245W", 92),
        _candidate(EntityType.CONTAINER_NUMBER, "MSCU1234566", 94),
        _candidate(EntityType.BOOKING_NUMBER, "262226938", 78),
    ]

    outcome = EntityMerger().merge(candidates, _config(), SOURCE)

    assert [e.value for e in outcome.entities] == ["262226938", "MSCU1234566", "245W"]
    booking = outcome.entities[0]
    assert booking.priority == 100
    assert booking.is_required and booking.is_critical and booking.is_linkable
    assert booking.source_type == SourceType.EMAIL
    voyage = outcome.entities[-1]
    assert voyage.priority == DEFAULT_PRIORITY
    assert not (voyage.is_required or voyage.is_critical or voyage.is_linkable)


def test_confidence_breaks_priority_ties() -> None:
    candidates = [
        _candidate(EntityType.VOYAGE_NUMBER, "245W", 80),
        _candidate(EntityType.VESSEL_NAME, "MAERSK LIMA", 88),
    ]

    outcome = EntityMerger().merge(candidates, [], SOURCE)

    assert [e.value for e in outcome.entities] == ["MAERSK LIMA", "245W"]


def test_first_accepted_duplicate_wins() -> None:
    candidates = [
        _candidate(EntityType.CONTAINER_NUMBER, "MSCU1234566", 90, method="regex"),
        _candidate(EntityType.CONTAINER_NUMBER, "MSCU1234566", 96, method="deep"),
    ]

    outcome = EntityMerger().merge(candidates, _config(), SOURCE)

    assert len(outcome.entities) == 1
    assert outcome.entities[0].confidence == 90
    assert outcome.entities[0].method == "regex"
    assert outcome.rejected_count == 0


def test_same_value_different_type_is_kept() -> None:
    candidates = [
        _candidate(EntityType.BOOKING_NUMBER, "262226938", 96),
        _candidate(EntityType.REFERENCE_NUMBER, "262226938", 85),
    ]

    outcome = EntityMerger().merge(candidates, _config(), SOURCE)

    assert {e.entity_type for e in outcome.entities} == {EntityType.BOOKING_NUMBER, EntityType.REFERENCE_NUMBER}


def test_rejections_are_counted_by_reason() -> None:
    candidates = [
        _candidate(EntityType.CONTAINER_NUMBER, "MSCU1234567", 94),
        _candidate(EntityType.BOOKING_NUMBER, "999999999", 78),
        _candidate(EntityType.BOOKING_NUMBER, "262226938", 78, context_before="Phone: "),
        _candidate(EntityType.VOYAGE_NUMBER, "EXPRESS", 90),
    ]

    outcome = EntityMerger().merge(candidates, _config(), SOURCE)

    assert outcome.entities == []
    assert outcome.rejected_count == 4
    assert outcome.rejections == {
        "check_digit": 1,
        "not_in_source": 2,
        "phone_context": 1,
    }


def test_confidence_thresholds_are_opt_in() -> None:
    candidates = [_candidate(EntityType.BOOKING_NUMBER, "262226938", 78)]

    relaxed = EntityMerger().merge(candidates, _config(), SOURCE)
    strict = EntityMerger(apply_confidence_thresholds=True).merge(candidates, _config(), SOURCE)

    assert len(relaxed.entities) == 1
    assert strict.entities == []
    assert strict.rejections == {"below_threshold": 1}


def test_values_are_stripped() -> None:
    outcome = EntityMerger().merge([_candidate(EntityType.VOYAGE_NUMBER, " 245W ", 92)], [], SOURCE)

    assert outcome.entities[0].value == "245W"


def test_build_metadata() -> None:
    candidates = [
        _candidate(EntityType.BOOKING_NUMBER, "262226938", 99),
        _candidate(EntityType.CONTAINER_NUMBER, "MSCU1234566", 94),
    ]
    merger = EntityMerger()
    outcome = merger.merge(candidates, _config(), SOURCE)

    metadata = merger.build_metadata(outcome.entities, _config(), rejected_count=3, processing_time_ms=1.23456)

    assert metadata.total_extracted == 2
    assert metadata.required_found == 2
    assert metadata.required_missing == ["etd"]
    assert metadata.critical_found == 1
    assert metadata.linkable_found == 1
    assert metadata.avg_confidence == round((99 + 94) / 2)
    assert metadata.rejected_count == 3
    assert metadata.processing_time_ms == 1.235


def test_build_metadata_empty() -> None:
    metadata = EntityMerger.build_metadata([], [])

    assert metadata.total_extracted == 0
    assert metadata.avg_confidence == 0
    assert metadata.required_missing == []


def test_duplicates_compared_without_case_or_hyphens() -> None:
    source = "Vessel MAERSK LIMA, also written maersk-lima in the notice"
    candidates = [
        _candidate(EntityType.VESSEL_NAME, "MAERSK LIMA", 88),
        _candidate(EntityType.VESSEL_NAME, "maersk-lima", 95),
    ]

    outcome = EntityMerger().merge(candidates, [], source)

    assert [e.value for e in outcome.entities] == ["MAERSK LIMA"]
    assert outcome.rejected_count == 0
