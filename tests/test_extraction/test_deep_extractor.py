from __future__ import annotations

import pytest

from freight_extract.extraction.deep_extractor import DEEP_STEPS, DeepExtractor, DeepStep
from freight_extract.extraction.models import EntityType


@pytest.fixture
def extractor() -> DeepExtractor:
    return DeepExtractor()


def test_nothing_requested_returns_nothing(extractor: DeepExtractor) -> None:
    text = "Gross Weight: 12,500 KGS"

    assert extractor.extract(text, []) == []
    assert extractor.extract(text, ["booking_number", "vessel_name"]) == []
    assert extractor.extract("   ", ["gross_weight_kg"]) == []


def test_gross_weight_keeps_raw_value(extractor: DeepExtractor) -> None:
    candidates = extractor.extract("Gross Weight: 12,500 KGS", ["gross_weight_kg"])

    assert len(candidates) == 1
    weight = candidates[0]
    assert weight.entity_type == EntityType.GROSS_WEIGHT_KG
    assert weight.raw_value == "12,500"
    assert weight.normalized == "12500"
    assert weight.confidence == 92


def test_weights_routed_by_type(extractor: DeepExtractor) -> None:
    text = "Gross Weight: 12,500 KGS\nNet Weight: 11,000 KGS\nVGM: 14,300 KGS"

    candidates = extractor.extract(text, ["net_weight_kg", "vgm_weight_kg"])

    assert {(c.entity_type, c.normalized) for c in candidates} == {
        (EntityType.NET_WEIGHT_KG, "11000"),
        (EntityType.VGM_WEIGHT_KG, "14300"),
    }


def test_only_requested_steps_run(extractor: DeepExtractor) -> None:
    text = "Seal No: SL123456\nHS Code: 8542.31\nIncoterms: FOB"

    candidates = extractor.extract(text, [EntityType.SEAL_NUMBER])

    assert {c.entity_type for c in candidates} == {EntityType.SEAL_NUMBER}
    assert "SL123456" in {c.raw_value for c in candidates}


def test_last_free_day(extractor: DeepExtractor) -> None:
    candidates = extractor.extract("Last Free Day: 2025-03-20", ["last_free_day"])

    assert len(candidates) == 1
    lfd = candidates[0]
    assert lfd.entity_type == EntityType.LAST_FREE_DAY
    assert lfd.normalized == "2025-03-20"
    assert lfd.confidence == (96 + 92) // 2


def test_inland_location_offered_to_each_requested_type(extractor: DeepExtractor) -> None:
    candidates = extractor.extract("Cargo moves via Memphis next week", ["inland_destination", "ramp_location"])

    assert {(c.entity_type, c.raw_value) for c in candidates} == {
        (EntityType.INLAND_DESTINATION, "Memphis"),
        (EntityType.RAMP_LOCATION, "Memphis"),
    }


def test_amounts_and_references(extractor: DeepExtractor) -> None:
    text = "Ocean Freight: USD 2,450.00\nPO Number: PO-88812\nInvoice No: INV20250311"

    candidates = extractor.extract(text, ["freight_amount", "po_number", "invoice_number"])
    by_type = {c.entity_type: c for c in candidates}

    assert by_type[EntityType.FREIGHT_AMOUNT].raw_value == "2,450.00"
    assert by_type[EntityType.FREIGHT_AMOUNT].normalized == "2450.00"
    assert by_type[EntityType.PO_NUMBER].raw_value == "PO-88812"
    assert by_type[EntityType.INVOICE_NUMBER].raw_value == "INV20250311"


def test_every_reference_in_the_text_is_kept(extractor: DeepExtractor) -> None:
    text = "PO# 4500123456 and PO# 4500987654 are both on this booking"

    candidates = extractor.extract(text, ["po_number"])

    assert [c.raw_value for c in candidates] == ["4500123456", "4500987654"]


def test_weights_keep_first_match_per_rule(extractor: DeepExtractor) -> None:
    text = "Gross Weight: 12,500 KGS\nGross Weight: 13,000 KGS"

    candidates = extractor.extract(text, ["gross_weight_kg"])

    assert [c.normalized for c in candidates] == ["12500"]


def test_supported_types_cover_every_step(extractor: DeepExtractor) -> None:
    supported = extractor.supported_types

    assert EntityType.IT_NUMBER in supported
    assert EntityType.DETENTION_START in supported
    assert EntityType.BOOKING_NUMBER not in supported
    assert len({step.name for step in DEEP_STEPS}) == len(DEEP_STEPS)


def test_custom_steps() -> None:
    calls = []

    def run(extractor, text, wanted):
        calls.append(sorted(wanted))
        return []

    step = DeepStep("custom", frozenset({EntityType.HS_CODE}), run)
    extractor = DeepExtractor(steps=[step])

    extractor.extract("HS 8542.31", ["hs_code", "eta"])
    extractor.extract("HS 8542.31", ["eta"])

    assert calls == [["eta", "hs_code"]]
