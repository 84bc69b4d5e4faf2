from __future__ import annotations

import pytest

from freight_extract.documents.document_extractor import (
    DocumentExtractor,
    looks_like_label,
    normalize_date,
    normalize_value,
)
from freight_extract.documents.models import ExtractionOptions, FieldType
from freight_extract.documents.schemas import SchemaRegistry
from freight_extract.utils.config import DocumentExtractionConfig

SHIPPING_BILL = """S.B. No: 1234567
S.B. Date: 15-Mar-2025
EXPORTER
ACME EXPORTS PVT LTD
12 Industrial Estate
Mumbai, MH 400001
INDIA
CONSIGNEE
GLOBAL IMPORTS INC
500 Harbor Blvd
Long Beach, CA 90802
UNITED STATES OF AMERICA
PORT OF LOADING: INNSA
CONTAINER NO. | SEAL NO. | WEIGHT
MSCU1234566 | SL123456 | 12,500 KG
CSQU3054383 | SL654321 | 11,200 KG
TOTAL | | 23,700 KG
"""


@pytest.fixture
def extractor() -> DocumentExtractor:
    return DocumentExtractor()


@pytest.fixture
def tiny_extractor() -> DocumentExtractor:
    registry = SchemaRegistry.from_dict(
        {
            "schemas": {
                "test_notice": {
                    "fields": [
                        {
                            "name": "reference",
                            "required": True,
                            "label_patterns": [r"\bREF(?:ERENCE)?\s*NO[.:\s]*"],
                            "value_patterns": [r"\b([A-Z]{3}\d{5})\b"],
                        },
                        {
                            "name": "carrier",
                            "label_patterns": [r"\bCARRIER[.:\s]*", r"\bSHIPPING\s*LINE[.:\s]*"],
                            "reject_patterns": [r"^TBA$"],
                        },
                        {"name": "customer", "type": "party", "required": True},
                    ],
                    "sections": [
                        {
                            "name": "customer_section",
                            "start_markers": [r"\bCUSTOMER\b"],
                            "end_markers": [r"\bCARRIER\b"],
                            "fields": ["customer"],
                        }
                    ],
                }
            }
        }
    )
    return DocumentExtractor(registry)


def test_shipping_bill_end_to_end(extractor: DocumentExtractor) -> None:
    result = extractor.extract("shipping_bill", SHIPPING_BILL)

    assert result is not None
    assert result.document_type == "shipping_bill"

    fields = result.fields
    assert (fields["sb_number"].value, fields["sb_number"].confidence) == ("1234567", 0.9)
    assert fields["sb_date"].value == "2025-03-15"
    assert (fields["port_of_loading"].value, fields["port_of_loading"].confidence) == ("INNSA", 0.7)
    assert (fields["container_numbers"].value, fields["container_numbers"].confidence) == ("MSCU1234566", 0.6)

    exporter = result.parties["exporter"]
    assert exporter.name == "ACME EXPORTS PVT LTD"
    assert exporter.address_line1 == "12 Industrial Estate"
    assert (exporter.city, exporter.state, exporter.postal_code) == ("Mumbai", "MH", "400001")
    assert exporter.country == "INDIA"

    consignee = result.parties["consignee"]
    assert consignee.name == "GLOBAL IMPORTS INC"
    assert consignee.city == "Long Beach"
    assert consignee.country == "UNITED STATES OF AMERICA"

    rows = result.tables["container_details"]
    assert len(rows) == 2
    assert rows[0] == {"container": "MSCU1234566", "seal": "SL123456", "weight": 12500.0}
    assert rows[1]["weight"] == 11200.0

    assert result.confidence == 1.0


def test_alias_resolves_to_canonical_type(extractor: DocumentExtractor) -> None:
    result = extractor.extract("MBL", "B/L No: MAEU1234567890")

    assert result is not None
    assert result.document_type == "bill_of_lading"
    assert result.fields["bl_number"].value == "MAEU1234567890"
    assert result.fields["bl_number"].confidence == 0.9


def test_unknown_type_returns_none(extractor: DocumentExtractor) -> None:
    assert extractor.extract("telex_release", "anything") is None


def test_supported_types_include_aliases(extractor: DocumentExtractor) -> None:
    supported = extractor.supported_document_types()

    assert "shipping_bill" in supported
    assert "mbl" in supported
    assert supported == sorted(supported)


def test_value_on_label_line(tiny_extractor: DocumentExtractor) -> None:
    result = tiny_extractor.extract("test_notice", "Reference No: ABC12345")

    assert result.fields["reference"].value == "ABC12345"
    assert result.fields["reference"].confidence == 0.9


def test_rest_of_label_line(tiny_extractor: DocumentExtractor) -> None:
    result = tiny_extractor.extract("test_notice", "CARRIER: Maersk Line")

    assert result.fields["carrier"].value == "Maersk Line"
    assert result.fields["carrier"].confidence == 0.7


def test_next_line_after_bare_label(tiny_extractor: DocumentExtractor) -> None:
    result = tiny_extractor.extract("test_notice", "CARRIER\nMaersk Line")

    assert result.fields["carrier"].value == "Maersk Line"
    assert result.fields["carrier"].confidence == 0.6


def test_next_line_that_looks_like_a_label_is_skipped(tiny_extractor: DocumentExtractor) -> None:
    result = tiny_extractor.extract("test_notice", "CARRIER\nPORT OF LOADING")

    assert "carrier" not in result.fields


def test_global_search_and_min_confidence(tiny_extractor: DocumentExtractor) -> None:
    text = "Please quote file ABC12345 on all papers"

    relaxed = tiny_extractor.extract("test_notice", text)
    strict = tiny_extractor.extract("test_notice", text, ExtractionOptions(min_confidence=0.6))

    assert relaxed.fields["reference"].value == "ABC12345"
    assert relaxed.fields["reference"].confidence == 0.5
    assert "reference" not in strict.fields


def test_rejected_value_moves_to_next_label(tiny_extractor: DocumentExtractor) -> None:
    text = "CARRIER: TBA\nVESSEL: MAERSK LIMA\nSHIPPING LINE: Hapag-Lloyd"

    result = tiny_extractor.extract("test_notice", text)

    assert result.fields["carrier"].value == "Hapag-Lloyd"
    assert result.fields["carrier"].confidence == 0.7


def test_confidence_counts_required_parties(tiny_extractor: DocumentExtractor) -> None:
    only_reference = tiny_extractor.extract("test_notice", "REF NO: ABC12345")
    with_party = tiny_extractor.extract(
        "test_notice", "REF NO: ABC12345\nCUSTOMER\nACME CORP\nCARRIER: Maersk Line"
    )

    assert only_reference.confidence == 0.5
    # both required found, plus the party bonus, capped
    assert with_party.parties["customer"].name == "ACME CORP"
    assert with_party.confidence == 1.0


def test_parties_and_tables_can_be_switched_off(extractor: DocumentExtractor) -> None:
    result = extractor.extract(
        "shipping_bill",
        SHIPPING_BILL,
        ExtractionOptions(extract_parties=False, extract_tables=False),
    )

    assert result.parties == {}
    assert result.tables == {}
    assert result.confidence == 1.0


def test_from_config() -> None:
    extractor = DocumentExtractor.from_config(DocumentExtractionConfig(extract_tables=False, min_confidence=0.8))

    assert extractor.options.extract_tables is False
    assert extractor.options.min_confidence == 0.8
    assert "bill_of_lading" in extractor.registry


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("SHIPPER:", True),
        ("1. Goods", True),
        ("Vessel / Voyage", True),
        ("Maersk Line", False),
        ("MSCU1234566 | SL123456", False),
        ("", False),
    ],
)
def test_looks_like_label(line: str, expected: bool) -> None:
    assert looks_like_label(line) is expected


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("2025-03-15", "2025-03-15"),
        ("15-Mar-2025", "2025-03-15"),
        ("15 March 2025", "2025-03-15"),
        ("05/04/2025", "2025-04-05"),
        ("01-Jan-99", "1999-01-01"),
        ("01-Jan-25", "2025-01-01"),
        ("31/02/2025", "31/02/2025"),
        ("next week", "next week"),
    ],
)
def test_normalize_date(text: str, expected: str) -> None:
    assert normalize_date(text) == expected


def test_normalize_value_by_type() -> None:
    assert normalize_value("1,250", FieldType.NUMBER) == 1250.0
    assert normalize_value("many", FieldType.NUMBER) == "many"
    assert normalize_value("12,500   KGS", FieldType.WEIGHT) == "12,500 KGS"
    assert normalize_value("mscu1234566", FieldType.CONTAINER) == "MSCU1234566"
    assert normalize_value("MSCU1234566, CSQU3054383", FieldType.CONTAINER) == ["MSCU1234566", "CSQU3054383"]
    assert normalize_value("  ACME  ", FieldType.STRING) == "ACME"
