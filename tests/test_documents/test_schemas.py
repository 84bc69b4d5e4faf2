from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from freight_extract.documents.models import FieldType
from freight_extract.documents.schemas import FieldSpec, SchemaRegistry, load_default_registry


def _write_yaml(path: Path, data: object) -> None:
    path.write_text(yaml.safe_dump(data), encoding="utf-8")


def test_bundled_registry() -> None:
    registry = load_default_registry()

    assert len(registry) == 15
    for document_type in ("bill_of_lading", "arrival_notice", "shipping_bill", "vgm_confirmation"):
        assert document_type in registry
    assert registry.get_schema("draft_hbl").document_type == "bill_of_lading"
    assert registry.get_schema("POD").document_type == "proof_of_delivery"


def test_every_bundled_schema_has_a_required_field() -> None:
    registry = load_default_registry()

    for name in registry.get_supported_document_types():
        schema = registry.get_schema(name)
        assert schema.required_fields, name


def test_countries_sorted_longest_first() -> None:
    registry = SchemaRegistry({}, countries=["usa", "United States of America", "INDIA", "USA"])

    assert registry.countries == ("UNITED STATES OF AMERICA", "INDIA", "USA")


def test_invalid_schema_is_skipped() -> None:
    registry = SchemaRegistry.from_dict(
        {
            "schemas": {
                "good": {"fields": [{"name": "ref", "label_patterns": [r"\bREF\b"]}]},
                "bad_regex": {"fields": [{"name": "ref", "label_patterns": [r"(unclosed"]}]},
                "bad_key": {"fields": [{"name": "ref", "colour": "red"}]},
            }
        }
    )

    assert len(registry) == 1
    assert "good" in registry
    assert "bad_regex" not in registry


def test_alias_to_unknown_schema_is_dropped() -> None:
    registry = SchemaRegistry.from_dict(
        {
            "schemas": {"good": {}},
            "aliases": {"ok": "good", "dangling": "missing"},
        }
    )

    assert registry.get_supported_document_types() == ["good", "ok"]
    assert registry.get_schema("OK").document_type == "good"
    assert registry.get_schema("dangling") is None


def test_unknown_type_returns_none() -> None:
    registry = load_default_registry()

    assert registry.get_schema("bill_of_ladin") is None
    assert registry.get_schema("") is None
    assert 42 not in registry


def test_field_spec_compiles_case_insensitive() -> None:
    spec = FieldSpec(
        name="vessel_name",
        label_patterns=[r"\bVESSEL[.:\s]*"],
        reject_patterns=[r"Voyage|IMO"],
    )

    assert spec.type == FieldType.STRING
    assert spec.labels[0].search("Vessel: X")
    assert spec.is_rejected("imo 1234567")
    assert not spec.is_rejected("MAERSK LIMA")


def test_field_spec_rejects_bad_pattern() -> None:
    with pytest.raises(ValidationError):
        FieldSpec(name="x", value_patterns=["[bad"])


def test_from_yaml_custom_file(tmp_path: Path) -> None:
    path = tmp_path / "schemas.yaml"
    _write_yaml(
        path,
        {
            "schemas": {
                "telex_release": {
                    "fields": [{"name": "bl_number", "required": True, "label_patterns": [r"\bB/L\b"]}],
                }
            },
            "aliases": {"telex": "telex_release"},
            "countries": ["INDIA"],
        },
    )

    registry = SchemaRegistry.from_yaml(path)

    assert registry.get_schema("telex").required_fields[0].name == "bl_number"
    assert registry.countries == ("INDIA",)


def test_from_yaml_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        SchemaRegistry.from_yaml(tmp_path / "missing.yaml")


def test_from_yaml_non_mapping_root(tmp_path: Path) -> None:
    path = tmp_path / "schemas.yaml"
    _write_yaml(path, ["bill_of_lading"])

    with pytest.raises(ValueError, match="mapping"):
        SchemaRegistry.from_yaml(path)
