"""Per-document-type extraction schemas.

Schemas are plain YAML data (``resources/document_schemas.yaml``) validated
into frozen pydantic models. Every pattern is compile-checked when the schema
is loaded; a schema with a bad pattern is skipped with a warning and the rest
of the registry still loads.
"""

from __future__ import annotations

import re
from functools import cached_property
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from rapidfuzz import fuzz, process

from freight_extract.documents.models import FieldType
from freight_extract.resources import resource_path


def _compile_all(patterns: List[str]) -> Tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


def _check_patterns(patterns: List[str]) -> List[str]:
    for p in patterns:
        try:
            re.compile(p, re.IGNORECASE)
        except re.error as e:
            raise ValueError(f"Invalid regex pattern {p!r}: {e}") from e
    return patterns


class FieldSpec(BaseModel):
    """A labelled field. Party fields are filled from sections instead."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    type: FieldType = FieldType.STRING
    required: bool = False
    label_patterns: List[str] = Field(default_factory=list)
    value_patterns: List[str] = Field(default_factory=list)
    reject_patterns: List[str] = Field(default_factory=list)

    @field_validator("label_patterns", "value_patterns", "reject_patterns")
    @classmethod
    def validate_patterns(cls, v: List[str]) -> List[str]:
        """Compile-check every pattern."""
        return _check_patterns(v)

    @cached_property
    def labels(self) -> Tuple[re.Pattern[str], ...]:
        return _compile_all(self.label_patterns)

    @cached_property
    def values(self) -> Tuple[re.Pattern[str], ...]:
        return _compile_all(self.value_patterns)

    @cached_property
    def rejects(self) -> Tuple[re.Pattern[str], ...]:
        return _compile_all(self.reject_patterns)

    def is_rejected(self, value: str) -> bool:
        return any(p.search(value) for p in self.rejects)


class SectionSpec(BaseModel):
    """A party block bounded by start and end marker lines."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    start_markers: List[str]
    end_markers: List[str] = Field(default_factory=list)
    fields: List[str] = Field(min_length=1)

    @field_validator("start_markers", "end_markers")
    @classmethod
    def validate_markers(cls, v: List[str]) -> List[str]:
        return _check_patterns(v)

    @cached_property
    def starts(self) -> Tuple[re.Pattern[str], ...]:
        return _compile_all(self.start_markers)

    @cached_property
    def ends(self) -> Tuple[re.Pattern[str], ...]:
        return _compile_all(self.end_markers)


class ColumnSpec(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    header_patterns: List[str] = Field(min_length=1)
    type: FieldType = FieldType.STRING

    @field_validator("header_patterns")
    @classmethod
    def validate_headers(cls, v: List[str]) -> List[str]:
        return _check_patterns(v)

    @cached_property
    def headers(self) -> Tuple[re.Pattern[str], ...]:
        return _compile_all(self.header_patterns)


class TableSpec(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    header_patterns: List[str] = Field(min_length=1)
    columns: List[ColumnSpec] = Field(min_length=1)

    @field_validator("header_patterns")
    @classmethod
    def validate_headers(cls, v: List[str]) -> List[str]:
        return _check_patterns(v)

    @cached_property
    def headers(self) -> Tuple[re.Pattern[str], ...]:
        return _compile_all(self.header_patterns)


class DocumentSchema(BaseModel):
    """Extraction template for one document type."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    document_type: str
    fields: List[FieldSpec] = Field(default_factory=list)
    sections: List[SectionSpec] = Field(default_factory=list)
    tables: List[TableSpec] = Field(default_factory=list)

    @property
    def required_fields(self) -> List[FieldSpec]:
        return [f for f in self.fields if f.required]


class SchemaRegistry:
    """Read-only lookup of document schemas by type name or alias."""

    def __init__(
        self,
        schemas: Mapping[str, DocumentSchema],
        aliases: Optional[Mapping[str, str]] = None,
        countries: Optional[List[str]] = None,
    ) -> None:
        self._schemas = MappingProxyType({k.lower(): v for k, v in schemas.items()})
        self._aliases = MappingProxyType({k.lower(): v.lower() for k, v in (aliases or {}).items()})
        # Longest first so "UNITED STATES OF AMERICA" wins over "USA".
        self.countries: Tuple[str, ...] = tuple(
            sorted({c.upper() for c in countries or []}, key=lambda c: (-len(c), c))
        )

    @classmethod
    def from_yaml(cls, path: str | Path | None = None) -> "SchemaRegistry":
        """Load schemas from YAML. ``None`` loads the bundled schemas."""
        path = resource_path("document_schemas.yaml", path)
        if not path.exists():
            raise FileNotFoundError(f"Document schema file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Document schema root must be a mapping: {path}")

        registry = cls.from_dict(data)
        logger.info(f"Loaded {len(registry._schemas)} document schemas from {path}")
        return registry

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SchemaRegistry":
        schemas: Dict[str, DocumentSchema] = {}
        for name, body in (data.get("schemas") or {}).items():
            try:
                schemas[name] = DocumentSchema(document_type=name, **(body or {}))
            except (ValidationError, TypeError) as e:
                logger.warning(f"Skipping invalid document schema: {name}", error=str(e))

        aliases = {}
        for alias, target in (data.get("aliases") or {}).items():
            if str(target).lower() not in schemas:
                logger.warning(f"Alias {alias} points at unknown schema {target}")
                continue
            aliases[alias] = target

        return cls(schemas, aliases, data.get("countries") or [])

    def get_schema(self, document_type: str) -> Optional[DocumentSchema]:
        """Schema for a type name or alias, or ``None`` when unsupported."""
        key = (document_type or "").strip().lower()
        key = self._aliases.get(key, key)
        schema = self._schemas.get(key)
        if schema is None:
            suggestion = process.extractOne(key, self.get_supported_document_types(), scorer=fuzz.ratio)
            hint = f" (closest: {suggestion[0]})" if suggestion and suggestion[1] >= 60 else ""
            logger.warning(f"No extraction schema for document type: {document_type}{hint}")
        return schema

    def get_supported_document_types(self) -> List[str]:
        return sorted(set(self._schemas) | set(self._aliases))

    def __contains__(self, document_type: object) -> bool:
        if not isinstance(document_type, str):
            return False
        key = document_type.strip().lower()
        return self._aliases.get(key, key) in self._schemas

    def __len__(self) -> int:
        return len(self._schemas)


_default_registry: Optional[SchemaRegistry] = None


def load_default_registry() -> SchemaRegistry:
    """Bundled schema registry, loaded once per process."""
    global _default_registry
    if _default_registry is None:
        _default_registry = SchemaRegistry.from_yaml()
    return _default_registry
