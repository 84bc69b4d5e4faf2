"""Schema-driven extraction for documents of a known type.

Fields are looked up label-first with decreasing confidence per fallback
tier:

====================================================  ==========
Tier                                                  Confidence
====================================================  ==========
value pattern on the label line                       0.9
rest of the label line                                0.7
next line, unless it looks like another label         0.6
value pattern anywhere in the document                0.5
====================================================  ==========

Values that match one of the field's reject patterns are skipped and the
search moves on to the next label. Party fields come from sections and
tables from :mod:`freight_extract.documents.table_parser`.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Dict, List, Optional, Sequence

from loguru import logger

from freight_extract.documents.models import (
    DocumentExtractionResult,
    ExtractedValue,
    ExtractionOptions,
    FieldType,
    FieldValue,
    PartyInfo,
    TableRow,
    ValueSource,
)
from freight_extract.documents.party_parser import extract_section, parse_party
from freight_extract.documents.schemas import DocumentSchema, FieldSpec, SchemaRegistry, load_default_registry
from freight_extract.documents.table_parser import extract_table

LABEL_LINE_CONFIDENCE = 0.9
REST_OF_LINE_CONFIDENCE = 0.7
NEXT_LINE_CONFIDENCE = 0.6
GLOBAL_SEARCH_CONFIDENCE = 0.5
PARTY_BONUS = 0.1
TABLE_BONUS = 0.1

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

_ISO_DATE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
_TEXT_DATE = re.compile(r"\b(\d{1,2})[-/\s]+([A-Za-z]{3})[A-Za-z]*[-/\s,]+(\d{2,4})\b")
_SLASH_DATE = re.compile(r"\b(\d{1,2})/(\d{1,2})/(\d{4})\b")
_CONTAINER = re.compile(r"\b[A-Z]{4}\d{7}\b")

_LABEL_SHAPES = (
    re.compile(r"^[A-Z][A-Z\s/.#]+[:\s]*$"),
    re.compile(r"^\d+\.\s+[A-Z]", re.IGNORECASE),
    re.compile(r"^(SHIPPER|CONSIGNEE|NOTIFY|VESSEL|PORT|DATE|WEIGHT|CONTAINER)\b", re.IGNORECASE),
)


def looks_like_label(line: str) -> bool:
    """Heuristic: all-caps short line, numbered item, or a known section keyword."""
    line = line.strip()
    if not line:
        return False
    if _LABEL_SHAPES[0].match(line) and len(line) <= 40:
        return True
    return any(p.match(line) for p in _LABEL_SHAPES[1:])


def normalize_date(text: str) -> str:
    """ISO ``YYYY-MM-DD`` for recognised formats, else the text unchanged.

    Slash dates are read day first. Two-digit years above 50 are 19xx.
    """
    text = text.strip()

    match = _ISO_DATE.search(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
        return _iso(year, month, day) or text

    match = _TEXT_DATE.search(text)
    if match and match.group(2).lower() in MONTHS:
        day = int(match.group(1))
        year = int(match.group(3))
        if year < 100:
            year += 1900 if year > 50 else 2000
        return _iso(year, MONTHS[match.group(2).lower()], day) or text

    match = _SLASH_DATE.search(text)
    if match:
        day, month, year = (int(g) for g in match.groups())
        return _iso(year, month, day) or text

    return text


def _iso(year: int, month: int, day: int) -> Optional[str]:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def normalize_value(value: str, field_type: FieldType) -> FieldValue:
    """Type-specific clean-up of a raw field value."""
    value = value.strip()

    if field_type == FieldType.DATE:
        return normalize_date(value)
    if field_type == FieldType.NUMBER:
        try:
            return float(value.replace(",", ""))
        except ValueError:
            return value
    if field_type in (FieldType.WEIGHT, FieldType.VOLUME):
        return re.sub(r"\s+", " ", value)
    if field_type == FieldType.CONTAINER:
        containers = _CONTAINER.findall(value.upper())
        if len(containers) == 1:
            return containers[0]
        if containers:
            return containers
    return value


def _first_group(match: re.Match[str]) -> str:
    if match.re.groups and match.group(1) is not None:
        return match.group(1)
    return match.group(0)


class DocumentExtractor:
    """Extracts fields, parties and tables for a known document type."""

    def __init__(self, registry: Optional[SchemaRegistry] = None, options: Optional[ExtractionOptions] = None):
        self.registry = registry or load_default_registry()
        self.options = options or ExtractionOptions()

    @classmethod
    def from_config(cls, config) -> "DocumentExtractor":
        """Build from a :class:`DocumentExtractionConfig` section."""
        registry = SchemaRegistry.from_yaml(config.schemas_file) if config.schemas_file else None
        options = ExtractionOptions(
            extract_parties=config.extract_parties,
            extract_tables=config.extract_tables,
            min_confidence=config.min_confidence,
        )
        return cls(registry, options)

    def supported_document_types(self) -> List[str]:
        return self.registry.get_supported_document_types()

    def extract(
        self,
        document_type: str,
        text: str,
        options: Optional[ExtractionOptions] = None,
    ) -> Optional[DocumentExtractionResult]:
        """Structured record for one document of a known type.

        Args:
            document_type: Registered type name or alias, case-insensitive.
            text: Document text.
            options: Overrides the extractor defaults for this call.

        Returns:
            DocumentExtractionResult, or ``None`` for an unsupported type.
        """
        schema = self.registry.get_schema(document_type)
        if schema is None:
            return None

        opts = options or self.options
        lines = [line.strip() for line in text.split("\n") if line.strip()]

        fields = self.extract_fields(schema, text, lines, opts.min_confidence)

        parties: Dict[str, PartyInfo] = {}
        if opts.extract_parties:
            parties = self.extract_parties(schema, text)

        tables: Dict[str, List[TableRow]] = {}
        if opts.extract_tables:
            for table in schema.tables:
                rows = extract_table(table, lines)
                if rows:
                    tables[table.name] = rows

        confidence = self.calculate_confidence(schema, fields, parties, tables)
        logger.debug(
            "Document extraction complete",
            document_type=schema.document_type,
            fields=len(fields),
            parties=len(parties),
            tables=len(tables),
            confidence=confidence,
        )
        return DocumentExtractionResult(
            document_type=schema.document_type,
            fields=fields,
            parties=parties,
            tables=tables,
            confidence=confidence,
        )

    # ------------------------------------------------------------------
    # Fields
    # ------------------------------------------------------------------
    def extract_fields(
        self,
        schema: DocumentSchema,
        text: str,
        lines: Sequence[str],
        min_confidence: float = 0.0,
    ) -> Dict[str, ExtractedValue]:
        fields: Dict[str, ExtractedValue] = {}
        for spec in schema.fields:
            if spec.type == FieldType.PARTY:
                continue
            extracted = self.extract_field(spec, text, lines)
            if extracted is not None and extracted.confidence >= min_confidence:
                fields[spec.name] = extracted
        return fields

    def extract_field(self, spec: FieldSpec, text: str, lines: Sequence[str]) -> Optional[ExtractedValue]:
        for label in spec.labels:
            index = next((i for i, line in enumerate(lines) if label.search(line)), None)
            if index is None:
                continue

            line = lines[index]
            label_match = label.search(line)
            after = line[label_match.end():].strip()

            for pattern in spec.values:
                match = pattern.search(after) or pattern.search(line)
                if match and not spec.is_rejected(_first_group(match)):
                    return self._value(spec, _first_group(match), LABEL_LINE_CONFIDENCE, line)

            if after and not spec.is_rejected(after):
                return self._value(spec, after, REST_OF_LINE_CONFIDENCE, line)

            if index + 1 < len(lines):
                next_line = lines[index + 1]
                if not looks_like_label(next_line) and not spec.is_rejected(next_line):
                    return self._value(spec, next_line, NEXT_LINE_CONFIDENCE, next_line)

        for pattern in spec.values:
            match = pattern.search(text)
            if match and not spec.is_rejected(_first_group(match)):
                return self._value(spec, _first_group(match), GLOBAL_SEARCH_CONFIDENCE, match.group(0))

        return None

    @staticmethod
    def _value(spec: FieldSpec, raw: str, confidence: float, raw_text: str) -> ExtractedValue:
        return ExtractedValue(
            value=normalize_value(raw, spec.type),
            confidence=confidence,
            source=ValueSource.PATTERN,
            raw_text=raw_text,
        )

    # ------------------------------------------------------------------
    # Parties
    # ------------------------------------------------------------------
    def extract_parties(self, schema: DocumentSchema, text: str) -> Dict[str, PartyInfo]:
        parties: Dict[str, PartyInfo] = {}
        for section in schema.sections:
            body = extract_section(section, text)
            if body is None:
                continue
            party = parse_party(body, self.registry.countries)
            if party is not None:
                parties[section.fields[0]] = party
        return parties

    # ------------------------------------------------------------------
    # Confidence
    # ------------------------------------------------------------------
    @staticmethod
    def calculate_confidence(
        schema: DocumentSchema,
        fields: Dict[str, ExtractedValue],
        parties: Dict[str, PartyInfo],
        tables: Dict[str, List[TableRow]],
    ) -> float:
        """Share of required fields found, plus bonuses for parties and tables."""
        required = schema.required_fields
        if required:
            found = sum(1 for f in required if f.name in fields or f.name in parties)
            score = found / len(required)
        else:
            score = 1.0
        if parties:
            score += PARTY_BONUS
        if tables:
            score += TABLE_BONUS
        return round(min(1.0, score), 4)
