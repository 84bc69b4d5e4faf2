"""Models for schema-driven document extraction."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class FieldType(str, Enum):
    """Declared type of a schema field or table column."""

    STRING = "string"
    DATE = "date"
    NUMBER = "number"
    AMOUNT = "amount"
    PARTY = "party"
    ADDRESS = "address"
    CONTAINER = "container"
    WEIGHT = "weight"
    VOLUME = "volume"


class ValueSource(str, Enum):
    PATTERN = "pattern"
    SECTION = "section"
    TABLE = "table"


FieldValue = Union[str, float, List[str]]
CellValue = Optional[Union[str, float]]
TableRow = Dict[str, CellValue]


class PartyInfo(BaseModel):
    """Party block (shipper, consignee, notify party...) parsed from a section."""

    name: str
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    tax_id: Optional[str] = None


class ExtractedValue(BaseModel):
    """A field value together with the fallback tier that produced it."""

    value: FieldValue
    confidence: float = Field(ge=0.0, le=1.0)
    source: ValueSource = ValueSource.PATTERN
    raw_text: Optional[str] = None


class ExtractionOptions(BaseModel):
    """Per-call switches for the document extractor."""

    model_config = ConfigDict(extra="forbid")

    extract_parties: bool = True
    extract_tables: bool = True
    min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class DocumentExtractionResult(BaseModel):
    """Structured record produced for a document of known type."""

    document_type: str
    fields: Dict[str, ExtractedValue] = Field(default_factory=dict)
    parties: Dict[str, PartyInfo] = Field(default_factory=dict)
    tables: Dict[str, List[TableRow]] = Field(default_factory=dict)
    confidence: float = 0.0
    extracted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
