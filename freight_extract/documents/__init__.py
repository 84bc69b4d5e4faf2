"""Schema-driven extraction for documents whose type is already known."""

from freight_extract.documents.document_extractor import DocumentExtractor
from freight_extract.documents.models import (
    DocumentExtractionResult,
    ExtractedValue,
    ExtractionOptions,
    FieldType,
    PartyInfo,
)
from freight_extract.documents.schemas import DocumentSchema, SchemaRegistry, load_default_registry

__all__ = [
    "DocumentExtractor",
    "DocumentExtractionResult",
    "DocumentSchema",
    "ExtractedValue",
    "ExtractionOptions",
    "FieldType",
    "PartyInfo",
    "SchemaRegistry",
    "load_default_registry",
]
