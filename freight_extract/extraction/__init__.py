"""Sender-aware extraction of validated shipment entities."""

from freight_extract.extraction.errors import ConfigProviderError, FreightExtractionError, PatternLibraryError
from freight_extract.extraction.models import (
    Candidate,
    EntityType,
    ExtractionConfigEntry,
    ExtractionInput,
    FreightExtractionResult,
    SenderCategory,
    SourceType,
    ValidatedEntity,
)
from freight_extract.extraction.pattern_library import PatternLibrary, load_default_library
from freight_extract.extraction.sender_aware_extractor import SenderAwareExtractor
from freight_extract.extraction.sender_category import SenderCategoryDetector, detect_sender_category
from freight_extract.extraction.validators import is_valid_container_number, validate_entity

__all__ = [
    "Candidate",
    "ConfigProviderError",
    "EntityType",
    "ExtractionConfigEntry",
    "ExtractionInput",
    "FreightExtractionError",
    "FreightExtractionResult",
    "PatternLibrary",
    "PatternLibraryError",
    "SenderAwareExtractor",
    "SenderCategory",
    "SenderCategoryDetector",
    "SourceType",
    "ValidatedEntity",
    "detect_sender_category",
    "is_valid_container_number",
    "load_default_library",
    "validate_entity",
]
