"""Flat-entity extraction entry point.

``SenderAwareExtractor.extract`` wires the pieces together:

1. detect the sender category (preferring the true sender of a forward);
2. look up the category's extraction config through the TTL cache;
3. run the base extractor and the config-gated deep extractor;
4. validate, de-duplicate and order the candidates;
5. optionally run the schema-driven document extractor when the caller
   already knows the document type.
"""

from __future__ import annotations

import time
from typing import List, Optional

from loguru import logger

from freight_extract.documents.document_extractor import DocumentExtractor
from freight_extract.documents.models import ExtractionOptions
from freight_extract.extraction.base_extractor import BaseExtractor
from freight_extract.extraction.deep_extractor import DeepExtractor
from freight_extract.extraction.entity_merger import EntityMerger
from freight_extract.extraction.extraction_config import (
    ExtractionConfigCache,
    ExtractionConfigProvider,
    YamlConfigProvider,
)
from freight_extract.extraction.models import (
    Candidate,
    ExtractionInput,
    ExtractionMetadata,
    FreightExtractionResult,
    SenderCategory,
)
from freight_extract.extraction.pattern_library import PatternLibrary, load_default_library
from freight_extract.extraction.sender_category import SenderCategoryDetector, load_default_detector
from freight_extract.utils.config import Config


class SenderAwareExtractor:
    """Sender-context-aware extraction of validated shipment entities."""

    def __init__(
        self,
        config: Optional[Config] = None,
        *,
        library: Optional[PatternLibrary] = None,
        detector: Optional[SenderCategoryDetector] = None,
        provider: Optional[ExtractionConfigProvider] = None,
        document_extractor: Optional[DocumentExtractor] = None,
    ) -> None:
        self.config = config or Config()
        patterns_cfg = self.config.patterns
        validation = self.config.validation
        provider_cfg = self.config.config_provider

        if library is None:
            library = (
                PatternLibrary.from_yaml(patterns_cfg.patterns_file)
                if patterns_cfg.patterns_file
                else load_default_library()
            )
        if detector is None:
            detector = (
                SenderCategoryDetector.from_yaml(patterns_cfg.sender_categories_file)
                if patterns_cfg.sender_categories_file
                else load_default_detector()
            )

        self.library = library
        self.detector = detector
        self.cache = ExtractionConfigCache(
            provider or YamlConfigProvider(provider_cfg.rules_file or None),
            ttl_seconds=provider_cfg.cache_ttl_seconds,
            fallback_category=SenderCategory(provider_cfg.fallback_category),
        )
        self.base_extractor = BaseExtractor(
            library,
            context_window=validation.context_window,
            subject_boost=validation.subject_boost,
            date_min_year=validation.date_min_year,
            date_max_year=validation.date_max_year,
        )
        self.deep_extractor = DeepExtractor(
            library,
            context_window=validation.context_window,
            date_min_year=validation.date_min_year,
            date_max_year=validation.date_max_year,
        )
        self.merger = EntityMerger(apply_confidence_thresholds=validation.apply_confidence_thresholds)
        self.document_extractor = document_extractor or DocumentExtractor.from_config(self.config.documents)

    def extract(self, request: ExtractionInput) -> FreightExtractionResult:
        """Extract, validate and rank entities for one message or document.

        Args:
            request: Text, sender identities, source type and an optional known
                document type.

        Returns:
            FreightExtractionResult with the sender category, ordered entities,
            summary metadata and the schema-driven record when a document type
            was given.
        """
        started = time.perf_counter()
        category = self.detector.detect_with_fallback(request.sender_identity, request.true_sender_identity)

        source_text = request.source_text
        if not source_text.strip():
            logger.debug("Empty input, nothing to extract", sender_category=category.value)
            return FreightExtractionResult(sender_category=category, metadata=ExtractionMetadata())

        config_entries = self.cache.get(category, request.source_type)

        candidates: List[Candidate] = self.base_extractor.extract(request.raw_text, request.subject, category)
        candidates += self.deep_extractor.extract(source_text, [e.entity_type_id for e in config_entries])

        outcome = self.merger.merge(candidates, config_entries, source_text, request.source_type)
        metadata = self.merger.build_metadata(
            outcome.entities,
            config_entries,
            rejected_count=outcome.rejected_count,
            processing_time_ms=(time.perf_counter() - started) * 1000,
        )

        document = None
        if request.known_document_type:
            document = self.document_extractor.extract(
                request.known_document_type,
                request.raw_text,
                ExtractionOptions(
                    extract_parties=self.config.documents.extract_parties,
                    extract_tables=self.config.documents.extract_tables,
                    min_confidence=self.config.documents.min_confidence,
                ),
            )

        logger.debug(
            "Extraction complete",
            sender_category=category.value,
            source_type=request.source_type.value,
            candidates=len(candidates),
            total_extracted=metadata.total_extracted,
            rejected=metadata.rejected_count,
            required_missing=metadata.required_missing,
        )

        return FreightExtractionResult(
            sender_category=category,
            extractions=outcome.entities,
            metadata=metadata,
            document=document,
        )

    def clear_cache(self) -> None:
        """Drop every cached extraction config entry."""
        self.cache.clear()
