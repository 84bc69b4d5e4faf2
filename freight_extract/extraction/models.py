"""Shared data models for extraction modules."""

from __future__ import annotations

import re
from enum import Enum
from functools import cached_property
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from freight_extract.documents.models import DocumentExtractionResult


class SourceType(str, Enum):
    """Where the text came from."""

    EMAIL = "email"
    DOCUMENT = "document"


class SenderCategory(str, Enum):
    """Coarse classification of a message originator."""

    MAERSK = "maersk"
    HAPAG = "hapag"
    CMA_CGM = "cma_cgm"
    MSC = "msc"
    COSCO = "cosco"
    ONE_LINE = "one_line"
    EVERGREEN = "evergreen"
    YANG_MING = "yang_ming"
    CUSTOMS_BROKER = "customs_broker"
    FREIGHT_FORWARDER = "freight_forwarder"
    TERMINAL = "terminal"
    TRUCKING = "trucking"
    RAIL = "rail"
    OTHER_CARRIER = "other_carrier"
    OTHER = "other"

    @property
    def carrier_tag(self) -> Optional[str]:
        """Carrier tag used by carrier-specific pattern rules, if this is a carrier."""
        return _CARRIER_TAGS.get(self)

    @property
    def is_carrier(self) -> bool:
        return self in _CARRIER_TAGS


_CARRIER_TAGS = {
    SenderCategory.MAERSK: "maersk",
    SenderCategory.HAPAG: "hapag-lloyd",
    SenderCategory.CMA_CGM: "cma-cgm",
    SenderCategory.MSC: "msc",
    SenderCategory.COSCO: "cosco",
    SenderCategory.ONE_LINE: "one",
    SenderCategory.EVERGREEN: "evergreen",
    SenderCategory.YANG_MING: "yang-ming",
}


class EntityType(str, Enum):
    """Every entity type the flat-entity extractors can produce."""

    # Identifiers
    BOOKING_NUMBER = "booking_number"
    CONTAINER_NUMBER = "container_number"
    BL_NUMBER = "bl_number"
    ENTRY_NUMBER = "entry_number"

    # Sailing dates and cutoffs
    ETD = "etd"
    ETA = "eta"
    SI_CUTOFF = "si_cutoff"
    VGM_CUTOFF = "vgm_cutoff"
    CARGO_CUTOFF = "cargo_cutoff"
    GATE_CUTOFF = "gate_cutoff"
    PORT_CUTOFF = "port_cutoff"

    # Routing
    PORT_OF_LOADING = "port_of_loading"
    PORT_OF_DISCHARGE = "port_of_discharge"
    PLACE_OF_RECEIPT = "place_of_receipt"
    PLACE_OF_DELIVERY = "place_of_delivery"
    VESSEL_NAME = "vessel_name"
    VOYAGE_NUMBER = "voyage_number"

    # Customs
    IT_NUMBER = "it_number"
    ISF_NUMBER = "isf_number"
    AMS_NUMBER = "ams_number"
    HS_CODE = "hs_code"

    # Container and cargo
    SEAL_NUMBER = "seal_number"
    CONTAINER_TYPE = "container_type"
    GROSS_WEIGHT_KG = "gross_weight_kg"
    NET_WEIGHT_KG = "net_weight_kg"
    TARE_WEIGHT_KG = "tare_weight_kg"
    VGM_WEIGHT_KG = "vgm_weight_kg"
    VOLUME_CBM = "volume_cbm"
    PACKAGE_COUNT = "package_count"
    TEMPERATURE_SETTING = "temperature_setting"
    INCOTERMS = "incoterms"

    # Free time and demurrage
    FREE_TIME_DAYS = "free_time_days"
    LAST_FREE_DAY = "last_free_day"
    CARGO_AVAILABLE_DATE = "cargo_available_date"
    EMPTY_RETURN_DATE = "empty_return_date"
    DEMURRAGE_START = "demurrage_start"
    DETENTION_START = "detention_start"

    # Operational
    APPOINTMENT_NUMBER = "appointment_number"
    INLAND_DESTINATION = "inland_destination"
    RAMP_LOCATION = "ramp_location"
    WAREHOUSE_LOCATION = "warehouse_location"
    DEPOT_LOCATION = "depot_location"

    # Financial
    FREIGHT_AMOUNT = "freight_amount"
    DEMURRAGE_AMOUNT = "demurrage_amount"
    DETENTION_AMOUNT = "detention_amount"
    TOTAL_AMOUNT = "total_amount"

    # References
    PO_NUMBER = "po_number"
    JOB_NUMBER = "job_number"
    INVOICE_NUMBER = "invoice_number"
    REFERENCE_NUMBER = "reference_number"


DateFormat = Literal["iso", "dmy", "mdy", "dmy_text", "mdy_text"]


class PatternRule(BaseModel):
    """One regex rule with the metadata needed to score its matches."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    pattern: str
    confidence: int = Field(ge=0, le=100)
    capture_group: int = Field(default=1, ge=0)
    carrier: Optional[str] = None
    description: str = ""
    ignore_case: bool = True

    # Date rules
    date_format: Optional[DateFormat] = Field(default=None, alias="format")
    has_time: bool = False

    # Weight / amount / reference routing
    weight_type: Optional[str] = None
    unit: Optional[str] = None
    amount_type: Optional[str] = None
    reference_type: Optional[str] = None

    @cached_property
    def regex(self) -> re.Pattern[str]:
        """Compiled pattern. Raises ``re.error`` for malformed rules."""
        return re.compile(self.pattern, re.IGNORECASE if self.ignore_case else 0)


class Candidate(BaseModel):
    """Unvalidated value produced by a pattern scan."""

    model_config = ConfigDict(frozen=True)

    entity_type: EntityType
    raw_value: str
    confidence: int = Field(ge=0, le=100)
    method: str = "regex"
    position_start: int = 0
    context_snippet: str = ""
    context_before: str = ""
    normalized: Optional[str] = None
    description: str = ""


class ExtractionConfigEntry(BaseModel):
    """Per (category, source type) relevance settings for one entity type."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    entity_type_id: str
    priority: int = 50
    is_required: bool = False
    is_critical: bool = False
    is_linkable: bool = False
    confidence_threshold: int = Field(default=75, ge=0, le=100)


class ValidatedEntity(BaseModel):
    """Accepted extraction, one per (entity type, value) pair."""

    model_config = ConfigDict(frozen=True)

    entity_type: EntityType
    value: str
    confidence: int = Field(ge=0, le=100)
    priority: int = 50
    is_required: bool = False
    is_critical: bool = False
    is_linkable: bool = False
    source_type: SourceType
    method: str = "regex"
    context: str = ""
    normalized: Optional[str] = None


class ExtractionInput(BaseModel):
    """One message or document to run through the engine."""

    model_config = ConfigDict(extra="forbid")

    raw_text: str
    sender_identity: str
    subject: str = ""
    true_sender_identity: Optional[str] = None
    source_type: SourceType = SourceType.EMAIL
    known_document_type: Optional[str] = None

    @property
    def source_text(self) -> str:
        """Subject and body joined the way every extractor scans them."""
        return f"{self.subject}\n{self.raw_text}"


class ExtractionMetadata(BaseModel):
    """Summary counters for one extraction call."""

    total_extracted: int = 0
    required_found: int = 0
    required_missing: List[str] = Field(default_factory=list)
    critical_found: int = 0
    linkable_found: int = 0
    avg_confidence: int = 0
    processing_time_ms: float = 0.0
    rejected_count: int = 0


class FreightExtractionResult(BaseModel):
    """Flat-entity result, optionally carrying the schema-driven document record."""

    sender_category: SenderCategory
    extractions: List[ValidatedEntity] = Field(default_factory=list)
    metadata: ExtractionMetadata = Field(default_factory=ExtractionMetadata)
    document: Optional[DocumentExtractionResult] = None
