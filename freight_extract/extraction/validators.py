"""Candidate validation: universal gates plus per-entity-type predicates.

Every candidate passes through three universal checks in order:

1. Non-empty and at least two characters after stripping.
2. Not a conversational or boilerplate token (greetings, prepositions,
   department names, URL and e-mail fragments, very short numbers).
3. Grounded in the source text: the value, lower-cased with whitespace and
   hyphens removed, must be a substring of the equally normalized source, or
   appear as a whole word in it.

Type-specific predicates are registered per :class:`EntityType` with
:func:`register_validator`. Types without a registered predicate only face
the universal checks.
"""

from __future__ import annotations

import re
from typing import Callable, Dict, Optional

from freight_extract.extraction.models import EntityType

TypeValidator = Callable[[str, str], Optional[str]]
"""``(value, context_before) -> rejection reason or None``."""

# ISO 6346 letter values: 10..38 with multiples of 11 skipped.
_ISO6346_LETTER_VALUES: Dict[str, int] = {
    "A": 10, "B": 12, "C": 13, "D": 14, "E": 15, "F": 16, "G": 17, "H": 18, "I": 19,
    "J": 20, "K": 21, "L": 23, "M": 24, "N": 25, "O": 26, "P": 27, "Q": 28, "R": 29,
    "S": 30, "T": 31, "U": 32, "V": 34, "W": 35, "X": 36, "Y": 37, "Z": 38,
}

_CONTAINER_SHAPE = re.compile(r"^[A-Z]{4}\d{7}$")

_GARBAGE_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^(thanks|thank you|regards|best|dear|hi|hello)$",
        r"^(is|at|to|from|the|and|or|for|with|by|in|on)$",
        r"^(support|manager|team|group|department|dept)$",
        r"^(email|mail|message|reply|forward|fwd)$",
        r"^(gmail|yahoo|outlook|hotmail)$",
        r"^[a-z]{1,2}$",
        r"^=.*>$",
        r"^\w+@\w+",
        r"^https?:",
    )
)
_SHORT_NUMBER = re.compile(r"^\d{1,3}$")

# Quantities legitimately come as short numbers ("12 pallets", "7 days").
NUMERIC_ENTITY_TYPES = frozenset(
    {
        EntityType.PACKAGE_COUNT,
        EntityType.FREE_TIME_DAYS,
        EntityType.TEMPERATURE_SETTING,
        EntityType.GROSS_WEIGHT_KG,
        EntityType.NET_WEIGHT_KG,
        EntityType.TARE_WEIGHT_KG,
        EntityType.VGM_WEIGHT_KG,
        EntityType.VOLUME_CBM,
        EntityType.FREIGHT_AMOUNT,
        EntityType.DEMURRAGE_AMOUNT,
        EntityType.DETENTION_AMOUNT,
        EntityType.TOTAL_AMOUNT,
    }
)

LOCATION_ENTITY_TYPES = frozenset(
    {
        EntityType.PORT_OF_LOADING,
        EntityType.PORT_OF_DISCHARGE,
        EntityType.PLACE_OF_RECEIPT,
        EntityType.PLACE_OF_DELIVERY,
        EntityType.INLAND_DESTINATION,
        EntityType.RAMP_LOCATION,
        EntityType.WAREHOUSE_LOCATION,
        EntityType.DEPOT_LOCATION,
    }
)

_VALIDATORS: Dict[EntityType, TypeValidator] = {}


def register_validator(*entity_types: EntityType) -> Callable[[TypeValidator], TypeValidator]:
    """Register ``func`` as the type-specific predicate for ``entity_types``."""

    def decorator(func: TypeValidator) -> TypeValidator:
        for entity_type in entity_types:
            _VALIDATORS[EntityType(entity_type)] = func
        return func

    return decorator


def get_validator(entity_type: EntityType) -> Optional[TypeValidator]:
    return _VALIDATORS.get(EntityType(entity_type))


# ----------------------------------------------------------------------
# ISO 6346
# ----------------------------------------------------------------------
def compute_check_digit(owner_and_serial: str) -> int:
    """Check digit for the first 10 characters of a container number."""
    total = 0
    for index, char in enumerate(owner_and_serial[:10]):
        value = _ISO6346_LETTER_VALUES[char] if char.isalpha() else int(char)
        total += value * (2 ** index)
    return (total % 11) % 10


def is_valid_container_number(value: str) -> bool:
    """True when ``value`` is 4 letters + 7 digits with a correct check digit."""
    candidate = (value or "").strip().upper()
    if not _CONTAINER_SHAPE.match(candidate):
        return False
    return compute_check_digit(candidate) == int(candidate[10])


# ----------------------------------------------------------------------
# Universal checks
# ----------------------------------------------------------------------
def normalize_for_grounding(text: str) -> str:
    """Lower-case and drop whitespace and hyphens."""
    return re.sub(r"[\s-]", "", (text or "").lower())


def value_exists_in_source(value: str, source_text: str) -> bool:
    """Whether ``value`` is present in ``source_text`` under loose normalization."""
    normalized_value = normalize_for_grounding(value)
    if not normalized_value:
        return False
    if normalized_value in normalize_for_grounding(source_text):
        return True

    stripped = value.strip()
    if stripped.isalnum():
        return re.search(rf"\b{re.escape(stripped)}\b", source_text, re.IGNORECASE) is not None
    return False


def is_garbage(value: str, entity_type: Optional[EntityType] = None) -> bool:
    """Conversational tokens and fragments that are never real values."""
    stripped = value.strip()
    if any(p.search(stripped) for p in _GARBAGE_PATTERNS):
        return True
    if entity_type in NUMERIC_ENTITY_TYPES:
        return False
    return bool(_SHORT_NUMBER.match(stripped))


def check_entity(
    entity_type: EntityType,
    value: str,
    context_before: str = "",
    source_text: Optional[str] = None,
) -> Optional[str]:
    """Return why ``value`` is rejected for ``entity_type``, or ``None`` if it passes."""
    entity_type = EntityType(entity_type)
    stripped = (value or "").strip()
    if len(stripped) < 2:
        return "too_short"

    if is_garbage(stripped, entity_type):
        return "garbage"

    if source_text is not None and not value_exists_in_source(stripped, source_text):
        return "not_in_source"

    validator = _VALIDATORS.get(entity_type)
    if validator is None:
        return None
    return validator(stripped, context_before or "")


def validate_entity(
    entity_type: EntityType,
    value: str,
    context_before: str = "",
    source_text: Optional[str] = None,
) -> bool:
    """Boolean form of :func:`check_entity`."""
    return check_entity(entity_type, value, context_before, source_text) is None


# ----------------------------------------------------------------------
# Type-specific predicates
# ----------------------------------------------------------------------
_INDIAN_MOBILE = re.compile(r"^[789]\d{9}$")
_INTERNATIONAL_PHONE = re.compile(r"^\+?\d{10,15}$")
_HS_CHAPTER_PREFIX = re.compile(r"^(73|84|85|94|39|72|40|87|61|62|63|69|70)\d{4,8}$")
_PHONE_CONTEXT = re.compile(r"(?:phone|mobile|cell|tel|fax|contact|call)\s*[:=]?\s*$", re.IGNORECASE)
_INDIA_DIAL_PREFIX = re.compile(r"\+91[-\s]?$")


@register_validator(EntityType.BOOKING_NUMBER)
def _check_booking_number(value: str, context_before: str) -> Optional[str]:
    digits = re.sub(r"[-\s]", "", value)
    if _INDIAN_MOBILE.match(digits):
        return "phone_number"
    if _INTERNATIONAL_PHONE.match(digits) and digits.lstrip("+")[:1] in ("7", "8", "9"):
        return "phone_number"

    if _HS_CHAPTER_PREFIX.match(re.sub(r"[.\s-]", "", value)):
        return "hs_code"

    if _PHONE_CONTEXT.search(context_before) or _INDIA_DIAL_PREFIX.search(context_before):
        return "phone_context"
    return None


@register_validator(EntityType.CONTAINER_NUMBER)
def _check_container_number(value: str, context_before: str) -> Optional[str]:
    if not _CONTAINER_SHAPE.match(value):
        return "container_format"
    if not is_valid_container_number(value):
        return "check_digit"
    return None


_CONTAINER_PREFIX_SEAL = re.compile(r"^(MAEU|MSKU|HLCU|HLXU|CMAU|COSU|MSCU|TCLU|TRLU)\d+$", re.IGNORECASE)


@register_validator(EntityType.SEAL_NUMBER)
def _check_seal_number(value: str, context_before: str) -> Optional[str]:
    if _CONTAINER_PREFIX_SEAL.match(value):
        return "container_prefix"
    return None


_VOYAGE_SLOGANS = re.compile(r"^(solutions?|service|express|shipping|lines?)$", re.IGNORECASE)


@register_validator(EntityType.VOYAGE_NUMBER)
def _check_voyage_number(value: str, context_before: str) -> Optional[str]:
    if not re.search(r"\d", value):
        return "no_digit"
    if _VOYAGE_SLOGANS.match(value):
        return "slogan"
    return None


_VESSEL_FRAGMENTS = re.compile(r"\b(for the|is the|of the|to the|from the|eta is|etd is)\b", re.IGNORECASE)
_VESSEL_LEADING_WORDS = re.compile(r"^(the|a|an|month|year|day|time)\b", re.IGNORECASE)


@register_validator(EntityType.VESSEL_NAME)
def _check_vessel_name(value: str, context_before: str) -> Optional[str]:
    if len(value) < 3:
        return "too_short"
    if _VESSEL_FRAGMENTS.search(value):
        return "sentence_fragment"
    if value == value.lower():
        return "lowercase"
    if _VESSEL_LEADING_WORDS.match(value):
        return "sentence_fragment"
    return None


_ENTRY_FORMATS = (
    re.compile(r"^\d{3}[-\s]?\d{7,8}[-\s]?\d?$"),
    re.compile(r"^[A-Z0-9]{3}-\d{8}$"),
)


@register_validator(EntityType.ENTRY_NUMBER)
def _check_entry_number(value: str, context_before: str) -> Optional[str]:
    if not any(p.match(value) for p in _ENTRY_FORMATS):
        return "entry_format"
    return None


@register_validator(EntityType.APPOINTMENT_NUMBER)
def _check_appointment_number(value: str, context_before: str) -> Optional[str]:
    if not re.search(r"\d", value):
        return "no_digit"
    return None


_LOCATION_BAD_PREFIXES = ("t ", "ing ", "ion ", "er ", "ed ", "ort ", "tion ", "ment ", "ager ", "team ", "port ")
_LOCATION_BAD_WORDS = re.compile(r"\b(manager|team|solutions|support|department|dept|group|services?)\b", re.IGNORECASE)
_LOCATION_SPECIAL_CHARS = re.compile(r"[<>=@#$%^&*(){}\[\]|\\]")


@register_validator(*LOCATION_ENTITY_TYPES)
def _check_location(value: str, context_before: str) -> Optional[str]:
    if len(value) < 3 or not value[0].isupper():
        return "location_format"
    if value.lower().startswith(_LOCATION_BAD_PREFIXES):
        return "word_fragment"
    if _LOCATION_BAD_WORDS.search(value):
        return "department_word"
    if len(value.split()) > 4:
        return "too_many_words"
    if _LOCATION_SPECIAL_CHARS.search(value) or "\n" in value:
        return "special_characters"
    return None
