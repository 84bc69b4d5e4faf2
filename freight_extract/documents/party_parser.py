"""Party block parsing (shipper, consignee, notify party...)."""

from __future__ import annotations

import re
from typing import List, Optional, Sequence

from freight_extract.documents.models import PartyInfo
from freight_extract.documents.schemas import SectionSpec

_EMAIL = re.compile(r"([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})")
_PHONE = re.compile(r"(?:TEL|PHONE|PH|MOB(?:ILE)?)?[.:\s]*(\+?[\d\s\-()]{10,20})", re.IGNORECASE)
_TAX_ID = re.compile(r"(?:GSTIN?|VAT|TAX\s*ID|EIN|IEC)[.:\s#]*([A-Z0-9]{10,20})", re.IGNORECASE)
_POSTAL_CODE = re.compile(r"\b(\d{5,6})\b")
_CITY_STATE = re.compile(r"^([A-Z][a-zA-Z\s]+?),?\s*([A-Z]{2})?\s*(\d{5,6})?$")
_TRAILING_PUNCT = re.compile(r"\s*[-:]\s*$")
_ATTENTION = re.compile(r"\s*\bATT(?:N|ENTION)[.:\s].*$", re.IGNORECASE)


def clean_party_name(name: str) -> str:
    """Strip trailing punctuation and any ``ATTN:`` suffix from a party name."""
    name = _ATTENTION.sub("", name)
    return _TRAILING_PUNCT.sub("", name).strip()


def extract_section(section: SectionSpec, text: str) -> Optional[str]:
    """Text between the first start marker line and the next end marker line.

    The start marker line itself is excluded. Without an end marker the
    section runs to the end of the text.
    """
    lines = text.split("\n")
    start = next((i for i, line in enumerate(lines) if any(m.search(line) for m in section.starts)), None)
    if start is None:
        return None

    end = len(lines)
    for i in range(start + 1, len(lines)):
        if any(m.search(lines[i]) for m in section.ends):
            end = i
            break

    body = "\n".join(lines[start + 1:end]).strip()
    return body or None


def parse_party(section_text: str, countries: Sequence[str] = ()) -> Optional[PartyInfo]:
    """Parse a section body into a :class:`PartyInfo`.

    The first line is the name. Each later line is tried as email, phone, tax
    id, country (with postal code), then city/state/postal, and otherwise kept
    as a free address line.
    """
    lines = [line.strip() for line in section_text.split("\n") if line.strip()]
    if not lines:
        return None

    name = clean_party_name(lines[0])
    if not name:
        return None

    fields = {}
    address: List[str] = []

    for line in lines[1:]:
        upper = line.upper()
        if upper.startswith("ATTN") or upper.startswith("ATTENTION"):
            continue

        email = _EMAIL.search(line)
        if email:
            fields["email"] = email.group(1).lower()
            continue

        phone = _PHONE.search(line)
        if phone and sum(ch.isdigit() for ch in phone.group(1)) >= 8:
            fields["phone"] = re.sub(r"\s+", "", phone.group(1))
            continue

        tax = _TAX_ID.search(line)
        if tax:
            fields["tax_id"] = tax.group(1)
            continue

        country = next((c for c in countries if re.search(rf"\b{re.escape(c)}\b", upper)), None)
        if country:
            fields["country"] = country
            postal = _POSTAL_CODE.search(line)
            if postal:
                fields["postal_code"] = postal.group(1)
            continue

        city = _CITY_STATE.match(line)
        if city:
            fields["city"] = city.group(1).strip()
            if city.group(2):
                fields["state"] = city.group(2)
            if city.group(3):
                fields["postal_code"] = city.group(3)
            continue

        address.append(line)

    if address:
        fields["address_line1"] = address[0]
        if len(address) > 1:
            fields["address_line2"] = ", ".join(address[1:])

    return PartyInfo(name=name, **fields)
