"""Classify a sender identity (email address or domain) into a category."""

from __future__ import annotations

import re
from pathlib import Path
from typing import List, Optional, Tuple

import yaml
from loguru import logger

from freight_extract.extraction.errors import PatternLibraryError
from freight_extract.extraction.models import SenderCategory
from freight_extract.resources import resource_path

_ANGLE_ADDRESS = re.compile(r"<([^<>]+)>")


class SenderCategoryDetector:
    """Ordered pattern tables mapping sender identities to categories."""

    def __init__(
        self,
        tables: List[Tuple[SenderCategory, Tuple[re.Pattern[str], ...]]],
        carrier_hints: Tuple[str, ...] = (),
    ) -> None:
        self._tables = tuple(tables)
        self._carrier_hints = carrier_hints

    @classmethod
    def from_yaml(cls, path: str | Path | None = None) -> "SenderCategoryDetector":
        path = resource_path("sender_categories.yaml", path)
        if not path.exists():
            raise PatternLibraryError(f"Sender category file not found: {path}")

        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise PatternLibraryError(f"Sender category root must be a mapping: {path}")

        tables: List[Tuple[SenderCategory, Tuple[re.Pattern[str], ...]]] = []
        for name, patterns in (data.get("categories") or {}).items():
            try:
                category = SenderCategory(name)
            except ValueError:
                logger.warning(f"Unknown sender category in {path.name}: {name}")
                continue

            compiled: List[re.Pattern[str]] = []
            for p in patterns or []:
                try:
                    compiled.append(re.compile(p, re.IGNORECASE))
                except re.error as e:
                    logger.warning(f"Invalid regex pattern: {p}", category=name, error=str(e))
            tables.append((category, tuple(compiled)))

        hints = tuple(str(h).lower() for h in data.get("carrier_hints") or [])
        logger.debug(f"Loaded {len(tables)} sender category tables", path=str(path))
        return cls(tables, hints)

    def detect(self, sender_identity: Optional[str]) -> SenderCategory:
        """Return the first category whose table matches, else ``OTHER``.

        Patterns are tried against the lower-cased identity and against the
        bare domain, so both ``ops@maersk.com`` and ``maersk.com`` resolve.
        """
        identity = _normalize_identity(sender_identity)
        if not identity:
            return SenderCategory.OTHER

        domain = identity.split("@", 1)[1] if "@" in identity else identity

        for category, patterns in self._tables:
            for pattern in patterns:
                if pattern.search(identity) or pattern.search(domain):
                    return category

        if any(hint in domain for hint in self._carrier_hints):
            return SenderCategory.OTHER_CARRIER

        return SenderCategory.OTHER

    def detect_with_fallback(
        self,
        sender_identity: Optional[str],
        true_sender_identity: Optional[str] = None,
    ) -> SenderCategory:
        """Prefer the original sender when a message was forwarded.

        The true sender wins whenever it resolves to something more specific
        than ``OTHER``; otherwise the visible sender is used.
        """
        if true_sender_identity:
            category = self.detect(true_sender_identity)
            if category is not SenderCategory.OTHER:
                return category
        return self.detect(sender_identity)

    @property
    def categories(self) -> List[SenderCategory]:
        return [category for category, _ in self._tables]


def _normalize_identity(sender_identity: Optional[str]) -> str:
    if not sender_identity:
        return ""
    identity = sender_identity.strip()
    bracketed = _ANGLE_ADDRESS.search(identity)
    if bracketed:
        identity = bracketed.group(1)
    return identity.strip().lower()


_DEFAULT_DETECTOR: Optional[SenderCategoryDetector] = None


def load_default_detector() -> SenderCategoryDetector:
    """Return the bundled detector, loading it on first use."""
    global _DEFAULT_DETECTOR
    if _DEFAULT_DETECTOR is None:
        _DEFAULT_DETECTOR = SenderCategoryDetector.from_yaml()
    return _DEFAULT_DETECTOR


def detect_sender_category(sender_identity: Optional[str]) -> SenderCategory:
    """Convenience wrapper around the bundled detector."""
    return load_default_detector().detect(sender_identity)


__all__ = ["SenderCategoryDetector", "detect_sender_category", "load_default_detector"]
