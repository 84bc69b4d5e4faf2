"""Per-category extraction configuration: provider protocol, YAML store and cache.

The engine asks one question of its rules store: *which entity types matter for
this (sender category, source type), and how much?* Answers are cached with a
fixed TTL. The cache keeps an immutable snapshot and replaces it wholesale on
refresh, so readers never lock and a stale entry is always preferred over
blocking or failing.
"""

from __future__ import annotations

import time
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional, Protocol, Tuple

import yaml
from loguru import logger
from pydantic import ValidationError

from freight_extract.extraction.errors import ConfigProviderError
from freight_extract.extraction.models import ExtractionConfigEntry, SenderCategory, SourceType
from freight_extract.resources import resource_path


class ExtractionConfigProvider(Protocol):
    """Read-only rules store keyed by (category, source type)."""

    def fetch(self, category: SenderCategory, source_type: SourceType) -> List[ExtractionConfigEntry]:
        """Return config entries; may raise ``ConfigProviderError``."""
        ...


class YamlConfigProvider:
    """Static rules store backed by ``extraction_configs.yaml``.

    The file is read on first use so that a missing or broken store surfaces as
    a ``ConfigProviderError`` during lookup, where the cache can fall back.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = resource_path("extraction_configs.yaml", path)
        self._table: Optional[Dict[Tuple[str, str], Tuple[ExtractionConfigEntry, ...]]] = None

    def fetch(self, category: SenderCategory, source_type: SourceType) -> List[ExtractionConfigEntry]:
        table = self._load()
        key = (SenderCategory(category).value, SourceType(source_type).value)
        return list(table.get(key, ()))

    def _load(self) -> Dict[Tuple[str, str], Tuple[ExtractionConfigEntry, ...]]:
        if self._table is not None:
            return self._table

        if not self.path.exists():
            raise ConfigProviderError(f"Extraction config store not found: {self.path}")

        try:
            data = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigProviderError(f"Failed to parse extraction config store: {e}") from e

        if not isinstance(data, dict):
            raise ConfigProviderError(f"Extraction config root must be a mapping: {self.path}")

        type_flags: Dict[str, Dict[str, Any]] = data.get("entity_types") or {}
        table: Dict[Tuple[str, str], Tuple[ExtractionConfigEntry, ...]] = {}

        for category, sources in (data.get("categories") or {}).items():
            for source_type, rows in (sources or {}).items():
                entries: List[ExtractionConfigEntry] = []
                for row in rows or []:
                    merged = {**type_flags.get(row.get("entity_type_id", ""), {}), **row}
                    try:
                        entries.append(ExtractionConfigEntry.model_validate(merged))
                    except ValidationError as e:
                        raise ConfigProviderError(
                            f"Invalid config entry for {category}/{source_type}: {e}"
                        ) from e
                entries.sort(key=lambda entry: -entry.priority)
                table[(str(category), str(source_type))] = tuple(entries)

        logger.info(f"Loaded extraction config store with {len(table)} category/source pairs", path=str(self.path))
        self._table = table
        return table


class _CachedConfig(NamedTuple):
    fetched_at: float
    entries: Tuple[ExtractionConfigEntry, ...]


class ExtractionConfigCache:
    """Read-through TTL cache over an :class:`ExtractionConfigProvider`."""

    def __init__(
        self,
        provider: ExtractionConfigProvider,
        ttl_seconds: float = 300.0,
        fallback_category: SenderCategory = SenderCategory.OTHER,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.provider = provider
        self.ttl_seconds = ttl_seconds
        self.fallback_category = SenderCategory(fallback_category)
        self._clock = clock
        self._snapshot: Mapping[Tuple[str, str], _CachedConfig] = MappingProxyType({})

    def get(self, category: SenderCategory, source_type: SourceType) -> List[ExtractionConfigEntry]:
        """Entries for ``(category, source_type)``.

        Order of preference: a fresh cache entry, a successful provider fetch,
        the stale cache entry, then the fallback category's entries. Returns an
        empty list when none of those produce anything.
        """
        category = SenderCategory(category)
        source_type = SourceType(source_type)
        key = (category.value, source_type.value)

        cached = self._snapshot.get(key)
        now = self._clock()
        if cached is not None and now - cached.fetched_at < self.ttl_seconds:
            return list(cached.entries)

        entries = self._fetch(category, source_type)
        if entries:
            self._store(key, _CachedConfig(now, tuple(entries)))
            return list(entries)

        if cached is not None:
            logger.warning(
                "Serving stale extraction config",
                category=key[0],
                source_type=key[1],
                age_seconds=round(now - cached.fetched_at, 1),
            )
            return list(cached.entries)

        if category is not self.fallback_category:
            logger.warning(
                f"No extraction config for {key[0]}/{key[1]}, falling back to {self.fallback_category.value}"
            )
            return self.get(self.fallback_category, source_type)

        return []

    def clear(self) -> None:
        self._snapshot = MappingProxyType({})

    def __len__(self) -> int:
        return len(self._snapshot)

    def _fetch(self, category: SenderCategory, source_type: SourceType) -> List[ExtractionConfigEntry]:
        try:
            return list(self.provider.fetch(category, source_type))
        except ConfigProviderError as e:
            logger.warning("Extraction config provider failed", category=category.value, error=str(e))
        except Exception as e:
            logger.warning(
                "Unexpected extraction config provider error",
                category=category.value,
                error_type=type(e).__name__,
                error=str(e),
            )
        return []

    def _store(self, key: Tuple[str, str], value: _CachedConfig) -> None:
        # Copy-and-swap; concurrent refreshes race harmlessly (last writer wins).
        updated = dict(self._snapshot)
        updated[key] = value
        self._snapshot = MappingProxyType(updated)
