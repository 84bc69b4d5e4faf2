"""Declarative pattern library loaded from YAML.

The library owns every regex the flat-entity extractors use:

- ``rules``: named rule groups (``booking_number``, ``date``, ``weight``...).
- ``keyword_groups``: keyword families (cutoffs, demurrage dates) whose hits
  anchor a nearby date scan.
- ``context_keywords``: label regexes for single-value fields such as ETD or
  port of loading.
- ``carriers``: carrier detection regexes.

Rules are validated and compiled once at load time. A malformed rule is logged
and skipped so one bad line never takes the rest of the library down. The
library is immutable after construction and safe to share between threads.
"""

from __future__ import annotations

import re
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml
from loguru import logger
from pydantic import ValidationError

from freight_extract.extraction.errors import PatternLibraryError
from freight_extract.extraction.models import PatternRule
from freight_extract.resources import resource_path


class KeywordGroup:
    """Keyword family for one entity type (e.g. all SI cutoff phrasings)."""

    __slots__ = ("entity_type", "confidence", "keywords")

    def __init__(self, entity_type: str, confidence: int, keywords: Tuple[re.Pattern[str], ...]) -> None:
        self.entity_type = entity_type
        self.confidence = confidence
        self.keywords = keywords

    def __repr__(self) -> str:
        return f"KeywordGroup({self.entity_type!r}, confidence={self.confidence}, keywords={len(self.keywords)})"


class PatternLibrary:
    """Compiled, read-only view over a pattern YAML file."""

    def __init__(
        self,
        rules: Mapping[str, Tuple[PatternRule, ...]],
        keyword_groups: Mapping[str, Tuple[KeywordGroup, ...]],
        context_keywords: Mapping[str, Tuple[re.Pattern[str], ...]],
        carrier_patterns: Mapping[str, Tuple[re.Pattern[str], ...]],
        skipped: int = 0,
        source: Optional[Path] = None,
    ) -> None:
        self._rules = MappingProxyType(dict(rules))
        self._keyword_groups = MappingProxyType(dict(keyword_groups))
        self._context_keywords = MappingProxyType(dict(context_keywords))
        self._carrier_patterns = MappingProxyType(dict(carrier_patterns))
        self.skipped = skipped
        self.source = source

    @classmethod
    def from_yaml(cls, path: str | Path | None = None) -> "PatternLibrary":
        """Load and compile a pattern file. ``None`` loads the bundled library."""
        path = resource_path("patterns.yaml", path)
        if not path.exists():
            raise PatternLibraryError(f"Pattern library not found: {path}")

        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise PatternLibraryError(f"Failed to parse pattern library {path}: {e}") from e

        if not isinstance(data, dict):
            raise PatternLibraryError(f"Pattern library root must be a mapping: {path}")

        library = cls.from_dict(data, source=path)
        logger.info(
            f"Loaded pattern library with {library.rule_count} rules",
            path=str(path),
            groups=len(library.rule_groups),
            skipped=library.skipped,
        )
        return library

    @classmethod
    def from_dict(cls, data: Dict[str, Any], source: Optional[Path] = None) -> "PatternLibrary":
        skipped = 0

        rules: Dict[str, Tuple[PatternRule, ...]] = {}
        for group, raw_rules in (data.get("rules") or {}).items():
            compiled: List[PatternRule] = []
            for raw in raw_rules or []:
                rule = _build_rule(group, raw)
                if rule is None:
                    skipped += 1
                    continue
                compiled.append(rule)
            rules[group] = tuple(compiled)

        keyword_groups: Dict[str, Tuple[KeywordGroup, ...]] = {}
        for family, entries in (data.get("keyword_groups") or {}).items():
            groups: List[KeywordGroup] = []
            for entity_type, spec in (entries or {}).items():
                keywords, bad = _compile_all(spec.get("keywords") or [], f"{family}.{entity_type}")
                skipped += bad
                groups.append(KeywordGroup(entity_type, int(spec.get("confidence", 80)), keywords))
            keyword_groups[family] = tuple(groups)

        context_keywords: Dict[str, Tuple[re.Pattern[str], ...]] = {}
        for name, patterns in (data.get("context_keywords") or {}).items():
            compiled_keywords, bad = _compile_all(patterns or [], name)
            skipped += bad
            context_keywords[name] = compiled_keywords

        carrier_patterns: Dict[str, Tuple[re.Pattern[str], ...]] = {}
        for carrier, patterns in (data.get("carriers") or {}).items():
            compiled_carrier, bad = _compile_all(patterns or [], f"carrier {carrier}")
            skipped += bad
            carrier_patterns[carrier] = compiled_carrier

        return cls(rules, keyword_groups, context_keywords, carrier_patterns, skipped=skipped, source=source)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def rules(self, group: str) -> Tuple[PatternRule, ...]:
        """Rules for ``group`` in file order; empty for unknown groups."""
        return self._rules.get(group, ())

    def keyword_groups(self, family: str) -> Tuple[KeywordGroup, ...]:
        return self._keyword_groups.get(family, ())

    def context_keywords(self, name: str) -> Tuple[re.Pattern[str], ...]:
        return self._context_keywords.get(name, ())

    @property
    def carrier_patterns(self) -> Mapping[str, Tuple[re.Pattern[str], ...]]:
        return self._carrier_patterns

    @property
    def rule_groups(self) -> List[str]:
        return list(self._rules)

    @property
    def rule_count(self) -> int:
        return sum(len(r) for r in self._rules.values())

    def detect_carrier(self, text: str) -> Optional[str]:
        """Return the first carrier whose patterns match ``text``."""
        for carrier, patterns in self._carrier_patterns.items():
            if any(p.search(text) for p in patterns):
                return carrier
        return None


def _build_rule(group: str, raw: Any) -> Optional[PatternRule]:
    if not isinstance(raw, dict):
        logger.warning(f"Skipping non-mapping rule in group {group}", rule=repr(raw))
        return None
    try:
        rule = PatternRule.model_validate(raw)
        rule.regex  # compile eagerly so bad patterns surface at load time
    except ValidationError as e:
        logger.warning(f"Invalid rule in group {group}", error=str(e))
        return None
    except re.error as e:
        logger.warning(f"Invalid regex pattern: {raw.get('pattern')}", group=group, error=str(e))
        return None
    return rule


def _compile_all(patterns: List[str], label: str) -> Tuple[Tuple[re.Pattern[str], ...], int]:
    compiled: List[re.Pattern[str]] = []
    bad = 0
    for p in patterns:
        try:
            compiled.append(re.compile(p, re.IGNORECASE))
        except re.error as e:
            logger.warning(f"Invalid regex pattern: {p}", group=label, error=str(e))
            bad += 1
    return tuple(compiled), bad


_DEFAULT_LIBRARY: Optional[PatternLibrary] = None


def load_default_library() -> PatternLibrary:
    """Return the bundled library, loading it on first use."""
    global _DEFAULT_LIBRARY
    if _DEFAULT_LIBRARY is None:
        _DEFAULT_LIBRARY = PatternLibrary.from_yaml()
    return _DEFAULT_LIBRARY
