"""
Pattern registry - loads, validates and compiles named regex groups.

Pattern files are YAML documents of the form::

    patterns:
      - name: Google API Key
        regex: 'AIza[0-9A-Za-z\\-_]{35}'
        confidence: high
      - name: Generic URL
        regexes:
          - 'https?://[^\\s"<>]+'
          - 'wss?://[^\\s"<>]+'
        confidence: low
"""

# Copyright (c) 2026 Apkwise
#
# Licensed under the MIT License. See the LICENSE file for details.

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

import yaml

from .exceptions import ConfigError
from .models import Confidence, Pattern

logger = logging.getLogger(__name__)

DEFAULT_PATTERNS_RESOURCE = "regexes.yaml"


@dataclass
class CompiledPatternGroup:
    """All compiled alternatives reported under one category name"""
    name: str
    regexes: List[re.Pattern] = field(default_factory=list)
    confidence: Confidence = Confidence.MEDIUM

    @property
    def sources(self) -> List[str]:
        return [regex.pattern for regex in self.regexes]

    def to_pattern(self) -> Pattern:
        return Pattern(name=self.name, regex_group=self.sources, confidence=self.confidence)

    def finditer(self, content: str) -> Iterator[re.Match]:
        """Non-overlapping matches of every alternative, alternative by alternative."""
        for regex in self.regexes:
            yield from regex.finditer(content)


class PatternRegistry(Mapping):
    """Read-only mapping of pattern name to compiled group."""

    def __init__(self, groups: Dict[str, CompiledPatternGroup]):
        self._groups = dict(groups)

    def __getitem__(self, name: str) -> CompiledPatternGroup:
        return self._groups[name]

    def __iter__(self):
        return iter(self._groups)

    def __len__(self) -> int:
        return len(self._groups)

    @classmethod
    def load(cls, source: Optional[Union[str, Path]] = None) -> "PatternRegistry":
        """
        Load patterns from a YAML file, or the bundled default set.

        Args:
            source: Path to a pattern file; None selects the bundled patterns

        Returns:
            Registry with at least one valid pattern

        Raises:
            ConfigError: unreadable or malformed source, or zero valid patterns
        """
        if source is None:
            origin = f"<bundled {DEFAULT_PATTERNS_RESOURCE}>"
            try:
                text = resources.files("apkwise").joinpath("data", DEFAULT_PATTERNS_RESOURCE).read_text(encoding="utf-8")
            except (OSError, ModuleNotFoundError) as exc:
                raise ConfigError("Bundled pattern file is missing", original_exception=exc) from exc
        else:
            origin = str(source)
            try:
                text = Path(source).read_text(encoding="utf-8")
            except OSError as exc:
                raise ConfigError(f"Failed to read patterns file {origin}", original_exception=exc) from exc

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse patterns YAML {origin}", original_exception=exc) from exc

        return cls.from_mapping(data, origin=origin)

    @classmethod
    def from_mapping(cls, data: Any, origin: str = "<mapping>") -> "PatternRegistry":
        """Validate and compile an already-parsed pattern document."""
        if not isinstance(data, dict) or not isinstance(data.get("patterns"), list):
            raise ConfigError(f"Pattern source {origin} must contain a 'patterns' list")

        groups: Dict[str, CompiledPatternGroup] = {}

        for index, entry in enumerate(data["patterns"]):
            group = _compile_entry(entry, index, origin)
            if group is None:
                continue

            existing = groups.get(group.name)
            if existing is None:
                groups[group.name] = group
                continue

            # Same name declared twice: alternatives are merged into one category
            known = set(existing.sources)
            existing.regexes.extend(r for r in group.regexes if r.pattern not in known)

        if not groups:
            raise ConfigError(f"No valid patterns found in {origin}")

        logger.info(f"Loaded {len(groups)} patterns from {origin}")
        return cls(groups)


def _compile_entry(entry: Any, index: int, origin: str) -> Optional[CompiledPatternGroup]:
    if not isinstance(entry, dict):
        logger.warning(f"Skipping pattern #{index} in {origin}: not a mapping")
        return None

    name = str(entry.get("name") or "").strip()
    if entry.get("regex"):
        sources = [entry["regex"]]
    else:
        sources = entry.get("regexes") or []

    if not name or not sources:
        logger.warning(f"Skipping pattern #{index} in {origin}: missing name or regex")
        return None

    if isinstance(sources, str):
        sources = [sources]

    confidence = Confidence.MEDIUM
    raw_confidence = entry.get("confidence")
    if raw_confidence:
        try:
            confidence = Confidence(str(raw_confidence).lower())
        except ValueError:
            logger.warning(f"Unknown confidence '{raw_confidence}' for '{name}', using medium")

    regexes = []
    for source in sources:
        try:
            regexes.append(re.compile(str(source)))
        except re.error as exc:
            logger.warning(f"Invalid regex pattern for '{name}': {exc}")

    if not regexes:
        logger.warning(f"Skipping pattern '{name}': no valid regex")
        return None

    return CompiledPatternGroup(name=name, regexes=regexes, confidence=confidence)
