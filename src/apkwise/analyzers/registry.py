"""
Analyzer registry - runs every registered analyzer and isolates their failures.
"""

# Copyright (c) 2026 Apkwise
#
# Licensed under the MIT License. See the LICENSE file for details.

import logging
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

from ..config import ApkwiseConfig
from .base import Analyzer, TreeLike
from .certificate_pinning import CertificatePinningAnalyzer
from .debug_mode import DebugModeAnalyzer
from .insecure_storage import InsecureStorageAnalyzer
from .janus import JanusAnalyzer
from .task_hijacking import TaskHijackingAnalyzer

logger = logging.getLogger(__name__)


class AnalyzerRegistry:
    """Ordered list of ``(name, analyzer)`` pairs built once at startup."""

    def __init__(self, analyzers: Optional[List[Analyzer]] = None):
        self._entries: List[Tuple[str, Analyzer]] = []
        for analyzer in analyzers or []:
            self.register(analyzer)

    def register(self, analyzer: Analyzer) -> None:
        if not isinstance(analyzer, Analyzer):
            raise TypeError(f"{type(analyzer).__name__} does not implement Analyzer")
        name = analyzer.name
        if any(existing == name for existing, _ in self._entries):
            raise ValueError(f"Analyzer '{name}' is already registered")
        self._entries.append((name, analyzer))

    @property
    def names(self) -> List[str]:
        return [name for name, _ in self._entries]

    def __iter__(self) -> Iterator[Tuple[str, Analyzer]]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def run(self, tree: TreeLike, subject_path: Optional[Union[str, Path]] = None) -> Dict[str, List[str]]:
        """
        Run all analyzers sequentially.

        Returns:
            Analyzer name to findings, omitting analyzers that failed or found nothing
        """
        results: Dict[str, List[str]] = {}

        for name, analyzer in self._entries:
            analyzer.set_subject_path(subject_path)
            try:
                findings = analyzer.analyze(tree)
            except Exception as e:
                logger.warning(f"Analyzer {name} failed: {e}")
                continue

            if findings:
                results[name] = list(findings)
                logger.info(f"{name}: {len(findings)} findings")

        return results


def default_registry(config: Optional[ApkwiseConfig] = None) -> AnalyzerRegistry:
    config = config or ApkwiseConfig()
    analyzers: List[Analyzer] = [
        TaskHijackingAnalyzer(),
        InsecureStorageAnalyzer(),
        CertificatePinningAnalyzer(),
        DebugModeAnalyzer(),
    ]
    if config.analyzers.janus_scan:
        analyzers.append(JanusAnalyzer())
    return AnalyzerRegistry(analyzers)
