"""
Vulnerability analyzers for decompiled Android packages
"""

# Copyright (c) 2026 Apkwise
#
# Licensed under the MIT License. See the LICENSE file for details.

from .base import Analyzer, find_manifest, search_in_files
from .certificate_pinning import CertificatePinningAnalyzer
from .debug_mode import DebugModeAnalyzer
from .insecure_storage import InsecureStorageAnalyzer
from .janus import JanusAnalyzer
from .registry import AnalyzerRegistry, default_registry
from .task_hijacking import TaskHijackingAnalyzer

__all__ = [
    "Analyzer",
    "AnalyzerRegistry",
    "CertificatePinningAnalyzer",
    "DebugModeAnalyzer",
    "InsecureStorageAnalyzer",
    "JanusAnalyzer",
    "TaskHijackingAnalyzer",
    "default_registry",
    "find_manifest",
    "search_in_files",
]
