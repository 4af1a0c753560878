"""
Debug Mode Analyzer
"""

# Copyright (c) 2026 Apkwise
#
# Licensed under the MIT License. See the LICENSE file for details.

import logging
import re
from typing import List

from .base import Analyzer, TreeLike, find_manifest, render_finding

logger = logging.getLogger(__name__)

DEBUGGABLE_PATTERN = re.compile(r"""(?:\w+:)?debuggable\s*=\s*["']true["']""")


class DebugModeAnalyzer(Analyzer):
    """Flags a manifest that ships with debuggable set to true."""

    @property
    def name(self) -> str:
        return "DebugModeAnalyzer"

    def analyze(self, tree: TreeLike) -> List[str]:
        manifest = find_manifest(tree)
        if manifest is None:
            logger.debug("No manifest found, skipping debug mode check")
            return []

        content = manifest.read_text(encoding="utf-8", errors="ignore")
        if not DEBUGGABLE_PATTERN.search(content):
            return []

        return [render_finding(
            "Debug Mode Enabled",
            "HIGH",
            "Debug Mode Enabled in Production",
            [
                'android:debuggable="true" found in AndroidManifest.xml',
                "App allows debugging in production build",
                "High security risk for production apps",
            ],
        )]
