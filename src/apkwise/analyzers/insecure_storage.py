"""
Insecure Storage Analyzer
"""

# Copyright (c) 2026 Apkwise
#
# Licensed under the MIT License. See the LICENSE file for details.

import logging
import re
from typing import List

from .base import Analyzer, TreeLike, has_match, render_finding, search_in_files

logger = logging.getLogger(__name__)

SHARED_PREFERENCES_PATTERNS = (
    r"SharedPreferences\.getSharedPreferences\(",
    r"getSharedPreferences\(",
    r"MODE_WORLD_READABLE",
    r"MODE_WORLD_WRITEABLE",
)

DATABASE_PATTERN = re.compile(r"SQLiteDatabase\.openDatabase\(|SQLiteOpenHelper|CREATE TABLE|INSERT INTO")
ENCRYPTION_PATTERN = re.compile(r"SQLCipher|encrypt|decrypt|Cipher")


class InsecureStorageAnalyzer(Analyzer):
    """Plain-text preference stores and unencrypted SQLite usage."""

    @property
    def name(self) -> str:
        return "InsecureStorageAnalyzer"

    def analyze(self, tree: TreeLike) -> List[str]:
        findings = self._check_shared_preferences(tree)
        findings.extend(self._check_sqlite_encryption(tree))
        return findings

    def _check_shared_preferences(self, tree: TreeLike) -> List[str]:
        findings = []
        for pattern in SHARED_PREFERENCES_PATTERNS:
            matches = search_in_files(tree, pattern)
            if not matches:
                continue
            findings.append(render_finding(
                "Insecure Storage: SharedPreferences",
                "LOW",
                "SharedPreferences Usage Detected",
                [
                    "SharedPreferences data is stored in plain text",
                    "No encryption applied to sensitive data",
                    "Data accessible to other apps with root access",
                ],
                files=matches,
            ))
        return findings

    def _check_sqlite_encryption(self, tree: TreeLike) -> List[str]:
        if not has_match(tree, DATABASE_PATTERN):
            return []
        if has_match(tree, ENCRYPTION_PATTERN):
            logger.debug("Database usage found alongside an encryption reference")
            return []

        return [render_finding(
            "Insecure Storage: Unencrypted SQLite",
            "MEDIUM",
            "Unencrypted Database Usage",
            [
                "SQLite database without encryption detected",
                "Sensitive data stored in plain text",
                "Database files accessible with root access",
            ],
        )]
