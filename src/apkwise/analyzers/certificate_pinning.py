"""
Certificate Pinning Analyzer

Reports missing pinning when none of a fixed set of pinning or trust-manager
APIs appears anywhere in the tree. Pinning implemented through an API outside
this list (network security config, custom native code) is not detected.
"""

# Copyright (c) 2026 Apkwise
#
# Licensed under the MIT License. See the LICENSE file for details.

import re
from typing import List

from .base import Analyzer, TreeLike, has_match, render_finding

PINNING_PATTERNS = (
    r"CertificatePinner",
    r"TrustManager",
    r"X509TrustManager",
    r"OkHttpClient\.Builder\(\)\.certificatePinner",
    r"SSLSocketFactory",
    r"TrustManagerFactory",
)

PINNING_PATTERN = re.compile("|".join(PINNING_PATTERNS))


class CertificatePinningAnalyzer(Analyzer):

    @property
    def name(self) -> str:
        return "CertificatePinningAnalyzer"

    def analyze(self, tree: TreeLike) -> List[str]:
        if has_match(tree, PINNING_PATTERN):
            return []

        return [render_finding(
            "Missing Certificate Pinning",
            "MEDIUM",
            "No Certificate Pinning Detected",
            [
                "No certificate pinning implementation found",
                "App vulnerable to man-in-the-middle attacks",
                "SSL/TLS connections not properly secured",
            ],
        )]
