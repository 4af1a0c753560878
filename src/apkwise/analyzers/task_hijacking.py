"""
Task Hijacking Analyzer

Flags activities whose launch mode lets a malicious app place its own activity
in the victim's task (StrandHogg-style task hijacking).
"""

# Copyright (c) 2026 Apkwise
#
# Licensed under the MIT License. See the LICENSE file for details.

import logging
import xml.etree.ElementTree as ET
from typing import List, Optional

from ..exceptions import AnalyzerError
from .base import ANDROID_NS, Analyzer, TreeLike, find_manifest, render_finding

logger = logging.getLogger(__name__)

# singleTask and its compiled integer form
VULNERABLE_LAUNCH_MODES = ("singleTask", "2")


def _android_attr(element: ET.Element, attr: str) -> Optional[str]:
    value = element.get(f"{{{ANDROID_NS}}}{attr}")
    if value is None:
        value = element.get(attr)
    return value


class TaskHijackingAnalyzer(Analyzer):
    """Manifest check for singleTask activities, HIGH when exported."""

    NONE_FOUND = "✓ No Task Hijacking Vulnerabilities Found"

    @staticmethod
    def summary_line(count: int) -> str:
        return f"⚠ Found {count} Task Hijacking Vulnerabilities"

    @property
    def name(self) -> str:
        return "TaskHijackingAnalyzer"

    def analyze(self, tree: TreeLike) -> List[str]:
        manifest = find_manifest(tree)
        if manifest is None:
            raise AnalyzerError(self.name, "failed to read AndroidManifest.xml: not found")

        try:
            root = ET.parse(manifest).getroot()
        except (ET.ParseError, OSError) as e:
            raise AnalyzerError(self.name, f"failed to parse AndroidManifest.xml: {e}", original_exception=e) from e

        findings = []
        for activity in root.iterfind("./application/activity"):
            if _android_attr(activity, "launchMode") not in VULNERABLE_LAUNCH_MODES:
                continue

            exported = _android_attr(activity, "exported") == "true"
            severity = "HIGH" if exported else "MEDIUM"
            activity_name = _android_attr(activity, "name") or "<unnamed>"

            findings.append(render_finding(
                f"Vulnerable Activity #{len(findings) + 1}",
                severity,
                "Task Hijacking Vulnerability",
                [
                    "Activity configured with singleTask launch mode",
                    f"{severity} risk due to {'public' if exported else 'non-public'} export status",
                    "Vulnerable to task hijacking attacks",
                ],
                details=[
                    f"Activity: {activity_name}",
                    "Launch Mode: singleTask",
                    f"Exported: {'true' if exported else 'false'}",
                ],
            ))

        if findings:
            logger.info(self.summary_line(len(findings)))
        return findings
