"""
Result aggregation - merges scan and analyzer output into a Report.
"""

# Copyright (c) 2026 Apkwise
#
# Licensed under the MIT License. See the LICENSE file for details.

import logging
import re
from typing import Dict, List, Mapping, Optional, Tuple

from .analyzers.base import TreeLike, find_manifest, tree_root
from .models import CategoryResult, Report, ReportSummary, RiskBreakdown, ScanResult
from .scanner import count_relevant_files

logger = logging.getLogger(__name__)

ANALYZER_SUFFIX = "Analyzer"

PACKAGE_PATTERN = re.compile(r"""\bpackage\s*=\s*["']([^"']+)["']""")
VERSION_NAME_PATTERN = re.compile(r"""versionName\s*=\s*["']([^"']+)["']""")
VERSION_CODE_PATTERN = re.compile(r"""versionCode\s*=\s*["']([^"']+)["']""")


def category_name(analyzer_name: str) -> str:
    """``TaskHijackingAnalyzer`` -> ``TaskHijacking``"""
    if analyzer_name.endswith(ANALYZER_SUFFIX) and len(analyzer_name) > len(ANALYZER_SUFFIX):
        return analyzer_name[: -len(ANALYZER_SUFFIX)]
    return analyzer_name


def risk_bucket(category: str) -> str:
    lowered = category.lower()
    if "high" in lowered or "critical" in lowered:
        return "high"
    if "medium" in lowered:
        return "medium"
    return "low"


def extract_package_info(tree: TreeLike) -> Tuple[Optional[str], Optional[str]]:
    """Package name and version from the manifest; versionCode stands in for a missing versionName."""
    manifest = find_manifest(tree)
    if manifest is None:
        return None, None

    try:
        content = manifest.read_text(encoding="utf-8", errors="ignore")
    except OSError:
        return None, None

    package = PACKAGE_PATTERN.search(content)
    version = VERSION_NAME_PATTERN.search(content)
    if version:
        version_name = version.group(1)
    else:
        code = VERSION_CODE_PATTERN.search(content)
        version_name = f"v{code.group(1)}" if code else None

    return (package.group(1) if package else None), version_name


class ResultAggregator:
    """Builds an immutable Report; no side effects."""

    def __init__(self, total_patterns: int = 0):
        self.total_patterns = total_patterns

    def aggregate(
        self,
        tree: TreeLike,
        scan_result: ScanResult,
        analyzer_results: Mapping[str, List[str]],
        subject: Optional[str] = None,
    ) -> Report:
        merged: Dict[str, List[str]] = {}

        for name, findings in scan_result.findings.items():
            if findings:
                merged.setdefault(name, []).extend(finding.render() for finding in findings)

        for analyzer_name, findings in analyzer_results.items():
            if findings:
                merged.setdefault(category_name(analyzer_name), []).extend(findings)

        categories = {
            name: CategoryResult(count=len(findings), findings=findings)
            for name, findings in merged.items()
        }

        buckets = {"high": 0, "medium": 0, "low": 0}
        for name, category in categories.items():
            buckets[risk_bucket(name)] += category.count

        # Re-derived from the tree so the count is reported even without findings
        root = tree_root(tree)
        summary = ReportSummary(
            total_files_scanned=count_relevant_files(root),
            total_patterns=self.total_patterns,
            vulnerability_count=sum(category.count for category in categories.values()),
            risk_breakdown=RiskBreakdown(**buckets),
        )

        package_name, version_name = extract_package_info(root)
        report = Report(
            categories=categories,
            summary=summary,
            subject=subject,
            package_name=package_name,
            version_name=version_name,
        )
        logger.info(f"Aggregated {report.total_findings} findings across {len(categories)} categories")
        return report
