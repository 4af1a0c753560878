"""
Base analyzer interface and shared helpers.

An analyzer examines a decompiled tree for one weakness class and reports
human-readable finding strings. Analyzers only read the tree.
"""

# Copyright (c) 2026 Apkwise
#
# Licensed under the MIT License. See the LICENSE file for details.

import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Union

from ..models import DecompiledTree
from ..scanner import iter_relevant_files

logger = logging.getLogger(__name__)

MANIFEST_NAME = "AndroidManifest.xml"
MANIFEST_LOCATIONS = (
    Path("resources") / MANIFEST_NAME,
    Path(MANIFEST_NAME),
)

ANDROID_NS = "http://schemas.android.com/apk/res/android"

TreeLike = Union[DecompiledTree, Path, str]


def tree_root(tree: TreeLike) -> Path:
    if isinstance(tree, DecompiledTree):
        return Path(tree.path)
    return Path(tree)


def find_manifest(tree: TreeLike) -> Optional[Path]:
    """Locate the decoded manifest, trying the jadx resources layout first."""
    root = tree_root(tree)
    for location in MANIFEST_LOCATIONS:
        candidate = root / location
        if candidate.is_file():
            return candidate
    return None


def search_in_files(tree: TreeLike, pattern: Union[str, re.Pattern]) -> List[str]:
    """
    Search every scannable file for a regex.

    Returns:
        One ``"    <relative path>: <match>"`` line per match
    """
    regex = re.compile(pattern) if isinstance(pattern, str) else pattern
    root = tree_root(tree)
    matches = []

    for path in iter_relevant_files(root):
        try:
            content = path.read_text(encoding="utf-8", errors="ignore")
        except OSError:
            continue

        relative = path.relative_to(root).as_posix()
        for match in regex.finditer(content):
            matches.append(f"    {relative}: {match.group(0)}")

    return matches


def has_match(tree: TreeLike, pattern: Union[str, re.Pattern]) -> bool:
    """True as soon as any scannable file matches; stops at the first hit."""
    regex = re.compile(pattern) if isinstance(pattern, str) else pattern
    for path in iter_relevant_files(tree_root(tree)):
        try:
            if regex.search(path.read_text(encoding="utf-8", errors="ignore")):
                return True
        except OSError:
            continue
    return False


class Analyzer(ABC):
    """
    Vulnerability detector contract.

    Subclasses provide a ``name`` (reported category is the name with the
    ``Analyzer`` suffix stripped) and ``analyze``. ``set_subject_path`` receives
    the original package for analyzers that need the raw archive.
    """

    def __init__(self):
        self.subject_path: Optional[Path] = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Analyzer name, e.g. ``DebugModeAnalyzer``."""

    @abstractmethod
    def analyze(self, tree: TreeLike) -> List[str]:
        """
        Examine the decompiled tree.

        Returns:
            Finding strings; empty when nothing was found

        Raises:
            AnalyzerError: the analyzer could not complete
        """

    def set_subject_path(self, package_path: Optional[Union[str, Path]]) -> None:
        self.subject_path = Path(package_path) if package_path is not None else None


def render_finding(
    title: str,
    severity: str,
    headline: str,
    lines: List[str],
    files: Optional[List[str]] = None,
    details: Optional[List[str]] = None,
) -> str:
    """Box-drawn finding block shared by the analyzers."""
    body = [
        f"╭─ {title} ─",
        "│",
        f"│  [{severity}] {headline}",
        "│",
    ]
    if details:
        body.extend(f"│  {detail}" for detail in details)
        body.append("│")
    body.append("│  ❯ Description:")
    body.extend(f"│    • {line}" for line in lines)
    if files:
        body.append("│")
        body.append("│  ❯ Files:")
        body.extend(files)
    body.append("╰────────────────────────────────────────────────")
    return "\n".join(body)
