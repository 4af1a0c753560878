"""
Scan Engine - applies the pattern registry to a decompiled tree.

Files are distributed over a bounded thread pool; each worker reads a file
once, runs every pattern against it and publishes its findings into a shared
accumulator under a single lock.
"""

# Copyright (c) 2026 Apkwise
#
# Licensed under the MIT License. See the LICENSE file for details.

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Union

from .models import DecompiledTree, Finding, ScanResult
from .patterns import CompiledPatternGroup

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 10
DEFAULT_CONTEXT_WIDTH = 100

RELEVANT_EXTENSIONS = frozenset({
    ".java", ".kt", ".xml", ".txt", ".json", ".yaml", ".yml", ".properties",
    ".conf", ".config", ".plist", ".db", ".sql", ".env", ".ini", ".html",
    ".js", ".php", ".py",
})

# Generated resources, signing metadata and bundled third-party namespaces
SKIPPED_PATH_SEGMENTS = (
    "/res/anim/",
    "/res/color/",
    "/res/drawable/",
    "/res/layout/",
    "/res/menu/",
    "/res/mipmap/",
    "/res/xml/",
    "/resources/",
    "/META-INF/",
    "/kotlin/",
    "/okhttp3/",
    "/okio/",
)

FALSE_POSITIVES = (
    "http://schemas.android.com/apk/res/android",
    "http://schemas.android.com/apk/res-auto",
    "http://schemas.android.com/aapt",
    "android.permission.",
    "android:name=",
    "android:label=",
    "android:value=",
    "android.intent.",
    "com.android.",
    "androidx.",
)


def file_extension(path: Union[str, Path]) -> str:
    """Lowercased extension from the last dot of the name; dotfiles like ``.env`` keep their name."""
    name = Path(path).name
    dot = name.rfind(".")
    return name[dot:].lower() if dot != -1 else ""


def is_relevant_file(relative_path: Union[str, Path]) -> bool:
    """Check a tree-relative path against the extension allow-list and skipped subtrees."""
    posix = "/" + Path(relative_path).as_posix().lstrip("/")
    if any(segment in posix for segment in SKIPPED_PATH_SEGMENTS):
        return False
    return file_extension(posix) in RELEVANT_EXTENSIONS


def is_common_false_positive(match: str) -> bool:
    return any(fp in match for fp in FALSE_POSITIVES)


def iter_relevant_files(root: Path) -> Iterator[Path]:
    """Yield absolute paths of the scannable files under root, in walk order."""
    root = Path(root)
    for dirpath, _dirnames, filenames in os.walk(root):
        for filename in filenames:
            path = Path(dirpath) / filename
            if is_relevant_file(path.relative_to(root)):
                yield path


def count_relevant_files(root: Path) -> int:
    return sum(1 for _ in iter_relevant_files(root))


def context_window(content: str, start: int, end: int, width: int) -> str:
    """Text around content[start:end], clamped to the content and newline-collapsed."""
    lo = max(0, start - width)
    hi = min(len(content), end + width)
    return content[lo:hi].replace("\r", " ").replace("\n", " ").strip()


class ScanEngine:
    """
    Concurrent pattern scanner.

    Args:
        patterns: Pattern name to compiled group, usually a PatternRegistry
        workers: Size of the thread pool, independent of the file count
        context_width: Characters captured on each side of a match
    """

    def __init__(
        self,
        patterns: Mapping[str, CompiledPatternGroup],
        workers: int = DEFAULT_WORKERS,
        context_width: int = DEFAULT_CONTEXT_WIDTH,
    ):
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.patterns = patterns
        self.workers = workers
        self.context_width = context_width

    def scan(self, tree: Union[DecompiledTree, Path]) -> ScanResult:
        root = Path(tree.path if isinstance(tree, DecompiledTree) else tree)
        files = list(iter_relevant_files(root))
        logger.info(f"Scanning {len(files)} files with {len(self.patterns)} patterns using {self.workers} workers")

        accumulator: Dict[str, List[Finding]] = {}
        lock = threading.Lock()

        def worker(path: Path) -> None:
            file_findings = self.scan_file(path, root)
            if not file_findings:
                return
            with lock:
                for name, items in file_findings.items():
                    accumulator.setdefault(name, []).extend(items)

        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="apkwise-scan") as executor:
            # list() drains the iterator so worker exceptions surface here
            list(executor.map(worker, files))

        result = ScanResult(findings=accumulator, files_scanned=len(files))
        logger.info(f"✓ Scan complete: {result.total_findings} findings in {len(accumulator)} categories")
        return result

    def scan_file(self, path: Path, root: Path) -> Dict[str, List[Finding]]:
        """Findings for a single file, keyed by pattern name."""
        try:
            content = path.read_text(encoding="utf-8", errors="ignore")
        except OSError as e:
            logger.warning(f"Failed to read {path}: {e}")
            return {}

        relative = path.relative_to(root).as_posix()
        findings: Dict[str, List[Finding]] = {}

        for name, group in self.patterns.items():
            seen = set()
            for match in group.finditer(content):
                raw = match.group(0)
                text = raw.strip()
                if not text or text in seen or is_common_false_positive(text):
                    continue
                seen.add(text)

                # Window is anchored on the trimmed text so it stays within 2W + len(match)
                start = match.start() + (len(raw) - len(raw.lstrip()))
                end = start + len(text)
                findings.setdefault(name, []).append(Finding(
                    category=name,
                    file=relative,
                    match=text,
                    context=context_window(content, start, end, self.context_width),
                ))

        return findings
