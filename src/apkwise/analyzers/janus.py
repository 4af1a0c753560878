"""
Janus Vulnerability Analyzer (CVE-2017-13156)

A package signed only with the v1 (JAR) scheme can have a DEX file prepended
without invalidating its signature on Android 5.0 to 8.0. The check needs the
raw archive, so it relies on the subject path.
"""

# Copyright (c) 2026 Apkwise
#
# Licensed under the MIT License. See the LICENSE file for details.

import logging
import re
import struct
import zipfile
from pathlib import Path
from typing import List, Optional

from ..exceptions import AnalyzerError
from .base import Analyzer, TreeLike, find_manifest, render_finding

logger = logging.getLogger(__name__)

EOCD_SIGNATURE = b"PK\x05\x06"
EOCD_MIN_SIZE = 22
EOCD_MAX_COMMENT = 0xFFFF
SIGNING_BLOCK_MAGIC = b"APK Sig Block 42"

V1_SIGNATURE_SUFFIXES = (".RSA", ".DSA", ".EC")

# Android 7.0 introduced the v2 scheme and fixed Janus for v2-signed packages
FIRST_SAFE_SDK = 24

MIN_SDK_PATTERN = re.compile(r"""minSdkVersion\s*=\s*["']?(\d+)""")


def has_v1_signature(package_path: Path) -> bool:
    with zipfile.ZipFile(package_path) as archive:
        for name in archive.namelist():
            upper = name.upper()
            if upper.startswith("META-INF/") and upper.endswith(V1_SIGNATURE_SUFFIXES):
                return True
    return False


def has_signing_block(package_path: Path) -> bool:
    """True if an APK Signing Block (v2+) sits right before the central directory."""
    with open(package_path, "rb") as f:
        f.seek(0, 2)
        size = f.tell()
        tail_size = min(size, EOCD_MIN_SIZE + EOCD_MAX_COMMENT)
        f.seek(size - tail_size)
        tail = f.read(tail_size)

        eocd = tail.rfind(EOCD_SIGNATURE)
        if eocd < 0 or eocd + EOCD_MIN_SIZE > len(tail):
            return False

        (cd_offset,) = struct.unpack_from("<I", tail, eocd + 16)
        if cd_offset < len(SIGNING_BLOCK_MAGIC):
            return False

        f.seek(cd_offset - len(SIGNING_BLOCK_MAGIC))
        return f.read(len(SIGNING_BLOCK_MAGIC)) == SIGNING_BLOCK_MAGIC


def extract_min_sdk(tree: TreeLike) -> Optional[int]:
    manifest = find_manifest(tree)
    if manifest is None:
        return None
    match = MIN_SDK_PATTERN.search(manifest.read_text(encoding="utf-8", errors="ignore"))
    return int(match.group(1)) if match else None


class JanusAnalyzer(Analyzer):
    """Signature scheme check on the original archive."""

    @property
    def name(self) -> str:
        return "JanusAnalyzer"

    def analyze(self, tree: TreeLike) -> List[str]:
        if self.subject_path is None:
            raise AnalyzerError(self.name, "package path not set")

        try:
            v1_signed = has_v1_signature(self.subject_path)
            v2_signed = has_signing_block(self.subject_path)
        except (OSError, zipfile.BadZipFile) as e:
            raise AnalyzerError(self.name, f"failed to read package: {e}", original_exception=e) from e

        if not v1_signed or v2_signed:
            logger.debug(f"{self.subject_path.name}: v1={v1_signed} v2+={v2_signed}, not exposed to Janus")
            return []

        min_sdk = extract_min_sdk(tree)
        severity = "HIGH" if min_sdk is None or min_sdk < FIRST_SAFE_SDK else "MEDIUM"
        min_sdk_text = str(min_sdk) if min_sdk is not None else "unknown"

        return [render_finding(
            "Janus Vulnerability (CVE-2017-13156)",
            severity,
            "Package Signed With v1 Scheme Only",
            [
                "No APK Signature Scheme v2/v3 block found",
                f"minSdkVersion: {min_sdk_text}",
                "DEX code can be prepended without breaking the signature on Android 5.0-8.0",
            ],
        )]
