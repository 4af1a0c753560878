"""
External tool wrappers

Thin wrappers around the binaries the pipeline delegates to:
- JadxDecompiler: package decompilation using Jadx
- ApkeepDownloader: package download from app stores using apkeep
- ApkMitmPatcher: traffic-interception patching using apk-mitm
"""

# Copyright (c) 2026 Apkwise
#
# Licensed under the MIT License. See the LICENSE file for details.

from .jadx import Decompiler, JadxDecompiler
from .apkeep import ApkeepDownloader
from .apk_mitm import ApkMitmPatcher

__all__ = ["Decompiler", "JadxDecompiler", "ApkeepDownloader", "ApkMitmPatcher"]
