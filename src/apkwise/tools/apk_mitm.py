"""
apk-mitm Patch Wrapper

Produces a copy of a package patched to trust user CAs, for HTTPS inspection.
The original package is left untouched and remains the analysis subject.
"""

# Copyright (c) 2026 Apkwise
#
# Licensed under the MIT License. See the LICENSE file for details.

import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Optional

from ..exceptions import PatchError, ToolNotFoundError

logger = logging.getLogger(__name__)

PATCHED_SUFFIXES = (".apk", ".xapk")
SIGNATURE_SIDECAR = ".idsig"


class ApkMitmPatcher:
    """Runs apk-mitm in a scratch directory and copies the patched archive out"""

    def __init__(self, output_dir: Path, binary: str = "apk-mitm"):
        self.output_dir = Path(output_dir)
        self.binary = binary

    def patch(self, package_path: Path) -> Path:
        binary = shutil.which(self.binary)
        if not binary:
            raise ToolNotFoundError(self.binary, install_hint="Install it with: npm install -g apk-mitm")

        package_path = Path(package_path)
        with tempfile.TemporaryDirectory(prefix="apkwise-mitm-") as scratch:
            scratch_dir = Path(scratch)
            cmd = [binary, str(package_path), "--tmp-dir", str(scratch_dir), "--keep-tmp-dir"]
            logger.debug(f"Running apk-mitm: {' '.join(cmd)}")

            try:
                result = subprocess.run(cmd, capture_output=True, text=True, errors="ignore")
            except OSError as exc:
                raise PatchError(f"Failed to start {self.binary}", original_exception=exc) from exc

            if result.returncode != 0:
                output = (result.stderr or result.stdout or "").strip()
                raise PatchError(f"apk-mitm failed with exit code {result.returncode}: {output[:500]}")

            patched = self.find_patched(scratch_dir)
            if patched is None:
                raise PatchError("No patched package found in apk-mitm output directory")

            self.output_dir.mkdir(parents=True, exist_ok=True)
            destination = self.output_dir / f"{package_path.stem}-mitm-patched{package_path.suffix}"
            try:
                shutil.copyfile(patched, destination)
            except OSError as exc:
                raise PatchError(f"Failed to copy patched package to {destination}", original_exception=exc) from exc

        logger.info(f"✓ MITM patch applied: {destination}")
        return destination

    @staticmethod
    def find_patched(scratch_dir: Path) -> Optional[Path]:
        for entry in sorted(scratch_dir.iterdir()):
            if not entry.is_file() or entry.name.endswith(SIGNATURE_SIDECAR):
                continue
            if entry.name.endswith(PATCHED_SUFFIXES):
                return entry
        return None
