"""
Jadx Decompilation Wrapper

Decompiles Android packages to Java source code using Jadx.
"""

# Copyright (c) 2026 Apkwise
#
# Licensed under the MIT License. See the LICENSE file for details.

import logging
import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence

from ..exceptions import DecompileError, ToolNotFoundError

logger = logging.getLogger(__name__)

# Arguments that improve the success rate on obfuscated packages
DEFAULT_JADX_ARGS = [
    "--no-debug-info",
    "--no-inline-methods",
    "--no-replace-consts",
    "--escape-unicode",
    "--deobf",
    "--show-bad-code",
]

SOURCES_SUBDIR = "sources"


class Decompiler(ABC):
    """Turns a package into a source-like tree under output_dir."""

    @abstractmethod
    def decompile(self, package_path: Path, output_dir: Path, extra_args: Sequence[str] = ()) -> int:
        """
        Decompile package_path into output_dir.

        Returns:
            Process exit status. A non-zero status may still leave a usable
            partial tree behind; callers probe for it.
        """


class JadxDecompiler(Decompiler):
    """Decompiler backed by the jadx command line tool"""

    def __init__(self, binary: str = "jadx", default_args: Optional[List[str]] = None):
        self.binary = binary
        self.default_args = list(DEFAULT_JADX_ARGS if default_args is None else default_args)

    def resolve_binary(self) -> str:
        path = shutil.which(self.binary)
        if not path:
            raise ToolNotFoundError(
                self.binary,
                install_hint="Install jadx (https://github.com/skylot/jadx/releases) and add it to PATH",
            )
        return path

    def build_command(self, binary: str, package_path: Path, output_dir: Path, extra_args: Sequence[str] = ()) -> List[str]:
        cmd = [binary, str(package_path), "-d", str(output_dir)]
        cmd.extend(self.default_args)
        cmd.extend(extra_args)
        return cmd

    def decompile(self, package_path: Path, output_dir: Path, extra_args: Sequence[str] = ()) -> int:
        cmd = self.build_command(self.resolve_binary(), package_path, output_dir, extra_args)
        logger.debug(f"Running Jadx: {' '.join(cmd)}")

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, errors="ignore")
        except OSError as exc:
            raise DecompileError(f"Failed to start {self.binary}", original_exception=exc) from exc

        if result.stdout:
            logger.debug(f"Jadx stdout: {result.stdout[:200]}...")
        if result.stderr:
            logger.debug(f"Jadx stderr: {result.stderr[:200]}...")

        if result.returncode != 0:
            logger.info(f"Jadx exited with code {result.returncode} for {package_path.name}")

        return result.returncode
