"""
apkeep Download Wrapper

Fetches packages from APKPure, Google Play, F-Droid or Huawei AppGallery.
"""

# Copyright (c) 2026 Apkwise
#
# Licensed under the MIT License. See the LICENSE file for details.

import logging
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional

from ..exceptions import DownloadError, ToolNotFoundError
from ..models import DownloadRequest

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIXES = (".apk", ".xapk")


class ApkeepDownloader:
    """Downloads a package into output_dir and locates the resulting archive"""

    def __init__(
        self,
        output_dir: Path,
        binary: str = "apkeep",
        sleep_ms: int = 1000,
        parallel: int = 1,
    ):
        self.output_dir = Path(output_dir)
        self.binary = binary
        self.sleep_ms = sleep_ms
        self.parallel = parallel

    def build_command(self, binary: str, request: DownloadRequest) -> List[str]:
        args = [binary, "-a", request.app_id]

        if request.source:
            args.extend(["-d", request.source])

        if request.source == "google-play":
            if request.email:
                args.extend(["-e", request.email])
            if request.aas_token:
                args.extend(["-t", request.aas_token])
            if request.oauth_token:
                args.extend(["--oauth-token", request.oauth_token])
            if request.accept_tos:
                args.append("--accept-tos")

        if self.sleep_ms > 0:
            args.extend(["-s", str(self.sleep_ms)])
        if self.parallel > 0:
            args.extend(["-r", str(self.parallel)])

        args.append(str(self.output_dir))
        return args

    def download(self, request: DownloadRequest) -> Path:
        """
        Download a package.

        Returns:
            Path of the downloaded archive

        Raises:
            ToolNotFoundError: apkeep is not installed
            DownloadError: apkeep failed or left no matching archive
        """
        binary = shutil.which(self.binary)
        if not binary:
            raise ToolNotFoundError(self.binary, install_hint="Install it with: cargo install apkeep")

        self.output_dir.mkdir(parents=True, exist_ok=True)
        cmd = self.build_command(binary, request)

        # Credentials stay out of the log line
        logger.info(f"Downloading {request.package_name} from {request.source}")

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, errors="ignore")
        except OSError as exc:
            raise DownloadError(request.package_name, f"failed to start {self.binary}: {exc}") from exc

        if result.returncode != 0:
            output = (result.stderr or result.stdout or "no output").strip()
            raise DownloadError(
                request.package_name,
                f"{self.binary} exited with code {result.returncode}: {output[:500]}",
            )

        archive = self.find_downloaded(request.package_name)
        if archive is None:
            raise DownloadError(request.package_name, f"no archive found in {self.output_dir}")

        logger.info(f"✓ Package downloaded: {archive}")
        return archive

    def find_downloaded(self, package_name: str) -> Optional[Path]:
        """Most recently modified archive whose name contains the package name."""
        if not self.output_dir.is_dir():
            return None

        candidates = (package_name, package_name.replace(".", "_"))
        latest: Optional[Path] = None
        latest_mtime = -1.0

        for entry in self.output_dir.iterdir():
            if not entry.is_file() or not entry.name.lower().endswith(ARCHIVE_SUFFIXES):
                continue
            if not any(candidate in entry.name for candidate in candidates):
                continue

            mtime = entry.stat().st_mtime
            if mtime > latest_mtime:
                latest, latest_mtime = entry, mtime

        return latest
