"""
Report export, stored report directories and webhook notification.
"""

# Copyright (c) 2026 Apkwise
#
# Licensed under the MIT License. See the LICENSE file for details.

import json
import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from .exceptions import ExportError, NotificationError, ValidationError
from .models import Report, StoredReport

logger = logging.getLogger(__name__)

RESULTS_FILENAME = "results.json"
HTML_REPORT_FILENAME = "security-report.html"
RUN_METADATA_FILENAME = "apk.name"

WEBHOOK_SUCCESS_CODES = (200, 204)


class JsonExporter:
    """Writes ``results.json``: category name to list of finding strings."""

    def export(self, report: Report, output_dir: Path) -> Path:
        output_dir = Path(output_dir)
        json_path = output_dir / RESULTS_FILENAME

        try:
            output_dir.mkdir(parents=True, exist_ok=True)
            with open(json_path, "w", encoding="utf-8") as f:
                json.dump(report.results(), f, indent=2, ensure_ascii=False)
        except (OSError, TypeError, ValueError) as e:
            raise ExportError(f"Failed to write results to {json_path}", original_exception=e) from e

        logger.info(f"✓ Detailed results saved to: {json_path}")
        return json_path


def write_run_metadata(output_dir: Path, original: Path, patched: Optional[Path] = None) -> Path:
    """Record which package a report directory belongs to."""
    metadata = {
        "original_apk": Path(original).name,
        "mitm_enabled": patched is not None,
    }
    if patched is not None:
        metadata["patched_apk"] = Path(patched).name

    path = Path(output_dir) / RUN_METADATA_FILENAME
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(metadata), encoding="utf-8")
    except OSError as e:
        raise ExportError(f"Failed to write run metadata to {path}", original_exception=e) from e
    return path


class WebhookNotifier:
    """
    Posts reports to a webhook (Discord-compatible multipart form).

    Args:
        url: Webhook endpoint
        timeout: Request timeout in seconds
        client: Optional preconfigured httpx client, owned by the caller
    """

    def __init__(self, url: str, timeout: float = 30.0, client: Optional[httpx.Client] = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    def notify(self, json_path: Path, html_path: Optional[Path] = None, subject: str = "") -> None:
        """
        Send the report files.

        Raises:
            NotificationError: transport failure or unexpected status code
        """
        json_path = Path(json_path)
        handles = []
        try:
            try:
                json_handle = open(json_path, "rb")
            except OSError as e:
                raise NotificationError(f"Failed to open {json_path}", original_exception=e) from e
            handles.append(json_handle)
            files = {"file1": (json_path.name, json_handle, "application/json")}

            if html_path is not None and Path(html_path).is_file():
                try:
                    html_handle = open(html_path, "rb")
                except OSError as e:
                    raise NotificationError(f"Failed to open {html_path}", original_exception=e) from e
                handles.append(html_handle)
                files["file2"] = (Path(html_path).name, html_handle, "text/html")

            data = {"content": f"APK Analysis Results for: {subject}"}
            response = self._post(files, data)
        finally:
            for handle in handles:
                handle.close()

        if response.status_code not in WEBHOOK_SUCCESS_CODES:
            raise NotificationError(
                f"Webhook rejected the report: {response.text[:200]}",
                status_code=response.status_code,
            )
        logger.info("✓ Results sent to webhook")

    def _post(self, files, data) -> httpx.Response:
        try:
            if self._client is not None:
                return self._client.post(self.url, files=files, data=data)
            with httpx.Client(timeout=self.timeout) as client:
                return client.post(self.url, files=files, data=data)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NotificationError(f"Failed to send webhook: {e}", original_exception=e) from e


PACKAGE_TYPES = {".apk": "APK", ".xapk": "XAPK", ".ipa": "IPA"}


class ReportStore:
    """
    Report directories under one root, keyed by report id.

    Each directory holds ``apk.name`` (run metadata), ``results.json`` and
    optionally ``security-report.html``. Older directories may carry the bare
    package file name in ``apk.name`` instead of JSON.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    def path_for(self, report_id: str) -> Path:
        """
        Directory of a report.

        Raises:
            ValidationError: the id is empty or not a plain directory name
        """
        if not report_id or report_id.startswith(".") or "/" in report_id or "\\" in report_id:
            raise ValidationError(f"Invalid report id: {report_id!r}")
        return self.root / report_id

    def list(self) -> List[StoredReport]:
        """All stored reports, newest first."""
        if not self.root.is_dir():
            return []

        reports = []
        for entry in sorted(self.root.iterdir(), key=lambda p: p.name, reverse=True):
            if not entry.is_dir() or entry.name.startswith("."):
                continue
            try:
                reports.append(self._describe(entry))
            except OSError as e:
                logger.warning(f"Skipping unreadable report {entry.name}: {e}")
        return reports

    def get(self, report_id: str) -> Optional[StoredReport]:
        directory = self.path_for(report_id)
        if not directory.is_dir():
            return None
        return self._describe(directory)

    def load(self, report_id: str) -> Dict[str, List[str]]:
        """
        Findings of a stored report, as written by ``JsonExporter``.

        Raises:
            ValidationError: unknown report or missing results.json
            ExportError: results.json is unreadable or malformed
        """
        json_path = self.path_for(report_id) / RESULTS_FILENAME
        if not json_path.is_file():
            raise ValidationError(f"Report {report_id} has no results", path=str(json_path))

        try:
            with open(json_path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise ExportError(f"Failed to read results from {json_path}", original_exception=e) from e

    def delete(self, report_id: str) -> bool:
        """
        Remove a report directory and everything in it.

        Returns:
            False if no such report exists

        Raises:
            ExportError: the directory could not be removed
        """
        directory = self.path_for(report_id)
        if not directory.is_dir():
            return False

        try:
            shutil.rmtree(directory)
        except OSError as e:
            raise ExportError(f"Failed to delete report {report_id}", original_exception=e) from e

        logger.info(f"✓ Deleted report {report_id}")
        return True

    def _describe(self, directory: Path) -> StoredReport:
        metadata = _read_run_metadata(directory / RUN_METADATA_FILENAME)
        apk = metadata.get("original_apk", "")

        return StoredReport(
            id=directory.name,
            apk=apk,
            file_type=PACKAGE_TYPES.get(Path(apk).suffix.lower(), "Unknown"),
            created_at=datetime.fromtimestamp(directory.stat().st_mtime, tz=timezone.utc),
            mitm_enabled=bool(metadata.get("mitm_enabled", False)),
            patched_apk=metadata.get("patched_apk"),
            has_json=(directory / RESULTS_FILENAME).is_file(),
            has_html=(directory / HTML_REPORT_FILENAME).is_file(),
        )


def _read_run_metadata(path: Path) -> Dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8").strip()
    except OSError:
        return {}

    try:
        metadata = json.loads(content)
    except ValueError:
        metadata = None
    if isinstance(metadata, dict):
        return metadata
    # Bare file name
    return {"original_apk": content} if content else {}
