"""
Job Manager - asynchronous pipeline execution

Handles:
- Job records and their status state machine
- Running the download/patch/analyze flow on a background thread per job
- Converting any fault inside a job into a Failed status
"""

# Copyright (c) 2026 Apkwise
#
# Licensed under the MIT License. See the LICENSE file for details.

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union
from uuid import uuid4

from .exporters import ReportStore, write_run_metadata
from .models import DownloadRequest, Job, JobStatus, JobSubject, utcnow
from .pipeline import Pipeline
from .tools import ApkeepDownloader, ApkMitmPatcher

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.DOWNLOADING, JobStatus.ANALYZING, JobStatus.FAILED},
    JobStatus.DOWNLOADING: {JobStatus.DOWNLOADING, JobStatus.ANALYZING, JobStatus.FAILED},
    JobStatus.ANALYZING: {JobStatus.ANALYZING, JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


def new_job_id() -> str:
    return f"job_{uuid4().hex[:12]}"


def new_report_id() -> str:
    return f"{datetime.now():%Y%m%d-%H%M%S}-{uuid4().hex[:6]}"


class JobManager:
    """
    In-memory job table.

    One lock guards the table; it is held only while a record is read or
    mutated. Callers always receive copies, never the stored records.
    """

    def __init__(self):
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def create(self, subject: JobSubject) -> str:
        job = Job(id=new_job_id(), subject=subject)
        with self._lock:
            self._jobs[job.id] = job
        logger.info(f"Created job {job.id} for {subject.package_name}")
        return job.id

    def update_status(self, job_id: str, status: JobStatus, progress: Optional[str] = None) -> bool:
        """
        Apply a status transition.

        Returns:
            False if the job is unknown or the transition is not allowed
        """
        status = JobStatus(status)
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                current = None
            else:
                current = job.status
                if status in ALLOWED_TRANSITIONS[current]:
                    job.status = status
                    if progress is not None:
                        job.progress = progress
                    if status.is_terminal:
                        job.completed_at = utcnow()

        if current is None:
            logger.warning(f"Status update for unknown job {job_id}")
            return False
        if status not in ALLOWED_TRANSITIONS[current]:
            logger.warning(f"Rejected transition {current.value} -> {status.value} for job {job_id}")
            return False

        if current != status:
            logger.info(f"Job {job_id}: {current.value} -> {status.value}")
        return True

    def set_error(self, job_id: str, cause: str) -> bool:
        """Mark a job Failed with a human-readable cause."""
        with self._lock:
            job = self._jobs.get(job_id)
            accepted = job is not None and not job.status.is_terminal
            if accepted:
                job.status = JobStatus.FAILED
                job.error = cause
                job.progress = "Failed"
                job.completed_at = utcnow()

        if not accepted:
            logger.warning(f"Cannot record error for job {job_id}: unknown or already finished")
            return False

        logger.error(f"Job {job_id} failed: {cause}")
        return True

    def set_report_id(self, job_id: str, report_id: str) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is not None:
                job.report_id = report_id
        return job is not None

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job is not None else None

    def list_active(self) -> List[Job]:
        """Jobs that have not completed, newest first. Failed jobs stay listed."""
        with self._lock:
            return [
                job.model_copy(deep=True)
                for job in reversed(self._jobs.values())
                if job.status != JobStatus.COMPLETED
            ]

    def list_all(self) -> List[Job]:
        with self._lock:
            return [job.model_copy(deep=True) for job in reversed(self._jobs.values())]

    def delete(self, job_id: str) -> bool:
        with self._lock:
            removed = self._jobs.pop(job_id, None)
        if removed is not None:
            logger.info(f"Deleted job {job_id}")
        return removed is not None


class JobRunner:
    """
    Runs pipeline invocations as background jobs.

    Each job gets its own daemon thread. The thread body is the only place
    exceptions are caught; everything raised below it ends up as Failed.
    """

    def __init__(
        self,
        manager: JobManager,
        pipeline: Pipeline,
        downloader: Optional[ApkeepDownloader] = None,
        patcher: Optional[ApkMitmPatcher] = None,
        reports_root: Optional[Union[str, Path]] = None,
    ):
        self.manager = manager
        self.pipeline = pipeline
        self.downloader = downloader
        self.patcher = patcher
        self.reports_root = Path(reports_root) if reports_root is not None else pipeline.config.reports.root
        self.reports = ReportStore(self.reports_root)
        self._threads: Dict[str, threading.Thread] = {}
        self._threads_lock = threading.Lock()

    def submit_upload(
        self,
        package_path: Union[str, Path],
        mitm: bool = False,
        webhook_url: Optional[str] = None,
    ) -> str:
        """Analyze a local package in the background; returns the job id."""
        package_path = Path(package_path)
        job_id = self.manager.create(JobSubject(package_name=package_path.name))
        self._start(job_id, lambda: self._analyze(job_id, package_path, mitm, webhook_url))
        return job_id

    def submit_download(
        self,
        request: DownloadRequest,
        mitm: bool = False,
        webhook_url: Optional[str] = None,
    ) -> str:
        """Download then analyze a package in the background; returns the job id."""
        subject = JobSubject(package_name=request.package_name, version=request.version, source=request.source)
        job_id = self.manager.create(subject)
        self._start(job_id, lambda: self._download_and_analyze(job_id, request, mitm, webhook_url))
        return job_id

    def running_jobs(self) -> List[str]:
        with self._threads_lock:
            return list(self._threads)

    def join(self, job_id: str, timeout: Optional[float] = None) -> bool:
        """
        Wait for a job thread. Returns True once the thread has finished.

        Finished threads are forgotten, so unknown ids count as finished.
        """
        with self._threads_lock:
            thread = self._threads.get(job_id)
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def _start(self, job_id: str, body: Callable[[], None]) -> None:
        thread = threading.Thread(
            target=self._run_job,
            args=(job_id, body),
            name=f"apkwise-{job_id}",
            daemon=True,
        )
        with self._threads_lock:
            self._threads[job_id] = thread
        thread.start()

    def _run_job(self, job_id: str, body: Callable[[], None]) -> None:
        try:
            body()
        except Exception as e:
            logger.exception(f"Unexpected error in job {job_id}")
            self.manager.set_error(job_id, str(e) or type(e).__name__)
        finally:
            with self._threads_lock:
                self._threads.pop(job_id, None)

    def _download_and_analyze(
        self,
        job_id: str,
        request: DownloadRequest,
        mitm: bool,
        webhook_url: Optional[str],
    ) -> None:
        if self.downloader is None:
            raise RuntimeError("No downloader configured")

        self.manager.update_status(job_id, JobStatus.DOWNLOADING, f"Downloading {request.package_name}...")
        package_path = self.downloader.download(request)
        self.manager.update_status(job_id, JobStatus.DOWNLOADING, "Download completed")
        self._analyze(job_id, package_path, mitm, webhook_url)

    def _analyze(self, job_id: str, package_path: Path, mitm: bool, webhook_url: Optional[str]) -> None:
        self.manager.update_status(job_id, JobStatus.ANALYZING, "Starting analysis...")

        patched = None
        if mitm:
            if self.patcher is None:
                raise RuntimeError("MITM patching requested but no patcher configured")
            self.manager.update_status(job_id, JobStatus.ANALYZING, "Applying MITM patch...")
            patched = self.patcher.patch(package_path)

        report_id = new_report_id()
        report_dir = self.reports_root / report_id
        write_run_metadata(report_dir, package_path, patched)
        self.manager.set_report_id(job_id, report_id)

        result = self.pipeline.execute(
            package_path,
            output_dir=report_dir,
            webhook_url=webhook_url,
            progress=lambda message: self.manager.update_status(job_id, JobStatus.ANALYZING, message),
        )

        if not result.ok:
            self.manager.set_error(job_id, str(result.error))
            return

        self.manager.update_status(
            job_id,
            JobStatus.COMPLETED,
            f"Analysis completed: {result.report.total_findings} findings",
        )
