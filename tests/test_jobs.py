"""Tests for the job state machine and background execution."""

import json
import threading

import pytest

from apkwise.analyzers import AnalyzerRegistry
from apkwise.cache import DecompilationCache
from apkwise.config import ApkwiseConfig
from apkwise.exceptions import DownloadError
from apkwise.jobs import JobManager, JobRunner
from apkwise.models import DownloadRequest, JobStatus, JobSubject
from apkwise.patterns import PatternRegistry
from apkwise.pipeline import Pipeline

from conftest import FAKE_GOOGLE_KEY, FakeDecompiler

STATUS_ORDER = [JobStatus.PENDING, JobStatus.DOWNLOADING, JobStatus.ANALYZING]


def subject(name="com.example.app"):
    return JobSubject(package_name=name)


class RecordingManager(JobManager):
    """JobManager that records every accepted status."""

    def __init__(self):
        super().__init__()
        self.history = {}
        self._history_lock = threading.Lock()

    def update_status(self, job_id, status, progress=None):
        accepted = super().update_status(job_id, status, progress)
        if accepted:
            with self._history_lock:
                self.history.setdefault(job_id, []).append(JobStatus(status))
        return accepted

    def set_error(self, job_id, cause):
        accepted = super().set_error(job_id, cause)
        if accepted:
            with self._history_lock:
                self.history.setdefault(job_id, []).append(JobStatus.FAILED)
        return accepted


def assert_monotonic(history):
    terminal = [s for s in history if s.is_terminal]
    assert len(terminal) == 1 and history[-1] == terminal[0]
    ranks = [STATUS_ORDER.index(s) for s in history[:-1]]
    assert ranks == sorted(ranks)


class TestJobManager:
    """State machine rules."""

    def test_create(self):
        manager = JobManager()
        job_id = manager.create(subject())

        job = manager.get(job_id)
        assert job_id.startswith("job_")
        assert job.status == JobStatus.PENDING
        assert job.progress == "Job created"
        assert job.completed_at is None

    def test_happy_path(self):
        manager = JobManager()
        job_id = manager.create(subject())

        assert manager.update_status(job_id, JobStatus.DOWNLOADING, "Downloading...")
        assert manager.update_status(job_id, JobStatus.ANALYZING, "Analyzing...")
        assert manager.update_status(job_id, JobStatus.COMPLETED, "Done")

        job = manager.get(job_id)
        assert job.status == JobStatus.COMPLETED
        assert job.progress == "Done"
        assert job.completed_at is not None
        assert job.completed_at.tzinfo is not None
        assert job.completed_at >= job.created_at

    def test_upload_skips_downloading(self):
        manager = JobManager()
        job_id = manager.create(subject())

        assert manager.update_status(job_id, JobStatus.ANALYZING)

    def test_backward_transition_rejected(self):
        manager = JobManager()
        job_id = manager.create(subject())
        manager.update_status(job_id, JobStatus.ANALYZING)

        assert manager.update_status(job_id, JobStatus.DOWNLOADING) is False
        assert manager.update_status(job_id, JobStatus.PENDING) is False
        assert manager.get(job_id).status == JobStatus.ANALYZING

    def test_pending_cannot_complete_directly(self):
        manager = JobManager()
        job_id = manager.create(subject())

        assert manager.update_status(job_id, JobStatus.COMPLETED) is False

    def test_terminal_states_are_final(self):
        manager = JobManager()
        job_id = manager.create(subject())
        manager.set_error(job_id, "download failed")

        assert manager.update_status(job_id, JobStatus.ANALYZING) is False
        assert manager.set_error(job_id, "again") is False

        job = manager.get(job_id)
        assert job.status == JobStatus.FAILED
        assert job.error == "download failed"
        assert job.completed_at is not None

    def test_unknown_job(self):
        manager = JobManager()

        assert manager.update_status("job_missing", JobStatus.ANALYZING) is False
        assert manager.set_error("job_missing", "x") is False
        assert manager.set_report_id("job_missing", "r") is False
        assert manager.get("job_missing") is None
        assert manager.delete("job_missing") is False

    def test_get_returns_copy(self):
        manager = JobManager()
        job_id = manager.create(subject())

        manager.get(job_id).status = JobStatus.COMPLETED

        assert manager.get(job_id).status == JobStatus.PENDING

    def test_list_active_newest_first(self):
        manager = JobManager()
        first = manager.create(subject("a"))
        second = manager.create(subject("b"))
        third = manager.create(subject("c"))
        manager.update_status(second, JobStatus.ANALYZING)
        manager.update_status(second, JobStatus.COMPLETED)
        manager.set_error(third, "bad")

        assert [job.id for job in manager.list_active()] == [third, first]
        assert [job.id for job in manager.list_all()] == [third, second, first]

    def test_delete(self):
        manager = JobManager()
        job_id = manager.create(subject())

        assert manager.delete(job_id) is True
        assert manager.get(job_id) is None
        assert manager.update_status(job_id, JobStatus.ANALYZING) is False

    def test_concurrent_updates_stay_monotonic(self):
        manager = RecordingManager()
        job_id = manager.create(subject())
        barrier = threading.Barrier(4)

        def writer(status):
            barrier.wait()
            manager.update_status(job_id, status)

        threads = [
            threading.Thread(target=writer, args=(status,))
            for status in (JobStatus.DOWNLOADING, JobStatus.ANALYZING, JobStatus.COMPLETED, JobStatus.FAILED)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        history = manager.history.get(job_id, [])
        for earlier, later in zip(history, history[1:]):
            assert later != JobStatus.PENDING
            assert not earlier.is_terminal


@pytest.fixture
def pipeline(cache_root):
    decompiler = FakeDecompiler(files={
        "resources/AndroidManifest.xml": '<manifest package="com.example.app"><application/></manifest>',
        "sources/com/example/app/Config.java": f'String KEY = "{FAKE_GOOGLE_KEY}";\n',
    })
    patterns = PatternRegistry.from_mapping({"patterns": [
        {"name": "Google API Key", "regex": r"AIza[0-9A-Za-z\-_]{33}"},
    ]})
    return Pipeline(
        ApkwiseConfig(),
        cache=DecompilationCache(cache_root, decompiler),
        patterns=patterns,
        registry=AnalyzerRegistry(),
    )


class FakeDownloader:

    def __init__(self, package_path=None, error=None):
        self.package_path = package_path
        self.error = error
        self.requests = []

    def download(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.package_path


class FakePatcher:

    def __init__(self, output_dir):
        self.output_dir = output_dir

    def patch(self, package_path):
        patched = self.output_dir / f"{package_path.stem}-mitm-patched{package_path.suffix}"
        patched.write_bytes(package_path.read_bytes())
        return patched


class TestJobRunner:
    """Background execution of the pipeline."""

    def test_upload_completes(self, pipeline, apk_file, tmp_path):
        manager = RecordingManager()
        runner = JobRunner(manager, pipeline, reports_root=tmp_path / "reports")

        job_id = runner.submit_upload(apk_file)
        assert runner.join(job_id, timeout=30)

        job = manager.get(job_id)
        assert job.status == JobStatus.COMPLETED, job.error
        assert job.report_id is not None
        assert "1 findings" in job.progress
        assert JobStatus.DOWNLOADING not in manager.history[job_id]
        assert_monotonic([JobStatus.PENDING] + manager.history[job_id])

        report_dir = tmp_path / "reports" / job.report_id
        results = json.loads((report_dir / "results.json").read_text())
        assert list(results) == ["Google API Key"]
        metadata = json.loads((report_dir / "apk.name").read_text())
        assert metadata == {"original_apk": "example.apk", "mitm_enabled": False}

    def test_download_then_analyze(self, pipeline, apk_file, tmp_path):
        manager = RecordingManager()
        downloader = FakeDownloader(package_path=apk_file)
        runner = JobRunner(manager, pipeline, downloader=downloader, reports_root=tmp_path / "reports")

        job_id = runner.submit_download(DownloadRequest(package_name="com.example.app", version="1.2.3"))
        assert runner.join(job_id, timeout=30)

        job = manager.get(job_id)
        assert job.status == JobStatus.COMPLETED, job.error
        assert job.subject.version == "1.2.3"
        assert manager.history[job_id][0] == JobStatus.DOWNLOADING
        assert_monotonic([JobStatus.PENDING] + manager.history[job_id])

    def test_download_failure_marks_failed(self, pipeline, tmp_path):
        manager = JobManager()
        downloader = FakeDownloader(error=DownloadError("com.example.app", "not found"))
        runner = JobRunner(manager, pipeline, downloader=downloader, reports_root=tmp_path / "reports")

        job_id = runner.submit_download(DownloadRequest(package_name="com.example.app"))
        assert runner.join(job_id, timeout=30)

        job = manager.get(job_id)
        assert job.status == JobStatus.FAILED
        assert "not found" in job.error
        assert job.completed_at is not None

    def test_missing_package_marks_failed(self, pipeline, tmp_path):
        manager = JobManager()
        runner = JobRunner(manager, pipeline, reports_root=tmp_path / "reports")

        job_id = runner.submit_upload(tmp_path / "missing.apk")
        assert runner.join(job_id, timeout=30)

        job = manager.get(job_id)
        assert job.status == JobStatus.FAILED
        assert "does not exist" in job.error

    def test_unexpected_fault_marks_failed(self, pipeline, apk_file, tmp_path, monkeypatch):
        """Test a programming error inside the job thread ends up as Failed."""
        def explode(*args, **kwargs):
            raise KeyError("unexpected")

        monkeypatch.setattr(pipeline, "execute", explode)
        manager = JobManager()
        runner = JobRunner(manager, pipeline, reports_root=tmp_path / "reports")

        job_id = runner.submit_upload(apk_file)
        assert runner.join(job_id, timeout=30)

        job = manager.get(job_id)
        assert job.status == JobStatus.FAILED
        assert "unexpected" in job.error

    def test_mitm_patch_recorded(self, pipeline, apk_file, tmp_path):
        manager = JobManager()
        patch_dir = tmp_path / "patched"
        patch_dir.mkdir()
        runner = JobRunner(manager, pipeline, patcher=FakePatcher(patch_dir), reports_root=tmp_path / "reports")

        job_id = runner.submit_upload(apk_file, mitm=True)
        assert runner.join(job_id, timeout=30)

        job = manager.get(job_id)
        assert job.status == JobStatus.COMPLETED, job.error
        metadata = json.loads((tmp_path / "reports" / job.report_id / "apk.name").read_text())
        assert metadata == {
            "original_apk": "example.apk",
            "mitm_enabled": True,
            "patched_apk": "example-mitm-patched.apk",
        }

    def test_mitm_without_patcher_fails(self, pipeline, apk_file, tmp_path):
        manager = JobManager()
        runner = JobRunner(manager, pipeline, reports_root=tmp_path / "reports")

        job_id = runner.submit_upload(apk_file, mitm=True)
        assert runner.join(job_id, timeout=30)

        assert manager.get(job_id).status == JobStatus.FAILED

    def test_join_unknown_job(self, pipeline):
        assert JobRunner(JobManager(), pipeline).join("job_missing") is True

    def test_finished_threads_are_forgotten(self, pipeline, apk_file, tmp_path, monkeypatch):
        """Test the runner keeps no reference to a job thread once it has finished."""
        release = threading.Event()
        execute = pipeline.execute

        def held_execute(*args, **kwargs):
            release.wait(timeout=30)
            return execute(*args, **kwargs)

        monkeypatch.setattr(pipeline, "execute", held_execute)
        runner = JobRunner(JobManager(), pipeline, reports_root=tmp_path / "reports")

        job_id = runner.submit_upload(apk_file)
        assert runner.running_jobs() == [job_id]

        release.set()
        assert runner.join(job_id, timeout=30)
        assert runner.running_jobs() == []
        assert runner.join(job_id) is True

    def test_report_id_resolves_to_stored_report(self, pipeline, apk_file, tmp_path):
        manager = JobManager()
        runner = JobRunner(manager, pipeline, reports_root=tmp_path / "reports")

        job_id = runner.submit_upload(apk_file)
        assert runner.join(job_id, timeout=30)

        report_id = manager.get(job_id).report_id
        stored = runner.reports.get(report_id)
        assert stored.apk == "example.apk"
        assert stored.has_json is True
        assert list(runner.reports.load(report_id)) == ["Google API Key"]
