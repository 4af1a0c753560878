"""
Apkwise - static security triage for Android application packages.

Decompiles a package (with a content-addressed cache), scans the resulting
tree for secrets and endpoints using configurable regex patterns, runs a set
of vulnerability heuristics, and aggregates everything into one report.
"""
# Copyright (c) 2026 Apkwise
#
# Licensed under the MIT License. See the LICENSE file for details.


from .exceptions import (
    ApkwiseError,
    ValidationError,
    ConfigError,
    DecompileError,
    PartialDecompile,
    AnalyzerError,
    ExportError,
    NotificationError,
)
from .models import Finding, Report, Job, JobStatus, StoredReport
from .exporters import ReportStore
from .pipeline import Pipeline, PipelineResult
from .jobs import JobManager, JobRunner

__version__ = "0.3.0"
__all__ = [
    "ApkwiseError",
    "ValidationError",
    "ConfigError",
    "DecompileError",
    "PartialDecompile",
    "AnalyzerError",
    "ExportError",
    "NotificationError",
    "Finding",
    "Report",
    "Job",
    "JobStatus",
    "StoredReport",
    "ReportStore",
    "Pipeline",
    "PipelineResult",
    "JobManager",
    "JobRunner",
]
