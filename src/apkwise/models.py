"""
Models for patterns, findings, reports and jobs
"""

# Copyright (c) 2026 Apkwise
#
# Licensed under the MIT License. See the LICENSE file for details.

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Confidence(str, Enum):
    """How much a pattern match can be trusted"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Pattern(BaseModel):
    """Named group of regex alternatives as declared in a pattern file"""
    name: str = Field(..., description="Category name reported for matches")
    regex_group: List[str] = Field(..., min_length=1, description="Regex sources, applied as a set")
    confidence: Confidence = Field(default=Confidence.MEDIUM)


class Finding(BaseModel):
    """One pattern match in one file"""
    category: str = Field(..., description="Pattern name")
    file: str = Field(..., description="Path relative to the decompiled tree")
    match: str = Field(..., description="Matched text, whitespace-trimmed")
    context: str = Field(..., description="Newline-collapsed text window around the match")

    def render(self) -> str:
        """Exported string form of the finding."""
        return f"{self.file}: {self.match} (Context: ...{self.context}...)"


class DecompiledTree(BaseModel):
    """Handle to a published cache entry"""
    path: Path = Field(..., description="Root of the decompiled tree")
    content_hash: str = Field(..., description="SHA-256 of the package bytes")
    cache_hit: bool = Field(default=False)
    partial: bool = Field(default=False, description="Decompiler reported failure but left usable output")


class ScanResult(BaseModel):
    """Pattern scan output"""
    findings: Dict[str, List[Finding]] = Field(default_factory=dict)
    files_scanned: int = Field(default=0)

    @property
    def total_findings(self) -> int:
        return sum(len(items) for items in self.findings.values())


class CategoryResult(BaseModel):
    """Findings reported under one category"""
    model_config = ConfigDict(frozen=True)

    count: int = Field(..., ge=0)
    findings: Tuple[str, ...] = Field(default_factory=tuple)


class RiskBreakdown(BaseModel):
    """Finding counts per coarse risk bucket"""
    model_config = ConfigDict(frozen=True)

    high: int = 0
    medium: int = 0
    low: int = 0


class ReportSummary(BaseModel):
    """Summary statistics of one analysis"""
    model_config = ConfigDict(frozen=True)

    total_files_scanned: int = Field(default=0)
    total_patterns: int = Field(default=0)
    vulnerability_count: int = Field(default=0)
    risk_breakdown: RiskBreakdown = Field(default_factory=RiskBreakdown)


class Report(BaseModel):
    """Aggregated output of one pipeline invocation"""
    model_config = ConfigDict(frozen=True)

    categories: Mapping[str, CategoryResult] = Field(default_factory=dict, validate_default=True)
    summary: ReportSummary = Field(default_factory=ReportSummary)
    subject: Optional[str] = Field(None, description="Package file name")
    package_name: Optional[str] = Field(None, description="Manifest package attribute")
    version_name: Optional[str] = Field(None, description="Manifest versionName attribute")
    generated_at: datetime = Field(default_factory=utcnow)

    @field_validator("categories", mode="after")
    @classmethod
    def freeze_categories(cls, value: Mapping[str, CategoryResult]) -> Mapping[str, CategoryResult]:
        return MappingProxyType(dict(value))

    @field_serializer("categories")
    def dump_categories(self, value: Mapping[str, CategoryResult]) -> Dict[str, CategoryResult]:
        return dict(value)

    @property
    def total_findings(self) -> int:
        return sum(category.count for category in self.categories.values())

    def results(self) -> Dict[str, List[str]]:
        """Category to finding strings, the exported JSON shape."""
        return {name: list(category.findings) for name, category in self.categories.items()}


class JobStatus(str, Enum):
    """Lifecycle of an asynchronous analysis"""
    PENDING = "pending"
    DOWNLOADING = "downloading"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class JobSubject(BaseModel):
    """What a job analyzes"""
    package_name: str = Field(..., description="Package identifier or uploaded file name")
    version: Optional[str] = Field(None)
    source: Optional[str] = Field(None, description="Download registry, None for uploads")


class Job(BaseModel):
    """Tracked asynchronous pipeline invocation"""
    id: str = Field(..., description="Unique job identifier")
    subject: JobSubject
    status: JobStatus = Field(default=JobStatus.PENDING)
    progress: str = Field(default="Job created")
    error: Optional[str] = Field(None)
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = Field(None)
    report_id: Optional[str] = Field(None)


class DownloadRequest(BaseModel):
    """Descriptor for a package fetched by the downloader"""
    package_name: str = Field(..., min_length=1)
    version: Optional[str] = Field(None)
    source: str = Field(default="apk-pure", description="apk-pure, google-play, f-droid, huawei-app-gallery")
    email: Optional[str] = Field(None, description="Google Play account")
    aas_token: Optional[str] = Field(None, description="Google Play AAS token")
    oauth_token: Optional[str] = Field(None, description="Google Play OAuth token")
    accept_tos: bool = Field(default=False)

    @property
    def app_id(self) -> str:
        if self.version:
            return f"{self.package_name}@{self.version}"
        return self.package_name


class StoredReport(BaseModel):
    """One report directory under the reports root"""
    id: str = Field(..., description="Report directory name")
    apk: str = Field(default="", description="Original package file name")
    file_type: str = Field(default="Unknown", description="APK, XAPK, IPA or Unknown")
    created_at: datetime = Field(..., description="Directory modification time")
    mitm_enabled: bool = Field(default=False)
    patched_apk: Optional[str] = Field(None)
    has_json: bool = Field(default=False, description="results.json present")
    has_html: bool = Field(default=False, description="security-report.html present")
