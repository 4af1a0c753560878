"""
Configuration management for Apkwise.

Settings are plain pydantic models loaded from YAML, with environment
variables supplying defaults for the values that differ per deployment.
"""
# Copyright (c) 2026 Apkwise
#
# Licensed under the MIT License. See the LICENSE file for details.


from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from .exceptions import ConfigError

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _default_cache_root() -> Path:
    env = os.getenv("APKWISE_CACHE_DIR")
    if env:
        return Path(env)
    return Path.home() / ".apkwise" / "cache"


def _default_reports_root() -> Path:
    return Path(os.getenv("APKWISE_REPORTS_DIR", "apkwise-reports"))


def _default_webhook() -> Optional[str]:
    return os.getenv("APKWISE_WEBHOOK") or os.getenv("DISCORD_WEBHOOK") or None


class CacheConfig(BaseModel):
    """Decompilation cache location."""

    root: Path = Field(default_factory=_default_cache_root)


class ScanConfig(BaseModel):
    """Pattern scan settings."""

    patterns_path: Optional[Path] = None
    workers: int = Field(default=10, ge=1, le=64)
    context_width: int = Field(default=100, ge=0)


class DecompilerConfig(BaseModel):
    """External decompiler invocation."""

    binary: str = "jadx"
    extra_args: List[str] = Field(default_factory=list)


class DownloaderConfig(BaseModel):
    """External package downloader invocation."""

    binary: str = "apkeep"
    output_dir: Path = Path("downloads")
    source: str = "apk-pure"
    sleep_ms: int = Field(default=1000, ge=0)
    parallel: int = Field(default=1, ge=1)


class PatcherConfig(BaseModel):
    """External traffic-interception patcher invocation."""

    binary: str = "apk-mitm"
    output_dir: Path = Path("downloads")


class ReportsConfig(BaseModel):
    """Report output and delivery."""

    root: Path = Field(default_factory=_default_reports_root)
    webhook_url: Optional[str] = Field(default_factory=_default_webhook)
    webhook_timeout: float = Field(default=30.0, gt=0)


class AnalyzersConfig(BaseModel):
    """Optional analyzers."""

    janus_scan: bool = False


class ApkwiseConfig(BaseModel):
    """Complete Apkwise configuration."""

    cache: CacheConfig = Field(default_factory=CacheConfig)
    scan: ScanConfig = Field(default_factory=ScanConfig)
    decompiler: DecompilerConfig = Field(default_factory=DecompilerConfig)
    downloader: DownloaderConfig = Field(default_factory=DownloaderConfig)
    patcher: PatcherConfig = Field(default_factory=PatcherConfig)
    reports: ReportsConfig = Field(default_factory=ReportsConfig)
    analyzers: AnalyzersConfig = Field(default_factory=AnalyzersConfig)

    @classmethod
    def from_file(cls, config_path: Path) -> "ApkwiseConfig":
        """Load configuration from YAML file. A missing file yields defaults."""
        config_path = Path(config_path)
        if not config_path.exists():
            return cls()

        try:
            with open(config_path, "r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(
                f"Failed to load config from {config_path}", original_exception=exc
            ) from exc

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {config_path} must contain a mapping")

        try:
            return cls(**data)
        except PydanticValidationError as exc:
            raise ConfigError(
                f"Invalid configuration in {config_path}", original_exception=exc
            ) from exc

    def save_to_file(self, config_path: Path) -> None:
        """Save configuration to YAML file."""
        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as fh:
            yaml.dump(
                self.model_dump(mode="json"),
                fh,
                default_flow_style=False,
                sort_keys=False,
            )


def configure_logging(level: Optional[str] = None) -> None:
    """Configure process-wide logging for CLI and service entry points."""
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
        format=LOG_FORMAT,
    )
