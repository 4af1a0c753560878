"""
Exceptions for Apkwise with rich context.

Each pipeline stage has its own error type so callers can tell fatal request
errors (validation, config, decompile) from the ones that are recovered
locally (partial decompilation, analyzer and notification failures).
"""
# Copyright (c) 2026 Apkwise
#
# Licensed under the MIT License. See the LICENSE file for details.


from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any, List


@dataclass
class ErrorContext:
    """Rich context information for errors."""
    subject: Optional[str] = None
    path: Optional[str] = None
    job_id: Optional[str] = None
    suggested_fixes: List[str] = None

    def __post_init__(self):
        if self.suggested_fixes is None:
            self.suggested_fixes = []

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)


class ApkwiseError(Exception):
    """Base exception for all Apkwise errors with rich context."""

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()
        self.original_exception = original_exception

    def get_summary(self) -> str:
        """Get a summary of the error with key details."""
        parts = [self.message]

        if self.original_exception is not None:
            parts.append(f"caused by {type(self.original_exception).__name__}: {self.original_exception}")

        return " | ".join(parts)

    def get_detailed_info(self) -> Dict[str, Any]:
        """Get detailed error information for rich display."""
        info = {
            "message": self.message,
            "type": self.__class__.__name__,
        }

        if self.context:
            info.update(self.context.to_dict())

        return info

    def __str__(self) -> str:
        return self.get_summary()


class ValidationError(ApkwiseError):
    """Subject or input is missing or unreadable."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        context: Optional[ErrorContext] = None
    ):
        if context is None:
            context = ErrorContext()
        if path is not None:
            context.path = path
        super().__init__(message, context)


class ToolNotFoundError(ValidationError):
    """An external binary required by a collaborator is not on PATH."""

    def __init__(self, tool: str, install_hint: Optional[str] = None):
        context = ErrorContext()
        if install_hint:
            context.suggested_fixes = [install_hint]
        super().__init__(f"{tool} not found in PATH", context=context)
        self.tool = tool


class ConfigError(ApkwiseError):
    """Pattern source or configuration file is unreadable, malformed or empty."""


class DecompileError(ApkwiseError):
    """The decompiler failed and left no usable partial output."""

    def __init__(
        self,
        message: str,
        exit_code: Optional[int] = None,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None
    ):
        if exit_code is not None:
            message = f"{message} (exit code: {exit_code})"
        super().__init__(message, context, original_exception)
        self.exit_code = exit_code


class PartialDecompile(ApkwiseError):
    """The decompiler reported failure but produced a usable source tree."""

    def __init__(self, output_dir: str, exit_code: int):
        super().__init__(
            f"Decompilation finished with exit code {exit_code}, continuing with partial output",
            ErrorContext(path=output_dir),
        )
        self.exit_code = exit_code


class AnalyzerError(ApkwiseError):
    """A single analyzer failed; its contribution is dropped from the report."""

    def __init__(
        self,
        analyzer: str,
        message: str,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(f"{analyzer}: {message}", original_exception=original_exception)
        self.analyzer = analyzer


class ExportError(ApkwiseError):
    """Writing a report to disk failed."""


class NotificationError(ApkwiseError):
    """Webhook delivery failed. Never propagated as a pipeline failure."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(message, original_exception=original_exception)
        self.status_code = status_code

    def get_summary(self) -> str:
        if self.status_code is not None:
            return f"HTTP {self.status_code}: {self.message}"
        return super().get_summary()


class DownloadError(ApkwiseError):
    """The package downloader failed or deposited no matching archive."""

    def __init__(self, package_name: str, message: str):
        super().__init__(
            f"Download failed for '{package_name}': {message}",
            ErrorContext(subject=package_name),
        )
        self.package_name = package_name


class PatchError(ApkwiseError):
    """The traffic-interception patcher failed or produced no archive."""
