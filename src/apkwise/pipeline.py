"""
Scan-and-analyze pipeline.

resolve (cache) -> scan + analyzers (concurrently) -> aggregate -> export -> notify
"""

# Copyright (c) 2026 Apkwise
#
# Licensed under the MIT License. See the LICENSE file for details.

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Union

from .aggregator import ResultAggregator
from .analyzers import AnalyzerRegistry, TaskHijackingAnalyzer, default_registry
from .cache import DecompilationCache
from .config import ApkwiseConfig
from .exceptions import ApkwiseError, ExportError, NotificationError, ValidationError
from .exporters import HTML_REPORT_FILENAME, JsonExporter, WebhookNotifier
from .models import DecompiledTree, Report
from .patterns import PatternRegistry
from .scanner import ScanEngine
from .tools import JadxDecompiler

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


@dataclass
class PipelineResult:
    """
    Outcome of one invocation.

    ``report`` is set whenever analysis finished, ``error`` whenever a step
    failed. Both are set when analysis succeeded but the export did not.
    """
    report: Optional[Report] = None
    error: Optional[ApkwiseError] = None
    output_dir: Optional[Path] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Pipeline:
    """
    Wires cache, pattern scan, analyzers, aggregation and export together.

    Collaborators default to what ``config`` describes; tests pass their own.
    """

    def __init__(
        self,
        config: Optional[ApkwiseConfig] = None,
        cache: Optional[DecompilationCache] = None,
        patterns: Optional[PatternRegistry] = None,
        registry: Optional[AnalyzerRegistry] = None,
    ):
        self.config = config or ApkwiseConfig()

        if cache is None:
            decompiler = JadxDecompiler(binary=self.config.decompiler.binary)
            cache = DecompilationCache(self.config.cache.root, decompiler, self.config.decompiler.extra_args)
        self.cache = cache

        self.patterns = patterns if patterns is not None else PatternRegistry.load(self.config.scan.patterns_path)
        self.registry = registry if registry is not None else default_registry(self.config)

        self.engine = ScanEngine(
            self.patterns,
            workers=self.config.scan.workers,
            context_width=self.config.scan.context_width,
        )

    def resolve(self, package_path: Union[str, Path]) -> DecompiledTree:
        package_path = Path(package_path)
        if not package_path.is_file():
            raise ValidationError(f"APK file does not exist: {package_path}", path=str(package_path))

        tree = self.cache.resolve(package_path)
        if tree.partial:
            logger.warning(f"Analyzing partially decompiled output for {package_path.name}")
        return tree

    def analyze(
        self,
        package_path: Union[str, Path],
        progress: Optional[ProgressCallback] = None,
    ) -> Report:
        """
        Resolve, scan and aggregate one package; nothing is written.

        Raises:
            ValidationError: package missing
            DecompileError: decompilation produced no usable output
        """
        package_path = Path(package_path)
        notify = progress or (lambda message: None)

        notify("Decompiling APK...")
        tree = self.resolve(package_path)

        notify("Scanning for secrets and vulnerabilities...")
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="apkwise-pipeline") as executor:
            scan_future = executor.submit(self.engine.scan, tree)
            analyzers_future = executor.submit(self.registry.run, tree, package_path)
            scan_result = scan_future.result()
            analyzer_results = analyzers_future.result()

        notify("Aggregating results...")
        report = ResultAggregator(total_patterns=len(self.patterns)).aggregate(
            tree, scan_result, analyzer_results, subject=package_path.name
        )

        logger.info(f"✓ Analysis of {package_path.name} complete: {report.total_findings} findings")
        return report

    def publish(
        self,
        report: Report,
        output_dir: Optional[Union[str, Path]] = None,
        webhook_url: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> Optional[Path]:
        """
        Write results.json and deliver it to the webhook.

        Returns:
            Path of the written results file, None without an output directory

        Raises:
            ExportError: writing results.json failed
        """
        notify = progress or (lambda message: None)

        if output_dir is None:
            if webhook_url:
                logger.warning("Webhook configured but no output directory given, skipping notification")
            return None

        output_dir = Path(output_dir)
        notify("Writing report...")
        json_path = JsonExporter().export(report, output_dir)

        if webhook_url:
            notify("Sending results to webhook...")
            notifier = WebhookNotifier(webhook_url, timeout=self.config.reports.webhook_timeout)
            try:
                notifier.notify(json_path, output_dir / HTML_REPORT_FILENAME, report.subject or "")
            except NotificationError as e:
                logger.warning(f"Failed to send results to webhook: {e}")

        return json_path

    def run(
        self,
        package_path: Union[str, Path],
        output_dir: Optional[Union[str, Path]] = None,
        webhook_url: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> Report:
        """
        Analyze one package and publish the report.

        Raises:
            ValidationError: package missing
            DecompileError: decompilation produced no usable output
            ExportError: writing results.json failed
        """
        report = self.analyze(package_path, progress=progress)
        self.publish(report, output_dir=output_dir, webhook_url=webhook_url, progress=progress)
        return report

    def execute(
        self,
        package_path: Union[str, Path],
        output_dir: Optional[Union[str, Path]] = None,
        webhook_url: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> PipelineResult:
        """
        Like ``run`` but returns domain errors instead of raising them.

        A failed export keeps the finished report on the result.
        """
        output_path = Path(output_dir) if output_dir is not None else None
        try:
            report = self.analyze(package_path, progress=progress)
        except ApkwiseError as e:
            logger.error(f"Analysis of {Path(package_path).name} failed: {e}")
            return PipelineResult(error=e, output_dir=output_path)

        try:
            self.publish(report, output_dir=output_path, webhook_url=webhook_url, progress=progress)
        except ExportError as e:
            logger.error(f"Export of {Path(package_path).name} failed: {e}")
            return PipelineResult(report=report, error=e, output_dir=output_path)

        return PipelineResult(report=report, output_dir=output_path)

    def hijack_only(self, package_path: Union[str, Path]) -> List[str]:
        """Task hijacking check alone; an explicit message when nothing is found."""
        tree = self.resolve(package_path)
        findings = TaskHijackingAnalyzer().analyze(tree)
        if not findings:
            return [TaskHijackingAnalyzer.NONE_FOUND]
        return findings + [TaskHijackingAnalyzer.summary_line(len(findings))]
