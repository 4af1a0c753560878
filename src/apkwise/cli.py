"""
Apkwise CLI - static security triage of Android packages.
"""
# Copyright (c) 2026 Apkwise
#
# Licensed under the MIT License. See the LICENSE file for details.


from pathlib import Path
from typing import List, Optional

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .aggregator import risk_bucket
from .config import ApkwiseConfig, configure_logging
from .exceptions import ApkwiseError
from .exporters import RESULTS_FILENAME, ReportStore
from .models import DownloadRequest, Report
from .patterns import PatternRegistry
from .pipeline import Pipeline
from .tools import ApkeepDownloader

console = Console()
app = typer.Typer(help="Static security triage of Android packages", no_args_is_help=True)

RISK_STYLES = {"high": "bold red", "medium": "yellow", "low": "green"}


def _load_config(config_file: Optional[Path]) -> ApkwiseConfig:
    if config_file is None:
        return ApkwiseConfig()
    return ApkwiseConfig.from_file(config_file)


def _fail(error: ApkwiseError) -> None:
    console.print(f"❌ {error.get_summary()}", style="red")
    for fix in error.context.suggested_fixes:
        console.print(f"   💡 {fix}", style="dim")
    raise typer.Exit(1)


def _print_report(report: Report, output_dir: Optional[Path]) -> None:
    table = Table(box=box.ROUNDED)
    table.add_column("Category", style="bold cyan")
    table.add_column("Findings", justify="right")
    table.add_column("Risk", justify="center")

    for name, category in sorted(report.categories.items()):
        bucket = risk_bucket(name)
        table.add_row(name, str(category.count), f"[{RISK_STYLES[bucket]}]{bucket}[/]")

    summary = report.summary
    info = Table(show_header=False, box=box.SIMPLE)
    info.add_column("Property", style="bold cyan")
    info.add_column("Value")
    info.add_row("APK", report.subject or "-")
    info.add_row("Package", report.package_name or "-")
    info.add_row("Version", report.version_name or "-")
    info.add_row("Files scanned", str(summary.total_files_scanned))
    info.add_row("Patterns loaded", str(summary.total_patterns))
    info.add_row("Total findings", str(summary.vulnerability_count))
    info.add_row(
        "Risk (high/medium/low)",
        f"{summary.risk_breakdown.high} / {summary.risk_breakdown.medium} / {summary.risk_breakdown.low}",
    )

    console.print(Panel.fit(info, title="📱 Analysis Summary", box=box.ROUNDED))
    if report.categories:
        console.print(table)
    else:
        console.print("✅ No findings", style="green")

    if output_dir is not None:
        console.print(f"\n📄 Detailed results saved to: [bold green]{output_dir / RESULTS_FILENAME}[/bold green]")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level (default: $LOG_LEVEL or INFO)"),
):
    configure_logging(log_level)


@app.command("scan")
def scan(
    apks: List[Path] = typer.Argument(..., help="APK files to analyze"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Directory for results.json"),
    patterns: Optional[Path] = typer.Option(None, "--patterns", "-p", help="Custom patterns YAML file"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", min=1, max=64, help="Scan worker threads"),
    webhook: Optional[str] = typer.Option(None, "--webhook", help="Webhook URL for results"),
    janus: bool = typer.Option(False, "--janus", help="Enable the Janus (CVE-2017-13156) check"),
    hijack_only: bool = typer.Option(False, "--hijack-only", help="Only run the task hijacking check"),
    config_file: Optional[Path] = typer.Option(None, "--config", help="Configuration YAML file"),
):
    """
    🔍 Decompile and analyze one or more APKs
    """
    try:
        config = _load_config(config_file)
        if patterns is not None:
            config.scan.patterns_path = patterns
        if workers is not None:
            config.scan.workers = workers
        if janus:
            config.analyzers.janus_scan = True
        webhook = webhook or config.reports.webhook_url

        pipeline = Pipeline(config)
    except ApkwiseError as e:
        _fail(e)

    failed = False
    for apk in apks:
        console.print(f"\n🔧 [bold]Analyzing {apk.name}[/bold]")

        if hijack_only:
            try:
                for finding in pipeline.hijack_only(apk):
                    console.print(finding)
            except ApkwiseError as e:
                console.print(f"❌ {e.get_summary()}", style="red")
                failed = True
            continue

        if output is None:
            output_dir = config.reports.root / apk.stem
        elif len(apks) > 1:
            output_dir = output / apk.stem
        else:
            output_dir = output

        result = pipeline.execute(apk, output_dir=output_dir, webhook_url=webhook)
        if result.report is not None:
            _print_report(result.report, result.output_dir if result.ok else None)
        if not result.ok:
            console.print(f"❌ {result.error.get_summary()}", style="red")
            failed = True

    if failed:
        raise typer.Exit(1)


@app.command("download")
def download(
    package: str = typer.Argument(..., help="Package name, e.g. com.example.app"),
    version: Optional[str] = typer.Option(None, "--version", "-v", help="Package version"),
    source: Optional[str] = typer.Option(None, "--source", "-s", help="apk-pure, google-play, f-droid, huawei-app-gallery"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Download directory"),
    config_file: Optional[Path] = typer.Option(None, "--config", help="Configuration YAML file"),
):
    """
    📥 Download an APK with apkeep
    """
    try:
        config = _load_config(config_file)
        settings = config.downloader
        downloader = ApkeepDownloader(
            output or settings.output_dir,
            binary=settings.binary,
            sleep_ms=settings.sleep_ms,
            parallel=settings.parallel,
        )
        request = DownloadRequest(package_name=package, version=version, source=source or settings.source)
        path = downloader.download(request)
    except ApkwiseError as e:
        _fail(e)

    console.print(f"✅ Downloaded: [bold green]{path}[/bold green]")


@app.command("patterns")
def list_patterns(
    patterns_file: Optional[Path] = typer.Argument(None, help="Patterns YAML file (default: bundled set)"),
):
    """
    📋 Validate a patterns file and list its patterns
    """
    try:
        registry = PatternRegistry.load(patterns_file)
    except ApkwiseError as e:
        _fail(e)

    table = Table(box=box.ROUNDED)
    table.add_column("Name", style="bold cyan")
    table.add_column("Confidence", justify="center")
    table.add_column("Regexes", justify="right")

    for group in registry.values():
        pattern = group.to_pattern()
        table.add_row(pattern.name, pattern.confidence.value, str(len(pattern.regex_group)))

    console.print(f"\n🔧 [bold]Patterns ({len(registry)})[/bold]\n")
    console.print(table)


@app.command("reports")
def list_reports(
    delete: Optional[str] = typer.Option(None, "--delete", help="Delete the report with this id"),
    root: Optional[Path] = typer.Option(None, "--root", help="Reports directory (default: reports.root)"),
    config_file: Optional[Path] = typer.Option(None, "--config", help="Configuration YAML file"),
):
    """
    📂 List stored reports, or delete one
    """
    try:
        store = ReportStore(root or _load_config(config_file).reports.root)
        if delete is not None:
            if not store.delete(delete):
                console.print(f"❌ Report not found: {delete}", style="red")
                raise typer.Exit(1)
            console.print(f"✅ Deleted report {delete}")
            return
        reports = store.list()
    except ApkwiseError as e:
        _fail(e)

    if not reports:
        console.print("📭 No stored reports", style="dim")
        return

    table = Table(box=box.ROUNDED)
    table.add_column("ID", style="bold cyan", no_wrap=True)
    table.add_column("APK")
    table.add_column("Type", justify="center")
    table.add_column("Created")
    table.add_column("JSON", justify="center")
    table.add_column("HTML", justify="center")

    for stored in reports:
        table.add_row(
            stored.id,
            stored.apk or "-",
            stored.file_type,
            stored.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            "✓" if stored.has_json else "-",
            "✓" if stored.has_html else "-",
        )

    console.print(f"\n📂 [bold]Reports ({len(reports)})[/bold]\n")
    console.print(table)


@app.command("version")
def show_version():
    """
    Show the Apkwise version
    """
    console.print(f"apkwise {__version__}")


if __name__ == "__main__":
    app()
