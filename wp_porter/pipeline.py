"""High-level orchestration of the four migration stages."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from .config import MigrationConfig
from .errors import ExportError
from .exporter import run_export
from .fetcher import Fetcher
from .images import run_images
from .models import AssetManifest, ExportSummary, FetchSummary, SanitizeSummary, ScrapeTarget
from .reporting import RunReporter, resolve_reporter
from .sanitizer import run_sanitize
from .tools import ToolCapabilities

logger = logging.getLogger("wp_porter")

FetcherFactory = Callable[[MigrationConfig, Optional[RunReporter]], Fetcher]


@dataclass
class RunResult:
    """Per-stage summaries of one run."""

    fetch: FetchSummary
    assets: Optional[AssetManifest]
    sanitize: SanitizeSummary
    export: ExportSummary
    elapsed: float = 0.0

    @property
    def failed_items(self) -> int:
        failures = self.fetch.failed
        if self.assets is not None:
            failures += len(self.assets.errors)
        failures += len(self.sanitize.failures)
        return failures

    @property
    def status(self) -> str:
        return "partial" if self.failed_items else "success"


def reset_outputs(config: MigrationConfig) -> None:
    """Empty the per-run directories; downloaded images are kept for re-runs."""
    for directory in (config.capture_dir, config.clean_dir, config.export_dir):
        if not directory.exists():
            continue
        for path in directory.iterdir():
            if path.is_file():
                path.unlink()
    config.ensure_dirs()


async def run_pipeline(
    targets: List[ScrapeTarget],
    config: MigrationConfig,
    reporter: Optional[RunReporter] = None,
    fetcher_factory: FetcherFactory = Fetcher,
    capabilities: Optional[ToolCapabilities] = None,
    fresh: bool = True,
) -> RunResult:
    """Fetch, download assets, sanitize and export; stages run strictly in order.

    Per-item failures are collected in the stage summaries. An ExportError
    (nothing to export) aborts the run and propagates to the caller.
    """
    tracker = resolve_reporter(reporter)
    start = time.perf_counter()
    if fresh:
        reset_outputs(config)
    else:
        config.ensure_dirs()

    tracker.progress("fetch", 0.0, total=len(targets))
    async with fetcher_factory(config, tracker) as fetcher:
        fetch_summary = await fetcher.fetch_all(targets)
    tracker.log(
        "info",
        "fetch",
        f"Captured {fetch_summary.successful}/{fetch_summary.total} pages",
        {"failed": [failure.url for failure in fetch_summary.failures]},
    )

    manifest: Optional[AssetManifest] = None
    if config.images_enabled:
        tracker.progress("images", 0.0)
        manifest = await run_images(config, tracker, capabilities=capabilities)
        tracker.log(
            "info",
            "images",
            f"Downloaded {len(manifest.images)} images, {len(manifest.errors)} failed",
            {"dropped": len(manifest.dropped)},
        )
    else:
        logger.info("Image downloads disabled; skipping asset stage")

    tracker.progress("sanitize", 0.0)
    sanitize_summary = run_sanitize(config, tracker, manifest=manifest)

    tracker.progress("export", 0.0, documents=len(sanitize_summary.documents))
    try:
        export_summary = run_export(config, tracker)
    except ExportError as exc:
        tracker.log("error", "export", exc.describe())
        raise

    result = RunResult(
        fetch=fetch_summary,
        assets=manifest,
        sanitize=sanitize_summary,
        export=export_summary,
        elapsed=time.perf_counter() - start,
    )
    tracker.progress(
        "complete",
        100.0,
        status=result.status,
        records=len(export_summary.records),
        failed=result.failed_items,
    )
    return result

