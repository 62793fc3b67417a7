"""End-to-end tests for the pipeline with the browser stubbed out."""

from __future__ import annotations

import csv
from datetime import datetime

import pytest

from wp_porter.errors import ExportError, FetchError
from wp_porter.fetcher import Fetcher
from wp_porter.models import CapturedDocument, ScrapeTarget
from wp_porter.pipeline import reset_outputs, run_pipeline
from wp_porter.utils import source_key_from_url

PAGES = {
    "https://www.example.com/about-us/": (
        "<h1>About Us</h1><p>About us: our story began in 1970. Contact us to learn more "
        "about our family-owned team.</p>"
    ),
    "https://www.example.com/blog/best-2026-suv/": (
        "<h1>Best 2026 SUV</h1><p>The 2026 lineup brings more cargo room.</p>"
        "<h2>Customer Testimonials</h2><p>Loved it!</p>"
    ),
}


class FakeFetcher(Fetcher):
    """Fetcher that serves canned HTML instead of driving a browser."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return None

    async def capture(self, target):
        html = PAGES.get(target.url)
        if html is None:
            raise FetchError("HTTP 404: Not Found", url=target.url)
        return CapturedDocument(
            source_key=source_key_from_url(target.url),
            raw_html=html,
            captured_at=datetime.now(),
            http_status=200,
            url=target.url,
            selector="main",
        )


class RecordingReporter:
    def __init__(self):
        self.steps = []
        self.logs = []

    def progress(self, step, percent, **counters):
        self.steps.append(step)

    def log(self, level, stage, message, context=None):
        self.logs.append((level, stage, message))


class BrokenReporter:
    def progress(self, step, percent, **counters):
        raise RuntimeError("tracker offline")

    def log(self, level, stage, message, context=None):
        raise RuntimeError("tracker offline")


@pytest.fixture
def offline_config(config):
    """Configuration with image downloads disabled."""
    config.images_enabled = False
    return config


def _targets(*urls):
    return [ScrapeTarget(url) for url in urls]


class TestRunPipeline:
    """Tests for run_pipeline."""

    @pytest.mark.asyncio
    async def test_partial_run_exports_captured_pages(self, offline_config):
        """Test that a failed URL leaves the rest of the run intact."""
        targets = _targets(*PAGES, "https://www.example.com/missing/")
        reporter = RecordingReporter()
        result = await run_pipeline(targets, offline_config, reporter, fetcher_factory=FakeFetcher)

        assert result.status == "partial"
        assert result.fetch.failed == 1
        assert result.assets is None
        assert len(result.export.records) == 2

        with result.export.output_path.open(encoding="utf-8", newline="") as handle:
            rows = {row["post_name"]: row for row in csv.DictReader(handle)}
        assert rows["about-us"]["post_type"] == "page"
        assert rows["best-2026-suv"]["post_type"] == "post"
        assert "Loved it" not in rows["best-2026-suv"]["post_content"]
        assert "<h1>" not in rows["best-2026-suv"]["post_content"]

        for step in ("fetch", "sanitize", "export", "complete"):
            assert step in reporter.steps
        assert ("error", "fetch", "Failed to capture https://www.example.com/missing/") in reporter.logs

    @pytest.mark.asyncio
    async def test_successful_run(self, offline_config):
        """Test the success status when every URL is captured."""
        result = await run_pipeline(_targets(*PAGES), offline_config, fetcher_factory=FakeFetcher)
        assert result.status == "success"
        assert result.failed_items == 0

    @pytest.mark.asyncio
    async def test_failing_reporter_does_not_break_run(self, offline_config):
        """Test that tracker errors are contained."""
        result = await run_pipeline(_targets(*PAGES), offline_config, BrokenReporter(), fetcher_factory=FakeFetcher)
        assert len(result.export.records) == 2

    @pytest.mark.asyncio
    async def test_nothing_captured_raises(self, offline_config):
        """Test that an empty export aborts the run."""
        with pytest.raises(ExportError):
            await run_pipeline(
                _targets("https://www.example.com/missing/"), offline_config, fetcher_factory=FakeFetcher
            )

    @pytest.mark.asyncio
    async def test_fresh_run_clears_previous_outputs(self, offline_config):
        """Test that stale cleaned documents do not leak into a new run."""
        offline_config.ensure_dirs()
        stale = offline_config.clean_dir / "www.example.com_old-page.html"
        stale.write_text("<p>Old</p>", encoding="utf-8")
        result = await run_pipeline(_targets(*PAGES), offline_config, fetcher_factory=FakeFetcher)
        assert not stale.exists()
        assert len(result.export.records) == 2


def test_reset_outputs_keeps_images(config):
    """Test that downloaded images survive a reset."""
    image = config.image_dir / "best-2026-suv_front.jpg"
    image.write_bytes(b"jpg")
    capture = config.capture_dir / "www.example.com_a.html"
    capture.write_text("<p>a</p>", encoding="utf-8")
    reset_outputs(config)
    assert image.exists()
    assert not capture.exists()
