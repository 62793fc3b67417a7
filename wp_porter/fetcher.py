"""Browser-driven capture of each target's primary content region."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlparse

from playwright.async_api import (
    Browser,
    Error as PlaywrightError,
    Playwright,
    Route,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from .config import MigrationConfig
from .content import build_selector_chain, find_content_region, strip_volatile_markup
from .errors import FetchError
from .models import CapturedDocument, ContentKind, FetchFailure, FetchSummary, ScrapeTarget
from .reporting import RunReporter, resolve_reporter
from .retry import Outcome, retry_async
from .targets import content_type_mapping
from .utils import read_json, source_key_from_url, write_json

logger = logging.getLogger("wp_porter")

CAPTURE_INDEX = "capture-index.json"
BLOCKED_RESOURCE_TYPES = {"image", "font", "media", "manifest", "other"}
VIEWPORT = {"width": 1920, "height": 1080}


async def _block_heavy_resources(route: Route) -> None:
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


class Fetcher:
    """Renders targets one at a time in a shared headless browser."""

    def __init__(self, config: MigrationConfig, reporter: Optional[RunReporter] = None) -> None:
        self.config = config
        self.reporter = resolve_reporter(reporter)
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    async def __aenter__(self) -> "Fetcher":
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.config.headless,
            args=["--no-sandbox", "--disable-dev-shm-usage"],
        )
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def render(self, url: str) -> Tuple[str, int]:
        """Navigate in a fresh context and return ``(html, status)``."""
        if self._browser is None:
            raise RuntimeError("Fetcher must be entered before rendering pages")
        context = await self._browser.new_context(
            viewport=VIEWPORT,
            user_agent=self.config.user_agent,
            ignore_https_errors=True,
            bypass_csp=True,
        )
        try:
            page = await context.new_page()
            page.set_default_navigation_timeout(self.config.page_timeout * 1000)
            await page.route("**/*", _block_heavy_resources)
            logger.info("Loading %s", url)
            response = await page.goto(url, wait_until="domcontentloaded")
            if response is None:
                raise FetchError("No response received", url=url)
            if response.status >= 400:
                raise FetchError(
                    f"HTTP {response.status}: {response.status_text}",
                    url=url,
                    status=response.status,
                )
            if self.config.settle_time:
                await page.wait_for_timeout(int(self.config.settle_time * 1000))
            html = await page.content()
            return html, response.status
        finally:
            await context.close()

    async def capture(self, target: ScrapeTarget) -> CapturedDocument:
        """Render a target and extract its content region; raises FetchError."""
        try:
            html, status = await self.render(target.url)
        except PlaywrightTimeoutError as exc:
            raise FetchError("Navigation timed out", url=target.url, cause=exc) from exc
        except PlaywrightError as exc:
            raise FetchError("Browser navigation failed", url=target.url, cause=exc) from exc

        selectors = build_selector_chain(target.explicit_kind, self.config.site)
        region = find_content_region(html, selectors, self.config.min_content_length)
        if region is None:
            raise FetchError("No meaningful content found", url=target.url)
        logger.debug("Matched %s on %s (%d chars of text)", region.selector, target.url, region.text_length)
        return CapturedDocument(
            source_key=source_key_from_url(target.url),
            raw_html=strip_volatile_markup(region.html),
            captured_at=datetime.now(),
            http_status=status,
            url=target.url,
            selector=region.selector,
        )

    async def _attempt(self, target: ScrapeTarget) -> Outcome[CapturedDocument]:
        try:
            return Outcome.success(await self.capture(target))
        except FetchError as exc:
            return Outcome.failure(exc)

    def _save(self, document: CapturedDocument) -> None:
        path = self.config.capture_dir / document.filename
        try:
            path.write_text(document.raw_html, encoding="utf-8")
        except OSError as exc:
            raise FetchError("Could not write capture", url=document.url, filename=path.name, cause=exc) from exc
        logger.info("Saved capture to %s", path)

    async def fetch_all(self, targets: List[ScrapeTarget]) -> FetchSummary:
        """Capture every target sequentially; failures never stop the batch."""
        self.config.capture_dir.mkdir(parents=True, exist_ok=True)
        summary = FetchSummary(total=len(targets))
        for index, target in enumerate(targets, start=1):
            self.reporter.progress(
                "fetch",
                100.0 * (index - 1) / max(1, len(targets)),
                current=index,
                total=len(targets),
                successful=summary.successful,
                failed=summary.failed,
            )
            outcome = await retry_async(
                lambda target=target: self._attempt(target),
                attempts=self.config.fetch_attempts,
                base_delay=self.config.retry_base_delay,
                label=f"Fetching {target.url}",
            )
            if outcome.ok:
                try:
                    self._save(outcome.value)
                except FetchError as exc:
                    outcome = Outcome.failure(exc).with_attempts(outcome.attempts)
            if outcome.ok:
                summary.captured.append(outcome.value)
                continue
            error = outcome.error
            message = error.describe() if isinstance(error, FetchError) else str(error)
            logger.error("Failed to capture %s after %d attempt(s): %s", target.url, outcome.attempts, message)
            self.reporter.log("error", "fetch", f"Failed to capture {target.url}", {"error": message})
            summary.failures.append(FetchFailure(url=target.url, error=message, attempts=outcome.attempts))

        write_capture_index(self.config, targets, summary)
        self.reporter.progress(
            "fetch", 100.0, total=len(targets), successful=summary.successful, failed=summary.failed
        )
        return summary


def url_mapping(targets: Iterable[ScrapeTarget]) -> Dict[str, Dict[str, str]]:
    """Source key to original URL details, used later for slugs and classification."""
    mapping: Dict[str, Dict[str, str]] = {}
    for target in targets:
        parsed = urlparse(target.url)
        mapping[source_key_from_url(target.url)] = {
            "originalUrl": target.url,
            "originalPath": parsed.path or "/",
            "domain": parsed.netloc,
        }
    return mapping


def write_capture_index(
    config: MigrationConfig, targets: List[ScrapeTarget], summary: FetchSummary
) -> None:
    payload = {
        "timestamp": datetime.now().isoformat(),
        "totalUrls": summary.total,
        "successful": summary.successful,
        "failed": summary.failed,
        "results": [
            {
                "url": document.url,
                "filename": document.filename,
                "selector": document.selector,
                "status": document.http_status,
                "size": len(document.raw_html),
                "capturedAt": document.captured_at.isoformat(),
            }
            for document in summary.captured
        ],
        "errors": [
            {"url": failure.url, "error": failure.error, "attempts": failure.attempts}
            for failure in summary.failures
        ],
        "urlMappings": url_mapping(targets),
        "contentTypes": {key: kind.value for key, kind in content_type_mapping(targets).items()},
    }
    write_json(config.capture_dir / CAPTURE_INDEX, payload)


def load_capture_index(config: MigrationConfig) -> Dict[str, Any]:
    """Read the capture index written by the last fetch, or an empty one."""
    path = config.capture_dir / CAPTURE_INDEX
    if not path.exists():
        return {}
    return read_json(path)


def indexed_content_types(index: Dict[str, Any]) -> Dict[str, ContentKind]:
    """Explicit kinds recorded in a capture index, keyed by source key."""
    kinds = {key: ContentKind.parse(value) for key, value in index.get("contentTypes", {}).items()}
    return {key: kind for key, kind in kinds.items() if kind is not None}


async def run_fetch(
    targets: List[ScrapeTarget],
    config: MigrationConfig,
    reporter: Optional[RunReporter] = None,
) -> FetchSummary:
    """Open the browser, capture all targets, and close it again."""
    start = time.perf_counter()
    async with Fetcher(config, reporter) as fetcher:
        summary = await fetcher.fetch_all(targets)
    logger.info(
        "Captured %d/%d pages in %.2fs", summary.successful, summary.total, time.perf_counter() - start
    )
    return summary
