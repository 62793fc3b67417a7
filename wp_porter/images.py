"""Image downloading, validation and manifest writing."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import unquote, urlparse

import requests
from filetype import guess

from .config import MigrationConfig
from .errors import AssetError
from .image_scan import DEFAULT_EXCLUDED_CONTAINERS, collect_references
from .models import AssetFailure, AssetManifest, ImageAsset, ImageReference
from .reporting import RunReporter, resolve_reporter
from .retry import Outcome, retry_async
from .tools import ToolCapabilities, convert_avif_to_jpeg, embed_alt_text
from .utils import article_slug, read_json, write_json

logger = logging.getLogger("wp_porter")

MANIFEST_NAME = "image-mapping.json"
MAX_IMAGE_BYTES = 25 * 1024 * 1024
ERROR_PAGE_BYTES = 100
ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".ico", ".bmp", ".avif"}
CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/avif": ".avif",
    "image/avif-sequence": ".avif",
    "image/svg+xml": ".svg",
    "image/bmp": ".bmp",
    "image/x-icon": ".ico",
    "image/vnd.microsoft.icon": ".ico",
}
ACCEPT_HEADER = "image/avif,image/webp,image/apng,image/svg+xml,image/*,*/*;q=0.8"
_TOKEN_PATTERN = re.compile(r"[^a-z0-9._-]")


def detect_image_format(data: bytes) -> Optional[str]:
    """Detect image type using filetype; returns lowercase extension."""
    kind = guess(data)
    if kind and kind.mime.startswith("image/"):
        ext = kind.extension.lower()
        if ext == "jpeg":
            return "jpg"
        return ext
    return None


def extension_for_content_type(content_type: Optional[str]) -> Optional[str]:
    if not content_type:
        return None
    mime = content_type.split(";")[0].strip().lower()
    return CONTENT_TYPE_EXTENSIONS.get(mime)


def image_filename(url: str, source_key: str, index: int, convert_avif: bool = True) -> str:
    """Deterministic ``{articleSlug}_{token}{ext}`` name for an image URL."""
    name = unquote(Path(urlparse(url).path).name).lower()
    stem, dot, ext = name.rpartition(".")
    if not dot:
        stem, ext = name, ""
    extension = f".{ext}" if ext else ""
    if extension == ".jpeg":
        extension = ".jpg"
    if extension not in ALLOWED_EXTENSIONS:
        extension = ".jpg"
    if extension == ".avif" and convert_avif:
        extension = ".jpg"
    token = _TOKEN_PATTERN.sub("_", stem)
    token = re.sub(r"_{2,}", "_", token).strip("_")[:50]
    if not token:
        token = f"image_{index}"
    return f"{article_slug(source_key)}_{token}{extension}"


def looks_like_error_page(data: bytes) -> Optional[str]:
    """Why a payload is not an image (empty, error text, HTML), or None."""
    if not data:
        return "Empty response (0 bytes)"
    head = data[:512].lstrip().lower()
    if len(data) < ERROR_PAGE_BYTES and any(
        marker in data for marker in (b"error", b"Error", b"404", b"<html")
    ):
        return f"Error page instead of image ({len(data)} bytes)"
    if head.startswith((b"<!doctype html", b"<html")) and detect_image_format(data) is None:
        return "HTML document instead of image"
    return None


class ImageDownloader:
    """Downloads kept image references in fixed-size concurrent batches."""

    def __init__(
        self,
        config: MigrationConfig,
        capabilities: Optional[ToolCapabilities] = None,
        session: Optional[requests.Session] = None,
        reporter: Optional[RunReporter] = None,
    ) -> None:
        self.config = config
        self._capabilities = capabilities
        self.session = session or requests.Session()
        self.reporter = resolve_reporter(reporter)
        self.attempted: Dict[str, int] = {}

    @property
    def capabilities(self) -> ToolCapabilities:
        if self._capabilities is None:
            self._capabilities = ToolCapabilities.detect()
        return self._capabilities

    def _headers(self, reference: ImageReference) -> Dict[str, str]:
        parsed = urlparse(reference.origin_url)
        return {
            "User-Agent": self.config.user_agent,
            "Accept": ACCEPT_HEADER,
            "Accept-Language": "en-US,en;q=0.9",
            "Referer": f"{parsed.scheme}://{parsed.netloc}/",
            "Cache-Control": "no-cache",
        }

    def _existing(self, filename: str) -> Optional[Path]:
        """Previously downloaded file for this name, allowing for a renamed extension."""
        candidate = self.config.image_dir / filename
        if candidate.exists():
            return candidate
        for extension in sorted(ALLOWED_EXTENSIONS):
            renamed = candidate.with_suffix(extension)
            if renamed.exists():
                return renamed
        return None

    def _fetch(self, reference: ImageReference, filename: str) -> Outcome[Path]:
        """Blocking download of one image; failures come back as AssetError."""
        self.attempted[reference.normalized_url] = self.attempted.get(reference.normalized_url, 0) + 1
        url = reference.origin_url
        try:
            resp = self.session.get(url, headers=self._headers(reference), timeout=self.config.asset_timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            return Outcome.failure(AssetError("Failed to fetch image", url=url, cause=exc))

        data = resp.content
        problem = looks_like_error_page(data)
        if problem:
            return Outcome.failure(AssetError(problem, url=url))
        if len(data) > MAX_IMAGE_BYTES:
            return Outcome.failure(AssetError(f"Image larger than {MAX_IMAGE_BYTES} bytes", url=url))

        destination = self.config.image_dir / filename
        declared = extension_for_content_type(resp.headers.get("Content-Type"))
        if declared and declared != destination.suffix.lower():
            if not (declared == ".avif" and self.config.convert_avif and destination.suffix == ".jpg"):
                renamed = destination.with_suffix(declared)
                logger.debug("Renaming %s to %s to match Content-Type", destination.name, renamed.name)
                destination = renamed
        if destination.suffix == ".jpg" and detect_image_format(data) == "avif":
            destination = destination.with_suffix(".avif")

        try:
            destination.write_bytes(data)
        except OSError as exc:
            return Outcome.failure(AssetError("Failed to write image", url=url, filename=destination.name, cause=exc))
        return Outcome.success(destination)

    def _post_process(self, reference: ImageReference, path: Path) -> Tuple[Path, bool, bool]:
        converted = False
        if path.suffix.lower() == ".avif" and self.config.convert_avif:
            jpeg = convert_avif_to_jpeg(path, self.capabilities)
            if jpeg is not None:
                path, converted = jpeg, True
        embedded = embed_alt_text(path, reference.alt_text, self.capabilities)
        return path, converted, embedded

    async def _process(self, reference: ImageReference, index: int) -> Outcome[ImageAsset]:
        filename = image_filename(
            reference.origin_url, reference.source_key, index, self.config.convert_avif
        )
        slug = article_slug(reference.source_key)
        existing = self._existing(filename)
        if existing is not None:
            logger.debug("Image %s already downloaded as %s", reference.normalized_url, filename)
            return Outcome.success(
                ImageAsset(
                    normalized_url=reference.normalized_url,
                    origin_url=reference.origin_url,
                    local_filename=existing.name,
                    article_slug=slug,
                    source_key=reference.source_key,
                    byte_size=existing.stat().st_size,
                    format=existing.suffix.lstrip(".").lower(),
                    alt_text=reference.alt_text,
                    skipped=True,
                )
            )

        outcome = await retry_async(
            lambda: asyncio.to_thread(self._fetch, reference, filename),
            attempts=self.config.asset_attempts,
            base_delay=self.config.retry_base_delay,
            label=f"Downloading {reference.origin_url}",
        )
        if not outcome.ok:
            return Outcome.failure(outcome.error).with_attempts(outcome.attempts)

        path, converted, embedded = await asyncio.to_thread(self._post_process, reference, outcome.value)
        return Outcome.success(
            ImageAsset(
                normalized_url=reference.normalized_url,
                origin_url=reference.origin_url,
                local_filename=path.name,
                article_slug=slug,
                source_key=reference.source_key,
                byte_size=path.stat().st_size,
                format=path.suffix.lstrip(".").lower(),
                alt_text=reference.alt_text,
                metadata_embedded=embedded,
                format_converted=converted,
            )
        )

    async def download_all(self, references: List[ImageReference]) -> AssetManifest:
        """Download references batch by batch; one batch at a time."""
        self.config.image_dir.mkdir(parents=True, exist_ok=True)
        manifest = AssetManifest(timestamp=datetime.now().isoformat())
        batch_size = max(1, self.config.asset_concurrency)
        start = time.perf_counter()
        if references:
            # Detect tools before any worker thread needs the result.
            logger.debug("Post-processing with %s", self.capabilities)
        for offset in range(0, len(references), batch_size):
            batch = references[offset : offset + batch_size]
            outcomes = await asyncio.gather(
                *(
                    self._process(reference, offset + position + 1)
                    for position, reference in enumerate(batch)
                )
            )
            for reference, outcome in zip(batch, outcomes):
                if outcome.ok:
                    manifest.images.append(outcome.value)
                    continue
                error = outcome.error
                message = error.describe() if isinstance(error, AssetError) else str(error)
                logger.warning("Failed to download image %s: %s", reference.origin_url, message)
                manifest.errors.append(AssetFailure(url=reference.origin_url, error=message))
            done = min(offset + batch_size, len(references))
            self.reporter.progress(
                "images",
                100.0 * done / len(references),
                processed=done,
                total=len(references),
                successful=len(manifest.images),
                failed=len(manifest.errors),
            )
        manifest.duration = time.perf_counter() - start
        return manifest


def iter_captures(capture_dir: Path) -> Iterable[Tuple[str, str]]:
    """``(source_key, html)`` for captured pages in filename order."""
    for path in sorted(capture_dir.glob("*.html")):
        yield path.stem, path.read_text(encoding="utf-8")


def write_manifest(config: MigrationConfig, manifest: AssetManifest) -> Path:
    path = config.image_dir / MANIFEST_NAME
    write_json(path, manifest.to_dict())
    logger.info(
        "Saved image manifest to %s (%d downloaded, %d failed)",
        path,
        len(manifest.images),
        len(manifest.errors),
    )
    return path


def load_manifest(config: MigrationConfig) -> AssetManifest:
    path = config.image_dir / MANIFEST_NAME
    if not path.exists():
        return AssetManifest()
    return AssetManifest.from_dict(read_json(path))


async def run_images(
    config: MigrationConfig,
    reporter: Optional[RunReporter] = None,
    capabilities: Optional[ToolCapabilities] = None,
    session: Optional[requests.Session] = None,
) -> AssetManifest:
    """Scan the capture directory, download kept images and write the manifest."""
    excluded = [*DEFAULT_EXCLUDED_CONTAINERS, *config.site.excluded_image_containers]
    scan = collect_references(iter_captures(config.capture_dir), excluded)
    logger.info(
        "Found %d unique images (%d dropped, %d duplicates)",
        len(scan.kept),
        len(scan.dropped),
        scan.duplicates,
    )
    downloader = ImageDownloader(config, capabilities=capabilities, session=session, reporter=reporter)
    manifest = await downloader.download_all(scan.kept)
    manifest.dropped = scan.dropped
    write_manifest(config, manifest)
    return manifest
