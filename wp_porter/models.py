"""Data models used throughout the migration pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ContentKind(str, Enum):
    """Destination content type of a migrated document."""

    POST = "post"
    PAGE = "page"

    @classmethod
    def parse(cls, value: Any) -> Optional["ContentKind"]:
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class DiscoveryMethod(str, Enum):
    TAG = "tag"
    BACKGROUND = "background"
    MALFORMED_TAG = "malformed-tag"


@dataclass(frozen=True)
class ScrapeTarget:
    """A URL requested by the operator, optionally with an explicit kind."""

    url: str
    explicit_kind: Optional[ContentKind] = None


@dataclass
class CapturedDocument:
    """Raw content region captured from a rendered page."""

    source_key: str
    raw_html: str
    captured_at: datetime
    http_status: int
    url: str = ""
    selector: str = ""

    @property
    def filename(self) -> str:
        return f"{self.source_key}.html"


@dataclass
class FetchFailure:
    url: str
    error: str
    attempts: int = 1


@dataclass
class FetchSummary:
    """Outcome of capturing every target in a run."""

    total: int
    captured: List[CapturedDocument] = field(default_factory=list)
    failures: List[FetchFailure] = field(default_factory=list)

    @property
    def successful(self) -> int:
        return len(self.captured)

    @property
    def failed(self) -> int:
        return len(self.failures)


@dataclass
class ImageReference:
    """Image discovered in a captured document, with its filter decision."""

    origin_url: str
    normalized_url: str
    source_key: str
    alt_text: str = ""
    title: str = ""
    discovered_via: DiscoveryMethod = DiscoveryMethod.TAG
    drop_reason: Optional[str] = None

    @property
    def keep(self) -> bool:
        return self.drop_reason is None


@dataclass
class ImageAsset:
    """Downloaded and validated image asset stored on disk."""

    normalized_url: str
    origin_url: str
    local_filename: str
    article_slug: str
    source_key: str
    byte_size: int
    format: str
    alt_text: str = ""
    metadata_embedded: bool = False
    format_converted: bool = False
    skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "normalizedUrl": self.normalized_url,
            "originalUrl": self.origin_url,
            "localFilename": self.local_filename,
            "articleSlug": self.article_slug,
            "sourceFile": self.source_key,
            "size": self.byte_size,
            "format": self.format,
            "alt": self.alt_text,
            "metadataEmbedded": self.metadata_embedded,
            "formatConverted": self.format_converted,
            "skipped": self.skipped,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImageAsset":
        return cls(
            normalized_url=data["normalizedUrl"],
            origin_url=data.get("originalUrl", data["normalizedUrl"]),
            local_filename=data["localFilename"],
            article_slug=data.get("articleSlug", ""),
            source_key=data.get("sourceFile", ""),
            byte_size=int(data.get("size", 0)),
            format=data.get("format", ""),
            alt_text=data.get("alt", ""),
            metadata_embedded=bool(data.get("metadataEmbedded")),
            format_converted=bool(data.get("formatConverted")),
            skipped=bool(data.get("skipped")),
        )


@dataclass
class AssetFailure:
    url: str
    error: str


@dataclass
class AssetManifest:
    """Binding of normalized image URLs to local files for one run."""

    images: List[ImageAsset] = field(default_factory=list)
    errors: List[AssetFailure] = field(default_factory=list)
    dropped: List[ImageReference] = field(default_factory=list)
    duration: float = 0.0
    timestamp: str = ""

    def lookup(self, normalized_url: str) -> Optional[ImageAsset]:
        for asset in self.images:
            if asset.normalized_url == normalized_url:
                return asset
        return None

    @property
    def dropped_urls(self) -> List[str]:
        return [ref.normalized_url for ref in self.dropped]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "totalImages": len(self.images) + len(self.errors),
            "successful": len(self.images),
            "failed": len(self.errors),
            "duration": f"{self.duration:.1f}s",
            "images": [asset.to_dict() for asset in self.images],
            "errors": [{"url": err.url, "error": err.error} for err in self.errors],
            "dropped": [
                {"url": ref.normalized_url, "sourceFile": ref.source_key, "reason": ref.drop_reason}
                for ref in self.dropped
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AssetManifest":
        duration = str(data.get("duration", "0")).rstrip("s") or "0"
        return cls(
            images=[ImageAsset.from_dict(item) for item in data.get("images", [])],
            errors=[AssetFailure(item["url"], item.get("error", "")) for item in data.get("errors", [])],
            dropped=[
                ImageReference(
                    origin_url=item["url"],
                    normalized_url=item["url"],
                    source_key=item.get("sourceFile", ""),
                    drop_reason=item.get("reason") or "filtered",
                )
                for item in data.get("dropped", [])
            ],
            duration=float(duration),
            timestamp=data.get("timestamp", ""),
        )


@dataclass(frozen=True)
class ContentClassification:
    """Post/Page decision plus confidence and rationale."""

    kind: ContentKind
    confidence: int
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind.value, "confidence": self.confidence, "reason": self.reason}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContentClassification":
        return cls(
            kind=ContentKind.parse(data.get("type")) or ContentKind.POST,
            confidence=int(data.get("confidence", 0)),
            reason=data.get("reason", ""),
        )


@dataclass
class SanitizedDocument:
    source_key: str
    clean_html: str
    classification: ContentClassification
    removed_element_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def total_removed(self) -> int:
        return sum(self.removed_element_counts.values())


@dataclass
class SanitizeFailure:
    filename: str
    error: str


@dataclass
class SanitizeSummary:
    documents: List[SanitizedDocument] = field(default_factory=list)
    failures: List[SanitizeFailure] = field(default_factory=list)


@dataclass
class ExportRecord:
    """One row of the destination import file."""

    title: str
    slug: str
    excerpt: str
    publish_date: datetime
    body_html: str
    kind: ContentKind
    category: str
    source_key: str = ""
    classification: Optional[ContentClassification] = None

    def to_row(self) -> List[str]:
        return [
            self.title,
            self.body_html,
            self.kind.value,
            "publish",
            self.publish_date.strftime("%Y-%m-%d %H:%M:%S"),
            self.slug,
            self.excerpt,
            self.category,
        ]


@dataclass
class ExportSummary:
    output_path: Any
    records: List[ExportRecord] = field(default_factory=list)
    file_size: int = 0

    @property
    def posts(self) -> int:
        return sum(1 for record in self.records if record.kind is ContentKind.POST)

    @property
    def pages(self) -> int:
        return sum(1 for record in self.records if record.kind is ContentKind.PAGE)
