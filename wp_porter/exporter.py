"""Record extraction and serialization of the destination import file."""

from __future__ import annotations

import csv
import logging
import re
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from bs4 import BeautifulSoup
from dateutil import parser as date_parser
from soupsieve import SelectorSyntaxError

from .classifier import Classifier
from .config import MigrationConfig
from .errors import ExportError
from .fetcher import indexed_content_types, load_capture_index
from .models import ContentClassification, ContentKind, ExportRecord, ExportSummary
from .reporting import RunReporter, resolve_reporter
from .sanitizer import PROCESSING_SUMMARY
from .utils import (
    format_bytes,
    is_date_token,
    read_json,
    slugify,
    split_path_segments,
    strip_document_extension,
    write_json,
)

logger = logging.getLogger("wp_porter")

CSV_COLUMNS = [
    "post_title",
    "post_content",
    "post_type",
    "post_status",
    "post_date",
    "post_name",
    "post_excerpt",
    "post_category",
]
GENERATION_SUMMARY = "generation-summary.json"
MAX_SLUG_LENGTH = 200
EXCERPT_LENGTH = 150

TITLE_SELECTORS = ["h1", ".title", ".post-title", ".article-title", ".page-title", "title"]
DATE_SELECTORS = [
    "time[datetime]",
    "meta[property='article:published_time']",
    "meta[itemprop=datePublished]",
    "[itemprop=datePublished]",
    ".dateDiv",
    ".date-div",
    ".post-date",
    ".entry-date",
    ".published",
    ".publish-date",
    ".article-date",
    ".date-posted",
    ".date",
    "time",
]
DATE_FORMATS = [
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%B %d, %Y",
    "%B %d %Y",
    "%b %d, %Y",
    "%b %d %Y",
    "%d %B %Y",
]
_YEAR_PATTERN = re.compile(r"\b(19|20)\d{2}\b")
SLUG_PREFIX_TOKENS = {
    "blog", "blogs", "post", "posts", "page", "pages", "news", "article", "articles", "category", "tag",
}
FILE_TOKENS = {"html", "htm", "php", "asp", "aspx", "jsp", "index", "default"}
MALFORMED_ARTIFACTS = re.compile(r"</?imgnone[^>]*>", re.I)
TAG_LISTING = re.compile(r"^\s*tags?\s*:", re.I)
_BLOCK_CHILDREN = ["p", "div", "section", "table", "h2", "h3", "h4", "h5", "h6", "blockquote"]


def _key_segments(source_key: str) -> List[str]:
    parts = [part for part in strip_document_extension(source_key).split("_") if part]
    if parts and "." in parts[0]:
        parts = parts[1:]
    return parts


def slug_from_segments(segments: Sequence[str]) -> Optional[str]:
    """Last path segment left after dropping prefixes, dates and file tokens."""
    meaningful: List[str] = []
    for segment in segments:
        token = strip_document_extension(segment.strip().lower())
        if not token or token in FILE_TOKENS or token in SLUG_PREFIX_TOKENS:
            continue
        if is_date_token(token) or not re.search(r"[a-z]", token):
            continue
        meaningful.append(token)
    if not meaningful:
        return None
    slug = slugify(meaningful[-1], fallback="")[:MAX_SLUG_LENGTH].strip("-")
    return slug or None


def derive_slug(source_key: str, original_path: Optional[str] = None, title: Optional[str] = None) -> str:
    """Slug from the original URL path; falls back to the title, then the filename."""
    segments = split_path_segments(original_path) if original_path else _key_segments(source_key)
    slug = slug_from_segments(segments)
    if slug:
        return slug
    if title:
        slug = slugify(title, fallback="")[:MAX_SLUG_LENGTH].strip("-")
        if slug:
            return slug
    return slugify(strip_document_extension(source_key), fallback="imported-content")[:MAX_SLUG_LENGTH]


def title_from_filename(source_key: str) -> str:
    segment = slug_from_segments(_key_segments(source_key))
    if segment:
        return segment.replace("-", " ").title()
    stem = strip_document_extension(source_key)
    stem = re.sub(r"^www\.", "", stem, flags=re.I)
    return stem.replace("_", " ").strip().title()


def _clean_text(value: str) -> str:
    return " ".join(value.split())


def extract_title(html: str, source_key: str, title_selector: Optional[str] = None) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for selector in [title_selector, *TITLE_SELECTORS]:
        if not selector:
            continue
        try:
            element = soup.select_one(selector)
        except SelectorSyntaxError as exc:
            logger.warning("Ignoring invalid title selector %r: %s", selector, exc)
            continue
        if element is not None:
            text = _clean_text(element.get_text(" ", strip=True))
            if text:
                return text
    return title_from_filename(source_key)


def parse_date(text: str) -> Optional[datetime]:
    """Parse ISO, US and textual-month dates; None when no year is present."""
    text = _clean_text(text)
    if not text or not _YEAR_PATTERN.search(text):
        return None
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        parsed = date_parser.parse(text, fuzzy=True)
    except (ValueError, OverflowError):
        return None
    return parsed.replace(tzinfo=None)


def extract_publish_date(
    html: str,
    kind: ContentKind,
    now: datetime,
    date_selector: Optional[str] = None,
) -> datetime:
    """Pages are dated the day before the run; posts use the first parseable date."""
    now = now.replace(microsecond=0)
    if kind is ContentKind.PAGE:
        return now - timedelta(days=1)
    soup = BeautifulSoup(html, "html.parser")
    for selector in [date_selector, *DATE_SELECTORS]:
        if not selector:
            continue
        try:
            elements = soup.select(selector)
        except SelectorSyntaxError as exc:
            logger.warning("Ignoring invalid date selector %r: %s", selector, exc)
            continue
        for element in elements:
            for candidate in (element.get("datetime"), element.get("content"), element.get_text(" ", strip=True)):
                if not candidate:
                    continue
                parsed = parse_date(candidate)
                if parsed is not None:
                    return parsed
    return now


def finalize_body(html: str) -> str:
    """Drop malformed-tag leftovers and short tag-listing blocks."""
    html = MALFORMED_ARTIFACTS.sub("", html)
    soup = BeautifulSoup(html, "html.parser")
    for element in soup.find_all(["p", "div", "ul", "span", "section"]):
        if element.decomposed or element.find(_BLOCK_CHILDREN) is not None:
            continue
        text = element.get_text(" ", strip=True)
        if len(text) < 300 and TAG_LISTING.match(text):
            element.decompose()
    return soup.decode().strip()


def make_excerpt(html: str, limit: int = EXCERPT_LENGTH) -> str:
    text = _clean_text(BeautifulSoup(html, "html.parser").get_text(" ", strip=True))
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


def write_csv(records: Sequence[ExportRecord], path: Path) -> None:
    """Write every field double-quoted, with embedded quotes doubled."""
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(CSV_COLUMNS)
        for record in records:
            writer.writerow(record.to_row())


class Exporter:
    """Builds one export record per cleaned document and writes the import file."""

    def __init__(self, config: MigrationConfig, now: Optional[datetime] = None) -> None:
        self.config = config
        self.now = now or datetime.now()

    def build_record(
        self,
        source_key: str,
        clean_html: str,
        captured_html: str,
        classification: ContentClassification,
        original_path: Optional[str] = None,
    ) -> ExportRecord:
        site = self.config.site
        title = extract_title(captured_html, source_key, site.title_selector)
        body = finalize_body(clean_html)
        kind = classification.kind
        return ExportRecord(
            title=title,
            slug=derive_slug(source_key, original_path, title),
            excerpt=make_excerpt(body),
            publish_date=extract_publish_date(captured_html, kind, self.now, site.date_selector),
            body_html=body,
            kind=kind,
            category=self.config.post_category if kind is ContentKind.POST else "",
            source_key=source_key,
            classification=classification,
        )

    def _stored_classifications(self) -> Dict[str, ContentClassification]:
        path = self.config.clean_dir / PROCESSING_SUMMARY
        if not path.exists():
            return {}
        results = read_json(path).get("results", [])
        return {
            Path(item["filename"]).stem: ContentClassification.from_dict(item)
            for item in results
            if item.get("filename")
        }

    def collect(self) -> List[ExportRecord]:
        """Records for every cleaned document, in filename order."""
        clean_files = sorted(self.config.clean_dir.glob("*.html")) if self.config.clean_dir.exists() else []
        if not clean_files:
            raise ExportError(f"No cleaned documents found in {self.config.clean_dir}")

        index = load_capture_index(self.config)
        mappings = index.get("urlMappings", {})
        stored = self._stored_classifications()
        classifier: Optional[Classifier] = None
        records: List[ExportRecord] = []
        for path in clean_files:
            source_key = path.stem
            clean_html = path.read_text(encoding="utf-8")
            capture_path = self.config.capture_dir / path.name
            captured_html = capture_path.read_text(encoding="utf-8") if capture_path.exists() else clean_html
            original_path = mappings.get(source_key, {}).get("originalPath")
            classification = stored.get(source_key)
            if classification is None:
                if classifier is None:
                    classifier = Classifier(self.config, manual=indexed_content_types(index))
                classification = classifier.classify(captured_html, source_key, original_path)
            records.append(self.build_record(source_key, clean_html, captured_html, classification, original_path))
        return records

    def export(self) -> ExportSummary:
        records = self.collect()
        self.config.export_dir.mkdir(parents=True, exist_ok=True)
        output = self.config.export_dir / self.config.export_filename
        try:
            write_csv(records, output)
        except (OSError, csv.Error) as exc:
            raise ExportError("Could not write export file", filename=output.name, cause=exc) from exc
        summary = ExportSummary(output_path=output, records=records, file_size=output.stat().st_size)
        write_generation_summary(self.config, summary, self.now)
        logger.info(
            "Wrote %d records (%d posts, %d pages) to %s",
            len(records),
            summary.posts,
            summary.pages,
            output,
        )
        return summary


def write_generation_summary(config: MigrationConfig, summary: ExportSummary, now: datetime) -> None:
    write_json(
        config.export_dir / GENERATION_SUMMARY,
        {
            "timestamp": now.isoformat(),
            "totalFiles": len(summary.records),
            "posts": summary.posts,
            "pages": summary.pages,
            "outputFile": Path(summary.output_path).name,
            "fileSize": summary.file_size,
            "fileSizeFormatted": format_bytes(summary.file_size),
            "items": [
                {
                    "filename": f"{record.source_key}.html",
                    "title": record.title,
                    "slug": record.slug,
                    "type": record.kind.value,
                    "confidence": record.classification.confidence if record.classification else None,
                    "reason": record.classification.reason if record.classification else "",
                }
                for record in summary.records
            ],
        },
    )


def run_export(
    config: MigrationConfig,
    reporter: Optional[RunReporter] = None,
    now: Optional[datetime] = None,
) -> ExportSummary:
    reporter = resolve_reporter(reporter)
    summary = Exporter(config, now=now).export()
    reporter.progress("export", 100.0, records=len(summary.records), posts=summary.posts, pages=summary.pages)
    return summary
