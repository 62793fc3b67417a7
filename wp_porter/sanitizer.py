"""Classification-aware cleanup of captured pages into import-ready HTML."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.builder import ParserRejectedMarkup
from soupsieve import SelectorSyntaxError

from .classifier import Classifier, normalize_selector
from .config import MigrationConfig
from .errors import SanitizationError
from .fetcher import indexed_content_types, load_capture_index
from .image_scan import background_urls, resolve_image_url
from .images import load_manifest
from .links import rewrite_links, site_host_from_key
from .markup import (
    collapse_empty_wrappers,
    convert_word_lists,
    normalize_tables,
    preserved_classes,
)
from .models import (
    AssetManifest,
    ContentClassification,
    ContentKind,
    SanitizeFailure,
    SanitizedDocument,
    SanitizeSummary,
)
from .reporting import RunReporter, resolve_reporter
from .rules import BoilerplateRule, apply_rules, load_rules
from .utils import base_domain_from_key, normalize_image_url, write_json

logger = logging.getLogger("wp_porter")

PROCESSING_SUMMARY = "processing-summary.json"

ATTRIBUTE_ALLOWLIST = {
    "a": {"href", "target", "rel"},
    "img": {"src", "alt", "width", "height"},
    "iframe": {"src", "width", "height", "frameborder", "allow", "allowfullscreen", "title", "referrerpolicy"},
    "video": {"src", "width", "height", "controls", "autoplay", "loop", "muted", "poster"},
    "audio": {"src", "controls", "autoplay", "loop", "muted"},
    "source": {"src", "type"},
    "td": {"scope", "colspan", "rowspan"},
    "th": {"scope", "colspan", "rowspan"},
    "table": {"border", "cellpadding", "cellspacing"},
}
GLOBAL_ATTRIBUTES = {"style", "class"}
LAZY_SOURCES = ("data-src", "data-lazy-src", "data-original")

SIDEBAR_CLASSES = (
    "navboxwrap",
    "navboxright",
    "navbox",
    "sidebar",
    "widget-area",
    "blog-sidebar",
    "post-navigation",
    "entry-navigation",
    "nav-links",
    "navigation",
    "archives",
    "categories",
    "meta-links",
    "blogroll",
)
DATE_CLASSES = (
    "dateDiv",
    "date-div",
    "post-date",
    "entry-date",
    "published",
    "publish-date",
    "article-date",
    "date-posted",
)
DATE_TEXT = re.compile(
    r"(january|february|march|april|may|june|july|august|september|october|november|december)"
    r"|\d{1,2}/\d{1,2}/\d{2,4}|\d{4}-\d{2}-\d{2}",
    re.I,
)
FORM_SELECTOR = "form, input, textarea, select, button[type=submit]"
FOOTER_SELECTOR = "footer, [class*=footer i]"
COPYRIGHT_PATTERN = re.compile(r"©|\bcopyright\b|\(c\)\s*\d{4}", re.I)
THIRD_PARTY_PATTERN = re.compile(
    r"dealeron|dealer\.com|dealerdotcom|cobalt|vinsolutions|autotrader|cars\.com|edmunds|"
    r"carmax|cargurus|dealership\.com|dealer-fx|dealerfx|autofusion|reynolds",
    re.I,
)
_NOTICE_CONTAINERS = ["p", "div", "span", "small", "li", "section"]


def _bump(counts: Dict[str, int], key: str, amount: int) -> None:
    if amount:
        counts[key] = counts.get(key, 0) + amount


def _decompose_all(tags: List[Tag]) -> int:
    removed = 0
    for tag in tags:
        if not tag.decomposed:
            tag.decompose()
            removed += 1
    return removed


class Sanitizer:
    """Cleans one captured document according to its classification."""

    def __init__(
        self,
        config: MigrationConfig,
        manifest: Optional[AssetManifest] = None,
        rules: Optional[List[BoilerplateRule]] = None,
    ) -> None:
        self.config = config
        self.manifest = manifest or AssetManifest()
        self.rules = rules if rules is not None else load_rules(config.site.boilerplate_rules)
        self._dropped = set(self.manifest.dropped_urls)

    def sanitize(
        self,
        html: str,
        source_key: str,
        classification: ContentClassification,
    ) -> SanitizedDocument:
        """Run every cleanup step in order; raises SanitizationError on bad markup."""
        try:
            soup = BeautifulSoup(html, "html.parser")
        except ParserRejectedMarkup as exc:
            raise SanitizationError("Could not parse captured HTML", filename=source_key, cause=exc) from exc

        counts: Dict[str, int] = {}
        try:
            self._convert_background_images(soup, counts)
            self._remove_configured(soup, classification.kind, counts)
            for name, removed in apply_rules(soup, self.rules, classification.kind).items():
                _bump(counts, name, removed)
            _bump(counts, "forms", _decompose_all(soup.select(FORM_SELECTOR)))
            _bump(counts, "footers", _decompose_all(soup.select(FOOTER_SELECTOR)))
            _bump(counts, "filtered_images", self._remove_filtered_images(soup, source_key))
            self._clean_attributes(soup)
            rewritten = rewrite_links(soup, site_host_from_key(source_key))
            logger.debug("Rewrote %d link(s) in %s", rewritten, source_key)
            self._rewrite_images(soup, source_key)
            _bump(counts, "copyright", self._remove_third_party_notices(soup))
            _bump(counts, "h1", _decompose_all(soup.find_all("h1")))
            converted = convert_word_lists(soup)
            if converted:
                logger.debug("Converted %d bullet paragraph(s) in %s", converted, source_key)
            normalize_tables(soup)
            _bump(counts, "empty_wrappers", collapse_empty_wrappers(soup))
        except RecursionError as exc:
            raise SanitizationError("Markup nested too deeply to clean", filename=source_key, cause=exc) from exc
        except (AttributeError, TypeError, ValueError) as exc:
            raise SanitizationError(f"Could not clean markup: {exc}", filename=source_key, cause=exc) from exc

        return SanitizedDocument(
            source_key=source_key,
            clean_html=soup.decode().strip(),
            classification=classification,
            removed_element_counts=counts,
        )

    def _convert_background_images(self, soup: BeautifulSoup, counts: Dict[str, int]) -> None:
        """Replace CSS background images with ``img`` elements, one per normalized URL."""
        seen = {
            normalize_image_url(img.get("src", ""))
            for img in soup.find_all("img")
            if img.get("src")
        }
        chosen: Dict[str, tuple] = {}
        for element in soup.find_all(style=re.compile(r"background", re.I)):
            for url in background_urls(element.get("style", "")):
                key = normalize_image_url(url)
                if key in seen:
                    continue
                current = chosen.get(key)
                if current is None or ("?" in current[1] and "?" not in url):
                    chosen[key] = (element, url)

        duplicates = 0
        for element in soup.find_all(style=re.compile(r"background", re.I)):
            urls = background_urls(element.get("style", ""))
            if not urls:
                continue
            selected = [url for url in urls if chosen.get(normalize_image_url(url), (None,))[0] is element]
            has_content = bool(element.get_text(strip=True)) or element.find(True) is not None
            style = re.sub(r"background(-image)?\s*:[^;]*url\([^)]*\)[^;]*;?", "", element["style"], flags=re.I)
            if style.strip():
                element["style"] = style.strip()
            else:
                del element["style"]
            if not selected:
                if not has_content:
                    element.decompose()
                    duplicates += 1
                continue
            alt = element.get("aria-label", "")
            images = []
            for url in selected:
                img = soup.new_tag("img")
                img["src"] = url
                if alt:
                    img["alt"] = alt
                images.append(img)
            if has_content:
                for img in reversed(images):
                    element.insert(0, img)
            else:
                element.replace_with(*images)
        _bump(counts, "duplicate_backgrounds", duplicates)

    def _remove_configured(self, soup: BeautifulSoup, kind: ContentKind, counts: Dict[str, int]) -> None:
        site = self.config.site
        selectors = list(site.remove_selectors)
        selectors += site.post_remove_selectors if kind is ContentKind.POST else site.page_remove_selectors
        for selector in selectors:
            try:
                matches = soup.select(normalize_selector(selector))
            except SelectorSyntaxError as exc:
                logger.warning("Ignoring invalid removal selector %r: %s", selector, exc)
                continue
            _bump(counts, "custom", _decompose_all(matches))

        for name in SIDEBAR_CLASSES:
            _bump(counts, "sidebar", _decompose_all(soup.select(f".{name}")))

        for name in DATE_CLASSES:
            for element in soup.select(f".{name}"):
                text = element.get_text(" ", strip=True)
                if not element.decomposed and (len(text) < 50 or DATE_TEXT.search(text)):
                    element.decompose()
                    _bump(counts, "dates", 1)

    def _image_url(self, img: Tag, source_key: str) -> Optional[str]:
        src = img.get("src") or ""
        if not src or src.startswith("data:"):
            for attribute in LAZY_SOURCES:
                if img.get(attribute):
                    src = img[attribute]
                    break
        return resolve_image_url(src, base_domain_from_key(source_key)) if src else None

    def _remove_filtered_images(self, soup: BeautifulSoup, source_key: str) -> int:
        if not self._dropped:
            return 0
        removed = 0
        for img in soup.find_all("img"):
            url = self._image_url(img, source_key)
            if url and normalize_image_url(url) in self._dropped and not self.manifest.lookup(normalize_image_url(url)):
                img.decompose()
                removed += 1
        return removed

    def _clean_attributes(self, soup: BeautifulSoup) -> None:
        for tag in soup.find_all(True):
            if tag.name == "img":
                src = tag.get("src") or ""
                if not src or src.startswith("data:"):
                    for attribute in LAZY_SOURCES:
                        if tag.get(attribute):
                            tag["src"] = tag[attribute]
                            break
            allowed = ATTRIBUTE_ALLOWLIST.get(tag.name, set()) | GLOBAL_ATTRIBUTES
            for attribute in list(tag.attrs):
                if attribute not in allowed:
                    del tag.attrs[attribute]
            if "class" in tag.attrs:
                classes = tag["class"]
                if isinstance(classes, str):
                    classes = classes.split()
                kept = preserved_classes(classes)
                if kept:
                    tag["class"] = kept
                else:
                    del tag["class"]

    def upload_url(self, filename: str) -> str:
        config = self.config
        return f"{config.upload_base}/{config.dealer_slug}/uploads/{config.upload_year}/{config.upload_month}/{filename}"

    def _rewrite_images(self, soup: BeautifulSoup, source_key: str) -> None:
        for img in soup.find_all("img"):
            url = self._image_url(img, source_key)
            if url is None:
                continue
            asset = self.manifest.lookup(normalize_image_url(url))
            if asset is not None and self.config.dealer_slug:
                img["src"] = self.upload_url(asset.local_filename)
            elif self.config.dealer_slug and self.config.images_enabled:
                name = Path(urlparse(url).path).name
                img["src"] = self.upload_url(name) if name else url
            else:
                img["src"] = url
            if asset is not None and asset.alt_text and not img.get("alt"):
                img["alt"] = asset.alt_text

    def _remove_third_party_notices(self, soup: BeautifulSoup) -> int:
        containers: List[Tag] = []
        for text in soup.find_all(string=COPYRIGHT_PATTERN):
            if not isinstance(text, NavigableString) or text.parent is None:
                continue
            container = text.find_parent(_NOTICE_CONTAINERS)
            if container is None or any(container is seen for seen in containers):
                continue
            notice = container.get_text(" ", strip=True)
            if len(notice) < 300 and THIRD_PARTY_PATTERN.search(notice):
                containers.append(container)

        # Nested notices go away with their outer container.
        removed = 0
        for container in containers:
            if container.decomposed:
                continue
            container.decompose()
            removed += 1
        return removed


def run_sanitize(
    config: MigrationConfig,
    reporter: Optional[RunReporter] = None,
    manifest: Optional[AssetManifest] = None,
) -> SanitizeSummary:
    """Classify and clean every captured page; bad documents are recorded, not fatal."""
    reporter = resolve_reporter(reporter)
    index = load_capture_index(config)
    mappings = index.get("urlMappings", {})
    classifier = Classifier(config, manual=indexed_content_types(index))
    sanitizer = Sanitizer(config, manifest if manifest is not None else load_manifest(config))
    config.clean_dir.mkdir(parents=True, exist_ok=True)

    summary = SanitizeSummary()
    captures = sorted(config.capture_dir.glob("*.html"))
    for position, path in enumerate(captures, start=1):
        source_key = path.stem
        html = path.read_text(encoding="utf-8")
        original_path = mappings.get(source_key, {}).get("originalPath")
        classification = classifier.classify(html, source_key, original_path)
        try:
            document = sanitizer.sanitize(html, source_key, classification)
        except SanitizationError as exc:
            logger.error("Failed to sanitize %s: %s", path.name, exc.describe())
            reporter.log("error", "sanitize", f"Failed to sanitize {path.name}", {"error": exc.describe()})
            summary.failures.append(SanitizeFailure(filename=path.name, error=exc.describe()))
            continue
        (config.clean_dir / path.name).write_text(document.clean_html, encoding="utf-8")
        summary.documents.append(document)
        logger.info(
            "Cleaned %s as %s (%d%%, %d elements removed)",
            path.name,
            classification.kind.value,
            classification.confidence,
            document.total_removed,
        )
        reporter.progress(
            "sanitize",
            100.0 * position / len(captures),
            processed=position,
            total=len(captures),
            failed=len(summary.failures),
        )

    write_json(
        config.clean_dir / PROCESSING_SUMMARY,
        {
            "timestamp": datetime.now().isoformat(),
            "totalFiles": len(captures),
            "successful": len(summary.documents),
            "failed": len(summary.failures),
            "results": [
                {
                    "filename": f"{document.source_key}.html",
                    **document.classification.to_dict(),
                    "removed": document.removed_element_counts,
                }
                for document in summary.documents
            ],
            "errors": [{"filename": failure.filename, "error": failure.error} for failure in summary.failures],
        },
    )
    return summary
