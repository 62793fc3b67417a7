"""Discovery and filtering of image references inside captured pages."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from .models import DiscoveryMethod, ImageReference
from .utils import base_domain_from_key, decode_entities, normalize_image_url

logger = logging.getLogger("wp_porter")

SOURCE_ATTRIBUTES = ("src", "data-src", "data-lazy-src", "data-original")

URL_PATTERNS = [
    re.compile(pattern, re.I)
    for pattern in (
        r"avatar",
        r"profile",
        r"testimonial",
        r"review.*user",
        r"user.*photo",
        r"customer.*photo",
        r"headshot",
        r"portrait",
        r"staff.*photo",
        r"team.*photo",
        r"author.*image",
        r"gravatar",
        r"wp-content.*avatars",
        r"uploads.*user",
        r"images.*user",
        r"profile.*pic",
        r"reviewer.*image",
        r"customer.*image",
    )
]

TEXT_PATTERNS = [
    re.compile(pattern, re.I)
    for pattern in (
        r"avatar",
        r"profile",
        r"testimonial",
        r"review",
        r"customer.*photo",
        r"user.*photo",
        r"headshot",
        r"portrait",
        r"staff.*photo",
        r"team.*member",
        r"author.*image",
        r"reviewer",
        r"customer.*image",
        r"user.*image",
        r"profile.*picture",
    )
]

CLASS_PATTERNS = [
    re.compile(pattern, re.I)
    for pattern in (
        r"avatar",
        r"profile",
        r"testimonial.*image",
        r"user.*photo",
        r"customer.*image",
        r"reviewer.*image",
        r"author.*image",
        r"staff.*photo",
        r"team.*photo",
    )
]

PARENT_PATTERNS = [
    re.compile(pattern, re.I)
    for pattern in (
        r"testimonial",
        r"review",
        r"customer.*section",
        r"author.*bio",
        r"staff.*section",
        r"team.*section",
        r"profile.*section",
    )
]

DEFAULT_EXCLUDED_CONTAINERS = (
    "dataone_load",
    "vdp_dealer_location_container",
    "vehicle_crash_test_stars",
    "testimonials_wrap",
    "vehicle_award_wrap_container",
)

CHROME_TAGS = {"header", "footer", "nav", "aside"}
CHROME_CLASS_PATTERN = re.compile(
    r"(footer|header|sidebar|navbox|navigation|menu|topbar|bottombar|copyright)", re.I
)
BACKGROUND_PATTERN = re.compile(
    r"background(?:-image)?\s*:[^;]*url\(\s*['\"]?([^'\")\s]+)['\"]?\s*\)", re.I
)
MALFORMED_TAG_PATTERNS = [
    re.compile(r"<imgnone[^>]*\ssrc\s*=\s*[\"']([^\"']+)[\"'][^>]*>", re.I),
]
_ALT_PATTERN = re.compile(r"\salt\s*=\s*[\"']([^\"']*)[\"']", re.I)
_PARENT_DEPTH = 3


def _classes(tag: Tag) -> str:
    value = tag.get("class", [])
    if isinstance(value, str):
        return value
    return " ".join(value)


def _first_match(patterns: Sequence[re.Pattern], value: str) -> Optional[re.Pattern]:
    for pattern in patterns:
        if value and pattern.search(value):
            return pattern
    return None


def chrome_region(tag: Tag) -> Optional[str]:
    """Describe the header/footer/nav/sidebar region enclosing ``tag``, if any."""
    for parent in tag.parents:
        if not isinstance(parent, Tag) or parent.name == "[document]":
            continue
        if parent.name in CHROME_TAGS:
            return f"inside <{parent.name}>"
        classes = _classes(parent)
        match = CHROME_CLASS_PATTERN.search(classes)
        if match:
            return f"inside .{match.group(1).lower()} region"
    return None


def filter_reason(
    url: str,
    alt_text: str = "",
    title: str = "",
    tag: Optional[Tag] = None,
    excluded_containers: Sequence[str] = DEFAULT_EXCLUDED_CONTAINERS,
) -> Optional[str]:
    """Return why an image should not be downloaded, or None to keep it."""
    if tag is not None:
        region = chrome_region(tag)
        if region:
            return region
        for parent in tag.parents:
            if not isinstance(parent, Tag):
                continue
            classes = parent.get("class", [])
            if isinstance(classes, str):
                classes = classes.split()
            for container in excluded_containers:
                if container in classes:
                    return f"inside excluded container .{container}"
    pattern = _first_match(URL_PATTERNS, url)
    if pattern:
        return f"URL matches {pattern.pattern}"
    pattern = _first_match(TEXT_PATTERNS, alt_text) or _first_match(TEXT_PATTERNS, title)
    if pattern:
        return f"alt/title matches {pattern.pattern}"
    if tag is not None:
        pattern = _first_match(CLASS_PATTERNS, _classes(tag))
        if pattern:
            return f"class matches {pattern.pattern}"
        for depth, parent in enumerate(tag.parents):
            if depth >= _PARENT_DEPTH or not isinstance(parent, Tag):
                break
            pattern = _first_match(PARENT_PATTERNS, _classes(parent))
            if pattern:
                return f"enclosing class matches {pattern.pattern}"
    return None


def resolve_image_url(src: str, base_domain: Optional[str]) -> Optional[str]:
    """Absolute URL for an image source, or None when it cannot be fetched."""
    src = decode_entities(src.strip())
    if not src or src.lower().startswith(("data:", "blob:", "javascript:")):
        return None
    if src.startswith("//"):
        return f"https:{src}"
    if re.match(r"^https?://", src, re.I):
        return src
    if base_domain is None:
        return None
    return urljoin(base_domain + "/", src)


def _first_srcset_entry(srcset: str) -> Optional[str]:
    first = srcset.split(",")[0].strip()
    if not first:
        return None
    candidate = first.split()[0]
    if candidate.startswith(("http", "/")):
        return candidate
    return None


def _tag_sources(img: Tag) -> Iterator[str]:
    for attribute in SOURCE_ATTRIBUTES:
        value = img.get(attribute)
        if value:
            yield value
    srcset = img.get("srcset") or img.get("data-srcset")
    if srcset:
        entry = _first_srcset_entry(srcset)
        if entry:
            yield entry


def background_urls(style: str) -> List[str]:
    return BACKGROUND_PATTERN.findall(style or "")


def scan_document(
    html: str,
    source_key: str,
    excluded_containers: Sequence[str] = DEFAULT_EXCLUDED_CONTAINERS,
) -> List[ImageReference]:
    """All image references of one document in document order, with decisions."""
    base = base_domain_from_key(source_key)
    soup = BeautifulSoup(html, "html.parser")
    references: List[ImageReference] = []

    def _add(src: str, alt: str, title: str, via: DiscoveryMethod, tag: Optional[Tag]) -> None:
        url = resolve_image_url(src, base)
        if url is None:
            logger.debug("Skipping unresolvable image source %r in %s", src, source_key)
            return
        references.append(
            ImageReference(
                origin_url=url,
                normalized_url=normalize_image_url(url),
                source_key=source_key,
                alt_text=alt.strip(),
                title=title.strip(),
                discovered_via=via,
                drop_reason=filter_reason(url, alt, title, tag, excluded_containers),
            )
        )

    for img in soup.find_all("img"):
        for src in _tag_sources(img):
            _add(src, img.get("alt", ""), img.get("title", ""), DiscoveryMethod.TAG, img)

    for element in soup.find_all(style=re.compile(r"background", re.I)):
        for src in background_urls(element.get("style", "")):
            label = element.get("aria-label", "") or element.get("title", "")
            _add(src, label, element.get("title", ""), DiscoveryMethod.BACKGROUND, element)

    for pattern in MALFORMED_TAG_PATTERNS:
        for match in pattern.finditer(html):
            alt_match = _ALT_PATTERN.search(match.group(0))
            alt = alt_match.group(1) if alt_match else ""
            _add(match.group(1), alt, "", DiscoveryMethod.MALFORMED_TAG, None)
    return references


@dataclass
class ScanResult:
    kept: List[ImageReference] = field(default_factory=list)
    dropped: List[ImageReference] = field(default_factory=list)
    duplicates: int = 0


def collect_references(
    documents: Iterable[Tuple[str, str]],
    excluded_containers: Sequence[str] = DEFAULT_EXCLUDED_CONTAINERS,
) -> ScanResult:
    """Scan ``(source_key, html)`` pairs and keep one reference per normalized URL.

    The first kept reference wins. A URL that is dropped in one place but kept
    elsewhere is downloaded; the dropped list only holds URLs never kept.
    """
    kept: Dict[str, ImageReference] = {}
    dropped: Dict[str, ImageReference] = {}
    result = ScanResult()
    for source_key, html in documents:
        for reference in scan_document(html, source_key, excluded_containers):
            key = reference.normalized_url
            if not reference.keep:
                if key not in kept and key not in dropped:
                    logger.info(
                        "Dropping image %s from %s: %s",
                        reference.origin_url,
                        source_key,
                        reference.drop_reason,
                    )
                    dropped[key] = reference
                continue
            if key in kept:
                result.duplicates += 1
                continue
            dropped.pop(key, None)
            kept[key] = reference
    result.kept = list(kept.values())
    result.dropped = list(dropped.values())
    return result
