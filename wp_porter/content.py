"""Content-region discovery and volatile markup removal for captured pages."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from bs4 import BeautifulSoup, Tag
from soupsieve import SelectorSyntaxError

from .config import SiteOverrides
from .models import ContentKind

logger = logging.getLogger("wp_porter")

POST_SELECTORS = [
    ".blog-post-detail",
    ".entry-content",
    "article",
    ".post-content",
    ".ddc-span8",
    ".ddc-content",
    ".main-content",
    "#content",
    ".content",
    "body",
]

PAGE_SELECTORS = [
    ".main",
    "main",
    "#page-body",
    ".ddc-wrapper",
    ".ddc-span8",
    ".ddc-content",
    ".main-content",
    "#content",
    ".content:not(.nav-fragment):not(.ajax-navigation-element)",
    ".content",
    "body",
]

TRUSTED_SELECTORS = {"main", ".main", ".blog-post-detail", ".entry-content", "article", "#page-body"}

_CHROME_TAGS = {"nav", "header", "footer"}
_CHROME_PATTERN = re.compile(r"(^|[\s_-])(nav|navigation|menu|header|footer|breadcrumb)", re.I)
_PHONE_PATTERN = re.compile(r"\(?\d{3}\)?[\s.-]\d{3}[\s.-]\d{4}")
_ADDRESS_PATTERN = re.compile(
    r"\d+\s+\w+(\s+\w+)?\s+(street|st|avenue|ave|road|rd|blvd|boulevard|highway|hwy)\b", re.I
)
_SOCIAL_PATTERN = re.compile(r"facebook|twitter|instagram|youtube|linkedin|tiktok", re.I)


@dataclass
class RegionMatch:
    selector: str
    html: str
    text_length: int


def _unique(selectors: Iterable[Optional[str]]) -> List[str]:
    ordered: List[str] = []
    for selector in selectors:
        if selector and selector not in ordered:
            ordered.append(selector)
    return ordered


def build_selector_chain(kind: Optional[ContentKind], site: SiteOverrides) -> List[str]:
    """Override selectors first, then the defaults for the expected kind."""
    if kind is ContentKind.POST:
        specific, defaults = site.post_content_selector, POST_SELECTORS
    elif kind is ContentKind.PAGE:
        specific, defaults = site.page_content_selector, PAGE_SELECTORS
    else:
        specific = None
        defaults = [s for s in POST_SELECTORS if s != "body"] + PAGE_SELECTORS
    return _unique([specific, *site.content_selectors, *defaults])


def inner_html(tag: Tag) -> str:
    return "".join(str(child) for child in tag.contents)


def _looks_like_chrome(tag: Tag) -> bool:
    if tag.name in _CHROME_TAGS:
        return True
    marker = " ".join(tag.get("class", [])) + " " + (tag.get("id") or "")
    if _CHROME_PATTERN.search(marker):
        return True
    text = tag.get_text(" ", strip=True)
    if len(text) < 300:
        phones = len(_PHONE_PATTERN.findall(text))
        socials = len(_SOCIAL_PATTERN.findall(str(tag)))
        if phones >= 2 or _ADDRESS_PATTERN.search(text) or socials >= 2:
            return True
    return False


def _has_substantial_content(tag: Tag) -> bool:
    text_length = len(tag.get_text(" ", strip=True))
    paragraphs = len(tag.find_all("p"))
    headings = len(tag.find_all(["h1", "h2", "h3", "h4", "h5", "h6"]))
    return (text_length > 500 and (paragraphs >= 2 or headings >= 1)) or text_length > 1000


def find_content_region(
    html: str,
    selectors: List[str],
    min_length: int = 100,
) -> Optional[RegionMatch]:
    """Return the first selector whose region holds meaningful content."""
    soup = BeautifulSoup(html, "html.parser")
    for selector in selectors:
        try:
            candidate = soup.select_one(selector)
        except SelectorSyntaxError as exc:
            logger.warning("Ignoring invalid content selector %r: %s", selector, exc)
            continue
        if candidate is None:
            continue
        region_html = inner_html(candidate).strip()
        if len(region_html) < min_length:
            logger.debug("Selector %s matched but content is too short", selector)
            continue
        if selector not in TRUSTED_SELECTORS and selector != "body":
            if _looks_like_chrome(candidate) or not _has_substantial_content(candidate):
                logger.debug("Selector %s rejected as navigation or thin content", selector)
                continue
        text_length = len(candidate.get_text(" ", strip=True))
        return RegionMatch(selector=selector, html=region_html, text_length=text_length)
    return None


def strip_volatile_markup(html: str) -> str:
    """Remove scripts, styles and inline event handlers; keep noscript content."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    for tag in soup("noscript"):
        tag.unwrap()
    for tag in soup.find_all(True):
        for attribute in [name for name in tag.attrs if name.lower().startswith("on")]:
            del tag.attrs[attribute]
    return soup.decode()
