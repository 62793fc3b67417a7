"""Rewriting of anchors to the destination site's URL conventions."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from .utils import split_path_segments, strip_www


@dataclass(frozen=True)
class LinkRule:
    name: str
    pattern: re.Pattern
    destination: str
    whole_path: bool = False


def _link_rule(name: str, pattern: str, destination: str, whole_path: bool = False) -> LinkRule:
    return LinkRule(name, re.compile(pattern, re.I), destination, whole_path)


LINK_RULES: Tuple[LinkRule, ...] = (
    _link_rule("finance", r"financ|apply", "/finance/apply-for-financing/"),
    _link_rule("contact", r"contact|directions", "/contact-us/"),
    _link_rule("new-inventory", r"(^|[/_-])new([/_.-]|$)|new-inventory|search/new", "/new-vehicles/"),
    _link_rule("certified", r"certified|(^|[/_-])cpo([/_.-]|$)", "/used-vehicles/certified-pre-owned-vehicles/", True),
    _link_rule("used-inventory", r"(^|[/_-])used([/_.-]|$)|used-inventory|search/used", "/used-vehicles/"),
    _link_rule("sitemap", r"sitemap", "/sitemap/"),
    _link_rule("service", r"service", "/service/"),
    _link_rule("parts", r"(^|[/_-])parts?([/_.-]|$)", "/parts/"),
)

SKIPPED_PREFIXES = ("#", "mailto:", "tel:", "javascript:", "sms:")


def _match_rule(path: str) -> Optional[LinkRule]:
    """Most rules only look at the first path segment (``/service/...``, ``/new-inventory.htm``)."""
    segments = split_path_segments(path)
    if not segments:
        return None
    for rule in LINK_RULES:
        if rule.pattern.search(path if rule.whole_path else segments[0]):
            return rule
    return None


def rewrite_href(href: str, site_host: Optional[str]) -> Tuple[str, bool]:
    """Return the rewritten href and whether it must open in a new tab."""
    href = href.strip()
    if not href or href.lower().startswith(SKIPPED_PREFIXES):
        return href, False

    parsed = urlparse(href if not href.startswith("//") else f"https:{href}")
    absolute = parsed.scheme in {"http", "https"}
    if absolute and site_host and strip_www(parsed.netloc) != strip_www(site_host):
        return href, True
    if absolute and not site_host:
        return href, True

    path = parsed.path or "/"
    rule = _match_rule(path)
    if rule is not None:
        return rule.destination, False
    if absolute:
        relative = path
        if parsed.query:
            relative += f"?{parsed.query}"
        if parsed.fragment:
            relative += f"#{parsed.fragment}"
        return relative, False
    return href, False


def rewrite_links(soup: BeautifulSoup, site_host: Optional[str]) -> int:
    """Rewrite every anchor in place; returns how many hrefs changed."""
    changed = 0
    for anchor in soup.find_all("a", href=True):
        original = anchor["href"]
        href, external = rewrite_href(original, site_host)
        if href != original:
            anchor["href"] = href
            changed += 1
        if external:
            anchor["target"] = "_blank"
            anchor["rel"] = "noopener noreferrer"
    return changed


def site_host_from_key(source_key: str) -> Optional[str]:
    first = source_key.split("_", 1)[0]
    return first if "." in first else None
