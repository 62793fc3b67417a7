"""Post/Page classification as an ordered chain of decision rules.

Each rule inspects a :class:`DocumentSignals` snapshot and either returns a
:class:`ContentClassification` or ``None`` to defer to the next rule. The
keyword scorer is the last rule and always decides.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup
from soupsieve import SelectorSyntaxError

from .config import MigrationConfig, SiteOverrides
from .models import ContentClassification, ContentKind
from .utils import split_path_segments, strip_document_extension

logger = logging.getLogger("wp_porter")


@dataclass
class DocumentSignals:
    """Everything the rules may look at, computed from the captured HTML."""

    source_key: str
    soup: BeautifulSoup
    text: str
    original_path: Optional[str] = None

    @classmethod
    def from_html(cls, html: str, source_key: str, original_path: Optional[str] = None) -> "DocumentSignals":
        soup = BeautifulSoup(html, "html.parser")
        return cls(
            source_key=source_key,
            soup=soup,
            text=soup.get_text(" ", strip=True).lower(),
            original_path=original_path,
        )

    @property
    def filename(self) -> str:
        return strip_document_extension(self.source_key).lower()

    def path_segments(self) -> List[str]:
        if self.original_path:
            return [segment.lower() for segment in split_path_segments(self.original_path)]
        return [part.lower() for part in self.filename.split("_")[1:]]


Rule = Callable[[DocumentSignals], Optional[ContentClassification]]


@dataclass(frozen=True)
class ScoringSignal:
    kind: ContentKind
    weight: int
    pattern: re.Pattern
    reason: str
    on_filename: bool = False
    unless: Optional[re.Pattern] = None


def _signal(kind, weight, pattern, reason, on_filename=False, unless=None) -> ScoringSignal:
    return ScoringSignal(
        kind=kind,
        weight=weight,
        pattern=re.compile(pattern, re.I),
        reason=reason,
        on_filename=on_filename,
        unless=re.compile(unless, re.I) if unless else None,
    )


POST, PAGE = ContentKind.POST, ContentKind.PAGE

SCORING_SIGNALS: Tuple[ScoringSignal, ...] = (
    _signal(POST, 40, r"testimonial|what our customers say|customer review|customer feedback", "Contains testimonials"),
    _signal(POST, 30, r"dealership information|test drive|our location|visit us", "Contains dealership marketing"),
    _signal(PAGE, 20, r"about us|our story|our history", "About page content"),
    _signal(PAGE, 20, r"contact us|get in touch|contact information", "Contact page content"),
    _signal(PAGE, 25, r"privacy policy|terms of (use|service)|terms and conditions", "Legal page content"),
    _signal(PAGE, 15, r"our services|services we offer", "Services page content", unless=r"service department"),
    _signal(POST, 20, r"\bvs\.? ", "Comparison article"),
    _signal(POST, 15, r"\breview\b|comparison", "Review or comparison content"),
    _signal(POST, 15, r"\b20[2-9]\d\b.*\bmodel\b|\bmodel\b.*\b20[2-9]\d\b", "Model-year content"),
    _signal(POST, 10, r"\barticle\b", "Article language"),
    _signal(POST, 25, r"\btips\b|maintenance", "Tips or maintenance content"),
    _signal(POST, 20, r"how to|\bguide\b", "How-to content"),
    _signal(PAGE, 15, r"about|contact|services", "Filename suggests a page", on_filename=True),
    _signal(POST, 15, r"(^|[_-])vs([_-]|$)|review|comparison", "Filename suggests a post", on_filename=True),
)


_HTML_TAGS = {"article", "main", "section", "div", "body", "aside", "header", "footer", "nav", "span", "p"}


def normalize_selector(selector: str) -> str:
    """A bare class name such as ``blog-post`` becomes ``.blog-post``."""
    selector = selector.strip()
    if selector and re.match(r"^[A-Za-z_][\w-]*$", selector) and selector not in _HTML_TAGS:
        return f".{selector}"
    return selector


def _selector_present(signals: DocumentSignals, selector: str) -> bool:
    try:
        return signals.soup.select_one(normalize_selector(selector)) is not None
    except SelectorSyntaxError as exc:
        logger.warning("Ignoring invalid classification selector %r: %s", selector, exc)
        return False


def manual_mapping_rule(mapping: Dict[str, ContentKind]) -> Rule:
    def rule(signals: DocumentSignals) -> Optional[ContentClassification]:
        kind = mapping.get(signals.source_key) or mapping.get(f"{signals.source_key}.html")
        if kind is None:
            return None
        return ContentClassification(kind, 100, f"Manual mapping: {kind.value}")

    return rule


def path_marker_rule(post_markers: Sequence[str], page_markers: Sequence[str]) -> Rule:
    post_set = {marker.strip("/").lower() for marker in post_markers if marker}
    page_set = {marker.strip("/").lower() for marker in page_markers if marker}

    def rule(signals: DocumentSignals) -> Optional[ContentClassification]:
        for segment in signals.path_segments():
            if segment in post_set:
                return ContentClassification(POST, 95, f"URL path contains /{segment}/")
            if segment in page_set:
                return ContentClassification(PAGE, 95, f"URL path contains /{segment}/")
        return None

    return rule


def custom_selector_rule(site: SiteOverrides) -> Rule:
    def rule(signals: DocumentSignals) -> Optional[ContentClassification]:
        if site.post_selector and _selector_present(signals, site.post_selector):
            return ContentClassification(POST, 95, f"Custom post selector found: {site.post_selector}")
        if site.page_selector and _selector_present(signals, site.page_selector):
            return ContentClassification(PAGE, 95, f"Custom page selector found: {site.page_selector}")
        if site.post_selector:
            return ContentClassification(PAGE, 90, f"Custom post selector not found: {site.post_selector}")
        if site.page_selector:
            return ContentClassification(POST, 90, f"Custom page selector not found: {site.page_selector}")
        return None

    return rule


def article_element_rule(signals: DocumentSignals) -> Optional[ContentClassification]:
    if signals.soup.find("article") is not None:
        return ContentClassification(POST, 95, "Semantic <article> element present")
    return None


def keyword_scoring_rule(signals: DocumentSignals) -> ContentClassification:
    scores = {POST: 0, PAGE: 0}
    reasons: List[str] = []
    filename = signals.filename
    for signal in SCORING_SIGNALS:
        haystack = filename if signal.on_filename else signals.text
        if not signal.pattern.search(haystack):
            continue
        if signal.unless is not None and signal.unless.search(haystack):
            continue
        scores[signal.kind] += signal.weight
        reasons.append(signal.reason)
    if not reasons:
        return ContentClassification(POST, 10, "No strong signals, defaulting to post")
    kind = PAGE if scores[PAGE] > scores[POST] else POST
    confidence = min(100, max(scores.values()))
    return ContentClassification(kind, confidence, ", ".join(reasons))


class Classifier:
    """Evaluates the rule chain in order; the first decision wins."""

    def __init__(self, config: MigrationConfig, manual: Optional[Dict[str, ContentKind]] = None) -> None:
        site = config.site
        mapping: Dict[str, ContentKind] = dict(site.content_types)
        mapping.update(manual or {})
        self.rules: List[Rule] = [
            manual_mapping_rule(mapping),
            path_marker_rule(site.post_path_markers, site.page_path_markers),
            custom_selector_rule(site),
            article_element_rule,
            keyword_scoring_rule,
        ]

    def classify_signals(self, signals: DocumentSignals) -> ContentClassification:
        for rule in self.rules:
            decision = rule(signals)
            if decision is not None:
                return decision
        raise RuntimeError("Classification rules did not reach a decision")

    def classify(self, html: str, source_key: str, original_path: Optional[str] = None) -> ContentClassification:
        decision = self.classify_signals(DocumentSignals.from_html(html, source_key, original_path))
        logger.debug(
            "Classified %s as %s (%d%%): %s",
            source_key,
            decision.kind.value,
            decision.confidence,
            decision.reason,
        )
        return decision
