"""Data-driven boilerplate removal rules for sanitized documents.

A rule names the candidate elements (a CSS selector), the conditions their
text or attributes must meet, and what to remove when they match. Site
profiles may append their own rules in the same shape (see
:meth:`BoilerplateRule.from_dict`).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from bs4 import BeautifulSoup, Tag
from soupsieve import SelectorSyntaxError

from .models import ContentKind

logger = logging.getLogger("wp_porter")

SECTION_BOUNDARIES = {"h1", "h2", "h3"}
TABLE_TAGS = {"table", "thead", "tbody", "tfoot", "tr", "td", "th"}
CONTENT_CONTAINER_PATTERN = re.compile(
    r"(container|row|col-|main|content|article|entry|post-content|blogcontent|descriptiondiv)", re.I
)


class RuleAction(str, Enum):
    REMOVE = "remove"
    REMOVE_SECTION = "remove-section"
    REMOVE_WITH_NEXT = "remove-with-next"


def _compile(patterns: Iterable[str]) -> Tuple[re.Pattern, ...]:
    return tuple(re.compile(pattern, re.I) for pattern in patterns)


def _text(tag: Tag) -> str:
    return " ".join(tag.get_text(" ", strip=True).split())


def _marker(tag: Tag) -> str:
    classes = tag.get("class", [])
    if isinstance(classes, str):
        classes = [classes]
    return " ".join([*classes, tag.get("id") or ""]).strip()


@dataclass(frozen=True)
class BoilerplateRule:
    name: str
    selector: str
    action: RuleAction = RuleAction.REMOVE
    patterns: Tuple[re.Pattern, ...] = ()
    exclude: Tuple[re.Pattern, ...] = ()
    attribute: Optional[str] = None
    class_pattern: Optional[re.Pattern] = None
    max_length: Optional[int] = None
    min_length: Optional[int] = None
    max_context_length: Optional[int] = None
    require_no_links: bool = False
    skip_in_tables: bool = False
    skip_containers: bool = False
    kinds: Tuple[ContentKind, ...] = (ContentKind.POST,)

    def applies_to(self, kind: ContentKind) -> bool:
        return kind in self.kinds

    def matches(self, tag: Tag) -> bool:
        text = _text(tag)
        if self.max_length is not None and len(text) > self.max_length:
            return False
        if self.min_length is not None and len(text) < self.min_length:
            return False
        if self.skip_containers and CONTENT_CONTAINER_PATTERN.search(_marker(tag)):
            return False
        if self.skip_in_tables and (
            tag.name in TABLE_TAGS or tag.find_parent("table") is not None or tag.find("table") is not None
        ):
            return False
        if self.require_no_links and tag.find("a") is not None:
            return False
        if self.max_context_length is not None:
            context = tag.find_parent(["p", "div", "section"])
            if context is not None and len(_text(context)) > self.max_context_length:
                return False
        if self.class_pattern is not None:
            marker = _marker(tag)
            if not self.class_pattern.search(marker) or CONTENT_CONTAINER_PATTERN.search(marker):
                return False
        subject = (tag.get(self.attribute) or "") if self.attribute else text
        if isinstance(subject, list):
            subject = " ".join(subject)
        if self.patterns and not any(pattern.search(subject) for pattern in self.patterns):
            return False
        if any(pattern.search(subject) for pattern in self.exclude):
            return False
        return True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BoilerplateRule":
        class_pattern = data.get("class_pattern")
        kinds = tuple(
            kind for kind in (ContentKind.parse(value) for value in data.get("kinds", ["post"])) if kind
        )
        return cls(
            name=data.get("name") or data["selector"],
            selector=data["selector"],
            action=RuleAction(data.get("action", RuleAction.REMOVE.value)),
            patterns=_compile(data.get("patterns", [])),
            exclude=_compile(data.get("exclude", [])),
            attribute=data.get("attribute"),
            class_pattern=re.compile(class_pattern, re.I) if class_pattern else None,
            max_length=data.get("max_length"),
            min_length=data.get("min_length"),
            max_context_length=data.get("max_context_length"),
            require_no_links=bool(data.get("require_no_links", False)),
            skip_in_tables=bool(data.get("skip_in_tables", False)),
            skip_containers=bool(data.get("skip_containers", False)),
            kinds=kinds or (ContentKind.POST,),
        )


def _rule(name: str, selector: str, patterns: Sequence[str] = (), exclude: Sequence[str] = (), **options) -> BoilerplateRule:
    class_pattern = options.pop("class_pattern", None)
    return BoilerplateRule(
        name=name,
        selector=selector,
        patterns=_compile(patterns),
        exclude=_compile(exclude),
        class_pattern=re.compile(class_pattern, re.I) if class_pattern else None,
        **options,
    )


MONTHS = "january|february|march|april|may|june|july|august|september|october|november|december"

DEFAULT_RULES: Tuple[BoilerplateRule, ...] = (
    _rule(
        "non-video-iframes",
        "iframe",
        exclude=[r"youtube\.com", r"youtu\.be", r"vimeo\.com", r"wistia\.com", r"vidyard\.com", r"player\.", r"/embed/"],
        attribute="src",
    ),
    _rule(
        "dealership-sections",
        "h2",
        [
            r"(?=.*dealership)(?=.*information)",
            r"(?=.*contact)(?=.*\b(us|info))",
            r"(?=.*visit)(?=.*\bus\b)",
            r"(?=.*\bour\b)(?=.*location)",
            r"(?=.*\bfind\b)(?=.*\bus\b)",
            r"(?=.*(current|browse|search))(?=.*inventory)",
            r"(?=.*(available|new|used))(?=.*vehicles)",
            r"^inventory$",
        ],
        action=RuleAction.REMOVE_SECTION,
    ),
    _rule(
        "testimonial-sections",
        "h2, h3",
        [
            r"testimonial",
            r"customer reviews?",
            r"\breviews$",
            r"what our customers say",
            r"customer (feedback|experience)",
            r"what people are saying",
        ],
        action=RuleAction.REMOVE_SECTION,
    ),
    _rule(
        "testimonial-containers",
        "[class*=testimonial i], [class*=review i], [class*=feedback i], "
        "[id*=testimonial i], [id*=review i], [id*=feedback i]",
    ),
    _rule(
        "testimonial-paragraphs",
        "p, blockquote",
        [
            r"(?=.*customer)(?=.*says)",
            r"testimonial",
            r"(?=.*\")(?=.*satisfied)(?=.*customer)",
            r"happy customer|satisfied buyer",
            r"customer (review|feedback)",
            r"\d+(\.\d+)?\s*(star|rating).*out of",
        ],
        [r"vs ", r"compared to", r"performance", r"safety", r"interior", r"mpg", r"horsepower"],
    ),
    _rule(
        "quoted-praise",
        "p, blockquote",
        [r"^[\"“'].*\b(great|excellent|wonderful)\b.*[\"”']$"],
        [r"vs ", r"compared to", r"performance", r"safety", r"interior", r"mpg", r"horsepower"],
        min_length=50,
        max_length=1000,
    ),
    _rule(
        "address-snippets",
        "p",
        [
            r"\d+\s+\w+\s+(street|st|avenue|ave|road|rd|blvd|boulevard)\b",
            r"(?=.*visit)(?=.*showroom)",
        ],
        [r"available", r"include"],
        max_length=100,
    ),
    _rule(
        "opening-hours",
        "p",
        [r"(?=.*hours)(?=.*open)", r"(monday|tuesday|wednesday|thursday|friday|saturday|sunday).*\d{1,2}:\d{2}"],
        [r"available"],
        max_length=150,
    ),
    _rule(
        "come-visit-snippets",
        "p",
        [r"come down to", r"(?=.*stop by)(?=.*dealership)"],
        max_length=80,
        require_no_links=True,
    ),
    _rule(
        "call-to-action-links",
        "a",
        [
            r"^(contact us today|get directions|click here for directions|browse inventory|"
            r"view inventory|search inventory|shop now|view all vehicles)$",
            r"directions",
        ],
        max_context_length=100,
    ),
    _rule(
        "inventory-widgets",
        ".dataone_load, [class*=inventory i], [id*=inventory i], [class*=vehicle-list i], [class*=search-results i]",
    ),
    _rule(
        "inventory-feeds",
        "div, span, p, section",
        [r"(used|new)\|.*\|.*dealership", r"#region_\d+", r"(?=.*at dealership)(?=.*\|)"],
        max_length=500,
    ),
    _rule(
        "inventory-promos",
        "div, span, section",
        [
            r"browse our inventory",
            r"search our inventory",
            r"view inventory",
            r"current specials",
            r"(?=.*starting at)(?=.*\$)",
            r"price excludes",
        ],
        max_length=200,
        skip_in_tables=True,
    ),
    _rule(
        "blog-meta",
        "*",
        [
            r"^«.*»$",
            r"^«\s*[\w\s:,-]+$",
            r"^[\w\s:,-]+\s*»$",
            rf"^({MONTHS})\s+\d{{1,2}},?\s+\d{{4}}$",
            r"^\d{1,2}/\d{1,2}/\d{4}$",
            r"^\d{4}-\d{2}-\d{2}$",
            r"^posted in.*\|.*$",
            r"^by\s+[\w\s]+$",
            r"^author:.*$",
            r"^no comments.*$",
            r"^\d+\s+comments?.*$",
            r"^share this.*$",
            r"^follow us.*$",
            r"^connect with us.*$",
        ],
        max_length=500,
        skip_containers=True,
    ),
    _rule(
        "blog-sidebar-headings",
        "h1, h2, h3, h4, h5, h6",
        [
            r"^recent blog entries$",
            r"^recent posts$",
            r"^categories$",
            r"^tags$",
            r"^archives$",
            r"^connect with us$",
            r"^follow us$",
            r"^related posts$",
            r"^you may also like$",
            r"^more articles$",
        ],
        action=RuleAction.REMOVE_WITH_NEXT,
    ),
    _rule("blog-nav-arrows", "div", [r"^[«»←→]", r"[«»←→]$"], max_length=500, skip_containers=True),
    _rule("comment-sections", "[id*=comment i]"),
    _rule(
        "blog-chrome-classes",
        "[class]",
        class_pattern=r"(sidebar|widget|recent|categories|archive|meta|nav|breadcrumb|comment)",
        max_length=500,
    ),
)


def load_rules(extra: Iterable[Mapping[str, Any]] = ()) -> List[BoilerplateRule]:
    """Default rules followed by any rules supplied by the site profile."""
    rules = list(DEFAULT_RULES)
    for data in extra:
        try:
            rules.append(BoilerplateRule.from_dict(data))
        except (KeyError, ValueError, re.error) as exc:
            logger.warning("Ignoring invalid boilerplate rule %r: %s", data, exc)
    return rules


def _remove(tag: Tag) -> int:
    if tag.decomposed:
        return 0
    tag.decompose()
    return 1


def _remove_section(heading: Tag) -> int:
    removed = 0
    sibling = heading.find_next_sibling()
    while sibling is not None and sibling.name not in SECTION_BOUNDARIES:
        following = sibling.find_next_sibling()
        removed += _remove(sibling)
        sibling = following
    return removed + _remove(heading)


def _remove_with_next(tag: Tag) -> int:
    removed = 0
    sibling = tag.find_next_sibling()
    if sibling is not None and sibling.name in {"div", "ul", "ol", "section"} and len(_text(sibling)) < 1000:
        removed += _remove(sibling)
    return removed + _remove(tag)


_ACTIONS = {
    RuleAction.REMOVE: _remove,
    RuleAction.REMOVE_SECTION: _remove_section,
    RuleAction.REMOVE_WITH_NEXT: _remove_with_next,
}


def apply_rules(
    soup: BeautifulSoup, rules: Iterable[BoilerplateRule], kind: ContentKind
) -> Dict[str, int]:
    """Apply every rule relevant to ``kind``; returns removal counts by rule name."""
    counts: Dict[str, int] = {}
    for rule in rules:
        if not rule.applies_to(kind):
            continue
        try:
            candidates = soup.select(rule.selector)
        except SelectorSyntaxError as exc:
            logger.warning("Skipping rule %s with invalid selector: %s", rule.name, exc)
            continue
        removed = 0
        for tag in candidates:
            if tag.decomposed or not rule.matches(tag):
                continue
            removed += _ACTIONS[rule.action](tag)
        if removed:
            counts[rule.name] = removed
            logger.debug("Rule %s removed %d element(s)", rule.name, removed)
    return counts
