"""Structural repairs: layout-class whitelist, lists, tables and empty wrappers."""

from __future__ import annotations

import re
from typing import Iterable, List

from bs4 import BeautifulSoup, NavigableString, Tag

PRESERVED_CLASS_PATTERNS = [
    re.compile(pattern)
    for pattern in (
        r"^col(-xs|-sm|-md|-lg|-xl)?(-\d+)?$",
        r"^col(-xs|-sm|-md|-lg|-xl)?-offset(-\d+)?$",
        r"^row$",
        r"^container(-fluid)?$",
        r"^text-(left|center|right|justify|start|end)$",
        r"^float-(left|right|none|start|end)$",
        r"^d-(none|inline|inline-block|block|flex|inline-flex|grid|table|table-row|table-cell)$",
        r"^align-(baseline|top|middle|bottom|text-top|text-bottom|start|center|end)$",
        r"^justify-content-(start|end|center|between|around|evenly)$",
        r"^align-items-(start|end|center|baseline|stretch)$",
        r"^align-self-(auto|start|end|center|baseline|stretch)$",
        r"^flex-(row|row-reverse|column|column-reverse|wrap|nowrap|wrap-reverse|fill|grow-\d+|shrink-\d+)$",
        r"^m[tbrlxy]?-(\d+|auto)$",
        r"^p[tbrlxy]?-\d+$",
        r"^w-(\d+|auto)$",
        r"^h-(\d+|auto)$",
        r"^offset-\d+$",
        r"^order-\d+$",
        r"^table(-striped|-bordered|-responsive)?$",
    )
]

TABLE_CLASSES = ["table", "table-striped", "table-bordered"]
TABLE_WRAPPER_CLASS = "table-responsive"

BULLET_PATTERN = re.compile(r"^\s*[●•◦▪■◆▸►·]\s*")
NUMBER_PATTERN = re.compile(r"^\s*(\d{1,3}|[a-zA-Z])[.)]\s+")
HANGING_INDENT = re.compile(r"text-indent\s*:\s*-")
WORD_STYLE = re.compile(r"^\s*(mso-|white-space)", re.I)

EMPTY_REMOVABLE = {
    "div", "span", "p", "strong", "em", "b", "i", "u", "font", "small", "section",
    "article", "figure", "blockquote", "li", "ul", "ol", "h2", "h3", "h4", "h5", "h6",
}
IMPORTANT_CHILDREN = ["img", "iframe", "video", "audio", "table", "picture", "source", "embed", "object", "svg", "hr"]
BLOCK_TAGS = {"p", "div", "ul", "ol", "table", "h1", "h2", "h3", "h4", "h5", "h6", "blockquote"}


def is_preserved_class(name: str) -> bool:
    return any(pattern.match(name) for pattern in PRESERVED_CLASS_PATTERNS)


def preserved_classes(values: Iterable[str]) -> List[str]:
    return [name for name in values if is_preserved_class(name)]


def has_preserved_class(tag: Tag) -> bool:
    classes = tag.get("class", [])
    if isinstance(classes, str):
        classes = classes.split()
    return bool(preserved_classes(classes))


def strip_word_styles(tag: Tag) -> None:
    """Drop ``mso-*`` and ``white-space`` declarations from a subtree."""
    for element in [tag, *tag.find_all(True)]:
        style = element.get("style")
        if not style:
            continue
        kept = [decl for decl in style.split(";") if decl.strip() and not WORD_STYLE.match(decl)]
        if kept:
            element["style"] = ";".join(decl.strip() for decl in kept)
        else:
            del element["style"]


def _is_word_list_item(tag: Tag) -> bool:
    if tag.name != "p":
        return False
    style = (tag.get("style") or "").lower()
    if "mso-list" in style:
        return True
    if "margin-left" in style and HANGING_INDENT.search(style):
        return True
    return bool(BULLET_PATTERN.match(tag.get_text()))


def _strip_marker(item: Tag) -> bool:
    """Remove the leading bullet or number; True when the marker was a number."""
    for span in item.find_all("span", style=re.compile(r"mso-list\s*:\s*ignore", re.I)):
        span.decompose()
    for text in item.find_all(string=True):
        if not text.strip():
            continue
        numbered = bool(NUMBER_PATTERN.match(text))
        cleaned = NUMBER_PATTERN.sub("", text, count=1) if numbered else BULLET_PATTERN.sub("", text, count=1)
        text.replace_with(cleaned)
        return numbered
    return False


def _next_element(tag: Tag):
    sibling = tag.next_sibling
    while isinstance(sibling, NavigableString) and not sibling.strip():
        sibling = sibling.next_sibling
    return sibling


def convert_word_lists(soup: BeautifulSoup) -> int:
    """Turn runs of bullet-style paragraphs into real ``ul``/``ol`` lists."""
    converted = 0
    for paragraph in soup.find_all("p"):
        if paragraph.decomposed or paragraph.parent is None or not _is_word_list_item(paragraph):
            continue
        run = [paragraph]
        sibling = _next_element(paragraph)
        while isinstance(sibling, Tag) and _is_word_list_item(sibling):
            run.append(sibling)
            sibling = _next_element(sibling)

        items: List[Tag] = []
        numbered = []
        for member in run:
            numbered.append(_strip_marker(member))
            strip_word_styles(member)
            item = soup.new_tag("li")
            for child in list(member.contents):
                item.append(child.extract())
            items.append(item)
        container = soup.new_tag("ol" if all(numbered) else "ul")
        for item in items:
            container.append(item)
        run[0].insert_before(container)
        for member in run:
            member.decompose()
        converted += len(run)

    for existing in soup.find_all(["ul", "ol"]):
        strip_word_styles(existing)
    return converted


def normalize_tables(soup: BeautifulSoup) -> int:
    """Apply the theme's table classes, wrappers, header scopes and flat cells."""
    tables = soup.find_all("table")
    for table in tables:
        for attribute in ("style", "width", "height", "align", "bgcolor"):
            table.attrs.pop(attribute, None)
        table["class"] = list(TABLE_CLASSES)
        parent = table.parent
        parent_classes = parent.get("class", []) if isinstance(parent, Tag) else []
        if TABLE_WRAPPER_CLASS not in parent_classes:
            wrapper = soup.new_tag("div")
            wrapper["class"] = [TABLE_WRAPPER_CLASS]
            table.wrap(wrapper)

        for row_index, row in enumerate(table.find_all("tr")):
            in_head = row.find_parent("thead") is not None
            for cell in row.find_all(["td", "th"], recursive=False):
                for attribute in ("style", "class", "width", "height", "bgcolor", "valign", "align"):
                    cell.attrs.pop(attribute, None)
                if cell.name == "th":
                    cell["scope"] = "col" if in_head or row_index == 0 else "row"
                for paragraph in cell.find_all("p"):
                    if not any(child.name in BLOCK_TAGS for child in paragraph.find_all(True)):
                        paragraph.unwrap()
    return len(tables)


def _is_empty(tag: Tag) -> bool:
    text = tag.get_text().replace("\xa0", " ").strip()
    return not text and tag.find(IMPORTANT_CHILDREN) is None


def _meaningful_children(tag: Tag) -> List:
    return [
        child
        for child in tag.contents
        if not (isinstance(child, NavigableString) and not child.strip())
    ]


def collapse_empty_wrappers(soup: BeautifulSoup, max_passes: int = 5) -> int:
    """Repeatedly remove empty elements and redundant wrappers until stable."""
    total = 0
    for _ in range(max_passes):
        changed = 0
        for tag in soup.find_all(True):
            if tag.decomposed or tag.parent is None or has_preserved_class(tag):
                continue
            if tag.name in EMPTY_REMOVABLE and _is_empty(tag):
                tag.decompose()
                changed += 1
                continue
            if tag.name == "span" and not tag.attrs:
                tag.unwrap()
                changed += 1
                continue
            if tag.name == "div" and not tag.attrs:
                children = _meaningful_children(tag)
                if len(children) == 1 and isinstance(children[0], Tag) and children[0].name == "div":
                    tag.unwrap()
                    changed += 1
        total += changed
        if not changed:
            break
    return total
