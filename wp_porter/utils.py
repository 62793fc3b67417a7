"""Utility helpers for string normalization and path handling."""

from __future__ import annotations

import html
import json
import re
from pathlib import Path
from typing import Any, List, Optional
from urllib.parse import urlparse

SLUG_PATTERN = re.compile(r"[^a-z0-9]+")
SOURCE_KEY_PATTERN = re.compile(r"[^a-zA-Z0-9.-]")
MAX_SOURCE_KEY_LENGTH = 200
MAX_ARTICLE_SLUG_LENGTH = 50

DOCUMENT_EXTENSIONS = (".html", ".htm", ".php", ".aspx", ".asp", ".jsp", ".shtml")
MONTH_NAMES = (
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
)
_DATE_TOKEN = re.compile(
    r"^(?:(?:19|20)\d{2}|\d{1,2}|" + "|".join(MONTH_NAMES) + r")$", re.IGNORECASE
)


def slugify(value: str, fallback: str = "page") -> str:
    """Generate a filesystem-friendly slug using ASCII characters only."""
    normalized = value.encode("ascii", "ignore").decode("ascii")
    normalized = normalized.lower()
    normalized = SLUG_PATTERN.sub("-", normalized).strip("-")
    return normalized or fallback


def source_key_from_url(url: str) -> str:
    """Derive the filesystem-safe key a captured page is stored under."""
    key = re.sub(r"^https?://", "", url.strip(), flags=re.IGNORECASE)
    key = SOURCE_KEY_PATTERN.sub("_", key)
    key = re.sub(r"_+", "_", key).strip("_")
    return key[:MAX_SOURCE_KEY_LENGTH]


def strip_document_extension(value: str) -> str:
    """Remove trailing document extensions (``.htm.html`` included)."""
    lowered = value.lower()
    changed = True
    while changed:
        changed = False
        for ext in DOCUMENT_EXTENSIONS:
            if lowered.endswith(ext):
                value = value[: -len(ext)]
                lowered = lowered[: -len(ext)]
                changed = True
    return value


def is_date_token(token: str) -> bool:
    return bool(_DATE_TOKEN.match(token))


def article_slug(source_key: str) -> str:
    """Short prefix used for the image files belonging to a captured page."""
    stem = strip_document_extension(source_key)
    parts = [
        part
        for part in stem.split("_")
        if part and "." not in part and part.lower() != "blog" and not is_date_token(part)
    ]
    slug = "-".join(parts).lower()
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    slug = re.sub(r"-{2,}", "-", slug)
    slug = slug[:MAX_ARTICLE_SLUG_LENGTH].strip("-")
    if len(slug) < 3:
        fallback = re.sub(r"[^a-z0-9]", "", source_key.lower())[:8]
        slug = f"img-{fallback}"
    return slug


def base_domain_from_key(source_key: str) -> Optional[str]:
    """Return ``https://host`` when the key starts with a host name."""
    first = source_key.split("_", 1)[0]
    if "." in first and not first.lower().endswith(DOCUMENT_EXTENSIONS):
        return f"https://{first}"
    return None


def normalize_image_url(url: str) -> str:
    """Drop query string and fragment so responsive variants collapse together."""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return url.split("?", 1)[0].split("#", 1)[0]
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}"


def decode_entities(value: str) -> str:
    """Decode HTML entities, including double-encoded ``&amp;amp;`` sequences."""
    previous = None
    while previous != value:
        previous = value
        value = html.unescape(value)
    return value


def strip_www(host: str) -> str:
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


def split_path_segments(path: str) -> List[str]:
    return [segment for segment in path.split("/") if segment]


def format_bytes(size: int) -> str:
    """Render a byte count for summaries (``12.3 KB``)."""
    if size < 1024:
        return f"{size} B"
    value = size / 1024
    for unit in ("KB", "MB"):
        if value < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


def write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")


def read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))
