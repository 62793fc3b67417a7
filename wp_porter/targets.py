"""Parsing of the operator's newline-delimited URL list."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List

from .models import ContentKind, ScrapeTarget
from .utils import source_key_from_url

logger = logging.getLogger("wp_porter")

URL_PATTERN = re.compile(r"^https?://[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
TRAILING_PUNCTUATION = re.compile(r"[.,;:!?)]+$")


def parse_targets(lines: Iterable[str]) -> List[ScrapeTarget]:
    """Turn URL list lines into unique scrape targets, in input order."""
    targets: List[ScrapeTarget] = []
    seen = set()
    for lineno, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line or line.startswith("#") or line.startswith("//"):
            continue
        parts = line.split()
        url = TRAILING_PUNCTUATION.sub("", parts[0])
        if not URL_PATTERN.match(url):
            logger.warning("Skipping invalid URL on line %d: %s", lineno, parts[0])
            continue
        kind = ContentKind.parse(parts[1]) if len(parts) > 1 else None
        if len(parts) > 1 and kind is None:
            logger.warning("Ignoring unknown content type %r on line %d", parts[1], lineno)
        if url in seen:
            logger.debug("Ignoring duplicate URL %s", url)
            continue
        seen.add(url)
        targets.append(ScrapeTarget(url=url, explicit_kind=kind))
    return targets


def load_targets(path: Path) -> List[ScrapeTarget]:
    return parse_targets(path.read_text(encoding="utf-8").splitlines())


def content_type_mapping(targets: Iterable[ScrapeTarget]) -> Dict[str, ContentKind]:
    """Explicit kinds keyed by the source key the page will be captured under."""
    return {
        source_key_from_url(target.url): target.explicit_kind
        for target in targets
        if target.explicit_kind is not None
    }
