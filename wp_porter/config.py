"""Configuration objects and constants for a migration run."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .models import ContentKind
from .utils import read_json

logger = logging.getLogger("wp_porter")

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36"
)
DEFAULT_UPLOAD_BASE = "https://di-uploads-development.dealerinspire.com"
DEFAULT_POST_CATEGORY = "Imported Content"
EXPORT_FILENAME = "wordpress-import.csv"


def _env_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(value: Optional[str], default: int) -> int:
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring non-numeric setting %r", value)
        return default


def _env_float(value: Optional[str], default: float) -> float:
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Ignoring non-numeric setting %r", value)
        return default


def _as_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(item) for item in value]


@dataclass
class SiteOverrides:
    """Per-site profile tweaking selectors, removal lists and classification."""

    post_selector: Optional[str] = None
    page_selector: Optional[str] = None
    content_selectors: List[str] = field(default_factory=list)
    post_content_selector: Optional[str] = None
    page_content_selector: Optional[str] = None
    remove_selectors: List[str] = field(default_factory=list)
    post_remove_selectors: List[str] = field(default_factory=list)
    page_remove_selectors: List[str] = field(default_factory=list)
    date_selector: Optional[str] = None
    title_selector: Optional[str] = None
    excluded_image_containers: List[str] = field(default_factory=list)
    post_path_markers: List[str] = field(default_factory=lambda: ["blog"])
    page_path_markers: List[str] = field(default_factory=list)
    content_types: Dict[str, ContentKind] = field(default_factory=dict)
    boilerplate_rules: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SiteOverrides":
        content_types = {
            key: ContentKind.parse(value)
            for key, value in (data.get("content_types") or {}).items()
        }
        markers = data.get("post_path_markers")
        return cls(
            post_selector=data.get("post_selector") or None,
            page_selector=data.get("page_selector") or None,
            content_selectors=_as_list(data.get("content_selectors")),
            post_content_selector=data.get("post_content_selector") or None,
            page_content_selector=data.get("page_content_selector") or None,
            remove_selectors=_as_list(data.get("remove_selectors")),
            post_remove_selectors=_as_list(data.get("post_remove_selectors")),
            page_remove_selectors=_as_list(data.get("page_remove_selectors")),
            date_selector=data.get("date_selector") or None,
            title_selector=data.get("title_selector") or None,
            excluded_image_containers=_as_list(data.get("excluded_image_containers")),
            post_path_markers=["blog"] if markers is None else _as_list(markers),
            page_path_markers=_as_list(data.get("page_path_markers")),
            content_types={k: v for k, v in content_types.items() if v is not None},
            boilerplate_rules=list(data.get("boilerplate_rules") or []),
        )

    @classmethod
    def load(cls, path: Path) -> "SiteOverrides":
        data = read_json(path)
        if not isinstance(data, dict):
            raise ValueError(f"Site profile {path} must contain a JSON object")
        return cls.from_dict(data)


@dataclass
class MigrationConfig:
    """Top-level settings shared by every stage of a run."""

    output_root: Path
    headless: bool = True
    page_timeout: float = 60.0
    settle_time: float = 3.0
    fetch_attempts: int = 2
    user_agent: str = DEFAULT_USER_AGENT
    images_enabled: bool = True
    asset_concurrency: int = 5
    asset_timeout: float = 30.0
    asset_attempts: int = 2
    convert_avif: bool = True
    retry_base_delay: float = 1.0
    min_content_length: int = 100
    dealer_slug: Optional[str] = None
    upload_year: Optional[str] = None
    upload_month: Optional[str] = None
    upload_base: str = DEFAULT_UPLOAD_BASE
    post_category: str = DEFAULT_POST_CATEGORY
    export_filename: str = EXPORT_FILENAME
    site: SiteOverrides = field(default_factory=SiteOverrides)

    def __post_init__(self) -> None:
        self.output_root = Path(self.output_root)
        now = datetime.now()
        if self.dealer_slug and not self.upload_year:
            self.upload_year = f"{now.year:04d}"
        if self.dealer_slug and not self.upload_month:
            self.upload_month = f"{now.month:02d}"
        if self.upload_month and len(self.upload_month) == 1:
            self.upload_month = f"0{self.upload_month}"

    @property
    def capture_dir(self) -> Path:
        return self.output_root / "captured"

    @property
    def image_dir(self) -> Path:
        return self.output_root / "images"

    @property
    def clean_dir(self) -> Path:
        return self.output_root / "clean"

    @property
    def export_dir(self) -> Path:
        return self.output_root / "export"

    def ensure_dirs(self) -> None:
        for directory in (self.capture_dir, self.image_dir, self.clean_dir, self.export_dir):
            directory.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        output_root: Optional[Path] = None,
        site: Optional[SiteOverrides] = None,
    ) -> "MigrationConfig":
        """Build the run configuration from environment-style settings."""
        env = os.environ if environ is None else environ
        root = output_root or Path(env.get("OUTPUT_DIR") or "output")
        if site is None:
            profile = env.get("SITE_PROFILE")
            site = SiteOverrides.load(Path(profile)) if profile else SiteOverrides()
        return cls(
            output_root=Path(root),
            headless=_env_bool(env.get("SCRAPER_HEADLESS"), True),
            page_timeout=_env_int(env.get("SCRAPER_TIMEOUT"), 60000) / 1000,
            settle_time=_env_int(env.get("SCRAPER_WAIT_TIME"), 3000) / 1000,
            fetch_attempts=max(1, _env_int(env.get("SCRAPER_MAX_RETRIES"), 2)),
            user_agent=env.get("SCRAPER_USER_AGENT") or DEFAULT_USER_AGENT,
            images_enabled=not _env_bool(env.get("BYPASS_IMAGES"), False),
            asset_concurrency=max(1, _env_int(env.get("IMAGES_MAX_CONCURRENT"), 5)),
            asset_timeout=_env_int(env.get("IMAGES_TIMEOUT"), 30000) / 1000,
            asset_attempts=max(1, _env_int(env.get("IMAGES_RETRY_ATTEMPTS"), 2)),
            convert_avif=_env_bool(env.get("IMAGES_AUTO_CONVERT_AVIF"), True),
            retry_base_delay=_env_float(env.get("RETRY_BASE_DELAY"), 1.0),
            dealer_slug=env.get("DEALER_SLUG") or None,
            upload_year=env.get("IMAGE_YEAR") or None,
            upload_month=env.get("IMAGE_MONTH") or None,
            upload_base=(env.get("IMAGE_UPLOAD_BASE") or DEFAULT_UPLOAD_BASE).rstrip("/"),
            site=site,
        )
