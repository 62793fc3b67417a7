"""Optional external tools: AVIF conversion and caption metadata embedding."""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from PIL import Image, UnidentifiedImageError, features

logger = logging.getLogger("wp_porter")

TOOL_TIMEOUT_SECONDS = 60
JPEG_QUALITY = 90


@dataclass(frozen=True)
class ToolCapabilities:
    """Which optional post-processing steps are available for this run."""

    avif_converter: Optional[str] = None
    magick_path: Optional[str] = None
    exiftool_path: Optional[str] = None

    @property
    def can_convert_avif(self) -> bool:
        return self.avif_converter is not None

    @property
    def can_embed_metadata(self) -> bool:
        return self.exiftool_path is not None

    @classmethod
    def detect(cls) -> "ToolCapabilities":
        """Check Pillow and the PATH once; missing tools are warnings only."""
        converter: Optional[str] = None
        magick = shutil.which("magick") or shutil.which("convert")
        if features.check("avif"):
            converter = "pillow"
        elif magick:
            converter = "imagemagick"
        else:
            logger.warning("No AVIF converter available; AVIF images will be kept as-is")
        exiftool = shutil.which("exiftool")
        if not exiftool:
            logger.warning("exiftool not found; alt text will not be embedded in images")
        capabilities = cls(avif_converter=converter, magick_path=magick, exiftool_path=exiftool)
        logger.debug("Detected tool capabilities: %s", capabilities)
        return capabilities


def convert_avif_to_jpeg(source: Path, capabilities: ToolCapabilities) -> Optional[Path]:
    """Convert an AVIF file to JPEG next to it and delete the source.

    Returns the JPEG path, or None when conversion is unavailable or failed.
    """
    if not capabilities.can_convert_avif:
        return None
    target = source.with_suffix(".jpg")
    try:
        if capabilities.avif_converter == "pillow":
            with Image.open(source) as image:
                image.convert("RGB").save(target, "JPEG", quality=JPEG_QUALITY)
        else:
            subprocess.run(
                [capabilities.magick_path, str(source), str(target)],
                check=True,
                capture_output=True,
                timeout=TOOL_TIMEOUT_SECONDS,
            )
    except (OSError, UnidentifiedImageError, subprocess.SubprocessError) as exc:
        logger.warning("Could not convert %s to JPEG: %s", source.name, exc)
        target.unlink(missing_ok=True)
        return None
    if source != target:
        source.unlink(missing_ok=True)
    logger.info("Converted %s to %s", source.name, target.name)
    return target


def embed_alt_text(path: Path, alt_text: str, capabilities: ToolCapabilities) -> bool:
    """Write alt text as IPTC caption/headline and XMP description. Best effort."""
    if not capabilities.can_embed_metadata or not alt_text:
        return False
    if path.suffix.lower() in {".avif", ".svg", ".ico"}:
        return False
    command = [
        capabilities.exiftool_path,
        "-overwrite_original",
        f"-IPTC:Caption-Abstract={alt_text}",
        f"-IPTC:Headline={alt_text}",
        f"-XMP-dc:Description={alt_text}",
        str(path),
    ]
    try:
        subprocess.run(command, check=True, capture_output=True, timeout=TOOL_TIMEOUT_SECONDS)
    except (OSError, subprocess.SubprocessError) as exc:
        logger.warning("Could not embed metadata in %s: %s", path.name, exc)
        return False
    return True
