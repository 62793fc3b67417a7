"""Command-line entry point for the site migration pipeline."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from dataclasses import replace
from pathlib import Path
from typing import Iterable, List, Sequence

from dotenv import find_dotenv, load_dotenv

from .config import MigrationConfig, SiteOverrides
from .errors import ExportError
from .exporter import run_export
from .fetcher import run_fetch
from .images import run_images
from .models import ScrapeTarget
from .pipeline import run_pipeline
from .sanitizer import run_sanitize
from .targets import load_targets, parse_targets

logger = logging.getLogger("wp_porter.cli")


def _ensure_command_prefix(argv: Sequence[str], commands: Iterable[str]) -> Sequence[str]:
    if not argv:
        return argv
    first = argv[0]
    if first in commands or first.startswith("-"):
        return argv
    return ("run", *argv)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Directory for captured pages, images, cleaned HTML and the export (default: $OUTPUT_DIR or ./output)",
    )
    parser.add_argument(
        "--profile",
        type=Path,
        default=None,
        help="JSON site profile with selector overrides (default: $SITE_PROFILE)",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load settings from this .env file before reading the environment",
    )
    parser.add_argument(
        "--dealer-slug",
        default=None,
        help="Dealer slug used in rewritten image upload URLs",
    )
    parser.add_argument("--year", default=None, help="Upload year for rewritten image URLs")
    parser.add_argument("--month", default=None, help="Upload month for rewritten image URLs")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def _add_fetch_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("urls", nargs="*", help="URLs to capture, optionally suffixed by page/post")
    parser.add_argument(
        "--urls-file",
        type=Path,
        default=None,
        help="Newline-delimited URL list ('# comments' allowed, optional page/post token)",
    )
    parser.add_argument(
        "--headful",
        action="store_true",
        help="Show the browser window while rendering",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Capture legacy site pages, clean them and build a WordPress import file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run every stage from capture to export")
    _add_common_arguments(run_parser)
    _add_fetch_arguments(run_parser)
    run_parser.add_argument("--bypass-images", action="store_true", help="Skip image downloads")
    run_parser.add_argument(
        "--keep-previous",
        action="store_true",
        help="Do not empty capture, clean and export directories before running",
    )

    fetch_parser = subparsers.add_parser("fetch", help="Capture pages only")
    _add_common_arguments(fetch_parser)
    _add_fetch_arguments(fetch_parser)

    images_parser = subparsers.add_parser("images", help="Download images referenced by captured pages")
    _add_common_arguments(images_parser)

    sanitize_parser = subparsers.add_parser("sanitize", help="Classify and clean captured pages")
    _add_common_arguments(sanitize_parser)

    export_parser = subparsers.add_parser("export", help="Write the import CSV from cleaned pages")
    _add_common_arguments(export_parser)

    argv = list(sys.argv[1:] if argv is None else argv)
    argv = list(_ensure_command_prefix(argv, subparsers.choices.keys()))
    return parser.parse_args(argv)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


def build_config(args: argparse.Namespace) -> MigrationConfig:
    if args.env_file is not None:
        load_dotenv(args.env_file, override=False)
    else:
        load_dotenv(find_dotenv(usecwd=True), override=False)
    site = SiteOverrides.load(args.profile) if args.profile else None
    config = MigrationConfig.from_env(output_root=args.output, site=site)
    overrides = {}
    if getattr(args, "headful", False):
        overrides["headless"] = False
    if getattr(args, "bypass_images", False):
        overrides["images_enabled"] = False
    if args.dealer_slug:
        overrides["dealer_slug"] = args.dealer_slug
    if args.year:
        overrides["upload_year"] = args.year
    if args.month:
        overrides["upload_month"] = args.month
    return replace(config, **overrides) if overrides else config


def collect_targets(args: argparse.Namespace) -> List[ScrapeTarget]:
    targets: List[ScrapeTarget] = []
    if args.urls_file is not None:
        targets.extend(load_targets(args.urls_file))
    if args.urls:
        targets.extend(parse_targets(_pair_kind_tokens(args.urls)))
    unique: List[ScrapeTarget] = []
    seen = set()
    for target in targets:
        if target.url not in seen:
            seen.add(target.url)
            unique.append(target)
    return unique


def _pair_kind_tokens(tokens: Sequence[str]) -> List[str]:
    """Join ``URL page`` pairs given as separate arguments into single lines."""
    lines: List[str] = []
    for token in tokens:
        if lines and token.lower() in {"page", "post"}:
            lines[-1] = f"{lines[-1]} {token}"
        else:
            lines.append(token)
    return lines


def _run_all(args: argparse.Namespace, config: MigrationConfig) -> int:
    targets = collect_targets(args)
    if not targets:
        logger.error("No valid URLs supplied")
        return 1
    overall_start = time.perf_counter()
    try:
        result = asyncio.run(run_pipeline(targets, config, fresh=not args.keep_previous))
    except ExportError as exc:
        logger.error("Run aborted: %s", exc.describe())
        return 1
    total_elapsed = time.perf_counter() - overall_start
    logger.info(
        "Finished in %.2fs (%s: %d/%d pages captured, %d records exported, %d item failures)",
        total_elapsed,
        result.status,
        result.fetch.successful,
        result.fetch.total,
        len(result.export.records),
        result.failed_items,
    )
    for failure in result.fetch.failures:
        logger.warning("Failed URL %s: %s", failure.url, failure.error)
    return 0


def _run_fetch(args: argparse.Namespace, config: MigrationConfig) -> int:
    targets = collect_targets(args)
    if not targets:
        logger.error("No valid URLs supplied")
        return 1
    config.ensure_dirs()
    summary = asyncio.run(run_fetch(targets, config))
    for failure in summary.failures:
        logger.warning("Failed URL %s: %s", failure.url, failure.error)
    return 0


def _run_images(args: argparse.Namespace, config: MigrationConfig) -> int:
    manifest = asyncio.run(run_images(config))
    logger.info("Images: %d downloaded, %d failed", len(manifest.images), len(manifest.errors))
    return 0


def _run_sanitize(args: argparse.Namespace, config: MigrationConfig) -> int:
    summary = run_sanitize(config)
    logger.info("Cleaned %d documents, %d failed", len(summary.documents), len(summary.failures))
    return 0


def _run_export(args: argparse.Namespace, config: MigrationConfig) -> int:
    try:
        summary = run_export(config)
    except ExportError as exc:
        logger.error("Export failed: %s", exc.describe())
        return 1
    logger.info("Export written to %s", summary.output_path)
    return 0


HANDLERS = {
    "run": _run_all,
    "fetch": _run_fetch,
    "images": _run_images,
    "sanitize": _run_sanitize,
    "export": _run_export,
}


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    _configure_logging(args.verbose)
    config = build_config(args)
    return HANDLERS[args.command](args, config)


if __name__ == "__main__":
    sys.exit(main())
