"""Shared fixtures for the migration pipeline tests."""

from __future__ import annotations

import pytest

from wp_porter.config import MigrationConfig


@pytest.fixture
def config(tmp_path):
    """Provide a run configuration rooted in a temporary directory."""
    cfg = MigrationConfig(
        output_root=tmp_path / "output",
        retry_base_delay=0.0,
        settle_time=0.0,
    )
    cfg.ensure_dirs()
    return cfg


@pytest.fixture
def blog_key():
    """Source key of a dated blog article."""
    return "www.example.com_blog_2025_december_30_best-2026-suv.htm"
