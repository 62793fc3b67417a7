"""Tests for record extraction and the import CSV."""

from __future__ import annotations

import csv
from datetime import datetime

import pytest

from wp_porter.errors import ExportError
from wp_porter.exporter import (
    CSV_COLUMNS,
    GENERATION_SUMMARY,
    Exporter,
    derive_slug,
    extract_publish_date,
    extract_title,
    finalize_body,
    make_excerpt,
    parse_date,
    write_csv,
)
from wp_porter.fetcher import CAPTURE_INDEX
from wp_porter.models import ContentKind, ExportRecord
from wp_porter.sanitizer import PROCESSING_SUMMARY
from wp_porter.utils import read_json, write_json

NOW = datetime(2026, 3, 15, 10, 30, 0)


class TestSlugs:
    """Tests for derive_slug."""

    def test_dated_blog_filename(self, blog_key):
        """Test that prefixes, dates and extensions are stripped."""
        assert derive_slug(blog_key + ".html") == "best-2026-suv"

    def test_original_path(self):
        """Test slug derivation from the recorded URL path."""
        assert derive_slug("ignored", "/blog/2025/12/30/best-2026-suv.htm") == "best-2026-suv"

    def test_simple_page(self):
        """Test a plain page filename."""
        assert derive_slug("www.example.com_about-us.html") == "about-us"

    def test_title_fallback(self):
        """Test the title fallback when the path has no usable segment."""
        assert derive_slug("www.example.com_blog_2025_12.html", title="Holiday Hours") == "holiday-hours"

    def test_filename_fallback(self):
        """Test the last-resort slug."""
        assert derive_slug("www.example.com.html") == "www-example-com"


class TestTitles:
    """Tests for extract_title."""

    def test_heading(self, blog_key):
        """Test that the first h1 is used."""
        assert extract_title("<h1> Best  2026 SUV </h1>", blog_key) == "Best 2026 SUV"

    def test_title_class(self, blog_key):
        """Test title classes when no h1 is present."""
        assert extract_title('<div class="post-title">Winter Tires</div>', blog_key) == "Winter Tires"

    def test_configured_selector(self, blog_key):
        """Test a site-specific title selector."""
        html = '<h1>Site Name</h1><span class="headline">Real Title</span>'
        assert extract_title(html, blog_key, ".headline") == "Real Title"

    def test_filename_fallback(self, blog_key):
        """Test the title derived from the filename."""
        assert extract_title("<p>No title</p>", blog_key) == "Best 2026 Suv"


class TestDates:
    """Tests for publish date extraction."""

    def test_page_uses_previous_day(self):
        """Test that pages ignore body dates."""
        html = '<time datetime="2020-03-01T00:00:00">March 1, 2020</time>'
        assert extract_publish_date(html, ContentKind.PAGE, NOW) == datetime(2026, 3, 14, 10, 30, 0)

    def test_page_date_has_no_microseconds(self):
        """Test that the page date is truncated to whole seconds."""
        result = extract_publish_date("", ContentKind.PAGE, datetime(2026, 3, 15, 10, 30, 0, 123456))
        assert result.microsecond == 0

    @pytest.mark.parametrize(
        "html, expected",
        [
            ('<time datetime="2025-12-30T08:15:00">Dec 30</time>', datetime(2025, 12, 30, 8, 15)),
            ('<span class="post-date">12/30/2025</span>', datetime(2025, 12, 30)),
            ('<div class="date">Posted on December 30, 2025</div>', datetime(2025, 12, 30)),
            ('<meta property="article:published_time" content="2025-11-02">', datetime(2025, 11, 2)),
        ],
    )
    def test_post_dates(self, html, expected):
        """Test supported post date markup."""
        assert extract_publish_date(html, ContentKind.POST, NOW) == expected

    def test_post_without_date(self):
        """Test that undated posts use the run time."""
        assert extract_publish_date("<p>No date</p>", ContentKind.POST, NOW) == NOW

    def test_parse_date_requires_year(self):
        """Test that partial dates are rejected."""
        assert parse_date("December 30") is None
        assert parse_date("No date here") is None
        assert parse_date("December 30, 2025") == datetime(2025, 12, 30)


class TestBody:
    """Tests for body cleanup and excerpts."""

    def test_finalize_body(self):
        """Test removal of malformed tags and tag listings."""
        html = '<p>Text</p><imgnone src="x.jpg"></imgnone><p>Tags: Ford, SUV</p>'
        assert finalize_body(html) == "<p>Text</p>"

    def test_excerpt_truncated(self):
        """Test the excerpt length limit."""
        excerpt = make_excerpt("<p>" + "word " * 100 + "</p>")
        assert len(excerpt) <= 150
        assert excerpt.endswith("...")

    def test_short_excerpt(self):
        """Test that short text is used as-is."""
        assert make_excerpt("<p>Short <b>text</b></p>") == "Short text"


class TestCsv:
    """Tests for CSV serialization."""

    def _record(self, title, body="<p>Body, with comma</p>\n<p>Line two</p>"):
        return ExportRecord(
            title=title,
            slug="slug",
            excerpt="Excerpt",
            publish_date=NOW,
            body_html=body,
            kind=ContentKind.POST,
            category="Imported Content",
        )

    def test_quotes_doubled_and_round_trip(self, tmp_path):
        """Test quoting of every field and lossless reading."""
        path = tmp_path / "out.csv"
        records = [self._record('Joe "The Deal" Smith'), self._record("Joe's Deals")]
        write_csv(records, path)

        text = path.read_text(encoding="utf-8")
        assert text.startswith('"post_title","post_content","post_type"')
        assert '"Joe ""The Deal"" Smith"' in text
        assert '"Joe\'s Deals"' in text

        with path.open(encoding="utf-8", newline="") as handle:
            rows = list(csv.reader(handle))
        assert rows[0] == CSV_COLUMNS
        assert rows[1] == records[0].to_row()
        assert rows[2][0] == "Joe's Deals"
        assert rows[1][4] == "2026-03-15 10:30:00"
        assert rows[1][3] == "publish"


class TestExporter:
    """Tests for the export stage over cleaned documents."""

    @pytest.fixture
    def populated(self, config):
        """Cleaned documents with captures, classifications and URL mappings."""
        page_key = "www.example.com_about-us"
        post_key = "www.example.com_blog_best-2026-suv"
        captures = {
            page_key: "<h1>About Us</h1><p>Family owned since 1970.</p>",
            post_key: '<h1>Best 2026 SUV</h1><time datetime="2025-12-30T08:15:00">Dec 30</time><p>Roomy.</p>',
        }
        for key, html in captures.items():
            (config.capture_dir / f"{key}.html").write_text(html, encoding="utf-8")
        (config.clean_dir / f"{page_key}.html").write_text("<p>Family owned since 1970.</p>", encoding="utf-8")
        (config.clean_dir / f"{post_key}.html").write_text("<p>Roomy.</p>", encoding="utf-8")
        write_json(
            config.capture_dir / CAPTURE_INDEX,
            {
                "urlMappings": {
                    page_key: {"originalPath": "/about-us/"},
                    post_key: {"originalPath": "/blog/best-2026-suv/"},
                }
            },
        )
        write_json(
            config.clean_dir / PROCESSING_SUMMARY,
            {
                "results": [
                    {"filename": f"{page_key}.html", "type": "page", "confidence": 55, "reason": "About page"},
                    {"filename": f"{post_key}.html", "type": "post", "confidence": 95, "reason": "Blog path"},
                ]
            },
        )
        return config

    def test_export_rows(self, populated):
        """Test the rows written for a page and a post."""
        summary = Exporter(populated, now=NOW).export()
        assert summary.posts == 1
        assert summary.pages == 1

        with summary.output_path.open(encoding="utf-8", newline="") as handle:
            rows = list(csv.DictReader(handle))
        page, post = rows
        assert page["post_title"] == "About Us"
        assert page["post_type"] == "page"
        assert page["post_date"] == "2026-03-14 10:30:00"
        assert page["post_name"] == "about-us"
        assert page["post_category"] == ""
        assert post["post_title"] == "Best 2026 SUV"
        assert post["post_date"] == "2025-12-30 08:15:00"
        assert post["post_name"] == "best-2026-suv"
        assert post["post_category"] == "Imported Content"
        assert post["post_content"] == "<p>Roomy.</p>"

    def test_generation_summary(self, populated):
        """Test the summary written next to the export."""
        Exporter(populated, now=NOW).export()
        payload = read_json(populated.export_dir / GENERATION_SUMMARY)
        assert payload["totalFiles"] == 2
        assert payload["posts"] == 1
        assert payload["outputFile"] == "wordpress-import.csv"
        assert payload["items"][0]["confidence"] == 55

    def test_classifies_when_summary_missing(self, populated):
        """Test that documents are classified again without a processing summary."""
        (populated.clean_dir / PROCESSING_SUMMARY).unlink()
        records = Exporter(populated, now=NOW).collect()
        assert [record.kind for record in records] == [ContentKind.PAGE, ContentKind.POST]

    def test_no_documents(self, config):
        """Test that an empty clean directory is an error."""
        with pytest.raises(ExportError, match="No cleaned documents"):
            Exporter(config, now=NOW).export()
