"""Tests for image discovery and filtering."""

from __future__ import annotations

from wp_porter.image_scan import (
    background_urls,
    collect_references,
    filter_reason,
    resolve_image_url,
    scan_document,
)
from wp_porter.models import DiscoveryMethod

KEY = "www.example.com_blog_2025_december_30_best-2026-suv.htm"

PAGE = """
<header><img src="/img/logo.png" alt="Logo"></header>
<div class="post">
  <img src="https://cdn.example.com/photos/suv.jpg?w=300" alt="SUV">
  <img data-src="https://cdn.example.com/photos/suv.jpg" alt="SUV again">
  <img src="https://cdn.example.com/uploads/avatar-jane.jpg" alt="Jane">
  <img srcset="/img/interior-800.jpg 800w, /img/interior-400.jpg 400w">
  <div class="hero" style="background-image: url('https://cdn.example.com/hero.jpg?v=2')" aria-label="Hero"></div>
  <div class="dataone_load"><img src="https://cdn.example.com/feed.jpg"></div>
  <img src="https://cdn.example.com/a.jpg?x=1&amp;y=2">
</div>
"""


class TestCollectReferences:
    """Tests for collect_references."""

    def test_kept_references_deduplicated(self):
        """Test that query-string variants collapse to one download."""
        result = collect_references([(KEY, PAGE)])
        kept = [ref.normalized_url for ref in result.kept]
        assert kept == [
            "https://cdn.example.com/photos/suv.jpg",
            "https://www.example.com/img/interior-800.jpg",
            "https://cdn.example.com/a.jpg",
            "https://cdn.example.com/hero.jpg",
        ]
        assert result.duplicates == 1
        assert result.kept[0].origin_url == "https://cdn.example.com/photos/suv.jpg?w=300"

    def test_dropped_references_carry_reasons(self):
        """Test that chrome, avatar and excluded-container images are dropped."""
        result = collect_references([(KEY, PAGE)])
        reasons = {ref.normalized_url: ref.drop_reason for ref in result.dropped}
        assert reasons["https://www.example.com/img/logo.png"] == "inside <header>"
        assert reasons["https://cdn.example.com/uploads/avatar-jane.jpg"] == "URL matches avatar"
        assert (
            reasons["https://cdn.example.com/feed.jpg"]
            == "inside excluded container .dataone_load"
        )
        assert len(result.dropped) == 3

    def test_first_document_wins(self):
        """Test cross-document deduplication keeps the first source key."""
        html = '<img src="https://cdn.example.com/shared.jpg">'
        result = collect_references([("www.example.com_one", html), ("www.example.com_two", html)])
        assert len(result.kept) == 1
        assert result.kept[0].source_key == "www.example.com_one"

    def test_kept_elsewhere_overrides_drop(self):
        """Test that an image kept in one document is not listed as dropped."""
        dropped = '<footer><img src="https://cdn.example.com/badge.jpg"></footer>'
        kept = '<p><img src="https://cdn.example.com/badge.jpg"></p>'
        result = collect_references([("www.example.com_a", dropped), ("www.example.com_b", kept)])
        assert [ref.normalized_url for ref in result.kept] == ["https://cdn.example.com/badge.jpg"]
        assert result.dropped == []


class TestScanDocument:
    """Tests for scan_document."""

    def test_background_reference(self):
        """Test discovery of inline background images."""
        refs = scan_document(PAGE, KEY)
        backgrounds = [ref for ref in refs if ref.discovered_via is DiscoveryMethod.BACKGROUND]
        assert len(backgrounds) == 1
        assert backgrounds[0].alt_text == "Hero"

    def test_entities_decoded(self):
        """Test that encoded ampersands are decoded in the origin URL."""
        refs = scan_document(PAGE, KEY)
        assert "https://cdn.example.com/a.jpg?x=1&y=2" in [ref.origin_url for ref in refs]

    def test_malformed_tag(self):
        """Test recovery of sources from malformed image tags."""
        html = '<p>Text</p><imgnone src="https://cdn.example.com/broken.jpg" alt="Broken">'
        refs = scan_document(html, KEY)
        assert len(refs) == 1
        assert refs[0].discovered_via is DiscoveryMethod.MALFORMED_TAG
        assert refs[0].alt_text == "Broken"
        assert refs[0].keep

    def test_data_uris_ignored(self):
        """Test that inline data images produce no reference."""
        assert scan_document('<img src="data:image/png;base64,AAAA">', KEY) == []


class TestFilterReason:
    """Tests for filter_reason without markup context."""

    def test_url_pattern(self):
        """Test URL-based exclusion."""
        assert filter_reason("https://x.com/team/headshot.jpg") == "URL matches headshot"

    def test_alt_pattern(self):
        """Test alt text exclusion."""
        reason = filter_reason("https://x.com/car.jpg", alt_text="Customer photo from review")
        assert reason.startswith("alt/title matches")

    def test_content_image_kept(self):
        """Test that an ordinary image is kept."""
        assert filter_reason("https://x.com/2026-suv-front.jpg", alt_text="2026 SUV") is None


class TestResolveImageUrl:
    """Tests for resolve_image_url."""

    def test_protocol_relative(self):
        """Test that protocol-relative URLs use https."""
        assert resolve_image_url("//cdn.x.com/a.jpg", None) == "https://cdn.x.com/a.jpg"

    def test_relative_needs_base(self):
        """Test relative resolution against the page host."""
        assert resolve_image_url("img/a.jpg", "https://www.example.com") == "https://www.example.com/img/a.jpg"
        assert resolve_image_url("/a.jpg", None) is None

    def test_inline_sources_rejected(self):
        """Test that data and blob URLs cannot be fetched."""
        assert resolve_image_url("data:image/png;base64,xx", "https://www.example.com") is None
        assert resolve_image_url("blob:https://x.com/1", "https://www.example.com") is None


def test_background_urls():
    """Test extraction of URLs from style declarations."""
    style = "color: red; background: #fff url(\"/img/bg.png\") no-repeat;"
    assert background_urls(style) == ["/img/bg.png"]
