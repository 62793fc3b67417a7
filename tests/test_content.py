"""Tests for content-region discovery."""

from __future__ import annotations

from wp_porter.config import SiteOverrides
from wp_porter.content import (
    POST_SELECTORS,
    build_selector_chain,
    find_content_region,
    strip_volatile_markup,
)
from wp_porter.models import ContentKind

LONG_TEXT = "The new crossover offers plenty of cargo room and a smooth ride. " * 5


class TestSelectorChain:
    """Tests for build_selector_chain."""

    def test_overrides_come_first(self):
        """Test that site selectors precede the defaults."""
        site = SiteOverrides(post_content_selector=".my-post", content_selectors=[".alt"])
        chain = build_selector_chain(ContentKind.POST, site)
        assert chain[:2] == [".my-post", ".alt"]
        assert chain[2:] == POST_SELECTORS

    def test_unknown_kind_tries_both_lists(self):
        """Test the combined chain when no kind is known."""
        chain = build_selector_chain(None, SiteOverrides())
        assert chain[0] == ".blog-post-detail"
        assert ".main" in chain
        assert chain.count("body") == 1
        assert chain[-1] == "body"


class TestFindContentRegion:
    """Tests for find_content_region."""

    def test_trusted_selector_matches(self):
        """Test that a trusted selector wins when long enough."""
        html = f'<body><nav>Menu</nav><div class="entry-content"><p>{LONG_TEXT}</p></div></body>'
        region = find_content_region(html, POST_SELECTORS)
        assert region is not None
        assert region.selector == ".entry-content"
        assert region.html.startswith("<p>")

    def test_too_short_returns_none(self):
        """Test that pages without enough content yield no region."""
        html = "<body><main><p>short</p></main></body>"
        assert find_content_region(html, ["main", "body"], min_length=100) is None

    def test_thin_untrusted_region_skipped(self):
        """Test that thin matches of generic selectors fall through to body."""
        html = f'<body><div class="main-content"><p>{LONG_TEXT}</p></div></body>'
        region = find_content_region(html, [".main-content", "body"])
        assert region.selector == "body"

    def test_navigation_region_skipped(self):
        """Test that chrome-looking regions are rejected."""
        html = f'<body><div class="content site-nav"><p>{LONG_TEXT * 5}</p><h2>Links</h2></div></body>'
        region = find_content_region(html, [".content", "body"])
        assert region.selector == "body"

    def test_invalid_selector_ignored(self):
        """Test that a malformed selector does not abort discovery."""
        html = f"<body><article><p>{LONG_TEXT}</p></article></body>"
        region = find_content_region(html, ["div[[", "article"])
        assert region.selector == "article"


class TestStripVolatileMarkup:
    """Tests for strip_volatile_markup."""

    def test_scripts_styles_and_handlers_removed(self):
        """Test removal of executable markup while keeping noscript content."""
        html = (
            '<p onclick="track()">Hi</p><script>alert(1)</script>'
            '<style>p { color: red; }</style><noscript><img src="a.jpg"></noscript>'
        )
        cleaned = strip_volatile_markup(html)
        assert "<script" not in cleaned
        assert "<style" not in cleaned
        assert "onclick" not in cleaned
        assert "noscript" not in cleaned
        assert 'src="a.jpg"' in cleaned
        assert "Hi" in cleaned
