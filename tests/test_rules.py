"""Tests for boilerplate removal rules."""

from __future__ import annotations

from bs4 import BeautifulSoup

from wp_porter.models import ContentKind
from wp_porter.rules import DEFAULT_RULES, BoilerplateRule, RuleAction, apply_rules, load_rules


def _apply(html, kind=ContentKind.POST, rules=DEFAULT_RULES):
    soup = BeautifulSoup(html, "html.parser")
    counts = apply_rules(soup, rules, kind)
    return soup, counts


class TestDefaultRules:
    """Tests for the built-in rule table."""

    def test_video_iframes_kept(self):
        """Test that only non-video iframes are removed."""
        soup, counts = _apply(
            '<iframe src="https://www.youtube.com/embed/abc"></iframe>'
            '<iframe src="https://maps.google.com/?q=dealer"></iframe>'
        )
        assert [iframe["src"] for iframe in soup.find_all("iframe")] == ["https://www.youtube.com/embed/abc"]
        assert counts["non-video-iframes"] == 1

    def test_dealership_section(self):
        """Test that a visit-us section is removed up to the next heading."""
        soup, _ = _apply("<h2>Visit Us Today</h2><p>123 Main Street</p><ul><li>Hours</li></ul><h3>Next</h3><p>Keep</p>")
        assert soup.get_text(" ", strip=True) == "Next Keep"

    def test_sidebar_heading_with_list(self):
        """Test that a sidebar heading takes its following list with it."""
        soup, counts = _apply("<p>Body</p><h3>Recent Posts</h3><ul><li>Other post</li></ul>")
        assert soup.get_text(" ", strip=True) == "Body"
        assert counts["blog-sidebar-headings"] == 2

    def test_comparison_paragraph_kept(self):
        """Test that article prose mentioning reviews survives."""
        soup, _ = _apply("<p>Customer review scores for the sedan vs the coupe favor interior room.</p>")
        assert soup.find("p") is not None

    def test_opening_hours_snippet(self):
        """Test removal of short opening-hours paragraphs."""
        soup, _ = _apply("<p>Monday - Friday 9:00 AM to 8:00 PM</p><p>Body</p>")
        assert soup.get_text(" ", strip=True) == "Body"

    def test_pages_untouched(self):
        """Test that default rules do not run for pages."""
        html = "<h2>Customer Reviews</h2><p>Great!</p>"
        soup, counts = _apply(html, ContentKind.PAGE)
        assert counts == {}
        assert "Customer Reviews" in soup.get_text()


class TestCustomRules:
    """Tests for site-profile rules."""

    def test_from_dict(self):
        """Test building a rule for both kinds from JSON data."""
        rule = BoilerplateRule.from_dict(
            {"selector": ".promo", "patterns": ["limited time"], "kinds": ["post", "page"]}
        )
        assert rule.name == ".promo"
        assert rule.action is RuleAction.REMOVE
        soup, counts = _apply(
            '<div class="promo">Limited time offer</div><div class="promo">Our history</div>',
            ContentKind.PAGE,
            [rule],
        )
        assert soup.get_text(" ", strip=True) == "Our history"
        assert counts == {".promo": 1}

    def test_invalid_rules_ignored(self):
        """Test that malformed profile rules are skipped."""
        rules = load_rules([{"patterns": ["x"]}, {"selector": "p", "patterns": ["("]}, {"selector": "p"}])
        assert len(rules) == len(DEFAULT_RULES) + 1
