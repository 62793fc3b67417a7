"""Tests for URL list parsing."""

from __future__ import annotations

from wp_porter.models import ContentKind
from wp_porter.targets import content_type_mapping, load_targets, parse_targets

URL_LIST = [
    "# Pages to migrate",
    "// legacy comment style",
    "",
    "https://www.example.com/about-us/ page",
    "https://www.example.com/blog/post-1 POST",
    "https://www.example.com/about-us/",
    "not a url",
    "https://www.example.com/specials/).",
]


class TestParseTargets:
    """Tests for parse_targets."""

    def test_comments_duplicates_and_invalid_lines_skipped(self):
        """Test that only valid, unique URLs survive."""
        targets = parse_targets(URL_LIST)
        assert [t.url for t in targets] == [
            "https://www.example.com/about-us/",
            "https://www.example.com/blog/post-1",
            "https://www.example.com/specials/",
        ]

    def test_kind_tokens_case_insensitive(self):
        """Test explicit kinds parsed from the second token."""
        targets = parse_targets(URL_LIST)
        assert targets[0].explicit_kind is ContentKind.PAGE
        assert targets[1].explicit_kind is ContentKind.POST
        assert targets[2].explicit_kind is None

    def test_unknown_kind_ignored(self):
        """Test that an unknown kind token leaves the kind unset."""
        targets = parse_targets(["https://www.example.com/x widget"])
        assert targets[0].explicit_kind is None

    def test_content_type_mapping(self):
        """Test the manual mapping keyed by source key."""
        mapping = content_type_mapping(parse_targets(URL_LIST))
        assert mapping == {
            "www.example.com_about-us": ContentKind.PAGE,
            "www.example.com_blog_post-1": ContentKind.POST,
        }

    def test_load_targets_from_file(self, tmp_path):
        """Test reading a URL list file."""
        path = tmp_path / "urls.txt"
        path.write_text("\n".join(URL_LIST), encoding="utf-8")
        assert len(load_targets(path)) == 3
