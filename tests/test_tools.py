"""Tests for optional external tool detection and use."""

from __future__ import annotations

import subprocess

from wp_porter import tools
from wp_porter.tools import ToolCapabilities, convert_avif_to_jpeg, embed_alt_text


class TestDetect:
    """Tests for ToolCapabilities.detect."""

    def test_nothing_available(self, monkeypatch):
        """Test detection when no tool is installed."""
        monkeypatch.setattr(tools.shutil, "which", lambda name: None)
        monkeypatch.setattr(tools.features, "check", lambda name: False)
        caps = ToolCapabilities.detect()
        assert not caps.can_convert_avif
        assert not caps.can_embed_metadata

    def test_imagemagick_and_exiftool(self, monkeypatch):
        """Test detection of command-line tools on the PATH."""
        paths = {"magick": "/usr/bin/magick", "exiftool": "/usr/bin/exiftool"}
        monkeypatch.setattr(tools.shutil, "which", paths.get)
        monkeypatch.setattr(tools.features, "check", lambda name: False)
        caps = ToolCapabilities.detect()
        assert caps.avif_converter == "imagemagick"
        assert caps.magick_path == "/usr/bin/magick"
        assert caps.can_embed_metadata

    def test_pillow_preferred(self, monkeypatch):
        """Test that Pillow AVIF support is used when present."""
        monkeypatch.setattr(tools.shutil, "which", lambda name: None)
        monkeypatch.setattr(tools.features, "check", lambda name: name == "avif")
        assert ToolCapabilities.detect().avif_converter == "pillow"


class TestEmbedAltText:
    """Tests for embed_alt_text."""

    def test_skipped_without_exiftool(self, tmp_path):
        """Test that embedding is a no-op without exiftool."""
        path = tmp_path / "a.jpg"
        path.write_bytes(b"data")
        assert embed_alt_text(path, "Red truck", ToolCapabilities()) is False

    def test_command_line(self, tmp_path, monkeypatch):
        """Test the exiftool invocation."""
        seen = []
        monkeypatch.setattr(tools.subprocess, "run", lambda command, **kwargs: seen.append(command))
        path = tmp_path / "a.jpg"
        caps = ToolCapabilities(exiftool_path="/usr/bin/exiftool")
        assert embed_alt_text(path, "Red truck", caps) is True
        assert "-IPTC:Caption-Abstract=Red truck" in seen[0]
        assert "-XMP-dc:Description=Red truck" in seen[0]

    def test_unsupported_format(self, tmp_path):
        """Test that formats without caption support are skipped."""
        caps = ToolCapabilities(exiftool_path="/usr/bin/exiftool")
        assert embed_alt_text(tmp_path / "a.svg", "Logo", caps) is False

    def test_tool_failure(self, tmp_path, monkeypatch):
        """Test that a failing exiftool run is reported as not embedded."""

        def failing_run(command, **kwargs):
            raise subprocess.CalledProcessError(1, command)

        monkeypatch.setattr(tools.subprocess, "run", failing_run)
        caps = ToolCapabilities(exiftool_path="/usr/bin/exiftool")
        assert embed_alt_text(tmp_path / "a.jpg", "Red truck", caps) is False


def test_convert_without_converter(tmp_path):
    """Test that AVIF files are left alone without a converter."""
    source = tmp_path / "hero.avif"
    source.write_bytes(b"data")
    assert convert_avif_to_jpeg(source, ToolCapabilities()) is None
    assert source.exists()
