"""
Tests for the command line and the run configuration it builds.
"""

import pytest

from manualgen.__main__ import build_parser, main
from manualgen.run_config import ManualRunConfig


def _config(*argv):
    return ManualRunConfig.from_cli_args(build_parser().parse_args(list(argv)))


class TestParser:

    def test_defaults(self):
        config = _config("--url", "https://app.test/")
        assert config.url == "https://app.test/"
        assert config.output_formats == ["markdown"]
        assert config.screenshots is True
        assert config.max_retries == 2
        assert config.max_depth == 2
        assert config.headless
        assert not config.has_credentials

    def test_all_flags(self):
        config = _config(
            "--url", "https://app.test/",
            "--login", "ana", "--password", "secret",
            "--output-format", "html", "--output-format", "pdf", "--output-format", "html",
            "--screenshots", "false",
            "--max-retries", "4",
            "--depth", "1", "--max-pages", "5",
            "--stop-after", "crawl", "--headed",
        )
        assert config.username == "ana" and config.password == "secret"
        assert config.has_credentials
        assert config.output_formats == ["html", "pdf"]
        assert config.screenshots is False
        assert config.max_retries == 4
        assert (config.max_depth, config.max_pages) == (1, 5)
        assert config.stop_after_phase == "crawl"
        assert not config.headless

    def test_url_is_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_unknown_format_is_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--url", "https://app.test/", "--output-format", "rtf"])


class TestRunConfig:

    def test_validation(self):
        with pytest.raises(ValueError):
            ManualRunConfig(url="https://app.test/", output_formats=["rtf"])
        with pytest.raises(ValueError):
            ManualRunConfig(url="https://app.test/", stop_after_phase="analyze")
        with pytest.raises(ValueError):
            ManualRunConfig(url="https://app.test/", max_depth=-1)

    def test_viewport_dict(self):
        assert ManualRunConfig(url="x").viewport_dict == {"width": 1920, "height": 1080}


class TestMain:

    def test_invalid_configuration_exits_with_one(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert main(["--url", "app.test", "--depth", "-1"]) == 1
