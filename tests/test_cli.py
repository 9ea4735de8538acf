# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for the powerboot CLI.

Argument parsing and error handling call ``main()`` in-process; rendering runs
over the fake browser patched in through ``async_playwright``.
"""

from __future__ import annotations

import json
import logging
from unittest.mock import AsyncMock, patch

import pytest
import structlog

from powerboot.cli import build_parser, main
from powerboot.errors import ConfigurationError


@pytest.fixture(autouse=True)
def _reset_logging():
    root = logging.getLogger()
    old_handlers = root.handlers[:]
    old_level = root.level
    yield
    root.handlers = old_handlers
    root.setLevel(old_level)
    structlog.reset_defaults()


@pytest.fixture(autouse=True)
def _no_atexit():
    with patch("powerboot.powerboot.AtexitLifecycle.register"), patch("powerboot.powerboot.AtexitLifecycle.unregister"):
        yield


class TestParser:
    def test_render_flags(self):
        args = build_parser().parse_args(
            ["render", "dist", "/photos", "--resilient", "--chunks", "--deadline-ms", "250", "--json-logs"]
        )
        assert args.dist_path == "dist"
        assert args.path == "/photos"
        assert args.resilient is True
        assert args.chunks is True
        assert args.deadline_ms == 250
        assert args.json_logs is True
        assert args.no_shoebox is False

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 2
        assert "usage" in capsys.readouterr().out.lower()

    def test_bad_deadline_exits(self):
        with pytest.raises(SystemExit):
            main(["render", "dist", "/", "--deadline-ms", "soon"])


class TestErrors:
    def test_missing_dist(self, tmp_path, capsys):
        assert main(["render", str(tmp_path / "missing"), "/"]) == 1
        err = capsys.readouterr().err
        assert "Error: Couldn't find" in err
        assert "Traceback" not in err

    def test_powerboot_error_exit_code(self, capsys):
        with patch("powerboot.cli._render", AsyncMock(side_effect=ConfigurationError("bad manifest"))):
            assert main(["render", "dist", "/"]) == 1
        assert "Error: bad manifest" in capsys.readouterr().err

    def test_bad_metadata(self, dist, capsys):
        assert main(["render", str(dist), "/", "--metadata", "{oops"]) == 1
        assert "--metadata is not valid JSON" in capsys.readouterr().err


class TestRender:
    def test_prints_html(self, dist, mock_pw, capsys):
        assert main(["render", str(dist), "/photos"]) == 0
        out = capsys.readouterr().out
        assert "<h1>Hello</h1>" in out
        assert out.endswith("</html>\n")

    def test_prints_chunks(self, dist, mock_pw, capsys):
        assert main(["render", str(dist), "/", "--chunks"]) == 0
        chunks = json.loads(capsys.readouterr().out)
        assert chunks[0].endswith("</head>")
        assert len(chunks) == 2

    def test_passes_visit_options(self, dist, mock_pw, tmp_path):
        _, browser = mock_pw
        template = tmp_path / "alt.html"
        template.write_text("<html><head><title>Alt</title></head><body></body></html>", encoding="utf-8")
        code = main(
            ["render", str(dist), "/x", "--no-render", "--metadata", '{"tenant": "acme"}', "--html", str(template)]
        )
        assert code == 0
        page = browser.pages[0]
        path, boot_options, info = page.visits[0]
        assert path == "/x"
        assert boot_options["shouldRender"] is False
        assert info[2]["metadata"] == {"tenant": "acme"}
        assert page.head == "<title>Alt</title>"

    def test_headless_env(self, dist, mock_pw, monkeypatch):
        pw, _ = mock_pw
        monkeypatch.setenv("POWERBOOT_HEADLESS", "0")
        assert main(["render", str(dist), "/"]) == 0
        assert pw.chromium.launch.call_args.kwargs["headless"] is False
