# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""PowerBoot CLI: render one route of a FastBoot build to stdout.

Usage:
    powerboot render DIST_PATH PATH [--resilient] [--chunks] [--no-shoebox] [--no-render]
                     [--deadline-ms N] [--metadata JSON] [--html FILE] [--json-logs] [--log-level LEVEL]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from .errors import PowerBootError
from .execution_context import LaunchConfig
from .logging_config import configure, level_from_env

logger = logging.getLogger(__name__)


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name, "").strip().lower()
    if not value:
        return default
    return value in ("1", "true", "yes", "on")


async def _render(args: argparse.Namespace) -> str:
    from .powerboot import PowerBoot

    visit_options: dict = {
        "resilient": args.resilient,
        "should_render": not args.no_render,
        "disable_shoebox": args.no_shoebox,
    }
    if args.deadline_ms is not None:
        visit_options["destroy_app_instance_in_ms"] = args.deadline_ms
    if args.metadata:
        visit_options["metadata"] = json.loads(args.metadata)
    if args.html:
        visit_options["html"] = Path(args.html).read_text(encoding="utf-8")

    launch = LaunchConfig(headless=_env_flag("POWERBOOT_HEADLESS", True))
    async with PowerBoot(dist_path=args.dist_path, launch=launch) as app:
        result = await app.visit(args.path, visit_options)
        if result.error is not None:
            logger.warning("Rendered with error: %s", result.error)
        if args.chunks:
            return json.dumps(await result.chunks(), ensure_ascii=False, indent=2)
        return await result.html()


def cmd_render(args: argparse.Namespace) -> int:
    """Render a route and print the document (or its chunks as JSON)."""
    try:
        output = asyncio.run(_render(args))
    except PowerBootError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except json.JSONDecodeError as exc:
        print(f"Error: --metadata is not valid JSON: {exc}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    sys.stdout.write(output)
    if output and not output.endswith("\n"):
        sys.stdout.write("\n")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="powerboot", description="Render Ember FastBoot builds in Chromium")
    sub = parser.add_subparsers(dest="command")

    render = sub.add_parser("render", help="Render one route to stdout")
    render.add_argument("dist_path", help="Path to the fastboot dist directory")
    render.add_argument("path", help="URL path to render, e.g. /photos/1")
    render.add_argument("--resilient", action="store_true", help="Print output even if rendering failed")
    render.add_argument("--chunks", action="store_true", help="Print head/body/shoebox chunks as JSON")
    render.add_argument("--no-shoebox", action="store_true", help="Do not write shoebox script tags")
    render.add_argument("--no-render", action="store_true", help="Routing only, no rendering")
    render.add_argument("--deadline-ms", type=int, default=None, help="Force-destroy the visit after N ms")
    render.add_argument("--metadata", default=None, help="Per-request metadata as JSON")
    render.add_argument("--html", default=None, help="HTML template file overriding the manifest's")
    render.add_argument("--json-logs", action="store_true", default=_env_flag("POWERBOOT_LOG_JSON", False))
    render.add_argument("--log-level", default=None, help="Log level (default: $POWERBOOT_LOG_LEVEL or WARNING)")
    render.set_defaults(func=cmd_render)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 2
    configure(json_output=args.json_logs, level=args.log_level or level_from_env("WARNING"))
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
