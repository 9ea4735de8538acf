# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Read the FastBoot manifest from a built application's ``package.json``.

The ``fastboot`` section lists the app/vendor files, the HTML template, the
host and module whitelists and the runtime config. Older schema versions are
normalized to the current shape.

Environment overrides:
    APP_CONFIG: JSON object replacing ``config[appName]``.
    ALL_CONFIG: JSON object replacing the whole config mapping.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class SchemaVersions:
    """Manifest schema versions this library understands."""

    BASE = 1
    # appFiles/vendorFiles became arrays (was appFile/vendorFile).
    MANIFEST_FILE_ARRAYS = 2
    # config moved to fastboot.config keyed by app name (was fastboot.appConfig).
    CONFIG_EXTENSION = 3
    LATEST = 3


@dataclass(frozen=True)
class AppConfig:
    """Parsed manifest of one built application."""

    dist_path: Path
    app_files: list[Path]
    vendor_files: list[Path]
    html_file: Path
    html: str
    app_name: str
    config: dict[str, Any] = field(default_factory=dict)
    module_whitelist: list[str] = field(default_factory=list)
    host_whitelist: list[str] | None = None
    schema_version: int = SchemaVersions.BASE


def read_manifest(dist_path: str | os.PathLike, environ: Mapping[str, str] | None = None) -> AppConfig:
    """Parse ``<dist_path>/package.json``.

    Raises:
        ConfigurationError: file missing, malformed, missing its manifest,
            or written for a newer schema than supported.
    """
    environ = os.environ if environ is None else environ
    dist = Path(dist_path).resolve()
    pkg_path = dist / "package.json"

    try:
        raw = pkg_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(
            f"Couldn't find {pkg_path}. You may need to update your version of ember-cli-fastboot."
        ) from exc

    try:
        section = json.loads(raw)["fastboot"]
        manifest = dict(section["manifest"])
    except (ValueError, KeyError, TypeError) as exc:
        raise ConfigurationError(
            f"{pkg_path} was malformed or did not contain a manifest. "
            "Ensure that you have a compatible version of ember-cli-fastboot."
        ) from exc

    schema_version = section.get("schemaVersion") or SchemaVersions.BASE
    logger.debug(
        "Manifest schemaVersion is %s, latest supported is %s",
        schema_version,
        SchemaVersions.LATEST,
    )
    if schema_version > SchemaVersions.LATEST:
        raise ConfigurationError(
            "An incompatible version between `ember-cli-fastboot` and `powerboot` was found. "
            "Please update powerboot to a version compatible with ember-cli-fastboot."
        )

    if schema_version < SchemaVersions.MANIFEST_FILE_ARRAYS:
        manifest["appFiles"] = [manifest.get("appFile")]
        manifest["vendorFiles"] = [manifest.get("vendorFile")]

    config = dict(section.get("config") or {})
    app_name = section.get("appName")
    if schema_version < SchemaVersions.CONFIG_EXTENSION and section.get("appConfig"):
        app_name = section["appConfig"]["modulePrefix"]
        config = {app_name: section["appConfig"]}

    try:
        app_files = [dist / name for name in manifest["appFiles"]]
        vendor_files = [dist / name for name in manifest["vendorFiles"]]
        html_file = dist / manifest["htmlFile"]
    except (KeyError, TypeError) as exc:
        raise ConfigurationError(f"{pkg_path} manifest is missing appFiles, vendorFiles or htmlFile.") from exc

    config = _apply_env_overrides(config, app_name, environ)

    try:
        html = html_file.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Couldn't read the HTML template {html_file}.") from exc

    return AppConfig(
        dist_path=dist,
        app_files=app_files,
        vendor_files=vendor_files,
        html_file=html_file,
        html=html,
        app_name=app_name,
        config=config,
        module_whitelist=list(section.get("moduleWhitelist") or []),
        host_whitelist=section.get("hostWhitelist"),
        schema_version=schema_version,
    )


def _load_env_json(environ: Mapping[str, str], name: str) -> dict[str, Any] | None:
    value = environ.get(name)
    if not value:
        return None
    try:
        parsed = json.loads(value)
    except ValueError as exc:
        raise ConfigurationError(f"{name} is not valid JSON.") from exc
    if not isinstance(parsed, dict):
        raise ConfigurationError(f"{name} must be a JSON object.")
    return parsed


def _apply_env_overrides(config: dict[str, Any], app_name: str, environ: Mapping[str, str]) -> dict[str, Any]:
    app_config = _load_env_json(environ, "APP_CONFIG")
    if app_config is not None:
        # Accept either the bare app config or one already keyed by app name.
        config[app_name] = app_config[app_name] if app_name in app_config else app_config

    all_config = _load_env_json(environ, "ALL_CONFIG")
    if all_config is not None:
        config = all_config
    return config
