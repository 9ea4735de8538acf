# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for powerboot.manifest: package.json parsing and schema upgrades."""

from __future__ import annotations

import json

import pytest

from powerboot.errors import ConfigurationError
from powerboot.manifest import SchemaVersions, read_manifest
from tests._fakes import DEFAULT_TEMPLATE, make_dist


class TestReadManifest:
    def test_current_schema(self, dist):
        config = read_manifest(dist)
        assert config.app_name == "fake-app"
        assert config.app_files == [dist.resolve() / "assets/app.js"]
        assert config.vendor_files == [dist.resolve() / "assets/vendor.js"]
        assert config.html == DEFAULT_TEMPLATE
        assert config.config == {"fake-app": {"modulePrefix": "fake-app", "environment": "test"}}
        assert config.host_whitelist == ["example.com", "/^localhost:\\d+$/"]
        assert config.schema_version == SchemaVersions.LATEST

    def test_missing_package_json(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Couldn't find .*package.json"):
            read_manifest(tmp_path)

    def test_malformed_json(self, tmp_path):
        (tmp_path / "package.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="malformed or did not contain a manifest"):
            read_manifest(tmp_path)

    def test_no_fastboot_section(self, tmp_path):
        (tmp_path / "package.json").write_text(json.dumps({"name": "x"}), encoding="utf-8")
        with pytest.raises(ConfigurationError, match="did not contain a manifest"):
            read_manifest(tmp_path)

    def test_newer_schema_rejected(self, tmp_path):
        dist = make_dist(tmp_path, schema_version=SchemaVersions.LATEST + 1)
        with pytest.raises(ConfigurationError, match="incompatible version"):
            read_manifest(dist)

    def test_missing_html_template(self, dist):
        (dist / "index.html").unlink()
        with pytest.raises(ConfigurationError, match="HTML template"):
            read_manifest(dist)

    def test_missing_manifest_keys(self, tmp_path):
        dist = make_dist(tmp_path, fastboot={"manifest": {"appFiles": ["assets/app.js"]}})
        with pytest.raises(ConfigurationError, match="missing appFiles, vendorFiles or htmlFile"):
            read_manifest(dist)

    def test_module_whitelist(self, tmp_path):
        dist = make_dist(tmp_path, fastboot={"moduleWhitelist": ["node-fetch"]})
        assert read_manifest(dist).module_whitelist == ["node-fetch"]


class TestLegacySchemas:
    def test_single_file_manifest(self, tmp_path):
        dist = make_dist(
            tmp_path,
            schema_version=None,
            fastboot={
                "manifest": {"appFile": "assets/app.js", "vendorFile": "assets/vendor.js", "htmlFile": "index.html"},
                "appConfig": {"modulePrefix": "legacy-app", "rootURL": "/"},
            },
        )
        config = read_manifest(dist)
        assert config.schema_version == SchemaVersions.BASE
        assert [p.name for p in config.app_files] == ["app.js"]
        assert [p.name for p in config.vendor_files] == ["vendor.js"]
        assert config.app_name == "legacy-app"
        assert config.config == {"legacy-app": {"modulePrefix": "legacy-app", "rootURL": "/"}}

    def test_app_config_converted_before_extension(self, tmp_path):
        dist = make_dist(
            tmp_path,
            schema_version=SchemaVersions.MANIFEST_FILE_ARRAYS,
            fastboot={"appConfig": {"modulePrefix": "two"}},
        )
        config = read_manifest(dist)
        assert config.app_name == "two"
        assert config.config == {"two": {"modulePrefix": "two"}}


class TestEnvironmentOverrides:
    def test_app_config_replaces_app_entry(self, dist):
        config = read_manifest(dist, environ={"APP_CONFIG": json.dumps({"environment": "prod"})})
        assert config.config["fake-app"] == {"environment": "prod"}

    def test_app_config_keyed_by_app_name(self, dist):
        environ = {"APP_CONFIG": json.dumps({"fake-app": {"environment": "prod"}})}
        assert read_manifest(dist, environ=environ).config["fake-app"] == {"environment": "prod"}

    def test_all_config_replaces_everything(self, dist):
        environ = {"ALL_CONFIG": json.dumps({"other": {"a": 1}})}
        assert read_manifest(dist, environ=environ).config == {"other": {"a": 1}}

    def test_invalid_json(self, dist):
        with pytest.raises(ConfigurationError, match="APP_CONFIG is not valid JSON"):
            read_manifest(dist, environ={"APP_CONFIG": "{"})

    def test_reads_process_environment(self, dist, monkeypatch):
        monkeypatch.setenv("ALL_CONFIG", json.dumps({"x": {}}))
        assert read_manifest(dist).config == {"x": {}}
