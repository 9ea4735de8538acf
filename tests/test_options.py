# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for PowerBootOptions / VisitOptions."""

from __future__ import annotations

import pytest

from powerboot.errors import ConfigurationError
from powerboot.execution_context import LaunchConfig
from powerboot.options import DEFAULT_MODULE_SHIMS, PowerBootOptions, VisitOptions


class TestPowerBootOptions:
    def test_defaults(self):
        opts = PowerBootOptions()
        assert opts.resilient is False
        assert opts.disable_shoebox is False
        assert opts.max_instances == 1
        assert opts.launch == LaunchConfig()
        assert opts.module_shims == DEFAULT_MODULE_SHIMS
        assert opts.module_shims is not DEFAULT_MODULE_SHIMS

    def test_camel_case_aliases(self):
        opts = PowerBootOptions.from_mapping({"distPath": "dist", "sandboxGlobals": {"A": 1}, "maxInstances": 2})
        assert opts.dist_path == "dist"
        assert opts.sandbox_globals == {"A": 1}
        assert opts.max_instances == 2

    def test_unknown_key_rejected(self):
        with pytest.raises(ConfigurationError, match="Unknown PowerBootOptions key: 'distpath'"):
            PowerBootOptions.from_mapping({"distpath": "dist"})

    def test_max_instances_must_be_positive(self):
        with pytest.raises(ConfigurationError, match="at least 1"):
            PowerBootOptions(max_instances=0)

    def test_merged_ignores_none(self):
        opts = PowerBootOptions(dist_path="a", resilient=True)
        merged = opts.merged({"dist_path": None, "resilient": False, "sandboxGlobals": {"B": 2}})
        assert merged.dist_path == "a"
        assert merged.resilient is False
        assert merged.sandbox_globals == {"B": 2}
        assert opts.sandbox_globals == {}


class TestVisitOptions:
    def test_coerce_none(self):
        assert VisitOptions.coerce(None) == VisitOptions()

    def test_coerce_passthrough(self):
        opts = VisitOptions(html="<html></html>")
        assert VisitOptions.coerce(opts) is opts

    def test_coerce_mapping_with_aliases(self):
        opts = VisitOptions.coerce({"shouldRender": False, "destroyAppInstanceInMs": "250", "metadata": {"a": 1}})
        assert opts.should_render is False
        assert opts.destroy_app_instance_in_ms == 250
        assert opts.metadata == {"a": 1}

    def test_instance_defaults_unset(self):
        opts = VisitOptions()
        assert opts.resilient is None
        assert opts.disable_shoebox is None

    def test_bad_deadline(self):
        with pytest.raises(ConfigurationError, match="must be an integer"):
            VisitOptions(destroy_app_instance_in_ms="soon")

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError, match="Unknown VisitOptions key"):
            VisitOptions.coerce({"timeout": 5})
