# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Option sets accepted by :class:`~powerboot.PowerBoot` and its ``visit()``.

Both are plain dataclasses with an enumerated set of keys. Mappings are
accepted too (snake_case or the camelCase names used by FastBoot servers);
unknown keys are rejected with :class:`ConfigurationError`.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from typing import Any

from .errors import ConfigurationError
from .execution_context import LaunchConfig

_CAMEL_ALIASES = {
    "distPath": "dist_path",
    "sandboxGlobals": "sandbox_globals",
    "disableShoebox": "disable_shoebox",
    "shouldRender": "should_render",
    "destroyAppInstanceInMs": "destroy_app_instance_in_ms",
    "maxInstances": "max_instances",
    "moduleShims": "module_shims",
}

# window.FastBoot.require() answers these from browser globals instead of the
# app's loader. A string names one global, a mapping builds an object of globals.
DEFAULT_MODULE_SHIMS: dict[str, str | dict[str, str]] = {
    "abortcontroller-polyfill/dist/cjs-ponyfill": {"AbortController": "AbortController"},
    "node-fetch": "fetch",
}


def _normalize_keys(cls: type, values: Mapping[str, Any]) -> dict[str, Any]:
    known = {f.name for f in dataclasses.fields(cls)}
    normalized: dict[str, Any] = {}
    for key, value in values.items():
        name = _CAMEL_ALIASES.get(key, key)
        if name not in known:
            raise ConfigurationError(f"Unknown {cls.__name__} key: {key!r}")
        normalized[name] = value
    return normalized


@dataclasses.dataclass
class PowerBootOptions:
    """Instance-wide options.

    ``browser`` is an already-launched Playwright ``Browser``; when omitted a
    Chromium is launched on first visit using ``launch``.
    """

    dist_path: str | None = None
    resilient: bool = False
    sandbox_globals: dict[str, Any] = dataclasses.field(default_factory=dict)
    disable_shoebox: bool = False
    browser: Any = None
    launch: LaunchConfig = dataclasses.field(default_factory=LaunchConfig)
    max_instances: int = 1
    module_shims: dict[str, Any] = dataclasses.field(default_factory=lambda: dict(DEFAULT_MODULE_SHIMS))

    def __post_init__(self) -> None:
        if self.max_instances < 1:
            raise ConfigurationError("max_instances must be at least 1")

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> PowerBootOptions:
        return cls(**_normalize_keys(cls, values))

    def merged(self, values: Mapping[str, Any]) -> PowerBootOptions:
        """Copy with *values* applied on top. ``None`` values keep the current setting."""
        updates = {k: v for k, v in _normalize_keys(type(self), values).items() if v is not None}
        return dataclasses.replace(self, **updates)


@dataclasses.dataclass
class VisitOptions:
    """Per-visit options.

    ``resilient`` and ``disable_shoebox`` fall back to the instance setting when None.
    """

    resilient: bool | None = None
    html: str | None = None
    metadata: Any = None
    should_render: bool = True
    disable_shoebox: bool | None = None
    destroy_app_instance_in_ms: int | None = None
    request: Mapping[str, Any] | None = None
    response: Mapping[str, Any] | None = None

    def __post_init__(self) -> None:
        if self.destroy_app_instance_in_ms is not None:
            try:
                self.destroy_app_instance_in_ms = int(self.destroy_app_instance_in_ms)
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(
                    f"destroy_app_instance_in_ms must be an integer, got {self.destroy_app_instance_in_ms!r}"
                ) from exc

    @classmethod
    def coerce(cls, options: VisitOptions | Mapping[str, Any] | None) -> VisitOptions:
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        return cls(**_normalize_keys(cls, options))
