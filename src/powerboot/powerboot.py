# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""PowerBoot: render an Ember FastBoot build in headless Chromium.

    async with PowerBoot(dist_path="path/to/dist") as app:
        result = await app.visit("/photos", {"request": {"headers": {"host": "example.com"}}})
        html = await result.html()

The manifest is read when the object is built, so a bad ``dist_path``
fails immediately. Chromium and the loopback origin start on first visit.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import TracebackType
from typing import Any

from .errors import ClosedError, ConfigurationError
from .execution_context import ExecutionContext
from .lifecycle import AtexitLifecycle, ProcessLifecycle
from .manifest import AppConfig, read_manifest
from .options import PowerBootOptions, VisitOptions
from .pool import InstancePool, PoolHealth
from .render_instance import RenderInstance
from .result import Result

logger = logging.getLogger(__name__)

_MISSING_DIST_PATH = (
    "You must provide PowerBoot with a dist_path option that contains a path to a dist "
    "directory produced by running ember fastboot:build in your Ember app:\n\n"
    "PowerBoot(dist_path='path/to/dist')"
)


class PowerBoot:
    """Entry point: owns the app config, the instance pool and process hooks."""

    def __init__(
        self,
        options: PowerBootOptions | Mapping[str, Any] | None = None,
        *,
        lifecycle: ProcessLifecycle | None = None,
        **kwargs: Any,
    ) -> None:
        if options is None:
            options = PowerBootOptions.from_mapping(kwargs)
        elif isinstance(options, Mapping):
            options = PowerBootOptions.from_mapping({**options, **kwargs})
        elif kwargs:
            options = options.merged(kwargs)

        if not options.dist_path:
            raise ConfigurationError(_MISSING_DIST_PATH)

        self.options = options
        self.app_config: AppConfig = read_manifest(options.dist_path)
        self._pool = InstancePool(
            self._create_instance,
            max_instances=options.max_instances,
            launch=options.launch,
            browser=options.browser,
        )
        self._closed = False
        self._lifecycle = lifecycle if lifecycle is not None else AtexitLifecycle()
        self._lifecycle.register(self._teardown)
        logger.info("PowerBoot ready for %s (%s)", self.app_config.app_name, self.app_config.dist_path)

    # ── Public API ───────────────────────────────────────────────────

    async def visit(self, path: str, options: VisitOptions | Mapping[str, Any] | None = None) -> Result:
        """Render *path* and return a :class:`Result`.

        Raises the render error unless ``resilient`` (per visit, or the
        instance default) is set, in which case the result is returned with
        ``result.error`` populated.
        """
        self._check_open()
        visit_options = VisitOptions.coerce(options)
        resilient = self.options.resilient if visit_options.resilient is None else visit_options.resilient
        disable_shoebox = (
            self.options.disable_shoebox if visit_options.disable_shoebox is None else visit_options.disable_shoebox
        )

        async with self._pool.instance() as instance:
            result = await instance.visit(path, visit_options, disable_shoebox=disable_shoebox)

        if result.error is not None and not resilient:
            raise result.error
        return result

    async def reload(self, **options: Any) -> None:
        """Apply new options and retire the current render instances.

        Idle instances are destroyed now. An instance in the middle of a
        visit finishes it and is destroyed on release, so one more request
        may still be served by the old app.
        """
        self._check_open()
        merged = self.options.merged(options)
        if "dist_path" in options or "distPath" in options:
            if not options.get("dist_path", options.get("distPath")):
                raise ConfigurationError(_MISSING_DIST_PATH)
            self.app_config = read_manifest(merged.dist_path)
        self.options = merged
        await self._pool.mark_all_for_destruction()
        logger.info("PowerBoot reloaded (%s)", self.app_config.dist_path)

    async def close(self) -> None:
        """Close the browser and the loopback listener, and drop the exit hook."""
        if self._closed:
            return
        self._closed = True
        await self._pool.shutdown()
        self._lifecycle.unregister(self._teardown)
        logger.info("PowerBoot closed")

    def health(self) -> PoolHealth:
        return self._pool.health()

    async def __aenter__(self) -> PowerBoot:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ── Internal ─────────────────────────────────────────────────────

    def _check_open(self) -> None:
        if self._closed:
            raise ClosedError("PowerBoot is closed; build a new instance to render again.")

    def _create_instance(self, context: ExecutionContext) -> RenderInstance:
        return RenderInstance(
            context,
            self.app_config,
            sandbox_globals=self.options.sandbox_globals,
            module_shims=self.options.module_shims,
        )

    def _teardown(self) -> None:
        # Interpreter exit: no event loop to await on. The Playwright driver
        # takes Chromium down with it; the listener socket is closed here.
        if not self._closed:
            self._pool.close_nowait()
