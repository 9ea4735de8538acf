# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""One booted application living in one browser page.

The application is booted once per page (sandbox globals, ``window.FastBoot``
shim, vendor and app files, request-info classes) and then visited many
times. Each visit clears browser storage, loads the HTML template, runs the
app's boot/visit cycle with a fresh ``FastBootInfo`` and harvests the result.

A visit may carry a deadline. When it fires the page is force-reloaded,
which aborts whatever the app was doing; the instance then reboots on its
next visit.
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import os
from collections.abc import Mapping
from contextlib import suppress
from html import escape
from importlib import resources
from pathlib import Path
from typing import Any

from .context import RenderInfo
from .errors import (
    BenignTerminationError,
    ConfigurationError,
    DeadlineExceededError,
    PowerBootError,
    RenderError,
)
from .execution_context import ExecutionContext, is_termination_error
from .manifest import AppConfig
from .options import DEFAULT_MODULE_SHIMS, VisitOptions
from .result import AppState, Result

logger = logging.getLogger(__name__)

# What the page hands back when it was torn down before returning anything.
_EMPTY_INFO: list[Any] = [None, {}, {}, None]

_JSON_ESCAPE = str.maketrans(
    {
        "&": "\\u0026",
        ">": "\\u003e",
        "<": "\\u003c",
        "\u2028": "\\u2028",
        "\u2029": "\\u2029",
    }
)

_INSTALL_GLOBALS_JS = "([sandboxGlobals]) => { Object.assign(window, sandboxGlobals); }"

_INSTALL_ENVIRONMENT_JS = """([appName, config, shims]) => {
  const envPath = `${appName}/config/environment`;
  const meta = document.querySelector(`meta[name="${envPath}"]`) || document.createElement('meta');
  meta.setAttribute('name', envPath);
  meta.setAttribute('content', encodeURIComponent(JSON.stringify(config[appName])));
  document.head.append(meta);
  const resolveShim = (shim) => {
    if (typeof shim === 'string') return window[shim];
    const resolved = {};
    for (const [name, globalName] of Object.entries(shim)) resolved[name] = window[globalName];
    return resolved;
  };
  window.FastBoot = {
    config(key) {
      return { default: config[key || appName] };
    },
    require(name, ...rest) {
      if (Object.prototype.hasOwnProperty.call(shims, name)) return resolveShim(shims[name]);
      return window.require(name, ...rest);
    }
  };
}"""

_RUN_APP_JS = """async ([path, bootOptions, info]) => {
  const fastbootInfo = new FastBootInfo(...info);
  const appFactory = window.require('~fastboot/app-factory');
  const App = appFactory['default']();
  await App.runInitializers();
  const instance = await App.buildInstance();
  instance.register('info:-fastboot', fastbootInfo, { instantiate: false });
  instance.inject('service:fastboot', '_fastbootInfo', 'info:-fastboot');
  document.cookie = fastbootInfo.request ? (fastbootInfo.request.headers.get('Cookie') || '') : '';
  await instance.boot(bootOptions);
  await instance.visit(path);
  await fastbootInfo.deferredPromise;
  const booted = Boolean(instance._booted);
  return {
    info: fastbootInfo.serialize(),
    booted: booted,
    url: booted && typeof instance.getURL === 'function' ? instance.getURL() : null
  };
}"""

_INSERT_SHOEBOX_JS = """([key, text]) => {
  document.body.insertAdjacentHTML('beforeend', `<script type="fastboot/shoebox" id="shoebox-${key}">${text}</script>`);
}"""


@functools.cache
def fastboot_env_source() -> str:
    """Source of the in-page request-info classes (``FastBootInfo`` & co)."""
    return resources.files("powerboot").joinpath("assets/fastboot_env.js").read_text(encoding="utf-8")


def escape_json_string(text: str) -> str:
    """Escape characters that would end a ``<script>`` early or trip JS parsers."""
    return text.translate(_JSON_ESCAPE)


def serialize_shoebox_value(value: Any) -> str:
    return escape_json_string(json.dumps(value, separators=(",", ":"), ensure_ascii=False))


def build_boot_options(should_render: bool, environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    environ = os.environ if environ is None else environ
    boot_options: dict[str, Any] = {
        "location": "none",
        "isBrowser": True,
        "shouldRender": should_render,
    }
    if environ.get("EXPERIMENTAL_RENDER_MODE_SERIALIZE"):
        boot_options["_renderMode"] = "serialize"
    return boot_options


def _as_render_error(exc: Exception) -> PowerBootError:
    if isinstance(exc, PowerBootError) and not isinstance(exc, BenignTerminationError):
        return exc
    error = RenderError(str(exc))
    error.__cause__ = exc
    return error


class _Deadline:
    """Force-reloads the page if the visit is still running after ``ms``."""

    def __init__(self, instance: RenderInstance, result: Result, ms: int) -> None:
        self.ms = ms
        self.fired = False
        self._instance = instance
        self._result = result
        self._task = asyncio.get_running_loop().create_task(self._run(), name="powerboot-deadline")

    async def _run(self) -> None:
        await asyncio.sleep(self.ms / 1000)
        self.fired = True
        logger.info("Visit exceeded %dms, reloading the page", self.ms)
        try:
            await self._instance.context.reload()
            self._result.error = DeadlineExceededError(self.ms)
        except BenignTerminationError as exc:
            # Browser is shutting down; nothing left to protect.
            logger.debug("Deadline reload hit a disconnected browser: %s", exc)
        except Exception as exc:
            logger.warning("Deadline reload failed: %s", exc)
            self._result.error = _as_render_error(exc)
        finally:
            self._instance.booted = False

    async def settle(self) -> None:
        """Cancel if still pending; if already firing, wait for the reload."""
        if not self.fired:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            return
        await self._task


class RenderInstance:
    """An application booted inside one :class:`ExecutionContext`."""

    def __init__(
        self,
        context: ExecutionContext,
        config: AppConfig,
        *,
        sandbox_globals: Mapping[str, Any] | None = None,
        module_shims: Mapping[str, Any] | None = None,
    ) -> None:
        self.context = context
        self.config = config
        self.sandbox_globals = dict(sandbox_globals or {})
        self.module_shims = dict(DEFAULT_MODULE_SHIMS if module_shims is None else module_shims)
        self.booted = False
        self.boot_failed = False
        self._sources: list[tuple[Path, str]] | None = None

    @property
    def healthy(self) -> bool:
        """False once the page is gone or a boot attempt left it half-initialized."""
        return not self.context.destroyed and not self.boot_failed

    # ── Boot ─────────────────────────────────────────────────────────

    def _load_sources(self) -> list[tuple[Path, str]]:
        if self._sources is None:
            sources = []
            for path in [*self.config.vendor_files, *self.config.app_files]:
                try:
                    sources.append((path, path.read_text(encoding="utf-8")))
                except OSError as exc:
                    raise ConfigurationError(f"Couldn't read application file {path}") from exc
            self._sources = sources
        return self._sources

    async def _boot(self, result: Result) -> None:
        try:
            await result.evaluate(_INSTALL_GLOBALS_JS, self.sandbox_globals)
            await result.evaluate(
                _INSTALL_ENVIRONMENT_JS,
                self.config.app_name,
                self.config.config,
                self.module_shims,
            )
            logger.debug("Evaluating vendor and app files")
            for path, source in self._load_sources():
                logger.debug("Evaluating %s", path)
                await result.evaluate_source(source)
            await result.evaluate_source(fastboot_env_source())
        except Exception:
            self.boot_failed = True
            raise
        self.booted = True
        logger.info("Application %s booted", self.config.app_name)

    # ── Visit ────────────────────────────────────────────────────────

    async def visit(self, path: str, options: VisitOptions | None = None, *, disable_shoebox: bool = False) -> Result:
        """Render *path*. Never raises; failures are recorded on ``result.error``."""
        options = options or VisitOptions()
        info = RenderInfo.for_visit(
            options.request,
            options.response,
            host_whitelist=self.config.host_whitelist,
            metadata=options.metadata,
        )
        result = Result(self.context, info)
        try:
            await self._visit_route(path, info, options, disable_shoebox, result)
        except Exception as exc:
            if result.error is not None:
                # The deadline already recorded why this visit ended.
                logger.debug("Visit error after deadline ignored: %s", exc)
            else:
                result.error = _as_render_error(exc)
                logger.info("Visit to %s failed: %s", path, result.error)
        return result

    async def _visit_route(
        self,
        path: str,
        info: RenderInfo,
        options: VisitOptions,
        disable_shoebox: bool,
        result: Result,
    ) -> None:
        if not self.booted:
            await self._boot(result)
        await self.context.clear_storage()
        await result.set_content(options.html or self.config.html)

        ms = options.destroy_app_instance_in_ms
        deadline = _Deadline(self, result, ms) if ms and ms > 0 else None

        returned: Mapping[str, Any] | None = None
        error: Exception | None = None
        try:
            returned = await result.evaluate(
                _RUN_APP_JS,
                path,
                build_boot_options(options.should_render),
                info.serialize(),
            )
        except Exception as exc:
            if deadline is not None and deadline.fired and is_termination_error(exc):
                logger.debug("In-page visit torn down by the deadline: %s", exc)
            else:
                error = exc
        finally:
            if deadline is not None:
                await deadline.settle()

        returned = returned or {}
        result.info = RenderInfo.from_serialized(returned.get("info") or _EMPTY_INFO)
        if not disable_shoebox:
            await self._write_shoebox(result)
        await result.finalize(AppState(booted=bool(returned.get("booted")), url=returned.get("url")))

        if error is not None:
            raise error

    async def _write_shoebox(self, result: Result) -> None:
        shoebox = result.info.shoebox if result.info is not None else None
        if not shoebox:
            return
        for key, value in shoebox.items():
            await result.evaluate(_INSERT_SHOEBOX_JS, escape(str(key)), serialize_shoebox_value(value))

    async def destroy(self) -> None:
        """Close the page. Do not call twice."""
        logger.info("Destroying render instance of %s", self.config.app_name)
        await self.context.close()
