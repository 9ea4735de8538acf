# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""InstancePool: shared Chromium, a loopback origin, and single-flight render instances.

One Chromium process hosts up to ``max_instances`` pages, each wrapped by a
:class:`RenderInstance`. An instance serves one visit at a time; callers
beyond capacity wait on an ``asyncio.Condition`` until one is released.

    pool = InstancePool(factory, max_instances=1)
    async with pool.instance() as instance:
        result = await instance.visit("/")

The browser and the loopback listener start lazily on first acquisition.

Dependencies: execution_context.py, loopback.py, render_instance.py only.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass

from playwright.async_api import Browser, Playwright, async_playwright

from .errors import BrowserLaunchError
from .execution_context import (
    ExecutionContext,
    LaunchConfig,
    auto_install_chromium,
    chromium_launch_args,
)
from .loopback import LoopbackServer
from .render_instance import RenderInstance

logger = logging.getLogger(__name__)

InstanceFactory = Callable[[ExecutionContext], RenderInstance]


# ---------------------------------------------------------------------------
# Health snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PoolHealth:
    """Immutable snapshot of pool state for monitoring."""

    instances: int
    working: int
    max_instances: int
    browser_connected: bool


# ---------------------------------------------------------------------------
# Internal: pooled instance entry
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class PooledInstance:
    """Tracks one RenderInstance and who is using it."""

    instance: RenderInstance
    working: bool = False
    destroy_on_release: bool = False


# ---------------------------------------------------------------------------
# InstancePool
# ---------------------------------------------------------------------------


class InstancePool:
    """Owns the browser, the loopback listener and the render instances."""

    def __init__(
        self,
        factory: InstanceFactory,
        *,
        max_instances: int = 1,
        launch: LaunchConfig | None = None,
        browser: Browser | None = None,
    ) -> None:
        self._factory = factory
        self._max_instances = max_instances
        self._launch = launch or LaunchConfig()

        self._playwright: Playwright | None = None
        self._browser: Browser | None = browser
        self._owns_browser = browser is None
        self._listener = LoopbackServer()
        self._entries: list[PooledInstance] = []
        self._creating = 0
        self._condition = asyncio.Condition()
        self._start_lock = asyncio.Lock()

    # ── Startup ──────────────────────────────────────────────────────

    async def start(self) -> None:
        """Start the listener and the browser if not running yet. Idempotent."""
        async with self._start_lock:
            if not self._listener.started:
                await self._listener.start()
            if self._browser is None:
                await self._launch_browser()

    async def _launch_browser(self) -> None:
        """Launch Chromium, auto-installing on first 'executable not found' error."""
        self._playwright = await async_playwright().start()
        args = chromium_launch_args(self._launch)
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=self._launch.headless,
                args=args,
                timeout=self._launch.timeout_ms,
            )
        except Exception as exc:
            if "executable doesn't exist" in str(exc).lower() and await auto_install_chromium():
                self._browser = await self._playwright.chromium.launch(
                    headless=self._launch.headless,
                    args=args,
                    timeout=self._launch.timeout_ms,
                )
            else:
                await self._playwright.stop()
                self._playwright = None
                raise BrowserLaunchError(
                    f"Chromium could not be launched ({exc}). Please run: playwright install chromium"
                ) from exc
        logger.info("Chromium launched (headless=%s)", self._launch.headless)

    # ── Acquire / release ────────────────────────────────────────────

    @asynccontextmanager
    async def instance(self) -> AsyncIterator[RenderInstance]:
        """Hold one render instance exclusively for the duration of the block."""
        entry = await self.acquire()
        try:
            yield entry.instance
        finally:
            await self.release(entry)

    async def acquire(self) -> PooledInstance:
        """Return an idle instance marked working, creating one if under capacity.

        Waits while every instance is busy and the pool is full.
        """
        await self.start()
        async with self._condition:
            while True:
                for entry in self._entries:
                    if not entry.working and not entry.destroy_on_release:
                        entry.working = True
                        return entry
                if len(self._entries) + self._creating < self._max_instances:
                    self._creating += 1
                    break
                await self._condition.wait()

        try:
            instance = await self._create_instance()
        except BaseException:
            async with self._condition:
                self._creating -= 1
                self._condition.notify()
            raise

        async with self._condition:
            self._creating -= 1
            entry = PooledInstance(instance=instance, working=True)
            self._entries.append(entry)
        logger.info("Pool created render instance (instances=%d)", len(self._entries))
        return entry

    async def _create_instance(self) -> RenderInstance:
        page = await self._browser.new_page()
        context = ExecutionContext(page)
        try:
            await context.goto(self._listener.url)
            return self._factory(context)
        except BaseException:
            with suppress(Exception):
                await context.close()
            raise

    async def release(self, entry: PooledInstance) -> None:
        """Hand *entry* back, destroying it if it was marked or is no longer usable."""
        try:
            if entry.destroy_on_release or not entry.instance.healthy:
                await self._discard(entry)
        finally:
            entry.working = False
            async with self._condition:
                self._condition.notify()

    async def _discard(self, entry: PooledInstance) -> None:
        if entry in self._entries:
            self._entries.remove(entry)
        entry.destroy_on_release = False
        with suppress(Exception):
            await entry.instance.destroy()
        logger.info("Pool discarded render instance (instances=%d)", len(self._entries))

    async def mark_all_for_destruction(self) -> None:
        """Destroy idle instances now and busy ones when they are released."""
        for entry in list(self._entries):
            entry.destroy_on_release = True
            if not entry.working:
                await self._discard(entry)
        async with self._condition:
            self._condition.notify_all()

    # ── Monitoring ───────────────────────────────────────────────────

    def health(self) -> PoolHealth:
        """Return a snapshot of pool health."""
        browser_ok = self._browser is not None and self._browser.is_connected()
        return PoolHealth(
            instances=len(self._entries),
            working=sum(1 for entry in self._entries if entry.working),
            max_instances=self._max_instances,
            browser_connected=browser_ok,
        )

    # ── Shutdown ─────────────────────────────────────────────────────

    def close_nowait(self) -> None:
        """Synchronous best effort for interpreter exit: stop the listener."""
        self._listener.close_nowait()

    async def shutdown(self) -> None:
        """Destroy all instances, close the browser we launched, stop the listener."""
        for entry in list(self._entries):
            with suppress(Exception):
                await entry.instance.destroy()
        self._entries.clear()

        if self._browser is not None and self._owns_browser:
            with suppress(Exception):
                await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            with suppress(Exception):
                await self._playwright.stop()
            self._playwright = None

        await self._listener.close()
        logger.info("InstancePool shut down")
