# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Playwright page wrapper used as the execution surface of one render instance.

Every primitive tolerates the page disappearing underneath it: a deadline
reload or an instance teardown may close the page while an evaluation is in
flight. "Closed" errors are swallowed, "terminated" errors are re-raised as
:class:`BenignTerminationError` so the caller can decide whether they were
expected, and everything else propagates untouched.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import dataclass, field
from typing import Any

from playwright.async_api import Page

from .errors import BenignTerminationError

logger = logging.getLogger(__name__)


@dataclass
class LaunchConfig:
    """Chromium launch configuration for the shared browser."""

    headless: bool = True
    extra_args: list[str] = field(default_factory=list)
    timeout_ms: int = 30000


# The page, its context or its CDP session is gone. Nothing left to do.
_CLOSED_PATTERNS = (
    "target closed",
    "session closed",
    "has been closed",
    "connection closed",
)

# The page is still there but whatever was running in it was torn down.
_TERMINATION_PATTERNS = (
    "execution context was destroyed",
    "browser has disconnected",
    "frame was detached",
    "navigation interrupted",
    "interrupted by another navigation",
)

_DISCONNECTED_PATTERNS = (
    "browser has disconnected",
    "browser has been closed",
    "target closed",
    "connection closed",
)


def is_closed_error(exc: BaseException) -> bool:
    """True when *exc* says the page/session was closed."""
    msg = str(exc).lower()
    return any(p in msg for p in _CLOSED_PATTERNS)


def is_termination_error(exc: BaseException) -> bool:
    """True for errors expected after a forced reload or a teardown."""
    if isinstance(exc, BenignTerminationError):
        return True
    msg = str(exc).lower()
    return any(p in msg for p in _TERMINATION_PATTERNS) or is_closed_error(exc)


def is_disconnected_error(exc: BaseException) -> bool:
    """True when the browser itself went away (process shutdown noise)."""
    msg = str(exc).lower()
    return any(p in msg for p in _DISCONNECTED_PATTERNS)


# ── Chromium ──────────────────────────────────────────────────────

_chromium_install_attempted = False
_AUTO_INSTALL_TIMEOUT = 300  # seconds


async def auto_install_chromium() -> bool:
    """Run ``playwright install chromium`` once per process.

    Returns True if install succeeded, False otherwise.
    """
    global _chromium_install_attempted  # noqa: PLW0603
    if _chromium_install_attempted:
        return False
    _chromium_install_attempted = True

    logger.info("Chromium not found, running 'playwright install chromium'")
    try:
        proc = await asyncio.create_subprocess_exec(
            sys.executable,
            "-m",
            "playwright",
            "install",
            "chromium",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        _stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=_AUTO_INSTALL_TIMEOUT)
        if proc.returncode == 0:
            logger.info("Chromium installed successfully")
            return True
        logger.warning(
            "playwright install chromium failed (rc=%d): %s",
            proc.returncode,
            stderr.decode(errors="replace")[:500],
        )
        return False
    except TimeoutError:
        logger.warning("Chromium install timed out after %ds", _AUTO_INSTALL_TIMEOUT)
        return False
    except OSError:
        logger.warning("Chromium auto-install could not start", exc_info=True)
        return False


def chromium_launch_args(config: LaunchConfig) -> list[str]:
    """Chromium flags for rendering.

    Web security is disabled so the app can reach its API hosts from the
    loopback origin.
    """
    return [
        "--disable-canvas-aa",
        "--disable-2d-canvas-clip-aa",
        "--disable-gl-drawing-for-tests",
        "--disable-dev-shm-usage",
        "--no-zygote",
        "--hide-scrollbars",
        "--mute-audio",
        "--no-first-run",
        "--disable-infobars",
        "--disable-breakpad",
        "--disable-web-security",
        "--window-size=1280,1024",
        "--disable-setuid-sandbox",
        "--no-sandbox",
        *config.extra_args,
    ]


# ── In-page scripts (static, parameters passed as evaluate args) ──

_EVAL_SOURCE_JS = "(source) => { (0, eval)(source); }"

_CLEAR_STORAGE_JS = """async () => {
  window.localStorage.clear();
  window.sessionStorage.clear();
  for (const pair of document.cookie.split(';')) {
    const name = pair.split('=')[0].trim();
    if (name) document.cookie = name + '=; expires=Thu, 01 Jan 1970 00:00:00 GMT; path=/';
  }
  if (window.indexedDB && window.indexedDB.databases) {
    const databases = await window.indexedDB.databases();
    for (const database of databases) {
      if (database.name) window.indexedDB.deleteDatabase(database.name);
    }
  }
}"""


class ExecutionContext:
    """One browser page, exclusively owned by one render instance."""

    def __init__(self, page: Page) -> None:
        self._page: Page | None = page
        self._destroyed = False

    @property
    def page(self) -> Page | None:
        return self._page

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def url(self) -> str | None:
        if self._page is None:
            return None
        return self._page.url

    async def _guard(self, awaitable) -> Any:
        try:
            return await awaitable
        except Exception as exc:
            if is_closed_error(exc):
                logger.debug("Execution context closed during operation: %s", exc)
                return None
            if is_termination_error(exc):
                raise BenignTerminationError(str(exc)) from exc
            raise

    async def goto(self, url: str) -> None:
        """Navigate to *url* (used once, to land on the loopback origin)."""
        if self._destroyed:
            return None
        await self._guard(self._page.goto(url, wait_until="load"))

    async def load_content(self, html: str) -> None:
        """Replace the document with *html* and wait for the load event."""
        if self._destroyed:
            return None
        await self._guard(self._page.set_content(html, wait_until="load"))

    async def evaluate(self, script: str, *args: Any) -> Any:
        """Run a JS function in the page.

        Positional *args* reach the function as a single array, so scripts
        destructure them: ``([a, b]) => ...``.
        """
        if self._destroyed:
            return None
        if args:
            return await self._guard(self._page.evaluate(script, list(args)))
        return await self._guard(self._page.evaluate(script))

    async def evaluate_source(self, source: str) -> None:
        """Evaluate raw script text in the page's global scope."""
        if self._destroyed:
            return None
        await self._guard(self._page.evaluate(_EVAL_SOURCE_JS, source))

    async def clear_storage(self) -> None:
        """Reset local/session storage, cookies and IndexedDB databases."""
        if self._destroyed:
            return None
        await self._guard(self._page.context.clear_cookies())
        await self._guard(self._page.evaluate(_CLEAR_STORAGE_JS))

    async def reload(self) -> None:
        """Force a reload, discarding whatever is running in the page.

        Unlike the other primitives, a disconnected browser is reported as
        :class:`BenignTerminationError` so the deadline handler can tell it
        apart from a real failure.
        """
        if self._destroyed:
            return None
        try:
            await self._page.reload(wait_until="domcontentloaded")
        except Exception as exc:
            if is_disconnected_error(exc):
                raise BenignTerminationError(str(exc)) from exc
            raise

    async def close(self) -> None:
        """Close the page. Safe to call on a crashed browser."""
        if self._destroyed:
            return None
        self._destroyed = True
        page, self._page = self._page, None
        if page is not None:
            await self._guard(page.close())
        logger.debug("Execution context closed")
