# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Result of rendering one route.

After every mutation of the page the DOM is harvested: boundary markers are
placed around the body content, externally-sourced body scripts are moved
behind them, and the serialized document/head/body are cached. ``html()``,
``chunks()`` and ``dom_contents()`` read those caches.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from html import escape
from typing import Any

import httpx

from .context import RenderInfo
from .errors import DocumentStructureError, ResultStateError
from .execution_context import ExecutionContext

logger = logging.getLogger(__name__)

SHOEBOX_TAG_PATTERN = '<script type="fastboot/shoebox"'
BODY_START_MARKER = '<script type="x/boundary" id="fastboot-body-start"></script>'
BODY_END_MARKER = '<script type="x/boundary" id="fastboot-body-end"></script>'
EMPTY_BODY_PLACEHOLDER = "<!-- EMBER_CLI_FASTBOOT_BODY -->"
APPLICATION_CLASS = "ember-application"

_HTML_HEAD_RE = re.compile(r"(.*</head>)(.*)", re.DOTALL)

_HARVEST_JS = """([startMarker, endMarker]) => {
  const start = document.getElementById('fastboot-body-start');
  if (start) start.remove();
  const end = document.getElementById('fastboot-body-end');
  if (end) end.remove();
  document.body.insertAdjacentHTML('afterbegin', startMarker);
  document.body.insertAdjacentHTML('beforeend', endMarker);
  for (const script of document.body.querySelectorAll('body > script[src]')) {
    document.body.append(script);
  }
  return [document.documentElement.outerHTML, document.head.innerHTML, document.body.innerHTML];
}"""

_STRIP_CLASS_JS = """([className]) => {
  for (const element of document.querySelectorAll('.' + className)) {
    element.classList.remove(className);
  }
}"""


@dataclass(frozen=True, slots=True)
class DomContents:
    """Serialized inner markup of the document head and body."""

    head: str
    body: str


@dataclass(frozen=True, slots=True)
class AppState:
    """What the application instance reported after its visit."""

    booted: bool = False
    url: str | None = None


class Result:
    """Rendered output of one visit plus the response metadata."""

    def __init__(self, context: ExecutionContext, info: RenderInfo | None = None) -> None:
        self._context = context
        self.info = info
        self.error: BaseException | None = None
        self.url: str | None = None
        self.finalized = False
        self._status_code: int | None = None
        self._headers: httpx.Headers | None = None
        self._html = ""
        self._head = ""
        self._body = ""

    @property
    def status_code(self) -> int | None:
        if self._status_code is not None:
            return self._status_code
        if self.info is None or self.info.response is None:
            return None
        return self.info.response.status_code

    @property
    def headers(self) -> httpx.Headers | None:
        if self._headers is not None:
            return self._headers
        if self.info is None or self.info.response is None:
            return None
        return self.info.response.headers

    # ── Page mutation ────────────────────────────────────────────────

    async def set_content(self, html: str) -> None:
        """Load *html* into the page, wait for ``load`` and re-harvest."""
        if self._context.destroyed:
            return
        await self._context.load_content(html)
        await self._reflect_contents()

    async def evaluate(self, script: str, *args: Any) -> Any:
        """Run *script* in the page, re-harvest, return the script's result."""
        if self._context.destroyed:
            return None
        value = await self._context.evaluate(script, *args)
        await self._reflect_contents()
        return value

    async def evaluate_source(self, source: str) -> None:
        if self._context.destroyed:
            return
        await self._context.evaluate_source(source)
        await self._reflect_contents()

    async def _reflect_contents(self) -> None:
        harvested = await self._context.evaluate(_HARVEST_JS, BODY_START_MARKER, BODY_END_MARKER)
        if not harvested:
            # Page went away mid-operation; keep the last good snapshot.
            return
        self._html, self._head, self._body = harvested

    # ── Output ───────────────────────────────────────────────────────

    async def html(self) -> str:
        """The rendered document."""
        return self._html

    async def chunks(self) -> list[str]:
        """Split the document into head, body and one chunk per shoebox tag.

        The first chunk runs through ``</head>``, the second holds the body
        up to the first shoebox tag (or to the end of the document when
        there is none), each following chunk starts with a shoebox tag.
        """
        html = self._html
        if not html:
            return [html]
        match = _HTML_HEAD_RE.match(html)
        if match is None or not match.group(1) or not match.group(2):
            raise DocumentStructureError(
                "Could not identify head and body of the document! Make sure the document is well formed."
            )
        head, body = match.groups()
        plain_body, *shoeboxes = body.split(SHOEBOX_TAG_PATTERN)
        return [head, plain_body, *(f"{SHOEBOX_TAG_PATTERN}{shoebox}" for shoebox in shoeboxes)]

    def dom_contents(self) -> DomContents:
        return DomContents(head=self._head, body=self._body)

    # ── Finalization ─────────────────────────────────────────────────

    async def finalize(self, app_state: AppState | None = None) -> Result:
        """Copy response metadata onto the result and clean up the markup.

        May run once per result.
        """
        if self.finalized:
            raise ResultStateError("Results cannot be finalized more than once")

        if app_state is not None and app_state.booted and app_state.url:
            self.url = app_state.url

        response = self.info.response if self.info is not None else None
        if response is not None:
            self._headers = response.headers
            self._status_code = response.status_code

        await self.evaluate(_STRIP_CLASS_JS, APPLICATION_CLASS)
        self._apply_status_overrides()
        self.finalized = True
        return self

    def _apply_status_overrides(self) -> None:
        status = self.status_code
        if status == 204:
            self._html = self._head = self._body = ""
        elif status is not None and 300 <= status <= 399:
            location = self.headers.get("location") if self.headers is not None else None
            self._head = self._body = ""
            if location:
                location = escape(location)
                self._html = (
                    "<html><head></head><body>"
                    f'<h1>Redirecting to <a href="{location}">{location}</a></h1>'
                    "</body></html>"
                )
            else:
                self._html = f"<html><head></head><body>{EMPTY_BODY_PLACEHOLDER}</body></html>"
        logger.debug("Result finalized (status=%s, bytes=%d)", status, len(self._html))
