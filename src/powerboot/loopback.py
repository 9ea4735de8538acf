# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Loopback HTTP listener that gives render pages a real origin.

Pages navigated here can use localStorage, sessionStorage, cookies and
IndexedDB without SecurityError exceptions. Every request gets an empty
HTML document.

Served by uvicorn in a background task on the caller's event loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse
from starlette.routing import Route

logger = logging.getLogger(__name__)

# Headers arrive with the page's own cookies; Chromium allows up to 256KB.
_MAX_HEADER_BYTES = 1024 * 1024
_SHUTDOWN_TIMEOUT = 2


async def _blank(request: Request) -> HTMLResponse:
    return HTMLResponse("", headers={"Cache-Control": "no-store"})


def build_app() -> Starlette:
    """ASGI app answering every path and method with an empty document."""
    methods = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
    return Starlette(routes=[Route("/{path:path}", _blank, methods=methods)])


class _EmbeddedServer(uvicorn.Server):
    """uvicorn.Server that leaves the host process's signal handlers alone."""

    @contextlib.contextmanager
    def capture_signals(self):
        yield


class LoopbackServer:
    """Ephemeral-port listener on 127.0.0.1."""

    def __init__(self, host: str = "127.0.0.1") -> None:
        self._host = host
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task | None = None
        self._port: int | None = None

    @property
    def started(self) -> bool:
        return self._server is not None

    @property
    def url(self) -> str:
        if self._port is None:
            raise RuntimeError("Loopback server not started.")
        return f"http://{self._host}:{self._port}/"

    async def start(self) -> LoopbackServer:
        if self._server is not None:
            return self
        config = uvicorn.Config(
            build_app(),
            host=self._host,
            port=0,
            log_level="warning",
            log_config=None,
            access_log=False,
            lifespan="off",
            h11_max_incomplete_event_size=_MAX_HEADER_BYTES,
            timeout_graceful_shutdown=_SHUTDOWN_TIMEOUT,
        )
        server = _EmbeddedServer(config)
        task = asyncio.create_task(server.serve(), name="powerboot-loopback")
        while not server.started:
            if task.done():
                task.result()
                raise RuntimeError("Loopback server exited during startup.")
            await asyncio.sleep(0.01)
        self._server = server
        self._task = task
        self._port = server.servers[0].sockets[0].getsockname()[1]
        logger.info("Loopback listener started on %s", self.url)
        return self

    def close_nowait(self) -> None:
        """Ask the server to stop without waiting (usable from atexit)."""
        if self._server is not None:
            self._server.should_exit = True
            self._server = None
            self._port = None

    async def close(self) -> None:
        task = self._task
        self.close_nowait()
        self._task = None
        if task is not None:
            await task
            logger.info("Loopback listener closed")
