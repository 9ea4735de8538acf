# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Request/response envelope handed to the application inside the page.

Leaf module. The same shapes are rebuilt in the page by
``assets/fastboot_env.js``; :meth:`RenderInfo.serialize` and
:meth:`RenderInfo.from_serialized` are the two ends of that boundary.

Serialized form (a 4-slot list)::

    [request | None, response | None, {"hostWhitelist": ..., "metadata": ...}, shoebox]
"""

from __future__ import annotations

import asyncio
import dataclasses
import re
from collections.abc import Awaitable, Mapping, Sequence
from typing import Any
from urllib.parse import unquote

import httpx

from .errors import ValidationError


def headers_from_transport(raw: Mapping[str, Any] | httpx.Headers | None) -> httpx.Headers:
    """Build case-insensitive headers from ``{name: value | [values]}``."""
    if raw is None:
        return httpx.Headers()
    if isinstance(raw, httpx.Headers):
        return httpx.Headers(raw)
    items: list[tuple[str, str]] = []
    for name, value in raw.items():
        if isinstance(value, (list, tuple)):
            items.extend((name, str(v)) for v in value)
        elif value is not None:
            items.append((name, str(value)))
    return httpx.Headers(items)


def serialize_headers(headers: httpx.Headers) -> dict[str, list[str]]:
    """Lower-cased name -> list of values, the shape ``FastBootHeaders`` takes."""
    return {name: headers.get_list(name) for name in headers.keys()}


def _parse_cookie_header(raw: str) -> dict[str, str]:
    """Lenient ``Cookie`` header parse: first occurrence of a name wins.

    Values may hold spaces, JSON or other characters a Set-Cookie parser
    rejects. Surrounding double quotes are dropped and %-escapes decoded.
    """
    cookies: dict[str, str] = {}
    for pair in raw.split(";"):
        name, sep, value = pair.partition("=")
        name = name.strip()
        if not sep or not name or name in cookies:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] == '"':
            value = value[1:-1]
        cookies[name] = unquote(value) if "%" in value else value
    return cookies


def host_matches(host: str | None, entry: str) -> bool:
    """Exact match, or regex search for ``/pattern/`` entries."""
    if len(entry) >= 2 and entry.startswith("/") and entry.endswith("/"):
        return re.search(entry[1:-1], host or "") is not None
    return entry == host


@dataclasses.dataclass(frozen=True, slots=True, kw_only=True)
class RequestContext:
    """The HTTP request being rendered. Immutable once built."""

    protocol: str = "http:"
    headers: httpx.Headers = dataclasses.field(default_factory=httpx.Headers)
    query_params: Mapping[str, Any] = dataclasses.field(default_factory=dict)
    path: str | None = None
    method: str = "GET"
    body: Any = None
    cookies: Mapping[str, str] = dataclasses.field(default_factory=dict)
    host_whitelist: Sequence[str] | None = None

    @classmethod
    def from_transport(cls, request: Mapping[str, Any], host_whitelist: Sequence[str] | None = None) -> RequestContext:
        """Build from a transport-level request mapping.

        Recognized keys: ``protocol``, ``headers``, ``query``, ``url``,
        ``method``, ``body``, ``cookies``. Also accepts its own serialized
        form, so the mapping may come back from the page.
        """
        headers = headers_from_transport(request.get("headers"))
        protocol = request.get("protocol") or "http"
        if not protocol.endswith(":"):
            protocol = f"{protocol}:"
        return cls(
            protocol=protocol,
            headers=headers,
            query_params=dict(request.get("query") or {}),
            path=request.get("url"),
            method=request.get("method") or "GET",
            body=request.get("body"),
            cookies=cls.extract_cookies(request, headers),
            host_whitelist=host_whitelist if host_whitelist is not None else request.get("hostWhitelist"),
        )

    @staticmethod
    def extract_cookies(request: Mapping[str, Any], headers: httpx.Headers) -> dict[str, str]:
        # Cookies already parsed upstream win over the raw header.
        if request.get("cookies"):
            return dict(request["cookies"])
        raw = headers.get("cookie")
        if raw:
            return _parse_cookie_header(raw)
        return {}

    def host(self) -> str:
        """Return the Host header after checking it against the whitelist."""
        if not self.host_whitelist:
            raise ValidationError("You must provide a hostWhitelist to retrieve the host")
        host = self.headers.get("host")
        if not any(host_matches(host, entry) for entry in self.host_whitelist):
            raise ValidationError(f"The host header did not match a hostWhitelist entry. Host header: {host}")
        return host

    def serialize(self) -> dict[str, Any]:
        return {
            "hostWhitelist": list(self.host_whitelist) if self.host_whitelist is not None else None,
            "protocol": self.protocol,
            "headers": serialize_headers(self.headers),
            "query": dict(self.query_params),
            "url": self.path,
            "method": self.method,
            "body": self.body,
            "cookies": dict(self.cookies),
        }


@dataclasses.dataclass(slots=True, kw_only=True)
class ResponseContext:
    """The response the application builds while rendering."""

    headers: httpx.Headers = dataclasses.field(default_factory=httpx.Headers)
    status_code: int = 200

    @classmethod
    def from_transport(cls, response: Mapping[str, Any] | None) -> ResponseContext:
        response = response or {}
        return cls(
            headers=headers_from_transport(response.get("headers")),
            status_code=response.get("statusCode") or response.get("status_code") or 200,
        )

    def serialize(self) -> dict[str, Any]:
        return {"headers": serialize_headers(self.headers), "statusCode": self.status_code}


class RenderInfo:
    """Everything one visit hands to the application, and what it hands back."""

    def __init__(
        self,
        request: RequestContext | None = None,
        response: ResponseContext | None = None,
        *,
        host_whitelist: Sequence[str] | None = None,
        metadata: Any = None,
        shoebox: Mapping[str, Any] | None = None,
    ) -> None:
        self.request = request
        self.response = response
        self.host_whitelist = host_whitelist
        self.metadata = metadata
        self.shoebox = shoebox
        self._deferred: asyncio.Future | None = None

    @classmethod
    def for_visit(
        cls,
        request: Mapping[str, Any] | None,
        response: Mapping[str, Any] | None,
        *,
        host_whitelist: Sequence[str] | None = None,
        metadata: Any = None,
    ) -> RenderInfo:
        req = RequestContext.from_transport(request, host_whitelist) if request else None
        return cls(
            req,
            ResponseContext.from_transport(response),
            host_whitelist=host_whitelist,
            metadata=metadata,
        )

    @classmethod
    def from_serialized(cls, data: Sequence[Any] | None) -> RenderInfo:
        """Rebuild from the 4-slot list produced by :meth:`serialize`."""
        slots = list(data or [])
        slots.extend([None] * (4 - len(slots)))
        request_data, response_data, options, shoebox = slots[:4]
        options = options or {}
        host_whitelist = options.get("hostWhitelist")
        request = RequestContext.from_transport(request_data, host_whitelist) if request_data else None
        response = ResponseContext.from_transport(response_data) if response_data is not None else None
        return cls(
            request,
            response,
            host_whitelist=host_whitelist,
            metadata=options.get("metadata"),
            shoebox=shoebox,
        )

    def serialize(self) -> list[Any]:
        host_whitelist = self.request.host_whitelist if self.request else self.host_whitelist
        return [
            self.request.serialize() if self.request else None,
            self.response.serialize() if self.response else None,
            {
                "hostWhitelist": list(host_whitelist) if host_whitelist is not None else None,
                "metadata": self.metadata,
            },
            self.shoebox,
        ]

    def defer_rendering(self, awaitable: Awaitable) -> None:
        """Hold completion until *awaitable* and every earlier one are done.

        Host-side mirror of the page's ``FastBootInfo.deferRendering``
        chain in ``assets/fastboot_env.js``, for callers building a
        RenderInfo in Python. Visits never read it; the page awaits its own
        chain before handing back the serialized info.

        Deferrals run strictly in sequence: each waits for all previously
        registered ones before waiting on its own.
        """
        previous = self._deferred

        async def _chain() -> None:
            if previous is not None:
                await previous
            await awaitable

        self._deferred = asyncio.ensure_future(_chain())

    async def wait_deferred(self) -> None:
        if self._deferred is not None:
            await self._deferred
