# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""PowerBoot: server-side rendering of Ember FastBoot builds in headless Chromium.

Renders a route inside a real browser page and returns:
- the serialized document (``html()``), or head/body/shoebox chunks (``chunks()``)
- the response status code and headers set by the application
"""

from __future__ import annotations

from .context import RenderInfo, RequestContext, ResponseContext
from .errors import (
    BenignTerminationError,
    BrowserLaunchError,
    ClosedError,
    ConfigurationError,
    DeadlineExceededError,
    DocumentStructureError,
    PowerBootError,
    RenderError,
    ResultStateError,
    ValidationError,
)
from .execution_context import LaunchConfig
from .options import PowerBootOptions, VisitOptions
from .powerboot import PowerBoot
from .result import DomContents, Result

__all__ = [
    "BenignTerminationError",
    "BrowserLaunchError",
    "ClosedError",
    "ConfigurationError",
    "DeadlineExceededError",
    "DocumentStructureError",
    "DomContents",
    "LaunchConfig",
    "PowerBoot",
    "PowerBootError",
    "PowerBootOptions",
    "RenderError",
    "RenderInfo",
    "RequestContext",
    "ResponseContext",
    "Result",
    "ResultStateError",
    "ValidationError",
    "VisitOptions",
]
