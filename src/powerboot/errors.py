# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""PowerBoot exception hierarchy.

All PowerBoot-specific errors inherit from PowerBootError, allowing callers
to catch the base class for any failure or specific subclasses for targeted
handling.
"""

from __future__ import annotations


class PowerBootError(Exception):
    """Base exception for all PowerBoot errors."""


class ConfigurationError(PowerBootError):
    """Missing/malformed manifest, unsupported schema version, or bad options."""


class ValidationError(PowerBootError):
    """Request data failed validation (e.g. host not in the whitelist)."""


class BrowserLaunchError(PowerBootError):
    """Chromium could not be launched."""


class ClosedError(PowerBootError):
    """The PowerBoot instance was used after ``close()``."""


class RenderError(PowerBootError):
    """The application raised while booting or visiting a route."""


class DeadlineExceededError(RenderError):
    """The app instance was forcefully destroyed after ``ms`` milliseconds."""

    def __init__(self, ms: int) -> None:
        super().__init__(f"App instance was forcefully destroyed in {ms}ms")
        self.ms = ms


class BenignTerminationError(PowerBootError):
    """The execution context went away underneath an in-flight operation.

    Expected while a deadline reload or an instance teardown is in progress.
    """


class ResultStateError(PowerBootError):
    """A Result was used in a state that does not allow the operation."""


class DocumentStructureError(PowerBootError):
    """Rendered markup has no locatable head/body."""
