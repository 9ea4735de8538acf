# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Process lifecycle hooks.

PowerBoot registers a teardown callback at construction and removes it at
``close()``. The capability is injected so tests (and hosts with their own
shutdown handling) do not touch real process hooks.
"""

from __future__ import annotations

import atexit
from collections.abc import Callable
from typing import Protocol


class ProcessLifecycle(Protocol):
    def register(self, callback: Callable[[], None]) -> None: ...

    def unregister(self, callback: Callable[[], None]) -> None: ...


class AtexitLifecycle:
    """Runs teardown callbacks at interpreter exit."""

    def register(self, callback: Callable[[], None]) -> None:
        atexit.register(callback)

    def unregister(self, callback: Callable[[], None]) -> None:
        atexit.unregister(callback)


class NullLifecycle:
    """Registers nothing. For hosts that manage shutdown themselves."""

    def register(self, callback: Callable[[], None]) -> None:
        pass

    def unregister(self, callback: Callable[[], None]) -> None:
        pass
