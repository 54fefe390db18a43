"""Cooperative cancellation for analyzer build and execution steps."""

from __future__ import annotations

import asyncio
from typing import Optional

from .errors import AnalysisCancelled


class CancellationToken:
    """Flag shared between the orchestrator and the processes it waits on.

    The asyncio event is created lazily so a token can be built outside a
    running loop.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._event: Optional[asyncio.Event] = None
        self.reason = ""

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "cancelled by user") -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self.reason = reason
        if self._event is not None:
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise AnalysisCancelled(f"Analysis {self.reason}")

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        await self._event.wait()
