"""Cooperative cancellation for flow runs."""

import asyncio


class CancellationToken:
    """
    Signals that a run should stop.

    The flow executor checks the token before starting each node and races
    in-flight executor calls against it. Executors that loop or stream should
    check `cancelled` themselves, or await `wait()`.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "Run cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()
