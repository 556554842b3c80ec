"""Cooperative cancellation for in-flight relay calls."""

import asyncio


class CancellationToken:
    """
    Set once by the caller, observed by the poll loop.

    The poll loop checks ``cancelled`` before every attempt and sleeps through
    ``sleep`` so a cancel wakes it immediately instead of after the interval.
    """

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds`` or until cancelled, whichever comes first."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
