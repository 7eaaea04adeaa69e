import asyncio

from docsmith.errors import PipelineCancelled


class CancellationToken:
    """One per pipeline run. Set from the event loop that drives the run."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self, step: str = "") -> None:
        if self._event.is_set():
            raise PipelineCancelled(step)
