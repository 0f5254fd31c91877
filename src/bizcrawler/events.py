import asyncio
import logging
import time
from typing import Any, AsyncIterator, Callable, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

EventType = Literal[
    "start", "depth", "scraping", "page_done", "page_error", "scrape_complete",
    "aborted", "extracting", "profile_ready",
]


class ProgressEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: EventType
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: float = Field(default_factory=lambda: time.time() * 1000)


Emit = Callable[..., None]
ProgressCallback = Callable[[ProgressEvent], None]


def noop_emit(event_type: str, **data) -> None:
    return None


_CLOSED = object()


class ProgressChannel:
    """Per-run queue of progress events.

    The producer calls ``emit`` (never blocks); a consumer iterates with
    ``async for`` until the producer calls ``close``. An optional callback sees
    every event as it is emitted.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._callback = callback
        self._closed = False
        self.emitted = 0

    def emit(self, event_type: str, **data) -> None:
        if self._closed:
            logger.debug(f"Dropping {event_type} event emitted after close")
            return
        event = ProgressEvent(type=event_type, data=data)
        self.emitted += 1
        self._queue.put_nowait(event)
        if self._callback:
            try:
                self._callback(event)
            except Exception as e:
                logger.warning(f"Progress callback failed on {event_type}: {e}")

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item
