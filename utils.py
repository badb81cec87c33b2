"""
Utility functions for the call relay.
"""
import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

from config import GOODBYE_PHRASES
from logging_config import get_logger

logger = get_logger(__name__)


def check_for_goodbye(text: str, phrases: Iterable[str] = GOODBYE_PHRASES) -> bool:
    """Return True if the text contains any goodbye phrase (case-insensitive substring)."""
    if not text:
        return False
    lowercase_text = text.lower()
    return any(phrase in lowercase_text for phrase in phrases)


def normalize_event_to_dict(event: Any) -> Dict[str, Any]:
    """Convert a raw socket frame to a dictionary.

    Raises ValueError when the frame is not a JSON object.
    """
    if isinstance(event, dict):
        return event
    if isinstance(event, (bytes, bytearray)):
        event = event.decode()
    if isinstance(event, str):
        data = json.loads(event)
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
        return data
    raise ValueError(f"Unsupported frame type: {type(event).__name__}")


async def safe_task(coro: Awaitable, name: str = "task"):
    """Await a coroutine, logging instead of propagating its errors."""
    try:
        return await coro
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.exception("Task error", task=name)
        return None


class DeferredAction:
    """Run a coroutine function once after a delay, unless cancelled first."""

    def __init__(self, delay: float, action: Callable[[], Awaitable[Any]], name: str = "deferred"):
        self.delay = delay
        self.name = name
        self._action = action
        self._task: Optional[asyncio.Task] = None

    def start(self) -> "DeferredAction":
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=self.name)
        return self

    async def _run(self) -> None:
        await asyncio.sleep(self.delay)
        await safe_task(self._action(), name=self.name)

    def cancel(self) -> None:
        # A running action may tear down its own session; it must not cancel itself.
        if self._task is asyncio.current_task():
            return
        if self._task is not None and not self._task.done():
            self._task.cancel()

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    async def wait(self) -> None:
        """Wait for the action to finish (or be cancelled)."""
        if self._task is not None:
            await asyncio.wait({self._task})
