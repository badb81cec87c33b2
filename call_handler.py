"""
Base class for one call session: owns the Twilio side and the teardown
rules shared by the realtime and pipeline handlers.
"""
import abc
import asyncio
from typing import Awaitable, Callable, List, Union

from fastapi import WebSocket

from call_service import TwilioCallService
from config import Settings
from context_service import ContextService
from logging_config import get_logger
from models import CallState, CallType
from twilio_event_service import TwilioEventService
from twilio_stream_service import TwilioStreamService
from utils import DeferredAction

logger = get_logger(__name__)


class CallHandler(abc.ABC):
    """A single call relayed between Twilio and a speech backend."""

    def __init__(
        self,
        websocket: WebSocket,
        call_type: CallType,
        settings: Settings,
        call_service: TwilioCallService,
        context_service: ContextService,
    ):
        self.websocket = websocket
        self.settings = settings
        self.call_service = call_service
        self.call_state = CallState(call_type=call_type)
        self.twilio_stream = TwilioStreamService(websocket, self.call_state)
        self.twilio_event_service = TwilioEventService(
            self.call_state,
            self.twilio_stream,
            call_service,
            context_service,
            settings,
            listener=self,
        )
        self._lock = asyncio.Lock()
        self._timers: List[DeferredAction] = []
        self._terminated = False
        self._ending = False

        self.twilio_stream.add_close_callback(self.terminate)

    # -----------------------------
    # Hooks for the concrete handlers
    # -----------------------------
    @abc.abstractmethod
    async def start(self) -> None:
        """Bring up the backend side of the call."""

    @abc.abstractmethod
    async def forward_audio(self, payload: str) -> None:
        """Deliver one chunk of caller audio to the backend."""

    @abc.abstractmethod
    async def on_stream_started(self) -> None:
        """Called once the Twilio start event has populated the call state."""

    @abc.abstractmethod
    async def _close_services(self) -> None:
        """Close the backend connections. Must be idempotent."""

    @property
    def end_call_delay(self) -> float:
        return self.settings.end_call_delay

    # -----------------------------
    # Lifecycle
    # -----------------------------
    @property
    def is_active(self) -> bool:
        return not self._terminated

    async def run(self) -> None:
        """Start the backend and pump Twilio frames until the caller's stream closes."""
        await self.start()
        await self.twilio_stream.listen(self.handle_transport_message)

    async def handle_transport_message(self, message: Union[str, bytes]) -> None:
        async with self._lock:
            await self.twilio_event_service.process_message(message)

    def schedule(self, delay: float, action: Callable[[], Awaitable[None]], name: str) -> DeferredAction:
        timer = DeferredAction(delay, action, name=name).start()
        self._timers.append(timer)
        return timer

    async def end_call(self) -> None:
        """Hang up after a short delay so the last audio can play out."""
        if self._ending or self._terminated:
            return
        self._ending = True
        self.schedule(self.end_call_delay, self._finish_call, name="end-call")

    async def _finish_call(self) -> None:
        if self._terminated:
            return
        if self.call_state.call_sid:
            await self.call_service.end_call(self.call_state.call_sid)
        await self.twilio_stream.close()
        await self.terminate()

    async def terminate(self) -> None:
        """Cancel pending timers and close the backend. Safe to call more than once."""
        if self._terminated:
            return
        self._terminated = True
        for timer in self._timers:
            timer.cancel()
        await self._close_services()
        logger.info("Client disconnected", stream_sid=self.call_state.stream_sid)
