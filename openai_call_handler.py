"""
Call handler that relays audio to the OpenAI Realtime API.
"""
from typing import Optional

from fastapi import WebSocket

from barge_in_service import BargeInService
from call_handler import CallHandler
from call_service import TwilioCallService
from config import Settings
from context_service import ContextService
from logging_config import get_logger
from models import CallType
from openai_event_service import OpenAIEventService
from openai_service import ConnectionEvent, ConnectionEventType, OpenAIService

logger = get_logger(__name__)


class OpenAICallHandler(CallHandler):
    def __init__(
        self,
        websocket: WebSocket,
        call_type: CallType,
        settings: Settings,
        call_service: TwilioCallService,
        context_service: ContextService,
        openai_service: Optional[OpenAIService] = None,
    ):
        super().__init__(websocket, call_type, settings, call_service, context_service)
        self.openai_service = openai_service or OpenAIService(settings)
        self.barge_in = BargeInService(self.call_state, self.twilio_stream, self.openai_service, settings)
        self.openai_event_service = OpenAIEventService(
            self.call_state,
            self.twilio_stream,
            self.barge_in,
            settings,
            on_end_call=self.end_call,
        )
        self._openai_ready = False
        self._session_initialized = False

    @property
    def session_initialized(self) -> bool:
        return self._session_initialized

    async def start(self) -> None:
        logger.info("New OpenAI call handling started", call_type=self.call_state.call_type.value)
        await self.openai_service.initialize(self)

    async def forward_audio(self, payload: str) -> None:
        await self.openai_service.send_audio(payload)

    async def on_stream_started(self) -> None:
        await self._maybe_initialize_session()

    async def handle_connection_event(self, event: ConnectionEvent) -> None:
        if event.type is ConnectionEventType.OPEN:
            self.schedule(self.settings.session_init_delay, self._on_openai_ready, name="openai-session-init")
        elif event.type is ConnectionEventType.MESSAGE:
            async with self._lock:
                await self.openai_event_service.process_event(event.data)
        elif event.type is ConnectionEventType.ERROR:
            logger.error("Error in the OpenAI WebSocket", error=str(event.error))
        elif event.type is ConnectionEventType.CLOSED:
            logger.info("OpenAI session closed", stream_sid=self.call_state.stream_sid)

    async def _on_openai_ready(self) -> None:
        if not self.is_active or not self.openai_service.is_connected():
            return
        async with self._lock:
            self._openai_ready = True
            await self._maybe_initialize_session()

    async def _maybe_initialize_session(self) -> None:
        # Needs both the Twilio start event (for the call context) and a settled OpenAI socket.
        if self._session_initialized or not self._openai_ready or not self.call_state.stream_sid:
            return
        logger.info("Initializing OpenAI session", call_type=self.call_state.call_type.value)
        if await self.openai_service.initialize_session(self.call_state.call_context):
            self._session_initialized = True

    async def _close_services(self) -> None:
        await self.openai_service.close()
