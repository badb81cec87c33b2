"""
Processes Twilio stream events: start, media, mark and stop.
"""
from typing import Protocol, Union

import structlog

from call_service import TwilioCallService
from config import Settings
from context_service import ContextService
from errors import MalformedFrameError
from logging_config import get_logger
from models import CallState
from twilio_stream_service import (
    MarkEvent,
    MediaEvent,
    StartEvent,
    StopEvent,
    TwilioEvent,
    TwilioStreamService,
    parse_twilio_message,
)

logger = get_logger(__name__)


class MediaEventListener(Protocol):
    """What a call handler must offer to the Twilio event processor."""

    async def forward_audio(self, payload: str) -> None:
        ...

    async def on_stream_started(self) -> None:
        ...


class TwilioEventService:
    """Service for processing Twilio events."""

    def __init__(
        self,
        call_state: CallState,
        twilio_stream: TwilioStreamService,
        call_service: TwilioCallService,
        context_service: ContextService,
        settings: Settings,
        listener: MediaEventListener,
    ):
        self.call_state = call_state
        self.twilio_stream = twilio_stream
        self.call_service = call_service
        self.context_service = context_service
        self.settings = settings
        self.listener = listener

    async def process_message(self, message: Union[str, bytes]) -> None:
        """Parse and handle one raw Twilio frame. Bad frames are logged and dropped."""
        try:
            event = parse_twilio_message(message)
        except MalformedFrameError as e:
            logger.warning("Error parsing message", error=str(e), message=message)
            return
        await self.process_event(event)

    async def process_event(self, event: TwilioEvent) -> None:
        if isinstance(event, MediaEvent):
            await self.handle_media_event(event)
        elif isinstance(event, StartEvent):
            await self.handle_start_event(event)
        elif isinstance(event, MarkEvent):
            self.twilio_stream.process_mark()
        elif isinstance(event, StopEvent):
            logger.info("Twilio stream stopped", stream_sid=self.call_state.stream_sid)
        else:
            logger.debug("Received non-media event", twilio_event=event.event)

    async def handle_start_event(self, event: StartEvent) -> None:
        self.twilio_stream.process_start(event)
        structlog.contextvars.bind_contextvars(stream_sid=event.stream_sid, call_sid=event.call_sid)
        logger.info("Incoming stream has started")

        params = event.custom_parameters
        self.context_service.initialize_call_state(
            self.call_state, params.get("fromNumber", ""), params.get("toNumber", "")
        )
        self.context_service.setup_conversation_context(self.call_state, params.get("callContext"))
        await self.listener.on_stream_started()

    async def handle_media_event(self, event: MediaEvent) -> None:
        self.twilio_stream.process_media(event)
        if self.settings.show_timing_math:
            logger.debug("Received media message", timestamp_ms=event.timestamp)

        await self._handle_first_media_event_if_needed()
        await self.listener.forward_audio(event.payload)

    async def _handle_first_media_event_if_needed(self) -> None:
        if self.call_state.has_seen_media:
            return
        self.call_state.has_seen_media = True
        logger.info("First media event received")

        if self.settings.record_calls and self.call_state.call_sid:
            await self.call_service.start_recording(self.call_state.call_sid)
