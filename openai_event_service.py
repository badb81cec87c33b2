"""
Processes OpenAI Realtime events: transcripts, audio deltas and speech starts.
"""
from typing import Any, Awaitable, Callable, Dict

from barge_in_service import BargeInService
from config import Settings
from logging_config import get_logger
from models import CallState
from twilio_stream_service import TwilioStreamService
from utils import check_for_goodbye

logger = get_logger(__name__)


class OpenAIEventService:
    """Service for processing OpenAI events."""

    def __init__(
        self,
        call_state: CallState,
        twilio_stream: TwilioStreamService,
        barge_in: BargeInService,
        settings: Settings,
        on_end_call: Callable[[], Awaitable[None]],
    ):
        self.call_state = call_state
        self.twilio_stream = twilio_stream
        self.barge_in = barge_in
        self.settings = settings
        self.on_end_call = on_end_call

    async def process_event(self, response: Dict[str, Any]) -> None:
        t = response.get("type")

        if t in self.settings.log_event_types:
            if t == "error":
                logger.warning("OpenAI error event", error=response.get("error"))
            elif t != "response.audio.delta":
                logger.debug("Received event", type=t, payload=response)

        if t == "conversation.item.input_audio_transcription.completed":
            await self.handle_transcription_completed(response.get("transcript"))
        elif t == "response.audio_transcript.done":
            self.handle_audio_transcript_done(response.get("transcript"))
        elif t == "response.audio.delta":
            if response.get("delta"):
                await self.handle_audio_delta(response)
        elif t == "input_audio_buffer.speech_started":
            await self.barge_in.handle_speech_started()

    def _append(self, role: str, content: str) -> bool:
        if not self.call_state.conversation_history:
            logger.warning("Dropping transcript received before the stream started", role=role)
            return False
        self.call_state.add_message(role, content)
        return True

    async def handle_transcription_completed(self, transcription: str) -> None:
        if not transcription:
            return
        if not self._append("user", transcription):
            return
        logger.info("Caller said", transcript=transcription)

        if check_for_goodbye(transcription, self.settings.goodbye_phrases):
            logger.info("Goodbye phrase detected, ending call")
            await self.on_end_call()

    def handle_audio_transcript_done(self, transcript: str) -> None:
        if not transcript:
            return
        if self._append("assistant", transcript):
            logger.info("Assistant said", transcript=transcript)

    async def handle_audio_delta(self, response: Dict[str, Any]) -> None:
        await self.twilio_stream.send_audio(response["delta"])

        item_id = response.get("item_id")
        state = self.call_state
        new_item = (
            bool(item_id)
            and state.last_assistant_item_id is not None
            and item_id != state.last_assistant_item_id
        )
        if state.response_start_timestamp is None or new_item:
            state.response_start_timestamp = state.latest_media_timestamp
            if self.settings.show_timing_math:
                logger.info(
                    "Setting start timestamp for new response",
                    start_ms=state.response_start_timestamp,
                )

        if item_id:
            state.last_assistant_item_id = item_id

        await self.twilio_stream.send_mark()
