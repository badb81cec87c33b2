"""
Barge-in handling: when the caller starts talking over the assistant, cut
the assistant's response at what was actually heard and flush Twilio's
playback buffer.
"""
from config import Settings
from logging_config import get_logger
from models import CallState
from openai_service import OpenAIService
from twilio_stream_service import TwilioStreamService

logger = get_logger(__name__)


class BargeInService:
    def __init__(
        self,
        call_state: CallState,
        twilio_stream: TwilioStreamService,
        openai_service: OpenAIService,
        settings: Settings,
    ):
        self.call_state = call_state
        self.twilio_stream = twilio_stream
        self.openai_service = openai_service
        self.settings = settings

    def should_truncate(self) -> bool:
        state = self.call_state
        return (
            bool(state.mark_queue)
            and state.response_start_timestamp is not None
            and state.last_assistant_item_id is not None
        )

    async def handle_speech_started(self) -> bool:
        """Truncate the in-flight response. Returns False when there is nothing to interrupt."""
        if not self.should_truncate():
            return False

        state = self.call_state
        item_id = state.last_assistant_item_id
        elapsed = state.latest_media_timestamp - state.response_start_timestamp
        if self.settings.show_timing_math:
            logger.info(
                "Calculating elapsed time for truncation",
                latest=state.latest_media_timestamp,
                start=state.response_start_timestamp,
                elapsed_ms=elapsed,
            )

        await self.openai_service.truncate_assistant_response(item_id, elapsed)
        await self.twilio_stream.clear_stream()
        state.reset_turn()
        logger.debug("Assistant response interrupted", item_id=item_id, audio_end_ms=elapsed)
        return True
