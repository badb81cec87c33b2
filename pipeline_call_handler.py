"""
Call handler for the separate STT -> chat -> TTS pipeline.
"""
from fastapi import WebSocket

from call_handler import CallHandler
from call_service import TwilioCallService
from chat_service import ChatService
from config import Settings
from context_service import ContextService
from logging_config import get_logger
from models import CallType
from speech_service import SpeechToTextService, TextToSpeechService
from utils import check_for_goodbye

logger = get_logger(__name__)

GOODBYE_RESPONSE = "Thank you for calling. Have a great day! Goodbye."


class PipelineCallHandler(CallHandler):
    def __init__(
        self,
        websocket: WebSocket,
        call_type: CallType,
        settings: Settings,
        call_service: TwilioCallService,
        context_service: ContextService,
        stt: SpeechToTextService,
        tts: TextToSpeechService,
        chat: ChatService,
    ):
        super().__init__(websocket, call_type, settings, call_service, context_service)
        self.stt = stt
        self.tts = tts
        self.chat = chat
        self._is_processing_response = False

    @property
    def end_call_delay(self) -> float:
        return self.settings.pipeline_goodbye_delay

    async def start(self) -> None:
        try:
            await self.stt.initialize(self.handle_transcription)
            await self.tts.initialize(self.handle_generated_audio)
            logger.info("Speech services initialized")
        except Exception:
            logger.exception("Error initializing speech services")

    async def forward_audio(self, payload: str) -> None:
        if self.stt.is_ready():
            await self.stt.process_audio(payload)

    async def on_stream_started(self) -> None:
        self.chat.initialize_session(self.call_state.call_context)

    async def handle_transcription(self, transcription: str) -> None:
        if not transcription or not transcription.strip() or self._is_processing_response:
            return
        if not self.call_state.conversation_history:
            logger.warning("Dropping transcription received before the stream started")
            return

        logger.info("User said", transcript=transcription)
        self.call_state.add_message("user", transcription)

        if check_for_goodbye(transcription, self.settings.goodbye_phrases):
            await self.handle_goodbye()
            return

        await self.generate_ai_response(transcription)

    async def generate_ai_response(self, user_message: str) -> None:
        if self._is_processing_response:
            return
        self._is_processing_response = True
        try:
            response = await self.chat.generate_response(user_message)
            if response.strip():
                logger.info("AI response", response=response)
                self.call_state.add_message("assistant", response)
                await self.tts.generate_speech(response)
        except Exception:
            logger.exception("Error generating AI response")
        finally:
            self._is_processing_response = False

    async def handle_generated_audio(self, audio_data: str) -> None:
        await self.twilio_stream.send_audio(audio_data)

    async def handle_goodbye(self) -> None:
        self.call_state.add_message("assistant", GOODBYE_RESPONSE)
        try:
            await self.tts.generate_speech(GOODBYE_RESPONSE)
        except Exception:
            logger.exception("Error speaking goodbye")
        await self.end_call()

    async def _close_services(self) -> None:
        await self.stt.close()
        await self.tts.close()
