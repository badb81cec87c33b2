"""
Registry of the call sessions currently running in this process.
"""
from typing import Callable, Dict, Optional

from fastapi import WebSocket

from call_handler import CallHandler
from call_service import TwilioCallService
from chat_service import ChatService, create_chat_service
from config import MODE_VOSK_COQUI, Settings
from context_service import ContextService
from errors import ConfigurationError, SessionAlreadyExistsError
from logging_config import get_logger
from models import CallType
from openai_call_handler import OpenAICallHandler
from openai_service import OpenAIService
from pipeline_call_handler import PipelineCallHandler
from speech_service import SpeechServicesFactory

logger = get_logger(__name__)


class SessionManager:
    """Manages multiple concurrent call sessions, one per Twilio connection."""

    def __init__(
        self,
        settings: Settings,
        call_service: Optional[TwilioCallService] = None,
        openai_service_factory: Optional[Callable[[Settings], OpenAIService]] = None,
        speech_services_factory: Optional[SpeechServicesFactory] = None,
        chat_service_factory: Callable[[str, Settings], ChatService] = create_chat_service,
    ):
        if settings.voice_processing_mode == MODE_VOSK_COQUI and speech_services_factory is None:
            raise ConfigurationError(
                f"VOICE_PROCESSING_MODE={MODE_VOSK_COQUI} needs speech services; none were provided"
            )
        self.settings = settings
        self.call_service = call_service or TwilioCallService(settings)
        self.context_service = ContextService(settings)
        self._openai_service_factory = openai_service_factory or OpenAIService
        self._speech_services_factory = speech_services_factory
        self._chat_service_factory = chat_service_factory
        self._sessions: Dict[int, CallHandler] = {}

    @staticmethod
    def _session_key(websocket: WebSocket) -> int:
        return id(websocket)

    def create_session(self, websocket: WebSocket, call_type: CallType) -> CallHandler:
        """Build the handler for a new Twilio connection and register it."""
        key = self._session_key(websocket)
        if key in self._sessions:
            raise SessionAlreadyExistsError(f"A session already exists for connection {key}")

        handler = self._build_handler(websocket, call_type)
        handler.twilio_stream.add_close_callback(lambda: self.remove_session(websocket))
        self._sessions[key] = handler
        logger.info("Session created", active_sessions=len(self._sessions))
        return handler

    def _build_handler(self, websocket: WebSocket, call_type: CallType) -> CallHandler:
        if self.settings.voice_processing_mode == MODE_VOSK_COQUI:
            logger.info("Creating session with speech pipeline handler")
            stt, tts = self._speech_services_factory(self.settings)
            chat = self._chat_service_factory(self.settings.chat_api_provider, self.settings)
            return PipelineCallHandler(
                websocket, call_type, self.settings, self.call_service, self.context_service, stt, tts, chat
            )

        logger.info("Creating session with OpenAI Realtime handler")
        return OpenAICallHandler(
            websocket,
            call_type,
            self.settings,
            self.call_service,
            self.context_service,
            openai_service=self._openai_service_factory(self.settings),
        )

    def remove_session(self, websocket: WebSocket) -> None:
        """Forget the session for this connection. Removing twice is harmless."""
        if self._sessions.pop(self._session_key(websocket), None) is not None:
            logger.info("Session removed", active_sessions=len(self._sessions))

    def get_session(self, websocket: WebSocket) -> Optional[CallHandler]:
        return self._sessions.get(self._session_key(websocket))

    @property
    def active_session_count(self) -> int:
        return len(self._sessions)

    async def close_all(self) -> None:
        """Tear down every active session (used on shutdown)."""
        for handler in list(self._sessions.values()):
            await handler.terminate()
            await handler.twilio_stream.close()
