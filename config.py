"""
Configuration and constants for the call relay.

Values are read once from the environment (and an optional .env file) into
an immutable Settings object that is handed to every component.
"""
import os
import secrets
from dataclasses import dataclass, field
from typing import Optional, Tuple

from dotenv import load_dotenv

from errors import ConfigurationError

# =============================
# Application Constants
# =============================
GOODBYE_PHRASES: Tuple[str, ...] = ("bye", "goodbye", "have a nice day", "see you", "take care")

LOG_EVENT_TYPES: Tuple[str, ...] = (
    "error",
    "session.created",
    "response.audio.delta",
    "response.audio_transcript.done",
    "conversation.item.input_audio_transcription.completed",
)

# Twilio media stream specifics
AUDIO_FORMAT = "g711_ulaw"
MARK_NAME = "responsePart"

# Voice processing modes
MODE_OPENAI = "openai"
MODE_VOSK_COQUI = "vosk_coqui"
VOICE_PROCESSING_MODES = (MODE_OPENAI, MODE_VOSK_COQUI)

SUPPORTED_CHAT_PROVIDERS = ("openai", "openrouter")

OPENAI_REALTIME_BASE_URL = "wss://api.openai.com/v1/realtime"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, built once at start-up."""

    # =============================
    # Server Configuration
    # =============================
    host: str = "0.0.0.0"
    port: int = 3004
    callback_url: str = ""
    api_secret: str = field(default_factory=lambda: secrets.token_urlsafe(16))

    # =============================
    # OpenAI Realtime Configuration
    # =============================
    openai_api_key: Optional[str] = None
    openai_realtime_model: str = "gpt-4o-mini-realtime-preview"
    voice: str = "sage"
    temperature: float = 0.6
    transcription_model: str = "whisper-1"
    log_event_types: Tuple[str, ...] = LOG_EVENT_TYPES

    # =============================
    # Call behaviour
    # =============================
    voice_processing_mode: str = MODE_OPENAI
    record_calls: bool = False
    show_timing_math: bool = False
    goodbye_phrases: Tuple[str, ...] = GOODBYE_PHRASES
    initial_message: str = "Hello!"
    session_init_delay: float = 0.1
    end_call_delay: float = 5.0
    pipeline_goodbye_delay: float = 3.0

    # =============================
    # Chat (pipeline mode)
    # =============================
    chat_api_provider: str = "openai"
    openai_chat_api_key: Optional[str] = None
    openai_chat_model: str = "gpt-4o-mini"
    openai_chat_temperature: float = 0.7
    openrouter_api_key: Optional[str] = None
    openrouter_model: str = "openai/gpt-4o-mini"
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_temperature: float = 0.7
    chat_max_tokens: int = 150

    # =============================
    # Twilio Configuration
    # =============================
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_number: str = ""

    # =============================
    # Logging
    # =============================
    log_level: str = "INFO"
    log_format: str = "console"

    @property
    def openai_realtime_url(self) -> str:
        return f"{OPENAI_REALTIME_BASE_URL}?model={self.openai_realtime_model}"

    @property
    def uses_realtime(self) -> bool:
        return self.voice_processing_mode == MODE_OPENAI

    def validate(self) -> "Settings":
        """Raise ConfigurationError for settings the process cannot run with."""
        if self.voice_processing_mode not in VOICE_PROCESSING_MODES:
            raise ConfigurationError(
                f"Unsupported VOICE_PROCESSING_MODE: {self.voice_processing_mode}. "
                f"Supported modes: {', '.join(VOICE_PROCESSING_MODES)}"
            )
        if self.uses_realtime and not self.openai_api_key:
            raise ConfigurationError("Missing the OpenAI API key. Please set it in the .env file.")
        if not self.uses_realtime and self.chat_api_provider.lower() not in SUPPORTED_CHAT_PROVIDERS:
            raise ConfigurationError(
                f"Unsupported CHAT_API_PROVIDER: {self.chat_api_provider}. "
                f"Supported providers: {', '.join(SUPPORTED_CHAT_PROVIDERS)}"
            )
        return self


def load_settings() -> Settings:
    """Read Settings from the environment (after loading .env)."""
    load_dotenv()

    kwargs = dict(
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3004")),
        callback_url=os.getenv("TWILIO_CALLBACK_URL", ""),
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        openai_realtime_model=os.getenv("OPENAI_REALTIME_MODEL", "gpt-4o-mini-realtime-preview"),
        voice=os.getenv("VOICE", "sage"),
        temperature=float(os.getenv("TEMPERATURE", "0.6")),
        transcription_model=os.getenv("TRANSCRIPTION_MODEL", "whisper-1"),
        voice_processing_mode=os.getenv("VOICE_PROCESSING_MODE", MODE_OPENAI).strip().lower(),
        record_calls=_env_bool("RECORD"),
        show_timing_math=_env_bool("SHOW_TIMING_MATH"),
        chat_api_provider=os.getenv("CHAT_API_PROVIDER", "openai"),
        openai_chat_api_key=os.getenv("OPENAI_CHAT_API_KEY") or os.getenv("OPENAI_API_KEY"),
        openai_chat_model=os.getenv("OPENAI_CHAT_MODEL", "gpt-4o-mini"),
        openai_chat_temperature=float(os.getenv("OPENAI_CHAT_TEMPERATURE", "0.7")),
        openrouter_api_key=os.getenv("OPENROUTER_API_KEY"),
        openrouter_model=os.getenv("OPENROUTER_MODEL", "openai/gpt-4o-mini"),
        openrouter_base_url=os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"),
        openrouter_temperature=float(os.getenv("OPENROUTER_TEMPERATURE", "0.7")),
        twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID"),
        twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN"),
        twilio_number=os.getenv("TWILIO_NUMBER", ""),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_format=os.getenv("LOG_FORMAT", "console"),
    )
    api_secret = os.getenv("API_SECRET")
    if api_secret:
        kwargs["api_secret"] = api_secret

    return Settings(**kwargs).validate()
