"""
Interfaces for the speech engines used by the STT/chat/TTS pipeline mode.

The engines themselves (e.g. a Vosk recogniser or a Coqui synthesiser
running in a subprocess) are provided by the embedding application.
"""
from typing import Awaitable, Callable, Protocol, Tuple

from config import Settings

TranscriptionCallback = Callable[[str], Awaitable[None]]
AudioCallback = Callable[[str], Awaitable[None]]


class SpeechToTextService(Protocol):
    async def initialize(self, on_transcription: TranscriptionCallback) -> None:
        """Start the recogniser; final transcriptions are passed to ``on_transcription``."""

    def is_ready(self) -> bool:
        ...

    async def process_audio(self, audio_payload: str) -> None:
        """Feed one base64 mu-law chunk from Twilio."""

    async def close(self) -> None:
        ...


class TextToSpeechService(Protocol):
    async def initialize(self, on_audio: AudioCallback) -> None:
        """Start the synthesiser; base64 mu-law chunks are passed to ``on_audio``."""

    async def generate_speech(self, text: str) -> None:
        ...

    async def close(self) -> None:
        ...


SpeechServicesFactory = Callable[[Settings], Tuple[SpeechToTextService, TextToSpeechService]]
