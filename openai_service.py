"""
OpenAI Realtime adapter: owns the outbound WebSocket for one call, sends
session/audio/truncate commands and reports inbound frames to a listener.
"""
import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from config import AUDIO_FORMAT, Settings
from errors import MalformedFrameError
from logging_config import get_logger
from utils import normalize_event_to_dict

logger = get_logger(__name__)


class ConnectionEventType(str, Enum):
    OPEN = "open"
    MESSAGE = "message"
    ERROR = "error"
    CLOSED = "closed"


@dataclass
class ConnectionEvent:
    type: ConnectionEventType
    data: Optional[Dict[str, Any]] = None
    error: Optional[BaseException] = None


class RealtimeListener(Protocol):
    async def handle_connection_event(self, event: ConnectionEvent) -> None:
        ...


class OpenAIService:
    """Service for managing one OpenAI realtime session."""

    def __init__(self, settings: Settings, connector: Optional[Callable[..., Any]] = None):
        self.settings = settings
        self._connector = connector or connect
        self._ws = None
        self._reader_task: Optional[asyncio.Task] = None
        self._closed = False

    async def initialize(self, listener: RealtimeListener) -> None:
        """Open the connection in the background; ``listener`` receives OPEN once the handshake completes."""
        if self._reader_task is None:
            self._reader_task = asyncio.create_task(self._run(listener), name="openai-realtime-reader")

    async def _run(self, listener: RealtimeListener) -> None:
        try:
            self._ws = await self._connector(
                self.settings.openai_realtime_url,
                additional_headers={
                    "Authorization": f"Bearer {self.settings.openai_api_key}",
                    "OpenAI-Beta": "realtime=v1",
                },
            )
        except Exception as e:
            logger.error("Failed to connect to the OpenAI Realtime API", error=str(e))
            await self._deliver(listener, ConnectionEvent(ConnectionEventType.ERROR, error=e))
            await self._deliver(listener, ConnectionEvent(ConnectionEventType.CLOSED))
            return

        if self._closed:
            await self._ws.close()
            await self._deliver(listener, ConnectionEvent(ConnectionEventType.CLOSED))
            return

        logger.info("Connected to the OpenAI Realtime API")
        await self._deliver(listener, ConnectionEvent(ConnectionEventType.OPEN))
        try:
            async for raw in self._ws:
                try:
                    data = normalize_event_to_dict(raw)
                except ValueError as e:
                    logger.warning("Error processing OpenAI message", error=str(e), raw=raw)
                    await self._deliver(
                        listener,
                        ConnectionEvent(ConnectionEventType.ERROR, error=MalformedFrameError(str(e), raw=raw)),
                    )
                    continue
                await self._deliver(listener, ConnectionEvent(ConnectionEventType.MESSAGE, data=data))
        except ConnectionClosed as e:
            logger.info("OpenAI WebSocket closed", code=getattr(e.rcvd, "code", None))
        except Exception as e:
            logger.error("Error in the OpenAI WebSocket", error=str(e))
            await self._deliver(listener, ConnectionEvent(ConnectionEventType.ERROR, error=e))
        finally:
            logger.info("Disconnected from the OpenAI Realtime API")
            await self._deliver(listener, ConnectionEvent(ConnectionEventType.CLOSED))

    @staticmethod
    async def _deliver(listener: RealtimeListener, event: ConnectionEvent) -> None:
        try:
            await listener.handle_connection_event(event)
        except Exception:
            logger.exception("OpenAI listener failed", event_type=event.type.value)

    def is_connected(self) -> bool:
        return not self._closed and self._ws is not None and self._ws.state is State.OPEN

    async def _send(self, payload: Dict[str, Any]) -> bool:
        if not self.is_connected():
            return False
        try:
            await self._ws.send(json.dumps(payload))
            return True
        except ConnectionClosed:
            logger.debug("Dropping frame for closed OpenAI socket", type=payload.get("type"))
            return False

    async def initialize_session(self, instructions: str) -> bool:
        """Send the session.update frame that configures voice, audio formats and transcription."""
        session_update = {
            "type": "session.update",
            "session": {
                "turn_detection": {"type": "server_vad"},
                "input_audio_format": AUDIO_FORMAT,
                "output_audio_format": AUDIO_FORMAT,
                "voice": self.settings.voice,
                "instructions": instructions,
                "modalities": ["text", "audio"],
                "temperature": self.settings.temperature,
                "input_audio_transcription": {"model": self.settings.transcription_model},
            },
        }
        logger.debug("Sending session update", voice=self.settings.voice)
        return await self._send(session_update)

    async def send_audio(self, audio_payload: str) -> None:
        """Forward a caller audio chunk to the input buffer."""
        await self._send({"type": "input_audio_buffer.append", "audio": audio_payload})

    async def truncate_assistant_response(self, item_id: str, elapsed_ms: int) -> None:
        """Cut the assistant item at the point the caller actually heard."""
        truncate_event = {
            "type": "conversation.item.truncate",
            "item_id": item_id,
            "content_index": 0,
            "audio_end_ms": elapsed_ms,
        }
        if self.settings.show_timing_math:
            logger.info("Sending truncation event", **truncate_event)
        await self._send(truncate_event)

    async def close(self) -> None:
        """Close the OpenAI socket. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._ws is not None and self._ws.state is State.OPEN:
            await self._ws.close()

    async def wait_closed(self) -> None:
        if self._reader_task is not None:
            await asyncio.wait({self._reader_task})
