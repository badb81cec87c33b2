"""
Twilio Media Streams adapter: parses inbound frames and sends audio, marks
and clear commands back to the caller's stream.
"""
import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from fastapi import WebSocket
from fastapi.websockets import WebSocketDisconnect
from starlette.websockets import WebSocketState

from config import MARK_NAME
from errors import MalformedFrameError
from logging_config import get_logger
from models import CallState
from utils import normalize_event_to_dict

logger = get_logger(__name__)


@dataclass
class StartEvent:
    stream_sid: str
    call_sid: str
    custom_parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass
class MediaEvent:
    timestamp: int
    payload: str


@dataclass
class MarkEvent:
    name: Optional[str] = None


@dataclass
class StopEvent:
    call_sid: Optional[str] = None


@dataclass
class UnknownEvent:
    event: Optional[str]
    data: Dict[str, Any] = field(default_factory=dict)


TwilioEvent = Union[StartEvent, MediaEvent, MarkEvent, StopEvent, UnknownEvent]


def parse_twilio_message(raw: Union[str, bytes, Dict[str, Any]]) -> TwilioEvent:
    """Turn one Twilio frame into a typed event.

    Raises MalformedFrameError if the frame is not JSON or a known event
    lacks its required fields.
    """
    try:
        data = normalize_event_to_dict(raw)
    except ValueError as e:
        raise MalformedFrameError(f"Invalid Twilio frame: {e}", raw=raw) from e

    event = data.get("event")
    try:
        if event == "start":
            start = data["start"]
            return StartEvent(
                stream_sid=start["streamSid"],
                call_sid=start.get("callSid") or "",
                custom_parameters=dict(start.get("customParameters") or {}),
            )
        if event == "media":
            media = data["media"]
            return MediaEvent(timestamp=int(media["timestamp"]), payload=media["payload"])
        if event == "mark":
            return MarkEvent(name=(data.get("mark") or {}).get("name"))
        if event == "stop":
            return StopEvent(call_sid=(data.get("stop") or {}).get("callSid"))
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedFrameError(f"Incomplete Twilio {event!r} frame: {e!r}", raw=raw) from e
    return UnknownEvent(event=event, data=data)


class TwilioStreamService:
    """Wraps the Twilio WebSocket for one call."""

    def __init__(self, websocket: WebSocket, call_state: CallState):
        self.websocket = websocket
        self.call_state = call_state
        self._close_callbacks: List[Callable[[], Any]] = []
        self._closed = False

    # -----------------------------
    # Connection lifecycle
    # -----------------------------
    def is_connected(self) -> bool:
        return (
            not self._closed
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def add_close_callback(self, callback: Callable[[], Any]) -> None:
        """Register a hook fired once when the Twilio socket goes away."""
        self._close_callbacks.append(callback)

    async def listen(self, on_message: Callable[[str], Awaitable[None]]) -> None:
        """Feed every text frame to ``on_message`` until the socket disconnects."""
        try:
            async for message in self.websocket.iter_text():
                await on_message(message)
        except WebSocketDisconnect:
            logger.info("Twilio WebSocket disconnected", stream_sid=self.call_state.stream_sid)
        finally:
            await self._mark_closed()

    async def close(self) -> None:
        """Close the Twilio socket. Safe to call more than once."""
        if self._closed:
            return
        if self.websocket.application_state == WebSocketState.CONNECTED:
            try:
                await self.websocket.close()
            except RuntimeError as e:
                logger.debug("Twilio WebSocket already closing", error=str(e))
        await self._mark_closed()

    async def _mark_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in callbacks:
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Twilio close callback failed")

    # -----------------------------
    # Outbound commands
    # -----------------------------
    async def _send(self, payload: Dict[str, Any]) -> bool:
        if not self.call_state.stream_sid or not self.is_connected():
            return False
        try:
            await self.websocket.send_json(payload)
            return True
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.warning("Dropping frame for closed Twilio socket", twilio_event=payload.get("event"), error=str(e))
            return False

    async def send_audio(self, payload: str) -> None:
        """Send a chunk of synthesized audio to the caller."""
        await self._send({
            "event": "media",
            "streamSid": self.call_state.stream_sid,
            "media": {"payload": payload},
        })

    async def send_mark(self) -> None:
        """Send a mark so we learn when the audio sent so far has been played."""
        if not self.call_state.stream_sid:
            return
        self.call_state.mark_queue.append(MARK_NAME)
        await self._send({
            "event": "mark",
            "streamSid": self.call_state.stream_sid,
            "mark": {"name": MARK_NAME},
        })

    async def clear_stream(self) -> None:
        """Tell Twilio to drop any buffered audio that has not been played yet."""
        await self._send({"event": "clear", "streamSid": self.call_state.stream_sid})

    # -----------------------------
    # Inbound bookkeeping
    # -----------------------------
    def process_start(self, event: StartEvent) -> None:
        self.call_state.stream_sid = event.stream_sid
        self.call_state.call_sid = event.call_sid
        self.call_state.response_start_timestamp = None
        self.call_state.latest_media_timestamp = 0

    def process_media(self, event: MediaEvent) -> None:
        self.call_state.latest_media_timestamp = event.timestamp

    def process_mark(self) -> None:
        """Acknowledge the oldest outstanding mark."""
        if self.call_state.mark_queue:
            self.call_state.mark_queue.pop(0)
            if not self.call_state.mark_queue:
                # Everything sent so far has been played out; the turn is over.
                self.call_state.reset_turn()
