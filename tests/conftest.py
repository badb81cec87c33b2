from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import pytest
from starlette.websockets import WebSocketState
from websockets.protocol import State

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from config import Settings  # noqa: E402
from models import CallState  # noqa: E402
from twilio_stream_service import TwilioStreamService  # noqa: E402


class FakeTwilioWebSocket:
    """Stands in for the Starlette WebSocket Twilio connects with."""

    def __init__(self, incoming=None):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.incoming = list(incoming or [])
        self.sent = []
        self.close_calls = 0
        self.close_code = None
        self.accepted = False

    async def accept(self):
        self.accepted = True

    async def send_json(self, data, mode="text"):
        self.sent.append(data)

    async def close(self, code=1000, reason=None):
        self.close_calls += 1
        self.close_code = code
        self.application_state = WebSocketState.DISCONNECTED

    async def iter_text(self):
        for message in self.incoming:
            yield message if isinstance(message, str) else json.dumps(message)

    def events(self, name):
        return [frame for frame in self.sent if frame.get("event") == name]


class FakeRealtimeConnection:
    """Stands in for a websockets client connection to OpenAI."""

    def __init__(self):
        self.state = State.OPEN
        self.sent = []
        self._queue = asyncio.Queue()

    async def send(self, data):
        self.sent.append(json.loads(data))

    async def close(self):
        if self.state is State.OPEN:
            self.state = State.CLOSED
            self._queue.put_nowait(None)

    def push(self, event):
        self._queue.put_nowait(event if isinstance(event, str) else json.dumps(event))

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._queue.get()
        if item is None:
            raise StopAsyncIteration
        return item

    def sent_of_type(self, type_):
        return [frame for frame in self.sent if frame.get("type") == type_]


class FakeConnector:
    def __init__(self, connection=None, error=None):
        self.connection = connection or FakeRealtimeConnection()
        self.error = error
        self.calls = []

    async def __call__(self, url, additional_headers=None):
        self.calls.append((url, additional_headers))
        if self.error is not None:
            raise self.error
        return self.connection


class FakeCallService:
    def __init__(self):
        self.recordings = []
        self.ended = []

    async def start_recording(self, call_sid):
        self.recordings.append(call_sid)

    async def end_call(self, call_sid):
        self.ended.append(call_sid)


class FakeOpenAIService:
    """Records the commands the translators send to the AI side."""

    def __init__(self, connected=True):
        self.connected = connected
        self.audio = []
        self.truncations = []
        self.sessions = []

    def is_connected(self):
        return self.connected

    async def send_audio(self, payload):
        self.audio.append(payload)

    async def truncate_assistant_response(self, item_id, elapsed_ms):
        self.truncations.append((item_id, elapsed_ms))

    async def initialize_session(self, instructions):
        self.sessions.append(instructions)
        return True


class FakeSTT:
    def __init__(self, ready=True):
        self.ready = ready
        self.on_transcription = None
        self.audio = []
        self.closed = False

    async def initialize(self, on_transcription):
        self.on_transcription = on_transcription

    def is_ready(self):
        return self.ready

    async def process_audio(self, audio_payload):
        self.audio.append(audio_payload)

    async def close(self):
        self.closed = True


class FakeTTS:
    def __init__(self):
        self.on_audio = None
        self.spoken = []
        self.closed = False

    async def initialize(self, on_audio):
        self.on_audio = on_audio

    async def generate_speech(self, text):
        self.spoken.append(text)
        await self.on_audio("U1BFRUNI")

    async def close(self):
        self.closed = True


class FakeChat:
    def __init__(self, reply="Sure, seven pm works."):
        self.reply = reply
        self.system_prompt = None
        self.received = []

    def initialize_session(self, system_prompt):
        self.system_prompt = system_prompt

    async def generate_response(self, user_message):
        self.received.append(user_message)
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


async def wait_for(predicate, timeout=1.0):
    """Yield to the loop until ``predicate()`` is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


def start_frame(stream_sid="MZ123", call_sid="CA123", **params):
    params.setdefault("fromNumber", "+1")
    params.setdefault("toNumber", "+2")
    return {
        "event": "start",
        "start": {"streamSid": stream_sid, "callSid": call_sid, "customParameters": params},
    }


def media_frame(timestamp, payload="dGVzdA=="):
    return {"event": "media", "media": {"timestamp": timestamp, "payload": payload}}


@pytest.fixture()
def settings():
    return Settings(
        openai_api_key="sk-test",
        api_secret="s3cret",
        session_init_delay=0.0,
        end_call_delay=0.0,
        pipeline_goodbye_delay=0.0,
    )


@pytest.fixture()
def twilio_ws():
    return FakeTwilioWebSocket()


@pytest.fixture()
def call_state():
    return CallState()


@pytest.fixture()
def twilio_stream(twilio_ws, call_state):
    return TwilioStreamService(twilio_ws, call_state)


@pytest.fixture()
def call_service():
    return FakeCallService()
