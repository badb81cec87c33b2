from __future__ import annotations

import dataclasses

import pytest

from errors import ConfigurationError, SessionAlreadyExistsError
from models import CallType
from openai_call_handler import OpenAICallHandler
from openai_service import OpenAIService
from pipeline_call_handler import PipelineCallHandler
from session_manager import SessionManager

from conftest import FakeChat, FakeConnector, FakeSTT, FakeTTS, FakeTwilioWebSocket


def _manager(settings, call_service, **kwargs):
    kwargs.setdefault(
        "openai_service_factory", lambda s: OpenAIService(s, connector=FakeConnector())
    )
    return SessionManager(settings, call_service=call_service, **kwargs)


def test_realtime_mode_builds_openai_handler(settings, call_service):
    manager = _manager(settings, call_service)
    handler = manager.create_session(FakeTwilioWebSocket(), CallType.OUTBOUND)

    assert isinstance(handler, OpenAICallHandler)
    assert manager.active_session_count == 1


def test_pipeline_mode_builds_pipeline_handler(settings, call_service):
    settings = dataclasses.replace(settings, voice_processing_mode="vosk_coqui")
    manager = _manager(
        settings,
        call_service,
        speech_services_factory=lambda s: (FakeSTT(), FakeTTS()),
        chat_service_factory=lambda provider, s: FakeChat(),
    )

    handler = manager.create_session(FakeTwilioWebSocket(), CallType.OUTBOUND)

    assert isinstance(handler, PipelineCallHandler)


def test_pipeline_mode_requires_speech_services(settings, call_service):
    settings = dataclasses.replace(settings, voice_processing_mode="vosk_coqui")
    with pytest.raises(ConfigurationError):
        SessionManager(settings, call_service=call_service)


def test_duplicate_session_is_rejected(settings, call_service):
    manager = _manager(settings, call_service)
    ws = FakeTwilioWebSocket()
    first = manager.create_session(ws, CallType.OUTBOUND)

    with pytest.raises(SessionAlreadyExistsError):
        manager.create_session(ws, CallType.OUTBOUND)

    assert manager.get_session(ws) is first
    assert manager.active_session_count == 1


def test_sessions_are_independent(settings, call_service):
    manager = _manager(settings, call_service)
    a, b = FakeTwilioWebSocket(), FakeTwilioWebSocket()
    handler_a = manager.create_session(a, CallType.OUTBOUND)
    handler_b = manager.create_session(b, CallType.OUTBOUND)

    handler_a.call_state.mark_queue.append("responsePart")

    assert handler_b.call_state.mark_queue == []
    assert manager.active_session_count == 2


def test_remove_session_is_idempotent(settings, call_service):
    manager = _manager(settings, call_service)
    ws = FakeTwilioWebSocket()
    manager.create_session(ws, CallType.OUTBOUND)

    manager.remove_session(ws)
    manager.remove_session(ws)

    assert manager.get_session(ws) is None
    assert manager.active_session_count == 0


async def test_twilio_close_removes_session(settings, call_service):
    manager = _manager(settings, call_service)
    ws = FakeTwilioWebSocket()
    handler = manager.create_session(ws, CallType.OUTBOUND)

    await handler.twilio_stream.close()

    assert manager.active_session_count == 0
    assert not handler.is_active


async def test_close_all_terminates_every_session(settings, call_service):
    manager = _manager(settings, call_service)
    sockets = [FakeTwilioWebSocket() for _ in range(3)]
    handlers = [manager.create_session(ws, CallType.OUTBOUND) for ws in sockets]

    await manager.close_all()

    assert manager.active_session_count == 0
    assert not any(h.is_active for h in handlers)
    assert all(ws.close_calls == 1 for ws in sockets)
