from __future__ import annotations

import dataclasses
from types import SimpleNamespace

import pytest

from chat_service import OpenAIChatService, create_chat_service
from errors import UnsupportedProviderError


class FakeCompletions:
    def __init__(self, reply="Hi there", chunks=None):
        self.reply = reply
        self.chunks = chunks or []
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        if kwargs["stream"]:
            return self._stream()
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self.reply))])

    async def _stream(self):
        for text in self.chunks:
            yield SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])
        yield SimpleNamespace(choices=[])


class FakeOpenAIClient:
    def __init__(self, completions):
        self.chat = SimpleNamespace(completions=completions)


def _service(completions):
    return OpenAIChatService(
        api_key="sk", model="gpt-4o-mini", temperature=0.7, max_tokens=150, client=FakeOpenAIClient(completions)
    )


async def test_generate_response_sends_history_and_records_reply():
    completions = FakeCompletions(reply="Seven works.")
    chat = _service(completions)
    chat.initialize_session("You book tables.")

    reply = await chat.generate_response("Can I come at seven?")

    assert reply == "Seven works."
    request = completions.requests[0]
    assert request["model"] == "gpt-4o-mini"
    assert request["max_tokens"] == 150
    assert request["messages"] == [
        {"role": "system", "content": "You book tables."},
        {"role": "user", "content": "Can I come at seven?"},
    ]
    assert [m.role for m in chat.get_conversation_history()] == ["system", "user", "assistant"]


async def test_empty_reply_is_not_recorded():
    chat = _service(FakeCompletions(reply=None))
    chat.initialize_session("prompt")

    assert await chat.generate_response("hello") == ""
    assert [m.role for m in chat.get_conversation_history()] == ["system", "user"]


async def test_streaming_response_forwards_chunks():
    chat = _service(FakeCompletions(chunks=["Sure", ", ", "see you"]))
    chat.initialize_session("prompt")
    received = []

    await chat.generate_streaming_response("hi", received.append)

    assert received == ["Sure", ", ", "see you"]
    assert chat.get_conversation_history()[-1].content == "Sure, see you"


def test_history_helpers():
    chat = _service(FakeCompletions())
    chat.initialize_session("first")
    chat.add_user_message("a")
    chat.add_assistant_message("b")

    chat.update_system_prompt("second")
    assert chat.get_conversation_history()[0].content == "second"

    chat.clear_history()
    assert [m.content for m in chat.get_conversation_history()] == ["second"]


def test_factory_builds_openrouter_client(settings):
    settings = dataclasses.replace(settings, openrouter_api_key="or-key", openrouter_model="meta/llama")
    chat = create_chat_service("OpenRouter", settings)

    assert chat.model == "meta/llama"
    assert str(chat.client.base_url).startswith("https://openrouter.ai/api/v1")


def test_factory_builds_openai_client(settings):
    settings = dataclasses.replace(settings, openai_chat_api_key="sk-chat")
    chat = create_chat_service("openai", settings)
    assert chat.model == "gpt-4o-mini"


def test_factory_rejects_unknown_provider(settings):
    with pytest.raises(UnsupportedProviderError) as excinfo:
        create_chat_service("anthropic", settings)
    assert "'openai', 'openrouter'" in str(excinfo.value)
