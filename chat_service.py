"""
Chat completion services used by the pipeline mode (OpenAI or OpenRouter).
"""
from typing import Callable, List, Optional, Protocol

from openai import AsyncOpenAI

from config import SUPPORTED_CHAT_PROVIDERS, Settings
from errors import UnsupportedProviderError
from models import ConversationMessage


class ChatService(Protocol):
    def initialize_session(self, system_prompt: str) -> None:
        ...

    async def generate_response(self, user_message: str) -> str:
        ...

    async def generate_streaming_response(self, user_message: str, on_chunk: Callable[[str], None]) -> None:
        ...

    def get_conversation_history(self) -> List[ConversationMessage]:
        ...


class OpenAIChatService:
    """Chat completions over the OpenAI API (or any OpenAI-compatible endpoint)."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        temperature: float,
        max_tokens: int = 150,
        base_url: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)
        self.system_prompt = ""
        self.conversation_history: List[ConversationMessage] = []

    def initialize_session(self, system_prompt: str) -> None:
        self.system_prompt = system_prompt
        self.conversation_history = [ConversationMessage(role="system", content=system_prompt)]

    def add_user_message(self, message: str) -> None:
        self.conversation_history.append(ConversationMessage(role="user", content=message))

    def add_assistant_message(self, message: str) -> None:
        self.conversation_history.append(ConversationMessage(role="assistant", content=message))

    def get_conversation_history(self) -> List[ConversationMessage]:
        return list(self.conversation_history)

    def clear_history(self) -> None:
        """Drop everything except the system prompt."""
        self.conversation_history = [m for m in self.conversation_history[:1] if m.role == "system"]

    def update_system_prompt(self, system_prompt: str) -> None:
        self.system_prompt = system_prompt
        if self.conversation_history and self.conversation_history[0].role == "system":
            self.conversation_history[0] = ConversationMessage(role="system", content=system_prompt)
        else:
            self.conversation_history.insert(0, ConversationMessage(role="system", content=system_prompt))

    def _messages(self):
        return [{"role": m.role, "content": m.content} for m in self.conversation_history]

    async def generate_response(self, user_message: str) -> str:
        """Send the conversation so far plus ``user_message`` and return the reply text."""
        self.add_user_message(user_message)
        completion = await self.client.chat.completions.create(
            model=self.model,
            messages=self._messages(),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            stream=False,
        )
        response = ""
        if completion.choices:
            response = completion.choices[0].message.content or ""
        if response:
            self.add_assistant_message(response)
        return response

    async def generate_streaming_response(self, user_message: str, on_chunk: Callable[[str], None]) -> None:
        self.add_user_message(user_message)
        stream = await self.client.chat.completions.create(
            model=self.model,
            messages=self._messages(),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            stream=True,
        )
        parts = []
        async for chunk in stream:
            if not chunk.choices:
                continue
            content = chunk.choices[0].delta.content
            if content:
                parts.append(content)
                on_chunk(content)
        if parts:
            self.add_assistant_message("".join(parts))


def create_chat_service(provider: str, settings: Settings) -> OpenAIChatService:
    """Build the chat service for ``provider`` ('openai' or 'openrouter')."""
    name = (provider or "").lower()
    if name == "openrouter":
        return OpenAIChatService(
            api_key=settings.openrouter_api_key,
            model=settings.openrouter_model,
            temperature=settings.openrouter_temperature,
            max_tokens=settings.chat_max_tokens,
            base_url=settings.openrouter_base_url,
        )
    if name == "openai":
        return OpenAIChatService(
            api_key=settings.openai_chat_api_key,
            model=settings.openai_chat_model,
            temperature=settings.openai_chat_temperature,
            max_tokens=settings.chat_max_tokens,
        )
    raise UnsupportedProviderError(provider, SUPPORTED_CHAT_PROVIDERS)

