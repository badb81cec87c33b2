"""
Builds the AI instructions for a call and seeds the conversation history.
"""
from typing import Optional

from config import Settings
from models import CallState, CallType, ConversationMessage


def generate_outbound_call_context(call_state: CallState, call_context: Optional[str] = None) -> str:
    """Return the system instructions for an outbound call."""
    return (
        "Please refer to phone call transcripts.\n"
        "Stay concise and short.\n"
        "You are assistant (if asked, your phone number with country code is: "
        f"{call_state.from_number}). You are making an outbound call.\n"
        "Be friendly and speak in human short sentences. Start conversation with how are you. "
        "Do not speak in bullet points. Ask one question at a time, tell one sentence at a time.\n"
        "After successful task completion, say goodbye and end the conversation.\n"
        "You ARE NOT a receptionist, NOT an administrator, NOT a person making reservation.\n"
        "You do not provide any other info, which is not related to the goal. "
        "You are calling solely to achieve your tasks.\n"
        "You are the customer making a request, not the staff of the business you call.\n"
        "YOU ARE STRICTLY THE ONE MAKING THE REQUEST (and not the one receiving). "
        "YOU MUST ACHIEVE YOUR GOAL AS AN ASSISTANT AND PERFORM THE TASK.\n"
        "Be focused solely on your task:\n"
        f"{call_context or ''}"
    )


class ContextService:
    """Fills in the party and conversation fields of a CallState."""

    def __init__(self, settings: Settings):
        self.settings = settings

    @staticmethod
    def initialize_call_state(call_state: CallState, from_number: str, to_number: str) -> None:
        call_state.from_number = from_number or ""
        call_state.to_number = to_number or ""

    def setup_conversation_context(self, call_state: CallState, call_context: Optional[str] = None) -> None:
        """Build the instructions and seed the history with the system prompt and opening line."""
        call_state.initial_message = self.settings.initial_message
        call_state.call_context = generate_outbound_call_context(call_state, call_context)

        # On an outbound call the callee answers first, so the opening line is theirs.
        role = "user" if call_state.call_type == CallType.OUTBOUND else "assistant"
        call_state.seed_conversation(
            call_state.call_context,
            ConversationMessage(role=role, content=call_state.initial_message),
        )
