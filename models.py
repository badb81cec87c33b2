"""
Data models for the call relay.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

ROLES = ("system", "user", "assistant")


class CallType(str, Enum):
    OUTBOUND = "OUTBOUND"


@dataclass
class ConversationMessage:
    role: str
    content: str
    name: Optional[str] = None

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Invalid conversation role: {self.role!r}")
        if self.content is None:
            raise ValueError("Conversation message content is required")

    def to_dict(self) -> Dict[str, Any]:
        data = {"role": self.role, "content": self.content}
        if self.name:
            data["name"] = self.name
        return data


@dataclass
class CallState:
    """
    Mutable per-call state shared between the Twilio side and the AI side
    of a single session.
    """
    call_type: CallType = CallType.OUTBOUND

    # identity, set on the Twilio "start" event
    stream_sid: str = ""
    call_sid: str = ""

    # parties
    from_number: str = ""
    to_number: str = ""

    # conversation
    call_context: str = ""
    initial_message: str = ""
    conversation_history: List[ConversationMessage] = field(default_factory=list)

    # timing / turn state
    latest_media_timestamp: int = 0  # ms (from Twilio media events)
    response_start_timestamp: Optional[int] = None  # ms
    last_assistant_item_id: Optional[str] = None
    mark_queue: List[str] = field(default_factory=list)
    has_seen_media: bool = False

    def add_message(self, role: str, content: str) -> ConversationMessage:
        """Append a message to the transcript, keeping the system prompt first."""
        message = ConversationMessage(role=role, content=content)
        if self.conversation_history and role == "system":
            raise ValueError("A system message is only allowed at the start of the history")
        if not self.conversation_history and role != "system":
            raise ValueError("The conversation history must start with the system prompt")
        self.conversation_history.append(message)
        return message

    def seed_conversation(self, system_prompt: str, first_message: ConversationMessage) -> None:
        """Replace the history with a system prompt followed by the opening message."""
        self.conversation_history = [ConversationMessage(role="system", content=system_prompt), first_message]

    def reset_turn(self) -> None:
        """Forget the in-flight assistant response (after a barge-in)."""
        self.mark_queue.clear()
        self.last_assistant_item_id = None
        self.response_start_timestamp = None

    @property
    def is_responding(self) -> bool:
        return self.response_start_timestamp is not None

    def history_as_dicts(self) -> List[Dict[str, Any]]:
        return [m.to_dict() for m in self.conversation_history]
