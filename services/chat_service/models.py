"""
Chat service data models for conversations and messages.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Dict, Optional, Any
import uuid


DEFAULT_SUMMARY_TITLE = "Conversation"
DEFAULT_SUMMARY_PREVIEW = "Click to view details"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Naive timestamps from the backend are read as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_message_id() -> str:
    return f"msg_{uuid.uuid4().hex}"


def new_conversation_id(user_id: Any, now: Optional[datetime] = None) -> str:
    """
    Conversation ids keep the user id and creation time readable for the
    backend, with a random suffix so rapid sends never collide.
    """
    now = now or utc_now()
    millis = int(now.timestamp() * 1000)
    return f"group_{user_id}_{millis}_{uuid.uuid4().hex[:8]}"


@dataclass
class ChatMessage:
    """Individual message in a conversation"""
    role: MessageRole
    content: str
    conversation_id: Optional[str] = None
    id: str = field(default_factory=new_message_id)
    timestamp: datetime = field(default_factory=utc_now)
    is_typing: bool = False
    is_error: bool = False
    is_welcome: bool = False
    suggestions: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.role = MessageRole(self.role)
        self.timestamp = ensure_aware(self.timestamp)

    @property
    def is_user(self) -> bool:
        return self.role == MessageRole.USER

    def context_line(self) -> str:
        """Role-prefixed line sent to the AI as conversation context"""
        prefix = "User" if self.is_user else "AI"
        return f"{prefix}: {self.content}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "conversationId": self.conversation_id,
            "timestamp": self.timestamp.isoformat(),
            "isTyping": self.is_typing,
            "isError": self.is_error,
            "isWelcome": self.is_welcome,
            "suggestions": list(self.suggestions),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChatMessage':
        return cls(
            id=data["id"],
            role=MessageRole(data["role"]),
            content=data.get("content", ""),
            conversation_id=data.get("conversationId"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            is_typing=data.get("isTyping", False),
            is_error=data.get("isError", False),
            is_welcome=data.get("isWelcome", False),
            suggestions=list(data.get("suggestions") or []),
        )


def sort_by_timestamp(messages: List[ChatMessage]) -> List[ChatMessage]:
    """Stable ascending sort; storage order is not trusted"""
    return sorted(messages, key=lambda message: message.timestamp)


def _truncate(text: str, limit: int) -> str:
    text = " ".join(text.split())
    return text[:limit] + "..." if len(text) > limit else text


@dataclass
class ConversationSummary:
    """
    Summary of a conversation for the history list.

    title, last_message and last_timestamp are derived from messages;
    the backend-provided values only fill in when messages are absent.
    """
    id: str
    messages: List[ChatMessage] = field(default_factory=list)
    fallback_title: Optional[str] = None
    fallback_last_message: Optional[str] = None
    fallback_timestamp: Optional[datetime] = None

    def __post_init__(self):
        self.messages = sort_by_timestamp(self.messages)
        if self.fallback_timestamp is not None:
            self.fallback_timestamp = ensure_aware(self.fallback_timestamp)

    @property
    def title(self) -> str:
        for message in self.messages:
            if message.is_user and message.content.strip():
                return _truncate(message.content, 30)
        return self.fallback_title or DEFAULT_SUMMARY_TITLE

    @property
    def last_message(self) -> str:
        if self.messages:
            return _truncate(self.messages[-1].content, 50)
        return self.fallback_last_message or DEFAULT_SUMMARY_PREVIEW

    @property
    def last_timestamp(self) -> Optional[datetime]:
        if self.messages:
            return self.messages[-1].timestamp
        return self.fallback_timestamp

    @property
    def message_count(self) -> int:
        return len(self.messages)
