"""
Test helpers shared across modules
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from services.chat_service.models import ChatMessage


BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock returning epoch seconds"""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_message(role, content, minutes=0, conversation_id=None, message_id=None):
    kwargs = {}
    if message_id is not None:
        kwargs["id"] = message_id
    return ChatMessage(
        role=role,
        content=content,
        conversation_id=conversation_id,
        timestamp=BASE_TIME + timedelta(minutes=minutes),
        **kwargs
    )


def make_reply(text, suggestions=None):
    """Stand-in for the backend chat reply"""
    return SimpleNamespace(message=text, timestamp=BASE_TIME, suggestions=suggestions or [])
