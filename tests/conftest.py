"""
Shared fixtures for the assistant tests
"""

import json
from unittest.mock import AsyncMock

import pytest

from config.app_config import AppConfig, ChatConfig
from infrastructure.storage import MemoryKeyValueStore
from services.chat_service.cache_layer import CacheLayer
from services.chat_service.conversation_store import ConversationStore
from services.chat_service.models import ConversationSummary, MessageRole
from services.user_session import USER_KEY, UserSession
from tests.helpers import FakeClock, make_message


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv_store():
    return MemoryKeyValueStore()


@pytest.fixture
def cache(kv_store, clock):
    return CacheLayer(kv_store, clock=clock)


@pytest.fixture
def user_session(kv_store):
    kv_store.set(USER_KEY, json.dumps({"id": 42, "username": "alice", "major": "Computer Science"}))
    return UserSession(kv_store)


@pytest.fixture
def history_service():
    service = AsyncMock()
    service.get_conversations.return_value = []
    service.get_conversation_history.return_value = []
    service.delete_conversation.return_value = True
    return service


@pytest.fixture
def conversation_store(history_service, cache):
    return ConversationStore(history_service, cache)


@pytest.fixture
def app_config():
    config = AppConfig(chat=ChatConfig(typewriter_interval_ms=0))
    config.debug = False
    return config


@pytest.fixture
def summary_with_messages():
    return ConversationSummary(
        id="group_42_1",
        messages=[
            make_message(MessageRole.ASSISTANT, "Try the ACM contest", minutes=1, message_id="1_ai"),
            make_message(MessageRole.USER, "Which contest should I join?", minutes=0, message_id="1_user"),
        ],
    )
