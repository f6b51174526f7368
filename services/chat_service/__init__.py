"""
Chat service - conversation state, caching and reply rendering.
"""

from .cache_layer import CacheLayer, CacheNamespace, build_cache_key
from .chat_session import ChatSessionController
from .conversation_store import ConversationStore
from .models import ChatMessage, ConversationSummary, MessageRole
from .typewriter import TypewriterScheduler, TypewriterState

__all__ = [
    'CacheLayer',
    'CacheNamespace',
    'build_cache_key',
    'ChatSessionController',
    'ConversationStore',
    'ChatMessage',
    'ConversationSummary',
    'MessageRole',
    'TypewriterScheduler',
    'TypewriterState'
]
