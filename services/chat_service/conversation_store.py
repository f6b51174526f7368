"""
Conversation store - the active message log and the conversation list.
"""

from dataclasses import replace
from typing import Any, List, Optional, Protocol

from services.chat_service.cache_layer import CHAT_HISTORY, CacheLayer
from services.chat_service.models import (
    ChatMessage,
    ConversationSummary,
    MessageRole,
    sort_by_timestamp,
)
from utils.logging_config import get_logger, log_conversation_event


INVALID_ID_MESSAGE = "Invalid conversation id, the conversation cannot be loaded."
NOT_FOUND_MESSAGE = (
    "This conversation cannot be loaded right now, it may have been cleaned up. "
    "Please start a new conversation."
)
NETWORK_ERROR_MESSAGE = "Network error, the conversation could not be loaded."


class ConversationHistoryService(Protocol):
    """Backend operations the store depends on"""

    async def get_conversations(self, user_id: Any) -> List[ConversationSummary]:
        ...

    async def get_conversation_history(self, user_id: Any, conversation_id: str) -> List[ChatMessage]:
        ...

    async def delete_conversation(self, user_id: Any, conversation_id: str) -> bool:
        ...


def is_valid_conversation_id(conversation_id: Any) -> bool:
    if not isinstance(conversation_id, str):
        return False
    stripped = conversation_id.strip()
    return bool(stripped) and stripped != "NaN"


class ConversationStore:
    """
    Holds exactly one active conversation log (or none) plus the
    summary list of every conversation of the user.
    """

    def __init__(self, history_service: ConversationHistoryService, cache: Optional[CacheLayer] = None):
        self.logger = get_logger(__name__)
        self.history_service = history_service
        self.cache = cache
        self.active_conversation_id: Optional[str] = None
        self.summaries: List[ConversationSummary] = []
        self._messages: List[ChatMessage] = []

    @property
    def messages(self) -> List[ChatMessage]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def start_conversation(self, conversation_id: str) -> None:
        """Make ``conversation_id`` active with an empty log"""
        self.active_conversation_id = conversation_id
        self._messages = []
        log_conversation_event(self.logger, "started", conversation_id)

    def show_messages(self, messages: List[ChatMessage]) -> None:
        """Replace the log with messages that belong to no conversation"""
        self.active_conversation_id = None
        self._messages = list(messages)

    def append_message(self, message: ChatMessage) -> ChatMessage:
        if message.conversation_id is None:
            message.conversation_id = self.active_conversation_id
        self._messages.append(message)
        return message

    def find_message(self, message_id: str) -> Optional[ChatMessage]:
        for message in self._messages:
            if message.id == message_id:
                return message
        return None

    def find_summary(self, conversation_id: str) -> Optional[ConversationSummary]:
        for summary in self.summaries:
            if summary.id == conversation_id:
                return summary
        return None

    def recent_messages(self, count: int) -> List[ChatMessage]:
        return self._messages[-count:] if count > 0 else []

    def clear(self) -> None:
        self.active_conversation_id = None
        self._messages = []

    async def load_conversation(self, conversation_id: str, user_id: Any) -> List[ChatMessage]:
        """
        Make ``conversation_id`` the active conversation and load its messages.

        Never raises: invalid ids, empty results and backend failures each
        leave a single synthetic error message in the log.
        """
        if not is_valid_conversation_id(conversation_id):
            self.logger.error(f"Invalid conversation id: {conversation_id!r}")
            self.active_conversation_id = None
            self._messages = [self._error_message(INVALID_ID_MESSAGE)]
            return self.messages

        self.active_conversation_id = conversation_id
        self._messages = []

        summary = self.find_summary(conversation_id)
        if summary is not None and summary.messages:
            source = "summary"
            loaded = [replace(message) for message in summary.messages]
        else:
            source = "backend"
            try:
                loaded = await self.history_service.get_conversation_history(user_id, conversation_id)
            except Exception as e:
                self.logger.error(f"Error loading conversation {conversation_id}: {e}")
                if self.active_conversation_id == conversation_id:
                    self._messages = [self._error_message(NETWORK_ERROR_MESSAGE)]
                return self.messages

            if self.active_conversation_id != conversation_id:
                self.logger.info(f"Discarding history of {conversation_id}, another conversation was opened")
                return self.messages

        for message in loaded:
            message.conversation_id = conversation_id
        loaded = sort_by_timestamp(loaded)

        if not loaded:
            self.logger.warning(f"No messages found for conversation {conversation_id}")
            self._messages = [self._error_message(NOT_FOUND_MESSAGE)]
        else:
            self._messages = loaded

        log_conversation_event(self.logger, "loaded", conversation_id, source=source, message_count=len(loaded))
        return self.messages

    async def load_summary_list(self, user_id: Any) -> List[ConversationSummary]:
        """Refresh the conversation list; failures leave it empty"""
        if user_id is None:
            self.summaries = []
            return []

        try:
            summaries = await self.history_service.get_conversations(user_id)
        except Exception as e:
            self.logger.error(f"Error loading conversation list: {e}")
            summaries = []

        self.summaries = list(summaries)
        self.logger.debug(f"Loaded {len(self.summaries)} conversation summaries")
        return list(self.summaries)

    async def delete_conversation(self, conversation_id: str, user_id: Any) -> bool:
        """
        Delete a conversation on the backend.

        Returns False instead of raising so the UI can report the failure.
        """
        if not is_valid_conversation_id(conversation_id):
            self.logger.error(f"Invalid conversation id for deletion: {conversation_id!r}")
            return False

        try:
            deleted = await self.history_service.delete_conversation(user_id, conversation_id)
        except Exception as e:
            self.logger.error(f"Error deleting conversation {conversation_id}: {e}")
            return False

        if not deleted:
            self.logger.warning(f"Backend refused to delete conversation {conversation_id}")
            return False

        if self.active_conversation_id == conversation_id:
            self.clear()
        self._drop_snapshot(conversation_id, user_id)

        await self.load_summary_list(user_id)
        log_conversation_event(self.logger, "deleted", conversation_id)
        return True

    def _drop_snapshot(self, conversation_id: str, user_id: Any) -> None:
        if self.cache is None:
            return
        key = CHAT_HISTORY.key(user_id)
        snapshot = self.cache.get(key)
        if isinstance(snapshot, dict) and snapshot.get("conversationId") == conversation_id:
            self.cache.invalidate(key)

    def _error_message(self, content: str) -> ChatMessage:
        return ChatMessage(
            role=MessageRole.ASSISTANT,
            content=content,
            conversation_id=self.active_conversation_id,
            is_error=True,
        )
