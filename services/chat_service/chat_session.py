"""
Chat session controller - orchestrates one send/receive cycle.

A cycle appends the user message, asks the AI service for a reply, then
types the reply into the active conversation log and persists a snapshot
of the log to the cache.
"""

from datetime import datetime
from typing import Any, Callable, List, Optional, Protocol

from config.app_config import AppConfig, get_config
from services.ai_service.fallback_service import FallbackService
from services.chat_service.cache_layer import CHAT_HISTORY, CacheLayer
from services.chat_service.conversation_store import ConversationStore
from services.chat_service.models import (
    ChatMessage,
    MessageRole,
    new_conversation_id,
    utc_now,
)
from services.chat_service.typewriter import TypewriterScheduler
from services.user_session import UserSession
from utils.logging_config import get_logger, log_conversation_event


class ChatReplyLike(Protocol):
    message: str
    timestamp: datetime
    suggestions: List[str]


class ChatService(Protocol):
    async def chat(
        self,
        message: str,
        context: List[str],
        user_id: Any,
        conversation_id: Optional[str],
    ) -> ChatReplyLike:
        ...


MessageListener = Callable[[ChatMessage], None]


class ChatSessionController:
    """
    Owns the loading flag and the active typewriter for one chat panel.

    Args:
        chat_service: Anything with an async ``chat`` method
        store: Active conversation log and conversation list
        cache: Cache receiving the chat history snapshot
        user_session: Source of the signed-in user
        config: Application configuration, the global one by default
        message_listener: Called whenever a message is added or changes
        fallback: Source of the welcome and apology texts
    """

    def __init__(
        self,
        chat_service: ChatService,
        store: ConversationStore,
        cache: CacheLayer,
        user_session: UserSession,
        config: Optional[AppConfig] = None,
        message_listener: Optional[MessageListener] = None,
        fallback: Optional[FallbackService] = None,
    ):
        self.logger = get_logger(__name__)
        self.chat_service = chat_service
        self.store = store
        self.cache = cache
        self.user_session = user_session
        self.config = config or get_config()
        self.message_listener = message_listener
        self.fallback = fallback or FallbackService(self.config)

        self.is_loading = False
        self.active_typewriter: Optional[TypewriterScheduler] = None

    @property
    def messages(self) -> List[ChatMessage]:
        return self.store.messages

    @property
    def is_typing(self) -> bool:
        return self.active_typewriter is not None and self.active_typewriter.is_active()

    async def send_message(self, text: str) -> Optional[ChatMessage]:
        """
        Run one send/receive cycle.

        Returns the assistant message (the reply or the apology), or None
        when nothing was sent or the reply arrived for a conversation that
        is no longer active.

        Raises:
            UserNotAuthenticatedError: nobody is signed in; nothing changes
        """
        if not text or not text.strip():
            return None
        if self.is_loading:
            self.logger.debug("Send ignored, a reply is still pending")
            return None

        user_id = self.user_session.require_user_id()
        content = text.strip()

        if self.store.active_conversation_id is None:
            self.store.start_conversation(new_conversation_id(user_id))
        conversation_id = self.store.active_conversation_id

        self._append(ChatMessage(role=MessageRole.USER, content=content, conversation_id=conversation_id))
        self.is_loading = True

        context = [message.context_line() for message in self.store.recent_messages(self.config.chat.context_window)]

        try:
            reply = await self.chat_service.chat(content, context, user_id, conversation_id)
        except Exception as e:
            self.logger.error(f"AI chat failed: {e}")
            reply = None
        finally:
            self.is_loading = False

        if not self._still_active(conversation_id):
            return None

        if reply is None:
            return self._append(ChatMessage(
                role=MessageRole.ASSISTANT,
                content=self.fallback.apology_message(),
                conversation_id=conversation_id,
                is_error=True,
            ))

        return await self._type_reply(reply, conversation_id, user_id)

    async def handle_quick_action(self, action: str) -> Optional[ChatMessage]:
        prompt = self.config.ui.quick_prompts.get(action)
        if prompt is None:
            self.logger.warning(f"Unknown quick action: {action}")
            return None
        return await self.send_message(prompt)

    def initialize_chat(self) -> None:
        """Start from a fresh, conversation-less log showing the welcome message"""
        self._finish_typewriter()
        self.store.clear()
        self.store.show_messages([self._welcome_message()])

    def clear_chat(self) -> None:
        self._finish_typewriter()
        self.store.clear()

        user_id = self.user_session.get_user_id()
        if user_id is not None:
            self.cache.invalidate(CHAT_HISTORY.key(user_id))

        self.store.show_messages([self._welcome_message()])
        self.logger.info("Chat cleared")

    async def open_conversation(self, conversation_id: str) -> List[ChatMessage]:
        """Switch the panel to a stored conversation"""
        user_id = self.user_session.require_user_id()
        self._finish_typewriter()
        return await self.store.load_conversation(conversation_id, user_id)

    async def refresh_conversations(self):
        user_id = self.user_session.require_user_id()
        return await self.store.load_summary_list(user_id)

    async def delete_conversation(self, conversation_id: str) -> bool:
        user_id = self.user_session.require_user_id()
        if conversation_id == self.store.active_conversation_id:
            self._finish_typewriter()
        return await self.store.delete_conversation(conversation_id, user_id)

    async def _type_reply(self, reply: ChatReplyLike, conversation_id: str, user_id: Any) -> ChatMessage:
        # A previous reply may still be typing; its own cycle finalises it
        self._stop_typewriter()

        ai_message = self._append(ChatMessage(
            role=MessageRole.ASSISTANT,
            content="",
            conversation_id=conversation_id,
            timestamp=reply.timestamp or utc_now(),
            suggestions=list(reply.suggestions or []),
            is_typing=True,
        ))

        def write(partial: str) -> None:
            ai_message.content = partial
            self._notify(ai_message)

        typewriter = TypewriterScheduler(reply.message, write, interval_ms=self.config.chat.typewriter_interval_ms)
        self.active_typewriter = typewriter

        try:
            typewriter.start()
            await typewriter.wait()
        except Exception as e:
            self.logger.error(f"Typing reply failed: {e}")
        finally:
            # Also reached when the sink interrupts typing with a control
            # signal; the reply is finalised before that signal propagates
            ai_message.content = reply.message
            ai_message.is_typing = False
            if self.active_typewriter is typewriter:
                self.active_typewriter = None
            if self.store.active_conversation_id == conversation_id:
                self._save_snapshot(user_id)
            self._notify(ai_message)

        log_conversation_event(self.logger, "reply_received", conversation_id, length=len(reply.message))
        return ai_message

    def _save_snapshot(self, user_id: Any) -> None:
        messages = self.store.recent_messages(self.config.chat.snapshot_size)
        snapshot = {
            "conversationId": self.store.active_conversation_id,
            "messages": [message.to_dict() for message in messages],
            "lastUpdated": utc_now().isoformat(),
        }
        try:
            self.cache.put(CHAT_HISTORY.key(user_id), snapshot, self.config.cache.chat_history_ttl)
        except Exception as e:
            self.logger.warning(f"Failed to save chat history snapshot: {e}")

    def _still_active(self, conversation_id: str) -> bool:
        if self.store.active_conversation_id == conversation_id:
            return True
        log_conversation_event(
            self.logger,
            "late_reply_discarded",
            conversation_id,
            active_conversation_id=self.store.active_conversation_id,
        )
        return False

    def _stop_typewriter(self) -> None:
        if self.active_typewriter is not None:
            self.active_typewriter.stop()
            self.active_typewriter = None

    def _finish_typewriter(self) -> None:
        """Reveal the rest of a reply being typed before the log is replaced"""
        if self.active_typewriter is not None:
            self.active_typewriter.complete()
            self.active_typewriter = None

    def _welcome_message(self) -> ChatMessage:
        content = self.fallback.welcome_message(self.user_session.get_username())
        return ChatMessage(role=MessageRole.ASSISTANT, content=content, is_welcome=True)

    def _append(self, message: ChatMessage) -> ChatMessage:
        self.store.append_message(message)
        self._notify(message)
        return message

    def _notify(self, message: ChatMessage) -> None:
        """Listener errors are logged; BaseException signals reach the caller"""
        if self.message_listener is None:
            return
        try:
            self.message_listener(message)
        except Exception as e:
            self.logger.warning(f"Message listener failed: {e}")
