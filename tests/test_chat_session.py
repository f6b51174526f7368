"""
Tests for the chat session controller
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from config.app_config import AppConfig, ChatConfig
from services.ai_service.fallback_service import FallbackService
from services.chat_service.cache_layer import CHAT_HISTORY
from services.chat_service.chat_session import ChatSessionController
from services.chat_service.models import ChatMessage, MessageRole
from services.user_session import USER_KEY, UserNotAuthenticatedError, UserSession
from tests.helpers import make_message, make_reply


@pytest.fixture
def chat_service():
    service = AsyncMock()
    service.chat.return_value = make_reply("Try the ACM contest")
    return service


@pytest.fixture
def controller(chat_service, conversation_store, cache, user_session, app_config):
    return ChatSessionController(chat_service, conversation_store, cache, user_session, app_config)


def gated_chat(gate, reply):
    async def chat(message, context, user_id, conversation_id):
        await gate.wait()
        return reply
    return chat


async def wait_until(predicate, timeout=1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.001)


class TestSendMessage:
    """Test the send/receive cycle"""

    async def test_first_message_starts_conversation(self, controller, chat_service, conversation_store):
        reply = await controller.send_message("  Hello  ")

        conversation_id = conversation_store.active_conversation_id
        assert conversation_id.startswith("group_42_")

        messages = controller.messages
        assert [(m.role, m.content) for m in messages] == [
            (MessageRole.USER, "Hello"),
            (MessageRole.ASSISTANT, "Try the ACM contest"),
        ]
        assert reply is messages[1]
        assert not reply.is_typing
        assert all(m.conversation_id == conversation_id for m in messages)
        chat_service.chat.assert_awaited_once_with("Hello", ["User: Hello"], 42, conversation_id)

    async def test_next_message_reuses_conversation(self, controller, conversation_store):
        await controller.send_message("one")
        first_id = conversation_store.active_conversation_id

        await controller.send_message("two")

        assert conversation_store.active_conversation_id == first_id
        assert len(controller.messages) == 4

    async def test_writes_chat_history_snapshot(self, controller, cache, conversation_store):
        await controller.send_message("Hello")

        snapshot = cache.get(CHAT_HISTORY.key(42))
        assert snapshot["conversationId"] == conversation_store.active_conversation_id
        assert [m["content"] for m in snapshot["messages"]] == ["Hello", "Try the ACM contest"]
        assert "lastUpdated" in snapshot

    async def test_snapshot_keeps_last_messages_only(self, chat_service, conversation_store, cache, user_session):
        config = AppConfig(chat=ChatConfig(typewriter_interval_ms=0, snapshot_size=3))
        controller = ChatSessionController(chat_service, conversation_store, cache, user_session, config)

        await controller.send_message("one")
        await controller.send_message("two")

        snapshot = cache.get(CHAT_HISTORY.key(42))
        assert [m["content"] for m in snapshot["messages"]] == ["Try the ACM contest", "two", "Try the ACM contest"]

    async def test_context_is_last_six_messages(self, controller, chat_service, conversation_store):
        conversation_store.start_conversation("group_42_1")
        for index in range(8):
            role = MessageRole.USER if index % 2 == 0 else MessageRole.ASSISTANT
            conversation_store.append_message(ChatMessage(role=role, content=f"m{index}"))

        await controller.send_message("latest")

        context = chat_service.chat.await_args.args[1]
        assert context == ["AI: m3", "User: m4", "AI: m5", "User: m6", "AI: m7", "User: latest"]

    @pytest.mark.parametrize("text", ["", "   ", None])
    async def test_blank_text_is_ignored(self, controller, chat_service, text):
        assert await controller.send_message(text) is None

        chat_service.chat.assert_not_called()
        assert controller.messages == []

    async def test_send_while_loading_is_ignored(self, controller, chat_service):
        gate = asyncio.Event()
        chat_service.chat.side_effect = gated_chat(gate, make_reply("done"))

        first = asyncio.ensure_future(controller.send_message("one"))
        await wait_until(lambda: controller.is_loading)

        assert await controller.send_message("two") is None

        gate.set()
        await first
        assert chat_service.chat.await_count == 1
        assert [m.content for m in controller.messages] == ["one", "done"]
        assert not controller.is_loading

    async def test_suggestions_are_kept(self, controller, chat_service):
        chat_service.chat.return_value = make_reply("ok", suggestions=["Show me more"])

        reply = await controller.send_message("hi")

        assert reply.suggestions == ["Show me more"]


class TestSendFailure:
    """Test degradation when the AI service fails"""

    async def test_failure_appends_apology(self, controller, chat_service, cache, app_config):
        chat_service.chat.side_effect = RuntimeError("503")

        reply = await controller.send_message("Hello")

        assert [m.content for m in controller.messages] == ["Hello", app_config.ui.apology_message]
        assert reply.is_error
        assert reply.role is MessageRole.ASSISTANT
        assert not controller.is_loading
        assert not controller.is_typing
        assert cache.get(CHAT_HISTORY.key(42)) is None

    async def test_can_send_again_after_failure(self, controller, chat_service):
        chat_service.chat.side_effect = [RuntimeError("503"), make_reply("back")]

        await controller.send_message("one")
        reply = await controller.send_message("two")

        assert reply.content == "back"


class TestIdentity:
    """Test behaviour without a signed-in user"""

    @pytest.fixture
    def anonymous_controller(self, chat_service, conversation_store, cache, kv_store, app_config):
        return ChatSessionController(chat_service, conversation_store, cache, UserSession(kv_store), app_config)

    async def test_send_requires_user(self, anonymous_controller, chat_service, conversation_store):
        with pytest.raises(UserNotAuthenticatedError):
            await anonymous_controller.send_message("Hello")

        chat_service.chat.assert_not_called()
        assert conversation_store.messages == []
        assert conversation_store.active_conversation_id is None
        assert not anonymous_controller.is_loading

    async def test_unreadable_user_is_rejected(self, anonymous_controller, kv_store):
        kv_store.set(USER_KEY, "{broken")

        with pytest.raises(UserNotAuthenticatedError):
            await anonymous_controller.send_message("Hello")

    async def test_conversation_operations_require_user(self, anonymous_controller, history_service):
        with pytest.raises(UserNotAuthenticatedError):
            await anonymous_controller.open_conversation("group_1_1")
        with pytest.raises(UserNotAuthenticatedError):
            await anonymous_controller.refresh_conversations()
        with pytest.raises(UserNotAuthenticatedError):
            await anonymous_controller.delete_conversation("group_1_1")

        history_service.get_conversation_history.assert_not_called()
        history_service.delete_conversation.assert_not_called()


class TestConversationSwitching:
    """Test replies racing with conversation changes"""

    async def test_late_reply_is_discarded(
        self, controller, chat_service, conversation_store, cache, summary_with_messages
    ):
        gate = asyncio.Event()
        chat_service.chat.side_effect = gated_chat(gate, make_reply("late answer"))
        conversation_store.summaries = [summary_with_messages]

        pending = asyncio.ensure_future(controller.send_message("question"))
        await wait_until(lambda: controller.is_loading)
        await controller.open_conversation("group_42_1")
        gate.set()

        assert await pending is None
        assert conversation_store.active_conversation_id == "group_42_1"
        assert "late answer" not in [m.content for m in controller.messages]
        assert controller.active_typewriter is None
        assert cache.get(CHAT_HISTORY.key(42)) is None
        assert not controller.is_loading

    async def test_late_failure_is_discarded(self, controller, chat_service, conversation_store):
        gate = asyncio.Event()

        async def failing_chat(*args):
            await gate.wait()
            raise RuntimeError("503")

        chat_service.chat.side_effect = failing_chat

        pending = asyncio.ensure_future(controller.send_message("question"))
        await wait_until(lambda: controller.is_loading)
        controller.clear_chat()
        gate.set()

        assert await pending is None
        assert not any(m.is_error for m in controller.messages)

    async def test_new_reply_stops_previous_typewriter(self, chat_service, conversation_store, cache, user_session):
        config = AppConfig(chat=ChatConfig(typewriter_interval_ms=20))
        controller = ChatSessionController(chat_service, conversation_store, cache, user_session, config)
        long_reply = "This reply takes a while to type out"
        chat_service.chat.side_effect = [make_reply(long_reply), make_reply("ok")]

        first = asyncio.ensure_future(controller.send_message("one"))
        await wait_until(lambda: controller.is_typing)
        first_typewriter = controller.active_typewriter

        second_reply = await controller.send_message("two")
        first_reply = await first

        assert not first_typewriter.is_active()
        assert first_reply.content == long_reply
        assert not first_reply.is_typing
        assert second_reply.content == "ok"
        assert [m.content for m in controller.messages] == ["one", long_reply, "two", "ok"]

    async def test_opening_conversation_finishes_typing(
        self, chat_service, conversation_store, cache, user_session, summary_with_messages
    ):
        config = AppConfig(chat=ChatConfig(typewriter_interval_ms=20))
        controller = ChatSessionController(chat_service, conversation_store, cache, user_session, config)
        chat_service.chat.return_value = make_reply("A long answer being typed")
        conversation_store.summaries = [summary_with_messages]

        pending = asyncio.ensure_future(controller.send_message("one"))
        await wait_until(lambda: controller.is_typing)
        await controller.open_conversation("group_42_1")
        reply = await pending

        assert reply.content == "A long answer being typed"
        assert not reply.is_typing
        assert controller.active_typewriter is None
        assert cache.get(CHAT_HISTORY.key(42)) is None


class TestPanelOperations:
    """Test welcome, clear, quick actions and conversation list"""

    def test_initialize_chat_shows_personal_welcome(self, controller, conversation_store):
        conversation_store.start_conversation("group_42_1")

        controller.initialize_chat()

        messages = controller.messages
        assert len(messages) == 1
        assert messages[0].is_welcome
        assert "alice" in messages[0].content
        assert conversation_store.active_conversation_id is None

    def test_guest_welcome(self, chat_service, conversation_store, cache, kv_store, app_config):
        controller = ChatSessionController(chat_service, conversation_store, cache, UserSession(kv_store), app_config)

        controller.initialize_chat()

        assert controller.messages[0].content == app_config.ui.guest_welcome_message

    async def test_welcome_is_replaced_by_first_send(self, controller):
        controller.initialize_chat()

        await controller.send_message("Hello")

        assert not any(m.is_welcome for m in controller.messages)

    async def test_clear_chat_drops_snapshot(self, controller, cache):
        await controller.send_message("Hello")

        controller.clear_chat()

        assert cache.get(CHAT_HISTORY.key(42)) is None
        assert [m.is_welcome for m in controller.messages] == [True]

    async def test_quick_action_sends_fixed_prompt(self, controller, chat_service, app_config):
        await controller.handle_quick_action("recommend")

        assert chat_service.chat.await_args.args[0] == app_config.ui.quick_prompts["recommend"]

    async def test_unknown_quick_action(self, controller, chat_service):
        assert await controller.handle_quick_action("dance") is None
        chat_service.chat.assert_not_called()

    async def test_refresh_and_delete(self, controller, history_service, summary_with_messages):
        history_service.get_conversations.return_value = [summary_with_messages]

        summaries = await controller.refresh_conversations()
        deleted = await controller.delete_conversation("group_42_1")

        assert summaries == [summary_with_messages]
        assert deleted
        history_service.delete_conversation.assert_awaited_once_with(42, "group_42_1")

    async def test_open_conversation_from_backend(self, controller, history_service):
        history_service.get_conversation_history.return_value = [make_message(MessageRole.USER, "stored")]

        messages = await controller.open_conversation("group_42_7")

        assert [m.content for m in messages] == ["stored"]

    async def test_listener_sees_every_change(self, chat_service, conversation_store, cache, user_session, app_config):
        seen = []
        controller = ChatSessionController(
            chat_service, conversation_store, cache, user_session, app_config,
            message_listener=lambda message: seen.append((message.role, message.content, message.is_typing)),
        )
        chat_service.chat.return_value = make_reply("abc")

        await controller.send_message("hi")

        assert seen[0] == (MessageRole.USER, "hi", False)
        assert (MessageRole.ASSISTANT, "a", True) in seen
        assert seen[-1] == (MessageRole.ASSISTANT, "abc", False)

    async def test_listener_errors_do_not_break_send(self, chat_service, conversation_store, cache, user_session, app_config):
        def broken_listener(message):
            raise RuntimeError("ui gone")

        controller = ChatSessionController(
            chat_service, conversation_store, cache, user_session, app_config, message_listener=broken_listener
        )

        reply = await controller.send_message("hi")

        assert reply.content == "Try the ACM contest"


class ScriptInterrupted(BaseException):
    """Stands in for control-flow signals such as a UI rerun"""


class CustomFallback(FallbackService):
    def apology_message(self):
        return "Custom apology"

    def welcome_message(self, username=None):
        return f"Custom welcome {username}"


class TestInterruptedCycle:
    """Test cycles cut short by cancellation or control signals"""

    async def test_listener_signal_finalises_reply(self, chat_service, conversation_store, cache, user_session, app_config):
        raised = []

        def interrupting_listener(message):
            if message.is_typing and message.content == "Tr" and not raised:
                raised.append(message.content)
                raise ScriptInterrupted()

        controller = ChatSessionController(
            chat_service, conversation_store, cache, user_session, app_config, message_listener=interrupting_listener
        )

        with pytest.raises(ScriptInterrupted):
            await asyncio.wait_for(controller.send_message("hi"), 1.0)

        reply = controller.messages[-1]
        assert raised == ["Tr"]
        assert reply.content == "Try the ACM contest"
        assert not reply.is_typing
        assert controller.active_typewriter is None
        assert not controller.is_loading
        assert cache.get(CHAT_HISTORY.key(42))["messages"][-1]["content"] == "Try the ACM contest"

    async def test_cancelled_send_clears_loading(self, controller, chat_service):
        gate = asyncio.Event()
        chat_service.chat.side_effect = gated_chat(gate, make_reply("never"))

        task = asyncio.ensure_future(controller.send_message("one"))
        await wait_until(lambda: controller.is_loading)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert not controller.is_loading

        chat_service.chat.side_effect = None
        chat_service.chat.return_value = make_reply("back")
        reply = await controller.send_message("two")

        assert reply.content == "back"


class TestInjectedFallback:
    """Test that welcome and apology texts come from the fallback service"""

    @pytest.fixture
    def custom_controller(self, chat_service, conversation_store, cache, user_session, app_config):
        return ChatSessionController(
            chat_service, conversation_store, cache, user_session, app_config, fallback=CustomFallback(app_config)
        )

    def test_welcome_comes_from_fallback(self, custom_controller):
        custom_controller.initialize_chat()

        assert custom_controller.messages[0].content == "Custom welcome alice"

    async def test_apology_comes_from_fallback(self, custom_controller, chat_service):
        chat_service.chat.side_effect = RuntimeError("503")

        reply = await custom_controller.send_message("Hello")

        assert reply.content == "Custom apology"
        assert reply.is_error

    def test_default_fallback_uses_config(self, controller, app_config):
        assert isinstance(controller.fallback, FallbackService)
        assert controller.fallback.apology_message() == app_config.ui.apology_message
