"""
Chat panel - Streamlit surface for the AI assistant.

The controller, store and cache live in ``st.session_state`` together with
a dedicated event loop, so the HTTP client and pending timers stay on one
loop across Streamlit reruns.
"""

import asyncio
from typing import Any, Coroutine, Dict, Optional

import streamlit as st

from config.app_config import AppConfig, get_config
from infrastructure.external import CompetitionApiClient
from infrastructure.storage import SQLiteKeyValueStore
from services.ai_service import FallbackService, InsightsService
from services.chat_service import (
    CacheLayer,
    ChatMessage,
    ChatSessionController,
    ConversationStore,
)
from services.user_session import UserNotAuthenticatedError, UserSession
from utils.logging_config import get_logger


SESSION_KEY = "assistant_panel"
PENDING_ACTION_KEY = "assistant_pending_action"
SEARCH_RESULTS_KEY = "assistant_search_results"
CURSOR = "▌"


class ChatPanel:
    """
    Service for the chat panel components and interactions.
    Handles the conversation sidebar, message rendering and typing.
    """

    def __init__(self, config: Optional[AppConfig] = None):
        self.logger = get_logger(__name__)
        self.config = config or get_config()
        self.loop = asyncio.new_event_loop()

        store = SQLiteKeyValueStore(self.config.storage.db_path, self.config.storage.table_name)
        self.user_session = UserSession(store)
        self.cache = CacheLayer(store, sweep_interval=self.config.cache.sweep_interval)
        self.client = CompetitionApiClient.from_config(
            self.config.api,
            token_provider=self.user_session.get_token,
            on_unauthorized=self.user_session.sign_out,
        )
        fallback = FallbackService(self.config)
        self.store = ConversationStore(self.client, self.cache)
        self.controller = ChatSessionController(
            self.client, self.store, self.cache, self.user_session, self.config, fallback=fallback
        )
        self.insights = InsightsService(self.client, self.cache, self.user_session, store, self.config, fallback)
        self._placeholder = None

        self.controller.initialize_chat()

    def run(self, coro: Coroutine) -> Any:
        return self.loop.run_until_complete(coro)

    def close(self) -> None:
        """Release the HTTP client and the session event loop"""
        if self.loop.is_closed():
            return
        try:
            self.loop.run_until_complete(self.client.aclose())
        finally:
            self.loop.close()
        self.logger.info("Chat panel closed")

    def render(self) -> None:
        st.title(self.config.ui.app_title)
        self.cache.sweep_expired()

        try:
            self.render_conversation_sidebar()
            self.render_insights()
        except UserNotAuthenticatedError:
            st.sidebar.info("Sign in to see your conversations.")

        self.render_chat_messages()
        self.render_quick_actions()

        # Quick actions set a pending action and rerun so it renders in the chat area
        pending_action = st.session_state.pop(PENDING_ACTION_KEY, None)
        manual_prompt = st.chat_input("Ask me anything about competitions")
        if pending_action:
            self._send(self.config.ui.quick_prompts[pending_action], self.controller.handle_quick_action(pending_action))
        elif manual_prompt:
            self._send(manual_prompt, self.controller.send_message(manual_prompt))

    def render_conversation_sidebar(self) -> None:
        summaries = self.store.summaries
        if not summaries:
            summaries = self.run(self.controller.refresh_conversations())

        with st.sidebar:
            st.markdown("## 💬 Conversations")
            st.caption(f"📊 {len(summaries)} conversation{'s' if len(summaries) != 1 else ''}")

            if st.button("➕ New Conversation", use_container_width=True, type="secondary"):
                self.controller.clear_chat()
                st.rerun()

            if st.button("🚪 Sign out", use_container_width=True):
                self.user_session.sign_out()
                reset_chat_panel()
                st.rerun()

            for summary in summaries:
                is_current = summary.id == self.store.active_conversation_id
                cols = st.columns([5, 1])
                with cols[0]:
                    label = f"{'✅' if is_current else '💬'} {summary.title}"
                    if st.button(label, key=f"open_{summary.id}", help=summary.last_message, use_container_width=True):
                        self.run(self.controller.open_conversation(summary.id))
                        st.rerun()
                with cols[1]:
                    if st.button("🗑️", key=f"delete_{summary.id}"):
                        if self.run(self.controller.delete_conversation(summary.id)):
                            st.toast("Conversation deleted")
                        else:
                            st.error("Failed to delete the conversation, please try again later.")
                        st.rerun()

    def render_insights(self) -> None:
        with st.sidebar.expander("🎯 AI insights"):
            selected = self.insights.get_filter()
            category = st.text_input("Category", value=selected.category)
            difficulty = st.text_input("Difficulty", value=selected.difficulty)
            if (category, difficulty) != (selected.category, selected.difficulty):
                self.insights.set_filter(category, difficulty)
            force_refresh = st.checkbox("Ignore cached results", value=False)

            if st.button("Recommend competitions", use_container_width=True):
                result = self.run(self.insights.get_recommendations(force_refresh))
                st.write(result["summary"])
                for item in result["recommendations"]:
                    st.markdown(f"**{item.get('title') or item.get('id')}**: {item.get('suggestions')}")

            if st.button("Analyse my skills", use_container_width=True):
                analysis = self.run(self.insights.analyze_skills(force_refresh))
                st.metric("Overall score", analysis["overallScore"])
                for skill, score in analysis["skills"].items():
                    st.progress(min(max(float(score) / 100, 0.0), 1.0), text=skill)
                st.write(analysis["advice"])

            if st.button("Competition trends", use_container_width=True):
                trends = self.run(self.insights.get_competition_trends(force_refresh=force_refresh))
                for category_trend in trends["hotCategories"]:
                    st.write(f"{category_trend['name']}: {category_trend['participation']}% (+{category_trend['growth']}%)")
                st.write(trends["summary"])

        self.render_search()

    def render_search(self) -> None:
        """Intelligent search; each hit offers a learning path and preparation advice"""
        with st.sidebar.expander("🔍 Intelligent search"):
            with st.form("ai_search"):
                query = st.text_input("What kind of competition are you looking for?")
                if st.form_submit_button("Search"):
                    st.session_state[SEARCH_RESULTS_KEY] = self.run(self.insights.search(query))

            results = st.session_state.get(SEARCH_RESULTS_KEY, [])
            if not results:
                st.caption("No results yet.")
            for competition in results:
                st.markdown(f"**{competition.get('title') or competition.get('id')}** · {competition.get('category') or ''}")
                cols = st.columns(2)
                with cols[0]:
                    if st.button("🎓 Learning path", key=f"path_{competition.get('id')}"):
                        self._show_learning_path(competition)
                with cols[1]:
                    if st.button("📝 Advice", key=f"advice_{competition.get('id')}"):
                        self.run(self.insights.get_preparation_advice(competition))

            self._render_preparation_advice()

    def _show_learning_path(self, competition: Dict[str, Any]) -> None:
        path = self.run(self.insights.generate_learning_path(competition))
        if path is None:
            st.error("Failed to generate a learning path, please try again later.")
            return
        st.markdown(f"**{path['targetCompetition']}** · {path['difficulty']} · {path['estimatedTime']}")
        for stage in path["stages"]:
            st.markdown(f"- **{stage['title']}** ({stage['duration']}): {stage['description']}")

    def _render_preparation_advice(self) -> None:
        state = self.insights.preparation_advice
        if state.competition is None and not state.error:
            return

        if state.competition is not None:
            st.markdown(f"#### Preparing for {state.competition.get('title') or state.competition.get('id')}")
        if state.error:
            st.error(state.error)
            if state.competition is not None and st.button("Retry", key="advice_retry"):
                self.run(self.insights.retry_preparation_advice())
                st.rerun()
        elif state.advice:
            st.markdown(state.advice)

        if st.button("Close", key="advice_close"):
            self.insights.close_preparation_advice()
            st.rerun()

    def render_chat_messages(self) -> None:
        try:
            for message in self.controller.messages:
                with st.chat_message(message.role.value):
                    if message.is_error:
                        st.warning(message.content)
                    else:
                        st.markdown(message.content)
        except Exception as e:
            self.logger.error(f"Error rendering messages: {e}")
            st.error("Error displaying conversation history")

    def render_quick_actions(self) -> None:
        if self.store.active_conversation_id is not None:
            return

        st.markdown("**💡 Suggestions to get started:**")
        actions = list(self.config.ui.quick_prompts.items())
        cols = st.columns(len(actions))
        for col, (action, prompt) in zip(cols, actions):
            with col:
                if st.button(action.title(), key=f"quick_{action}", help=prompt, use_container_width=True):
                    st.session_state[PENDING_ACTION_KEY] = action
                    st.rerun()

    def _send(self, prompt: str, cycle: Coroutine) -> None:
        with st.chat_message("user"):
            st.markdown(prompt)
        self._placeholder = st.chat_message("assistant").empty()
        self.controller.message_listener = self._on_message

        try:
            with st.spinner("Thinking..."):
                self.run(cycle)
        except UserNotAuthenticatedError:
            st.error("Please sign in before chatting with the assistant.")
            return
        finally:
            self.controller.message_listener = None
            self._placeholder = None

        self.run(self.controller.refresh_conversations())
        st.rerun()

    def _on_message(self, message: ChatMessage) -> None:
        if self._placeholder is None or message.is_user:
            return
        if message.is_typing:
            self._placeholder.markdown(message.content + CURSOR)
        else:
            self._placeholder.markdown(message.content)


def get_chat_panel() -> ChatPanel:
    """Get the chat panel for the current Streamlit session"""
    if SESSION_KEY not in st.session_state:
        st.session_state[SESSION_KEY] = ChatPanel()
    return st.session_state[SESSION_KEY]


def reset_chat_panel() -> None:
    """Close the session's panel so the next run builds a fresh one"""
    panel = st.session_state.pop(SESSION_KEY, None)
    st.session_state.pop(SEARCH_RESULTS_KEY, None)
    if panel is not None:
        panel.close()
