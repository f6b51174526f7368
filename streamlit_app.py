import streamlit as st

from config.app_config import get_config
from services.ui_service import get_chat_panel
from utils.logging_config import initialize_logging, get_logger

# Initialize logging
initialize_logging()
logger = get_logger(__name__)

# Get configuration
config = get_config()

st.set_page_config(page_title=config.ui.app_title, page_icon="🏆")


def render_dev_sign_in(panel):
    """The web login normally stores the user; in development it can be set by hand"""
    with st.sidebar.form("dev_sign_in"):
        st.markdown("### 🔑 Development sign-in")
        user_id = st.text_input("User id")
        username = st.text_input("Username")
        major = st.text_input("Major")
        if st.form_submit_button("Sign in") and user_id.strip():
            panel.user_session.sign_in({"id": user_id.strip(), "username": username or user_id, "major": major})
            panel.controller.initialize_chat()
            st.rerun()


def main_app():
    """Main application content"""
    logger.info("Application started")

    try:
        panel = get_chat_panel()
    except Exception as e:
        logger.error(f"Failed to build the assistant panel: {e}", exc_info=True)
        st.error("Failed to start the assistant. Please refresh the page.")
        return

    if config.debug and panel.user_session.get_user() is None:
        render_dev_sign_in(panel)

    panel.render()


main_app()
