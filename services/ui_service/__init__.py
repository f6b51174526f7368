"""
UI service - Streamlit components for the assistant panel.
"""

# Lazy import so the chat core can be used without building a Streamlit session
def get_chat_panel():
    from .chat_panel import get_chat_panel as _get_chat_panel
    return _get_chat_panel()

def get_chat_panel_class():
    from .chat_panel import ChatPanel
    return ChatPanel

__all__ = [
    'get_chat_panel',
    'get_chat_panel_class'
]
