"""
User session - reads the signed-in user from the durable store.

The web login stores the user as JSON under ``user`` and the bearer token
under ``token``. Nothing here guesses an identity: operations that need a
user call ``require_user_id`` and are rejected when nobody is signed in.
"""

import json
from typing import Any, Dict, Optional

from infrastructure.storage import KeyValueStore
from utils.logging_config import get_logger


USER_KEY = "user"
TOKEN_KEY = "token"


class UserNotAuthenticatedError(Exception):
    """No signed-in user is available for an operation that needs one"""


class UserSession:
    """Access to the last-active user identity"""

    def __init__(self, store: KeyValueStore):
        self.logger = get_logger(__name__)
        self.store = store

    def get_user(self) -> Optional[Dict[str, Any]]:
        """Get the stored user, or None when absent or unreadable"""
        raw = self.store.get(USER_KEY)
        if not raw:
            return None
        try:
            user = json.loads(raw)
        except ValueError as e:
            self.logger.warning(f"Failed to parse stored user: {e}")
            return None
        return user if isinstance(user, dict) else None

    def get_user_id(self) -> Optional[Any]:
        user = self.get_user()
        if user is None:
            return None
        user_id = user.get("id")
        return None if user_id in (None, "") else user_id

    def require_user_id(self) -> Any:
        user_id = self.get_user_id()
        if user_id is None:
            raise UserNotAuthenticatedError("No signed-in user")
        return user_id

    def get_username(self) -> Optional[str]:
        user = self.get_user()
        return user.get("username") if user else None

    def get_token(self) -> Optional[str]:
        return self.store.get(TOKEN_KEY)

    def sign_in(self, user: Dict[str, Any], token: Optional[str] = None) -> None:
        self.store.set(USER_KEY, json.dumps(user, ensure_ascii=False))
        if token:
            self.store.set(TOKEN_KEY, token)
        self.logger.info(f"Signed in user {user.get('id')}")

    def sign_out(self) -> None:
        """Forget the user and token, e.g. after a 401 from the backend"""
        self.store.remove(USER_KEY)
        self.store.remove(TOKEN_KEY)
        self.logger.info("User session cleared")
