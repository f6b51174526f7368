"""
Async HTTP client for the competition backend's AI endpoints.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from config.app_config import APIConfig
from infrastructure.external.schemas import (
    ChatRecord,
    ChatReply,
    CompetitionMatch,
    ConversationGroup,
    LearningPlan,
    PreparationAdvice,
    Recommendation,
    SkillAnalysis,
    TrendAnalysis,
    decode_chat_records,
)
from services.chat_service.models import ChatMessage, ConversationSummary
from utils.logging_config import get_logger, log_execution_time


class CompetitionApiError(Exception):
    """Raised when a backend call fails or returns an unreadable payload"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CompetitionApiClient:
    """
    Client for the AI chat, history and insight endpoints.

    Every method raises CompetitionApiError on failure; callers decide
    how to degrade.
    """

    def __init__(
        self,
        base_url: str,
        timeout: Optional[float] = None,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        on_unauthorized: Optional[Callable[[], None]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.logger = get_logger(__name__)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.token_provider = token_provider
        self.on_unauthorized = on_unauthorized
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_config(cls, config: APIConfig, **kwargs) -> 'CompetitionApiClient':
        if config.auth_token and "token_provider" not in kwargs:
            kwargs["token_provider"] = lambda: config.auth_token
        return cls(base_url=config.base_url, timeout=config.timeout_seconds, **kwargs)

    async def __aenter__(self) -> 'CompetitionApiClient':
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # AI chat

    async def chat(
        self,
        message: str,
        context: List[str],
        user_id: Any,
        conversation_id: Optional[str],
    ) -> ChatReply:
        payload = {
            "message": message,
            "context": list(context),
            "userId": user_id,
            "groupId": conversation_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        data = await self._request("POST", "/ai/chat", json=payload)
        reply = self._decode(ChatReply, data or {}, "chat reply")
        if reply.conversation_id is None:
            reply.conversation_id = conversation_id
        return reply

    async def get_conversations(self, user_id: Any) -> List[ConversationSummary]:
        data = await self._request("GET", f"/ai/chat/history/{self._segment(user_id)}")
        summaries = []
        for item in data or []:
            group = self._decode(ConversationGroup, item, "conversation group")
            if group.conversation_id is None:
                self.logger.warning(f"Skipping conversation group without id: {item}")
                continue
            summaries.append(group.to_summary())
        return summaries

    async def get_conversation_history(self, user_id: Any, conversation_id: str) -> List[ChatMessage]:
        path = f"/ai/chat/conversation/{self._segment(user_id)}/{self._segment(conversation_id)}"
        data = await self._request("GET", path)
        records = [self._decode(ChatRecord, item, "chat record") for item in data or []]
        return decode_chat_records(records, conversation_id)

    async def delete_conversation(self, user_id: Any, conversation_id: str) -> bool:
        path = f"/ai/chat/conversation/{self._segment(user_id)}/{self._segment(conversation_id)}"
        data = await self._request("DELETE", path)
        if isinstance(data, bool):
            return data
        if isinstance(data, dict) and "success" in data:
            return bool(data["success"])
        return True

    # AI insights

    async def get_recommendations(self, user_id: Any, category: str = "", difficulty: str = "") -> List[Recommendation]:
        payload = {"userId": user_id, "category": category, "difficulty": difficulty}
        data = await self._request("POST", "/ai/recommendations", json=payload)
        return [self._decode(Recommendation, item, "recommendation") for item in data or []]

    async def analyze_skills(self, user_id: Any) -> SkillAnalysis:
        data = await self._request("POST", "/ai/analyze-skills", json={"userId": user_id})
        return self._decode(SkillAnalysis, data or {}, "skill analysis")

    async def get_competition_trends(self, payload: Dict[str, Any]) -> TrendAnalysis:
        data = await self._request("POST", "/ai/trends", json=payload)
        return self._decode(TrendAnalysis, data or {}, "trend analysis")

    async def intelligent_search(self, query: str, user_id: Optional[Any] = None) -> List[CompetitionMatch]:
        data = await self._request("POST", "/ai/search", json={"query": query, "userId": user_id})
        return [self._decode(CompetitionMatch, item, "search result") for item in data or []]

    async def generate_learning_path(self, payload: Dict[str, Any]) -> LearningPlan:
        data = await self._request("POST", "/ai/learning-path", json=payload)
        return self._decode(LearningPlan, data or {}, "learning path")

    async def get_preparation_advice(self, competition_id: Any, user_id: Any) -> PreparationAdvice:
        payload = {"competitionId": competition_id, "userId": user_id}
        data = await self._request("POST", "/ai/preparation-advice", json=payload)
        return self._decode(PreparationAdvice, data or {}, "preparation advice")

    # Plumbing

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Content-Type": "application/json;charset=UTF-8"},
                transport=self._transport,
            )
        return self._client

    def _headers(self) -> Dict[str, str]:
        token = self.token_provider() if self.token_provider else None
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        with log_execution_time(self.logger, f"{method} {path}"):
            try:
                response = await self._get_client().request(method, path, json=json, headers=self._headers())
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status == 401 and self.on_unauthorized is not None:
                    self.on_unauthorized()
                raise CompetitionApiError(f"{method} {path} returned {status}: {e.response.text}", status) from e
            except httpx.HTTPError as e:
                raise CompetitionApiError(f"{method} {path} failed: {e}") from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise CompetitionApiError(f"{method} {path} returned invalid JSON: {e}", response.status_code) from e

    def _decode(self, model, data: Any, what: str):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise CompetitionApiError(f"Malformed {what}: {e}") from e

    @staticmethod
    def _segment(value: Any) -> str:
        return quote(str(value), safe="")
