"""
Wire models for the competition backend.

Backend records are decoded here, once, so the chat core only ever sees
ChatMessage and ConversationSummary objects.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from services.chat_service.models import (
    ChatMessage,
    ConversationSummary,
    MessageRole,
    sort_by_timestamp,
    utc_now,
)


EMPTY_REPLY_MESSAGE = "Sorry, I cannot answer this question right now."


class BackendModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ChatReply(BackendModel):
    """Response of POST /ai/chat"""
    message: str = EMPTY_REPLY_MESSAGE
    timestamp: datetime = Field(default_factory=utc_now)
    suggestions: List[str] = Field(default_factory=list)
    message_id: Optional[str] = Field(default=None, alias="messageId")
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")

    @field_validator("message", mode="before")
    @classmethod
    def _blank_message(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return EMPTY_REPLY_MESSAGE
        return value

    @field_validator("timestamp", mode="before")
    @classmethod
    def _missing_timestamp(cls, value: Any) -> Any:
        return utc_now() if value in (None, "") else value

    @field_validator("suggestions", mode="before")
    @classmethod
    def _null_suggestions(cls, value: Any) -> Any:
        return value or []


class ChatRecord(BackendModel):
    """
    One stored exchange. Typed records carry ``type``; legacy records
    carry both ``input`` and ``response`` and no type.
    """
    id: Union[int, str]
    type: Optional[str] = None
    input: Optional[str] = None
    response: Optional[str] = None
    timestamp: Optional[datetime] = None

    def to_messages(self, conversation_id: Optional[str] = None) -> List[ChatMessage]:
        timestamp = self.timestamp or utc_now()

        def user_message() -> ChatMessage:
            return ChatMessage(
                id=f"{self.id}_user",
                role=MessageRole.USER,
                content=self.input or "",
                conversation_id=conversation_id,
                timestamp=timestamp,
            )

        def assistant_message() -> ChatMessage:
            return ChatMessage(
                id=f"{self.id}_ai",
                role=MessageRole.ASSISTANT,
                content=self.response or "",
                conversation_id=conversation_id,
                timestamp=timestamp,
            )

        if self.type == MessageRole.USER.value and self.input:
            return [user_message()]
        if self.type == MessageRole.ASSISTANT.value and self.response:
            return [assistant_message()]

        messages = []
        if self.input and self.input.strip():
            messages.append(user_message())
        if self.response and self.response.strip():
            messages.append(assistant_message())
        return messages


def decode_chat_records(records: List[ChatRecord], conversation_id: Optional[str] = None) -> List[ChatMessage]:
    messages: List[ChatMessage] = []
    for record in records:
        messages.extend(record.to_messages(conversation_id))
    return sort_by_timestamp(messages)


class ConversationGroup(BackendModel):
    """Entry of GET /ai/chat/history/{userId}"""
    id: Optional[str] = None
    group_id: Optional[str] = Field(default=None, alias="groupId")
    title: Optional[str] = None
    last_message: Optional[str] = Field(default=None, alias="lastMessage")
    timestamp: Optional[datetime] = None
    messages: List[ChatRecord] = Field(default_factory=list)

    @field_validator("id", "group_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("messages", mode="before")
    @classmethod
    def _null_messages(cls, value: Any) -> Any:
        return value or []

    @property
    def conversation_id(self) -> Optional[str]:
        return self.id or self.group_id

    def to_summary(self) -> ConversationSummary:
        conversation_id = self.conversation_id
        return ConversationSummary(
            id=conversation_id,
            messages=decode_chat_records(self.messages, conversation_id),
            fallback_title=self.title,
            fallback_last_message=self.last_message,
            fallback_timestamp=self.timestamp,
        )


class Recommendation(BackendModel):
    """Competition suggested by POST /ai/recommendations"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Union[int, str]
    title: Optional[str] = None
    category: Optional[str] = None
    difficulty: Optional[str] = None
    score: Optional[float] = None
    suggestions: Optional[str] = None


class SkillAnalysis(BackendModel):
    """Response of POST /ai/analyze-skills"""
    skill_scores: Dict[str, float] = Field(default_factory=dict, alias="skillScores")
    ai_analysis: Optional[str] = Field(default=None, alias="aiAnalysis")
    overall_score: float = Field(default=0, alias="overallScore")

    @field_validator("skill_scores", mode="before")
    @classmethod
    def _parse_scores(cls, value: Any) -> Any:
        # The backend sometimes sends the scores as a JSON string
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                return {}
        return value if isinstance(value, dict) else {}

    @field_validator("overall_score", mode="before")
    @classmethod
    def _null_score(cls, value: Any) -> Any:
        return value or 0


class TrendAnalysis(BackendModel):
    """Response of POST /ai/trends"""
    ai_analysis: Optional[str] = Field(default=None, alias="aiAnalysis")


class CompetitionMatch(BackendModel):
    """Competition returned by POST /ai/search"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Union[int, str]
    title: Optional[str] = None
    category: Optional[str] = None
    difficulty: Optional[str] = None
    match_score: Optional[float] = Field(default=None, alias="matchScore")


class LearningPlan(BackendModel):
    """Response of POST /ai/learning-path"""
    ai_plan: Optional[str] = Field(default=None, alias="aiPlan")
    total_duration: Optional[str] = Field(default=None, alias="totalDuration")

    @field_validator("total_duration", mode="before")
    @classmethod
    def _stringify_duration(cls, value: Any) -> Any:
        return str(value) if isinstance(value, (int, float)) else value


class PreparationAdvice(BackendModel):
    """Response of POST /ai/preparation-advice"""
    ai_advice: Optional[str] = Field(default=None, alias="aiAdvice")
