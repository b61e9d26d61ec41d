from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Wire format is camelCase (userId, conversationId, ...); Python side stays snake_case."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---- Quota ----

class RateLimitStatus(BaseModel):
    allowed: bool
    limit: int
    current: int
    remaining: int


class RateLimitResponse(CamelModel):
    rate_limit: RateLimitStatus


class EstimatedCost(BaseModel):
    input: float
    output: float
    total: float


class UsageStatsResponse(CamelModel):
    """Today's usage for the chat usage meter."""
    date: str
    message_count: int
    total_tokens: int
    max_messages: int
    is_approaching_limit: bool
    is_at_limit: bool
    usage_level: str  # "safe" | "warning" | "danger"
    estimated_cost: EstimatedCost


# ---- Chat turn ----

class ChatRequest(CamelModel):
    # Optional here so missing fields reach the relay and get a 400 with the usual {error} body
    user_id: str | None = None
    content: str | None = None
    conversation_id: str | None = None
    context: dict[str, Any] | None = Field(None, description="e.g. {lessonId, moduleId, timestamp}")


class ChatMessageOut(CamelModel):
    id: str
    conversation_id: str | None = None
    role: str  # "user" | "assistant"
    content: str
    created_at: str | None = None


class ChatResponse(CamelModel):
    success: bool = True
    conversation_id: str
    user_message: ChatMessageOut
    ai_message: ChatMessageOut
    rate_limit: RateLimitStatus


# ---- History ----

class ConversationSummary(CamelModel):
    id: str
    user_id: str
    title: str
    created_at: str
    updated_at: str
    message_count: int = 0
    context_data: dict[str, Any] = Field(default_factory=dict)
