"""Shared chat types used by the API, the delegation step and the client."""
from __future__ import annotations

from typing import List, Literal, Optional, Tuple, get_args
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt

# Closed role set; any other value is rejected at every boundary.
ChatRole = Literal["user", "assistant", "system"]
CHAT_ROLES: Tuple[str, ...] = get_args(ChatRole)


def generate_id() -> str:
    return uuid4().hex


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: ChatRole
    content: str = Field(..., min_length=1)


class ChatUsage(BaseModel):
    """Token accounting reported by the agent. Missing fields mean unknown, not zero."""

    model_config = ConfigDict(frozen=True)

    inputTokens: Optional[NonNegativeInt] = None
    outputTokens: Optional[NonNegativeInt] = None
    totalTokens: Optional[NonNegativeInt] = None
    cachedInputTokens: Optional[NonNegativeInt] = None
    reasoningTokens: Optional[NonNegativeInt] = None


class UIMessage(ChatMessage):
    """A message as the client keeps it: chat message + local id + optional usage."""

    id: str = Field(default_factory=generate_id, min_length=1)
    usage: Optional[ChatUsage] = None

    def to_chat(self) -> dict:
        # Ids and usage never travel to the server.
        return {"role": self.role, "content": self.content}


class ChatCompletion(BaseModel):
    message: ChatMessage
    usage: Optional[ChatUsage] = None
    runId: Optional[str] = None


# -----------------------------
# HTTP request/response
# -----------------------------
class ChatRequest(BaseModel):
    messages: List[ChatMessage] = Field(..., min_length=1)


class ChatSuccessResponse(BaseModel):
    message: ChatMessage
    usage: Optional[ChatUsage] = None
    runId: str


class ChatErrorResponse(BaseModel):
    error: str
    status: Optional[str] = None
