"""Shared chat schemas for Mind Theatre."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


class TurnRequest(BaseModel):
    """Payload for one user turn in a conversation."""

    message: str = Field(min_length=1, description="The user's utterance for this turn")

    @field_validator("message")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("message must not be blank")
        return value


class StartChatResponse(BaseModel):
    chat_id: str


class ClearMemoryResponse(BaseModel):
    status: Literal["success"] = "success"
    message: str = "All chat sessions, messages, and episodic memories cleared."
    details: dict[str, Any] = Field(default_factory=dict)


__all__ = ["ClearMemoryResponse", "StartChatResponse", "TurnRequest"]
