from typing import List, Optional
from pydantic import BaseModel, Field, model_validator

from persona_chat.domain.models.chat_state import ContentPart, Report, Turn


class ChatRequest(BaseModel):
    """Incoming chat message"""
    session_id: Optional[str] = Field(None, description="Existing session, a new one is created when omitted")
    message: str = Field(default="", description="User's latest message")
    attachments: List[ContentPart] = Field(default_factory=list, description="Ordered text / image parts")

    @model_validator(mode="after")
    def _require_content(self):
        if not self.message and not self.attachments:
            raise ValueError("message or attachments must be provided")
        return self


class ChatResponse(BaseModel):
    session_id: str
    reply: str


class ReportResponse(BaseModel):
    session_id: str
    report: Report


class SessionCreated(BaseModel):
    session_id: str


class HistoryResponse(BaseModel):
    session_id: str
    turns: List[Turn] = Field(default_factory=list)
