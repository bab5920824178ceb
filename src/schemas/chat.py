from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"] = Field(..., description="Message author")
    content: str = Field(..., max_length=2000, description="Plain text content")


class PageContext(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: Optional[str] = Field(default=None, max_length=500)
    title: Optional[str] = Field(default=None, max_length=200)
    meta_description: Optional[str] = Field(default=None, max_length=500, alias="metaDescription")
    text_content: Optional[str] = Field(default=None, max_length=8000, alias="textContent")

    def as_context(self) -> Dict[str, Optional[str]]:
        return self.model_dump(by_alias=True)


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: List[ChatMessage] = Field(..., min_length=1, max_length=20)
    page_context: Optional[PageContext] = Field(default=None, alias="pageContext")
    current_route: Optional[str] = Field(default=None, max_length=120, alias="currentRoute")
    session_id: Optional[str] = Field(default=None, max_length=80, alias="sessionId")
    preferred_language: Literal["AUTO", "EN", "SI", "TA"] = Field(default="AUTO", alias="preferredLanguage")


class SuggestedActionModel(BaseModel):
    label: str
    href: str


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reply: str
    mode: str
    sources: List[str] = Field(default_factory=list)
    suggested_actions: List[SuggestedActionModel] = Field(default_factory=list, alias="suggestedActions")
    tool_calls: List[str] = Field(default_factory=list, alias="toolCalls")
    response_language: str = Field(..., alias="responseLanguage")
    booking_draft: Optional[Dict[str, object]] = Field(default=None, alias="bookingDraft")


class KnowledgeReloadStatus(BaseModel):
    files: int
    chunks: int
