"""Schema of agent-response.json, the file written by the external agent."""

from __future__ import annotations

from enum import Enum

from pydantic import Field

from quill.models import QuillModel


class AgentAction(str, Enum):
    RESOLVE = "resolve"
    CLARIFY = "clarify"
    SUGGEST = "suggest"
    REJECT = "reject"
    ACKNOWLEDGE = "acknowledge"


class MessageRole(str, Enum):
    HUMAN = "human"
    AGENT = "agent"


class AgentAnnotationResponse(QuillModel):
    annotation_id: str = Field(..., description="Id of the annotation this response addresses.")
    action: AgentAction
    message: str
    suggested_text: str | None = Field(default=None, description="Replacement text, only for suggest.")
    timestamp: str


class AgentDocumentUpdate(QuillModel):
    content: str = Field(..., description="Complete revised document text.")
    summary: str
    addressed_annotation_ids: list[str] = Field(default_factory=list)
    timestamp: str


class ThreadMessage(QuillModel):
    id: str
    role: MessageRole
    message: str
    timestamp: str


class AnnotationThread(QuillModel):
    annotation_id: str
    messages: list[ThreadMessage] = Field(default_factory=list)


class AgentResponseFile(QuillModel):
    version: int
    annotation_responses: list[AgentAnnotationResponse] = Field(default_factory=list)
    document_updates: list[AgentDocumentUpdate] = Field(default_factory=list)
    threads: list[AnnotationThread] | None = None
    last_updated: str
