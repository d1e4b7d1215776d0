"""HTTP request/response schemas (Pydantic models) for the REST API."""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, Field

# ---------------------------------------------------------------------------
# Chat request / response (the backend manages history)
# ---------------------------------------------------------------------------


class AttachedFile(BaseModel):
    """A file the client attached to the message. Only the name is kept."""

    name: str = Field(validation_alias=AliasChoices("name", "originalName", "fileName"))


class ChatRequest(BaseModel):
    """Request body for POST /chat.

    ``user_id`` is extracted from the JWT, not sent in the body.
    """

    chat_id: str | None = Field(
        default=None,
        description="Existing chat ID to continue. None starts a new chat.",
    )
    message: str = Field(description="The new user message")
    attached_files: list[AttachedFile] = Field(default_factory=list)
    attached_document_text: str = Field(
        default="", description="Text already extracted from attached documents"
    )
    search_opt_in: bool = Field(default=False, description="Allow web search for this turn")
    deep_report_opt_in: bool = Field(default=False, description="Answer as a structured report")


class ResearchRequestBody(BaseModel):
    """Request body for POST /research."""

    chat_id: str | None = None
    query: str = Field(description="The research question")


class MessageSchema(BaseModel):
    """A single persisted message."""

    role: str
    content: str
    timestamp: int
    files: list[str] = Field(default_factory=list)
    has_files: bool = False
    document_data: str | None = None


class MetadataSchema(BaseModel):
    used_search: bool = False
    used_history: bool = False
    rejected: bool = False
    sources: list[dict] = Field(default_factory=list)
    model: str | None = None
    latency_ms: int = 0


class TurnResponse(BaseModel):
    """Response body from POST /chat and POST /research."""

    success: bool = True
    chat_id: str = Field(description="The chat ID (new or existing)")
    message: MessageSchema = Field(description="The persisted assistant message")
    metadata: MetadataSchema


class ErrorResponse(BaseModel):
    """Envelope returned when a turn fails."""

    success: bool = False
    error: str


# ---------------------------------------------------------------------------
# Chat history listing
# ---------------------------------------------------------------------------


class ChatSummaryResponse(BaseModel):
    """A single chat in the listing."""

    id: str
    title: str | None
    created_at: str
    updated_at: str
    message_count: int
