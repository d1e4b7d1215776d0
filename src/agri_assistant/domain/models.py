"""Domain entities and value objects.

These are the core data structures of the assistant domain, independent of
any infrastructure or framework concerns.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["user", "assistant"]


def now_ms() -> int:
    """Current wall-clock time as integer epoch milliseconds."""
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


class Message(BaseModel):
    """A single persisted chat message. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    role: Role = Field(description="Message role: 'user' or 'assistant'")
    content: str = Field(description="Message content")
    timestamp: int = Field(default_factory=now_ms, description="Epoch milliseconds")
    files: list[str] = Field(default_factory=list, description="Attached file names")
    has_files: bool = False
    document_data: str | None = Field(
        default=None, description="Raw text extracted from documents attached to this message"
    )


@dataclass
class Chat:
    id: str
    user_id: str
    title: str | None
    created_at: str
    updated_at: str


@dataclass
class ChatSummary:
    id: str
    title: str | None
    created_at: str
    updated_at: str
    message_count: int


# ---------------------------------------------------------------------------
# User profile (owned by the profile subsystem, read-only here)
# ---------------------------------------------------------------------------


@dataclass
class UserProfile:
    username: str | None = None
    location: str | None = None
    field_size: str | None = None
    crops_grown: list[str] = field(default_factory=list)
    climate: str | None = None
    farming_strategy: list[str] = field(default_factory=list)
    soil_type: str | None = None
    irrigation_method: str | None = None
    profile_completed: bool = False


# ---------------------------------------------------------------------------
# Classification labels (ephemeral, never persisted)
# ---------------------------------------------------------------------------


class DomainLabel(StrEnum):
    AGRICULTURE = "AGRICULTURE"
    NOT_AGRICULTURE = "NOT_AGRICULTURE"


class YesNo(StrEnum):
    YES = "YES"
    NO = "NO"


# ---------------------------------------------------------------------------
# Web search
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Source:
    """A normalized web-search reference used for citation."""

    title: str
    url: str
    content: str = ""
    published_date: str | None = None

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "url": self.url,
            "content": self.content,
            "published_date": self.published_date,
        }


@dataclass
class SearchOutcome:
    answer: str
    sources: list[Source] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Turn
# ---------------------------------------------------------------------------


class TurnState(StrEnum):
    START = "START"
    GATING = "GATING"
    REJECTED = "REJECTED"
    REFERENCE_CHECK = "REFERENCE_CHECK"
    SEARCH_CHECK = "SEARCH_CHECK"
    CONTEXT_BUILD = "CONTEXT_BUILD"
    PROMPT_ASSEMBLE = "PROMPT_ASSEMBLE"
    COMPLETE = "COMPLETE"
    VALIDATE = "VALIDATE"
    PERSIST = "PERSIST"
    DONE = "DONE"


@dataclass
class TurnRequest:
    """Everything the caller submits for one chat turn."""

    conversation_id: str
    user_id: str
    message: str
    attached_files: list[str] = field(default_factory=list)
    attached_document_text: str = ""
    search_opt_in: bool = False
    deep_report_opt_in: bool = False


@dataclass
class ResearchRequest:
    conversation_id: str
    user_id: str
    query: str


@dataclass
class TurnMetadata:
    used_search: bool = False
    used_history: bool = False
    rejected: bool = False
    sources: list[dict] = field(default_factory=list)
    model: str | None = None
    latency_ms: int = 0


@dataclass
class TurnResult:
    """Outcome of one orchestration run: the persisted assistant message plus metadata."""

    message: Message
    metadata: TurnMetadata
    trace: list[TurnState] = field(default_factory=list)
