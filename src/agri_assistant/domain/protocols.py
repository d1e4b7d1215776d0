"""Domain service interfaces (ports).

These protocols define the contracts that infrastructure implementations
must satisfy. The application layer depends on these abstractions,
not on concrete classes, so tests can substitute fakes at each seam.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from agri_assistant.domain.models import Message, UserProfile

# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------


@runtime_checkable
class ICompletionService(Protocol):
    """Single-shot text completion.

    Implementations: PydanticAICompletionService (OpenAI-compatible endpoint).
    Raises ``UpstreamUnavailableError`` when the model cannot be reached and
    ``MalformedUpstreamResponseError`` when it answers with something unusable.
    """

    async def complete(
        self,
        prompt: str,
        *,
        temperature: float,
        max_tokens: int,
        model: str | None = None,
    ) -> str: ...


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


@runtime_checkable
class ISearchService(Protocol):
    """Web search returning a raw, loosely-shaped payload.

    Implementations: TavilySearchService. Callers must run the payload
    through ``normalize_search_payload`` before use.
    """

    async def search(self, query: str) -> Any: ...


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


@runtime_checkable
class IConversationStore(Protocol):
    """Append-only conversation storage.

    Implementations: ChatHistoryService (SQLite-backed). Storage failures
    surface as ``PersistenceError``; ``append_messages`` is all-or-nothing.
    """

    def load_conversation(self, chat_id: str) -> list[Message]: ...

    def append_messages(self, chat_id: str, messages: list[Message]) -> None: ...


@runtime_checkable
class IProfileStore(Protocol):
    """Read access to farmer profiles.

    Implementations: ChatHistoryService (SQLite-backed).
    """

    def get_user_profile(self, user_id: str) -> UserProfile | None: ...
