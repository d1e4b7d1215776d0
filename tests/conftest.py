"""Shared fixtures and fakes for the assistant tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from agri_assistant.application.classifier import Classifier
from agri_assistant.application.search_augmenter import SearchAugmenter
from agri_assistant.application.use_cases import ChatUseCase, CompletionOptions, ResearchUseCase
from agri_assistant.config import Settings
from agri_assistant.services.chat_history_service import ChatHistoryService


def pytest_configure(config):
    """Set pytest-asyncio mode to auto so async test functions work without markers."""
    config.option.asyncio_mode = "auto"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

GATE_MARKER = "Agriculture Domain Validator"
REFERENCE_MARKER = "You are a context classifier"
RESEARCH_PLANNER_MARKER = "You are a research planner"
SEARCH_NEED_MARKER = "require searching the web"


@dataclass
class CompletionCall:
    kind: str
    prompt: str
    temperature: float
    max_tokens: int
    model: str | None


@dataclass
class ScriptedCompletion:
    """Completion fake that answers by recognising which prompt it was given.

    Each reply may be a string or an exception instance to raise.
    """

    gate: Any = "AGRICULTURE"
    reference: Any = "NO"
    search_need: Any = "NO"
    research_search_need: Any = "NO"
    answer: Any = "Use well-rotted compost."
    calls: list[CompletionCall] = field(default_factory=list)

    @staticmethod
    def kind_of(prompt: str) -> str:
        if GATE_MARKER in prompt:
            return "gate"
        if REFERENCE_MARKER in prompt:
            return "reference"
        if RESEARCH_PLANNER_MARKER in prompt:
            return "research_search_need"
        if SEARCH_NEED_MARKER in prompt:
            return "search_need"
        return "answer"

    async def complete(self, prompt, *, temperature, max_tokens, model=None):
        kind = self.kind_of(prompt)
        self.calls.append(CompletionCall(kind, prompt, temperature, max_tokens, model))
        reply = getattr(self, kind)
        if isinstance(reply, BaseException):
            raise reply
        return reply

    def kinds(self) -> list[str]:
        return [c.kind for c in self.calls]

    def prompts(self, kind: str) -> list[str]:
        return [c.prompt for c in self.calls if c.kind == kind]


@dataclass
class FakeSearch:
    payload: Any = None
    error: BaseException | None = None
    queries: list[str] = field(default_factory=list)

    async def search(self, query):
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return self.payload


TAVILY_PAYLOAD = {
    "answer": "Tomato blight is spread by Phytophthora infestans.",
    "results": [
        {
            "title": "Late blight of tomato",
            "url": "https://extension.example.edu/blight",
            "content": "Remove infected leaves and improve airflow.",
        },
        {
            "title": "Copper fungicides",
            "url": "https://agri.example.org/copper",
            "content": "Copper sprays slow the spread of blight.",
        },
    ],
}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def completion() -> ScriptedCompletion:
    return ScriptedCompletion()


@pytest.fixture()
def search() -> FakeSearch:
    return FakeSearch(payload=TAVILY_PAYLOAD)


@pytest.fixture()
def history_service(tmp_path: Path) -> ChatHistoryService:
    """A ChatHistoryService connected to a temp database."""
    svc = ChatHistoryService(db_path=tmp_path / "chat_history.sqlite")
    svc.connect()
    yield svc
    svc.close()


@pytest.fixture()
def chat_id(history_service: ChatHistoryService) -> str:
    return history_service.get_or_create_chat(None, "farmer-1").id


@pytest.fixture()
def classifier(completion: ScriptedCompletion) -> Classifier:
    return Classifier(completion)


@pytest.fixture()
def augmenter(classifier: Classifier, search: FakeSearch) -> SearchAugmenter:
    return SearchAugmenter(classifier, search, timeout_seconds=5)


@pytest.fixture()
def chat_use_case(
    completion: ScriptedCompletion,
    classifier: Classifier,
    augmenter: SearchAugmenter,
    history_service: ChatHistoryService,
) -> ChatUseCase:
    return ChatUseCase(
        completion=completion,
        classifier=classifier,
        search_augmenter=augmenter,
        conversations=history_service,
        profiles=history_service,
        options=CompletionOptions(model="llama-3.3-70b-versatile"),
        turn_timeout_seconds=5,
    )


@pytest.fixture()
def research_use_case(
    completion: ScriptedCompletion,
    classifier: Classifier,
    augmenter: SearchAugmenter,
    history_service: ChatHistoryService,
) -> ResearchUseCase:
    return ResearchUseCase(
        completion=completion,
        classifier=classifier,
        search_augmenter=augmenter,
        conversations=history_service,
        profiles=history_service,
        turn_timeout_seconds=5,
    )


def make_settings(tmp_path: Path, **overrides) -> Settings:
    """Settings for tests.

    Uses ``_env_file=None`` so a developer's .env is never loaded. Auth is
    disabled so the mock user is returned instead of requiring a JWT.
    """
    values = {
        "groq_api_key": "test-groq-key",
        "tavily_api_key": "test-tavily-key",
        "chat_db_path": tmp_path / "chat_history.sqlite",
        "auth_enabled": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)
