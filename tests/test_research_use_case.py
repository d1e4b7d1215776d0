"""Tests for the ResearchUseCase: one decide, search, report pass."""

from __future__ import annotations

import pytest

from agri_assistant.application.exceptions import EmptyMessageError, UpstreamUnavailableError
from agri_assistant.application.prompts import (
    EMPTY_RESPONSE_FALLBACK,
    RESEARCH_NO_CITATIONS,
    RESEARCH_NO_SEARCH,
)
from agri_assistant.application.use_cases.research import (
    format_recent_conversation,
    format_search_results,
)
from agri_assistant.domain.models import (
    Message,
    ResearchRequest,
    SearchOutcome,
    Source,
    TurnState,
    UserProfile,
)


def _request(chat_id: str, query: str) -> ResearchRequest:
    return ResearchRequest(conversation_id=chat_id, user_id="farmer-1", query=query)


class TestFormatting:
    def test_search_results_blocks(self):
        search = SearchOutcome(
            answer="Prices rose 4%.",
            sources=[Source(title="Market report", url="https://m.example.com", content="")],
        )
        block = format_search_results(search, searched=True)
        assert block == (
            "Web Research Results:\nSummary: Prices rose 4%.\n\n"
            "[Source 1]\nTitle: Market report\nURL: https://m.example.com\nContent: No content\n\n"
        )

    def test_search_attempted_without_results(self):
        assert "no usable results" in format_search_results(None, searched=True)

    def test_no_search(self):
        assert format_search_results(None, searched=False) == ""

    def test_recent_conversation_keeps_last_six(self):
        history = [Message(role="user", content=f"m{i}") for i in range(8)]
        block = format_recent_conversation(history)
        assert "User: m1\n" not in block
        assert "User: m2\n" in block
        assert block.endswith("User: m7\n\n")


class TestResearch:
    async def test_report_with_search_gets_source_list(
        self, research_use_case, chat_id, completion, search, history_service
    ):
        completion.research_search_need = "YES"
        completion.answer = "## Title\nBlight control [Source 1]"

        result = await research_use_case.execute(_request(chat_id, "How to manage tomato blight?"))

        assert search.queries == ["How to manage tomato blight?"]
        assert completion.kinds() == ["research_search_need", "answer"]
        assert result.message.content == (
            "## Title\nBlight control [Source 1]\n\n"
            "## Sources\n"
            "[1]: [Late blight of tomato](https://extension.example.edu/blight)\n"
            "[2]: [Copper fungicides](https://agri.example.org/copper)"
        )
        assert result.metadata.used_search is True
        assert result.trace[0] is TurnState.START
        assert result.trace[-1] is TurnState.DONE

        prompt = completion.prompts("answer")[0]
        assert "[Source 1]\nTitle: Late blight of tomato" in prompt
        assert "User Query: How to manage tomato blight?" in prompt

        stored = history_service.load_conversation(chat_id)
        assert [m.role for m in stored] == ["user", "assistant"]
        assert stored[1].content == result.message.content

    async def test_report_without_search_notes_general_knowledge(self, research_use_case, chat_id, completion, search):
        completion.research_search_need = "NO"
        result = await research_use_case.execute(_request(chat_id, "Principles of crop rotation"))
        assert search.queries == []
        assert result.message.content.endswith(f"## Sources\n{RESEARCH_NO_SEARCH}")

    async def test_failed_search_notes_no_citations(self, research_use_case, chat_id, completion, search):
        completion.research_search_need = "YES"
        search.error = RuntimeError("quota exceeded")
        result = await research_use_case.execute(_request(chat_id, "Maize prices in Kenya"))
        assert result.metadata.used_search is False
        assert result.message.content.endswith(f"## Sources\n{RESEARCH_NO_CITATIONS}")

    async def test_report_uses_research_token_budget(self, research_use_case, chat_id, completion):
        await research_use_case.execute(_request(chat_id, "Principles of crop rotation"))
        answer = completion.calls[-1]
        assert (answer.temperature, answer.max_tokens) == (0.3, 2000)

    async def test_profile_is_included(self, research_use_case, chat_id, completion, history_service):
        history_service.save_profile(
            "farmer-1",
            UserProfile(username="Wanjiru", location="Nakuru", soil_type="volcanic", profile_completed=True),
        )
        await research_use_case.execute(_request(chat_id, "Best maize variety"))
        prompt = completion.prompts("answer")[0]
        assert "[Farmer Profile]\nFarmer Name: Wanjiru\nLocation: Nakuru" in prompt
        assert "User Context: [Farmer Profile]" in completion.prompts("research_search_need")[0]

    async def test_empty_report_uses_fallback_without_sources(self, research_use_case, chat_id, completion):
        completion.answer = ""
        result = await research_use_case.execute(_request(chat_id, "Principles of crop rotation"))
        assert result.message.content == EMPTY_RESPONSE_FALLBACK

    async def test_empty_query_raises(self, research_use_case, chat_id):
        with pytest.raises(EmptyMessageError):
            await research_use_case.execute(_request(chat_id, ""))

    async def test_upstream_failure_persists_nothing(self, research_use_case, chat_id, completion, history_service):
        completion.answer = UpstreamUnavailableError("down")
        with pytest.raises(UpstreamUnavailableError):
            await research_use_case.execute(_request(chat_id, "Principles of crop rotation"))
        assert history_service.load_conversation(chat_id) == []
