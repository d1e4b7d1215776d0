"""Tests for the ChatUseCase: pure business logic, no HTTP layer."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest
from loguru import logger

from agri_assistant.application.classifier import Classifier
from agri_assistant.application.exceptions import (
    EmptyMessageError,
    MalformedUpstreamResponseError,
    PersistenceError,
    UpstreamUnavailableError,
)
from agri_assistant.application.prompts import (
    EMPTY_RESPONSE_FALLBACK,
    FINAL_INSTRUCTION_CONCISE,
    FINAL_INSTRUCTION_HISTORY,
    FINAL_INSTRUCTION_SEARCH,
    REJECTION_MESSAGE,
)
from agri_assistant.application.search_augmenter import SearchAugmenter
from agri_assistant.application.use_cases import ChatUseCase
from agri_assistant.domain.models import Message, TurnRequest, TurnState, UserProfile
from conftest import FakeSearch, ScriptedCompletion


def _request(chat_id: str, message: str, **kwargs) -> TurnRequest:
    return TurnRequest(conversation_id=chat_id, user_id="farmer-1", message=message, **kwargs)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    async def test_empty_message_raises(self, chat_use_case, chat_id, completion):
        with pytest.raises(EmptyMessageError):
            await chat_use_case.execute(_request(chat_id, "   "))
        assert completion.calls == []

    def test_empty_message_error_is_value_error(self):
        assert issubclass(EmptyMessageError, ValueError)


# ---------------------------------------------------------------------------
# Domain gate
# ---------------------------------------------------------------------------


class TestDomainGate:
    async def test_rejection_persists_canned_reply_without_completion(
        self, chat_use_case, chat_id, completion, history_service
    ):
        completion.gate = "NOT_AGRICULTURE"

        result = await chat_use_case.execute(_request(chat_id, "What is the capital of France?"))

        assert result.message.content == REJECTION_MESSAGE
        assert result.message.role == "assistant"
        assert result.metadata.rejected is True
        assert completion.kinds() == ["gate"]
        assert result.trace == [
            TurnState.START,
            TurnState.GATING,
            TurnState.REJECTED,
            TurnState.PERSIST,
            TurnState.DONE,
        ]
        stored = history_service.load_conversation(chat_id)
        assert [m.role for m in stored] == ["user", "assistant"]
        assert stored[0].content == "What is the capital of France?"
        assert stored[1].content == REJECTION_MESSAGE

    async def test_unparseable_gate_reply_fails_closed(self, chat_use_case, chat_id, completion):
        completion.gate = "maybe?"
        result = await chat_use_case.execute(_request(chat_id, "How do I grow maize?"))
        assert result.metadata.rejected is True
        assert completion.kinds() == ["gate"]

    async def test_gate_sees_recent_conversation_and_attachments(
        self, chat_use_case, chat_id, completion, history_service
    ):
        history_service.append_messages(
            chat_id,
            [
                Message(role="user", content="How do I grow rice?"),
                Message(role="assistant", content="Keep the paddy flooded."),
            ],
        )

        await chat_use_case.execute(
            _request(
                chat_id,
                "Summarize this",
                attached_files=["soil.pdf"],
                attached_document_text="Nitrogen 40 ppm",
            )
        )

        gate_prompt = completion.prompts("gate")[0]
        assert "Recent Conversation:\nUser: How do I grow rice?\nAssistant: Keep the paddy flooded." in gate_prompt
        assert "Uploaded Files: soil.pdf" in gate_prompt
        assert 'Document Content Preview: "Nitrogen 40 ppm"' in gate_prompt
        assert '"Summarize this"' in gate_prompt

    async def test_classifier_calls_are_deterministic_and_short(self, chat_use_case, chat_id, completion):
        await chat_use_case.execute(_request(chat_id, "How do I compost?"))
        gate, reference = completion.calls[0], completion.calls[1]
        assert (gate.temperature, gate.max_tokens) == (0.0, 10)
        assert (reference.temperature, reference.max_tokens) == (0.0, 3)


# ---------------------------------------------------------------------------
# Standard turns
# ---------------------------------------------------------------------------


class TestStandaloneTurn:
    async def test_full_pipeline_trace_and_reply(self, chat_use_case, chat_id, completion):
        result = await chat_use_case.execute(_request(chat_id, "How do I compost?"))

        assert result.message.content == "Use well-rotted compost."
        assert completion.kinds() == ["gate", "reference", "answer"]
        assert result.trace == [
            TurnState.START,
            TurnState.GATING,
            TurnState.REFERENCE_CHECK,
            TurnState.CONTEXT_BUILD,
            TurnState.PROMPT_ASSEMBLE,
            TurnState.COMPLETE,
            TurnState.VALIDATE,
            TurnState.PERSIST,
            TurnState.DONE,
        ]
        assert result.metadata.used_history is False
        assert result.metadata.used_search is False
        assert result.metadata.model == "llama-3.3-70b-versatile"

    async def test_answer_prompt_uses_minimal_context(self, chat_use_case, chat_id, completion, history_service):
        history_service.append_messages(
            chat_id,
            [
                Message(role="user", content="Best time to sow wheat?"),
                Message(role="assistant", content="Late autumn."),
            ],
        )

        await chat_use_case.execute(_request(chat_id, "How do I compost?"))

        prompt = completion.prompts("answer")[0]
        assert prompt.startswith("You are an agriculture AI assistant.")
        assert "Recent Messages:\nLastMessage: Best time to sow wheat?\nSecondLastMessage: None" in prompt
        assert "=== CONVERSATION HISTORY ===" not in prompt
        assert "User Question: How do I compost?" in prompt
        assert prompt.endswith(FINAL_INSTRUCTION_CONCISE)

    async def test_first_turn_prompt_has_no_recent_messages(self, chat_use_case, chat_id, completion):
        await chat_use_case.execute(_request(chat_id, "How do I compost?"))
        prompt = completion.prompts("answer")[0]
        assert "Recent Messages:" not in prompt
        assert "LastMessage:" not in prompt

    async def test_logs_are_tagged_with_chat_id(self, chat_use_case, chat_id):
        tagged: list[str | None] = []
        sink_id = logger.add(lambda msg: tagged.append(msg.record["extra"].get("chat_id")), level="DEBUG")
        try:
            await chat_use_case.execute(_request(chat_id, "How do I compost?"))
        finally:
            logger.remove(sink_id)

        assert tagged
        assert set(tagged) == {chat_id}

    async def test_answer_uses_configured_completion_options(self, chat_use_case, chat_id, completion):
        await chat_use_case.execute(_request(chat_id, "How do I compost?"))
        answer = completion.calls[-1]
        assert answer.kind == "answer"
        assert (answer.temperature, answer.max_tokens) == (0.3, 1500)
        assert answer.model == "llama-3.3-70b-versatile"

    async def test_no_search_without_opt_in(self, chat_use_case, chat_id, completion, search):
        completion.search_need = "YES"
        result = await chat_use_case.execute(_request(chat_id, "Current wheat prices?"))
        assert "search_need" not in completion.kinds()
        assert TurnState.SEARCH_CHECK not in result.trace
        assert search.queries == []

    async def test_document_context_in_prompt_and_persisted(
        self, chat_use_case, chat_id, completion, history_service
    ):
        await chat_use_case.execute(
            _request(
                chat_id,
                "What does my soil report say?",
                attached_files=["soil.pdf"],
                attached_document_text="Nitrogen 40 ppm",
            )
        )

        prompt = completion.prompts("answer")[0]
        assert "Fetched Document Data:\nNitrogen 40 ppm" in prompt

        user_msg = history_service.load_conversation(chat_id)[0]
        assert user_msg.files == ["soil.pdf"]
        assert user_msg.has_files is True
        assert user_msg.document_data == "Nitrogen 40 ppm"

    async def test_deep_report_adds_report_notes(self, chat_use_case, chat_id, completion):
        await chat_use_case.execute(_request(chat_id, "Plan my rice season", deep_report_opt_in=True))
        prompt = completion.prompts("answer")[0]
        assert "[Agent Mode]" in prompt
        assert "[Report Mode]" in prompt


class TestReferencingTurn:
    async def test_full_history_in_prompt(self, chat_use_case, chat_id, completion, history_service):
        history_service.append_messages(
            chat_id,
            [
                Message(role="user", content="How do I grow rice?"),
                Message(role="assistant", content="Keep the paddy flooded."),
            ],
        )
        completion.reference = "YES"

        result = await chat_use_case.execute(_request(chat_id, "Tell me more about that"))

        prompt = completion.prompts("answer")[0]
        assert (
            "=== CONVERSATION HISTORY ===\n[Exchange 1]\nUser: How do I grow rice?\n"
            "Assistant: Keep the paddy flooded.\n=== END HISTORY ==="
        ) in prompt
        assert "Recent Messages:" not in prompt
        assert prompt.endswith(FINAL_INSTRUCTION_HISTORY)
        assert result.metadata.used_history is True


class TestProfileContext:
    async def test_completed_profile_is_included(self, chat_use_case, chat_id, completion, history_service):
        history_service.save_profile(
            "farmer-1",
            UserProfile(
                username="Asha",
                location="Punjab",
                field_size="5 acres",
                crops_grown=["wheat", "rice"],
                climate="semi-arid",
                profile_completed=True,
            ),
        )

        await chat_use_case.execute(_request(chat_id, "When should I irrigate?"))

        prompt = completion.prompts("answer")[0]
        assert "[User Profile]\nFarmer: Asha\nLocation: Punjab" in prompt
        assert "Crops: wheat, rice" in prompt

    async def test_incomplete_profile_is_ignored(self, chat_use_case, chat_id, completion, history_service):
        history_service.save_profile("farmer-1", UserProfile(username="Asha", profile_completed=False))
        await chat_use_case.execute(_request(chat_id, "When should I irrigate?"))
        assert "[User Profile]" not in completion.prompts("answer")[0]


# ---------------------------------------------------------------------------
# Web search
# ---------------------------------------------------------------------------


class TestSearchTurn:
    async def test_search_results_are_cited(self, chat_use_case, chat_id, completion, search):
        completion.search_need = "YES"
        completion.answer = "Remove infected leaves [1] and spray copper [2]."

        result = await chat_use_case.execute(
            _request(chat_id, "How do I stop tomato blight?", search_opt_in=True)
        )

        assert search.queries == ["How do I stop tomato blight?"]
        assert completion.kinds() == ["gate", "reference", "search_need", "answer"]
        assert TurnState.SEARCH_CHECK in result.trace

        prompt = completion.prompts("answer")[0]
        assert "Web Search Results:" in prompt
        assert "[1]: [Late blight of tomato](https://extension.example.edu/blight)" in prompt
        assert prompt.endswith(FINAL_INSTRUCTION_SEARCH)

        assert result.message.content == (
            "Remove infected leaves [1] and spray copper [2].\n\n"
            "## Sources\n"
            "[1]: [Late blight of tomato](https://extension.example.edu/blight)\n"
            "[2]: [Copper fungicides](https://agri.example.org/copper)"
        )
        assert result.metadata.used_search is True
        assert [s["url"] for s in result.metadata.sources] == [
            "https://extension.example.edu/blight",
            "https://agri.example.org/copper",
        ]

    async def test_mixed_result_shapes_are_normalized(self, chat_use_case, chat_id, completion, search):
        completion.search_need = "YES"
        search.payload = {
            "answer": "",
            "references": [
                {"title": "Drip kits", "url": "https://a.example.com/drip", "content": "c1"},
                {"name": "Subsidy rules", "link": "https://b.example.com/subsidy", "snippet": "c2"},
                {"title": "Pricing", "url": "https://c.example.com/price", "description": "c3"},
                {"title": "Broken", "url": "not-a-url"},
            ],
        }

        result = await chat_use_case.execute(
            _request(chat_id, "Drip irrigation subsidy?", search_opt_in=True)
        )

        assert [(s["title"], s["url"], s["content"]) for s in result.metadata.sources] == [
            ("Drip kits", "https://a.example.com/drip", "c1"),
            ("Subsidy rules", "https://b.example.com/subsidy", "c2"),
            ("Pricing", "https://c.example.com/price", "c3"),
        ]

    async def test_classifier_can_decline_search(self, chat_use_case, chat_id, completion, search):
        completion.search_need = "NO"
        result = await chat_use_case.execute(_request(chat_id, "What is mulching?", search_opt_in=True))
        assert search.queries == []
        assert result.metadata.used_search is False
        assert "## Sources" not in result.message.content

    async def test_search_failure_degrades_to_no_search(self, chat_use_case, chat_id, completion, search):
        completion.search_need = "YES"
        search.error = RuntimeError("search backend down")

        result = await chat_use_case.execute(
            _request(chat_id, "Latest fertilizer subsidy?", search_opt_in=True)
        )

        assert result.message.content == "Use well-rotted compost."
        assert result.metadata.used_search is False
        assert "Web Search Results:" not in completion.prompts("answer")[0]

    async def test_fallback_reply_gets_no_sources(self, chat_use_case, chat_id, completion):
        completion.search_need = "YES"
        completion.answer = "   "

        result = await chat_use_case.execute(
            _request(chat_id, "How do I stop tomato blight?", search_opt_in=True)
        )

        assert result.message.content == EMPTY_RESPONSE_FALLBACK


# ---------------------------------------------------------------------------
# Response validation and failures
# ---------------------------------------------------------------------------


class TestFailures:
    async def test_empty_completion_uses_fallback(self, chat_use_case, chat_id, completion, history_service):
        completion.answer = ""
        result = await chat_use_case.execute(_request(chat_id, "How do I compost?"))
        assert result.message.content == EMPTY_RESPONSE_FALLBACK
        assert history_service.load_conversation(chat_id)[1].content == EMPTY_RESPONSE_FALLBACK

    async def test_malformed_completion_uses_fallback(self, chat_use_case, chat_id, completion):
        completion.answer = MalformedUpstreamResponseError("no text")
        result = await chat_use_case.execute(_request(chat_id, "How do I compost?"))
        assert result.message.content == EMPTY_RESPONSE_FALLBACK

    async def test_upstream_failure_persists_nothing(self, chat_use_case, chat_id, completion, history_service):
        completion.answer = UpstreamUnavailableError("model API returned HTTP 503")
        with pytest.raises(UpstreamUnavailableError):
            await chat_use_case.execute(_request(chat_id, "How do I compost?"))
        assert history_service.load_conversation(chat_id) == []

    async def test_gate_upstream_failure_fails_turn(self, chat_use_case, chat_id, completion, history_service):
        completion.gate = UpstreamUnavailableError("model API unreachable")
        with pytest.raises(UpstreamUnavailableError):
            await chat_use_case.execute(_request(chat_id, "How do I compost?"))
        assert history_service.load_conversation(chat_id) == []

    async def test_turn_deadline(self, chat_id, history_service, search):
        class SlowCompletion(ScriptedCompletion):
            async def complete(self, prompt, *, temperature, max_tokens, model=None):
                if self.kind_of(prompt) == "answer":
                    await asyncio.sleep(5)
                return await super().complete(
                    prompt, temperature=temperature, max_tokens=max_tokens, model=model
                )

        slow = SlowCompletion()
        classifier = Classifier(slow)
        uc = ChatUseCase(
            completion=slow,
            classifier=classifier,
            search_augmenter=SearchAugmenter(classifier, search),
            conversations=history_service,
            profiles=history_service,
            turn_timeout_seconds=0.05,
        )

        with pytest.raises(UpstreamUnavailableError, match="deadline"):
            await uc.execute(_request(chat_id, "How do I compost?"))
        assert history_service.load_conversation(chat_id) == []

    async def test_persistence_failure_is_surfaced(self, completion, classifier):
        store = MagicMock()
        store.load_conversation.return_value = []
        store.get_user_profile.return_value = None
        store.append_messages.side_effect = PersistenceError("disk full")

        uc = ChatUseCase(
            completion=completion,
            classifier=classifier,
            search_augmenter=SearchAugmenter(classifier, FakeSearch()),
            conversations=store,
            profiles=store,
        )

        with pytest.raises(PersistenceError):
            await uc.execute(_request("chat-x", "How do I compost?"))


# ---------------------------------------------------------------------------
# Conversation growth
# ---------------------------------------------------------------------------


class TestConversationGrowth:
    async def test_each_turn_appends_one_pair(self, chat_use_case, chat_id, completion, history_service):
        completion.gate = "AGRICULTURE"
        for question in ("How do I compost?", "What is crop rotation?", "Is neem oil safe?"):
            await chat_use_case.execute(_request(chat_id, question))

        completion.gate = "NOT_AGRICULTURE"
        await chat_use_case.execute(_request(chat_id, "Write me a poem"))

        stored = history_service.load_conversation(chat_id)
        assert len(stored) == 8
        assert [m.role for m in stored] == ["user", "assistant"] * 4
        assert stored[-2].content == "Write me a poem"
