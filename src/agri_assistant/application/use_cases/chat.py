"""Chat use case: orchestrates one conversation turn.

This module contains all business logic for a chat turn: the domain gate,
reference check, optional web search, context window, prompt assembly,
completion, response validation and persistence of the message pair. It has
**no dependency on FastAPI** and can be invoked from any transport layer.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass

from loguru import logger

from agri_assistant.application.classifier import Classifier
from agri_assistant.application.context_builder import build_context, build_document_context
from agri_assistant.application.exceptions import (
    EmptyMessageError,
    MalformedUpstreamResponseError,
    PersistenceError,
    UpstreamUnavailableError,
)
from agri_assistant.application.prompt_assembler import PromptMode, assemble_prompt, build_user_context
from agri_assistant.application.prompts import EMPTY_RESPONSE_FALLBACK, REJECTION_MESSAGE
from agri_assistant.application.search_augmenter import SearchAugmenter, format_sources_section
from agri_assistant.domain.models import (
    Message,
    SearchOutcome,
    TurnMetadata,
    TurnRequest,
    TurnResult,
    TurnState,
    UserProfile,
)
from agri_assistant.domain.protocols import ICompletionService, IConversationStore, IProfileStore


@dataclass(frozen=True)
class CompletionOptions:
    temperature: float = 0.3
    max_tokens: int = 1500
    model: str | None = None


def validate_response(raw: object) -> Message:
    """Build the assistant message from whatever the completion returned.

    The role is always ``assistant``; empty or non-string content becomes the
    fixed fallback text.
    """
    content = raw.strip() if isinstance(raw, str) else ""
    if not content:
        content = EMPTY_RESPONSE_FALLBACK
    return Message(role="assistant", content=content)


class ChatUseCase:
    """Runs a chat turn through the gated, history-aware, search-grounded pipeline.

    States: START → GATING → (REJECTED | REFERENCE_CHECK) → SEARCH_CHECK? →
    CONTEXT_BUILD → PROMPT_ASSEMBLE → COMPLETE → VALIDATE → PERSIST → DONE.

    Parameters
    ----------
    completion:
        Completion capability used for the final answer.
    classifier:
        Shared classifier (domain gate, reference check).
    search_augmenter:
        Optional web-search step.
    conversations:
        Message store (load + append).
    profiles:
        Farmer profile lookup.
    options:
        Temperature, token ceiling and model for the final completion.
    turn_timeout_seconds:
        Outer deadline shared by every external call in the turn.
    """

    def __init__(
        self,
        completion: ICompletionService,
        classifier: Classifier,
        search_augmenter: SearchAugmenter,
        conversations: IConversationStore,
        profiles: IProfileStore,
        options: CompletionOptions | None = None,
        turn_timeout_seconds: float = 60.0,
    ) -> None:
        self.completion = completion
        self.classifier = classifier
        self.search_augmenter = search_augmenter
        self.conversations = conversations
        self.profiles = profiles
        self.options = options or CompletionOptions()
        self.turn_timeout_seconds = turn_timeout_seconds

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute(self, request: TurnRequest) -> TurnResult:
        """Run a single chat turn and return the persisted reply.

        Raises:
            EmptyMessageError: If the message is empty or whitespace-only.
            UpstreamUnavailableError: If a model call fails or the turn deadline passes.
            PersistenceError: If the conversation cannot be loaded or appended to.
        """
        with logger.contextualize(chat_id=request.conversation_id):
            return await self._execute(request)

    async def _execute(self, request: TurnRequest) -> TurnResult:
        if not request.message or not request.message.strip():
            raise EmptyMessageError("message must not be empty")

        t0 = time.perf_counter()
        trace = [TurnState.START]
        history, profile = self._load_inputs(request)

        user_message = Message(
            role="user",
            content=request.message,
            files=list(request.attached_files),
            has_files=bool(request.attached_files),
            document_data=request.attached_document_text or None,
        )

        try:
            async with asyncio.timeout(self.turn_timeout_seconds):
                assistant_message, metadata = await self._run_pipeline(
                    request, history, profile, trace
                )
        except TimeoutError as exc:
            logger.warning("Turn deadline exceeded | chat={}", request.conversation_id)
            raise UpstreamUnavailableError(
                f"turn exceeded {self.turn_timeout_seconds:.0f}s deadline"
            ) from exc

        trace.append(TurnState.PERSIST)
        self._persist(request.conversation_id, user_message, assistant_message)
        trace.append(TurnState.DONE)

        metadata.latency_ms = int((time.perf_counter() - t0) * 1000)
        logger.info(
            "Turn completed | chat={} | rejected={} | history={} | search={} | latency={}ms",
            request.conversation_id,
            metadata.rejected,
            metadata.used_history,
            metadata.used_search,
            metadata.latency_ms,
        )
        return TurnResult(message=assistant_message, metadata=metadata, trace=trace)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _run_pipeline(
        self,
        request: TurnRequest,
        history: list[Message],
        profile: UserProfile | None,
        trace: list[TurnState],
    ) -> tuple[Message, TurnMetadata]:
        trace.append(TurnState.GATING)
        accepted = await self.classifier.is_agriculture(
            request.message,
            history,
            document_text=request.attached_document_text,
            file_names=request.attached_files,
        )
        if not accepted:
            trace.append(TurnState.REJECTED)
            logger.info("Domain gate rejected | msg={}", request.message[:50])
            return Message(role="assistant", content=REJECTION_MESSAGE), TurnMetadata(rejected=True)

        trace.append(TurnState.REFERENCE_CHECK)
        referencing = await self.classifier.refers_to_history(request.message)
        logger.info("Reference check | refers_to_past={}", referencing)

        search: SearchOutcome | None = None
        if request.search_opt_in:
            trace.append(TurnState.SEARCH_CHECK)
            search = await self.search_augmenter.maybe_search(request.message, opted_in=True)

        trace.append(TurnState.CONTEXT_BUILD)
        conversation_context = build_context(history, referencing)

        trace.append(TurnState.PROMPT_ASSEMBLE)
        prompt = assemble_prompt(
            mode=PromptMode.DEEP_REPORT if request.deep_report_opt_in else PromptMode.STANDARD,
            user_context=build_user_context(profile),
            document_context=build_document_context(request.attached_document_text),
            search=search,
            conversation_context=conversation_context,
            question=request.message,
            referencing=referencing,
        )

        trace.append(TurnState.COMPLETE)
        try:
            raw = await self.completion.complete(
                prompt,
                temperature=self.options.temperature,
                max_tokens=self.options.max_tokens,
                model=self.options.model,
            )
        except MalformedUpstreamResponseError as exc:
            logger.warning("Completion returned unusable content | error={}", exc)
            raw = None

        trace.append(TurnState.VALIDATE)
        reply = validate_response(raw)
        sources = search.sources if search else []
        if sources and reply.content != EMPTY_RESPONSE_FALLBACK:
            reply = reply.model_copy(
                update={"content": f"{reply.content}\n\n{format_sources_section(sources)}"}
            )

        metadata = TurnMetadata(
            used_search=search is not None,
            used_history=referencing,
            sources=[s.to_dict() for s in sources],
            model=self.options.model,
        )
        return reply, metadata

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def _load_inputs(self, request: TurnRequest) -> tuple[list[Message], UserProfile | None]:
        history = self.conversations.load_conversation(request.conversation_id)
        profile = self.profiles.get_user_profile(request.user_id)
        return history, profile

    def _persist(self, chat_id: str, user_message: Message, assistant_message: Message) -> None:
        try:
            self.conversations.append_messages(chat_id, [user_message, assistant_message])
        except PersistenceError as exc:
            logger.error("Persisting turn failed | chat={} | error={}", chat_id, exc)
            raise
