"""Research use case: one decide, search, report pass.

Produces a structured research report tailored to the farmer's profile. The
planner question decides whether to search the web; the report always ends
with a Sources section built here rather than by the model, so citations
cannot be invented.
"""

from __future__ import annotations

import asyncio
import time

from loguru import logger

from agri_assistant.application.classifier import Classifier
from agri_assistant.application.context_builder import truncate
from agri_assistant.application.exceptions import (
    EmptyMessageError,
    MalformedUpstreamResponseError,
    UpstreamUnavailableError,
)
from agri_assistant.application.prompt_assembler import build_research_user_context
from agri_assistant.application.prompts import (
    EMPTY_RESPONSE_FALLBACK,
    RESEARCH_NO_CITATIONS,
    RESEARCH_NO_SEARCH,
    RESEARCH_REPORT_TEMPLATE,
)
from agri_assistant.application.search_augmenter import SearchAugmenter, format_sources_section
from agri_assistant.application.use_cases.chat import CompletionOptions, validate_response
from agri_assistant.domain.models import (
    Message,
    ResearchRequest,
    SearchOutcome,
    TurnMetadata,
    TurnResult,
    TurnState,
)
from agri_assistant.domain.protocols import ICompletionService, IConversationStore, IProfileStore

RECENT_MESSAGES = 6
RECENT_MESSAGE_CHARS = 300


def format_search_results(search: SearchOutcome | None, searched: bool) -> str:
    """Web research block for the report prompt, as ``[Source n]`` entries."""
    if not searched:
        return ""
    if search is None:
        return "Web Research Results:\nWeb search was attempted but returned no usable results.\n\n"
    blocks = [
        f"[Source {n}]\nTitle: {s.title}\nURL: {s.url}\nContent: {s.content or 'No content'}"
        for n, s in enumerate(search.sources, 1)
    ]
    if search.answer:
        blocks.insert(0, f"Summary: {search.answer}")
    return "Web Research Results:\n" + "\n\n".join(blocks) + "\n\n"


def format_recent_conversation(history: list[Message]) -> str:
    recent = history[-RECENT_MESSAGES:]
    if not recent:
        return ""
    lines = [
        f"{'User' if m.role == 'user' else 'Assistant'}: {truncate(m.content, RECENT_MESSAGE_CHARS)}"
        for m in recent
    ]
    return "Recent Conversation:\n" + "\n".join(lines) + "\n\n"


def research_sources_section(search: SearchOutcome | None, searched: bool) -> str:
    if search is not None and search.sources:
        return format_sources_section(search.sources)
    if searched:
        return f"## Sources\n{RESEARCH_NO_CITATIONS}"
    return f"## Sources\n{RESEARCH_NO_SEARCH}"


class ResearchUseCase:
    """Generates a farmer-focused research report and appends it to the conversation."""

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
        self.options = options or CompletionOptions(max_tokens=2000)
        self.turn_timeout_seconds = turn_timeout_seconds

    async def execute(self, request: ResearchRequest) -> TurnResult:
        """Run the research pass and return the persisted report.

        Raises:
            EmptyMessageError: If the query is empty.
            UpstreamUnavailableError: If a model call fails or the deadline passes.
            PersistenceError: If the conversation cannot be loaded or appended to.
        """
        with logger.contextualize(chat_id=request.conversation_id):
            return await self._execute(request)

    async def _execute(self, request: ResearchRequest) -> TurnResult:
        if not request.query or not request.query.strip():
            raise EmptyMessageError("query must not be empty")

        t0 = time.perf_counter()
        trace = [TurnState.START]
        history = self.conversations.load_conversation(request.conversation_id)
        user_context = build_research_user_context(self.profiles.get_user_profile(request.user_id))
        user_message = Message(role="user", content=request.query)

        try:
            async with asyncio.timeout(self.turn_timeout_seconds):
                trace.append(TurnState.SEARCH_CHECK)
                searched = await self.classifier.needs_research_search(request.query, user_context)
                search = await self.search_augmenter.fetch(request.query) if searched else None
                logger.info(
                    "Research plan | needs_search={} | sources={}",
                    searched,
                    len(search.sources) if search else 0,
                )

                trace.append(TurnState.PROMPT_ASSEMBLE)
                prompt = RESEARCH_REPORT_TEMPLATE.format(
                    user_context=user_context,
                    recent_conversation=format_recent_conversation(history),
                    search_results=format_search_results(search, searched),
                    query=request.query,
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
                    logger.warning("Research completion unusable | error={}", exc)
                    raw = None
        except TimeoutError as exc:
            raise UpstreamUnavailableError(
                f"research exceeded {self.turn_timeout_seconds:.0f}s deadline"
            ) from exc

        trace.append(TurnState.VALIDATE)
        report = validate_response(raw)
        if report.content != EMPTY_RESPONSE_FALLBACK:
            report = report.model_copy(
                update={"content": f"{report.content}\n\n{research_sources_section(search, searched)}"}
            )

        trace.append(TurnState.PERSIST)
        self.conversations.append_messages(request.conversation_id, [user_message, report])
        trace.append(TurnState.DONE)

        metadata = TurnMetadata(
            used_search=search is not None,
            used_history=bool(history),
            sources=[s.to_dict() for s in search.sources] if search else [],
            model=self.options.model,
            latency_ms=int((time.perf_counter() - t0) * 1000),
        )
        logger.info(
            "Research completed | chat={} | search={} | latency={}ms",
            request.conversation_id,
            metadata.used_search,
            metadata.latency_ms,
        )
        return TurnResult(message=report, metadata=metadata, trace=trace)
