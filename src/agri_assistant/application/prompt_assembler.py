"""Final prompt composition.

Pure string assembly. Section order is fixed because the model weighs
context by position: role, mode notes, user profile, conversation,
document, web results, the question, and last the answering instruction.
Inputs are placed verbatim; all trimming happens upstream.
"""

from __future__ import annotations

from enum import StrEnum

from agri_assistant.application.prompts import (
    AGENT_MODE_NOTE,
    FINAL_INSTRUCTION_CONCISE,
    FINAL_INSTRUCTION_HISTORY,
    FINAL_INSTRUCTION_SEARCH,
    REPORT_MODE_NOTE,
    RESEARCH_PROFILE_MISSING,
    RESEARCH_USER_PROFILE_TEMPLATE,
    ROLE_STATEMENT,
    USER_PROFILE_TEMPLATE,
)
from agri_assistant.domain.models import SearchOutcome, UserProfile

NOT_SPECIFIED = "Not specified"


class PromptMode(StrEnum):
    STANDARD = "standard"
    DEEP_REPORT = "deep_report"


def _or_default(value: str | None) -> str:
    return value if value else NOT_SPECIFIED


def _join_or_default(values: list[str]) -> str:
    return ", ".join(values) if values else NOT_SPECIFIED


def build_user_context(profile: UserProfile | None) -> str:
    """Profile block for chat prompts; empty unless the profile is complete."""
    if profile is None or not profile.profile_completed:
        return ""
    return USER_PROFILE_TEMPLATE.format(
        username=profile.username or "Unknown",
        location=_or_default(profile.location),
        field_size=_or_default(profile.field_size),
        crops=_join_or_default(profile.crops_grown),
        climate=_or_default(profile.climate),
    )


def build_research_user_context(profile: UserProfile | None) -> str:
    """Richer profile block for research reports, with a note when incomplete."""
    if profile is None or not profile.profile_completed:
        return RESEARCH_PROFILE_MISSING
    return RESEARCH_USER_PROFILE_TEMPLATE.format(
        username=profile.username or "Unknown",
        location=_or_default(profile.location),
        field_size=_or_default(profile.field_size),
        climate=_or_default(profile.climate),
        crops=_join_or_default(profile.crops_grown),
        strategies=_join_or_default(profile.farming_strategy),
        soil_type=_or_default(profile.soil_type),
        irrigation_method=_or_default(profile.irrigation_method),
    )


def build_search_context(search: SearchOutcome | None) -> str:
    """Web results with a numbered source list the model cites as [n]."""
    if search is None:
        return ""
    parts = ["Web Search Results:"]
    if search.answer:
        parts.append(search.answer)
    if search.sources:
        numbered = []
        for n, source in enumerate(search.sources, 1):
            entry = f"[{n}]: [{source.title}]({source.url})"
            if source.content:
                entry += f"\n{source.content}"
            numbered.append(entry)
        parts.append("Numbered Sources:\n" + "\n".join(numbered))
    return "\n\n".join(parts)


def mode_notes(mode: PromptMode) -> str:
    if mode is PromptMode.DEEP_REPORT:
        return f"{AGENT_MODE_NOTE}\n\n{REPORT_MODE_NOTE}"
    return ""


def assemble_prompt(
    *,
    mode: PromptMode,
    user_context: str,
    document_context: str,
    search: SearchOutcome | None,
    conversation_context: str,
    question: str,
    referencing: bool,
    extra_mode_notes: str = "",
) -> str:
    """Compose the single instruction block sent to the completion capability.

    Args:
        mode: ``DEEP_REPORT`` adds the agent-mode and report-skeleton notes.
        user_context: Output of ``build_user_context`` (empty when the profile
                      is incomplete).
        document_context: The current turn's attached document block.
        search: Normalized web results, or None when search did not run.
        conversation_context: Output of ``build_context``; full history when
                              *referencing*, the minimal anchor otherwise.
        question: The user's message, verbatim.
        referencing: Whether the turn depends on earlier exchanges.
        extra_mode_notes: Caller-supplied notes placed after the mode notes.
    """
    if referencing:
        conversation_block = conversation_context
    elif conversation_context:
        conversation_block = f"Recent Messages:\n{conversation_context}"
    else:
        conversation_block = ""

    if search is not None:
        final_instruction = FINAL_INSTRUCTION_SEARCH
    elif referencing:
        final_instruction = FINAL_INSTRUCTION_HISTORY
    else:
        final_instruction = FINAL_INSTRUCTION_CONCISE

    sections = [
        ROLE_STATEMENT,
        mode_notes(mode),
        extra_mode_notes,
        user_context,
        conversation_block,
        document_context,
        build_search_context(search),
        f"User Question: {question}",
        final_instruction,
    ]
    return "\n\n".join(section for section in sections if section)
