"""Conversation context windows.

Chat history is never sent to the model wholesale. Every view built here is
a fixed-size tail slice with fixed per-field truncation, so the prompt stays
bounded no matter how old the conversation is.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from agri_assistant.domain.models import Message

# Domain gate view
GATE_WINDOW = 6
GATE_MESSAGE_CHARS = 200

# Minimal (non-referencing) view
MINIMAL_USER_MESSAGES = 2
MINIMAL_CONTENT_CHARS = 500
MINIMAL_DOCUMENT_CHARS = 400

# Full (referencing) view
HISTORY_WINDOW = 20
MAX_EXCHANGES = 8
USER_CONTENT_CHARS = 1000
USER_DOCUMENT_CHARS = 1000
ASSISTANT_CONTENT_CHARS = 800
NO_RESPONSE = "[No response recorded]"
HISTORY_START = "=== CONVERSATION HISTORY ==="
HISTORY_END = "=== END HISTORY ==="
EXCHANGE_SEPARATOR = "\n\n---\n\n"

# Current turn's attached document
CURRENT_DOCUMENT_CHARS = 20_000


def truncate(text: str | None, limit: int) -> str:
    """Cut *text* to *limit* characters, marking the cut with ``...``."""
    text = text or ""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


@dataclass(frozen=True)
class Exchange:
    user: str
    assistant: str


def pair_exchanges(messages: Sequence[Message]) -> list[Exchange]:
    """Pair each user message with the assistant message directly after it.

    A user message with no reply gets ``[No response recorded]`` and pairing
    resumes at the next message, so one broken pair never shifts the rest.
    Assistant messages without a preceding user message are skipped.
    """
    exchanges: list[Exchange] = []
    i = 0
    while i < len(messages):
        msg = messages[i]
        if msg.role != "user":
            i += 1
            continue

        reply = messages[i + 1] if i + 1 < len(messages) else None
        if reply is not None and reply.role == "assistant":
            assistant = truncate(reply.content, ASSISTANT_CONTENT_CHARS)
            i += 2
        else:
            assistant = NO_RESPONSE
            i += 1

        user = truncate(msg.content, USER_CONTENT_CHARS)
        if msg.files:
            user += f"\n[Files]: {', '.join(msg.files)}"
        if msg.document_data:
            user += f"\n[Document Content]: {truncate(msg.document_data, USER_DOCUMENT_CHARS)}"
        exchanges.append(Exchange(user=user, assistant=assistant))
    return exchanges


def _render_full(history: Sequence[Message]) -> str:
    exchanges = pair_exchanges(history[-HISTORY_WINDOW:])[-MAX_EXCHANGES:]
    if not exchanges:
        return ""
    blocks = [
        f"[Exchange {n}]\nUser: {ex.user}\nAssistant: {ex.assistant}"
        for n, ex in enumerate(exchanges, 1)
    ]
    return f"{HISTORY_START}\n{EXCHANGE_SEPARATOR.join(blocks)}\n{HISTORY_END}"


def _render_minimal(history: Sequence[Message]) -> str:
    recent_users = [m for m in history if m.role == "user"][-MINIMAL_USER_MESSAGES:]
    if not recent_users:
        return ""
    recent_users.reverse()

    def describe(msg: Message | None) -> str:
        if msg is None:
            return "None"
        text = truncate(msg.content, MINIMAL_CONTENT_CHARS)
        if msg.document_data:
            text += f"\n[Document: {truncate(msg.document_data, MINIMAL_DOCUMENT_CHARS)}]"
        return text

    last = recent_users[0]
    second_last = recent_users[1] if len(recent_users) > 1 else None
    return f"LastMessage: {describe(last)}\nSecondLastMessage: {describe(second_last)}"


def build_context(history: Sequence[Message], referencing: bool) -> str:
    """Select and format the slice of *history* relevant to the current turn.

    Args:
        history: Persisted messages of the conversation, oldest first, not
                 including the message being answered.
        referencing: Whether the reference classifier decided the message
                     depends on earlier turns.

    Returns:
        With ``referencing=False``, a cheap anchor built from the two most
        recent user messages. With ``referencing=True``, up to 8 numbered
        exchanges from the last 20 messages between explicit markers. Both
        views are empty when there is nothing to show.
    """
    if referencing:
        return _render_full(history)
    return _render_minimal(history)


def build_gate_context(history: Sequence[Message]) -> str:
    """Recent-conversation block shown to the domain gate for topic inheritance."""
    recent = history[-GATE_WINDOW:]
    if not recent:
        return ""
    lines = [
        f"{'User' if m.role == 'user' else 'Assistant'}: {truncate(m.content, GATE_MESSAGE_CHARS)}"
        for m in recent
    ]
    return "\nRecent Conversation:\n" + "\n".join(lines)


def build_document_context(document_text: str | None) -> str:
    """Wrap the current turn's attached document text for the prompt."""
    if not document_text or not document_text.strip():
        return ""
    return (
        f"Fetched Document Data:\n{truncate(document_text, CURRENT_DOCUMENT_CHARS)}\n\n"
        "Use the above document content to answer the user's question."
    )
