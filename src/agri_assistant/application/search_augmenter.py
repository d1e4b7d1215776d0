"""Optional web-search grounding for a turn.

The search capability is allowed to return almost anything: a dict with an
``answer`` and ``results``/``references``, a bare list of hits, a single hit,
a JSON string, or plain text, with inconsistent field names per hit.
``normalize_search_payload`` is the one place that copes with that; the rest
of the application only ever sees ``SearchOutcome`` / ``Source``.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterable
from typing import Any
from urllib.parse import urlparse

from loguru import logger

from agri_assistant.application.classifier import Classifier
from agri_assistant.domain.models import SearchOutcome, Source
from agri_assistant.domain.protocols import ISearchService

MAX_SOURCES = 5

_TITLE_KEYS = ("title", "name")
_URL_KEYS = ("url", "link")
_CONTENT_KEYS = ("content", "snippet", "description")
_DATE_KEYS = ("published_date", "publishedDate")
_ITEM_LIST_KEYS = ("results", "references")


# ---------------------------------------------------------------------------
# Normalization boundary
# ---------------------------------------------------------------------------


def _first_text(item: dict, keys: Iterable[str]) -> str | None:
    for key in keys:
        value = item.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _usable_url(url: str | None) -> bool:
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def normalize_source(item: Any) -> Source | None:
    """Coerce one search hit into a ``Source``; None if it has no usable URL."""
    if not isinstance(item, dict):
        return None
    url = _first_text(item, _URL_KEYS)
    if not _usable_url(url):
        return None
    return Source(
        title=_first_text(item, _TITLE_KEYS) or "Untitled",
        url=url,
        content=_first_text(item, _CONTENT_KEYS) or "",
        published_date=_first_text(item, _DATE_KEYS),
    )


def normalize_search_payload(payload: Any, max_sources: int = MAX_SOURCES) -> SearchOutcome | None:
    """Turn an arbitrary search payload into a ``SearchOutcome``.

    Returns None when the payload carries neither an answer nor a single
    citable source.
    """
    if payload is None:
        return None

    if isinstance(payload, str):
        text = payload.strip()
        if not text:
            return None
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            return SearchOutcome(answer=text, sources=[])
        if isinstance(parsed, str):
            return SearchOutcome(answer=parsed.strip(), sources=[]) if parsed.strip() else None
        return normalize_search_payload(parsed, max_sources)

    answer = ""
    items: list[Any]
    if isinstance(payload, list):
        items = payload
    elif isinstance(payload, dict):
        list_key = next((k for k in _ITEM_LIST_KEYS if k in payload), None)
        if list_key is not None or "answer" in payload:
            raw_answer = payload.get("answer")
            answer = raw_answer.strip() if isinstance(raw_answer, str) else ""
            raw_items = payload.get(list_key) if list_key else None
            if isinstance(raw_items, list):
                items = raw_items
            elif isinstance(raw_items, dict):
                items = [raw_items]
            else:
                items = []
        else:
            items = [payload]
    else:
        return None

    sources = [s for s in (normalize_source(item) for item in items) if s is not None]
    sources = sources[:max_sources]

    if not answer and not sources:
        return None
    return SearchOutcome(answer=answer, sources=sources)


def format_sources_section(sources: list[Source]) -> str:
    """Render the citation list appended to a grounded reply."""
    lines = [f"[{n}]: [{s.title}]({s.url})" for n, s in enumerate(sources, 1)]
    return "## Sources\n" + "\n".join(lines)


# ---------------------------------------------------------------------------
# Augmenter
# ---------------------------------------------------------------------------


class SearchAugmenter:
    """Decides whether a turn gets web results and fetches them without ever failing the turn.

    Parameters
    ----------
    classifier:
        Used for the search-need question.
    search_service:
        The raw web-search capability.
    timeout_seconds:
        Per-call deadline for the search request.
    max_sources:
        Upper bound on citable sources kept per turn.
    """

    def __init__(
        self,
        classifier: Classifier,
        search_service: ISearchService,
        timeout_seconds: float = 30.0,
        max_sources: int = MAX_SOURCES,
    ) -> None:
        self.classifier = classifier
        self.search_service = search_service
        self.timeout_seconds = timeout_seconds
        self.max_sources = max_sources

    async def maybe_search(self, query: str, opted_in: bool) -> SearchOutcome | None:
        """Search only if the user opted in and the search-need classifier agrees."""
        if not opted_in:
            return None
        if not await self.classifier.needs_web_search(query):
            logger.info("Search skipped | classifier said no")
            return None
        return await self.fetch(query)

    async def fetch(self, query: str) -> SearchOutcome | None:
        """Run the search and normalize it; any failure degrades to None."""
        try:
            async with asyncio.timeout(self.timeout_seconds):
                payload = await self.search_service.search(query)
        except Exception as exc:
            logger.warning("Web search failed, continuing without it | error={!r}", exc)
            return None

        outcome = normalize_search_payload(payload, self.max_sources)
        if outcome is None:
            logger.info("Web search returned no usable results")
        else:
            logger.info("Web search ok | sources={}", len(outcome.sources))
        return outcome
