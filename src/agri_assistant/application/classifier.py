"""Single-shot LLM classification.

Every classification question the assistant asks (is this agriculture? does
it refer to earlier turns? does it need the web?) is one configuration of the
same capability: fill a fixed template, ask for a label at temperature 0 with
a token budget just large enough for that label, and map the reply onto a
small vocabulary. Anything that does not map cleanly resolves to the
configuration's fallback label.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

from loguru import logger

from agri_assistant.application.context_builder import build_gate_context, truncate
from agri_assistant.application.exceptions import MalformedUpstreamResponseError
from agri_assistant.application.prompts import (
    DOMAIN_GATE_TEMPLATE,
    REFERENCE_CHECK_TEMPLATE,
    RESEARCH_SEARCH_NEED_TEMPLATE,
    SEARCH_NEED_TEMPLATE,
)
from agri_assistant.domain.models import DomainLabel, Message, YesNo
from agri_assistant.domain.protocols import ICompletionService

GATE_DOCUMENT_PREVIEW_CHARS = 500

_NEGATION = re.compile(r"\bNOT[\s\-]+")
_TOKEN = re.compile(r"[A-Z_]+")


@dataclass(frozen=True)
class ClassifierSpec:
    """One classification question: template, label vocabulary and fallback."""

    name: str
    template: str
    labels: tuple[str, ...]
    fallback: str
    max_tokens: int


DOMAIN_GATE = ClassifierSpec(
    name="domain_gate",
    template=DOMAIN_GATE_TEMPLATE,
    labels=(DomainLabel.AGRICULTURE, DomainLabel.NOT_AGRICULTURE),
    fallback=DomainLabel.NOT_AGRICULTURE,
    max_tokens=10,
)

REFERENCE_CHECK = ClassifierSpec(
    name="reference_check",
    template=REFERENCE_CHECK_TEMPLATE,
    labels=(YesNo.YES, YesNo.NO),
    fallback=YesNo.NO,
    max_tokens=3,
)

SEARCH_NEED = ClassifierSpec(
    name="search_need",
    template=SEARCH_NEED_TEMPLATE,
    labels=(YesNo.YES, YesNo.NO),
    fallback=YesNo.NO,
    max_tokens=3,
)

RESEARCH_SEARCH_NEED = ClassifierSpec(
    name="research_search_need",
    template=RESEARCH_SEARCH_NEED_TEMPLATE,
    labels=(YesNo.YES, YesNo.NO),
    fallback=YesNo.NO,
    max_tokens=3,
)


def parse_label(raw: object, labels: Sequence[str]) -> str | None:
    """Map a raw model reply onto exactly one label, or None if ambiguous.

    ``"not agriculture."`` and ``"NOT_AGRICULTURE"`` both parse to
    ``NOT_AGRICULTURE``; a reply mentioning two different labels is ambiguous.
    """
    if not isinstance(raw, str):
        return None
    normalized = _NEGATION.sub("NOT_", raw.strip().upper())
    found = {token for token in _TOKEN.findall(normalized) if token in labels}
    if len(found) != 1:
        return None
    return found.pop()


class Classifier:
    """Runs ``ClassifierSpec`` configurations against the completion capability.

    Parameters
    ----------
    completion:
        The shared completion service.
    model:
        Optional model override for classification calls.
    """

    def __init__(self, completion: ICompletionService, model: str | None = None) -> None:
        self.completion = completion
        self.model = model

    async def classify(self, spec: ClassifierSpec, **inputs: str) -> str:
        """Return one of ``spec.labels``; the fallback when the reply is unusable.

        Raises:
            UpstreamUnavailableError: If the completion capability cannot be reached.
        """
        prompt = spec.template.format(**inputs)
        try:
            raw = await self.completion.complete(
                prompt,
                temperature=0.0,
                max_tokens=spec.max_tokens,
                model=self.model,
            )
        except MalformedUpstreamResponseError as exc:
            logger.warning("Classifier {} got malformed reply ({}); using {}", spec.name, exc, spec.fallback)
            return spec.fallback

        label = parse_label(raw, spec.labels)
        if label is None:
            logger.warning(
                "Classifier {} could not parse {!r}; using {}", spec.name, raw, spec.fallback
            )
            return spec.fallback
        logger.debug("Classifier {} -> {}", spec.name, label)
        return label

    # ------------------------------------------------------------------
    # Configured questions
    # ------------------------------------------------------------------

    async def is_agriculture(
        self,
        message: str,
        history: Sequence[Message],
        document_text: str = "",
        file_names: Sequence[str] = (),
    ) -> bool:
        """Domain gate. Fails closed: anything but a clean AGRICULTURE rejects."""
        document_preview = (
            f'\nDocument Content Preview: "{truncate(document_text, GATE_DOCUMENT_PREVIEW_CHARS)}"'
            if document_text
            else ""
        )
        file_list = f"\nUploaded Files: {', '.join(file_names)}" if file_names else ""
        label = await self.classify(
            DOMAIN_GATE,
            message=message,
            document_preview=document_preview,
            file_list=file_list,
            recent_conversation=build_gate_context(history),
        )
        return label == DomainLabel.AGRICULTURE

    async def refers_to_history(self, message: str) -> bool:
        return await self.classify(REFERENCE_CHECK, message=message) == YesNo.YES

    async def needs_web_search(self, message: str) -> bool:
        return await self.classify(SEARCH_NEED, message=message) == YesNo.YES

    async def needs_research_search(self, message: str, user_context: str) -> bool:
        label = await self.classify(RESEARCH_SEARCH_NEED, message=message, user_context=user_context)
        return label == YesNo.YES
