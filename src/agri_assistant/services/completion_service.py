"""Completion capability backed by a PydanticAI agent.

The agent talks to any OpenAI-compatible chat endpoint (Groq by default).
SDK and transport errors are translated into the application's error
taxonomy here so nothing above this module knows which provider is in use.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from loguru import logger
from openai import AsyncOpenAI
from pydantic_ai import Agent
from pydantic_ai.exceptions import ModelAPIError, ModelHTTPError, UnexpectedModelBehavior
from pydantic_ai.models import Model
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider
from pydantic_ai.settings import ModelSettings

from agri_assistant.application.exceptions import (
    MalformedUpstreamResponseError,
    UpstreamUnavailableError,
)
from agri_assistant.config import Settings, get_settings
from agri_assistant.telemetry import get_instrumentation_settings

ModelFactory = Callable[[str], Model]


class PydanticAICompletionService:
    """Single-prompt completions through a tool-less PydanticAI agent.

    Parameters
    ----------
    model_factory:
        Builds a PydanticAI ``Model`` for a model name. Models are cached per name.
    default_model:
        Model name used when a call does not pick one.
    timeout_seconds:
        Per-call deadline.
    instrument:
        Optional PydanticAI instrumentation settings.
    """

    def __init__(
        self,
        model_factory: ModelFactory,
        default_model: str,
        timeout_seconds: float = 30.0,
        instrument=None,
    ) -> None:
        self.model_factory = model_factory
        self.default_model = default_model
        self.timeout_seconds = timeout_seconds
        self._models: dict[str, Model] = {}
        self._agent: Agent[None, str] = Agent(output_type=str, instrument=instrument)

    def _model(self, name: str) -> Model:
        if name not in self._models:
            self._models[name] = self.model_factory(name)
        return self._models[name]

    async def complete(
        self,
        prompt: str,
        *,
        temperature: float,
        max_tokens: int,
        model: str | None = None,
    ) -> str:
        """Send *prompt* as a single user message and return the reply text.

        Raises:
            UpstreamUnavailableError: Timeout, connection failure or HTTP error from the API.
            MalformedUpstreamResponseError: The model reply could not be used as text.
        """
        model_name = model or self.default_model
        settings = ModelSettings(temperature=temperature, max_tokens=max_tokens)

        try:
            async with asyncio.timeout(self.timeout_seconds):
                result = await self._agent.run(
                    prompt,
                    model=self._model(model_name),
                    model_settings=settings,
                )
        except TimeoutError as exc:
            logger.warning("Completion timed out | model={} | timeout={}s", model_name, self.timeout_seconds)
            raise UpstreamUnavailableError(f"completion timed out after {self.timeout_seconds:.0f}s") from exc
        except ModelHTTPError as exc:
            logger.warning("Completion HTTP error | model={} | status={}", model_name, exc.status_code)
            raise UpstreamUnavailableError(f"model API returned HTTP {exc.status_code}") from exc
        except ModelAPIError as exc:
            # connection failures and SDK-side timeouts arrive wrapped in ModelAPIError
            logger.warning("Completion API error | model={} | error={}", model_name, exc)
            raise UpstreamUnavailableError("model API unreachable") from exc
        except UnexpectedModelBehavior as exc:
            raise MalformedUpstreamResponseError(str(exc)) from exc

        output = result.output
        if not isinstance(output, str):
            raise MalformedUpstreamResponseError(f"expected text, got {type(output).__name__}")
        return output


def create_completion_service(settings: Settings | None = None) -> PydanticAICompletionService:
    """Create the completion service for the configured OpenAI-compatible endpoint.

    Args:
        settings: Optional Settings override (defaults to get_settings()).
    """
    s = settings or get_settings()

    client = AsyncOpenAI(api_key=s.groq_api_key, base_url=s.groq_base_url)
    provider = OpenAIProvider(openai_client=client)

    def model_factory(name: str) -> Model:
        return OpenAIChatModel(name, provider=provider)

    return PydanticAICompletionService(
        model_factory=model_factory,
        default_model=s.chat_model,
        timeout_seconds=s.llm_timeout_seconds,
        instrument=get_instrumentation_settings(s),
    )
