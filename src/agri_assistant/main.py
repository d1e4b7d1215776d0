"""FastAPI application for the agriculture chat assistant.

This module is a thin **presentation layer** wiring. All business logic
lives in ``application.use_cases`` so it can be tested and reused
independently of any HTTP framework.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from agri_assistant import __version__
from agri_assistant.application.classifier import Classifier
from agri_assistant.application.search_augmenter import SearchAugmenter
from agri_assistant.application.use_cases import ChatUseCase, CompletionOptions, ResearchUseCase
from agri_assistant.config import Settings, get_settings
from agri_assistant.logging_config import setup_logging
from agri_assistant.presentation.routes import chat as chat_routes
from agri_assistant.services.chat_history_service import ChatHistoryService
from agri_assistant.services.completion_service import create_completion_service
from agri_assistant.services.search_service import TavilySearchService
from agri_assistant.telemetry import setup_telemetry


def _build_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Set up and tear down services around the application lifetime."""
        settings.validate_runtime()

        history = ChatHistoryService(db_path=settings.chat_db_path)
        history.connect()

        completion = create_completion_service(settings)
        classifier = Classifier(completion, model=settings.effective_classifier_model)
        search = TavilySearchService.from_api_key(
            settings.tavily_api_key,
            max_results=settings.search_max_results,
            search_depth=settings.search_depth,
        )
        augmenter = SearchAugmenter(
            classifier,
            search,
            timeout_seconds=settings.search_timeout_seconds,
            max_sources=settings.search_max_results,
        )

        # Wire up the use cases with all their dependencies
        app.state.settings = settings
        app.state.history = history
        app.state.chat_uc = ChatUseCase(
            completion=completion,
            classifier=classifier,
            search_augmenter=augmenter,
            conversations=history,
            profiles=history,
            options=CompletionOptions(
                temperature=settings.chat_temperature,
                max_tokens=settings.chat_max_tokens,
                model=settings.chat_model,
            ),
            turn_timeout_seconds=settings.turn_timeout_seconds,
        )
        app.state.research_uc = ResearchUseCase(
            completion=completion,
            classifier=classifier,
            search_augmenter=augmenter,
            conversations=history,
            profiles=history,
            options=CompletionOptions(
                temperature=settings.chat_temperature,
                max_tokens=settings.research_max_tokens,
                model=settings.chat_model,
            ),
            turn_timeout_seconds=settings.turn_timeout_seconds,
        )

        logger.info("Application startup complete | model={}", settings.chat_model)
        yield

        history.close()
        logger.info("Application shutdown complete")

    return lifespan


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Optional Settings override (defaults to get_settings()).
    """
    s = settings or get_settings()
    setup_logging(level=s.log_level, json=s.log_json)

    app = FastAPI(
        title="Agriculture Chat Assistant",
        description="Agriculture-only Q&A with conversation memory and optional web search.",
        version=__version__,
        lifespan=_build_lifespan(s),
    )
    app.state.settings = s

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(chat_routes.router)

    # Instrument FastAPI with observability (no-op when OBSERVABILITY=off)
    setup_telemetry(app, s)
    return app


app = create_app()


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def run() -> None:
    import uvicorn

    uvicorn.run("agri_assistant.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
