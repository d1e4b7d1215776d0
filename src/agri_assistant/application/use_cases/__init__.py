"""Use-case layer: business logic decoupled from the HTTP transport."""

from agri_assistant.application.use_cases.chat import ChatUseCase, CompletionOptions
from agri_assistant.application.use_cases.research import ResearchUseCase

__all__ = ["ChatUseCase", "CompletionOptions", "ResearchUseCase"]
