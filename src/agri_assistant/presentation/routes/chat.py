"""Chat routes: chat turn, research report and history endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from loguru import logger

from agri_assistant.application.exceptions import (
    ConversationNotFoundError,
    EmptyMessageError,
    PersistenceError,
    TurnError,
    UpstreamUnavailableError,
)
from agri_assistant.application.use_cases import ChatUseCase, ResearchUseCase
from agri_assistant.domain.models import ResearchRequest, TurnRequest, TurnResult
from agri_assistant.presentation.auth import AuthenticatedUser, get_current_user
from agri_assistant.presentation.schemas import (
    ChatRequest,
    ChatSummaryResponse,
    ErrorResponse,
    MessageSchema,
    MetadataSchema,
    ResearchRequestBody,
    TurnResponse,
)
from agri_assistant.services.chat_history_service import ChatHistoryService

router = APIRouter(tags=["chat"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _turn_failure(exc: TurnError) -> JSONResponse:
    """Translate a turn-level failure into the ``{success: false}`` envelope."""
    status = 503 if isinstance(exc, UpstreamUnavailableError) else 500
    return JSONResponse(status_code=status, content=ErrorResponse(error=str(exc)).model_dump())


def _resolve_chat(hist: ChatHistoryService, chat_id: str | None, user_id: str) -> tuple[str, bool]:
    """Return the chat to answer in and whether this request created it."""
    created = not chat_id or hist.get_chat(chat_id) is None
    try:
        return hist.get_or_create_chat(chat_id, user_id).id, created
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Chat not found")


def _discard_new_chat(hist: ChatHistoryService, chat_id: str) -> None:
    """Drop a chat created for a turn that failed before anything was stored."""
    try:
        hist.delete_chat_if_empty(chat_id)
    except PersistenceError as exc:
        logger.warning("Could not discard empty chat {} | error={}", chat_id, exc)


def _to_response(chat_id: str, result: TurnResult) -> TurnResponse:
    meta = result.metadata
    return TurnResponse(
        chat_id=chat_id,
        message=MessageSchema(**result.message.model_dump()),
        metadata=MetadataSchema(
            used_search=meta.used_search,
            used_history=meta.used_history,
            rejected=meta.rejected,
            sources=meta.sources,
            model=meta.model,
            latency_ms=meta.latency_ms,
        ),
    )


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health")
async def health():
    """Simple liveness / readiness check."""
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Chat turn
# ---------------------------------------------------------------------------


@router.post("/chat", response_model=TurnResponse, responses={500: {"model": ErrorResponse}, 503: {"model": ErrorResponse}})
async def chat(
    request: ChatRequest,
    raw_request: Request,
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Send a message and receive the assistant's reply.

    The backend manages conversation history. Send ``chat_id=null`` to
    start a new conversation, or pass an existing ID to continue one.
    """
    hist: ChatHistoryService = raw_request.app.state.history
    uc: ChatUseCase = raw_request.app.state.chat_uc

    try:
        chat_id, created = _resolve_chat(hist, request.chat_id, current_user.user_id)
    except PersistenceError as exc:
        return _turn_failure(exc)

    try:
        logger.info(
            "POST /chat | user={} chat={} msg={} search={}",
            current_user.user_id,
            chat_id,
            request.message[:60],
            request.search_opt_in,
        )
        result = await uc.execute(
            TurnRequest(
                conversation_id=chat_id,
                user_id=current_user.user_id,
                message=request.message,
                attached_files=[f.name for f in request.attached_files],
                attached_document_text=request.attached_document_text,
                search_opt_in=request.search_opt_in,
                deep_report_opt_in=request.deep_report_opt_in,
            )
        )
    except EmptyMessageError as exc:
        if created:
            _discard_new_chat(hist, chat_id)
        raise HTTPException(status_code=422, detail=str(exc))
    except TurnError as exc:
        logger.error("POST /chat failed | user={} | error={}", current_user.user_id, exc)
        if created:
            _discard_new_chat(hist, chat_id)
        return _turn_failure(exc)

    return _to_response(chat_id, result)


# ---------------------------------------------------------------------------
# Research report
# ---------------------------------------------------------------------------


@router.post("/research", response_model=TurnResponse, responses={500: {"model": ErrorResponse}, 503: {"model": ErrorResponse}})
async def research(
    request: ResearchRequestBody,
    raw_request: Request,
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Generate a structured research report for the query."""
    hist: ChatHistoryService = raw_request.app.state.history
    uc: ResearchUseCase = raw_request.app.state.research_uc

    try:
        chat_id, created = _resolve_chat(hist, request.chat_id, current_user.user_id)
    except PersistenceError as exc:
        return _turn_failure(exc)

    try:
        logger.info(
            "POST /research | user={} chat={} query={}",
            current_user.user_id,
            chat_id,
            request.query[:60],
        )
        result = await uc.execute(
            ResearchRequest(conversation_id=chat_id, user_id=current_user.user_id, query=request.query)
        )
    except EmptyMessageError as exc:
        if created:
            _discard_new_chat(hist, chat_id)
        raise HTTPException(status_code=422, detail=str(exc))
    except TurnError as exc:
        logger.error("POST /research failed | user={} | error={}", current_user.user_id, exc)
        if created:
            _discard_new_chat(hist, chat_id)
        return _turn_failure(exc)

    return _to_response(chat_id, result)


# ---------------------------------------------------------------------------
# Chat history
# ---------------------------------------------------------------------------


@router.get("/chats", response_model=list[ChatSummaryResponse])
async def list_chats(
    raw_request: Request,
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """List all chats for the authenticated user, newest first."""
    hist: ChatHistoryService = raw_request.app.state.history
    try:
        summaries = hist.list_user_chats(current_user.user_id)
    except PersistenceError as exc:
        return _turn_failure(exc)
    return [
        ChatSummaryResponse(
            id=s.id,
            title=s.title,
            created_at=s.created_at,
            updated_at=s.updated_at,
            message_count=s.message_count,
        )
        for s in summaries
    ]


@router.get("/chats/{chat_id}/messages", response_model=list[MessageSchema])
async def get_chat_messages(
    chat_id: str,
    raw_request: Request,
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Get all messages in a chat, ordered chronologically."""
    hist: ChatHistoryService = raw_request.app.state.history
    try:
        hist.get_owned_chat(chat_id, current_user.user_id)
        messages = hist.load_conversation(chat_id)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Chat not found")
    except PersistenceError as exc:
        return _turn_failure(exc)
    return [MessageSchema(**m.model_dump()) for m in messages]
