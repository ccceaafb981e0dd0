from typing import Optional
from uuid import uuid4

from fastapi import APIRouter, HTTPException, Query, Request, Response

from persona_chat.application.api.schema.messages import (
    ChatRequest, ChatResponse, HistoryResponse, ReportResponse, SessionCreated
)
from persona_chat.domain.orchestration.persona_registry import PersonaRegistry

router = APIRouter(prefix="/api/v1")


def get_registry(request: Request) -> PersonaRegistry:
    registry = request.app.state.registry
    if registry is None:
        raise HTTPException(status_code=503, detail="Chat engines are not initialized")
    return registry


@router.post("/sessions", response_model=SessionCreated, status_code=201)
async def create_session(request: Request):
    registry = get_registry(request)
    session = await registry.session_store.get_or_create(str(uuid4()))
    return SessionCreated(session_id=session.id)


@router.post("/personas/{persona}/chat", response_model=ChatResponse)
async def chat_endpoint(persona: str, body: ChatRequest, request: Request):
    engine = get_registry(request).get(persona)
    session_id = body.session_id or str(uuid4())
    reply = await engine.chat(session_id, body.message, body.attachments)
    return ChatResponse(session_id=session_id, reply=reply)


@router.post("/personas/{persona}/report", response_model=ReportResponse)
async def report_endpoint(persona: str, body: ChatRequest, request: Request):
    engine = get_registry(request).get(persona)
    session_id = body.session_id or str(uuid4())
    report = await engine.chat_for_report(session_id, body.message, body.attachments)
    return ReportResponse(session_id=session_id, report=report)


@router.get("/sessions/{session_id}/history", response_model=HistoryResponse)
async def history_endpoint(session_id: str, request: Request, max_turns: Optional[int] = Query(None, ge=0)):
    registry = get_registry(request)
    turns = await registry.session_store.history(session_id, max_turns)
    return HistoryResponse(session_id=session_id, turns=list(turns))


@router.delete("/sessions/{session_id}", status_code=204)
async def close_session(session_id: str, request: Request):
    registry = get_registry(request)
    if not await registry.session_store.close(session_id):
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return Response(status_code=204)
