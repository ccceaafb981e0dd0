from typing import Dict, Optional, Type
import asyncio
import contextlib

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from persona_chat.application.api.route.chat import router as chat_router
from persona_chat.domain.context.memory.knowledge_index import InMemoryKnowledgeIndex
from persona_chat.domain.errors import (
    ChatEngineError, InvalidArgumentsError, PromptTooLargeError, RemoteTimeoutError,
    RemoteUnavailableError, SchemaValidationError, ToolLoopExceededError,
    UnknownPersonaError, UnknownToolError
)
from persona_chat.domain.orchestration.persona_registry import PersonaRegistry, build_registry
from persona_chat.domain.tool.builtin.interview_questions import build_interview_question_tool
from persona_chat.domain.tool.tool_registry import ToolRegistry
from persona_chat.infrastructure.config.settings import Settings, get_settings
from persona_chat.infrastructure.llm.chat_model import create_chat_model
from persona_chat.infrastructure.observability.logging import setup_logging

logger = structlog.get_logger(__name__)

ERROR_STATUS: Dict[Type[ChatEngineError], int] = {
    UnknownPersonaError: 404,
    PromptTooLargeError: 413,
    SchemaValidationError: 422,
    ToolLoopExceededError: 422,
    UnknownToolError: 422,
    InvalidArgumentsError: 422,
    RemoteUnavailableError: 502,
    RemoteTimeoutError: 504,
}


async def chat_engine_error_handler(request: Request, exc: ChatEngineError) -> JSONResponse:
    status_code = ERROR_STATUS.get(type(exc), 500)
    logger.warning("Chat request failed", error=exc.kind, detail=exc.cause, status_code=status_code)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


async def build_default_registry(settings: Settings) -> PersonaRegistry:
    """Registry backed by the configured provider and knowledge directory"""

    index = None
    if settings.knowledge_dir:
        index = InMemoryKnowledgeIndex()
        await index.load_directory(settings.knowledge_dir)

    tools = ToolRegistry()
    if settings.interview_search_url:
        tools.register_tool(build_interview_question_tool(settings.interview_search_url))

    return build_registry(settings, create_chat_model(settings), tool_registry=tools, index=index)


def create_app(registry: Optional[PersonaRegistry] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(title="Persona Chat Server", version="1.0.0")
    app.state.settings = settings
    app.state.registry = registry
    app.state.eviction_task = None

    # CORS: allow local frontend during development
    if settings.app_env.lower() in {"dev", "development", "local"}:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(ChatEngineError, chat_engine_error_handler)
    app.include_router(chat_router)

    @app.get("/health")
    async def health():
        registry = app.state.registry
        return {"status": "ok", "personas": registry.names() if registry else []}

    @app.on_event("startup")
    async def startup_event():
        """Build engines if none were injected and start session eviction"""

        if app.state.registry is None:
            app.state.registry = await build_default_registry(settings)

        store = app.state.registry.session_store
        app.state.eviction_task = asyncio.create_task(store.run_eviction(settings.eviction_interval_seconds))

        logger.info("Persona chat server started", personas=app.state.registry.names())

    @app.on_event("shutdown")
    async def shutdown_event():
        task = app.state.eviction_task
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        logger.info("Persona chat server shutdown")

    return app


def create_default_app() -> FastAPI:
    """Entry point for ``uvicorn --factory``"""

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format, environment=settings.app_env)
    return create_app(settings=settings)
