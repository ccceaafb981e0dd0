from typing import TypedDict, List, Dict, Any, Optional, Literal, Type, Union
from langgraph.graph import StateGraph, END
from pydantic import BaseModel, Field
import asyncio
import time
import structlog

from persona_chat.domain.context.context_retriever import ContextRetriever
from persona_chat.domain.context.memory.session_store import SessionStore
from persona_chat.domain.context.prompt_assembler import PromptAssembler
from persona_chat.domain.errors import RemoteTimeoutError, ToolLoopExceededError, UnknownToolError
from persona_chat.domain.models.chat_state import (
    AssembledRequest, ContentPart, ModelResponse, PersonaConfig,
    Report, ToolSpec, Turn
)
from persona_chat.domain.response.response_normalizer import ResponseNormalizer
from persona_chat.domain.tool.tool_executor import ToolExecutor
from persona_chat.domain.tool.tool_registry import ToolRegistry
from persona_chat.infrastructure.llm.chat_model import ChatModelClient
from persona_chat.infrastructure.observability.logging import chat_logger

logger = structlog.get_logger(__name__)


class EngineConfig(BaseModel):
    """Limits and timeouts for one persona engine"""
    persona: PersonaConfig
    max_tool_depth: int = Field(default=5, ge=0, description="Tool round-trips allowed per request")
    model_timeout: float = Field(default=60.0, gt=0)
    tool_timeout: float = Field(default=30.0, gt=0)


class DispatchState(TypedDict):
    """State for the tool dispatch graph"""
    session_id: Optional[str]
    request: AssembledRequest
    tool_specs: List[ToolSpec]
    pending_turns: List[Turn]
    response: Optional[ModelResponse]
    rounds: int


class ChatEngine:
    """Session-aware chat for a single persona"""

    def __init__(
        self,
        config: EngineConfig,
        model_client: ChatModelClient,
        session_store: Optional[SessionStore] = None,
        tool_registry: Optional[ToolRegistry] = None,
        retriever: Optional[ContextRetriever] = None,
        assembler: Optional[PromptAssembler] = None,
        normalizer: Optional[ResponseNormalizer] = None,
    ):
        self.config = config
        self.model_client = model_client
        self.session_store = session_store or SessionStore()
        self.tool_registry = tool_registry or ToolRegistry()
        self.retriever = retriever or ContextRetriever()
        self.assembler = assembler or PromptAssembler()
        self.normalizer = normalizer or ResponseNormalizer()
        self.tool_executor = ToolExecutor(self.tool_registry, default_timeout=config.tool_timeout)
        self.workflow = self._create_workflow()

    @property
    def persona(self) -> PersonaConfig:
        return self.config.persona

    def _create_workflow(self):
        """Create the model / tool dispatch graph"""

        workflow = StateGraph(DispatchState)

        workflow.add_node("call_model", self.call_model_node)
        workflow.add_node("execute_tools", self.tool_execution_node)

        workflow.set_entry_point("call_model")

        workflow.add_conditional_edges(
            "call_model",
            self.route_after_model,
            {
                "execute_tools": "execute_tools",
                "done": END
            }
        )
        workflow.add_edge("execute_tools", "call_model")

        return workflow.compile()

    async def call_model_node(self, state: DispatchState) -> Dict[str, Any]:
        """Send the request plus this request's tool turns to the model"""

        request = state["request"]
        messages = [*request.messages, *state["pending_turns"]]
        started = time.perf_counter()

        try:
            response = await asyncio.wait_for(
                self.model_client.complete(request.system_prompt, messages, state["tool_specs"]),
                timeout=self.config.model_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error("Model call timed out", session_id=state["session_id"], timeout=self.config.model_timeout)
            raise RemoteTimeoutError("Chat model", self.config.model_timeout) from e

        chat_logger.log_model_call(
            persona=self.persona.name,
            session_id=state["session_id"],
            message_count=len(messages),
            tool_count=len(state["tool_specs"]),
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            usage=response.usage,
            tool_calls=len(response.tool_calls),
        )
        return {"response": response}

    async def tool_execution_node(self, state: DispatchState) -> Dict[str, Any]:
        """Run every tool call of the last response and record the tool turns"""

        rounds = state["rounds"]
        if rounds >= self.config.max_tool_depth:
            logger.error("Tool loop exceeded", session_id=state["session_id"], max_depth=self.config.max_tool_depth)
            raise ToolLoopExceededError(self.config.max_tool_depth)

        response = state["response"]
        exposed = {spec.name for spec in state["tool_specs"]}
        turns = [Turn.assistant(response.text, response.tool_calls)]

        for call in response.tool_calls:
            if call.name not in exposed:
                raise UnknownToolError(call.name)
            turns.append(await self.tool_executor.execute_tool(call, state["session_id"]))

        return {
            "pending_turns": [*state["pending_turns"], *turns],
            "rounds": rounds + 1,
        }

    def route_after_model(self, state: DispatchState) -> Literal["execute_tools", "done"]:
        """Loop while the model asks for tools"""

        response = state["response"]
        next_node = "execute_tools" if response is not None and response.wants_tools else "done"
        chat_logger.log_workflow_transition(
            session_id=state["session_id"],
            from_node="call_model",
            to_node=next_node,
            state_summary={"rounds": state["rounds"]},
        )
        return next_node

    async def dispatch(self, request: AssembledRequest, session_id: Optional[str] = None) -> DispatchState:
        """Run the dispatch loop until the model stops requesting tools"""

        initial_state: DispatchState = {
            "session_id": session_id,
            "request": request,
            "tool_specs": self.tool_registry.get_available_tools(self.persona.tool_names),
            "pending_turns": [],
            "response": None,
            "rounds": 0,
        }
        return await self.workflow.ainvoke(
            initial_state,
            config={"recursion_limit": 2 * self.config.max_tool_depth + 4},
        )

    async def chat(
        self,
        session_id: str,
        message_text: str,
        attachments: Optional[List[ContentPart]] = None,
        schema: Optional[Type[BaseModel]] = None,
    ) -> Union[str, BaseModel]:
        """Answer one user message within a session"""

        new_turn = Turn.user(message_text, attachments)
        if not new_turn.parts:
            raise ValueError("Message must contain text or attachments")

        async with self.session_store.session_lock(session_id):
            with structlog.contextvars.bound_contextvars(session_id=session_id, persona=self.persona.name):
                session = await self.session_store.get_or_create(session_id, owned=True)
                context = await self.retriever.augment(new_turn.text, self.persona.retrieval_top_k)
                request = self.assembler.build(session, new_turn, context, self.persona, schema)

                final_state = await self.dispatch(request, session_id)
                response = final_state["response"]
                result = self.normalizer.normalize(response.text, schema)

                # Nothing is stored unless the whole request succeeded
                turns = [new_turn, *final_state["pending_turns"], Turn.assistant(response.text.strip())]
                await self.session_store.append_many(session_id, turns)

                chat_logger.log_context_update(
                    session_id=session_id,
                    context_type="history",
                    action="append",
                    details={"turns": len(turns), "snippets": len(context.snippets)},
                )

        return result

    async def chat_for_report(
        self,
        session_id: str,
        message_text: str,
        attachments: Optional[List[ContentPart]] = None,
    ) -> Report:
        """Answer with a structured study report"""

        return await self.chat(session_id, message_text, attachments, schema=Report)

    async def chat_with_message(self, turn: Turn) -> str:
        """One-shot multimodal call without session memory or tools"""

        request = AssembledRequest(system_prompt=self.persona.instruction, messages=[turn])
        try:
            response = await asyncio.wait_for(
                self.model_client.complete(request.system_prompt, request.messages, None),
                timeout=self.config.model_timeout,
            )
        except asyncio.TimeoutError as e:
            raise RemoteTimeoutError("Chat model", self.config.model_timeout) from e

        return self.normalizer.normalize(response.text)
