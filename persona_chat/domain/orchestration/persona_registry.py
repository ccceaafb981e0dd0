from typing import Dict, List, Optional
import structlog

from persona_chat.domain.context.context_retriever import ContextRetriever
from persona_chat.domain.context.memory.knowledge_index import KnowledgeIndex
from persona_chat.domain.context.memory.session_store import SessionStore
from persona_chat.domain.context.prompt_assembler import PromptAssembler
from persona_chat.domain.errors import UnknownPersonaError
from persona_chat.domain.models.chat_state import PersonaConfig
from persona_chat.domain.orchestration.core.chat_engine import ChatEngine, EngineConfig
from persona_chat.domain.tool.tool_registry import ToolRegistry
from persona_chat.infrastructure.config.settings import Settings
from persona_chat.infrastructure.llm.chat_model import ChatModelClient

logger = structlog.get_logger(__name__)


class PersonaRegistry:
    """One chat engine per persona, looked up by name"""

    def __init__(self, session_store: Optional[SessionStore] = None):
        self.engines: Dict[str, ChatEngine] = {}
        self.session_store = session_store or SessionStore()

    def register(self, engine: ChatEngine) -> None:
        name = engine.persona.name
        if name in self.engines:
            raise ValueError(f"Persona '{name}' is already registered")
        self.engines[name] = engine
        logger.info("Registered persona", persona=name)

    def get(self, name: str) -> ChatEngine:
        engine = self.engines.get(name)
        if engine is None:
            raise UnknownPersonaError(name)
        return engine

    def names(self) -> List[str]:
        return list(self.engines.keys())


def build_registry(
    settings: Settings,
    model_client: ChatModelClient,
    tool_registry: Optional[ToolRegistry] = None,
    index: Optional[KnowledgeIndex] = None,
    session_store: Optional[SessionStore] = None,
) -> PersonaRegistry:
    """Create an engine for every configured persona sharing one store and tool set"""

    store = session_store or SessionStore(ttl_seconds=settings.session_ttl_seconds)
    tools = tool_registry or ToolRegistry()
    retriever = ContextRetriever(index, timeout=settings.retrieval_timeout_seconds)
    assembler = PromptAssembler(max_input_chars=settings.max_input_chars)

    registry = PersonaRegistry(store)
    for name, instruction in settings.personas.items():
        persona = PersonaConfig(
            name=name,
            instruction=instruction,
            max_history_turns=settings.max_history_turns,
            retrieval_top_k=settings.retrieval_top_k,
        )
        config = EngineConfig(
            persona=persona,
            max_tool_depth=settings.max_tool_depth,
            model_timeout=settings.model_timeout_seconds,
            tool_timeout=settings.tool_timeout_seconds,
        )
        registry.register(ChatEngine(
            config,
            model_client,
            session_store=store,
            tool_registry=tools,
            retriever=retriever,
            assembler=assembler,
        ))

    return registry
