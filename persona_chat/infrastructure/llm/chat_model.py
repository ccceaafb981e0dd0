from typing import Any, Dict, List, Optional, Protocol, Sequence
import asyncio
import uuid

import structlog
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from persona_chat.domain.errors import ChatEngineError, RemoteTimeoutError, RemoteUnavailableError
from persona_chat.domain.models.chat_state import (
    ImagePart, ModelResponse, Role, TextPart, ToolCall, ToolSpec, Turn
)
from persona_chat.infrastructure.config.settings import Settings

logger = structlog.get_logger(__name__)


class ChatModelClient(Protocol):
    """Remote chat-completion capability"""

    async def complete(
        self,
        system_prompt: str,
        messages: Sequence[Turn],
        tool_specs: Optional[Sequence[ToolSpec]] = None,
    ) -> ModelResponse:
        ...


class LangChainChatModel:
    """Adapts any LangChain chat model to ChatModelClient"""

    def __init__(self, model: BaseChatModel):
        self.model = model

    async def complete(
        self,
        system_prompt: str,
        messages: Sequence[Turn],
        tool_specs: Optional[Sequence[ToolSpec]] = None,
    ) -> ModelResponse:
        runnable = self.model
        if tool_specs:
            runnable = self.model.bind_tools([spec.to_function_schema() for spec in tool_specs])

        lc_messages = to_langchain_messages(system_prompt, messages)
        try:
            reply = await runnable.ainvoke(lc_messages)
        except (asyncio.TimeoutError, TimeoutError) as e:
            raise RemoteTimeoutError("Chat model") from e
        except ChatEngineError:
            raise
        except Exception as e:
            logger.error("Chat model call failed", error=str(e), error_type=type(e).__name__)
            raise RemoteUnavailableError(f"Chat model call failed: {e}") from e

        return from_langchain_message(reply)


def to_langchain_messages(system_prompt: str, turns: Sequence[Turn]) -> List[BaseMessage]:
    """Convert turns to LangChain messages, keeping content part order"""

    messages: List[BaseMessage] = [SystemMessage(content=system_prompt)]
    for turn in turns:
        if turn.role == Role.USER:
            messages.append(HumanMessage(content=_user_content(turn)))
        elif turn.role == Role.ASSISTANT:
            messages.append(AIMessage(
                content=turn.text,
                tool_calls=[
                    {"name": call.name, "args": dict(call.arguments), "id": call.id, "type": "tool_call"}
                    for call in turn.tool_calls
                ],
            ))
        else:
            messages.append(ToolMessage(
                content=turn.text,
                tool_call_id=turn.tool_call_id or "",
                name=turn.tool_name,
                status="error" if turn.is_error else "success",
            ))
    return messages


def from_langchain_message(message: BaseMessage) -> ModelResponse:
    """Extract text, tool calls and usage from a LangChain reply"""

    tool_calls = [
        ToolCall(
            id=call.get("id") or f"call_{uuid.uuid4().hex[:12]}",
            name=call["name"],
            arguments=call.get("args") or {},
        )
        for call in getattr(message, "tool_calls", None) or []
    ]
    usage = getattr(message, "usage_metadata", None) or {}
    return ModelResponse(text=_message_text(message.content), tool_calls=tool_calls, usage=dict(usage))


def _user_content(turn: Turn):
    if not turn.has_images:
        return turn.text

    blocks: List[Dict[str, Any]] = []
    for part in turn.parts:
        if isinstance(part, TextPart):
            blocks.append({"type": "text", "text": part.text})
        elif isinstance(part, ImagePart):
            blocks.append({"type": "image_url", "image_url": {"url": part.url}})
    return blocks


def _message_text(content: Any) -> str:
    if isinstance(content, str):
        return content

    texts = []
    for block in content or []:
        if isinstance(block, str):
            texts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            texts.append(block.get("text", ""))
    return "".join(texts)


def create_chat_model(settings: Settings) -> LangChainChatModel:
    """Default provider: Gemini through langchain-google-genai"""

    if not settings.google_api_key:
        raise RuntimeError("GOOGLE_API_KEY not set. Please configure PERSONA_CHAT_GOOGLE_API_KEY or .env")

    llm = ChatGoogleGenerativeAI(
        model=settings.gemini_model,
        google_api_key=settings.google_api_key,
        temperature=settings.temperature,
        top_p=settings.top_p,
    )
    return LangChainChatModel(llm)
