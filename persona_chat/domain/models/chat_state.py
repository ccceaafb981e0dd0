from typing import Dict, Any, List, Optional, Tuple, Union, Callable, Annotated, Literal
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, timezone
from enum import Enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Author of a turn"""
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class TextPart(BaseModel):
    """Plain text content"""
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ImagePart(BaseModel):
    """Reference to an image by URI (http(s) or data URI)"""
    model_config = ConfigDict(frozen=True)

    type: Literal["image"] = "image"
    url: str = Field(description="Image URI")
    mime_type: Optional[str] = Field(None, description="Optional MIME type hint")


ContentPart = Annotated[Union[TextPart, ImagePart], Field(discriminator="type")]


class ToolCall(BaseModel):
    """A tool invocation requested by the model"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Provider-assigned call identifier")
    name: str = Field(description="Registered tool name")
    arguments: Dict[str, Any] = Field(default_factory=dict)


class Turn(BaseModel):
    """One immutable message within a session"""
    model_config = ConfigDict(frozen=True)

    role: Role
    parts: Tuple[ContentPart, ...] = Field(default_factory=tuple)
    tool_calls: Tuple[ToolCall, ...] = Field(default_factory=tuple, description="Tool calls requested by an assistant turn")
    tool_call_id: Optional[str] = Field(None, description="Call answered by a tool turn")
    tool_name: Optional[str] = Field(None, description="Tool that produced a tool turn")
    is_error: bool = Field(default=False, description="Tool turn carries a failure")
    created_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def user(cls, text: str, attachments: Optional[List[ContentPart]] = None) -> "Turn":
        parts: List[ContentPart] = []
        if text:
            parts.append(TextPart(text=text))
        parts.extend(attachments or [])
        return cls(role=Role.USER, parts=tuple(parts))

    @classmethod
    def assistant(cls, text: str, tool_calls: Optional[List[ToolCall]] = None) -> "Turn":
        parts = (TextPart(text=text),) if text else ()
        return cls(role=Role.ASSISTANT, parts=parts, tool_calls=tuple(tool_calls or ()))

    @classmethod
    def tool(cls, call: ToolCall, result: str, is_error: bool = False) -> "Turn":
        return cls(
            role=Role.TOOL,
            parts=(TextPart(text=result),),
            tool_call_id=call.id,
            tool_name=call.name,
            is_error=is_error,
        )

    @property
    def text(self) -> str:
        """Concatenated text parts"""
        return "\n".join(part.text for part in self.parts if isinstance(part, TextPart))

    @property
    def has_images(self) -> bool:
        return any(isinstance(part, ImagePart) for part in self.parts)


class Session(BaseModel):
    """Ordered conversation owned by the session store"""
    id: str = Field(description="Opaque session identifier")
    turns: List[Turn] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    last_active: datetime = Field(default_factory=utcnow)


class ToolSpec(BaseModel):
    """A capability the model may ask the engine to invoke"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str = ""
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="JSON Schema for the arguments object",
    )
    handler: Callable[..., Any] = Field(description="Sync or async callable taking the arguments mapping", exclude=True)
    timeout: Optional[float] = Field(None, description="Overrides the engine tool timeout")

    def to_function_schema(self) -> Dict[str, Any]:
        """OpenAI-style function declaration understood by LangChain bind_tools"""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class RetrievedSnippet(BaseModel):
    """One reference snippet from the knowledge index"""
    model_config = ConfigDict(frozen=True)

    source_id: str
    text: str
    score: float = 0.0


class RetrievedContext(BaseModel):
    """Snippets retrieved for a single request, never persisted"""
    model_config = ConfigDict(frozen=True)

    snippets: Tuple[RetrievedSnippet, ...] = Field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not self.snippets


class PersonaConfig(BaseModel):
    """Per-persona prompt and context settings"""
    name: str = Field(description="Registry name of the persona")
    instruction: str = Field(description="System instruction sent with every request")
    max_history_turns: int = Field(default=20, ge=0)
    retrieval_top_k: int = Field(default=3, ge=0)
    tool_names: Optional[List[str]] = Field(None, description="Tools exposed to this persona, None for all")


class AssembledRequest(BaseModel):
    """Outbound request for the remote model"""
    system_prompt: str
    messages: List[Turn] = Field(default_factory=list)
    size: int = Field(default=0, description="Measured size in characters")


class ModelResponse(BaseModel):
    """Reply from the remote model: text, tool calls, or both"""
    text: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    usage: Dict[str, Any] = Field(default_factory=dict)

    @property
    def wants_tools(self) -> bool:
        return bool(self.tool_calls)


class Report(BaseModel):
    """Study report produced by the code helper persona"""
    name: str = Field(description="Name of the user the report is for")
    suggestion_list: List[str] = Field(default_factory=list, description="Ordered learning suggestions")
