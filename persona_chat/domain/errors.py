from typing import Optional


class ChatEngineError(Exception):
    """Base error for failures surfaced to the caller"""

    kind: str = "chat_engine_error"

    def __init__(self, cause: str):
        super().__init__(cause)
        self.cause = cause

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.cause}


class PromptTooLargeError(ChatEngineError):
    """Assembled prompt exceeds the model input budget even after truncation"""

    kind = "prompt_too_large"

    def __init__(self, size: int, budget: int):
        super().__init__(
            f"Assembled prompt is {size} characters, budget is {budget}; "
            "shorten the message or the retrieved context"
        )
        self.size = size
        self.budget = budget


class UnknownToolError(ChatEngineError):
    """Model requested a tool that is not registered"""

    kind = "unknown_tool"

    def __init__(self, tool_name: str):
        super().__init__(f"Model requested unknown tool '{tool_name}'")
        self.tool_name = tool_name


class InvalidArgumentsError(ChatEngineError):
    """Tool call arguments do not match the tool's parameter schema"""

    kind = "invalid_arguments"

    def __init__(self, tool_name: str, reason: str):
        super().__init__(f"Invalid arguments for tool '{tool_name}': {reason}")
        self.tool_name = tool_name
        self.reason = reason


class ToolLoopExceededError(ChatEngineError):
    """Model kept requesting tools past the configured depth"""

    kind = "tool_loop_exceeded"

    def __init__(self, max_depth: int):
        super().__init__(f"Model requested tools beyond the maximum depth of {max_depth}")
        self.max_depth = max_depth


class SchemaValidationError(ChatEngineError):
    """Model reply could not be parsed into the requested structure"""

    kind = "schema_validation_failed"

    def __init__(self, schema_name: str, reason: str):
        super().__init__(f"Reply does not match schema '{schema_name}': {reason}")
        self.schema_name = schema_name
        self.reason = reason


class RemoteTimeoutError(ChatEngineError):
    """A remote call (model or tool) did not finish in time"""

    kind = "remote_timeout"

    def __init__(self, target: str, timeout: Optional[float] = None):
        if timeout is None:
            super().__init__(f"{target} timed out")
        else:
            super().__init__(f"{target} timed out after {timeout}s")
        self.target = target
        self.timeout = timeout


class RemoteUnavailableError(ChatEngineError):
    """The remote model could not be reached or returned an error"""

    kind = "remote_unavailable"


class UnknownPersonaError(ChatEngineError, KeyError):
    """No engine is registered under the requested persona name"""

    kind = "unknown_persona"

    def __init__(self, persona: str):
        ChatEngineError.__init__(self, f"No persona registered as '{persona}'")
        self.persona = persona

    def __str__(self) -> str:
        return self.cause
