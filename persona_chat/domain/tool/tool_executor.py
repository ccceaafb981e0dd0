# Execution with timeouts & monitoring
from typing import Any, Dict, Optional
import asyncio
import inspect
import json
import time

from persona_chat.domain.errors import RemoteTimeoutError
from persona_chat.domain.models.chat_state import ToolCall, Turn
from persona_chat.domain.tool.tool_registry import ToolRegistry
from persona_chat.domain.tool.tool_validator import ToolParameterValidator
from persona_chat.infrastructure.observability.logging import chat_logger


class ToolExecutor:
    """Runs requested tool calls and turns their outcome into tool turns"""

    def __init__(self, registry: ToolRegistry, default_timeout: float = 30.0):
        self.registry = registry
        self.default_timeout = default_timeout
        self.validator = ToolParameterValidator()

    async def execute_tool(self, call: ToolCall, session_id: Optional[str] = None) -> Turn:
        """Execute one call; handler failures become an error turn, timeouts raise"""

        # Unknown tools and bad arguments propagate to the caller
        tool = self.registry.get_tool(call.name)
        self.validator.validate_tool_call(tool, call.arguments)

        timeout = tool.timeout if tool.timeout is not None else self.default_timeout
        started = time.perf_counter()

        try:
            result = await asyncio.wait_for(self._invoke(tool.handler, dict(call.arguments)), timeout=timeout)
        except (asyncio.TimeoutError, TimeoutError) as e:
            chat_logger.log_tool_execution(
                tool_name=call.name,
                session_id=session_id,
                input_data=call.arguments,
                duration_ms=_elapsed_ms(started),
                success=False,
                error="timeout",
            )
            raise RemoteTimeoutError(f"Tool '{call.name}'", timeout) from e
        except Exception as e:
            chat_logger.log_tool_execution(
                tool_name=call.name,
                session_id=session_id,
                input_data=call.arguments,
                duration_ms=_elapsed_ms(started),
                success=False,
                error=str(e),
            )
            return Turn.tool(call, f"Error: {type(e).__name__}: {e}", is_error=True)

        output = _serialize_result(result)
        chat_logger.log_tool_execution(
            tool_name=call.name,
            session_id=session_id,
            input_data=call.arguments,
            output_data={"length": len(output)},
            duration_ms=_elapsed_ms(started),
        )
        return Turn.tool(call, output)

    @staticmethod
    async def _invoke(handler, arguments: Dict[str, Any]) -> Any:
        if inspect.iscoroutinefunction(handler):
            return await handler(arguments)

        result = await asyncio.to_thread(handler, arguments)
        if inspect.isawaitable(result):
            result = await result
        return result


def _serialize_result(result: Any) -> str:
    if isinstance(result, str):
        return result
    if result is None:
        return ""
    return json.dumps(result, ensure_ascii=False, default=str)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
