# Parameter validation against each tool's JSON Schema
from typing import Any, Mapping

import jsonschema

from persona_chat.domain.errors import InvalidArgumentsError
from persona_chat.domain.models.chat_state import ToolSpec


class ToolParameterValidator:
    @staticmethod
    def validate_tool_call(tool: ToolSpec, parameters: Mapping[str, Any]) -> None:
        if not isinstance(parameters, Mapping):
            raise InvalidArgumentsError(tool.name, "arguments must be a JSON object")

        try:
            jsonschema.validate(dict(parameters), tool.parameters)
        except jsonschema.ValidationError as e:
            location = "/".join(str(p) for p in e.absolute_path)
            reason = f"{location}: {e.message}" if location else e.message
            raise InvalidArgumentsError(tool.name, reason) from e
        except jsonschema.SchemaError as e:
            raise InvalidArgumentsError(tool.name, f"tool schema is invalid: {e.message}") from e
