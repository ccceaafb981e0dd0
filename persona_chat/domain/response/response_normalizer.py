from typing import Any, Optional, Type, Union
import json

from pydantic import BaseModel, ValidationError

from persona_chat.domain.errors import SchemaValidationError

_decoder = json.JSONDecoder()


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, with or without a language tag"""

    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped

    stripped = stripped[3:]
    first_newline = stripped.find("\n")
    if first_newline != -1 and " " not in stripped[:first_newline].strip():
        # language tag such as ```json
        stripped = stripped[first_newline + 1:]
    stripped = stripped.rstrip()
    if stripped.endswith("```"):
        stripped = stripped[:-3]
    return stripped.strip()


def extract_json_object(text: str) -> Any:
    """Decode the whole text as JSON, else the first JSON object embedded in it"""

    cleaned = strip_code_fences(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    start = cleaned.find("{")
    while start != -1:
        try:
            value, _ = _decoder.raw_decode(cleaned, start)
            return value
        except json.JSONDecodeError:
            start = cleaned.find("{", start + 1)

    raise ValueError("no JSON object found in reply")


class ResponseNormalizer:
    """Turns raw model text into plain text or a validated structured result"""

    def normalize(
        self,
        raw_response: str,
        expected_schema: Optional[Type[BaseModel]] = None,
    ) -> Union[str, BaseModel]:
        text = (raw_response or "").strip()
        if expected_schema is None:
            return text

        schema_name = expected_schema.__name__
        if not text:
            raise SchemaValidationError(schema_name, "reply is empty")

        try:
            payload = extract_json_object(text)
        except ValueError as e:
            raise SchemaValidationError(schema_name, str(e)) from e

        if not isinstance(payload, dict):
            raise SchemaValidationError(schema_name, "reply is not a JSON object")

        try:
            return expected_schema.model_validate(payload)
        except ValidationError as e:
            errors = "; ".join(
                f"{'.'.join(str(loc) for loc in err['loc']) or '<root>'}: {err['msg']}"
                for err in e.errors()
            )
            raise SchemaValidationError(schema_name, errors) from e
