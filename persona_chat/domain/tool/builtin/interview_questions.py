from typing import Any, Dict, List, Mapping, Optional

import httpx

from persona_chat.domain.models.chat_state import ToolSpec

TOOL_NAME = "interview_question_search"

PARAMETERS: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "keyword": {"type": "string", "minLength": 1, "description": "Topic to search, e.g. 'computer networks'"},
        "limit": {"type": "integer", "minimum": 1, "maximum": 20, "default": 5},
    },
    "required": ["keyword"],
    "additionalProperties": False,
}


def _simplify_results(raw: Mapping[str, Any], limit: int) -> List[Dict[str, Any]]:
    results = raw.get("results") or raw.get("items") or []
    simplified = []
    for item in results[:limit]:
        simplified.append({
            "title": item.get("title"),
            "url": item.get("url") or item.get("link"),
        })
    return simplified


def build_interview_question_tool(
    search_url: str,
    timeout: float = 10.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ToolSpec:
    """Tool that looks up common interview questions for a topic"""

    async def search(arguments: Mapping[str, Any]) -> Dict[str, Any]:
        keyword = arguments["keyword"]
        limit = int(arguments.get("limit", 5))

        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            try:
                response = await client.get(search_url, params={"q": keyword})
                response.raise_for_status()
                data = response.json()
            except httpx.TimeoutException as exc:
                raise TimeoutError(f"Interview question search timed out: {exc}") from exc
            except httpx.HTTPError as exc:
                raise RuntimeError(f"Interview question search failed: {exc}") from exc

        return {"keyword": keyword, "questions": _simplify_results(data, limit)}

    return ToolSpec(
        name=TOOL_NAME,
        description=(
            "Search common programming interview questions for a topic. "
            "Use it when the user asks which interview questions to prepare."
        ),
        parameters=PARAMETERS,
        handler=search,
    )
