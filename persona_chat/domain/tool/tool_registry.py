from typing import Dict, List, Any, Optional, Callable

from persona_chat.domain.errors import UnknownToolError
from persona_chat.domain.models.chat_state import ToolSpec


class ToolRegistry:
    """Registry of tools the model may call, read-only once chats start"""

    def __init__(self):
        self.tools: Dict[str, ToolSpec] = {}

    def register_tool(self, spec: ToolSpec) -> None:
        """Register a new tool"""

        if spec.name in self.tools:
            raise ValueError(f"Tool '{spec.name}' is already registered")
        self.tools[spec.name] = spec

    def tool(
        self,
        name: Optional[str] = None,
        description: str = "",
        parameters: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator form of register_tool"""

        def decorator(handler: Callable[..., Any]) -> Callable[..., Any]:
            spec = ToolSpec(
                name=name or handler.__name__,
                description=description or (handler.__doc__ or "").strip(),
                parameters=parameters or {"type": "object", "properties": {}},
                handler=handler,
                timeout=timeout,
            )
            self.register_tool(spec)
            return handler

        return decorator

    def get_tool(self, name: str) -> ToolSpec:
        """Look up a tool by name"""

        spec = self.tools.get(name)
        if spec is None:
            raise UnknownToolError(name)
        return spec

    def get_available_tools(self, names: Optional[List[str]] = None) -> List[ToolSpec]:
        """All tools, or the named subset in registration order"""

        if names is None:
            return list(self.tools.values())
        wanted = set(names)
        return [spec for spec in self.tools.values() if spec.name in wanted]

    def __contains__(self, name: str) -> bool:
        return name in self.tools

    def __len__(self) -> int:
        return len(self.tools)
