import structlog
import logging
import sys
from typing import Dict, Any, Optional

from persona_chat import __version__

# Third-party loggers that are chatty at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "langchain_google_genai")


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "persona-chat",
    environment: str = "development",
    version: str = __version__,
) -> None:
    """Route structlog events through stdlib logging on stdout.

    Safe to call more than once: the stdout handler is installed a single
    time and the structlog pipeline is replaced on every call.
    """

    level = getattr(logging, log_level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)
    if not any(getattr(handler, "persona_chat", False) for handler in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(message)s"))
        handler.persona_chat = True
        root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            ServiceContext(service_name, environment, version),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _renderer(log_format),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _renderer(log_format: str):
    if log_format == "json":
        # Persona replies are often Chinese, keep them readable
        return structlog.processors.JSONRenderer(ensure_ascii=False)
    return structlog.dev.ConsoleRenderer()


class ServiceContext:
    """Stamp every entry with the service identity"""

    def __init__(self, service: str, environment: str, version: str):
        self.fields = {"service": service, "environment": environment, "version": version}

    def __call__(self, logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        for key, value in self.fields.items():
            event_dict.setdefault(key, value)
        return event_dict


class ChatLogger:
    """Structured events emitted by the chat engine"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_model_call(
        self,
        persona: str,
        session_id: Optional[str],
        message_count: int,
        tool_count: int,
        duration_ms: Optional[float] = None,
        usage: Optional[Dict[str, Any]] = None,
        tool_calls: int = 0
    ):
        """Log a round-trip to the remote model"""

        self.logger.info(
            "model_call",
            persona=persona,
            session_id=session_id,
            message_count=message_count,
            tool_count=tool_count,
            duration_ms=duration_ms,
            usage=usage or {},
            tool_calls=tool_calls
        )

    def log_tool_execution(
        self,
        tool_name: str,
        session_id: Optional[str],
        input_data: Dict[str, Any],
        output_data: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[float] = None,
        success: bool = True,
        error: Optional[str] = None
    ):
        """Log tool execution events"""

        log = self.logger.info if success else self.logger.warning
        log(
            "tool_execution",
            tool_name=tool_name,
            session_id=session_id,
            input_data=input_data,
            output_data=output_data,
            duration_ms=duration_ms,
            success=success,
            error=error
        )

    def log_workflow_transition(
        self,
        session_id: Optional[str],
        from_node: str,
        to_node: str,
        condition: Optional[str] = None,
        state_summary: Optional[Dict[str, Any]] = None
    ):
        """Log dispatch state transitions"""

        self.logger.debug(
            "workflow_transition",
            session_id=session_id,
            from_node=from_node,
            to_node=to_node,
            condition=condition,
            state_summary=state_summary or {}
        )

    def log_context_update(
        self,
        session_id: str,
        context_type: str,
        action: str,
        details: Optional[Dict[str, Any]] = None
    ):
        """Log context updates"""

        self.logger.info(
            "context_update",
            session_id=session_id,
            context_type=context_type,
            action=action,
            details=details or {}
        )


# Global logger instance
chat_logger = ChatLogger("persona_chat")
