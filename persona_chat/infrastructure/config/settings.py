from functools import lru_cache
from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LOVE_ADVISOR_PROMPT = (
    "You are a campus relationship advisor. Help the user with questions about "
    "romantic relationships during their studies, including but not limited to: "
    "getting together, daily life as a couple, arguments, the ambiguous stage "
    "before dating and the honeymoon phase."
)

CODE_HELPER_PROMPT = (
    "You are a programming learning assistant. Help the user plan how to learn "
    "programming, answer questions about programming concepts, and prepare for "
    "technical interviews. Keep answers concise and practical, and ask for "
    "details when the user's goal is unclear."
)


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables / .env file.

    Every field can be set with the ``PERSONA_CHAT_`` prefix, e.g.
    ``PERSONA_CHAT_MAX_TOOL_DEPTH=3``. ``personas`` takes a JSON object
    mapping persona name to its instruction.
    """

    model_config = SettingsConfigDict(
        env_prefix="PERSONA_CHAT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_env: str = Field("development", description="Deployment environment name.")
    log_level: str = Field("INFO", description="Root log level.")
    log_format: str = Field("json", description="'json' or 'console'.")

    google_api_key: Optional[str] = Field(None, description="API key for the Gemini provider.")
    gemini_model: str = Field("gemini-2.0-flash", description="Chat model name.")
    temperature: float = Field(0.3, ge=0.0, le=2.0)
    top_p: float = Field(0.9, gt=0.0, le=1.0)

    max_input_chars: int = Field(24000, gt=0, description="Input budget for one assembled prompt.")
    max_history_turns: int = Field(20, ge=0, description="History turns sent with each request.")
    max_tool_depth: int = Field(5, ge=0, description="Tool round-trips allowed per request.")
    retrieval_top_k: int = Field(3, ge=0, description="Snippets injected per request, 0 disables retrieval.")

    model_timeout_seconds: float = Field(60.0, gt=0)
    tool_timeout_seconds: float = Field(30.0, gt=0)
    retrieval_timeout_seconds: float = Field(2.0, gt=0)

    session_ttl_seconds: float = Field(3600.0, gt=0, description="Idle time before a session is evicted.")
    eviction_interval_seconds: float = Field(60.0, gt=0)

    knowledge_dir: Optional[str] = Field(None, description="Directory of .md/.txt files for retrieval.")
    interview_search_url: Optional[str] = Field(None, description="Backend for the interview question tool, unset disables it.")

    personas: Dict[str, str] = Field(
        default_factory=lambda: {
            "love_advisor": LOVE_ADVISOR_PROMPT,
            "code_helper": CODE_HELPER_PROMPT,
        },
        description="Persona name to system instruction.",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
