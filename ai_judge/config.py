"""
Runtime configuration read from the environment (and a local .env file).

The settings object is built once at startup and handed to the store,
the cache, the generator factory and the judgment protocol.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

PROVIDERS = ("gemini", "claude", "openai", "groq", "openrouter")
RETRY_PROMPT_POLICIES = ("corrective", "replay")


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class Settings:
    # Generation backend
    llm_provider: str = "gemini"
    gemini_api_key: Optional[str] = None
    gemini_models: List[str] = field(
        default_factory=lambda: ["gemini-2.5-flash", "gemini-flash-latest", "gemini-pro-latest"]
    )
    anthropic_api_key: Optional[str] = None
    anthropic_model: str = "claude-3-5-sonnet-20241022"
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-3.5-turbo"
    groq_api_key: Optional[str] = None
    groq_model: str = "llama-3.1-70b-versatile"
    openrouter_api_key: Optional[str] = None
    openrouter_models: List[str] = field(
        default_factory=lambda: ["mistralai/mistral-small-3.2-24b-instruct:free"]
    )
    llm_timeout: float = 60.0
    llm_temperature: float = 0.3
    llm_max_tokens: int = 4096

    # Retry policy for structured generation
    llm_max_attempts: int = 2
    llm_retry_backoff: float = 1.0
    llm_retry_prompt: str = "corrective"

    # Storage and cache
    database_url: str = "sqlite:///./data.db"
    redis_url: Optional[str] = None
    cache_ttl_seconds: int = 3600

    # Case rules
    max_arguments: int = 5

    # HTTP
    cors_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:3000", "http://127.0.0.1:5173"]
    )
    upload_dir: str = "./uploads"
    max_file_size: int = 10 * 1024 * 1024

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls()
        return cls(
            llm_provider=os.getenv("LLM_PROVIDER", defaults.llm_provider).lower(),
            gemini_api_key=os.getenv("GEMINI_API_KEY"),
            gemini_models=_env_list("GEMINI_MODELS", defaults.gemini_models),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            anthropic_model=os.getenv("ANTHROPIC_MODEL", defaults.anthropic_model),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_model=os.getenv("OPENAI_MODEL", defaults.openai_model),
            groq_api_key=os.getenv("GROQ_API_KEY"),
            groq_model=os.getenv("GROQ_MODEL", defaults.groq_model),
            openrouter_api_key=os.getenv("OPENROUTER_API_KEY"),
            openrouter_models=_env_list("OPENROUTER_MODELS", defaults.openrouter_models),
            llm_timeout=float(os.getenv("LLM_TIMEOUT", defaults.llm_timeout)),
            llm_temperature=float(os.getenv("LLM_TEMPERATURE", defaults.llm_temperature)),
            llm_max_tokens=int(os.getenv("LLM_MAX_TOKENS", defaults.llm_max_tokens)),
            llm_max_attempts=int(os.getenv("LLM_MAX_ATTEMPTS", defaults.llm_max_attempts)),
            llm_retry_backoff=float(os.getenv("LLM_RETRY_BACKOFF", defaults.llm_retry_backoff)),
            llm_retry_prompt=os.getenv("LLM_RETRY_PROMPT", defaults.llm_retry_prompt).lower(),
            database_url=os.getenv("DATABASE_URL", defaults.database_url),
            redis_url=os.getenv("REDIS_URL") or None,
            cache_ttl_seconds=int(os.getenv("CACHE_TTL_SECONDS", defaults.cache_ttl_seconds)),
            max_arguments=int(os.getenv("MAX_ARGUMENTS", defaults.max_arguments)),
            cors_origins=_env_list("CORS_ORIGINS", defaults.cors_origins),
            upload_dir=os.getenv("UPLOAD_DIR", defaults.upload_dir),
            max_file_size=int(os.getenv("MAX_FILE_SIZE", defaults.max_file_size)),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
        )

    def validate(self) -> List[str]:
        """Return a list of configuration warnings."""
        warnings = []
        if self.llm_provider not in PROVIDERS:
            warnings.append(f"LLM_PROVIDER={self.llm_provider} is not one of {', '.join(PROVIDERS)}")
        if self.llm_retry_prompt not in RETRY_PROMPT_POLICIES:
            warnings.append(f"LLM_RETRY_PROMPT={self.llm_retry_prompt} is not one of {', '.join(RETRY_PROMPT_POLICIES)}")
        if self.llm_max_attempts < 1:
            warnings.append("LLM_MAX_ATTEMPTS must be at least 1")
        if not self.redis_url:
            warnings.append("REDIS_URL not set - running without judgment cache")
        return warnings
