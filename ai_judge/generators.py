"""
Text generation backends
========================

Every backend implements ``TextGenerator.generate(system_prompt, user_prompt)``
and talks to its provider's HTTP API with ``requests``. Backends that offer
several models try them in order and fall through to the next one only on
capacity errors (rate limit, overload, quota).

``StructuredGeneration`` wraps a backend with the retry policy used for all
JSON-producing calls.
"""

import logging
import time
from typing import Callable, List, Optional, TypeVar

import requests

from .config import Settings
from .errors import ConfigurationError, GenerationFailedError
from .validation import ResponseValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

CAPACITY_STATUS_CODES = (429, 503, 529)
CAPACITY_MARKERS = ("overloaded", "quota", "rate limit", "capacity")


class GeneratorError(Exception):
    """The backend call failed (transport, HTTP status or malformed envelope)."""


class CapacityError(GeneratorError):
    """The backend is overloaded or out of quota; another model may work."""


def _post(url: str, headers: dict, payload: dict, timeout: float) -> dict:
    try:
        resp = requests.post(url, headers=headers, json=payload, timeout=timeout)
    except requests.Timeout as e:
        raise GeneratorError(f"Request timed out after {timeout}s") from e
    except requests.RequestException as e:
        raise GeneratorError(f"Request failed: {e}") from e

    if resp.status_code >= 400:
        body = resp.text[:300]
        message = f"HTTP {resp.status_code}: {body}"
        if resp.status_code in CAPACITY_STATUS_CODES or any(m in body.lower() for m in CAPACITY_MARKERS):
            raise CapacityError(message)
        raise GeneratorError(message)

    try:
        return resp.json()
    except ValueError as e:
        raise GeneratorError("Backend returned a non-JSON body") from e


class TextGenerator:
    """Base class: one provider, an ordered list of model names."""

    name = "base"

    def __init__(self, api_key: str, models: List[str], temperature: float = 0.3,
                 max_tokens: int = 4096, timeout: float = 60.0):
        if not models:
            raise ConfigurationError(f"No models configured for {self.name}")
        self.api_key = api_key
        self.models = list(models)
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

    def generate(self, system_prompt: str, user_prompt: str) -> str:
        last_error: Optional[Exception] = None
        for model in self.models:
            try:
                logger.debug(f"{self.name}: trying model {model}")
                text = self._generate_with(model, system_prompt, user_prompt)
                logger.debug(f"{self.name}: success with model {model}")
                return text
            except CapacityError as e:
                last_error = e
                logger.warning(f"{self.name}: model {model} unavailable: {e}")
                continue
        raise CapacityError(f"All {self.name} models failed. Last error: {last_error}")

    def _generate_with(self, model: str, system_prompt: str, user_prompt: str) -> str:
        raise NotImplementedError


class ChatCompletionsGenerator(TextGenerator):
    """OpenAI-compatible /chat/completions endpoint."""

    name = "chat-completions"
    base_url = ""

    def _generate_with(self, model: str, system_prompt: str, user_prompt: str) -> str:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        data = _post(f"{self.base_url}/chat/completions", headers, payload, self.timeout)
        try:
            return (data["choices"][0]["message"]["content"] or "").strip()
        except (KeyError, IndexError, TypeError) as e:
            raise GeneratorError(f"Unexpected {self.name} response shape") from e


class OpenRouterGenerator(ChatCompletionsGenerator):
    name = "openrouter"
    base_url = "https://openrouter.ai/api/v1"


class OpenAIGenerator(ChatCompletionsGenerator):
    name = "openai"
    base_url = "https://api.openai.com/v1"


class GroqGenerator(ChatCompletionsGenerator):
    name = "groq"
    base_url = "https://api.groq.com/openai/v1"


class AnthropicGenerator(TextGenerator):
    name = "claude"
    base_url = "https://api.anthropic.com/v1"
    api_version = "2023-06-01"

    def _generate_with(self, model: str, system_prompt: str, user_prompt: str) -> str:
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": self.api_version,
            "Content-Type": "application/json",
        }
        payload = {
            "model": model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        data = _post(f"{self.base_url}/messages", headers, payload, self.timeout)
        try:
            block = data["content"][0]
        except (KeyError, IndexError, TypeError) as e:
            raise GeneratorError("Unexpected Claude response shape") from e
        if block.get("type") != "text":
            raise GeneratorError("Unexpected response type from Claude")
        return block.get("text", "")


class GeminiGenerator(TextGenerator):
    name = "gemini"
    base_url = "https://generativelanguage.googleapis.com/v1beta"

    def _generate_with(self, model: str, system_prompt: str, user_prompt: str) -> str:
        headers = {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}
        payload = {
            "contents": [{"role": "user", "parts": [{"text": f"{system_prompt}\n\n{user_prompt}"}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_tokens,
            },
        }
        data = _post(f"{self.base_url}/models/{model}:generateContent", headers, payload, self.timeout)
        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as e:
            raise GeneratorError("Unexpected Gemini response shape") from e
        return "".join(p.get("text", "") for p in parts)


def build_generator(settings: Settings) -> TextGenerator:
    """Instantiate the backend selected by ``settings.llm_provider``."""
    provider = settings.llm_provider
    common = dict(
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        timeout=settings.llm_timeout,
    )
    if provider == "gemini":
        key, cls, models = settings.gemini_api_key, GeminiGenerator, settings.gemini_models
        env = "GEMINI_API_KEY"
    elif provider == "claude":
        key, cls, models = settings.anthropic_api_key, AnthropicGenerator, [settings.anthropic_model]
        env = "ANTHROPIC_API_KEY"
    elif provider == "openai":
        key, cls, models = settings.openai_api_key, OpenAIGenerator, [settings.openai_model]
        env = "OPENAI_API_KEY"
    elif provider == "groq":
        key, cls, models = settings.groq_api_key, GroqGenerator, [settings.groq_model]
        env = "GROQ_API_KEY"
    elif provider == "openrouter":
        key, cls, models = settings.openrouter_api_key, OpenRouterGenerator, settings.openrouter_models
        env = "OPENROUTER_API_KEY"
    else:
        raise ConfigurationError(f"Unsupported LLM provider: {provider}")

    if not key:
        raise ConfigurationError(f"Set {env} in .env file or environment (LLM_PROVIDER={provider})")
    logger.info(f"Using {cls.name} generator with models {', '.join(models)}")
    return cls(key, models, **common)


# -------------------------------
# Structured generation with retry
# -------------------------------

CORRECTIVE_SUFFIX = (
    "\n\nIMPORTANT: Your previous reply could not be used ({error}). "
    "Respond with a single valid JSON object in exactly the requested format "
    "and nothing else - no markdown, no commentary."
)


class StructuredGeneration:
    """Run a generation call and parse it, retrying per the configured policy.

    Transport failures and schema failures are both retried, up to
    ``max_attempts`` in total with a fixed back-off. With the ``corrective``
    prompt policy a retry after a schema failure appends an explicit
    JSON-only instruction; with ``replay`` the identical prompt is resent.
    """

    def __init__(self, generator: TextGenerator, max_attempts: int = 2, backoff: float = 1.0,
                 prompt_policy: str = "corrective", sleep: Callable[[float], None] = time.sleep):
        self.generator = generator
        self.max_attempts = max(1, max_attempts)
        self.backoff = backoff
        self.prompt_policy = prompt_policy
        self.sleep = sleep

    @classmethod
    def from_settings(cls, generator: TextGenerator, settings: Settings) -> "StructuredGeneration":
        return cls(
            generator,
            max_attempts=settings.llm_max_attempts,
            backoff=settings.llm_retry_backoff,
            prompt_policy=settings.llm_retry_prompt,
        )

    def next_prompt(self, user_prompt: str, error: Exception) -> str:
        if self.prompt_policy == "corrective" and isinstance(error, ResponseValidationError):
            return user_prompt + CORRECTIVE_SUFFIX.format(error=error)
        return user_prompt

    def run(self, system_prompt: str, user_prompt: str, parse: Callable[[str], T], label: str) -> T:
        prompt = user_prompt
        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                logger.info(f"Generating {label} (attempt {attempt}/{self.max_attempts})")
                text = self.generator.generate(system_prompt, prompt)
                logger.debug(f"Raw {label} response: {text[:500]!r}")
                return parse(text)
            except (GeneratorError, ResponseValidationError) as e:
                last_error = e
                will_retry = attempt < self.max_attempts
                logger.warning(f"{label} attempt {attempt} failed: {e} (will retry: {will_retry})")
                if will_retry:
                    prompt = self.next_prompt(user_prompt, e)
                    self.sleep(self.backoff)

        logger.error(f"All {label} attempts failed: {last_error}")
        raise GenerationFailedError(
            f"Failed to generate {label} after {self.max_attempts} attempts: {last_error}"
        )
