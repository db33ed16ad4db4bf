"""LLM client for hosted inference providers.

Provides a unified interface for chat completions and speech-to-text,
compatible with OpenAI, Azure OpenAI deployments and LM Studio.

Supported providers:
- openai: OpenAI API
- azure: Azure OpenAI (deployment names + api-version)
- lmstudio: Local LM Studio server (OpenAI-compatible API)
"""

from __future__ import annotations

import io
import json
import os
import re
import time
from dataclasses import dataclass, field
from typing import Any, Literal

import structlog
from openai import AzureOpenAI, OpenAI

from speaking.config.app_config import load_app_config

logger = structlog.get_logger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

Provider = Literal["openai", "azure", "lmstudio"]

# Provider-specific defaults
PROVIDER_DEFAULTS: dict[str, dict[str, Any]] = {
    "openai": {
        "base_url": "https://api.openai.com/v1",
        "api_key_env": "OPENAI_API_KEY",
    },
    "azure": {
        "base_url_env": "AZURE_OPENAI_ENDPOINT",
        "api_key_env": "AZURE_OPENAI_API_KEY",
    },
    "lmstudio": {
        "base_url": "http://localhost:1234/v1",
        "api_key": "lm-studio",  # LM Studio doesn't need a real API key
    },
}

# Provider capabilities (overridable from config)
PROVIDER_CAPABILITIES_DEFAULTS: dict[str, dict[str, bool]] = {
    "openai": {"supports_json_object": True},
    "azure": {"supports_json_object": True},
    "lmstudio": {"supports_json_object": False},
}

JSON_REPAIR_PROMPT = """Fix the following text and return ONLY valid JSON:
<<<
{invalid_output}
>>>

Reply with the corrected JSON only, without explanations or markdown."""

# Some models emit <think>...</think> blocks that break JSON parsing
SANITIZE_PATTERNS = [
    re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE),
    re.compile(r"<analysis>.*?</analysis>", re.DOTALL | re.IGNORECASE),
    re.compile(r"<reasoning>.*?</reasoning>", re.DOTALL | re.IGNORECASE),
]


def _sanitize_for_json(text: str) -> str:
    """Remove thinking/reasoning tags before JSON parsing."""
    result = text
    for pattern in SANITIZE_PATTERNS:
        result = pattern.sub("", result)
    return result.strip()


def mask_secret(value: str | None, visible: int = 15) -> str:
    """Return a loggable prefix of a URL or key, or 'Missing'."""
    if not value:
        return "Missing"
    return f"{value[:visible]}..."


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class LLMConfig:
    """Configuration for LLM client."""

    provider: Provider = "openai"
    base_url: str | None = "https://api.openai.com/v1"
    model: str = "gpt-4.1"
    temperature: float = 0.7
    max_tokens: int = 2500
    timeout: int = 120
    api_key: str | None = None
    api_version: str | None = None
    transcription_model: str = "whisper-1"
    # Capability override (from config)
    supports_json_object: bool | None = None

    @classmethod
    def from_app_config(cls, provider: str | None = None) -> LLMConfig:
        """Build client configuration from the application config.

        Args:
            provider: Provider name; defaults to the scoring provider.
        """
        app_config = load_app_config()
        provider = provider or app_config.scoring.provider
        defaults = PROVIDER_DEFAULTS.get(provider, {})
        pconfig = app_config.providers.get(provider)

        if pconfig is None:
            logger.warning("provider_not_configured", provider=provider)
            return cls(provider=provider)  # type: ignore[arg-type]

        api_key = pconfig.get_api_key() or defaults.get("api_key")

        base_url = pconfig.base_url
        if base_url is None and "base_url_env" in defaults:
            base_url = os.environ.get(defaults["base_url_env"])
        if base_url is None:
            base_url = defaults.get("base_url")

        return cls(
            provider=provider,  # type: ignore[arg-type]
            base_url=base_url,
            model=app_config.scoring.model or pconfig.default_model,
            temperature=app_config.scoring.temperature,
            max_tokens=app_config.scoring.max_tokens,
            api_key=api_key,
            api_version=pconfig.api_version,
            transcription_model=app_config.transcription.model or pconfig.transcription_model,
            supports_json_object=pconfig.supports_json_object,
        )


@dataclass
class Message:
    """A chat message."""

    role: Literal["system", "user", "assistant"]
    content: str

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for API call."""
        return {"role": self.role, "content": self.content}


@dataclass
class LLMResponse:
    """Response from LLM."""

    content: str
    model: str
    provider: str
    usage: dict[str, int] = field(default_factory=dict)
    latency_ms: int = 0

    @property
    def prompt_tokens(self) -> int:
        return self.usage.get("prompt_tokens", 0)

    @property
    def completion_tokens(self) -> int:
        return self.usage.get("completion_tokens", 0)

    @property
    def total_tokens(self) -> int:
        return self.usage.get("total_tokens", 0)


class LLMError(Exception):
    """Error during LLM interaction."""

    pass


class LLMConnectionError(LLMError):
    """Error connecting to LLM server."""

    pass


class LLMResponseError(LLMError):
    """Error in LLM response."""

    pass


# =============================================================================
# LLM CLIENT
# =============================================================================


class LLMClient:
    """Unified client for chat and transcription calls.

    Supports OpenAI, Azure OpenAI and LM Studio via the openai SDK.
    """

    def __init__(
        self,
        config: LLMConfig | None = None,
        provider: Provider | None = None,
        model: str | None = None,
    ):
        """Initialize LLM client.

        Args:
            config: LLM configuration (built from app config if not provided)
            provider: Provider to build the configuration for when no config is given
            model: Override model from config
        """
        if config is None:
            config = LLMConfig.from_app_config(provider)

        self.config = config

        if model is not None:
            self.config.model = model

        self._client = self._build_sdk_client()

        logger.info(
            "llm_client_initialized",
            provider=self.config.provider,
            model=self.config.model,
            base_url=mask_secret(self.config.base_url),
            has_api_key=bool(self.config.api_key),
        )

    def _build_sdk_client(self) -> OpenAI:
        if self.config.provider == "azure":
            return AzureOpenAI(
                azure_endpoint=self.config.base_url or "",
                api_key=self.config.api_key or "not-needed",
                api_version=self.config.api_version or "2025-01-01-preview",
                timeout=self.config.timeout,
            )
        return OpenAI(
            base_url=self.config.base_url,
            api_key=self.config.api_key or "not-needed",
            timeout=self.config.timeout,
        )

    def _supports_json_object(self) -> bool:
        """Check if current provider supports response_format json_object."""
        if self.config.supports_json_object is not None:
            return self.config.supports_json_object

        caps = PROVIDER_CAPABILITIES_DEFAULTS.get(self.config.provider, {})
        return caps.get("supports_json_object", False)

    def chat(
        self,
        messages: list[Message],
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Send chat completion request.

        Args:
            messages: List of messages in conversation
            temperature: Override default temperature
            max_tokens: Override default max tokens
            json_mode: Request JSON response format (only if provider supports it)

        Returns:
            LLMResponse with content and metadata

        Raises:
            LLMConnectionError: If cannot connect to server
            LLMResponseError: If response is invalid
        """
        if temperature is None:
            temperature = self.config.temperature
        if max_tokens is None:
            max_tokens = self.config.max_tokens

        request_kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": [m.to_dict() for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        if json_mode and self._supports_json_object():
            request_kwargs["response_format"] = {"type": "json_object"}

        start_time = time.time()

        try:
            response = self._client.chat.completions.create(**request_kwargs)
        except Exception as e:
            error_msg = str(e)
            if "Connection" in error_msg or "connect" in error_msg.lower():
                raise LLMConnectionError(
                    f"Could not connect to {self.config.provider}: {e}"
                ) from e
            raise LLMError(f"LLM call failed: {e}") from e

        latency_ms = int((time.time() - start_time) * 1000)

        if not response.choices:
            raise LLMResponseError("Empty response from LLM")

        content = response.choices[0].message.content or ""

        usage = {}
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        logger.debug(
            "llm_response",
            provider=self.config.provider,
            model=response.model,
            tokens=usage.get("total_tokens", 0),
            latency_ms=latency_ms,
        )

        return LLMResponse(
            content=content,
            model=response.model,
            provider=self.config.provider,
            usage=usage,
            latency_ms=latency_ms,
        )

    def _try_parse_json(self, content: str) -> dict[str, Any] | None:
        """Try to parse JSON from content, with multiple extraction strategies.

        Tries:
        1. Direct parse
        2. Extract from ```json ... ``` blocks
        3. Extract first {...} object

        Returns parsed dict or None if all strategies fail.
        """
        content = _sanitize_for_json(content)

        try:
            parsed = json.loads(content)
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            pass

        json_match = re.search(r"```(?:json)?\s*([\s\S]*?)```", content)
        if json_match:
            try:
                parsed = json.loads(json_match.group(1).strip())
                if isinstance(parsed, dict):
                    return parsed
            except json.JSONDecodeError:
                pass

        start = content.find("{")
        end = content.rfind("}") + 1
        if start >= 0 and end > start:
            try:
                parsed = json.loads(content[start:end])
                if isinstance(parsed, dict):
                    return parsed
            except json.JSONDecodeError:
                pass

        return None

    def chat_json(
        self,
        messages: list[Message],
        temperature: float | None = None,
        max_tokens: int | None = None,
        max_retries: int = 1,
    ) -> dict[str, Any]:
        """Send chat request expecting JSON response.

        Uses robust parsing with retry on failure.

        Raises:
            LLMResponseError: If response is not valid JSON after retries
        """
        response = self.chat(
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=True,
        )

        parsed = self._try_parse_json(response.content)
        if parsed is not None:
            return parsed

        if max_retries > 0:
            logger.warning(
                "json_parse_failed_retrying",
                content=response.content[:100],
                provider=self.config.provider,
            )

            repair_prompt = JSON_REPAIR_PROMPT.format(
                invalid_output=response.content[:1000]
            )
            retry_messages = messages + [
                Message(role="user", content=repair_prompt),
            ]

            retry_response = self.chat(
                retry_messages,
                temperature=temperature,
                max_tokens=max_tokens,
                json_mode=True,
            )

            parsed = self._try_parse_json(retry_response.content)
            if parsed is not None:
                logger.info("json_parse_recovered_after_retry")
                return parsed

        raise LLMResponseError(
            f"Could not obtain valid JSON: {response.content[:200]}..."
        )

    def simple_chat(
        self,
        system_prompt: str,
        user_message: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Single-turn chat returning the response text."""
        messages = [
            Message(role="system", content=system_prompt),
            Message(role="user", content=user_message),
        ]

        response = self.chat(
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )

        return response.content

    def simple_json(
        self,
        system_prompt: str,
        user_message: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> dict[str, Any]:
        """Single-turn chat expecting a JSON object."""
        messages = [
            Message(role="system", content=system_prompt),
            Message(role="user", content=user_message),
        ]

        return self.chat_json(
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )

    def transcribe(
        self,
        audio: bytes,
        filename: str,
        content_type: str = "audio/webm",
        language: str | None = None,
    ) -> str:
        """Transcribe an audio file with the speech-to-text endpoint.

        Args:
            audio: Raw audio bytes
            filename: File name sent with the upload (its extension drives decoding)
            content_type: MIME type of the audio
            language: Optional ISO-639-1 language hint

        Returns:
            Transcript text (may be empty)

        Raises:
            LLMConnectionError: If the endpoint is unreachable
            LLMError: On any other API failure
        """
        request_kwargs: dict[str, Any] = {
            "model": self.config.transcription_model,
            "file": (filename, io.BytesIO(audio), content_type),
        }
        if language:
            request_kwargs["language"] = language

        logger.debug(
            "transcription_request",
            provider=self.config.provider,
            model=self.config.transcription_model,
            size_kb=round(len(audio) / 1024),
            content_type=content_type,
        )

        start_time = time.time()
        try:
            result = self._client.audio.transcriptions.create(**request_kwargs)
        except Exception as e:
            error_msg = str(e)
            if "Connection" in error_msg or "connect" in error_msg.lower():
                raise LLMConnectionError(
                    f"Could not connect to {self.config.provider}: {e}"
                ) from e
            raise LLMError(f"Transcription call failed: {e}") from e

        text = getattr(result, "text", None)
        if text is None and isinstance(result, str):
            text = result

        logger.debug(
            "transcription_response",
            provider=self.config.provider,
            chars=len(text or ""),
            latency_ms=int((time.time() - start_time) * 1000),
        )
        return (text or "").strip()

    def is_available(self) -> bool:
        """Check if the provider responds to a model listing."""
        try:
            self._client.models.list()
            return True
        except Exception:
            return False
