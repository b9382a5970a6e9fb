"""
LLM Adapter for Leap.

Provides a unified async interface for the remote text-generation service.
Supports: Anthropic Messages API (default), OpenAI-compatible chat APIs and an
offline adapter that always fails over to the deterministic templates.
"""
import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
import yaml

from leap.exceptions import (
    ConfigError,
    RemoteAuthError,
    RemoteConnectionError,
    RemoteGenerationError,
    RemoteRateLimitError,
    RemoteResponseError,
    RemoteTimeoutError,
)
from leap.logger import get_logger
from leap.paths import CONFIG_DIR

logger = get_logger("llm_adapter")

# 配置文件路径
MODEL_CONFIG_PATH = CONFIG_DIR / "model.yaml"
LOCAL_MODEL_CONFIG_PATH = CONFIG_DIR / "local_model.yaml"

DEFAULT_TIMEOUT_SECONDS = 30.0
ANTHROPIC_VERSION = "2023-06-01"


@dataclass
class LLMResponse:
    """Structured response from the remote model."""
    content: str
    model: str
    usage: Optional[Dict[str, int]] = None


class BaseLLMAdapter(ABC):
    """Base class for LLM adapters."""

    provider = "unknown"

    def __init__(
        self,
        config: Dict[str, Any],
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.model_name = config.get("model_name", "unknown")
        self.timeout = float(config.get("timeout", DEFAULT_TIMEOUT_SECONDS))
        self.transport = transport

    @abstractmethod
    async def generate(self, prompt: str, max_tokens: int = 1500) -> LLMResponse:
        """Send ``prompt`` as a single user message and return the assistant text."""

    def get_model_name(self) -> str:
        return self.model_name

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def _post(self, url: str, headers: Dict[str, str], payload: Dict[str, Any]) -> Any:
        """POST and return the decoded JSON body; map transport failures to RemoteGenerationError."""
        try:
            async with self._client() as client:
                response = await client.post(url, headers=headers, json=payload)
        except httpx.TimeoutException:
            raise RemoteTimeoutError(
                provider=self.provider,
                model_name=self.model_name,
                endpoint=url,
                timeout_seconds=self.timeout
            )
        except httpx.TransportError:
            raise RemoteConnectionError(
                provider=self.provider,
                model_name=self.model_name,
                endpoint=url
            )

        status = response.status_code
        if status in (401, 403):
            raise RemoteAuthError(provider=self.provider, model_name=self.model_name, endpoint=url)
        if status == 429:
            retry_after = response.headers.get("retry-after")
            raise RemoteRateLimitError(
                provider=self.provider,
                model_name=self.model_name,
                endpoint=url,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None
            )
        if status != 200:
            raise RemoteResponseError(
                f"HTTP {status}: {response.text[:200]}",
                provider=self.provider,
                model_name=self.model_name,
                endpoint=url,
                status_code=status
            )

        try:
            return response.json()
        except ValueError:
            raise RemoteResponseError(
                "Response body is not JSON",
                provider=self.provider,
                model_name=self.model_name,
                endpoint=url,
                status_code=status
            )

    def _malformed(self, url: str) -> RemoteResponseError:
        return RemoteResponseError(
            "Response envelope has no assistant text",
            provider=self.provider,
            model_name=self.model_name,
            endpoint=url,
            status_code=200
        )


class AnthropicAdapter(BaseLLMAdapter):
    """Adapter for the Anthropic Messages API."""

    provider = "anthropic"

    def __init__(
        self,
        config: Dict[str, Any],
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(config, transport)
        self.api_key = config.get("api_key") or os.environ.get("ANTHROPIC_API_KEY")
        self.base_url = config.get("base_url", "https://api.anthropic.com").rstrip("/")
        self.model_name = config.get("model_name", "claude-sonnet-4-20250514")

        if not self.api_key:
            raise ConfigError(
                "Anthropic API key not found. Set ANTHROPIC_API_KEY env var or "
                "add 'api_key' to config/local_model.yaml",
                config_path=str(LOCAL_MODEL_CONFIG_PATH)
            )

    async def generate(self, prompt: str, max_tokens: int = 1500) -> LLMResponse:
        url = f"{self.base_url}/v1/messages"
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json"
        }
        payload = {
            "model": self.model_name,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}]
        }

        data = await self._post(url, headers, payload)
        try:
            text = data["content"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise self._malformed(url)
        if not isinstance(text, str):
            raise self._malformed(url)

        return LLMResponse(content=text, model=data.get("model", self.model_name), usage=data.get("usage"))


class OpenAIAdapter(BaseLLMAdapter):
    """Adapter for OpenAI API (also compatible with other OpenAI-compatible APIs)."""

    provider = "openai"

    def __init__(
        self,
        config: Dict[str, Any],
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(config, transport)
        self.api_key = config.get("api_key") or os.environ.get("OPENAI_API_KEY")
        self.base_url = config.get("base_url", "https://api.openai.com/v1").rstrip("/")
        self.model_name = config.get("model_name", "gpt-4o-mini")

        if not self.api_key:
            raise ConfigError(
                "OpenAI API key not found. Set OPENAI_API_KEY env var or "
                "add 'api_key' to config/local_model.yaml",
                config_path=str(LOCAL_MODEL_CONFIG_PATH)
            )

    async def generate(self, prompt: str, max_tokens: int = 1500) -> LLMResponse:
        url = f"{self.base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }
        payload = {
            "model": self.model_name,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens
        }

        data = await self._post(url, headers, payload)
        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise self._malformed(url)
        if not isinstance(text, str):
            raise self._malformed(url)

        return LLMResponse(content=text, model=data.get("model", self.model_name), usage=data.get("usage"))


class OfflineAdapter(BaseLLMAdapter):
    """
    No remote model configured. Every call fails so the generator falls back
    to its deterministic templates.
    """

    provider = "offline"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config or {})
        self.model_name = "offline"

    async def generate(self, prompt: str, max_tokens: int = 1500) -> LLMResponse:
        raise RemoteGenerationError(
            "No remote model configured",
            provider=self.provider,
            model_name=self.model_name
        )


def load_model_config(profile_name: Optional[str] = None) -> Dict[str, Any]:
    """
    Load model configuration from YAML file.
    Priority: local_model.yaml > model.yaml

    Args:
        profile_name: Optional profile name. If None, uses active_profile from config.

    Returns:
        Configuration dict for the specified or active profile.

    Note:
        Supports ${ENV_VAR} syntax for environment variable expansion.
    """
    raw_config: Dict[str, Any] = {}

    for path in (LOCAL_MODEL_CONFIG_PATH, MODEL_CONFIG_PATH):
        if path.exists():
            try:
                with open(path, "r", encoding="utf-8") as f:
                    raw_config = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML: {e}", config_path=str(path))
            break

    if "profiles" in raw_config:
        profiles = raw_config["profiles"] or {}
        active_profile = profile_name or raw_config.get("active_profile", "default")

        if active_profile not in profiles:
            logger.warning(f"Profile '{active_profile}' not found, using offline mode")
            return {"provider": "offline"}

        return _expand_env_vars(profiles[active_profile])

    # 兼容扁平结构
    if raw_config:
        return _expand_env_vars(raw_config)

    return {"provider": "offline"}


def _expand_env_vars(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Expand ${VAR} placeholders in config values with environment variables.
    Unset variables expand to None.
    """
    result: Dict[str, Any] = {}
    pattern = re.compile(r'^\$\{([^}]+)\}$')

    for key, value in config.items():
        if isinstance(value, str):
            match = pattern.match(value)
            result[key] = os.environ.get(match.group(1)) if match else value
        elif isinstance(value, dict):
            result[key] = _expand_env_vars(value)
        else:
            result[key] = value

    return result


def create_llm_adapter(
    config: Optional[Dict[str, Any]] = None,
    profile_name: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> BaseLLMAdapter:
    """
    Factory function to create the appropriate LLM adapter.

    A provider whose API key is missing degrades to OfflineAdapter so that goal
    creation keeps working on the fallback templates.
    """
    if config is None:
        config = load_model_config(profile_name)

    provider = str(config.get("provider", "offline")).lower()

    try:
        if provider == "anthropic":
            return AnthropicAdapter(config, transport)
        elif provider == "openai":
            return OpenAIAdapter(config, transport)
    except ConfigError as e:
        logger.warning(f"{e.message}; itinerary generation will use templates")
        return OfflineAdapter(config)

    if provider == "offline":
        return OfflineAdapter(config)

    raise ConfigError(
        f"Unknown LLM provider: '{provider}' (profile: {profile_name})",
        config_path=str(MODEL_CONFIG_PATH)
    )
