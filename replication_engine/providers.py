# -*- coding: utf-8 -*-
"""
LLM provider backends behind one normalized call:

    backend.generate(prompt, model_config) -> str | ReasoningResult

Every provider keeps its own auth, request shape and error wording; callers only
see BackendError / EmptyGenerationError.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import httpx

from .config import ModelConfig, ModelProfile, ProviderSettings, ReplicationConfig
from .exceptions import BackendError, ConfigurationError, EmptyGenerationError, ReplicationError

logger = logging.getLogger(__name__)

# Configuration constants
TIMEOUT_STATUS = 5.0
PROMPT_PREVIEW_CHARS = 500
OPENROUTER_REFERER = "https://github.com/replication-engine/replication-engine"
OPENROUTER_TITLE = "Replication CLI"


@dataclass(frozen=True)
class ReasoningResult:
    """Answer plus the side-channel reasoning some models return"""
    reasoning: str
    answer: str


GenerationResult = Union[str, ReasoningResult]


class GenerationBackend:
    """Base class: one text-generation service"""

    provider_type = ""
    display_name = ""
    default_temperature = 0.1
    default_max_tokens = 8000

    def __init__(self, settings: ProviderSettings, model: Optional[str] = None,
                 timeout: Optional[float] = None):
        """
        Args:
            settings: Credentials, default model and endpoint for the provider
            model: Model override (profiles pin one for OpenRouter)
            timeout: Generation timeout in seconds, None waits indefinitely
        """
        self.settings = settings
        self.model = model or settings.model
        self.timeout = timeout

    def generate(self, prompt: str, config: ModelConfig) -> GenerationResult:
        raise NotImplementedError

    def _temperature(self, config: ModelConfig) -> float:
        return config.temperature if config.temperature is not None else self.default_temperature

    def _max_tokens(self, config: ModelConfig) -> int:
        return config.max_tokens if config.max_tokens is not None else self.default_max_tokens

    def _require_api_key(self, env_name: str) -> str:
        if not self.settings.api_key:
            raise BackendError(self.provider_type, f"{env_name} not configured")
        return self.settings.api_key

    def _announce(self, prompt: str, config: ModelConfig, endpoint: str) -> None:
        print(f"\n🔄 Calling {self.display_name} API...")
        print(f"   Model: {self.model or '(server default)'}")
        print(f"   Endpoint: {endpoint}")
        print(f"   Temperature: {self._temperature(config)}")
        print(f"   Max Tokens: {self._max_tokens(config)}")
        if config.stream:
            logger.info("Streaming requested but not supported; waiting for the full response")
        preview = prompt[:PROMPT_PREVIEW_CHARS] + ("..." if len(prompt) > PROMPT_PREVIEW_CHARS else "")
        logger.debug("Prompt preview (%d chars total):\n%s", len(prompt), preview)


def _chat_payload(model: str, prompt: str, temperature: float, max_tokens: int) -> Dict[str, Any]:
    return {
        "model": model,
        "messages": [{"role": "user", "content": prompt}],
        "temperature": temperature,
        "max_tokens": max_tokens,
        "stream": False,
    }


def _parse_chat_response(response: httpx.Response, provider: str, label: str,
                         include_reasoning: bool) -> GenerationResult:
    """Normalize an OpenAI-compatible chat completion body"""
    try:
        data = response.json()
    except ValueError as e:
        if response.status_code >= 400:
            raise BackendError(
                provider, f"{label} HTTP {response.status_code}: {response.text[:300]}") from e
        raise BackendError(provider, f"Failed to parse {label} response: {e}") from e

    if isinstance(data, dict) and data.get("error"):
        error = data["error"]
        message = error.get("message", error) if isinstance(error, dict) else error
        raise BackendError(provider, f"{label} API error: {message}")

    if response.status_code >= 400:
        raise BackendError(provider, f"{label} HTTP {response.status_code}: {response.text[:300]}")

    choices = data.get("choices") if isinstance(data, dict) else None
    if not choices:
        raise EmptyGenerationError(provider, f"No response generated from {label}")

    message = choices[0].get("message") or {}
    content = message.get("content") or ""
    reasoning = message.get("reasoning") or message.get("reasoning_content")

    if reasoning and include_reasoning:
        print("\n🧠 Reasoning process detected")
        return ReasoningResult(reasoning=reasoning, answer=content)
    return content


class LMStudioBackend(GenerationBackend):
    """Local LM Studio server speaking the OpenAI chat completions protocol"""

    provider_type = "local"
    display_name = "LM Studio"
    default_temperature = 0.6

    def __init__(self, settings: ProviderSettings, model: Optional[str] = None,
                 timeout: Optional[float] = None, status_timeout: float = TIMEOUT_STATUS,
                 transport: Optional[httpx.BaseTransport] = None):
        super().__init__(settings, model=model, timeout=timeout)
        self.status_timeout = status_timeout
        self._transport = transport

    @property
    def models_endpoint(self) -> str:
        return f"{self.settings.endpoint.rstrip('/')}/v1/models"

    @property
    def completions_endpoint(self) -> str:
        return f"{self.settings.endpoint.rstrip('/')}/v1/chat/completions"

    def _client(self, timeout: Optional[float]) -> httpx.Client:
        return httpx.Client(timeout=timeout, transport=self._transport)

    def check_server_status(self) -> bool:
        """True when the server answers the models endpoint with HTTP 200"""
        try:
            with self._client(self.status_timeout) as client:
                response = client.get(self.models_endpoint)
        except httpx.HTTPError as e:
            logger.debug("LM Studio status probe failed: %s", e)
            return False
        return response.status_code == 200

    def get_current_model(self) -> str:
        """Identifier of the model currently loaded in LM Studio"""
        try:
            with self._client(self.status_timeout) as client:
                response = client.get(self.models_endpoint)
        except httpx.TimeoutException as e:
            raise BackendError(self.provider_type, "Timeout while checking for loaded models.") from e
        except httpx.HTTPError as e:
            raise BackendError(
                self.provider_type, "Cannot connect to LM Studio server to check loaded models."
            ) from e

        try:
            models = response.json().get("data") or []
        except (ValueError, AttributeError) as e:
            raise BackendError(self.provider_type, "Failed to get model information from LM Studio.") from e

        if not models:
            raise BackendError(
                self.provider_type,
                "No model is currently loaded in LM Studio. Please load a model first.",
            )
        return models[0]["id"]

    def generate(self, prompt: str, config: ModelConfig) -> GenerationResult:
        if not self.model:
            self.model = self.get_current_model()

        self._announce(prompt, config, self.completions_endpoint)
        payload = _chat_payload(self.model, prompt, self._temperature(config), self._max_tokens(config))

        try:
            with self._client(self.timeout) as client:
                response = client.post(self.completions_endpoint, json=payload)
        except httpx.HTTPError as e:
            raise BackendError(self.provider_type, f"LM Studio API request failed: {e}") from e

        return _parse_chat_response(response, self.provider_type, "LM Studio", config.include_reasoning)


class OpenRouterBackend(GenerationBackend):
    """OpenRouter hosted models, with optional reasoning capture"""

    provider_type = "openrouter"
    display_name = "OpenRouter"
    default_temperature = 0.6

    def __init__(self, settings: ProviderSettings, model: Optional[str] = None,
                 timeout: Optional[float] = None,
                 transport: Optional[httpx.BaseTransport] = None):
        super().__init__(settings, model=model, timeout=timeout)
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._require_api_key('OPENROUTER_API_KEY')}",
            "HTTP-Referer": OPENROUTER_REFERER,
            "X-Title": OPENROUTER_TITLE,
        }

    def build_payload(self, prompt: str, config: ModelConfig) -> Dict[str, Any]:
        payload = _chat_payload(self.model, prompt, self._temperature(config), self._max_tokens(config))
        if config.top_p is not None:
            payload["top_p"] = config.top_p
        if config.frequency_penalty is not None:
            payload["frequency_penalty"] = config.frequency_penalty
        if config.presence_penalty is not None:
            payload["presence_penalty"] = config.presence_penalty
        if config.include_reasoning:
            payload["include_reasoning"] = True
        return payload

    def generate(self, prompt: str, config: ModelConfig) -> GenerationResult:
        headers = self._headers()
        self._announce(prompt, config, self.settings.endpoint)
        if config.include_reasoning:
            print("   Include Reasoning: enabled")

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(self.settings.endpoint, headers=headers,
                                       json=self.build_payload(prompt, config))
        except httpx.HTTPError as e:
            raise BackendError(self.provider_type, f"OpenRouter API request failed: {e}") from e

        return _parse_chat_response(response, self.provider_type, "OpenRouter", config.include_reasoning)


class OpenAICompatibleBackend(GenerationBackend):
    """OpenAI SDK client; DeepSeek is reached through its OpenAI-compatible base URL"""

    provider_type = "openai"
    display_name = "OpenAI"
    key_env = "OPENAI_API_KEY"
    default_max_tokens = 4000

    def _client(self):
        api_key = self._require_api_key(self.key_env)
        from openai import OpenAI
        kwargs = {"api_key": api_key, "timeout": self.timeout}
        if self.settings.endpoint:
            kwargs["base_url"] = self.settings.endpoint
        return OpenAI(**kwargs)

    def generate(self, prompt: str, config: ModelConfig) -> GenerationResult:
        client = self._client()
        self._announce(prompt, config, self.settings.endpoint or "Official OpenAI SDK")

        kwargs = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self._temperature(config),
            "max_tokens": self._max_tokens(config),
        }
        if config.top_p is not None:
            kwargs["top_p"] = config.top_p
        if config.frequency_penalty is not None:
            kwargs["frequency_penalty"] = config.frequency_penalty
        if config.presence_penalty is not None:
            kwargs["presence_penalty"] = config.presence_penalty

        try:
            resp = client.chat.completions.create(**kwargs)
        except Exception as e:
            raise BackendError(self.provider_type, f"{self.display_name} API error: {str(e)[:200]}") from e

        if not resp.choices:
            raise EmptyGenerationError(self.provider_type, f"No response generated from {self.display_name}")

        message = resp.choices[0].message
        content = message.content or ""
        reasoning = getattr(message, "reasoning_content", None)
        if reasoning and config.include_reasoning:
            return ReasoningResult(reasoning=reasoning, answer=content)
        return content


class DeepSeekBackend(OpenAICompatibleBackend):
    provider_type = "deepseek"
    display_name = "DeepSeek"
    key_env = "DEEPSEEK_API_KEY"


class GeminiBackend(GenerationBackend):
    """Google Gemini through the google-generativeai SDK"""

    provider_type = "gemini"
    display_name = "Gemini"

    def _model(self, config: ModelConfig):
        api_key = self._require_api_key("GEMINI_API_KEY")
        import google.generativeai as genai
        genai.configure(api_key=api_key)
        return genai.GenerativeModel(
            self.model,
            generation_config={
                "temperature": self._temperature(config),
                "max_output_tokens": self._max_tokens(config),
            },
        )

    def generate(self, prompt: str, config: ModelConfig) -> GenerationResult:
        model = self._model(config)
        self._announce(prompt, config, "Official Google GenAI SDK")

        request_options = {"timeout": self.timeout} if self.timeout else None
        try:
            resp = model.generate_content(prompt, request_options=request_options)
        except Exception as e:
            raise BackendError(self.provider_type, self._describe_error(str(e))) from e

        try:
            text = resp.text
        except ValueError as e:
            # raised by the SDK when the candidate carries no text parts
            raise EmptyGenerationError(self.provider_type, f"No response generated from Gemini ({e})") from e

        if not text:
            raise EmptyGenerationError(self.provider_type, "No response generated from Gemini")
        return text

    @staticmethod
    def _describe_error(message: str) -> str:
        lowered = message.lower()
        if "api_key" in lowered or "api key" in lowered:
            return ("Gemini API authentication error: Invalid API key. "
                    "Please check your GEMINI_API_KEY environment variable.")
        if "quota" in lowered:
            return f"Gemini API quota exceeded: {message}"
        if "rate limit" in lowered:
            return f"Gemini API rate limit exceeded: {message}"
        return f"Gemini API error: {message}"


class AnthropicBackend(GenerationBackend):
    """Anthropic Claude through the official SDK"""

    provider_type = "anthropic"
    display_name = "Anthropic"

    def _client(self):
        api_key = self._require_api_key("ANTHROPIC_API_KEY")
        import anthropic
        return anthropic.Anthropic(api_key=api_key)

    def generate(self, prompt: str, config: ModelConfig) -> GenerationResult:
        client = self._client()
        self._announce(prompt, config, "Official Anthropic SDK")

        kwargs = {
            "model": self.model,
            "max_tokens": self._max_tokens(config),
            "temperature": self._temperature(config),
            "messages": [{"role": "user", "content": prompt}],
        }
        if config.top_p is not None:
            kwargs["top_p"] = config.top_p
        if self.timeout:
            kwargs["timeout"] = self.timeout  # Pass timeout to the call

        try:
            resp = client.messages.create(**kwargs)
        except Exception as e:
            raise BackendError(self.provider_type, f"Anthropic API error: {str(e)[:200]}") from e

        return "".join(getattr(b, "text", "") for b in resp.content)


BACKENDS = {
    "local": LMStudioBackend,
    "gemini": GeminiBackend,
    "deepseek": DeepSeekBackend,
    "openrouter": OpenRouterBackend,
    "openai": OpenAICompatibleBackend,
    "anthropic": AnthropicBackend,
}


def build_backend(profile: ModelProfile, config: ReplicationConfig, **kwargs) -> GenerationBackend:
    """
    Instantiate the backend serving `profile`, injecting its provider settings.

    This is the only place that looks at which provider a profile belongs to.
    """
    backend_cls = BACKENDS.get(profile.provider_type)
    if backend_cls is None:
        raise ConfigurationError(f"No backend for provider type: {profile.provider_type}")

    settings = config.provider_settings(profile.provider_type)
    if backend_cls is LMStudioBackend:
        kwargs.setdefault("status_timeout", config.status_timeout)
    return backend_cls(settings, model=profile.model_name, timeout=config.generation_timeout, **kwargs)


def call_backend(backend: GenerationBackend, prompt: str, config: ModelConfig) -> GenerationResult:
    """Run one generation, wrapping anything unexpected in BackendError"""
    try:
        return backend.generate(prompt, config)
    except ReplicationError:
        raise
    except Exception as e:
        raise BackendError(backend.provider_type or type(backend).__name__, str(e)) from e
