"""
Tests for generation backends
"""
import json
from types import SimpleNamespace
from unittest.mock import Mock, patch

import httpx
import pytest

from replication_engine.config import MODEL_PROFILES, ModelConfig, ModelProfile, ProviderSettings, ReplicationConfig
from replication_engine.exceptions import BackendError, ConfigurationError, EmptyGenerationError
from replication_engine.providers import (
    AnthropicBackend, DeepSeekBackend, GeminiBackend, LMStudioBackend, OpenAICompatibleBackend,
    OpenRouterBackend, ReasoningResult, build_backend, call_backend
)

OPENROUTER_URL = "https://openrouter.test/api/v1/chat/completions"


def chat_body(content, reasoning=None):
    message = {"role": "assistant", "content": content}
    if reasoning is not None:
        message["reasoning"] = reasoning
    return {"choices": [{"message": message}]}


def lmstudio(handler, model=None):
    return LMStudioBackend(
        ProviderSettings(endpoint="http://lmstudio.test:1234"),
        model=model,
        transport=httpx.MockTransport(handler),
    )


class TestLMStudioBackend:
    """Test the local LM Studio backend"""

    def test_generate_uses_loaded_model(self):
        """Test the loaded model is discovered and sent with the prompt"""
        requests = []

        def handler(request):
            requests.append(request)
            if request.url.path == "/v1/models":
                return httpx.Response(200, json={"data": [{"id": "qwen-coder"}]})
            return httpx.Response(200, json=chat_body("console.log(2)"))

        backend = lmstudio(handler)
        result = backend.generate("PROMPT", ModelConfig(temperature=0.2, max_tokens=100))

        assert result == "console.log(2)"
        assert backend.model == "qwen-coder"
        payload = json.loads(requests[-1].content)
        assert payload["model"] == "qwen-coder"
        assert payload["messages"] == [{"role": "user", "content": "PROMPT"}]
        assert payload["temperature"] == 0.2
        assert payload["max_tokens"] == 100
        assert payload["stream"] is False

    def test_zero_temperature_respected(self):
        """Test an explicit 0 temperature is not replaced by the default"""
        payloads = []

        def handler(request):
            payloads.append(json.loads(request.content))
            return httpx.Response(200, json=chat_body("x"))

        lmstudio(handler, model="m").generate("p", ModelConfig(temperature=0.0))

        assert payloads[0]["temperature"] == 0.0
        assert payloads[0]["max_tokens"] == 8000

    def test_defaults_when_unset(self):
        """Test provider defaults fill unset parameters"""
        payloads = []

        def handler(request):
            payloads.append(json.loads(request.content))
            return httpx.Response(200, json=chat_body("x"))

        lmstudio(handler, model="m").generate("p", ModelConfig())

        assert payloads[0]["temperature"] == 0.6

    def test_no_model_loaded(self):
        """Test an empty model list is a backend error"""
        backend = lmstudio(lambda request: httpx.Response(200, json={"data": []}))

        with pytest.raises(BackendError, match="No model is currently loaded"):
            backend.generate("p", ModelConfig())

    def test_status(self):
        """Test the status probe"""
        assert lmstudio(lambda request: httpx.Response(200, json={"data": []})).check_server_status()
        assert not lmstudio(lambda request: httpx.Response(503)).check_server_status()

    def test_status_unreachable(self):
        """Test connection errors mean the server is down"""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        assert not lmstudio(handler).check_server_status()

    def test_connection_error(self):
        """Test request failures become BackendError"""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(BackendError, match="LM Studio API request failed"):
            lmstudio(handler, model="m").generate("p", ModelConfig())

    def test_error_body(self):
        """Test an error payload becomes BackendError"""
        backend = lmstudio(lambda request: httpx.Response(400, json={"error": "context length exceeded"}), model="m")

        with pytest.raises(BackendError, match="context length exceeded"):
            backend.generate("p", ModelConfig())

    def test_unavailable_html_body(self):
        """Test an HTML 503 page reports the HTTP status instead of a parse error"""
        backend = lmstudio(lambda request: httpx.Response(503, text="<html>Service Unavailable</html>"), model="m")

        with pytest.raises(BackendError, match="LM Studio HTTP 503") as exc_info:
            backend.generate("p", ModelConfig())

        assert "Failed to parse" not in str(exc_info.value)

    def test_no_choices(self):
        """Test a response without choices is an empty generation"""
        backend = lmstudio(lambda request: httpx.Response(200, json={"choices": []}), model="m")

        with pytest.raises(EmptyGenerationError):
            backend.generate("p", ModelConfig())


class TestOpenRouterBackend:
    """Test the OpenRouter backend"""

    def backend(self, handler, api_key="or-key"):
        return OpenRouterBackend(
            ProviderSettings(api_key=api_key, model="default/model", endpoint=OPENROUTER_URL),
            model="microsoft/phi-4-reasoning-plus",
            transport=httpx.MockTransport(handler),
        )

    def test_request_shape(self):
        """Test headers and sampling parameters"""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=chat_body("code"))

        config = MODEL_PROFILES["openrouter-phi4"].defaults
        result = self.backend(handler).generate("p", config)

        assert result == "code"
        request = requests[0]
        assert request.headers["Authorization"] == "Bearer or-key"
        assert "HTTP-Referer" in request.headers
        assert request.headers["X-Title"] == "Replication CLI"
        payload = json.loads(request.content)
        assert payload["model"] == "microsoft/phi-4-reasoning-plus"
        assert payload["top_p"] == 0.95
        assert payload["frequency_penalty"] == 0.1
        assert payload["presence_penalty"] == 0.1
        assert "include_reasoning" not in payload

    def test_reasoning_kept_when_requested(self):
        """Test reasoning side-channel is returned when asked for"""
        payloads = []

        def handler(request):
            payloads.append(json.loads(request.content))
            return httpx.Response(200, json=chat_body("code", reasoning="thinking"))

        result = self.backend(handler).generate("p", ModelConfig(include_reasoning=True))

        assert result == ReasoningResult(reasoning="thinking", answer="code")
        assert payloads[0]["include_reasoning"] is True

    def test_reasoning_dropped_otherwise(self):
        """Test reasoning is ignored unless requested"""
        handler = lambda request: httpx.Response(200, json=chat_body("code", reasoning="thinking"))

        assert self.backend(handler).generate("p", ModelConfig()) == "code"

    def test_missing_key(self):
        """Test the call is refused without a key"""
        handler = Mock(side_effect=AssertionError("no request expected"))

        with pytest.raises(BackendError, match="OPENROUTER_API_KEY not configured"):
            self.backend(handler, api_key=None).generate("p", ModelConfig())

    def test_api_error(self):
        """Test provider error bodies"""
        handler = lambda request: httpx.Response(402, json={"error": {"message": "Insufficient credits"}})

        with pytest.raises(BackendError, match="Insufficient credits"):
            self.backend(handler).generate("p", ModelConfig())

    def test_invalid_json(self):
        """Test non-JSON bodies on a successful status"""
        handler = lambda request: httpx.Response(200, text="<html>ok</html>")

        with pytest.raises(BackendError, match="Failed to parse OpenRouter response"):
            self.backend(handler).generate("p", ModelConfig())

    def test_gateway_error_keeps_status(self):
        """Test non-JSON error pages report the HTTP status"""
        handler = lambda request: httpx.Response(502, text="<html>bad gateway</html>")

        with pytest.raises(BackendError, match="OpenRouter HTTP 502: <html>bad gateway"):
            self.backend(handler).generate("p", ModelConfig())


def openai_response(content, reasoning_content=None):
    message = SimpleNamespace(content=content, reasoning_content=reasoning_content)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class TestOpenAICompatibleBackends:
    """Test OpenAI SDK based backends (OpenAI, DeepSeek)"""

    def test_deepseek_reasoning(self):
        """Test DeepSeek reasoning_content is captured"""
        client = Mock()
        client.chat.completions.create.return_value = openai_response("code", "chain of thought")
        backend = DeepSeekBackend(ProviderSettings(api_key="ds", model="deepseek-reasoner",
                                                   endpoint="https://api.deepseek.com/v1"))

        with patch.object(DeepSeekBackend, "_client", return_value=client):
            result = backend.generate("p", ModelConfig(temperature=0.1, max_tokens=4000, include_reasoning=True))

        assert result == ReasoningResult(reasoning="chain of thought", answer="code")
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "deepseek-reasoner"
        assert kwargs["max_tokens"] == 4000
        assert "stream" not in kwargs

    def test_openai_plain(self):
        """Test a plain completion"""
        client = Mock()
        client.chat.completions.create.return_value = openai_response("code")
        backend = OpenAICompatibleBackend(ProviderSettings(api_key="sk", model="gpt-4o-mini"))

        with patch.object(OpenAICompatibleBackend, "_client", return_value=client):
            assert backend.generate("p", ModelConfig()) == "code"

    def test_sdk_error(self):
        """Test SDK exceptions become BackendError"""
        client = Mock()
        client.chat.completions.create.side_effect = RuntimeError("401 invalid key")
        backend = DeepSeekBackend(ProviderSettings(api_key="ds", model="deepseek-reasoner"))

        with patch.object(DeepSeekBackend, "_client", return_value=client):
            with pytest.raises(BackendError, match="401 invalid key"):
                backend.generate("p", ModelConfig())

    def test_empty_choices(self):
        """Test a completion without choices"""
        client = Mock()
        client.chat.completions.create.return_value = SimpleNamespace(choices=[])
        backend = OpenAICompatibleBackend(ProviderSettings(api_key="sk", model="gpt-4o-mini"))

        with patch.object(OpenAICompatibleBackend, "_client", return_value=client):
            with pytest.raises(EmptyGenerationError):
                backend.generate("p", ModelConfig())

    def test_missing_key(self):
        """Test the client is never built without a key"""
        backend = DeepSeekBackend(ProviderSettings(model="deepseek-reasoner"))

        with pytest.raises(BackendError, match="DEEPSEEK_API_KEY"):
            backend.generate("p", ModelConfig())


class _BlockedResponse:
    @property
    def text(self):
        raise ValueError("response was blocked")


class TestGeminiBackend:
    """Test the Gemini backend"""

    def backend(self):
        return GeminiBackend(ProviderSettings(api_key="g", model="gemini-2.5-flash"))

    def test_generate(self):
        """Test a successful generation"""
        model = Mock()
        model.generate_content.return_value = SimpleNamespace(text="code")

        with patch.object(GeminiBackend, "_model", return_value=model):
            assert self.backend().generate("p", ModelConfig()) == "code"

        model.generate_content.assert_called_once_with("p", request_options=None)

    def test_blocked_response(self):
        """Test a response without text parts"""
        model = Mock()
        model.generate_content.return_value = _BlockedResponse()

        with patch.object(GeminiBackend, "_model", return_value=model):
            with pytest.raises(EmptyGenerationError, match="blocked"):
                self.backend().generate("p", ModelConfig())

    def test_quota_error(self):
        """Test quota failures are reported as such"""
        model = Mock()
        model.generate_content.side_effect = RuntimeError("429 Quota exceeded for project")

        with patch.object(GeminiBackend, "_model", return_value=model):
            with pytest.raises(BackendError, match="quota exceeded"):
                self.backend().generate("p", ModelConfig())

    def test_auth_error_description(self):
        """Test invalid-key errors point at the environment variable"""
        assert "GEMINI_API_KEY" in GeminiBackend._describe_error("API key not valid")


class TestAnthropicBackend:
    """Test the Anthropic backend"""

    def test_generate_joins_text_blocks(self):
        """Test text content blocks are concatenated"""
        client = Mock()
        client.messages.create.return_value = SimpleNamespace(
            content=[SimpleNamespace(text="part one, "), SimpleNamespace(text="part two")]
        )
        backend = AnthropicBackend(ProviderSettings(api_key="a", model="claude-3-5-sonnet-latest"))

        with patch.object(AnthropicBackend, "_client", return_value=client):
            result = backend.generate("p", ModelConfig(temperature=0.0, max_tokens=50))

        assert result == "part one, part two"
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["temperature"] == 0.0
        assert kwargs["max_tokens"] == 50


class TestBackendFactory:
    """Test build_backend and call_backend"""

    def test_profiles_map_to_backends(self):
        """Test every profile gets its provider's backend and settings"""
        config = ReplicationConfig()

        assert isinstance(build_backend(MODEL_PROFILES["local"], config), LMStudioBackend)
        assert isinstance(build_backend(MODEL_PROFILES["gemini"], config), GeminiBackend)
        assert isinstance(build_backend(MODEL_PROFILES["deepseek"], config), DeepSeekBackend)
        assert isinstance(build_backend(MODEL_PROFILES["openai"], config), OpenAICompatibleBackend)
        assert isinstance(build_backend(MODEL_PROFILES["claude"], config), AnthropicBackend)

        openrouter = build_backend(MODEL_PROFILES["openrouter-llama"], config)
        assert isinstance(openrouter, OpenRouterBackend)
        assert openrouter.model == "meta-llama/llama-3.1-70b-instruct"

    def test_local_gets_status_timeout(self):
        """Test the LM Studio backend receives the probe timeout"""
        config = ReplicationConfig(status_timeout=2.5, generation_timeout=30.0)

        backend = build_backend(MODEL_PROFILES["local"], config)

        assert backend.status_timeout == 2.5
        assert backend.timeout == 30.0

    def test_unknown_provider(self):
        """Test unknown provider types"""
        profile = ModelProfile(key="x", display_name="X", provider_type="nope", folder_name="x")

        with pytest.raises(ConfigurationError):
            build_backend(profile, ReplicationConfig())

    def test_call_backend_wraps_unexpected(self):
        """Test unexpected exceptions are wrapped"""
        backend = Mock()
        backend.provider_type = "local"
        backend.generate.side_effect = KeyError("choices")

        with pytest.raises(BackendError) as exc_info:
            call_backend(backend, "p", ModelConfig())

        assert exc_info.value.provider == "local"

    def test_call_backend_keeps_known_errors(self):
        """Test engine errors pass through unchanged"""
        backend = Mock()
        backend.generate.side_effect = EmptyGenerationError("gemini")

        with pytest.raises(EmptyGenerationError):
            call_backend(backend, "p", ModelConfig())
