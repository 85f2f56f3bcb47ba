"""Tests for the chat-completion client."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

import app.llm.service as llm_module
from app.llm.schemas import LLMError, LLMMessage, LLMResponse, LLMUsage
from app.llm.service import LLMService, extract_json_object, get_llm_service

HI = [LLMMessage(role="user", content="Hi")]


def _settings(api_key: str = "sk-test-key") -> MagicMock:
    settings = MagicMock()
    settings.llm_api_key = api_key
    settings.llm_base_url = "https://llm.example.test/v1/"
    settings.llm_default_model = "test-model"
    settings.llm_temperature = 0.2
    settings.llm_max_tokens = 500
    settings.llm_timeout_seconds = 5.0
    return settings


def _completion(content: str = "Hello!", model: str = "test-model", **extra) -> MagicMock:
    """Build a fake successful HTTP response carrying one choice."""
    body = {
        "id": "gen-abc123",
        "model": model,
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 6, "total_tokens": 16},
    }
    body.update(extra)
    response = MagicMock()
    response.json.return_value = body
    response.raise_for_status = MagicMock()
    return response


def _error_payload(excinfo: pytest.ExceptionInfo) -> dict:
    return json.loads(str(excinfo.value))


@pytest.fixture
def service(monkeypatch) -> LLMService:
    """A configured client whose settings never touch the environment."""
    monkeypatch.setattr(llm_module, "get_settings", lambda: _settings())
    return LLMService()


@pytest.fixture
def post():
    """Patch the HTTP call made by the client."""
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.return_value = _completion()
        yield mock_post


class TestLLMSchemas:
    """Tests for the client's pydantic models."""

    def test_usage_defaults(self):
        """Test a response without usage reports zero tokens."""
        resp = LLMResponse(content="Hi there", model="test-model")
        assert resp.usage == LLMUsage()
        assert resp.raw_response == {}

    def test_usage_from_dict(self):
        """Test usage given as a plain dict is validated into LLMUsage."""
        resp = LLMResponse(content="Hi", model="m", usage={"total_tokens": 8})
        assert resp.usage.total_tokens == 8
        assert resp.usage.prompt_tokens == 0

    def test_error_round_trips_through_exception(self):
        """Test an LLMError survives being wrapped in a ValueError."""
        exc = LLMError(error_type="api_error", message="boom", status_code=502).to_exception()

        restored = LLMError.model_validate_json(str(exc))

        assert isinstance(exc, ValueError)
        assert restored.status_code == 502
        assert restored.error_type == "api_error"

    def test_unknown_role_rejected(self):
        """Test only chat roles are accepted."""
        with pytest.raises(ValueError):
            LLMMessage(role="tool", content="x")


class TestLLMServiceInit:
    """Tests for client configuration."""

    def test_configured_with_api_key(self, service):
        """Test the client is configured when a key is set."""
        assert service.configured is True

    def test_not_configured_without_api_key(self, monkeypatch):
        """Test the client is disabled when the key is empty."""
        monkeypatch.setattr(llm_module, "get_settings", lambda: _settings(api_key=""))
        assert LLMService().configured is False


class TestLLMServiceChat:
    """Tests for LLMService.chat()."""

    @pytest.mark.asyncio
    async def test_not_configured(self, monkeypatch, post):
        """Test chat fails fast without an API key."""
        monkeypatch.setattr(llm_module, "get_settings", lambda: _settings(api_key=""))

        with pytest.raises(ValueError) as excinfo:
            await LLMService().chat(HI)

        assert _error_payload(excinfo)["error_type"] == "not_configured"
        post.assert_not_called()

    @pytest.mark.asyncio
    async def test_success(self, service, post):
        """Test a completion is decoded into LLMResponse."""
        result = await service.chat(HI)

        assert isinstance(result, LLMResponse)
        assert result.content == "Hello!"
        assert result.model == "test-model"
        assert result.usage.total_tokens == 16
        assert result.raw_response["id"] == "gen-abc123"

    @pytest.mark.asyncio
    async def test_request_shape(self, service, post):
        """Test the request goes to /chat/completions with the settings defaults."""
        await service.chat(HI)

        url = post.call_args.args[0]
        payload = post.call_args.kwargs["json"]
        headers = post.call_args.kwargs["headers"]
        assert url == "https://llm.example.test/v1/chat/completions"
        assert payload["model"] == "test-model"
        assert payload["temperature"] == 0.2
        assert payload["max_tokens"] == 500
        assert payload["messages"] == [{"role": "user", "content": "Hi"}]
        assert headers["Authorization"] == "Bearer sk-test-key"

    @pytest.mark.asyncio
    async def test_overrides(self, service, post):
        """Test explicit model, temperature and max tokens win over settings."""
        post.return_value = _completion(model="other-model")

        result = await service.chat(HI, model="other-model", temperature=0.0, max_tokens=256)

        payload = post.call_args.kwargs["json"]
        assert payload["model"] == "other-model"
        assert payload["temperature"] == 0.0
        assert payload["max_tokens"] == 256
        assert result.model == "other-model"

    @pytest.mark.asyncio
    async def test_model_falls_back_to_request(self, service, post):
        """Test the requested model is reported when the endpoint omits it."""
        post.return_value = _completion(model=None)

        result = await service.chat(HI)

        assert result.model == "test-model"

    @pytest.mark.asyncio
    async def test_http_error(self, service, post):
        """Test HTTP failures are reported as api_error with the status."""
        failing = MagicMock()
        failing.status_code = 429
        failing.text = "Rate limit exceeded"
        failing.raise_for_status.side_effect = httpx.HTTPStatusError(
            "429 Too Many Requests", request=MagicMock(), response=failing
        )
        post.return_value = failing

        with pytest.raises(ValueError) as excinfo:
            await service.chat(HI)

        error = _error_payload(excinfo)
        assert error["error_type"] == "api_error"
        assert error["status_code"] == 429

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "exc, error_type",
        [
            (httpx.ReadTimeout("timed out"), "timeout"),
            (httpx.ConnectError("Connection refused"), "network_error"),
        ],
    )
    async def test_transport_errors(self, service, post, exc, error_type):
        """Test timeouts are told apart from other transport failures."""
        post.side_effect = exc

        with pytest.raises(ValueError) as excinfo:
            await service.chat(HI)

        assert _error_payload(excinfo)["error_type"] == error_type

    @pytest.mark.asyncio
    async def test_missing_choices(self, service, post):
        """Test a body without choices is an invalid payload."""
        post.return_value = _completion(choices=[])

        with pytest.raises(ValueError) as excinfo:
            await service.chat(HI)

        assert _error_payload(excinfo)["error_type"] == "invalid_payload"

    @pytest.mark.asyncio
    async def test_non_json_body(self, service, post):
        """Test an undecodable body is an invalid payload."""
        post.return_value.json.side_effect = json.JSONDecodeError("Expecting value", "<html>", 0)

        with pytest.raises(ValueError) as excinfo:
            await service.chat(HI)

        assert _error_payload(excinfo)["error_type"] == "invalid_payload"


class TestLLMServiceAsk:
    """Tests for ask() and ask_json()."""

    @pytest.mark.asyncio
    async def test_ask_returns_text(self, service, post):
        """Test ask() returns the reply text only."""
        post.return_value = _completion(content="42")

        assert await service.ask("How many items are in the lab?") == "42"

    @pytest.mark.asyncio
    async def test_ask_with_system_prompt(self, service, post):
        """Test the system prompt is sent before the user turn."""
        await service.ask("Map these columns", system_prompt="You map spreadsheet columns.")

        roles = [m["role"] for m in post.call_args.kwargs["json"]["messages"]]
        assert roles == ["system", "user"]

    @pytest.mark.asyncio
    async def test_ask_json_decodes_fenced_reply(self, service, post):
        """Test ask_json() extracts the object from a markdown-fenced reply."""
        reply = 'Sure!\n```json\n{"mappings": {"Item": "name"}, "confidence": "high"}\n```'
        post.return_value = _completion(content=reply)

        data = await service.ask_json("Map these columns")

        assert data == {"mappings": {"Item": "name"}, "confidence": "high"}


class TestExtractJsonObject:
    """Tests for extract_json_object()."""

    def test_plain_object(self):
        assert extract_json_object('{"a": 1}') == {"a": 1}

    @pytest.mark.parametrize(
        "reply",
        ["I cannot help with that.", '{"mappings": {"Item": }', "", None],
    )
    def test_rejected(self, reply):
        """Test replies without a decodable object are invalid payloads."""
        with pytest.raises(ValueError, match="invalid_payload"):
            extract_json_object(reply)


class TestGetLLMService:
    """Tests for the shared client accessor."""

    def test_returns_same_instance(self, monkeypatch):
        """Test repeated calls share one client."""
        monkeypatch.setattr(llm_module, "_llm_service", None)
        monkeypatch.setattr(llm_module, "get_settings", lambda: _settings(api_key=""))

        first = get_llm_service()

        assert isinstance(first, LLMService)
        assert get_llm_service() is first
