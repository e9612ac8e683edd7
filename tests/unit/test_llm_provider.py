"""Unit tests for LLM provider module."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from storyctx.complexity import ComputeTier
from storyctx.errors import GenerationError
from storyctx.llm import GenerationRequest, GenerationResult, LLMConfig, LLMProvider
from storyctx.llm.provider import TieredGenerationClient

# ============================================================================
# Helpers
# ============================================================================


def _provider(tier: ComputeTier = ComputeTier.STANDARD) -> LLMProvider:
    return LLMProvider(
        LLMConfig(
            base_url="http://localhost:8000/v1",
            model="test-model",
            api_key="sk-test",
            tier=tier,
        )
    )


def _mock_http(mock_client_class, body=None, json_error=None, post_error=None):
    mock_response = MagicMock()
    if json_error is not None:
        mock_response.json.side_effect = json_error
    else:
        mock_response.json.return_value = body
    mock_response.raise_for_status = MagicMock()

    mock_client = AsyncMock()
    if post_error is not None:
        mock_client.post.side_effect = post_error
    else:
        mock_client.post.return_value = mock_response
    mock_client_class.return_value.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client_class.return_value.__aexit__ = AsyncMock(return_value=None)
    return mock_client, mock_response


def _completion(content="Summary text"):
    return {
        "model": "test-model",
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15},
    }


# ============================================================================
# Presets
# ============================================================================


class TestLLMProviderPresets:
    """Tests for LLMProvider preset configurations."""

    def test_from_name_deepseek(self):
        """Test loading deepseek preset."""
        provider = LLMProvider.from_name("deepseek")
        assert "deepseek" in provider.config.base_url.lower()

    def test_from_name_local_is_lite(self):
        """Local preset serves the lite tier."""
        provider = LLMProvider.from_name("LOCAL")
        assert "localhost" in provider.config.base_url
        assert provider.config.tier is ComputeTier.LITE

    def test_from_name_unknown(self):
        """Test unknown preset raises ValueError."""
        with pytest.raises(ValueError, match="Unknown provider"):
            LLMProvider.from_name("nope")

    def test_from_config_section(self):
        """Provider section of storyctx.toml wins over presets."""
        from storyctx.config import EngineConfig, LLMProviderConfig

        config = EngineConfig()
        config.llm_providers["flash"] = LLMProviderConfig(
            name="flash",
            api_base="https://api.example.com/v1",
            model="flash-1",
            timeout_sec=5,
            tier=ComputeTier.LITE,
        )

        provider = LLMProvider.from_config("flash", config)

        assert provider.config.model == "flash-1"
        assert provider.config.timeout_ms == 5000
        assert provider.config.tier is ComputeTier.LITE

    def test_from_config_falls_back_to_preset(self):
        """Missing section uses the preset of that name."""
        from storyctx.config import EngineConfig

        provider = LLMProvider.from_config("openai", EngineConfig())
        assert "openai" in provider.config.base_url


# ============================================================================
# Generate
# ============================================================================


class TestGenerate:
    """Tests for LLMProvider.generate."""

    @pytest.mark.asyncio
    async def test_success(self):
        """Test successful completion."""
        provider = _provider()
        request = GenerationRequest(prompt="Summarize", task_type="section_compression")

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client, _ = _mock_http(mock_client_class, body=_completion())
            result = await provider.generate(request)

        assert result.success
        assert result.content == "Summary text"
        assert result.model == "test-model"
        assert result.usage["total_tokens"] == 15

        call_args = mock_client.post.call_args
        assert call_args.args[0] == "http://localhost:8000/v1/chat/completions"
        payload = call_args.kwargs["json"]
        assert payload["messages"] == [{"role": "user", "content": "Summarize"}]
        assert payload["max_tokens"] == 200
        assert payload["temperature"] == 0.3
        assert call_args.kwargs["headers"]["Authorization"] == "Bearer sk-test"

    @pytest.mark.asyncio
    async def test_system_prompt_first(self):
        """System prompt is sent before the user message."""
        provider = _provider()
        request = GenerationRequest(prompt="Hi", task_type="t", system="Be terse")

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client, _ = _mock_http(mock_client_class, body=_completion())
            await provider.generate(request)

        messages = mock_client.post.call_args.kwargs["json"]["messages"]
        assert messages[0] == {"role": "system", "content": "Be terse"}
        assert messages[1]["role"] == "user"

    @pytest.mark.asyncio
    async def test_http_error(self):
        """HTTP status errors become failures."""
        provider = _provider()
        request = GenerationRequest(prompt="Hi", task_type="t")
        error_response = MagicMock(status_code=500, text="server exploded")

        with patch("httpx.AsyncClient") as mock_client_class:
            _, mock_response = _mock_http(mock_client_class, body=_completion())
            mock_response.raise_for_status.side_effect = httpx.HTTPStatusError(
                "boom", request=MagicMock(), response=error_response
            )
            result = await provider.generate(request)

        assert not result.success
        assert "500" in result.error
        assert "server exploded" in result.error

    @pytest.mark.asyncio
    async def test_transport_error(self):
        """Connection errors become failures."""
        provider = _provider()
        request = GenerationRequest(prompt="Hi", task_type="t")

        with patch("httpx.AsyncClient") as mock_client_class:
            _mock_http(mock_client_class, post_error=httpx.ConnectError("refused"))
            result = await provider.generate(request)

        assert not result.success
        assert "refused" in result.error

    @pytest.mark.asyncio
    async def test_missing_choices_is_malformed(self):
        """Responses without choices are reported as malformed."""
        provider = _provider()
        request = GenerationRequest(prompt="Hi", task_type="t")

        with patch("httpx.AsyncClient") as mock_client_class:
            _mock_http(mock_client_class, body={"choices": []})
            result = await provider.generate(request)

        assert not result.success
        assert result.error == "malformed response"

    @pytest.mark.asyncio
    async def test_invalid_json_is_malformed(self):
        """Test non-JSON body."""
        provider = _provider()
        request = GenerationRequest(prompt="Hi", task_type="t")

        with patch("httpx.AsyncClient") as mock_client_class:
            _mock_http(mock_client_class, json_error=json.JSONDecodeError("bad", "doc", 0))
            result = await provider.generate(request)

        assert result.error == "malformed response"

    @pytest.mark.asyncio
    async def test_empty_content_is_failure(self):
        """Blank content is not a usable completion."""
        provider = _provider()
        request = GenerationRequest(prompt="Hi", task_type="t")

        with patch("httpx.AsyncClient") as mock_client_class:
            _mock_http(mock_client_class, body=_completion(content="  "))
            result = await provider.generate(request)

        assert not result.success
        assert result.error == "empty response"


# ============================================================================
# Tier routing
# ============================================================================


class TestTieredGenerationClient:
    """Tests for routing by compute tier."""

    def test_requires_provider(self):
        with pytest.raises(ValueError):
            TieredGenerationClient({})

    def test_exact_tier(self):
        lite, advanced = _provider(ComputeTier.LITE), _provider(ComputeTier.ADVANCED)
        client = TieredGenerationClient({ComputeTier.LITE: lite, ComputeTier.ADVANCED: advanced})
        assert client.provider_for(ComputeTier.ADVANCED) is advanced

    def test_escalates_to_more_capable_tier(self):
        standard, advanced = _provider(), _provider(ComputeTier.ADVANCED)
        client = TieredGenerationClient(
            {ComputeTier.STANDARD: standard, ComputeTier.ADVANCED: advanced}
        )
        assert client.provider_for(ComputeTier.LITE) is standard

    def test_falls_back_to_default(self):
        lite = _provider(ComputeTier.LITE)
        client = TieredGenerationClient({ComputeTier.LITE: lite})
        assert client.provider_for(ComputeTier.ADVANCED) is lite
        assert client.provider_for(None) is lite

    @pytest.mark.asyncio
    async def test_generate_routes_by_hint(self):
        lite, standard = _provider(ComputeTier.LITE), _provider()
        lite.generate = AsyncMock(return_value=GenerationResult.ok("from lite"))
        standard.generate = AsyncMock(return_value=GenerationResult.ok("from standard"))
        client = TieredGenerationClient({ComputeTier.LITE: lite, ComputeTier.STANDARD: standard})

        request = GenerationRequest(prompt="x", task_type="t", tier_hint=ComputeTier.LITE)
        result = await client.generate(request)

        assert result.content == "from lite"
        standard.generate.assert_not_called()


class TestGenerationResult:
    def test_unwrap_success(self):
        assert GenerationResult.ok("text").unwrap() == "text"

    def test_unwrap_failure_raises(self):
        with pytest.raises(GenerationError, match="timeout"):
            GenerationResult.failure("timeout", model="m").unwrap()
