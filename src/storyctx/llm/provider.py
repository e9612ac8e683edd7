"""LLM Provider - Direct HTTP calls to OpenAI-compatible APIs.

Implements the generation capability used by the compression pipeline.
Transport errors, HTTP errors and malformed responses are reported as
``GenerationResult.failure`` rather than raised.
"""

from __future__ import annotations

import json
import logging
import os
from typing import TYPE_CHECKING, Optional

import httpx
from opentelemetry import trace
from pydantic import ValidationError

from ..complexity.types import ComputeTier
from .config import LLMConfig
from .types import ChatCompletion, GenerationRequest, GenerationResult

if TYPE_CHECKING:
    from ..config import EngineConfig

logger = logging.getLogger(__name__)

# Get tracer for LLM operation spans
tracer = trace.get_tracer(__name__)


class LLMProvider:
    """Generation client for a single OpenAI-compatible endpoint."""

    # Pre-configured popular providers
    OPENAI = LLMConfig(
        base_url="https://api.openai.com/v1",
        model="gpt-4o-mini",
        api_key=os.getenv("OPENAI_API_KEY"),
        temperature=0.7,
        max_tokens=4096,
        timeout_ms=30000,
        tier=ComputeTier.STANDARD,
    )

    DEEPSEEK = LLMConfig(
        base_url="https://api.deepseek.com/v1",
        model="deepseek-chat",
        api_key=os.getenv("DEEPSEEK_API_KEY"),
        temperature=0.7,
        max_tokens=4096,
        timeout_ms=30000,
        tier=ComputeTier.STANDARD,
    )

    LOCAL = LLMConfig(
        base_url="http://localhost:8000/v1",
        model="qwen2.5-0.5b-instruct",
        temperature=0.8,
        max_tokens=2048,
        timeout_ms=30000,
        tier=ComputeTier.LITE,
    )

    def __init__(self, config: Optional[LLMConfig] = None):
        """Initialize LLM provider.

        Args:
            config: LLM configuration (defaults to LOCAL)
        """
        self.config = config or self.LOCAL

    @classmethod
    def from_name(cls, provider_name: str) -> LLMProvider:
        """Create provider from a preset name ("openai", "deepseek", "local").

        Raises:
            ValueError: Unknown preset name
        """
        configs = {
            "openai": cls.OPENAI,
            "deepseek": cls.DEEPSEEK,
            "local": cls.LOCAL,
        }
        config = configs.get(provider_name.lower())
        if not config:
            raise ValueError(
                f"Unknown provider: {provider_name}. Choose from: {list(configs.keys())}"
            )
        return cls(config)

    @classmethod
    def from_config(cls, provider_name: str, engine_config: EngineConfig) -> LLMProvider:
        """Create provider from a ``[llm.<provider_name>]`` section.

        Falls back to built-in presets if the section is absent.
        """
        if provider_name in engine_config.llm_providers:
            provider_cfg = engine_config.llm_providers[provider_name]
            llm_config = LLMConfig(
                base_url=provider_cfg.api_base or "http://localhost:8000/v1",
                model=provider_cfg.model or "unknown",
                api_key=provider_cfg.api_key,
                temperature=provider_cfg.temperature,
                max_tokens=provider_cfg.max_tokens,
                timeout_ms=int(provider_cfg.timeout_sec * 1000),
                tier=provider_cfg.tier,
            )
            logger.info("[storyctx] Loaded provider '%s' from storyctx.toml", provider_name)
            return cls(llm_config)

        logger.info(
            "[storyctx] Provider '%s' not in storyctx.toml, using built-in preset", provider_name
        )
        return cls.from_name(provider_name)

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Run a chat completion for the request.

        Args:
            request: Generation request

        Returns:
            GenerationResult; ``success=False`` on any transport, HTTP or
            response-shape failure
        """
        temp = request.temperature
        tokens = request.max_output_tokens or self.config.max_tokens
        timeout = self.config.timeout_ms / 1000.0

        with tracer.start_as_current_span(
            "llm.generate",
            attributes={
                "llm.provider": self.config.base_url,
                "llm.model": self.config.model,
                "llm.tier": self.config.tier.value,
                "llm.task_type": request.task_type,
                "llm.temperature": temp,
                "llm.max_tokens": tokens,
                "llm.prompt.length": len(request.prompt),
            },
        ) as span:
            messages = []
            if request.system:
                messages.append({"role": "system", "content": request.system})
            messages.append({"role": "user", "content": request.prompt})

            payload = {
                "model": self.config.model,
                "messages": messages,
                "temperature": temp,
                "max_tokens": tokens,
            }

            headers = {"Content-Type": "application/json"}
            if self.config.api_key:
                headers["Authorization"] = f"Bearer {self.config.api_key}"

            url = f"{self.config.base_url.rstrip('/')}/chat/completions"

            try:
                async with httpx.AsyncClient(timeout=timeout) as client:
                    response = await client.post(url, json=payload, headers=headers)
                    response.raise_for_status()
                    body = response.json()
            except httpx.HTTPStatusError as e:
                error_msg = f"LLM HTTP error {e.response.status_code}: {e.response.text}"
                return self._fail(span, error_msg, e)
            except httpx.HTTPError as e:
                return self._fail(span, f"LLM request failed: {e}", e)
            except json.JSONDecodeError as e:
                return self._malformed(span, e)

            try:
                completion = ChatCompletion.model_validate(body)
            except ValidationError as e:
                return self._malformed(span, e)

            generated_text = completion.choices[0].message.content or ""
            if not generated_text.strip():
                span.set_attribute("llm.status", "empty")
                logger.warning("[storyctx] Empty LLM response from %s", self.config.model)
                return GenerationResult.failure("empty response", model=self.config.model)

            span.set_attribute("llm.response.length", len(generated_text))
            span.set_attribute("llm.status", "success")
            usage = {}
            if completion.usage is not None:
                usage = completion.usage.model_dump()
                span.set_attribute("llm.usage.prompt_tokens", completion.usage.prompt_tokens)
                span.set_attribute(
                    "llm.usage.completion_tokens", completion.usage.completion_tokens
                )
            span.set_status(trace.Status(trace.StatusCode.OK))

            return GenerationResult.ok(
                generated_text, model=completion.model or self.config.model, usage=usage
            )

    def _fail(self, span, error_msg: str, exc: Exception) -> GenerationResult:
        span.set_attribute("llm.status", "error")
        span.set_status(trace.Status(trace.StatusCode.ERROR, error_msg))
        span.record_exception(exc)
        logger.warning("[storyctx] %s", error_msg)
        return GenerationResult.failure(error_msg, model=self.config.model)

    def _malformed(self, span, exc: Exception) -> GenerationResult:
        span.set_attribute("llm.status", "malformed")
        span.record_exception(exc)
        logger.warning("[storyctx] Malformed LLM response from %s: %s", self.config.model, exc)
        return GenerationResult(
            success=False, content="", error="malformed response", model=self.config.model
        )


class TieredGenerationClient:
    """Routes generation requests to a provider by compute tier.

    A request's ``tier_hint`` picks the provider bound to that tier; without a
    match the next more capable tier is tried, then the default provider.
    """

    def __init__(
        self,
        providers: dict[ComputeTier, LLMProvider],
        default: Optional[LLMProvider] = None,
    ):
        if not providers and default is None:
            raise ValueError("TieredGenerationClient needs at least one provider")
        self.providers = dict(providers)
        self.default = default or next(iter(self.providers.values()))

    def provider_for(self, tier: Optional[ComputeTier]) -> LLMProvider:
        if tier is None:
            return self.default
        order = list(ComputeTier)
        for candidate in order[order.index(tier) :]:
            if candidate in self.providers:
                return self.providers[candidate]
        return self.default

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        return await self.provider_for(request.tier_hint).generate(request)


__all__ = ["LLMProvider", "TieredGenerationClient"]
