"""LLM Types - The generation capability contract.

- GenerationRequest: Closed request shape for a generation call
- GenerationResult: Explicit success/failure outcome
- GenerationClient: Protocol every generation backend implements
- ChatCompletion: Validated shape of an OpenAI-compatible response
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol

from pydantic import BaseModel, Field

from ..complexity.types import ComputeTier
from ..errors import GenerationError


@dataclass(frozen=True)
class GenerationRequest:
    """A generation call.

    Attributes:
        prompt: User prompt
        task_type: Task label for routing and tracing
        temperature: Sampling temperature
        max_output_tokens: Output token ceiling
        tier_hint: Preferred compute tier
        system: Optional system prompt
    """

    prompt: str
    task_type: str
    temperature: float = 0.3
    max_output_tokens: int = 200
    tier_hint: Optional[ComputeTier] = None
    system: Optional[str] = None


@dataclass(frozen=True)
class GenerationResult:
    """Outcome of a generation call.

    Attributes:
        success: Whether content was produced
        content: Generated text ("" on failure)
        error: Failure description
        model: Model that produced the content
        usage: Token usage reported by the provider
    """

    success: bool
    content: str = ""
    error: Optional[str] = None
    model: Optional[str] = None
    usage: dict[str, int] = field(default_factory=dict)

    @classmethod
    def ok(
        cls, content: str, model: Optional[str] = None, usage: Optional[dict] = None
    ) -> GenerationResult:
        return cls(success=True, content=content, model=model, usage=usage or {})

    @classmethod
    def failure(cls, error: str, model: Optional[str] = None) -> GenerationResult:
        return cls(success=False, error=error, model=model)

    def unwrap(self) -> str:
        """Return the content, raising GenerationError on failure."""
        if not self.success:
            raise GenerationError(self.error or "generation failed", model=self.model)
        return self.content


class GenerationClient(Protocol):
    """Generation capability consumed by the compression pipeline.

    Implementations must not raise for transport or provider errors; they
    report them as ``GenerationResult.failure``.
    """

    async def generate(self, request: GenerationRequest) -> GenerationResult: ...


class ChatMessage(BaseModel):
    role: str = "assistant"
    content: Optional[str] = None


class ChatChoice(BaseModel):
    message: ChatMessage
    finish_reason: Optional[str] = None


class ChatUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletion(BaseModel):
    """Subset of the chat completions response we rely on."""

    model: Optional[str] = None
    choices: list[ChatChoice] = Field(min_length=1)
    usage: Optional[ChatUsage] = None


__all__ = [
    "ChatChoice",
    "ChatCompletion",
    "ChatMessage",
    "ChatUsage",
    "GenerationClient",
    "GenerationRequest",
    "GenerationResult",
]
