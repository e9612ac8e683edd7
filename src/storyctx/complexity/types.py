"""Complexity types - Data structures for task classification.

- ComplexityTier: How demanding a unit of work is
- ComputeTier: Cost/capability level of a generation call
- ContextDependency: How much surrounding context a task leans on
- ComplexityProfile: Full assessment of a task
- GenerationTask: The unit of work being classified
- Classification: Profile plus the chosen compute tier
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ComplexityTier(Enum):
    ULTRA_SIMPLE = "ultra-simple"
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class ComputeTier(Enum):
    """Compute tier for a generation call, cheapest first."""

    LITE = "lite"
    STANDARD = "standard"
    ADVANCED = "advanced"


class ContextDependency(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class ComplexityProfile:
    """Assessment of a task's demands.

    Attributes:
        tier: Complexity tier
        estimated_tokens: Token estimate of prompt plus context
        requires_creativity: Creative writing expected
        context_dependency: Reliance on surrounding context
        reasoning_required: Multi-step reasoning expected
        confidence: Confidence in the assessment (0.0 - 1.0)
    """

    tier: ComplexityTier
    estimated_tokens: int
    requires_creativity: bool
    context_dependency: ContextDependency
    reasoning_required: bool
    confidence: float


@dataclass
class GenerationTask:
    """A unit of work that needs a compute tier.

    Only ``type`` and ``prompt`` are required. ``complexity`` overrides
    classification outright; the remaining optional fields fill in the
    profile when it does.
    """

    type: str
    prompt: str
    context: Optional[str] = None
    id: Optional[str] = None
    complexity: Optional[ComplexityTier] = None
    estimated_tokens: Optional[int] = None
    requires_creativity: Optional[bool] = None
    context_dependency: Optional[ContextDependency] = None
    reasoning_required: Optional[bool] = None


@dataclass(frozen=True)
class Classification:
    """Classifier output.

    Attributes:
        profile: Complexity profile
        compute_tier: Chosen compute tier
        reason: Why this tier was chosen
        source: "override", "rule", "dynamic" or "fallback"
    """

    profile: ComplexityProfile
    compute_tier: ComputeTier
    reason: str
    source: str

    @property
    def confidence(self) -> float:
        return self.profile.confidence


__all__ = [
    "Classification",
    "ComplexityProfile",
    "ComplexityTier",
    "ComputeTier",
    "ContextDependency",
    "GenerationTask",
]
