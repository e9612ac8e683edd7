"""Complexity module - Task classification and compute tier choice.

- TaskComplexityClassifier: Rule lookup with heuristic fallback
- ComplexityProfile/ComplexityTier: Assessment types
- ComputeTier: Cost/capability level handed to generation calls
"""

from .classifier import (
    CREATIVITY_KEYWORDS,
    DEFAULT_RULES,
    REASONING_KEYWORDS,
    TaskComplexityClassifier,
    select_compute_tier,
)
from .types import (
    Classification,
    ComplexityProfile,
    ComplexityTier,
    ComputeTier,
    ContextDependency,
    GenerationTask,
)

__all__ = [
    "TaskComplexityClassifier",
    "select_compute_tier",
    "DEFAULT_RULES",
    "CREATIVITY_KEYWORDS",
    "REASONING_KEYWORDS",
    "Classification",
    "ComplexityProfile",
    "ComplexityTier",
    "ComputeTier",
    "ContextDependency",
    "GenerationTask",
]
