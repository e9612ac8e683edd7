"""Task Complexity Classifier - Map a unit of work to a compute tier.

Classification order:
1. An explicit ``complexity`` on the task wins
2. A known task type uses its precomputed profile
3. Anything else is assessed from prompt and context text

Classification never raises; an internal failure yields the cheapest
tier with confidence 0.5.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..context.window import estimate_tokens
from .types import (
    Classification,
    ComplexityProfile,
    ComplexityTier,
    ComputeTier,
    ContextDependency,
    GenerationTask,
)

logger = logging.getLogger(__name__)

CREATIVITY_KEYWORDS = frozenset(
    {
        "create",
        "generate",
        "imagine",
        "describe",
        "story",
        "narrative",
        "character",
        "world",
        "scenario",
        "adventure",
        "quest",
        "plot",
    }
)

REASONING_KEYWORDS = frozenset(
    {
        "analyze",
        "explain",
        "why",
        "how",
        "reason",
        "logic",
        "strategy",
        "plan",
        "decide",
        "choose",
        "compare",
        "evaluate",
        "solve",
    }
)


def _mentions_any(keywords, *texts: str) -> bool:
    # Substring match, so inflections like "characters" or "explained" count.
    return any(k in text for k in keywords for text in texts)


def _profile(
    tier: ComplexityTier,
    tokens: int,
    creativity: bool,
    dependency: ContextDependency,
    reasoning: bool,
    confidence: float,
) -> ComplexityProfile:
    return ComplexityProfile(
        tier=tier,
        estimated_tokens=tokens,
        requires_creativity=creativity,
        context_dependency=dependency,
        reasoning_required=reasoning,
        confidence=confidence,
    )


_LOW = ContextDependency.LOW
_MEDIUM = ContextDependency.MEDIUM
_HIGH = ContextDependency.HIGH

DEFAULT_RULES: dict[str, ComplexityProfile] = {
    "character_generation": _profile(ComplexityTier.MODERATE, 300, True, _MEDIUM, False, 0.9),
    "skill_check_result": _profile(ComplexityTier.ULTRA_SIMPLE, 100, False, _LOW, False, 0.95),
    "campaign_scenario_generation": _profile(ComplexityTier.COMPLEX, 800, True, _HIGH, True, 0.9),
    "story_response": _profile(ComplexityTier.MODERATE, 400, True, _HIGH, True, 0.85),
    "world_description": _profile(ComplexityTier.MODERATE, 350, True, _MEDIUM, False, 0.8),
    "npc_interaction": _profile(ComplexityTier.MODERATE, 250, True, _MEDIUM, False, 0.85),
    "combat_description": _profile(ComplexityTier.SIMPLE, 200, True, _LOW, False, 0.8),
    "quest_generation": _profile(ComplexityTier.COMPLEX, 600, True, _HIGH, True, 0.9),
    "basic_response": _profile(ComplexityTier.ULTRA_SIMPLE, 80, False, _LOW, False, 0.9),
    "system_message": _profile(ComplexityTier.ULTRA_SIMPLE, 50, False, _LOW, False, 0.95),
    "input_validation": _profile(ComplexityTier.ULTRA_SIMPLE, 60, False, _LOW, False, 0.9),
}

FALLBACK_CONFIDENCE = 0.5


def assess_context_dependency(context_length: int) -> ContextDependency:
    if context_length < 200:
        return ContextDependency.LOW
    if context_length < 800:
        return ContextDependency.MEDIUM
    return ContextDependency.HIGH


def select_compute_tier(profile: ComplexityProfile) -> ComputeTier:
    """Map a complexity profile to a compute tier."""
    if profile.tier is ComplexityTier.ULTRA_SIMPLE:
        return ComputeTier.LITE
    if profile.tier is ComplexityTier.SIMPLE:
        return ComputeTier.STANDARD
    if profile.tier is ComplexityTier.COMPLEX:
        return ComputeTier.ADVANCED

    # Moderate
    if profile.requires_creativity and profile.reasoning_required:
        return ComputeTier.ADVANCED
    if profile.context_dependency is ContextDependency.HIGH and profile.estimated_tokens > 400:
        return ComputeTier.ADVANCED
    # Creative work over 300 tokens and everything else moderate stays on standard
    return ComputeTier.STANDARD


def selection_reason(profile: ComplexityProfile, tier: ComputeTier) -> str:
    if tier is ComputeTier.LITE:
        if profile.tier is ComplexityTier.ULTRA_SIMPLE:
            return "Ultra-simple task - lite tier for cost efficiency"
        return "Lite tier selected for basic task"
    if tier is ComputeTier.STANDARD:
        if profile.tier is ComplexityTier.SIMPLE:
            return "Simple task - standard tier balances speed and capability"
        if profile.requires_creativity and not profile.reasoning_required:
            return "Creative task without complex reasoning - standard tier sufficient"
        return "Standard tier selected for moderate complexity task"
    if profile.tier is ComplexityTier.COMPLEX:
        return "Complex task - advanced tier required for reasoning and creativity"
    if profile.requires_creativity and profile.reasoning_required:
        return "Creative task requiring reasoning - advanced tier recommended"
    if profile.context_dependency is ContextDependency.HIGH and profile.estimated_tokens > 400:
        return "High context dependency with large token count - advanced tier recommended"
    return "Advanced tier selected for task requirements"


class TaskComplexityClassifier:
    """Classifies generation tasks into complexity and compute tiers.

    Constructed once and shared by reference with every consumer.

    Example:
        classifier = TaskComplexityClassifier()
        result = classifier.classify(GenerationTask(type="story_response", prompt="..."))
        result.compute_tier  # ComputeTier.ADVANCED
    """

    def __init__(self, rules: Optional[dict[str, ComplexityProfile]] = None):
        """Initialize classifier.

        Args:
            rules: Task type -> precomputed profile (defaults to DEFAULT_RULES)
        """
        self._rules = dict(DEFAULT_RULES if rules is None else rules)
        logger.info("[storyctx] Initialized %d task complexity rules", len(self._rules))

    @property
    def rules(self) -> dict[str, ComplexityProfile]:
        return dict(self._rules)

    def classify(self, task: GenerationTask) -> Classification:
        """Classify a task. Never raises."""
        try:
            return self._classify(task)
        except Exception as e:
            logger.error("[storyctx] Error in task classification: %s", e)
            profile = _profile(
                ComplexityTier.ULTRA_SIMPLE, 0, False, _LOW, False, FALLBACK_CONFIDENCE
            )
            return Classification(
                profile=profile,
                compute_tier=ComputeTier.LITE,
                reason="Fallback due to classification error",
                source="fallback",
            )

    def _classify(self, task: GenerationTask) -> Classification:
        if task.complexity is not None:
            profile = _profile(
                ComplexityTier(task.complexity),
                task.estimated_tokens if task.estimated_tokens is not None else 200,
                bool(task.requires_creativity),
                task.context_dependency or ContextDependency.MEDIUM,
                bool(task.reasoning_required),
                0.9,
            )
            return Classification(
                profile=profile,
                compute_tier=select_compute_tier(profile),
                reason=f"Predefined complexity: {profile.tier.value}",
                source="override",
            )

        rule = self._rules.get(task.type)
        if rule is not None:
            return Classification(
                profile=rule,
                compute_tier=select_compute_tier(rule),
                reason=f"Predefined complexity for task type: {task.type}",
                source="rule",
            )

        profile = self.assess(task)
        tier = select_compute_tier(profile)
        reason = selection_reason(profile, tier)
        logger.info(
            "[storyctx] Task classified: type=%s complexity=%s tier=%s confidence=%.2f",
            task.type,
            profile.tier.value,
            tier.value,
            profile.confidence,
        )
        return Classification(profile=profile, compute_tier=tier, reason=reason, source="dynamic")

    def assess(self, task: GenerationTask) -> ComplexityProfile:
        """Assess a task from its prompt and context text."""
        prompt = task.prompt or ""
        context = task.context or ""
        estimated = estimate_tokens(prompt + context)

        prompt_lower = prompt.lower()
        context_lower = context.lower()
        creativity = _mentions_any(CREATIVITY_KEYWORDS, prompt_lower, context_lower)
        reasoning = _mentions_any(REASONING_KEYWORDS, prompt_lower, context_lower)
        dependency = assess_context_dependency(len(context))

        if estimated < 100 and not creativity and not reasoning and dependency is _LOW:
            tier = ComplexityTier.ULTRA_SIMPLE
        elif estimated < 300 and not reasoning and dependency is _LOW:
            tier = ComplexityTier.SIMPLE
        elif estimated < 600 and not reasoning:
            tier = ComplexityTier.MODERATE
        else:
            tier = ComplexityTier.COMPLEX

        confidence = 0.8
        if len(prompt) > 50 and context:
            confidence += 0.1
        if tier in (ComplexityTier.ULTRA_SIMPLE, ComplexityTier.COMPLEX):
            confidence += 0.05

        return _profile(tier, estimated, creativity, dependency, reasoning, min(confidence, 0.95))


__all__ = [
    "CREATIVITY_KEYWORDS",
    "DEFAULT_RULES",
    "REASONING_KEYWORDS",
    "TaskComplexityClassifier",
    "assess_context_dependency",
    "select_compute_tier",
    "selection_reason",
]
