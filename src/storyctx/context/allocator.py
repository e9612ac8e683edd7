"""Budget Allocator - Tiered greedy admission of layers under a token ceiling.

Selection runs in two steps:

1. ``plan_elements`` turns the task type, story phase and character list
   into three ordered lists of element names (required, priority, optional).
2. ``BudgetAllocator.allocate`` walks required -> priority -> optional,
   and within a tier each element name in declared order, admitting every
   matching layer whole if it fits in the remaining budget. A layer that does
   not fit is skipped, never truncated and never swapped for a smaller one.

The admitted set is finally ordered for presentation by relevance score,
then importance, then insertion order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from .ranking import RelevanceRanker
from .types import Layer, LayerKind, SelectionCriteria, StoryPhase
from .window import TokenBudget

logger = logging.getLogger(__name__)

ElementPredicate = Callable[[Layer, SelectionCriteria], bool]


def _is_kind(layer: Layer, kind: LayerKind) -> bool:
    return layer.kind is kind


def _kind_at_least(kind: LayerKind, importance: int) -> ElementPredicate:
    def predicate(layer: Layer, criteria: SelectionCriteria) -> bool:
        return layer.kind is kind and layer.importance >= importance

    return predicate


def _current_story_beat(layer: Layer, criteria: SelectionCriteria) -> bool:
    return _is_kind(layer, LayerKind.STORY) and bool(layer.story_beat_id)


def _character_development(layer: Layer, criteria: SelectionCriteria) -> bool:
    return _is_kind(layer, LayerKind.CHARACTER) and any(
        cid in criteria.character_ids for cid in layer.character_ids
    )


def _character_relationships(layer: Layer, criteria: SelectionCriteria) -> bool:
    return _is_kind(layer, LayerKind.CHARACTER) and len(layer.character_ids) > 1


ELEMENT_PREDICATES: dict[str, ElementPredicate] = {
    "current_story_beat": _current_story_beat,
    "character_development": _character_development,
    "world_state": lambda layer, criteria: _is_kind(layer, LayerKind.WORLD_STATE),
    "quest_progress": lambda layer, criteria: (
        _is_kind(layer, LayerKind.QUEST) and bool(layer.quest_id)
    ),
    "story_memory": lambda layer, criteria: layer.permanent,
    "character_relationships": _character_relationships,
    "relationship_mapping": _character_relationships,
    "character_milestones": _kind_at_least(LayerKind.CHARACTER, 8),
    "world_building": _kind_at_least(LayerKind.WORLD_STATE, 7),
    "character_introduction": _kind_at_least(LayerKind.CHARACTER, 6),
    "quest_completion": _kind_at_least(LayerKind.QUEST, 8),
    "world_state_changes": _kind_at_least(LayerKind.WORLD_STATE, 6),
    "general_lore": _kind_at_least(LayerKind.LONG_TERM, 5),
    "historical_events": _kind_at_least(LayerKind.LONG_TERM, 6),
}

# task type -> (required, priority, optional)
TASK_ELEMENTS: dict[str, tuple[tuple[str, ...], tuple[str, ...], tuple[str, ...]]] = {
    "story_progression": (
        ("current_story_beat", "character_development", "world_state"),
        ("quest_progress", "story_memory"),
        ("general_lore", "historical_events"),
    ),
    "character_interaction": (
        ("character_development", "relationship_mapping"),
        ("current_story_beat", "character_milestones"),
        ("world_state", "quest_progress"),
    ),
    "quest_management": (
        ("quest_progress", "current_story_beat"),
        ("character_development", "world_state"),
        ("story_memory", "general_lore"),
    ),
    "world_building": (
        ("world_state", "story_memory"),
        ("current_story_beat", "character_development"),
        ("quest_progress", "historical_events"),
    ),
}

DEFAULT_ELEMENTS = (
    ("current_story_beat", "character_development"),
    ("world_state", "quest_progress"),
    ("story_memory", "general_lore"),
)

# story phase -> (extra required, extra priority); applied only with a story snapshot
PHASE_ELEMENTS: dict[StoryPhase, tuple[tuple[str, ...], tuple[str, ...]]] = {
    StoryPhase.SETUP: ((), ("world_building", "character_introduction")),
    StoryPhase.DEVELOPMENT: ((), ("character_development", "quest_progress")),
    StoryPhase.CLIMAX: (("story_memory", "character_milestones"), ("world_state_changes",)),
    StoryPhase.RESOLUTION: (
        ("story_memory", "character_development"),
        ("quest_completion", "world_state"),
    ),
}


@dataclass
class ElementPlan:
    """Element names per allocation tier.

    Attributes:
        required: Admitted first
        priority: Admitted second
        optional: Admitted last, if space allows
        reasoning: Human readable explanation
    """

    required: list[str] = field(default_factory=list)
    priority: list[str] = field(default_factory=list)
    optional: list[str] = field(default_factory=list)
    reasoning: str = ""

    def tiers(self) -> list[tuple[str, list[str]]]:
        return [
            ("required", self.required),
            ("priority", self.priority),
            ("optional", self.optional),
        ]


def plan_elements(criteria: SelectionCriteria, has_story_context: bool = False) -> ElementPlan:
    """Derive the element plan for a request.

    Args:
        criteria: Selection criteria
        has_story_context: Whether the campaign has a story snapshot; phase
            specific elements are only added when it does

    Returns:
        ElementPlan with tiers in declared order
    """
    required, priority, optional = TASK_ELEMENTS.get(criteria.task_type, DEFAULT_ELEMENTS)
    plan = ElementPlan(required=list(required), priority=list(priority), optional=list(optional))

    if has_story_context:
        extra_required, extra_priority = PHASE_ELEMENTS[criteria.story_phase]
        plan.required.extend(extra_required)
        plan.priority.extend(extra_priority)

    if criteria.character_ids:
        plan.required.append("character_relationships")
        plan.priority.append("character_development")

    plan.reasoning = (
        f"Context analysis for {criteria.task_type} in {criteria.story_phase.value} phase "
        f"with {len(criteria.character_ids)} characters involved. "
        f"Required: {', '.join(plan.required)}. Priority: {', '.join(plan.priority)}."
    )
    return plan


def find_matching_layers(
    layers: Iterable[Layer], element: str, criteria: SelectionCriteria
) -> list[Layer]:
    """Layers matching a named element, in insertion order.

    Unknown element names match every layer.
    """
    predicate = ELEMENT_PREDICATES.get(element)
    if predicate is None:
        return list(layers)
    return [layer for layer in layers if predicate(layer, criteria)]


@dataclass
class Allocation:
    """Result of a budget allocation pass.

    Attributes:
        layers: Admitted layers in presentation order
        tokens_used: Sum of admitted token estimates
        budget: Budget the pass ran against
        skipped: Matching layers rejected for lack of space (first rejection only)
        plan: Element plan that drove the pass
        tier_of: Layer id -> tier that admitted it
    """

    layers: list[Layer]
    tokens_used: int
    budget: int
    skipped: list[Layer] = field(default_factory=list)
    plan: Optional[ElementPlan] = None
    tier_of: dict[str, str] = field(default_factory=dict)


class BudgetAllocator:
    """Greedy first-tier-first allocator.

    Example:
        allocator = BudgetAllocator(RelevanceRanker())
        allocation = allocator.allocate(store.get_layers(cid), criteria)
    """

    def __init__(self, ranker: Optional[RelevanceRanker] = None):
        self.ranker = ranker or RelevanceRanker()

    def allocate(
        self,
        layers: list[Layer],
        criteria: SelectionCriteria,
        plan: Optional[ElementPlan] = None,
    ) -> Allocation:
        """Admit layers tier by tier until the budget runs out.

        A layer matched by several elements is admitted at most once.

        Args:
            layers: Candidate layers in insertion order
            criteria: Selection criteria (``max_tokens`` is the budget)
            plan: Element plan; derived from criteria when omitted

        Returns:
            Allocation with layers ordered for presentation
        """
        plan = plan or plan_elements(criteria)
        budget = TokenBudget(total=max(0, criteria.max_tokens))

        admitted: list[Layer] = []
        tier_of: dict[str, str] = {}
        skipped: dict[str, Layer] = {}

        for tier, elements in plan.tiers():
            for element in elements:
                for layer in find_matching_layers(layers, element, criteria):
                    if layer.id in tier_of:
                        continue
                    if budget.fits(layer.token_estimate):
                        admitted.append(layer)
                        tier_of[layer.id] = tier
                        budget.consume(layer.token_estimate)
                    else:
                        skipped.setdefault(layer.id, layer)

        if skipped:
            logger.debug(
                "[storyctx] Allocation skipped %d layer(s) over budget (remaining=%d)",
                len(skipped),
                budget.remaining,
            )

        return Allocation(
            layers=self.ranker.order(admitted, criteria),
            tokens_used=budget.used,
            budget=budget.total,
            skipped=list(skipped.values()),
            plan=plan,
            tier_of=tier_of,
        )


__all__ = [
    "Allocation",
    "BudgetAllocator",
    "DEFAULT_ELEMENTS",
    "ELEMENT_PREDICATES",
    "ElementPlan",
    "PHASE_ELEMENTS",
    "TASK_ELEMENTS",
    "find_matching_layers",
    "plan_elements",
]
