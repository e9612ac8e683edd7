"""Relevance Ranker - Score context layers against a selection request.

score = importance * 0.3
      + recency * weights.recency * 0.2
      + character_overlap * weights.character_relevance * 0.3
      + story_bonus * weights.story_relevance * 0.2

Scoring is a pure function of the layer, the criteria and the time passed
in by the caller.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Iterable

from .types import Layer, SelectionCriteria

RECENCY_WINDOW_HOURS = 24.0


@dataclass(frozen=True)
class ScoredLayer:
    """A layer with its relevance score.

    Attributes:
        layer: The scored layer
        score: Relevance score (unbounded, importance dominated)
    """

    layer: Layer
    score: float

    def sort_key(self) -> tuple[float, int, int]:
        """Score desc, then importance desc, then insertion order."""
        return (-self.score, -self.layer.importance, self.layer.seq)


def recency_factor(layer: Layer, now: float) -> float:
    """Linear decay from 1.0 (just created) to 0.0 at 24 hours."""
    age_hours = max(0.0, now - layer.created_at) / 3600.0
    return max(0.0, 1.0 - age_hours / RECENCY_WINDOW_HOURS)


def character_overlap(layer: Layer, criteria: SelectionCriteria) -> float:
    """Fraction of the requested characters this layer concerns."""
    if not criteria.character_ids:
        return 0.0
    wanted = set(criteria.character_ids)
    shared = sum(1 for cid in set(layer.character_ids) if cid in wanted)
    return shared / len(wanted)


def story_bonus(layer: Layer) -> float:
    return 1.0 if (layer.story_beat_id or layer.quest_id) else 0.0


def score_layer(layer: Layer, criteria: SelectionCriteria, now: float) -> float:
    """Relevance score of a layer for the given criteria at time ``now``."""
    weights = criteria.priority_weights
    return (
        layer.importance * 0.3
        + recency_factor(layer, now) * weights.recency * 0.2
        + character_overlap(layer, criteria) * weights.character_relevance * 0.3
        + story_bonus(layer) * weights.story_relevance * 0.2
    )


class RelevanceRanker:
    """Ranks layers by relevance to a selection request.

    Example:
        ranker = RelevanceRanker()
        ordered = ranker.order(selected_layers, criteria)
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock

    def score(self, layer: Layer, criteria: SelectionCriteria) -> float:
        return score_layer(layer, criteria, self._clock())

    def rank(self, layers: Iterable[Layer], criteria: SelectionCriteria) -> list[ScoredLayer]:
        """Score layers and sort them by the composite presentation order.

        All layers are scored against a single ``now`` so the ordering is
        consistent within one call.
        """
        now = self._clock()
        scored = [ScoredLayer(layer, score_layer(layer, criteria, now)) for layer in layers]
        return sorted(scored, key=ScoredLayer.sort_key)

    def order(self, layers: Iterable[Layer], criteria: SelectionCriteria) -> list[Layer]:
        return [item.layer for item in self.rank(layers, criteria)]


__all__ = [
    "RelevanceRanker",
    "ScoredLayer",
    "character_overlap",
    "recency_factor",
    "score_layer",
    "story_bonus",
]
