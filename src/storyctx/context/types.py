"""Context types - Data structures for campaign working memory.

This module defines the types shared by the store, ranker, allocator,
compression pipeline and cache:
- Layer/LayerKind: A single fragment of campaign working memory
- ConversationMemory/Interaction: Rolling per-session memory
- CampaignSummary: Optional aggregated overview
- SelectionCriteria/PriorityWeights/StoryPhase: What a caller asks for
- SelectionResult: What a selection produces
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class LayerKind(Enum):
    """Kind of context layer."""

    IMMEDIATE = "immediate"
    SESSION = "session"
    LONG_TERM = "long-term"
    CHARACTER = "character"
    STORY = "story"
    WORLD_STATE = "world-state"
    QUEST = "quest"


class StoryPhase(Enum):
    """Narrative phase of a campaign."""

    SETUP = "setup"
    DEVELOPMENT = "development"
    CLIMAX = "climax"
    RESOLUTION = "resolution"


class CompressionLevel(Enum):
    """Fidelity level applied by the compression pipeline.

    - NONE: Text already fit the budget
    - LIGHT: Whitespace normalization only
    - MEDIUM: Section-wise keep or summarize
    - HEAVY: Key-point extraction (or word truncation on failure)
    """

    NONE = "none"
    LIGHT = "light"
    MEDIUM = "medium"
    HEAVY = "heavy"


class AdaptationStrategy(Enum):
    CONSERVATIVE = "conservative"
    BALANCED = "balanced"
    AGGRESSIVE = "aggressive"


@dataclass(frozen=True)
class Layer:
    """A single context layer.

    Layers are appended by callers and never mutated in place.

    Attributes:
        id: Store-assigned identifier (``"{kind}_{n}"``)
        kind: Layer kind
        text: Layer content
        created_at: Creation time (epoch seconds)
        importance: Importance on a 1-10 scale
        token_estimate: ``estimate_tokens(text)``
        seq: Insertion order within the campaign
        tags: Free-form tags
        character_ids: Characters this layer concerns
        story_beat_id: Story beat reference
        quest_id: Quest reference
        permanent: Marks story memory that should always be considered
    """

    id: str
    kind: LayerKind
    text: str
    created_at: float
    importance: int
    token_estimate: int
    seq: int = 0
    tags: tuple[str, ...] = ()
    character_ids: tuple[str, ...] = ()
    story_beat_id: Optional[str] = None
    quest_id: Optional[str] = None
    permanent: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "text": self.text,
            "created_at": self.created_at,
            "importance": self.importance,
            "token_estimate": self.token_estimate,
            "tags": list(self.tags),
            "character_ids": list(self.character_ids),
            "story_beat_id": self.story_beat_id,
            "quest_id": self.quest_id,
            "permanent": self.permanent,
        }


@dataclass
class Interaction:
    """One exchange recorded in conversation memory."""

    timestamp: float
    speaker: str
    message: str
    response: str
    context: str
    importance: int = 5


@dataclass
class ConversationMemory:
    """Rolling conversation memory for a session.

    Attributes:
        session_id: Session identifier
        interactions: Recorded exchanges, oldest first
        summary: Optional rolling summary
        last_updated: When the memory last changed (epoch seconds)
    """

    session_id: str
    interactions: list[Interaction] = field(default_factory=list)
    summary: str = ""
    last_updated: float = field(default_factory=time.time)


@dataclass
class CampaignSummary:
    """Aggregated overview of a campaign.

    Attributes:
        campaign_overview: High level description
        recent_events: Recent happenings
        character_states: Where the characters stand
        world_state: Current state of the world
        current_situation: What is happening right now
        total_tokens: Token estimate of the rendered summary
        compression_level: How condensed the summary is (1-10)
        last_updated: When the summary was written (epoch seconds)
    """

    campaign_overview: str
    recent_events: str = ""
    character_states: str = ""
    world_state: str = ""
    current_situation: str = ""
    total_tokens: int = 0
    compression_level: int = 1
    last_updated: float = field(default_factory=time.time)

    def render(self) -> str:
        """Render the summary as context sections."""
        return (
            f"CAMPAIGN OVERVIEW:\n{self.campaign_overview}\n\n"
            f"RECENT EVENTS:\n{self.recent_events}\n\n"
            f"CHARACTER STATES:\n{self.character_states}\n\n"
            f"WORLD STATE:\n{self.world_state}\n\n"
            f"CURRENT SITUATION:\n{self.current_situation}\n\n"
        )


@dataclass(frozen=True)
class PriorityWeights:
    """Independent weights applied by the relevance ranker."""

    story_relevance: float = 1.0
    character_relevance: float = 1.0
    recency: float = 1.0
    importance: float = 1.0
    quest_relevance: float = 1.0


@dataclass(frozen=True)
class SelectionCriteria:
    """What a caller asks the selector for.

    Attributes:
        task_type: Kind of work the context is for (e.g. "story_progression")
        current_situation: Free text describing the moment
        character_ids: Characters involved
        story_phase: Narrative phase
        max_tokens: Token budget for the selected context
        priority_weights: Ranker weights
    """

    task_type: str
    max_tokens: int
    current_situation: str = ""
    character_ids: tuple[str, ...] = ()
    story_phase: StoryPhase = StoryPhase.DEVELOPMENT
    priority_weights: PriorityWeights = field(default_factory=PriorityWeights)

    def __post_init__(self) -> None:
        # Accept lists and plain strings from callers; keep the instance hashable
        object.__setattr__(self, "character_ids", tuple(self.character_ids))
        if not isinstance(self.story_phase, StoryPhase):
            object.__setattr__(self, "story_phase", StoryPhase(self.story_phase))


@dataclass(frozen=True)
class SelectionResult:
    """Outcome of a context selection.

    Attributes:
        selected_text: Assembled (and possibly compressed) context
        reasoning: Why these elements were chosen
        token_usage: ``estimate_tokens(selected_text)``
        effectiveness_score: Heuristic quality estimate in [0, 1]
        selected_layers: Layers admitted by the allocator, presentation order
        selection_time_ms: Wall time of the selection
        tier_used: Compute tier chosen for the selection task
        cache_hit: Whether this result came from the selection cache
        compression_level: Fidelity level the compression pipeline applied
    """

    selected_text: str
    reasoning: str
    token_usage: int
    effectiveness_score: float
    selected_layers: tuple[Layer, ...] = ()
    selection_time_ms: float = 0.0
    tier_used: str = ""
    cache_hit: bool = False
    compression_level: CompressionLevel = CompressionLevel.NONE


@dataclass
class AdaptationConfig:
    """Per-campaign context adaptation strategy."""

    story_phase: StoryPhase
    strategy: AdaptationStrategy = AdaptationStrategy.BALANCED
    max_adaptation_tokens: int = 1000
    preserve_elements: list[str] = field(default_factory=list)


@dataclass
class ContextStats:
    """Per-campaign layer statistics."""

    total_layers: int = 0
    total_tokens: int = 0
    layers_by_kind: dict[str, int] = field(default_factory=dict)


@dataclass
class MemoryStats:
    """Conversation memory statistics across sessions."""

    total_sessions: int = 0
    total_interactions: int = 0
    average_importance: float = 0.0


__all__ = [
    "AdaptationConfig",
    "AdaptationStrategy",
    "CampaignSummary",
    "CompressionLevel",
    "ContextStats",
    "ConversationMemory",
    "Interaction",
    "Layer",
    "LayerKind",
    "MemoryStats",
    "PriorityWeights",
    "SelectionCriteria",
    "SelectionResult",
    "StoryPhase",
]
