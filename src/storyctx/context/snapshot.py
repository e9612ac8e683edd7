"""Domain snapshot - Read access to a campaign's story state.

The selector reads the current story beat, character development, world
state, quest progress and story memory through ``SnapshotProvider``. The
real provider lives with the campaign domain; ``InMemorySnapshotProvider``
is the working-memory implementation used by the engine and tests.
"""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Optional, Protocol

from .locks import KeyedLocks

logger = logging.getLogger(__name__)


@dataclass
class StoryBeat:
    id: str
    title: str
    description: str
    type: str = "event"
    importance: str = "medium"
    chapter: int = 1
    act: int = 1
    status: str = "active"


@dataclass
class CharacterDevelopment:
    character_id: str
    title: str
    description: str
    type: str = "growth"
    impact: str = "medium"
    achieved_at: float = field(default_factory=time.time)


@dataclass
class WorldStateChange:
    title: str
    description: str
    type: str = "event"
    impact: str = "medium"
    occurred_at: float = field(default_factory=time.time)


@dataclass
class WorldState:
    current_state: str
    changes: list[WorldStateChange] = field(default_factory=list)


@dataclass
class QuestProgress:
    quest_id: str
    name: str
    status: str = "active"
    type: str = "main"
    story_impact: str = "medium"


@dataclass
class StoryContext:
    """Current narrative state of a campaign."""

    current_story_beat: Optional[StoryBeat] = None
    character_development: list[CharacterDevelopment] = field(default_factory=list)
    world_state: Optional[WorldState] = None
    quest_progress: list[QuestProgress] = field(default_factory=list)


@dataclass
class StoryMemory:
    """Story facts that are always carried forward.

    Attributes:
        permanent_elements: Facts that must never be forgotten
        character_milestones: Major character moments
        world_state_changes: Lasting changes to the world
        relationship_mapping: Character id -> related character ids
    """

    permanent_elements: list[str] = field(default_factory=list)
    character_milestones: list[str] = field(default_factory=list)
    world_state_changes: list[str] = field(default_factory=list)
    relationship_mapping: dict[str, list[str]] = field(default_factory=dict)


class SnapshotProvider(Protocol):
    """Synchronous read access to campaign story state."""

    def get_story_context(self, campaign_id: str) -> Optional[StoryContext]: ...

    def get_story_memory(self, campaign_id: str) -> Optional[StoryMemory]: ...


class InMemorySnapshotProvider:
    """Campaign story state held in process memory.

    Readers always receive copies, so a snapshot never changes underneath a
    selection in flight.
    """

    def __init__(self) -> None:
        self._contexts: dict[str, StoryContext] = {}
        self._memories: dict[str, StoryMemory] = {}
        self._locks = KeyedLocks()

    def get_story_context(self, campaign_id: str) -> Optional[StoryContext]:
        with self._locks.hold(campaign_id):
            ctx = self._contexts.get(campaign_id)
            return copy.deepcopy(ctx) if ctx is not None else None

    def get_story_memory(self, campaign_id: str) -> Optional[StoryMemory]:
        with self._locks.hold(campaign_id):
            memory = self._memories.get(campaign_id)
            return copy.deepcopy(memory) if memory is not None else None

    def update_story_context(self, campaign_id: str, story_context: StoryContext) -> None:
        with self._locks.hold(campaign_id):
            self._contexts[campaign_id] = copy.deepcopy(story_context)
        logger.info("[storyctx] Story context updated: campaign=%s", campaign_id)

    def update_story_beat(self, campaign_id: str, story_beat_id: str, status: str) -> bool:
        """Update the status of the current story beat.

        Returns:
            False if the campaign's current beat is not ``story_beat_id``
        """
        with self._locks.hold(campaign_id):
            ctx = self._contexts.get(campaign_id)
            beat = ctx.current_story_beat if ctx else None
            if beat is None or beat.id != story_beat_id:
                logger.warning(
                    "[storyctx] Story beat not found for update: campaign=%s beat=%s",
                    campaign_id,
                    story_beat_id,
                )
                return False
            ctx.current_story_beat = replace(beat, status=status)
        logger.info("[storyctx] Story beat updated: campaign=%s beat=%s", campaign_id, story_beat_id)
        return True

    def add_permanent_element(self, campaign_id: str, element: str) -> None:
        self._append_unique(campaign_id, "permanent_elements", element)

    def add_character_milestone(self, campaign_id: str, milestone: str) -> None:
        self._append_unique(campaign_id, "character_milestones", milestone)

    def add_world_state_change(self, campaign_id: str, change: str) -> None:
        self._append_unique(campaign_id, "world_state_changes", change)

    def update_relationship_mapping(
        self, campaign_id: str, character_id: str, relationships: list[str]
    ) -> None:
        with self._locks.hold(campaign_id):
            memory = self._memories.setdefault(campaign_id, StoryMemory())
            memory.relationship_mapping[character_id] = list(relationships)

    def _append_unique(self, campaign_id: str, attr: str, value: str) -> None:
        with self._locks.hold(campaign_id):
            memory = self._memories.setdefault(campaign_id, StoryMemory())
            items: list[str] = getattr(memory, attr)
            if value in items:
                return
            items.append(value)
        logger.info("[storyctx] Story memory %s added: campaign=%s", attr, campaign_id)


__all__ = [
    "CharacterDevelopment",
    "InMemorySnapshotProvider",
    "QuestProgress",
    "SnapshotProvider",
    "StoryBeat",
    "StoryContext",
    "StoryMemory",
    "WorldState",
    "WorldStateChange",
]
