"""Context Builder - Assemble context text from story state and layers.

This module renders:
- Story context sections (current beat, character development, world state, quests)
- Story memory sections (permanent elements, milestones, world changes)
- Individual layers with their metadata
- The standard and story-priority campaign context strings
"""

from __future__ import annotations

from typing import Iterable, Optional

from .snapshot import StoryContext, StoryMemory
from .types import CampaignSummary, Layer, SelectionCriteria
from .window import TokenBudget, estimate_tokens

NO_CONTEXT = "No context available for this campaign."

# Summary is only added to the story-priority context below this share of the budget
SUMMARY_BUDGET_SHARE = 0.7


def story_context_section(story: StoryContext, criteria: SelectionCriteria) -> str:
    """Render the story context part of a selection.

    Character development is filtered to the requested characters (all of
    them when none are requested). At most three world changes and three
    quests are shown.
    """
    parts: list[str] = []

    beat = story.current_story_beat
    if beat is not None:
        parts.append(
            "CURRENT STORY BEAT:\n"
            f"Title: {beat.title}\n"
            f"Description: {beat.description}\n"
            f"Type: {beat.type}, Importance: {beat.importance}\n"
            f"Chapter {beat.chapter}, Act {beat.act}\n\n"
        )

    wanted = set(criteria.character_ids)
    relevant = [
        cd for cd in story.character_development if not wanted or cd.character_id in wanted
    ]
    if relevant:
        lines = "".join(f"- {cd.character_id}: {cd.title} - {cd.description}\n" for cd in relevant)
        parts.append(f"CHARACTER DEVELOPMENT:\n{lines}\n")

    world = story.world_state
    if world is not None:
        section = f"WORLD STATE:\nCurrent: {world.current_state}\n"
        if world.changes:
            section += "Recent Changes:\n"
            section += "".join(f"- {c.title}: {c.description}\n" for c in world.changes[:3])
        parts.append(section + "\n")

    if story.quest_progress:
        lines = "".join(
            f"- {q.name} ({q.status}): {q.story_impact}\n" for q in story.quest_progress[:3]
        )
        parts.append(f"QUEST PROGRESS:\n{lines}\n")

    return "".join(parts)


def story_memory_section(memory: StoryMemory) -> str:
    parts: list[str] = []
    for title, items, limit in (
        ("PERMANENT STORY ELEMENTS", memory.permanent_elements, 5),
        ("CHARACTER MILESTONES", memory.character_milestones, 5),
        ("WORLD STATE CHANGES", memory.world_state_changes, 3),
    ):
        if items:
            lines = "".join(f"- {item}\n" for item in items[:limit])
            parts.append(f"{title}:\n{lines}\n")
    return "".join(parts)


def layer_heading(layer: Layer) -> str:
    return f"{layer.kind.value.upper()} CONTEXT:\n{layer.text}"


def format_layer(layer: Layer) -> str:
    """Render a layer with its character, story beat and quest references."""
    formatted = layer_heading(layer)
    if layer.character_ids:
        formatted += f"\n[Characters: {', '.join(layer.character_ids)}]"
    if layer.story_beat_id:
        formatted += f"\n[Story Beat: {layer.story_beat_id}]"
    if layer.quest_id:
        formatted += f"\n[Quest: {layer.quest_id}]"
    return formatted + "\n\n"


class ContextBuilder:
    """Builder for the text of a context selection.

    Example:
        builder = ContextBuilder(criteria)
        builder.add_story_context(story).add_story_memory(memory)
        builder.add_layers(allocation.layers)
        text = builder.build()
    """

    def __init__(self, criteria: SelectionCriteria):
        self.criteria = criteria
        self._parts: list[str] = []

    def add_story_context(self, story: Optional[StoryContext]) -> ContextBuilder:
        if story is not None:
            self._parts.append(story_context_section(story, self.criteria))
        return self

    def add_story_memory(self, memory: Optional[StoryMemory]) -> ContextBuilder:
        if memory is not None:
            self._parts.append(story_memory_section(memory))
        return self

    def add_layers(self, layers: Iterable[Layer]) -> ContextBuilder:
        self._parts.extend(format_layer(layer) for layer in layers)
        return self

    def build(self) -> str:
        return "".join(self._parts)


def _by_importance_newest_first(layers: Iterable[Layer]) -> list[Layer]:
    return sorted(layers, key=lambda layer: (-layer.importance, -layer.created_at, -layer.seq))


def _fill_layers(layers: Iterable[Layer], budget: TokenBudget) -> list[str]:
    # Stops at the first layer that does not fit
    parts: list[str] = []
    for layer in _by_importance_newest_first(layers):
        if not budget.fits(layer.token_estimate):
            break
        parts.append(f"{layer_heading(layer)}\n\n")
        budget.consume(layer.token_estimate)
    return parts


def standard_context(
    layers: list[Layer], summary: Optional[CampaignSummary], max_tokens: int
) -> str:
    """Summary sections, then layers by importance (newest first) up to ``max_tokens``."""
    if not layers and summary is None:
        return NO_CONTEXT

    budget = TokenBudget(total=max_tokens)
    parts: list[str] = []
    if summary is not None:
        parts.append(summary.render())
        budget.consume(summary.total_tokens)

    parts.extend(_fill_layers(layers, budget))
    return "".join(parts)


def story_priority_context(
    layers: list[Layer],
    summary: Optional[CampaignSummary],
    story: Optional[StoryContext],
    memory: Optional[StoryMemory],
    max_tokens: int,
) -> str:
    """Campaign context with story state first.

    Order: current beat, character development, world state, quests,
    permanent story elements, the summary overview (while under 70% of the
    budget), then non-permanent layers by importance.
    """
    if not layers and summary is None and memory is None:
        return NO_CONTEXT

    budget = TokenBudget(total=max_tokens)
    parts: list[str] = []

    def add(section: str) -> None:
        parts.append(section)
        budget.consume(estimate_tokens(section))

    if story is not None:
        beat = story.current_story_beat
        if beat is not None:
            add(
                "CURRENT STORY BEAT:\n"
                f"Title: {beat.title}\n"
                f"Description: {beat.description}\n"
                f"Type: {beat.type}\n"
                f"Importance: {beat.importance}\n"
                f"Chapter: {beat.chapter}, Act: {beat.act}\n\n"
            )
        if story.character_development:
            lines = "\n".join(
                f"Character {cd.character_id}: {cd.title} - {cd.description} ({cd.impact})"
                for cd in story.character_development
            )
            add(f"CHARACTER DEVELOPMENT:\n{lines}\n\n")
        if story.world_state is not None:
            changes = "\n".join(
                f"- {c.title}: {c.description} ({c.impact})" for c in story.world_state.changes
            )
            add(
                f"WORLD STATE:\nCurrent: {story.world_state.current_state}\n"
                f"Recent Changes:\n{changes}\n\n"
            )
        if story.quest_progress:
            quests = "\n".join(
                f"- {q.name} ({q.status}): {q.story_impact} impact" for q in story.quest_progress
            )
            add(f"QUEST PROGRESS:\n{quests}\n\n")

    if memory is not None and memory.permanent_elements:
        add("PERMANENT STORY ELEMENTS:\n" + "\n".join(memory.permanent_elements) + "\n\n")

    if summary is not None and budget.used < max_tokens * SUMMARY_BUDGET_SHARE:
        # Only the overview and recent events are rendered here, so charge those
        add(
            f"CAMPAIGN OVERVIEW:\n{summary.campaign_overview}\n\n"
            f"RECENT EVENTS:\n{summary.recent_events}\n\n"
        )

    parts.extend(_fill_layers((layer for layer in layers if not layer.permanent), budget))
    return "".join(parts)


__all__ = [
    "NO_CONTEXT",
    "ContextBuilder",
    "format_layer",
    "standard_context",
    "story_context_section",
    "story_memory_section",
    "story_priority_context",
]
