"""Unit tests for element plans and budget allocation."""

from fakes import FakeClock, make_layer

from storyctx.context import (
    BudgetAllocator,
    LayerKind,
    RelevanceRanker,
    SelectionCriteria,
    StoryPhase,
    find_matching_layers,
    plan_elements,
)

NOW = 1_700_000_000.0


def _allocator() -> BudgetAllocator:
    return BudgetAllocator(RelevanceRanker(clock=FakeClock(NOW)))


class TestPlanElements:
    def test_story_progression_table(self):
        plan = plan_elements(SelectionCriteria(task_type="story_progression", max_tokens=100))
        assert plan.required == ["current_story_beat", "character_development", "world_state"]
        assert plan.priority == ["quest_progress", "story_memory"]
        assert plan.optional == ["general_lore", "historical_events"]

    def test_unknown_task_uses_default(self):
        plan = plan_elements(SelectionCriteria(task_type="npc_dialogue", max_tokens=100))
        assert plan.required == ["current_story_beat", "character_development"]
        assert plan.priority == ["world_state", "quest_progress"]
        assert plan.optional == ["story_memory", "general_lore"]

    def test_characters_add_relationships(self):
        criteria = SelectionCriteria(
            task_type="story_progression", max_tokens=100, character_ids=("a",)
        )
        plan = plan_elements(criteria)
        assert plan.required[-1] == "character_relationships"
        assert plan.priority[-1] == "character_development"

    def test_phase_additions_need_story_context(self):
        criteria = SelectionCriteria(
            task_type="quest_management", max_tokens=100, story_phase=StoryPhase.CLIMAX
        )
        without = plan_elements(criteria)
        with_story = plan_elements(criteria, has_story_context=True)

        assert "character_milestones" not in without.required
        assert with_story.required[-2:] == ["story_memory", "character_milestones"]
        assert with_story.priority[-1] == "world_state_changes"

    def test_reasoning_mentions_request(self):
        criteria = SelectionCriteria(
            task_type="world_building", max_tokens=100, character_ids=("a", "b")
        )
        plan = plan_elements(criteria)
        assert "world_building in development phase with 2 characters" in plan.reasoning


class TestFindMatchingLayers:
    def test_unknown_element_matches_everything(self):
        layers = [make_layer(seq=0), make_layer(kind=LayerKind.STORY, seq=1)]
        criteria = SelectionCriteria(task_type="t", max_tokens=10)
        assert find_matching_layers(layers, "mystery", criteria) == layers

    def test_character_development_needs_requested_character(self):
        mira = make_layer(kind=LayerKind.CHARACTER, character_ids=("mira",), seq=0)
        other = make_layer(kind=LayerKind.CHARACTER, character_ids=("bo",), seq=1)
        criteria = SelectionCriteria(task_type="t", max_tokens=10, character_ids=("mira",))
        assert find_matching_layers([mira, other], "character_development", criteria) == [mira]

    def test_importance_thresholds(self):
        criteria = SelectionCriteria(task_type="t", max_tokens=10)
        weak = make_layer(kind=LayerKind.WORLD_STATE, importance=6, seq=0)
        strong = make_layer(kind=LayerKind.WORLD_STATE, importance=7, seq=1)
        assert find_matching_layers([weak, strong], "world_building", criteria) == [strong]
        assert find_matching_layers([weak, strong], "world_state_changes", criteria) == [
            weak,
            strong,
        ]

    def test_relationship_mapping_matches_relationships(self):
        criteria = SelectionCriteria(task_type="t", max_tokens=10)
        pair = make_layer(kind=LayerKind.CHARACTER, character_ids=("a", "b"))
        assert find_matching_layers([pair], "relationship_mapping", criteria) == [pair]


class TestBudgetAllocator:
    def test_required_layers_survive_large_priority_layer(self):
        story = make_layer("s" * 200, kind=LayerKind.STORY, importance=9, seq=0, story_beat_id="b1")
        char = make_layer(
            "c" * 160, kind=LayerKind.CHARACTER, importance=6, seq=1, character_ids=("mira",)
        )
        world = make_layer("w" * 36000, kind=LayerKind.WORLD_STATE, importance=8, seq=2)
        criteria = SelectionCriteria(task_type="npc_dialogue", max_tokens=100, character_ids=("mira",))

        allocation = _allocator().allocate([story, char, world], criteria)

        assert [layer.id for layer in allocation.layers] == [story.id, char.id]
        assert allocation.tokens_used == 90
        assert allocation.skipped == [world]
        assert allocation.tier_of == {story.id: "required", char.id: "required"}

    def test_never_exceeds_budget(self):
        layers = [
            make_layer("x" * 40 * (i + 1), kind=LayerKind.STORY, seq=i, story_beat_id="b")
            for i in range(6)
        ]
        criteria = SelectionCriteria(task_type="story_progression", max_tokens=75)
        allocation = _allocator().allocate(layers, criteria)
        assert allocation.tokens_used <= 75
        assert sum(layer.token_estimate for layer in allocation.layers) == allocation.tokens_used

    def test_higher_tier_layer_that_does_not_fit_is_not_swapped(self):
        """A skipped layer leaves room for later tiers; admitted ones are never replaced."""
        big_beat = make_layer("b" * 280, kind=LayerKind.STORY, seq=0, story_beat_id="b1")
        quest = make_layer("q" * 80, kind=LayerKind.QUEST, seq=1, quest_id="q1")
        criteria = SelectionCriteria(task_type="npc_dialogue", max_tokens=60)

        allocation = _allocator().allocate([big_beat, quest], criteria)

        assert allocation.layers == [quest]
        assert allocation.tier_of[quest.id] == "priority"
        assert allocation.skipped == [big_beat]

    def test_first_fit_within_tier(self):
        first = make_layer("a" * 200, kind=LayerKind.STORY, seq=0, story_beat_id="b1")
        second = make_layer("a" * 80, kind=LayerKind.STORY, seq=1, story_beat_id="b2")
        criteria = SelectionCriteria(task_type="npc_dialogue", max_tokens=60)

        allocation = _allocator().allocate([first, second], criteria)
        assert allocation.layers == [first]
        assert allocation.tokens_used == 50

    def test_layer_matched_by_several_elements_admitted_once(self):
        pair = make_layer(
            "p" * 40, kind=LayerKind.CHARACTER, importance=9, character_ids=("a", "b")
        )
        criteria = SelectionCriteria(
            task_type="character_interaction", max_tokens=100, character_ids=("a",)
        )
        allocation = _allocator().allocate([pair], criteria)
        assert allocation.layers == [pair]
        assert allocation.tokens_used == 10

    def test_zero_budget_admits_nothing(self):
        layer = make_layer("x", kind=LayerKind.STORY, story_beat_id="b")
        allocation = _allocator().allocate(
            [layer], SelectionCriteria(task_type="story_progression", max_tokens=0)
        )
        assert allocation.layers == []
        assert allocation.tokens_used == 0

    def test_presentation_order_by_relevance(self):
        low = make_layer("a" * 4, kind=LayerKind.STORY, importance=3, seq=0, story_beat_id="b")
        high = make_layer("a" * 4, kind=LayerKind.STORY, importance=8, seq=1, story_beat_id="b")
        criteria = SelectionCriteria(task_type="story_progression", max_tokens=100)
        allocation = _allocator().allocate([low, high], criteria)
        assert allocation.layers == [high, low]
