"""Unit tests for the context selector."""

from unittest.mock import patch

import pytest
from fakes import FailingSink

from storyctx.complexity import ComplexityTier
from storyctx.context import (
    NO_CONTEXT,
    AdaptationConfig,
    AdaptationStrategy,
    CompressionLevel,
    ContextSelector,
    InMemorySnapshotProvider,
    LayerKind,
    SelectionCache,
    SelectionCriteria,
    StoryBeat,
    StoryContext,
    StoryPhase,
    WorldState,
    determine_complexity,
    effectiveness_score,
)
from storyctx.context.selector import FALLBACK_REASONING
from storyctx.recorder import PerformanceRecorder
from storyctx.telemetry import RecordingSink


@pytest.fixture
def recorder(clock) -> PerformanceRecorder:
    return PerformanceRecorder(clock=clock)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def selector(store, classifier, recorder, sink, clock) -> ContextSelector:
    return ContextSelector(
        store,
        classifier,
        cache=SelectionCache(clock=clock),
        recorder=recorder,
        sink=sink,
    )


def _seed(store):
    story = store.add_layer(
        "c1", LayerKind.STORY, "The gate falls.", importance=9, story_beat_id="b1"
    )
    mira = store.add_layer(
        "c1", LayerKind.CHARACTER, "Mira distrusts the council.", character_ids=["mira"]
    )
    return story, mira


class TestEffectivenessScore:
    def test_base(self):
        criteria = SelectionCriteria(task_type="t", max_tokens=100)
        assert effectiveness_score("", criteria, None) == 0.5

    def test_characters_and_budget_use(self):
        criteria = SelectionCriteria(task_type="t", max_tokens=100, character_ids=("mira",))
        assert effectiveness_score("a" * 320, criteria, None) == pytest.approx(0.85)

    def test_clamped_to_one(self):
        criteria = SelectionCriteria(task_type="t", max_tokens=100, character_ids=("mira",))
        story = StoryContext(
            current_story_beat=StoryBeat(id="b1", title="t", description="d"),
            world_state=WorldState(current_state="war"),
        )
        assert effectiveness_score("a" * 320, criteria, story) == 1.0

    def test_recency_word_bonus(self):
        criteria = SelectionCriteria(task_type="t", max_tokens=1000)
        with_word = effectiveness_score("The gate falls now", criteria, None)
        without = effectiveness_score("The gate holds", criteria, None)
        assert with_word == pytest.approx(0.5 + 5 / 800 * 0.2 + 0.1)
        assert without < 0.6


class TestDetermineComplexity:
    def test_simple(self):
        assert determine_complexity(SelectionCriteria(task_type="t", max_tokens=100)) is (
            ComplexityTier.SIMPLE
        )

    def test_moderate(self):
        criteria = SelectionCriteria(task_type="t", max_tokens=7000)
        assert determine_complexity(criteria) is ComplexityTier.MODERATE

    def test_complex(self):
        criteria = SelectionCriteria(
            task_type="story_progression",
            max_tokens=100,
            character_ids=("a", "b", "c"),
            story_phase=StoryPhase.CLIMAX,
        )
        assert determine_complexity(criteria) is ComplexityTier.COMPLEX


class TestSelect:
    @pytest.mark.asyncio
    async def test_selection(self, selector, store, criteria, recorder, sink):
        story, mira = _seed(store)

        result = await selector.select_optimal_context("c1", criteria)

        assert [layer.id for layer in result.selected_layers] == [story.id, mira.id]
        assert "STORY CONTEXT:\nThe gate falls." in result.selected_text
        assert result.reasoning.startswith("Context analysis for npc_dialogue")
        assert result.tier_used == "standard"
        assert result.compression_level is CompressionLevel.NONE
        assert not result.cache_hit
        assert recorder.get_campaign_analytics("c1").total_requests == 1
        assert "context.selected" in sink.names()

    @pytest.mark.asyncio
    async def test_cache_hit(self, selector, store, criteria, recorder):
        _seed(store)
        first = await selector.select_optimal_context("c1", criteria)
        second = await selector.select_optimal_context("c1", criteria)

        assert second.cache_hit
        assert second.selected_text == first.selected_text
        assert recorder.get_campaign_analytics("c1").cache_hit_rate == 0.5

    @pytest.mark.asyncio
    async def test_story_snapshot_raises_tier(self, store, classifier):
        snapshot = InMemorySnapshotProvider()
        snapshot.update_story_context(
            "c1",
            StoryContext(current_story_beat=StoryBeat(id="b1", title="Siege", description="d")),
        )
        selector = ContextSelector(store, classifier, snapshot=snapshot)
        criteria = SelectionCriteria(
            task_type="story_progression",
            max_tokens=2000,
            character_ids=("a", "b", "c"),
            story_phase=StoryPhase.CLIMAX,
        )

        result = await selector.select_optimal_context("c1", criteria)

        assert result.selected_text.startswith("CURRENT STORY BEAT:\nTitle: Siege")
        assert result.tier_used == "advanced"


class TestFallback:
    @pytest.mark.asyncio
    async def test_error_falls_back(self, selector, store, criteria, recorder):
        with patch.object(store, "get_layers", side_effect=[RuntimeError("boom"), []]):
            result = await selector.select_optimal_context("c1", criteria)

        assert result.reasoning == FALLBACK_REASONING
        assert result.selected_text == NO_CONTEXT
        assert result.tier_used == "fallback"
        assert result.effectiveness_score == 0.5
        assert result.selected_layers == ()
        assert len(selector.cache) == 0

        assert recorder.get_campaign_analytics("c1").error_rate == 1.0
        assert recorder.get_performance_analytics().total_samples == 0

    @pytest.mark.asyncio
    async def test_sink_failure_does_not_affect_result(self, store, classifier, criteria):
        _seed(store)
        selector = ContextSelector(store, classifier, sink=FailingSink())
        result = await selector.select_optimal_context("c1", criteria)
        assert result.tier_used == "standard"


class TestAdaptation:
    def test_roundtrip(self, selector):
        config = AdaptationConfig(
            story_phase=StoryPhase.CLIMAX, strategy=AdaptationStrategy.AGGRESSIVE
        )
        selector.adapt_strategy("c1", config)
        assert selector.get_adaptation_strategy("c1") is config
        assert selector.get_adaptation_strategy("c2") is None
