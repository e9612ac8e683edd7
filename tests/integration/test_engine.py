"""Integration tests for ContextEngine.

These run the full in-process pipeline (store, allocator, compression,
cache, recorder) with a fake clock and a scripted generation capability.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor

import pytest
from fakes import FakeClock, FakeGenerator

from storyctx import ContextEngine, EngineConfig, LayerKind, SelectionCriteria
from storyctx.complexity import ComputeTier, GenerationTask
from storyctx.context import (
    CampaignSummary,
    CompressionLevel,
    StoryBeat,
    StoryContext,
)
from storyctx.llm import TieredGenerationClient
from storyctx.recorder import PerformanceSample
from storyctx.telemetry import RecordingSink

pytestmark = pytest.mark.integration


def _config(**context) -> EngineConfig:
    config = EngineConfig()
    config.context.compression_threshold = 20000
    for key, value in context.items():
        setattr(config.context, key, value)
    return config


@pytest.fixture
def engine(clock) -> ContextEngine:
    return ContextEngine(_config(), sink=RecordingSink(), clock=clock)


def _seed_scenario(engine: ContextEngine, campaign_id: str = "c1"):
    story = engine.add_layer(
        campaign_id, LayerKind.STORY, "s" * 200, importance=9, story_beat_id="beat-1"
    )
    char = engine.add_layer(
        campaign_id, LayerKind.CHARACTER, "c" * 160, importance=6, character_ids=["mira"]
    )
    world = engine.add_layer(campaign_id, LayerKind.WORLD_STATE, "w" * 36000, importance=8)
    return story, char, world


NPC = SelectionCriteria(task_type="npc_dialogue", max_tokens=100, character_ids=("mira",))


class TestBudgetScenario:
    @pytest.mark.asyncio
    async def test_required_layers_win_over_oversized_world_state(self, engine):
        """A 9000-token world state never displaces the required story and character layers."""
        story, char, world = _seed_scenario(engine)
        assert world.token_estimate == 9000

        result = await engine.select_optimal_context("c1", NPC)

        assert [layer.id for layer in result.selected_layers] == [story.id, char.id]
        assert sum(layer.token_estimate for layer in result.selected_layers) == 90
        assert result.compression_level is CompressionLevel.LIGHT
        assert result.token_usage <= 110
        assert 0.0 <= result.effectiveness_score <= 1.0

    @pytest.mark.asyncio
    async def test_stats_after_selection(self, engine):
        _seed_scenario(engine)
        await engine.select_optimal_context("c1", NPC)

        stats = engine.get_context_stats("c1")
        assert stats.total_layers == 3
        assert stats.total_tokens == 9090
        assert engine.get_campaign_analytics("c1").total_requests == 1
        assert engine.get_cache_stats().misses == 1
        assert engine.sink.names()[-1] == "context.selected"


class TestCacheLifecycle:
    @pytest.mark.asyncio
    async def test_hit_then_expiry(self, engine, clock):
        _seed_scenario(engine)

        first = await engine.select_optimal_context("c1", NPC)
        clock.advance(100)
        second = await engine.select_optimal_context("c1", NPC)
        clock.advance(201)
        third = await engine.select_optimal_context("c1", NPC)

        assert not first.cache_hit
        assert second.cache_hit
        assert second.selected_text == first.selected_text
        assert not third.cache_hit

        stats = engine.get_cache_stats()
        assert stats.hits == 1
        assert stats.misses == 2
        assert stats.entries == 1

    @pytest.mark.asyncio
    async def test_sweep(self, engine, clock):
        _seed_scenario(engine)
        await engine.select_optimal_context("c1", NPC)
        other = SelectionCriteria(task_type="world_building", max_tokens=50)
        await engine.select_optimal_context("c1", other)

        clock.advance(301)
        assert engine.sweep_expired_cache() == 2
        assert engine.get_cache_stats().entries == 0

    @pytest.mark.asyncio
    async def test_layers_added_within_ttl_are_not_seen(self, engine):
        """Cached results are served for the full TTL even if layers change."""
        _seed_scenario(engine)
        first = await engine.select_optimal_context("c1", NPC)
        engine.add_layer("c1", LayerKind.STORY, "new beat", importance=10, story_beat_id="b2")
        second = await engine.select_optimal_context("c1", NPC)
        assert second.selected_layers == first.selected_layers


class TestCompressionThroughEngine:
    @pytest.mark.asyncio
    async def test_medium_compression_summarizes_layer_section(self, clock):
        """Story sections are unbudgeted, so the admitted layer pushes the text over."""
        generator = FakeGenerator(content="- summary")
        engine = ContextEngine(_config(), generator=generator, clock=clock)
        engine.snapshot.update_story_context(
            "c1",
            StoryContext(
                current_story_beat=StoryBeat(id="b1", title="Siege", description="d" * 200)
            ),
        )
        engine.add_layer("c1", LayerKind.STORY, "s" * 200, importance=9, story_beat_id="b1")

        criteria = SelectionCriteria(task_type="story_progression", max_tokens=100)
        result = await engine.select_optimal_context("c1", criteria)

        assert result.compression_level is CompressionLevel.MEDIUM
        assert result.selected_text.startswith("CURRENT STORY BEAT:\nTitle: Siege")
        assert result.selected_text.endswith("\n\n- summary")
        assert result.token_usage <= 100
        assert generator.requests[0].task_type == "section_compression"

    @pytest.mark.asyncio
    async def test_story_snapshot_is_assembled_and_compressed(self, clock):
        generator = FakeGenerator(content="- key point")
        engine = ContextEngine(_config(), generator=generator, clock=clock)
        engine.snapshot.update_story_context(
            "c1",
            StoryContext(
                current_story_beat=StoryBeat(id="b1", title="Siege", description="d" * 2000)
            ),
        )

        criteria = SelectionCriteria(task_type="story_progression", max_tokens=100)
        result = await engine.select_optimal_context("c1", criteria)

        assert result.compression_level is CompressionLevel.HEAVY
        assert result.selected_text == "- key point"
        assert generator.requests[0].task_type == "context_compression"
        assert generator.requests[0].tier_hint is ComputeTier.LITE


class TestCampaignContext:
    def test_get_context(self, engine):
        assert engine.get_context("empty") == "No context available for this campaign."

        engine.set_campaign_summary("c1", CampaignSummary(campaign_overview="Long war"))
        engine.add_layer("c1", LayerKind.STORY, "The gate falls.", importance=9)
        text = engine.get_context("c1")
        assert text.startswith("CAMPAIGN OVERVIEW:\nLong war")
        assert "STORY CONTEXT:\nThe gate falls." in text

    def test_story_priority_excludes_permanent_layers(self, engine):
        engine.add_layer("c1", LayerKind.STORY, "always", permanent=True)
        engine.add_layer("c1", LayerKind.STORY, "sometimes")
        engine.snapshot.add_permanent_element("c1", "The king is dead")

        text = engine.get_context_with_story_priority("c1")

        assert text.startswith("PERMANENT STORY ELEMENTS:\nThe king is dead")
        assert "sometimes" in text
        assert "always" not in text

    def test_clear(self, engine):
        engine.add_layer("c1", LayerKind.STORY, "x")
        engine.clear_context("c1")
        assert engine.get_layers("c1") == []

    def test_conversation_memory(self, engine):
        engine.add_conversation_memory("s1", "player", "hello", "greetings", importance=7)
        memory = engine.get_conversation_memory("s1")
        assert memory.interactions[0].response == "greetings"
        assert engine.get_memory_stats().average_importance == 7.0


class TestRecordingAndClassification:
    def test_classify(self, engine):
        result = engine.classify(GenerationTask(type="quest_generation", prompt="x"))
        assert result.compute_tier is ComputeTier.ADVANCED

    def test_performance_and_effectiveness(self, engine):
        engine.record_performance(ComputeTier.LITE, PerformanceSample("story_response", 50.0))
        engine.record_effectiveness("c1", "story_progression", 0.9, 0.8, 0.7, 0.6)

        assert engine.get_performance_analytics().tiers[ComputeTier.LITE].samples == 1
        assert engine.get_effectiveness_analytics("c1").average_effectiveness == 0.9

    def test_unknown_tier_does_not_raise(self, engine):
        engine.record_performance("gpt-pro", PerformanceSample("x", 1.0), campaign_id="c1")
        assert engine.get_performance_analytics().total_samples == 0
        assert engine.get_campaign_analytics("c1").total_requests == 1

    def test_alerts_follow_configured_thresholds(self, clock):
        config = _config()
        config.recorder.max_response_time_ms = 50.0
        engine = ContextEngine(config, sink=RecordingSink(), clock=clock)

        engine.record_performance(
            ComputeTier.LITE, PerformanceSample("story_response", 80.0), campaign_id="c1"
        )

        [alert] = engine.get_performance_alerts("c1")
        assert alert.message == "Response time exceeded threshold: 80ms > 50ms"
        assert engine.resolve_performance_alert("c1", alert.id)
        assert engine.get_performance_alerts("c1", include_resolved=False) == []


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_parallel_selections_across_campaigns(self, engine):
        campaigns = [f"c{i}" for i in range(6)]
        for cid in campaigns:
            _seed_scenario(engine, cid)

        results = await asyncio.gather(
            *(engine.select_optimal_context(cid, NPC) for cid in campaigns)
        )

        for cid, result in zip(campaigns, results):
            assert [layer.id for layer in result.selected_layers] == ["story_0", "character_1"]
            assert engine.get_campaign_analytics(cid).total_requests == 1

    def test_threaded_writers(self, engine):
        def write(cid):
            for i in range(100):
                engine.add_layer(cid, LayerKind.SESSION, f"event {i}")

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(write, ["a", "b", "a", "b", "c", "c", "d", "d"]))

        for cid in "abcd":
            layers = engine.get_layers(cid)
            assert len(layers) == 200
            assert len({layer.id for layer in layers}) == 200


class TestFromConfig:
    def test_providers_become_tiered_client(self, tmp_path):
        (tmp_path / "storyctx.toml").write_text(
            '[llm.flash]\napi_base = "http://localhost:9/v1"\nmodel = "flash"\ntier = "lite"\n'
        )

        engine = ContextEngine.from_config(start_dir=tmp_path)

        assert isinstance(engine.compression.generator, TieredGenerationClient)
        assert engine.compression.generator.provider_for(ComputeTier.LITE).config.model == "flash"
        engine.close()

    def test_without_providers(self, tmp_path, monkeypatch):
        monkeypatch.setattr("storyctx.config.user_config_dir", lambda app: str(tmp_path / "u"))
        engine = ContextEngine.from_config(start_dir=tmp_path, clock=FakeClock())
        assert engine.compression.generator is None
