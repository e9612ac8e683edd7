"""Context Engine - Wires every service once and exposes the public operations.

The classifier, store, cache and recorder are constructed once per engine
and shared by reference with the selector and compression pipeline.

Example:
    engine = ContextEngine.from_config()
    engine.add_layer("campaign-1", LayerKind.STORY, "The gate falls.", importance=9,
                     story_beat_id="beat-3")
    result = await engine.select_optimal_context(
        "campaign-1", SelectionCriteria(task_type="story_progression", max_tokens=2000)
    )
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

from .complexity import Classification, ComputeTier, GenerationTask, TaskComplexityClassifier
from .config import EngineConfig, load_engine_config
from .context import (
    AdaptationConfig,
    BudgetAllocator,
    CacheStats,
    CampaignSummary,
    CompressionPipeline,
    ContextSelector,
    ContextStats,
    ConversationMemory,
    InMemorySnapshotProvider,
    Layer,
    LayerKind,
    LayerStore,
    MemoryStats,
    RelevanceRanker,
    SelectionCache,
    SelectionCriteria,
    SelectionResult,
    SnapshotProvider,
    standard_context,
    story_priority_context,
)
from .llm import GenerationClient, LLMProvider, TieredGenerationClient
from .recorder import (
    AlertThresholds,
    CampaignAnalytics,
    EffectivenessAnalytics,
    PerformanceAlert,
    PerformanceAnalytics,
    PerformanceRecorder,
    PerformanceSample,
)
from .telemetry import SpanEventSink, TelemetrySink, init_telemetry, shutdown_telemetry

logger = logging.getLogger(__name__)


def build_generation_client(config: EngineConfig) -> Optional[GenerationClient]:
    """Bind each ``[llm.<name>]`` provider to its compute tier.

    Returns None when no provider is configured. The first provider listed
    for a tier wins.
    """
    providers: dict[ComputeTier, LLMProvider] = {}
    for name, provider_cfg in config.llm_providers.items():
        if provider_cfg.tier in providers:
            logger.warning(
                "[storyctx] Provider '%s' ignored: tier %s already bound",
                name,
                provider_cfg.tier.value,
            )
            continue
        providers[provider_cfg.tier] = LLMProvider.from_config(name, config)

    if not providers:
        return None
    return TieredGenerationClient(providers)


class ContextEngine:
    """Facade over the context selection and compression services.

    Attributes:
        config: Effective configuration
        classifier: Shared task complexity classifier
        store: Layer store
        snapshot: Story state provider
        cache: Selection cache
        recorder: Performance / effectiveness recorder
        compression: Compression pipeline
        selector: Selection pipeline
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        *,
        generator: Optional[GenerationClient] = None,
        snapshot: Optional[SnapshotProvider] = None,
        sink: Optional[TelemetrySink] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the engine.

        Args:
            config: Configuration (defaults plus environment overrides when omitted)
            generator: Generation capability used by compression
            snapshot: Story state provider (in-memory when omitted)
            sink: Telemetry sink (span events when omitted)
            clock: Wall clock used for layer ages, cache TTL and log timestamps
        """
        self.config = config or EngineConfig.defaults()
        self._owns_telemetry = False

        ctx = self.config.context
        self.classifier = TaskComplexityClassifier()
        self.store = LayerStore(
            compression_threshold=ctx.compression_threshold,
            conversation_memory_limit=ctx.conversation_memory_limit,
            keep_ratio=ctx.prune_keep_ratio,
            clock=clock,
        )
        self.snapshot = snapshot or InMemorySnapshotProvider()
        self.sink = sink or SpanEventSink()
        self.cache = SelectionCache(ttl_seconds=self.config.cache.ttl_seconds, clock=clock)

        rec = self.config.recorder
        self.recorder = PerformanceRecorder(
            tier_capacity=rec.tier_capacity,
            campaign_capacity=rec.campaign_capacity,
            effectiveness_capacity=rec.effectiveness_capacity,
            trend_window=rec.trend_window,
            alert_thresholds=AlertThresholds(
                max_response_time_ms=rec.max_response_time_ms,
                max_context_size=rec.max_context_size,
                max_error_rate=rec.max_error_rate,
                min_cache_hit_rate=rec.min_cache_hit_rate,
                min_samples=rec.alert_min_samples,
            ),
            alerts_enabled=rec.alerts_enabled,
            clock=clock,
        )

        comp = self.config.compression
        self.compression = CompressionPipeline(
            generator=generator,
            classifier=self.classifier,
            timeout_sec=comp.generation_timeout_sec,
            section_summary_tokens=comp.section_summary_tokens,
            temperature=comp.temperature,
            sink=self.sink,
        )
        self.selector = ContextSelector(
            self.store,
            self.classifier,
            snapshot=self.snapshot,
            allocator=BudgetAllocator(RelevanceRanker(clock=clock)),
            compression=self.compression,
            cache=self.cache,
            recorder=self.recorder,
            sink=self.sink,
            max_context_tokens=ctx.max_context_tokens,
        )

    @classmethod
    def from_config(
        cls,
        config: Optional[EngineConfig] = None,
        start_dir: Path = Path("."),
        **kwargs,
    ) -> ContextEngine:
        """Build an engine from storyctx.toml.

        Providers from ``[llm.*]`` become the generation capability unless a
        ``generator`` is passed. Tracing is initialized when
        ``[telemetry] enabled = true``.
        """
        config = config or load_engine_config(start_dir)
        if "generator" not in kwargs:
            kwargs["generator"] = build_generation_client(config)

        engine = cls(config, **kwargs)
        if config.telemetry.enabled:
            engine._owns_telemetry = init_telemetry(
                service_name=config.telemetry.service_name,
                otlp_endpoint=config.telemetry.otlp_endpoint,
            )
        return engine

    def close(self) -> None:
        """Flush telemetry if this engine initialized it."""
        if self._owns_telemetry:
            shutdown_telemetry()
            self._owns_telemetry = False

    # ------------------------------------------------------------------
    # Layers and campaign context
    # ------------------------------------------------------------------

    def add_layer(
        self,
        campaign_id: str,
        kind: Union[LayerKind, str],
        text: str,
        importance: int = 5,
        *,
        tags: Iterable[str] = (),
        character_ids: Iterable[str] = (),
        story_beat_id: Optional[str] = None,
        quest_id: Optional[str] = None,
        permanent: bool = False,
    ) -> Layer:
        return self.store.add_layer(
            campaign_id,
            kind,
            text,
            importance,
            tags=tags,
            character_ids=character_ids,
            story_beat_id=story_beat_id,
            quest_id=quest_id,
            permanent=permanent,
        )

    def get_layers(self, campaign_id: str) -> list[Layer]:
        return self.store.get_layers(campaign_id)

    def prune_on_overflow(self, campaign_id: str) -> int:
        return self.store.prune_on_overflow(campaign_id)

    def clear_context(self, campaign_id: str) -> None:
        self.store.clear(campaign_id)

    def get_context(self, campaign_id: str) -> str:
        """Summary then layers by importance, up to ``max_context_tokens``."""
        return standard_context(
            self.store.get_layers(campaign_id),
            self.store.get_campaign_summary(campaign_id),
            self.config.context.max_context_tokens,
        )

    def get_context_with_story_priority(self, campaign_id: str) -> str:
        return story_priority_context(
            self.store.get_layers(campaign_id),
            self.store.get_campaign_summary(campaign_id),
            self.snapshot.get_story_context(campaign_id),
            self.snapshot.get_story_memory(campaign_id),
            self.config.context.max_context_tokens,
        )

    def get_context_stats(self, campaign_id: str) -> ContextStats:
        return self.store.get_context_stats(campaign_id)

    def set_campaign_summary(self, campaign_id: str, summary: CampaignSummary) -> CampaignSummary:
        return self.store.set_campaign_summary(campaign_id, summary)

    def get_campaign_summary(self, campaign_id: str) -> Optional[CampaignSummary]:
        return self.store.get_campaign_summary(campaign_id)

    # ------------------------------------------------------------------
    # Conversation memory
    # ------------------------------------------------------------------

    def add_conversation_memory(
        self,
        session_id: str,
        speaker: str,
        message: str,
        response: str,
        context: str = "",
        importance: int = 5,
    ) -> ConversationMemory:
        return self.store.add_conversation_memory(
            session_id, speaker, message, response, context, importance
        )

    def get_conversation_memory(self, session_id: str) -> Optional[ConversationMemory]:
        return self.store.get_conversation_memory(session_id)

    def get_memory_stats(self) -> MemoryStats:
        return self.store.get_memory_stats()

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    async def select_optimal_context(
        self, campaign_id: str, criteria: SelectionCriteria
    ) -> SelectionResult:
        return await self.selector.select_optimal_context(campaign_id, criteria)

    def adapt_strategy(self, campaign_id: str, config: AdaptationConfig) -> None:
        self.selector.adapt_strategy(campaign_id, config)

    def get_adaptation_strategy(self, campaign_id: str) -> Optional[AdaptationConfig]:
        return self.selector.get_adaptation_strategy(campaign_id)

    def sweep_expired_cache(self) -> int:
        return self.cache.sweep_expired()

    def get_cache_stats(self) -> CacheStats:
        return self.cache.stats()

    # ------------------------------------------------------------------
    # Classification and recording
    # ------------------------------------------------------------------

    def classify(self, task: GenerationTask) -> Classification:
        return self.classifier.classify(task)

    def record_effectiveness(
        self,
        campaign_id: str,
        task_type: str,
        effectiveness: float,
        user_satisfaction: float,
        context_relevance: float,
        response_quality: float,
    ) -> None:
        self.recorder.record_effectiveness(
            campaign_id,
            task_type,
            effectiveness,
            user_satisfaction,
            context_relevance,
            response_quality,
        )

    def get_effectiveness_analytics(self, campaign_id: str) -> EffectivenessAnalytics:
        return self.recorder.get_effectiveness_analytics(campaign_id)

    def record_performance(
        self,
        tier: Union[ComputeTier, str],
        sample: PerformanceSample,
        campaign_id: Optional[str] = None,
    ) -> None:
        self.recorder.record_performance(tier, sample, campaign_id=campaign_id)

    def get_performance_analytics(self) -> PerformanceAnalytics:
        return self.recorder.get_performance_analytics()

    def get_campaign_analytics(self, campaign_id: str) -> CampaignAnalytics:
        return self.recorder.get_campaign_analytics(campaign_id)

    def get_performance_alerts(
        self, campaign_id: str, include_resolved: bool = True
    ) -> list[PerformanceAlert]:
        return self.recorder.get_performance_alerts(campaign_id, include_resolved)

    def resolve_performance_alert(self, campaign_id: str, alert_id: str) -> bool:
        return self.recorder.resolve_performance_alert(campaign_id, alert_id)


__all__ = ["ContextEngine", "build_generation_client"]
