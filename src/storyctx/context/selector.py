"""Context Selector - The full selection pipeline.

select_optimal_context:
1. Return a fresh cached result for the same request signature
2. Plan elements from task type, story phase and characters
3. Allocate layers tier by tier under the token budget
4. Assemble story sections and the admitted layers
5. Compress if still over budget
6. Score, classify, cache and record

Any unexpected failure yields the story-priority campaign context instead
of an error.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import TYPE_CHECKING, Callable, Optional

from opentelemetry import trace

from ..complexity.types import ComplexityTier, GenerationTask
from ..telemetry.sink import TelemetrySink, safe_emit
from .allocator import BudgetAllocator, plan_elements
from .builder import ContextBuilder, story_priority_context
from .cache import SelectionCache
from .compression import CompressionPipeline
from .locks import KeyedLocks
from .snapshot import SnapshotProvider, StoryContext
from .store import LayerStore
from .types import (
    AdaptationConfig,
    CompressionLevel,
    SelectionCriteria,
    SelectionResult,
    StoryPhase,
)
from .window import estimate_tokens

if TYPE_CHECKING:
    from ..complexity.classifier import TaskComplexityClassifier
    from ..recorder import PerformanceRecorder

logger = logging.getLogger(__name__)

tracer = trace.get_tracer(__name__)

FALLBACK_REASONING = "Fallback to standard context due to selection error"
FALLBACK_TIER = "fallback"
FALLBACK_EFFECTIVENESS = 0.5

SELECTION_TASK_TYPE = "context_selection"

_RECENCY_WORDS = ("recent", "current", "now")


def effectiveness_score(
    text: str, criteria: SelectionCriteria, story: Optional[StoryContext]
) -> float:
    """Heuristic [0, 1] estimate of how well a selection serves its task.

    0.5 base, 0.15 each for a story beat, requested characters and a world
    state, up to 0.2 for using the budget (full marks at 80%), and 0.1 when
    the text mentions recent/current/now.
    """
    score = 0.5

    has_beat = story is not None and story.current_story_beat is not None
    has_world = story is not None and story.world_state is not None
    has_characters = bool(criteria.character_ids)
    score += (int(has_beat) + int(has_characters) + int(has_world)) * 0.15

    if criteria.max_tokens > 0:
        score += min(1.0, estimate_tokens(text) / (criteria.max_tokens * 0.8)) * 0.2
    else:
        score += 0.2

    lowered = text.lower()
    if any(word in lowered for word in _RECENCY_WORDS):
        score += 0.1

    return min(1.0, max(0.0, score))


def determine_complexity(criteria: SelectionCriteria) -> ComplexityTier:
    """Complexity of the selection itself, from the request shape."""
    factors = sum(
        (
            len(criteria.character_ids) > 2,
            criteria.task_type == "story_progression",
            criteria.story_phase in (StoryPhase.CLIMAX, StoryPhase.RESOLUTION),
            criteria.max_tokens > 6000,
        )
    )
    if factors >= 3:
        return ComplexityTier.COMPLEX
    if factors >= 1:
        return ComplexityTier.MODERATE
    return ComplexityTier.SIMPLE


class ContextSelector:
    """Selects, assembles and compresses context for a generation request.

    All collaborators are injected; nothing here is a process-wide singleton.

    Example:
        selector = ContextSelector(store, classifier, snapshot=snapshots)
        result = await selector.select_optimal_context("campaign-1", criteria)
        result.selected_text
    """

    def __init__(
        self,
        store: LayerStore,
        classifier: TaskComplexityClassifier,
        snapshot: Optional[SnapshotProvider] = None,
        allocator: Optional[BudgetAllocator] = None,
        compression: Optional[CompressionPipeline] = None,
        cache: Optional[SelectionCache] = None,
        recorder: Optional[PerformanceRecorder] = None,
        sink: Optional[TelemetrySink] = None,
        max_context_tokens: int = 8000,
        clock: Callable[[], float] = time.perf_counter,
    ):
        """Initialize the selector.

        Args:
            store: Layer store
            classifier: Shared task complexity classifier
            snapshot: Domain snapshot provider (story state)
            allocator: Budget allocator
            compression: Compression pipeline (no generation capability by default)
            cache: Selection cache
            recorder: Performance recorder
            sink: Telemetry sink
            max_context_tokens: Budget for the story-priority fallback context
            clock: Monotonic clock in seconds, for selection timing
        """
        self.store = store
        self.classifier = classifier
        self.snapshot = snapshot
        self.allocator = allocator or BudgetAllocator()
        self.compression = compression or CompressionPipeline(classifier=classifier)
        self.cache = cache or SelectionCache()
        self.recorder = recorder
        self.sink = sink
        self.max_context_tokens = max_context_tokens
        self._clock = clock

        self._strategies: dict[str, AdaptationConfig] = {}
        self._strategy_locks = KeyedLocks()

    async def select_optimal_context(
        self, campaign_id: str, criteria: SelectionCriteria
    ) -> SelectionResult:
        """Select context for a request. Never raises for selection failures.

        Args:
            campaign_id: Campaign identifier
            criteria: What to select for

        Returns:
            SelectionResult; ``cache_hit=True`` when served from the cache
        """
        start = self._clock()
        key = SelectionCache.key_for(campaign_id, criteria)

        with tracer.start_as_current_span(
            "context.select",
            attributes={
                "campaign.id": campaign_id,
                "task.type": criteria.task_type,
                "story.phase": criteria.story_phase.value,
                "tokens.budget": criteria.max_tokens,
            },
        ) as span:
            try:
                cached = self.cache.get(key)
                if cached is not None:
                    result = replace(cached, cache_hit=True)
                    span.set_attribute("cache.hit", True)
                    logger.info(
                        "[storyctx] Using cached context selection: campaign=%s task=%s",
                        campaign_id,
                        criteria.task_type,
                    )
                else:
                    result = await self._select(campaign_id, criteria, start)
                    self.cache.put(key, result)
                    span.set_attribute("cache.hit", False)
            except Exception as e:
                logger.error(
                    "[storyctx] Error in context selection: campaign=%s error=%s", campaign_id, e
                )
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                result = self._fallback(campaign_id, start)

            span.set_attribute("tokens.used", result.token_usage)
            span.set_attribute("compression.level", result.compression_level.value)

        duration_ms = (self._clock() - start) * 1000.0
        self._record(campaign_id, criteria, result, duration_ms)
        return result

    async def _select(
        self, campaign_id: str, criteria: SelectionCriteria, start: float
    ) -> SelectionResult:
        layers = self.store.get_layers(campaign_id)
        story = self.snapshot.get_story_context(campaign_id) if self.snapshot else None
        memory = self.snapshot.get_story_memory(campaign_id) if self.snapshot else None

        plan = plan_elements(criteria, has_story_context=story is not None)
        allocation = self.allocator.allocate(layers, criteria, plan)

        text = (
            ContextBuilder(criteria)
            .add_story_context(story)
            .add_story_memory(memory)
            .add_layers(allocation.layers)
            .build()
        )

        compressed = await self.compression.compress(text, criteria.max_tokens)
        final_text = compressed.text

        classification = self.classifier.classify(
            GenerationTask(
                type=SELECTION_TASK_TYPE,
                prompt="Select optimal context for current situation",
                context=criteria.current_situation,
                complexity=determine_complexity(criteria),
            )
        )

        result = SelectionResult(
            selected_text=final_text,
            reasoning=plan.reasoning,
            token_usage=estimate_tokens(final_text),
            effectiveness_score=effectiveness_score(final_text, criteria, story),
            selected_layers=tuple(allocation.layers),
            selection_time_ms=(self._clock() - start) * 1000.0,
            tier_used=classification.compute_tier.value,
            cache_hit=False,
            compression_level=compressed.level,
        )

        logger.info(
            "[storyctx] Context selection completed: campaign=%s task=%s layers=%d "
            "tokens=%d effectiveness=%.2f compression=%s",
            campaign_id,
            criteria.task_type,
            len(result.selected_layers),
            result.token_usage,
            result.effectiveness_score,
            compressed.level.value,
        )
        return result

    def _fallback(self, campaign_id: str, start: float) -> SelectionResult:
        story = memory = None
        if self.snapshot is not None:
            try:
                story = self.snapshot.get_story_context(campaign_id)
                memory = self.snapshot.get_story_memory(campaign_id)
            except Exception as e:
                logger.warning("[storyctx] Snapshot unavailable for fallback: %s", e)

        text = story_priority_context(
            self.store.get_layers(campaign_id),
            self.store.get_campaign_summary(campaign_id),
            story,
            memory,
            self.max_context_tokens,
        )
        return SelectionResult(
            selected_text=text,
            reasoning=FALLBACK_REASONING,
            token_usage=estimate_tokens(text),
            effectiveness_score=FALLBACK_EFFECTIVENESS,
            selected_layers=(),
            selection_time_ms=(self._clock() - start) * 1000.0,
            tier_used=FALLBACK_TIER,
            cache_hit=False,
            compression_level=CompressionLevel.NONE,
        )

    def _record(
        self,
        campaign_id: str,
        criteria: SelectionCriteria,
        result: SelectionResult,
        duration_ms: float,
    ) -> None:
        if self.recorder is not None:
            fallback = result.tier_used == FALLBACK_TIER
            self.recorder.record_selection(
                campaign_id,
                tier=None if fallback else result.tier_used,
                duration_ms=duration_ms,
                tokens=result.token_usage,
                cache_hit=result.cache_hit,
                error=FALLBACK_REASONING if fallback else None,
            )

        safe_emit(
            self.sink,
            "context.selected",
            {
                "campaign_id": campaign_id,
                "task_type": criteria.task_type,
                "tokens": result.token_usage,
                "layers": len(result.selected_layers),
                "cache_hit": result.cache_hit,
                "tier": result.tier_used,
                "effectiveness": result.effectiveness_score,
                "duration_ms": duration_ms,
            },
        )

    # ------------------------------------------------------------------
    # Adaptation strategies
    # ------------------------------------------------------------------

    def adapt_strategy(self, campaign_id: str, config: AdaptationConfig) -> None:
        """Store the adaptation strategy for a campaign."""
        with self._strategy_locks.hold(campaign_id):
            self._strategies[campaign_id] = config
        logger.info(
            "[storyctx] Context adaptation strategy updated: campaign=%s phase=%s strategy=%s",
            campaign_id,
            config.story_phase.value,
            config.strategy.value,
        )

    def get_adaptation_strategy(self, campaign_id: str) -> Optional[AdaptationConfig]:
        with self._strategy_locks.hold(campaign_id):
            return self._strategies.get(campaign_id)


__all__ = [
    "ContextSelector",
    "determine_complexity",
    "effectiveness_score",
]
