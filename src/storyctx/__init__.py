"""storyctx - Context selection and compression for narrative generation.

Decides, on every generation request, which fragment of accumulated
campaign state to hand to a text generator under a hard token budget, and
which compute tier that generation call should use.

Quick Start:
    ```python
    from storyctx import ContextEngine, LayerKind, SelectionCriteria

    engine = ContextEngine.from_config()
    engine.add_layer("campaign-1", LayerKind.STORY, "The gate falls.", importance=9,
                     story_beat_id="beat-3")
    engine.add_layer("campaign-1", LayerKind.CHARACTER, "Mira distrusts the council.",
                     importance=6, character_ids=["mira"])

    result = await engine.select_optimal_context(
        "campaign-1",
        SelectionCriteria(task_type="story_progression", max_tokens=2000,
                          character_ids=("mira",)),
    )
    print(result.selected_text, result.tier_used)
    ```

Module structure:
    - context/: Layer store, ranking, allocation, compression, cache, selector
    - complexity/: Task complexity classifier and compute tiers
    - llm/: Generation capability (direct HTTP)
    - recorder: Performance and effectiveness logs, threshold alerts
    - telemetry/: OpenTelemetry tracing and event sink
    - config: storyctx.toml configuration
    - engine: ContextEngine facade
    - cli: Command line interface
"""

from .complexity import (
    Classification,
    ComplexityProfile,
    ComplexityTier,
    ComputeTier,
    ContextDependency,
    GenerationTask,
    TaskComplexityClassifier,
)
from .config import EngineConfig, load_engine_config
from .context import (
    AdaptationConfig,
    AdaptationStrategy,
    CampaignSummary,
    CompressionLevel,
    CompressionPipeline,
    ContextSelector,
    InMemorySnapshotProvider,
    Layer,
    LayerKind,
    LayerStore,
    PriorityWeights,
    SelectionCache,
    SelectionCriteria,
    SelectionResult,
    StoryPhase,
    estimate_tokens,
)
from .engine import ContextEngine
from .errors import ConfigError, GenerationError, StoryctxError
from .llm import GenerationClient, GenerationRequest, GenerationResult, LLMConfig, LLMProvider
from .recorder import (
    AlertThresholds,
    PerformanceAlert,
    PerformanceRecorder,
    PerformanceSample,
    PerformanceTrend,
)

__version__ = "0.1.0"

__all__ = [
    # Engine
    "ContextEngine",
    "EngineConfig",
    "load_engine_config",
    # Context
    "AdaptationConfig",
    "AdaptationStrategy",
    "CampaignSummary",
    "CompressionLevel",
    "CompressionPipeline",
    "ContextSelector",
    "InMemorySnapshotProvider",
    "Layer",
    "LayerKind",
    "LayerStore",
    "PriorityWeights",
    "SelectionCache",
    "SelectionCriteria",
    "SelectionResult",
    "StoryPhase",
    "estimate_tokens",
    # Complexity
    "Classification",
    "ComplexityProfile",
    "ComplexityTier",
    "ComputeTier",
    "ContextDependency",
    "GenerationTask",
    "TaskComplexityClassifier",
    # LLM
    "GenerationClient",
    "GenerationRequest",
    "GenerationResult",
    "LLMConfig",
    "LLMProvider",
    # Recorder
    "AlertThresholds",
    "PerformanceAlert",
    "PerformanceRecorder",
    "PerformanceSample",
    "PerformanceTrend",
    # Errors
    "ConfigError",
    "GenerationError",
    "StoryctxError",
]
