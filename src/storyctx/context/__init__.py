"""Context selection and compression.

**Module Organization:**

- **window.py**: Token estimation and budget bookkeeping
- **types.py**: Layers, criteria, results
- **store.py**: Campaign-scoped layer store, summaries, conversation memory
- **snapshot.py**: Story state read access
- **ranking.py**: Relevance scoring
- **allocator.py**: Element plans and tiered budget allocation
- **builder.py**: Context text assembly
- **compression.py**: Multi-level compression pipeline
- **cache.py**: Selection cache
- **selector.py**: The full selection pipeline
"""

from .allocator import (
    Allocation,
    BudgetAllocator,
    ElementPlan,
    find_matching_layers,
    plan_elements,
)
from .builder import (
    NO_CONTEXT,
    ContextBuilder,
    format_layer,
    standard_context,
    story_priority_context,
)
from .cache import CacheEntry, CacheStats, SelectionCache
from .compression import CompressionPipeline, CompressionResult, choose_level
from .locks import KeyedLocks
from .ranking import RelevanceRanker, ScoredLayer, score_layer
from .selector import ContextSelector, determine_complexity, effectiveness_score
from .snapshot import (
    CharacterDevelopment,
    InMemorySnapshotProvider,
    QuestProgress,
    SnapshotProvider,
    StoryBeat,
    StoryContext,
    StoryMemory,
    WorldState,
    WorldStateChange,
)
from .store import LayerStore
from .types import (
    AdaptationConfig,
    AdaptationStrategy,
    CampaignSummary,
    CompressionLevel,
    ContextStats,
    ConversationMemory,
    Interaction,
    Layer,
    LayerKind,
    MemoryStats,
    PriorityWeights,
    SelectionCriteria,
    SelectionResult,
    StoryPhase,
)
from .window import TokenBudget, estimate_tokens, truncate_words

__all__ = [
    # Window
    "TokenBudget",
    "estimate_tokens",
    "truncate_words",
    # Types
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
    # Store
    "KeyedLocks",
    "LayerStore",
    # Snapshot
    "CharacterDevelopment",
    "InMemorySnapshotProvider",
    "QuestProgress",
    "SnapshotProvider",
    "StoryBeat",
    "StoryContext",
    "StoryMemory",
    "WorldState",
    "WorldStateChange",
    # Ranking / allocation
    "RelevanceRanker",
    "ScoredLayer",
    "score_layer",
    "Allocation",
    "BudgetAllocator",
    "ElementPlan",
    "find_matching_layers",
    "plan_elements",
    # Assembly
    "NO_CONTEXT",
    "ContextBuilder",
    "format_layer",
    "standard_context",
    "story_priority_context",
    # Compression / cache / selection
    "CompressionPipeline",
    "CompressionResult",
    "choose_level",
    "CacheEntry",
    "CacheStats",
    "SelectionCache",
    "ContextSelector",
    "determine_complexity",
    "effectiveness_score",
]
