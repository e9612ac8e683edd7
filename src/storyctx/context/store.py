"""Layer Store - Campaign-scoped working memory.

Holds, per campaign, an ordered collection of context layers, an optional
campaign summary, and, per session, a rolling conversation memory.

Every operation is total: absent campaigns and sessions yield empty
collections, never errors. Each campaign (and each session) has its own lock.
"""

from __future__ import annotations

import logging
import math
import time
from collections import defaultdict
from dataclasses import replace
from typing import Callable, Iterable, Optional, Union

from .locks import KeyedLocks
from .types import (
    CampaignSummary,
    ContextStats,
    ConversationMemory,
    Interaction,
    Layer,
    LayerKind,
    MemoryStats,
)
from .window import estimate_tokens

logger = logging.getLogger(__name__)

MIN_IMPORTANCE = 1
MAX_IMPORTANCE = 10


def _clamp_importance(importance: int) -> int:
    return max(MIN_IMPORTANCE, min(MAX_IMPORTANCE, int(importance)))


class LayerStore:
    """In-memory, best-effort store of campaign context layers.

    Layers are only removed by ``clear`` or by ``prune_on_overflow`` once the
    campaign's stored tokens exceed ``compression_threshold``.

    Example:
        store = LayerStore(compression_threshold=6000)
        store.add_layer("campaign-1", LayerKind.STORY, "The gate falls.", importance=9,
                        story_beat_id="beat-3")
        layers = store.get_layers("campaign-1")
    """

    def __init__(
        self,
        compression_threshold: int = 6000,
        conversation_memory_limit: int = 20,
        keep_ratio: float = 0.7,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the store.

        Args:
            compression_threshold: Stored-token ceiling per campaign that triggers pruning
            conversation_memory_limit: Interactions kept per session (oldest dropped)
            keep_ratio: Fraction of layers kept when pruning
            clock: Time source (epoch seconds)
        """
        self.compression_threshold = compression_threshold
        self.conversation_memory_limit = conversation_memory_limit
        self.keep_ratio = keep_ratio
        self._clock = clock

        self._layers: dict[str, list[Layer]] = defaultdict(list)
        self._seq: dict[str, int] = defaultdict(int)
        self._summaries: dict[str, CampaignSummary] = {}
        self._memories: dict[str, ConversationMemory] = {}

        self._campaign_locks = KeyedLocks()
        self._session_locks = KeyedLocks()

    # ------------------------------------------------------------------
    # Layers
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
        """Append a layer to a campaign and run the overflow check.

        Args:
            campaign_id: Campaign identifier
            kind: Layer kind (enum or its string value)
            text: Layer content
            importance: 1-10, clamped into range
            tags: Free-form tags
            character_ids: Related characters
            story_beat_id: Story beat reference
            quest_id: Quest reference
            permanent: Story memory marker

        Returns:
            The stored layer
        """
        kind = self._coerce_kind(kind)

        with self._campaign_locks.hold(campaign_id):
            seq = self._seq[campaign_id]
            self._seq[campaign_id] = seq + 1

            layer = Layer(
                id=f"{kind.value}_{seq}",
                kind=kind,
                text=text,
                created_at=self._clock(),
                importance=_clamp_importance(importance),
                token_estimate=estimate_tokens(text),
                seq=seq,
                tags=tuple(tags),
                character_ids=tuple(character_ids),
                story_beat_id=story_beat_id,
                quest_id=quest_id,
                permanent=permanent,
            )
            self._layers[campaign_id].append(layer)

            logger.info(
                "[storyctx] Context layer added: campaign=%s kind=%s importance=%d tokens=%d",
                campaign_id,
                kind.value,
                layer.importance,
                layer.token_estimate,
            )

            self._prune_locked(campaign_id)

        return layer

    def get_layers(self, campaign_id: str) -> list[Layer]:
        """Get a campaign's layers in insertion order (a copy)."""
        with self._campaign_locks.hold(campaign_id):
            return list(self._layers.get(campaign_id, ()))

    def total_tokens(self, campaign_id: str) -> int:
        with self._campaign_locks.hold(campaign_id):
            return sum(layer.token_estimate for layer in self._layers.get(campaign_id, ()))

    def prune_on_overflow(self, campaign_id: str) -> int:
        """Drop the least important layers if stored tokens exceed the threshold.

        Keeps ``floor(len * keep_ratio)`` layers ranked by importance
        (descending), ties broken by insertion order. Survivors keep their
        insertion order.

        Returns:
            Number of layers removed
        """
        with self._campaign_locks.hold(campaign_id):
            return self._prune_locked(campaign_id)

    def _prune_locked(self, campaign_id: str) -> int:
        layers = self._layers.get(campaign_id)
        if not layers:
            return 0

        total = sum(layer.token_estimate for layer in layers)
        if total <= self.compression_threshold:
            return 0

        keep_count = math.floor(len(layers) * self.keep_ratio)
        ranked = sorted(layers, key=lambda layer: (-layer.importance, layer.seq))
        keep_ids = {layer.id for layer in ranked[:keep_count]}
        survivors = [layer for layer in layers if layer.id in keep_ids]
        self._layers[campaign_id] = survivors

        removed = len(layers) - len(survivors)
        logger.info(
            "[storyctx] Context compacted: campaign=%s tokens=%d threshold=%d layers=%d->%d",
            campaign_id,
            total,
            self.compression_threshold,
            len(layers),
            len(survivors),
        )
        return removed

    def clear(self, campaign_id: str) -> None:
        """Clear a campaign's layers and summary."""
        with self._campaign_locks.hold(campaign_id):
            self._layers.pop(campaign_id, None)
            self._summaries.pop(campaign_id, None)
        logger.info("[storyctx] Context cleared for campaign %s", campaign_id)

    def get_context_stats(self, campaign_id: str) -> ContextStats:
        """Layer count, stored tokens and a per-kind breakdown."""
        layers = self.get_layers(campaign_id)
        by_kind: dict[str, int] = {}
        for layer in layers:
            by_kind[layer.kind.value] = by_kind.get(layer.kind.value, 0) + 1
        return ContextStats(
            total_layers=len(layers),
            total_tokens=sum(layer.token_estimate for layer in layers),
            layers_by_kind=by_kind,
        )

    @staticmethod
    def _coerce_kind(kind: Union[LayerKind, str]) -> LayerKind:
        if isinstance(kind, LayerKind):
            return kind
        try:
            return LayerKind(kind)
        except ValueError:
            logger.warning("[storyctx] Unknown layer kind %r, storing as immediate", kind)
            return LayerKind.IMMEDIATE

    # ------------------------------------------------------------------
    # Campaign summary
    # ------------------------------------------------------------------

    def set_campaign_summary(self, campaign_id: str, summary: CampaignSummary) -> CampaignSummary:
        """Store a campaign summary, recomputing its token estimate."""
        stored = replace(
            summary,
            total_tokens=estimate_tokens(summary.render()),
            last_updated=self._clock(),
        )
        with self._campaign_locks.hold(campaign_id):
            self._summaries[campaign_id] = stored
        return stored

    def get_campaign_summary(self, campaign_id: str) -> Optional[CampaignSummary]:
        with self._campaign_locks.hold(campaign_id):
            return self._summaries.get(campaign_id)

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
        """Record an exchange; only the newest ``conversation_memory_limit`` are kept."""
        now = self._clock()
        with self._session_locks.hold(session_id):
            memory = self._memories.get(session_id)
            if memory is None:
                memory = ConversationMemory(session_id=session_id, last_updated=now)
                self._memories[session_id] = memory

            memory.interactions.append(
                Interaction(
                    timestamp=now,
                    speaker=speaker,
                    message=message,
                    response=response,
                    context=context,
                    importance=_clamp_importance(importance),
                )
            )
            if len(memory.interactions) > self.conversation_memory_limit:
                memory.interactions = memory.interactions[-self.conversation_memory_limit :]
            memory.last_updated = now

            logger.info(
                "[storyctx] Conversation memory added: session=%s speaker=%s importance=%d",
                session_id,
                speaker,
                importance,
            )
            return replace(memory, interactions=list(memory.interactions))

    def get_conversation_memory(self, session_id: str) -> Optional[ConversationMemory]:
        with self._session_locks.hold(session_id):
            memory = self._memories.get(session_id)
            if memory is None:
                return None
            return replace(memory, interactions=list(memory.interactions))

    def get_memory_stats(self) -> MemoryStats:
        """Sessions, interactions and the mean of per-session average importance."""
        sessions = list(self._memories)
        importances: list[list[int]] = []
        for session_id in sessions:
            with self._session_locks.hold(session_id):
                memory = self._memories.get(session_id)
                if memory is not None and memory.interactions:
                    importances.append([i.importance for i in memory.interactions])

        if not importances:
            return MemoryStats(total_sessions=len(sessions))

        per_session = [sum(values) / len(values) for values in importances]
        return MemoryStats(
            total_sessions=len(sessions),
            total_interactions=sum(len(values) for values in importances),
            average_importance=sum(per_session) / len(per_session),
        )


__all__ = ["LayerStore"]
