"""Compression Pipeline - Shrink assembled context to a token budget.

Runs only when the assembled text is over budget. The level is picked from
``ratio = max_tokens / current_tokens``:

1. ratio > 0.8: light, whitespace normalization only
2. 0.5 < ratio <= 0.8: medium, keep whole sections up to 90% of the budget
   and summarize the rest one section at a time
3. ratio <= 0.5: heavy, one key-point extraction over the whole text

Generation calls are bounded by a timeout. A failed or timed out call falls
back to the next cheaper behavior: medium drops the section, heavy truncates
to a word budget. Compression never raises.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from opentelemetry import trace

from ..complexity.types import ComplexityTier, ComputeTier, GenerationTask
from ..llm.types import GenerationClient, GenerationRequest, GenerationResult
from ..telemetry.sink import TelemetrySink, safe_emit
from .types import CompressionLevel
from .window import estimate_tokens, truncate_words

if TYPE_CHECKING:
    from ..complexity.classifier import TaskComplexityClassifier

logger = logging.getLogger(__name__)

tracer = trace.get_tracer(__name__)

LIGHT_RATIO = 0.8
MEDIUM_RATIO = 0.5
SECTION_KEEP_SHARE = 0.9
HEAVY_OUTPUT_SHARE = 0.8

SECTION_PROMPT = """Summarize this section while preserving key information:

{section}

Return a concise summary that maintains the essential details."""

KEY_POINTS_PROMPT = """Extract the most important key points from this context, keeping only essential information for story continuity:

{context}

Return only the key points in a concise format, maintaining story coherence."""


@dataclass
class CompressionResult:
    """Outcome of a compression pass.

    Attributes:
        text: Compressed text
        level: Level that ran
        original_tokens: Token estimate before compression
        final_tokens: Token estimate after compression
        sections_summarized: Medium level sections replaced by a summary
        sections_dropped: Medium level sections left out
        fallback_used: Heavy level fell back to word truncation
    """

    text: str
    level: CompressionLevel
    original_tokens: int
    final_tokens: int
    sections_summarized: int = 0
    sections_dropped: int = 0
    fallback_used: bool = False


def choose_level(current_tokens: int, max_tokens: int) -> CompressionLevel:
    """Compression level for text of ``current_tokens`` against ``max_tokens``."""
    if current_tokens <= max_tokens:
        return CompressionLevel.NONE
    ratio = max(0, max_tokens) / current_tokens
    if ratio > LIGHT_RATIO:
        return CompressionLevel.LIGHT
    if ratio > MEDIUM_RATIO:
        return CompressionLevel.MEDIUM
    return CompressionLevel.HEAVY


def normalize_whitespace(text: str) -> str:
    """Collapse every whitespace run to one space and trim the ends."""
    return " ".join(text.split())


def truncation_word_budget(max_tokens: int) -> int:
    return max(0, math.floor((max_tokens / 4) * HEAVY_OUTPUT_SHARE))


class CompressionPipeline:
    """Multi-level context compression.

    Example:
        pipeline = CompressionPipeline(generator=provider, classifier=classifier)
        result = await pipeline.compress(text, max_tokens=2000)
        result.level  # CompressionLevel.MEDIUM
    """

    def __init__(
        self,
        generator: Optional[GenerationClient] = None,
        classifier: Optional[TaskComplexityClassifier] = None,
        timeout_sec: float = 20.0,
        section_summary_tokens: int = 200,
        temperature: float = 0.3,
        sink: Optional[TelemetrySink] = None,
    ):
        """Initialize the pipeline.

        Args:
            generator: Generation capability; without one, medium drops and heavy truncates
            classifier: Picks the compute tier hint for compression calls
            timeout_sec: Upper bound for each generation call
            section_summary_tokens: Output ceiling for a section summary
            temperature: Sampling temperature for compression calls
            sink: Telemetry sink
        """
        self.generator = generator
        self.classifier = classifier
        self.timeout_sec = timeout_sec
        self.section_summary_tokens = section_summary_tokens
        self.temperature = temperature
        self.sink = sink

    async def compress(self, text: str, max_tokens: int) -> CompressionResult:
        """Compress text so that it fits ``max_tokens`` as closely as the level allows."""
        original = estimate_tokens(text)
        level = choose_level(original, max_tokens)
        if level is CompressionLevel.NONE:
            return CompressionResult(text, level, original, original)

        with tracer.start_as_current_span(
            "context.compress",
            attributes={
                "compression.level": level.value,
                "compression.original_tokens": original,
                "compression.max_tokens": max_tokens,
            },
        ) as span:
            if level is CompressionLevel.LIGHT:
                compressed = normalize_whitespace(text)
                result = CompressionResult(compressed, level, original, estimate_tokens(compressed))
            elif level is CompressionLevel.MEDIUM:
                result = await self._medium(text, max_tokens, original)
            else:
                result = await self._heavy(text, max_tokens, original)

            span.set_attribute("compression.final_tokens", result.final_tokens)
            span.set_attribute("compression.fallback_used", result.fallback_used)

        logger.info(
            "[storyctx] Context compressed: level=%s tokens=%d->%d budget=%d",
            level.value,
            original,
            result.final_tokens,
            max_tokens,
        )
        safe_emit(
            self.sink,
            "context.compressed",
            {
                "level": level.value,
                "original_tokens": original,
                "final_tokens": result.final_tokens,
                "sections_dropped": result.sections_dropped,
                "fallback_used": result.fallback_used,
            },
        )
        return result

    async def _medium(self, text: str, max_tokens: int, original: int) -> CompressionResult:
        kept: list[str] = []
        used = 0
        summarized = 0
        dropped = 0

        for section in text.split("\n\n"):
            if not section.strip():
                continue
            tokens = estimate_tokens(section)
            if used + tokens <= max_tokens * SECTION_KEEP_SHARE:
                kept.append(section)
                used += tokens
                continue

            result = await self._generate(
                SECTION_PROMPT.format(section=section),
                "section_compression",
                self.section_summary_tokens,
            )
            summary = result.content.strip() if result.success else ""
            summary_tokens = estimate_tokens(summary)
            if summary and used + summary_tokens <= max_tokens:
                kept.append(summary)
                used += summary_tokens
                summarized += 1
            else:
                dropped += 1

        compressed = "\n\n".join(kept)
        return CompressionResult(
            compressed,
            CompressionLevel.MEDIUM,
            original,
            estimate_tokens(compressed),
            sections_summarized=summarized,
            sections_dropped=dropped,
        )

    async def _heavy(self, text: str, max_tokens: int, original: int) -> CompressionResult:
        result = await self._generate(
            KEY_POINTS_PROMPT.format(context=text),
            "context_compression",
            math.floor(max_tokens * HEAVY_OUTPUT_SHARE),
        )
        if result.success and result.content.strip():
            compressed = result.content
            fallback = False
        else:
            compressed = truncate_words(text, truncation_word_budget(max_tokens))
            fallback = True
        return CompressionResult(
            compressed,
            CompressionLevel.HEAVY,
            original,
            estimate_tokens(compressed),
            fallback_used=fallback,
        )

    def _tier_hint(self, task_type: str, prompt: str) -> ComputeTier:
        if self.classifier is None:
            return ComputeTier.LITE
        task = GenerationTask(
            type=task_type, prompt=prompt, complexity=ComplexityTier.ULTRA_SIMPLE
        )
        return self.classifier.classify(task).compute_tier

    async def _generate(self, prompt: str, task_type: str, max_output: int) -> GenerationResult:
        if self.generator is None:
            return GenerationResult.failure("no generation capability configured")

        request = GenerationRequest(
            prompt=prompt,
            task_type=task_type,
            temperature=self.temperature,
            max_output_tokens=max_output,
            tier_hint=self._tier_hint(task_type, prompt),
        )
        try:
            result = await asyncio.wait_for(
                self.generator.generate(request), timeout=self.timeout_sec
            )
        except asyncio.TimeoutError:
            logger.warning(
                "[storyctx] Generation timed out after %.1fs: task=%s", self.timeout_sec, task_type
            )
            return GenerationResult.failure("timeout")
        except Exception as e:
            logger.warning("[storyctx] Generation raised for task=%s: %s", task_type, e)
            return GenerationResult.failure(str(e))

        if not result.success:
            logger.warning(
                "[storyctx] Generation failed: task=%s error=%s", task_type, result.error
            )
        return result


__all__ = [
    "CompressionPipeline",
    "CompressionResult",
    "choose_level",
    "normalize_whitespace",
    "truncation_word_budget",
]
