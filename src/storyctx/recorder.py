"""Performance / Effectiveness Recorder - Rolling logs, aggregates and alerts.

Three append-only logs, each capped (oldest entries dropped):
- Per compute tier: latency, success and token usage of generation work
- Per campaign: selection latency, context size and cache behaviour
- Per campaign: effectiveness feedback on delivered context

Aggregates are arithmetic means. The campaign trend compares the mean
duration of the latest window against the window before it.

Every campaign sample is checked against alert thresholds. A campaign holds
at most one unresolved alert per alert type.
"""

from __future__ import annotations

import itertools
import logging
import math
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Union

from .complexity.types import ComputeTier
from .context.locks import KeyedLocks

logger = logging.getLogger(__name__)

# USD per one million (input, output) tokens
COST_PER_MILLION: dict[ComputeTier, tuple[float, float]] = {
    ComputeTier.LITE: (0.05, 0.15),
    ComputeTier.STANDARD: (0.075, 0.3),
    ComputeTier.ADVANCED: (0.375, 1.5),
}

INPUT_TOKEN_SHARE = 0.7
TREND_THRESHOLD = 0.1


class PerformanceTrend(Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


@dataclass
class PerformanceSample:
    """One timed unit of work.

    Attributes:
        task_type: Work label (e.g. "context_selection")
        duration_ms: Wall time in milliseconds
        success: Whether the work succeeded
        tokens: Tokens consumed
        error: Failure description
        fallback_used: Whether a degraded path produced the outcome
        context_size: Tokens of context delivered
        cache_hit: Whether the result came from the selection cache
        recorded_at: Append time (epoch seconds), set by the recorder
    """

    task_type: str
    duration_ms: float
    success: bool = True
    tokens: int = 0
    error: Optional[str] = None
    fallback_used: bool = False
    context_size: int = 0
    cache_hit: bool = False
    recorded_at: float = 0.0


@dataclass
class EffectivenessSample:
    task_type: str
    effectiveness: float
    user_satisfaction: float
    context_relevance: float
    response_quality: float
    recorded_at: float = 0.0


@dataclass
class TierAnalytics:
    tier: ComputeTier
    samples: int = 0
    average_response_time_ms: float = 0.0
    success_rate: float = 0.0
    fallback_rate: float = 0.0
    total_tokens: int = 0
    estimated_cost: float = 0.0


@dataclass
class PerformanceAnalytics:
    """Per-tier comparison across every compute tier."""

    tiers: dict[ComputeTier, TierAnalytics] = field(default_factory=dict)

    @property
    def total_samples(self) -> int:
        return sum(t.samples for t in self.tiers.values())

    @property
    def total_cost(self) -> float:
        return sum(t.estimated_cost for t in self.tiers.values())


@dataclass
class CampaignAnalytics:
    total_requests: int = 0
    average_response_time_ms: float = 0.0
    average_context_size: float = 0.0
    cache_hit_rate: float = 0.0
    error_rate: float = 0.0
    trend: PerformanceTrend = PerformanceTrend.STABLE


@dataclass
class EffectivenessAnalytics:
    average_effectiveness: float = 0.0
    average_user_satisfaction: float = 0.0
    average_context_relevance: float = 0.0
    average_response_quality: float = 0.0
    total_selections: int = 0
    task_type_breakdown: dict[str, int] = field(default_factory=dict)


class AlertType(Enum):
    RESPONSE_TIME = "response_time"
    CONTEXT_SIZE = "context_size"
    ERROR_RATE = "error_rate"
    CACHE_MISS = "cache_miss"


class AlertSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class AlertThresholds:
    """Limits a campaign sample is checked against.

    Attributes:
        max_response_time_ms: Slowest acceptable single sample
        max_context_size: Largest acceptable delivered context, in tokens
        max_error_rate: Highest acceptable failure share of the campaign log
        min_cache_hit_rate: Lowest acceptable cache hit share of the campaign log
        min_samples: Campaign samples required before rate checks apply
    """

    max_response_time_ms: float = 2000.0
    max_context_size: int = 8000
    max_error_rate: float = 0.05
    min_cache_hit_rate: float = 0.5
    min_samples: int = 10


@dataclass
class PerformanceAlert:
    id: str
    campaign_id: str
    type: AlertType
    severity: AlertSeverity
    message: str
    threshold: float
    actual_value: float
    raised_at: float
    resolved: bool = False
    resolved_at: Optional[float] = None


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def estimate_cost(tokens: int, tier: ComputeTier) -> float:
    """Approximate USD cost assuming 70% input and 30% output tokens."""
    input_rate, output_rate = COST_PER_MILLION[tier]
    input_tokens = math.floor(tokens * INPUT_TOKEN_SHARE)
    output_tokens = tokens - input_tokens
    return (input_tokens / 1_000_000) * input_rate + (output_tokens / 1_000_000) * output_rate


def performance_trend(durations: list[float], window: int = 10) -> PerformanceTrend:
    """Compare the mean of the last ``window`` durations with the window before.

    Improving when at least 10% faster, declining when at least 10% slower.
    Fewer than ``window + 1`` samples is always stable.
    """
    recent = durations[-window:]
    older = durations[-2 * window : -window]
    if not recent or not older:
        return PerformanceTrend.STABLE

    recent_mean = _mean(recent)
    older_mean = _mean(older)
    if recent_mean <= older_mean * (1 - TREND_THRESHOLD):
        return PerformanceTrend.IMPROVING
    if recent_mean >= older_mean * (1 + TREND_THRESHOLD):
        return PerformanceTrend.DECLINING
    return PerformanceTrend.STABLE


def check_thresholds(
    sample: PerformanceSample,
    log: list[PerformanceSample],
    thresholds: AlertThresholds,
) -> list[tuple[AlertType, AlertSeverity, float, float, str]]:
    """Threshold breaches for a sample and the campaign log it was appended to.

    Returns:
        (type, severity, threshold, actual value, message) per breach
    """
    breaches = []

    limit = thresholds.max_response_time_ms
    if sample.duration_ms > limit:
        severity = AlertSeverity.CRITICAL if sample.duration_ms > limit * 2 else AlertSeverity.HIGH
        breaches.append(
            (
                AlertType.RESPONSE_TIME,
                severity,
                limit,
                sample.duration_ms,
                f"Response time exceeded threshold: {sample.duration_ms:.0f}ms > {limit:.0f}ms",
            )
        )

    size_limit = thresholds.max_context_size
    if sample.context_size > size_limit:
        critical = sample.context_size > size_limit * 1.5
        breaches.append(
            (
                AlertType.CONTEXT_SIZE,
                AlertSeverity.CRITICAL if critical else AlertSeverity.MEDIUM,
                size_limit,
                sample.context_size,
                f"Context size exceeded threshold: {sample.context_size} tokens > "
                f"{size_limit} tokens",
            )
        )

    if len(log) < thresholds.min_samples:
        return breaches

    error_rate = sum(1 for s in log if not s.success) / len(log)
    if error_rate > thresholds.max_error_rate:
        critical = error_rate > thresholds.max_error_rate * 2
        breaches.append(
            (
                AlertType.ERROR_RATE,
                AlertSeverity.CRITICAL if critical else AlertSeverity.HIGH,
                thresholds.max_error_rate,
                error_rate,
                f"Error rate exceeded threshold: {error_rate:.2%} > "
                f"{thresholds.max_error_rate:.0%}",
            )
        )

    hit_rate = sum(1 for s in log if s.cache_hit) / len(log)
    if hit_rate < thresholds.min_cache_hit_rate:
        breaches.append(
            (
                AlertType.CACHE_MISS,
                AlertSeverity.HIGH if hit_rate < 0.2 else AlertSeverity.MEDIUM,
                thresholds.min_cache_hit_rate,
                hit_rate,
                f"Cache hit rate below threshold: {hit_rate:.2%} < "
                f"{thresholds.min_cache_hit_rate:.0%}",
            )
        )

    return breaches


class PerformanceRecorder:
    """Rolling performance and effectiveness logs.

    Constructed once and shared by reference.

    Example:
        recorder = PerformanceRecorder()
        recorder.record_performance(ComputeTier.LITE, PerformanceSample("context_selection", 42.0))
        recorder.get_performance_analytics().tiers[ComputeTier.LITE].success_rate  # 1.0
    """

    def __init__(
        self,
        tier_capacity: int = 100,
        campaign_capacity: int = 1000,
        effectiveness_capacity: int = 100,
        trend_window: int = 10,
        alert_thresholds: Optional[AlertThresholds] = None,
        alerts_enabled: bool = True,
        alert_capacity: int = 100,
        clock: Callable[[], float] = time.time,
    ):
        self.tier_capacity = tier_capacity
        self.campaign_capacity = campaign_capacity
        self.effectiveness_capacity = effectiveness_capacity
        self.trend_window = trend_window
        self.alert_thresholds = alert_thresholds or AlertThresholds()
        self.alerts_enabled = alerts_enabled
        self.alert_capacity = alert_capacity
        self._clock = clock

        self._tiers: dict[ComputeTier, deque[PerformanceSample]] = {
            tier: deque(maxlen=tier_capacity) for tier in ComputeTier
        }
        self._campaigns: dict[str, deque[PerformanceSample]] = {}
        self._effectiveness: dict[str, deque[EffectivenessSample]] = {}
        self._alerts: dict[str, deque[PerformanceAlert]] = {}
        self._alert_ids = itertools.count(1)
        self._locks = KeyedLocks()

    # ------------------------------------------------------------------
    # Performance
    # ------------------------------------------------------------------

    def record_performance(
        self,
        tier: Optional[Union[ComputeTier, str]],
        sample: PerformanceSample,
        campaign_id: Optional[str] = None,
    ) -> None:
        """Append a sample to the tier log and, if given, the campaign log.

        Args:
            tier: Compute tier that did the work; None or an unknown tier records
                against the campaign only
            sample: The measured work
            campaign_id: Campaign the work belongs to
        """
        if tier is not None:
            try:
                tier = ComputeTier(tier)
            except ValueError:
                logger.warning(
                    "[storyctx] Unknown compute tier %r, recording against campaign only", tier
                )
                tier = None
        sample.recorded_at = self._clock()

        if tier is not None:
            with self._locks.hold(f"tier:{tier.value}"):
                self._tiers[tier].append(sample)

        if campaign_id is not None:
            with self._locks.hold(f"campaign:{campaign_id}"):
                log = self._campaigns.get(campaign_id)
                if log is None:
                    log = deque(maxlen=self.campaign_capacity)
                    self._campaigns[campaign_id] = log
                log.append(sample)
                snapshot = list(log)
            if self.alerts_enabled:
                self._raise_alerts(campaign_id, sample, snapshot)

        logger.debug(
            "[storyctx] Performance recorded: tier=%s task=%s duration=%.1fms success=%s",
            tier.value if tier is not None else "-",
            sample.task_type,
            sample.duration_ms,
            sample.success,
        )

    def record_selection(
        self,
        campaign_id: str,
        tier: Optional[Union[ComputeTier, str]],
        duration_ms: float,
        tokens: int,
        cache_hit: bool = False,
        error: Optional[str] = None,
    ) -> None:
        """Record one context selection; an error marks a fallback selection."""
        self.record_performance(
            tier,
            PerformanceSample(
                task_type="context_selection",
                duration_ms=duration_ms,
                success=error is None,
                tokens=tokens,
                error=error,
                fallback_used=error is not None,
                context_size=tokens,
                cache_hit=cache_hit,
            ),
            campaign_id=campaign_id,
        )

    def get_tier_analytics(self, tier: ComputeTier) -> TierAnalytics:
        with self._locks.hold(f"tier:{tier.value}"):
            samples = list(self._tiers[tier])
        if not samples:
            return TierAnalytics(tier=tier)

        total_tokens = sum(s.tokens for s in samples)
        return TierAnalytics(
            tier=tier,
            samples=len(samples),
            average_response_time_ms=_mean([s.duration_ms for s in samples]),
            success_rate=sum(1 for s in samples if s.success) / len(samples),
            fallback_rate=sum(1 for s in samples if s.fallback_used) / len(samples),
            total_tokens=total_tokens,
            estimated_cost=sum(estimate_cost(s.tokens, tier) for s in samples),
        )

    def get_performance_analytics(self) -> PerformanceAnalytics:
        return PerformanceAnalytics(
            tiers={tier: self.get_tier_analytics(tier) for tier in ComputeTier}
        )

    def get_campaign_analytics(self, campaign_id: str) -> CampaignAnalytics:
        with self._locks.hold(f"campaign:{campaign_id}"):
            samples = list(self._campaigns.get(campaign_id, ()))
        if not samples:
            return CampaignAnalytics()

        durations = [s.duration_ms for s in samples]
        return CampaignAnalytics(
            total_requests=len(samples),
            average_response_time_ms=_mean(durations),
            average_context_size=_mean([s.context_size for s in samples]),
            cache_hit_rate=sum(1 for s in samples if s.cache_hit) / len(samples),
            error_rate=sum(1 for s in samples if not s.success) / len(samples),
            trend=performance_trend(durations, self.trend_window),
        )

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def _raise_alerts(
        self, campaign_id: str, sample: PerformanceSample, log: list[PerformanceSample]
    ) -> None:
        breaches = check_thresholds(sample, log, self.alert_thresholds)
        if not breaches:
            return

        raised: list[PerformanceAlert] = []
        now = self._clock()
        with self._locks.hold(f"alerts:{campaign_id}"):
            alerts = self._alerts.get(campaign_id)
            if alerts is None:
                alerts = deque(maxlen=self.alert_capacity)
                self._alerts[campaign_id] = alerts
            open_types = {a.type for a in alerts if not a.resolved}
            for alert_type, severity, threshold, actual, message in breaches:
                if alert_type in open_types:
                    continue
                alert = PerformanceAlert(
                    id=f"alert_{next(self._alert_ids)}_{alert_type.value}",
                    campaign_id=campaign_id,
                    type=alert_type,
                    severity=severity,
                    message=message,
                    threshold=threshold,
                    actual_value=actual,
                    raised_at=now,
                )
                alerts.append(alert)
                raised.append(alert)

        if raised:
            logger.warning(
                "[storyctx] Performance alerts raised: campaign=%s types=%s",
                campaign_id,
                ",".join(a.type.value for a in raised),
            )

    def get_performance_alerts(
        self, campaign_id: str, include_resolved: bool = True
    ) -> list[PerformanceAlert]:
        """Alerts for a campaign, oldest first."""
        with self._locks.hold(f"alerts:{campaign_id}"):
            alerts = list(self._alerts.get(campaign_id, ()))
        if include_resolved:
            return alerts
        return [a for a in alerts if not a.resolved]

    def resolve_performance_alert(self, campaign_id: str, alert_id: str) -> bool:
        """Mark an alert resolved.

        Returns:
            False when the alert is unknown or already resolved
        """
        with self._locks.hold(f"alerts:{campaign_id}"):
            for alert in self._alerts.get(campaign_id, ()):
                if alert.id == alert_id and not alert.resolved:
                    alert.resolved = True
                    alert.resolved_at = self._clock()
                    logger.info(
                        "[storyctx] Performance alert resolved: campaign=%s alert=%s",
                        campaign_id,
                        alert_id,
                    )
                    return True
        return False

    # ------------------------------------------------------------------
    # Effectiveness
    # ------------------------------------------------------------------

    def record_effectiveness(
        self,
        campaign_id: str,
        task_type: str,
        effectiveness: float,
        user_satisfaction: float,
        context_relevance: float,
        response_quality: float,
    ) -> None:
        sample = EffectivenessSample(
            task_type=task_type,
            effectiveness=effectiveness,
            user_satisfaction=user_satisfaction,
            context_relevance=context_relevance,
            response_quality=response_quality,
            recorded_at=self._clock(),
        )
        with self._locks.hold(f"effectiveness:{campaign_id}"):
            log = self._effectiveness.get(campaign_id)
            if log is None:
                log = deque(maxlen=self.effectiveness_capacity)
                self._effectiveness[campaign_id] = log
            log.append(sample)

        logger.info(
            "[storyctx] Context effectiveness recorded: campaign=%s task=%s effectiveness=%.2f",
            campaign_id,
            task_type,
            effectiveness,
        )

    def get_effectiveness_analytics(self, campaign_id: str) -> EffectivenessAnalytics:
        with self._locks.hold(f"effectiveness:{campaign_id}"):
            samples = list(self._effectiveness.get(campaign_id, ()))
        if not samples:
            return EffectivenessAnalytics()

        breakdown: dict[str, int] = {}
        for s in samples:
            breakdown[s.task_type] = breakdown.get(s.task_type, 0) + 1

        return EffectivenessAnalytics(
            average_effectiveness=_mean([s.effectiveness for s in samples]),
            average_user_satisfaction=_mean([s.user_satisfaction for s in samples]),
            average_context_relevance=_mean([s.context_relevance for s in samples]),
            average_response_quality=_mean([s.response_quality for s in samples]),
            total_selections=len(samples),
            task_type_breakdown=breakdown,
        )


__all__ = [
    "AlertSeverity",
    "AlertThresholds",
    "AlertType",
    "COST_PER_MILLION",
    "CampaignAnalytics",
    "EffectivenessAnalytics",
    "EffectivenessSample",
    "PerformanceAlert",
    "PerformanceAnalytics",
    "PerformanceRecorder",
    "PerformanceSample",
    "PerformanceTrend",
    "TierAnalytics",
    "check_thresholds",
    "estimate_cost",
    "performance_trend",
]
