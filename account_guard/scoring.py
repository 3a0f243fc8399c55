"""
Account Guard - Risk Scoring Engine.

============================================================
PURPOSE
============================================================
Pure functions mapping the event log to a bounded risk score
and a risk tier.

============================================================
SCORING
============================================================
score = clamp(baseline + sum(weight(event.type)), 0, max_score)

- Unknown types weigh 0
- No decay, no deduplication, no time windowing: every event
  counts until the log is cleared by recovery
- Order independent

Tier (evaluated high to low):
- >= 70: CRITICAL
- >= 40: HIGH
- >= 20: MEDIUM
- else:  LOW

============================================================
"""

from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from .config import DEFAULT_EVENT_WEIGHTS, ScoringConfig
from .types import EventTypeLike, RiskState, RiskTier, SecurityEvent


# Read-only alias of the default weight table
EVENT_WEIGHTS: Mapping[str, int] = MappingProxyType(DEFAULT_EVENT_WEIGHTS)


def _type_key(event_type: EventTypeLike) -> str:
    return str(getattr(event_type, "value", event_type))


def event_weight(
    event_type: EventTypeLike,
    weights: Mapping[str, int] = EVENT_WEIGHTS,
) -> int:
    """Weight of a single event type (0 when unknown)."""
    return weights.get(_type_key(event_type), 0)


def compute_risk_score(
    events: Iterable[SecurityEvent],
    weights: Mapping[str, int] = EVENT_WEIGHTS,
    baseline: int = 0,
    max_score: int = 100,
) -> int:
    """
    Sum event weights and clamp to [0, max_score].

    Args:
        events: Events to score (any order)
        weights: Weight per event type value
        baseline: Score of an empty log
        max_score: Upper clamp

    Returns:
        Integer score in [0, max_score]
    """
    total = baseline + sum(event_weight(event.event_type, weights) for event in events)
    return max(0, min(total, max_score))


def classify_tier(score: int, config: Optional[ScoringConfig] = None) -> RiskTier:
    """
    Map a score to its tier.

    Args:
        score: Risk score
        config: Tier thresholds (defaults when omitted)
    """
    config = config or ScoringConfig()

    if score >= config.critical_threshold:
        return RiskTier.CRITICAL
    if score >= config.high_threshold:
        return RiskTier.HIGH
    if score >= config.medium_threshold:
        return RiskTier.MEDIUM
    return RiskTier.LOW


def evaluate_risk(
    events: Iterable[SecurityEvent],
    config: Optional[ScoringConfig] = None,
) -> RiskState:
    """
    Recompute the full risk state from the event log.

    Uses the configured baseline, so an empty log scores the
    baseline (5 by default).
    """
    config = config or ScoringConfig()
    score = compute_risk_score(
        events,
        weights=config.weights,
        baseline=config.baseline_score,
        max_score=config.max_score,
    )
    return RiskState(score=score, tier=classify_tier(score, config))


__all__ = [
    "EVENT_WEIGHTS",
    "event_weight",
    "compute_risk_score",
    "classify_tier",
    "evaluate_risk",
]
