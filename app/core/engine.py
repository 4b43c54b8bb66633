"""
Traffic analysis engine: one RequestSignal in, one ClassificationResult out.

Pipeline:
  1. record request timing (pattern tracker)
  2. user agent / behavior / device extractors
  3. reputation lookup (bounded, never raises)
  4. composite score → action against the caller's threshold snapshot
  5. assemble result

Failure policy: fail OPEN. Any unexpected exception becomes a score-0
"allow" result. A scoring bug must not take down publishers' traffic.
"""

from functools import lru_cache

from app.config import get_settings
from app.core.behavior import analyze_behavior, analyze_device
from app.core.reputation import ReputationLookup
from app.core.request_pattern import RequestPatternTracker
from app.core.result import Action, AnalysisBreakdown, ClassificationResult, fallback_result
from app.core.scoring import (
    VERIFIED_BOT_CONFIDENCE,
    ScoringWeights,
    classify,
    compute_risk,
    severity_for,
)
from app.core.signals import RequestSignal
from app.core.thresholds import ThresholdConfig, ThresholdStore
from app.core.traffic_stats import TrafficStats
from app.core.user_agent import analyze_user_agent

import structlog

logger = structlog.get_logger()


class TrafficAnalyzer:
    def __init__(
        self,
        reputation: ReputationLookup | None = None,
        tracker: RequestPatternTracker | None = None,
        weights: ScoringWeights | None = None,
    ):
        self.reputation = reputation or ReputationLookup()
        self.tracker = tracker or RequestPatternTracker.from_settings()
        self.weights = weights or ScoringWeights.from_settings()

    async def analyze(self, signal: RequestSignal, thresholds: ThresholdConfig) -> ClassificationResult:
        """Classify one request. Never raises (except on cancellation)."""
        try:
            result = await self._analyze(signal, thresholds)
        except Exception:
            logger.exception("analysis_failed", session_id=getattr(signal, "session_id", None))
            return fallback_result()

        logger.info(
            "traffic_analyzed",
            session_id=signal.session_id,
            risk_score=result.risk_score,
            action=result.action.value,
            severity=result.severity.value,
            is_bot=result.is_bot,
        )
        return result

    async def _analyze(self, signal: RequestSignal, thresholds: ThresholdConfig) -> ClassificationResult:
        pattern = self.tracker.record(signal.session_id)

        ua = analyze_user_agent(signal.user_agent)
        behavior = analyze_behavior(signal.behavior_data)
        device = analyze_device(signal.device_fingerprint)
        reputation = await self.reputation.check(
            signal.ip_address,
            signal.headers,
            claimed_family=ua.matched_legitimate_bot,
            country_code=signal.country_code,
        )

        assessment = compute_risk(ua, behavior, device, reputation, pattern, self.weights)

        breakdown = AnalysisBreakdown(
            user_agent=ua,
            behavior=behavior,
            device=device,
            reputation=reputation,
            request_pattern=pattern,
            contributions=assessment.contributions,
        )
        family = ua.matched_legitimate_bot.value if ua.matched_legitimate_bot else None

        if assessment.verified_bot:
            return ClassificationResult(
                risk_score=assessment.score,
                action=Action.ALLOW,
                confidence=VERIFIED_BOT_CONFIDENCE,
                severity=severity_for(assessment.score),
                threats=tuple(assessment.factors),
                is_bot=True,
                bot_family=family,
                analysis=breakdown,
            )

        action, confidence, severity = classify(
            assessment.score, thresholds, factor_count=len(assessment.factors),
        )
        return ClassificationResult(
            risk_score=assessment.score,
            action=action,
            confidence=confidence,
            severity=severity,
            threats=tuple(assessment.factors),
            is_bot=action is Action.BLOCK,
            bot_family=family,
            analysis=breakdown,
        )


# --- Process-wide instances (overridden in tests via dependency_overrides) ---

@lru_cache
def get_analyzer() -> TrafficAnalyzer:
    return TrafficAnalyzer()


@lru_cache
def get_threshold_store() -> ThresholdStore:
    return ThresholdStore.from_settings(get_settings())


@lru_cache
def get_traffic_stats() -> TrafficStats:
    return TrafficStats()
