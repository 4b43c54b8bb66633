"""
Composite scorer + action classifier.

score = w1·frequency + w2·rhythm + w3·user_agent + w4·(1 − behavior)
      + w5·reputation + w6·device

Each term is tiered/normalized before weighting. The running sum is clamped
to 0–100 once, at the end, so several moderate signals can stack up to a
block while no single broken extractor overflows the range.

An IP-verified legitimate crawler short-circuits everything: score 5, allow.

Severity is a display bucket of the same score and is deliberately
independent of the (configurable) action thresholds.
"""

from dataclasses import dataclass, field

from app.config import Settings, get_settings
from app.core.behavior import BehaviorAnalysis, DeviceAnalysis
from app.core.reputation import ReputationResult
from app.core.request_pattern import RequestPattern
from app.core.result import LOW_RISK_FACTOR, Action, Severity
from app.core.thresholds import ThresholdConfig
from app.core.user_agent import UserAgentAnalysis

VERIFIED_BOT_SCORE = 5
VERIFIED_BOT_CONFIDENCE = 95
SPOOFED_BOT_UA_SCORE = 1.0

BRANCH_CONFIDENCE = {Action.BLOCK: 90, Action.CHALLENGE: 80, Action.ALLOW: 60}
CONFIDENCE_PER_EXTRA_FACTOR = 2
MAX_CONFIDENCE = 97

SEVERITY_BUCKETS = [
    (80, Severity.CRITICAL),
    (60, Severity.HIGH),
    (40, Severity.MEDIUM),
    (20, Severity.LOW),
]


@dataclass(frozen=True)
class ScoringWeights:
    request_frequency: float = 30.0
    rhythmic_timing: float = 20.0
    user_agent: float = 45.0
    behavior: float = 40.0
    reputation: float = 0.3
    device: float = 25.0
    frequency_normal: float = 1.0     # req/s; below → no penalty
    frequency_malicious: float = 5.0  # req/s; above → full penalty

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ScoringWeights":
        settings = settings or get_settings()
        return cls(
            request_frequency=settings.weight_request_frequency,
            rhythmic_timing=settings.weight_rhythmic_timing,
            user_agent=settings.weight_user_agent,
            behavior=settings.weight_behavior,
            reputation=settings.weight_reputation,
            device=settings.weight_device,
            frequency_normal=settings.frequency_normal_per_sec,
            frequency_malicious=settings.frequency_malicious_per_sec,
        )


@dataclass
class RiskAssessment:
    score: int
    factors: list[str]
    verified_bot: bool = False
    contributions: dict[str, float] = field(default_factory=dict)


def frequency_penalty(frequency: float, weights: ScoringWeights) -> float:
    """0 below normal, 0.5 between normal and malicious, 1.0 above."""
    if frequency >= weights.frequency_malicious:
        return 1.0
    if frequency >= weights.frequency_normal:
        return 0.5
    return 0.0


def _dedupe(items: list[str]) -> list[str]:
    seen = set()
    out = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


def compute_risk(
    ua: UserAgentAnalysis,
    behavior: BehaviorAnalysis,
    device: DeviceAnalysis,
    reputation: ReputationResult,
    pattern: RequestPattern,
    weights: ScoringWeights,
) -> RiskAssessment:
    """Combine extractor outputs into one 0–100 score with its factors."""
    if (
        ua.matched_legitimate_bot is not None
        and reputation.is_known_good_bot
        and reputation.is_verified_by_ip_range
    ):
        return RiskAssessment(
            score=VERIFIED_BOT_SCORE,
            factors=[f"Verified crawler: {ua.matched_legitimate_bot.value} (Allowed)"],
            verified_bot=True,
        )

    factors: list[str] = []
    contributions: dict[str, float] = {}

    # --- Request frequency ---
    freq_term = weights.request_frequency * frequency_penalty(pattern.frequency, weights)
    if freq_term:
        label = "High" if pattern.frequency >= weights.frequency_malicious else "Elevated"
        factors.append(f"{label} request frequency: {pattern.frequency:.1f}/sec")
    contributions["request_frequency"] = freq_term

    # --- Rhythmic timing ---
    rhythm_term = weights.rhythmic_timing if pattern.is_rhythmic else 0.0
    if rhythm_term:
        factors.append(
            f"Rhythmic request timing: interval variance {pattern.interval_variance_ms:.1f}ms²"
        )
    contributions["rhythmic_timing"] = rhythm_term

    # --- User agent (a spoofed crawler claim is worse than no claim) ---
    ua_score = ua.score
    if ua.matched_legitimate_bot is not None and "spoofed_bot" in reputation.proxy_signals:
        ua_score = SPOOFED_BOT_UA_SCORE
        factors.append(
            f"Spoofed crawler: {ua.matched_legitimate_bot.value} user agent from unverified IP"
        )
    ua_term = weights.user_agent * ua_score
    if ua_term and ua.anomalies:
        factors.append(f"Suspicious user agent: {', '.join(ua.anomalies)}")
    contributions["user_agent"] = ua_term

    # --- Behavior ---
    behavior_term = weights.behavior * (1.0 - behavior.score)
    if behavior_term and behavior.signals:
        factors.append(f"Behavioral signals: {', '.join(behavior.signals)}")
    contributions["behavior"] = behavior_term

    # --- Reputation ---
    reputation_term = weights.reputation * reputation.proxy_score
    if reputation_term:
        tags = ", ".join(sorted(reputation.proxy_signals))
        if reputation.is_vpn_proxy:
            factors.append(f"VPN/Proxy detected (confidence {reputation.proxy_score}): {tags}")
        else:
            factors.append(f"IP reputation score {reputation.proxy_score}: {tags}")
    contributions["reputation"] = reputation_term

    # --- Device fingerprint ---
    device_term = weights.device * device.score
    if device_term:
        factors.append(f"Device fingerprint: {', '.join(device.anomalies)}")
    contributions["device"] = device_term

    total = sum(contributions.values())
    score = int(round(max(0.0, min(100.0, total))))

    factors = _dedupe(factors)
    if not factors:
        factors = [LOW_RISK_FACTOR]

    return RiskAssessment(
        score=score,
        factors=factors,
        contributions={k: round(v, 3) for k, v in contributions.items()},
    )


def severity_for(score: int) -> Severity:
    for floor, severity in SEVERITY_BUCKETS:
        if score >= floor:
            return severity
    return Severity.MINIMAL


def action_for(score: int, thresholds: ThresholdConfig) -> Action:
    if score >= thresholds.block:
        return Action.BLOCK
    if score >= thresholds.challenge:
        return Action.CHALLENGE
    return Action.ALLOW


def classify(
    score: int,
    thresholds: ThresholdConfig,
    factor_count: int = 1,
) -> tuple[Action, int, Severity]:
    """Pure mapping of (score, thresholds snapshot) → action, confidence, severity."""
    action = action_for(score, thresholds)
    confidence = BRANCH_CONFIDENCE[action]
    if factor_count > 2:
        confidence += CONFIDENCE_PER_EXTRA_FACTOR * (factor_count - 2)
    return action, min(confidence, MAX_CONFIDENCE), severity_for(score)
