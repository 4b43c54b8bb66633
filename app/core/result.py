"""
Classification result: what the engine hands to storage and the SDK.

Immutable once built. `to_dict()` is the camelCase wire shape the client
SDK reads (`riskScore`, `action`, `threats`, ...).
"""

from dataclasses import asdict, dataclass, field
from enum import Enum

from app.core.behavior import BehaviorAnalysis, DeviceAnalysis
from app.core.reputation import ReputationResult
from app.core.request_pattern import RequestPattern
from app.core.user_agent import UserAgentAnalysis

FALLBACK_FACTOR = "Analysis Error - Safe Fallback"
LOW_RISK_FACTOR = "Low Risk"


class Action(str, Enum):
    ALLOW = "allow"
    CHALLENGE = "challenge"
    BLOCK = "block"


class Severity(str, Enum):
    MINIMAL = "minimal"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class AnalysisBreakdown:
    """Sub-analyses and per-term contributions behind one score."""
    user_agent: UserAgentAnalysis
    behavior: BehaviorAnalysis
    device: DeviceAnalysis
    reputation: ReputationResult
    request_pattern: RequestPattern
    contributions: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "userAgent": {
                "score": self.user_agent.score,
                "entropy": self.user_agent.entropy,
                "anomalies": list(self.user_agent.anomalies),
                "matchedLegitimateBot": (
                    self.user_agent.matched_legitimate_bot.value
                    if self.user_agent.matched_legitimate_bot else None
                ),
            },
            "behavior": {"score": self.behavior.score, "signals": list(self.behavior.signals)},
            "device": {"score": self.device.score, "anomalies": list(self.device.anomalies)},
            "reputation": {
                "isKnownGoodBot": self.reputation.is_known_good_bot,
                "isVerifiedByIPRange": self.reputation.is_verified_by_ip_range,
                "isVPNProxy": self.reputation.is_vpn_proxy,
                "proxyScore": self.reputation.proxy_score,
                "proxySignals": sorted(self.reputation.proxy_signals),
            },
            "requestPattern": asdict(self.request_pattern),
            "contributions": dict(self.contributions),
        }


@dataclass(frozen=True)
class ClassificationResult:
    risk_score: int
    action: Action
    confidence: int
    severity: Severity
    threats: tuple[str, ...]
    is_bot: bool = False
    bot_family: str | None = None
    analysis: AnalysisBreakdown | None = None

    def to_dict(self) -> dict:
        return {
            "riskScore": self.risk_score,
            "action": self.action.value,
            "confidence": self.confidence,
            "severity": self.severity.value,
            "threats": list(self.threats),
            "isBot": self.is_bot,
            "botFamily": self.bot_family,
            "analysis": self.analysis.to_dict() if self.analysis else None,
        }


def fallback_result() -> ClassificationResult:
    """Fail open: a scoring bug must never block traffic."""
    return ClassificationResult(
        risk_score=0,
        action=Action.ALLOW,
        confidence=50,
        severity=Severity.MINIMAL,
        threats=(FALLBACK_FACTOR,),
    )
