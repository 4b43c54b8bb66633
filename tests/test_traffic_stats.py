"""Tests for in-memory daily traffic stats."""

from app.core.result import Action, ClassificationResult, Severity
from app.core.traffic_stats import TOP_THREATS, TrafficStats, threat_label

DAY = "2026-10-18"


def blocked(*threats) -> ClassificationResult:
    return ClassificationResult(
        risk_score=90, action=Action.BLOCK, confidence=90,
        severity=Severity.CRITICAL, threats=tuple(threats),
    )


class TestThreatLabels:
    def test_numbers_stripped(self):
        assert threat_label("High request frequency: 12.3/sec") == "High request frequency"
        assert threat_label("VPN/Proxy detected (confidence 72): proxy_confirmed") == "VPN/Proxy detected"
        assert threat_label("IP reputation score 42: foreign_ip") == "IP reputation score"

    def test_plain_factor_unchanged(self):
        assert threat_label("Analysis Error - Safe Fallback") == "Analysis Error - Safe Fallback"


class TestTopThreats:
    def test_distinct_factor_values_share_one_entry(self):
        stats = TrafficStats()
        for i in range(5000):
            stats.record(blocked(f"High request frequency: {i}.5/sec"), day=DAY)

        snapshot = stats.snapshot(day=DAY)
        assert snapshot["topThreats"] == [{"threat": "High request frequency", "count": 5000}]
        assert len(stats._days[DAY].threats) == 1

    def test_most_common_first_and_capped(self):
        stats = TrafficStats()
        labels = [f"Threat{chr(65 + n)}: x" for n in range(TOP_THREATS + 3)]
        for n, label in enumerate(labels):
            for _ in range(n + 1):
                stats.record(blocked(label), day=DAY)

        top = stats.snapshot(day=DAY)["topThreats"]
        assert len(top) == TOP_THREATS
        assert top[0] == {"threat": labels[-1].split(":")[0], "count": len(labels)}

    def test_only_blocked_results_counted(self):
        stats = TrafficStats()
        stats.record(ClassificationResult(
            risk_score=55, action=Action.CHALLENGE, confidence=80,
            severity=Severity.MEDIUM, threats=("Device fingerprint: webdriver_detected",),
        ), day=DAY)
        assert stats.snapshot(day=DAY)["topThreats"] == []
        assert stats.snapshot(day=DAY)["challengedUsers"] == 1
