"""
In-memory traffic stats: daily counters + recent detections.

Best-effort: counters live in process memory, are not persisted and are not
exactly-once. A real deployment ships results to its own storage instead.
"""

import re
import threading
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone

from app.core.result import Action, ClassificationResult

RECENT_DETECTIONS = 100
KEEP_DAYS = 7
TOP_THREATS = 5

# "VPN/Proxy detected (confidence 80)" -> "VPN/Proxy detected"
_THREAT_DETAIL = re.compile(r"\s*\([^)]*\)|\s+\d+(?:\.\d+)?")


@dataclass
class DailyStats:
    total_requests: int = 0
    blocked: int = 0
    challenged: int = 0
    allowed: int = 0
    threats: Counter = field(default_factory=Counter)


def threat_label(factor: str) -> str:
    """Stable label for a factor: per-request numbers and details stripped."""
    head = factor.split(":", 1)[0]
    return _THREAT_DETAIL.sub("", head).strip() or head


def _today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


class TrafficStats:
    def __init__(self):
        self._days: dict[str, DailyStats] = {}
        self._recent: deque = deque(maxlen=RECENT_DETECTIONS)
        self._lock = threading.Lock()

    def record(
        self,
        result: ClassificationResult,
        user_agent: str | None = None,
        website: str | None = None,
        day: str | None = None,
    ) -> None:
        day = day or _today()
        with self._lock:
            stats = self._days.get(day)
            if stats is None:
                stats = self._days[day] = DailyStats()
                for old in sorted(self._days)[:-KEEP_DAYS]:
                    del self._days[old]

            stats.total_requests += 1
            if result.action is Action.BLOCK:
                stats.blocked += 1
                stats.threats.update(threat_label(t) for t in result.threats)
            elif result.action is Action.CHALLENGE:
                stats.challenged += 1
            else:
                stats.allowed += 1

            self._recent.append({
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "riskScore": result.risk_score,
                "action": result.action.value,
                "threats": list(result.threats),
                "userAgent": user_agent,
                "website": website,
            })

    def snapshot(self, day: str | None = None, recent: int = 5) -> dict:
        day = day or _today()
        with self._lock:
            stats = self._days.get(day, DailyStats())
            total = stats.total_requests
            return {
                "date": day,
                "totalRequests": total,
                "blockedBots": stats.blocked,
                "challengedUsers": stats.challenged,
                "allowedUsers": stats.allowed,
                "blockRate": round(stats.blocked / total * 100, 1) if total else 0.0,
                "topThreats": [
                    {"threat": label, "count": count}
                    for label, count in stats.threats.most_common(TOP_THREATS)
                ],
                "recentActivity": list(self._recent)[-recent:][::-1],
            }
