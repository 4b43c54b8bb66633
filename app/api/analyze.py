"""
Analysis endpoints: thin I/O around the scoring engine.

POST /api/v1/analyze    → classify one visitor, return action + factors
GET  /api/v1/analytics  → today's counters + recent detections
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from app.config import Settings, get_settings
from app.core.engine import TrafficAnalyzer, get_analyzer, get_threshold_store, get_traffic_stats
from app.core.result import Action, fallback_result
from app.core.signals import RequestSignal
from app.core.thresholds import ThresholdStore
from app.core.traffic_stats import TrafficStats
from app.middleware.auth import AuthContext, require_api_key

import structlog

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1", tags=["analysis"])

PRIVATE_PREFIXES = (
    "10.", "172.16.", "172.17.", "172.18.", "172.19.", "172.20.", "172.21.",
    "172.22.", "172.23.", "172.24.", "172.25.", "172.26.", "172.27.", "172.28.",
    "172.29.", "172.30.", "172.31.", "192.168.", "127.", "::1",
)


class AnalyzeRequest(BaseModel):
    """Loose envelope: a wrong-typed field is dropped, never a 422."""
    sessionId: Any = None
    website: Any = None
    userAgent: Any = None
    ipAddress: Any = None
    countryCode: Any = None
    headers: Any = None
    behaviorData: Any = None
    deviceFingerprint: Any = None

    model_config = {"extra": "allow"}


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def client_ip(request: Request) -> str:
    """First public hop of x-forwarded-for, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ips = [ip.strip() for ip in forwarded.split(",") if ip.strip()]
        for ip in ips:
            if not ip.startswith(PRIVATE_PREFIXES):
                return ip
        if ips:
            return ips[0]
    return request.client.host if request.client else "unknown"


@router.post("/analyze")
async def analyze(
    body: AnalyzeRequest,
    request: Request,
    auth: AuthContext = Depends(require_api_key),
    analyzer: TrafficAnalyzer = Depends(get_analyzer),
    store: ThresholdStore = Depends(get_threshold_store),
    stats: TrafficStats = Depends(get_traffic_stats),
    settings: Settings = Depends(get_settings),
):
    started = time.perf_counter()
    session_id = _text(body.sessionId) or f"sess_{uuid.uuid4().hex}"
    website = _text(body.website)
    thresholds = store.snapshot()

    try:
        signal = RequestSignal.from_payload(
            body.model_dump(),
            session_id=session_id,
            ip_address=_text(body.ipAddress) or client_ip(request),
            headers=body.headers if isinstance(body.headers, dict) else dict(request.headers),
        )
    except Exception:
        # Same fail-open policy as the engine
        logger.exception("signal_parse_failed", session_id=session_id)
        result, user_agent = fallback_result(), None
    else:
        result = await analyzer.analyze(signal, thresholds)
        user_agent = signal.user_agent

    stats.record(result, user_agent=user_agent, website=website)

    response = {
        "sessionId": session_id,
        "website": website,
        "publisherKey": f"{auth.key_prefix}...",
        **result.to_dict(),
        "thresholds": thresholds.to_dict(),
        "responseTime": round((time.perf_counter() - started) * 1000, 2),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if result.action is Action.CHALLENGE:
        response["challengeUrl"] = (
            f"{settings.base_url}{settings.challenge_path}"
            f"?session={quote(session_id)}&website={quote(website or '')}"
        )
    return response


@router.get("/analytics")
async def analytics(
    auth: AuthContext = Depends(require_api_key),
    stats: TrafficStats = Depends(get_traffic_stats),
):
    return stats.snapshot()
