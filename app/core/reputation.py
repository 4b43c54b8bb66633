"""
IP reputation: known-good crawler verification + proxy/VPN confidence.

Order of checks:
  1. Crawler claim (from the UA) verified against published IP ranges.
     Verified → known-good bot, nothing else is queried.
     Unverified → `spoofed_bot`.
  2. External reputation source (proxycheck.io v2 shape), hard timeout.
     Any failure → `lookup_failed`, zero contribution from the source.
  3. Proxy-indicating request headers (local evidence, always applied).

The returned proxy_score is clamped to 0–100.
"""

import asyncio
import ipaddress
from dataclasses import dataclass, field
from typing import Any

import httpx

from app.config import Settings, get_settings
from app.core.user_agent import BotFamily

import structlog

logger = structlog.get_logger()

# Published crawler ranges (subset, refreshed by hand)
CRAWLER_IP_RANGES: dict[BotFamily, list[ipaddress.IPv4Network | ipaddress.IPv6Network]] = {
    family: [ipaddress.ip_network(cidr) for cidr in cidrs]
    for family, cidrs in {
        BotFamily.GOOGLE: ["66.249.64.0/19", "64.233.160.0/19", "72.14.192.0/18", "2001:4860:4801::/48"],
        BotFamily.BING: ["157.55.39.0/24", "207.46.13.0/24", "40.77.167.0/24", "13.66.139.0/24", "52.167.144.0/24"],
        BotFamily.YAHOO: ["72.30.0.0/16", "74.6.0.0/16", "67.195.0.0/16", "98.136.0.0/14"],
        BotFamily.DUCKDUCKGO: ["20.191.45.212/32", "40.88.21.235/32", "40.76.173.151/32", "52.142.26.175/32"],
        BotFamily.YANDEX: ["5.255.253.0/24", "77.88.5.0/24", "95.108.213.0/24", "213.180.203.0/24"],
        BotFamily.BAIDU: ["180.76.15.0/24", "220.181.108.0/24", "123.125.71.0/24"],
        BotFamily.APPLE: ["17.0.0.0/8"],
        BotFamily.FACEBOOK: ["31.13.24.0/21", "66.220.144.0/20", "69.63.176.0/20", "69.171.224.0/19", "173.252.64.0/18"],
        BotFamily.TWITTER: ["199.16.156.0/22", "199.59.148.0/22", "192.133.76.0/22"],
        BotFamily.LINKEDIN: ["108.174.0.0/20", "144.2.0.0/19"],
    }.items()
}

TOR_EXIT_RANGES = [ipaddress.ip_network("185.220.0.0/16")]

PROXY_CONFIRMED_PENALTY = 40
PROXY_TYPE_PENALTIES = {"vpn": 25, "socks": 15, "http": 8}
SUSPICIOUS_PORTS = {80, 1080, 1194, 1723, 3128, 3389, 4145, 500, 4500, 8000, 8080, 8118, 8888, 9050, 9051, 51820}
SUSPICIOUS_PORT_PENALTY = 10
MAX_SOURCE_RISK_CONTRIBUTION = 30
TOR_PENALTY = 20

HOSTING_KEYWORDS = ("hosting", "datacenter", "data center", "cloud", "server", "vps", "colo")
HOSTING_KEYWORD_PENALTY = 8
ANONYMIZER_KEYWORDS = ("vpn", "proxy")
ANONYMIZER_KEYWORD_PENALTY = 10

COMMERCIAL_VPN_PROVIDERS = (
    "nordvpn", "expressvpn", "surfshark", "cyberghost", "purevpn",
    "hotspot shield", "tunnelbear", "windscribe", "protonvpn", "proton ag",
    "mullvad", "private internet access", "ipvanish", "hidemyass",
    "vyprvpn", "torguard", "perfect privacy", "m247", "datacamp",
)
COMMERCIAL_VPN_PENALTY = 45

HOME_COUNTRY_ADJUSTMENT = -15
RESIDENTIAL_ISP_ADJUSTMENT = -10
FOREIGN_COUNTRY_ADJUSTMENT = 5
RESIDENTIAL_ISPS = (
    "reliance jio", "jio", "bharti airtel", "airtel", "bsnl", "vodafone idea",
    "atria convergence", "act fibernet", "hathway", "tata teleservices", "you broadband",
)

# header → (penalty, signal)
PROXY_HEADERS: dict[str, tuple[int, str]] = {
    "x-forwarded-for": (10, "header_x_forwarded_for"),
    "x-real-ip": (5, "header_x_real_ip"),
    "via": (10, "header_via"),
    "proxy-id": (10, "header_proxy_id"),
    "x-proxy-id": (10, "header_proxy_id"),
    "forwarded": (5, "header_forwarded"),
    "proxy-connection": (5, "header_proxy_connection"),
}
MULTI_HOP_PENALTY = 10


@dataclass
class ReputationResult:
    is_known_good_bot: bool = False
    bot_family: BotFamily | None = None
    is_verified_by_ip_range: bool = False
    proxy_score: int = 0
    proxy_signals: set[str] = field(default_factory=set)
    vpn_threshold: int = 65

    @property
    def is_vpn_proxy(self) -> bool:
        return self.proxy_score >= self.vpn_threshold

    @property
    def lookup_failed(self) -> bool:
        return "lookup_failed" in self.proxy_signals


class ReputationLookupError(Exception):
    """Reputation source unavailable or returned an unusable payload."""


def _parse_ip(ip: str):
    try:
        return ipaddress.ip_address(ip.strip())
    except (ValueError, AttributeError):
        return None


def is_verified_crawler_ip(ip: str, family: BotFamily) -> bool:
    addr = _parse_ip(ip)
    if addr is None:
        return False
    return any(addr in network for network in CRAWLER_IP_RANGES.get(family, []))


def score_proxy_headers(headers: dict[str, str]) -> tuple[int, set[str]]:
    """Supplementary penalty from proxy-indicating headers."""
    lowered = {k.lower(): v for k, v in headers.items()}
    score = 0
    signals: set[str] = set()
    for name, (penalty, signal) in PROXY_HEADERS.items():
        if lowered.get(name) and signal not in signals:
            score += penalty
            signals.add(signal)

    hops = [h for h in lowered.get("x-forwarded-for", "").split(",") if h.strip()]
    if len(hops) > 1:
        score += MULTI_HOP_PENALTY
        signals.add("multi_hop_forwarded_for")
    return score, signals


def score_source_response(
    data: dict[str, Any],
    home_country: str,
    fallback_country: str | None = None,
) -> tuple[float, set[str]]:
    """Translate one reputation-source record into weighted contributions."""
    score = 0.0
    signals: set[str] = set()

    if str(data.get("proxy", "")).lower() == "yes":
        score += PROXY_CONFIRMED_PENALTY
        signals.add("proxy_confirmed")

        proxy_type = str(data.get("type") or "").lower()
        if proxy_type:
            signals.add(f"proxy_type_{proxy_type.replace(' ', '_')}")
            if "vpn" in proxy_type:
                score += PROXY_TYPE_PENALTIES["vpn"]
            elif "socks" in proxy_type:
                score += PROXY_TYPE_PENALTIES["socks"]
            else:
                score += PROXY_TYPE_PENALTIES["http"]

    port = data.get("port")
    try:
        port = int(port) if port is not None else None
    except (TypeError, ValueError, OverflowError):
        port = None
    if port in SUSPICIOUS_PORTS:
        score += SUSPICIOUS_PORT_PENALTY
        signals.add(f"suspicious_port_{port}")

    risk = data.get("risk")
    try:
        risk = int(risk) if risk is not None else None
    except (TypeError, ValueError, OverflowError):
        risk = None
    if risk is not None:
        risk = max(0, min(100, risk))
        score += min(MAX_SOURCE_RISK_CONTRIBUTION, risk * 0.3)
        signals.add(f"source_risk_{risk}")

    provider = " ".join(
        str(data.get(key) or "") for key in ("provider", "organisation", "organization", "asn")
    ).lower()

    for keyword in HOSTING_KEYWORDS:
        if keyword in provider:
            score += HOSTING_KEYWORD_PENALTY
            signals.add(f"provider_{keyword.replace(' ', '_')}")

    for keyword in ANONYMIZER_KEYWORDS:
        if keyword in provider:
            score += ANONYMIZER_KEYWORD_PENALTY
            signals.add(f"provider_{keyword}")

    for vpn in COMMERCIAL_VPN_PROVIDERS:
        if vpn in provider:
            score += COMMERCIAL_VPN_PENALTY
            signals.add(f"known_vpn_provider_{vpn.replace(' ', '_')}")
            break

    country = str(data.get("isocode") or data.get("country") or fallback_country or "").upper()
    if country:
        if country == home_country.upper():
            score += HOME_COUNTRY_ADJUSTMENT
            signals.add("home_country_adjustment")
            if any(isp in provider for isp in RESIDENTIAL_ISPS):
                score += RESIDENTIAL_ISP_ADJUSTMENT
                signals.add("residential_isp")
        else:
            score += FOREIGN_COUNTRY_ADJUSTMENT
            signals.add("foreign_ip")

    return score, signals


class ReputationLookup:
    """Classifies an IP as verified crawler, proxy/VPN, or neutral.

    Pass `client` to reuse a pooled httpx.AsyncClient; otherwise one is
    opened per query.
    """

    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None):
        self.settings = settings or get_settings()
        self._client = client

    async def check(
        self,
        ip: str,
        headers: dict[str, str] | None = None,
        claimed_family: BotFamily | None = None,
        country_code: str | None = None,
    ) -> ReputationResult:
        threshold = self.settings.vpn_confidence_threshold

        # --- 1. Crawler claim ---
        if claimed_family is not None:
            if is_verified_crawler_ip(ip, claimed_family):
                return ReputationResult(
                    is_known_good_bot=True,
                    bot_family=claimed_family,
                    is_verified_by_ip_range=True,
                    vpn_threshold=threshold,
                )

        score = 0.0
        signals: set[str] = set()
        if claimed_family is not None:
            signals.add("spoofed_bot")

        # --- 2. External reputation ---
        addr = _parse_ip(ip)
        if addr is None:
            signals.add("invalid_ip")
        elif not addr.is_global:
            signals.add("non_public_ip")
        else:
            if any(addr in network for network in TOR_EXIT_RANGES):
                score += TOR_PENALTY
                signals.add("tor_exit_range")

            if self.settings.reputation_enabled:
                try:
                    record = await asyncio.wait_for(
                        self._query(str(addr)),
                        timeout=self.settings.reputation_timeout_seconds,
                    )
                except (
                    ReputationLookupError, httpx.HTTPError, httpx.InvalidURL, asyncio.TimeoutError,
                ) as e:
                    logger.warning("reputation_lookup_failed", ip=str(addr), error=repr(e))
                    signals.add("lookup_failed")
                else:
                    source_score, source_signals = score_source_response(
                        record, self.settings.home_country, country_code,
                    )
                    score += source_score
                    signals |= source_signals

        # --- 3. Proxy headers ---
        header_score, header_signals = score_proxy_headers(headers or {})
        score += header_score
        signals |= header_signals

        return ReputationResult(
            is_known_good_bot=False,
            bot_family=claimed_family,
            is_verified_by_ip_range=False,
            proxy_score=int(round(max(0.0, min(100.0, score)))),
            proxy_signals=signals,
            vpn_threshold=threshold,
        )

    async def _query(self, ip: str) -> dict[str, Any]:
        """GET the reputation record for one IP."""
        params = {"vpn": 3, "asn": 1, "risk": 2, "port": 1}
        if self.settings.reputation_api_key:
            params["key"] = self.settings.reputation_api_key
        url = f"{self.settings.reputation_api_url.rstrip('/')}/{ip}"
        timeout = self.settings.reputation_timeout_seconds

        if self._client is not None:
            resp = await self._client.get(url, params=params, timeout=timeout)
        else:
            async with httpx.AsyncClient(timeout=timeout) as client:
                resp = await client.get(url, params=params)

        if resp.status_code != 200:
            raise ReputationLookupError(f"status {resp.status_code}")
        try:
            body = resp.json()
        except ValueError as e:
            raise ReputationLookupError("non-JSON payload") from e

        if not isinstance(body, dict) or body.get("status") not in ("ok", "warning"):
            raise ReputationLookupError("unexpected payload status")
        record = body.get(ip)
        if not isinstance(record, dict):
            raise ReputationLookupError("no record for ip")
        return record
