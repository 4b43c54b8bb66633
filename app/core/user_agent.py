"""
User-agent analysis.

Produces a sub-score 0.0–1.0:
  0.0  = looks like a real browser
  1.0  = missing, or an obvious automation client

Tiers (highest match wins, anomalies add on top):
  1. Legitimate crawler signature  → fixed 0.05 (verified later against IP ranges)
  2. Explicit automation tool      → 0.9
  3. Generic bot keyword           → 0.6

Additive anomalies: low character entropy, unusual length, no browser
tokens, user_agents parser says "bot".
"""

import math
import re
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum

from user_agents import parse as parse_ua


class BotFamily(str, Enum):
    GOOGLE = "googlebot"
    BING = "bingbot"
    YAHOO = "slurp"
    DUCKDUCKGO = "duckduckbot"
    YANDEX = "yandexbot"
    BAIDU = "baiduspider"
    APPLE = "applebot"
    FACEBOOK = "facebookexternalhit"
    TWITTER = "twitterbot"
    LINKEDIN = "linkedinbot"


# Known search/social crawlers (wanted, but must be IP-verified)
LEGITIMATE_BOT_PATTERNS: list[tuple[re.Pattern, BotFamily]] = [
    (re.compile(p, re.IGNORECASE), family) for p, family in [
        (r"Googlebot", BotFamily.GOOGLE),
        (r"bingbot", BotFamily.BING),
        (r"Yahoo! Slurp", BotFamily.YAHOO),
        (r"DuckDuckBot", BotFamily.DUCKDUCKGO),
        (r"YandexBot", BotFamily.YANDEX),
        (r"Baiduspider", BotFamily.BAIDU),
        (r"Applebot", BotFamily.APPLE),
        (r"facebookexternalhit", BotFamily.FACEBOOK),
        (r"Twitterbot", BotFamily.TWITTER),
        (r"LinkedInBot", BotFamily.LINKEDIN),
    ]
]

# Explicit automation tools / HTTP client libraries
AUTOMATION_UA_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(p, re.IGNORECASE), name) for p, name in [
        (r"curl/", "curl"),
        (r"wget/", "wget"),
        (r"python-requests", "python-requests"),
        (r"python-urllib", "python-urllib"),
        (r"aiohttp", "aiohttp"),
        (r"python-httpx", "httpx"),
        (r"Go-http-client", "go-http-client"),
        (r"okhttp", "okhttp"),
        (r"java/", "java"),
        (r"node-fetch", "node-fetch"),
        (r"axios/", "axios"),
        (r"libwww-perl", "libwww-perl"),
        (r"scrapy", "scrapy"),
        (r"HeadlessChrome", "headless-chrome"),
        (r"PhantomJS", "phantomjs"),
        (r"Selenium", "selenium"),
        (r"puppeteer", "puppeteer"),
        (r"playwright", "playwright"),
    ]
]

GENERIC_BOT_KEYWORDS = ("bot", "crawler", "spider", "scraper", "harvest")

BROWSER_TOKENS = ("mozilla", "applewebkit", "gecko", "chrome", "safari", "firefox", "edg", "opera")

LEGITIMATE_BOT_SCORE = 0.05
AUTOMATION_TOOL_SCORE = 0.9
GENERIC_KEYWORD_SCORE = 0.6

LOW_ENTROPY_THRESHOLD = 0.3
MIN_UA_LENGTH = 20
MAX_UA_LENGTH = 500


@dataclass
class UserAgentAnalysis:
    score: float
    anomalies: list[str] = field(default_factory=list)
    entropy: float = 0.0
    matched_legitimate_bot: BotFamily | None = None


def normalized_entropy(text: str) -> float:
    """Shannon entropy of the character distribution over log2(len)."""
    length = len(text)
    if length < 2:
        return 0.0
    entropy = 0.0
    for count in Counter(text).values():
        p = count / length
        entropy -= p * math.log2(p)
    return entropy / math.log2(length)


def match_legitimate_bot(ua: str) -> BotFamily | None:
    for pattern, family in LEGITIMATE_BOT_PATTERNS:
        if pattern.search(ua):
            return family
    return None


def analyze_user_agent(user_agent: str | None) -> UserAgentAnalysis:
    """Score a user-agent string. Never raises."""
    ua = (user_agent or "").strip()
    if not ua:
        return UserAgentAnalysis(score=1.0, anomalies=["missing_user_agent"])

    anomalies: list[str] = []
    entropy = normalized_entropy(ua)

    # Additive anomalies
    extra = 0.0
    if entropy < LOW_ENTROPY_THRESHOLD:
        anomalies.append("low_entropy")
        extra += 0.3

    if len(ua) < MIN_UA_LENGTH or len(ua) > MAX_UA_LENGTH:
        anomalies.append("unusual_length")
        extra += 0.2

    lowered = ua.lower()
    if not any(token in lowered for token in BROWSER_TOKENS):
        anomalies.append("missing_browser_tokens")
        extra += 0.3

    # Tier 1: legitimate crawler. Penalty stays low, IP check decides
    family = match_legitimate_bot(ua)
    if family is not None:
        anomalies.insert(0, f"legitimate_crawler:{family.value}")
        return UserAgentAnalysis(
            score=LEGITIMATE_BOT_SCORE,
            anomalies=anomalies,
            entropy=round(entropy, 4),
            matched_legitimate_bot=family,
        )

    # Tier 2 / 3: automation tool, then generic keyword
    tier = 0.0
    for pattern, name in AUTOMATION_UA_PATTERNS:
        if pattern.search(ua):
            anomalies.insert(0, f"automation_tool:{name}")
            tier = AUTOMATION_TOOL_SCORE
            break
    else:
        for keyword in GENERIC_BOT_KEYWORDS:
            if keyword in lowered:
                anomalies.insert(0, f"generic_bot_keyword:{keyword}")
                tier = GENERIC_KEYWORD_SCORE
                break

    if parse_ua(ua).is_bot:
        anomalies.append("parser_flagged_bot")
        extra += 0.2

    return UserAgentAnalysis(
        score=round(min(1.0, tier + extra), 4),
        anomalies=anomalies,
        entropy=round(entropy, 4),
    )
