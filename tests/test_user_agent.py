"""Tests for user-agent analysis."""

import pytest
from app.core.user_agent import BotFamily, analyze_user_agent, normalized_entropy


REAL_CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

GOOGLEBOT_UA = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"


class TestMissingUserAgent:
    """Missing UA is itself the strongest UA signal."""

    @pytest.mark.parametrize("ua", [None, "", "   "])
    def test_missing_ua_maxes_out(self, ua):
        result = analyze_user_agent(ua)
        assert result.score == 1.0
        assert result.anomalies == ["missing_user_agent"]


class TestRealBrowsers:
    def test_chrome_is_clean(self):
        result = analyze_user_agent(REAL_CHROME_UA)
        assert result.score == 0.0
        assert result.anomalies == []
        assert result.matched_legitimate_bot is None

    def test_chrome_entropy_is_not_low(self):
        assert analyze_user_agent(REAL_CHROME_UA).entropy > 0.3


class TestAutomationTools:
    @pytest.mark.parametrize("ua", [
        "python-requests/2.28.1",
        "curl/7.88.1",
        "Go-http-client/1.1",
        "Scrapy/2.11.0 (+https://scrapy.org)",
        "Wget/1.21.3",
    ])
    def test_automation_uas_score_high(self, ua):
        result = analyze_user_agent(ua)
        assert result.score >= 0.9
        assert result.anomalies[0].startswith("automation_tool:")

    def test_explicit_tool_outranks_generic_keyword(self):
        headless = analyze_user_agent(
            "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) HeadlessChrome/120.0.0.0 Safari/537.36"
        )
        generic = analyze_user_agent("Mozilla/5.0 (compatible; SiteScraper/1.0)")
        assert headless.anomalies[0] == "automation_tool:headless-chrome"
        assert generic.anomalies[0] == "generic_bot_keyword:scraper"
        assert headless.score > generic.score

    def test_python_requests_missing_browser_tokens(self):
        result = analyze_user_agent("python-requests/2.28")
        assert "missing_browser_tokens" in result.anomalies
        assert result.score == 1.0


class TestLegitimateCrawlers:
    @pytest.mark.parametrize("ua,family", [
        (GOOGLEBOT_UA, BotFamily.GOOGLE),
        ("Mozilla/5.0 (compatible; bingbot/2.0; +http://www.bing.com/bingbot.htm)", BotFamily.BING),
        ("facebookexternalhit/1.1 (+http://www.facebook.com/externalhit_uatext.php)", BotFamily.FACEBOOK),
        ("Twitterbot/1.0", BotFamily.TWITTER),
    ])
    def test_crawler_matched_with_low_penalty(self, ua, family):
        result = analyze_user_agent(ua)
        assert result.matched_legitimate_bot is family
        assert result.score == 0.05

    def test_crawler_not_reported_as_automation(self):
        result = analyze_user_agent(GOOGLEBOT_UA)
        assert not any(a.startswith("automation_tool") for a in result.anomalies)
        assert result.anomalies[0] == "legitimate_crawler:googlebot"


class TestEntropyAndLength:
    def test_uniform_string_has_zero_entropy(self):
        assert normalized_entropy("aaaaaaaa") == 0.0

    def test_all_distinct_chars_have_full_entropy(self):
        assert normalized_entropy("abcd") == pytest.approx(1.0)

    def test_short_strings(self):
        assert normalized_entropy("") == 0.0
        assert normalized_entropy("a") == 0.0

    def test_low_entropy_flagged(self):
        result = analyze_user_agent("a" * 40)
        assert "low_entropy" in result.anomalies
        assert result.score > 0.0

    def test_short_ua_flagged(self):
        assert "unusual_length" in analyze_user_agent("Mozilla/5.0").anomalies

    def test_long_ua_flagged(self):
        ua = "Mozilla/5.0 " + "Chrome/120.0 Safari/537.36 " * 25
        assert len(ua) > 500
        assert "unusual_length" in analyze_user_agent(ua).anomalies

    def test_score_never_exceeds_one(self):
        result = analyze_user_agent("bot")
        assert 0.0 <= result.score <= 1.0
