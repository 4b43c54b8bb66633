"""HTTP surface tests (FastAPI TestClient, engine dependencies overridden)."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.core.engine import TrafficAnalyzer, get_analyzer, get_threshold_store, get_traffic_stats
from app.core.reputation import ReputationLookup
from app.core.result import FALLBACK_FACTOR
from app.core.request_pattern import RequestPatternTracker
from app.core.signals import RequestSignal
from app.core.thresholds import ThresholdConfig, ThresholdStore
from app.core.traffic_stats import TrafficStats
from app.main import app
from app.middleware.auth import generate_api_key, hash_api_key
from conftest import TEST_API_KEY


CHROME_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

HUMAN_BEHAVIOR = {
    "mouseMovements": 90, "clicks": 3, "keystrokes": 12, "scrollEvents": 8,
    "avgClickSpeed": 700, "mouseVariation": 640,
}


class TestAnalyzeEndpoint:
    @pytest.fixture(autouse=True)
    def setup_app(self):
        self.store = ThresholdStore(ThresholdConfig(challenge=50, block=80))
        self.stats = TrafficStats()
        analyzer = TrafficAnalyzer(
            reputation=ReputationLookup(Settings(reputation_enabled=False)),
            tracker=RequestPatternTracker(),
        )
        app.dependency_overrides[get_analyzer] = lambda: analyzer
        app.dependency_overrides[get_threshold_store] = lambda: self.store
        app.dependency_overrides[get_traffic_stats] = lambda: self.stats
        self.client = TestClient(app)
        yield
        app.dependency_overrides.clear()

    def _analyze(self, body, headers):
        return self.client.post("/api/v1/analyze", json={"headers": {}, **body}, headers=headers)

    def test_health(self):
        resp = self.client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"

    def test_missing_key_rejected(self):
        resp = self.client.post("/api/v1/analyze", json={"userAgent": CHROME_UA})
        assert resp.status_code == 401

    def test_invalid_key_rejected(self):
        resp = self._analyze({"userAgent": CHROME_UA}, {"X-API-Key": "tc_live_nope"})
        assert resp.status_code == 401

    def test_bearer_token_accepted(self):
        resp = self._analyze({"userAgent": CHROME_UA, "behaviorData": HUMAN_BEHAVIOR},
                             {"Authorization": f"Bearer {TEST_API_KEY}"})
        assert resp.status_code == 200

    def test_human_allowed(self, api_headers):
        resp = self._analyze({"userAgent": CHROME_UA, "behaviorData": HUMAN_BEHAVIOR,
                              "website": "example.com", "sessionId": "sess_abc"}, api_headers)
        body = resp.json()
        assert body["action"] == "allow"
        assert body["sessionId"] == "sess_abc"
        assert body["threats"] == ["Low Risk"]
        assert body["thresholds"] == {"challenge": 50, "block": 80}
        assert "challengeUrl" not in body

    def test_script_blocked(self, api_headers):
        body = self._analyze({"userAgent": "python-requests/2.28", "ipAddress": "93.184.216.34"},
                             api_headers).json()
        assert body["action"] == "block"
        assert body["isBot"] is True
        assert body["riskScore"] >= 75
        assert body["sessionId"].startswith("sess_")

    def test_challenge_includes_url(self, api_headers):
        self.store.update(challenge=40, block=75)
        body = self._analyze({"behaviorData": HUMAN_BEHAVIOR, "sessionId": "sess_q",
                              "website": "dailyjobs.example"}, api_headers).json()
        assert body["action"] == "challenge"
        assert "session=sess_q" in body["challengeUrl"]
        assert "website=dailyjobs.example" in body["challengeUrl"]

    def test_malformed_behavior_does_not_fail_request(self, api_headers):
        resp = self._analyze({"userAgent": CHROME_UA, "behaviorData": "abc"}, api_headers)
        assert resp.status_code == 200
        assert "no_behavior_data" in resp.json()["analysis"]["behavior"]["signals"]

    def test_analytics_counts_results(self, api_headers):
        self._analyze({"userAgent": CHROME_UA, "behaviorData": HUMAN_BEHAVIOR}, api_headers)
        self._analyze({"userAgent": "curl/8.0"}, api_headers)
        body = self.client.get("/api/v1/analytics", headers=api_headers).json()
        assert body["totalRequests"] == 2
        assert body["blockedBots"] == 1
        assert body["allowedUsers"] == 1
        assert body["blockRate"] == 50.0
        assert body["recentActivity"][0]["action"] == "block"

    def test_oversized_number_does_not_fail_request(self, api_headers):
        resp = self._analyze({"userAgent": CHROME_UA, "behaviorData": HUMAN_BEHAVIOR,
                              "deviceFingerprint": {"deviceMemory": 10**400, "hardwareConcurrency": 8}},
                             api_headers)
        assert resp.status_code == 200
        assert resp.json()["action"] == "allow"

    def test_signal_parse_failure_fails_open(self, api_headers):
        with patch.object(RequestSignal, "from_payload", side_effect=RuntimeError("boom")):
            resp = self._analyze({"userAgent": "python-requests/2.28"}, api_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["action"] == "allow"
        assert body["riskScore"] == 0
        assert body["threats"] == [FALLBACK_FACTOR]

    def test_wrong_typed_headers_entry_dropped(self, api_headers):
        resp = self._analyze({"userAgent": "python-requests/2.28",
                              "headers": {"x-hops": 3, "via": "1.1 squid"}}, api_headers)
        assert resp.status_code == 200
        assert resp.json()["action"] == "block"
        assert "header_via" in resp.json()["analysis"]["reputation"]["proxySignals"]

    @pytest.mark.parametrize("field,value", [
        ("sessionId", 42), ("sessionId", ""), ("ipAddress", ["1.2.3.4"]),
        ("website", {"host": "x"}), ("headers", "via: proxy"),
    ])
    def test_wrong_typed_envelope_field_skipped(self, api_headers, field, value):
        resp = self._analyze({"userAgent": CHROME_UA, "behaviorData": HUMAN_BEHAVIOR, field: value}, api_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["sessionId"].startswith("sess_")
        assert body["action"] == "allow"


class TestThresholdEndpoints:
    @pytest.fixture(autouse=True)
    def setup_app(self):
        self.store = ThresholdStore(ThresholdConfig(challenge=50, block=80))
        app.dependency_overrides[get_threshold_store] = lambda: self.store
        self.client = TestClient(app)
        yield
        app.dependency_overrides.clear()

    def test_read(self, api_headers):
        resp = self.client.get("/api/v1/thresholds", headers=api_headers)
        assert resp.json() == {"challenge": 50, "block": 80}

    def test_publisher_key_cannot_update(self, api_headers):
        resp = self.client.put("/api/v1/thresholds", json={"challenge": 10}, headers=api_headers)
        assert resp.status_code == 403
        assert self.store.snapshot().challenge == 50

    def test_admin_update(self, admin_headers):
        resp = self.client.put("/api/v1/thresholds", json={"challenge": 40, "block": 75}, headers=admin_headers)
        assert resp.status_code == 200
        assert self.store.snapshot() == ThresholdConfig(40, 75)

    def test_inverted_pair_rejected(self, admin_headers):
        resp = self.client.put("/api/v1/thresholds", json={"challenge": 90}, headers=admin_headers)
        assert resp.status_code == 422
        assert self.store.snapshot() == ThresholdConfig(50, 80)

    def test_out_of_range_rejected(self, admin_headers):
        resp = self.client.put("/api/v1/thresholds", json={"block": 150}, headers=admin_headers)
        assert resp.status_code == 422


class TestApiKeys:
    def test_generated_keys(self):
        raw, key_hash = generate_api_key("admin")
        assert raw.startswith("tc_admin_")
        assert key_hash == hash_api_key(raw)
        assert len(key_hash) == 64

    def test_live_prefix_default(self):
        raw, _ = generate_api_key()
        assert raw.startswith("tc_live_")

    def test_admin_issues_publisher_key(self, admin_headers):
        resp = TestClient(app).post("/api/v1/admin/keys", json={}, headers=admin_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["apiKey"].startswith("tc_live_")
        assert body["keyHash"] == hash_api_key(body["apiKey"])
        assert body["configVar"] == "TC_API_KEY_HASHES"

    def test_admin_issues_admin_key(self, admin_headers):
        body = TestClient(app).post("/api/v1/admin/keys", json={"key_type": "admin"}, headers=admin_headers).json()
        assert body["apiKey"].startswith("tc_admin_")
        assert body["configVar"] == "TC_ADMIN_KEY_HASHES"

    def test_publisher_key_cannot_issue_keys(self, api_headers):
        resp = TestClient(app).post("/api/v1/admin/keys", json={}, headers=api_headers)
        assert resp.status_code == 403

    def test_unknown_key_type_rejected(self, admin_headers):
        resp = TestClient(app).post("/api/v1/admin/keys", json={"key_type": "root"}, headers=admin_headers)
        assert resp.status_code == 422
