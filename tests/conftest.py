"""Pytest configuration."""

import hashlib
import json
import os

import httpx
import pytest

TEST_API_KEY = "tc_live_test-publisher-key"
TEST_ADMIN_KEY = "tc_admin_test-admin-key"

# Ensure test environment (before anything calls get_settings())
os.environ.setdefault("TC_API_KEY_HASHES", json.dumps([hashlib.sha256(TEST_API_KEY.encode()).hexdigest()]))
os.environ.setdefault("TC_ADMIN_KEY_HASHES", json.dumps([hashlib.sha256(TEST_ADMIN_KEY.encode()).hexdigest()]))
os.environ.setdefault("TC_REPUTATION_ENABLED", "false")  # never hit the network
os.environ.setdefault("TC_DEBUG", "true")


@pytest.fixture
def api_headers():
    return {"X-API-Key": TEST_API_KEY}


@pytest.fixture
def admin_headers():
    return {"X-API-Key": TEST_ADMIN_KEY}


def mock_reputation_client(handler) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by `handler(request)`."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def reputation_response(ip: str, **record) -> httpx.Response:
    return httpx.Response(200, json={"status": "ok", ip: record})
