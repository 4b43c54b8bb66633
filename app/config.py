"""
Traffic Cop configuration.
All secrets/tunables come from environment variables.
"""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # --- App ---
    app_name: str = "Traffic Cop"
    debug: bool = False
    base_url: str = "https://trafficcop.dev"
    cors_origins: list[str] = ["*"]  # SDK is embedded on publisher sites

    # --- Secrets (SHA-256 hex digests, never plaintext) ---
    api_key_hashes: list[str] = []
    admin_key_hashes: list[str] = []

    # --- Action thresholds (initial snapshot, live-reconfigurable) ---
    challenge_threshold: int = 50
    block_threshold: int = 80

    # --- Composite scorer weights ---
    weight_request_frequency: float = 30.0
    weight_rhythmic_timing: float = 20.0
    weight_user_agent: float = 45.0
    weight_behavior: float = 40.0
    weight_reputation: float = 0.3  # applied to the 0–100 reputation score
    weight_device: float = 25.0
    frequency_normal_per_sec: float = 1.0
    frequency_malicious_per_sec: float = 5.0

    # --- Reputation source (proxycheck.io v2 compatible) ---
    reputation_enabled: bool = True
    reputation_api_url: str = "https://proxycheck.io/v2"
    reputation_api_key: str = ""
    reputation_timeout_seconds: float = 8.0
    vpn_confidence_threshold: int = 65
    home_country: str = "IN"

    # --- Request-pattern tracking ---
    session_history_size: int = 10
    session_ttl_seconds: int = 3600
    max_tracked_sessions: int = 100_000

    # --- Challenge ---
    challenge_path: str = "/captcha-challenge.html"

    model_config = {"env_prefix": "TC_", "env_file": ".env"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
