"""
API key authentication.

Two kinds of keys:
  - Publisher keys (tc_live_...): used by the embedded SDK / server
    integrations to call /api/v1/analyze and read analytics
  - Admin keys (tc_admin_...): may reconfigure action thresholds

Keys are configured as SHA-256 hex digests (TC_API_KEY_HASHES,
TC_ADMIN_KEY_HASHES). Plaintext keys never live in config or logs.
Accepted via `X-API-Key` header or `Authorization: Bearer <key>`.
"""

import hashlib
import hmac
import secrets
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import APIKeyHeader

from app.config import Settings, get_settings

import structlog

logger = structlog.get_logger()

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def hash_api_key(raw_key: str) -> str:
    """SHA-256 hash of the raw API key."""
    return hashlib.sha256(raw_key.encode()).hexdigest()


def generate_api_key(key_type: str = "live") -> tuple[str, str]:
    """Generate a new key. Returns (raw_key, key_hash); show raw_key ONCE."""
    prefix = "tc_admin_" if key_type == "admin" else "tc_live_"
    raw_key = f"{prefix}{secrets.token_urlsafe(32)}"
    return raw_key, hash_api_key(raw_key)


@dataclass
class AuthContext:
    key_type: str  # "live" or "admin"
    key_prefix: str


def _matches(key_hash: str, allowed: list[str]) -> bool:
    return any(hmac.compare_digest(key_hash, candidate.lower()) for candidate in allowed)


def _extract_key(request: Request, header_key: str | None) -> str | None:
    if header_key:
        return header_key
    authorization = request.headers.get("authorization", "")
    if authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return None


async def require_api_key(
    request: Request,
    api_key: str | None = Security(api_key_header),
    settings: Settings = Depends(get_settings),
) -> AuthContext:
    """Require a publisher or admin key."""
    raw_key = _extract_key(request, api_key)
    if not raw_key:
        raise HTTPException(
            status_code=401,
            detail="Missing API key. Include X-API-Key header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    key_hash = hash_api_key(raw_key)
    if _matches(key_hash, settings.admin_key_hashes):
        return AuthContext(key_type="admin", key_prefix=raw_key[:12])
    if _matches(key_hash, settings.api_key_hashes):
        return AuthContext(key_type="live", key_prefix=raw_key[:12])

    logger.warning("invalid_api_key", key_prefix=raw_key[:8])
    raise HTTPException(
        status_code=401,
        detail="Invalid API key.",
        headers={"WWW-Authenticate": "ApiKey"},
    )


async def require_admin_key(auth: AuthContext = Depends(require_api_key)) -> AuthContext:
    if auth.key_type != "admin":
        raise HTTPException(status_code=403, detail="Admin key required.")
    return auth
