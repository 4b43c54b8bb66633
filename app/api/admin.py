"""
Admin key issuance.

Keys are not stored server-side: the operator adds the returned hash to
TC_API_KEY_HASHES / TC_ADMIN_KEY_HASHES and hands the raw key to the publisher.
"""

from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.middleware.auth import AuthContext, generate_api_key, require_admin_key

import structlog

logger = structlog.get_logger()
router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


class KeyRequest(BaseModel):
    key_type: Literal["live", "admin"] = "live"


@router.post("/keys")
async def create_key(
    body: KeyRequest,
    auth: AuthContext = Depends(require_admin_key),
):
    raw_key, key_hash = generate_api_key(body.key_type)
    logger.info("api_key_generated", key_type=body.key_type, key_prefix=raw_key[:12], by=auth.key_prefix)
    return {
        "message": "SAVE THIS KEY. It won't be shown again.",
        "keyType": body.key_type,
        "apiKey": raw_key,
        "keyHash": key_hash,
        "configVar": "TC_ADMIN_KEY_HASHES" if body.key_type == "admin" else "TC_API_KEY_HASHES",
    }
