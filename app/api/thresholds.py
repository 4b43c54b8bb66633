"""
Threshold configuration channel.

GET /api/v1/thresholds  → current {challenge, block}
PUT /api/v1/thresholds  → partial update (admin key); takes effect for the
                          next analysis call, in-flight calls keep their snapshot
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from app.core.engine import get_threshold_store
from app.core.thresholds import ThresholdStore
from app.middleware.auth import AuthContext, require_admin_key, require_api_key

import structlog

logger = structlog.get_logger()
router = APIRouter(prefix="/api/v1", tags=["thresholds"])


class ThresholdUpdate(BaseModel):
    challenge: int | None = Field(default=None, ge=0, le=100)
    block: int | None = Field(default=None, ge=0, le=100)


@router.get("/thresholds")
async def get_thresholds(
    auth: AuthContext = Depends(require_api_key),
    store: ThresholdStore = Depends(get_threshold_store),
):
    return store.snapshot().to_dict()


@router.put("/thresholds")
async def update_thresholds(
    body: ThresholdUpdate,
    auth: AuthContext = Depends(require_admin_key),
    store: ThresholdStore = Depends(get_threshold_store),
):
    try:
        updated = store.update(challenge=body.challenge, block=body.block)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    logger.info("thresholds_reconfigured", key_prefix=auth.key_prefix, **updated.to_dict())
    return updated.to_dict()
