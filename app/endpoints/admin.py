from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.cache_config import CACHE_KEYS, CACHE_TTL
from app.core.decorators import cache_endpoint
from app.schemas.purchase import Purchase, PurchaseStatistics
from app.schemas.response import APIResponse
from app.services.access import access_gate
from app.services.cache_service import cache_service
from app.utils import deps

router = APIRouter()

@router.post("/courses/{course_id}/access/{user_id}", response_model=APIResponse[Purchase], dependencies=[Depends(deps.require_admin)])
async def grant_course_access(
    *,
    course_id: int,
    user_id: int,
    db: Session = Depends(deps.get_transactional_db)
):
    grant = access_gate.grant_free_access(db, user_id=user_id, course_id=course_id)
    await cache_service.invalidate_user_cache(user_id)
    return APIResponse(message="Access granted successfully", data=Purchase.model_validate(grant))

@router.delete("/courses/{course_id}/access/{user_id}", response_model=APIResponse[dict], dependencies=[Depends(deps.require_admin)])
async def revoke_course_access(
    *,
    course_id: int,
    user_id: int,
    db: Session = Depends(deps.get_transactional_db)
):
    removed = access_gate.revoke_access(db, user_id=user_id, course_id=course_id)
    await cache_service.invalidate_user_cache(user_id)
    return APIResponse(message="Access revoked successfully", data={"removed": removed})

@router.get("/purchases", response_model=APIResponse[List[Purchase]], dependencies=[Depends(deps.require_admin)])
def list_purchases(
    *,
    db: Session = Depends(deps.get_db),
    email: Optional[str] = None,
    is_premium: Optional[bool] = None,
    course_id: Optional[int] = None,
    skip: int = 0,
    limit: int = Query(100, le=500)
):
    purchases = access_gate.get_course_purchases(
        db, email=email, is_premium=is_premium, course_id=course_id, skip=skip, limit=limit
    )
    return APIResponse(message="Purchases retrieved successfully", data=[Purchase.model_validate(p) for p in purchases])

@router.get("/purchases/stats", response_model=APIResponse[PurchaseStatistics], dependencies=[Depends(deps.require_admin)])
@cache_endpoint(ttl=CACHE_TTL["purchase_stats"], key_prefix=CACHE_KEYS["purchase_stats"])
async def get_purchase_stats(
    *,
    db: Session = Depends(deps.get_db)
):
    stats = access_gate.get_purchase_statistics(db)
    return APIResponse(message="Purchase statistics retrieved successfully", data=stats)
