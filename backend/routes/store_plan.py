"""
Merchant dashboard - current plan context for a store.
"""
from fastapi import APIRouter, Depends

from middleware import store_route_guard
from services.store_entitlements import store_entitlement_service

router = APIRouter(prefix="/api/stores", tags=["Store Plan"])


@router.get("/{store_id}/plan")
async def get_store_plan(store_id: str, user: dict = Depends(store_route_guard)):
    """Plan key, label, effective limits and feature flags for the dashboard."""
    snapshot = await store_entitlement_service.get_plan_snapshot(store_id)
    return {"success": True, "data": snapshot}
