"""
Store Entitlements - Admin Routes
Inspect and edit a store's plan assignment, override and bundle limits.
"""
from fastapi import APIRouter, Depends
from typing import Optional, Dict, Any
from pydantic import BaseModel, ConfigDict

from middleware import admin_route_guard, require_admin
from services.store_entitlements import store_entitlement_service
from utils.audit import get_audit_logs_for_resource
import logging

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin/stores",
    tags=["Stores"],
    dependencies=[Depends(admin_route_guard)],
)


class StoreInstallRequest(BaseModel):
    store_id: str


class StoreUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    plan: Optional[str] = None
    plan_override_enabled: Optional[bool] = None
    bundle_settings: Optional[Dict[str, Any]] = None
    status: Optional[str] = None
    bundles_enabled: Optional[bool] = None
    expected_version: Optional[int] = None


def serialize_store_result(result: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "store": result["store"].to_document(),
        "entitlement": result["entitlement"].model_dump(mode="json"),
    }


@router.post("", status_code=201)
async def install_store(body: StoreInstallRequest, admin: dict = Depends(require_admin)):
    """Register a store on the basic plan (no-op if it already exists)."""
    store = await store_entitlement_service.install_store(body.store_id, actor=admin)
    return {"success": True, "data": store.to_document()}


@router.get("/{store_id}")
async def get_store(store_id: str):
    result = await store_entitlement_service.get_store_entitlement(store_id)
    return {"success": True, "data": serialize_store_result(result)}


@router.put("/{store_id}")
async def update_store(store_id: str, body: StoreUpdateRequest, admin: dict = Depends(require_admin)):
    update = body.model_dump(exclude_unset=True, exclude_none=True)
    expected_version = update.pop("expected_version", None)
    result = await store_entitlement_service.update_store(
        store_id,
        update,
        expected_version=expected_version,
        actor=admin,
    )
    return {"success": True, "data": serialize_store_result(result)}


@router.get("/{store_id}/history")
async def get_store_history(store_id: str):
    logs = await get_audit_logs_for_resource("store", store_id)
    return {"success": True, "data": logs}
