"""
Plan Catalog - Admin Routes
List, create, edit, delete and reset subscription plans.

Reads are open to admins and moderators; mutations require the admin role.
Typed service errors propagate to the app-level EntitlementError handler.
"""
from fastapi import APIRouter, Depends, Query
from typing import Optional, Dict, Any
from pydantic import BaseModel, ConfigDict

from middleware import admin_route_guard, require_admin
from services.feature_catalog import get_available_features
from services.plan_lifecycle import plan_lifecycle_service
from utils.audit import get_audit_logs_for_resource
import logging

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin/plans",
    tags=["Plans"],
    dependencies=[Depends(admin_route_guard)],
)


class PlanCreateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    key: str = ""
    label: str = ""
    description: Optional[str] = None
    price: Optional[float] = None
    originalPrice: Optional[float] = None
    currency: Optional[str] = None
    limits: Optional[Dict[str, Any]] = None
    features: Optional[Dict[str, Any]] = None
    ui: Optional[Dict[str, Any]] = None


class PlanUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    key: Optional[str] = None
    label: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    originalPrice: Optional[float] = None
    currency: Optional[str] = None
    limits: Optional[Dict[str, Any]] = None
    features: Optional[Dict[str, Any]] = None
    ui: Optional[Dict[str, Any]] = None
    expected_version: Optional[int] = None


# ============================================
# Reads
# ============================================

@router.get("")
async def list_plans(include_inactive: bool = Query(False)):
    """All plans, sorted by key."""
    plans = await plan_lifecycle_service.list_plans(include_inactive=include_inactive)
    return {"success": True, "data": [plan.to_document() for plan in plans]}


@router.get("/features")
async def list_features():
    """Feature catalog for the plan editor."""
    return {"success": True, "data": get_available_features()}


@router.get("/{plan_key}")
async def get_plan(plan_key: str):
    plan = await plan_lifecycle_service.get_plan(plan_key)
    return {"success": True, "data": plan.to_document()}


@router.get("/{plan_key}/history")
async def get_plan_history(plan_key: str, limit: int = Query(50, ge=1, le=200)):
    """Audit timeline for one plan, newest first."""
    logs = await get_audit_logs_for_resource("plan", plan_key, limit=limit)
    return {"success": True, "data": logs}


# ============================================
# Mutations
# ============================================

@router.post("", status_code=201)
async def create_plan(body: PlanCreateRequest, admin: dict = Depends(require_admin)):
    draft = body.model_dump(exclude_none=True)
    plan = await plan_lifecycle_service.create(draft, actor=admin)
    return {"success": True, "data": plan.to_document()}


@router.put("/{plan_key}")
async def update_plan(plan_key: str, body: PlanUpdateRequest, admin: dict = Depends(require_admin)):
    """Partial update; limits, features and ui merge field by field."""
    patch = body.model_dump(exclude_unset=True)
    expected_version = patch.pop("expected_version", None)
    plan = await plan_lifecycle_service.update(
        plan_key,
        patch,
        expected_version=expected_version,
        actor=admin,
    )
    return {"success": True, "data": plan.to_document()}


@router.delete("/{plan_key}")
async def delete_plan(plan_key: str, admin: dict = Depends(require_admin)):
    plan = await plan_lifecycle_service.delete(plan_key, actor=admin)
    return {"success": True, "data": plan.to_document(), "message": f"Plan {plan_key} deleted"}


@router.post("/{plan_key}/reset")
async def reset_plan(plan_key: str, admin: dict = Depends(require_admin)):
    """Restore a plan to its factory template."""
    plan = await plan_lifecycle_service.reset(plan_key, actor=admin)
    return {"success": True, "data": plan.to_document(), "message": f"Plan {plan_key} reset to defaults"}
