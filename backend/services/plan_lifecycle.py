"""Plan Lifecycle Service - administrator operations on the plan catalog.

Handles:
- Catalog reads (list, get, immutable snapshot for the resolver)
- Seeding from factory templates
- create / update / delete / reset

Lifecycle per plan: Draft -> Active (create), Active -> Active (update, reset),
Active -> Deleted (delete). Deleted is terminal and implemented as a soft
delete (isActive=false) so the key stays reserved. "basic" can never be deleted.

Every write is a single conditional update on (key, version). A version
mismatch means another admin saved first and raises ConflictError; nothing
is partially applied.
"""
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional
from pydantic import ValidationError as PydanticValidationError
from pymongo import errors as mongo_errors
from database import database
from models import AuditAction, Plan, PlanLimits
from utils.audit import create_audit_log
from services.entitlement_errors import (
    ConflictError,
    DuplicateKeyError,
    NotFoundError,
    PlanInUseError,
    PlanNotFoundError,
    ProtectedPlanError,
    ValidationError,
)
from services.entitlement_resolver import PlanCatalog
from services.feature_catalog import validate_feature_map
from services.plan_registry import BASE_PLAN_FEATURES, BASIC_PLAN_KEY, build_template_plans, get_reset_values
import logging

logger = logging.getLogger(__name__)

PLAN_KEY_PATTERN = re.compile(r"^[a-z0-9_-]+$")

# Fields an update may touch. key is immutable, isActive only moves via delete.
ALLOWED_UPDATE_FIELDS = (
    "label",
    "limits",
    "features",
    "description",
    "price",
    "originalPrice",
    "currency",
    "ui",
)

LIMIT_FIELDS = ("maxBundles", "monthlyViews")


# ============================================================================
# VALIDATION HELPERS
# ============================================================================
def normalize_plan_key(raw_key: Any) -> str:
    if not isinstance(raw_key, str) or not raw_key.strip():
        raise ValidationError("Plan key is required")
    key = raw_key.strip().lower()
    if not PLAN_KEY_PATTERN.match(key):
        raise ValidationError(
            "Plan key may only contain lowercase letters, digits, '-' and '_'",
            {"key": raw_key},
        )
    return key


def validate_limit_value(name: str, value: Any) -> Optional[int]:
    """Non-negative integer or None (unlimited)."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a whole number or null", {"field": name})
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int):
        raise ValidationError(f"{name} must be a whole number or null", {"field": name})
    if value < 0:
        raise ValidationError(f"{name} must be non-negative", {"field": name})
    return value


def validate_limits(limits: Any) -> Dict[str, Optional[int]]:
    """Validate the limit fields present in a (possibly partial) limits object."""
    if limits is None:
        return {}
    if not isinstance(limits, Mapping):
        raise ValidationError("limits must be an object")
    return {
        name: validate_limit_value(name, limits[name])
        for name in LIMIT_FIELDS
        if name in limits
    }


def validate_price(name: str, value: Any, allow_none: bool = False) -> Optional[float]:
    if value is None:
        if allow_none:
            return None
        raise ValidationError(f"{name} is required", {"field": name})
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number", {"field": name})
    if value < 0:
        raise ValidationError(f"{name} must be non-negative", {"field": name})
    return float(value)


def validate_label(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Plan label is required")
    return value.strip()


def _build_plan(data: Dict[str, Any]) -> Plan:
    try:
        return Plan.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError("Invalid plan configuration", {"errors": e.errors()}) from e


def _plan_from_document(doc: Dict[str, Any]) -> Plan:
    """Load a stored plan, dropping feature keys that left the catalog."""
    doc = dict(doc)
    doc["features"] = validate_feature_map(doc.get("features"))
    return Plan.model_validate(doc)


def _actor_fields(actor: Optional[Dict[str, Any]]) -> Dict[str, Optional[str]]:
    actor = actor or {}
    return {"actor_id": actor.get("sub"), "actor_role": actor.get("role")}


# ============================================================================
# PLAN LIFECYCLE SERVICE
# ============================================================================
class PlanLifecycleService:
    """Create, update, delete and reset plans in the catalog."""

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def list_plans(self, include_inactive: bool = False) -> List[Plan]:
        """All plans sorted by key. Seeds factory plans into an empty catalog."""
        db = database.get_db()

        if await db.plan_configs.count_documents({}) == 0:
            await self.initialize_from_templates()

        query = {} if include_inactive else {"isActive": True}
        docs = await db.plan_configs.find(query, {"_id": 0}).sort("key", 1).to_list(1000)
        return [_plan_from_document(doc) for doc in docs]

    async def get_plan(self, plan_key: str) -> Plan:
        db = database.get_db()
        doc = await db.plan_configs.find_one({"key": plan_key, "isActive": True}, {"_id": 0})
        if not doc:
            raise PlanNotFoundError(plan_key)
        return _plan_from_document(doc)

    async def load_catalog(self) -> PlanCatalog:
        """Fresh immutable snapshot of the active catalog."""
        return PlanCatalog.from_plans(await self.list_plans())

    async def count_plan_references(self, plan_key: str) -> int:
        db = database.get_db()
        return await db.stores.count_documents({"plan": plan_key})

    # -------------------------------------------------------------------------
    # Seeding
    # -------------------------------------------------------------------------

    async def initialize_from_templates(self) -> List[Plan]:
        """Insert every factory plan missing from the catalog (idempotent)."""
        db = database.get_db()
        plans = []
        created = []

        for template_plan in build_template_plans():
            existing = await db.plan_configs.find_one({"key": template_plan.key}, {"_id": 0})
            if existing:
                plans.append(_plan_from_document(existing))
                continue

            now = datetime.now(timezone.utc)
            plan = template_plan.model_copy(update={"created_at": now, "updated_at": now})
            try:
                await db.plan_configs.insert_one(plan.to_document())
            except mongo_errors.DuplicateKeyError:
                # Another worker seeded it between find and insert
                logger.info(f"Plan {plan.key} already seeded, skipping")
                continue
            plans.append(plan)
            created.append(plan.key)

        if created:
            logger.info(f"Seeded plan catalog from templates: {created}")
            await create_audit_log(
                action=AuditAction.PLAN_CATALOG_SEEDED,
                actor_role="SYSTEM",
                resource_type="plan",
                metadata={"created": created},
            )
        return plans

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def create(self, draft: Mapping[str, Any], actor: Optional[Dict[str, Any]] = None) -> Plan:
        """
        Create a plan. Requires a unique non-empty key and label.

        Raises:
            ValidationError: bad key, label, price or limits
            DuplicateKeyError: key already exists (active or deleted)
        """
        key = normalize_plan_key(draft.get("key"))
        label = validate_label(draft.get("label"))
        limits = {**PlanLimits().model_dump(), **validate_limits(draft.get("limits"))}
        raw_features = draft.get("features")
        # New plans start with every feature on unless the draft says otherwise
        features = validate_feature_map(BASE_PLAN_FEATURES if raw_features is None else raw_features)

        db = database.get_db()
        existing = await db.plan_configs.find_one({"key": key}, {"_id": 0, "key": 1})
        if existing:
            logger.warning(f"Rejected plan create: key {key} already exists")
            raise DuplicateKeyError(key)

        now = datetime.now(timezone.utc)
        plan = _build_plan({
            "key": key,
            "label": label,
            "description": draft.get("description") or "",
            "price": validate_price("price", draft.get("price", 0) or 0),
            "originalPrice": validate_price("originalPrice", draft.get("originalPrice"), allow_none=True),
            "currency": draft.get("currency") or "SAR",
            "isActive": True,
            "limits": limits,
            "features": features,
            "ui": draft.get("ui") or {},
            "version": 1,
            "created_at": now,
            "updated_at": now,
        })

        try:
            await db.plan_configs.insert_one(plan.to_document())
        except mongo_errors.DuplicateKeyError as e:
            raise DuplicateKeyError(key) from e

        logger.info(f"Plan created: {key}")
        await create_audit_log(
            action=AuditAction.PLAN_CREATED,
            resource_type="plan",
            resource_id=key,
            after_state=plan.to_document(),
            **_actor_fields(actor),
        )
        return plan

    async def update(
        self,
        plan_key: str,
        patch: Mapping[str, Any],
        expected_version: Optional[int] = None,
        actor: Optional[Dict[str, Any]] = None,
    ) -> Plan:
        """
        Partial update. limits, features and ui are merged field by field, so
        a patch of {"features": {"timer": True}} keeps every other flag and limit.

        Raises:
            NotFoundError: plan missing or deleted
            ValidationError: invalid merged plan or attempt to change the key
            ConflictError: plan changed since expected_version / since read
        """
        current = await self.get_plan(plan_key)

        if "key" in patch and patch["key"] is not None and str(patch["key"]).strip().lower() != plan_key:
            raise ValidationError("Plan key cannot be changed", {"key": patch["key"]})
        if expected_version is not None and expected_version != current.version:
            raise ConflictError(
                f"Plan {plan_key} was modified by someone else",
                {"expected_version": expected_version, "current_version": current.version},
            )

        ignored = sorted(k for k in patch if k not in ALLOWED_UPDATE_FIELDS and k != "key")
        if ignored:
            logger.debug(f"Ignoring non-updatable plan fields for {plan_key}: {ignored}")

        merged = current.model_dump()

        if "label" in patch:
            merged["label"] = validate_label(patch["label"])
        if "description" in patch:
            merged["description"] = patch["description"] or ""
        if "price" in patch:
            merged["price"] = validate_price("price", patch["price"])
        if "originalPrice" in patch:
            merged["originalPrice"] = validate_price("originalPrice", patch["originalPrice"], allow_none=True)
        if "currency" in patch:
            if not isinstance(patch["currency"], str) or not patch["currency"].strip():
                raise ValidationError("currency must be a non-empty string")
            merged["currency"] = patch["currency"].strip()
        if "limits" in patch:
            merged["limits"] = {**merged["limits"], **validate_limits(patch["limits"])}
        if "features" in patch:
            merged["features"] = {**merged["features"], **validate_feature_map(patch["features"])}
        if "ui" in patch and patch["ui"] is not None:
            if not isinstance(patch["ui"], Mapping):
                raise ValidationError("ui must be an object")
            merged["ui"] = {**merged["ui"], **patch["ui"]}

        merged["version"] = current.version + 1
        merged["updated_at"] = datetime.now(timezone.utc)
        updated = _build_plan(merged)

        await self._write(current, updated)

        logger.info(f"Plan updated: {plan_key} (version {updated.version})")
        await create_audit_log(
            action=AuditAction.PLAN_UPDATED,
            resource_type="plan",
            resource_id=plan_key,
            before_state=current.to_document(),
            after_state=updated.to_document(),
            **_actor_fields(actor),
        )

        if updated.limits != current.limits:
            await self._sync_store_limits(updated)
        return updated

    async def delete(self, plan_key: str, actor: Optional[Dict[str, Any]] = None) -> Plan:
        """
        Soft-delete a plan.

        Raises:
            ProtectedPlanError: plan_key is "basic"
            NotFoundError: plan missing or already deleted
            PlanInUseError: stores are still assigned to the plan
        """
        if plan_key == BASIC_PLAN_KEY:
            logger.warning("Rejected attempt to delete the basic plan")
            raise ProtectedPlanError(plan_key)

        current = await self.get_plan(plan_key)

        store_count = await self.count_plan_references(plan_key)
        if store_count:
            logger.warning(f"Rejected delete of plan {plan_key}: {store_count} store(s) assigned")
            raise PlanInUseError(plan_key, store_count)

        deleted = current.model_copy(update={
            "isActive": False,
            "version": current.version + 1,
            "updated_at": datetime.now(timezone.utc),
        })
        await self._write(current, deleted)

        logger.info(f"Plan deleted: {plan_key}")
        await create_audit_log(
            action=AuditAction.PLAN_DELETED,
            resource_type="plan",
            resource_id=plan_key,
            before_state=current.to_document(),
            after_state=deleted.to_document(),
            **_actor_fields(actor),
        )
        return deleted

    async def reset(self, plan_key: str, actor: Optional[Dict[str, Any]] = None) -> Plan:
        """
        Restore label, limits, features and pricing to the factory template.
        Recreates the plan if the catalog has never had it.

        Raises:
            NotFoundError: no factory template for plan_key, or plan was deleted
        """
        reset_values = get_reset_values(plan_key)
        if reset_values is None:
            raise NotFoundError(f"No template found for plan {plan_key}", {"plan_key": plan_key})

        db = database.get_db()
        doc = await db.plan_configs.find_one({"key": plan_key}, {"_id": 0})
        now = datetime.now(timezone.utc)

        if not doc:
            plan = _build_plan({
                "key": plan_key,
                **reset_values,
                "isActive": True,
                "version": 1,
                "created_at": now,
                "updated_at": now,
            })
            try:
                await db.plan_configs.insert_one(plan.to_document())
            except mongo_errors.DuplicateKeyError as e:
                raise ConflictError(f"Plan {plan_key} was created concurrently") from e
            before_state = None
        else:
            current = _plan_from_document(doc)
            if not current.isActive:
                raise PlanNotFoundError(plan_key)
            merged = current.model_dump()
            merged.update(reset_values)
            merged["version"] = current.version + 1
            merged["updated_at"] = now
            plan = _build_plan(merged)
            await self._write(current, plan)
            before_state = current.to_document()

        logger.info(f"Plan reset to factory defaults: {plan_key}")
        await create_audit_log(
            action=AuditAction.PLAN_RESET,
            resource_type="plan",
            resource_id=plan_key,
            before_state=before_state,
            after_state=plan.to_document(),
            **_actor_fields(actor),
        )

        await self._sync_store_limits(plan)
        return plan

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _write(self, current: Plan, updated: Plan) -> None:
        """Conditional replace of the mutable fields; ConflictError on version mismatch."""
        db = database.get_db()
        fields = updated.to_document()
        fields.pop("key", None)
        fields.pop("created_at", None)

        result = await db.plan_configs.update_one(
            {"key": current.key, "version": current.version, "isActive": True},
            {"$set": fields},
        )
        if result.matched_count == 0:
            logger.warning(f"Version conflict writing plan {current.key} at version {current.version}")
            raise ConflictError(
                f"Plan {current.key} was modified by someone else",
                {"expected_version": current.version},
            )

    async def _sync_store_limits(self, plan: Plan) -> int:
        """
        Re-mirror plan limits into every store on this plan that is not in
        override mode. Failures are logged; the next store write re-syncs.
        """
        db = database.get_db()
        try:
            result = await db.stores.update_many(
                {"plan": plan.key, "plan_override_enabled": {"$ne": True}},
                {
                    "$set": {
                        "bundle_settings.max_bundles_per_store": plan.limits.maxBundles,
                        "bundle_settings.max_monthly_views": plan.limits.monthlyViews,
                        "updated_at": datetime.now(timezone.utc).isoformat(),
                    },
                    "$inc": {"version": 1},
                },
            )
        except Exception as e:
            logger.error(f"Failed to sync store limits for plan {plan.key}: {e}", exc_info=True)
            return 0

        logger.info(f"Synced limits of plan {plan.key} to {result.modified_count} store(s)")
        return result.modified_count


# Singleton instance
plan_lifecycle_service = PlanLifecycleService()
