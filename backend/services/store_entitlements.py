"""Store Entitlement Service - per-store plan assignment and limits.

A store record carries its assigned plan key, the override flag and
bundle_settings. With override off the limit fields in bundle_settings are a
mirror of the plan's limits; every write here re-syncs them. With override on
they are admin-owned values and the plan only contributes feature flags.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional
from pymongo import errors as mongo_errors
from database import database
from models import AuditAction, BundleSettings, StoreEntitlementRecord, StoreStatus
from utils.audit import create_audit_log
from services.entitlement_errors import ConflictError, NotFoundError, ValidationError
from services.entitlement_resolver import (
    build_plan_snapshot,
    limits_mirror_plan,
    resolve,
    sync_on_plan_change,
)
from services.plan_lifecycle import plan_lifecycle_service, validate_limit_value
from services.plan_registry import BASIC_PLAN_KEY
import logging

logger = logging.getLogger(__name__)

BUNDLE_LIMIT_FIELDS = ("max_bundles_per_store", "max_monthly_views")


def _require_bool(name: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{name} must be true or false", {"field": name})
    return value


def _version_filter(version: int):
    # Records written before versioning have no field; they load as version 1
    return {"$in": [1, None]} if version == 1 else version


class StoreEntitlementService:

    async def get_store(self, store_id: str) -> StoreEntitlementRecord:
        db = database.get_db()
        doc = await db.stores.find_one({"store_id": store_id}, {"_id": 0})
        if not doc:
            raise NotFoundError(f"Store {store_id} not found", {"store_id": store_id})
        return StoreEntitlementRecord.model_validate(doc)

    async def install_store(self, store_id: str, actor: Optional[Dict[str, Any]] = None) -> StoreEntitlementRecord:
        """Create the store on the basic plan. Returns the existing record if already installed."""
        if not isinstance(store_id, str) or not store_id.strip():
            raise ValidationError("store_id is required")

        db = database.get_db()
        existing = await db.stores.find_one({"store_id": store_id}, {"_id": 0})
        if existing:
            return StoreEntitlementRecord.model_validate(existing)

        catalog = await plan_lifecycle_service.load_catalog()
        basic = catalog.require(BASIC_PLAN_KEY)

        now = datetime.now(timezone.utc)
        record = StoreEntitlementRecord(
            store_id=store_id,
            plan=basic.key,
            plan_override_enabled=False,
            bundle_settings=BundleSettings(
                max_bundles_per_store=basic.limits.maxBundles,
                max_monthly_views=basic.limits.monthlyViews,
                analytics_enabled=True,
            ),
            status=StoreStatus.ACTIVE,
            installed_at=now,
            updated_at=now,
        )

        try:
            await db.stores.insert_one(record.to_document())
        except mongo_errors.DuplicateKeyError:
            logger.info(f"Store {store_id} installed concurrently, returning existing record")
            return await self.get_store(store_id)

        logger.info(f"Store installed on {basic.key} plan: {store_id}")
        await create_audit_log(
            action=AuditAction.STORE_INSTALLED,
            actor_id=(actor or {}).get("sub"),
            actor_role=(actor or {}).get("role") or "SYSTEM",
            store_id=store_id,
            resource_type="store",
            resource_id=store_id,
            after_state=record.to_document(),
        )
        return record

    async def get_store_entitlement(self, store_id: str) -> Dict[str, Any]:
        """Store record plus its effective entitlement against a fresh catalog."""
        store = await self.get_store(store_id)
        catalog = await plan_lifecycle_service.load_catalog()
        return {"store": store, "entitlement": resolve(store, catalog)}

    async def get_plan_snapshot(self, store_id: str) -> Dict[str, Any]:
        result = await self.get_store_entitlement(store_id)
        return build_plan_snapshot(result["entitlement"])

    async def update_store(
        self,
        store_id: str,
        update: Mapping[str, Any],
        expected_version: Optional[int] = None,
        actor: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Apply an admin edit to a store.

        Order matters: the override flag is applied first, then the plan
        change (which syncs limits unless override is on), then bundle_settings
        edits. Limit edits are only accepted while override is on, since with
        override off those fields are derived from the plan.

        Raises:
            NotFoundError: unknown store
            PlanNotFoundError: new plan key not in the active catalog
            ValidationError: bad values, or limit edits with override off
            ConflictError: store changed since it was read
        """
        current = await self.get_store(store_id)
        if expected_version is not None and expected_version != current.version:
            raise ConflictError(
                f"Store {store_id} was modified by someone else",
                {"expected_version": expected_version, "current_version": current.version},
            )

        catalog = await plan_lifecycle_service.load_catalog()
        record = current.model_copy(deep=True)

        if "plan_override_enabled" in update:
            record = record.model_copy(update={
                "plan_override_enabled": _require_bool("plan_override_enabled", update["plan_override_enabled"]),
            })

        if "plan" in update:
            new_plan = update["plan"]
            if not isinstance(new_plan, str) or not new_plan.strip():
                raise ValidationError("plan must be a plan key")
            record = sync_on_plan_change(record, new_plan.strip().lower(), catalog)
        elif not record.plan_override_enabled:
            # Re-mirror; also covers override being switched off
            plan = catalog.require(record.plan)
            if not current.plan_override_enabled and not limits_mirror_plan(current, plan):
                logger.info(f"Store {store_id} limits drifted from plan {plan.key}, re-mirroring")
            record = sync_on_plan_change(record, record.plan, catalog)

        settings_patch = update.get("bundle_settings")
        if settings_patch is not None:
            if not isinstance(settings_patch, Mapping):
                raise ValidationError("bundle_settings must be an object")
            settings = record.bundle_settings.model_dump()

            limit_edits = [f for f in BUNDLE_LIMIT_FIELDS if f in settings_patch]
            if limit_edits and not record.plan_override_enabled:
                logger.warning(f"Rejected limit edit on store {store_id} with override off: {limit_edits}")
                raise ValidationError(
                    "Bundle limits follow the plan; enable plan override to edit them",
                    {"fields": limit_edits},
                )
            for name in limit_edits:
                settings[name] = validate_limit_value(name, settings_patch[name])
            if "analytics_enabled" in settings_patch:
                settings["analytics_enabled"] = _require_bool("analytics_enabled", settings_patch["analytics_enabled"])

            record = record.model_copy(update={"bundle_settings": BundleSettings(**settings)})

        if "status" in update:
            try:
                record = record.model_copy(update={"status": StoreStatus(update["status"])})
            except ValueError:
                raise ValidationError(f"Invalid store status: {update['status']}", {"field": "status"})

        if "bundles_enabled" in update:
            record = record.model_copy(update={
                "bundles_enabled": _require_bool("bundles_enabled", update["bundles_enabled"]),
            })

        record = record.model_copy(update={
            "version": current.version + 1,
            "updated_at": datetime.now(timezone.utc),
        })
        # Resolve before writing so a dangling plan reference commits nothing
        entitlement = resolve(record, catalog)

        db = database.get_db()
        fields = record.to_document()
        fields.pop("store_id", None)
        fields.pop("installed_at", None)
        result = await db.stores.update_one(
            {"store_id": store_id, "version": _version_filter(current.version)},
            {"$set": fields},
        )
        if result.matched_count == 0:
            logger.warning(f"Version conflict writing store {store_id} at version {current.version}")
            raise ConflictError(
                f"Store {store_id} was modified by someone else",
                {"expected_version": current.version},
            )

        if record.plan != current.plan:
            action = AuditAction.STORE_PLAN_CHANGED
        elif record.plan_override_enabled != current.plan_override_enabled:
            action = AuditAction.STORE_OVERRIDE_CHANGED
        else:
            action = AuditAction.STORE_UPDATED

        logger.info(f"Store {store_id} updated ({action.value}): plan={record.plan} override={record.plan_override_enabled}")
        await create_audit_log(
            action=action,
            actor_id=(actor or {}).get("sub"),
            actor_role=(actor or {}).get("role"),
            store_id=store_id,
            resource_type="store",
            resource_id=store_id,
            before_state=current.to_document(),
            after_state=record.to_document(),
        )

        return {"store": record, "entitlement": entitlement}


# Singleton instance
store_entitlement_service = StoreEntitlementService()
