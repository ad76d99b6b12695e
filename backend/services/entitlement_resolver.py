"""Entitlement Resolver - effective limits and features for a store.

Pure functions over an explicit catalog snapshot; nothing here touches the
database. Callers load a fresh PlanCatalog per request (see
plan_lifecycle_service.load_catalog) so results never go stale.

Resolution rules:
- Override OFF: limits are a copy of the assigned plan's limits
- Override ON: limits come from store.bundle_settings
- Feature flags always come from the assigned plan, in both modes; the
  override only covers numeric limits and the analytics toggle
- analytics_enabled is always read from store.bundle_settings
- None in any limit means unlimited and is passed through unchanged
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Any
from models import (
    BundleSettings,
    EffectiveEntitlement,
    FeatureKey,
    Plan,
    PlanLimits,
    StoreEntitlementRecord,
)
from services.entitlement_errors import PlanNotFoundError
from services.feature_catalog import FEATURE_CATALOG
import logging

logger = logging.getLogger(__name__)

VIEW_LIMIT_WARNING_RATIO = 0.8


# ============================================================================
# PLAN CATALOG SNAPSHOT
# ============================================================================
@dataclass(frozen=True)
class PlanCatalog:
    """Immutable point-in-time view of the plan catalog, keyed by plan key."""
    plans: Mapping[str, Plan] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_plans(cls, plans: Iterable[Plan]) -> "PlanCatalog":
        # Deep copies so later edits to the source models do not leak in
        return cls(MappingProxyType({p.key: p.model_copy(deep=True) for p in plans}))

    def get(self, plan_key: str) -> Optional[Plan]:
        return self.plans.get(plan_key)

    def require(self, plan_key: str) -> Plan:
        plan = self.plans.get(plan_key)
        if plan is None:
            raise PlanNotFoundError(plan_key)
        return plan

    def keys(self):
        return list(self.plans.keys())

    def __contains__(self, plan_key: str) -> bool:
        return plan_key in self.plans

    def __len__(self) -> int:
        return len(self.plans)


# ============================================================================
# RESOLUTION
# ============================================================================
def resolve_features(
    plan: Plan,
    catalog: Iterable[FeatureKey] = FEATURE_CATALOG,
) -> Dict[FeatureKey, bool]:
    """Plan features over the full catalog; keys the plan does not set are False."""
    return {feature: bool(plan.features.get(feature, False)) for feature in catalog}


def resolve(store: StoreEntitlementRecord, plan_catalog: PlanCatalog) -> EffectiveEntitlement:
    """
    Compute the effective entitlement for a store.

    Raises:
        PlanNotFoundError: store.plan is not in the catalog. A dangling plan
            reference is a data-integrity problem and is never defaulted.
    """
    plan = plan_catalog.get(store.plan)
    if plan is None:
        logger.error(f"Store {store.store_id} references missing plan {store.plan}")
        raise PlanNotFoundError(store.plan)

    if store.plan_override_enabled:
        limits = PlanLimits(
            maxBundles=store.bundle_settings.max_bundles_per_store,
            monthlyViews=store.bundle_settings.max_monthly_views,
        )
    else:
        limits = plan.limits.model_copy()

    return EffectiveEntitlement(
        store_id=store.store_id,
        plan=plan.key,
        label=plan.label,
        limits=limits,
        features=resolve_features(plan),
        analytics_enabled=store.bundle_settings.analytics_enabled,
        override_active=store.plan_override_enabled,
    )


def sync_on_plan_change(
    store: StoreEntitlementRecord,
    new_plan_key: str,
    plan_catalog: PlanCatalog,
) -> StoreEntitlementRecord:
    """
    Assign a new plan and, unless the store is in override mode, copy the
    new plan's limits into bundle_settings.

    Returns a new record; the input is not modified. In override mode only
    the plan key changes: bundle_settings stay exactly as they were, and the
    new plan only affects later syncs once the override is switched off.

    Raises:
        PlanNotFoundError: new_plan_key is not in the catalog.
    """
    new_plan = plan_catalog.require(new_plan_key)

    if store.plan_override_enabled:
        return store.model_copy(update={"plan": new_plan.key}, deep=True)

    bundle_settings = BundleSettings(
        max_bundles_per_store=new_plan.limits.maxBundles,
        max_monthly_views=new_plan.limits.monthlyViews,
        analytics_enabled=store.bundle_settings.analytics_enabled,
    )
    return store.model_copy(
        update={"plan": new_plan.key, "bundle_settings": bundle_settings},
        deep=True,
    )


def limits_mirror_plan(store: StoreEntitlementRecord, plan: Plan) -> bool:
    """True if the store's derived limit fields match the plan's limits."""
    return (
        store.bundle_settings.max_bundles_per_store == plan.limits.maxBundles
        and store.bundle_settings.max_monthly_views == plan.limits.monthlyViews
    )


# ============================================================================
# DASHBOARD HELPERS
# ============================================================================
def is_feature_enabled(entitlement: EffectiveEntitlement, feature_key: str) -> bool:
    try:
        feature = FeatureKey(feature_key)
    except ValueError:
        return False
    return bool(entitlement.features.get(feature, False))


def can_create_bundle(entitlement: EffectiveEntitlement, current_count: int) -> bool:
    max_bundles = entitlement.limits.maxBundles
    if max_bundles is None:
        return True
    return current_count < max_bundles


def is_view_limit_approaching(entitlement: EffectiveEntitlement, current_views: int) -> bool:
    """At or above 80% of the monthly view limit."""
    monthly_views = entitlement.limits.monthlyViews
    if monthly_views is None:
        return False
    return current_views >= monthly_views * VIEW_LIMIT_WARNING_RATIO


def is_view_limit_reached(entitlement: EffectiveEntitlement, current_views: int) -> bool:
    monthly_views = entitlement.limits.monthlyViews
    if monthly_views is None:
        return False
    return current_views >= monthly_views


def build_plan_snapshot(entitlement: EffectiveEntitlement) -> Dict[str, Any]:
    """Plan context consumed by the merchant dashboard."""
    return {
        "plan": entitlement.plan,
        "label": entitlement.label,
        "limits": entitlement.limits.model_dump(),
        "features": {feature.value: enabled for feature, enabled in entitlement.features.items()},
        "analytics_enabled": entitlement.analytics_enabled,
        "override_active": entitlement.override_active,
    }
