"""
Entitlement resolver tests.
Covers limit resolution in both override modes, dangling plan references,
plan-change sync, catalog snapshot immutability and the dashboard limit helpers.
"""
import pytest

from models import (
    BundleSettings,
    FeatureKey,
    Plan,
    PlanLimits,
    StoreEntitlementRecord,
)
from services.entitlement_errors import PlanNotFoundError
from services.entitlement_resolver import (
    PlanCatalog,
    build_plan_snapshot,
    can_create_bundle,
    is_feature_enabled,
    is_view_limit_approaching,
    is_view_limit_reached,
    limits_mirror_plan,
    resolve,
    resolve_features,
    sync_on_plan_change,
)
from services.feature_catalog import FEATURE_CATALOG
from services.plan_registry import build_template_plans


@pytest.fixture
def scenario_catalog():
    """basic 5/1000 with analytics only, pro 50/unlimited with timer + sticky button."""
    return PlanCatalog.from_plans([
        Plan(
            key="basic",
            label="Basic",
            limits=PlanLimits(maxBundles=5, monthlyViews=1000),
            features={FeatureKey.BUNDLE_ANALYTICS: True},
        ),
        Plan(
            key="pro",
            label="Pro",
            limits=PlanLimits(maxBundles=50, monthlyViews=None),
            features={FeatureKey.TIMER: True, FeatureKey.STICKY_BUTTON: True},
        ),
    ])


@pytest.fixture
def basic_store():
    return StoreEntitlementRecord(
        store_id="store-1",
        plan="basic",
        plan_override_enabled=False,
        bundle_settings=BundleSettings(max_bundles_per_store=5, max_monthly_views=1000),
    )


class TestResolveOverrideOff:

    def test_limits_equal_plan_limits(self, scenario_catalog, basic_store):
        entitlement = resolve(basic_store, scenario_catalog)
        assert entitlement.limits == scenario_catalog.require("basic").limits
        assert entitlement.limits.model_dump() == {"maxBundles": 5, "monthlyViews": 1000}

    def test_limits_are_a_copy_not_the_plan_object(self, scenario_catalog, basic_store):
        entitlement = resolve(basic_store, scenario_catalog)
        assert entitlement.limits is not scenario_catalog.require("basic").limits

    def test_plan_limits_win_over_stale_bundle_settings(self, scenario_catalog):
        store = StoreEntitlementRecord(
            store_id="stale",
            plan="basic",
            bundle_settings=BundleSettings(max_bundles_per_store=99, max_monthly_views=99),
        )
        entitlement = resolve(store, scenario_catalog)
        assert entitlement.limits.maxBundles == 5
        assert entitlement.limits.monthlyViews == 1000

    def test_unlimited_stays_none(self, scenario_catalog):
        store = StoreEntitlementRecord(store_id="s", plan="pro")
        entitlement = resolve(store, scenario_catalog)
        assert entitlement.limits.monthlyViews is None

    def test_features_default_to_false_over_full_catalog(self, scenario_catalog, basic_store):
        entitlement = resolve(basic_store, scenario_catalog)
        assert set(entitlement.features) == set(FEATURE_CATALOG)
        assert entitlement.features[FeatureKey.BUNDLE_ANALYTICS] is True
        assert entitlement.features[FeatureKey.TIMER] is False

    def test_resolution_is_deterministic(self, scenario_catalog, basic_store):
        assert resolve(basic_store, scenario_catalog) == resolve(basic_store, scenario_catalog)


class TestResolveOverrideOn:

    def test_limits_come_from_bundle_settings(self, scenario_catalog):
        store = StoreEntitlementRecord(
            store_id="s",
            plan="basic",
            plan_override_enabled=True,
            bundle_settings=BundleSettings(max_bundles_per_store=7, max_monthly_views=200),
        )
        entitlement = resolve(store, scenario_catalog)
        assert entitlement.limits.model_dump() == {"maxBundles": 7, "monthlyViews": 200}
        assert entitlement.override_active is True

    def test_override_none_means_unlimited(self, scenario_catalog):
        store = StoreEntitlementRecord(
            store_id="s",
            plan="basic",
            plan_override_enabled=True,
            bundle_settings=BundleSettings(max_bundles_per_store=None, max_monthly_views=None),
        )
        entitlement = resolve(store, scenario_catalog)
        assert entitlement.limits.maxBundles is None
        assert entitlement.limits.monthlyViews is None

    def test_override_does_not_change_feature_flags(self, scenario_catalog):
        """Documented boundary: override covers numeric limits and analytics only."""
        store = StoreEntitlementRecord(
            store_id="s",
            plan="basic",
            plan_override_enabled=True,
            bundle_settings=BundleSettings(max_bundles_per_store=100, max_monthly_views=None),
        )
        entitlement = resolve(store, scenario_catalog)
        assert entitlement.features == resolve_features(scenario_catalog.require("basic"))
        assert entitlement.features[FeatureKey.TIMER] is False

    @pytest.mark.parametrize("override", [False, True])
    def test_analytics_enabled_always_from_bundle_settings(self, scenario_catalog, override):
        store = StoreEntitlementRecord(
            store_id="s",
            plan="basic",
            plan_override_enabled=override,
            bundle_settings=BundleSettings(analytics_enabled=False),
        )
        assert resolve(store, scenario_catalog).analytics_enabled is False


class TestDanglingPlan:

    def test_missing_plan_raises(self, scenario_catalog):
        store = StoreEntitlementRecord(store_id="s", plan="gold")
        with pytest.raises(PlanNotFoundError) as exc:
            resolve(store, scenario_catalog)
        assert exc.value.plan_key == "gold"
        assert exc.value.status_code == 404

    def test_missing_plan_raises_even_with_override(self, scenario_catalog):
        store = StoreEntitlementRecord(store_id="s", plan="gold", plan_override_enabled=True)
        with pytest.raises(PlanNotFoundError):
            resolve(store, scenario_catalog)


class TestSyncOnPlanChange:

    def test_override_off_mirrors_new_plan_limits(self, scenario_catalog, basic_store):
        updated = sync_on_plan_change(basic_store, "pro", scenario_catalog)
        assert updated.plan == "pro"
        assert updated.bundle_settings.max_bundles_per_store == 50
        assert updated.bundle_settings.max_monthly_views is None
        assert limits_mirror_plan(updated, scenario_catalog.require("pro"))

    def test_keeps_analytics_toggle(self, scenario_catalog):
        store = StoreEntitlementRecord(
            store_id="s",
            plan="basic",
            bundle_settings=BundleSettings(max_bundles_per_store=5, max_monthly_views=1000, analytics_enabled=False),
        )
        updated = sync_on_plan_change(store, "pro", scenario_catalog)
        assert updated.bundle_settings.analytics_enabled is False

    def test_override_on_leaves_bundle_settings_untouched(self, scenario_catalog):
        settings = BundleSettings(max_bundles_per_store=7, max_monthly_views=200, analytics_enabled=True)
        store = StoreEntitlementRecord(
            store_id="s",
            plan="basic",
            plan_override_enabled=True,
            bundle_settings=settings,
        )
        updated = sync_on_plan_change(store, "pro", scenario_catalog)
        assert updated.plan == "pro"
        assert updated.bundle_settings == settings

    def test_input_record_not_mutated(self, scenario_catalog, basic_store):
        sync_on_plan_change(basic_store, "pro", scenario_catalog)
        assert basic_store.plan == "basic"
        assert basic_store.bundle_settings.max_bundles_per_store == 5

    def test_unknown_plan_raises(self, scenario_catalog, basic_store):
        with pytest.raises(PlanNotFoundError):
            sync_on_plan_change(basic_store, "gold", scenario_catalog)


class TestScenarios:

    def test_basic_then_upgrade_to_pro(self, scenario_catalog, basic_store):
        assert resolve(basic_store, scenario_catalog).limits.model_dump() == {
            "maxBundles": 5,
            "monthlyViews": 1000,
        }
        upgraded = sync_on_plan_change(basic_store, "pro", scenario_catalog)
        assert resolve(upgraded, scenario_catalog).limits.model_dump() == {
            "maxBundles": 50,
            "monthlyViews": None,
        }

    def test_override_beats_plan_limits(self, scenario_catalog, basic_store):
        overridden = basic_store.model_copy(update={
            "plan_override_enabled": True,
            "bundle_settings": BundleSettings(max_bundles_per_store=7, max_monthly_views=200),
        })
        assert resolve(overridden, scenario_catalog).limits.model_dump() == {
            "maxBundles": 7,
            "monthlyViews": 200,
        }
        assert scenario_catalog.require("basic").limits.maxBundles == 5


class TestPlanCatalogSnapshot:

    def test_snapshot_is_isolated_from_source_plans(self):
        plan = Plan(key="basic", label="Basic", limits=PlanLimits(maxBundles=1, monthlyViews=10))
        catalog = PlanCatalog.from_plans([plan])
        plan.limits.maxBundles = 999
        assert catalog.require("basic").limits.maxBundles == 1

    def test_snapshot_mapping_is_read_only(self):
        catalog = PlanCatalog.from_plans(build_template_plans())
        with pytest.raises(TypeError):
            catalog.plans["new"] = Plan(key="new", label="New")

    def test_template_catalog_contents(self):
        catalog = PlanCatalog.from_plans(build_template_plans())
        assert sorted(catalog.keys()) == ["basic", "enterprise", "pro", "special"]
        assert "pro" in catalog
        assert len(catalog) == 4
        assert catalog.get("gold") is None


class TestLimitHelpers:

    @pytest.fixture
    def entitlement(self, scenario_catalog, basic_store):
        return resolve(basic_store, scenario_catalog)

    @pytest.fixture
    def unlimited(self, scenario_catalog):
        store = StoreEntitlementRecord(
            store_id="s",
            plan="pro",
            plan_override_enabled=True,
            bundle_settings=BundleSettings(max_bundles_per_store=None, max_monthly_views=None),
        )
        return resolve(store, scenario_catalog)

    def test_can_create_bundle(self, entitlement, unlimited):
        assert can_create_bundle(entitlement, 4) is True
        assert can_create_bundle(entitlement, 5) is False
        assert can_create_bundle(unlimited, 10_000) is True

    def test_view_limit_approaching_at_80_percent(self, entitlement):
        assert is_view_limit_approaching(entitlement, 799) is False
        assert is_view_limit_approaching(entitlement, 800) is True

    def test_view_limit_reached(self, entitlement):
        assert is_view_limit_reached(entitlement, 999) is False
        assert is_view_limit_reached(entitlement, 1000) is True

    def test_unlimited_views_never_reached(self, unlimited):
        assert is_view_limit_approaching(unlimited, 10**9) is False
        assert is_view_limit_reached(unlimited, 10**9) is False

    def test_is_feature_enabled(self, entitlement):
        assert is_feature_enabled(entitlement, "bundleAnalytics") is True
        assert is_feature_enabled(entitlement, "timer") is False
        assert is_feature_enabled(entitlement, "notAFeature") is False

    def test_plan_snapshot_shape(self, entitlement):
        snapshot = build_plan_snapshot(entitlement)
        assert snapshot["plan"] == "basic"
        assert snapshot["label"] == "Basic"
        assert snapshot["limits"] == {"maxBundles": 5, "monthlyViews": 1000}
        assert snapshot["features"]["bundleAnalytics"] is True
        assert len(snapshot["features"]) == len(FEATURE_CATALOG)
