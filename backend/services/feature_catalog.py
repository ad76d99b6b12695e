"""Feature Catalog - canonical list of togglable plan features.

Used to render the admin plan editor and to sanitize plan feature maps
before they reach the catalog. Absent keys mean "not entitled"; the
validator never writes explicit False values for them.
"""
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional
from models import FeatureKey
from services.entitlement_errors import ValidationError
from services.plan_registry import BASE_PLAN_FEATURES
import logging

logger = logging.getLogger(__name__)

FEATURE_CATALOG: tuple = tuple(FeatureKey)

# Dashboard grouping for the plan editor
FEATURE_CATEGORIES = {
    FeatureKey.ADVANCED_BUNDLE_STYLING: "styling",
    FeatureKey.STICKY_BUTTON: "styling",
    FeatureKey.TIMER: "styling",
    FeatureKey.FREE_SHIPPING: "styling",
    FeatureKey.COUPON_CONTROLS: "styling",
    FeatureKey.CUSTOM_HIDE_SELECTORS: "styling",
    FeatureKey.REVIEWS_WIDGET: "styling",
    FeatureKey.ANNOUNCEMENT: "styling",
    FeatureKey.SOLD_OUT_TIERS: "styling",
    FeatureKey.MODAL_STYLING: "styling",
    FeatureKey.BUNDLE_ANALYTICS: "analytics",
    FeatureKey.DASHBOARD_ANALYTICS: "analytics",
    FeatureKey.ANALYTICS_PAGE: "analytics",
    FeatureKey.CONVERSION_INSIGHTS: "analytics",
    FeatureKey.BUNDLE_PERFORMANCE: "analytics",
    FeatureKey.OFFER_ANALYTICS: "analytics",
    FeatureKey.PRODUCT_REVIEWS_SECTION: "analytics",
}


def format_feature_label(key: str) -> str:
    """camelCase key to a readable label: 'bundleAnalytics' -> 'Bundle Analytics'."""
    spaced = re.sub(r"([A-Z])", r" \1", key).strip()
    return spaced[:1].upper() + spaced[1:]


def get_available_features() -> Dict[str, List[Dict[str, Any]]]:
    """Feature list for the plan editor."""
    return {
        "features": [
            {
                "key": feature.value,
                "label": format_feature_label(feature.value),
                "category": FEATURE_CATEGORIES.get(feature, "other"),
                "default": BASE_PLAN_FEATURES[feature.value],
            }
            for feature in FEATURE_CATALOG
        ]
    }


def validate_feature_map(
    feature_map: Optional[Mapping[str, Any]],
    catalog: Iterable[FeatureKey] = FEATURE_CATALOG,
) -> Dict[FeatureKey, bool]:
    """
    Sanitize a feature map against the catalog.

    Unknown keys are dropped (logged, not raised) so stale or mistyped keys
    cannot accumulate in stored plans. Missing keys are not injected.
    Values must be booleans.
    """
    if not feature_map:
        return {}
    if not isinstance(feature_map, Mapping):
        raise ValidationError("features must be an object of feature key -> boolean")

    allowed = {FeatureKey(f).value: FeatureKey(f) for f in catalog}
    sanitized: Dict[FeatureKey, bool] = {}
    dropped = []

    for raw_key, value in feature_map.items():
        key = raw_key.value if isinstance(raw_key, FeatureKey) else str(raw_key)
        feature = allowed.get(key)
        if feature is None:
            dropped.append(key)
            continue
        if not isinstance(value, bool):
            raise ValidationError(
                f"Feature {key} must be true or false",
                {"feature": key, "value": repr(value)},
            )
        sanitized[feature] = value

    if dropped:
        logger.warning("Dropped unknown feature keys from plan feature map: %s", sorted(dropped))

    return sanitized
