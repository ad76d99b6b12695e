"""Plan Registry - factory baselines for the plan catalog.

The plan catalog itself lives in MongoDB (plan_configs) and is edited by
administrators. This module holds the hard-coded factory templates used to:
- Seed an empty catalog on startup
- Reset a plan back to its factory limits, features and pricing

RULES:
1. "basic" is the default tier: every new store starts on it and it can never be deleted
2. Templates are never mutated; callers always get deep copies
3. A template features map lists every catalog key explicitly (no implicit defaults)
"""
import copy
from typing import Dict, List, Optional, Any
from models import FeatureKey, Plan
import logging

logger = logging.getLogger(__name__)

BASIC_PLAN_KEY = "basic"
DEFAULT_CURRENCY = "SAR"


# ============================================================================
# BASE FEATURES - everything on; tiers switch features off from here
# ============================================================================
BASE_PLAN_FEATURES: Dict[str, bool] = {feature.value: True for feature in FeatureKey}


# ============================================================================
# PLAN TEMPLATES - factory baseline per plan key
# ============================================================================
PLAN_TEMPLATES: Dict[str, Dict[str, Any]] = {
    "basic": {
        "key": "basic",
        "label": "Basic",
        "description": "Starter tier for new stores",
        "price": 0,
        "originalPrice": None,
        "currency": DEFAULT_CURRENCY,
        "limits": {
            "maxBundles": 1,
            "monthlyViews": 10000,
        },
        "features": {key: False for key in BASE_PLAN_FEATURES},
    },
    "pro": {
        "key": "pro",
        "label": "Pro",
        "description": "All bundle features for growing stores",
        "price": 49,
        "originalPrice": None,
        "currency": DEFAULT_CURRENCY,
        "limits": {
            "maxBundles": 10,
            "monthlyViews": 100000,
        },
        "features": dict(BASE_PLAN_FEATURES),
    },
    "enterprise": {
        "key": "enterprise",
        "label": "Enterprise",
        "description": "High-volume stores with unlimited views",
        "price": 149,
        "originalPrice": None,
        "currency": DEFAULT_CURRENCY,
        "limits": {
            "maxBundles": 50,
            "monthlyViews": None,  # unlimited
        },
        "features": dict(BASE_PLAN_FEATURES),
    },
    "special": {
        "key": "special",
        "label": "Special",
        "description": "Hand-assigned tier for partner stores",
        "price": 0,
        "originalPrice": None,
        "currency": DEFAULT_CURRENCY,
        "limits": {
            "maxBundles": 100,
            "monthlyViews": None,  # unlimited
        },
        "features": dict(BASE_PLAN_FEATURES),
    },
}

# Fields restored by a factory reset. ui/description/isActive are left alone.
RESETTABLE_FIELDS = ("label", "limits", "features", "price", "originalPrice", "currency")


def has_template(plan_key: str) -> bool:
    return plan_key in PLAN_TEMPLATES


def get_plan_template(plan_key: str) -> Optional[Dict[str, Any]]:
    """Deep copy of the factory template for a key, or None."""
    template = PLAN_TEMPLATES.get(plan_key)
    if template is None:
        return None
    return copy.deepcopy(template)


def get_reset_values(plan_key: str) -> Optional[Dict[str, Any]]:
    """Subset of the template that a reset writes back onto the stored plan."""
    template = get_plan_template(plan_key)
    if template is None:
        return None
    return {field: template[field] for field in RESETTABLE_FIELDS}


def build_template_plans() -> List[Plan]:
    """All factory plans as models, ordered by key."""
    return [Plan.model_validate(get_plan_template(key)) for key in sorted(PLAN_TEMPLATES)]
