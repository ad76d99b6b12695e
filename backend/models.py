from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Dict, Any, List
from datetime import datetime, timezone
from enum import Enum
import uuid

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class FeatureKey(str, Enum):
    """Canonical feature keys. Plan feature maps may only use these."""
    # Bundle styling
    ADVANCED_BUNDLE_STYLING = "advancedBundleStyling"
    STICKY_BUTTON = "stickyButton"
    TIMER = "timer"
    FREE_SHIPPING = "freeShipping"
    COUPON_CONTROLS = "couponControls"
    CUSTOM_HIDE_SELECTORS = "customHideSelectors"
    REVIEWS_WIDGET = "reviewsWidget"
    ANNOUNCEMENT = "announcement"
    SOLD_OUT_TIERS = "soldOutTiers"
    MODAL_STYLING = "modalStyling"
    # Analytics
    BUNDLE_ANALYTICS = "bundleAnalytics"
    DASHBOARD_ANALYTICS = "dashboardAnalytics"
    ANALYTICS_PAGE = "analyticsPage"
    CONVERSION_INSIGHTS = "conversionInsights"
    BUNDLE_PERFORMANCE = "bundlePerformance"
    OFFER_ANALYTICS = "offerAnalytics"
    PRODUCT_REVIEWS_SECTION = "productReviewsSection"

class StoreStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    UNINSTALLED = "uninstalled"
    NEEDS_REAUTH = "needs_reauth"

class ReviewCountMode(str, Enum):
    CUSTOM = "custom"  # Fake counter incremented daily
    REAL = "real"      # Counter comes from the platform reviews API

class UserRole(str, Enum):
    ROLE_ADMIN = "admin"
    ROLE_MODERATOR = "moderator"
    ROLE_MERCHANT = "merchant"

class AuditAction(str, Enum):
    # Plan catalog
    PLAN_CREATED = "PLAN_CREATED"
    PLAN_UPDATED = "PLAN_UPDATED"
    PLAN_DELETED = "PLAN_DELETED"
    PLAN_RESET = "PLAN_RESET"
    PLAN_CATALOG_SEEDED = "PLAN_CATALOG_SEEDED"

    # Store entitlements
    STORE_INSTALLED = "STORE_INSTALLED"
    STORE_PLAN_CHANGED = "STORE_PLAN_CHANGED"
    STORE_OVERRIDE_CHANGED = "STORE_OVERRIDE_CHANGED"
    STORE_UPDATED = "STORE_UPDATED"

# ============================================================================
# PLAN CATALOG MODELS
# ============================================================================

class PlanLimits(BaseModel):
    """Resource limits. None means unlimited."""
    model_config = ConfigDict(extra="ignore")

    maxBundles: Optional[int] = 1
    monthlyViews: Optional[int] = 10000

class PlanUI(BaseModel):
    """Display metadata for the merchant plans page. Not entitlement-relevant."""
    model_config = ConfigDict(extra="ignore")

    displayTitle: str = ""
    displayDescription: str = ""
    featuresIncluded: List[str] = Field(default_factory=list)
    featuresExcluded: List[str] = Field(default_factory=list)
    displayPrice: str = ""
    originalPrice: str = ""
    discountBadge: str = ""
    upgradeLink: str = ""
    ctaButtonText: str = "ترقية الآن"
    highlight: bool = False
    popularBadge: str = ""
    displayOrder: int = 0

class Plan(BaseModel):
    model_config = ConfigDict(extra="ignore")

    key: str
    label: str
    description: str = ""
    price: float = 0
    originalPrice: Optional[float] = None
    currency: str = "SAR"
    isActive: bool = True
    limits: PlanLimits = Field(default_factory=PlanLimits)
    features: Dict[FeatureKey, bool] = Field(default_factory=dict)
    ui: PlanUI = Field(default_factory=PlanUI)
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_document(self) -> Dict[str, Any]:
        """Mongo document shape: enum keys and datetimes as plain strings."""
        return self.model_dump(mode="json")

# ============================================================================
# STORE ENTITLEMENT MODELS
# ============================================================================

class BundleSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    max_bundles_per_store: Optional[int] = 1
    max_monthly_views: Optional[int] = 10000
    analytics_enabled: bool = True

class StoreEntitlementRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    store_id: str
    plan: str = "basic"
    plan_override_enabled: bool = False
    bundle_settings: BundleSettings = Field(default_factory=BundleSettings)
    bundles_enabled: bool = True
    status: StoreStatus = StoreStatus.ACTIVE
    version: int = 1
    installed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

class EffectiveEntitlement(BaseModel):
    """Resolved entitlement for one store against one catalog snapshot."""
    model_config = ConfigDict(frozen=True)

    store_id: str
    plan: str
    label: str
    limits: PlanLimits
    features: Dict[FeatureKey, bool]
    analytics_enabled: bool
    override_active: bool

# ============================================================================
# REVIEW COUNTER
# ============================================================================

class ReviewCountSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    store_id: str
    enabled: bool = False
    mode: ReviewCountMode = ReviewCountMode.REAL
    initial_count: int = 0
    current_count: int = 0
    daily_increase_min: int = 1
    daily_increase_max: int = 5
    last_update_date: Optional[datetime] = None

# ============================================================================
# AUDIT
# ============================================================================

class AuditLog(BaseModel):
    model_config = ConfigDict(extra="ignore")

    audit_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    action: AuditAction
    actor_role: Optional[str] = None
    actor_id: Optional[str] = None
    store_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    before_state: Optional[Dict[str, Any]] = None
    after_state: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
