"""Plan features and subscription gating."""

from tenantauth.core.entitlements.features import Feature, default_plans
from tenantauth.core.entitlements.subscription import SubscriptionGate, has_feature

__all__ = ["Feature", "default_plans", "SubscriptionGate", "has_feature"]
