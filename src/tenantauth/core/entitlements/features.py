"""Feature registry and plan definitions."""

import uuid
from decimal import Decimal
from enum import Enum

from tenantauth.core.auth.types import Plan, PlanFeature, PlanType


class Feature(str, Enum):
    """Features that can be gated by plan.

    Values are the feature names stored on plan feature rows.
    """

    MANAGE_LEADS = "Manage Leads and Customer Data"
    MANAGE_TEAM_MEMBERS = "Add and Manage Team Members"
    QUICK_REPLY_TEMPLATES = "Create Quick Reply Message Templates"
    CUSTOM_TAGS = "Organize Leads Using Custom Tags"
    SALES_PIPELINE = "Track Sales Pipeline and Progress"
    SUPPORT_TICKETS = "Manage and Track Support Tickets"
    INSIGHTS_DASHBOARD = "Access Business Insights Dashboard"
    EXPORT_REPORTS = "Export Business Reports and Data"
    BULK_IMPORT = "Bulk Import Leads from CSV File"
    TASK_REMINDERS = "Set and Manage Task Reminders"
    BUSINESS_EVENTS = "Schedule and Manage Business Events"
    GOOGLE_DRIVE_SYNC = "Sync Files with Google Drive"
    MANAGE_DEPARTMENTS = "Create and Manage Departments Easily"
    BUSINESS_IMAGES = "Save and Store Business Images"

    # Premium only
    MULTI_DEVICE_SYNC = "Sync Conversations Across Multiple Devices"
    FACEBOOK_LEADS = "Integrate and Manage Facebook Lead"
    GOOGLE_CALENDAR_SYNC = "Sync Events with Google Calendar"


STANDARD_FEATURES: frozenset[Feature] = frozenset(
    f
    for f in Feature
    if f
    not in (Feature.MULTI_DEVICE_SYNC, Feature.FACEBOOK_LEADS, Feature.GOOGLE_CALENDAR_SYNC)
)

PREMIUM_FEATURES: frozenset[Feature] = frozenset(Feature)


_PLAN_NAMESPACE = uuid.UUID("6b1f3f3e-2f4e-4d8a-9a51-3f1f6c1d2b7a")


def default_plans() -> list[Plan]:
    """Standard and Premium plans as seeded for a fresh installation."""
    catalogue = [
        (
            "Standard",
            "Basic features for small teams",
            PlanType.STANDARD,
            Decimal("599"),
            Decimal("479"),
            STANDARD_FEATURES,
        ),
        (
            "Premium",
            "Advanced features for growing teams",
            PlanType.PREMIUM,
            Decimal("799"),
            Decimal("639"),
            PREMIUM_FEATURES,
        ),
    ]
    return [
        Plan(
            id=uuid.uuid5(_PLAN_NAMESPACE, name),
            name=name,
            description=description,
            plan_type=plan_type,
            monthly_price=monthly,
            yearly_price=yearly,
            features=[
                PlanFeature(feature_name=feature.value, is_enabled=feature in enabled)
                for feature in Feature
            ],
        )
        for name, description, plan_type, monthly, yearly, enabled in catalogue
    ]
