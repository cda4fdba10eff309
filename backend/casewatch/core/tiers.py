"""Tier thresholds, features and built-in permission defaults.

Tiers are derived from the ETH balance of a user's wallet. Everything here is
pure data and arithmetic; the database-backed lookups live in
``casewatch.services.tiers``.
"""

from collections.abc import Iterable
from typing import Any

from casewatch.models.tier import PermissionType
from casewatch.models.user import Tier

TIER_ORDER: dict[Tier, int] = {
    Tier.tier_1: 1,
    Tier.tier_2: 2,
    Tier.tier_3: 3,
    Tier.tier_4: 4,
}

TIER_ETH_REQUIRED: dict[Tier, float] = {
    Tier.tier_1: 0,
    Tier.tier_2: 1,
    Tier.tier_3: 5,
    Tier.tier_4: 10,
}

TIER_FEATURES: dict[Tier, list[str]] = {
    Tier.tier_1: ["Basic case submission", "AI classification"],
    Tier.tier_2: ["Case escalation", "Email notifications", "Document hashing"],
    Tier.tier_3: ["Blockchain registration", "SMS notifications", "Advanced features"],
    Tier.tier_4: ["Full access", "Admin features", "Priority support"],
}

FEATURE_MIN_TIER: dict[str, Tier] = {
    "case_submission": Tier.tier_1,
    "case_escalation": Tier.tier_2,
    "document_hashing": Tier.tier_2,
    "blockchain_registration": Tier.tier_3,
    "sms_notifications": Tier.tier_3,
    "bulk_operations": Tier.tier_4,
    "admin_features": Tier.tier_4,
}

ALL_FORMS = "all"


def tier_rank(tier: Tier | str) -> int:
    return TIER_ORDER[Tier(tier)]


def tier_from_balance(balance: float) -> Tier:
    if balance >= TIER_ETH_REQUIRED[Tier.tier_4]:
        return Tier.tier_4
    if balance >= TIER_ETH_REQUIRED[Tier.tier_3]:
        return Tier.tier_3
    if balance >= TIER_ETH_REQUIRED[Tier.tier_2]:
        return Tier.tier_2
    return Tier.tier_1


def tiers_at_or_above(minimum: Tier) -> list[Tier]:
    return [tier for tier in TIER_ORDER if tier_rank(tier) >= tier_rank(minimum)]


def lowest_tier(tiers: Iterable[Tier | str]) -> Tier:
    return min((Tier(tier) for tier in tiers), key=tier_rank)


def tiers_for_feature(feature: str) -> list[Tier]:
    """Tiers granted ``feature``; unknown features are reserved for Tier 4."""
    return tiers_at_or_above(FEATURE_MIN_TIER.get(feature, Tier.tier_4))


def upgrade_info(current: Tier | str, required: Tier | str) -> dict[str, Any]:
    current_tier, required_tier = Tier(current), Tier(required)
    current_eth = TIER_ETH_REQUIRED[current_tier]
    required_eth = TIER_ETH_REQUIRED[required_tier]
    deficit = max(0, required_eth - current_eth)
    return {
        "current_eth_required": current_eth,
        "required_eth_required": required_eth,
        "eth_deficit": deficit,
        "new_features": TIER_FEATURES[required_tier],
        "upgrade_instructions": f"Add {deficit:g} ETH to your wallet to upgrade to {required_tier.value}",
    }


def tier_overview() -> dict[str, dict[str, Any]]:
    return {
        tier.value: {"eth_required": TIER_ETH_REQUIRED[tier], "features": TIER_FEATURES[tier]}
        for tier in TIER_ORDER
    }


# (permission_name, permission_type, description, {tier: value})
_PERMISSION_TABLE: list[tuple[str, PermissionType, str, dict[Tier, dict[str, Any]]]] = [
    (
        "max_cases_per_month",
        PermissionType.api_limit,
        "Maximum cases that can be submitted per month",
        {
            Tier.tier_1: {"limit": 5},
            Tier.tier_2: {"limit": 25},
            Tier.tier_3: {"limit": 100},
            Tier.tier_4: {"limit": -1},
        },
    ),
    (
        "max_documents_per_case",
        PermissionType.api_limit,
        "Maximum documents per case",
        {
            Tier.tier_1: {"limit": 3},
            Tier.tier_2: {"limit": 10},
            Tier.tier_3: {"limit": 25},
            Tier.tier_4: {"limit": -1},
        },
    ),
    (
        "storage_limit_mb",
        PermissionType.storage_limit,
        "Storage limit in MB",
        {
            Tier.tier_1: {"limit": 100},
            Tier.tier_2: {"limit": 500},
            Tier.tier_3: {"limit": 2000},
            Tier.tier_4: {"limit": -1},
        },
    ),
    (
        "ai_classifications_per_month",
        PermissionType.api_limit,
        "AI classification requests per month",
        {
            Tier.tier_1: {"limit": 50},
            Tier.tier_2: {"limit": 200},
            Tier.tier_3: {"limit": 1000},
            Tier.tier_4: {"limit": -1},
        },
    ),
    (
        "support_level",
        PermissionType.priority_support,
        "Support channel",
        {
            Tier.tier_1: {"level": "community"},
            Tier.tier_2: {"level": "email"},
            Tier.tier_3: {"level": "priority"},
            Tier.tier_4: {"level": "dedicated"},
        },
    ),
    (
        "form_generation",
        PermissionType.feature_access,
        "Court form generation",
        {
            Tier.tier_1: {"enabled": True, "forms": ["N240"]},
            Tier.tier_2: {"enabled": True, "forms": ["N240", "N1", "ET1"]},
            Tier.tier_3: {"enabled": True, "forms": ["N240", "N1", "ET1", "N244"]},
            Tier.tier_4: {"enabled": True, "forms": [ALL_FORMS], "custom_forms": True},
        },
    ),
    (
        "blockchain_verification",
        PermissionType.feature_access,
        "Document blockchain verification",
        {
            Tier.tier_2: {"enabled": True},
            Tier.tier_3: {"enabled": True},
            Tier.tier_4: {"enabled": True, "priority_queue": True},
        },
    ),
    (
        "case_escalation",
        PermissionType.feature_access,
        "Case escalation",
        {
            Tier.tier_3: {"enabled": True, "auto_escalation": True},
            Tier.tier_4: {"enabled": True, "auto_escalation": True, "priority_handling": True},
        },
    ),
    (
        "api_access",
        PermissionType.feature_access,
        "API access",
        {
            Tier.tier_3: {"enabled": True, "rate_limit": 1000},
            Tier.tier_4: {"enabled": True, "rate_limit": -1, "webhooks": True},
        },
    ),
    (
        "analytics_dashboard",
        PermissionType.feature_access,
        "Advanced analytics and reporting",
        {Tier.tier_4: {"enabled": True, "advanced_reporting": True}},
    ),
    (
        "white_label",
        PermissionType.feature_access,
        "White label solution access",
        {Tier.tier_4: {"enabled": True}},
    ),
]


def default_permission_rows() -> list[dict[str, Any]]:
    """Seed rows for ``tier_permissions``."""
    rows = []
    for name, permission_type, description, values in _PERMISSION_TABLE:
        for tier, value in values.items():
            rows.append(
                {
                    "tier": tier,
                    "permission_name": name,
                    "permission_type": permission_type,
                    "permission_value": value,
                    "description": description,
                }
            )
    return rows


def default_permission(tier: Tier | str, name: str) -> dict[str, Any] | None:
    for permission_name, _type, _description, values in _PERMISSION_TABLE:
        if permission_name == name:
            return values.get(Tier(tier))
    return None
