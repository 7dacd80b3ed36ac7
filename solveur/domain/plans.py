from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, get_args


PlanName = Literal["FREE", "STARTER", "PROFESSIONAL", "ENTERPRISE"]
TenantStatus = Literal["ACTIVE", "SUSPENDED", "CANCELLED"]
MetricType = Literal["API_CALLS", "CONVERSATIONS", "DOCUMENTS", "STORAGE"]

PLAN_NAMES: tuple[str, ...] = get_args(PlanName)
TENANT_STATUSES: tuple[str, ...] = get_args(TenantStatus)
METRIC_TYPES: tuple[str, ...] = get_args(MetricType)

DEFAULT_PLAN = "FREE"
TENANT_ACTIVE = "ACTIVE"

METRIC_API_CALLS = "API_CALLS"
METRIC_CONVERSATIONS = "CONVERSATIONS"
METRIC_DOCUMENTS = "DOCUMENTS"
METRIC_STORAGE = "STORAGE"

# Sentinel used by the plan table for "no limit".
UNLIMITED = -1

_MIB = 1024 * 1024


@dataclass(frozen=True)
class PlanLimits:
    users: int
    conversations: int
    documents: int
    api_calls: int
    storage: int

    def for_metric(self, metric: str) -> int:
        # Map usage metrics onto the plan columns; unknown metrics get no allowance.
        column = _METRIC_COLUMNS.get(metric)
        if column is None:
            return 0
        return int(getattr(self, column))


_METRIC_COLUMNS: dict[str, str] = {
    METRIC_API_CALLS: "api_calls",
    METRIC_CONVERSATIONS: "conversations",
    METRIC_DOCUMENTS: "documents",
    METRIC_STORAGE: "storage",
}

PLAN_LIMITS: dict[str, PlanLimits] = {
    "FREE": PlanLimits(users=1, conversations=100, documents=10, api_calls=1000, storage=100 * _MIB),
    "STARTER": PlanLimits(users=5, conversations=1000, documents=100, api_calls=10000, storage=1024 * _MIB),
    "PROFESSIONAL": PlanLimits(
        users=25, conversations=10000, documents=1000, api_calls=100000, storage=10 * 1024 * _MIB
    ),
    "ENTERPRISE": PlanLimits(
        users=UNLIMITED,
        conversations=UNLIMITED,
        documents=UNLIMITED,
        api_calls=UNLIMITED,
        storage=UNLIMITED,
    ),
}


def get_plan_limits(plan: str | None) -> PlanLimits:
    # Unknown or missing plans fall back to the most restrictive tier, never fail open.
    normalized = (plan or "").strip().upper()
    return PLAN_LIMITS.get(normalized, PLAN_LIMITS[DEFAULT_PLAN])
