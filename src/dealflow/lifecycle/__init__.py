"""Deal lifecycle governance -- transitions, flow intelligence and priority worklists.

Provides the StatusTransitionGuard (role-scoped transition checks over an
immutable TransitionPolicy), the FlowClassifier (on_track / needs_attention
health of a deal), and the PriorityRanker (bounded, ordered worklist per
role), together with the Pydantic schemas they share.

All components are pure and synchronous: they read caller-supplied deal
snapshots, take the evaluation instant from an injected clock, and never
persist or mutate anything.
"""

from __future__ import annotations

from src.dealflow.lifecycle.clock import Clock, fixed_clock, utc_now
from src.dealflow.lifecycle.flow import (
    DEFAULT_FLOW_THRESHOLDS,
    FlowClassifier,
    FlowThreshold,
    days_in_status,
)
from src.dealflow.lifecycle.priority import PriorityRanker, deal_value, summarize
from src.dealflow.lifecycle.schemas import (
    ActionType,
    DealPriority,
    DealRecord,
    DealStatus,
    FlowClassification,
    FlowStatus,
    FlowUrgency,
    PriorityItem,
    PriorityStats,
    StatusChange,
    TransitionDecision,
    UrgencyLevel,
    UserRole,
)
from src.dealflow.lifecycle.status_info import (
    STATUS_INFO,
    sort_deals_by_status,
    status_label,
)
from src.dealflow.lifecycle.transitions import (
    DEFAULT_ROLE_PERMISSIONS,
    DEFAULT_STATUS_TRANSITIONS,
    InvalidStatusTransitionError,
    StatusTransitionGuard,
    TransitionConfigError,
    TransitionPolicy,
    get_default_policy,
)

__all__ = [
    "DEFAULT_FLOW_THRESHOLDS",
    "DEFAULT_ROLE_PERMISSIONS",
    "DEFAULT_STATUS_TRANSITIONS",
    "STATUS_INFO",
    "ActionType",
    "Clock",
    "DealPriority",
    "DealRecord",
    "DealStatus",
    "FlowClassification",
    "FlowClassifier",
    "FlowStatus",
    "FlowThreshold",
    "FlowUrgency",
    "InvalidStatusTransitionError",
    "PriorityItem",
    "PriorityRanker",
    "PriorityStats",
    "StatusChange",
    "StatusTransitionGuard",
    "TransitionConfigError",
    "TransitionDecision",
    "TransitionPolicy",
    "UrgencyLevel",
    "UserRole",
    "days_in_status",
    "deal_value",
    "fixed_clock",
    "get_default_policy",
    "sort_deals_by_status",
    "status_label",
    "summarize",
    "utc_now",
]
