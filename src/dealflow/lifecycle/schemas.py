"""Pydantic data models for the deal lifecycle governance domain.

Defines the structured types shared by the transition guard, flow classifier
and priority ranker:
- Enums: DealStatus, UserRole, DealPriority, FlowStatus, FlowUrgency,
  UrgencyLevel, ActionType
- Input record: DealRecord (read-only snapshot handed over by persistence)
- Derived results: TransitionDecision, StatusChange, FlowClassification,
  PriorityItem, PriorityStats

DealRecord is deliberately lenient. Records come from an external store and
may carry legacy statuses, missing timestamps or malformed numbers; those
degrade to safe defaults instead of failing validation so a single bad row
never blanks a worklist.
"""

from __future__ import annotations

import math
from datetime import datetime
from enum import Enum
from typing import Any, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from src.dealflow.lifecycle.clock import utc_now

# ── Enums ───────────────────────────────────────────────────────────────────


class DealStatus(str, Enum):
    """Lifecycle status of a deal (nodes of the transition graph)."""

    DRAFT = "draft"
    SCOPING = "scoping"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    REVISION_REQUESTED = "revision_requested"
    NEGOTIATING = "negotiating"
    APPROVED = "approved"
    CONTRACT_DRAFTING = "contract_drafting"
    CLIENT_REVIEW = "client_review"
    SIGNED = "signed"
    LOST = "lost"


TERMINAL_STATUSES: frozenset[DealStatus] = frozenset(
    {DealStatus.SIGNED, DealStatus.LOST}
)


class UserRole(str, Enum):
    """Actor classes that own transitions and worklists."""

    SELLER = "seller"
    APPROVER = "approver"
    LEGAL = "legal"
    DEPARTMENT_REVIEWER = "department_reviewer"
    ADMIN = "admin"


class DealPriority(str, Enum):
    """Seller-assigned deal priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class FlowStatus(str, Enum):
    """Flow intelligence health of a deal in its current status."""

    ON_TRACK = "on_track"
    NEEDS_ATTENTION = "needs_attention"


class FlowUrgency(str, Enum):
    """Urgency attached to a flow classification."""

    NORMAL = "normal"
    ATTENTION = "attention"
    URGENT = "urgent"


class UrgencyLevel(str, Enum):
    """Urgency bucket of a priority worklist item."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ActionType(str, Enum):
    """Kind of action a priority item asks the user to take."""

    CONVERT = "convert"
    REVIEW = "review"
    APPROVE = "approve"
    LEGAL_REVIEW = "legal_review"
    CONTRACT = "contract"
    NUDGE = "nudge"
    RESUME_DRAFT = "resume_draft"


def coerce_status(value: Any) -> DealStatus | None:
    """Map a status value (enum or raw string) to DealStatus, or None if unknown."""
    if isinstance(value, DealStatus):
        return value
    try:
        return DealStatus(str(value))
    except ValueError:
        return None


def coerce_role(value: Any) -> UserRole | None:
    """Map a role value (enum or raw string) to UserRole, or None if unknown."""
    if isinstance(value, UserRole):
        return value
    try:
        return UserRole(str(value))
    except ValueError:
        return None


def status_value(value: Any) -> str:
    """Plain string form of a status for messages and identifiers."""
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


# ── Deal Record ─────────────────────────────────────────────────────────────

_DATETIME_ADAPTER: TypeAdapter[datetime] = TypeAdapter(datetime)
_FLOAT_ADAPTER: TypeAdapter[float] = TypeAdapter(float)


class DealRecord(BaseModel):
    """Read-only snapshot of a deal as stored by the persistence layer.

    Accepts both snake_case field names and the camelCase keys the store
    emits (``lastStatusChange``, ``revisionCount``, ...). Unknown extra keys
    are ignored.

    Attributes:
        id: Deal identifier.
        status: Current lifecycle status. Unrecognized legacy values are kept
            as plain strings and treated as untracked downstream.
        priority: Seller-assigned priority; unknown values become MEDIUM.
        revision_count: Number of revision rounds (never negative).
        last_status_change: When the deal entered its current status.
        created_at: Creation timestamp, fallback for last_status_change.
        updated_at: Last modification timestamp.
        draft_expires_at: When the saved draft expires, if any.
        annual_revenue: Annual revenue from the tier calculation service.
        growth_ambition: Growth ambition captured at scoping time.
        deal_name: Human-readable deal name.
        advertiser_name: Direct client name.
        agency_name: Agency client name.
        email: Owning seller's email.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    id: Union[int, str]
    status: Union[DealStatus, str] = Field(union_mode="left_to_right")
    priority: DealPriority = DealPriority.MEDIUM
    revision_count: int = 0
    last_status_change: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    draft_expires_at: datetime | None = None
    annual_revenue: float | None = None
    growth_ambition: float | None = None
    deal_name: str = ""
    advertiser_name: str | None = None
    agency_name: str | None = None
    email: str | None = None

    @field_validator(
        "last_status_change",
        "created_at",
        "updated_at",
        "draft_expires_at",
        mode="before",
    )
    @classmethod
    def _lenient_timestamp(cls, value: Any) -> datetime | None:
        """Unparseable or empty timestamps become None."""
        if value is None or value == "":
            return None
        try:
            return _DATETIME_ADAPTER.validate_python(value)
        except ValidationError:
            return None

    @field_validator("annual_revenue", "growth_ambition", mode="before")
    @classmethod
    def _lenient_amount(cls, value: Any) -> float | None:
        """Unparseable or non-finite amounts become None."""
        if value is None or value == "":
            return None
        try:
            amount = _FLOAT_ADAPTER.validate_python(value)
        except ValidationError:
            return None
        return amount if math.isfinite(amount) else None

    @field_validator("revision_count", mode="before")
    @classmethod
    def _lenient_revision_count(cls, value: Any) -> int:
        try:
            count = int(value)
        except (TypeError, ValueError):
            return 0
        return max(0, count)

    @field_validator("priority", mode="before")
    @classmethod
    def _lenient_priority(cls, value: Any) -> DealPriority:
        if isinstance(value, DealPriority):
            return value
        try:
            return DealPriority(str(value).lower())
        except ValueError:
            return DealPriority.MEDIUM

    @field_validator("deal_name", mode="before")
    @classmethod
    def _lenient_name(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @property
    def client_name(self) -> str | None:
        """Advertiser name, falling back to agency name."""
        return self.advertiser_name or self.agency_name or None


# ── Transition Results ──────────────────────────────────────────────────────


class TransitionDecision(BaseModel):
    """Outcome of a transition permission check.

    Denials are ordinary results, not errors. ``reason`` is set whenever
    ``allowed`` is False.
    """

    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: str | None = None


class StatusChange(BaseModel):
    """One planned status-history entry.

    ``previous_status`` is the status the guard approved the change against;
    the persistence layer must apply the change only if the deal is still in
    that status (compare-and-set).
    """

    model_config = ConfigDict(frozen=True)

    deal_id: Union[int, str]
    status: DealStatus
    previous_status: DealStatus
    changed_by: str = Field(min_length=1)
    comments: str | None = None
    changed_at: datetime = Field(default_factory=utc_now)


# ── Flow Intelligence ───────────────────────────────────────────────────────


class FlowClassification(BaseModel):
    """Derived health of a deal in its current status.

    ``action_required`` is auto-computed via model_validator: True exactly
    when ``flow_status`` is NEEDS_ATTENTION.
    """

    flow_status: FlowStatus
    reason: str
    days_in_status: int = Field(ge=0)
    action_required: bool = False
    urgency_level: FlowUrgency = FlowUrgency.NORMAL

    @model_validator(mode="after")
    def _compute_action_required(self) -> FlowClassification:
        self.action_required = self.flow_status == FlowStatus.NEEDS_ATTENTION
        return self


# ── Priority Worklist ───────────────────────────────────────────────────────


class PriorityItem(BaseModel):
    """One ranked, role-specific worklist entry.

    Attributes:
        id: Item identifier (``deal-<id>`` or ``draft-<id>``).
        deal: The deal record this item refers to.
        title: Short headline, action label plus deal or client name.
        description: One-line context for the item.
        urgency_level: HIGH, MEDIUM or LOW.
        action_label: Button label shown to the user.
        action_type: Machine-readable action kind.
        days_overdue: Days the deal has been in its current status.
    """

    id: str
    deal: DealRecord
    title: str
    description: str
    urgency_level: UrgencyLevel
    action_label: str
    action_type: ActionType
    days_overdue: int = Field(ge=0, default=0)


class PriorityStats(BaseModel):
    """Urgency breakdown of a priority worklist."""

    total: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0


__all__ = [
    "TERMINAL_STATUSES",
    "ActionType",
    "DealPriority",
    "DealRecord",
    "DealStatus",
    "FlowClassification",
    "FlowStatus",
    "FlowUrgency",
    "PriorityItem",
    "PriorityStats",
    "StatusChange",
    "TransitionDecision",
    "UrgencyLevel",
    "UserRole",
    "coerce_role",
    "coerce_status",
    "status_value",
]
