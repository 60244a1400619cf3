"""Role-specific priority worklist ranking.

Turns a collection of deal snapshots into the bounded, ordered action list a
role sees on its dashboard:

1. Relevance: a per-role status filter decides which deals belong on the list.
2. Drafts: for sellers and admins, each draft owned by the actor becomes a
   single "Resume Draft" item at low urgency. Drafts never go through the
   general pass, so they are not counted twice.
3. Urgency: the higher of the flow classifier's signal and a deal-value
   heuristic.
4. Action: role x status lookup for the action type and button label.
5. Sort (stable): seller drafts first, then urgency desc, then days in
   status desc. Truncated to the configured limit (10 by default).

Every call builds a fresh list; nothing is cached between calls.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Any

import structlog

from src.dealflow.config import Settings, get_settings
from src.dealflow.lifecycle.clock import as_utc
from src.dealflow.lifecycle.flow import FlowClassifier
from src.dealflow.lifecycle.schemas import (
    ActionType,
    DealRecord,
    DealStatus,
    FlowClassification,
    FlowUrgency,
    PriorityItem,
    PriorityStats,
    UrgencyLevel,
    UserRole,
    coerce_role,
    coerce_status,
    status_value,
)

logger = structlog.get_logger(__name__)

# ── Lookup Tables ───────────────────────────────────────────────────────────

# Statuses each role acts on. Admin sees everything and is handled separately.
_ROLE_RELEVANT_STATUSES: dict[UserRole, frozenset[DealStatus]] = {
    UserRole.SELLER: frozenset(
        {
            DealStatus.SCOPING,
            DealStatus.DRAFT,
            DealStatus.UNDER_REVIEW,
            DealStatus.CONTRACT_DRAFTING,
            DealStatus.NEGOTIATING,
        }
    ),
    UserRole.APPROVER: frozenset(
        {DealStatus.UNDER_REVIEW, DealStatus.REVISION_REQUESTED}
    ),
    UserRole.LEGAL: frozenset({DealStatus.APPROVED, DealStatus.CONTRACT_DRAFTING}),
    UserRole.DEPARTMENT_REVIEWER: frozenset(
        {DealStatus.SUBMITTED, DealStatus.UNDER_REVIEW}
    ),
}

_ACTIONS: dict[tuple[UserRole, DealStatus], tuple[ActionType, str]] = {
    (UserRole.SELLER, DealStatus.DRAFT): (ActionType.RESUME_DRAFT, "Resume Draft"),
    (UserRole.SELLER, DealStatus.SCOPING): (ActionType.CONVERT, "Convert to Deal"),
    (UserRole.SELLER, DealStatus.UNDER_REVIEW): (ActionType.NUDGE, "Send Nudge"),
    (UserRole.SELLER, DealStatus.NEGOTIATING): (ActionType.NUDGE, "Send Nudge"),
    (UserRole.SELLER, DealStatus.CONTRACT_DRAFTING): (ActionType.NUDGE, "Send Nudge"),
    (UserRole.APPROVER, DealStatus.UNDER_REVIEW): (ActionType.APPROVE, "Review & Approve"),
    (UserRole.APPROVER, DealStatus.REVISION_REQUESTED): (ActionType.NUDGE, "Nudge Seller"),
    (UserRole.LEGAL, DealStatus.CONTRACT_DRAFTING): (ActionType.LEGAL_REVIEW, "Legal Review"),
    (UserRole.LEGAL, DealStatus.APPROVED): (ActionType.CONTRACT, "Send Contract"),
    (UserRole.DEPARTMENT_REVIEWER, DealStatus.SUBMITTED): (
        ActionType.REVIEW,
        "Department Review",
    ),
    (UserRole.DEPARTMENT_REVIEWER, DealStatus.UNDER_REVIEW): (
        ActionType.REVIEW,
        "Department Review",
    ),
    (UserRole.ADMIN, DealStatus.DRAFT): (ActionType.RESUME_DRAFT, "Resume Draft"),
}

_DEFAULT_ACTION: tuple[ActionType, str] = (ActionType.REVIEW, "Review")

# Roles whose worklist carries the draft category.
_DRAFT_ROLES: frozenset[UserRole] = frozenset({UserRole.SELLER, UserRole.ADMIN})

_FLOW_TO_URGENCY: dict[FlowUrgency, UrgencyLevel] = {
    FlowUrgency.NORMAL: UrgencyLevel.LOW,
    FlowUrgency.ATTENTION: UrgencyLevel.MEDIUM,
    FlowUrgency.URGENT: UrgencyLevel.HIGH,
}

URGENCY_RANK: dict[UrgencyLevel, int] = {
    UrgencyLevel.LOW: 1,
    UrgencyLevel.MEDIUM: 2,
    UrgencyLevel.HIGH: 3,
}


def deal_value(deal: DealRecord) -> float:
    """Value proxy used for urgency scoring.

    Scoping deals have no revenue figure yet and prefer growth ambition.
    Other deals use annual revenue, falling back to growth ambition, then 0.
    """
    if coerce_status(deal.status) == DealStatus.SCOPING and deal.growth_ambition:
        return deal.growth_ambition
    return deal.annual_revenue or deal.growth_ambition or 0.0


def summarize(items: Iterable[PriorityItem]) -> PriorityStats:
    """Count worklist items per urgency bucket."""
    stats = {"total": 0, "high": 0, "medium": 0, "low": 0}
    for item in items:
        stats["total"] += 1
        stats[item.urgency_level.value] += 1
    return PriorityStats(**stats)


class PriorityRanker:
    """Build the ordered, bounded priority worklist for a role.

    Value heuristic:
        deal_value >= high_value_threshold   -> HIGH
        deal_value >= medium_value_threshold -> MEDIUM
        otherwise                            -> LOW

    Classifier signal:
        urgent -> HIGH, attention -> MEDIUM, normal -> LOW

    Item urgency is the higher of the two.

    Args:
        classifier: Flow classifier used for per-deal signals. A default
            FlowClassifier is created if None.
        limit: Maximum number of items returned.
        high_value_threshold: Deal value promoting an item to HIGH.
        medium_value_threshold: Deal value promoting an item to MEDIUM.
        settings: Settings for defaults. Uses get_settings() if None.
    """

    def __init__(
        self,
        *,
        classifier: FlowClassifier | None = None,
        limit: int | None = None,
        high_value_threshold: float | None = None,
        medium_value_threshold: float | None = None,
        settings: Settings | None = None,
    ) -> None:
        if settings is None:
            settings = get_settings()
        self._classifier = classifier or FlowClassifier(settings=settings)
        self._limit = limit if limit is not None else settings.PRIORITY_LIST_LIMIT
        self._high_value_threshold = (
            high_value_threshold
            if high_value_threshold is not None
            else settings.HIGH_VALUE_THRESHOLD_USD
        )
        self._medium_value_threshold = (
            medium_value_threshold
            if medium_value_threshold is not None
            else settings.MEDIUM_VALUE_THRESHOLD_USD
        )

    @property
    def limit(self) -> int:
        return self._limit

    # ── Per-Deal Helpers ─────────────────────────────────────────────────

    @staticmethod
    def needs_attention(deal: DealRecord, role: Any) -> bool:
        """Whether ``deal`` belongs on ``role``'s worklist at all.

        Depends on status only (not on flow classification). Admin sees every
        deal; unknown roles see none.
        """
        role_enum = coerce_role(role)
        if role_enum is None:
            return False
        if role_enum == UserRole.ADMIN:
            return True
        status = coerce_status(deal.status)
        return status in _ROLE_RELEVANT_STATUSES.get(role_enum, frozenset())

    def value_urgency(self, deal: DealRecord) -> UrgencyLevel:
        value = deal_value(deal)
        if value >= self._high_value_threshold:
            return UrgencyLevel.HIGH
        if value >= self._medium_value_threshold:
            return UrgencyLevel.MEDIUM
        return UrgencyLevel.LOW

    def urgency(self, deal: DealRecord, classification: FlowClassification) -> UrgencyLevel:
        """Higher of the classifier signal and the value heuristic."""
        flow_level = _FLOW_TO_URGENCY[classification.urgency_level]
        value_level = self.value_urgency(deal)
        return max(flow_level, value_level, key=URGENCY_RANK.__getitem__)

    @staticmethod
    def action_for(deal: DealRecord, role: Any) -> tuple[ActionType, str]:
        """Action type and label for ``role`` acting on ``deal``."""
        role_enum = coerce_role(role)
        status = coerce_status(deal.status)
        if role_enum is None or status is None:
            return _DEFAULT_ACTION
        return _ACTIONS.get((role_enum, status), _DEFAULT_ACTION)

    @staticmethod
    def _owned_by(deal: DealRecord, actor: str | None) -> bool:
        """Drafts belong to the actor when owner email matches or none is recorded."""
        if actor is None:
            return True
        return not deal.email or deal.email.lower() == actor.lower()

    # ── Item Builders ────────────────────────────────────────────────────

    def _deal_item(
        self,
        deal: DealRecord,
        role: UserRole,
        now: datetime,
    ) -> PriorityItem:
        classification = self._classifier.classify(deal, now)
        days = classification.days_in_status
        action_type, action_label = self.action_for(deal, role)
        client = deal.client_name or "Unknown Client"
        status_label = status_value(deal.status).replace("_", " ")

        description = f"{client} - {days} days in {status_label} status"
        if classification.action_required:
            description = f"{description}. {classification.reason}"

        return PriorityItem(
            id=f"deal-{deal.id}",
            deal=deal,
            title=f"{action_label}: {deal.deal_name or client}",
            description=description,
            urgency_level=self.urgency(deal, classification),
            action_label=action_label,
            action_type=action_type,
            days_overdue=days,
        )

    @staticmethod
    def _draft_item(deal: DealRecord) -> PriorityItem:
        client = deal.client_name
        return PriorityItem(
            id=f"draft-{deal.id}",
            deal=deal,
            title=f"Resume Draft: {client or deal.deal_name or 'New Client'}",
            description=f"Continue working on draft deal for {client or 'client'}.",
            urgency_level=UrgencyLevel.LOW,
            action_label="Resume Draft",
            action_type=ActionType.RESUME_DRAFT,
            days_overdue=0,
        )

    # ── Main Ranking Method ──────────────────────────────────────────────

    def rank(
        self,
        deals: Iterable[DealRecord],
        role: Any,
        now: datetime | None = None,
        *,
        actor: str | None = None,
    ) -> list[PriorityItem]:
        """Compute the priority worklist for ``role``.

        Args:
            deals: Deal snapshots visible to the caller.
            role: Role the worklist is built for.
            now: Evaluation instant. Uses the classifier's clock if None.
            actor: Email of the requesting user; limits the draft category to
                drafts this user owns. All drafts are eligible if None.

        Returns:
            At most ``limit`` PriorityItems, sorted. Unknown roles get [].
        """
        role_enum = coerce_role(role)
        if role_enum is None:
            logger.debug("priority_ranker.unknown_role", role=status_value(role))
            return []

        instant = as_utc(now) if now is not None else self._classifier.now()
        with_drafts = role_enum in _DRAFT_ROLES

        items: list[PriorityItem] = []
        seen: set[str] = set()

        for deal in deals:
            is_draft = coerce_status(deal.status) == DealStatus.DRAFT

            if is_draft and with_drafts:
                if not self._owned_by(deal, actor):
                    continue
                item = self._draft_item(deal)
            elif self.needs_attention(deal, role_enum):
                item = self._deal_item(deal, role_enum, instant)
            else:
                continue

            if item.id in seen:
                continue
            seen.add(item.id)
            items.append(item)

        drafts_first = role_enum == UserRole.SELLER

        def _sort_key(item: PriorityItem) -> tuple[int, int, int]:
            draft_rank = (
                0 if drafts_first and item.action_type == ActionType.RESUME_DRAFT else 1
            )
            return (draft_rank, -URGENCY_RANK[item.urgency_level], -item.days_overdue)

        ranked = sorted(items, key=_sort_key)[: self._limit]

        logger.info(
            "priority_ranker.ranked",
            role=role_enum.value,
            candidates=len(items),
            returned=len(ranked),
        )
        return ranked


__all__ = [
    "URGENCY_RANK",
    "PriorityRanker",
    "deal_value",
    "summarize",
]
