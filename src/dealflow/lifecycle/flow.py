"""Flow intelligence: business-risk-aware health classification of a deal.

Decides whether a deal is healthy in its current status (``on_track``) or
needs human follow-up (``needs_attention``), and why. Classification is
ordered and first-match-wins:

1. Excluded statuses (signed, lost, canceled, draft) are always on track.
2. Business-risk checks, in fixed priority order. The first one that fires
   flags the deal regardless of the timing table.
3. Per-status timing thresholds ``{normal, needs_attention}``.
4. Statuses without a threshold pair are on track ("not tracked").

IMPORTANT: Classification is deterministic. The evaluation instant comes from
the ``now`` argument or the injected clock, never from a global clock read
inside a check, so the same ``(deal, now)`` always yields the same result.

Exports:
    FlowClassifier: Ordered business-risk + timing classifier.
    FlowThreshold: Day-count pair for the timing fallback.
    DEFAULT_FLOW_THRESHOLDS: Default timing table per status.
    days_in_status: Whole days a deal has spent in its current status.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import NamedTuple, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.dealflow.config import Settings, get_settings
from src.dealflow.lifecycle.clock import Clock, as_utc, days_until, utc_now, whole_days_between
from src.dealflow.lifecycle.schemas import (
    DealPriority,
    DealRecord,
    DealStatus,
    FlowClassification,
    FlowStatus,
    FlowUrgency,
    coerce_status,
    status_value,
)

logger = structlog.get_logger(__name__)


class FlowThreshold(BaseModel):
    """Days a deal may sit in a status before it needs follow-up.

    Attributes:
        normal: Expected days in the status.
        needs_attention: Days at or beyond which the deal is flagged.
    """

    model_config = ConfigDict(frozen=True)

    normal: int = Field(ge=0)
    needs_attention: int = Field(ge=0)

    @model_validator(mode="after")
    def _check_order(self) -> FlowThreshold:
        if self.needs_attention < self.normal:
            raise ValueError("needs_attention must not be lower than normal")
        return self


DEFAULT_FLOW_THRESHOLDS: Mapping[DealStatus, FlowThreshold] = MappingProxyType(
    {
        DealStatus.SCOPING: FlowThreshold(normal=5, needs_attention=6),
        DealStatus.SUBMITTED: FlowThreshold(normal=2, needs_attention=3),
        DealStatus.UNDER_REVIEW: FlowThreshold(normal=5, needs_attention=6),
        DealStatus.REVISION_REQUESTED: FlowThreshold(normal=3, needs_attention=4),
        DealStatus.APPROVED: FlowThreshold(normal=7, needs_attention=8),
        DealStatus.NEGOTIATING: FlowThreshold(normal=7, needs_attention=8),
        DealStatus.CONTRACT_DRAFTING: FlowThreshold(normal=5, needs_attention=6),
        DealStatus.CLIENT_REVIEW: FlowThreshold(normal=7, needs_attention=8),
    }
)

# Statuses that are never classified. "canceled" is a legacy store value.
EXCLUDED_STATUSES: frozenset[str] = frozenset({"signed", "lost", "canceled", "draft"})

# Stale-in-status limits (days, strictly greater than) for the status checks.
_NEGOTIATION_STALL_DAYS = 7
_MULTIPLE_REVISIONS = 2
_HIGH_PRIORITY_IDLE_DAYS = 1
_SUBMITTED_TRIAGE_DAYS = 3
_APPROVED_EXECUTION_DAYS = 5
_CONTRACT_DRAFTING_DAYS = 4
_CLIENT_REVIEW_DAYS = 7
_LARGE_DEAL_IDLE_DAYS = 2


class RiskSignal(NamedTuple):
    """A fired business-risk check."""

    reason: str
    urgency: FlowUrgency


RiskCheck = Callable[[DealRecord, int, datetime], Optional[RiskSignal]]


def days_in_status(deal: DealRecord, now: datetime) -> int:
    """Whole days between the deal's last status change and ``now``.

    Falls back to ``created_at`` and then to ``now`` itself (0 days) when
    timestamps are missing. Never negative.
    """
    entered = deal.last_status_change or deal.created_at
    if entered is None:
        return 0
    return whole_days_between(entered, now)


class FlowClassifier:
    """Classify a deal as on_track or needs_attention.

    Business-risk checks (first match wins):
        1. revision_requested                      -> urgent
        2. negotiating, > 7 days                   -> attention
        3. revision_count >= 2                     -> attention
        4. draft expires within N days / expired   -> urgent
        5. high/critical priority, > 1 day         -> urgent
        6. submitted, > 3 days                     -> attention
        7. approved, > 5 days                      -> attention
        8. contract_drafting, > 4 days             -> attention
        9. client_review, > 7 days                 -> attention
       10. annual revenue above large-deal limit, > 2 days -> urgent

    Then the timing fallback: ``days >= threshold.needs_attention`` flags the
    deal with ``attention``; anything else is on track.

    All thresholds are configurable via keyword-only constructor args and
    default to the application settings.

    Args:
        thresholds: Per-status timing table. Defaults to DEFAULT_FLOW_THRESHOLDS.
        large_deal_revenue: Annual revenue above which deals get a tighter SLA.
        draft_expiry_warning_days: Days before draft expiry that flag a deal.
        clock: Time source used when ``now`` is not passed.
        settings: Settings for defaults. Uses get_settings() if None.
    """

    def __init__(
        self,
        *,
        thresholds: Mapping[DealStatus, FlowThreshold] | None = None,
        large_deal_revenue: float | None = None,
        draft_expiry_warning_days: int | None = None,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ) -> None:
        if settings is None:
            settings = get_settings()
        self._thresholds: Mapping[DealStatus, FlowThreshold] = MappingProxyType(
            dict(thresholds if thresholds is not None else DEFAULT_FLOW_THRESHOLDS)
        )
        self._large_deal_revenue = (
            large_deal_revenue
            if large_deal_revenue is not None
            else settings.LARGE_DEAL_REVENUE_USD
        )
        self._draft_expiry_warning_days = (
            draft_expiry_warning_days
            if draft_expiry_warning_days is not None
            else settings.DRAFT_EXPIRY_WARNING_DAYS
        )
        self._clock = clock or utc_now
        self._risk_checks: tuple[RiskCheck, ...] = (
            self._check_revision_requested,
            self._check_negotiation_stalled,
            self._check_multiple_revisions,
            self._check_draft_expiry,
            self._check_high_priority_idle,
            self._check_submitted_untriaged,
            self._check_approved_unexecuted,
            self._check_contract_drafting,
            self._check_client_review,
            self._check_large_deal_idle,
        )

    @property
    def thresholds(self) -> Mapping[DealStatus, FlowThreshold]:
        return self._thresholds

    def now(self) -> datetime:
        """Current instant according to the injected clock."""
        return as_utc(self._clock())

    # ── Business-Risk Checks (private) ──────────────────────────────────

    @staticmethod
    def _check_revision_requested(
        deal: DealRecord, days: int, now: datetime
    ) -> RiskSignal | None:
        """Seller owes a response; flagged regardless of elapsed time."""
        if coerce_status(deal.status) != DealStatus.REVISION_REQUESTED:
            return None
        return RiskSignal(
            "Revision requested - seller response needed", FlowUrgency.URGENT
        )

    @staticmethod
    def _check_negotiation_stalled(
        deal: DealRecord, days: int, now: datetime
    ) -> RiskSignal | None:
        if coerce_status(deal.status) != DealStatus.NEGOTIATING:
            return None
        if days <= _NEGOTIATION_STALL_DAYS:
            return None
        return RiskSignal(
            f"Negotiation stalled for {days} days in negotiating",
            FlowUrgency.ATTENTION,
        )

    @staticmethod
    def _check_multiple_revisions(
        deal: DealRecord, days: int, now: datetime
    ) -> RiskSignal | None:
        if deal.revision_count < _MULTIPLE_REVISIONS:
            return None
        return RiskSignal(
            f"Multiple revisions ({deal.revision_count}) - needs attention",
            FlowUrgency.ATTENTION,
        )

    def _check_draft_expiry(
        self, deal: DealRecord, days: int, now: datetime
    ) -> RiskSignal | None:
        if deal.draft_expires_at is None:
            return None
        if as_utc(deal.draft_expires_at) <= now:
            return RiskSignal("Draft has expired", FlowUrgency.URGENT)
        window = timedelta(days=self._draft_expiry_warning_days)
        if as_utc(deal.draft_expires_at) - now >= window:
            return None
        days_left = days_until(deal.draft_expires_at, now)
        unit = "day" if days_left == 1 else "days"
        return RiskSignal(f"Draft expires in {days_left} {unit}", FlowUrgency.URGENT)

    @staticmethod
    def _check_high_priority_idle(
        deal: DealRecord, days: int, now: datetime
    ) -> RiskSignal | None:
        if deal.priority not in (DealPriority.HIGH, DealPriority.CRITICAL):
            return None
        if days <= _HIGH_PRIORITY_IDLE_DAYS:
            return None
        return RiskSignal(
            f"{deal.priority.value.capitalize()}-priority deal idle for {days} days "
            f"in {status_value(deal.status)}",
            FlowUrgency.URGENT,
        )

    @staticmethod
    def _check_submitted_untriaged(
        deal: DealRecord, days: int, now: datetime
    ) -> RiskSignal | None:
        if coerce_status(deal.status) != DealStatus.SUBMITTED:
            return None
        if days <= _SUBMITTED_TRIAGE_DAYS:
            return None
        return RiskSignal(
            f"Deal stuck in submitted for {days} days awaiting triage",
            FlowUrgency.ATTENTION,
        )

    @staticmethod
    def _check_approved_unexecuted(
        deal: DealRecord, days: int, now: datetime
    ) -> RiskSignal | None:
        if coerce_status(deal.status) != DealStatus.APPROVED:
            return None
        if days <= _APPROVED_EXECUTION_DAYS:
            return None
        return RiskSignal(
            f"Approved deal waiting {days} days for contract drafting",
            FlowUrgency.ATTENTION,
        )

    @staticmethod
    def _check_contract_drafting(
        deal: DealRecord, days: int, now: datetime
    ) -> RiskSignal | None:
        if coerce_status(deal.status) != DealStatus.CONTRACT_DRAFTING:
            return None
        if days <= _CONTRACT_DRAFTING_DAYS:
            return None
        return RiskSignal(
            f"Contract drafting open for {days} days",
            FlowUrgency.ATTENTION,
        )

    @staticmethod
    def _check_client_review(
        deal: DealRecord, days: int, now: datetime
    ) -> RiskSignal | None:
        if coerce_status(deal.status) != DealStatus.CLIENT_REVIEW:
            return None
        if days <= _CLIENT_REVIEW_DAYS:
            return None
        return RiskSignal(
            f"Client review pending for {days} days",
            FlowUrgency.ATTENTION,
        )

    def _check_large_deal_idle(
        self, deal: DealRecord, days: int, now: datetime
    ) -> RiskSignal | None:
        revenue = deal.annual_revenue or 0.0
        if revenue <= self._large_deal_revenue:
            return None
        if days <= _LARGE_DEAL_IDLE_DAYS:
            return None
        return RiskSignal(
            f"Large deal (${revenue:,.0f}) idle for {days} days "
            f"in {status_value(deal.status)}",
            FlowUrgency.URGENT,
        )

    # ── Main Classification Method ──────────────────────────────────────

    def classify(self, deal: DealRecord, now: datetime | None = None) -> FlowClassification:
        """Compute the flow classification of one deal.

        Args:
            deal: Deal snapshot to classify.
            now: Evaluation instant. Uses the injected clock if None.

        Returns:
            FlowClassification with status, reason, days in status and urgency.
        """
        instant = as_utc(now) if now is not None else self.now()
        days = days_in_status(deal, instant)
        status_name = status_value(deal.status)

        # Step 1: Excluded statuses
        if status_name in EXCLUDED_STATUSES:
            return FlowClassification(
                flow_status=FlowStatus.ON_TRACK,
                reason=f"Deal is {status_name}",
                days_in_status=days,
            )

        # Step 2: Business-risk checks
        for check in self._risk_checks:
            signal = check(deal, days, instant)
            if signal is not None:
                logger.debug(
                    "flow_classifier.risk_flagged",
                    deal_id=deal.id,
                    status=status_name,
                    days_in_status=days,
                    urgency=signal.urgency.value,
                    reason=signal.reason,
                )
                return FlowClassification(
                    flow_status=FlowStatus.NEEDS_ATTENTION,
                    reason=signal.reason,
                    days_in_status=days,
                    urgency_level=signal.urgency,
                )

        # Step 3: Timing thresholds
        status = coerce_status(deal.status)
        threshold = self._thresholds.get(status) if status is not None else None
        if threshold is None:
            return FlowClassification(
                flow_status=FlowStatus.ON_TRACK,
                reason="Status not tracked for flow intelligence",
                days_in_status=days,
            )

        if days >= threshold.needs_attention:
            return FlowClassification(
                flow_status=FlowStatus.NEEDS_ATTENTION,
                reason=(
                    f"Deal needs follow-up after {days} days in {status_name} "
                    f"(expected: {threshold.normal} days)"
                ),
                days_in_status=days,
                urgency_level=FlowUrgency.ATTENTION,
            )

        return FlowClassification(
            flow_status=FlowStatus.ON_TRACK,
            reason=f"Deal progressing normally in {status_name} ({days}/{threshold.normal} days)",
            days_in_status=days,
        )

    def needing_attention(
        self,
        deals: Iterable[DealRecord],
        now: datetime | None = None,
    ) -> list[DealRecord]:
        """Deals whose classification at ``now`` is needs_attention."""
        instant = as_utc(now) if now is not None else self.now()
        return [
            deal
            for deal in deals
            if self.classify(deal, instant).flow_status == FlowStatus.NEEDS_ATTENTION
        ]


__all__ = [
    "DEFAULT_FLOW_THRESHOLDS",
    "EXCLUDED_STATUSES",
    "FlowClassifier",
    "FlowThreshold",
    "RiskSignal",
    "days_in_status",
]
