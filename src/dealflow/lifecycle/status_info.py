"""Display metadata for deal statuses.

Labels, badge colors and descriptions consumed by dashboards, plus the
lifecycle sort rank used to order deal lists by how far they have progressed.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict

from src.dealflow.lifecycle.schemas import DealRecord, DealStatus, coerce_status, status_value


class StatusInfo(BaseModel):
    """Presentation details for one status."""

    model_config = ConfigDict(frozen=True)

    label: str
    color: str
    description: str
    priority: int


STATUS_INFO: Mapping[DealStatus, StatusInfo] = MappingProxyType(
    {
        DealStatus.DRAFT: StatusInfo(
            label="Draft", color="slate", description="Deal is being prepared", priority=1
        ),
        DealStatus.SCOPING: StatusInfo(
            label="Scoping", color="blue", description="Requirements being defined", priority=2
        ),
        DealStatus.SUBMITTED: StatusInfo(
            label="Submitted", color="indigo", description="Awaiting initial review", priority=3
        ),
        DealStatus.UNDER_REVIEW: StatusInfo(
            label="Under Review",
            color="amber",
            description="Being evaluated by approvers",
            priority=4,
        ),
        DealStatus.REVISION_REQUESTED: StatusInfo(
            label="Revision Requested",
            color="orange",
            description="Changes requested by approver",
            priority=5,
        ),
        DealStatus.NEGOTIATING: StatusInfo(
            label="Negotiating", color="purple", description="Terms being negotiated", priority=6
        ),
        DealStatus.APPROVED: StatusInfo(
            label="Approved",
            color="emerald",
            description="Deal approved, awaiting contract",
            priority=7,
        ),
        DealStatus.CONTRACT_DRAFTING: StatusInfo(
            label="Contract Drafting",
            color="teal",
            description="Legal team preparing contract",
            priority=8,
        ),
        DealStatus.CLIENT_REVIEW: StatusInfo(
            label="Client Review", color="cyan", description="Client reviewing contract", priority=9
        ),
        DealStatus.SIGNED: StatusInfo(
            label="Signed", color="green", description="Deal completed successfully", priority=10
        ),
        DealStatus.LOST: StatusInfo(
            label="Lost", color="red", description="Deal was not successful", priority=11
        ),
    }
)

# Unknown statuses sort after every known one.
_UNKNOWN_RANK = len(STATUS_INFO) + 1


def status_label(status: Any) -> str:
    """Human-readable label; unknown statuses are title-cased."""
    known = coerce_status(status)
    if known is None:
        return status_value(status).replace("_", " ").title()
    return STATUS_INFO[known].label


def status_sort_rank(status: Any) -> int:
    known = coerce_status(status)
    if known is None:
        return _UNKNOWN_RANK
    return STATUS_INFO[known].priority


def sort_deals_by_status(deals: Iterable[DealRecord]) -> list[DealRecord]:
    """New list of deals ordered by lifecycle rank (stable within a status)."""
    return sorted(deals, key=lambda deal: status_sort_rank(deal.status))


__all__ = [
    "STATUS_INFO",
    "StatusInfo",
    "sort_deals_by_status",
    "status_label",
    "status_sort_rank",
]
