"""Unit tests for lifecycle schemas, status display metadata and settings.

Tests cover:
- DealRecord leniency: camelCase keys, legacy statuses, malformed values
- FlowClassification auto-computed action_required
- StatusChange validation
- STATUS_INFO labels, sort ranks and sort_deals_by_status
- Settings defaults and environment overrides
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from src.dealflow.config import Environment, Settings, get_settings
from src.dealflow.lifecycle.schemas import (
    DealPriority,
    DealRecord,
    DealStatus,
    FlowClassification,
    FlowStatus,
    FlowUrgency,
    StatusChange,
    coerce_role,
    coerce_status,
    status_value,
)
from src.dealflow.lifecycle.status_info import (
    STATUS_INFO,
    sort_deals_by_status,
    status_label,
    status_sort_rank,
)


# ── DealRecord ───────────────────────────────────────────────────────────────


class TestDealRecord:
    """Tests for DealRecord parsing and degradation rules."""

    def test_parses_camel_case_store_row(self):
        """Store rows with camelCase keys map onto snake_case fields."""
        deal = DealRecord.model_validate(
            {
                "id": 42,
                "status": "under_review",
                "priority": "high",
                "revisionCount": 1,
                "lastStatusChange": "2025-03-05T09:30:00Z",
                "annualRevenue": "1250000",
                "advertiserName": "Acme Media",
                "dealName": "Acme Q3",
                "internalNotes": "ignored",
            }
        )
        assert deal.status == DealStatus.UNDER_REVIEW
        assert deal.priority == DealPriority.HIGH
        assert deal.revision_count == 1
        assert deal.last_status_change == datetime(2025, 3, 5, 9, 30, tzinfo=timezone.utc)
        assert deal.annual_revenue == 1_250_000.0
        assert deal.client_name == "Acme Media"
        assert deal.deal_name == "Acme Q3"

    def test_snake_case_names_accepted(self):
        deal = DealRecord(id="d-1", status=DealStatus.SCOPING, growth_ambition=10.0)
        assert deal.growth_ambition == 10.0

    def test_legacy_status_kept_as_string(self):
        """Unknown statuses survive as plain strings."""
        deal = DealRecord(id=1, status="canceled")
        assert deal.status == "canceled"
        assert not isinstance(deal.status, DealStatus)
        assert coerce_status(deal.status) is None

    def test_known_status_becomes_enum(self):
        deal = DealRecord(id=1, status="signed")
        assert isinstance(deal.status, DealStatus)

    def test_malformed_values_degrade(self):
        deal = DealRecord.model_validate(
            {
                "id": 1,
                "status": "submitted",
                "priority": "urgent!!",
                "revisionCount": "many",
                "createdAt": "yesterday",
                "draftExpiresAt": "",
                "annualRevenue": "n/a",
                "dealName": None,
            }
        )
        assert deal.priority == DealPriority.MEDIUM
        assert deal.revision_count == 0
        assert deal.created_at is None
        assert deal.draft_expires_at is None
        assert deal.annual_revenue is None
        assert deal.deal_name == ""

    @pytest.mark.parametrize("raw", ["NaN", "inf", "-Infinity", float("nan")])
    def test_non_finite_amounts_degrade(self, raw):
        """Non-finite revenue and ambition figures are treated as missing."""
        deal = DealRecord.model_validate(
            {"id": 1, "status": "under_review", "annualRevenue": raw, "growthAmbition": raw}
        )
        assert deal.annual_revenue is None
        assert deal.growth_ambition is None

    def test_negative_revision_count_clamped(self):
        assert DealRecord(id=1, status="scoping", revision_count=-2).revision_count == 0

    def test_priority_case_insensitive(self):
        assert DealRecord(id=1, status="scoping", priority="CRITICAL").priority == (
            DealPriority.CRITICAL
        )

    def test_client_name_falls_back_to_agency(self):
        deal = DealRecord(id=1, status="scoping", agency_name="Media Agency")
        assert deal.client_name == "Media Agency"
        assert DealRecord(id=2, status="scoping").client_name is None

    def test_record_is_frozen(self):
        deal = DealRecord(id=1, status="scoping")
        with pytest.raises(ValidationError):
            deal.status = DealStatus.SUBMITTED

    def test_id_and_status_required(self):
        with pytest.raises(ValidationError):
            DealRecord.model_validate({"status": "draft"})


class TestCoercion:
    """Tests for the enum coercion helpers."""

    def test_coerce_status(self):
        assert coerce_status("approved") == DealStatus.APPROVED
        assert coerce_status(DealStatus.LOST) == DealStatus.LOST
        assert coerce_status("contract_sent") is None
        assert coerce_status(None) is None

    def test_coerce_role(self):
        assert coerce_role("legal") is not None
        assert coerce_role("Legal") is None

    def test_status_value(self):
        assert status_value(DealStatus.CLIENT_REVIEW) == "client_review"
        assert status_value("legacy") == "legacy"


# ── Derived results ──────────────────────────────────────────────────────────


class TestFlowClassification:
    """Tests for FlowClassification auto-computed fields."""

    def test_action_required_set_for_needs_attention(self):
        result = FlowClassification(
            flow_status=FlowStatus.NEEDS_ATTENTION,
            reason="stuck",
            days_in_status=4,
            urgency_level=FlowUrgency.ATTENTION,
        )
        assert result.action_required is True

    def test_action_required_cannot_be_forced_on(self):
        result = FlowClassification(
            flow_status=FlowStatus.ON_TRACK,
            reason="fine",
            days_in_status=1,
            action_required=True,
        )
        assert result.action_required is False
        assert result.urgency_level == FlowUrgency.NORMAL

    def test_negative_days_rejected(self):
        with pytest.raises(ValidationError):
            FlowClassification(flow_status=FlowStatus.ON_TRACK, reason="x", days_in_status=-1)


class TestStatusChange:
    """Tests for StatusChange validation."""

    def test_changed_by_required(self):
        with pytest.raises(ValidationError):
            StatusChange(
                deal_id=1,
                status=DealStatus.SUBMITTED,
                previous_status=DealStatus.SCOPING,
                changed_by="",
            )

    def test_changed_at_defaults_to_aware_now(self):
        change = StatusChange(
            deal_id=1,
            status=DealStatus.SUBMITTED,
            previous_status=DealStatus.SCOPING,
            changed_by="pat@example.com",
        )
        assert change.changed_at.tzinfo is not None
        assert change.comments is None


# ── Status display metadata ──────────────────────────────────────────────────


class TestStatusInfo:
    """Tests for STATUS_INFO and status ordering helpers."""

    def test_every_status_described(self):
        assert set(STATUS_INFO) == set(DealStatus)

    def test_priorities_are_unique_and_ordered(self):
        ranks = [STATUS_INFO[status].priority for status in DealStatus]
        assert ranks == list(range(1, len(DealStatus) + 1))

    def test_labels(self):
        assert status_label("revision_requested") == "Revision Requested"
        assert status_label(DealStatus.UNDER_REVIEW) == "Under Review"
        assert status_label("on_hold") == "On Hold"

    def test_unknown_status_sorts_last(self):
        assert status_sort_rank("on_hold") > status_sort_rank(DealStatus.LOST)

    def test_sort_deals_by_status(self):
        deals = [
            DealRecord(id=1, status="signed"),
            DealRecord(id=2, status="on_hold"),
            DealRecord(id=3, status="draft"),
            DealRecord(id=4, status="under_review"),
            DealRecord(id=5, status="draft"),
        ]
        ordered = sort_deals_by_status(deals)
        assert [d.id for d in ordered] == [3, 5, 4, 1, 2]
        assert [d.id for d in deals] == [1, 2, 3, 4, 5]


# ── Settings ─────────────────────────────────────────────────────────────────


class TestSettings:
    """Tests for Settings defaults and environment overrides."""

    def test_defaults(self, monkeypatch):
        for name in ("ENVIRONMENT", "PRIORITY_LIST_LIMIT", "DRAFT_EXPIRY_WARNING_DAYS"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None)
        assert settings.ENVIRONMENT == Environment.development
        assert settings.PRIORITY_LIST_LIMIT == 10
        assert settings.HIGH_VALUE_THRESHOLD_USD == 1_000_000.0
        assert settings.MEDIUM_VALUE_THRESHOLD_USD == 500_000.0
        assert settings.LARGE_DEAL_REVENUE_USD == 5_000_000.0
        assert settings.DRAFT_EXPIRY_WARNING_DAYS == 3

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("PRIORITY_LIST_LIMIT", "25")
        settings = get_settings()
        assert settings.ENVIRONMENT == Environment.production
        assert settings.PRIORITY_LIST_LIMIT == 25

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
