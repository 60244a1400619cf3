"""Role-scoped deal status transition guard.

Holds the deal lifecycle graph and the role-permission table as immutable,
load-time-validated configuration (``TransitionPolicy``) and answers the two
questions callers ask before changing a status:

- may this role move the deal from A to B?  (``can_transition``)
- where may this role move the deal now?     (``available_transitions``)

Permission checks fail closed and return a ``TransitionDecision`` instead of
raising; a denial is an expected outcome. ``require_transition`` and
``plan_transition`` wrap the same check for callers that want an exception.

The guard never writes anything. Callers must apply an approved change with a
compare-and-set on ``(deal_id, previous_status)`` so two concurrent requests
approved against the same stale status cannot both land.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from functools import lru_cache
from types import MappingProxyType
from typing import Any

import structlog

from src.dealflow.lifecycle.clock import Clock, as_utc, utc_now
from src.dealflow.lifecycle.schemas import (
    TERMINAL_STATUSES,
    DealRecord,
    DealStatus,
    StatusChange,
    TransitionDecision,
    UserRole,
    coerce_role,
    coerce_status,
    status_value,
)

logger = structlog.get_logger(__name__)

# ── Default Lifecycle Configuration ─────────────────────────────────────────

# Maps each status to the statuses it can move TO. Order is the display order
# used for "change status" menus.
DEFAULT_STATUS_TRANSITIONS: dict[DealStatus, tuple[DealStatus, ...]] = {
    DealStatus.DRAFT: (DealStatus.SCOPING, DealStatus.SUBMITTED),
    DealStatus.SCOPING: (DealStatus.SUBMITTED,),
    DealStatus.SUBMITTED: (DealStatus.UNDER_REVIEW, DealStatus.LOST),
    DealStatus.UNDER_REVIEW: (
        DealStatus.REVISION_REQUESTED,
        DealStatus.NEGOTIATING,
        DealStatus.APPROVED,
        DealStatus.LOST,
    ),
    # Seller can resubmit or abandon
    DealStatus.REVISION_REQUESTED: (DealStatus.UNDER_REVIEW, DealStatus.LOST),
    DealStatus.NEGOTIATING: (
        DealStatus.REVISION_REQUESTED,
        DealStatus.APPROVED,
        DealStatus.LOST,
    ),
    DealStatus.APPROVED: (DealStatus.CONTRACT_DRAFTING, DealStatus.LOST),
    DealStatus.CONTRACT_DRAFTING: (DealStatus.CLIENT_REVIEW, DealStatus.LOST),
    # Client can request changes
    DealStatus.CLIENT_REVIEW: (
        DealStatus.SIGNED,
        DealStatus.NEGOTIATING,
        DealStatus.LOST,
    ),
    DealStatus.SIGNED: (),  # Terminal success
    DealStatus.LOST: (),  # Terminal failure
}

DEFAULT_ROLE_PERMISSIONS: dict[UserRole, dict[DealStatus, tuple[DealStatus, ...]]] = {
    UserRole.SELLER: {
        DealStatus.DRAFT: (DealStatus.SCOPING, DealStatus.SUBMITTED),
        DealStatus.SCOPING: (DealStatus.SUBMITTED,),
        DealStatus.REVISION_REQUESTED: (DealStatus.UNDER_REVIEW, DealStatus.LOST),
    },
    UserRole.APPROVER: {
        DealStatus.SUBMITTED: (DealStatus.UNDER_REVIEW, DealStatus.LOST),
        DealStatus.UNDER_REVIEW: (
            DealStatus.REVISION_REQUESTED,
            DealStatus.NEGOTIATING,
            DealStatus.APPROVED,
            DealStatus.LOST,
        ),
        DealStatus.NEGOTIATING: (
            DealStatus.REVISION_REQUESTED,
            DealStatus.APPROVED,
            DealStatus.LOST,
        ),
        DealStatus.CLIENT_REVIEW: (
            DealStatus.SIGNED,
            DealStatus.NEGOTIATING,
            DealStatus.LOST,
        ),
    },
    UserRole.LEGAL: {
        DealStatus.APPROVED: (DealStatus.CONTRACT_DRAFTING, DealStatus.LOST),
        DealStatus.CONTRACT_DRAFTING: (DealStatus.CLIENT_REVIEW, DealStatus.LOST),
    },
    # Department reviewers work review queues but never move deals themselves.
    UserRole.DEPARTMENT_REVIEWER: {},
    UserRole.ADMIN: dict(DEFAULT_STATUS_TRANSITIONS),
}


# ── Errors ──────────────────────────────────────────────────────────────────


class TransitionConfigError(ValueError):
    """Raised at load time when the transition configuration breaks an invariant."""


class InvalidStatusTransitionError(ValueError):
    """Raised by the strict guard entry points when a transition is denied."""

    def __init__(
        self,
        role: Any,
        from_status: Any,
        to_status: Any,
        reason: str,
    ) -> None:
        self.role = role
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        super().__init__(reason)


# ── Policy ──────────────────────────────────────────────────────────────────

StatusGraph = Mapping[DealStatus, tuple[DealStatus, ...]]


def _freeze_graph(graph: Mapping[Any, Iterable[Any]]) -> StatusGraph:
    frozen: dict[DealStatus, tuple[DealStatus, ...]] = {}
    for source, targets in graph.items():
        source_status = coerce_status(source)
        if source_status is None:
            raise TransitionConfigError(f"Unknown status in configuration: {source!r}")
        target_statuses: list[DealStatus] = []
        for target in targets:
            target_status = coerce_status(target)
            if target_status is None:
                raise TransitionConfigError(
                    f"Unknown target status {target!r} from {source_status.value}"
                )
            if target_status in target_statuses:
                raise TransitionConfigError(
                    f"Duplicate transition {source_status.value} -> {target_status.value}"
                )
            target_statuses.append(target_status)
        frozen[source_status] = tuple(target_statuses)
    return MappingProxyType(frozen)


def validate_transition_config(
    transitions: StatusGraph,
    role_permissions: Mapping[UserRole, StatusGraph],
) -> None:
    """Check the lifecycle invariants of a transition configuration.

    Invariants:
        - every DealStatus has an entry in the global graph
        - no edge targets its own source, and no edge returns to DRAFT
        - the statuses without outgoing edges are exactly the terminal ones
        - every role edge also exists in the global graph
        - the admin role's edges equal the global graph exactly

    Raises:
        TransitionConfigError: On the first violated invariant.
    """
    missing = [s.value for s in DealStatus if s not in transitions]
    if missing:
        raise TransitionConfigError(f"Statuses missing from transition graph: {missing}")

    for source, targets in transitions.items():
        if source in targets:
            raise TransitionConfigError(f"Self-transition not allowed: {source.value}")
        if DealStatus.DRAFT in targets:
            raise TransitionConfigError(
                f"Transition back to draft not allowed: {source.value} -> draft"
            )

    sinks = {source for source, targets in transitions.items() if not targets}
    if sinks != set(TERMINAL_STATUSES):
        raise TransitionConfigError(
            "Terminal statuses must be exactly "
            f"{sorted(s.value for s in TERMINAL_STATUSES)}, "
            f"got {sorted(s.value for s in sinks)}"
        )

    for role, graph in role_permissions.items():
        for source, targets in graph.items():
            extra = set(targets) - set(transitions.get(source, ()))
            if extra:
                raise TransitionConfigError(
                    f"Role {role.value} granted transitions outside the lifecycle graph: "
                    f"{source.value} -> {sorted(s.value for s in extra)}"
                )

    admin_graph = role_permissions.get(UserRole.ADMIN)
    if admin_graph is None:
        raise TransitionConfigError("Admin permissions are not configured")
    for source, targets in transitions.items():
        if set(admin_graph.get(source, ())) != set(targets):
            raise TransitionConfigError(
                f"Admin permissions must equal the lifecycle graph (differs at {source.value})"
            )


class TransitionPolicy:
    """Immutable lifecycle graph plus role-permission table.

    Both tables are copied into read-only mappings of tuples and validated
    once at construction; a policy instance never changes afterwards and is
    shared by reference between guards.

    Args:
        transitions: Global adjacency list, status -> allowed next statuses.
        role_permissions: Role -> (status -> allowed next statuses). Roles that
            are absent own no edges.

    Raises:
        TransitionConfigError: If any lifecycle invariant is violated.
    """

    def __init__(
        self,
        transitions: Mapping[Any, Iterable[Any]],
        role_permissions: Mapping[Any, Mapping[Any, Iterable[Any]]],
    ) -> None:
        self._transitions = _freeze_graph(transitions)

        roles: dict[UserRole, StatusGraph] = {}
        for role, graph in role_permissions.items():
            role_enum = coerce_role(role)
            if role_enum is None:
                raise TransitionConfigError(f"Unknown role in configuration: {role!r}")
            roles[role_enum] = _freeze_graph(graph)
        self._role_permissions: Mapping[UserRole, StatusGraph] = MappingProxyType(roles)

        validate_transition_config(self._transitions, self._role_permissions)

    @property
    def transitions(self) -> StatusGraph:
        return self._transitions

    @property
    def role_permissions(self) -> Mapping[UserRole, StatusGraph]:
        return self._role_permissions

    def allowed_from(self, role: UserRole, status: DealStatus) -> tuple[DealStatus, ...] | None:
        """Edges ``role`` owns out of ``status``, or None if it owns none there."""
        graph = self._role_permissions.get(role)
        if graph is None:
            return None
        return graph.get(status)


@lru_cache
def get_default_policy() -> TransitionPolicy:
    """Singleton policy built from the default lifecycle tables."""
    return TransitionPolicy(DEFAULT_STATUS_TRANSITIONS, DEFAULT_ROLE_PERMISSIONS)


# ── Guard ───────────────────────────────────────────────────────────────────


class StatusTransitionGuard:
    """Answer role-scoped transition questions against a TransitionPolicy.

    Stateless apart from the shared, immutable policy; safe to call from any
    number of threads.

    Args:
        policy: Lifecycle configuration. Uses get_default_policy() if None.
        clock: Time source for planned status changes.
    """

    def __init__(
        self,
        policy: TransitionPolicy | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._policy = policy if policy is not None else get_default_policy()
        self._clock = clock or utc_now

    @property
    def policy(self) -> TransitionPolicy:
        return self._policy

    def can_transition(self, current: Any, target: Any, role: Any) -> TransitionDecision:
        """Check whether ``role`` may move a deal from ``current`` to ``target``.

        Never raises. Unknown roles or statuses, statuses the role owns no
        edges from, and targets outside the role's edges are all denials.

        Returns:
            TransitionDecision with ``allowed`` and, on denial, a reason naming
            the role, the current status and the requested target.
        """
        role_name = status_value(role)
        current_name = status_value(current)
        target_name = status_value(target)

        role_enum = coerce_role(role)
        if role_enum is None:
            return self._deny(
                role_name,
                current_name,
                target_name,
                f"Unknown role {role_name} cannot move deals from "
                f"{current_name} to {target_name}",
            )

        current_status = coerce_status(current)
        allowed = (
            self._policy.allowed_from(role_enum, current_status)
            if current_status is not None
            else None
        )
        if not allowed:
            return self._deny(
                role_name,
                current_name,
                target_name,
                f"{role_name} cannot modify deals in {current_name} status "
                f"(requested {target_name})",
            )

        target_status = coerce_status(target)
        if target_status is None or target_status not in allowed:
            return self._deny(
                role_name,
                current_name,
                target_name,
                f"Cannot transition from {current_name} to {target_name} as {role_name}",
            )

        return TransitionDecision(allowed=True)

    def available_transitions(self, current: Any, role: Any) -> list[DealStatus]:
        """Statuses ``role`` may move a deal to from ``current``.

        Returns an empty list for terminal statuses, unknown values, and roles
        without edges from ``current``.
        """
        role_enum = coerce_role(role)
        current_status = coerce_status(current)
        if role_enum is None or current_status is None:
            return []
        return list(self._policy.allowed_from(role_enum, current_status) or ())

    def is_terminal(self, status: Any) -> bool:
        """True for statuses with no outgoing edges in the lifecycle graph."""
        current_status = coerce_status(status)
        if current_status is None:
            return False
        return not self._policy.transitions.get(current_status)

    def require_transition(self, current: Any, target: Any, role: Any) -> None:
        """Like can_transition, but raise on denial.

        Raises:
            InvalidStatusTransitionError: If the transition is denied.
        """
        decision = self.can_transition(current, target, role)
        if not decision.allowed:
            raise InvalidStatusTransitionError(
                role, current, target, decision.reason or "Transition denied"
            )

    def plan_transition(
        self,
        deal: DealRecord,
        target: Any,
        role: Any,
        changed_by: str,
        *,
        now: datetime | None = None,
        comments: str | None = None,
    ) -> StatusChange:
        """Validate a transition and describe the status-history entry to write.

        The returned StatusChange carries ``previous_status``, the status the
        caller must compare-and-set against when persisting.

        Raises:
            InvalidStatusTransitionError: If the transition is denied.
        """
        self.require_transition(deal.status, target, role)
        instant = as_utc(now) if now is not None else self._clock()
        change = StatusChange(
            deal_id=deal.id,
            status=target,
            previous_status=deal.status,
            changed_by=changed_by,
            comments=comments,
            changed_at=instant,
        )
        logger.info(
            "transition_guard.planned",
            deal_id=deal.id,
            from_status=change.previous_status.value,
            to_status=change.status.value,
            role=status_value(role),
            changed_by=changed_by,
        )
        return change

    @staticmethod
    def _deny(role: str, current: str, target: str, reason: str) -> TransitionDecision:
        logger.debug(
            "transition_guard.denied",
            role=role,
            from_status=current,
            to_status=target,
            reason=reason,
        )
        return TransitionDecision(allowed=False, reason=reason)


__all__ = [
    "DEFAULT_ROLE_PERMISSIONS",
    "DEFAULT_STATUS_TRANSITIONS",
    "InvalidStatusTransitionError",
    "StatusTransitionGuard",
    "TransitionConfigError",
    "TransitionPolicy",
    "get_default_policy",
    "validate_transition_config",
]
