"""
Pass Request Workflow

Role-gated status transitions and reviewer queues.

Approval chains:
    outing:      pending --warden--> warden_approved
    home_visit:  pending --hod--> hod_approved --warden--> warden_approved

A reviewer who may approve a step may also decline it. warden_approved and
declined are terminal.
"""

from datetime import datetime
from typing import Any

from hostel_pass.core.auth import CurrentUser
from hostel_pass.modules.directory.models import UserRole
from hostel_pass.modules.pass_requests.expiry import PASS_VALIDITY
from hostel_pass.modules.pass_requests.models import (
    AssignedHod,
    AssignedWarden,
    DecisionAction,
    DeclinedBy,
    PassRequest,
    PassStatus,
    PassType,
    format_timestamp,
)

# (reviewer role, request type, current status, action) -> new status
TRANSITIONS: dict[tuple[UserRole, PassType, PassStatus, DecisionAction], PassStatus] = {
    (UserRole.WARDEN, PassType.OUTING, PassStatus.PENDING, DecisionAction.APPROVE): (
        PassStatus.WARDEN_APPROVED
    ),
    (UserRole.WARDEN, PassType.OUTING, PassStatus.PENDING, DecisionAction.DECLINE): (
        PassStatus.DECLINED
    ),
    (UserRole.HOD, PassType.HOME_VISIT, PassStatus.PENDING, DecisionAction.APPROVE): (
        PassStatus.HOD_APPROVED
    ),
    (UserRole.HOD, PassType.HOME_VISIT, PassStatus.PENDING, DecisionAction.DECLINE): (
        PassStatus.DECLINED
    ),
    (UserRole.WARDEN, PassType.HOME_VISIT, PassStatus.HOD_APPROVED, DecisionAction.APPROVE): (
        PassStatus.WARDEN_APPROVED
    ),
    (UserRole.WARDEN, PassType.HOME_VISIT, PassStatus.HOD_APPROVED, DecisionAction.DECLINE): (
        PassStatus.DECLINED
    ),
}

DECLINABLE_STATUSES = frozenset({PassStatus.PENDING, PassStatus.HOD_APPROVED})


def next_status(
    role: UserRole,
    pass_type: PassType,
    status: PassStatus,
    action: DecisionAction,
) -> PassStatus | None:
    """Return the status an action leads to, or None if it is not allowed."""
    return TRANSITIONS.get((role, pass_type, status, action))


def can_decline(status: PassStatus) -> bool:
    """Declining is possible before the warden's final approval only."""
    return status in DECLINABLE_STATUSES


def decision_fields(
    request: PassRequest,
    reviewer: CurrentUser,
    new_status: PassStatus,
    now: datetime,
) -> dict[str, Any]:
    """
    Build the stored fields written alongside a status change.

    Approvals stamp the approver; the warden's final approval also grants the
    pass for 24 hours. Declines record who declined and when.
    """
    fields: dict[str, Any] = {"status": new_status.value}

    if new_status == PassStatus.DECLINED:
        fields["declinedBy"] = DeclinedBy(
            username=reviewer.username,
            name=reviewer.name,
            role=reviewer.role.value,
        ).model_dump()
        fields["declinedAt"] = format_timestamp(now)
    elif new_status == PassStatus.HOD_APPROVED:
        fields["hodApprovedBy"] = AssignedHod(
            username=reviewer.username,
            name=reviewer.name or reviewer.username,
            department=reviewer.department or (request.department or ""),
        ).model_dump()
    elif new_status == PassStatus.WARDEN_APPROVED:
        fields["wardenApprovedBy"] = AssignedWarden(
            username=reviewer.username,
            name=reviewer.name or reviewer.username,
            block=reviewer.block or (request.block or ""),
        ).model_dump()
        fields["grantedAt"] = format_timestamp(now)
        fields["expiresAt"] = format_timestamp(now + PASS_VALIDITY)

    return fields


# ============================================
# Queues
# ============================================


def _reached_warden(request: PassRequest) -> bool:
    # Home visits declined by the HOD never reach the warden
    return request.hod_approved_by is not None or request.status in (
        PassStatus.HOD_APPROVED,
        PassStatus.WARDEN_APPROVED,
    )


def is_visible_to(request: PassRequest, reviewer: CurrentUser) -> bool:
    """
    Check whether a request belongs in a reviewer's queue.

    HODs see home visits assigned to them or unassigned. Wardens see outings
    and home visits past the HOD step, assigned to them or unassigned.
    """
    if reviewer.role == UserRole.HOD:
        if request.type != PassType.HOME_VISIT:
            return False
        assigned = request.assigned_hod
        return assigned is None or assigned.username == reviewer.username

    if reviewer.role == UserRole.WARDEN:
        if request.type == PassType.HOME_VISIT and not _reached_warden(request):
            return False
        assigned = request.assigned_warden
        return assigned is None or assigned.username == reviewer.username

    return False


def is_actionable_by(request: PassRequest, reviewer: CurrentUser) -> bool:
    """Check whether a reviewer can act on a request right now."""
    if not is_visible_to(request, reviewer):
        return False
    return any(
        next_status(reviewer.role, request.type, request.status, action) is not None
        for action in DecisionAction
    )
