"""
Leave service — leave request rules and the hand-off to the workflow engine.

Submitting a leave request opens a single-step approval
(entity_type "leave_request") with the HR approver as the sole step.
Once that approval is approved or rejected, apply_approval_outcome copies
the terminal status onto the leave request.

Lock order is approval row first, then leave row, on every path that
writes both (decision + outcome, cancel, reset).

All functions use the caller's session (no commit). get_db() auto-commits.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from hr_api.config import settings
from hr_api.exceptions import (
    InvalidLeaveRequestError,
    LeaveApproverNotConfiguredError,
    LeaveRequestAlreadyProcessedError,
    LeaveRequestForbiddenError,
    LeaveRequestNotFoundError,
)
from hr_api.models.approval import Approval, ApprovalStatus, TERMINAL_STATUSES
from hr_api.models.employee import Employee
from hr_api.models.leave_request import (
    LEAVE_REQUEST_ENTITY,
    LeaveRequest,
    LeaveStatus,
    LeaveType,
)
from hr_api.services import workflow_service

logger = structlog.get_logger()

MAX_REASON_LENGTH = 500

# Roles allowed to decide any leave request, on top of the configured approver.
LEAVE_DECIDER_ROLES = ("admin", "hr")


@dataclass
class LeaveSummary:
    employee_id: str
    year: int
    total_requests: int
    approved_requests: int
    rejected_requests: int
    pending_requests: int
    total_days_taken: int
    by_type: dict[str, int] = field(default_factory=dict)


def calculate_leave_days(start_date: date, end_date: date) -> int:
    """Inclusive number of calendar days between start and end."""
    return (end_date - start_date).days + 1


def validate_leave_request(
    employee_id: str,
    start_date: date,
    end_date: date,
    leave_type: str,
    reason: Optional[str] = None,
    today: Optional[date] = None,
) -> None:
    if not employee_id or not str(employee_id).strip():
        raise InvalidLeaveRequestError("Employee ID is required", "employee_id")

    today = today or date.today()
    if start_date < today:
        raise InvalidLeaveRequestError("Start date cannot be in the past", "start_date")
    if end_date < start_date:
        raise InvalidLeaveRequestError("End date cannot be before start date", "end_date")
    if (end_date - start_date).days > settings.LEAVE_MAX_DAYS:
        raise InvalidLeaveRequestError(
            f"Leave request cannot exceed {settings.LEAVE_MAX_DAYS} days", "date_range"
        )

    valid_types = [t.value for t in LeaveType]
    if leave_type not in valid_types:
        raise InvalidLeaveRequestError(
            f"Invalid leave type. Must be one of: {', '.join(valid_types)}",
            "leave_type",
        )

    if reason is not None and len(reason) > MAX_REASON_LENGTH:
        raise InvalidLeaveRequestError(
            f"Reason cannot exceed {MAX_REASON_LENGTH} characters", "reason"
        )


async def resolve_leave_approver(session: AsyncSession) -> Employee:
    """Configured approver email if set, otherwise first active employee with the approver role."""
    q = select(Employee).where(
        Employee.is_active == True,  # noqa: E712
        Employee.deleted_at == None,  # noqa: E711
    )
    if settings.LEAVE_APPROVER_EMAIL:
        q = q.where(Employee.email == settings.LEAVE_APPROVER_EMAIL)
    else:
        q = q.where(Employee.role == settings.LEAVE_APPROVER_ROLE)

    result = await session.execute(q.order_by(Employee.created_at, Employee.id))
    approver = result.scalars().first()
    if not approver:
        raise LeaveApproverNotConfiguredError(
            "No active leave approver found. Set LEAVE_APPROVER_EMAIL "
            f"or create an active '{settings.LEAVE_APPROVER_ROLE}' employee."
        )
    return approver


def _approval_comment(leave: LeaveRequest) -> str:
    return (
        f"Leave request for {leave.days} day(s) from "
        f"{leave.start_date.isoformat()} to {leave.end_date.isoformat()}"
    )


async def _has_overlap(
    session: AsyncSession, employee_id: str, start_date: date, end_date: date
) -> bool:
    result = await session.execute(
        select(LeaveRequest.id).where(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.status.in_(
                [LeaveStatus.PENDING.value, LeaveStatus.APPROVED.value]
            ),
            LeaveRequest.start_date <= end_date,
            LeaveRequest.end_date >= start_date,
        )
    )
    return result.first() is not None


async def submit_leave_request(
    session: AsyncSession,
    employee_id: str,
    leave_type: str,
    start_date: date,
    end_date: date,
    reason: Optional[str] = None,
) -> LeaveRequest:
    """Create a pending leave request and open its approval."""
    validate_leave_request(employee_id, start_date, end_date, leave_type, reason)

    employee = await session.get(Employee, employee_id)
    if not employee or not employee.is_active:
        raise InvalidLeaveRequestError("Employee not found", "employee_id")

    if await _has_overlap(session, employee_id, start_date, end_date):
        raise InvalidLeaveRequestError(
            "Employee already has a leave request for this period", "date_range"
        )

    approver = await resolve_leave_approver(session)

    leave = LeaveRequest(
        employee_id=employee_id,
        leave_type=leave_type,
        start_date=start_date,
        end_date=end_date,
        days=calculate_leave_days(start_date, end_date),
        reason=reason,
        status=LeaveStatus.PENDING.value,
    )
    session.add(leave)
    await session.flush()

    await workflow_service.create_approval(
        session,
        entity_type=LEAVE_REQUEST_ENTITY,
        entity_id=leave.id,
        requester_id=employee_id,
        approver_ids=[approver.id],
        comments=_approval_comment(leave),
    )

    logger.info(
        "leave_request_submitted",
        leave_request_id=leave.id,
        employee_id=employee_id,
        days=leave.days,
        approver_id=approver.id,
    )
    return leave


async def get_leave_request(session: AsyncSession, leave_request_id: str) -> LeaveRequest:
    leave = await session.get(LeaveRequest, leave_request_id)
    if not leave:
        raise LeaveRequestNotFoundError(leave_request_id)
    return leave


async def list_leave_requests(
    session: AsyncSession,
    employee_id: Optional[str] = None,
    status: Optional[str] = None,
) -> list[LeaveRequest]:
    q = select(LeaveRequest)
    if employee_id:
        q = q.where(LeaveRequest.employee_id == employee_id)
    if status:
        q = q.where(LeaveRequest.status == status)
    result = await session.execute(
        q.order_by(LeaveRequest.created_at.desc(), LeaveRequest.id)
    )
    return list(result.scalars().all())


async def get_leave_summary(
    session: AsyncSession, employee_id: str, year: int
) -> LeaveSummary:
    """
    Yearly leave figures for one employee. A request counts towards the
    year its start date falls in; days taken only include approved leave.
    """
    result = await session.execute(
        select(LeaveRequest).where(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.start_date >= date(year, 1, 1),
            LeaveRequest.start_date <= date(year, 12, 31),
        )
    )
    requests = list(result.scalars().all())
    approved = [r for r in requests if r.status == LeaveStatus.APPROVED.value]

    by_type = {t.value: 0 for t in LeaveType}
    for r in approved:
        by_type[r.leave_type] = by_type.get(r.leave_type, 0) + r.days

    return LeaveSummary(
        employee_id=employee_id,
        year=year,
        total_requests=len(requests),
        approved_requests=len(approved),
        rejected_requests=sum(1 for r in requests if r.status == LeaveStatus.REJECTED.value),
        pending_requests=sum(1 for r in requests if r.status == LeaveStatus.PENDING.value),
        total_days_taken=sum(r.days for r in approved),
        by_type=by_type,
    )


async def _lock_leave(session: AsyncSession, leave_request_id: str) -> Optional[LeaveRequest]:
    result = await session.execute(
        select(LeaveRequest)
        .where(LeaveRequest.id == leave_request_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _decided_by_leave_approver(
    session: AsyncSession, approval: Approval, leave: LeaveRequest
) -> bool:
    """The approval was requested by the leave's owner and decided by a leave approver."""
    if str(approval.requester_id) != str(leave.employee_id) or not approval.approver_id:
        return False
    decider = await session.get(Employee, approval.approver_id)
    if not decider:
        return False
    if decider.role in LEAVE_DECIDER_ROLES:
        return True
    if settings.LEAVE_APPROVER_EMAIL:
        return decider.email == settings.LEAVE_APPROVER_EMAIL
    return decider.role == settings.LEAVE_APPROVER_ROLE


async def apply_approval_outcome(
    session: AsyncSession, approval: Approval
) -> Optional[LeaveRequest]:
    """
    Copy a terminal approval status onto its leave request.

    No-op for other entity types and for approvals still pending; repeated
    calls with the same outcome are harmless. The approval row must already
    be locked by the caller (approve_step / reject_approval do this).
    """
    if approval.entity_type != LEAVE_REQUEST_ENTITY:
        return None
    if approval.status not in TERMINAL_STATUSES:
        return None

    leave = await _lock_leave(session, approval.entity_id)
    if not leave:
        logger.warning(
            "leave_request_missing_for_approval",
            approval_id=approval.id,
            leave_request_id=approval.entity_id,
        )
        return None

    if not await _decided_by_leave_approver(session, approval, leave):
        logger.warning(
            "leave_approval_rejected_untrusted",
            approval_id=approval.id,
            leave_request_id=leave.id,
            requester_id=approval.requester_id,
            approver_id=approval.approver_id,
        )
        raise LeaveRequestForbiddenError(
            "This approval is not allowed to decide the leave request"
        )

    if leave.status == approval.status:
        return leave
    if leave.status != LeaveStatus.PENDING.value:
        raise LeaveRequestAlreadyProcessedError(leave.id, leave.status)

    leave.status = approval.status
    leave.decided_at = approval.approved_at or datetime.utcnow()
    await session.flush()

    logger.info(
        "leave_request_decided",
        leave_request_id=leave.id,
        status=leave.status,
        approver_id=approval.approver_id,
    )
    return leave


async def cancel_leave_request(
    session: AsyncSession, leave_request_id: str, employee_id: str
) -> LeaveRequest:
    """Cancel a pending leave request and drop its still-open approval."""
    approval = await workflow_service.get_approval_history(
        session, LEAVE_REQUEST_ENTITY, leave_request_id, for_update=True
    )
    leave = await _lock_leave(session, leave_request_id)
    if not leave:
        raise LeaveRequestNotFoundError(leave_request_id)

    if str(leave.employee_id) != str(employee_id):
        raise LeaveRequestForbiddenError(
            "Only the requesting employee can cancel this leave request"
        )

    if leave.status == LeaveStatus.CANCELLED.value:
        return leave
    if leave.status != LeaveStatus.PENDING.value:
        raise InvalidLeaveRequestError(
            f"Cannot cancel an already {leave.status} leave request", "status"
        )
    if approval and approval.status != ApprovalStatus.PENDING.value:
        raise InvalidLeaveRequestError(
            f"Cannot cancel a leave request whose approval is already {approval.status}",
            "status",
        )

    leave.status = LeaveStatus.CANCELLED.value
    await workflow_service.delete_approvals_for_entity(
        session, LEAVE_REQUEST_ENTITY, leave.id
    )
    await session.flush()

    logger.info("leave_request_cancelled", leave_request_id=leave.id)
    return leave


async def reset_leave_approvals(session: AsyncSession) -> int:
    """
    Delete and recreate the approval of every pending leave request so that
    the current leave approver owns it. Approvals already decided are left
    alone. Returns the number recreated.
    """
    approver = await resolve_leave_approver(session)
    pending = await list_leave_requests(session, status=LeaveStatus.PENDING.value)

    recreated = 0
    for leave in pending:
        current = await workflow_service.get_approval_history(
            session, LEAVE_REQUEST_ENTITY, leave.id, for_update=True
        )
        if current and current.status != ApprovalStatus.PENDING.value:
            logger.warning(
                "leave_approval_reset_skipped",
                leave_request_id=leave.id,
                approval_status=current.status,
            )
            continue

        await workflow_service.delete_approvals_for_entity(
            session, LEAVE_REQUEST_ENTITY, leave.id
        )
        await workflow_service.create_approval(
            session,
            entity_type=LEAVE_REQUEST_ENTITY,
            entity_id=leave.id,
            requester_id=leave.employee_id,
            approver_ids=[approver.id],
            comments=_approval_comment(leave),
        )
        recreated += 1

    logger.info("leave_approvals_reset", approver_id=approver.id, count=recreated)
    return recreated
