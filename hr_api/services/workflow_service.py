"""
Workflow service — sequential multi-approver chains for any entity.

An Approval owns total_steps ApprovalStep rows (step_number 1..N). Only the
step whose step_number equals approval.current_step may be decided:
  approve, not last step  → current_step += 1, record stays pending
  approve, last step      → record approved (approver_id, approved_at stamped)
  reject, any step        → record rejected at once, later steps untouched

Decisions lock the record row (SELECT FOR UPDATE) and write with a
compare-and-swap on (status, current_step), so two concurrent deciders
can never both advance the same step.

All functions use the caller's session (no commit). get_db() auto-commits.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select, func, update, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
import structlog

from hr_api.exceptions import (
    ApprovalForbiddenError,
    ApprovalNotFoundError,
    ApproverNotFoundError,
    DuplicateApprovalError,
    InternalInconsistencyError,
    InvalidApprovalChainError,
    InvalidStateError,
)
from hr_api.models.approval import Approval, ApprovalStep, ApprovalStatus
from hr_api.models.employee import Employee

logger = structlog.get_logger()

PENDING = ApprovalStatus.PENDING.value
APPROVED = ApprovalStatus.APPROVED.value
REJECTED = ApprovalStatus.REJECTED.value


@dataclass
class ApprovalStats:
    awaiting_my_action: int
    approved_by_me: int
    rejected_by_me: int
    my_requests_pending: int


async def _load_approval(
    session: AsyncSession, approval_id: str, for_update: bool = False
) -> Optional[Approval]:
    """Fetch one approval with its ordered steps, bypassing stale identity-map state."""
    stmt = (
        select(Approval)
        .where(Approval.id == approval_id)
        .options(selectinload(Approval.steps))
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def _find_by_entity(
    session: AsyncSession, entity_type: str, entity_id: str, for_update: bool = False
) -> Optional[Approval]:
    stmt = (
        select(Approval)
        .where(
            Approval.entity_type == entity_type,
            Approval.entity_id == str(entity_id),
        )
        .options(selectinload(Approval.steps))
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


# ---------- creation ----------


async def create_approval(
    session: AsyncSession,
    entity_type: str,
    entity_id: str,
    requester_id: str,
    approver_ids: Sequence[str],
    comments: Optional[str] = None,
) -> Approval:
    """
    Open an approval for the entity with one pending step per approver,
    in the order given. Record and steps are flushed together.
    """
    approver_ids = [str(a) for a in approver_ids]
    if not approver_ids:
        raise InvalidApprovalChainError("At least one approver is required")

    if await _find_by_entity(session, entity_type, entity_id):
        raise DuplicateApprovalError(entity_type, str(entity_id))

    found = await session.execute(
        select(Employee.id).where(
            Employee.id.in_(set(approver_ids)),
            Employee.deleted_at == None,  # noqa: E711
        )
    )
    found_ids = set(found.scalars().all())
    for approver_id in approver_ids:
        if approver_id not in found_ids:
            raise ApproverNotFoundError(approver_id)

    approval = Approval(
        entity_type=entity_type,
        entity_id=str(entity_id),
        requester_id=str(requester_id),
        total_steps=len(approver_ids),
        current_step=1,
        status=PENDING,
        comments=comments,
        steps=[
            ApprovalStep(step_number=index + 1, approver_id=approver_id, status=PENDING)
            for index, approver_id in enumerate(approver_ids)
        ],
    )

    try:
        async with session.begin_nested():
            session.add(approval)
    except IntegrityError:
        # Lost a creation race against another request for the same entity.
        if await _find_by_entity(session, entity_type, entity_id):
            raise DuplicateApprovalError(entity_type, str(entity_id))
        raise

    logger.info(
        "approval_created",
        approval_id=approval.id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        steps=approval.total_steps,
    )
    return await find_approval_by_id(session, approval.id)


# ---------- queries ----------


async def find_all_approvals(
    session: AsyncSession,
    requester_id: Optional[str] = None,
    approver_id: Optional[str] = None,
    status: Optional[str] = None,
    entity_type: Optional[str] = None,
    skip: int = 0,
    take: int = 20,
) -> tuple[list[Approval], int]:
    """Filtered page of approvals, newest first. approver_id matches any step."""
    q = select(Approval)
    count_q = select(func.count(Approval.id))

    if requester_id:
        q = q.where(Approval.requester_id == requester_id)
        count_q = count_q.where(Approval.requester_id == requester_id)
    if status:
        q = q.where(Approval.status == status)
        count_q = count_q.where(Approval.status == status)
    if entity_type:
        q = q.where(Approval.entity_type == entity_type)
        count_q = count_q.where(Approval.entity_type == entity_type)
    if approver_id:
        in_chain = Approval.steps.any(ApprovalStep.approver_id == approver_id)
        q = q.where(in_chain)
        count_q = count_q.where(in_chain)

    total = (await session.execute(count_q)).scalar() or 0
    result = await session.execute(
        q.options(selectinload(Approval.steps))
        .order_by(Approval.created_at.desc(), Approval.id)
        .offset(skip)
        .limit(take)
    )
    return list(result.scalars().all()), total


async def find_approval_by_id(session: AsyncSession, approval_id: str) -> Approval:
    approval = await _load_approval(session, approval_id)
    if not approval:
        raise ApprovalNotFoundError(approval_id)
    return approval


def _awaiting_decision_join():
    return and_(
        ApprovalStep.approval_id == Approval.id,
        ApprovalStep.step_number == Approval.current_step,
    )


async def get_pending_approvals_for_user(
    session: AsyncSession, approver_id: str
) -> list[Approval]:
    """Pending approvals whose current step is assigned to approver_id, oldest first."""
    result = await session.execute(
        select(Approval)
        .join(ApprovalStep, _awaiting_decision_join())
        .where(
            Approval.status == PENDING,
            ApprovalStep.approver_id == approver_id,
            ApprovalStep.status == PENDING,
        )
        .options(selectinload(Approval.steps))
        .order_by(Approval.created_at.asc(), Approval.id)
    )
    return list(result.scalars().all())


async def get_approval_history(
    session: AsyncSession, entity_type: str, entity_id: str, for_update: bool = False
) -> Optional[Approval]:
    """The entity's approval or None. for_update locks the record row."""
    return await _find_by_entity(session, entity_type, entity_id, for_update)


async def get_approval_stats(session: AsyncSession, employee_id: str) -> ApprovalStats:
    awaiting = await session.execute(
        select(func.count(Approval.id))
        .select_from(Approval)
        .join(ApprovalStep, _awaiting_decision_join())
        .where(
            Approval.status == PENDING,
            ApprovalStep.approver_id == employee_id,
            ApprovalStep.status == PENDING,
        )
    )
    decided = await session.execute(
        select(ApprovalStep.status, func.count(ApprovalStep.id))
        .where(
            ApprovalStep.approver_id == employee_id,
            ApprovalStep.status.in_([APPROVED, REJECTED]),
        )
        .group_by(ApprovalStep.status)
    )
    decided_counts = {row[0]: row[1] for row in decided.all()}
    requested = await session.execute(
        select(func.count(Approval.id)).where(
            Approval.requester_id == employee_id,
            Approval.status == PENDING,
        )
    )
    return ApprovalStats(
        awaiting_my_action=awaiting.scalar() or 0,
        approved_by_me=decided_counts.get(APPROVED, 0),
        rejected_by_me=decided_counts.get(REJECTED, 0),
        my_requests_pending=requested.scalar() or 0,
    )


# ---------- decisions ----------


def _current_step(
    approval: Optional[Approval], approval_id: str, approver_id: str, action: str
) -> ApprovalStep:
    """Run the decision preconditions in order and return the decidable step."""
    if not approval:
        raise ApprovalNotFoundError(approval_id)

    if approval.status != PENDING:
        raise InvalidStateError(
            "Approval is not in pending state",
            {"approval_id": approval_id, "status": approval.status},
        )

    current = None
    for s in approval.steps:
        if s.step_number == approval.current_step:
            current = s
            break

    if not current:
        logger.error(
            "approval_current_step_missing",
            approval_id=approval_id,
            current_step=approval.current_step,
        )
        raise InternalInconsistencyError(
            f"No step {approval.current_step} found for approval {approval_id}"
        )

    if str(current.approver_id) != str(approver_id):
        raise ApprovalForbiddenError(
            f"You are not authorized to {action} this step",
            {"approval_id": approval_id, "step_number": current.step_number},
        )

    if current.status != PENDING:
        raise InvalidStateError(
            "This step has already been processed",
            {"approval_id": approval_id, "step_number": current.step_number},
        )

    return current


async def _swap_record(
    session: AsyncSession, approval: Approval, expected_step: int, values: dict
) -> None:
    result = await session.execute(
        update(Approval)
        .where(
            Approval.id == approval.id,
            Approval.status == PENDING,
            Approval.current_step == expected_step,
        )
        .values(updated_at=datetime.utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning(
            "approval_concurrent_update",
            approval_id=approval.id,
            expected_step=expected_step,
        )
        raise InvalidStateError(
            "Approval was modified by another request",
            {"approval_id": approval.id},
        )


async def _decide_step(
    session: AsyncSession,
    step: ApprovalStep,
    decision: str,
    comments: Optional[str],
    decided_at: datetime,
) -> None:
    result = await session.execute(
        update(ApprovalStep)
        .where(ApprovalStep.id == step.id, ApprovalStep.status == PENDING)
        .values(status=decision, comments=comments, approved_at=decided_at)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidStateError(
            "This step has already been processed",
            {"step_number": step.step_number},
        )


async def approve_step(
    session: AsyncSession,
    approval_id: str,
    approver_id: str,
    comments: Optional[str] = None,
) -> Approval:
    """
    Approve the current step.

    Advances current_step by one, or finalizes the record as approved when
    the current step is the last one.
    """
    approval = await _load_approval(session, approval_id, for_update=True)
    step = _current_step(approval, approval_id, approver_id, "approve")

    now = datetime.utcnow()
    expected_step = approval.current_step
    is_final = expected_step >= approval.total_steps

    if is_final:
        values = {"status": APPROVED, "approver_id": str(approver_id), "approved_at": now}
    else:
        values = {"current_step": expected_step + 1}

    await _swap_record(session, approval, expected_step, values)
    await _decide_step(session, step, APPROVED, comments, now)
    await session.flush()

    if is_final:
        logger.info("approval_approved", approval_id=approval_id, approver_id=approver_id)
    else:
        logger.info(
            "approval_step_approved",
            approval_id=approval_id,
            step=expected_step,
            approver_id=approver_id,
        )
    return await find_approval_by_id(session, approval_id)


async def reject_approval(
    session: AsyncSession,
    approval_id: str,
    approver_id: str,
    comments: str,
) -> Approval:
    """Reject the current step, which rejects the whole approval.

    The rejection reason becomes the record's comments.
    """
    approval = await _load_approval(session, approval_id, for_update=True)
    step = _current_step(approval, approval_id, approver_id, "reject")

    now = datetime.utcnow()
    values = {
        "status": REJECTED,
        "approver_id": str(approver_id),
        "approved_at": now,
        "comments": comments,
    }

    await _swap_record(session, approval, approval.current_step, values)
    await _decide_step(session, step, REJECTED, comments, now)
    await session.flush()

    logger.info(
        "approval_rejected",
        approval_id=approval_id,
        step=step.step_number,
        approver_id=approver_id,
    )
    return await find_approval_by_id(session, approval_id)


# ---------- purge ----------


async def delete_approvals_for_entity(
    session: AsyncSession, entity_type: str, entity_id: str
) -> int:
    """Delete the entity's approval (and its steps) so a fresh one can be opened."""
    result = await session.execute(
        select(Approval)
        .where(
            Approval.entity_type == entity_type,
            Approval.entity_id == str(entity_id),
        )
        .options(selectinload(Approval.steps))
    )
    approvals = list(result.scalars().all())
    for approval in approvals:
        await session.delete(approval)
    await session.flush()

    if approvals:
        logger.info(
            "approvals_deleted",
            entity_type=entity_type,
            entity_id=str(entity_id),
            count=len(approvals),
        )
    return len(approvals)
