"""
Workflow API routes — open approvals, list and inspect them, approve or
reject the current step, and read an entity's approval history.
"""

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from hr_api.database import get_db
from hr_api.middleware.auth import get_current_user
from hr_api.exceptions import ReservedEntityTypeError
from hr_api.middleware.authorization import has_role_at_least, require_roles
from hr_api.models.approval import Approval
from hr_api.models.employee import Employee
from hr_api.models.leave_request import LEAVE_REQUEST_ENTITY
from hr_api.schemas.approval import (
    ApprovalActionRequest,
    ApprovalCreate,
    ApprovalPurgeResponse,
    ApprovalRejectRequest,
    ApprovalResponse,
    ApprovalStatsResponse,
    ApprovalStepResponse,
)
from hr_api.schemas.common import PaginatedResponse, build_pagination
from hr_api.services import leave_service, workflow_service

logger = structlog.get_logger()
router = APIRouter()


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


async def _employee_names(db: AsyncSession, approvals: list[Approval]) -> dict[str, str]:
    """Batch-load display names for requesters and step approvers."""
    ids = set()
    for a in approvals:
        ids.add(a.requester_id)
        ids.update(s.approver_id for s in a.steps)
    if not ids:
        return {}
    result = await db.execute(select(Employee).where(Employee.id.in_(ids)))
    return {e.id: e.full_name for e in result.scalars().all()}


def _to_response(a: Approval, names: dict[str, str]) -> ApprovalResponse:
    return ApprovalResponse(
        id=a.id,
        entity_type=a.entity_type,
        entity_id=a.entity_id,
        requester_id=a.requester_id,
        requester_name=names.get(a.requester_id),
        approver_id=a.approver_id,
        total_steps=a.total_steps,
        current_step=a.current_step,
        status=a.status,
        comments=a.comments,
        approved_at=_iso(a.approved_at),
        created_at=_iso(a.created_at) or "",
        steps=[
            ApprovalStepResponse(
                id=s.id,
                step_number=s.step_number,
                approver_id=s.approver_id,
                approver_name=names.get(s.approver_id),
                status=s.status,
                comments=s.comments,
                approved_at=_iso(s.approved_at),
            )
            for s in a.steps
        ],
    )


async def _respond(db: AsyncSession, approval: Approval) -> ApprovalResponse:
    names = await _employee_names(db, [approval])
    return _to_response(approval, names)


@router.post("/approvals", response_model=ApprovalResponse, status_code=status.HTTP_201_CREATED)
async def create_approval(
    body: ApprovalCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    # Leave approvals are opened by the leave module with the leave approver.
    if body.entity_type == LEAVE_REQUEST_ENTITY:
        raise ReservedEntityTypeError(body.entity_type)
    approval = await workflow_service.create_approval(
        db,
        entity_type=body.entity_type,
        entity_id=body.entity_id,
        requester_id=current_user["employee_id"],
        approver_ids=body.approver_ids,
        comments=body.comments,
    )
    return await _respond(db, approval)


@router.get("/approvals", response_model=PaginatedResponse[ApprovalResponse])
async def list_approvals(
    requester_id: Optional[str] = Query(None),
    approver_id: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    entity_type: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    take: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List approvals. Non-HR callers only see chains they requested or sit in."""
    me = current_user["employee_id"]
    if not has_role_at_least(current_user, "hr"):
        if requester_id not in (None, me) or approver_id not in (None, me):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": {
                        "code": "INSUFFICIENT_PERMISSIONS",
                        "message": "You can only list your own approvals",
                    }
                },
            )
        if requester_id is None and approver_id is None:
            approver_id = me

    approvals, total = await workflow_service.find_all_approvals(
        db,
        requester_id=requester_id,
        approver_id=approver_id,
        status=status_filter,
        entity_type=entity_type,
        skip=skip,
        take=take,
    )
    names = await _employee_names(db, approvals)
    return PaginatedResponse(
        data=[_to_response(a, names) for a in approvals],
        pagination=build_pagination(skip, take, total),
    )


@router.get("/approvals/pending", response_model=list[ApprovalResponse])
async def get_pending_approvals(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Approvals whose current step waits on the caller."""
    approvals = await workflow_service.get_pending_approvals_for_user(
        db, current_user["employee_id"]
    )
    names = await _employee_names(db, approvals)
    return [_to_response(a, names) for a in approvals]


@router.get("/approvals/stats", response_model=ApprovalStatsResponse)
async def get_approval_stats(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    stats = await workflow_service.get_approval_stats(db, current_user["employee_id"])
    return ApprovalStatsResponse(**asdict(stats))


@router.get("/approvals/{approval_id}", response_model=ApprovalResponse)
async def get_approval(
    approval_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    approval = await workflow_service.find_approval_by_id(db, approval_id)
    return await _respond(db, approval)


@router.post("/approvals/{approval_id}/approve", response_model=ApprovalResponse)
async def approve_step(
    approval_id: str,
    body: ApprovalActionRequest = ApprovalActionRequest(),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Approve the current step."""
    approval = await workflow_service.approve_step(
        db, approval_id, current_user["employee_id"], body.comments
    )
    # Final approval of a leave request → update the leave request status
    await leave_service.apply_approval_outcome(db, approval)
    return await _respond(db, approval)


@router.post("/approvals/{approval_id}/reject", response_model=ApprovalResponse)
async def reject_approval(
    approval_id: str,
    body: ApprovalRejectRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Reject the current step; the whole approval is rejected."""
    approval = await workflow_service.reject_approval(
        db, approval_id, current_user["employee_id"], body.comments
    )
    await leave_service.apply_approval_outcome(db, approval)
    return await _respond(db, approval)


@router.get("/history/{entity_type}/{entity_id}", response_model=Optional[ApprovalResponse])
async def get_approval_history(
    entity_type: str,
    entity_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    approval = await workflow_service.get_approval_history(db, entity_type, entity_id)
    if not approval:
        return None
    return await _respond(db, approval)


@router.delete("/history/{entity_type}/{entity_id}", response_model=ApprovalPurgeResponse)
async def purge_approval_history(
    entity_type: str,
    entity_id: str,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles("admin", "hr")),
    db: AsyncSession = Depends(get_db),
):
    deleted = await workflow_service.delete_approvals_for_entity(db, entity_type, entity_id)
    logger.info(
        "approval_history_purged",
        entity_type=entity_type,
        entity_id=entity_id,
        by=current_user["employee_id"],
    )
    return ApprovalPurgeResponse(deleted=deleted)
