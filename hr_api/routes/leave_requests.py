"""Leave request routes — submit (opens an approval), list, summary, view, cancel."""

from dataclasses import asdict
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from hr_api.database import get_db
from hr_api.middleware.auth import get_current_user
from hr_api.middleware.authorization import has_role_at_least
from hr_api.exceptions import LeaveRequestForbiddenError
from hr_api.models.leave_request import LEAVE_REQUEST_ENTITY, LeaveRequest
from hr_api.schemas.leave_request import (
    LeaveRequestCreate,
    LeaveRequestResponse,
    LeaveSummaryResponse,
)
from hr_api.services import leave_service, workflow_service

logger = structlog.get_logger()
router = APIRouter()


async def _to_response(db: AsyncSession, leave: LeaveRequest) -> LeaveRequestResponse:
    approval = await workflow_service.get_approval_history(
        db, LEAVE_REQUEST_ENTITY, leave.id
    )
    return LeaveRequestResponse(
        id=leave.id,
        employee_id=leave.employee_id,
        leave_type=leave.leave_type,
        start_date=leave.start_date,
        end_date=leave.end_date,
        days=leave.days,
        reason=leave.reason,
        status=leave.status,
        decided_at=leave.decided_at.isoformat() if leave.decided_at else None,
        created_at=leave.created_at.isoformat() if leave.created_at else "",
        approval_id=approval.id if approval else None,
    )


@router.post("", response_model=LeaveRequestResponse, status_code=status.HTTP_201_CREATED)
async def submit_leave_request(
    body: LeaveRequestCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    leave = await leave_service.submit_leave_request(
        db,
        employee_id=current_user["employee_id"],
        leave_type=body.leave_type.value,
        start_date=body.start_date,
        end_date=body.end_date,
        reason=body.reason,
    )
    return await _to_response(db, leave)


@router.get("", response_model=list[LeaveRequestResponse])
async def list_leave_requests(
    employee_id: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """HR sees everyone's requests; other callers only their own."""
    if not has_role_at_least(current_user, "hr"):
        employee_id = current_user["employee_id"]
    leaves = await leave_service.list_leave_requests(
        db, employee_id=employee_id, status=status_filter
    )
    return [await _to_response(db, leave) for leave in leaves]


@router.get("/summary/{employee_id}", response_model=LeaveSummaryResponse)
async def get_leave_summary(
    employee_id: str,
    year: Optional[int] = Query(None, ge=1900, le=9999),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Yearly request counts and approved days by type. Defaults to the current year."""
    if employee_id != current_user["employee_id"] and not has_role_at_least(
        current_user, "hr"
    ):
        raise LeaveRequestForbiddenError("You can only view your own leave summary")
    summary = await leave_service.get_leave_summary(
        db, employee_id, year or date.today().year
    )
    return LeaveSummaryResponse(**asdict(summary))


@router.get("/{leave_request_id}", response_model=LeaveRequestResponse)
async def get_leave_request(
    leave_request_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    leave = await leave_service.get_leave_request(db, leave_request_id)
    if leave.employee_id != current_user["employee_id"] and not has_role_at_least(
        current_user, "hr"
    ):
        raise LeaveRequestForbiddenError("You can only view your own leave requests")
    return await _to_response(db, leave)


@router.post("/{leave_request_id}/cancel", response_model=LeaveRequestResponse)
async def cancel_leave_request(
    leave_request_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    leave = await leave_service.cancel_leave_request(
        db, leave_request_id, current_user["employee_id"]
    )
    return await _to_response(db, leave)
