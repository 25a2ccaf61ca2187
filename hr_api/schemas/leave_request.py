from datetime import date
from typing import Dict, Optional
from pydantic import BaseModel, Field

from hr_api.models.leave_request import LeaveType


class LeaveRequestCreate(BaseModel):
    leave_type: LeaveType
    start_date: date
    end_date: date
    reason: Optional[str] = Field(None, max_length=500)


class LeaveRequestResponse(BaseModel):
    id: str
    employee_id: str
    leave_type: str
    start_date: date
    end_date: date
    days: int
    reason: Optional[str] = None
    status: str
    decided_at: Optional[str] = None
    created_at: str
    approval_id: Optional[str] = None


class LeaveSummaryResponse(BaseModel):
    employee_id: str
    year: int
    total_requests: int
    approved_requests: int
    rejected_requests: int
    pending_requests: int
    total_days_taken: int
    by_type: Dict[str, int]
