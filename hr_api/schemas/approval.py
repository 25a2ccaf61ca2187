from typing import List, Optional
from pydantic import BaseModel, Field


class ApprovalCreate(BaseModel):
    entity_type: str = Field(..., min_length=1, max_length=50)
    entity_id: str = Field(..., min_length=1, max_length=64)
    approver_ids: List[str] = Field(..., min_length=1, max_length=20)
    comments: Optional[str] = Field(None, max_length=1000)


class ApprovalActionRequest(BaseModel):
    comments: Optional[str] = Field(None, max_length=500)


class ApprovalRejectRequest(BaseModel):
    comments: str = Field(..., min_length=1, max_length=500)


class ApprovalStepResponse(BaseModel):
    id: str
    step_number: int
    approver_id: str
    approver_name: Optional[str] = None
    status: str
    comments: Optional[str] = None
    approved_at: Optional[str] = None


class ApprovalResponse(BaseModel):
    id: str
    entity_type: str
    entity_id: str
    requester_id: str
    requester_name: Optional[str] = None
    approver_id: Optional[str] = None
    total_steps: int
    current_step: int
    status: str
    comments: Optional[str] = None
    approved_at: Optional[str] = None
    created_at: str
    steps: List[ApprovalStepResponse] = []


class ApprovalStatsResponse(BaseModel):
    awaiting_my_action: int
    approved_by_me: int
    rejected_by_me: int
    my_requests_pending: int


class ApprovalPurgeResponse(BaseModel):
    deleted: int
