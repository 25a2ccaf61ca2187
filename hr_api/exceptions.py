"""
Typed errors raised by the workflow and leave services.

Services raise these; main.py maps them to the
{"error": {"code": "...", "message": "..."}} response shape using
each class's status_code.
"""

from typing import Optional


class WorkflowError(Exception):
    """Base for every domain error surfaced to the HTTP layer."""

    code: str = "WORKFLOW_ERROR"
    status_code: int = 400

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        error = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"error": error}


# ---------- approvals ----------


class ApprovalNotFoundError(WorkflowError):
    code = "APPROVAL_NOT_FOUND"
    status_code = 404

    def __init__(self, approval_id: str):
        self.approval_id = approval_id
        super().__init__(
            f"Approval with ID {approval_id} not found",
            {"approval_id": approval_id},
        )


class ApproverNotFoundError(WorkflowError):
    code = "APPROVER_NOT_FOUND"
    status_code = 404

    def __init__(self, approver_id: str):
        self.approver_id = approver_id
        super().__init__(
            f"Approver with ID {approver_id} not found",
            {"approver_id": approver_id},
        )


class DuplicateApprovalError(WorkflowError):
    code = "APPROVAL_ALREADY_EXISTS"
    status_code = 409

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            "Approval already exists for this entity",
            {"entity_type": entity_type, "entity_id": entity_id},
        )


class InvalidApprovalChainError(WorkflowError):
    code = "APPROVAL_CHAIN_INVALID"
    status_code = 422


class InvalidStateError(WorkflowError):
    """Decision attempted on a finalized record or an already decided step."""

    code = "APPROVAL_INVALID_STATE"
    status_code = 409


class ApprovalForbiddenError(WorkflowError):
    code = "APPROVAL_NOT_YOUR_TURN"
    status_code = 403


class ReservedEntityTypeError(WorkflowError):
    """Entity type whose approvals only its owning module may open."""

    code = "APPROVAL_ENTITY_RESERVED"
    status_code = 403

    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        super().__init__(
            f"Approvals for '{entity_type}' are opened by their own module",
            {"entity_type": entity_type},
        )


class InternalInconsistencyError(WorkflowError):
    """No step matches the record's current_step pointer."""

    code = "APPROVAL_INCONSISTENT"
    status_code = 500


# ---------- leave requests ----------


class LeaveRequestNotFoundError(WorkflowError):
    code = "LEAVE_REQUEST_NOT_FOUND"
    status_code = 404

    def __init__(self, leave_request_id: str):
        self.leave_request_id = leave_request_id
        super().__init__(
            f"Leave request with ID {leave_request_id} not found",
            {"leave_request_id": leave_request_id},
        )


class InvalidLeaveRequestError(WorkflowError):
    code = "INVALID_LEAVE_REQUEST"
    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message, {"field": field} if field else None)


class LeaveRequestAlreadyProcessedError(WorkflowError):
    code = "LEAVE_REQUEST_ALREADY_PROCESSED"
    status_code = 409

    def __init__(self, leave_request_id: str, current_status: str):
        self.current_status = current_status
        super().__init__(
            f"Leave request {leave_request_id} has already been {current_status}",
            {"leave_request_id": leave_request_id, "current_status": current_status},
        )


class LeaveRequestForbiddenError(WorkflowError):
    code = "LEAVE_REQUEST_FORBIDDEN"
    status_code = 403


class LeaveApproverNotConfiguredError(WorkflowError):
    code = "LEAVE_APPROVER_NOT_CONFIGURED"
    status_code = 422
