"""Central model registry — import all models so Alembic autodiscover works."""

from hr_api.database import Base  # noqa: F401

from hr_api.models.employee import Employee  # noqa: F401
from hr_api.models.approval import Approval, ApprovalStep, ApprovalStatus  # noqa: F401
from hr_api.models.leave_request import LeaveRequest, LeaveStatus, LeaveType  # noqa: F401
