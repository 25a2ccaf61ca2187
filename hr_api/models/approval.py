import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    Text,
    ForeignKey,
    CheckConstraint,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_api.database import Base, generate_id


class ApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


TERMINAL_STATUSES = {ApprovalStatus.APPROVED.value, ApprovalStatus.REJECTED.value}


class Approval(Base):
    """One approval process bound to one (entity_type, entity_id) pair."""

    __tablename__ = "approvals"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_id
    )
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    requester_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("employees.id"), nullable=False
    )
    # Final decider; stays NULL while pending.
    approver_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("employees.id")
    )
    total_steps: Mapped[int] = mapped_column(Integer, nullable=False)
    current_step: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ApprovalStatus.PENDING.value
    )
    comments: Mapped[Optional[str]] = mapped_column(Text)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    steps: Mapped[list["ApprovalStep"]] = relationship(
        back_populates="approval",
        order_by="ApprovalStep.step_number",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("entity_type", "entity_id", name="uq_approvals_entity"),
        CheckConstraint("total_steps > 0", name="chk_approval_total_steps_positive"),
        CheckConstraint(
            "current_step >= 1 AND current_step <= total_steps",
            name="chk_approval_current_step_range",
        ),
        Index("idx_approvals_requester", "requester_id"),
        Index("idx_approvals_status", "status"),
    )


class ApprovalStep(Base):
    __tablename__ = "approval_steps"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_id
    )
    approval_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("approvals.id", ondelete="CASCADE"), nullable=False
    )
    step_number: Mapped[int] = mapped_column(Integer, nullable=False)
    approver_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("employees.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ApprovalStatus.PENDING.value
    )
    comments: Mapped[Optional[str]] = mapped_column(Text)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )

    approval: Mapped[Approval] = relationship(back_populates="steps")

    __table_args__ = (
        UniqueConstraint("approval_id", "step_number", name="uq_approval_steps_number"),
        CheckConstraint("step_number > 0", name="chk_approval_step_number_positive"),
        Index("idx_approval_steps_approver", "approver_id", "status"),
    )
