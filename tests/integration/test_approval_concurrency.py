"""
Concurrent decisions on one approval.

Each attempt runs in its own session and transaction, as separate HTTP
requests would. Exactly one decision may win; the rest see the record
already moved and fail with a WorkflowError.
"""

import asyncio
from datetime import date, timedelta

import pytest

from hr_api.exceptions import WorkflowError
from hr_api.models.leave_request import LEAVE_REQUEST_ENTITY
from hr_api.services import leave_service, workflow_service

ATTEMPTS = 5


async def _open_approval(session_factory, add_employees, approver_ids):
    async with session_factory() as s:
        await add_employees(s, "E1", "E2", "E3")
        approval = await workflow_service.create_approval(
            s, "leave_request", "LR-RACE", "E1", approver_ids
        )
        await s.commit()
        return approval.id


async def _decide(session_factory, decide, approval_id, approver_id):
    async with session_factory() as s:
        try:
            await decide(s, approval_id, approver_id, "Decided in parallel")
            await s.commit()
            return "won"
        except WorkflowError as e:
            await s.rollback()
            return type(e).__name__


@pytest.mark.asyncio
async def test_concurrent_final_approvals_have_one_winner(session_factory, add_employees):
    approval_id = await _open_approval(session_factory, add_employees, ["E2"])

    results = await asyncio.gather(
        *[
            _decide(session_factory, workflow_service.approve_step, approval_id, "E2")
            for _ in range(ATTEMPTS)
        ]
    )

    assert results.count("won") == 1
    assert results.count("InvalidStateError") == ATTEMPTS - 1
    async with session_factory() as s:
        approval = await workflow_service.find_approval_by_id(s, approval_id)
        assert approval.status == "approved"
        assert approval.current_step == 1
        assert approval.steps[0].status == "approved"


@pytest.mark.asyncio
async def test_concurrent_step_approvals_advance_once(session_factory, add_employees):
    approval_id = await _open_approval(session_factory, add_employees, ["E2", "E3"])

    results = await asyncio.gather(
        *[
            _decide(session_factory, workflow_service.approve_step, approval_id, "E2")
            for _ in range(ATTEMPTS)
        ]
    )

    # Losers find step 2 waiting on E3.
    assert results.count("won") == 1
    assert results.count("ApprovalForbiddenError") == ATTEMPTS - 1
    async with session_factory() as s:
        approval = await workflow_service.find_approval_by_id(s, approval_id)
        assert approval.status == "pending"
        assert approval.current_step == 2
        assert [st.status for st in approval.steps] == ["approved", "pending"]


@pytest.mark.asyncio
async def test_racing_approve_and_reject_settle_on_one_outcome(session_factory, add_employees):
    approval_id = await _open_approval(session_factory, add_employees, ["E2"])

    results = await asyncio.gather(
        _decide(session_factory, workflow_service.approve_step, approval_id, "E2"),
        _decide(session_factory, workflow_service.reject_approval, approval_id, "E2"),
    )

    assert sorted(results) == ["InvalidStateError", "won"]
    async with session_factory() as s:
        approval = await workflow_service.find_approval_by_id(s, approval_id)
        assert approval.status in ("approved", "rejected")
        assert approval.steps[0].status == approval.status


async def _approve_leave(session_factory, approval_id):
    async with session_factory() as s:
        try:
            approval = await workflow_service.approve_step(s, approval_id, "ADM")
            await leave_service.apply_approval_outcome(s, approval)
            await s.commit()
            return "approved"
        except WorkflowError as e:
            await s.rollback()
            return type(e).__name__


async def _cancel_leave(session_factory, leave_id):
    async with session_factory() as s:
        try:
            await leave_service.cancel_leave_request(s, leave_id, "E1")
            await s.commit()
            return "cancelled"
        except WorkflowError as e:
            await s.rollback()
            return type(e).__name__


@pytest.mark.asyncio
async def test_racing_cancel_and_approval_leave_consistent_state(session_factory, add_employees):
    async with session_factory() as s:
        await add_employees(s, "ADM", role="admin")
        await add_employees(s, "E1")
        start = date.today() + timedelta(days=10)
        leave = await leave_service.submit_leave_request(s, "E1", "annual", start, start)
        approval = await workflow_service.get_approval_history(s, LEAVE_REQUEST_ENTITY, leave.id)
        leave_id, approval_id = leave.id, approval.id
        await s.commit()

    results = await asyncio.gather(
        _approve_leave(session_factory, approval_id),
        _cancel_leave(session_factory, leave_id),
    )

    async with session_factory() as s:
        final = await leave_service.get_leave_request(s, leave_id)
        approval = await workflow_service.get_approval_history(s, LEAVE_REQUEST_ENTITY, leave_id)
    if final.status == "approved":
        assert results == ["approved", "InvalidLeaveRequestError"]
        assert approval.status == "approved"
    else:
        assert results == ["ApprovalNotFoundError", "cancelled"]
        assert final.status == "cancelled"
        assert approval is None
