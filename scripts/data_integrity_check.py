"""
Read-only consistency report for approvals and leave requests.
Run from the project root: python -m scripts.data_integrity_check
"""
import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from hr_api.database import AsyncSessionLocal
from hr_api.models import Approval, LeaveRequest
from hr_api.models.leave_request import LEAVE_REQUEST_ENTITY


async def main():
    problems = 0
    async with AsyncSessionLocal() as db:
        print("Starting Approval Integrity Check...")
        print("=" * 60)

        result = await db.execute(select(Approval).options(selectinload(Approval.steps)))
        approvals = result.scalars().all()

        # 1. Step numbering must be 1..total_steps with a step at current_step
        print("\n[1] Checking step numbering...")
        for a in approvals:
            numbers = [s.step_number for s in a.steps]
            if numbers != list(range(1, a.total_steps + 1)):
                problems += 1
                print(f"   - Approval {a.id}: steps {numbers}, expected 1..{a.total_steps}")
            if not 1 <= a.current_step <= a.total_steps:
                problems += 1
                print(f"   - Approval {a.id}: current_step {a.current_step} out of range")

        # 2. Decisions must never run ahead of the current step
        print("\n[2] Checking decisions against current_step...")
        for a in approvals:
            for s in a.steps:
                if s.step_number > a.current_step and s.status != "pending":
                    problems += 1
                    print(f"   - Approval {a.id}: step {s.step_number} decided ahead of step {a.current_step}")

        # 3. Leave requests and their approvals must agree
        print("\n[3] Checking leave requests against approvals...")
        by_entity = {
            a.entity_id: a for a in approvals if a.entity_type == LEAVE_REQUEST_ENTITY
        }
        result = await db.execute(select(LeaveRequest))
        for leave in result.scalars().all():
            approval = by_entity.get(leave.id)
            if leave.status == "pending" and not approval:
                problems += 1
                print(f"   - Leave {leave.id}: pending without an approval")
            elif approval and approval.status != "pending" and leave.status == "pending":
                problems += 1
                print(f"   - Leave {leave.id}: approval is {approval.status} but leave is still pending")

    print("\n" + "=" * 60)
    print("No problems found." if problems == 0 else f"Found {problems} problem(s).")


if __name__ == "__main__":
    asyncio.run(main())
