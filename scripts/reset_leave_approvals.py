"""
Recreate the approval of every pending leave request so the current leave
approver (LEAVE_APPROVER_EMAIL or the first active LEAVE_APPROVER_ROLE
employee) owns it. Old approvals are deleted first.

Run from the project root: python -m scripts.reset_leave_approvals
"""
import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from hr_api.database import AsyncSessionLocal
from hr_api.exceptions import WorkflowError
from hr_api.logging_config import setup_logging
from hr_api.services.leave_service import reset_leave_approvals


async def main() -> int:
    setup_logging()
    async with AsyncSessionLocal() as db:
        try:
            count = await reset_leave_approvals(db)
        except WorkflowError as e:
            await db.rollback()
            print(f"Reset failed: {e.message}")
            return 1
        await db.commit()
    print(f"Recreated approvals for {count} pending leave request(s).")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
