"""
Seed script: creates the HR admin and a few employees for local development.
Run from the project root: python -m scripts.seed
"""
import asyncio
import sys
import os

# Ensure the project root is on sys.path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select
from hr_api.database import AsyncSessionLocal
from hr_api.models.employee import Employee

# ---------- Fixed IDs ----------

EMP_ADMIN_ID = "e0000000-0000-0000-0000-000000000001"
EMP_HR_ID = "e0000000-0000-0000-0000-000000000002"
EMP_ENG_MGR_ID = "e0000000-0000-0000-0000-000000000003"
EMP_ENGINEER_ID = "e0000000-0000-0000-0000-000000000004"
EMP_DESIGNER_ID = "e0000000-0000-0000-0000-000000000005"


async def seed():
    async with AsyncSessionLocal() as db:
        result = await db.execute(select(Employee).where(Employee.id == EMP_ADMIN_ID))
        if result.scalar_one_or_none():
            print("Seed data already exists. Skipping.")
            return

        employees = [
            Employee(id=EMP_ADMIN_ID, employee_code="EMP001", email="admin@hrenterprise.com",
                     first_name="System", last_name="Admin", role="admin"),
            Employee(id=EMP_HR_ID, employee_code="EMP002", email="hr@hrenterprise.com",
                     first_name="Alice", last_name="Johnson", role="hr"),
            Employee(id=EMP_ENG_MGR_ID, employee_code="EMP003", email="eng.manager@hrenterprise.com",
                     first_name="Bob", last_name="Williams", role="manager"),
            Employee(id=EMP_ENGINEER_ID, employee_code="EMP004", email="carol@hrenterprise.com",
                     first_name="Carol", last_name="Davis", role="employee"),
            Employee(id=EMP_DESIGNER_ID, employee_code="EMP005", email="david@hrenterprise.com",
                     first_name="David", last_name="Wilson", role="employee"),
        ]
        db.add_all(employees)

        await db.commit()
        print("Seed data inserted successfully!")
        print(f"  Employees: {len(employees)}")


if __name__ == "__main__":
    asyncio.run(seed())
