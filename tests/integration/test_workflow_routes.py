"""
HTTP flows through /api/v1/workflow and /api/v1/leave-requests.

Authentication is replaced by the `login` fixture; the database is a fresh
SQLite file per test (see conftest.py).
"""

from datetime import date, timedelta

import pytest

WORKFLOW = "/api/v1/workflow"
LEAVE = "/api/v1/leave-requests"


@pytest.fixture
async def seeded(session_factory, add_employees):
    async with session_factory() as s:
        await add_employees(s, "ADM", role="admin")
        await add_employees(s, "HR1", role="hr")
        await add_employees(s, "E1", "E2", "E3")
        await s.commit()


async def _open(client, login, entity_id="LR1", approvers=("E2", "E3")):
    login("E1")
    resp = await client.post(
        f"{WORKFLOW}/approvals",
        json={
            "entity_type": "expense",
            "entity_id": entity_id,
            "approver_ids": list(approvers),
            "comments": "Need a break",
        },
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["checks"]["db"] == "ok"
    assert "X-Request-ID" in resp.headers


@pytest.mark.asyncio
async def test_create_returns_chain_with_names(client, login, seeded):
    body = await _open(client, login)

    assert body["status"] == "pending"
    assert body["current_step"] == 1
    assert body["total_steps"] == 2
    assert body["requester_id"] == "E1"
    assert body["requester_name"] == "Test E1"
    assert [(s["step_number"], s["approver_id"]) for s in body["steps"]] == [(1, "E2"), (2, "E3")]


@pytest.mark.asyncio
async def test_create_duplicate_maps_to_409(client, login, seeded):
    await _open(client, login)

    resp = await client.post(
        f"{WORKFLOW}/approvals",
        json={"entity_type": "expense", "entity_id": "LR1", "approver_ids": ["E2"]},
    )

    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "APPROVAL_ALREADY_EXISTS"


@pytest.mark.asyncio
async def test_create_with_unknown_approver_maps_to_404(client, login, seeded):
    login("E1")
    resp = await client.post(
        f"{WORKFLOW}/approvals",
        json={"entity_type": "expense", "entity_id": "X1", "approver_ids": ["GHOST"]},
    )

    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "APPROVER_NOT_FOUND"


@pytest.mark.asyncio
async def test_create_with_empty_chain_is_validation_error(client, login, seeded):
    login("E1")
    resp = await client.post(
        f"{WORKFLOW}/approvals",
        json={"entity_type": "expense", "entity_id": "X1", "approver_ids": []},
    )

    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_sequential_approval_flow(client, login, seeded):
    approval = await _open(client, login)
    approval_id = approval["id"]

    login("E3")
    early = await client.post(f"{WORKFLOW}/approvals/{approval_id}/approve")
    assert early.status_code == 403
    assert early.json()["error"]["code"] == "APPROVAL_NOT_YOUR_TURN"

    login("E2")
    pending = await client.get(f"{WORKFLOW}/approvals/pending")
    assert [a["id"] for a in pending.json()] == [approval_id]
    step1 = await client.post(
        f"{WORKFLOW}/approvals/{approval_id}/approve", json={"comments": "ok by me"}
    )
    assert step1.status_code == 200
    assert step1.json()["current_step"] == 2
    assert step1.json()["status"] == "pending"

    login("E3")
    final = await client.post(f"{WORKFLOW}/approvals/{approval_id}/approve")
    assert final.status_code == 200
    assert final.json()["status"] == "approved"
    assert final.json()["approver_id"] == "E3"

    again = await client.post(f"{WORKFLOW}/approvals/{approval_id}/approve")
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "APPROVAL_INVALID_STATE"

    history = await client.get(f"{WORKFLOW}/history/expense/LR1")
    assert history.status_code == 200
    assert [s["comments"] for s in history.json()["steps"]] == ["ok by me", None]


@pytest.mark.asyncio
async def test_reject_flow_and_stats(client, login, seeded):
    approval = await _open(client, login)

    login("E2")
    resp = await client.post(
        f"{WORKFLOW}/approvals/{approval['id']}/reject", json={"comments": "Not now"}
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "rejected"
    assert resp.json()["comments"] == "Not now"

    stats = await client.get(f"{WORKFLOW}/approvals/stats")
    assert stats.json() == {
        "awaiting_my_action": 0,
        "approved_by_me": 0,
        "rejected_by_me": 1,
        "my_requests_pending": 0,
    }


@pytest.mark.parametrize("body", [{}, {"comments": ""}])
@pytest.mark.asyncio
async def test_reject_without_reason_is_validation_error(client, login, seeded, body):
    approval = await _open(client, login)

    login("E2")
    resp = await client.post(f"{WORKFLOW}/approvals/{approval['id']}/reject", json=body)

    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"
    after = await client.get(f"{WORKFLOW}/approvals/{approval['id']}")
    assert after.json()["status"] == "pending"


@pytest.mark.asyncio
async def test_unknown_approval_maps_to_404(client, login, seeded):
    login("E2")
    resp = await client.get(f"{WORKFLOW}/approvals/does-not-exist")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "APPROVAL_NOT_FOUND"


@pytest.mark.asyncio
async def test_history_for_unknown_entity_is_null(client, login, seeded):
    login("E1")
    resp = await client.get(f"{WORKFLOW}/history/leave_request/none")
    assert resp.status_code == 200
    assert resp.json() is None


@pytest.mark.asyncio
async def test_list_scoping_for_non_hr(client, login, seeded):
    approval = await _open(client, login)

    login("E3")
    mine = await client.get(f"{WORKFLOW}/approvals")
    assert [a["id"] for a in mine.json()["data"]] == [approval["id"]]
    assert mine.json()["pagination"]["total"] == 1

    other = await client.get(f"{WORKFLOW}/approvals", params={"requester_id": "E1"})
    assert other.status_code == 403

    login("HR1", role="hr")
    hr_view = await client.get(f"{WORKFLOW}/approvals", params={"requester_id": "E1"})
    assert hr_view.status_code == 200
    assert hr_view.json()["pagination"]["total"] == 1


@pytest.mark.asyncio
async def test_purge_history_requires_hr(client, login, seeded):
    await _open(client, login)

    login("E2")
    denied = await client.delete(f"{WORKFLOW}/history/expense/LR1")
    assert denied.status_code == 403

    login("HR1", role="hr")
    purged = await client.delete(f"{WORKFLOW}/history/expense/LR1")
    assert purged.json() == {"deleted": 1}
    assert (await client.get(f"{WORKFLOW}/history/expense/LR1")).json() is None


# ---------------------------------------------------------------------------
# Leave requests
# ---------------------------------------------------------------------------


def _leave_body(start_in: int = 7, days: int = 2) -> dict:
    start = date.today() + timedelta(days=start_in)
    return {
        "leave_type": "annual",
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=days - 1)).isoformat(),
        "reason": "Wedding",
    }


@pytest.mark.asyncio
async def test_leave_request_approved_by_admin(client, login, seeded):
    login("E1")
    submitted = await client.post(LEAVE, json=_leave_body())
    assert submitted.status_code == 201, submitted.text
    leave = submitted.json()
    assert leave["status"] == "pending"
    assert leave["days"] == 2
    assert leave["approval_id"]

    login("ADM", role="admin")
    queue = await client.get(f"{WORKFLOW}/approvals/pending")
    assert [a["entity_id"] for a in queue.json()] == [leave["id"]]
    decided = await client.post(f"{WORKFLOW}/approvals/{leave['approval_id']}/approve")
    assert decided.status_code == 200

    login("E1")
    after = await client.get(f"{LEAVE}/{leave['id']}")
    assert after.json()["status"] == "approved"
    assert after.json()["decided_at"] is not None


@pytest.mark.asyncio
async def test_leave_request_rejected_by_admin(client, login, seeded):
    login("E1")
    leave = (await client.post(LEAVE, json=_leave_body())).json()

    login("ADM", role="admin")
    await client.post(
        f"{WORKFLOW}/approvals/{leave['approval_id']}/reject", json={"comments": "Peak season"}
    )

    login("E1")
    assert (await client.get(f"{LEAVE}/{leave['id']}")).json()["status"] == "rejected"


@pytest.mark.asyncio
async def test_leave_request_validation_error(client, login, seeded):
    login("E1")
    body = _leave_body()
    body["end_date"] = (date.today() + timedelta(days=1)).isoformat()

    resp = await client.post(LEAVE, json=body)

    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "INVALID_LEAVE_REQUEST"
    assert resp.json()["error"]["details"] == {"field": "end_date"}


@pytest.mark.asyncio
async def test_leave_request_visibility_and_cancel(client, login, seeded):
    login("E1")
    leave = (await client.post(LEAVE, json=_leave_body())).json()

    login("E2")
    assert (await client.get(f"{LEAVE}/{leave['id']}")).status_code == 403
    assert (await client.get(LEAVE)).json() == []
    assert (await client.post(f"{LEAVE}/{leave['id']}/cancel")).status_code == 403

    login("HR1", role="hr")
    assert [lr["id"] for lr in (await client.get(LEAVE)).json()] == [leave["id"]]

    login("E1")
    cancelled = await client.post(f"{LEAVE}/{leave['id']}/cancel")
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"
    assert cancelled.json()["approval_id"] is None


@pytest.mark.asyncio
async def test_unknown_leave_request_maps_to_404(client, login, seeded):
    login("E1")
    resp = await client.get(f"{LEAVE}/missing")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "LEAVE_REQUEST_NOT_FOUND"


@pytest.mark.asyncio
async def test_generic_create_cannot_open_leave_approval(client, login, seeded):
    login("E1")
    leave = (await client.post(LEAVE, json=_leave_body())).json()
    login("HR1", role="hr")
    await client.delete(f"{WORKFLOW}/history/leave_request/{leave['id']}")

    login("E1")
    resp = await client.post(
        f"{WORKFLOW}/approvals",
        json={"entity_type": "leave_request", "entity_id": leave["id"], "approver_ids": ["E1"]},
    )

    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "APPROVAL_ENTITY_RESERVED"
    assert (await client.get(f"{WORKFLOW}/history/leave_request/{leave['id']}")).json() is None
    assert (await client.get(f"{LEAVE}/{leave['id']}")).json()["status"] == "pending"


@pytest.mark.asyncio
async def test_leave_summary_visible_to_owner_and_hr(client, login, seeded):
    login("E1")
    approved = (await client.post(LEAVE, json=_leave_body(start_in=7, days=2))).json()
    await client.post(LEAVE, json=_leave_body(start_in=14, days=1))
    year = date.fromisoformat(approved["start_date"]).year

    login("ADM", role="admin")
    await client.post(f"{WORKFLOW}/approvals/{approved['approval_id']}/approve")

    login("E1")
    own = await client.get(f"{LEAVE}/summary/E1", params={"year": year})
    assert own.status_code == 200
    body = own.json()
    assert body["employee_id"] == "E1"
    assert body["year"] == year
    assert body["approved_requests"] == 1
    assert body["total_days_taken"] == 2
    assert body["by_type"]["annual"] == 2

    login("E2")
    denied = await client.get(f"{LEAVE}/summary/E1", params={"year": year})
    assert denied.status_code == 403
    assert denied.json()["error"]["code"] == "LEAVE_REQUEST_FORBIDDEN"

    login("HR1", role="hr")
    other_year = await client.get(f"{LEAVE}/summary/E1", params={"year": year + 5})
    assert other_year.status_code == 200
    assert other_year.json()["total_requests"] == 0
    assert other_year.json()["total_days_taken"] == 0
