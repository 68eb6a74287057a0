"""HTTP surface tests — auth, problem+json errors, the document and leave
flows end to end, ledger endpoints and submit rate limiting.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

from intranet.common.constants import ApproverRole
from tests.conftest import (
    CHAIRMAN_ID,
    DIRECTOR_ID,
    DRAFTER_ID,
    OTHER_ID,
    auth_header,
    create_access_token,
    seed_annual,
)

DRAFTER = auth_header(DRAFTER_ID)
OTHER = auth_header(OTHER_ID)
CHAIRMAN = auth_header(CHAIRMAN_ID, [ApproverRole.chairman])
DIRECTOR = auth_header(DIRECTOR_ID, [ApproverRole.director])

DOCS = "/api/v1/documents"


def _expense_body(label_id, amount: str, **extra) -> dict:
    body = {
        "kind": "expense",
        "label_id": str(label_id),
        "title": "장비 구매",
        "expense_items": [{"item": "모니터", "vendor": "전자상가", "amount": amount}],
    }
    body.update(extra)
    return body


def _leave_body(label_id) -> dict:
    return {
        "kind": "attendance",
        "label_id": str(label_id),
        "title": "연차 신청",
        "attendance_type": "leave",
        "leave_type": "full",
        "leave_start_date": "2025-03-10",
        "leave_end_date": "2025-03-12",
    }


# ── System / auth ───────────────────────────────────────────────────


async def test_health_needs_no_token(client):
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


async def test_missing_token_is_401(client):
    resp = await client.get(DOCS)
    assert resp.status_code == 401


async def test_expired_token_is_401(client):
    token = create_access_token(DRAFTER_ID, expires_in=timedelta(minutes=-5))
    resp = await client.get(DOCS, headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Token has expired."


async def test_tampered_token_is_401(client):
    token = create_access_token(DRAFTER_ID) + "x"
    resp = await client.get(DOCS, headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


async def test_queue_requires_approver(client):
    resp = await client.get(f"{DOCS}/queue", headers=DRAFTER)
    assert resp.status_code == 403
    assert resp.headers["content-type"].startswith("application/problem+json")
    body = resp.json()
    assert body["type"].endswith("/forbidden")
    assert body["status"] == 403


# ── Documents ───────────────────────────────────────────────────────


async def test_submit_expense_document(client, expense_label):
    resp = await client.post(DOCS, json=_expense_body(expense_label.id, "120000"), headers=DRAFTER)

    assert resp.status_code == 201
    data = resp.json()
    assert data["status"] == "pending"
    assert data["kind"] == "expense"
    assert data["drafter_id"] == DRAFTER_ID
    assert data["label"]["code"] == 1
    assert Decimal(data["total_amount"]) == Decimal("120000")
    assert data["doc_number"].endswith("-1")


async def test_leave_claim_without_type_is_422(client, attendance_label):
    body = _leave_body(attendance_label.id)
    del body["leave_type"]

    resp = await client.post(DOCS, json=body, headers=DRAFTER)
    assert resp.status_code == 422
    assert resp.json()["type"].endswith("/validation-error")


async def test_leave_document_flow_updates_balance(client, db, attendance_label):
    await seed_annual(db, DRAFTER_ID, 2025, total="15", used="0")

    created = await client.post(DOCS, json=_leave_body(attendance_label.id), headers=DRAFTER)
    assert created.status_code == 201
    doc_id = created.json()["id"]
    assert Decimal(created.json()["leave_days"]) == Decimal("3")

    approved = await client.post(
        f"{DOCS}/{doc_id}/approve", json={"role": "director"}, headers=DIRECTOR,
    )
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"
    assert approved.json()["approver_id"] == DIRECTOR_ID

    balances = await client.get("/api/v1/ledger/me", params={"year": 2025}, headers=DRAFTER)
    assert balances.status_code == 200
    annual = balances.json()["annual"]
    assert Decimal(annual["used_days"]) == Decimal("3")
    assert Decimal(annual["remaining_days"]) == Decimal("12")

    again = await client.post(
        f"{DOCS}/{doc_id}/approve", json={"role": "director"}, headers=DIRECTOR,
    )
    assert again.status_code == 409
    assert again.json()["type"].endswith("/invalid-transition")

    deleted = await client.delete(f"{DOCS}/{doc_id}", headers=DIRECTOR)
    assert deleted.status_code == 204

    balances = await client.get("/api/v1/ledger/me", params={"year": 2025}, headers=DRAFTER)
    assert Decimal(balances.json()["annual"]["used_days"]) == Decimal("0")


async def test_two_stage_expense_flow(client, expense_label):
    created = await client.post(
        DOCS, json=_expense_body(expense_label.id, "1000000"), headers=DRAFTER,
    )
    doc_id = created.json()["id"]

    early = await client.post(
        f"{DOCS}/{doc_id}/approve", json={"role": "director"}, headers=DIRECTOR,
    )
    assert early.status_code == 409

    staged = await client.post(
        f"{DOCS}/{doc_id}/approve", json={"role": "chairman"}, headers=CHAIRMAN,
    )
    assert staged.json()["status"] == "chairman_approved"
    assert staged.json()["chairman_approver_id"] == CHAIRMAN_ID

    queue = await client.get(f"{DOCS}/queue", headers=DIRECTOR)
    assert [d["id"] for d in queue.json()["data"]] == [doc_id]

    rejected = await client.post(
        f"{DOCS}/{doc_id}/reject", json={"reason": "예산 초과"}, headers=DIRECTOR,
    )
    assert rejected.status_code == 200
    assert rejected.json()["status"] == "rejected"
    assert rejected.json()["rejected_reason"] == "예산 초과"


async def test_approving_with_unheld_role_is_403(client, expense_label):
    created = await client.post(DOCS, json=_expense_body(expense_label.id, "10"), headers=DRAFTER)
    resp = await client.post(
        f"{DOCS}/{created.json()['id']}/approve", json={"role": "director"}, headers=CHAIRMAN,
    )
    assert resp.status_code == 403


async def test_blank_reject_reason_is_422(client, expense_label):
    created = await client.post(DOCS, json=_expense_body(expense_label.id, "10"), headers=DRAFTER)
    resp = await client.post(
        f"{DOCS}/{created.json()['id']}/reject", json={"reason": "  "}, headers=DIRECTOR,
    )
    assert resp.status_code == 422
    assert "reason" in resp.json()["errors"]


async def test_private_document_reads_as_missing(client, expense_label):
    created = await client.post(
        DOCS, json=_expense_body(expense_label.id, "10", is_private=True), headers=DRAFTER,
    )
    doc_id = created.json()["id"]

    assert (await client.get(f"{DOCS}/{doc_id}", headers=OTHER)).status_code == 404
    assert (await client.get(f"{DOCS}/{doc_id}", headers=DRAFTER)).status_code == 200
    assert (await client.get(f"{DOCS}/{doc_id}", headers=CHAIRMAN)).status_code == 200


async def test_list_mine_and_title_filter(client, expense_label):
    await client.post(
        DOCS, json=_expense_body(expense_label.id, "10", title="사무용품 구매"), headers=DRAFTER,
    )
    await client.post(
        DOCS, json=_expense_body(expense_label.id, "10", title="출장비"), headers=OTHER,
    )

    mine = await client.get(DOCS, params={"mine": "true"}, headers=DRAFTER)
    assert mine.json()["meta"]["total"] == 1
    assert mine.json()["data"][0]["drafter_id"] == DRAFTER_ID

    titled = await client.get(DOCS, params={"title": "출장"}, headers=DRAFTER)
    assert [d["title"] for d in titled.json()["data"]] == ["출장비"]


async def test_list_sort_on_relationship_falls_back_to_default(client, expense_label):
    await client.post(
        DOCS, json=_expense_body(expense_label.id, "10", title="먼저"), headers=DRAFTER,
    )
    await client.post(
        DOCS, json=_expense_body(expense_label.id, "20", title="나중"), headers=DRAFTER,
    )

    for sort in ("label", "-label", "no_such_field"):
        resp = await client.get(DOCS, params={"sort": sort}, headers=DRAFTER)
        assert resp.status_code == 200
        assert resp.json()["meta"]["total"] == 2


async def test_edit_merges_and_rejects_unknown_fields(client, expense_label):
    created = await client.post(DOCS, json=_expense_body(expense_label.id, "10"), headers=DRAFTER)
    doc_id = created.json()["id"]

    edited = await client.patch(f"{DOCS}/{doc_id}", json={"title": "변경"}, headers=DRAFTER)
    assert edited.status_code == 200
    assert edited.json()["title"] == "변경"
    assert Decimal(edited.json()["total_amount"]) == Decimal("10")

    bogus = await client.patch(f"{DOCS}/{doc_id}", json={"status": "approved"}, headers=DRAFTER)
    assert bogus.status_code == 422


async def test_submit_is_rate_limited(client, expense_label):
    body = _expense_body(expense_label.id, "1")
    for _ in range(20):
        resp = await client.post(DOCS, json=body, headers=DRAFTER)
        assert resp.status_code == 201

    resp = await client.post(DOCS, json=body, headers=DRAFTER)
    assert resp.status_code == 429


# ── Labels ──────────────────────────────────────────────────────────


async def test_label_management(client, expense_label, attendance_label):
    listed = await client.get(f"{DOCS}/labels", headers=DRAFTER)
    assert [label["code"] for label in listed.json()] == [1, attendance_label.code]

    created = await client.post(f"{DOCS}/labels", json={"name": "회의록"}, headers=CHAIRMAN)
    assert created.status_code == 201
    assert created.json()["code"] == attendance_label.code + 1

    denied = await client.post(f"{DOCS}/labels", json={"name": "x"}, headers=DRAFTER)
    assert denied.status_code == 403

    removed = await client.delete(f"{DOCS}/labels/{created.json()['id']}", headers=CHAIRMAN)
    assert removed.status_code == 204

    kept = await client.delete(f"{DOCS}/labels/{attendance_label.id}", headers=CHAIRMAN)
    assert kept.status_code == 422


# ── Leave requests ──────────────────────────────────────────────────


async def test_leave_request_apply_and_cancel(client):
    created = await client.post(
        "/api/v1/leave/requests",
        json={"leave_type": "half_am", "start_date": "2025-04-01"},
        headers=DRAFTER,
    )
    assert created.status_code == 201
    assert Decimal(created.json()["days"]) == Decimal("0.5")
    request_id = created.json()["id"]

    mine = await client.get("/api/v1/leave/requests/mine", headers=DRAFTER)
    assert mine.json()["meta"]["total"] == 1

    cancelled = await client.delete(f"/api/v1/leave/requests/{request_id}", headers=DRAFTER)
    assert cancelled.status_code == 204

    mine = await client.get("/api/v1/leave/requests/mine", headers=DRAFTER)
    assert mine.json()["meta"]["total"] == 0


async def test_leave_request_approval_deducts(client, db):
    await seed_annual(db, DRAFTER_ID, 2025, total="15", used="0")
    created = await client.post(
        "/api/v1/leave/requests",
        json={"leave_type": "full", "start_date": "2025-04-01", "end_date": "2025-04-02"},
        headers=DRAFTER,
    )
    request_id = created.json()["id"]

    pending = await client.get("/api/v1/leave/requests/pending", headers=CHAIRMAN)
    assert [r["id"] for r in pending.json()["data"]] == [request_id]

    approved = await client.post(
        f"/api/v1/leave/requests/{request_id}/approve", headers=CHAIRMAN,
    )
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"

    balances = await client.get("/api/v1/ledger/me", params={"year": 2025}, headers=DRAFTER)
    assert Decimal(balances.json()["annual"]["used_days"]) == Decimal("2")


async def test_leave_request_over_balance_is_422(client, db):
    await seed_annual(db, DRAFTER_ID, 2025, total="1", used="0")
    resp = await client.post(
        "/api/v1/leave/requests",
        json={"leave_type": "full", "start_date": "2025-04-01", "end_date": "2025-04-02"},
        headers=DRAFTER,
    )
    assert resp.status_code == 422
    assert resp.json()["type"].endswith("/insufficient-balance")


# ── Ledger ──────────────────────────────────────────────────────────


async def test_admin_sets_annual_total(client):
    resp = await client.put(
        f"/api/v1/ledger/annual/{OTHER_ID}/2025", json={"total_days": "20"}, headers=DIRECTOR,
    )
    assert resp.status_code == 200
    assert Decimal(resp.json()["total_days"]) == Decimal("20")

    listing = await client.get("/api/v1/ledger/annual", params={"year": 2025}, headers=DIRECTOR)
    assert [row["user_id"] for row in listing.json()] == [OTHER_ID]

    denied = await client.put(
        f"/api/v1/ledger/annual/{OTHER_ID}/2025", json={"total_days": "30"}, headers=DRAFTER,
    )
    assert denied.status_code == 403


async def test_admin_sets_comp_total(client):
    resp = await client.put(
        f"/api/v1/ledger/comp/{DRAFTER_ID}/2025", json={"total_hours": "12"}, headers=CHAIRMAN,
    )
    assert resp.status_code == 200
    assert Decimal(resp.json()["remaining_hours"]) == Decimal("12")

    negative = await client.put(
        f"/api/v1/ledger/comp/{DRAFTER_ID}/2025", json={"total_hours": "-1"}, headers=CHAIRMAN,
    )
    assert negative.status_code == 422
