import pytest

from conftest import build_pdf, STATEMENT_LINES

pytestmark = pytest.mark.asyncio

async def test_root_and_health(client):
    assert (await client.get("/")).json()["message"] == "SpendLog API"
    assert (await client.get("/health")).json()["status"] == "healthy"

async def test_requires_bearer_token(client):
    response = await client.get("/api/v1/expenses/")
    assert response.status_code == 401
    assert response.json() == {"detail": "Not authenticated"}

    response = await client.get("/api/v1/expenses/", headers={"Authorization": "Bearer nonsense"})
    assert response.status_code == 401

async def test_first_request_provisions_user(client, auth_headers):
    categories = (await client.get("/api/v1/categories/", headers=auth_headers)).json()
    assert "Food & Dining" in [c["name"] for c in categories]

    profile = (await client.get("/api/v1/profile/", headers=auth_headers)).json()
    assert profile["id"] == 42
    assert profile["email"] == "ravi@example.com"

async def test_expense_crud_and_summary(client, auth_headers):
    categories = (await client.get("/api/v1/categories/", headers=auth_headers)).json()
    food = next(c for c in categories if c["name"] == "Food & Dining")

    created = await client.post("/api/v1/expenses/", headers=auth_headers, json={
        "amount": 6000, "date": "2024-03-05", "category_id": food["id"], "payment_method": "upi"
    })
    assert created.status_code == 200
    expense_id = created.json()["id"]

    patched = await client.patch(f"/api/v1/expenses/{expense_id}", headers=auth_headers, json={"note": "team dinner"})
    assert patched.json()["note"] == "team dinner"

    summary = (await client.get("/api/v1/expenses/summary/2024-03", headers=auth_headers)).json()
    assert summary["total_spent"] == 6000
    assert summary["by_category"] == {"Food & Dining": 6000}

    health = (await client.get("/api/v1/budget/health?month=2024-03", headers=auth_headers)).json()
    assert health["over_budget_categories"] == 1
    assert health["suggestions"][0]["type"] == "warning"

    details = (await client.get("/api/v1/budget/categories?month=2024-03", headers=auth_headers)).json()
    food_detail = next(d for d in details if d["category_name"] == "Food & Dining")
    assert food_detail["percentage"] == 120.0
    assert food_detail["display_percentage"] == 100.0

    deleted = await client.delete(f"/api/v1/expenses/{expense_id}", headers=auth_headers)
    assert deleted.status_code == 200
    assert (await client.get(f"/api/v1/expenses/{expense_id}", headers=auth_headers)).status_code == 404

async def test_duplicate_category_name(client, auth_headers):
    response = await client.post("/api/v1/categories/", headers=auth_headers, json={"name": "shopping"})
    assert response.status_code == 409

async def test_settings_validation(client, auth_headers):
    response = await client.put("/api/v1/budget/settings", headers=auth_headers, json={"needs_percentage": 90})
    assert response.status_code == 400

    response = await client.put("/api/v1/budget/settings", headers=auth_headers, json={
        "needs_percentage": 40, "wants_percentage": 30, "savings_percentage": 30
    })
    assert response.status_code == 200
    assert response.json()["savings_percentage"] == 30

async def test_advanced_mode_needs_premium(client, auth_headers):
    response = await client.put("/api/v1/profile/mode", headers=auth_headers, json={"mode": "advanced"})
    assert response.status_code == 403

    mode = (await client.get("/api/v1/profile/mode", headers=auth_headers)).json()
    assert mode == {"is_premium": False, "is_trialing": False, "mode": "simple", "trial_days_left": 0}

async def test_statement_import_flow(client, auth_headers):
    pdf = build_pdf(STATEMENT_LINES)

    rejected = await client.post(
        "/api/v1/imports/", headers=auth_headers,
        files={"file": ("notes.txt", b"hello", "text/plain")}
    )
    assert rejected.status_code == 400

    uploaded = await client.post(
        "/api/v1/imports/", headers=auth_headers,
        files={"file": ("march.pdf", pdf, "application/pdf")}
    )
    assert uploaded.status_code == 200
    body = uploaded.json()
    assert body["status"] == "pending"
    assert body["poll_after_ms"] == 2000
    import_id = body["id"]

    parsed = (await client.post(f"/api/v1/imports/{import_id}/parse", headers=auth_headers, json={})).json()
    assert parsed["success"] and parsed["transaction_count"] == 3

    status = (await client.get(f"/api/v1/imports/{import_id}", headers=auth_headers)).json()
    assert status["status"] == "extracted"
    assert status["poll_after_ms"] is None

    categorized = await client.post(f"/api/v1/imports/{import_id}/categorize", headers=auth_headers)
    assert categorized.status_code == 200

    rows = (await client.get(f"/api/v1/imports/{import_id}/transactions", headers=auth_headers)).json()
    assert len(rows) == 3

    committed = await client.post(f"/api/v1/imports/{import_id}/commit", headers=auth_headers, json={
        "selections": [{"transaction_id": rows[0]["id"]}]
    })
    assert committed.json() == {"imported_count": 1, "total_transactions": 3}

    again = await client.post(f"/api/v1/imports/{import_id}/commit", headers=auth_headers, json={})
    assert again.status_code == 409

    cancel = await client.delete(f"/api/v1/imports/{import_id}", headers=auth_headers)
    assert cancel.status_code == 409

async def test_import_of_another_user_is_not_found(client, auth_headers):
    from spendlog.core.security import create_access_token

    uploaded = await client.post(
        "/api/v1/imports/", headers=auth_headers,
        files={"file": ("march.pdf", build_pdf(STATEMENT_LINES), "application/pdf")}
    )
    other = {"Authorization": f"Bearer {create_access_token(43)}"}

    response = await client.get(f"/api/v1/imports/{uploaded.json()['id']}", headers=other)
    assert response.status_code == 404

async def test_avatar_upload_and_signed_download(client, auth_headers):
    uploaded = await client.post(
        "/api/v1/profile/avatar", headers=auth_headers,
        files={"file": ("me.png", b"\x89PNG fake image", "image/png")}
    )
    assert uploaded.status_code == 200
    avatar_url = uploaded.json()["avatar_url"]
    assert avatar_url.startswith("/api/v1/files/avatars/42/")

    downloaded = await client.get(avatar_url)
    assert downloaded.status_code == 200
    assert downloaded.content == b"\x89PNG fake image"

    forged = avatar_url.split("?")[0] + "?token=forged"
    assert (await client.get(forged)).status_code == 401

async def test_insights_without_expenses(client, auth_headers):
    response = await client.get("/api/v1/insights/?month=2024-03", headers=auth_headers)
    assert response.json()["insights"] == [
        "No expenses recorded this month. Start tracking to get AI-powered insights!"
    ]

async def test_oversized_statement_is_rejected_before_reading(client, auth_headers, storage, monkeypatch):
    from starlette.datastructures import UploadFile

    from spendlog.config import settings

    async def never_read(self, size=-1):
        raise AssertionError("upload body was read")

    monkeypatch.setattr(settings, "MAX_STATEMENT_BYTES", 1024 * 1024)
    monkeypatch.setattr(UploadFile, "read", never_read)

    response = await client.post(
        "/api/v1/imports/", headers=auth_headers,
        files={"file": ("huge.pdf", b"%PDF-1.4\n" + b"0" * (2 * 1024 * 1024), "application/pdf")}
    )

    assert response.status_code == 400
    assert response.json() == {"detail": "File size must be less than 1MB"}
    assert not storage.root.exists() or not any(storage.root.rglob("*.pdf"))
