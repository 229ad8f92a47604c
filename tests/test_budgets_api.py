from datetime import date


def _spend(client, headers, amount, category_id=None):
    body = {"amount": amount, "merchant_name": "Store", "date": date.today().isoformat()}
    if category_id:
        body["category_id"] = category_id
    resp = client.post("/transactions", json=body, headers=headers)
    assert resp.status_code == 201, resp.text


def test_upsert_total_budget(client, couple):
    first = client.post("/budgets", json={"monthly_limit": 500}, headers=couple["alice"])
    assert first.status_code == 200, first.text
    assert first.json()["category_id"] is None
    assert first.json()["alert_threshold"] == 80
    assert first.json()["category_name"] == "Total Household"

    second = client.post("/budgets", json={"monthly_limit": 650, "alert_threshold": 90}, headers=couple["bob"])
    assert second.json()["id"] == first.json()["id"]
    assert second.json()["monthly_limit"] == 650

    listed = client.get("/budgets", headers=couple["alice"]).json()
    assert len(listed) == 1
    assert listed[0]["alert_threshold"] == 90


def test_upsert_validation(client, couple):
    assert client.post("/budgets", json={}, headers=couple["alice"]).status_code == 400
    assert client.post("/budgets", json={"monthly_limit": -1}, headers=couple["alice"]).status_code == 400
    bad_threshold = client.post("/budgets", json={"monthly_limit": 10, "alert_threshold": 0}, headers=couple["alice"])
    assert bad_threshold.status_code == 400


def test_status_levels(client, couple):
    groceries = client.post("/categories", json={"name": "Groceries"}, headers=couple["alice"]).json()
    client.post("/budgets", json={"monthly_limit": 500}, headers=couple["alice"])
    client.post("/budgets", json={"category_id": groceries["id"], "monthly_limit": 100}, headers=couple["alice"])
    client.post("/budgets", json={"category_id": None, "monthly_limit": 500}, headers=couple["alice"])

    _spend(client, couple["alice"], 100, groceries["id"])
    _spend(client, couple["bob"], 300)

    status = {s["name"]: s for s in client.get("/budgets/status", headers=couple["alice"]).json()}
    assert set(status) == {"Total Household", "Groceries"}
    assert status["Total Household"]["spent"] == 400
    assert status["Total Household"]["percentage"] == 80
    assert status["Total Household"]["level"] == "warning"
    assert status["Groceries"]["percentage"] == 100
    assert status["Groceries"]["level"] == "exceeded"
    assert status["Groceries"]["remaining"] == 0


def test_zero_limit_budget_status(client, couple):
    client.post("/budgets", json={"monthly_limit": 0}, headers=couple["alice"])
    _spend(client, couple["alice"], 25)

    status = client.get("/budgets/status", headers=couple["alice"]).json()
    assert status[0]["percentage"] == 0
    assert status[0]["level"] == "ok"


def test_delete_budget(client, couple):
    budget = client.post("/budgets", json={"monthly_limit": 10}, headers=couple["alice"]).json()
    _spend(client, couple["alice"], 9)

    assert client.delete(f"/budgets/{budget['id']}", headers=couple["bob"]).status_code == 204
    assert client.get("/budgets", headers=couple["alice"]).json() == []
    assert client.delete(f"/budgets/{budget['id']}", headers=couple["bob"]).status_code == 404


def test_notification_preferences(client, couple):
    defaults = client.get("/notifications/preferences", headers=couple["alice"]).json()
    assert defaults == {"push_enabled": True, "new_transaction": True, "toggle_change": True, "budget_alert": True}

    updated = client.put("/notifications/preferences", json={"budget_alert": False}, headers=couple["alice"]).json()
    assert updated["budget_alert"] is False
    assert updated["push_enabled"] is True


def test_push_subscription_lifecycle(client, couple):
    bad = client.post("/notifications/subscribe", json={"subscription": {"endpoint": "x"}}, headers=couple["alice"])
    assert bad.status_code == 400

    sub = {"endpoint": "https://push.example.com/abc", "keys": {"p256dh": "key", "auth": "secret"}}
    assert client.post("/notifications/subscribe", json={"subscription": sub}, headers=couple["alice"]).status_code == 200
    assert client.post("/notifications/subscribe", json={"subscription": sub}, headers=couple["alice"]).status_code == 200

    # Push is not configured in tests, so creating a transaction must still succeed
    _spend(client, couple["bob"], 5)

    resp = client.request("DELETE", "/notifications/subscribe", json={"endpoint": sub["endpoint"]}, headers=couple["alice"])
    assert resp.status_code == 200
