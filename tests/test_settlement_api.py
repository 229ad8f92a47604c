from datetime import date, timedelta

from .conftest import register


def _add(client, headers, amount, day=None, joint=True, merchant="Market"):
    resp = client.post(
        "/transactions",
        json={"amount": amount, "merchant_name": merchant, "date": (day or date.today()).isoformat()},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    txn = resp.json()
    if joint:
        toggled = client.post(
            "/transactions/toggle-joint",
            json={"transaction_id": txn["id"], "is_joint": True},
            headers=headers,
        )
        assert toggled.status_code == 200, toggled.text
    return txn


def _previous_month():
    return (date.today().replace(day=1) - timedelta(days=1)).replace(day=1)


def test_live_summary_from_both_sides(client, couple):
    _add(client, couple["alice"], 100)
    _add(client, couple["bob"], 50)
    _add(client, couple["bob"], 999, joint=False)

    alice = client.get("/settlement/current", headers=couple["alice"]).json()
    assert alice["joint_total"] == 150
    assert alice["my_contribution"] == 100
    assert alice["partner_contribution"] == 50
    assert alice["fair_share"] == 75
    assert alice["balance"] == 25
    assert alice["direction"] == "partner_owes_me"
    assert alice["partner_name"] == "Bob"
    assert alice["can_settle"] is True
    assert alice["source"] == "live"

    bob = client.get("/settlement/current", headers=couple["bob"]).json()
    assert bob["balance"] == -25
    assert bob["direction"] == "i_owe_partner"


def test_even_split_cannot_be_settled(client, couple):
    _add(client, couple["alice"], 40)
    _add(client, couple["bob"], 40)

    summary = client.get("/settlement/current", headers=couple["alice"]).json()
    assert summary["squared_up"] is True
    assert summary["can_settle"] is False


def test_no_partner(client):
    _, solo = register(client, "solo@example.com")
    client.post("/households", json={"name": "Solo"}, headers=solo)

    summary = client.get("/settlement/current", headers=solo).json()
    assert summary["has_partner"] is False

    resp = client.post(
        "/settlement/settle",
        json={"month": date.today().strftime("%Y-%m"), "total_joint": 0},
        headers=solo,
    )
    assert resp.status_code == 400


def test_settle_rejects_bad_members(client, couple):
    month = date.today().strftime("%Y-%m")
    base = {"month": month, "total_joint": 150, "user_a_paid": 100, "user_b_paid": 50}

    same = client.post(
        "/settlement/settle",
        json={**base, "user_a_id": couple["alice_id"], "user_b_id": couple["alice_id"]},
        headers=couple["alice"],
    )
    assert same.status_code == 400

    missing = client.post(
        "/settlement/settle",
        json={**base, "user_a_id": couple["alice_id"]},
        headers=couple["alice"],
    )
    assert missing.status_code == 400


def test_settled_month_uses_snapshot(client, couple):
    _add(client, couple["alice"], 100)
    bob_txn = _add(client, couple["bob"], 50)
    month = date.today().strftime("%Y-%m")

    settled = client.post(
        "/settlement/settle",
        json={
            "month": month,
            "total_joint": 150,
            "user_a_id": couple["alice_id"],
            "user_a_paid": 100,
            "user_b_id": couple["bob_id"],
            "user_b_paid": 50,
        },
        headers=couple["alice"],
    )
    assert settled.status_code == 200, settled.text
    assert settled.json()["month"] == date.today().replace(day=1).isoformat()
    assert settled.json()["settled_at"] is not None

    # Retroactive edit after settling must not move the figures
    client.post(
        "/transactions/toggle-joint",
        json={"transaction_id": bob_txn["id"], "is_joint": False},
        headers=couple["bob"],
    )

    summary = client.get("/settlement/current", headers=couple["bob"]).json()
    assert summary["is_settled"] is True
    assert summary["source"] == "snapshot"
    assert summary["joint_total"] == 150
    assert summary["balance"] == -25
    assert summary["can_settle"] is False


def test_settle_upserts_by_month(client, couple):
    month = _previous_month().strftime("%Y-%m")
    body = {
        "month": month,
        "total_joint": 150,
        "user_a_id": couple["alice_id"],
        "user_a_paid": 100,
        "user_b_id": couple["bob_id"],
        "user_b_paid": 50,
    }
    first = client.post("/settlement/settle", json=body, headers=couple["alice"]).json()
    second = client.post(
        "/settlement/settle",
        json={**body, "total_joint": 200, "user_b_paid": 100},
        headers=couple["bob"],
    ).json()

    assert first["id"] == second["id"]
    assert second["total_joint"] == 200

    history = client.get("/settlement/history", headers=couple["alice"]).json()
    assert len(history) == 1
    assert history[0]["squared_up"] is True
    assert history[0]["summary"] == "Squared up"


def test_history_from_viewer_perspective(client, couple):
    client.post(
        "/settlement/settle",
        json={
            "month": _previous_month().strftime("%Y-%m"),
            "total_joint": 150,
            "user_a_id": couple["alice_id"],
            "user_a_paid": 100,
            "user_b_id": couple["bob_id"],
            "user_b_paid": 50,
        },
        headers=couple["alice"],
    )

    alice = client.get("/settlement/history", headers=couple["alice"]).json()
    bob = client.get("/settlement/history", headers=couple["bob"]).json()

    assert alice[0]["summary"] == "Bob owed you $25.00"
    assert bob[0]["summary"] == "You owed Alice $25.00"
    assert bob[0]["my_paid"] == 50
    assert bob[0]["partner_paid"] == 100


def test_summary_for_explicit_month(client, couple):
    previous = _previous_month()
    _add(client, couple["alice"], 30, day=previous)

    summary = client.get(
        "/settlement/current", params={"month": previous.strftime("%Y-%m")}, headers=couple["alice"]
    ).json()
    assert summary["joint_total"] == 30
    assert summary["balance"] == 15

    assert client.get("/settlement/current", params={"month": "bad"}, headers=couple["alice"]).status_code == 400


def test_settle_rejects_contributions_that_do_not_add_up(client, couple):
    resp = client.post(
        "/settlement/settle",
        json={
            "month": date.today().strftime("%Y-%m"),
            "total_joint": 150,
            "user_a_id": couple["alice_id"],
            "user_a_paid": 100,
            "user_b_id": couple["bob_id"],
            "user_b_paid": 40,
        },
        headers=couple["alice"],
    )

    assert resp.status_code == 400
    assert "add up" in resp.json()["detail"]
    assert client.get("/settlement/current", headers=couple["alice"]).json()["is_settled"] is False
