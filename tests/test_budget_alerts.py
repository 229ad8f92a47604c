import uuid
from datetime import date
from types import SimpleNamespace

import pytest

from app.services import budget_alerts
from app.services.budget_alerts import (
    EXCEEDED,
    OK,
    WARNING,
    budget_percentage,
    budget_status,
    crossed_new_tier,
    evaluate_budgets,
)


GROCERIES = uuid.uuid4()


def _budget(limit, threshold=80, category_id=None):
    return SimpleNamespace(id=uuid.uuid4(), category_id=category_id, monthly_limit=limit, alert_threshold=threshold)


def test_warning_at_threshold():
    budget = _budget(500)
    alerts = evaluate_budgets([budget], {}, 400)

    assert len(alerts) == 1
    assert alerts[0].level == WARNING
    assert alerts[0].severity == "warning"
    assert alerts[0].percentage == 80


def test_exactly_one_hundred_percent_is_exceeded():
    alerts = evaluate_budgets([_budget(500)], {}, 500)

    assert [a.level for a in alerts] == [EXCEEDED]
    assert alerts[0].severity == "error"


def test_below_threshold_is_silent():
    assert evaluate_budgets([_budget(500)], {}, 399.99) == []


def test_zero_limit_does_not_crash():
    assert budget_percentage(250, 0) == 0
    assert evaluate_budgets([_budget(0)], {}, 250) == []


def test_category_budget_uses_category_spend():
    budget = _budget(100, category_id=GROCERIES)

    assert evaluate_budgets([budget], {}, 10_000) == []
    alerts = evaluate_budgets([budget], {GROCERIES: 95}, 95)
    assert alerts[0].spent == 95
    assert alerts[0].level == WARNING


def test_missing_threshold_defaults_to_80():
    budget = _budget(100, threshold=None)

    assert evaluate_budgets([budget], {}, 79) == []
    assert evaluate_budgets([budget], {}, 80)[0].level == WARNING


def test_malformed_budgets_are_skipped():
    good = _budget(100)
    bad = [
        None,
        SimpleNamespace(id=None, category_id=None, monthly_limit=100, alert_threshold=80),
        SimpleNamespace(id=uuid.uuid4(), category_id=None, monthly_limit=None, alert_threshold=80),
        SimpleNamespace(id=uuid.uuid4(), category_id=None, monthly_limit=-5, alert_threshold=80),
    ]
    alerts = evaluate_budgets(bad + [good], {}, 100)

    assert [a.budget_id for a in alerts] == [good.id]


def test_no_budgets_no_alerts():
    assert evaluate_budgets([], {}, 1_000) == []


@pytest.mark.parametrize(
    "percentage, last, expected",
    [
        (82, 0, True),
        (85, 82, False),
        (90, 85, True),
        (95, 90, False),
        (100, 95, True),
        (140, 100, False),
    ],
)
def test_tier_crossing(percentage, last, expected):
    assert crossed_new_tier(percentage, 80, last) is expected


def test_dedup_against_last_alerted():
    budget = _budget(100)

    assert evaluate_budgets([budget], {}, 85, {budget.id: 82}) == []
    assert evaluate_budgets([budget], {}, 91, {budget.id: 85})[0].level == WARNING
    assert evaluate_budgets([budget], {}, 100, {budget.id: 91})[0].level == EXCEEDED


def test_status_levels():
    ok, warn, over = _budget(100), _budget(100, threshold=50), _budget(40)
    statuses = {s.budget_id: s for s in budget_status([ok, warn, over], {}, 60)}

    assert statuses[ok.id].level == OK
    assert statuses[warn.id].level == WARNING
    assert statuses[over.id].level == EXCEEDED
    assert statuses[over.id].remaining == -20


def test_alerts_persist_tier_state(client, couple, monkeypatch):
    sent = []
    monkeypatch.setattr(
        budget_alerts,
        "notify_budget_alert",
        lambda session, household_id, name, alert: sent.append((name, alert.level, alert.percentage_floor)),
    )
    alice = couple["alice"]
    today = date.today().isoformat()

    resp = client.post("/budgets", json={"monthly_limit": 100}, headers=alice)
    assert resp.status_code == 200, resp.text
    assert sent == []

    def spend(amount):
        r = client.post(
            "/transactions",
            json={"amount": amount, "merchant_name": "Shop", "date": today},
            headers=alice,
        )
        assert r.status_code == 201, r.text

    spend(82)
    assert sent == [("Total Household", WARNING, 82)]
    spend(3)
    assert len(sent) == 1
    spend(6)
    assert sent[-1] == ("Total Household", WARNING, 91)
    spend(10)
    assert sent[-1] == ("Total Household", EXCEEDED, 101)
    spend(50)
    assert len(sent) == 3


def test_concurrent_alert_state_insert_does_not_fail_request(client, couple, monkeypatch):
    from sqlmodel import Session, select

    from app.database import engine
    from app.models.alert_state import BudgetAlertState

    sent = []
    monkeypatch.setattr(
        budget_alerts,
        "notify_budget_alert",
        lambda session, household_id, name, alert: sent.append(alert.level),
    )
    evaluate = budget_alerts.evaluate_budgets

    def evaluate_then_race(budgets, *args, **kwargs):
        alerts = evaluate(budgets, *args, **kwargs)
        # Another worker records the same budget-month between read and write
        with Session(engine) as other:
            for alert in alerts:
                other.add(
                    BudgetAlertState(
                        household_id=budgets[0].household_id,
                        budget_id=alert.budget_id,
                        month=budget_alerts.month_key(date.today()),
                        last_percentage=alert.percentage_floor,
                    )
                )
            other.commit()
        return alerts

    monkeypatch.setattr(budget_alerts, "evaluate_budgets", evaluate_then_race)

    alice = couple["alice"]
    assert client.post("/budgets", json={"monthly_limit": 100}, headers=alice).status_code == 200
    resp = client.post(
        "/transactions",
        json={"amount": 85, "merchant_name": "Shop", "date": date.today().isoformat()},
        headers=alice,
    )

    assert resp.status_code == 201, resp.text
    assert sent == [WARNING]
    with Session(engine) as session:
        states = session.exec(select(BudgetAlertState)).all()
    assert [s.last_percentage for s in states] == [85]
