from app.models.automation_event import AutomationEvent
from app.models.rule import Rule
from app.services.rule_engine import process_event
from app.services.rule_service import create_rule
from tests.conftest import HEADERS, ORG, build_rule


def put_coupon(client, coupon_id, code, countries):
    r = client.put(f"/api/coupons/{coupon_id}", json={"name": code, "code": code, "countries": countries}, headers=HEADERS)
    assert r.status_code == 200, r.text


def create_coupon_rule(client, **overrides):
    body = {
        "name": "Spend 50, get a coupon",
        "event": "order_paid",
        "countries": ["FR"],
        "conditions": {"op": "AND", "items": [{"kind": "order_total_gte_eur", "amount": 50}]},
        "actions": [{"type": "send_coupon", "channels": ["email"], "payload": {"couponId": "c1"}}],
    }
    body.update(overrides)
    r = client.post("/api/rules", json=body, headers=HEADERS)
    assert r.status_code == 201, r.text
    return r.json()


def post_event(client, event_id, **overrides):
    body = {
        "eventId": event_id,
        "event": "order_paid",
        "country": "FR",
        "currency": "EUR",
        "orderTotalEur": 80,
        "clientId": "cl_1",
        "orderId": "o_1",
    }
    body.update(overrides)
    r = client.post("/api/events", json=body, headers=HEADERS)
    assert r.status_code == 200, r.text
    return r.json()


def executions(client, event):
    r = client.get(f"/api/events/{event['id']}/executions", headers=HEADERS)
    assert r.status_code == 200
    return r.json()


def test_matching_rule_queues_one_delivery(client):
    put_coupon(client, "c1", "SAVE10", ["FR", "BE"])
    rule = create_coupon_rule(client)

    event = post_event(client, "evt_1")

    assert event["status"] == "PROCESSED"
    assert len(event["attempts"]) == 1
    attempt = event["attempts"][0]
    assert attempt["channel"] == "email"
    assert attempt["status"] == "queued"
    assert attempt["coupon_id"] == "c1"
    assert attempt["client_id"] == "cl_1"
    assert "SAVE10" in attempt["message"]

    runs = executions(client, event)
    assert [(r["rule_id"], r["result"]) for r in runs] == [(rule["id"], "SUCCESS")]


def test_below_threshold_produces_nothing(client):
    put_coupon(client, "c1", "SAVE10", ["FR", "BE"])
    create_coupon_rule(client)

    event = post_event(client, "evt_1", orderTotalEur=40)

    assert event["attempts"] == []
    runs = executions(client, event)
    assert runs[0]["result"] == "SKIPPED"
    assert runs[0]["details"]["reason"] == "conditions_not_met"


def test_coupon_drift_is_skipped_at_dispatch(client):
    put_coupon(client, "c1", "SAVE10", ["FR", "BE"])
    create_coupon_rule(client)
    put_coupon(client, "c1", "SAVE10", ["DE"])

    event = post_event(client, "evt_1")

    assert [(a["status"], a["reason"]) for a in event["attempts"]] == [("skipped", "coupon_incompatible")]
    runs = executions(client, event)
    assert runs[0]["result"] == "SKIPPED"
    assert runs[0]["details"]["reason"] == "no_deliverable_actions"


def test_same_event_id_is_processed_once(client):
    put_coupon(client, "c1", "SAVE10", ["FR"])
    create_coupon_rule(client)

    first = post_event(client, "evt_1")
    second = post_event(client, "evt_1")

    assert first["id"] == second["id"]
    r = client.get(f"/api/events/{first['id']}/deliveries", headers=HEADERS)
    assert len(r.json()) == 1


def test_disabled_rule_is_not_a_candidate(client):
    put_coupon(client, "c1", "SAVE10", ["FR"])
    rule = create_coupon_rule(client)
    client.patch(f"/api/rules/{rule['id']}", json={"enabled": False}, headers=HEADERS)

    event = post_event(client, "evt_1")

    assert event["attempts"] == []
    stored = client.get(f"/api/events/{event['id']}", headers=HEADERS).json()
    assert stored["status"] == "PROCESSED"
    assert stored["error_code"] == "NO_RULES"


def test_every_matching_rule_dispatches(client):
    put_coupon(client, "c1", "SAVE10", ["FR"])
    create_coupon_rule(client, name="first")
    create_coupon_rule(
        client,
        name="second",
        actions=[{"type": "send_coupon", "channels": ["telegram", "in_app"], "payload": {"code": "EXTRA"}}],
    )

    event = post_event(client, "evt_1")

    assert sorted(a["channel"] for a in event["attempts"]) == ["email", "in_app", "telegram"]
    assert {r["result"] for r in executions(client, event)} == {"SUCCESS"}


def test_per_order_scope_fires_once_per_order(client):
    put_coupon(client, "c1", "SAVE10", ["FR"])
    create_coupon_rule(client, scope="per_order")

    first = post_event(client, "evt_1", orderId="o_7")
    second = post_event(client, "evt_2", orderId="o_7")
    third = post_event(client, "evt_3", orderId="o_8")

    assert len(first["attempts"]) == 1
    assert second["attempts"] == []
    assert executions(client, second)[0]["details"]["reason"] == "already_fired"
    assert len(third["attempts"]) == 1


def test_invalid_stored_rule_does_not_block_others(client, db):
    put_coupon(client, "c1", "SAVE10", ["FR"])
    create_coupon_rule(client)

    db.add(
        Rule(
            organization_id=ORG,
            name="broken",
            event="order_paid",
            priority=1,
            countries=[],
            order_currency_in=[],
            conditions={"op": "AND", "items": [{"kind": "moon_phase"}]},
            actions=[{"type": "send_coupon", "channels": ["email"], "payload": {"code": "X"}}],
        )
    )
    db.commit()

    event = post_event(client, "evt_1")

    assert event["status"] == "PROCESSED_WITH_ERRORS"
    assert [a["status"] for a in event["attempts"]] == ["queued"]
    assert sorted(r["result"] for r in executions(client, event)) == ["FAILED", "SUCCESS"]


def test_paid_orders_update_the_customer(client):
    post_event(client, "evt_1", clientId="cl_9", country="be")

    r = client.get("/api/customers/cl_9", headers=HEADERS)
    assert r.status_code == 200
    customer = r.json()
    assert customer["country"] == "BE"
    assert customer["last_order_at"] is not None


def test_customer_country_fills_missing_context(client):
    client.post("/api/customers/upsert", json={"clientId": "cl_2", "country": "fr"}, headers=HEADERS)
    put_coupon(client, "c1", "SAVE10", ["FR"])
    create_coupon_rule(client)

    event = post_event(client, "evt_1", clientId="cl_2", country=None)

    assert [a["status"] for a in event["attempts"]] == ["queued"]


def test_rules_run_in_priority_order(db):
    for priority, code in ((200, "LATE"), (5, "EARLY"), (50, "MIDDLE")):
        create_rule(
            db,
            ORG,
            build_rule(
                name=code,
                priority=priority,
                actions=[{"type": "send_coupon", "channels": ["email"], "payload": {"code": code}}],
            ),
        )

    event_row = AutomationEvent(
        organization_id=ORG,
        event_id="evt_1",
        event="order_paid",
        context={"event": "order_paid", "country": "FR"},
        status="PENDING",
    )
    db.add(event_row)
    db.commit()

    attempts = process_event(db, event_row)
    db.commit()

    codes = [a.variables["coupon_code"] for a in attempts]
    assert codes == ["EARLY", "MIDDLE", "LATE"]
    assert event_row.status == "PROCESSED"


def test_unknown_event_is_404(client):
    r = client.get("/api/events/00000000-0000-0000-0000-000000000000", headers=HEADERS)
    assert r.status_code == 404


def test_rule_that_raises_during_dispatch_fails_alone(db, monkeypatch):
    from app.models.rule_execution import RuleExecution
    from app.services import rule_engine

    ok_rule = create_rule(db, ORG, build_rule(name="fine", priority=10))
    bad_rule = create_rule(db, ORG, build_rule(name="explodes", priority=5))

    real_dispatch = rule_engine.dispatch

    def flaky_dispatch(session, document, context, *, organization_id):
        if document.name == "explodes":
            raise RuntimeError("outbox unavailable")
        return real_dispatch(session, document, context, organization_id=organization_id)

    monkeypatch.setattr(rule_engine, "dispatch", flaky_dispatch)

    event_row = AutomationEvent(
        organization_id=ORG,
        event_id="evt_1",
        event="order_paid",
        context={"event": "order_paid", "country": "FR"},
        status="PENDING",
    )
    db.add(event_row)
    db.commit()

    attempts = process_event(db, event_row)
    db.commit()

    results = {row.rule_id: row.result for row in db.query(RuleExecution).filter(RuleExecution.event_id == event_row.id)}
    assert results == {bad_rule.id: "FAILED", ok_rule.id: "SUCCESS"}
    assert [a.status for a in attempts] == ["queued"]
    assert event_row.status == "PROCESSED_WITH_ERRORS"
