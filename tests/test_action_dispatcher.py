from app.schemas.event import EventContext
from app.services.action_dispatcher import (
    FAILED,
    FALLBACK_MESSAGE,
    QUEUED,
    SKIPPED,
    dispatch,
    make_dedupe_key,
    render_template,
)
from tests.conftest import ORG, build_rule


def coupon_rule(payload, channels=("email",), **overrides):
    return build_rule(
        actions=[{"type": "send_coupon", "channels": list(channels), "payload": payload}],
        **overrides,
    )


def ctx(**overrides) -> EventContext:
    data = {"event": "order_paid", "country": "FR", "clientId": "cl_1", "orderId": "o_1", "orderTotalEur": 80}
    data.update(overrides)
    return EventContext.model_validate(data)


def test_render_template_leaves_unknown_placeholders():
    assert render_template("Hi {name}, {unknown}", {"name": "Ann"}) == "Hi Ann, {unknown}"
    assert render_template(None, {"name": "Ann"}) == ""


def test_dedupe_key_is_stable():
    a = make_dedupe_key({"eventId": "e1", "channel": "email", "actionIndex": 0})
    b = make_dedupe_key({"actionIndex": 0, "channel": "email", "eventId": "e1"})
    assert a == b
    assert a != make_dedupe_key({"eventId": "e1", "channel": "telegram", "actionIndex": 0})


def test_coupon_from_catalog_one_attempt_per_channel(db, add_coupon):
    add_coupon("c1", "SAVE10", ["FR", "BE"])
    rule = coupon_rule({"couponId": "c1"}, channels=("email", "telegram"), countries=["FR"])

    attempts = dispatch(db, rule, ctx(), organization_id=ORG)

    assert [a.channel for a in attempts] == ["email", "telegram"]
    for attempt in attempts:
        assert attempt.status == QUEUED
        assert attempt.coupon_id == "c1"
        assert "SAVE10" in attempt.message
        assert attempt.variables["coupon_code"] == "SAVE10"
        assert attempt.variables["client_id"] == "cl_1"
        assert attempt.variables["order_id"] == "o_1"


def test_coupon_that_no_longer_fits_is_skipped(db, add_coupon):
    add_coupon("c1", "SAVE10", ["DE"])
    rule = coupon_rule({"couponId": "c1"}, channels=("email", "in_app"), countries=["FR"])

    attempts = dispatch(db, rule, ctx(), organization_id=ORG)

    assert len(attempts) == 2
    assert {a.status for a in attempts} == {SKIPPED}
    assert {a.reason for a in attempts} == {"coupon_incompatible"}
    assert attempts[0].details["missingCountries"] == ["FR"]


def test_missing_coupon_is_skipped(db):
    rule = coupon_rule({"couponId": "gone"})
    attempts = dispatch(db, rule, ctx(), organization_id=ORG)
    assert [(a.status, a.reason) for a in attempts] == [(SKIPPED, "coupon_not_found")]


def test_fallback_code_without_coupon_id(db):
    rule = coupon_rule({"code": "HELLO5", "templateSubject": "Your code {coupon}"})
    attempts = dispatch(db, rule, ctx(), organization_id=ORG)

    assert len(attempts) == 1
    assert attempts[0].status == QUEUED
    assert attempts[0].coupon_id is None
    assert attempts[0].subject == "Your code HELLO5"
    assert "HELLO5" in attempts[0].message


def test_message_values_are_html_escaped(db, add_coupon):
    add_coupon("c1", "A&B", [])
    rule = coupon_rule(
        {
            "couponId": "c1",
            "templateSubject": "{coupon} for {shop}",
            "templateMessage": "<p>Use {coupon} at {shop}</p>",
        }
    )
    attempts = dispatch(db, rule, ctx(variables={"shop": "<Shop>"}), organization_id=ORG)

    assert attempts[0].subject == "A&B for <Shop>"
    assert attempts[0].message == "<p>Use A&amp;B at &lt;Shop&gt;</p>"


def test_blank_message_falls_back(db):
    rule = coupon_rule({"code": "X", "templateMessage": "   "})
    attempts = dispatch(db, rule, ctx(), organization_id=ORG)
    assert attempts[0].message == FALLBACK_MESSAGE


def test_product_recommendation_lists_titles(db, add_product):
    add_product("p1", "Blue Mug")
    add_product("p2", "Tea & Cake")
    rule = build_rule(
        actions=[
            {
                "type": "product_recommendation",
                "channels": ["email"],
                "payload": {"productIds": ["p1", "p2", "p404"]},
            }
        ]
    )

    attempts = dispatch(db, rule, ctx(), organization_id=ORG)

    assert len(attempts) == 1
    assert attempts[0].status == QUEUED
    assert "<ul><li>Blue Mug</li><li>Tea &amp; Cake</li><li>p404</li></ul>" in attempts[0].message
    assert attempts[0].variables["product_ids"] == "p1,p2,p404"


def test_one_bad_action_does_not_block_the_next(db):
    rule = build_rule(
        actions=[
            {"type": "send_coupon", "channels": ["email"], "payload": {"couponId": "gone"}},
            {"type": "send_coupon", "channels": ["email"], "payload": {"code": "OK"}},
        ]
    )
    attempts = dispatch(db, rule, ctx(), organization_id=ORG)

    assert [(a.action_index, a.status) for a in attempts] == [(0, SKIPPED), (1, QUEUED)]


def test_failing_channel_does_not_block_the_others(db, monkeypatch):
    from app.services import action_dispatcher

    real_build = action_dispatcher._build_attempt

    def build(index, action, channel, context, resolved):
        if channel == "telegram":
            raise RuntimeError("telegram template broke")
        return real_build(index, action, channel, context, resolved)

    monkeypatch.setattr(action_dispatcher, "_build_attempt", build)
    rule = coupon_rule({"code": "X"}, channels=("email", "telegram", "in_app"))

    attempts = dispatch(db, rule, ctx(), organization_id=ORG)

    by_channel = {a.channel: a for a in attempts}
    assert by_channel["telegram"].status == FAILED
    assert by_channel["telegram"].reason == "error"
    assert by_channel["telegram"].details == {"error": "telegram template broke"}
    assert by_channel["email"].status == QUEUED
    assert by_channel["in_app"].status == QUEUED


def test_failing_action_does_not_block_the_next(db, monkeypatch):
    from app.services import action_dispatcher

    real_resolve = action_dispatcher._resolve

    def resolve(session, organization_id, rule, action):
        if action.type == "product_recommendation":
            raise RuntimeError("catalog unavailable")
        return real_resolve(session, organization_id, rule, action)

    monkeypatch.setattr(action_dispatcher, "_resolve", resolve)
    rule = build_rule(
        actions=[
            {"type": "product_recommendation", "channels": ["email", "in_app"], "payload": {"productIds": ["p1"]}},
            {"type": "send_coupon", "channels": ["email"], "payload": {"code": "OK"}},
        ]
    )

    attempts = dispatch(db, rule, ctx(), organization_id=ORG)

    assert [(a.action_index, a.channel, a.status, a.reason) for a in attempts] == [
        (0, "email", FAILED, "error"),
        (0, "in_app", FAILED, "error"),
        (1, "email", QUEUED, None),
    ]
