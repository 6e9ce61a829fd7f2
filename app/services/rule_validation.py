from sqlalchemy.orm import Session

from app.schemas.catalog import parse_countries
from app.schemas.rule import NestedConditionGroup, SendCouponAction
from app.services.coupon_service import get_coupons_map, is_compatible, missing_countries


class RuleValidationError(ValueError):
    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


def iter_condition_items(group):
    """Leaf conditions of a (possibly nested) group, depth first."""
    if group is None:
        return
    for item in group.items:
        if isinstance(item, NestedConditionGroup):
            yield from iter_condition_items(item)
        else:
            yield item


def collect_rule_errors(db: Session, organization_id: str, rule) -> list[str]:
    errors = []
    event = rule.event
    kinds = [item.kind for item in iter_condition_items(rule.conditions)]

    if event.startswith("order_") and "no_order_days_gte" in kinds:
        errors.append("Condition 'no_order_days_gte' is not valid for order events.")
    if event == "customer_inactive" and any(k != "no_order_days_gte" for k in kinds):
        errors.append("Only 'no_order_days_gte' is allowed for 'customer_inactive'.")

    if event == "customer_inactive" and rule.scope == "per_order":
        errors.append("Scope 'per_order' is not allowed for 'customer_inactive'.")

    coupon_ids = [
        a.payload.couponId
        for a in rule.actions
        if isinstance(a, SendCouponAction) and a.payload.couponId
    ]
    if coupon_ids:
        coupons = get_coupons_map(db, organization_id, coupon_ids)
        for cid in dict.fromkeys(coupon_ids):
            coupon = coupons.get(cid)
            if coupon is None:
                errors.append(f"Coupon {cid} not found for this organization.")
                continue
            coupon_countries = parse_countries(coupon.countries)
            if not is_compatible(coupon_countries, rule.countries):
                missing = missing_countries(coupon_countries, rule.countries)
                errors.append(f"Coupon isn't valid for: {', '.join(missing)}")

    return errors


def validate_rule(db: Session, organization_id: str, rule) -> None:
    errors = collect_rule_errors(db, organization_id, rule)
    if errors:
        raise RuleValidationError(errors)
