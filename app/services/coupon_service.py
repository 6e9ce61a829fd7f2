from sqlalchemy.orm import Session

from app.models.coupon import Coupon
from app.schemas.catalog import parse_countries


def is_compatible(coupon_countries, rule_countries) -> bool:
    """
    A coupon is usable for a rule when the rule is unrestricted, or when every
    rule country is covered by the coupon. A coupon without countries only fits
    unrestricted rules.
    """
    rule = parse_countries(rule_countries)
    if not rule:
        return True
    coupon = set(parse_countries(coupon_countries))
    if not coupon:
        return False
    return all(c in coupon for c in rule)


def missing_countries(coupon_countries, rule_countries) -> list[str]:
    coupon = set(parse_countries(coupon_countries))
    return [c for c in parse_countries(rule_countries) if c not in coupon]


def get_coupon(db: Session, organization_id: str, coupon_id: str):
    if not coupon_id:
        return None
    return (
        db.query(Coupon)
        .filter(Coupon.id == str(coupon_id), Coupon.organization_id == organization_id)
        .first()
    )


def get_coupons_map(db: Session, organization_id: str, coupon_ids) -> dict:
    unique = sorted({str(c) for c in coupon_ids if c})
    if not unique:
        return {}
    rows = (
        db.query(Coupon)
        .filter(Coupon.organization_id == organization_id)
        .filter(Coupon.id.in_(unique))
        .all()
    )
    return {row.id: row for row in rows}
