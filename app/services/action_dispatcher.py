import hashlib
import html
import json
import logging
import re
from dataclasses import asdict, dataclass, field

from sqlalchemy.orm import Session

from app.models.product import Product
from app.schemas.catalog import parse_countries
from app.schemas.event import EventContext
from app.schemas.rule import ProductRecommendationAction, SendCouponAction
from app.services.coupon_service import get_coupon, is_compatible, missing_countries


logger = logging.getLogger(__name__)

QUEUED = "queued"
SKIPPED = "skipped"
FAILED = "failed"

DEFAULT_COUPON_MESSAGE = "<p>You've received a coupon: {coupon}</p>"
DEFAULT_RECOMMENDATION_MESSAGE = "<p>We think you'll love these:</p>{recommended_products}"
FALLBACK_MESSAGE = "<p>Notification</p>"

_PLACEHOLDER = re.compile(r"\{([A-Za-z0-9_]+)\}")


@dataclass
class DeliveryAttempt:
    action_index: int
    action_type: str
    channel: str
    status: str
    reason: str | None = None

    subject: str | None = None
    message: str | None = None
    url: str | None = None
    variables: dict = field(default_factory=dict)

    coupon_id: str | None = None
    details: dict = field(default_factory=dict)

    def as_dict(self) -> dict:
        return asdict(self)

    def summary(self) -> dict:
        out = {
            "actionIndex": self.action_index,
            "type": self.action_type,
            "channel": self.channel,
            "status": self.status,
        }
        if self.reason:
            out["reason"] = self.reason
        if self.details:
            out.update(self.details)
        return out


class ActionSkipped(Exception):
    def __init__(self, reason: str, details: dict | None = None):
        super().__init__(reason)
        self.reason = reason
        self.details = details or {}


def make_dedupe_key(data: dict) -> str:
    return hashlib.sha256(json.dumps(data, sort_keys=True, default=str).encode("utf-8")).hexdigest()


def render_template(template: str | None, values: dict) -> str:
    """Replace `{name}` for every known name; unknown placeholders stay untouched."""
    if not template:
        return ""

    def _sub(m):
        key = m.group(1)
        if key in values:
            return values[key] if values[key] is not None else ""
        return m.group(0)

    return _PLACEHOLDER.sub(_sub, template)


def _escape(value) -> str:
    return html.escape("" if value is None else str(value), quote=False)


def _product_titles(db: Session, organization_id: str, product_ids: list[str]) -> list[str]:
    if not product_ids:
        return []
    rows = (
        db.query(Product.id, Product.title)
        .filter(Product.organization_id == organization_id)
        .filter(Product.id.in_(product_ids))
        .all()
    )
    titles = {str(r.id): r.title for r in rows}
    return [titles.get(pid) or pid for pid in product_ids]


def _resolve_send_coupon(db: Session, organization_id: str, rule_countries, action: SendCouponAction):
    payload = action.payload

    if payload.couponId:
        coupon = get_coupon(db, organization_id, payload.couponId)
        if coupon is None:
            raise ActionSkipped("coupon_not_found", {"couponId": payload.couponId})

        coupon_countries = parse_countries(coupon.countries)
        if not is_compatible(coupon_countries, rule_countries):
            raise ActionSkipped(
                "coupon_incompatible",
                {
                    "couponId": coupon.id,
                    "missingCountries": missing_countries(coupon_countries, rule_countries),
                },
            )
        code = coupon.code
        coupon_id = coupon.id
    elif payload.code:
        code = payload.code
        coupon_id = None
    else:
        raise ActionSkipped("coupon_missing")

    text_values = {"coupon": code, "coupon_code": code}
    html_values = {k: _escape(v) for k, v in text_values.items()}
    variables = {"coupon_code": code}
    if coupon_id:
        variables["coupon_id"] = coupon_id

    return {
        "text_values": text_values,
        "html_values": html_values,
        "variables": variables,
        "default_message": DEFAULT_COUPON_MESSAGE,
        "coupon_id": coupon_id,
    }


def _resolve_product_recommendation(db: Session, organization_id: str, action: ProductRecommendationAction):
    payload = action.payload
    ids = list(payload.productIds)
    titles = _product_titles(db, organization_id, ids)

    text_values = {
        "product_ids": ",".join(ids),
        "recommended_products": ", ".join(titles),
        "collection_id": payload.collectionId or "",
    }
    html_values = {
        "product_ids": _escape(text_values["product_ids"]),
        "recommended_products": (
            "<ul>" + "".join(f"<li>{_escape(t)}</li>" for t in titles) + "</ul>" if titles else ""
        ),
        "collection_id": _escape(text_values["collection_id"]),
    }
    variables = {}
    if ids:
        variables["product_ids"] = text_values["product_ids"]
    if payload.collectionId:
        variables["collection_id"] = payload.collectionId

    return {
        "text_values": text_values,
        "html_values": html_values,
        "variables": variables,
        "default_message": DEFAULT_RECOMMENDATION_MESSAGE,
        "coupon_id": None,
    }


def _resolve(db: Session, organization_id: str, rule, action):
    if isinstance(action, SendCouponAction):
        return _resolve_send_coupon(db, organization_id, rule.countries, action)
    if isinstance(action, ProductRecommendationAction):
        return _resolve_product_recommendation(db, organization_id, action)
    raise ValueError(f"Unknown action type: {getattr(action, 'type', type(action).__name__)}")


def _build_attempt(index: int, action, channel: str, ctx: EventContext, resolved: dict) -> DeliveryAttempt:
    payload = action.payload

    ctx_text = dict(ctx.variables)
    ctx_html = {k: _escape(v) for k, v in ctx_text.items()}

    subject = render_template(payload.templateSubject, {**ctx_text, **resolved["text_values"]}) or None
    message = render_template(
        payload.templateMessage or resolved["default_message"],
        {**ctx_html, **resolved["html_values"]},
    )
    if not message.strip():
        message = FALLBACK_MESSAGE

    variables = {**ctx.variables, **resolved["variables"]}
    if ctx.clientId:
        variables.setdefault("client_id", ctx.clientId)
    if ctx.orderId:
        variables.setdefault("order_id", ctx.orderId)

    return DeliveryAttempt(
        action_index=index,
        action_type=action.type,
        channel=channel,
        status=QUEUED,
        subject=subject,
        message=message,
        url=payload.url or ctx.url,
        variables=variables,
        coupon_id=resolved["coupon_id"],
    )


def dispatch(db: Session, rule, ctx: EventContext, *, organization_id: str) -> list[DeliveryAttempt]:
    """
    Turn every action of a matched rule into one delivery request per channel.

    Nothing is raised for a single action or channel: a coupon that no longer
    fits the rule's countries yields `skipped` attempts, an unexpected error
    yields `failed` attempts, and the remaining actions/channels still run.
    """
    attempts: list[DeliveryAttempt] = []
    rule_id = str(getattr(rule, "id", "") or "") or None

    for index, action in enumerate(rule.actions):
        try:
            resolved = _resolve(db, organization_id, rule, action)
        except ActionSkipped as skip:
            logger.info(
                "action skipped",
                extra={"rule_id": rule_id, "action_index": index, "action_type": action.type, "reason": skip.reason},
            )
            for channel in action.channels:
                attempts.append(
                    DeliveryAttempt(
                        action_index=index,
                        action_type=action.type,
                        channel=channel,
                        status=SKIPPED,
                        reason=skip.reason,
                        coupon_id=skip.details.get("couponId"),
                        details=dict(skip.details),
                    )
                )
            continue
        except Exception as e:
            logger.exception(
                "action resolution failed",
                extra={"rule_id": rule_id, "action_index": index, "action_type": action.type},
            )
            for channel in action.channels:
                attempts.append(
                    DeliveryAttempt(
                        action_index=index,
                        action_type=action.type,
                        channel=channel,
                        status=FAILED,
                        reason="error",
                        details={"error": str(e)},
                    )
                )
            continue

        for channel in action.channels:
            try:
                attempts.append(_build_attempt(index, action, channel, ctx, resolved))
            except Exception as e:
                logger.exception(
                    "delivery request failed",
                    extra={"rule_id": rule_id, "action_index": index, "channel": channel},
                )
                attempts.append(
                    DeliveryAttempt(
                        action_index=index,
                        action_type=action.type,
                        channel=channel,
                        status=FAILED,
                        reason="error",
                        details={"error": str(e)},
                    )
                )

    return attempts
