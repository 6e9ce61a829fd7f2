from typing import get_args

from app.schemas.rule import EventName


ORDER_EVENTS = [e for e in get_args(EventName) if e.startswith("order_")]


def get_rule_conditions_catalog():
    return {
        "combinators": ["AND", "OR"],
        "events": list(get_args(EventName)),
        "channels": ["email", "telegram", "in_app", "webhook"],
        "currencies": ["USD", "EUR", "GBP"],
        "scopes": ["per_order", "per_customer"],
        "uiHints": {
            "contains_product.productIds": {
                "widget": "remote_multi_select",
                "datasource": {
                    "endpoint": "/api/products",
                    "method": "GET",
                    "valueField": "id",
                    "labelField": "title",
                    "organizationVia": "X-Organization",
                },
            },
            "send_coupon.couponId": {
                "widget": "remote_select",
                "datasource": {
                    "endpoint": "/api/coupons",
                    "method": "GET",
                    "valueField": "id",
                    "labelField": "name",
                    "organizationVia": "X-Organization",
                },
            },
        },
        "conditions": [
            {
                "kind": "contains_product",
                "params": {"productIds": ["<productId>"]},
                "events": ORDER_EVENTS,
            },
            {
                "kind": "order_total_gte_eur",
                "params": {"amount": "number >= 0"},
                "events": ORDER_EVENTS,
            },
            {
                "kind": "no_order_days_gte",
                "params": {"days": "int >= 1"},
                "events": ["customer_inactive"],
            },
            {
                "kind": "group",
                "params": {"op": "AND|OR", "items": ["<condition>"]},
            },
        ],
        "actions": [
            {
                "type": "send_coupon",
                "params": {
                    "couponId": "str | null",
                    "code": "str (fallback)",
                    "templateSubject": "str",
                    "templateMessage": "html",
                    "url": "str",
                },
                "placeholders": ["{coupon}", "{coupon_code}"],
            },
            {
                "type": "product_recommendation",
                "params": {
                    "productIds": ["<productId>"],
                    "collectionId": "str",
                    "templateSubject": "str",
                    "templateMessage": "html",
                    "url": "str",
                },
                "placeholders": ["{recommended_products}", "{product_ids}", "{collection_id}"],
            },
        ],
    }
