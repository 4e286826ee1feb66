# gymmawy/services/paymob.py
"""Paymob unified-intention API (KSA).

Amounts go over the wire in cents and only SAR is accepted.
"""
import hashlib
import hmac
from decimal import Decimal, InvalidOperation

import requests
from flask import current_app

from ..utils.money import D, round_money, to_cents
from .currency import convert

TIMEOUT = 30
SIGNATURE_HEADERS = ("X-Paymob-Hmac", "X-Paymob-Signature", "Hmac")


class PaymobError(Exception):
    pass


def _cfg(key):
    return current_app.config.get(key)


def _headers():
    return {
        "Authorization": f"Token {_cfg('PAYMOB_SECRET_KEY')}",
        "Content-Type": "application/json",
    }


def to_sar(amount, currency):
    currency = (currency or "SAR").upper()
    if currency == "SAR":
        return round_money(amount)
    if currency in ("USD", "AED"):
        return convert(amount, currency, "SAR")
    raise PaymobError(f"Paymob only supports SAR, got {currency}")


def _item_total(items):
    """Sum of amount x quantity, or None when an item is malformed."""
    total = D(0)
    for i in items:
        if not isinstance(i, dict):
            return None
        try:
            amount = Decimal(str(i.get("amount")))
            quantity = int(i.get("quantity") or 1)
        except (InvalidOperation, TypeError, ValueError):
            return None
        if not amount.is_finite() or amount < 0 or quantity < 1:
            return None
        total += amount * quantity
    return total


def validate_payment_data(amount, billing: dict, items=None):
    errors = []
    billing = billing or {}
    if amount is None or D(amount) <= 0:
        errors.append("Amount is required and must be greater than 0")
    if not billing.get("firstName"):
        errors.append("Customer first name is required")
    if not billing.get("lastName"):
        errors.append("Customer last name is required")
    if not billing.get("email"):
        errors.append("Customer email is required")
    if not billing.get("phoneNumber"):
        errors.append("Customer phone number is required")
    if items and amount is not None:
        total = _item_total(items) if isinstance(items, list) else None
        if total is None:
            errors.append("Each item needs a numeric amount and a positive quantity")
        elif abs(total - D(amount)) > D("0.01"):
            errors.append("Items total amount must match the total payment amount")
    return errors


def build_intention_payload(amount_sar, billing, items, reference, notification_url=None, redirection_url=None):
    integration_id = _cfg("PAYMOB_INTEGRATION_ID")
    if not integration_id:
        raise PaymobError("PAYMOB_INTEGRATION_ID is not configured")
    billing = billing or {}
    payload = {
        "amount": to_cents(amount_sar),
        "currency": "SAR",
        "payment_methods": [int(integration_id)],
        "items": [
            {
                "name": str(i.get("name") or "Item"),
                "amount": to_cents(D(i.get("amount"))),
                "description": i.get("description") or "",
                "quantity": int(i.get("quantity") or 1),
            }
            for i in (items or [])
        ],
        "billing_data": {
            "first_name": billing.get("firstName"),
            "last_name": billing.get("lastName"),
            "email": billing.get("email"),
            "phone_number": billing.get("phoneNumber"),
            "apartment": billing.get("apartment") or "",
            "street": billing.get("street") or "",
            "building": billing.get("building") or "",
            "floor": billing.get("floor") or "",
            "city": billing.get("city") or "",
            "state": billing.get("state") or "",
            "country": billing.get("country") or "KSA",
            "postal_code": billing.get("postalCode") or "",
        },
        "customer": {
            "first_name": billing.get("firstName"),
            "last_name": billing.get("lastName"),
            "email": billing.get("email"),
        },
        "special_reference": reference,
        "extras": {"payment_reference": reference},
    }
    if notification_url:
        payload["notification_url"] = notification_url
    if redirection_url:
        payload["redirection_url"] = redirection_url
    return payload


def create_intention(payload):
    base = _cfg("PAYMOB_BASE_URL")
    try:
        r = requests.post(f"{base}/v1/intention/", json=payload, headers=_headers(), timeout=TIMEOUT)
    except requests.RequestException as e:
        current_app.logger.error("Paymob intention request failed: %s", e)
        raise PaymobError("Failed to create payment intention") from e
    if r.status_code >= 400:
        current_app.logger.error("Paymob intention failed: %s %s", r.status_code, r.text)
        raise PaymobError(f"Failed to create payment intention: {r.status_code}")
    data = r.json()
    return data, checkout_url(data.get("client_secret"))


def checkout_url(client_secret):
    return (f"{_cfg('PAYMOB_BASE_URL')}/unifiedcheckout/"
            f"?publicKey={_cfg('PAYMOB_PUBLIC_KEY')}&clientSecret={client_secret}")


def get_intention_status(intention_id):
    try:
        r = requests.get(f"{_cfg('PAYMOB_BASE_URL')}/v1/intention/{intention_id}",
                         headers=_headers(), timeout=TIMEOUT)
        r.raise_for_status()
    except requests.RequestException as e:
        current_app.logger.error("Paymob status lookup failed for %s: %s", intention_id, e)
        raise PaymobError("Failed to fetch intention status") from e
    return r.json()


def refund_transaction(transaction_id, amount):
    payload = {"transaction_id": transaction_id, "amount": to_cents(amount)}
    try:
        r = requests.post(f"{_cfg('PAYMOB_BASE_URL')}/v1/refund", json=payload,
                          headers=_headers(), timeout=TIMEOUT)
        r.raise_for_status()
    except requests.RequestException as e:
        current_app.logger.error("Paymob refund failed for %s: %s", transaction_id, e)
        raise PaymobError("Failed to process refund") from e
    return r.json()


def signature_from(request):
    for name in SIGNATURE_HEADERS:
        value = request.headers.get(name)
        if value:
            return value
    return request.args.get("hmac")


def verify_hmac(raw_body: bytes, received: str | None) -> bool:
    secret = _cfg("PAYMOB_HMAC_SECRET")
    if not secret:
        current_app.logger.warning("PAYMOB_HMAC_SECRET not configured, skipping webhook verification")
        return True
    if not received:
        return False
    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()
    return hmac.compare_digest(expected, received.strip().lower())


def map_status(obj: dict) -> str:
    success = bool(obj.get("success"))
    error = bool(obj.get("error_occured"))
    voided = bool(obj.get("is_voided"))
    refunded = bool(obj.get("is_refunded"))
    if success and not error:
        if refunded:
            return "REFUNDED"
        return "FAILED" if voided else "SUCCESS"
    if error or voided:
        return "FAILED"
    if refunded:
        return "REFUNDED"
    return "PENDING"
