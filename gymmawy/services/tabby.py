# gymmawy/services/tabby.py
import hashlib
import hmac
import logging
import time
from datetime import datetime

import requests
from flask import current_app

from ..extensions import db
from ..model import Payment
from ..utils.money import D

log = logging.getLogger(__name__)

TIMEOUT = 30
MAX_RETRIES = 3
RETRY_DELAY = 2  # seconds

SUPPORTED_CURRENCIES = ("SAR", "AED")

STATUS_MAP = {
    "NEW": "PENDING",
    "CREATED": "PENDING",
    "AUTHORIZED": "AUTHORIZED",
    "CLOSED": "SUCCESS",
    "REJECTED": "FAILED",
    "EXPIRED": "FAILED",
    "CANCELLED": "CANCELLED",
}


class TabbyError(Exception):
    def __init__(self, message, status_code=None, payload=None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


def _cfg(key):
    return current_app.config.get(key)


def is_available(currency) -> bool:
    return (currency or "").upper() in SUPPORTED_CURRENCIES


def merchant_code(currency) -> str:
    if (currency or "").upper() == "AED":
        return _cfg("TABBY_MERCHANT_CODE_AED") or "GUAE"
    return _cfg("TABBY_MERCHANT_CODE_SAR") or "CCSAU"


def _headers(currency="SAR"):
    return {
        "Authorization": f"Bearer {_cfg('TABBY_SECRET_KEY')}",
        "Content-Type": "application/json",
        "X-Merchant-Code": merchant_code(currency),
    }


def _call(method, path, currency="SAR", **kwargs):
    url = f"{_cfg('TABBY_BASE_URL')}{path}"
    try:
        r = requests.request(method, url, headers=_headers(currency), timeout=TIMEOUT, **kwargs)
    except requests.RequestException as e:
        current_app.logger.error("Tabby %s %s failed: %s", method, path, e)
        raise TabbyError(f"Tabby request failed: {e}") from e
    if r.status_code >= 400:
        current_app.logger.error("Tabby %s %s -> %s %s", method, path, r.status_code, r.text)
        try:
            body = r.json()
        except ValueError:
            body = {"raw": r.text}
        raise TabbyError(f"Tabby API error {r.status_code}", r.status_code, body)
    return r.json() if r.content else {}


def merchant_urls(payment_id):
    base = _cfg("FRONTEND_URL")
    return {
        "success": f"{base}/payment/success?payment_id={payment_id}",
        "cancel": f"{base}/payment/cancel?payment_id={payment_id}",
        "failure": f"{base}/payment/failure?payment_id={payment_id}",
    }


def build_payment_object(amount, currency, description, buyer, reference, items=None,
                         shipping_address=None, buyer_history=None):
    payment = {
        "amount": f"{amount:.2f}",
        "currency": currency,
        "description": description,
        "buyer": buyer,
        "buyer_history": buyer_history or {},
        "order": {"reference_id": reference, "items": items or []},
        "order_history": [],
        "meta": {"order_id": reference},
    }
    if shipping_address:
        payment["shipping_address"] = shipping_address
    return payment


def create_checkout_session(payment: dict, merchant_urls_: dict, lang="en"):
    """POST the checkout, retrying network failures only."""
    currency = payment.get("currency") or "SAR"
    payload = {
        "payment": payment,
        "lang": lang,
        "merchant_code": merchant_code(currency),
        "merchant_urls": merchant_urls_,
    }
    url = f"{_cfg('TABBY_BASE_URL')}/api/v2/checkout"
    attempt = 0
    while True:
        try:
            r = requests.post(url, json=payload, headers=_headers(currency), timeout=TIMEOUT)
            break
        except (requests.ConnectionError, requests.Timeout) as e:
            if attempt >= MAX_RETRIES:
                current_app.logger.error("Tabby checkout failed after %s attempts: %s", attempt + 1, e)
                raise TabbyError("Tabby service is unreachable") from e
            attempt += 1
            current_app.logger.warning("Tabby checkout attempt %s failed, retrying: %s", attempt, e)
            time.sleep(RETRY_DELAY)
    if r.status_code >= 400:
        current_app.logger.error("Tabby checkout rejected: %s %s", r.status_code, r.text)
        try:
            body = r.json()
        except ValueError:
            body = {"raw": r.text}
        raise TabbyError(f"Tabby API error {r.status_code}", r.status_code, body)
    return r.json()


def web_url_from(session: dict):
    products = ((session.get("configuration") or {}).get("available_products") or {})
    installments = products.get("installments") or []
    return installments[0].get("web_url") if installments else None


def rejection_reason_from(session: dict):
    products = ((session.get("configuration") or {}).get("products") or {})
    inst = products.get("installments") or {}
    return inst.get("rejection_reason") or session.get("status") or "not_available"


def get_payment(payment_id, currency="SAR"):
    return _call("GET", f"/api/v2/payments/{payment_id}", currency)


def capture_payment(payment_id, amount, currency="SAR", reference_id=None):
    body = {"amount": f"{amount:.2f}"}
    if reference_id:
        body["reference_id"] = reference_id
    return _call("POST", f"/api/v2/payments/{payment_id}/captures", currency, json=body)


def refund_payment(payment_id, amount, currency="SAR", reason=None):
    body = {"amount": f"{amount:.2f}"}
    if reason:
        body["reason"] = reason
    return _call("POST", f"/api/v2/payments/{payment_id}/refunds", currency, json=body)


def close_payment(payment_id, currency="SAR"):
    return _call("POST", f"/api/v2/payments/{payment_id}/close", currency)


def register_webhook(url, currency="SAR"):
    body = {"url": url, "is_test": (_cfg("ENV") or "") != "production"}
    return _call("POST", "/api/v1/webhooks", currency, json=body)


def map_status(tabby_status) -> str:
    return STATUS_MAP.get((tabby_status or "").upper(), "PENDING")


def verify_signature(raw_body: bytes, received: str | None) -> bool:
    secret = _cfg("TABBY_WEBHOOK_SECRET")
    if not secret:
        return True
    if not received:
        return False
    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, received.strip().lower())


def auto_capture(payment: Payment, remote_id=None, now=None) -> bool:
    """Capture the full amount of an authorized payment. False leaves it authorized."""
    now = now or datetime.utcnow()
    remote_id = remote_id or payment.transaction_id
    try:
        capture = capture_payment(remote_id, D(payment.amount), payment.currency,
                                  reference_id=f"auto-capture-{payment.payment_reference}")
    except TabbyError as e:
        log.error("tabby auto-capture failed for %s: %s", payment.payment_reference, e)
        return False
    payment.merge_meta(tabby_status="CLOSED", captured_at=now.isoformat(), capture_id=capture.get("id"))
    return True


def uncaptured_payments():
    candidates = Payment.query.filter(Payment.gateway == "tabby", Payment.status == "SUCCESS").all()
    return [p for p in candidates
            if (p.meta or {}).get("tabby_status") == "AUTHORIZED" and not (p.meta or {}).get("captured_at")]


def capture_authorized_payments(now=None):
    """Retry the capture of every authorized Tabby payment that was never captured."""
    pending = uncaptured_payments()
    captured = sum(1 for p in pending if auto_capture(p, now=now))
    db.session.commit()
    log.info("tabby capture run: %s of %s captured", captured, len(pending))
    return {"checked": len(pending), "captured": captured}
