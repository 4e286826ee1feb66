# gymmawy/tabby/routes.py
from datetime import datetime

from flask import current_app, request

from . import bp
from ..errors import ApiError, NotFound, Unauthorized, ValidationError
from ..extensions import db
from ..model import Payment
from ..services import tabby
from ..services.payment_service import (activate_paymentable, advance_status, cancel_paymentable,
                                        create_payment, find_gateway_payment, owned_paymentable,
                                        paymentable_amount)
from ..utils.api import ok
from ..utils.decorators import admin_required, auth_required, current_user, is_admin
from ..utils.money import D, as_float
from ..utils.validation import json_body, parse_choice, parse_decimal, parse_int, require_fields

UNAVAILABLE = ("Sorry, Tabby is unable to approve this purchase, "
               "please use an alternative payment method for your order.")


def _gateway_error(e: tabby.TabbyError):
    return ApiError(str(e), status=502, code="TABBY_ERROR", expose=True,
                    details=[{"field": "tabby", "message": str(e.payload)}] if e.payload else None)


@bp.get("/availability")
def availability():
    currency = (request.args.get("currency") or "").upper()
    return ok("OK", {
        "currency": currency,
        "available": tabby.is_available(currency),
        "supportedCurrencies": list(tabby.SUPPORTED_CURRENCIES),
    })


@bp.post("/checkout")
@auth_required
def checkout():
    user = current_user()
    data = json_body()
    require_fields(data, "paymentableType", "paymentableId")
    ptype = parse_choice(data.get("paymentableType"), "paymentableType", Payment.PAYMENTABLE_TYPES)
    target = owned_paymentable(user, ptype, parse_int(data.get("paymentableId"), "paymentableId", minimum=1))
    if target.status != "PENDING":
        raise ApiError(f"Cannot pay for an item in status {target.status}")
    if not tabby.is_available(target.currency):
        raise ApiError("Tabby is only available for SAR and AED", code="CURRENCY_NOT_SUPPORTED")

    amount = D(paymentable_amount(target))
    buyer = data.get("buyer") or {
        "name": user.full_name,
        "email": user.email,
        "phone": user.mobile_number,
    }
    payment = create_payment(user.id, ptype, target.id, amount, target.currency, "TABBY", gateway="tabby")
    tabby_payment = tabby.build_payment_object(
        amount, target.currency,
        description=data.get("description") or f"Gymmawy {ptype.replace('_', ' ').lower()}",
        buyer=buyer,
        reference=payment.payment_reference,
        items=data.get("items"),
        shipping_address=data.get("shippingAddress"),
        buyer_history={
            "registered_since": (user.created_at or datetime.utcnow()).isoformat(),
            "loyalty_level": 0,
            "is_email_verified": bool(user.email_verified),
        },
    )
    try:
        session = tabby.create_checkout_session(tabby_payment, tabby.merchant_urls(payment.id),
                                                lang=data.get("lang") or "en")
    except tabby.TabbyError as e:
        db.session.rollback()
        if e.status_code is None:
            raise ApiError("Payment service temporarily unavailable", status=503,
                           code="TABBY_UNAVAILABLE", expose=True)
        raise _gateway_error(e)

    if session.get("status") != "created":
        reason = tabby.rejection_reason_from(session)
        db.session.rollback()
        current_app.logger.info("tabby rejected checkout for user %s: %s", user.id, reason)
        raise ApiError(UNAVAILABLE, code="TABBY_REJECTED", details=[{"field": "tabby", "message": reason}])

    payment.gateway_id = session.get("id")
    payment.transaction_id = (session.get("payment") or {}).get("id")
    payment.merge_meta(tabby_status=session.get("status"))
    db.session.commit()
    return ok("Tabby checkout created", {
        "payment": payment.as_api(),
        "sessionId": session.get("id"),
        "webUrl": tabby.web_url_from(session),
    }, 201)


def _find(tabby_payment_id, reference=None):
    return find_gateway_payment("tabby", gateway_id=tabby_payment_id, reference=reference,
                                transaction_id=tabby_payment_id)


@bp.post("/webhook")
def webhook():
    raw = request.get_data()
    if not tabby.verify_signature(raw, request.headers.get("X-Tabby-Signature")):
        current_app.logger.warning("tabby webhook rejected: bad signature")
        raise Unauthorized("Invalid webhook signature")

    body = request.get_json(silent=True) or {}
    event = body.get("event") or ""
    remote = body.get("payment") or body
    remote_id = remote.get("id")
    reference = (remote.get("order") or {}).get("reference_id")
    payment = _find(remote_id, reference)
    if not payment:
        current_app.logger.warning("tabby webhook %s for unknown payment %s", event, remote_id)
        raise NotFound("Payment not found")

    now = datetime.utcnow()
    previous = payment.status
    if event == "payment.authorized" or (not event and (remote.get("status") or "").upper() == "AUTHORIZED"):
        if previous != "SUCCESS" and advance_status(payment, "SUCCESS"):
            _authorize(payment, remote_id, now)
    elif event == "payment.closed":
        if advance_status(payment, "SUCCESS"):
            payment.processed_at = now
            payment.merge_meta(tabby_status="CLOSED", closed_at=now.isoformat())
            if previous != "SUCCESS":
                activate_paymentable(payment, now)
    elif event in ("payment.rejected", "payment.expired"):
        reason = remote.get("rejection_reason") or event.split(".")[1]
        if advance_status(payment, "FAILED"):
            payment.processed_at = now
            payment.merge_meta(tabby_status=event.split(".")[1].upper(), rejection_reason=reason)
            cancel_paymentable(payment, reason, now)
    else:
        status = tabby.map_status(remote.get("status"))
        if advance_status(payment, status):
            payment.merge_meta(tabby_status=(remote.get("status") or "").upper(), updated_at=now.isoformat())
            if status == "SUCCESS" and previous != "SUCCESS":
                activate_paymentable(payment, now)

    db.session.commit()
    current_app.logger.info("tabby webhook %s: payment %s -> %s", event or "status",
                            payment.payment_reference, payment.status)
    return ok("Webhook processed", {"paymentId": payment.id, "status": payment.status})


def _authorize(payment: Payment, remote_id, now):
    payment.processed_at = now
    payment.merge_meta(tabby_status="AUTHORIZED", authorized_at=now.isoformat())
    activate_paymentable(payment, now)
    tabby.auto_capture(payment, remote_id, now)


def _own_tabby_payment(payment_id) -> Payment:
    user = current_user()
    payment = Payment.query.filter(
        Payment.gateway == "tabby",
        db.or_(Payment.transaction_id == payment_id, Payment.gateway_id == payment_id),
    ).first()
    if not payment or (payment.user_id != user.id and not is_admin(user)):
        raise NotFound("Payment not found")
    return payment


@bp.get("/payment/<payment_id>/status")
@auth_required
def payment_status(payment_id):
    payment = _own_tabby_payment(payment_id)
    try:
        remote = tabby.get_payment(payment_id, payment.currency)
    except tabby.TabbyError as e:
        raise _gateway_error(e)
    return ok("OK", {"payment": payment.as_api(), "tabby": remote,
                     "mappedStatus": tabby.map_status(remote.get("status"))})


@bp.post("/payment/<payment_id>/capture")
@auth_required
def capture(payment_id):
    payment = _own_tabby_payment(payment_id)
    amount = parse_decimal(json_body().get("amount"), "amount", minimum="0.01", required=False) or D(payment.amount)
    try:
        result = tabby.capture_payment(payment_id, amount, payment.currency,
                                       reference_id=payment.payment_reference)
    except tabby.TabbyError as e:
        raise _gateway_error(e)
    payment.merge_meta(captured_at=datetime.utcnow().isoformat(), capture_id=result.get("id"))
    db.session.commit()
    return ok("Payment captured", {"payment": payment.as_api(), "capture": result})


@bp.post("/payment/<payment_id>/refund")
@auth_required
def refund(payment_id):
    payment = _own_tabby_payment(payment_id)
    data = json_body()
    amount = parse_decimal(data.get("amount"), "amount", minimum="0.01", required=False) or D(payment.amount)
    if amount > D(payment.amount):
        raise ValidationError("Refund amount exceeds the payment amount", field="amount")
    try:
        result = tabby.refund_payment(payment_id, amount, payment.currency, reason=data.get("reason"))
    except tabby.TabbyError as e:
        raise _gateway_error(e)
    payment.status = "REFUNDED"
    payment.merge_meta(refund_amount=str(amount), refunded_at=datetime.utcnow().isoformat(),
                       refund_id=result.get("id"))
    db.session.commit()
    return ok("Payment refunded", {"payment": payment.as_api(), "refundAmount": as_float(amount)})


@bp.post("/payment/<payment_id>/close")
@auth_required
def close(payment_id):
    payment = _own_tabby_payment(payment_id)
    try:
        result = tabby.close_payment(payment_id, payment.currency)
    except tabby.TabbyError as e:
        raise _gateway_error(e)
    payment.merge_meta(tabby_status="CLOSED", closed_at=datetime.utcnow().isoformat())
    db.session.commit()
    return ok("Payment closed", {"payment": payment.as_api(), "tabby": result})


@bp.post("/webhook/setup")
@admin_required
def setup_webhook():
    data = json_body()
    url = data.get("url") or f"{current_app.config['API_BASE_URL']}/api/tabby/webhook"
    currency = (data.get("currency") or "SAR").upper()
    try:
        result = tabby.register_webhook(url, currency)
    except tabby.TabbyError as e:
        raise _gateway_error(e)
    return ok("Webhook registered", result, 201)
