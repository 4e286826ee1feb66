# gymmawy/paymob/routes.py
from datetime import datetime

from flask import current_app, request

from . import bp
from ..errors import ApiError, NotFound, Unauthorized, ValidationError
from ..extensions import db
from ..model import Payment
from ..services import paymob
from ..services.payment_service import (activate_paymentable, advance_status, create_payment,
                                        find_gateway_payment, owned_paymentable, paymentable_amount)
from ..utils.api import ok
from ..utils.decorators import admin_required, auth_required, current_user
from ..utils.money import D, as_float
from ..utils.validation import json_body, parse_choice, parse_decimal, parse_int, require_fields


@bp.post("/create-intention")
@auth_required
def create_intention():
    user = current_user()
    data = json_body()
    require_fields(data, "paymentableType", "paymentableId")
    ptype = parse_choice(data.get("paymentableType"), "paymentableType", Payment.PAYMENTABLE_TYPES)
    target = owned_paymentable(user, ptype, parse_int(data.get("paymentableId"), "paymentableId", minimum=1))
    if target.status != "PENDING":
        raise ApiError(f"Cannot pay for an item in status {target.status}")

    amount = D(paymentable_amount(target))
    billing = data.get("billingData") or {}
    items = data.get("items") or [{"name": ptype.replace("_", " ").title(), "amount": str(amount), "quantity": 1}]
    errors = paymob.validate_payment_data(amount, billing, items)
    if errors:
        raise ValidationError("Invalid payment data", details=[{"field": "payment", "message": e} for e in errors])

    try:
        amount_sar = paymob.to_sar(amount, target.currency)
        payment = create_payment(user.id, ptype, target.id, amount_sar, "SAR", "PAYMOB", gateway="paymob")
        if amount_sar != amount:
            # items are priced in the original currency, send one SAR line instead
            items = [{"name": ptype.replace("_", " ").title(), "amount": str(amount_sar), "quantity": 1}]
            payment.merge_meta(original_amount=str(amount), original_currency=target.currency)
        payload = paymob.build_intention_payload(
            amount_sar, billing, items, payment.payment_reference,
            notification_url=f"{current_app.config['API_BASE_URL']}/api/paymob/webhook",
            redirection_url=f"{current_app.config['FRONTEND_URL']}/payment/result?reference={payment.payment_reference}",
        )
        intention, checkout = paymob.create_intention(payload)
    except paymob.PaymobError as e:
        db.session.rollback()
        raise ApiError(str(e), status=502, code="PAYMOB_ERROR", expose=True)

    payment.gateway_id = str(intention.get("id"))
    payment.merge_meta(client_secret=intention.get("client_secret"))
    db.session.commit()
    current_app.logger.info("paymob intention %s created for payment %s",
                            payment.gateway_id, payment.payment_reference)
    return ok("Payment intention created", {
        "payment": payment.as_api(),
        "intentionId": payment.gateway_id,
        "clientSecret": intention.get("client_secret"),
        "checkoutUrl": checkout,
    }, 201)


@bp.post("/webhook")
def webhook():
    raw = request.get_data()
    if not paymob.verify_hmac(raw, paymob.signature_from(request)):
        current_app.logger.warning("paymob webhook rejected: bad signature")
        raise Unauthorized("Invalid webhook signature")

    body = request.get_json(silent=True) or {}
    obj = body.get("obj") or {}
    order = obj.get("order") or {}
    extra = ((obj.get("payment_key_claims") or {}).get("extra") or {})
    payment = find_gateway_payment(
        "paymob",
        gateway_id=order.get("id"),
        reference=order.get("merchant_order_id") or extra.get("payment_reference") or obj.get("special_reference"),
        transaction_id=obj.get("id"),
    )
    if not payment:
        current_app.logger.warning("paymob webhook for unknown payment: order=%s txn=%s",
                                   order.get("id"), obj.get("id"))
        raise NotFound("Payment not found")

    status = paymob.map_status(obj)
    now = datetime.utcnow()
    previous = payment.status
    if not advance_status(payment, status):
        return ok("Webhook ignored", {"paymentId": payment.id, "status": payment.status})
    if obj.get("id") is not None:
        payment.transaction_id = str(obj["id"])
    payment.processed_at = now
    payment.merge_meta(webhook_type=body.get("type"), webhook_received_at=now.isoformat(),
                       amount_cents=obj.get("amount_cents"))
    if status == "SUCCESS" and previous != "SUCCESS":
        activate_paymentable(payment, now)
    db.session.commit()
    current_app.logger.info("paymob webhook: payment %s -> %s", payment.payment_reference, status)
    return ok("Webhook processed", {"paymentId": payment.id, "status": status})


@bp.get("/intention/<intention_id>/status")
@auth_required
def intention_status(intention_id):
    user = current_user()
    payment = Payment.query.filter_by(gateway="paymob", gateway_id=str(intention_id)).first()
    if not payment or (payment.user_id != user.id and user.role != "admin"):
        raise NotFound("Payment not found")
    try:
        remote = paymob.get_intention_status(intention_id)
    except paymob.PaymobError as e:
        raise ApiError(str(e), status=502, code="PAYMOB_ERROR", expose=True)
    return ok("OK", {"payment": payment.as_api(), "intention": remote})


@bp.post("/refund")
@admin_required
def refund():
    data = json_body()
    require_fields(data, "paymentId")
    payment = db.session.get(Payment, parse_int(data.get("paymentId"), "paymentId", minimum=1))
    if not payment or payment.gateway != "paymob":
        raise NotFound("Payment not found")
    if payment.status != "SUCCESS" or not payment.transaction_id:
        raise ApiError("Only successful Paymob payments can be refunded")
    amount = parse_decimal(data.get("amount"), "amount", minimum="0.01", required=False) or D(payment.amount)
    if amount > D(payment.amount):
        raise ValidationError("Refund amount exceeds the payment amount", field="amount")
    try:
        result = paymob.refund_transaction(payment.transaction_id, amount)
    except paymob.PaymobError as e:
        raise ApiError(str(e), status=502, code="PAYMOB_ERROR", expose=True)
    payment.status = "REFUNDED"
    payment.merge_meta(refund_amount=str(amount), refunded_at=datetime.utcnow().isoformat(),
                       refund_id=result.get("id"))
    db.session.commit()
    return ok("Refund processed", {"payment": payment.as_api(), "refundAmount": as_float(amount)})


@bp.get("/payments")
@auth_required
def my_payments():
    rows = (Payment.query
            .filter_by(user_id=current_user().id, gateway="paymob")
            .order_by(Payment.created_at.desc())
            .all())
    return ok("OK", {"items": [p.as_api() for p in rows]})
