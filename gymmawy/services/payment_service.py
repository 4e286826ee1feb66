# gymmawy/services/payment_service.py
from datetime import datetime

from flask import current_app

from ..errors import ApiError, NotFound, ValidationError
from ..extensions import db
from ..model import Order, Payment, ProgrammePurchase, Subscription
from ..utils.ids import payment_reference, unique_id
from . import notification_service as notify
from .coupon_usage import reclaim_quietly, release_quietly
from .order_service import restock, take_stock

PAYMENTABLE_MODELS = {
    Payment.ORDER: Order,
    Payment.SUBSCRIPTION: Subscription,
    Payment.PROGRAMME_PURCHASE: ProgrammePurchase,
}


def new_payment_reference():
    return unique_id(payment_reference,
                     lambda ref: Payment.query.filter_by(payment_reference=ref).first() is not None)


def create_payment(user_id, paymentable_type, paymentable_id, amount, currency, method, **extra):
    if paymentable_type not in Payment.PAYMENTABLE_TYPES:
        raise ValidationError("Invalid paymentableType", field="paymentableType")
    p = Payment(
        payment_reference=new_payment_reference(),
        user_id=user_id,
        paymentable_type=paymentable_type,
        paymentable_id=paymentable_id,
        amount=amount,
        currency=currency,
        method=method,
        status="PENDING",
        **extra,
    )
    db.session.add(p)
    db.session.flush()
    return p


def get_paymentable(paymentable_type, paymentable_id):
    model = PAYMENTABLE_MODELS.get(paymentable_type)
    return db.session.get(model, paymentable_id) if model else None


def owned_paymentable(user, paymentable_type, paymentable_id):
    """Load the order/subscription/purchase a user is about to pay for."""
    if paymentable_type not in PAYMENTABLE_MODELS:
        raise ValidationError("Invalid paymentableType", field="paymentableType")
    target = get_paymentable(paymentable_type, paymentable_id)
    if not target or target.user_id != user.id:
        raise NotFound(f"{paymentable_type.replace('_', ' ').title()} not found")
    return target


def paymentable_amount(target):
    return target.total if isinstance(target, Order) else target.price


# entity statuses whose coupon use was released and whose stock went back
RELEASED = {"CANCELLED", "REJECTED"}

# where a gateway callback may move a payment that is already settled
SETTLED_TRANSITIONS = {
    "SUCCESS": {"REFUNDED"},
    "REFUNDED": set(),
    "CANCELLED": set(),
    "FAILED": {"SUCCESS"},
}


def advance_status(payment: Payment, status) -> bool:
    """Apply a gateway status unless it would move a settled payment backwards."""
    if payment.status == status:
        return True
    allowed = SETTLED_TRANSITIONS.get(payment.status)
    if allowed is not None and status not in allowed:
        current_app.logger.warning("payment %s: ignoring %s -> %s", payment.payment_reference,
                                   payment.status, status)
        return False
    payment.status = status
    return True


def activate_paymentable(payment: Payment, now=None):
    """Mark whatever the payment settles as paid. Returns the target or None.

    A cancelled or rejected target is revived: its coupon use is counted again
    and, for orders, the items are taken off the shelf again.
    """
    now = now or datetime.utcnow()
    target = get_paymentable(payment.paymentable_type, payment.paymentable_id)
    if target is None:
        current_app.logger.warning("payment %s points at missing %s %s", payment.payment_reference,
                                   payment.paymentable_type, payment.paymentable_id)
        return None
    revived = target.status in RELEASED
    if isinstance(target, Order):
        if target.status not in ("PENDING", "CANCELLED"):
            return target
        if revived:
            take_stock(target)
        target.status = "PAID"
    elif isinstance(target, Subscription):
        if target.status == "ACTIVE":
            return target
        target.activate(now)
        notify.notify_safely(notify.notify_subscription_approved, target)
    elif isinstance(target, ProgrammePurchase):
        if target.status == "COMPLETE":
            return target
        target.status = "COMPLETE"
    if revived:
        current_app.logger.info("payment %s revives %s %s", payment.payment_reference,
                                payment.paymentable_type, target.id)
        reclaim_quietly(target.user_id, target.coupon_id)
    return target


def cancel_paymentable(payment: Payment, reason=None, now=None):
    now = now or datetime.utcnow()
    target = get_paymentable(payment.paymentable_type, payment.paymentable_id)
    if target is None or target.status != "PENDING":
        return target
    if isinstance(target, Order):
        target.status = "CANCELLED"
        target.meta = {**(target.meta or {}), "rejectionReason": reason, "rejectedAt": now.isoformat()}
        restock(target)
    elif isinstance(target, Subscription):
        target.status = "REJECTED"
        target.rejected_at = now
        target.rejection_reason = reason
    elif isinstance(target, ProgrammePurchase):
        target.status = "REJECTED"
        target.cancelled_at = now
        target.rejection_reason = reason
    release_quietly(target.user_id, target.coupon_id)
    return target


def upload_proof(user, payment: Payment, proof_url, transaction_id=None):
    if payment.user_id != user.id:
        raise NotFound("Payment not found")
    if payment.status not in ("PENDING", "FAILED"):
        raise ApiError(f"Cannot upload proof for a payment in status {payment.status}")
    payment.payment_proof_url = proof_url
    if transaction_id:
        payment.transaction_id = transaction_id
    payment.status = "PENDING_VERIFICATION"
    notify.notify_safely(notify.notify_payment_proof_uploaded, payment)
    db.session.commit()
    return payment


def approve_payment(payment: Payment, admin_id=None):
    if payment.status == "SUCCESS":
        raise ApiError("Payment is already approved")
    if payment.status in ("REFUNDED", "CANCELLED"):
        raise ApiError(f"Cannot approve a payment in status {payment.status}")
    now = datetime.utcnow()
    try:
        payment.status = "SUCCESS"
        payment.processed_at = now
        payment.merge_meta(approved_by=admin_id, approved_at=now.isoformat())
        activate_paymentable(payment, now)
        notify.notify_safely(notify.notify_payment_decision, payment, True)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info("payment %s approved by %s", payment.payment_reference, admin_id)
    return payment


def reject_payment(payment: Payment, reason=None, admin_id=None):
    if payment.status in ("SUCCESS", "REFUNDED"):
        raise ApiError(f"Cannot reject a payment in status {payment.status}")
    now = datetime.utcnow()
    try:
        payment.status = "FAILED"
        payment.processed_at = now
        payment.merge_meta(rejection_reason=reason, rejected_by=admin_id, rejected_at=now.isoformat())
        cancel_paymentable(payment, reason, now)
        notify.notify_safely(notify.notify_payment_decision, payment, False, reason)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info("payment %s rejected by %s", payment.payment_reference, admin_id)
    return payment


def find_gateway_payment(gateway, *, gateway_id=None, reference=None, transaction_id=None):
    """Match a webhook to a payment: gateway id, then our reference, then transaction id."""
    q = Payment.query.filter(Payment.gateway == gateway)
    if gateway_id:
        p = q.filter(Payment.gateway_id == str(gateway_id)).first()
        if p:
            return p
    if reference:
        p = Payment.query.filter(Payment.payment_reference == str(reference)).first()
        if p:
            return p
    if transaction_id:
        return q.filter(Payment.transaction_id == str(transaction_id)).first()
    return None
