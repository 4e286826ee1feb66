# gymmawy/services/programme_service.py
from datetime import datetime

from flask import current_app

from ..errors import ApiError, NotFound, ValidationError
from ..extensions import db
from ..model import Payment, Programme, ProgrammePurchase
from ..utils.ids import purchase_number, unique_id
from . import notification_service as notify
from .coupon_service import validate_coupon
from .coupon_usage import apply_coupon_usage, release_quietly
from .payment_service import create_payment
from .pricing import quote, require_price


def purchase_programme(user, programme_id, currency, coupon_code=None, payment_method=None):
    prog = db.session.get(Programme, programme_id)
    if not prog or not prog.is_active:
        raise NotFound("Programme not found")
    method = (payment_method or "INSTAPAY").strip().upper()
    if method not in Payment.METHODS:
        raise ValidationError("Invalid paymentMethod", field="paymentMethod")

    coupon = validate_coupon(coupon_code, user.id) if coupon_code else None
    price = quote(require_price(prog, currency), coupon)

    try:
        purchase = ProgrammePurchase(
            purchase_number=unique_id(
                purchase_number,
                lambda n: ProgrammePurchase.query.filter_by(purchase_number=n).first() is not None),
            user_id=user.id,
            programme_id=prog.id,
            status="PENDING",
            price=price["final"],
            currency=currency,
            coupon_id=coupon.id if coupon else None,
            coupon_discount=price["couponDiscount"],
            purchased_at=datetime.utcnow(),
        )
        db.session.add(purchase)
        db.session.flush()

        payment = create_payment(user.id, Payment.PROGRAMME_PURCHASE, purchase.id,
                                 price["final"], currency, method)
        if coupon:
            apply_coupon_usage(user.id, coupon.id, commit=False)
        notify.notify_safely(notify.notify_programme_purchased, purchase)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("programme purchase %s created for user %s", purchase.purchase_number, user.id)
    return purchase, payment


def _pending_purchase(purchase_id) -> ProgrammePurchase:
    p = db.session.get(ProgrammePurchase, purchase_id)
    if not p:
        raise NotFound("Programme purchase not found")
    if p.status != "PENDING":
        raise ApiError("Only pending purchases can be updated")
    return p


def approve_purchase(purchase_id) -> ProgrammePurchase:
    p = _pending_purchase(purchase_id)
    p.status = "COMPLETE"
    db.session.commit()
    return p


def reject_purchase(purchase_id, reason=None, now=None) -> ProgrammePurchase:
    p = _pending_purchase(purchase_id)
    p.status = "REJECTED"
    p.cancelled_at = now or datetime.utcnow()
    p.rejection_reason = reason
    release_quietly(p.user_id, p.coupon_id)
    db.session.commit()
    return p
