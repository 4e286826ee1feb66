# gymmawy/services/subscription_service.py
from datetime import datetime

from flask import current_app

from ..errors import ApiError, NotFound, ValidationError
from ..extensions import db
from ..model import Payment, Price, Subscription, SubscriptionPlan
from ..utils.ids import subscription_number, unique_id
from ..utils.money import as_float
from ..utils.validation import clean_bilingual, parse_bool, parse_decimal, parse_int
from . import notification_service as notify
from .coupon_service import validate_coupon
from .coupon_usage import apply_coupon_usage, release_quietly
from .payment_service import create_payment
from .pricing import quote, require_price, set_prices


def plan_with_price(plan: SubscriptionPlan, currency):
    data = plan.as_api()
    amount = plan.price_in(currency)
    if amount is None:
        data["price"] = None
    else:
        q = quote(amount, plan_discount=plan.discount_percentage or 0)
        data["price"] = {
            "currency": currency,
            "original": as_float(q["original"]),
            "discount": as_float(q["planDiscount"]),
            "final": as_float(q["final"]),
        }
    return data


def create_subscription(user, plan_id, currency, coupon_code=None, payment_method=None):
    plan = db.session.get(SubscriptionPlan, plan_id)
    if not plan or not plan.is_active:
        raise NotFound("Subscription plan not found")
    method = (payment_method or "INSTAPAY").strip().upper()
    if method not in Payment.METHODS:
        raise ValidationError("Invalid paymentMethod", field="paymentMethod")

    coupon = validate_coupon(coupon_code, user.id) if coupon_code else None
    price = quote(require_price(plan, currency), coupon, plan.discount_percentage or 0)

    try:
        sub = Subscription(
            subscription_number=unique_id(
                subscription_number,
                lambda n: Subscription.query.filter_by(subscription_number=n).first() is not None),
            user_id=user.id,
            plan_id=plan.id,
            status="PENDING",
            price=price["final"],
            currency=currency,
            coupon_id=coupon.id if coupon else None,
            coupon_discount=price["couponDiscount"],
            subscription_period_days=plan.subscription_period_days,
            gift_period_days=plan.gift_period_days,
        )
        db.session.add(sub)
        db.session.flush()

        payment = create_payment(user.id, Payment.SUBSCRIPTION, sub.id, price["final"], currency, method,
                                 meta={"planDiscount": str(price["planDiscount"]),
                                       "originalPrice": str(price["original"])})
        if coupon:
            apply_coupon_usage(user.id, coupon.id, commit=False)
        notify.notify_safely(notify.notify_subscription_created, sub)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("subscription %s created for user %s", sub.subscription_number, user.id)
    return sub, payment


def expire_subscriptions(user_id=None, now=None) -> int:
    now = now or datetime.utcnow()
    q = Subscription.query.filter(Subscription.status == "ACTIVE", Subscription.end_date < now)
    if user_id is not None:
        q = q.filter(Subscription.user_id == user_id)
    overdue = q.all()
    for s in overdue:
        s.status = "EXPIRED"
    db.session.commit()
    return len(overdue)


def _get(sub_id) -> Subscription:
    s = db.session.get(Subscription, sub_id)
    if not s:
        raise NotFound("Subscription not found")
    return s


def cancel_subscription(user_id, sub_id, now=None) -> Subscription:
    s = _get(sub_id)
    if s.user_id != user_id:
        raise NotFound("Subscription not found")
    if s.status not in ("ACTIVE", "PENDING"):
        raise ApiError("Only active or pending subscriptions can be cancelled")
    s.status = "CANCELLED"
    s.cancelled_at = now or datetime.utcnow()
    release_quietly(s.user_id, s.coupon_id)
    db.session.commit()
    return s


def approve_subscription(sub_id, now=None) -> Subscription:
    s = _get(sub_id)
    if s.status != "PENDING":
        raise ApiError("Only pending subscriptions can be approved")
    s.activate(now)
    notify.notify_safely(notify.notify_subscription_approved, s)
    db.session.commit()
    return s


def reject_subscription(sub_id, reason=None, now=None) -> Subscription:
    s = _get(sub_id)
    if s.status != "PENDING":
        raise ApiError("Only pending subscriptions can be rejected")
    s.status = "REJECTED"
    s.rejected_at = now or datetime.utcnow()
    s.rejection_reason = reason
    release_quietly(s.user_id, s.coupon_id)
    db.session.commit()
    return s


def get_plan(plan_id) -> SubscriptionPlan:
    plan = db.session.get(SubscriptionPlan, plan_id)
    if not plan:
        raise NotFound("Subscription plan not found")
    return plan


def apply_plan_payload(plan: SubscriptionPlan, data: dict, creating: bool):
    if creating or "name" in data:
        plan.name = clean_bilingual(data.get("name"), "name", required=True)
    if "description" in data:
        plan.description = clean_bilingual(data.get("description"), "description")
    if creating or "subscriptionPeriodDays" in data:
        plan.subscription_period_days = parse_int(data.get("subscriptionPeriodDays"),
                                                  "subscriptionPeriodDays", minimum=1, default=30)
    if creating or "giftPeriodDays" in data:
        plan.gift_period_days = parse_int(data.get("giftPeriodDays"), "giftPeriodDays", minimum=0, default=0)
    if "discountPercentage" in data:
        pct = parse_decimal(data.get("discountPercentage"), "discountPercentage", minimum=0, required=False)
        if pct is not None and pct > 100:
            raise ValidationError("discountPercentage must be <= 100", field="discountPercentage")
        plan.discount_percentage = pct or 0
    if "isActive" in data:
        plan.is_active = parse_bool(data.get("isActive"), default=True)


def save_plan_prices(plan: SubscriptionPlan, data: dict):
    if data.get("prices") is not None:
        set_prices(Price.SUBSCRIPTION, plan.id, data["prices"])
