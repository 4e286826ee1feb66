# gymmawy/services/notification_service.py
from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..model import Notification, Subscription


def _label(value):
    if isinstance(value, dict):
        return value.get("en") or value.get("ar") or ""
    return value or ""


def create_notification(type, title, message, user_id=None, audience="admin", meta=None):
    n = Notification(type=type, title=title, message=message, user_id=user_id,
                     audience=audience, meta=meta or {})
    db.session.add(n)
    return n


def notify_safely(fn, *args, **kwargs):
    """Notifications never fail the action that triggered them."""
    try:
        return fn(*args, **kwargs)
    except Exception as e:
        current_app.logger.warning("notification %s failed: %s", fn.__name__, e)
        return None


def notify_subscription_created(sub):
    return create_notification(
        "SUBSCRIPTION_CREATED", "New Subscription Request",
        f"{sub.user.full_name} requested the {_label(sub.plan.name)} plan",
        user_id=sub.user_id,
        meta={"subscriptionId": sub.id, "subscriptionNumber": sub.subscription_number},
    )


def notify_subscription_approved(sub):
    return create_notification(
        "SUBSCRIPTION_APPROVED", "Subscription activated",
        f"Your {_label(sub.plan.name)} subscription is active until {sub.end_date:%Y-%m-%d}",
        user_id=sub.user_id, audience="user",
        meta={"subscriptionId": sub.id},
    )


def notify_programme_purchased(purchase):
    return create_notification(
        "PROGRAMME_PURCHASED", "New Programme Purchase",
        f"{purchase.user.full_name} purchased {_label(purchase.programme.name)}",
        user_id=purchase.user_id,
        meta={"programmePurchaseId": purchase.id, "purchaseNumber": purchase.purchase_number},
    )


def notify_order_created(order):
    return create_notification(
        "ORDER_CREATED", "New Order",
        f"Order {order.order_number} placed by {order.user.full_name}",
        user_id=order.user_id,
        meta={"orderId": order.id, "orderNumber": order.order_number},
    )


def notify_payment_proof_uploaded(payment):
    return create_notification(
        "PAYMENT_PROOF_UPLOADED", "Payment awaiting verification",
        f"Payment {payment.payment_reference} needs review",
        user_id=payment.user_id,
        meta={"paymentId": payment.id, "paymentReference": payment.payment_reference},
    )


def notify_payment_decision(payment, approved: bool, reason=None):
    if approved:
        title, msg = "Payment approved", f"Your payment {payment.payment_reference} was approved"
    else:
        title = "Payment rejected"
        msg = f"Your payment {payment.payment_reference} was rejected"
        if reason:
            msg += f": {reason}"
    return create_notification(
        "PAYMENT_APPROVED" if approved else "PAYMENT_REJECTED", title, msg,
        user_id=payment.user_id, audience="user",
        meta={"paymentId": payment.id},
    )


def notify_lead_submitted(lead):
    return create_notification(
        "LEAD_SUBMITTED", "New lead",
        f"{lead.name or lead.email} left their contact details",
        meta={"leadId": lead.id},
    )


def check_expiring_subscriptions(days=7, now=None):
    """Raise one admin notice per active subscription ending within ``days``."""
    now = now or datetime.utcnow()
    soon = now + timedelta(days=days)
    subs = (Subscription.query
            .filter(Subscription.status == "ACTIVE",
                    Subscription.end_date >= now,
                    Subscription.end_date <= soon)
            .all())

    already = set()
    for n in Notification.query.filter_by(type="SUBSCRIPTION_EXPIRING").all():
        sid = (n.meta or {}).get("subscriptionId")
        if sid is not None:
            already.add(sid)

    created = 0
    for s in subs:
        if s.id in already:
            continue
        create_notification(
            "SUBSCRIPTION_EXPIRING", "Subscription expiring soon",
            f"{s.user.full_name}'s {_label(s.plan.name)} subscription ends on {s.end_date:%Y-%m-%d}",
            user_id=s.user_id,
            meta={"subscriptionId": s.id, "endDate": s.end_date.isoformat()},
        )
        created += 1
    db.session.commit()
    return {"checked": len(subs), "notified": created}
