# gymmawy/services/dashboard.py
"""Admin dashboard figures. Revenue is the sum of SUCCESS payments per currency."""
from datetime import datetime, timedelta

from sqlalchemy import func

from ..extensions import db
from ..model import Lead, Order, Payment, ProgrammePurchase, Subscription, User
from ..utils.money import as_float
from .currency import SUPPORTED_CURRENCIES
from .subscription_service import expire_subscriptions


def _count(query, column, since):
    return {"total": query.count(), "week": query.filter(column >= since).count()}


def revenue_by_currency(since=None, paymentable_type=None):
    q = (db.session.query(Payment.currency, func.coalesce(func.sum(Payment.amount), 0))
         .filter(Payment.status == "SUCCESS"))
    if since is not None:
        q = q.filter(Payment.created_at >= since)
    if paymentable_type:
        q = q.filter(Payment.paymentable_type == paymentable_type)
    sums = dict(q.group_by(Payment.currency).all())
    return {c: as_float(sums.get(c, 0)) for c in SUPPORTED_CURRENCIES}


def dashboard_stats(now=None):
    now = now or datetime.utcnow()
    week = now - timedelta(days=7)
    total = revenue_by_currency()
    this_week = revenue_by_currency(since=week)
    return {
        "users": _count(User.query, User.created_at, week),
        "orders": _count(Order.query, Order.created_at, week),
        "activeSubscriptions": _count(Subscription.query.filter_by(status="ACTIVE"),
                                      Subscription.created_at, week),
        "programmePurchases": _count(ProgrammePurchase.query.filter_by(status="COMPLETE"),
                                     ProgrammePurchase.purchased_at, week),
        "leads": _count(Lead.query, Lead.created_at, week),
        "revenue": {c: {"total": total[c], "week": this_week[c]} for c in SUPPORTED_CURRENCIES},
    }


def _status_counts(model):
    rows = db.session.query(model.status, func.count(model.id)).group_by(model.status).all()
    counts = {status.lower(): n for status, n in rows}
    counts["total"] = sum(n for _, n in rows)
    return counts


def subscription_stats(now=None):
    now = now or datetime.utcnow()
    expire_subscriptions(now=now)
    month = datetime(now.year, now.month, 1)
    counts = _status_counts(Subscription)
    return {
        "total": counts["total"],
        "active": counts.get("active", 0),
        "pending": counts.get("pending", 0),
        "expired": counts.get("expired", 0),
        "monthlyRevenue": revenue_by_currency(since=month, paymentable_type=Payment.SUBSCRIPTION),
        "totalRevenue": revenue_by_currency(paymentable_type=Payment.SUBSCRIPTION),
    }


def programme_stats(now=None):
    now = now or datetime.utcnow()
    month = datetime(now.year, now.month, 1)
    counts = _status_counts(ProgrammePurchase)
    return {
        "total": counts["total"],
        "complete": counts.get("complete", 0),
        "pending": counts.get("pending", 0),
        "cancelled": counts.get("cancelled", 0) + counts.get("rejected", 0),
        "monthlyRevenue": revenue_by_currency(since=month, paymentable_type=Payment.PROGRAMME_PURCHASE),
        "totalRevenue": revenue_by_currency(paymentable_type=Payment.PROGRAMME_PURCHASE),
    }
