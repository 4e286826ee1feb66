# gymmawy/services/payment_cleanup.py
"""Expire payments and programme purchases that never got confirmed."""
import logging
from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..model import Payment, ProgrammePurchase
from .coupon_usage import release_quietly

log = logging.getLogger(__name__)

TIMEOUT_REASON = "Payment timeout - no payment confirmation received"


def _timeout(minutes=None):
    return minutes if minutes is not None else current_app.config.get("PAYMENT_TIMEOUT_MINUTES", 30)


def cleanup_expired_programme_purchases(timeout_minutes=None, now=None):
    now = now or datetime.utcnow()
    cutoff = now - timedelta(minutes=_timeout(timeout_minutes))
    stale = (ProgrammePurchase.query
             .filter(ProgrammePurchase.status == "PENDING",
                     ProgrammePurchase.purchased_at < cutoff)
             .all())
    for p in stale:
        p.status = "CANCELLED"
        p.cancelled_at = now
        p.rejection_reason = TIMEOUT_REASON
        release_quietly(p.user_id, p.coupon_id)
    return len(stale)


def cleanup_expired_payments(timeout_minutes=None, now=None):
    now = now or datetime.utcnow()
    minutes = _timeout(timeout_minutes)
    cutoff = now - timedelta(minutes=minutes)
    stale = (Payment.query
             .filter(Payment.status == "PENDING", Payment.created_at < cutoff)
             .all())
    for p in stale:
        p.status = "FAILED"
        p.processed_at = now
        p.merge_meta(failure_reason=TIMEOUT_REASON, timeout_minutes=minutes,
                     cleaned_at=now.isoformat())
    return len(stale)


def run_payment_cleanup(timeout_minutes=None, now=None):
    now = now or datetime.utcnow()
    try:
        purchases = cleanup_expired_programme_purchases(timeout_minutes, now)
        payments = cleanup_expired_payments(timeout_minutes, now)
        db.session.commit()
    except Exception:
        db.session.rollback()
        log.exception("payment cleanup failed")
        raise
    result = {
        "cancelledPurchases": purchases,
        "failedPayments": payments,
        "totalCleaned": purchases + payments,
        "ranAt": now.isoformat(),
    }
    log.info("payment cleanup: %s", result)
    return result


def get_cleanup_stats(timeout_minutes=None, now=None):
    now = now or datetime.utcnow()
    minutes = _timeout(timeout_minutes)
    cutoff = now - timedelta(minutes=minutes)
    return {
        "timeoutMinutes": minutes,
        "pendingProgrammePurchases": ProgrammePurchase.query.filter_by(status="PENDING").count(),
        "expiredProgrammePurchases": ProgrammePurchase.query.filter(
            ProgrammePurchase.status == "PENDING", ProgrammePurchase.purchased_at < cutoff).count(),
        "pendingPayments": Payment.query.filter_by(status="PENDING").count(),
        "expiredPayments": Payment.query.filter(
            Payment.status == "PENDING", Payment.created_at < cutoff).count(),
    }
