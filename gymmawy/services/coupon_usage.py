# gymmawy/services/coupon_usage.py
"""Per-user coupon usage counters and the cached per-coupon total.

``Coupon.total_redemptions`` caches the sum of every
``UserCouponRedemption.usage_count`` for the coupon.
"""
import logging

from sqlalchemy import func

from ..errors import NotFound
from ..extensions import db
from ..model import Coupon, UserCouponRedemption

log = logging.getLogger(__name__)


def _locked_coupon(coupon_id):
    c = (db.session.query(Coupon)
         .filter(Coupon.id == coupon_id)
         .with_for_update()
         .first())
    if not c:
        raise NotFound("Coupon not found")
    return c


def apply_coupon_usage(user_id, coupon_id, commit=True):
    try:
        coupon = _locked_coupon(coupon_id)
        r = UserCouponRedemption.query.filter_by(user_id=user_id, coupon_id=coupon_id).first()
        if r:
            r.usage_count = (r.usage_count or 0) + 1
        else:
            r = UserCouponRedemption(user_id=user_id, coupon_id=coupon_id, usage_count=1)
            db.session.add(r)
        coupon.total_redemptions = (coupon.total_redemptions or 0) + 1
        if commit:
            db.session.commit()
        else:
            db.session.flush()
        return r
    except Exception:
        if commit:
            db.session.rollback()
        raise


def remove_coupon_usage(user_id, coupon_id, commit=True):
    try:
        coupon = _locked_coupon(coupon_id)
        r = UserCouponRedemption.query.filter_by(user_id=user_id, coupon_id=coupon_id).first()
        if not r:
            return None
        if (r.usage_count or 0) > 1:
            r.usage_count -= 1
        else:
            db.session.delete(r)
        coupon.total_redemptions = max(0, (coupon.total_redemptions or 0) - 1)
        if commit:
            db.session.commit()
        else:
            db.session.flush()
        return r
    except Exception:
        if commit:
            db.session.rollback()
        raise


def release_quietly(user_id, coupon_id):
    """Release inside a larger unit of work; a missing coupon is only logged."""
    if not coupon_id:
        return
    try:
        remove_coupon_usage(user_id, coupon_id, commit=False)
    except NotFound:
        log.warning("coupon %s vanished before usage release for user %s", coupon_id, user_id)


def reclaim_quietly(user_id, coupon_id):
    """Count a released use again when its purchase is revived."""
    if not coupon_id:
        return
    try:
        apply_coupon_usage(user_id, coupon_id, commit=False)
    except NotFound:
        log.warning("coupon %s vanished before usage reclaim for user %s", coupon_id, user_id)


def get_coupon_usage_stats(coupon_id):
    coupon = db.session.get(Coupon, coupon_id)
    if not coupon:
        raise NotFound("Coupon not found")
    actual, users = (db.session.query(func.coalesce(func.sum(UserCouponRedemption.usage_count), 0),
                                      func.count(UserCouponRedemption.id))
                     .filter(UserCouponRedemption.coupon_id == coupon_id)
                     .one())
    return {
        "couponId": coupon.id,
        "code": coupon.code,
        "totalRedemptions": coupon.total_redemptions or 0,
        "actualUsage": int(actual or 0),
        "uniqueUsers": int(users or 0),
        "isConsistent": (coupon.total_redemptions or 0) == int(actual or 0),
    }


def sync_coupon_usage_stats(coupon_id):
    stats = get_coupon_usage_stats(coupon_id)
    if stats["isConsistent"]:
        return {**stats, "wasUpdated": False}
    coupon = _locked_coupon(coupon_id)
    log.info("coupon %s total_redemptions %s -> %s", coupon.code,
             coupon.total_redemptions, stats["actualUsage"])
    coupon.total_redemptions = stats["actualUsage"]
    db.session.commit()
    return {**stats, "totalRedemptions": stats["actualUsage"], "isConsistent": True, "wasUpdated": True}


def get_all_coupons_with_usage_stats():
    return [
        {**c.as_api(), "usageStats": get_coupon_usage_stats(c.id)}
        for c in Coupon.query.order_by(Coupon.id.desc()).all()
    ]


def sync_all_coupon_usage_stats():
    results = [sync_coupon_usage_stats(cid) for (cid,) in db.session.query(Coupon.id).all()]
    return {"checked": len(results), "updated": sum(1 for r in results if r["wasUpdated"]), "coupons": results}
