# gymmawy/subscription/routes.py
from flask import g

from . import bp
from ..extensions import db
from ..model import Subscription, SubscriptionPlan
from ..services import subscription_service as subs
from ..utils.api import ok, paged
from ..utils.decorators import admin_required, auth_required, current_user
from ..utils.validation import clean_str, json_body, pagination_args, parse_int, require_fields


@bp.get("/plans")
def list_plans():
    plans = (SubscriptionPlan.query
             .filter(SubscriptionPlan.is_active.is_(True))
             .order_by(SubscriptionPlan.id.asc())
             .all())
    return ok("Plans fetched", {"items": [subs.plan_with_price(p, g.currency) for p in plans],
                                "currency": g.currency})


@bp.post("")
@auth_required
def create():
    data = json_body()
    require_fields(data, "planId")
    sub, payment = subs.create_subscription(
        current_user(),
        parse_int(data.get("planId"), "planId", minimum=1),
        g.currency,
        coupon_code=clean_str(data.get("couponCode"), "couponCode", max_len=64),
        payment_method=data.get("paymentMethod"),
    )
    return ok("Subscription created", {"subscription": sub.as_api(), "payment": payment.as_api()}, 201)


@bp.get("")
@auth_required
def list_mine():
    user = current_user()
    subs.expire_subscriptions(user_id=user.id)
    rows = (Subscription.query
            .filter_by(user_id=user.id)
            .order_by(Subscription.created_at.desc())
            .all())
    return ok("Subscriptions fetched", {"items": [s.as_api() for s in rows]})


@bp.patch("/<int:sub_id>/cancel")
@auth_required
def cancel(sub_id):
    s = subs.cancel_subscription(current_user().id, sub_id)
    return ok("Subscription cancelled", s.as_api())


# ---------------- admin ----------------

@bp.get("/admin/pending")
@admin_required
def pending():
    page, page_size = pagination_args()
    q = Subscription.query.filter_by(status="PENDING").order_by(Subscription.created_at.asc())
    return ok("Pending subscriptions", paged(q, page, page_size, lambda s: s.as_api()))


@bp.patch("/admin/<int:sub_id>/approve")
@admin_required
def approve(sub_id):
    return ok("Subscription approved", subs.approve_subscription(sub_id).as_api())


@bp.patch("/admin/<int:sub_id>/reject")
@admin_required
def reject(sub_id):
    reason = clean_str(json_body().get("reason"), "reason", max_len=500)
    return ok("Subscription rejected", subs.reject_subscription(sub_id, reason).as_api())


@bp.post("/admin/expire")
@admin_required
def expire():
    return ok("Expired subscriptions updated", {"expired": subs.expire_subscriptions()})


@bp.post("/admin/plans")
@admin_required
def create_plan():
    data = json_body()
    plan = SubscriptionPlan()
    subs.apply_plan_payload(plan, data, creating=True)
    db.session.add(plan)
    db.session.flush()
    subs.save_plan_prices(plan, data)
    db.session.commit()
    db.session.refresh(plan)
    return ok("Plan created", plan.as_api(), 201)


@bp.patch("/admin/plans/<int:plan_id>")
@admin_required
def update_plan(plan_id):
    plan = subs.get_plan(plan_id)
    data = json_body()
    subs.apply_plan_payload(plan, data, creating=False)
    subs.save_plan_prices(plan, data)
    db.session.commit()
    db.session.refresh(plan)
    return ok("Plan updated", plan.as_api())
