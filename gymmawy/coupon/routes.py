# gymmawy/coupon/routes.py
from . import bp
from ..errors import NotFound
from ..extensions import db
from ..model import Coupon, UserCouponRedemption
from ..services import coupon_usage
from ..services.coupon_service import (create_coupon_from_payload,
                                       update_coupon_from_payload, validate_coupon)
from ..utils.api import ok, paged
from ..utils.decorators import admin_required, auth_required, current_user
from ..utils.money import as_float, non_negative
from ..utils.validation import json_body, pagination_args, parse_decimal


def describe(c: Coupon) -> str:
    if c.discount_type == Coupon.FIXED:
        return f"{as_float(c.discount_amount):g} off"
    return f"{as_float(c.discount_percentage):g}% off"


def _get(coupon_id) -> Coupon:
    c = db.session.get(Coupon, coupon_id)
    if not c:
        raise NotFound("Coupon not found")
    return c


# ---------------- user ----------------

@bp.get("/validate/<code>")
@auth_required
def validate(code):
    c = validate_coupon(code, current_user().id)
    return ok("Coupon is valid", {"coupon": c.as_brief(), "description": describe(c)})


@bp.post("/apply")
@auth_required
def apply():
    data = json_body()
    c = validate_coupon(data.get("code"), current_user().id)
    amount = parse_decimal(data.get("amount"), "amount", minimum=0, required=False)
    payload = {"coupon": c.as_brief(), "description": describe(c)}
    if amount is not None:
        discount = c.discount_for(amount)
        payload.update(amount=as_float(amount), discount=as_float(discount),
                       finalAmount=as_float(non_negative(amount - discount)))
    return ok("Coupon applied", payload)


@bp.post("/redeem/<code>")
@auth_required
def redeem(code):
    user = current_user()
    c = validate_coupon(code, user.id)
    r = coupon_usage.apply_coupon_usage(user.id, c.id)
    return ok("Coupon redeemed", {"coupon": c.as_brief(), "usageCount": r.usage_count})


@bp.get("/my-coupons")
@auth_required
def my_coupons():
    rows = (UserCouponRedemption.query
            .filter_by(user_id=current_user().id)
            .order_by(UserCouponRedemption.redeemed_at.desc())
            .all())
    return ok("OK", {"items": [r.as_api() for r in rows]})


# ---------------- admin ----------------

@bp.post("")
@admin_required
def create_coupon():
    c = create_coupon_from_payload(json_body())
    return ok("Coupon created", c.as_api(), 201)


@bp.get("")
@admin_required
def list_coupons():
    page, page_size = pagination_args()
    q = Coupon.query.order_by(Coupon.id.desc())
    return ok("Coupons fetched", paged(q, page, page_size, lambda c: c.as_api()))


@bp.get("/<int:coupon_id>")
@admin_required
def get_coupon(coupon_id):
    return ok("Coupon fetched", _get(coupon_id).as_api())


@bp.patch("/<int:coupon_id>")
@admin_required
def update_coupon(coupon_id):
    c = update_coupon_from_payload(_get(coupon_id), json_body())
    return ok("Coupon updated", c.as_api())


@bp.delete("/<int:coupon_id>")
@admin_required
def delete_coupon(coupon_id):
    db.session.delete(_get(coupon_id))
    db.session.commit()
    return ok("Coupon deleted")


@bp.get("/admin/usage-stats")
@admin_required
def all_usage_stats():
    return ok("OK", {"items": coupon_usage.get_all_coupons_with_usage_stats()})


@bp.get("/<int:coupon_id>/usage-stats")
@admin_required
def usage_stats(coupon_id):
    return ok("OK", coupon_usage.get_coupon_usage_stats(coupon_id))


@bp.post("/<int:coupon_id>/sync-usage")
@admin_required
def sync_usage(coupon_id):
    return ok("Coupon usage synced", coupon_usage.sync_coupon_usage_stats(coupon_id))


@bp.post("/admin/sync-usage")
@admin_required
def sync_all_usage():
    return ok("Coupon usage synced", coupon_usage.sync_all_coupon_usage_stats())
