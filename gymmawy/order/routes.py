# gymmawy/order/routes.py
from flask import g, request

from . import bp
from ..errors import NotFound
from ..extensions import db
from ..model import Order
from ..services import order_service
from ..utils.api import ok, paged
from ..utils.decorators import admin_required, auth_required, current_user
from ..utils.validation import clean_str, json_body, pagination_args, parse_choice


@bp.post("")
@auth_required
def checkout():
    data = json_body()
    shipping = data.get("shippingAddress")
    order = order_service.checkout(current_user(), g.currency,
                                   shipping if isinstance(shipping, dict) else None)
    return ok("Order created", order.as_api(), 201)


@bp.get("")
@auth_required
def list_orders():
    page, page_size = pagination_args()
    q = Order.query.filter_by(user_id=current_user().id).order_by(Order.created_at.desc())
    return ok("Orders fetched", paged(q, page, page_size, lambda o: o.as_api()))


@bp.get("/<int:order_id>")
@auth_required
def get_order(order_id: int):
    return ok("Order fetched", order_service.own_order(current_user().id, order_id).as_api())


@bp.patch("/<int:order_id>/cancel")
@auth_required
def cancel_order(order_id: int):
    o = order_service.cancel_order(current_user().id, order_id)
    return ok("Order cancelled", o.as_api())


# ---------------- admin ----------------

@bp.get("/admin/all")
@admin_required
def admin_list():
    """
    Query params:
      - status=PENDING|PAID|SHIPPED|DELIVERED|CANCELLED|all
      - search=order number, customer name or email
      - date=today|week|month|all
      - page, pageSize
    """
    page, page_size = pagination_args()
    status = request.args.get("status")
    if status and status != "all":
        parse_choice(status, "status", Order.STATUSES)
    q = order_service.admin_query(status=status,
                                  search=request.args.get("search"),
                                  date=request.args.get("date"))
    return ok("Orders fetched", paged(q, page, page_size, lambda o: o.as_api()))


@bp.patch("/<int:order_id>/status")
@admin_required
def set_status(order_id: int):
    o = db.session.get(Order, order_id)
    if not o:
        raise NotFound("Order not found")
    data = json_body()
    status = parse_choice(data.get("status"), "status", Order.STATUSES)
    if not status:
        clean_str(None, "status", required=True)
    o.status = status
    db.session.commit()
    return ok("Order status updated", o.as_api())


@bp.post("/<int:order_id>/reject")
@admin_required
def reject_order(order_id: int):
    data = json_body()
    reason = clean_str(data.get("reason"), "reason", max_len=500)
    o = order_service.reject_order(order_id, current_user().id, reason)
    return ok("Order rejected", o.as_api())
