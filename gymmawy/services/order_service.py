# gymmawy/services/order_service.py
from datetime import datetime, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import or_

from ..errors import ApiError, NotFound
from ..extensions import db
from ..model import Cart, Order, OrderItem, Product, User
from ..utils.ids import order_number, unique_id
from ..utils.money import non_negative, round_money
from . import notification_service as notify
from .coupon_service import check_coupon
from .coupon_usage import apply_coupon_usage, release_quietly


def checkout(user, currency, shipping_address=None) -> Order:
    cart = Cart.query.filter_by(user_id=user.id).first()
    if not cart or not cart.items:
        raise ApiError("Cart is empty", code="CART_EMPTY")

    try:
        # Lock product rows to avoid oversell
        ids = [i.product_id for i in cart.items]
        products = (
            db.session.query(Product)
            .filter(Product.id.in_(ids))
            .with_for_update()
            .all()
        )
        pmap = {p.id: p for p in products}

        subtotal = Decimal("0")
        snapshot_items = []
        for it in cart.items:
            p = pmap.get(it.product_id)
            if not p or not p.is_active:
                raise ApiError(f"Product {it.product_id} is no longer available", status=409)
            if (p.stock or 0) < it.quantity:
                raise ApiError(f"Insufficient stock for product {p.id}", status=409, code="OUT_OF_STOCK")
            unit = p.price_in(currency)
            if unit is None:
                raise ApiError(f"Product {p.id} has no price in {currency}")
            line = round_money(unit * it.quantity)
            subtotal += line
            snapshot_items.append(dict(product_id=p.id, name=p.name, image_url=p.image_url,
                                       unit_price=unit, quantity=it.quantity, line_total=line))

        subtotal = round_money(subtotal)
        coupon = cart.coupon
        discount = Decimal("0.00")
        if coupon:
            check_coupon(coupon, user.id)
            discount = coupon.discount_for(subtotal)

        order = Order(
            order_number=unique_id(order_number,
                                   lambda n: Order.query.filter_by(order_number=n).first() is not None),
            user_id=user.id,
            status="PENDING",
            currency=currency,
            subtotal=subtotal,
            coupon_id=coupon.id if coupon else None,
            coupon_discount=discount,
            total=non_negative(subtotal - discount),
            shipping_address=shipping_address,
        )
        db.session.add(order)
        db.session.flush()

        for s in snapshot_items:
            db.session.add(OrderItem(order_id=order.id, **s))
            pmap[s["product_id"]].stock -= s["quantity"]

        if coupon:
            apply_coupon_usage(user.id, coupon.id, commit=False)

        cart.items.clear()
        cart.coupon_id = None
        notify.notify_safely(notify.notify_order_created, order)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("order %s created for user %s total %s %s",
                            order.order_number, user.id, order.total, currency)
    return order


def own_order(user_id, order_id) -> Order:
    o = Order.query.filter_by(id=order_id, user_id=user_id).first()
    if not o:
        raise NotFound("Order not found")
    return o


def cancel_order(user_id, order_id) -> Order:
    o = own_order(user_id, order_id)
    if o.status != "PENDING":
        raise ApiError("Only pending orders can be cancelled")
    o.status = "CANCELLED"
    restock(o)
    release_quietly(o.user_id, o.coupon_id)
    db.session.commit()
    return o


def reject_order(order_id, admin_id, reason=None) -> Order:
    o = db.session.get(Order, order_id)
    if not o:
        raise NotFound("Order not found")
    if o.status != "PENDING":
        raise ApiError("Only pending orders can be rejected")
    o.status = "CANCELLED"
    o.meta = {**(o.meta or {}), "rejectionReason": reason, "rejectedBy": admin_id,
              "rejectedAt": datetime.utcnow().isoformat()}
    restock(o)
    release_quietly(o.user_id, o.coupon_id)
    db.session.commit()
    return o


def restock(order: Order):
    for it in order.items:
        p = db.session.get(Product, it.product_id) if it.product_id else None
        if p:
            p.stock = (p.stock or 0) + it.quantity


def take_stock(order: Order):
    """Take a restocked order's items off the shelf again."""
    ids = [it.product_id for it in order.items if it.product_id]
    pmap = {p.id: p for p in (db.session.query(Product)
                              .filter(Product.id.in_(ids))
                              .with_for_update()
                              .all())}
    for it in order.items:
        p = pmap.get(it.product_id)
        if p is None:
            continue
        if (p.stock or 0) < it.quantity:
            raise ApiError(f"Insufficient stock for product {p.id}", status=409, code="OUT_OF_STOCK")
        p.stock -= it.quantity


def admin_query(status=None, search=None, date=None, now=None):
    q = Order.query
    if status and status != "all":
        q = q.filter(Order.status == status.upper())
    if date and date != "all":
        now = now or datetime.utcnow()
        since = {
            "today": datetime(now.year, now.month, now.day),
            "week": now - timedelta(days=7),
            "month": now - timedelta(days=30),
        }.get(date)
        if since:
            q = q.filter(Order.created_at >= since)
    if search:
        like = f"%{search.strip()}%"
        q = q.join(User, Order.user_id == User.id).filter(or_(
            Order.order_number.ilike(like),
            User.first_name.ilike(like),
            User.last_name.ilike(like),
            User.email.ilike(like),
        ))
    return q.order_by(Order.created_at.desc())
