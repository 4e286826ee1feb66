# gymmawy/cart/routes.py
from flask import g

from . import bp
from ..services import cart_service
from ..utils.api import ok
from ..utils.decorators import auth_required, current_user
from ..utils.validation import json_body, parse_int, require_fields


def _cart():
    return cart_service.get_or_create_cart(current_user().id)


def _out(msg, cart, status=200):
    return ok(msg, cart.as_api(g.currency), status)


@bp.get("")
@auth_required
def get_cart():
    return _out("Cart fetched", _cart())


@bp.post("/items")
@auth_required
def add_item():
    data = json_body()
    require_fields(data, "productId")
    product_id = parse_int(data.get("productId"), "productId", minimum=1)
    quantity = parse_int(data.get("quantity"), "quantity", minimum=1, default=1)
    cart = cart_service.add_item(_cart(), product_id, quantity)
    return _out("Item added to cart", cart, 201)


@bp.patch("/items/<int:item_id>")
@auth_required
def update_item(item_id):
    data = json_body()
    require_fields(data, "quantity")
    quantity = parse_int(data.get("quantity"), "quantity", minimum=0)
    cart = cart_service.update_item(_cart(), item_id, quantity)
    return _out("Cart updated", cart)


@bp.delete("/items/<int:item_id>")
@auth_required
def remove_item(item_id):
    return _out("Item removed", cart_service.remove_item(_cart(), item_id))


@bp.delete("")
@auth_required
def clear_cart():
    return _out("Cart cleared", cart_service.clear_cart(_cart()))


@bp.post("/apply-coupon")
@auth_required
def apply_coupon():
    data = json_body()
    cart = cart_service.apply_coupon(_cart(), data.get("code"), current_user().id)
    return _out("Coupon applied", cart)


@bp.delete("/coupon")
@auth_required
def remove_coupon():
    return _out("Coupon removed", cart_service.remove_coupon(_cart()))
