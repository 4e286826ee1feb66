# gymmawy/services/cart_service.py
from ..errors import ApiError, NotFound, ValidationError
from ..extensions import db
from ..model import Cart, CartItem, Product
from .coupon_service import validate_coupon


def get_or_create_cart(user_id) -> Cart:
    cart = Cart.query.filter_by(user_id=user_id).first()
    if not cart:
        cart = Cart(user_id=user_id)
        db.session.add(cart)
        db.session.commit()
    return cart


def _available_product(product_id) -> Product:
    p = db.session.get(Product, product_id)
    if not p or not p.is_active:
        raise NotFound("Product not found")
    return p


def add_item(cart: Cart, product_id, quantity):
    p = _available_product(product_id)
    item = next((i for i in cart.items if i.product_id == p.id), None)
    new_qty = quantity + (item.quantity if item else 0)
    if new_qty > (p.stock or 0):
        raise ApiError("Insufficient stock", code="OUT_OF_STOCK")
    if item:
        item.quantity = new_qty
    else:
        cart.items.append(CartItem(product_id=p.id, quantity=quantity))
    db.session.commit()
    return cart


def _own_item(cart: Cart, item_id) -> CartItem:
    item = next((i for i in cart.items if i.id == item_id), None)
    if not item:
        raise NotFound("Cart item not found")
    return item


def update_item(cart: Cart, item_id, quantity):
    item = _own_item(cart, item_id)
    if quantity == 0:
        cart.items.remove(item)
    else:
        if quantity > (item.product.stock or 0):
            raise ApiError("Insufficient stock", code="OUT_OF_STOCK")
        item.quantity = quantity
    db.session.commit()
    return cart


def remove_item(cart: Cart, item_id):
    cart.items.remove(_own_item(cart, item_id))
    db.session.commit()
    return cart


def clear_cart(cart: Cart):
    cart.items.clear()
    cart.coupon_id = None
    db.session.commit()
    return cart


def apply_coupon(cart: Cart, code, user_id):
    if not (code or "").strip():
        raise ValidationError("code is required", field="code")
    coupon = validate_coupon(code, user_id)
    if cart.coupon_id == coupon.id:
        raise ApiError("Coupon already applied", code="COUPON_ALREADY_APPLIED")
    cart.coupon_id = coupon.id
    db.session.commit()
    db.session.refresh(cart)
    return cart


def remove_coupon(cart: Cart):
    cart.coupon_id = None
    db.session.commit()
    db.session.refresh(cart)
    return cart
