# gymmawy/model/cart.py
from __future__ import annotations
from datetime import datetime
from decimal import Decimal

from ..extensions import db
from ..utils.money import as_float, round_money, non_negative


class Cart(db.Model):
    __tablename__ = "carts"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = db.relationship(
        "CartItem",
        backref="cart",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="CartItem.id.asc()"
    )
    coupon = db.relationship("Coupon", lazy="joined")

    # --------- money helpers / totals ----------
    def subtotal_dec(self, currency) -> Decimal:
        return round_money(sum((i.line_total_dec(currency) for i in self.items), Decimal("0")))

    def coupon_discount_dec(self, currency) -> Decimal:
        if not self.coupon or not self.coupon.is_active:
            return Decimal("0.00")
        return self.coupon.discount_for(self.subtotal_dec(currency))

    def total_dec(self, currency) -> Decimal:
        return non_negative(self.subtotal_dec(currency) - self.coupon_discount_dec(currency))

    def as_api(self, currency):
        return {
            "id": self.id,
            "currency": currency,
            "items": [i.as_api(currency) for i in self.items],
            "coupon": self.coupon.as_brief() if self.coupon else None,
            "totals": {
                "subtotal": as_float(self.subtotal_dec(currency)),
                "couponDiscount": as_float(self.coupon_discount_dec(currency)),
                "total": as_float(self.total_dec(currency)),
            },
            "itemCount": sum(i.quantity for i in self.items),
        }


class CartItem(db.Model):
    __tablename__ = "cart_items"
    __table_args__ = (db.UniqueConstraint("cart_id", "product_id", name="uq_cart_product"),)

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    product = db.relationship("Product", lazy="joined")

    # ---- price helpers ----
    def unit_price_dec(self, currency) -> Decimal | None:
        return self.product.price_in(currency) if self.product else None

    def line_total_dec(self, currency) -> Decimal:
        unit = self.unit_price_dec(currency)
        if unit is None:
            return Decimal("0.00")
        return round_money(unit * self.quantity)

    def as_api(self, currency):
        unit = self.unit_price_dec(currency)
        return {
            "id": self.id,
            "productId": self.product_id,
            "name": self.product.name if self.product else None,
            "imageUrl": self.product.image_url if self.product else None,
            "quantity": self.quantity,
            "unitPrice": as_float(unit),
            "lineTotal": as_float(self.line_total_dec(currency)),
            "available": unit is not None,
        }
