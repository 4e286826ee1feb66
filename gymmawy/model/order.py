from datetime import datetime

from ..extensions import db
from ..utils.money import as_float


class Order(db.Model):
    __tablename__ = "orders"

    STATUSES = {"PENDING", "PAID", "SHIPPED", "DELIVERED", "CANCELLED"}

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), unique=True, index=True)  # e.g., "ORD-20251022-004211"
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    status = db.Column(db.String(20), default="PENDING", index=True)
    currency = db.Column(db.String(8), nullable=False)

    # Money snapshot
    subtotal = db.Column(db.Numeric(12, 2))
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id", ondelete="SET NULL"), nullable=True)
    coupon_discount = db.Column(db.Numeric(12, 2))
    total = db.Column(db.Numeric(12, 2))

    shipping_address = db.Column(db.JSON)
    meta = db.Column(db.JSON)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = db.relationship(
        "OrderItem",
        backref="order",
        cascade="all, delete-orphan",
        lazy="selectin"
    )
    user = db.relationship("User", lazy="joined")
    coupon = db.relationship("Coupon")

    def as_api(self):
        return {
            "id": self.id,
            "orderNumber": self.order_number,
            "status": self.status,
            "currency": self.currency,
            "money": {
                "subtotal": as_float(self.subtotal or 0),
                "couponDiscount": as_float(self.coupon_discount or 0),
                "total": as_float(self.total or 0),
            },
            "coupon": self.coupon.as_brief() if self.coupon else None,
            "shippingAddress": self.shipping_address,
            "meta": self.meta,
            "items": [i.as_api() for i in self.items],
            "user": self.user.as_brief() if self.user else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    product_id = db.Column(db.Integer, index=True)
    name = db.Column(db.JSON)
    image_url = db.Column(db.String(500))

    unit_price = db.Column(db.Numeric(12, 2))
    quantity = db.Column(db.Integer, nullable=False)
    line_total = db.Column(db.Numeric(12, 2))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def as_api(self):
        return {
            "productId": self.product_id,
            "name": self.name,
            "imageUrl": self.image_url,
            "unitPrice": as_float(self.unit_price or 0),
            "quantity": self.quantity,
            "lineTotal": as_float(self.line_total or 0),
        }
