# gymmawy/model/programme.py
from datetime import datetime

from ..extensions import db
from ..utils.money import as_float


class Programme(db.Model):
    __tablename__ = "programmes"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.JSON, nullable=False)
    description = db.Column(db.JSON)
    image_url = db.Column(db.String(500))
    pdf_url = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    prices = db.relationship(
        "Price",
        primaryjoin="and_(Price.purchasable_type == 'PROGRAMME', "
                    "foreign(Price.purchasable_id) == Programme.id)",
        lazy="selectin",
        viewonly=True,
    )

    def price_in(self, currency):
        for p in self.prices:
            if p.currency == currency:
                return p.amount
        return None

    def as_api(self, currency=None):
        amount = self.price_in(currency) if currency else None
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "imageUrl": self.image_url,
            "isActive": self.is_active,
            "price": {"amount": as_float(amount), "currency": currency} if currency else None,
            "prices": [p.as_api() for p in self.prices],
        }


class ProgrammePurchase(db.Model):
    __tablename__ = "programme_purchases"

    STATUSES = {"PENDING", "COMPLETE", "CANCELLED", "REJECTED"}

    id = db.Column(db.Integer, primary_key=True)
    purchase_number = db.Column(db.String(32), unique=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    programme_id = db.Column(db.Integer, db.ForeignKey("programmes.id"), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="PENDING", index=True)

    price = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(8), nullable=False)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id", ondelete="SET NULL"), nullable=True)
    coupon_discount = db.Column(db.Numeric(12, 2))

    purchased_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    cancelled_at = db.Column(db.DateTime)
    rejection_reason = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    programme = db.relationship("Programme", lazy="joined")
    user = db.relationship("User")

    def as_api(self):
        return {
            "id": self.id,
            "purchaseNumber": self.purchase_number,
            "status": self.status,
            "price": as_float(self.price),
            "currency": self.currency,
            "couponDiscount": as_float(self.coupon_discount),
            "programme": self.programme.as_api() if self.programme else None,
            "user": self.user.as_brief() if self.user else None,
            # delivery link only once paid
            "pdfUrl": self.programme.pdf_url if self.programme and self.status == "COMPLETE" else None,
            "purchasedAt": self.purchased_at.isoformat() if self.purchased_at else None,
            "cancelledAt": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "rejectionReason": self.rejection_reason,
        }
