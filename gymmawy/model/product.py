# gymmawy/model/product.py
from datetime import datetime

from ..extensions import db
from ..utils.money import as_float


class Price(db.Model):
    """Amount of one purchasable in one currency."""
    __tablename__ = "prices"
    __table_args__ = (
        db.UniqueConstraint("purchasable_type", "purchasable_id", "currency", name="uq_price_target_currency"),
    )

    PRODUCT = "PRODUCT"
    SUBSCRIPTION = "SUBSCRIPTION"
    PROGRAMME = "PROGRAMME"
    TYPES = {PRODUCT, SUBSCRIPTION, PROGRAMME}

    id = db.Column(db.Integer, primary_key=True)
    purchasable_type = db.Column(db.String(20), nullable=False, index=True)
    purchasable_id = db.Column(db.Integer, nullable=False, index=True)
    currency = db.Column(db.String(8), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def as_api(self):
        return {"currency": self.currency, "amount": as_float(self.amount)}


class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.JSON, nullable=False)            # {"en": "...", "ar": "..."}
    description = db.Column(db.JSON, nullable=True)
    image_url = db.Column(db.String(500))
    stock = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    prices = db.relationship(
        "Price",
        primaryjoin="and_(Price.purchasable_type == 'PRODUCT', foreign(Price.purchasable_id) == Product.id)",
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
            "stock": self.stock,
            "isActive": self.is_active,
            "price": {"amount": as_float(amount), "currency": currency} if currency else None,
            "prices": [p.as_api() for p in self.prices],
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
