# --- gymmawy/model/coupon.py ---
from datetime import datetime
from decimal import Decimal

from ..extensions import db
from ..utils.money import D, as_float, percent_of, round_money


class Coupon(db.Model):
    __tablename__ = "coupons"

    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), unique=True, nullable=False, index=True)

    discount_type = db.Column(db.String(16), nullable=False, default=PERCENTAGE)
    discount_percentage = db.Column(db.Numeric(5, 2), nullable=True)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=True)

    expiration_date = db.Column(db.DateTime, nullable=True)
    max_redemptions = db.Column(db.Integer, nullable=True)            # null or 0: unlimited
    max_redemptions_per_user = db.Column(db.Integer, nullable=False, default=1)
    total_redemptions = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    redemptions = db.relationship("UserCouponRedemption", back_populates="coupon",
                                  cascade="all, delete-orphan", lazy="selectin")

    def is_expired(self, now=None) -> bool:
        return bool(self.expiration_date and self.expiration_date < (now or datetime.utcnow()))

    def is_exhausted(self) -> bool:
        return bool(self.max_redemptions) and (self.total_redemptions or 0) >= self.max_redemptions

    def discount_for(self, base) -> Decimal:
        base = D(base)
        if base <= 0:
            return Decimal("0.00")
        if self.discount_type == self.FIXED:
            return round_money(min(D(self.discount_amount), base))
        return percent_of(base, self.discount_percentage)

    def as_brief(self):
        return {
            "id": self.id,
            "code": self.code,
            "discountType": self.discount_type,
            "discountPercentage": as_float(self.discount_percentage),
            "discountAmount": as_float(self.discount_amount),
        }

    def as_api(self):
        return {
            **self.as_brief(),
            "expirationDate": self.expiration_date.isoformat() if self.expiration_date else None,
            "maxRedemptions": self.max_redemptions,
            "maxRedemptionsPerUser": self.max_redemptions_per_user,
            "totalRedemptions": self.total_redemptions,
            "isActive": self.is_active,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class UserCouponRedemption(db.Model):
    __tablename__ = "user_coupon_redemptions"
    __table_args__ = (db.UniqueConstraint("user_id", "coupon_id", name="uq_user_coupon"),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id", ondelete="CASCADE"), index=True, nullable=False)
    usage_count = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    redeemed_at = db.Column(db.DateTime, default=datetime.utcnow)

    coupon = db.relationship("Coupon", back_populates="redemptions")

    def as_api(self):
        return {
            "id": self.id,
            "couponId": self.coupon_id,
            "usageCount": self.usage_count,
            "redeemedAt": self.redeemed_at.isoformat() if self.redeemed_at else None,
            "coupon": self.coupon.as_brief() if self.coupon else None,
        }
