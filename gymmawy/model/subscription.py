# gymmawy/model/subscription.py
from datetime import datetime, timedelta

from ..extensions import db
from ..utils.money import as_float


def _iso(dt):
    return dt.isoformat() if dt else None


class SubscriptionPlan(db.Model):
    __tablename__ = "subscription_plans"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.JSON, nullable=False)
    description = db.Column(db.JSON)
    subscription_period_days = db.Column(db.Integer, nullable=False, default=30)
    gift_period_days = db.Column(db.Integer, nullable=False, default=0)
    discount_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    prices = db.relationship(
        "Price",
        primaryjoin="and_(Price.purchasable_type == 'SUBSCRIPTION', "
                    "foreign(Price.purchasable_id) == SubscriptionPlan.id)",
        lazy="selectin",
        viewonly=True,
    )

    def price_in(self, currency):
        for p in self.prices:
            if p.currency == currency:
                return p.amount
        return None

    def as_api(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "subscriptionPeriodDays": self.subscription_period_days,
            "giftPeriodDays": self.gift_period_days,
            "discountPercentage": as_float(self.discount_percentage),
            "isActive": self.is_active,
            "prices": [p.as_api() for p in self.prices],
        }


class Subscription(db.Model):
    __tablename__ = "subscriptions"

    STATUSES = {"PENDING", "ACTIVE", "EXPIRED", "CANCELLED", "REJECTED"}

    id = db.Column(db.Integer, primary_key=True)
    subscription_number = db.Column(db.String(32), unique=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    plan_id = db.Column(db.Integer, db.ForeignKey("subscription_plans.id"), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="PENDING", index=True)

    price = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(8), nullable=False)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id", ondelete="SET NULL"), nullable=True)
    coupon_discount = db.Column(db.Numeric(12, 2))

    # snapshot of the plan period at purchase time
    subscription_period_days = db.Column(db.Integer, nullable=True)
    gift_period_days = db.Column(db.Integer, nullable=True)

    start_date = db.Column(db.DateTime)
    end_date = db.Column(db.DateTime, index=True)
    cancelled_at = db.Column(db.DateTime)
    rejected_at = db.Column(db.DateTime)
    rejection_reason = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    plan = db.relationship("SubscriptionPlan", lazy="joined")
    user = db.relationship("User")
    coupon = db.relationship("Coupon")

    def total_days(self):
        period = self.subscription_period_days
        if period is None:
            period = self.plan.subscription_period_days
        gift = self.gift_period_days
        if gift is None:
            gift = self.plan.gift_period_days
        return (period or 0) + (gift or 0)

    def activate(self, now=None):
        self.start_date = now or datetime.utcnow()
        self.end_date = self.start_date + timedelta(days=self.total_days())
        self.status = "ACTIVE"

    def as_api(self):
        return {
            "id": self.id,
            "subscriptionNumber": self.subscription_number,
            "status": self.status,
            "price": as_float(self.price),
            "currency": self.currency,
            "couponDiscount": as_float(self.coupon_discount),
            "plan": self.plan.as_api() if self.plan else None,
            "user": self.user.as_brief() if self.user else None,
            "startDate": _iso(self.start_date),
            "endDate": _iso(self.end_date),
            "cancelledAt": _iso(self.cancelled_at),
            "rejectedAt": _iso(self.rejected_at),
            "rejectionReason": self.rejection_reason,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
