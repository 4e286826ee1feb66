# gymmawy/services/pricing.py
from ..errors import ValidationError
from ..extensions import db
from ..model import Price
from ..utils.money import D, non_negative, percent_of, round_money
from .currency import SUPPORTED_CURRENCIES


def set_prices(purchasable_type: str, purchasable_id: int, prices: dict):
    """Upsert ``{"EGP": 100, "SAR": 25}`` for one purchasable."""
    if not isinstance(prices, dict):
        raise ValidationError("prices must be an object keyed by currency", field="prices")
    existing = {p.currency: p for p in Price.query.filter_by(
        purchasable_type=purchasable_type, purchasable_id=purchasable_id)}
    for currency, amount in prices.items():
        currency = str(currency).upper()
        if currency not in SUPPORTED_CURRENCIES:
            raise ValidationError(f"Unsupported currency: {currency}", field="prices")
        if amount is None:
            if currency in existing:
                db.session.delete(existing[currency])
            continue
        try:
            value = D(amount)
        except ArithmeticError:
            raise ValidationError(f"Invalid amount for {currency}", field="prices")
        if not value.is_finite():
            raise ValidationError(f"Invalid amount for {currency}", field="prices")
        value = round_money(value)
        if value < 0:
            raise ValidationError(f"Amount for {currency} must be >= 0", field="prices")
        if currency in existing:
            existing[currency].amount = value
        else:
            db.session.add(Price(purchasable_type=purchasable_type, purchasable_id=purchasable_id,
                                 currency=currency, amount=value))


def delete_prices(purchasable_type: str, purchasable_id: int):
    Price.query.filter_by(purchasable_type=purchasable_type,
                          purchasable_id=purchasable_id).delete(synchronize_session=False)


def require_price(item, currency):
    amount = item.price_in(currency)
    if amount is None:
        raise ValidationError(f"Price not available for currency: {currency}", field="currency")
    return D(amount)


def quote(base, coupon=None, plan_discount=0):
    """Price breakdown: base, minus plan discount, minus coupon. Never negative."""
    base = round_money(base)
    plan_off = percent_of(base, plan_discount)
    after_plan = non_negative(base - plan_off)
    coupon_off = coupon.discount_for(after_plan) if coupon else D("0.00")
    return {
        "original": base,
        "planDiscount": plan_off,
        "couponDiscount": coupon_off,
        "final": non_negative(after_plan - coupon_off),
    }
