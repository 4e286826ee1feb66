# gymmawy/utils/money.py

from decimal import Decimal, ROUND_HALF_UP

Money = Decimal
MONEY = Decimal("0.01")

def D(x) -> Money:
    return x if isinstance(x, Decimal) else Decimal(str(x or "0"))

def round_money(x: Money) -> Money:
    return D(x).quantize(MONEY, rounding=ROUND_HALF_UP)

def non_negative(x: Money) -> Money:
    x = round_money(x)
    return x if x > 0 else Decimal("0.00")

def percent_of(base: Money, pct) -> Money:
    pct = D(pct)
    if pct <= 0:
        return Decimal("0.00")
    if pct > 100:
        pct = Decimal("100")
    return round_money(D(base) * pct / Decimal("100"))

def to_cents(x: Money) -> int:
    return int((round_money(x) * 100).to_integral_value(rounding=ROUND_HALF_UP))

def as_float(x) -> float:
    return float(round_money(x)) if x is not None else None
