# gymmawy/services/coupon_service.py
from sqlalchemy import func

from ..errors import ApiError, Conflict, NotFound, ValidationError
from ..extensions import db
from ..model import Coupon, UserCouponRedemption
from ..utils.validation import parse_bool, parse_decimal, parse_int, parse_iso8601

INVALID_CODE = "Invalid coupon code"
INACTIVE = "This coupon is currently inactive and cannot be used"
EXPIRED = "This coupon has expired and can no longer be used"
ALREADY_USED = "You have already used this coupon and cannot use it again"
EXHAUSTED = "This coupon has reached its maximum usage limit and can no longer be used"


def normalize_code(code) -> str:
    return (code or "").strip().upper()


def find_by_code(code):
    code = normalize_code(code)
    if not code:
        return None
    return Coupon.query.filter(func.upper(Coupon.code) == code).first()


def user_usage_count(user_id, coupon_id) -> int:
    r = UserCouponRedemption.query.filter_by(user_id=user_id, coupon_id=coupon_id).first()
    return r.usage_count if r else 0


def validate_coupon(code, user_id=None) -> Coupon:
    c = find_by_code(code)
    if not c:
        raise NotFound(INVALID_CODE, code="INVALID_COUPON")
    return check_coupon(c, user_id)


def check_coupon(c: Coupon, user_id=None) -> Coupon:
    if not c.is_active:
        raise ApiError(INACTIVE, code="COUPON_INACTIVE")
    if c.is_expired():
        raise ApiError(EXPIRED, code="COUPON_EXPIRED")
    if user_id is not None:
        per_user = c.max_redemptions_per_user or 1
        if user_usage_count(user_id, c.id) >= per_user:
            raise ApiError(ALREADY_USED, code="COUPON_ALREADY_USED")
    if c.is_exhausted():
        raise ApiError(EXHAUSTED, code="COUPON_EXHAUSTED")
    return c


def _apply_payload(c: Coupon, data: dict, creating: bool):
    if creating or "code" in data:
        code = normalize_code(data.get("code"))
        if len(code) < 3:
            raise ValidationError("code must be at least 3 characters", field="code")
        clash = Coupon.query.filter(func.upper(Coupon.code) == code)
        if c.id:
            clash = clash.filter(Coupon.id != c.id)
        if clash.first():
            raise Conflict("Coupon code already exists")
        c.code = code

    if creating or "discountType" in data:
        dtype = (data.get("discountType") or Coupon.PERCENTAGE).strip().upper()
        if dtype not in (Coupon.PERCENTAGE, Coupon.FIXED):
            raise ValidationError("discountType must be PERCENTAGE or FIXED", field="discountType")
        c.discount_type = dtype

    if "discountPercentage" in data:
        c.discount_percentage = parse_decimal(data.get("discountPercentage"), "discountPercentage",
                                              minimum=0, required=False)
    if "discountAmount" in data:
        c.discount_amount = parse_decimal(data.get("discountAmount"), "discountAmount",
                                          minimum=0, required=False)

    if c.discount_type == Coupon.PERCENTAGE:
        pct = c.discount_percentage
        if pct is None or pct <= 0 or pct > 100:
            raise ValidationError("discountPercentage must be > 0 and <= 100", field="discountPercentage")
    else:
        if c.discount_amount is None or c.discount_amount <= 0:
            raise ValidationError("discountAmount must be > 0", field="discountAmount")

    if "expirationDate" in data:
        raw = data.get("expirationDate")
        exp = parse_iso8601(raw)
        if raw and not exp:
            raise ValidationError("Invalid datetime format for expirationDate", field="expirationDate")
        c.expiration_date = exp
    if "maxRedemptions" in data:
        c.max_redemptions = parse_int(data.get("maxRedemptions"), "maxRedemptions", minimum=0)
    if "maxRedemptionsPerUser" in data:
        c.max_redemptions_per_user = parse_int(data.get("maxRedemptionsPerUser"),
                                               "maxRedemptionsPerUser", minimum=1, default=1)
    if "isActive" in data:
        c.is_active = parse_bool(data.get("isActive"), default=True)


def create_coupon_from_payload(data: dict) -> Coupon:
    c = Coupon(total_redemptions=0, is_active=True, max_redemptions_per_user=1)
    _apply_payload(c, data, creating=True)
    db.session.add(c)
    db.session.commit()
    return c


def update_coupon_from_payload(c: Coupon, data: dict) -> Coupon:
    _apply_payload(c, data, creating=False)
    db.session.commit()
    return c
