# ------ gymmawy/model/__init__.py ------

from .user import User, PendingUserVerification, VerificationToken, RefreshToken
from .product import Product, Price
from .cart import Cart, CartItem
from .coupon import Coupon, UserCouponRedemption
from .order import Order, OrderItem
from .subscription import SubscriptionPlan, Subscription
from .programme import Programme, ProgrammePurchase
from .payment import Payment
from .cms import Transformation, Video, HomepagePopup
from .lead import Lead
from .notification import Notification

__all__ = [
    "User",
    "PendingUserVerification",
    "VerificationToken",
    "RefreshToken",
    "Product",
    "Price",
    "Cart",
    "CartItem",
    "Coupon",
    "UserCouponRedemption",
    "Order",
    "OrderItem",
    "SubscriptionPlan",
    "Subscription",
    "Programme",
    "ProgrammePurchase",
    "Payment",
    "Transformation",
    "Video",
    "HomepagePopup",
    "Lead",
    "Notification",
]
