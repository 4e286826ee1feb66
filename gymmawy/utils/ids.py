# gymmawy/utils/ids.py
import hashlib
import random
import secrets
import string
import time
from datetime import datetime

_ALNUM = string.ascii_uppercase + string.digits


def _dated(prefix):
    return f"{prefix}-{datetime.utcnow():%Y%m%d}-{random.randint(0, 999999):06d}"


def order_number():
    return _dated("ORD")


def subscription_number():
    return _dated("SUB")


def purchase_number():
    return _dated("PROG")


def payment_reference():
    suffix = "".join(secrets.choice(_ALNUM) for _ in range(9))
    return f"PAY-{int(time.time() * 1000)}-{suffix}"


def unique_id(generate, exists, attempts=5):
    """Call ``generate`` until ``exists`` says the value is free."""
    for _ in range(attempts):
        value = generate()
        if not exists(value):
            return value
    raise RuntimeError(f"could not generate a unique id after {attempts} attempts")


def new_token():
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
