# gymmawy/currency/routes.py
from flask import g, request, session

from . import bp
from ..errors import ValidationError
from ..extensions import db
from ..model import Price
from ..services import currency as cur
from ..utils.api import ok
from ..utils.decorators import auth_required, current_user
from ..utils.net import get_client_ip
from ..utils.validation import parse_choice, parse_int

COOKIE_MAX_AGE = 365 * 24 * 3600


@bp.get("/detect")
def detect():
    return ok("OK", {
        "currency": g.currency,
        "source": g.currency_source,
        "ip": get_client_ip(),
        **cur.CURRENCY_INFO[g.currency],
    })


@bp.get("/available")
def available():
    return ok("OK", {"items": [{"code": c, **cur.CURRENCY_INFO[c]} for c in cur.SUPPORTED_CURRENCIES],
                     "default": cur.default_currency()})


@bp.get("/rates")
def rates():
    base = cur.normalize(request.args.get("base")) or "USD"
    return ok("OK", {"base": base, "rates": cur.rates_for(base)})


@bp.get("/prices")
def prices():
    ptype = parse_choice(request.args.get("type"), "type", Price.TYPES)
    pid = parse_int(request.args.get("id"), "id", minimum=1)
    if not ptype or pid is None:
        raise ValidationError("type and id are required", field="type")
    rows = Price.query.filter_by(purchasable_type=ptype, purchasable_id=pid).all()
    return ok("OK", {"type": ptype, "id": pid, "prices": {p.currency: p.as_api()["amount"] for p in rows}})


@bp.patch("/preferred")
@auth_required
def set_preferred():
    currency = cur.normalize((request.get_json(silent=True) or {}).get("currency"))
    if not currency:
        raise ValidationError(f"currency must be one of: {', '.join(cur.SUPPORTED_CURRENCIES)}",
                              field="currency")
    user = current_user()
    user.preferred_currency = currency
    db.session.commit()
    session[cur.SESSION_KEY] = currency
    g.currency, g.currency_source = currency, "session"
    resp = ok("Preferred currency updated", {"currency": currency})
    resp.set_cookie(cur.COOKIE_NAME, currency, max_age=COOKIE_MAX_AGE, samesite="Lax")
    return resp
