# gymmawy/services/currency.py
"""Pick the currency a request is priced in.

Checked in order: development override, session, ``preferredCurrency``
cookie, ``X-Preferred-Currency``/``X-User-Currency`` header, IP country,
configured default. The result lands in ``g.currency``/``g.currency_source``
and is echoed in the ``X-Currency``/``X-Currency-Source`` response headers.
"""
import requests
from flask import current_app, g, request, session

from ..utils.money import D, round_money
from ..utils.net import get_client_ip, is_public_ip

SUPPORTED_CURRENCIES = ("EGP", "SAR", "AED", "USD")

COUNTRY_CURRENCY = {"EG": "EGP", "SA": "SAR", "AE": "AED"}

CURRENCY_INFO = {
    "EGP": {"name": "Egyptian Pound", "symbol": "E£"},
    "SAR": {"name": "Saudi Riyal", "symbol": "﷼"},
    "AED": {"name": "UAE Dirham", "symbol": "د.إ"},
    "USD": {"name": "US Dollar", "symbol": "$"},
}

# static table, USD based
USD_RATES = {"USD": D("1"), "EGP": D("30.50"), "SAR": D("3.75"), "AED": D("3.67")}

FINDIP_URL = "https://api.findip.net/{ip}/?token={token}"
LOOKUP_TIMEOUT = 5
COOKIE_NAME = "preferredCurrency"
SESSION_KEY = "currency"


def normalize(value):
    if not value or not isinstance(value, str):
        return None
    value = value.strip().upper()
    return value if value in SUPPORTED_CURRENCIES else None


def currency_for_country(country_code):
    return COUNTRY_CURRENCY.get((country_code or "").upper(), "USD")


def lookup_country(ip):
    """Country ISO code for ``ip`` or None when it can't be resolved."""
    token = current_app.config.get("FINDIP_API_KEY")
    if not token or not is_public_ip(ip):
        return None
    try:
        r = requests.get(FINDIP_URL.format(ip=ip, token=token), timeout=LOOKUP_TIMEOUT)
        r.raise_for_status()
        data = r.json() or {}
    except (requests.RequestException, ValueError) as e:
        current_app.logger.warning("IP geolocation failed for %s: %s", ip, e)
        return None
    return ((data.get("country") or {}).get("iso_code") or "").upper() or None


def default_currency():
    return normalize(current_app.config.get("DEFAULT_CURRENCY")) or "USD"


def detect_currency():
    cfg = current_app.config
    if (cfg.get("ENV") or "").lower() != "production":
        forced = normalize(cfg.get("DEV_CURRENCY"))
        if forced:
            return forced, "dev-override"

    c = normalize(session.get(SESSION_KEY))
    if c:
        return c, "session"

    c = normalize(request.cookies.get(COOKIE_NAME))
    if c:
        return c, "cookie"

    c = normalize(request.headers.get("X-Preferred-Currency") or request.headers.get("X-User-Currency"))
    if c:
        return c, "header"

    country = lookup_country(get_client_ip())
    if country:
        return currency_for_country(country), "ip"

    return default_currency(), "default"


def current_currency():
    c = getattr(g, "currency", None)
    return c or default_currency()


def convert(amount, from_currency, to_currency):
    """Convert through USD using the static rate table."""
    from_currency = normalize(from_currency)
    to_currency = normalize(to_currency)
    if not from_currency or not to_currency:
        raise ValueError("unsupported currency")
    if from_currency == to_currency:
        return round_money(amount)
    usd = D(amount) / USD_RATES[from_currency]
    return round_money(usd * USD_RATES[to_currency])


def rates_for(base="USD"):
    base = normalize(base) or "USD"
    return {c: float(round(USD_RATES[c] / USD_RATES[base], 6)) for c in SUPPORTED_CURRENCIES}


def init_currency(app):
    @app.before_request
    def _detect_currency():
        if request.method == "OPTIONS":
            return
        g.currency, g.currency_source = detect_currency()

    @app.after_request
    def _currency_headers(response):
        if getattr(g, "currency", None):
            response.headers["X-Currency"] = g.currency
            response.headers["X-Currency-Source"] = g.currency_source
        return response
