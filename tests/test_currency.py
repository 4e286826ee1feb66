from decimal import Decimal

import pytest
import requests

from gymmawy.services import currency as cur


class _FakeResponse:
    def __init__(self, payload):
        self.payload = payload

    def raise_for_status(self):
        pass

    def json(self):
        return self.payload


def _detect(client, **headers):
    r = client.get("/api/currency/detect", headers=headers)
    data = r.get_json()["data"]
    assert r.headers["X-Currency"] == data["currency"]
    assert r.headers["X-Currency-Source"] == data["source"]
    return data["currency"], data["source"]


def test_default_currency(client):
    assert _detect(client) == ("EGP", "default")


def test_header_preference(client):
    assert _detect(client, **{"X-Preferred-Currency": "sar"}) == ("SAR", "header")
    assert _detect(client, **{"X-User-Currency": "AED"}) == ("AED", "header")
    assert _detect(client, **{"X-Preferred-Currency": "GBP"}) == ("EGP", "default")


def test_cookie_beats_header(client):
    client.set_cookie(cur.COOKIE_NAME, "USD")
    assert _detect(client, **{"X-Preferred-Currency": "SAR"}) == ("USD", "cookie")


def test_dev_override_only_outside_production(app, client):
    app.config["DEV_CURRENCY"] = "AED"
    assert _detect(client) == ("AED", "dev-override")
    app.config["ENV"] = "production"
    assert _detect(client) == ("EGP", "default")


def test_ip_lookup(app, client, monkeypatch):
    app.config["FINDIP_API_KEY"] = "token"
    calls = []

    def fake_get(url, timeout):
        calls.append(url)
        return _FakeResponse({"country": {"iso_code": "sa"}})

    monkeypatch.setattr(cur.requests, "get", fake_get)
    assert _detect(client, **{"X-Forwarded-For": "86.51.1.1, 10.0.0.1"}) == ("SAR", "ip")
    assert calls == ["https://api.findip.net/86.51.1.1/?token=token"]


def test_ip_outside_served_countries_gets_usd(app, client, monkeypatch):
    app.config["FINDIP_API_KEY"] = "token"
    monkeypatch.setattr(cur.requests, "get", lambda url, timeout: _FakeResponse({"country": {"iso_code": "DE"}}))
    assert _detect(client, **{"X-Forwarded-For": "85.214.1.1"}) == ("USD", "ip")


def test_ip_lookup_failure_falls_back(app, client, monkeypatch):
    app.config["FINDIP_API_KEY"] = "token"

    def broken(url, timeout):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(cur.requests, "get", broken)
    assert _detect(client, **{"X-Forwarded-For": "86.51.1.1"}) == ("EGP", "default")


def test_private_ip_is_never_looked_up(app, client, monkeypatch):
    app.config["FINDIP_API_KEY"] = "token"

    def unexpected(url, timeout):
        raise AssertionError("lookup should not happen")

    monkeypatch.setattr(cur.requests, "get", unexpected)
    assert _detect(client, **{"X-Forwarded-For": "192.168.1.20"}) == ("EGP", "default")


def test_preferred_currency_is_remembered(client, user, auth):
    r = client.patch("/api/currency/preferred", headers=auth(user), json={"currency": "sar"})
    assert r.status_code == 200
    assert r.headers["X-Currency"] == "SAR"
    assert any(c.startswith(f"{cur.COOKIE_NAME}=SAR") for c in r.headers.getlist("Set-Cookie"))
    assert _detect(client) == ("SAR", "session")


def test_preferred_currency_validation(client, user, auth):
    r = client.patch("/api/currency/preferred", headers=auth(user), json={"currency": "GBP"})
    assert r.status_code == 400


@pytest.mark.parametrize("amount,src,dst,expected", [
    ("100", "USD", "EGP", "3050.00"),
    ("375", "SAR", "USD", "100.00"),
    ("10", "AED", "AED", "10.00"),
])
def test_convert(amount, src, dst, expected):
    assert cur.convert(Decimal(amount), src, dst) == Decimal(expected)


def test_rates(client):
    rates = client.get("/api/currency/rates?base=SAR").get_json()["data"]["rates"]
    assert rates["SAR"] == 1.0
    assert rates["USD"] == pytest.approx(0.266667)


def test_price_lookup(client, make_product):
    p = make_product({"EGP": 100, "SAR": 25})
    r = client.get(f"/api/currency/prices?type=PRODUCT&id={p.id}")
    assert r.get_json()["data"]["prices"] == {"EGP": 100.0, "SAR": 25.0}

    assert client.get("/api/currency/prices?type=PRODUCT").status_code == 400
