import itertools

import pytest
import requests
from flask_jwt_extended import create_access_token
from werkzeug.security import generate_password_hash

from gymmawy import create_app
from gymmawy.extensions import db
from gymmawy.model import Coupon, Price, Product, Programme, SubscriptionPlan, User
from gymmawy.services import mailer
from gymmawy.services.pricing import set_prices

PASSWORD = "Secret123"

_seq = itertools.count(1)


@pytest.fixture(autouse=True)
def _offline(monkeypatch):
    """No test may reach FindIP, Paymob or Tabby for real."""
    def _blocked(self, method, url, *args, **kwargs):
        raise RuntimeError(f"outbound HTTP blocked in tests: {method} {url}")
    monkeypatch.setattr(requests.sessions.Session, "request", _blocked)


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    sent = []

    def _capture(kind):
        def send(email, token):
            sent.append({"kind": kind, "to": email, "token": token})
            return True
        return send

    monkeypatch.setattr(mailer, "send_verification_email", _capture("verify"))
    monkeypatch.setattr(mailer, "send_password_reset_email", _capture("reset"))
    monkeypatch.setattr(mailer, "send_email_change_email", _capture("email-change"))
    return sent


@pytest.fixture
def app():
    app = create_app({
        "TESTING": True,
        "ENV": "testing",
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "SECRET_KEY": "test-session-secret",
        "JWT_SECRET_KEY": "test-jwt-secret-with-enough-length",
        "DEFAULT_CURRENCY": "EGP",
        "DEV_CURRENCY": None,
        "FINDIP_API_KEY": None,
        "SMTP_HOST": None,
        "PAYMOB_HMAC_SECRET": None,
        "PAYMOB_INTEGRATION_ID": "123456",
        "TABBY_WEBHOOK_SECRET": None,
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make(email=None, role="user", password=PASSWORD, **fields):
        n = next(_seq)
        u = User(
            email=email or f"user{n}@example.com",
            mobile_number=fields.pop("mobile_number", f"+2010000{n:05d}"),
            first_name=fields.pop("first_name", "Test"),
            last_name=fields.pop("last_name", f"User{n}"),
            password_hash=generate_password_hash(password),
            role=role,
            email_verified=True,
            **fields,
        )
        db.session.add(u)
        db.session.commit()
        return u
    return _make


@pytest.fixture
def user(make_user):
    return make_user("member@example.com")


@pytest.fixture
def admin(make_user):
    return make_user("admin@example.com", role="admin")


@pytest.fixture
def auth(app):
    def _headers(user, **extra):
        token = create_access_token(identity=str(user.id))
        return {"Authorization": f"Bearer {token}", **extra}
    return _headers


@pytest.fixture
def make_product(app):
    def _make(prices=None, stock=10, name="Shaker", is_active=True):
        p = Product(name={"en": name, "ar": name}, stock=stock, is_active=is_active)
        db.session.add(p)
        db.session.flush()
        set_prices(Price.PRODUCT, p.id, prices if prices is not None else {"EGP": 100, "SAR": 25})
        db.session.commit()
        db.session.refresh(p)
        return p
    return _make


@pytest.fixture
def make_coupon(app):
    def _make(code="SAVE10", **fields):
        c = Coupon(code=code, discount_type=fields.pop("discount_type", Coupon.PERCENTAGE),
                   discount_percentage=fields.pop("discount_percentage", 10),
                   total_redemptions=fields.pop("total_redemptions", 0),
                   max_redemptions_per_user=fields.pop("max_redemptions_per_user", 1),
                   is_active=fields.pop("is_active", True), **fields)
        db.session.add(c)
        db.session.commit()
        return c
    return _make


@pytest.fixture
def make_plan(app):
    def _make(prices=None, period=30, gift=0, discount=0):
        plan = SubscriptionPlan(name={"en": "Monthly", "ar": "شهري"},
                                subscription_period_days=period, gift_period_days=gift,
                                discount_percentage=discount, is_active=True)
        db.session.add(plan)
        db.session.flush()
        set_prices(Price.SUBSCRIPTION, plan.id,
                   prices if prices is not None else {"EGP": 1000, "SAR": 200, "USD": 50})
        db.session.commit()
        db.session.refresh(plan)
        return plan
    return _make


@pytest.fixture
def make_programme(app):
    def _make(prices=None, pdf_url="https://cdn.example.com/plan.pdf"):
        prog = Programme(name={"en": "Shred 8", "ar": "شريد"}, pdf_url=pdf_url, is_active=True)
        db.session.add(prog)
        db.session.flush()
        set_prices(Price.PROGRAMME, prog.id, prices if prices is not None else {"EGP": 500, "SAR": 120})
        db.session.commit()
        db.session.refresh(prog)
        return prog
    return _make
