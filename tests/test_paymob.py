import hashlib
import hmac
import json

import pytest

from gymmawy.extensions import db
from gymmawy.model import Payment
from gymmawy.services import paymob, subscription_service
from gymmawy.services.payment_service import create_payment

BILLING = {"firstName": "Nour", "lastName": "Ali", "email": "nour@example.com", "phoneNumber": "+966500000000"}


@pytest.mark.parametrize("obj,expected", [
    ({"success": True}, "SUCCESS"),
    ({"success": True, "is_refunded": True}, "REFUNDED"),
    ({"success": True, "is_voided": True}, "FAILED"),
    ({"success": True, "error_occured": True}, "FAILED"),
    ({"success": False, "is_voided": True}, "FAILED"),
    ({"success": False, "is_refunded": True}, "REFUNDED"),
    ({"success": False}, "PENDING"),
])
def test_map_status(obj, expected):
    assert paymob.map_status(obj) == expected


def test_verify_hmac(app):
    body = b'{"obj": {"id": 1}}'
    assert paymob.verify_hmac(body, None) is True  # no secret configured

    app.config["PAYMOB_HMAC_SECRET"] = "s3cret"
    good = hmac.new(b"s3cret", body, hashlib.sha512).hexdigest()
    assert paymob.verify_hmac(body, good) is True
    assert paymob.verify_hmac(body, good.upper()) is True
    assert paymob.verify_hmac(body, "deadbeef") is False
    assert paymob.verify_hmac(body, None) is False


def test_to_sar():
    assert str(paymob.to_sar("100", "SAR")) == "100.00"
    assert str(paymob.to_sar("100", "USD")) == "375.00"
    with pytest.raises(paymob.PaymobError):
        paymob.to_sar("100", "EGP")


def test_validate_payment_data():
    assert paymob.validate_payment_data("50", BILLING, [{"amount": "25", "quantity": 2}]) == []
    errors = paymob.validate_payment_data("0", {}, [{"amount": "10", "quantity": 1}])
    assert "Amount is required and must be greater than 0" in errors
    assert "Customer email is required" in errors
    assert "Items total amount must match the total payment amount" in errors

    bad = "Each item needs a numeric amount and a positive quantity"
    assert bad in paymob.validate_payment_data("50", BILLING, [{"amount": "abc"}])
    assert bad in paymob.validate_payment_data("50", BILLING, [{"amount": "NaN", "quantity": 1}])
    assert bad in paymob.validate_payment_data("50", BILLING, [{"amount": "25", "quantity": 0}])
    assert bad in paymob.validate_payment_data("50", BILLING, ["25"])


@pytest.fixture
def sar_subscription(user, make_plan):
    sub, _ = subscription_service.create_subscription(user, make_plan({"SAR": 200, "USD": 50}).id, "SAR")
    return sub


def test_create_intention(client, user, auth, sar_subscription, monkeypatch):
    sent = {}

    def fake_create(payload):
        sent.update(payload)
        return {"id": 9001, "client_secret": "cs_test"}, "https://ksa.paymob.com/unifiedcheckout/?x=1"

    monkeypatch.setattr(paymob, "create_intention", fake_create)
    r = client.post("/api/paymob/create-intention", headers=auth(user), json={
        "paymentableType": "SUBSCRIPTION", "paymentableId": sar_subscription.id, "billingData": BILLING,
    })
    assert r.status_code == 201
    data = r.get_json()["data"]
    assert data["intentionId"] == "9001"
    assert data["checkoutUrl"].startswith("https://ksa.paymob.com/unifiedcheckout/")
    assert data["payment"]["gateway"] == "paymob"
    assert sent["amount"] == 20000
    assert sent["currency"] == "SAR"
    assert sent["payment_methods"] == [123456]
    assert sent["special_reference"] == data["payment"]["paymentReference"]


def test_create_intention_converts_usd(client, user, auth, make_plan, monkeypatch):
    sub, _ = subscription_service.create_subscription(user, make_plan({"USD": 50}).id, "USD")
    sent = {}

    def fake_create(payload):
        sent.update(payload)
        return {"id": 1, "client_secret": "cs"}, "https://checkout"

    monkeypatch.setattr(paymob, "create_intention", fake_create)
    r = client.post("/api/paymob/create-intention", headers=auth(user), json={
        "paymentableType": "SUBSCRIPTION", "paymentableId": sub.id, "billingData": BILLING,
    })
    payment = r.get_json()["data"]["payment"]
    assert payment["currency"] == "SAR"
    assert payment["amount"] == 187.5
    assert payment["meta"]["original_currency"] == "USD"
    assert sent["amount"] == 18750
    assert sent["items"] == [{"name": "Subscription", "amount": 18750, "description": "", "quantity": 1}]


def test_create_intention_rejects_missing_billing(client, user, auth, sar_subscription):
    r = client.post("/api/paymob/create-intention", headers=auth(user), json={
        "paymentableType": "SUBSCRIPTION", "paymentableId": sar_subscription.id, "billingData": {},
    })
    assert r.status_code == 400
    assert len(r.get_json()["error"]["details"]) == 4


def test_create_intention_rejects_bad_items(client, user, auth, sar_subscription):
    r = client.post("/api/paymob/create-intention", headers=auth(user), json={
        "paymentableType": "SUBSCRIPTION", "paymentableId": sar_subscription.id, "billingData": BILLING,
        "items": [{"name": "Plan", "amount": "abc"}],
    })
    assert r.status_code == 400
    assert Payment.query.filter_by(gateway="paymob").count() == 0


def test_create_intention_gateway_failure(client, user, auth, sar_subscription, monkeypatch):
    def fail(payload):
        raise paymob.PaymobError("Failed to create payment intention: 500")

    monkeypatch.setattr(paymob, "create_intention", fail)
    r = client.post("/api/paymob/create-intention", headers=auth(user), json={
        "paymentableType": "SUBSCRIPTION", "paymentableId": sar_subscription.id, "billingData": BILLING,
    })
    assert r.status_code == 502
    assert r.get_json()["error"]["code"] == "PAYMOB_ERROR"
    assert Payment.query.filter_by(gateway="paymob").count() == 0


def _gateway_payment(user, sub):
    p = create_payment(user.id, Payment.SUBSCRIPTION, sub.id, sub.price, "SAR", "PAYMOB",
                       gateway="paymob", gateway_id="777")
    db.session.commit()
    return p


def test_webhook_success_activates_subscription(client, user, sar_subscription):
    payment = _gateway_payment(user, sar_subscription)
    r = client.post("/api/paymob/webhook", json={
        "type": "TRANSACTION",
        "obj": {"id": 555, "success": True, "amount_cents": 20000, "order": {"id": 777}},
    })
    assert r.status_code == 200
    db.session.refresh(payment)
    db.session.refresh(sar_subscription)
    assert payment.status == "SUCCESS"
    assert payment.transaction_id == "555"
    assert sar_subscription.status == "ACTIVE"


def test_webhook_matches_by_reference(client, user, sar_subscription):
    payment = _gateway_payment(user, sar_subscription)
    r = client.post("/api/paymob/webhook", json={
        "obj": {"id": 1, "success": False, "error_occured": True,
                "order": {"id": 1, "merchant_order_id": payment.payment_reference}},
    })
    assert r.get_json()["data"]["status"] == "FAILED"


def test_webhook_signature_enforced(app, client, user, sar_subscription):
    _gateway_payment(user, sar_subscription)
    app.config["PAYMOB_HMAC_SECRET"] = "s3cret"
    body = json.dumps({"obj": {"id": 2, "success": True, "order": {"id": 777}}}).encode()

    r = client.post("/api/paymob/webhook", data=body, content_type="application/json",
                    headers={"X-Paymob-Hmac": "bogus"})
    assert r.status_code == 401

    sig = hmac.new(b"s3cret", body, hashlib.sha512).hexdigest()
    r = client.post(f"/api/paymob/webhook?hmac={sig}", data=body, content_type="application/json")
    assert r.status_code == 200


def test_webhook_unknown_payment(client):
    r = client.post("/api/paymob/webhook", json={"obj": {"id": 3, "order": {"id": 404}}})
    assert r.status_code == 404


def test_late_pending_webhook_keeps_success(client, user, sar_subscription):
    payment = _gateway_payment(user, sar_subscription)
    client.post("/api/paymob/webhook", json={"obj": {"id": 555, "success": True, "order": {"id": 777}}})

    r = client.post("/api/paymob/webhook", json={"obj": {"id": 555, "success": False, "order": {"id": 777}}})
    assert r.status_code == 200
    assert r.get_json()["message"] == "Webhook ignored"
    db.session.refresh(payment)
    db.session.refresh(sar_subscription)
    assert payment.status == "SUCCESS"
    assert sar_subscription.status == "ACTIVE"


def test_repeated_success_webhook_is_harmless(client, user, sar_subscription):
    payment = _gateway_payment(user, sar_subscription)
    body = {"obj": {"id": 555, "success": True, "order": {"id": 777}}}
    client.post("/api/paymob/webhook", json=body)
    r = client.post("/api/paymob/webhook", json=body)
    assert r.status_code == 200
    db.session.refresh(payment)
    assert payment.status == "SUCCESS"
