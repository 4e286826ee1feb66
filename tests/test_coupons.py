from datetime import datetime, timedelta

from sqlalchemy import event

from gymmawy.extensions import db
from gymmawy.model import Coupon, UserCouponRedemption
from gymmawy.services import coupon_service
from gymmawy.services.coupon_usage import (apply_coupon_usage, get_coupon_usage_stats,
                                           remove_coupon_usage)


def test_validate_is_case_insensitive(client, user, auth, make_coupon):
    make_coupon("SAVE10")
    r = client.get("/api/coupons/validate/save10", headers=auth(user))
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["coupon"]["code"] == "SAVE10"
    assert data["description"] == "10% off"


def test_unknown_code(client, user, auth):
    r = client.get("/api/coupons/validate/NOPE", headers=auth(user))
    assert r.status_code == 404
    assert r.get_json()["error"]["message"] == coupon_service.INVALID_CODE


def test_inactive_coupon(client, user, auth, make_coupon):
    make_coupon("OFF", is_active=False)
    r = client.get("/api/coupons/validate/OFF", headers=auth(user))
    assert r.status_code == 400
    assert r.get_json()["error"]["message"] == coupon_service.INACTIVE


def test_expired_coupon(client, user, auth, make_coupon):
    make_coupon("OLD", expiration_date=datetime.utcnow() - timedelta(days=1))
    r = client.get("/api/coupons/validate/OLD", headers=auth(user))
    assert r.status_code == 400
    assert r.get_json()["error"]["message"] == coupon_service.EXPIRED


def test_redeem_then_reuse_is_blocked(client, user, auth, make_coupon):
    make_coupon("ONCE")
    r = client.post("/api/coupons/redeem/ONCE", headers=auth(user))
    assert r.status_code == 200
    assert r.get_json()["data"]["usageCount"] == 1

    r = client.get("/api/coupons/validate/ONCE", headers=auth(user))
    assert r.status_code == 400
    assert r.get_json()["error"]["message"] == coupon_service.ALREADY_USED


def test_exhausted_coupon(client, user, auth, make_coupon):
    make_coupon("LIMITED", max_redemptions=1, total_redemptions=1)
    r = client.get("/api/coupons/validate/LIMITED", headers=auth(user))
    assert r.status_code == 400
    assert r.get_json()["error"]["message"] == coupon_service.EXHAUSTED


def test_apply_fixed_coupon_never_goes_negative(client, user, auth, make_coupon):
    make_coupon("FLAT30", discount_type=Coupon.FIXED, discount_percentage=None, discount_amount=30)
    r = client.post("/api/coupons/apply", headers=auth(user), json={"code": "FLAT30", "amount": 20})
    data = r.get_json()["data"]
    assert data["discount"] == 20.0
    assert data["finalAmount"] == 0.0
    assert data["description"] == "30 off"


def test_my_coupons(client, user, auth, make_coupon):
    c = make_coupon("MINE")
    apply_coupon_usage(user.id, c.id)
    r = client.get("/api/coupons/my-coupons", headers=auth(user))
    items = r.get_json()["data"]["items"]
    assert [i["coupon"]["code"] for i in items] == ["MINE"]


def test_admin_create_coupon(client, admin, auth):
    r = client.post("/api/coupons", headers=auth(admin),
                    json={"code": "summer25", "discountType": "PERCENTAGE", "discountPercentage": 25,
                          "expirationDate": "2099-01-01T00:00:00Z", "maxRedemptions": 100})
    assert r.status_code == 201
    data = r.get_json()["data"]
    assert data["code"] == "SUMMER25"
    assert data["maxRedemptions"] == 100

    r = client.post("/api/coupons", headers=auth(admin),
                    json={"code": "Summer25", "discountPercentage": 10})
    assert r.status_code == 409


def test_admin_create_coupon_validates_discount(client, admin, auth):
    r = client.post("/api/coupons", headers=auth(admin), json={"code": "HUGE", "discountPercentage": 150})
    assert r.status_code == 400
    assert r.get_json()["error"]["details"][0]["field"] == "discountPercentage"

    r = client.post("/api/coupons", headers=auth(admin), json={"code": "FIX", "discountType": "FIXED"})
    assert r.status_code == 400
    assert r.get_json()["error"]["details"][0]["field"] == "discountAmount"


def test_admin_update_and_delete_coupon(client, admin, auth, make_coupon):
    c = make_coupon("EDIT")
    r = client.patch(f"/api/coupons/{c.id}", headers=auth(admin), json={"isActive": False})
    assert r.get_json()["data"]["isActive"] is False
    assert client.delete(f"/api/coupons/{c.id}", headers=auth(admin)).status_code == 200
    assert client.get(f"/api/coupons/{c.id}", headers=auth(admin)).status_code == 404


def test_usage_counters_track_each_user(app, user, make_user, make_coupon):
    c = make_coupon("TEAM", max_redemptions_per_user=3)
    other = make_user()
    apply_coupon_usage(user.id, c.id)
    apply_coupon_usage(user.id, c.id)
    apply_coupon_usage(other.id, c.id)

    stats = get_coupon_usage_stats(c.id)
    assert stats["totalRedemptions"] == 3
    assert stats["actualUsage"] == 3
    assert stats["uniqueUsers"] == 2
    assert stats["isConsistent"] is True

    remove_coupon_usage(user.id, c.id)
    remove_coupon_usage(other.id, c.id)
    assert UserCouponRedemption.query.filter_by(user_id=user.id).one().usage_count == 1
    assert UserCouponRedemption.query.filter_by(user_id=other.id).first() is None
    db.session.refresh(c)
    assert c.total_redemptions == 1


def test_remove_without_usage_is_a_no_op(app, user, make_coupon):
    c = make_coupon("NONE")
    assert remove_coupon_usage(user.id, c.id) is None
    db.session.refresh(c)
    assert c.total_redemptions == 0


def test_release_locks_coupon_before_reading_redemption(app, user, make_coupon):
    c = make_coupon("LOCK")
    uid, cid = user.id, c.id
    apply_coupon_usage(uid, cid)
    selects = []

    def record(conn, cursor, statement, parameters, context, executemany):
        if statement.lstrip().upper().startswith("SELECT"):
            selects.append(statement)

    event.listen(db.engine, "before_cursor_execute", record)
    try:
        remove_coupon_usage(uid, cid)
    finally:
        event.remove(db.engine, "before_cursor_execute", record)

    tables = [("coupons" if "FROM coupons" in s else "redemptions") for s in selects
              if "FROM coupons" in s or "FROM user_coupon_redemptions" in s]
    assert tables[:2] == ["coupons", "redemptions"]


def test_sync_repairs_drifted_total(client, admin, user, auth, make_coupon):
    c = make_coupon("DRIFT")
    apply_coupon_usage(user.id, c.id)
    c.total_redemptions = 7
    db.session.commit()

    r = client.get(f"/api/coupons/{c.id}/usage-stats", headers=auth(admin))
    assert r.get_json()["data"]["isConsistent"] is False

    r = client.post(f"/api/coupons/{c.id}/sync-usage", headers=auth(admin))
    data = r.get_json()["data"]
    assert data["wasUpdated"] is True
    assert data["totalRedemptions"] == 1

    r = client.post("/api/coupons/admin/sync-usage", headers=auth(admin))
    assert r.get_json()["data"]["updated"] == 0
