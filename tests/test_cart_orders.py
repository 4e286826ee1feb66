from gymmawy.extensions import db
from gymmawy.model import Notification, Order, UserCouponRedemption


def _add(client, headers, product, quantity=1):
    return client.post("/api/cart/items", headers=headers,
                       json={"productId": product.id, "quantity": quantity})


def test_cart_totals_in_request_currency(client, user, auth, make_product):
    p = make_product({"EGP": 100, "SAR": 25})
    r = _add(client, auth(user), p, 2)
    assert r.status_code == 201
    cart = r.get_json()["data"]
    assert cart["currency"] == "EGP"
    assert cart["totals"] == {"subtotal": 200.0, "couponDiscount": 0.0, "total": 200.0}

    r = client.get("/api/cart", headers=auth(user, **{"X-Preferred-Currency": "SAR"}))
    assert r.get_json()["data"]["totals"]["total"] == 50.0


def test_adding_same_product_merges_lines(client, user, auth, make_product):
    p = make_product()
    _add(client, auth(user), p, 1)
    cart = _add(client, auth(user), p, 2).get_json()["data"]
    assert len(cart["items"]) == 1
    assert cart["items"][0]["quantity"] == 3


def test_cannot_add_more_than_stock(client, user, auth, make_product):
    p = make_product(stock=2)
    r = _add(client, auth(user), p, 3)
    assert r.status_code == 400
    assert r.get_json()["error"]["code"] == "OUT_OF_STOCK"


def test_inactive_product_cannot_be_added(client, user, auth, make_product):
    p = make_product(is_active=False)
    assert _add(client, auth(user), p).status_code == 404


def test_zero_quantity_removes_line(client, user, auth, make_product):
    p = make_product()
    item_id = _add(client, auth(user), p, 2).get_json()["data"]["items"][0]["id"]
    r = client.patch(f"/api/cart/items/{item_id}", headers=auth(user), json={"quantity": 0})
    assert r.get_json()["data"]["items"] == []


def test_cart_coupon(client, user, auth, make_product, make_coupon):
    p = make_product()
    make_coupon("SAVE10")
    _add(client, auth(user), p, 2)

    r = client.post("/api/cart/apply-coupon", headers=auth(user), json={"code": "save10"})
    assert r.status_code == 200
    assert r.get_json()["data"]["totals"] == {"subtotal": 200.0, "couponDiscount": 20.0, "total": 180.0}

    r = client.post("/api/cart/apply-coupon", headers=auth(user), json={"code": "SAVE10"})
    assert r.status_code == 400
    assert r.get_json()["error"]["message"] == "Coupon already applied"

    r = client.delete("/api/cart/coupon", headers=auth(user))
    assert r.get_json()["data"]["coupon"] is None


def test_checkout_snapshots_and_decrements_stock(client, user, auth, make_product, make_coupon):
    p = make_product({"EGP": 100}, stock=5)
    coupon = make_coupon("SAVE10")
    _add(client, auth(user), p, 2)
    client.post("/api/cart/apply-coupon", headers=auth(user), json={"code": "SAVE10"})

    r = client.post("/api/orders", headers=auth(user), json={"shippingAddress": {"city": "Cairo"}})
    assert r.status_code == 201
    order = r.get_json()["data"]
    assert order["status"] == "PENDING"
    assert order["orderNumber"].startswith("ORD-")
    assert order["money"] == {"subtotal": 200.0, "couponDiscount": 20.0, "total": 180.0}
    assert order["items"][0]["unitPrice"] == 100.0
    assert order["shippingAddress"] == {"city": "Cairo"}

    db.session.refresh(p)
    assert p.stock == 3
    assert client.get("/api/cart", headers=auth(user)).get_json()["data"]["items"] == []
    assert UserCouponRedemption.query.filter_by(user_id=user.id, coupon_id=coupon.id).one().usage_count == 1
    assert Notification.query.filter_by(type="ORDER_CREATED").count() == 1


def test_checkout_with_empty_cart(client, user, auth):
    r = client.post("/api/orders", headers=auth(user), json={})
    assert r.status_code == 400
    assert r.get_json()["error"]["code"] == "CART_EMPTY"


def test_checkout_rechecks_stock(client, user, auth, make_product):
    p = make_product(stock=5)
    _add(client, auth(user), p, 3)
    p.stock = 1
    db.session.commit()

    r = client.post("/api/orders", headers=auth(user), json={})
    assert r.status_code == 409
    assert r.get_json()["error"]["code"] == "OUT_OF_STOCK"
    assert Order.query.count() == 0
    assert len(client.get("/api/cart", headers=auth(user)).get_json()["data"]["items"]) == 1


def _place_order(client, user, auth, product, coupon_code=None):
    _add(client, auth(user), product, 2)
    if coupon_code:
        client.post("/api/cart/apply-coupon", headers=auth(user), json={"code": coupon_code})
    return client.post("/api/orders", headers=auth(user), json={}).get_json()["data"]


def test_cancel_restocks_and_releases_coupon(client, user, auth, make_product, make_coupon):
    p = make_product(stock=5)
    coupon = make_coupon("SAVE10")
    order = _place_order(client, user, auth, p, "SAVE10")

    r = client.patch(f"/api/orders/{order['id']}/cancel", headers=auth(user))
    assert r.status_code == 200
    assert r.get_json()["data"]["status"] == "CANCELLED"
    db.session.refresh(p)
    db.session.refresh(coupon)
    assert p.stock == 5
    assert coupon.total_redemptions == 0

    r = client.patch(f"/api/orders/{order['id']}/cancel", headers=auth(user))
    assert r.status_code == 400


def test_orders_are_private(client, user, make_user, auth, make_product):
    order = _place_order(client, user, auth, make_product())
    stranger = make_user()
    assert client.get(f"/api/orders/{order['id']}", headers=auth(stranger)).status_code == 404
    assert client.get(f"/api/orders/{order['id']}", headers=auth(user)).status_code == 200


def test_admin_reject_order(client, user, admin, auth, make_product):
    order = _place_order(client, user, auth, make_product())
    r = client.post(f"/api/orders/{order['id']}/reject", headers=auth(admin), json={"reason": "No address"})
    assert r.status_code == 200
    meta = r.get_json()["data"]["meta"]
    assert meta["rejectionReason"] == "No address"
    assert meta["rejectedBy"] == admin.id


def test_admin_order_search_and_status(client, user, admin, auth, make_product):
    order = _place_order(client, user, auth, make_product())

    r = client.get(f"/api/orders/admin/all?search={order['orderNumber']}&date=today", headers=auth(admin))
    assert [o["id"] for o in r.get_json()["data"]["items"]] == [order["id"]]

    r = client.get("/api/orders/admin/all?status=SHIPPED", headers=auth(admin))
    assert r.get_json()["data"]["total"] == 0

    r = client.patch(f"/api/orders/{order['id']}/status", headers=auth(admin), json={"status": "shipped"})
    assert r.get_json()["data"]["status"] == "SHIPPED"

    r = client.patch(f"/api/orders/{order['id']}/status", headers=auth(admin), json={"status": "LOST"})
    assert r.status_code == 400
