from gymmawy.extensions import db
from gymmawy.model import Programme, ProgrammePurchase


def test_list_programmes_in_currency(client, make_programme):
    make_programme({"EGP": 500, "SAR": 120})
    r = client.get("/api/programmes", headers={"X-Preferred-Currency": "SAR"})
    item = r.get_json()["data"]["items"][0]
    assert item["price"] == {"amount": 120.0, "currency": "SAR"}
    assert "pdfUrl" not in item


def test_purchase_and_approve_unlocks_pdf(client, user, admin, auth, make_programme):
    prog = make_programme()
    r = client.post(f"/api/programmes/{prog.id}/purchase", headers=auth(user), json={})
    assert r.status_code == 201
    purchase = r.get_json()["data"]["purchase"]
    assert purchase["status"] == "PENDING"
    assert purchase["purchaseNumber"].startswith("PROG-")
    assert purchase["pdfUrl"] is None

    r = client.get("/api/programmes/admin/pending-purchases", headers=auth(admin))
    assert r.get_json()["data"]["total"] == 1

    r = client.patch(f"/api/programmes/admin/purchases/{purchase['id']}/approve", headers=auth(admin))
    assert r.get_json()["data"]["status"] == "COMPLETE"

    mine = client.get("/api/programmes/user/my-programmes", headers=auth(user)).get_json()["data"]["items"]
    assert mine[0]["pdfUrl"] == "https://cdn.example.com/plan.pdf"

    r = client.patch(f"/api/programmes/admin/purchases/{purchase['id']}/reject", headers=auth(admin))
    assert r.status_code == 400
    assert r.get_json()["error"]["message"] == "Only pending purchases can be updated"


def test_purchase_with_coupon_and_reject_releases_it(client, user, admin, auth, make_programme, make_coupon):
    prog = make_programme({"EGP": 500})
    coupon = make_coupon("SAVE10")
    r = client.post(f"/api/programmes/{prog.id}/purchase", headers=auth(user), json={"couponCode": "SAVE10"})
    purchase = r.get_json()["data"]["purchase"]
    assert purchase["price"] == 450.0

    client.patch(f"/api/programmes/admin/purchases/{purchase['id']}/reject", headers=auth(admin),
                 json={"reason": "No payment"})
    db.session.refresh(coupon)
    assert coupon.total_redemptions == 0


def test_admin_crud(client, admin, auth):
    r = client.post("/api/programmes", headers=auth(admin), json={
        "name": "Bulk 12", "pdfUrl": "https://cdn.example.com/bulk.pdf", "prices": {"EGP": 700},
    })
    assert r.status_code == 201
    prog = r.get_json()["data"]
    assert prog["name"] == {"en": "Bulk 12", "ar": "Bulk 12"}

    r = client.patch(f"/api/programmes/{prog['id']}", headers=auth(admin), json={"prices": {"EGP": 650}})
    assert r.get_json()["data"]["prices"] == [{"currency": "EGP", "amount": 650.0}]

    r = client.delete(f"/api/programmes/{prog['id']}", headers=auth(admin))
    assert r.get_json()["message"] == "Programme deleted"
    assert Programme.query.count() == 0


def test_delete_with_purchases_deactivates(client, user, admin, auth, make_programme):
    prog = make_programme()
    client.post(f"/api/programmes/{prog.id}/purchase", headers=auth(user), json={})

    r = client.delete(f"/api/programmes/{prog.id}", headers=auth(admin))
    assert r.get_json()["message"] == "Programme deactivated"
    db.session.refresh(prog)
    assert prog.is_active is False
    assert ProgrammePurchase.query.count() == 1
    assert client.get(f"/api/programmes/{prog.id}").status_code == 404
