from datetime import datetime, timedelta

from gymmawy.extensions import db
from gymmawy.model import Notification
from gymmawy.services import notification_service as notify
from gymmawy.services import subscription_service


def _admin_note(title="New lead", type_="LEAD_SUBMITTED"):
    n = notify.create_notification(type_, title, "details")
    db.session.commit()
    return n


def test_admin_inbox_defaults_to_unread(client, admin, auth):
    first = _admin_note("one")
    _admin_note("two")
    client.patch(f"/api/notifications/admin/{first.id}/read", headers=auth(admin))

    unread = client.get("/api/notifications/admin", headers=auth(admin)).get_json()["data"]
    assert [n["title"] for n in unread["items"]] == ["two"]
    read = client.get("/api/notifications/admin?status=READ", headers=auth(admin)).get_json()["data"]
    assert [n["title"] for n in read["items"]] == ["one"]
    assert read["items"][0]["isRead"] is True

    counts = client.get("/api/notifications/admin/counts", headers=auth(admin)).get_json()["data"]
    assert counts == {"unread": 1, "total": 2}


def test_filter_by_type(client, admin, auth):
    _admin_note(type_="LEAD_SUBMITTED")
    _admin_note(type_="ORDER_CREATED")
    r = client.get("/api/notifications/admin?type=order_created", headers=auth(admin))
    assert [n["type"] for n in r.get_json()["data"]["items"]] == ["ORDER_CREATED"]


def test_mark_all_read_and_archive(client, admin, auth):
    notes = [_admin_note(str(i)) for i in range(3)]
    r = client.patch("/api/notifications/admin/mark-all-read", headers=auth(admin))
    assert r.get_json()["data"]["updated"] == 3

    r = client.patch(f"/api/notifications/admin/{notes[0].id}/archive", headers=auth(admin))
    assert r.get_json()["data"]["status"] == "ARCHIVED"
    counts = client.get("/api/notifications/admin/counts", headers=auth(admin)).get_json()["data"]
    assert counts == {"unread": 0, "total": 2}


def test_user_inbox_is_personal(client, user, make_user, auth):
    mine = notify.create_notification("PAYMENT_APPROVED", "Payment approved", "ok",
                                      user_id=user.id, audience="user")
    admin_only = notify.create_notification("ORDER_CREATED", "New Order", "x", user_id=user.id)
    db.session.commit()

    items = client.get("/api/notifications", headers=auth(user)).get_json()["data"]["items"]
    assert [n["id"] for n in items] == [mine.id]

    assert client.patch(f"/api/notifications/{admin_only.id}/read", headers=auth(user)).status_code == 404
    assert client.patch(f"/api/notifications/{mine.id}/read", headers=auth(make_user())).status_code == 404
    r = client.patch(f"/api/notifications/{mine.id}/read", headers=auth(user))
    assert r.get_json()["data"]["isRead"] is True


def test_expiring_subscriptions_notified_once(client, admin, user, auth, make_plan):
    sub, _ = subscription_service.create_subscription(user, make_plan(period=30).id, "EGP")
    sub.activate(datetime.utcnow() - timedelta(days=27))
    db.session.commit()

    r = client.post("/api/notifications/admin/check-expiring", headers=auth(admin))
    assert r.get_json()["data"] == {"checked": 1, "notified": 1}
    r = client.post("/api/notifications/admin/check-expiring", headers=auth(admin))
    assert r.get_json()["data"] == {"checked": 1, "notified": 0}
    assert Notification.query.filter_by(type="SUBSCRIPTION_EXPIRING").count() == 1


def test_failing_notification_does_not_break_caller(app):
    def explode():
        raise RuntimeError("no inbox")

    assert notify.notify_safely(explode) is None
