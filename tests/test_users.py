from gymmawy.extensions import db
from gymmawy.model import User


def test_update_profile(client, user, auth):
    r = client.patch("/api/users/me", headers=auth(user),
                     json={"firstName": "Omar", "mobileNumber": "+201234567890"})
    assert r.status_code == 200
    data = r.get_json()["data"]["user"]
    assert data["firstName"] == "Omar"
    assert data["mobileNumber"] == "+201234567890"


def test_mobile_number_must_be_unique(client, user, make_user, auth):
    other = make_user()
    r = client.patch("/api/users/me", headers=auth(user), json={"mobileNumber": other.mobile_number})
    assert r.status_code == 400
    assert r.get_json()["error"]["code"] == "MOBILE_IN_USE"


def test_change_password_checks_current(client, user, auth):
    r = client.put("/api/users/change-password", headers=auth(user),
                   json={"currentPassword": "Wrong1234", "newPassword": "Another456"})
    assert r.status_code == 400
    assert r.get_json()["error"]["code"] == "WRONG_PASSWORD"

    r = client.put("/api/users/change-password", headers=auth(user),
                   json={"currentPassword": "Secret123", "newPassword": "Another456"})
    assert r.status_code == 200


def test_change_email_needs_confirmation(client, user, auth, outbox):
    r = client.post("/api/users/change-email", headers=auth(user), json={"newEmail": "fresh@example.com"})
    assert r.status_code == 200
    db.session.refresh(user)
    assert user.email == "member@example.com"

    sent = outbox[-1]
    assert (sent["kind"], sent["to"]) == ("email-change", "fresh@example.com")
    r = client.post("/api/auth/verify-email-change", json={"token": sent["token"]})
    assert r.status_code == 200
    assert r.get_json()["data"]["user"]["email"] == "fresh@example.com"


def test_change_email_rejects_taken_address(client, user, admin, auth):
    r = client.post("/api/users/change-email", headers=auth(user), json={"newEmail": admin.email})
    assert r.status_code == 400
    assert r.get_json()["error"]["code"] == "EMAIL_IN_USE"


def test_admin_lists_and_searches_users(client, admin, user, auth):
    r = client.get("/api/users?q=member", headers=auth(admin))
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["total"] == 1
    assert data["items"][0]["email"] == "member@example.com"


def test_admin_creates_user(client, admin, auth):
    r = client.post("/api/users", headers=auth(admin),
                    json={"email": "coach@example.com", "password": "Secret123", "role": "admin"})
    assert r.status_code == 201
    assert User.query.filter_by(email="coach@example.com").one().role == "admin"


def test_last_admin_cannot_be_demoted(client, admin, auth):
    r = client.patch(f"/api/users/{admin.id}", headers=auth(admin), json={"role": "user"})
    assert r.status_code == 400
    assert r.get_json()["error"]["message"] == "Cannot demote the last admin"


def test_admin_can_be_demoted_when_another_exists(client, admin, make_user, auth):
    other = make_user(role="admin")
    r = client.patch(f"/api/users/{other.id}", headers=auth(admin), json={"role": "user"})
    assert r.status_code == 200
    assert r.get_json()["data"]["user"]["role"] == "user"


def test_delete_own_account(client, user, auth):
    uid = user.id
    r = client.delete("/api/users/account", headers=auth(user))
    assert r.status_code == 200
    assert User.query.filter_by(id=uid).first() is None
