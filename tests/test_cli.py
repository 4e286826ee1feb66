from datetime import datetime, timedelta

from gymmawy.extensions import db
from gymmawy.model import Subscription, User
from gymmawy.services import subscription_service


def test_create_admin(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["create-admin", "--email", "Boss@Example.com", "--password", "Secret123"])
    assert result.exit_code == 0, result.output
    assert User.query.filter_by(email="boss@example.com").one().role == "admin"

    result = runner.invoke(args=["create-admin", "--email", "boss@example.com", "--password", "Secret123"])
    assert result.exit_code != 0
    assert "Email already exists" in result.output


def test_create_admin_rejects_weak_password(app):
    result = app.test_cli_runner().invoke(args=["create-admin", "--email", "a@b.co", "--password", "weak"])
    assert result.exit_code != 0
    assert User.query.count() == 0


def test_cleanup_payments_once(app):
    result = app.test_cli_runner().invoke(args=["cleanup-payments", "--timeout", "30"])
    assert result.exit_code == 0, result.output
    assert "Cancelled purchases: 0, failed payments: 0" in result.output


def test_expire_subscriptions(app, user, make_plan):
    sub, _ = subscription_service.create_subscription(user, make_plan().id, "EGP")
    sub.activate(datetime.utcnow() - timedelta(days=90))
    db.session.commit()

    result = app.test_cli_runner().invoke(args=["expire-subscriptions"])
    assert "Expired subscriptions: 1" in result.output
    assert db.session.get(Subscription, sub.id).status == "EXPIRED"


def test_sync_coupon_usage(app, make_coupon):
    make_coupon("DRIFT", total_redemptions=4)
    result = app.test_cli_runner().invoke(args=["sync-coupon-usage"])
    assert "Checked 1 coupons, fixed 1" in result.output
