# gymmawy/cli.py
import time

import click
from flask import current_app
from flask.cli import with_appcontext
from werkzeug.security import generate_password_hash

from .extensions import db
from .model import User
from .services.coupon_usage import sync_all_coupon_usage_stats
from .services.payment_cleanup import run_payment_cleanup
from .services.subscription_service import expire_subscriptions
from .services.tabby import capture_authorized_payments
from .utils.validation import PASSWORD_RE


@click.command("create-admin")
@with_appcontext
@click.option("--email", required=True)
@click.option("--password", required=True)
@click.option("--first-name", default=None)
@click.option("--last-name", default=None)
def create_admin(email, password, first_name, last_name):
    email = email.strip().lower()
    if User.query.filter_by(email=email).first():
        raise click.ClickException("Email already exists")
    if not PASSWORD_RE.match(password):
        raise click.ClickException("Password must be 8+ characters with upper, lower and a digit")
    u = User(email=email, first_name=first_name, last_name=last_name,
             password_hash=generate_password_hash(password), role="admin", email_verified=True)
    db.session.add(u); db.session.commit()
    click.echo(f"Admin created: {u.id} {u.email}")


@click.command("cleanup-payments")
@with_appcontext
@click.option("--timeout", type=int, default=None, help="Minutes before a pending payment expires.")
@click.option("--loop", is_flag=True, help="Keep running every --interval minutes.")
@click.option("--interval", type=int, default=None, help="Minutes between runs with --loop.")
def cleanup_payments(timeout, loop, interval):
    interval = interval or current_app.config["CLEANUP_INTERVAL_MINUTES"]
    while True:
        result = run_payment_cleanup(timeout)
        click.echo(f"Cancelled purchases: {result['cancelledPurchases']}, "
                   f"failed payments: {result['failedPayments']}")
        if not loop:
            break
        time.sleep(interval * 60)


@click.command("capture-tabby-payments")
@with_appcontext
def capture_tabby_payments():
    result = capture_authorized_payments()
    click.echo(f"Captured {result['captured']} of {result['checked']} authorized Tabby payments")


@click.command("expire-subscriptions")
@with_appcontext
def expire_subscriptions_cmd():
    click.echo(f"Expired subscriptions: {expire_subscriptions()}")


@click.command("sync-coupon-usage")
@with_appcontext
def sync_coupon_usage():
    result = sync_all_coupon_usage_stats()
    click.echo(f"Checked {result['checked']} coupons, fixed {result['updated']}")


def register_cli(app):
    app.cli.add_command(create_admin)
    app.cli.add_command(cleanup_payments)
    app.cli.add_command(capture_tabby_payments)
    app.cli.add_command(expire_subscriptions_cmd)
    app.cli.add_command(sync_coupon_usage)
