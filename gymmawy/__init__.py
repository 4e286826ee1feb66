# --- gymmawy/__init__.py ---
import logging
import uuid
from datetime import datetime

from flask import Flask, g, jsonify, request

from .config import Config
from .errors import register_error_handlers
from .extensions import db, jwt, cors, migrate
from .services.currency import init_currency


class _RequestIdFilter(logging.Filter):
    def filter(self, record):
        try:
            record.request_id = g.get("request_id", "-")
        except RuntimeError:  # outside a request
            record.request_id = "-"
        return True


def _init_logging(app):
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))
    for h in app.logger.handlers:
        h.addFilter(_RequestIdFilter())
        h.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s %(name)s [%(request_id)s] %(message)s"))

    @app.before_request
    def _request_id():
        inbound = (request.headers.get("X-Request-Id") or "").strip()
        g.request_id = inbound or str(uuid.uuid4())

    @app.after_request
    def _echo_request_id(response):
        if g.get("request_id"):
            response.headers["X-Request-Id"] = g.request_id
        return response


def create_app(test_config=None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    Config.init_app(app)
    if test_config:
        app.config.update(test_config)

    _init_logging(app)

    # Init extensions
    db.init_app(app)
    jwt.init_app(app)
    cors.init_app(app, resources={r"/api/*": {"origins": app.config["CORS_ORIGINS"]}},
                  expose_headers=["X-Request-Id", "X-Currency", "X-Currency-Source"])
    migrate.init_app(app, db)

    register_error_handlers(app)
    init_currency(app)

    # Register blueprints
    from .auth import bp as auth_bp; app.register_blueprint(auth_bp)
    from .users import bp as users_bp; app.register_blueprint(users_bp)
    from .product import bp as product_bp; app.register_blueprint(product_bp)
    from .cart import bp as cart_bp; app.register_blueprint(cart_bp)
    from .coupon import bp as coupon_bp; app.register_blueprint(coupon_bp)
    from .order import bp as order_bp; app.register_blueprint(order_bp)
    from .subscription import bp as subscription_bp; app.register_blueprint(subscription_bp)
    from .programme import bp as programme_bp; app.register_blueprint(programme_bp)
    from .payment import bp as payment_bp; app.register_blueprint(payment_bp)
    from .paymob import bp as paymob_bp; app.register_blueprint(paymob_bp)
    from .tabby import bp as tabby_bp; app.register_blueprint(tabby_bp)
    from .currency import bp as currency_bp; app.register_blueprint(currency_bp)
    from .lead import bp as lead_bp; app.register_blueprint(lead_bp)
    from .cms import bp as cms_bp; app.register_blueprint(cms_bp)
    from .video import bp as video_bp; app.register_blueprint(video_bp)
    from .notification import bp as notification_bp; app.register_blueprint(notification_bp)
    from .admin import bp as admin_bp; app.register_blueprint(admin_bp)

    from .cli import register_cli
    register_cli(app)

    @app.get("/health")
    def health():
        return jsonify(status="ok", timestamp=datetime.utcnow().isoformat() + "Z")

    if app.config.get("AUTO_CREATE_TABLES", True):
        with app.app_context():
            from . import model  # noqa: F401
            db.create_all()

    return app
