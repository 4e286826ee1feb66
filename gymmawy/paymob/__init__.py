from flask import Blueprint

bp = Blueprint("paymob", __name__, url_prefix="/api/paymob")

from . import routes  # noqa: E402,F401
