from flask import Blueprint

bp = Blueprint("currency", __name__, url_prefix="/api/currency")

from . import routes  # noqa: E402,F401
