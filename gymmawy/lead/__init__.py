from flask import Blueprint

bp = Blueprint("lead", __name__, url_prefix="/api/leads")

from . import routes  # noqa: E402,F401
