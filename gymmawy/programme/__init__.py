from flask import Blueprint

bp = Blueprint("programme", __name__, url_prefix="/api/programmes")

from . import routes  # noqa: E402,F401
