from flask import Blueprint

bp = Blueprint("tabby", __name__, url_prefix="/api/tabby")

from . import routes  # noqa: E402,F401
