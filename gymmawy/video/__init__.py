from flask import Blueprint

bp = Blueprint("video", __name__, url_prefix="/api/videos")

from . import routes  # noqa: E402,F401
