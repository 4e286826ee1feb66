# gymmawy/video/routes.py
from . import bp
from ..extensions import db
from ..model import Video
from ..services import content
from ..utils.api import ok
from ..utils.decorators import admin_required
from ..utils.validation import json_body


@bp.get("")
def list_videos():
    rows = Video.query.order_by(Video.created_at.desc()).all()
    return ok("OK", {"items": [v.as_api() for v in rows]})


@bp.get("/<int:vid>")
def get_video(vid):
    return ok("OK", content.get_or_404(Video, vid, "Video").as_api())


@bp.post("/upload")
@admin_required
def upload_video():
    v = content.save_video(Video(), json_body(), creating=True)
    return ok("Video uploaded", v.as_api(), 201)


@bp.delete("/<int:vid>")
@admin_required
def delete_video(vid):
    db.session.delete(content.get_or_404(Video, vid, "Video"))
    db.session.commit()
    return "", 204
