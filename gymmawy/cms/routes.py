# gymmawy/cms/routes.py
from flask import request

from . import bp
from ..extensions import db
from ..model import HomepagePopup, Transformation, Video
from ..services import content
from ..utils.api import ok, paged
from ..utils.decorators import admin_required
from ..utils.validation import json_body, pagination_args, parse_bool


def _active_filter(q, model):
    is_active = parse_bool(request.args.get("isActive"))
    if is_active is not None:
        q = q.filter(model.is_active.is_(is_active))
    return q


# ---------------- transformations ----------------

@bp.get("/transformations")
def list_transformations():
    page, page_size = pagination_args()
    q = _active_filter(Transformation.query, Transformation).order_by(Transformation.created_at.desc())
    return ok("OK", paged(q, page, page_size, lambda t: t.as_api()))


@bp.get("/transformations/<int:tid>")
def get_transformation(tid):
    return ok("OK", content.get_or_404(Transformation, tid, "Transformation").as_api())


@bp.post("/transformations")
@admin_required
def create_transformation():
    t = Transformation(is_active=True)
    content.apply_transformation(t, json_body(), creating=True)
    db.session.add(t)
    db.session.commit()
    return ok("Transformation created", t.as_api(), 201)


@bp.put("/transformations/<int:tid>")
@admin_required
def update_transformation(tid):
    t = content.get_or_404(Transformation, tid, "Transformation")
    content.apply_transformation(t, json_body(), creating=False)
    db.session.commit()
    return ok("Transformation updated", t.as_api())


@bp.delete("/transformations/<int:tid>")
@admin_required
def delete_transformation(tid):
    db.session.delete(content.get_or_404(Transformation, tid, "Transformation"))
    db.session.commit()
    return ok("Transformation deleted")


# ---------------- videos ----------------

@bp.get("/videos")
def list_videos():
    page, page_size = pagination_args()
    q = _active_filter(Video.query, Video).order_by(Video.created_at.desc())
    return ok("OK", paged(q, page, page_size, lambda v: v.as_api()))


@bp.get("/videos/<int:vid>")
def get_video(vid):
    return ok("OK", content.get_or_404(Video, vid, "Video").as_api())


@bp.post("/videos")
@admin_required
def create_video():
    v = content.save_video(Video(), json_body(), creating=True)
    return ok("Video created", v.as_api(), 201)


@bp.put("/videos/<int:vid>")
@admin_required
def update_video(vid):
    v = content.save_video(content.get_or_404(Video, vid, "Video"), json_body(), creating=False)
    return ok("Video updated", v.as_api())


@bp.delete("/videos/<int:vid>")
@admin_required
def delete_video(vid):
    db.session.delete(content.get_or_404(Video, vid, "Video"))
    db.session.commit()
    return ok("Video deleted")


# ---------------- homepage popup ----------------

@bp.get("/homepage-popup/active")
def active_popup():
    p = (HomepagePopup.query
         .filter(HomepagePopup.is_active.is_(True))
         .order_by(HomepagePopup.updated_at.desc())
         .first())
    return ok("OK", p.as_api() if p else None)


@bp.get("/homepage-popup")
@admin_required
def list_popups():
    rows = HomepagePopup.query.order_by(HomepagePopup.created_at.desc()).all()
    return ok("OK", {"items": [p.as_api() for p in rows]})


def _save_popup(p: HomepagePopup):
    db.session.flush()
    if p.is_active:
        content.only_active(HomepagePopup, p)
    db.session.commit()
    return p


@bp.post("/homepage-popup")
@admin_required
def create_popup():
    p = HomepagePopup(is_active=False)
    content.apply_popup(p, json_body(), creating=True)
    db.session.add(p)
    return ok("Popup created", _save_popup(p).as_api(), 201)


@bp.put("/homepage-popup/<int:pid>")
@admin_required
def update_popup(pid):
    p = content.get_or_404(HomepagePopup, pid, "Popup")
    content.apply_popup(p, json_body(), creating=False)
    return ok("Popup updated", _save_popup(p).as_api())


@bp.delete("/homepage-popup/<int:pid>")
@admin_required
def delete_popup(pid):
    db.session.delete(content.get_or_404(HomepagePopup, pid, "Popup"))
    db.session.commit()
    return ok("Popup deleted")
