from datetime import datetime

from flask import request

from . import bp
from ..errors import NotFound
from ..extensions import db
from ..model import Notification
from ..services.notification_service import check_expiring_subscriptions
from ..utils.api import ok, paged
from ..utils.decorators import admin_required, auth_required, current_user
from ..utils.validation import pagination_args, parse_choice


def _admin_inbox():
    return Notification.query.filter(Notification.audience == "admin")


def _admin_note(note_id) -> Notification:
    n = _admin_inbox().filter(Notification.id == note_id).first()
    if not n:
        raise NotFound("Notification not found")
    return n


def _mark_read(n: Notification, now=None):
    if n.status == "UNREAD":
        n.status = "READ"
        n.read_at = now or datetime.utcnow()


# ---------------- user ----------------

@bp.get("")
@auth_required
def my_notifications():
    page, page_size = pagination_args()
    q = (Notification.query
         .filter(Notification.audience == "user", Notification.user_id == current_user().id,
                 Notification.status != "ARCHIVED")
         .order_by(Notification.created_at.desc()))
    return ok("OK", paged(q, page, page_size, lambda n: n.as_api()))


@bp.patch("/<int:note_id>/read")
@auth_required
def mark_as_read(note_id):
    n = Notification.query.filter_by(id=note_id, audience="user", user_id=current_user().id).first()
    if not n:
        raise NotFound("Notification not found")
    _mark_read(n)
    db.session.commit()
    return ok("Marked as read", n.as_api())


# ---------------- admin ----------------

@bp.get("/admin")
@admin_required
def admin_list():
    page, page_size = pagination_args()
    status = parse_choice(request.args.get("status"), "status", Notification.STATUSES, default="UNREAD")
    q = _admin_inbox().filter(Notification.status == status)
    ntype = (request.args.get("type") or "").strip().upper()
    if ntype:
        q = q.filter(Notification.type == ntype)
    q = q.order_by(Notification.created_at.desc())
    return ok("OK", paged(q, page, page_size, lambda n: n.as_api()))


@bp.get("/admin/counts")
@admin_required
def admin_counts():
    unread = _admin_inbox().filter(Notification.status == "UNREAD").count()
    read = _admin_inbox().filter(Notification.status == "READ").count()
    return ok("OK", {"unread": unread, "total": unread + read})


@bp.patch("/admin/<int:note_id>/read")
@admin_required
def admin_mark_read(note_id):
    n = _admin_note(note_id)
    _mark_read(n)
    db.session.commit()
    return ok("Marked as read", n.as_api())


@bp.patch("/admin/mark-all-read")
@admin_required
def admin_mark_all_read():
    now = datetime.utcnow()
    updated = (_admin_inbox()
               .filter(Notification.status == "UNREAD")
               .update({"status": "READ", "read_at": now}, synchronize_session=False))
    db.session.commit()
    return ok("All notifications marked as read", {"updated": updated})


@bp.patch("/admin/<int:note_id>/archive")
@admin_required
def admin_archive(note_id):
    n = _admin_note(note_id)
    n.status = "ARCHIVED"
    n.archived_at = datetime.utcnow()
    db.session.commit()
    return ok("Notification archived", n.as_api())


@bp.post("/admin/check-expiring")
@admin_required
def admin_check_expiring():
    return ok("Expiring subscriptions checked", check_expiring_subscriptions())
