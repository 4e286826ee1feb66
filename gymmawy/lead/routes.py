# gymmawy/lead/routes.py
from flask import request

from . import bp
from ..errors import NotFound
from ..extensions import db
from ..model import Lead
from ..services import notification_service as notify
from ..utils.api import ok, paged
from ..utils.decorators import admin_required
from ..utils.validation import clean_email, clean_str, json_body, pagination_args, parse_choice


def _get(lead_id) -> Lead:
    lead = db.session.get(Lead, lead_id)
    if not lead:
        raise NotFound("Lead not found")
    return lead


@bp.post("")
def submit():
    data = json_body()
    lead = Lead(
        name=clean_str(data.get("name"), "name", max_len=180),
        email=clean_email(data.get("email")),
        mobile_number=clean_str(data.get("mobileNumber"), "mobileNumber", required=True, max_len=32),
        message=clean_str(data.get("message"), "message", max_len=5000),
        status="NEW",
    )
    db.session.add(lead)
    db.session.flush()
    notify.notify_safely(notify.notify_lead_submitted, lead)
    db.session.commit()
    return ok("Thanks, we'll be in touch", lead.as_api(), 201)


@bp.get("")
@admin_required
def list_leads():
    page, page_size = pagination_args()
    q = Lead.query
    status = parse_choice(request.args.get("status"), "status", Lead.STATUSES)
    if status:
        q = q.filter(Lead.status == status)
    q = q.order_by(Lead.created_at.desc(), Lead.id.desc())
    return ok("Leads fetched", paged(q, page, page_size, lambda x: x.as_api()))


@bp.get("/stats")
@admin_required
def stats():
    recent = Lead.query.order_by(Lead.created_at.desc(), Lead.id.desc()).limit(5).all()
    return ok("OK", {
        "total": Lead.query.count(),
        "new": Lead.query.filter_by(status="NEW").count(),
        "contacted": Lead.query.filter_by(status="CONTACTED").count(),
        "recent": [x.as_api() for x in recent],
    })


@bp.get("/<int:lead_id>")
@admin_required
def get_lead(lead_id):
    return ok("Lead fetched", _get(lead_id).as_api())


@bp.patch("/<int:lead_id>/status")
@admin_required
def set_status(lead_id):
    lead = _get(lead_id)
    status = parse_choice(json_body().get("status"), "status", Lead.STATUSES)
    if not status:
        clean_str(None, "status", required=True)
    lead.status = status
    db.session.commit()
    return ok("Lead updated", lead.as_api())


@bp.delete("/<int:lead_id>")
@admin_required
def delete_lead(lead_id):
    db.session.delete(_get(lead_id))
    db.session.commit()
    return "", 204
