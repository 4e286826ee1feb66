# gymmawy/programme/routes.py
from flask import g

from . import bp
from ..errors import NotFound
from ..extensions import db
from ..model import Price, Programme, ProgrammePurchase
from ..services import programme_service
from ..services.pricing import delete_prices, set_prices
from ..utils.api import ok, paged
from ..utils.decorators import admin_required, auth_required, current_user
from ..utils.validation import clean_bilingual, clean_str, json_body, pagination_args, parse_bool


def _get(programme_id, active_only=True) -> Programme:
    p = db.session.get(Programme, programme_id)
    if not p or (active_only and not p.is_active):
        raise NotFound("Programme not found")
    return p


def _apply(p: Programme, data: dict, creating: bool):
    if creating or "name" in data:
        p.name = clean_bilingual(data.get("name"), "name", required=True)
    if "description" in data:
        p.description = clean_bilingual(data.get("description"), "description")
    if "imageUrl" in data:
        p.image_url = clean_str(data.get("imageUrl"), "imageUrl", max_len=500)
    if "pdfUrl" in data:
        p.pdf_url = clean_str(data.get("pdfUrl"), "pdfUrl", max_len=500)
    if "isActive" in data:
        p.is_active = parse_bool(data.get("isActive"), default=True)
    if data.get("prices") is not None:
        db.session.flush()
        set_prices(Price.PROGRAMME, p.id, data["prices"])


@bp.get("")
def list_programmes():
    page, page_size = pagination_args()
    q = Programme.query.filter(Programme.is_active.is_(True)).order_by(Programme.id.desc())
    currency = g.currency
    return ok("Programmes fetched", paged(q, page, page_size, lambda p: p.as_api(currency)))


@bp.get("/<int:programme_id>")
def get_programme(programme_id):
    return ok("Programme fetched", _get(programme_id).as_api(g.currency))


@bp.post("")
@admin_required
def create_programme():
    p = Programme(is_active=True)
    db.session.add(p)
    _apply(p, json_body(), creating=True)
    db.session.commit()
    db.session.refresh(p)
    return ok("Programme created", p.as_api(g.currency), 201)


@bp.patch("/<int:programme_id>")
@admin_required
def update_programme(programme_id):
    p = _get(programme_id, active_only=False)
    _apply(p, json_body(), creating=False)
    db.session.commit()
    db.session.refresh(p)
    return ok("Programme updated", p.as_api(g.currency))


@bp.delete("/<int:programme_id>")
@admin_required
def delete_programme(programme_id):
    p = _get(programme_id, active_only=False)
    if ProgrammePurchase.query.filter_by(programme_id=p.id).first():
        # keep purchase history intact
        p.is_active = False
        db.session.commit()
        return ok("Programme deactivated")
    delete_prices(Price.PROGRAMME, p.id)
    db.session.delete(p)
    db.session.commit()
    return ok("Programme deleted")


@bp.post("/<int:programme_id>/purchase")
@auth_required
def purchase(programme_id):
    data = json_body()
    purchase_, payment = programme_service.purchase_programme(
        current_user(), programme_id, g.currency,
        coupon_code=clean_str(data.get("couponCode"), "couponCode", max_len=64),
        payment_method=data.get("paymentMethod"),
    )
    return ok("Programme purchase created", {"purchase": purchase_.as_api(), "payment": payment.as_api()}, 201)


@bp.get("/user/my-programmes")
@auth_required
def my_programmes():
    rows = (ProgrammePurchase.query
            .filter_by(user_id=current_user().id)
            .order_by(ProgrammePurchase.purchased_at.desc())
            .all())
    return ok("OK", {"items": [r.as_api() for r in rows]})


# ---------------- admin ----------------

@bp.get("/admin/pending-purchases")
@admin_required
def pending_purchases():
    page, page_size = pagination_args()
    q = ProgrammePurchase.query.filter_by(status="PENDING").order_by(ProgrammePurchase.purchased_at.asc())
    return ok("Pending purchases", paged(q, page, page_size, lambda r: r.as_api()))


@bp.patch("/admin/purchases/<int:purchase_id>/approve")
@admin_required
def approve_purchase(purchase_id):
    return ok("Purchase approved", programme_service.approve_purchase(purchase_id).as_api())


@bp.patch("/admin/purchases/<int:purchase_id>/reject")
@admin_required
def reject_purchase(purchase_id):
    reason = clean_str(json_body().get("reason"), "reason", max_len=500)
    return ok("Purchase rejected", programme_service.reject_purchase(purchase_id, reason).as_api())
