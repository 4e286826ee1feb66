# gymmawy/payment/routes.py
from . import bp
from ..errors import NotFound, ValidationError
from ..extensions import db
from ..model import Payment
from ..services import payment_cleanup, payment_service
from ..utils.api import ok, paged
from ..utils.decorators import admin_required, auth_required, current_user, is_admin
from ..utils.validation import clean_str, json_body, pagination_args, parse_int


def _get(payment_id) -> Payment:
    p = db.session.get(Payment, payment_id)
    if not p:
        raise NotFound("Payment not found")
    return p


@bp.post("/upload-proof")
@auth_required
def upload_proof():
    data = json_body()
    proof_url = clean_str(data.get("proofUrl"), "proofUrl", required=True, max_len=500)
    if data.get("paymentId") is not None:
        payment = _get(parse_int(data.get("paymentId"), "paymentId", minimum=1))
    elif data.get("paymentReference"):
        payment = Payment.query.filter_by(payment_reference=str(data["paymentReference"]).strip()).first()
        if not payment:
            raise NotFound("Payment not found")
    else:
        raise ValidationError("paymentId or paymentReference is required", field="paymentId")
    payment = payment_service.upload_proof(
        current_user(), payment, proof_url,
        clean_str(data.get("transactionId"), "transactionId", max_len=120),
    )
    return ok("Payment proof uploaded", payment.as_api())


@bp.get("/<int:payment_id>")
@auth_required
def get_payment(payment_id):
    p = _get(payment_id)
    user = current_user()
    if p.user_id != user.id and not is_admin(user):
        raise NotFound("Payment not found")
    return ok("Payment fetched", p.as_api())


# ---------------- admin ----------------

@bp.get("/admin/pending")
@admin_required
def pending():
    page, page_size = pagination_args()
    q = Payment.query.filter_by(status="PENDING_VERIFICATION").order_by(Payment.created_at.asc())
    return ok("Pending payments", paged(q, page, page_size, lambda p: p.as_api()))


@bp.post("/admin/<int:payment_id>/approve")
@admin_required
def approve(payment_id):
    p = payment_service.approve_payment(_get(payment_id), current_user().id)
    return ok("Payment approved", p.as_api())


@bp.post("/admin/<int:payment_id>/reject")
@admin_required
def reject(payment_id):
    reason = clean_str(json_body().get("reason"), "reason", max_len=500)
    p = payment_service.reject_payment(_get(payment_id), reason, current_user().id)
    return ok("Payment rejected", p.as_api())


@bp.post("/admin/cleanup")
@admin_required
def run_cleanup():
    return ok("Payment cleanup completed", payment_cleanup.run_payment_cleanup())


@bp.get("/admin/cleanup/stats")
@admin_required
def cleanup_stats():
    return ok("OK", payment_cleanup.get_cleanup_stats())
