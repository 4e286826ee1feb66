from datetime import datetime, timedelta

from flask import current_app, request
from werkzeug.security import check_password_hash, generate_password_hash

from . import bp
from ..errors import ApiError, Conflict, NotFound, ValidationError
from ..extensions import db
from ..model import User, VerificationToken
from ..services import mailer
from ..utils.api import ok, paged
from ..utils.decorators import admin_required, auth_required, current_user
from ..utils.ids import hash_token, new_token
from ..utils.validation import (check_password, clean_email, clean_str, json_body,
                                pagination_args, require_fields)

EMAIL_CHANGE_TTL = timedelta(hours=24)
ROLES = {"user", "admin"}


def _set_mobile(user, value):
    mobile = clean_str(value, "mobileNumber", max_len=32)
    if mobile and User.query.filter(User.mobile_number == mobile, User.id != user.id).first():
        raise ApiError("Mobile number already in use", code="MOBILE_IN_USE")
    user.mobile_number = mobile


def _apply_profile(user, data):
    if "firstName" in data:
        user.first_name = clean_str(data.get("firstName"), "firstName", max_len=120)
    if "lastName" in data:
        user.last_name = clean_str(data.get("lastName"), "lastName", max_len=120)
    if "mobileNumber" in data:
        _set_mobile(user, data.get("mobileNumber"))


def _admin_count():
    return User.query.filter_by(role="admin").count()


@bp.get("/me")
@auth_required
def get_me():
    return ok("OK", data={"user": current_user().as_dict()})


@bp.patch("/me")
@auth_required
def update_me():
    user = current_user()
    _apply_profile(user, json_body())
    db.session.commit()
    return ok("Profile updated", data={"user": user.as_dict()})


@bp.put("/change-password")
@auth_required
def change_password():
    user = current_user()
    data = json_body()
    require_fields(data, "currentPassword", "newPassword")
    if not check_password_hash(user.password_hash, data["currentPassword"]):
        raise ApiError("Current password is incorrect", code="WRONG_PASSWORD")
    user.password_hash = generate_password_hash(check_password(data["newPassword"], field="newPassword"))
    db.session.commit()
    return ok("Password changed")


@bp.post("/change-email")
@auth_required
def change_email():
    user = current_user()
    data = json_body()
    new_email = clean_email(data.get("newEmail") or data.get("email"), field="newEmail")
    if new_email == user.email:
        return ok("This is already your email address")
    if User.query.filter_by(email=new_email).first():
        raise ApiError("Email already in use", code="EMAIL_IN_USE")

    VerificationToken.query.filter_by(
        user_id=user.id, type=VerificationToken.EMAIL_CHANGE).delete(synchronize_session=False)
    token = new_token()
    db.session.add(VerificationToken(
        user_id=user.id,
        type=VerificationToken.EMAIL_CHANGE,
        token_hash=hash_token(token),
        new_email=new_email,
        expires_at=datetime.utcnow() + EMAIL_CHANGE_TTL,
    ))
    db.session.commit()
    mailer.send_email_change_email(new_email, token)
    return ok("Verification email sent to the new address")


@bp.delete("/account")
@auth_required
def delete_account():
    user = current_user()
    if user.role == "admin" and _admin_count() <= 1:
        raise ApiError("Cannot delete the last admin")
    db.session.delete(user)
    db.session.commit()
    current_app.logger.info("user %s deleted their account", user.id)
    return ok("Account deleted")


# ---------------- admin ----------------

@bp.get("")
@admin_required
def list_users():
    page, page_size = pagination_args()
    q = User.query
    term = (request.args.get("q") or "").strip()
    if term:
        q = q.filter(User.email.ilike(f"%{term}%"))
    data = paged(q.order_by(User.id.asc()), page, page_size, lambda u: u.as_dict())
    return ok("OK", data=data)


def _get_user(user_id) -> User:
    u = db.session.get(User, user_id)
    if not u:
        raise NotFound("User not found")
    return u


@bp.get("/<int:user_id>")
@admin_required
def get_user(user_id):
    return ok("OK", data={"user": _get_user(user_id).as_dict()})


@bp.post("")
@admin_required
def create_user():
    data = json_body()
    require_fields(data, "email", "password")
    email = clean_email(data.get("email"))
    if User.query.filter_by(email=email).first():
        raise Conflict("Email already registered")
    role = (data.get("role") or "user").strip().lower()
    if role not in ROLES:
        raise ValidationError("Invalid role", field="role")
    user = User(email=email, password_hash=generate_password_hash(check_password(data.get("password"))),
                role=role, email_verified=True)
    _apply_profile(user, data)
    db.session.add(user)
    db.session.commit()
    return ok("User created", data={"user": user.as_dict()}, status=201)


@bp.patch("/<int:user_id>")
@admin_required
def update_user(user_id):
    target = _get_user(user_id)
    data = json_body()
    _apply_profile(target, data)
    if "role" in data:
        new_role = (data.get("role") or "").strip().lower()
        if new_role not in ROLES:
            raise ValidationError("Invalid role", field="role")
        # Prevent demoting the LAST admin
        if target.role == "admin" and new_role != "admin" and _admin_count() <= 1:
            raise ApiError("Cannot demote the last admin")
        target.role = new_role
    db.session.commit()
    return ok("User updated", data={"user": target.as_dict()})


@bp.delete("/<int:user_id>")
@admin_required
def delete_user(user_id):
    target = _get_user(user_id)
    if target.role == "admin" and _admin_count() <= 1:
        raise ApiError("Cannot delete the last admin")
    db.session.delete(target)
    db.session.commit()
    return ok("User deleted")
