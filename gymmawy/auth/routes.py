from datetime import datetime, timedelta

from flask import current_app
from flask_jwt_extended import create_access_token
from sqlalchemy import or_
from werkzeug.security import check_password_hash, generate_password_hash

from . import bp
from ..errors import ApiError, Conflict, Unauthorized, ValidationError
from ..extensions import db
from ..model import PendingUserVerification, RefreshToken, User, VerificationToken
from ..services import mailer
from ..utils.api import ok
from ..utils.decorators import auth_required, current_user
from ..utils.ids import hash_token, new_token
from ..utils.validation import check_password, clean_email, clean_str, json_body, require_fields

MAX_FAILED_LOGINS = 5
LOCK_MINUTES = 15
VERIFICATION_TTL = timedelta(hours=24)
PASSWORD_RESET_TTL = timedelta(minutes=30)
STALE_REFRESH_DAYS = 7


# --- helper: create & persist a token pair ---
def _issue_tokens(user_id: int):
    access_token = create_access_token(identity=str(user_id))
    refresh_token_str = new_token()
    db.session.add(RefreshToken(
        user_id=user_id,
        token_hash=hash_token(refresh_token_str),
        expires_at=datetime.utcnow() + timedelta(days=current_app.config["REFRESH_TOKEN_TTL_DAYS"]),
    ))
    return access_token, refresh_token_str


def _token_payload(user, access, refresh):
    return {"user": user.as_dict(), "accessToken": access, "refreshToken": refresh}


def _start_verification(pending: PendingUserVerification):
    token = new_token()
    pending.token_hash = hash_token(token)
    pending.expires_at = datetime.utcnow() + VERIFICATION_TTL
    return token


@bp.post("/register")
def register():
    data = json_body()
    require_fields(data, "email", "password", "mobileNumber")
    email = clean_email(data.get("email"))
    password = check_password(data.get("password"))
    mobile = clean_str(data.get("mobileNumber"), "mobileNumber", required=True, max_len=32)

    if User.query.filter_by(email=email).first():
        raise Conflict("Email already registered")
    if User.query.filter_by(mobile_number=mobile).first():
        raise Conflict("Mobile number already registered")

    pending = PendingUserVerification.query.filter_by(email=email).first()
    if not pending:
        pending = PendingUserVerification(email=email)
        db.session.add(pending)
    pending.mobile_number = mobile
    pending.first_name = clean_str(data.get("firstName"), "firstName", max_len=120)
    pending.last_name = clean_str(data.get("lastName"), "lastName", max_len=120)
    pending.password_hash = generate_password_hash(password)
    token = _start_verification(pending)
    db.session.commit()

    mailer.send_verification_email(email, token)
    return ok("Registration received. Check your email to verify your account",
              data={"email": email}, status=201)


@bp.post("/verify-email")
def verify_email():
    data = json_body()
    require_fields(data, "token")
    pending = PendingUserVerification.query.filter_by(token_hash=hash_token(data["token"])).first()
    if not pending or pending.expires_at < datetime.utcnow():
        raise ApiError("Invalid or expired verification token", code="INVALID_TOKEN")
    if User.query.filter(or_(User.email == pending.email,
                             User.mobile_number == pending.mobile_number)).first():
        db.session.delete(pending)
        db.session.commit()
        raise Conflict("Account already exists")

    # Bootstrap: very first account becomes admin
    is_first_user = db.session.query(User.id).count() == 0
    user = User(
        email=pending.email,
        mobile_number=pending.mobile_number,
        first_name=pending.first_name,
        last_name=pending.last_name,
        password_hash=pending.password_hash,
        role="admin" if is_first_user else "user",
        email_verified=True,
    )
    db.session.add(user)
    db.session.delete(pending)
    db.session.flush()
    access, refresh = _issue_tokens(user.id)
    db.session.commit()
    current_app.logger.info("user %s verified (role=%s)", user.id, user.role)
    return ok("Email verified successfully", data=_token_payload(user, access, refresh), status=201)


@bp.post("/resend-verification")
def resend_verification():
    data = json_body()
    email = clean_email(data.get("email"))
    pending = PendingUserVerification.query.filter_by(email=email).first()
    if pending:
        token = _start_verification(pending)
        db.session.commit()
        mailer.send_verification_email(email, token)
    return ok("If that email is awaiting verification, a new link has been sent")


@bp.post("/login")
def login():
    data = json_body()
    identifier = (data.get("identifier") or data.get("email") or "").strip()
    password = data.get("password") or ""
    if not identifier or not password:
        raise ValidationError("Identifier and password are required", details=[
            {"field": f, "message": f"{f} is required"}
            for f, v in (("identifier", identifier), ("password", password)) if not v
        ])

    user = User.query.filter(or_(User.email == identifier.lower(),
                                 User.mobile_number == identifier)).first()
    now = datetime.utcnow()
    if user and user.is_locked(now):
        raise ApiError("Account locked. Try later", status=423, code="ACCOUNT_LOCKED")
    if not user or not check_password_hash(user.password_hash, password):
        if user:
            user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
            if user.failed_login_attempts >= MAX_FAILED_LOGINS:
                user.locked_until = now + timedelta(minutes=LOCK_MINUTES)
                user.failed_login_attempts = 0
                current_app.logger.warning("user %s locked after repeated failed logins", user.id)
            db.session.commit()
        raise Unauthorized("Invalid credentials")

    user.failed_login_attempts = 0
    user.locked_until = None
    user.last_login_at = now
    # prune refresh tokens nobody rotated in a week
    (RefreshToken.query
     .filter(RefreshToken.user_id == user.id,
             RefreshToken.revoked_at.is_(None),
             RefreshToken.created_at < now - timedelta(days=STALE_REFRESH_DAYS))
     .delete(synchronize_session=False))
    access, refresh = _issue_tokens(user.id)
    db.session.commit()
    return ok("You've logged in successfully", data=_token_payload(user, access, refresh))


@bp.post("/refresh")
def refresh():
    data = json_body()
    token_str = data.get("refreshToken")
    if not token_str:
        raise ValidationError("refreshToken is required", field="refreshToken")

    row = RefreshToken.query.filter_by(token_hash=hash_token(token_str)).first()
    if not row or not row.is_usable():
        raise Unauthorized("Invalid or expired refresh token")

    # ROTATE: the presented token is single-use
    row.revoked_at = datetime.utcnow()
    new_access, new_refresh = _issue_tokens(row.user_id)
    db.session.commit()
    return ok("Token refreshed", data={"accessToken": new_access, "refreshToken": new_refresh})


@bp.post("/logout")
def logout():
    token_str = json_body().get("refreshToken")
    if token_str:
        row = RefreshToken.query.filter_by(token_hash=hash_token(token_str)).first()
        if row and row.revoked_at is None:
            row.revoked_at = datetime.utcnow()
            db.session.commit()
    return ok("Logged out")


@bp.post("/forgot-password")
def forgot_password():
    data = json_body()
    email = (data.get("email") or "").strip().lower()
    user = User.query.filter_by(email=email).first() if email else None
    if user:
        VerificationToken.query.filter_by(
            user_id=user.id, type=VerificationToken.PASSWORD_RESET).delete(synchronize_session=False)
        token = new_token()
        db.session.add(VerificationToken(
            user_id=user.id,
            type=VerificationToken.PASSWORD_RESET,
            token_hash=hash_token(token),
            expires_at=datetime.utcnow() + PASSWORD_RESET_TTL,
        ))
        db.session.commit()
        mailer.send_password_reset_email(user.email, token)
    return ok("If an account exists for that email, a reset link has been sent")


def _consume(token, type_) -> VerificationToken:
    row = VerificationToken.query.filter_by(token_hash=hash_token(token or ""), type=type_).first()
    now = datetime.utcnow()
    if not row or row.consumed_at is not None or row.expires_at < now:
        raise ApiError("Invalid or expired token", code="INVALID_TOKEN")
    row.consumed_at = now
    return row


@bp.post("/reset-password")
def reset_password():
    data = json_body()
    require_fields(data, "token", "password")
    password = check_password(data.get("password"))
    row = _consume(data["token"], VerificationToken.PASSWORD_RESET)
    user = row.user
    user.password_hash = generate_password_hash(password)
    user.failed_login_attempts = 0
    user.locked_until = None
    (RefreshToken.query
     .filter(RefreshToken.user_id == user.id, RefreshToken.revoked_at.is_(None))
     .update({"revoked_at": datetime.utcnow()}, synchronize_session=False))
    db.session.commit()
    return ok("Password has been reset")


@bp.post("/verify-email-change")
def verify_email_change():
    data = json_body()
    require_fields(data, "token")
    row = _consume(data["token"], VerificationToken.EMAIL_CHANGE)
    if User.query.filter(User.email == row.new_email, User.id != row.user_id).first():
        raise Conflict("Email already in use")
    row.user.email = row.new_email
    row.user.email_verified = True
    db.session.commit()
    return ok("Email updated", data={"user": row.user.as_dict()})


@bp.get("/me")
@auth_required
def me():
    return ok("OK", data={"user": current_user().as_dict()})
