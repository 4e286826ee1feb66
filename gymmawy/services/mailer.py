# gymmawy/services/mailer.py
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app


def send_email(to_email: str, subject: str, body: str, body_html: str | None = None) -> bool:
    cfg = current_app.config
    host = cfg.get("SMTP_HOST")
    if not host:
        current_app.logger.info("SMTP not configured, email to %s not sent: %s", to_email, subject)
        return False

    try:
        if body_html:
            msg = MIMEMultipart("alternative")
            msg.attach(MIMEText(body, "plain"))
            msg.attach(MIMEText(body_html, "html"))
        else:
            msg = MIMEText(body, "plain")
        msg["Subject"] = subject
        msg["From"] = cfg.get("EMAIL_FROM")
        msg["To"] = to_email
        with smtplib.SMTP(host, cfg.get("SMTP_PORT", 587), timeout=15) as server:
            server.starttls()
            if cfg.get("SMTP_USER"):
                server.login(cfg["SMTP_USER"], cfg.get("SMTP_PASS") or "")
            server.send_message(msg)
        return True
    except (smtplib.SMTPException, OSError) as e:
        current_app.logger.error("Failed to send email to %s: %s", to_email, e)
        return False


def frontend_link(path: str, token: str) -> str:
    return f"{current_app.config['FRONTEND_URL']}{path}?token={token}"


def send_verification_email(email, token):
    link = frontend_link("/auth/verify-email", token)
    return send_email(
        email,
        "Verify your Gymmawy account",
        f"Welcome to Gymmawy!\n\nConfirm your email address to finish signing up:\n{link}\n\n"
        "This link expires in 24 hours.",
    )


def send_password_reset_email(email, token):
    link = frontend_link("/auth/reset-password", token)
    return send_email(
        email,
        "Reset your Gymmawy password",
        f"We received a request to reset your password.\n\n{link}\n\n"
        "This link expires in 30 minutes. If you did not ask for it, ignore this email.",
    )


def send_email_change_email(new_email, token):
    link = frontend_link("/auth/verify-email-change", token)
    return send_email(
        new_email,
        "Verify your new email address",
        f"Confirm this address for your Gymmawy account:\n{link}\n\nThis link expires in 24 hours.",
    )
