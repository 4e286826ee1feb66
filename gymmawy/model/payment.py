# gymmawy/model/payment.py
from datetime import datetime

from ..extensions import db
from ..utils.money import as_float


class Payment(db.Model):
    __tablename__ = "payments"

    METHODS = {"PAYMOB", "TABBY", "INSTAPAY", "VODAFONE_CASH", "BANK_TRANSFER", "CASH"}
    STATUSES = {"PENDING", "PENDING_VERIFICATION", "AUTHORIZED", "SUCCESS",
                "FAILED", "REFUNDED", "CANCELLED"}

    ORDER = "ORDER"
    SUBSCRIPTION = "SUBSCRIPTION"
    PROGRAMME_PURCHASE = "PROGRAMME_PURCHASE"
    PAYMENTABLE_TYPES = {ORDER, SUBSCRIPTION, PROGRAMME_PURCHASE}

    id = db.Column(db.Integer, primary_key=True)
    payment_reference = db.Column(db.String(40), unique=True, nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(8), nullable=False)
    method = db.Column(db.String(20), nullable=False)
    status = db.Column(db.String(24), nullable=False, default="PENDING", index=True)

    gateway = db.Column(db.String(20), nullable=True)          # "paymob" | "tabby" | None
    gateway_id = db.Column(db.String(120), nullable=True, index=True)
    transaction_id = db.Column(db.String(120), nullable=True, index=True)
    payment_proof_url = db.Column(db.String(500), nullable=True)

    paymentable_type = db.Column(db.String(24), nullable=False, index=True)
    paymentable_id = db.Column(db.Integer, nullable=False, index=True)

    meta = db.Column(db.JSON)
    processed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship("User")

    def merge_meta(self, **values):
        # reassign so the JSON column is flagged dirty
        self.meta = {**(self.meta or {}), **values}

    def as_api(self):
        return {
            "id": self.id,
            "paymentReference": self.payment_reference,
            "amount": as_float(self.amount),
            "currency": self.currency,
            "method": self.method,
            "status": self.status,
            "gateway": self.gateway,
            "gatewayId": self.gateway_id,
            "transactionId": self.transaction_id,
            "paymentProofUrl": self.payment_proof_url,
            "paymentableType": self.paymentable_type,
            "paymentableId": self.paymentable_id,
            "meta": self.meta,
            "user": self.user.as_brief() if self.user else None,
            "processedAt": self.processed_at.isoformat() if self.processed_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
