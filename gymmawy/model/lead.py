# gymmawy/model/lead.py
from datetime import datetime

from ..extensions import db


class Lead(db.Model):
    __tablename__ = "leads"

    STATUSES = {"NEW", "CONTACTED"}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(180), nullable=True)
    email = db.Column(db.String(255), nullable=False, index=True)
    mobile_number = db.Column(db.String(32), nullable=False)
    message = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="NEW", index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def as_api(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "mobileNumber": self.mobile_number,
            "message": self.message,
            "status": self.status,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
