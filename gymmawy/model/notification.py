#  --- gymmawy/model/notification.py ---
from datetime import datetime

from ..extensions import db


class Notification(db.Model):
    __tablename__ = "notifications"

    STATUSES = {"UNREAD", "READ", "ARCHIVED"}

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(40), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.String(1000), nullable=False)
    meta = db.Column(db.JSON)
    # "admin": shared admin inbox, user_id is the user the event is about
    # "user": personal inbox of user_id
    audience = db.Column(db.String(10), nullable=False, default="admin", index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    status = db.Column(db.String(10), nullable=False, default="UNREAD", index=True)
    read_at = db.Column(db.DateTime)
    archived_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship("User")

    def as_api(self):
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "meta": self.meta,
            "status": self.status,
            "isRead": self.status != "UNREAD",
            "user": self.user.as_brief() if self.user else None,
            "readAt": self.read_at.isoformat() if self.read_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
