# gymmawy/model/cms.py
from datetime import datetime

from ..extensions import db


def _iso(dt):
    return dt.isoformat() if dt else None


class Transformation(db.Model):
    __tablename__ = "transformations"

    DEFAULT_TITLE = {"en": "Transformation", "ar": "تحول"}

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.JSON, nullable=False, default=lambda: dict(Transformation.DEFAULT_TITLE))
    image_url = db.Column(db.String(500), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def as_api(self):
        return {
            "id": self.id,
            "title": self.title,
            "imageUrl": self.image_url,
            "isActive": self.is_active,
            "createdAt": _iso(self.created_at),
        }


class Video(db.Model):
    __tablename__ = "videos"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.JSON, nullable=False)
    video_url = db.Column(db.String(500), nullable=False)
    thumbnail_en = db.Column(db.String(500))
    thumbnail_ar = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def as_api(self):
        return {
            "id": self.id,
            "title": self.title,
            "videoUrl": self.video_url,
            "thumbnailEn": self.thumbnail_en,
            "thumbnailAr": self.thumbnail_ar,
            "isActive": self.is_active,
            "createdAt": _iso(self.created_at),
        }


class HomepagePopup(db.Model):
    __tablename__ = "homepage_popups"

    id = db.Column(db.Integer, primary_key=True)
    header = db.Column(db.JSON, nullable=False)
    subheader = db.Column(db.JSON)
    button_text = db.Column(db.JSON)
    button_link = db.Column(db.String(500))
    image_url = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, nullable=False, default=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def as_api(self):
        return {
            "id": self.id,
            "header": self.header,
            "subheader": self.subheader,
            "buttonText": self.button_text,
            "buttonLink": self.button_link,
            "imageUrl": self.image_url,
            "isActive": self.is_active,
            "createdAt": _iso(self.created_at),
        }
