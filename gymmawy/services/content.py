# gymmawy/services/content.py
from ..errors import NotFound
from ..extensions import db
from ..model import HomepagePopup, Transformation, Video
from ..utils.validation import clean_bilingual, clean_str, parse_bool


def get_or_404(model, obj_id, label):
    obj = db.session.get(model, obj_id)
    if not obj:
        raise NotFound(f"{label} not found")
    return obj


def only_active(model, keep):
    """Deactivate every row of ``model`` except ``keep``."""
    q = model.query.filter(model.is_active.is_(True))
    if keep.id is not None:
        q = q.filter(model.id != keep.id)
    q.update({"is_active": False}, synchronize_session=False)


def apply_transformation(t: Transformation, data: dict, creating: bool):
    if creating or "imageUrl" in data:
        t.image_url = clean_str(data.get("imageUrl"), "imageUrl", required=True, max_len=500)
    if "title" in data or creating:
        t.title = clean_bilingual(data.get("title"), "title") or dict(Transformation.DEFAULT_TITLE)
    if "isActive" in data:
        t.is_active = parse_bool(data.get("isActive"), default=True)


def apply_video(v: Video, data: dict, creating: bool):
    if creating or "title" in data:
        v.title = clean_bilingual(data.get("title"), "title", required=True)
    if creating or "videoUrl" in data:
        v.video_url = clean_str(data.get("videoUrl"), "videoUrl", required=True, max_len=500)
    if "thumbnailEn" in data:
        v.thumbnail_en = clean_str(data.get("thumbnailEn"), "thumbnailEn", max_len=500)
    if "thumbnailAr" in data:
        v.thumbnail_ar = clean_str(data.get("thumbnailAr"), "thumbnailAr", max_len=500)
    if "isActive" in data:
        v.is_active = parse_bool(data.get("isActive"), default=True)
    elif creating:
        v.is_active = True


def save_video(v: Video, data: dict, creating: bool) -> Video:
    apply_video(v, data, creating)
    if creating:
        db.session.add(v)
    db.session.flush()
    if v.is_active:
        only_active(Video, v)
    db.session.commit()
    return v


def apply_popup(p: HomepagePopup, data: dict, creating: bool):
    if creating or "header" in data:
        p.header = clean_bilingual(data.get("header"), "header", required=True)
    if "subheader" in data:
        p.subheader = clean_bilingual(data.get("subheader"), "subheader")
    if "buttonText" in data:
        p.button_text = clean_bilingual(data.get("buttonText"), "buttonText")
    if "buttonLink" in data:
        p.button_link = clean_str(data.get("buttonLink"), "buttonLink", max_len=500)
    if "imageUrl" in data:
        p.image_url = clean_str(data.get("imageUrl"), "imageUrl", max_len=500)
    if "isActive" in data:
        p.is_active = parse_bool(data.get("isActive"), default=False)
