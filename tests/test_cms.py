from gymmawy.extensions import db
from gymmawy.model import HomepagePopup, Transformation, Video


def test_transformation_gets_default_title(client, admin, auth):
    r = client.post("/api/cms/transformations", headers=auth(admin),
                    json={"imageUrl": "https://cdn.example.com/before-after.jpg"})
    assert r.status_code == 201
    assert r.get_json()["data"]["title"] == Transformation.DEFAULT_TITLE

    assert client.post("/api/cms/transformations", headers=auth(admin), json={}).status_code == 400


def test_transformation_listing_filters_active(client, admin, auth):
    for active in (True, False):
        client.post("/api/cms/transformations", headers=auth(admin),
                    json={"imageUrl": "https://cdn.example.com/t.jpg", "isActive": active})
    assert client.get("/api/cms/transformations").get_json()["data"]["total"] == 2
    assert client.get("/api/cms/transformations?isActive=true").get_json()["data"]["total"] == 1


def test_only_one_video_is_active(client, admin, auth):
    first = client.post("/api/cms/videos", headers=auth(admin),
                        json={"title": "Intro", "videoUrl": "https://cdn.example.com/1.mp4"}).get_json()["data"]
    second = client.post("/api/videos/upload", headers=auth(admin),
                         json={"title": {"en": "Tour", "ar": "جولة"},
                               "videoUrl": "https://cdn.example.com/2.mp4"}).get_json()["data"]
    assert second["isActive"] is True
    assert db.session.get(Video, first["id"]).is_active is False

    client.put(f"/api/cms/videos/{first['id']}", headers=auth(admin), json={"isActive": True})
    db.session.expire_all()
    assert [v.id for v in Video.query.filter_by(is_active=True)] == [first["id"]]


def test_video_endpoints(client, admin, auth):
    v = client.post("/api/videos/upload", headers=auth(admin),
                    json={"title": "Intro", "videoUrl": "https://cdn.example.com/1.mp4"}).get_json()["data"]
    assert client.get(f"/api/videos/{v['id']}").status_code == 200
    assert len(client.get("/api/videos").get_json()["data"]["items"]) == 1
    assert client.delete(f"/api/videos/{v['id']}", headers=auth(admin)).status_code == 204
    assert client.get(f"/api/videos/{v['id']}").status_code == 404


def test_homepage_popup_single_active(client, admin, auth):
    assert client.get("/api/cms/homepage-popup/active").get_json()["data"] == {}

    a = client.post("/api/cms/homepage-popup", headers=auth(admin),
                    json={"header": "Ramadan offer", "isActive": True}).get_json()["data"]
    b = client.post("/api/cms/homepage-popup", headers=auth(admin),
                    json={"header": {"en": "Summer sale", "ar": "تخفيضات الصيف"}, "isActive": True,
                          "buttonText": "Shop now", "buttonLink": "/store"}).get_json()["data"]

    active = client.get("/api/cms/homepage-popup/active").get_json()["data"]
    assert active["id"] == b["id"]
    assert active["buttonText"] == {"en": "Shop now", "ar": "Shop now"}
    assert db.session.get(HomepagePopup, a["id"]).is_active is False

    r = client.put(f"/api/cms/homepage-popup/{b['id']}", headers=auth(admin), json={"isActive": False})
    assert r.get_json()["data"]["isActive"] is False
    assert client.get("/api/cms/homepage-popup/active").get_json()["data"] == {}


def test_popup_needs_header(client, admin, auth):
    r = client.post("/api/cms/homepage-popup", headers=auth(admin), json={"isActive": True})
    assert r.status_code == 400
    assert HomepagePopup.query.count() == 0
