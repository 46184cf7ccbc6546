"""Tests for the /api/schools endpoints."""

import httpx
import pytest

from app.main import app
from app.services.cloudinary.client import CloudinaryClient
from app.services.images import ImageUploader

SCHOOL = {
    "name": "Springfield Elementary",
    "address": "19 Plympton St",
    "city": "Springfield",
    "state": "OR",
    "contact": "5550100",
    "email_id": "office@springfield.edu",
}


def _create(client, **overrides):
    return client.post("/api/schools", data={**SCHOOL, **overrides})


@pytest.fixture()
def hosted_uploader(client, monkeypatch, tmp_path):
    """Uploader whose Cloudinary destroy always succeeds; records the public_id sent."""
    destroyed = []

    def handler(request: httpx.Request) -> httpx.Response:
        destroyed.append(request.content.decode().split("&")[0])
        return httpx.Response(200, json={"result": "ok"})

    cloud = CloudinaryClient("demo", "key", "secret", transport=httpx.MockTransport(handler))
    monkeypatch.setattr(app.state, "image_uploader", ImageUploader(cloud, tmp_path))
    return destroyed


class TestListSchools:
    def test_list_empty(self, client):
        resp = client.get("/api/schools")
        assert resp.status_code == 200
        assert resp.json()["data"] == []

    def test_list_newest_first(self, authed_client):
        _create(authed_client, name="First")
        _create(authed_client, name="Second")
        names = [s["name"] for s in authed_client.get("/api/schools").json()["data"]]
        assert names == ["Second", "First"]


class TestGetSchool:
    def test_get_school(self, authed_client):
        school_id = _create(authed_client).json()["data"]["id"]

        resp = authed_client.get(f"/api/schools/{school_id}")
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["name"] == SCHOOL["name"]
        assert data["email_id"] == SCHOOL["email_id"]
        assert data["image"] is None

    def test_get_school_not_found(self, client):
        resp = client.get("/api/schools/999")
        assert resp.status_code == 404
        assert resp.json() == {"success": False, "error": "School not found"}


class TestCreateSchool:
    def test_create_requires_session(self, client):
        resp = _create(client)
        assert resp.status_code == 401

    def test_create_school(self, authed_client):
        resp = _create(authed_client)
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["message"] == "School added successfully"
        assert isinstance(body["data"]["id"], int)

    @pytest.mark.parametrize("missing", list(SCHOOL))
    def test_create_requires_every_field(self, authed_client, missing):
        resp = _create(authed_client, **{missing: "   "})
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "All fields are required"}

    def test_create_with_image_saved_locally(self, authed_client, tmp_path):
        resp = authed_client.post(
            "/api/schools",
            data=SCHOOL,
            files={"image": ("front.PNG", b"\x89PNG fake", "image/png")},
        )
        assert resp.status_code == 200
        school_id = resp.json()["data"]["id"]

        image = authed_client.get(f"/api/schools/{school_id}").json()["data"]["image"]
        assert image.startswith("/uploads/schools/school-")
        assert image.endswith(".png")
        saved = tmp_path / "uploads" / image.rsplit("/", 1)[1]
        assert saved.read_bytes() == b"\x89PNG fake"

    @pytest.mark.parametrize(
        ("filename", "content", "content_type"),
        [
            ("evil.html", b"<script>alert(1)</script>", "text/html"),
            ("logo.svg", b"<svg onload=\"alert(1)\"/>", "image/svg+xml"),
            ("evil.html", b"\x89PNG", "image/png"),
            ("photo.png", b"<script>alert(1)</script>", "text/html"),
            ("anim.gif", b"GIF89a", "image/gif"),
        ],
    )
    def test_create_rejects_non_image_upload(
        self, authed_client, tmp_path, filename, content, content_type
    ):
        resp = authed_client.post(
            "/api/schools",
            data=SCHOOL,
            files={"image": (filename, content, content_type)},
        )
        assert resp.status_code == 400
        assert resp.json() == {
            "success": False,
            "error": "Only image files (JPEG, PNG, WebP) are allowed",
        }
        # Nothing is stored: no school row, no file on disk.
        assert authed_client.get("/api/schools").json()["data"] == []
        assert not (tmp_path / "uploads").exists()

    def test_create_rejects_oversized_image(self, authed_client, tmp_path):
        too_big = b"\xff\xd8" + b"\0" * (5 * 1024 * 1024)
        resp = authed_client.post(
            "/api/schools",
            data=SCHOOL,
            files={"image": ("big.jpg", too_big, "image/jpeg")},
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "Image is too large (max 5 MB)"
        assert authed_client.get("/api/schools").json()["data"] == []
        assert not (tmp_path / "uploads").exists()

    def test_create_accepts_image_at_size_limit(self, authed_client, tmp_path):
        exact = b"\0" * (5 * 1024 * 1024)
        resp = authed_client.post(
            "/api/schools",
            data=SCHOOL,
            files={"image": ("max.webp", exact, "image/webp")},
        )
        assert resp.status_code == 200
        image = authed_client.get("/api/schools").json()["data"][0]["image"]
        assert image.endswith(".webp")

    def test_stored_extension_follows_image_type(self, authed_client):
        resp = authed_client.post(
            "/api/schools",
            data=SCHOOL,
            files={"image": ("photo.JPEG", b"\xff\xd8jpeg", "image/jpeg")},
        )
        school_id = resp.json()["data"]["id"]
        image = authed_client.get(f"/api/schools/{school_id}").json()["data"]["image"]
        assert image.endswith(".jpg")


class TestDeleteImage:
    def test_delete_requires_session(self, client):
        resp = client.post("/api/images/delete", json={"url": "x"})
        assert resp.status_code == 401

    def test_delete_without_url(self, authed_client):
        resp = authed_client.post("/api/images/delete", json={})
        assert resp.status_code == 400

    def test_delete_local_image_not_hosted(self, authed_client):
        resp = authed_client.post(
            "/api/images/delete", json={"url": "/uploads/schools/school-1-abc.png"}
        )
        assert resp.status_code == 404

    def test_delete_by_public_id(self, authed_client, hosted_uploader):
        resp = authed_client.post("/api/images/delete", json={"publicId": "schools/abc123"})
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "Image deleted"}
        assert hosted_uploader == ["public_id=schools%2Fabc123"]

    def test_delete_by_hosted_url(self, authed_client, hosted_uploader):
        resp = authed_client.post(
            "/api/images/delete",
            json={"url": "https://res.cloudinary.com/demo/image/upload/v17/schools/abc123.jpg"},
        )
        assert resp.status_code == 200
        assert hosted_uploader == ["public_id=schools%2Fabc123"]

    def test_cloudinary_delete_alias(self, authed_client, hosted_uploader):
        resp = authed_client.post("/api/cloudinary/delete", json={"publicId": "schools/abc123"})
        assert resp.status_code == 200
        assert len(hosted_uploader) == 1

    def test_cloudinary_delete_alias_requires_session(self, client):
        resp = client.post("/api/cloudinary/delete", json={"publicId": "schools/abc123"})
        assert resp.status_code == 401

    def test_delete_without_url_or_public_id(self, authed_client):
        resp = authed_client.post("/api/cloudinary/delete", json={})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Missing image url or publicId"
