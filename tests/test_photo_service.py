"""
Photo upload client tests with a stubbed requests session.
"""
import pytest
import requests

from rental_desk_api.app.core.errors import BackingStoreUnavailable, UpstreamFailure
from rental_desk_api.app.services.photo_service import PhotoUploader, photo_mime_type


class StubResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self.payload = payload
        self.text = text

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)

    def json(self):
        if self.payload is None:
            raise ValueError("No JSON object could be decoded")
        return self.payload


class StubSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.posts = []

    def post(self, url, json=None, timeout=None):
        self.posts.append({"url": url, "json": json, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


URL = "https://script.example.com/exec"


class TestPhotoUploader:
    def test_returns_file_id(self):
        session = StubSession(StubResponse(payload={"success": True, "fileId": "drive-123"}))
        uploader = PhotoUploader(URL, timeout=12, session=session)

        assert uploader.upload("B1", "base64data", "B1_ID.jpg") == "drive-123"
        assert session.posts[0]["json"] == {
            "action": "uploadPhoto",
            "rentalID": "B1",
            "photoData": "base64data",
            "fileName": "B1_ID.jpg",
        }
        assert session.posts[0]["timeout"] == 12

    def test_script_error_status(self):
        session = StubSession(StubResponse(status_code=500, text="Script error"))

        with pytest.raises(UpstreamFailure) as info:
            PhotoUploader(URL, session=session).upload("B1", "data", "f.jpg")
        assert info.value.extra["upstreamStatus"] == 500

    def test_script_rejects_photo(self):
        session = StubSession(StubResponse(payload={"success": False, "error": "Image too large"}))

        with pytest.raises(UpstreamFailure, match="Image too large"):
            PhotoUploader(URL, session=session).upload("B1", "data", "f.jpg")

    def test_unreadable_answer(self):
        with pytest.raises(UpstreamFailure):
            PhotoUploader(URL, session=StubSession(StubResponse(payload=None))).upload("B1", "data", "f.jpg")

    def test_timeout(self):
        session = StubSession(error=requests.Timeout("read timed out"))

        with pytest.raises(BackingStoreUnavailable, match="timed out"):
            PhotoUploader(URL, session=session).upload("B1", "data", "f.jpg")

    def test_connection_error(self):
        session = StubSession(error=requests.ConnectionError("refused"))

        with pytest.raises(BackingStoreUnavailable):
            PhotoUploader(URL, session=session).upload("B1", "data", "f.jpg")

    def test_not_configured(self):
        with pytest.raises(BackingStoreUnavailable, match="not configured"):
            PhotoUploader("", session=StubSession()).upload("B1", "data", "f.jpg")


class TestPhotoMimeType:
    def test_declared_type_wins(self):
        assert photo_mime_type("data:image/png;base64,xx", "IMAGE/JPEG") == "image/jpeg"

    def test_from_data_url(self):
        assert photo_mime_type("data:image/png;base64,xx", None) == "image/png"

    def test_bare_base64(self):
        assert photo_mime_type("iVBORw0KGgo=", None) is None
