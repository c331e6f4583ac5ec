"""
Tests for the image storage service, with the MinIO client replaced
"""

import io
import pytest
from uuid import uuid4
from fastapi import HTTPException, UploadFile
from starlette.datastructures import Headers

from app.core.config import settings
from app.modules.files.service import ImageStorage, extension_for


class RecordingMinio:

    def __init__(self):
        self.buckets = set()
        self.objects = {}
        self.policies = {}

    def bucket_exists(self, bucket_name):
        return bucket_name in self.buckets

    def make_bucket(self, bucket_name):
        self.buckets.add(bucket_name)

    def set_bucket_policy(self, bucket_name, policy):
        self.policies[bucket_name] = policy

    def put_object(self, bucket_name, object_name, data, length, content_type):
        self.objects[object_name] = (data.read(), content_type)

    def remove_object(self, bucket_name, object_name):
        self.objects.pop(object_name, None)


def image_upload(content_type, data=b"fake-image", filename="photo"):
    return UploadFile(
        file=io.BytesIO(data),
        filename=filename,
        headers=Headers({"content-type": content_type})
    )


@pytest.fixture
def storage():
    image_storage = ImageStorage()
    image_storage.client = RecordingMinio()
    return image_storage


class TestExtensions:

    def test_known_types(self):
        assert extension_for("image/jpeg") == "jpg"
        assert extension_for("image/png") == "png"

    def test_unlisted_type_uses_subtype(self):
        assert extension_for("image/gif") == "gif"


class TestImageStorage:

    def test_upload_creates_public_bucket(self, storage):
        employee_id = uuid4()
        url = storage.upload_employee_image(employee_id, image_upload("image/png"))

        assert storage.bucket_name in storage.client.buckets
        assert "s3:GetObject" in storage.client.policies[storage.bucket_name]
        key = url.split(f"/{storage.bucket_name}/", 1)[1]
        assert key.startswith(f"employees/{employee_id}/")
        assert key.endswith(".png")
        assert storage.client.objects[key] == (b"fake-image", "image/png")

    def test_type_allowed_through_settings_without_extension_entry(self, storage, monkeypatch):
        monkeypatch.setattr(settings, "ALLOWED_IMAGE_TYPES", settings.ALLOWED_IMAGE_TYPES + ["image/gif"])

        url = storage.upload_employee_image(uuid4(), image_upload("image/gif"))

        assert url.endswith(".gif")

    def test_disallowed_type_is_rejected(self, storage):
        with pytest.raises(HTTPException) as exc_info:
            storage.upload_employee_image(uuid4(), image_upload("application/pdf"))
        assert exc_info.value.status_code == 400
        assert storage.client.objects == {}

    def test_oversized_image_is_rejected(self, storage, monkeypatch):
        monkeypatch.setattr(settings, "MAX_IMAGE_SIZE", 4)
        with pytest.raises(HTTPException) as exc_info:
            storage.upload_employee_image(uuid4(), image_upload("image/jpeg", data=b"12345"))
        assert exc_info.value.status_code == 400

    def test_delete_by_url(self, storage):
        url = storage.upload_employee_image(uuid4(), image_upload("image/webp"))

        assert storage.delete_by_url(url) is True
        assert storage.client.objects == {}
        assert storage.delete_by_url("http://elsewhere/other-bucket/x.png") is False
