import pytest
from unittest.mock import patch
from cloudinary.exceptions import Error as CloudinaryError

from socialdesk.services.media import CloudinaryCredentials, MediaStorageError, upload_media, delete_media, ping
from socialdesk.services.credentials import resolve_cloudinary, get_user_settings

CREDS = CloudinaryCredentials("demo", "key", "secret")


def test_upload_returns_secure_url():
    uploaded = {"secure_url": "https://res.cloudinary.com/demo/a.jpg", "public_id": "facebook-posts/a", "resource_type": "image"}
    with patch("cloudinary.uploader.upload", return_value=uploaded) as upload:
        result = upload_media(b"bytes", "a.jpg", CREDS)

    assert result == {"url": uploaded["secure_url"], "public_id": "facebook-posts/a", "resource_type": "image"}
    kwargs = upload.call_args.kwargs
    assert kwargs["folder"] == "facebook-posts"
    assert kwargs["cloud_name"] == "demo"
    assert kwargs["use_filename"] is True


def test_upload_error_is_wrapped():
    with patch("cloudinary.uploader.upload", side_effect=CloudinaryError("Invalid Signature")):
        with pytest.raises(MediaStorageError) as exc_info:
            upload_media(b"bytes", "a.jpg", CREDS)
    assert "Invalid Signature" in exc_info.value.message


def test_upload_rejects_unknown_resource_type():
    with pytest.raises(MediaStorageError) as exc_info:
        upload_media(b"bytes", "a.bin", CREDS, resource_type="audio")
    assert exc_info.value.status_code == 400


def test_delete_requires_ok_result():
    with patch("cloudinary.uploader.destroy", return_value={"result": "not found"}):
        with pytest.raises(MediaStorageError):
            delete_media("missing", CREDS)
    with patch("cloudinary.uploader.destroy", return_value={"result": "ok"}) as destroy:
        delete_media("a", CREDS, "video")
    assert destroy.call_args.kwargs["resource_type"] == "video"


def test_ping():
    with patch("cloudinary.api.ping", return_value={"status": "ok"}):
        assert ping(CREDS) is True


def test_stored_credentials_fill_gaps(db):
    row = get_user_settings(db, create=True)
    row.cloudinary_cloud_name = "stored"
    row.cloudinary_api_key = "stored-key"
    row.cloudinary_api_secret = "stored-secret"
    db.commit()

    creds = resolve_cloudinary(db, cloud_name="override")
    assert creds == CloudinaryCredentials("override", "stored-key", "stored-secret")


def test_upload_route_needs_credentials(client):
    resp = client.post("/cloudinary-upload", files={"file": ("a.jpg", b"data", "image/jpeg")})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Cloudinary credentials are required"}


def test_upload_route(client):
    uploaded = {"secure_url": "https://res.cloudinary.com/demo/a.jpg", "public_id": "facebook-posts/a", "resource_type": "image"}
    with patch("cloudinary.uploader.upload", return_value=uploaded):
        resp = client.post(
            "/cloudinary-upload",
            files={"file": ("a.jpg", b"data", "image/jpeg")},
            data={"cloud_name": "demo", "api_key": "key", "api_secret": "secret"},
        )
    assert resp.json() == {"success": True, "url": uploaded["secure_url"], "publicId": "facebook-posts/a",
                           "resourceType": "image"}
