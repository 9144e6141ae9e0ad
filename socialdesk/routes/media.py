from fastapi import APIRouter, Depends, UploadFile, File, Form, HTTPException
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas import CloudinaryDeleteIn, CloudinaryCredentialsIn
from ..services.credentials import resolve_cloudinary
from ..services.media import MediaStorageError, upload_media, delete_media, ping
from ..logging_setup import log_event

router = APIRouter(tags=["media"])

MISSING_CREDENTIALS = "Cloudinary credentials are required"


def _credentials(db: Session, cloud_name=None, api_key=None, api_secret=None):
    creds = resolve_cloudinary(db, cloud_name, api_key, api_secret)
    if not creds.complete:
        raise HTTPException(status_code=400, detail=MISSING_CREDENTIALS)
    return creds


@router.post("/cloudinary-upload")
def cloudinary_upload(
    file: UploadFile = File(...),
    resource_type: str = Form("auto"),
    folder: str | None = Form(None),
    cloud_name: str | None = Form(None),
    api_key: str | None = Form(None),
    api_secret: str | None = Form(None),
    db: Session = Depends(get_db),
):
    creds = _credentials(db, cloud_name, api_key, api_secret)
    data = file.file.read()
    if not data:
        raise HTTPException(status_code=400, detail="File is empty")
    try:
        result = upload_media(data, file.filename, creds, resource_type=resource_type, folder=folder)
    except MediaStorageError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    log_event("cloudinary_upload", public_id=result["public_id"], resource_type=result["resource_type"], size_bytes=len(data))
    return {
        "success": True,
        "url": result["url"],
        "publicId": result["public_id"],
        "resourceType": result["resource_type"],
    }


@router.post("/cloudinary-delete")
def cloudinary_delete(payload: CloudinaryDeleteIn, db: Session = Depends(get_db)):
    if not payload.public_id:
        raise HTTPException(status_code=400, detail="Public ID is required")
    creds = _credentials(db, payload.cloud_name, payload.api_key, payload.api_secret)
    try:
        delete_media(payload.public_id, creds, payload.resource_type)
    except MediaStorageError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    log_event("cloudinary_delete", public_id=payload.public_id)
    return {"success": True}


@router.post("/test-cloudinary")
def test_cloudinary(payload: CloudinaryCredentialsIn, db: Session = Depends(get_db)):
    creds = _credentials(db, payload.cloud_name, payload.api_key, payload.api_secret)
    try:
        ping(creds)
    except MediaStorageError as e:
        raise HTTPException(status_code=400, detail=e.message)
    return {"success": True, "message": "Cloudinary connection successful"}
