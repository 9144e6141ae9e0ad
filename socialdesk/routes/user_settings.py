from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import UserSettings
from ..schemas import UserSettingsIn, ApiKeyIn, CloudinaryCredentialsIn
from ..services.credentials import get_user_settings, mask_secret
from ..logging_setup import log_event

router = APIRouter(prefix="/user-settings", tags=["user-settings"])


def _settings_out(row: UserSettings | None) -> dict:
    if row is None:
        return {
            "hasGeminiApiKey": False,
            "geminiApiKey": None,
            "cloudinaryCloudName": None,
            "cloudinaryApiKey": None,
            "hasCloudinaryApiSecret": False,
            "cloudinaryConfigured": False,
        }
    return {
        "hasGeminiApiKey": bool(row.gemini_api_key),
        "geminiApiKey": mask_secret(row.gemini_api_key),
        "cloudinaryCloudName": row.cloudinary_cloud_name,
        "cloudinaryApiKey": mask_secret(row.cloudinary_api_key),
        "hasCloudinaryApiSecret": bool(row.cloudinary_api_secret),
        "cloudinaryConfigured": bool(
            row.cloudinary_cloud_name and row.cloudinary_api_key and row.cloudinary_api_secret
        ),
    }


@router.get("")
def read_settings(db: Session = Depends(get_db)):
    return _settings_out(get_user_settings(db))


@router.put("")
def update_settings(payload: UserSettingsIn, db: Session = Depends(get_db)):
    data = payload.model_dump(exclude_unset=True)
    row = get_user_settings(db, create=True)
    for k, v in data.items():
        setattr(row, k, v or None)
    db.commit()
    db.refresh(row)
    log_event("user_settings_updated", fields=sorted(data))
    return {"success": True, **_settings_out(row)}


@router.delete("")
def clear_settings(db: Session = Depends(get_db)):
    row = get_user_settings(db)
    if row is not None:
        db.delete(row)
        db.commit()
    log_event("user_settings_cleared")
    return {"success": True}


@router.put("/api-key")
def save_api_key(payload: ApiKeyIn, db: Session = Depends(get_db)):
    api_key = (payload.gemini_api_key or payload.api_key or "").strip()
    if not api_key:
        raise HTTPException(status_code=400, detail="API key is required")
    row = get_user_settings(db, create=True)
    row.gemini_api_key = api_key
    db.commit()
    db.refresh(row)
    log_event("user_settings_api_key_saved")
    return {"success": True, **_settings_out(row)}


@router.put("/cloudinary")
def save_cloudinary(payload: CloudinaryCredentialsIn, db: Session = Depends(get_db)):
    if not payload.cloud_name or not payload.api_key or not payload.api_secret:
        raise HTTPException(status_code=400, detail="Cloud name, API key and API secret are required")
    row = get_user_settings(db, create=True)
    row.cloudinary_cloud_name = payload.cloud_name
    row.cloudinary_api_key = payload.api_key
    row.cloudinary_api_secret = payload.api_secret
    db.commit()
    db.refresh(row)
    log_event("user_settings_cloudinary_saved", cloud_name=payload.cloud_name)
    return {"success": True, **_settings_out(row)}
