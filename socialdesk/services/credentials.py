from sqlalchemy.orm import Session

from socialdesk.config import settings
from socialdesk.models import FacebookPage, UserSettings
from socialdesk.services.media import CloudinaryCredentials


def get_page(db: Session, page_id: str | None) -> FacebookPage | None:
    if not page_id:
        return None
    return db.get(FacebookPage, page_id)


def upsert_pages(db: Session, pages: list) -> list[FacebookPage]:
    """Insert or refresh pages by id. Entries without id, name or token are skipped."""
    saved = []
    for raw in pages:
        if not isinstance(raw, dict):
            continue
        page_id = raw.get("id")
        name = raw.get("name")
        token = raw.get("accessToken") or raw.get("access_token")
        if not page_id or not name or not token:
            continue

        followers = raw.get("followersCount", raw.get("followers_count"))
        page = db.get(FacebookPage, str(page_id))
        if page is None:
            page = FacebookPage(id=str(page_id))
            db.add(page)
        page.name = name
        page.access_token = token
        page.picture = raw.get("picture") or None
        page.followers_count = followers or None
        saved.append(page)

    db.commit()
    for page in saved:
        db.refresh(page)
    return saved


def get_user_settings(db: Session, user_id: str | None = None, create: bool = False) -> UserSettings | None:
    user_id = user_id or settings.default_user_id
    row = db.query(UserSettings).filter(UserSettings.user_id == user_id).first()
    if row is None and create:
        row = UserSettings(user_id=user_id)
        db.add(row)
        db.flush()
    return row


def resolve_gemini_key(db: Session, explicit: str | None) -> str | None:
    if explicit:
        return explicit
    row = get_user_settings(db)
    return row.gemini_api_key if row else None


def resolve_cloudinary(db: Session, cloud_name: str | None = None, api_key: str | None = None,
                       api_secret: str | None = None) -> CloudinaryCredentials:
    """Request values win; missing ones come from stored settings."""
    creds = CloudinaryCredentials(cloud_name, api_key, api_secret)
    if creds.complete:
        return creds
    row = get_user_settings(db)
    if row:
        creds = CloudinaryCredentials(
            cloud_name or row.cloudinary_cloud_name,
            api_key or row.cloudinary_api_key,
            api_secret or row.cloudinary_api_secret,
        )
    return creds


def mask_secret(value: str | None) -> str | None:
    if not value:
        return None
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}{'*' * (len(value) - 8)}{value[-4:]}"
