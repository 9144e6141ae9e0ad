from fastapi import Header, HTTPException
from socialdesk.config import settings


def require_cron_key(x_cron_key: str | None = Header(default=None)):
    # Open when no secret is configured
    if not settings.cron_secret:
        return
    if x_cron_key != settings.cron_secret:
        raise HTTPException(status_code=401, detail="Invalid cron key")
