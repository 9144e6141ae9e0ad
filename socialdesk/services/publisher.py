# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

import requests
from socialdesk.config import settings
from socialdesk.logging_setup import log_event
from socialdesk.services.retry import RetryPolicy, RetryExhausted, default_publish_policy, single_attempt_policy

GRAPH_ROOT = "https://graph.facebook.com"

CONNECTIVITY_ERROR = "Unable to connect to Facebook API. Please check your internet connection and try again."


class PublishError(Exception):
    """Facebook rejected or never received a publish call."""

    def __init__(self, message: str, status_code: int = 500, step: str | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.step = step


class PublishValidationError(PublishError):
    def __init__(self, message: str):
        super().__init__(message, status_code=400, step="validate")


def graph_url(path: str = "") -> str:
    return f"{GRAPH_ROOT}/{settings.graph_api_version}/{path}"


def check_connectivity(timeout: float | None = None) -> bool:
    """Lightweight reachability check against the Graph API root."""
    try:
        requests.get(graph_url(), timeout=timeout or settings.connectivity_timeout_seconds)
        return True
    except requests.RequestException as e:
        log_event("fb_connectivity_fail", level="warning", error=str(e))
        return False


def _error_message(resp: requests.Response, prefix: str | None = None) -> str:
    msg = None
    try:
        body = resp.json()
        if isinstance(body, dict):
            err = body.get("error")
            msg = err.get("message") if isinstance(err, dict) else err
    except ValueError:
        pass

    if msg:
        return f"{prefix}: {msg}" if prefix else msg
    if prefix:
        return f"{prefix}: HTTP {resp.status_code}"
    return f"HTTP {resp.status_code}: {resp.reason}"


def _json_body(resp: requests.Response, step: str) -> dict:
    try:
        body = resp.json()
    except ValueError:
        raise PublishError(f"Failed to parse Facebook {step} response", step=step)
    if not isinstance(body, dict):
        raise PublishError(f"Failed to parse Facebook {step} response", step=step)
    return body


def _graph_post(url: str, policy: RetryPolicy, step: str, *, error_prefix: str | None = None, **kwargs) -> dict:
    def call(timeout):
        return requests.post(url, timeout=timeout, **kwargs)

    try:
        resp = policy.run(call, label=f"fb_{step}")
    except RetryExhausted as e:
        if e.attempts > 1:
            raise PublishError(f"Failed to connect to Facebook API after {e.attempts} attempts: {e.last_error}", step=step) from e
        raise PublishError(f"{error_prefix or 'Facebook API call failed'}: {e.last_error}", step=step) from e
    except requests.RequestException as e:
        raise PublishError(f"{error_prefix or 'Facebook API call failed'}: {e}", step=step) from e

    if not resp.ok:
        raise PublishError(_error_message(resp, error_prefix), step=step)
    return _json_body(resp, step)


def publish_reel(*, page_id: str, access_token: str, content: str | None, media_url: str | None,
                 policy: RetryPolicy | None = None) -> dict:
    """
    Three-phase reel upload: start a session, push the raw bytes to the
    upload URL, then finish. Each phase depends on the previous one and any
    failure aborts the whole reel.
    """
    if not media_url:
        raise PublishValidationError("Reel video URL is required")
    policy = policy or single_attempt_policy()
    reels_url = graph_url(f"{page_id}/video_reels")

    if not check_connectivity():
        raise PublishError(CONNECTIVITY_ERROR, step="connectivity")

    # Phase 1: start
    log_event("fb_reel_start", page_id=page_id)
    init = _graph_post(
        reels_url, policy, "reel_start",
        error_prefix="Failed to initialize reel upload",
        data={"upload_phase": "start", "access_token": access_token},
    )
    video_id = init.get("video_id")
    upload_url = init.get("upload_url")
    if not video_id or not upload_url:
        raise PublishError("Facebook did not return a reel upload session", step="reel_start")

    # Phase 2: fetch source bytes and upload them
    try:
        source = policy.run(lambda timeout: requests.get(media_url, timeout=settings.download_timeout_seconds), label="reel_download")
    except (RetryExhausted, requests.RequestException) as e:
        raise PublishError(f"Failed to download video: {e}", step="reel_download") from e
    if not source.ok:
        raise PublishError(f"Failed to download video: HTTP {source.status_code}", step="reel_download")
    video_bytes = source.content
    log_event("fb_reel_downloaded", page_id=page_id, video_id=video_id, size_bytes=len(video_bytes))

    try:
        uploaded = policy.run(
            lambda timeout: requests.post(
                upload_url,
                headers={
                    "Authorization": f"OAuth {access_token}",
                    "offset": "0",
                    "file_size": str(len(video_bytes)),
                },
                data=video_bytes,
                timeout=settings.download_timeout_seconds,
            ),
            label="reel_upload",
        )
    except (RetryExhausted, requests.RequestException) as e:
        raise PublishError(f"Failed to upload video: {e}", step="reel_upload") from e
    if not uploaded.ok:
        raise PublishError(f"Failed to upload video: {uploaded.text or f'HTTP {uploaded.status_code}'}", step="reel_upload")

    # Phase 3: finish
    finish = _graph_post(
        reels_url, policy, "reel_finish",
        error_prefix="Failed to publish reel",
        json={
            "video_id": video_id,
            "upload_phase": "finish",
            "video_state": "PUBLISHED",
            "description": content or "",
            "access_token": access_token,
        },
    )
    reel_id = finish.get("post_id") or finish.get("id") or finish.get("video_id") or video_id
    log_event("fb_reel_success", page_id=page_id, video_id=video_id, remote_id=reel_id)
    return {"post_id": reel_id, "video_id": video_id}


def upload_carousel_images(*, page_id: str, access_token: str, image_urls: list[str],
                           policy: RetryPolicy | None = None) -> list[str]:
    """Uploads each image unpublished and returns the media ids, in order."""
    policy = policy or single_attempt_policy()
    media_ids = []
    for image_url in image_urls:
        if not image_url.strip():
            continue
        body = _graph_post(
            graph_url(f"{page_id}/photos"), policy, "carousel_upload",
            error_prefix="Failed to upload image",
            json={"url": image_url, "published": False, "access_token": access_token},
        )
        if not body.get("id"):
            raise PublishError("Failed to upload image: no media id returned", step="carousel_upload")
        media_ids.append(body["id"])
    return media_ids


def publish_post(*, page_id: str, access_token: str, post_type: str, content: str | None = None,
                 media_url: str | None = None, carousel_images: list[str] | None = None,
                 policy: RetryPolicy | None = None) -> dict:
    """Publishes one post to a page and returns {"post_id": ...}."""
    if not page_id or not access_token:
        raise PublishValidationError("Missing page_id or access_token")
    if not post_type:
        raise PublishValidationError("Post type is required")

    if post_type == "reel":
        return publish_reel(page_id=page_id, access_token=access_token, content=content, media_url=media_url)

    if post_type == "text":
        if not content:
            raise PublishValidationError("Content is required for text posts")
        endpoint = graph_url(f"{page_id}/feed")
        payload = {"message": content, "access_token": access_token}

    elif post_type == "image":
        if not media_url:
            raise PublishValidationError("Image URL is required")
        endpoint = graph_url(f"{page_id}/photos")
        payload = {"url": media_url, "caption": content or "", "access_token": access_token}

    elif post_type == "video":
        if not media_url:
            raise PublishValidationError("Video URL is required")
        endpoint = graph_url(f"{page_id}/videos")
        payload = {"file_url": media_url, "description": content or "", "access_token": access_token}

    elif post_type == "carousel":
        images = [u for u in (carousel_images or []) if u and u.strip()]
        if len(images) < 2:
            raise PublishValidationError("At least 2 images are required for carousel")
        log_event("fb_carousel_upload_start", page_id=page_id, image_count=len(images))
        media_ids = upload_carousel_images(page_id=page_id, access_token=access_token, image_urls=images)
        endpoint = graph_url(f"{page_id}/feed")
        payload = {
            "message": content or "",
            "attached_media": [{"media_fbid": media_id} for media_id in media_ids],
            "access_token": access_token,
        }

    else:
        raise PublishValidationError("Invalid post type")

    if not check_connectivity():
        raise PublishError(CONNECTIVITY_ERROR, step="connectivity")

    log_event("fb_post_start", page_id=page_id, post_type=post_type)
    body = _graph_post(endpoint, policy or default_publish_policy(), "publish", json=payload)
    remote_id = body.get("id") or body.get("post_id")
    if not remote_id:
        raise PublishError("Facebook API response did not include a post id", step="publish")

    log_event("fb_post_success", page_id=page_id, post_type=post_type, remote_id=remote_id)
    return {"post_id": remote_id}


def post_comment(*, post_id: str, message: str, access_token: str) -> str:
    """Posts a comment under a published post and returns the comment id."""
    try:
        resp = requests.post(
            graph_url(f"{post_id}/comments"),
            data={"message": message, "access_token": access_token},
            timeout=settings.publish_timeout_seconds,
        )
    except requests.RequestException as e:
        raise PublishError(f"Failed to post comment: {e}", step="comment") from e

    if not resp.ok:
        msg = _error_message(resp)
        if msg.startswith("HTTP "):
            msg = "Failed to post comment to Facebook"
        raise PublishError(msg, status_code=resp.status_code, step="comment")

    comment_id = _json_body(resp, "comment").get("id")
    log_event("fb_comment_success", post_id=post_id, comment_id=comment_id)
    return comment_id


def get_reel_status(reel_id: str, access_token: str) -> dict:
    try:
        resp = requests.get(
            graph_url(reel_id),
            params={"fields": "status,publish_status,created_time,updated_time", "access_token": access_token},
            timeout=settings.publish_timeout_seconds,
        )
    except requests.RequestException as e:
        raise PublishError(f"Failed to check reel status: {e}", step="reel_status") from e

    if not resp.ok:
        raise PublishError(f"Failed to check status: {resp.status_code}", status_code=resp.status_code, step="reel_status")

    data = _json_body(resp, "reel status")
    return {
        "reel_id": reel_id,
        "status": data.get("status") or "unknown",
        "publish_status": data.get("publish_status") or "unknown",
        "created_time": data.get("created_time") or "unknown",
        "updated_time": data.get("updated_time") or "unknown",
        "full_response": data,
    }


REEL_ERROR_RULES = [
    (("OAuthException",), 401, "authentication_error",
     "Please check your Facebook access token and permissions"),
    (("rate limit",), 429, "rate_limit_error",
     "Please wait before trying again. Facebook limits reel uploads to 30 per 24 hours"),
    (("video format", "file format"), 400, "format_error",
     "Please ensure your video meets Facebook reel requirements (MP4, 9:16 aspect ratio, 3-90 seconds)"),
    (("processing",), 202, "processing_error",
     "Reel upload initiated but processing is delayed. Facebook can take several hours to process reels"),
    (("connectivity", "network", "Unable to connect"), 503, "network_error",
     "Please check your internet connection and try again"),
    (("timeout", "timed out"), 408, "timeout_error",
     "Request timed out. Please try again with a smaller video file"),
]


def classify_reel_error(message: str) -> tuple[int, str | None, str | None]:
    """Maps a reel failure message to (http status, error type, suggestion)."""
    for needles, status_code, error_type, suggestion in REEL_ERROR_RULES:
        if any(n in message for n in needles):
            return status_code, error_type, suggestion
    return 500, None, None
