import pytest
import requests
from unittest.mock import MagicMock, patch

from socialdesk.services import publisher
from socialdesk.services.publisher import PublishError, PublishValidationError, classify_reel_error
from socialdesk.services.retry import RetryPolicy


def fake_response(status_code=200, body=None, content=b""):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 300
    resp.reason = "OK" if resp.ok else "Bad Request"
    resp.content = content
    resp.text = "" if body is None else str(body)
    if body is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = body
    return resp


def no_sleep_policy(attempts=3):
    return RetryPolicy(max_attempts=attempts, sleep=lambda s: None)


@pytest.fixture
def online():
    with patch.object(publisher, "check_connectivity", return_value=True) as connectivity:
        yield connectivity


def test_text_post_goes_to_feed(online):
    with patch("socialdesk.services.publisher.requests.post", return_value=fake_response(body={"id": "123_456"})) as post:
        result = publisher.publish_post(page_id="123", access_token="tok", post_type="text", content="Hi")

    assert result == {"post_id": "123_456"}
    url = post.call_args.args[0]
    assert url.endswith("/123/feed")
    assert post.call_args.kwargs["json"]["message"] == "Hi"


def test_image_post_uses_photos_endpoint(online):
    with patch("socialdesk.services.publisher.requests.post", return_value=fake_response(body={"id": "p1", "post_id": "123_9"})) as post:
        result = publisher.publish_post(page_id="123", access_token="tok", post_type="image",
                                        content="Look", media_url="https://x/a.jpg")

    assert result["post_id"] == "p1"
    assert post.call_args.args[0].endswith("/123/photos")
    assert post.call_args.kwargs["json"]["url"] == "https://x/a.jpg"
    assert post.call_args.kwargs["json"]["caption"] == "Look"


def test_transport_errors_are_retried(online):
    responses = [requests.ConnectionError("reset"), requests.ConnectionError("reset"), fake_response(body={"id": "v1"})]
    with patch("socialdesk.services.publisher.requests.post", side_effect=responses) as post:
        result = publisher.publish_post(page_id="123", access_token="tok", post_type="video",
                                        media_url="https://x/v.mp4", policy=no_sleep_policy())

    assert result == {"post_id": "v1"}
    assert post.call_count == 3


def test_retries_exhausted_reports_attempts(online):
    with patch("socialdesk.services.publisher.requests.post", side_effect=requests.ConnectionError("reset")):
        with pytest.raises(PublishError) as exc_info:
            publisher.publish_post(page_id="123", access_token="tok", post_type="text", content="Hi",
                                   policy=no_sleep_policy())

    assert "after 3 attempts" in exc_info.value.message


def test_provider_rejection_is_not_retried(online):
    rejected = fake_response(400, body={"error": {"message": "Invalid OAuth access token."}})
    with patch("socialdesk.services.publisher.requests.post", return_value=rejected) as post:
        with pytest.raises(PublishError) as exc_info:
            publisher.publish_post(page_id="123", access_token="bad", post_type="text", content="Hi",
                                   policy=no_sleep_policy())

    assert post.call_count == 1
    assert exc_info.value.message == "Invalid OAuth access token."


def test_unreachable_graph_fails_fast():
    with patch.object(publisher, "check_connectivity", return_value=False), \
            patch("socialdesk.services.publisher.requests.post") as post:
        with pytest.raises(PublishError) as exc_info:
            publisher.publish_post(page_id="123", access_token="tok", post_type="text", content="Hi")

    assert exc_info.value.message == publisher.CONNECTIVITY_ERROR
    post.assert_not_called()


def test_validation_errors_are_raised_before_any_call():
    with patch("socialdesk.services.publisher.requests.post") as post:
        with pytest.raises(PublishValidationError):
            publisher.publish_post(page_id="123", access_token="tok", post_type="carousel",
                                   carousel_images=["https://x/1.jpg", "  "])
        with pytest.raises(PublishValidationError):
            publisher.publish_post(page_id="123", access_token="tok", post_type="text", content="")
        with pytest.raises(PublishValidationError):
            publisher.publish_post(page_id="123", access_token="tok", post_type="story", content="x")
    post.assert_not_called()


def test_carousel_uploads_each_image_then_attaches(online):
    responses = [
        fake_response(body={"id": "m1"}),
        fake_response(body={"id": "m2"}),
        fake_response(body={"id": "123_77"}),
    ]
    with patch("socialdesk.services.publisher.requests.post", side_effect=responses) as post:
        result = publisher.publish_post(page_id="123", access_token="tok", post_type="carousel", content="Set",
                                        carousel_images=["https://x/1.jpg", "https://x/2.jpg"])

    assert result == {"post_id": "123_77"}
    first, second, final = post.call_args_list
    assert first.kwargs["json"]["published"] is False
    assert second.kwargs["json"]["url"] == "https://x/2.jpg"
    assert final.args[0].endswith("/123/feed")
    assert final.kwargs["json"]["attached_media"] == [{"media_fbid": "m1"}, {"media_fbid": "m2"}]


def test_carousel_aborts_on_upload_failure(online):
    responses = [
        fake_response(body={"id": "m1"}),
        fake_response(400, body={"error": {"message": "Bad image"}}),
    ]
    with patch("socialdesk.services.publisher.requests.post", side_effect=responses) as post:
        with pytest.raises(PublishError) as exc_info:
            publisher.publish_post(page_id="123", access_token="tok", post_type="carousel",
                                   carousel_images=["https://x/1.jpg", "https://x/2.jpg", "https://x/3.jpg"])

    assert post.call_count == 2
    assert exc_info.value.message == "Failed to upload image: Bad image"


def test_reel_runs_three_phases(online):
    posts = [
        fake_response(body={"video_id": "v9", "upload_url": "https://rupload.example/v9"}),
        fake_response(body={"success": True}),
        fake_response(body={"success": True, "post_id": "reel_1"}),
    ]
    with patch("socialdesk.services.publisher.requests.post", side_effect=posts) as post, \
            patch("socialdesk.services.publisher.requests.get", return_value=fake_response(content=b"abcd")):
        result = publisher.publish_post(page_id="123", access_token="tok", post_type="reel",
                                        content="Reel!", media_url="https://x/v.mp4")

    assert result == {"post_id": "reel_1", "video_id": "v9"}
    start, upload, finish = post.call_args_list
    assert start.kwargs["data"]["upload_phase"] == "start"
    assert upload.args[0] == "https://rupload.example/v9"
    assert upload.kwargs["headers"]["Authorization"] == "OAuth tok"
    assert upload.kwargs["headers"]["file_size"] == "4"
    assert finish.kwargs["json"]["upload_phase"] == "finish"
    assert finish.kwargs["json"]["video_state"] == "PUBLISHED"


def test_reel_upload_failure_never_finishes(online):
    posts = [
        fake_response(body={"video_id": "v9", "upload_url": "https://rupload.example/v9"}),
        fake_response(500, body={"error": "boom"}),
    ]
    with patch("socialdesk.services.publisher.requests.post", side_effect=posts) as post, \
            patch("socialdesk.services.publisher.requests.get", return_value=fake_response(content=b"abcd")):
        with pytest.raises(PublishError) as exc_info:
            publisher.publish_post(page_id="123", access_token="tok", post_type="reel", media_url="https://x/v.mp4")

    assert post.call_count == 2
    assert exc_info.value.step == "reel_upload"


def test_comment_returns_comment_id():
    with patch("socialdesk.services.publisher.requests.post", return_value=fake_response(body={"id": "c1"})) as post:
        assert publisher.post_comment(post_id="123_1", message="First!", access_token="tok") == "c1"
    assert post.call_args.args[0].endswith("/123_1/comments")


@pytest.mark.parametrize("message,status_code,error_type", [
    ("(#200) OAuthException: bad token", 401, "authentication_error"),
    ("Application request limit reached: rate limit", 429, "rate_limit_error"),
    ("Unsupported video format", 400, "format_error"),
    ("Read timed out", 408, "timeout_error"),
    ("Something odd", 500, None),
])
def test_reel_error_classification(message, status_code, error_type):
    code, kind, _ = classify_reel_error(message)
    assert code == status_code
    assert kind == error_type
