import asyncio
from unittest.mock import MagicMock, patch

import pytest
import requests

from clipflow.config.provider_config import ProviderConfig, ProviderConfigStore
from clipflow.config.settings_store import SettingsStore
from clipflow.exceptions import ConfigurationError, ProviderRequestError, ResponseShapeError
from clipflow.providers.grok import GrokClient, GrokProvider, extract_clip_urls
from clipflow.utils.reference_images import ReferenceImage

CONFIG = ProviderConfig(endpoint="https://api.example.com/v1/generate", api_key="secret")


def _mock_resp(status_code=200, json_data=None, text=""):
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = text
    if isinstance(json_data, Exception):
        resp.json.side_effect = json_data
    else:
        resp.json.return_value = json_data
    return resp


def _provider(configured=True):
    store = ProviderConfigStore(SettingsStore(), environ={})
    if configured:
        store.save(CONFIG.endpoint, CONFIG.api_key)
    return GrokProvider(store, timeout_sec=42)


@pytest.mark.parametrize(
    "body",
    [
        {"url": "https://cdn.example.com/a.mp4"},
        {"data": {"url": "https://cdn.example.com/a.mp4"}},
        {"video_url": "https://cdn.example.com/a.mp4"},
        {"data": {"video_url": "https://cdn.example.com/a.mp4"}},
    ],
)
def test_accepted_response_shapes(body):
    assert extract_clip_urls(body)["url"] == "https://cdn.example.com/a.mp4"


def test_thumbnail_is_picked_up():
    urls = extract_clip_urls({"data": {"url": "https://x/a.mp4", "thumbnailUrl": "https://x/a.jpg"}})
    assert urls["thumbnail_url"] == "https://x/a.jpg"


def test_missing_url_is_a_shape_error():
    with pytest.raises(ResponseShapeError, match="missing video URL"):
        extract_clip_urls({"data": {"status": "queued"}})
    with pytest.raises(ResponseShapeError):
        extract_clip_urls(["https://x/a.mp4"])


def test_generate_clip_posts_prompt_and_duration():
    provider = _provider()
    with patch("clipflow.providers.grok.requests.post") as post:
        post.return_value = _mock_resp(200, {"url": "https://cdn.example.com/clip.mp4", "thumbnail_url": "https://cdn.example.com/clip.jpg"})
        clip = asyncio.run(provider.generate_clip("Scene 1: sunset", 20, 0))

    assert clip.url == "https://cdn.example.com/clip.mp4"
    assert clip.thumbnail_url == "https://cdn.example.com/clip.jpg"
    assert clip.duration == 20
    assert clip.prompt == "Scene 1: sunset"

    args, kwargs = post.call_args
    assert args[0] == CONFIG.endpoint
    assert kwargs["json"] == {"prompt": "Scene 1: sunset", "duration": 20}
    assert kwargs["headers"]["Authorization"] == "Bearer secret"
    assert kwargs["timeout"] == 42


def test_reference_images_are_sent():
    image = ReferenceImage(data="aGVsbG8=", mime_type="image/png", filename="ref.png", size=5)
    with patch("clipflow.providers.grok.requests.post") as post:
        post.return_value = _mock_resp(200, {"url": "https://cdn.example.com/clip.mp4"})
        GrokClient(CONFIG).generate("p", 10, [image])

    payload = post.call_args.kwargs["json"]
    assert payload["referenceImages"] == [
        {"data": "aGVsbG8=", "mimeType": "image/png", "filename": "ref.png", "size": 5}
    ]


def test_non_2xx_carries_status_and_body():
    with patch("clipflow.providers.grok.requests.post") as post:
        post.return_value = _mock_resp(500, text="upstream exploded")
        with pytest.raises(ProviderRequestError) as ei:
            GrokClient(CONFIG).generate("p", 10)

    assert ei.value.status_code == 500
    assert str(ei.value).startswith("Grok API request failed (500): upstream exploded")


def test_non_2xx_with_images_mentions_them():
    image = ReferenceImage(data="aGVsbG8=", mime_type="image/png", filename="ref.png", size=5)
    with patch("clipflow.providers.grok.requests.post") as post:
        post.return_value = _mock_resp(413, text="too large")
        with pytest.raises(ProviderRequestError, match="reference images"):
            GrokClient(CONFIG).generate("p", 10, [image])


def test_network_error_becomes_request_error():
    with patch("clipflow.providers.grok.requests.post") as post:
        post.side_effect = requests.ConnectionError("connection refused")
        with pytest.raises(ProviderRequestError, match="could not be sent"):
            GrokClient(CONFIG).generate("p", 10)


def test_non_json_body_is_a_shape_error():
    with patch("clipflow.providers.grok.requests.post") as post:
        post.return_value = _mock_resp(200, ValueError("no json"))
        with pytest.raises(ResponseShapeError):
            GrokClient(CONFIG).generate("p", 10)


def test_unplayable_url_is_rejected():
    with patch("clipflow.providers.grok.requests.post") as post:
        post.return_value = _mock_resp(200, {"url": "ftp://cdn.example.com/clip.mp4"})
        with pytest.raises(ResponseShapeError, match="invalid video URL"):
            GrokClient(CONFIG).generate("p", 10)


def test_video_url_verification():
    client = GrokClient(CONFIG, verify_video_urls=True)
    head = MagicMock(status_code=200, headers={"content-type": "text/html"})
    with patch("clipflow.providers.grok.requests.post") as post, patch("clipflow.providers.grok.requests.head") as head_call:
        post.return_value = _mock_resp(200, {"url": "https://cdn.example.com/page"})
        head_call.return_value = head
        with pytest.raises(ResponseShapeError, match="Content-Type"):
            client.generate("p", 10)


def test_unconfigured_provider_raises_configuration_error():
    provider = _provider(configured=False)
    assert provider.is_configured() is False
    with patch("clipflow.providers.grok.requests.post") as post:
        with pytest.raises(ConfigurationError):
            asyncio.run(provider.generate_clip("p", 10, 0))
        post.assert_not_called()


def test_derive_segments_splits_prompt():
    prompts = asyncio.run(_provider().derive_segments("a b c d", 2))
    assert prompts == ["Scene 1: a b", "Scene 2: c d"]
