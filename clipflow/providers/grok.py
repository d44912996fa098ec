import asyncio
from typing import Any, Dict, List, Optional, Sequence

import requests
from pydantic import ValidationError

from clipflow.config.provider_config import ProviderConfig, ProviderConfigStore
from clipflow.exceptions import ConfigurationError, ProviderRequestError, ResponseShapeError
from clipflow.providers.base import ClipData, ProviderKind, split_prompt_into_scenes
from clipflow.utils.endpoint import is_media_url
from clipflow.utils.logging_setup import setup_logger
from clipflow.utils.reference_images import ReferenceImage

logger = setup_logger(__name__)

_ERROR_BODY_LIMIT = 500


def _images_hint(reference_images: Optional[Sequence[ReferenceImage]], text: str) -> str:
    return f" {text}" if reference_images else ""


def extract_clip_urls(body: Any) -> Dict[str, Optional[str]]:
    """
    Pull the video URL (and thumbnail, if any) out of a provider response.

    Accepted shapes: {"url"}, {"data": {"url"}}, {"video_url"},
    {"data": {"video_url"}}. Raises ResponseShapeError for anything else.
    """
    candidates: List[Dict[str, Any]] = []
    if isinstance(body, dict):
        candidates.append(body)
        if isinstance(body.get("data"), dict):
            candidates.append(body["data"])

    for node in candidates:
        for key in ("url", "video_url"):
            value = node.get(key)
            if isinstance(value, str) and value.strip():
                thumb = node.get("thumbnail_url") or node.get("thumbnailUrl")
                return {
                    "url": value.strip(),
                    "thumbnail_url": thumb if isinstance(thumb, str) and thumb else None,
                }
    raise ResponseShapeError("Invalid response from Grok API: missing video URL.")


class GrokClient:
    """Thin HTTP client for a single clip-generation endpoint."""

    def __init__(self, config: ProviderConfig, timeout_sec: int = 300, verify_video_urls: bool = False):
        self.config = config
        self.timeout_sec = timeout_sec
        self.verify_video_urls = verify_video_urls

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }

    def generate(
        self,
        prompt: str,
        duration: int,
        reference_images: Optional[Sequence[ReferenceImage]] = None,
    ) -> Dict[str, Optional[str]]:
        payload: Dict[str, Any] = {"prompt": prompt, "duration": duration}
        if reference_images:
            payload["referenceImages"] = [img.to_payload() for img in reference_images]

        try:
            resp = requests.post(
                self.config.endpoint,
                headers=self._headers(),
                json=payload,
                timeout=self.timeout_sec,
            )
        except requests.RequestException as exc:
            raise ProviderRequestError(
                f"Grok API request could not be sent: {exc}."
                + _images_hint(reference_images, "This request included reference images.")
            ) from exc

        if not 200 <= resp.status_code < 300:
            text = (resp.text or "Unknown error")[:_ERROR_BODY_LIMIT]
            raise ProviderRequestError(
                f"Grok API request failed ({resp.status_code}): {text}."
                + _images_hint(
                    reference_images,
                    "This request included reference images. Try removing them if the issue persists.",
                ),
                status_code=resp.status_code,
            )

        try:
            body = resp.json()
        except ValueError as exc:
            raise ResponseShapeError(
                "Invalid response from Grok API: body is not JSON."
                + _images_hint(reference_images, "This request included reference images.")
            ) from exc

        try:
            urls = extract_clip_urls(body)
        except ResponseShapeError as exc:
            raise ResponseShapeError(
                str(exc) + _images_hint(reference_images, "This request included reference images.")
            ) from exc

        if not is_media_url(urls["url"]):
            raise ResponseShapeError(
                f"Grok API returned an invalid video URL: {urls['url']!r}. "
                "The URL does not point to a playable video file."
            )
        if self.verify_video_urls:
            self.verify_video_url(urls["url"])
        return urls

    def verify_video_url(self, url: str) -> None:
        """HEAD the clip URL and insist on a video content type when one is reported."""
        if not url.startswith(("http://", "https://")):
            return
        try:
            resp = requests.head(url, allow_redirects=True, timeout=self.timeout_sec)
        except requests.RequestException as exc:
            raise ResponseShapeError(f"Grok API returned an unreachable video URL: {exc}") from exc
        if not 200 <= resp.status_code < 300:
            raise ResponseShapeError(f"Video URL returned {resp.status_code}")
        content_type = resp.headers.get("content-type", "")
        if content_type and not content_type.startswith("video/"):
            raise ResponseShapeError(f"URL does not point to a video (Content-Type: {content_type})")


class GrokProvider:
    """Remote clip generation against the configured Grok endpoint."""

    kind = ProviderKind.GROK

    def __init__(self, config_store: ProviderConfigStore, timeout_sec: int = 300, verify_video_urls: bool = False):
        self.config_store = config_store
        self.timeout_sec = timeout_sec
        self.verify_video_urls = verify_video_urls

    def is_configured(self) -> bool:
        return self.config_store.is_configured()

    def _client(self) -> GrokClient:
        config = self.config_store.load()
        if config is None:
            raise ConfigurationError(
                "Grok AI is not configured. Please configure Grok settings "
                "(runtime configuration or environment variables) before generating videos."
            )
        return GrokClient(config, timeout_sec=self.timeout_sec, verify_video_urls=self.verify_video_urls)

    async def derive_segments(
        self,
        prompt: str,
        clip_count: int,
        reference_images: Optional[Sequence[ReferenceImage]] = None,
    ) -> List[str]:
        return split_prompt_into_scenes(prompt, clip_count)

    async def generate_clip(
        self,
        prompt: str,
        duration: int,
        index: int,
        reference_images: Optional[Sequence[ReferenceImage]] = None,
    ) -> ClipData:
        client = self._client()
        logger.info(f"Requesting clip {index} ({duration}s) from {client.config.endpoint}")
        urls = await asyncio.to_thread(client.generate, prompt, duration, reference_images)
        try:
            return ClipData(url=urls["url"], thumbnail_url=urls.get("thumbnail_url"), duration=duration, prompt=prompt)
        except ValidationError as exc:
            raise ResponseShapeError(f"Invalid clip data from Grok API: {exc.errors()[0]['msg']}") from exc
