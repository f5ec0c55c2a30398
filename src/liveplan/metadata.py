"""Best-effort media duration lookup through the hosts' oEmbed endpoints.

Only Vimeo reports a real duration. YouTube's oEmbed has none and pCloud
links have no metadata endpoint, so both get a one-hour estimate. Any
failure yields no duration and the engine falls back to its configured
fallback duration.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import requests

from .embed import detect_provider
from .errors import DurationUnavailable

logger = logging.getLogger("liveplan.metadata")

YOUTUBE_OEMBED_URL = "https://www.youtube.com/oembed"
VIMEO_OEMBED_URL = "https://vimeo.com/api/oembed.json"
ESTIMATED_DURATION_S = 3600


@dataclass(frozen=True)
class MediaMetadata:
    provider: str
    duration_seconds: int
    title: str = ""


def _get_json(url: str, params: dict, timeout: float) -> dict:
    try:
        resp = requests.get(url, params=params, timeout=timeout)
    except requests.RequestException as e:
        raise DurationUnavailable(f"Request to {url} failed: {e}") from e
    if not resp.ok:
        raise DurationUnavailable(f"{url} returned HTTP {resp.status_code}")
    try:
        data = resp.json()
    except ValueError as e:
        raise DurationUnavailable(f"{url} returned invalid JSON") from e
    if not isinstance(data, dict):
        raise DurationUnavailable(f"{url} returned unexpected payload")
    return data


def fetch_metadata(media_ref: str, timeout: float = 10) -> MediaMetadata:
    """Look up provider, duration and title for ``media_ref``.

    Raises:
        DurationUnavailable: unsupported host, network error or a response
            without a usable duration.
    """
    provider, video_id = detect_provider(media_ref)

    if provider == "pcloud":
        return MediaMetadata("pcloud", ESTIMATED_DURATION_S, "pCloud Video")

    if provider == "youtube":
        data = _get_json(
            YOUTUBE_OEMBED_URL,
            {"url": f"https://www.youtube.com/watch?v={video_id}", "format": "json"},
            timeout,
        )
        return MediaMetadata("youtube", ESTIMATED_DURATION_S, str(data.get("title", "")))

    if provider == "vimeo":
        data = _get_json(VIMEO_OEMBED_URL, {"url": f"https://vimeo.com/{video_id}"}, timeout)
        duration = data.get("duration")
        if isinstance(duration, bool) or not isinstance(duration, (int, float)) or duration <= 0:
            raise DurationUnavailable(f"Vimeo video {video_id} reported no duration")
        return MediaMetadata("vimeo", int(duration), str(data.get("title", "")))

    raise DurationUnavailable(f"Unsupported video provider: {media_ref}")


def fetch_duration(media_ref: str, timeout: float = 10) -> int | None:
    """Duration in seconds, or None when it cannot be determined."""
    try:
        return fetch_metadata(media_ref, timeout).duration_seconds
    except DurationUnavailable as e:
        logger.info("Duration unavailable, using fallback: %s", e)
        return None
