"""Provider detection and embed URLs for the supported video hosts."""

from __future__ import annotations

import re

YOUTUBE_RE = re.compile(r"(?:youtube\.com/watch\?v=|youtu\.be/)([A-Za-z0-9_-]+)")
VIMEO_RE = re.compile(r"vimeo\.com/(\d+)")

# Live mode autoplays with the controls hidden so viewers cannot scrub
YOUTUBE_LIVE_PARAMS = "autoplay=1&controls=0&disablekb=1&modestbranding=1&rel=0"
YOUTUBE_PLAYBACK_PARAMS = "controls=1&modestbranding=1&rel=0"
VIMEO_LIVE_PARAMS = "autoplay=1&controls=0"
VIMEO_PLAYBACK_PARAMS = "controls=1"


def detect_provider(media_ref: str) -> tuple[str | None, str | None]:
    """Return ``(provider, video_id)``; provider is youtube, vimeo, pcloud or None."""
    if "pcloud.link" in media_ref:
        return "pcloud", None
    match = YOUTUBE_RE.search(media_ref)
    if match:
        return "youtube", match.group(1)
    match = VIMEO_RE.search(media_ref)
    if match:
        return "vimeo", match.group(1)
    return None, None


def embed_url(media_ref: str, live: bool, start_seconds: int = 0) -> str:
    """Embeddable player URL for ``media_ref``.

    In live mode a positive ``start_seconds`` joins the broadcast in
    progress. Unknown hosts and pCloud links are returned unchanged.
    """
    provider, video_id = detect_provider(media_ref)
    if provider == "youtube":
        params = YOUTUBE_LIVE_PARAMS if live else YOUTUBE_PLAYBACK_PARAMS
        if live and start_seconds > 0:
            params += f"&start={start_seconds}"
        return f"https://www.youtube.com/embed/{video_id}?{params}&enablejsapi=1"
    if provider == "vimeo":
        params = VIMEO_LIVE_PARAMS if live else VIMEO_PLAYBACK_PARAMS
        url = f"https://player.vimeo.com/video/{video_id}?{params}"
        if live and start_seconds > 0:
            url += f"#t={start_seconds}s"
        return url
    return media_ref
