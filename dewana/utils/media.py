"""Recognition of third-party video and photo links shown on event pages."""

from __future__ import annotations

import re
from urllib.parse import parse_qs, urlparse

from . import normalize_social_links

_youtube_hosts = {"youtube.com", "www.youtube.com", "m.youtube.com", "music.youtube.com"}
_youtube_short_hosts = {"youtu.be", "www.youtu.be"}
_instagram_hosts = {"instagram.com", "www.instagram.com", "m.instagram.com"}

_video_id_pattern = re.compile(r"^[A-Za-z0-9_-]{11}$")
_youtube_channel_pattern = re.compile(r"^/(@[^/]+|channel/[^/]+|c/[^/]+|user/[^/]+)/?")
_youtube_path_id_pattern = re.compile(r"^/(?:embed|shorts|live|v)/([A-Za-z0-9_-]{11})")
_instagram_post_pattern = re.compile(r"^/(p|reel|reels|tv)/([A-Za-z0-9_-]+)/?")
_instagram_reserved = {"explore", "accounts", "stories", "direct", "about", "developer"}


def _parse(url: str | None):
    cleaned = (url or "").strip()
    if not cleaned:
        return None
    if "://" not in cleaned:
        cleaned = f"https://{cleaned}"
    parsed = urlparse(cleaned)
    if parsed.scheme not in {"http", "https"} or not parsed.hostname:
        return None
    return parsed


def youtube_video_id(url: str | None) -> str | None:
    parsed = _parse(url)
    if parsed is None:
        return None
    host = parsed.hostname.lower()
    if host in _youtube_short_hosts:
        candidate = parsed.path.strip("/").split("/")[0]
        return candidate if _video_id_pattern.match(candidate) else None
    if host not in _youtube_hosts:
        return None
    if parsed.path == "/watch":
        candidate = (parse_qs(parsed.query).get("v") or [""])[0]
        return candidate if _video_id_pattern.match(candidate) else None
    match = _youtube_path_id_pattern.match(parsed.path)
    return match.group(1) if match else None


def is_youtube_channel_url(url: str | None) -> bool:
    parsed = _parse(url)
    if parsed is None or parsed.hostname.lower() not in _youtube_hosts:
        return False
    return bool(_youtube_channel_pattern.match(parsed.path))


def youtube_embed_url(url: str | None) -> str | None:
    video_id = youtube_video_id(url)
    if video_id is None:
        return None
    return f"https://www.youtube.com/embed/{video_id}"


def is_instagram_url(url: str | None) -> bool:
    parsed = _parse(url)
    return parsed is not None and parsed.hostname.lower() in _instagram_hosts


def is_instagram_post_url(url: str | None) -> bool:
    parsed = _parse(url)
    if parsed is None or parsed.hostname.lower() not in _instagram_hosts:
        return False
    return bool(_instagram_post_pattern.match(parsed.path))


def is_instagram_profile_url(url: str | None) -> bool:
    parsed = _parse(url)
    if parsed is None or parsed.hostname.lower() not in _instagram_hosts:
        return False
    segments = [part for part in parsed.path.split("/") if part]
    return len(segments) == 1 and segments[0].lower() not in _instagram_reserved


def instagram_embed_url(url: str | None) -> str | None:
    parsed = _parse(url)
    if parsed is None or parsed.hostname.lower() not in _instagram_hosts:
        return None
    match = _instagram_post_pattern.match(parsed.path)
    if not match:
        return None
    kind = "reel" if match.group(1) in {"reel", "reels"} else match.group(1)
    return f"https://www.instagram.com/{kind}/{match.group(2)}/embed"


def media_highlights(event) -> dict:
    """Collect the embeddable media for an event page.

    Returns the YouTube embed (for a video) or channel link, one entry per
    Instagram social link, and the photo album URL. Non-Instagram social
    links are left out, matching how the page renders them.
    """
    instagram = []
    for link in normalize_social_links(event.custom_social_links):
        if not is_instagram_url(link["url"]):
            continue
        is_post = is_instagram_post_url(link["url"])
        instagram.append(
            {
                "platform": link["platform"],
                "url": link["url"],
                "is_post": is_post,
                "is_profile": is_instagram_profile_url(link["url"]),
                "embed_url": instagram_embed_url(link["url"]) if is_post else None,
            }
        )
    return {
        "youtube_embed_url": youtube_embed_url(event.youtube_link),
        "youtube_channel_url": (
            event.youtube_link.strip()
            if is_youtube_channel_url(event.youtube_link)
            else None
        ),
        "instagram": instagram,
        "photos_url": event.google_photos_url or None,
    }
