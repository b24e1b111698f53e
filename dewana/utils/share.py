"""Invitation share links for the host dashboard."""

from __future__ import annotations

from urllib.parse import urlencode

WHATSAPP_URL = "https://wa.me/"
FACEBOOK_SHARER_URL = "https://www.facebook.com/sharer/sharer.php"


def share_links(event_url: str) -> dict[str, str]:
    return {
        "url": event_url,
        "whatsapp": f"{WHATSAPP_URL}?{urlencode({'text': f'You are invited! {event_url}'})}",
        "facebook": f"{FACEBOOK_SHARER_URL}?{urlencode({'u': event_url})}",
    }
