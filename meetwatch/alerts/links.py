"""Meeting link detection and provider classification."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from enum import StrEnum
from urllib.parse import urlparse

LOGGER = logging.getLogger("meetwatch.links")

# Only these hosts (and their subdomains) count as joinable meeting links.
TRUSTED_MEETING_DOMAINS: tuple[str, ...] = (
    "meet.google.com",
    "zoom.us",
    "teams.microsoft.com",
    "teams.live.com",
    "webex.com",
    "gotomeeting.com",
    "whereby.com",
    "around.co",
)

_URL_PATTERN = re.compile(r"https?://[^\s<>\"'()\[\]]+", re.IGNORECASE)
_TRAILING_PUNCTUATION = ".,;:!?"


class MeetingProvider(StrEnum):
    MEET = "meet"
    ZOOM = "zoom"
    TEAMS = "teams"
    WEBEX = "webex"
    GENERIC = "generic"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    MeetingProvider.MEET: "Google Meet",
    MeetingProvider.ZOOM: "Zoom",
    MeetingProvider.TEAMS: "Microsoft Teams",
    MeetingProvider.WEBEX: "Cisco Webex",
    MeetingProvider.GENERIC: "Other",
}


def detect_provider(url: str) -> MeetingProvider:
    lowered = url.lower()
    if "meet.google.com" in lowered or "g.co/meet" in lowered:
        return MeetingProvider.MEET
    if "zoom.us" in lowered or lowered.startswith("zoommtg://"):
        return MeetingProvider.ZOOM
    if "teams.microsoft.com" in lowered or "teams.live.com" in lowered or lowered.startswith("msteams://"):
        return MeetingProvider.TEAMS
    if "webex.com" in lowered or lowered.startswith("webex://"):
        return MeetingProvider.WEBEX
    return MeetingProvider.GENERIC


def extract_links(text: str | None) -> list[str]:
    """Return unique http(s) URLs found in ``text`` in order of appearance."""
    if not text:
        return []
    seen: list[str] = []
    for match in _URL_PATTERN.finditer(text):
        url = match.group(0).rstrip(_TRAILING_PUNCTUATION)
        if url and url not in seen:
            seen.append(url)
    return seen


def extract_meeting_links(*texts: str | None) -> tuple[str, ...]:
    """Collect trusted meeting URLs from any number of free-text fields."""
    links: list[str] = []
    for text in texts:
        for url in extract_links(text):
            if is_valid_meeting_url(url) and url not in links:
                links.append(url)
    return tuple(links)


def is_valid_meeting_url(url: str) -> bool:
    """Accept only HTTPS URLs whose host is (a subdomain of) a trusted domain.

    Lookalike hosts such as ``meet.google.com.evil.io`` are rejected.
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if (parsed.scheme or "").lower() != "https":
        LOGGER.debug("Rejected non-HTTPS meeting URL: %s", url)
        return False
    host = (parsed.hostname or "").lower()
    if not host:
        return False
    trusted = any(host == domain or host.endswith(f".{domain}") for domain in TRUSTED_MEETING_DOMAINS)
    if not trusted:
        LOGGER.debug("Rejected untrusted meeting host: %s", host)
    return trusted


def detect_primary_link(links: Iterable[str]) -> str | None:
    """Pick the link to join: Google Meet first, then major video providers, then any trusted link."""
    valid = [url for url in links if is_valid_meeting_url(url)]
    for url in valid:
        if detect_provider(url) is MeetingProvider.MEET:
            return url
    for url in valid:
        if detect_provider(url) in {MeetingProvider.ZOOM, MeetingProvider.TEAMS, MeetingProvider.WEBEX}:
            return url
    return valid[0] if valid else None
