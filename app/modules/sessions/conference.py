"""Video conference room references for confirmed sessions."""

from __future__ import annotations

from typing import Protocol
from uuid import UUID

from app.core.config import get_settings


class ConferenceProvider(Protocol):
    def room_for(self, session_id: UUID) -> str:
        """Return a stable room reference for the session."""


class UrlConferenceProvider:
    """Derives a room URL from the session id."""

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url.rstrip("/")

    def room_for(self, session_id: UUID) -> str:
        return f"{self.base_url}/{session_id.hex}"


def get_conference_provider() -> ConferenceProvider:
    return UrlConferenceProvider(get_settings().conference_base_url)
