"""Gmail labels and their terminal colours."""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from gmail_reader import display
from gmail_reader.gmail.client import GmailClient

logger = structlog.get_logger()

INBOX = "INBOX"
TRASH = "TRASH"
UNREAD = "UNREAD"
STARRED = "STARRED"

DEFAULT_INBOX_FG = "#000000"
DEFAULT_INBOX_BG = "#ffffff"

# Returned by color_index for colours missing from COLOR_TABLE.
FOREGROUND_FALLBACK = 50
BACKGROUND_FALLBACK = 200

# Gmail label palette colour -> 256-colour terminal palette index.
COLOR_TABLE: dict[str, int] = {
    # Shades of grey.
    "#000000": 232,
    "#434343": 240,
    "#666666": 238,
    "#999999": 248,
    "#cccccc": 240,
    "#efefef": 240,
    "#f3f3f3": 240,
    "#ffffff": 255,
    "#4986e7": 21,  # non-standard blue
    "#fb4c2f": 9,
    "#ffad46": 208,  # non-standard orange
    "#ffad47": 240,
    "#fad165": 240,
    "#16a766": 240,
    "#16a765": 28,  # non-standard green
    "#43d692": 240,
    "#4a86e8": 240,
    "#a479e2": 240,
    "#f691b3": 240,
    "#f6c5be": 240,
    "#ffe6c7": 240,
    "#fef1d1": 240,
    "#b9e4d0": 240,
    "#c6f3de": 200,
    "#c9daf8": 200,
    "#e4d7f5": 200,
    "#fcdee8": 200,
    "#efa093": 200,
    "#ffd6a2": 200,
    "#fce8b3": 200,
    "#89d3b2": 200,
    "#a0eac9": 200,
    "#a4c2f4": 200,
    "#d0bcf1": 200,
    "#fbc8d9": 200,
    "#e66550": 200,
    "#ffbc6b": 200,
    "#fcda83": 200,
    "#44b984": 200,
    "#68dfa9": 200,
    "#6d9eeb": 200,
    "#b694e8": 200,
    "#f7a7c0": 200,
    "#cc3a21": 200,
    "#eaa041": 200,
    "#f2c960": 200,
    "#149e60": 200,
    "#3dc789": 200,
    "#3c78d8": 200,
    "#8e63ce": 200,
    "#e07798": 200,
    "#ac2b16": 200,
    "#cf8933": 200,
    "#d5ae49": 200,
    "#0b804b": 200,
    "#2a9c68": 200,
    "#285bac": 200,
    "#653e9b": 200,
    "#b65775": 200,
    "#822111": 200,
    "#a46a21": 200,
    "#aa8831": 200,
    "#076239": 200,
    "#1a764d": 200,
    "#1c4587": 200,
    "#41236d": 200,
    "#83334c": 200,
    "#711a36": 52,  # non-standard maroon
    "#fbd3e0": 205,  # non-standard pink
    "#fbe983": 11,  # non-standard yellow
    "#594c05": 58,  # non-standard dark yellow
    "#b3efd3": 79,  # non-standard light green
    "#0b4f30": 22,  # non-standard green
}


def color_index(hex_color: str | None, fallback: int = FOREGROUND_FALLBACK) -> int:
    """Map a Gmail hex colour to a 256-colour palette index.

    Unknown colours log a warning and return ``fallback``.
    """

    index = COLOR_TABLE.get((hex_color or "").strip().lower())
    if index is None:
        logger.warning("unknown_label_color", color=hex_color, fallback=fallback)
        return fallback
    return index


def color_pair(fg: str | None, bg: str | None) -> str:
    return display.color_escape(
        color_index(fg, FOREGROUND_FALLBACK),
        color_index(bg, BACKGROUND_FALLBACK),
    )


class Label:
    """A Gmail label, shared by every message that carries its ID.

    Metadata is loaded lazily; until then the name is a placeholder.
    """

    def __init__(self, label_id: str, name: str = "<unknown>") -> None:
        self.id = label_id
        self.name = name
        self.text_color: str | None = None
        self.background_color: str | None = None
        self._loaded = False
        self._lock = asyncio.Lock()
        self._loading: asyncio.Future[None] | None = None

    def __repr__(self) -> str:
        return f"Label(id={self.id!r}, name={self.name!r}, loaded={self._loaded})"

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def load(self, client: GmailClient) -> None:
        """Fetch metadata once; concurrent callers share the request."""

        if self._loaded:
            return
        if self._loading is None or self._loading.done():
            self._loading = asyncio.ensure_future(self._fetch(client))
        await asyncio.shield(self._loading)

    async def update(self, response: dict[str, Any]) -> None:
        async with self._lock:
            self.name = str(response.get("name") or self.name)
            color = response.get("color") or {}
            self.text_color = color.get("textColor")
            self.background_color = color.get("backgroundColor")
            self._loaded = True

    async def _fetch(self, client: GmailClient) -> None:
        logger.info("late_loading_label", label_id=self.id)
        response = await client.get_label(self.id)
        await self.update(response)

    def color_escape(self) -> str:
        """Return the escape sequence for this label, or "" if it has no colours."""

        if not self._loaded:
            return ""
        if self.text_color is None and self.background_color is None:
            if self.id == INBOX:
                return color_pair(DEFAULT_INBOX_FG, DEFAULT_INBOX_BG)
            return ""
        return color_pair(self.text_color, self.background_color)

    def label_string(self) -> str:
        if not self._loaded:
            logger.error("label_not_loaded", label_id=self.id)
            return f"<label {self.id} not loaded>"
        return f"{self.color_escape() or display.NORMAL}{self.name}{display.NORMAL}"

    def color_char(self) -> str:
        """First character of the name in the label's colours, or "" if uncoloured."""

        c = self.color_escape()
        if not c or not self.name:
            return ""
        return f"{c}{self.name[0]}"
