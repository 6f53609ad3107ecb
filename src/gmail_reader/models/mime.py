"""Recursive MIME part tree.

A tree is parsed fresh from a provider payload for every full load and is
discarded once reduced to text. Attachments copy out the fields they need.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

Header = tuple[str, str]


def _header(headers: tuple[Header, ...], name: str) -> str | None:
    wanted = name.lower()
    for key, value in headers:
        if key.lower() == wanted:
            return value
    return None


@dataclass(frozen=True)
class MimeLeaf:
    """A part with content and no children."""

    mime_type: str
    # Body in the provider's URL-safe base64 variant; empty if only attachment_id is set.
    data: str = ""
    headers: tuple[Header, ...] = ()
    filename: str = ""
    attachment_id: str | None = None

    def header(self, name: str) -> str | None:
        return _header(self.headers, name)


@dataclass(frozen=True)
class MimeContainer:
    """A multipart part holding an ordered list of children."""

    mime_type: str
    parts: tuple["MimePart", ...] = field(default_factory=tuple)
    headers: tuple[Header, ...] = ()

    def header(self, name: str) -> str | None:
        return _header(self.headers, name)


MimePart = Union[MimeLeaf, MimeContainer]
