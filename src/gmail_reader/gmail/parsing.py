"""Helpers for parsing Gmail API payloads into internal models."""

from __future__ import annotations

from datetime import datetime
from email.utils import getaddresses, parsedate_to_datetime
from typing import Any

import structlog

from gmail_reader.exceptions import DecodeError
from gmail_reader.models import MimeContainer, MimeLeaf, MimePart

logger = structlog.get_logger()


def header_map(payload: dict[str, Any] | None) -> dict[str, str]:
    """Build a lowercased header mapping from a payload.

    Duplicate headers keep the last value.
    """

    result: dict[str, str] = {}
    for h in (payload or {}).get("headers") or []:
        name = h.get("name")
        value = h.get("value")
        if isinstance(name, str) and isinstance(value, str):
            result[name.lower()] = value
    return result


def _header_pairs(payload: dict[str, Any]) -> tuple[tuple[str, str], ...]:
    pairs = []
    for h in payload.get("headers") or []:
        name = h.get("name")
        value = h.get("value")
        if isinstance(name, str) and isinstance(value, str):
            pairs.append((name, value))
    return tuple(pairs)


def payload_to_part(payload: dict[str, Any] | None) -> MimePart:
    """Convert a Gmail ``MessagePart`` dict into a :data:`MimePart` tree.

    Args:
        payload: The ``payload`` field of a ``format=full`` message.

    Returns:
        The root of the part tree.

    Raises:
        DecodeError: If the payload is missing or not a mapping.
    """

    if not isinstance(payload, dict):
        raise DecodeError("message has no payload")

    mime_type = str(payload.get("mimeType") or "text/plain").lower()
    headers = _header_pairs(payload)
    children = payload.get("parts") or []

    if children or mime_type.startswith("multipart/"):
        return MimeContainer(
            mime_type=mime_type,
            parts=tuple(payload_to_part(p) for p in children),
            headers=headers,
        )

    body = payload.get("body") or {}
    return MimeLeaf(
        mime_type=mime_type,
        data=str(body.get("data") or ""),
        headers=headers,
        filename=str(payload.get("filename") or ""),
        attachment_id=body.get("attachmentId") or None,
    )


def parse_address_list(value: str | None) -> list[str]:
    if not value:
        return []
    # getaddresses returns list[(name, addr)]
    return [addr for _, addr in getaddresses([value]) if addr]


def display_name(value: str) -> str:
    """Return the display name of an address, falling back to the address."""

    pairs = getaddresses([value])
    if not pairs or not (pairs[0][0] or pairs[0][1]):
        logger.warning("invalid_address", value=value)
        return value
    name, addr = pairs[0]
    return name or addr


def filter_addresses(sender: str, candidates: list[str]) -> list[str]:
    """Drop the sender and duplicates from a list of address header values.

    Each candidate may itself hold several comma-separated addresses; it is
    kept whole unless every address in it was already seen.
    """

    seen = set(parse_address_list(sender))
    result: list[str] = []
    for value in candidates:
        addrs = parse_address_list(value)
        if not addrs:
            logger.warning("invalid_address", value=value)
            result.append(value)
            continue
        if all(a in seen for a in addrs):
            continue
        seen.update(addrs)
        result.append(value)
    return result


def parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError, OverflowError):
        return None
