"""Byte-level transforms for Gmail payloads.

Gmail returns bodies and attachments in the URL-safe base64 alphabet
(``-`` and ``_`` instead of ``+`` and ``/``). MIME parts found inside
decrypted envelopes still carry their own Content-Transfer-Encoding and
charset, which :func:`normalize` undoes.
"""

from __future__ import annotations

import base64
import binascii
import codecs
import re
from collections.abc import Iterable, Mapping
from email.message import Message
from email.utils import collapse_rfc2231_value
from typing import Union

import structlog

from gmail_reader.exceptions import DecodeError

logger = structlog.get_logger()

_URLSAFE_RE = re.compile(r"^[A-Za-z0-9_-]*={0,2}$")
_UNPRINTABLE_RE = re.compile(r"[\x1b\r]")

HeaderSource = Union[Mapping[str, str], Iterable[tuple[str, str]], Message]


def encode(data: bytes | str) -> str:
    """Encode bytes into Gmail's URL-safe base64 variant."""

    if isinstance(data, str):
        data = data.encode("utf-8")
    return base64.urlsafe_b64encode(data).decode("ascii")


def decode(text: str) -> bytes:
    """Decode Gmail's URL-safe base64 variant.

    Args:
        text: Encoded text. Missing ``=`` padding is tolerated.

    Returns:
        The decoded bytes.

    Raises:
        DecodeError: If the text contains characters outside the URL-safe
            alphabet, including the standard ``+`` and ``/``.
    """

    text = "".join(text.split())
    if not _URLSAFE_RE.match(text):
        raise DecodeError("data is not URL-safe base64")
    text += "=" * (-len(text) % 4)
    try:
        return base64.urlsafe_b64decode(text)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"malformed base64: {exc}") from exc


def decode_text(text: str, charset: str | None = None) -> str:
    """Decode URL-safe base64 and then the named charset."""

    return _to_unicode(decode(text), charset)


def strip_unprintable(text: str) -> str:
    """Remove escape characters and carriage returns before terminal display."""

    return _UNPRINTABLE_RE.sub("", text)


def content_type_params(value: str | None) -> tuple[str, dict[str, str]]:
    """Split a Content-Type value into lowercased media type and parameters."""

    msg = Message()
    msg["Content-Type"] = value or "text/plain"
    params: dict[str, str] = {}
    for key, val in msg.get_params(failobj=[])[1:]:
        params[key.lower()] = collapse_rfc2231_value(val)
    return msg.get_content_type(), params


def charset_of(content_type: str | None) -> str | None:
    _, params = content_type_params(content_type)
    return params.get("charset")


def normalize(headers: HeaderSource, data: bytes | str) -> str:
    """Undo transfer encoding and charset, returning text.

    Args:
        headers: Part headers, as a mapping, ``(name, value)`` pairs or an
            ``email.message.Message``.
        data: The raw part body.

    Returns:
        The part body as ``str``.

    Raises:
        DecodeError: If the transfer encoding is malformed.
    """

    lookup = _header_lookup(headers)
    if isinstance(data, str):
        data = data.encode("latin-1", errors="replace")

    cte = (lookup("content-transfer-encoding") or "").strip().lower()
    if cte == "quoted-printable":
        data = binascii.a2b_qp(data)
    elif cte == "base64":
        try:
            data = base64.b64decode(data)
        except (binascii.Error, ValueError) as exc:
            raise DecodeError(f"malformed base64 part: {exc}") from exc

    return _to_unicode(data, charset_of(lookup("content-type")))


def _header_lookup(headers: HeaderSource):
    if isinstance(headers, Message):
        return headers.get
    if isinstance(headers, Mapping):
        items = list(headers.items())
    else:
        items = list(headers)
    lowered = {name.lower(): value for name, value in items}
    return lowered.get


def _to_unicode(data: bytes, charset: str | None) -> str:
    if not charset:
        return data.decode("utf-8", errors="replace")
    try:
        codec = codecs.lookup(charset.strip().strip('"'))
    except LookupError:
        logger.warning("unknown_charset", charset=charset)
        return data.decode("utf-8", errors="replace")
    return data.decode(codec.name, errors="replace")
