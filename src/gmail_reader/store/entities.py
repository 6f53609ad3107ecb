"""Messages and drafts with incrementally fetched, cached content.

An entity records how much of itself is known (its :class:`FetchLevel`) and
only talks to Gmail when a caller asks for more. Every load builds a complete
snapshot without holding the entity lock and then swaps it in under the lock,
so a failed or cancelled load leaves the previous snapshot untouched.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from functools import partial
from typing import TYPE_CHECKING, Any

import structlog

from gmail_reader import display
from gmail_reader.exceptions import (
    BadSignatureError,
    CryptoError,
    DecodeError,
    DecryptFailedError,
    NotFoundError,
    RemoteFetchError,
)
from gmail_reader.gmail import transcoding
from gmail_reader.gmail.client import GmailClient
from gmail_reader.gmail.parsing import (
    display_name,
    filter_addresses,
    header_map,
    parse_date,
    payload_to_part,
)
from gmail_reader.models import (
    FetchLevel,
    InlineSignatureFailure,
    MimeContainer,
    MimeLeaf,
    MimePart,
    TrustStatus,
)
from gmail_reader.rendering.materializer import iter_attachment_parts
from gmail_reader.store.labels import UNREAD, Label

if TYPE_CHECKING:
    from gmail_reader.store.connection import Connection

logger = structlog.get_logger()

_MISSING: Any = object()


class Attachment:
    """An attachment of a message, downloaded on first use and cached."""

    def __init__(
        self,
        client: GmailClient,
        message_id: str,
        *,
        attachment_id: str | None,
        filename: str,
        mime_type: str,
        headers: tuple[tuple[str, str], ...] = (),
        data: str = "",
    ) -> None:
        self.message_id = message_id
        self.id = attachment_id
        self.filename = filename
        self.mime_type = mime_type
        self.headers = headers
        self._client = client
        self._data = data
        self._contents: bytes | None = None

    @classmethod
    def from_leaf(cls, client: GmailClient, message_id: str, leaf: MimeLeaf) -> "Attachment":
        return cls(
            client,
            message_id,
            attachment_id=leaf.attachment_id,
            filename=leaf.filename,
            mime_type=leaf.mime_type,
            headers=leaf.headers,
            data=leaf.data,
        )

    def __repr__(self) -> str:
        return f"Attachment(message_id={self.message_id!r}, filename={self.filename!r})"

    async def download(self) -> bytes:
        """Return the attachment contents, fetching them the first time.

        Raises:
            RemoteFetchError: If the attachment cannot be fetched.
            DecodeError: If the attachment data is malformed.
        """

        if self._contents is not None:
            return self._contents
        data = self._data
        if self.id:
            data = await self._client.get_attachment(self.message_id, self.id)
        self._contents = transcoding.decode(data)
        return self._contents


@dataclass
class _Snapshot:
    level: FetchLevel
    thread_id: str | None
    label_ids: list[str]
    headers: dict[str, str]
    body: str = ""
    body_html: str = ""
    original_body: str = ""
    trust_status: TrustStatus | None = None
    crypto_error: CryptoError | None = None
    inline_failures: list[InlineSignatureFailure] = field(default_factory=list)
    attachments: list[Attachment] = field(default_factory=list)


class _InFlight:
    __slots__ = ("task", "waiters")

    def __init__(self, task: asyncio.Future[None]) -> None:
        self.task = task
        self.waiters = 0


class MailEntity(ABC):
    """State shared by messages and drafts.

    Instances are obtained from :class:`~gmail_reader.store.connection.Connection`,
    which guarantees one instance per ID.
    """

    kind = "entity"

    def __init__(self, conn: "Connection", entity_id: str) -> None:
        self.id = entity_id
        self._conn = conn
        self._lock = asyncio.Lock()
        self._level = FetchLevel.EMPTY
        self._generation = 0
        # Bumped by every remote label change; older loads keep their hands off the labels.
        self._label_generation = 0
        self._inflight: dict[FetchLevel, _InFlight] = {}

        self._thread_id: str | None = None
        self._label_ids: list[str] = []
        self._headers: dict[str, str] = {}
        self._raw: bytes | None = None
        self._body = ""
        self._body_html = ""
        self._original_body = ""
        self._trust_status: TrustStatus | None = None
        self._crypto_error: CryptoError | None = None
        self._inline_failures: list[InlineSignatureFailure] = []
        self._attachments: list[Attachment] = []

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, level={self._level.value})"

    @property
    def level(self) -> FetchLevel:
        return self._level

    @property
    def crypto_error(self) -> CryptoError | None:
        """Envelope-level crypto failure from the last full load, if any."""
        return self._crypto_error

    @property
    def inline_signature_failures(self) -> list[InlineSignatureFailure]:
        return list(self._inline_failures)

    def has_data(self, level: FetchLevel) -> bool:
        return self._level.satisfies(level)

    @abstractmethod
    async def _fetch(self, format: str) -> dict[str, Any]:
        """Fetch the Gmail message resource in the given format."""

    # Level cache

    async def ensure_level(self, level: FetchLevel) -> None:
        """Make sure at least ``level`` worth of data is cached.

        Concurrent callers share a single fetch per level.

        Raises:
            RemoteFetchError: If Gmail cannot be reached.
            DecodeError: If the response is malformed.
        """

        if self._level.satisfies(level):
            return
        await self._join(level, force=False)

    async def reload(self) -> None:
        """Refetch at the current level, regardless of what is cached."""

        level = self._level if self._level is not FetchLevel.EMPTY else FetchLevel.MINIMAL
        await self._join(level, force=True)

    async def _join(self, level: FetchLevel, *, force: bool) -> None:
        flight = None if force else self._find_inflight(level)
        if flight is None:
            flight = _InFlight(asyncio.ensure_future(self._load(level, force=force)))
            self._inflight[level] = flight
            flight.task.add_done_callback(partial(self._forget, level, flight))

        flight.waiters += 1
        try:
            await asyncio.shield(flight.task)
        finally:
            flight.waiters -= 1
            if flight.waiters == 0 and not flight.task.done():
                # Nobody is waiting any more.
                flight.task.cancel()

    def _find_inflight(self, level: FetchLevel) -> _InFlight | None:
        for pending_level, flight in self._inflight.items():
            if pending_level.satisfies(level) and not flight.task.done():
                return flight
        return None

    def _forget(self, level: FetchLevel, flight: _InFlight, _task: asyncio.Future[None]) -> None:
        if self._inflight.get(level) is flight:
            del self._inflight[level]

    async def _load(self, level: FetchLevel, *, force: bool) -> None:
        generation = self._generation
        label_generation = self._label_generation
        st = time.monotonic()
        logger.debug("loading_entity", kind=self.kind, entity_id=self.id, level=level.value)

        resource = await self._fetch(level.value)
        snapshot = await self._build_snapshot(resource, level)

        async with self._lock:
            if generation != self._generation:
                logger.info("stale_load_discarded", kind=self.kind, entity_id=self.id)
                return
            if not force and not snapshot.level.satisfies(self._level):
                return
            self._apply(snapshot, labels=label_generation == self._label_generation)

        logger.debug(
            "entity_loaded",
            kind=self.kind,
            entity_id=self.id,
            level=level.value,
            elapsed=time.monotonic() - st,
        )

    def _apply(self, snapshot: _Snapshot, *, labels: bool = True) -> None:
        # Called with the entity lock held.
        self._level = snapshot.level
        self._thread_id = snapshot.thread_id
        if labels:
            self._label_ids = snapshot.label_ids
        self._headers = snapshot.headers
        if snapshot.level is FetchLevel.FULL:
            self._body = snapshot.body
            self._body_html = snapshot.body_html
            self._original_body = snapshot.original_body
            self._trust_status = snapshot.trust_status
            self._crypto_error = snapshot.crypto_error
            self._inline_failures = snapshot.inline_failures
            self._attachments = snapshot.attachments

    async def _invalidate(self) -> None:
        async with self._lock:
            self._generation += 1
            self._level = FetchLevel.EMPTY
            self._raw = None

    async def _build_snapshot(self, message: dict[str, Any], level: FetchLevel) -> _Snapshot:
        payload = message.get("payload")
        if level is not FetchLevel.MINIMAL and not isinstance(payload, dict):
            raise DecodeError(f"{self.kind} {self.id}: response has no payload")

        label_ids = message.get("labelIds") or []
        snapshot = _Snapshot(
            level=level,
            thread_id=message.get("threadId"),
            label_ids=[str(x) for x in label_ids if isinstance(x, str)],
            headers=header_map(payload),
        )
        if level is FetchLevel.FULL:
            await self._materialize(snapshot, payload_to_part(payload))
        return snapshot

    async def _materialize(self, snapshot: _Snapshot, root: MimePart) -> None:
        materializer = self._conn.materializer
        trust = self._conn.trust
        attachment_roots: list[MimePart] = []

        if isinstance(root, MimeContainer) and root.mime_type == "multipart/encrypted":
            try:
                decrypted = await trust.decrypt(self.id, root)
            except (CryptoError, DecodeError) as exc:
                logger.error("decrypt_failed", kind=self.kind, entity_id=self.id, error=str(exc))
                snapshot.crypto_error = exc if isinstance(exc, CryptoError) else DecryptFailedError(str(exc))
                snapshot.body = snapshot.body_html = display.error_marker("Decrypting GPG", exc)
            else:
                snapshot.trust_status = decrypted.status
                if decrypted.root is not None:
                    snapshot.body = await materializer.reduce(decrypted.root, prefer_html=False) or ""
                    snapshot.body_html = await materializer.reduce(decrypted.root, prefer_html=True) or ""
                    attachment_roots.append(decrypted.root)
                else:
                    snapshot.body = snapshot.body_html = decrypted.text or ""
        else:
            snapshot.body_html = await materializer.reduce(root, prefer_html=True) or ""
            snapshot.body = await materializer.reduce(root, prefer_html=False) or ""
            attachment_roots.append(root)

        if isinstance(root, MimeContainer) and root.mime_type == "multipart/signed":
            try:
                status = await trust.verify_signed(self.id, root)
                snapshot.trust_status = status
                if not status.good:
                    raise BadSignatureError(f"signature by {status.signer or 'unknown signer'} is not good")
            except (CryptoError, DecodeError) as exc:
                logger.error("signature_check_failed", kind=self.kind, entity_id=self.id, error=str(exc))
                snapshot.crypto_error = exc if isinstance(exc, CryptoError) else CryptoError(str(exc))
                marker = display.error_marker("Checking signature", exc)
                snapshot.body = f"{marker}\n{snapshot.body}" if snapshot.body else marker
                snapshot.body_html = f"{marker}\n{snapshot.body_html}" if snapshot.body_html else marker

        snapshot.original_body = snapshot.body
        snapshot.body, snapshot.inline_failures = await trust.annotate_inline(snapshot.body)

        placeholders = []
        for r in attachment_roots:
            for leaf in iter_attachment_parts(r):
                attachment = Attachment.from_leaf(self._conn.client, self.id, leaf)
                snapshot.attachments.append(attachment)
                placeholders.append(display.attachment_marker(attachment.filename or "unnamed"))
        if placeholders:
            joined = "\n".join(placeholders)
            snapshot.body = f"{snapshot.body}\n{joined}" if snapshot.body else joined

    # Accessors

    async def get_header(self, name: str, default: Any = _MISSING) -> str:
        """Return a header value, stripped of unprintable characters.

        Raises:
            NotFoundError: If the header is absent and no default was given.
        """

        await self.ensure_level(FetchLevel.METADATA)
        value = self._headers.get(name.lower())
        if value is None:
            if default is not _MISSING:
                return default
            raise NotFoundError(f"header {name!r} not found in {self.kind} {self.id!r}")
        return transcoding.strip_unprintable(value)

    async def thread_id(self) -> str | None:
        await self.ensure_level(FetchLevel.MINIMAL)
        return self._thread_id

    async def attachments(self) -> list[Attachment]:
        await self.ensure_level(FetchLevel.FULL)
        return list(self._attachments)

    async def get_body(self) -> str:
        await self.ensure_level(FetchLevel.FULL)
        return self._body

    async def get_body_html(self) -> str:
        await self.ensure_level(FetchLevel.FULL)
        return self._body_html

    async def get_unpatched_body(self) -> str:
        """Body before clear-signed blocks were annotated."""
        await self.ensure_level(FetchLevel.FULL)
        return self._original_body

    async def get_trust_status(self) -> TrustStatus | None:
        await self.ensure_level(FetchLevel.FULL)
        return self._trust_status

    async def raw(self) -> bytes:
        """Return the full RFC 2822 source, fetched once and cached."""

        if self._raw is not None:
            return self._raw
        resource = await self._fetch("raw")
        raw = transcoding.decode(str(resource.get("raw") or ""))
        async with self._lock:
            if self._raw is None:
                self._raw = raw
        return self._raw

    # Labels

    def has_label(self, label_id: str) -> bool:
        return label_id in self._label_ids

    def is_unread(self) -> bool:
        return self.has_label(UNREAD)

    def local_labels(self) -> list[str]:
        """Label IDs as currently cached; empty if nothing was fetched yet."""
        return list(self._label_ids)

    async def get_labels(self) -> list[Label]:
        """Resolved labels of this entity, excluding UNREAD."""

        await self.ensure_level(FetchLevel.MINIMAL)
        labels = []
        for label_id in list(self._label_ids):
            if label_id == UNREAD:
                continue
            try:
                label = await self._conn.resolve_label(label_id)
            except RemoteFetchError as exc:
                logger.error("label_fetch_failed", label_id=label_id, error=str(exc))
                label = self._conn.label(label_id)
            labels.append(label)
        return labels

    async def get_labels_string(self) -> str:
        return ", ".join(label.label_string() for label in await self.get_labels())

    async def get_label_colors(self, exclude: str | None = None) -> tuple[str, str]:
        """Return coloured label initials and coloured label names, skipping ``exclude``."""

        chars, names = [], []
        for label in await self.get_labels():
            if label.id == exclude:
                continue
            c = label.color_char()
            if c:
                chars.append(c)
                names.append(label.label_string())
        return "".join(chars), " ".join(names)

    # Addresses and dates

    async def get_from(self) -> str:
        """Display name of the sender, or the address if there is none."""
        return display_name(await self.get_header("From"))

    async def get_reply_to(self) -> str:
        value = await self.get_header("Reply-To", default="")
        if value:
            return value
        return await self.get_header("From")

    async def get_reply_to_all(self) -> tuple[str, str]:
        """Return the reply address and the CC list for a reply-to-all."""

        reply_to = await self.get_reply_to()
        candidates = []
        sender = await self.get_header("From")
        if sender != reply_to:
            candidates.append(sender)
        for name in ("Cc", "To"):
            value = await self.get_header(name, default="")
            if value:
                candidates.append(value)
        return reply_to, ", ".join(filter_addresses(reply_to, candidates))

    async def get_original_time(self) -> datetime:
        value = await self.get_header("Date")
        ts = parse_date(value)
        if ts is None:
            raise DecodeError(f"unparseable Date header {value!r} in {self.kind} {self.id!r}")
        return ts

    async def get_time(self) -> datetime:
        return (await self.get_original_time()).astimezone()

    async def get_time_fmt(self, now: datetime | None = None) -> str:
        """Short timestamp for list views: year, month and day, or time of day."""

        ts = await self.get_time()
        now = now or datetime.now(ts.tzinfo)
        if now - ts > timedelta(days=365):
            return ts.strftime("%Y")
        if (now.month, now.day) != (ts.month, ts.day):
            return ts.strftime("%b %d")
        return ts.strftime("%H:%M")


class Message(MailEntity):
    """A Gmail message."""

    kind = "message"

    async def _fetch(self, format: str) -> dict[str, Any]:
        return await self._conn.client.get_message(self.id, format=format)

    async def apply_label_delta(
        self,
        added: list[str] | None = None,
        removed: list[str] | None = None,
    ) -> None:
        """Add and remove labels on Gmail and cache the resulting label set.

        The fetch level, headers and body are left alone.
        """

        st = time.monotonic()
        label_ids = await self._conn.client.modify_message_labels(self.id, added, removed)
        async with self._lock:
            self._label_ids = label_ids
            self._label_generation += 1
        logger.info(
            "labels_changed",
            message_id=self.id,
            added=added or [],
            removed=removed or [],
            label_ids=label_ids,
            elapsed=time.monotonic() - st,
        )

    async def add_label(self, label_id: str) -> None:
        await self.apply_label_delta(added=[label_id])

    async def remove_label(self, label_id: str) -> None:
        await self.apply_label_delta(removed=[label_id])

    def add_label_local(self, label_id: str) -> None:
        """Add a label to the local cache only; the next sync overwrites it."""

        if self._level is FetchLevel.EMPTY or label_id in self._label_ids:
            return
        self._label_ids = [*self._label_ids, label_id]

    def remove_label_local(self, label_id: str) -> None:
        """Remove a label from the local cache only; the next sync overwrites it."""

        self._label_ids = [x for x in self._label_ids if x != label_id]

    async def reload_labels(self) -> None:
        """Refresh label IDs from Gmail without discarding cached content."""

        logger.debug("reloading_labels", message_id=self.id)
        generation = self._generation
        label_generation = self._label_generation
        resource = await self._fetch(FetchLevel.MINIMAL.value)
        snapshot = await self._build_snapshot(resource, FetchLevel.MINIMAL)
        async with self._lock:
            if generation != self._generation:
                return
            labels = label_generation == self._label_generation
            if self._level is FetchLevel.EMPTY:
                self._apply(snapshot, labels=labels)
            else:
                if labels:
                    self._label_ids = snapshot.label_ids
                self._thread_id = snapshot.thread_id


class Draft(MailEntity):
    """A Gmail draft. Its content is the draft's message resource."""

    kind = "draft"

    async def _fetch(self, format: str) -> dict[str, Any]:
        draft = await self._conn.client.get_draft(self.id, format=format)
        message = draft.get("message")
        if not isinstance(message, dict):
            raise DecodeError(f"draft {self.id}: response has no message")
        return message

    async def update(self, raw_message: str | bytes) -> None:
        """Replace the draft with a complete RFC 2822 message.

        The cached content is invalidated and refetched on next access.
        """

        await self._conn.client.update_draft(self.id, transcoding.encode(raw_message))
        await self._invalidate()
        logger.info("draft_updated", draft_id=self.id)

    async def send(self) -> None:
        """Send the draft. Sending a draft makes it no longer a draft."""

        await self._conn.client.send_draft(self.id)
        await self._invalidate()

    async def delete(self) -> None:
        await self._conn.client.delete_draft(self.id)
        await self._invalidate()
