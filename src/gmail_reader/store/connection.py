"""Connection-level identity caches for messages, drafts and labels."""

from __future__ import annotations

import threading

import structlog

from gmail_reader.config import Settings
from gmail_reader.crypto.base import CryptoEngine
from gmail_reader.crypto.trust import TrustEngine
from gmail_reader.gmail.client import GmailClient
from gmail_reader.rendering.html import HtmlRenderer
from gmail_reader.rendering.materializer import BodyMaterializer
from gmail_reader.store.entities import Draft, Message
from gmail_reader.store.labels import Label

logger = structlog.get_logger()


class Connection:
    """Owns the Gmail client, the crypto and rendering collaborators, and the entity pools.

    Entities are never constructed directly: :meth:`message`, :meth:`draft`
    and :meth:`label` return the single shared instance for an ID. The pool
    lock is never held while awaiting or while holding an entity lock.
    """

    def __init__(
        self,
        client: GmailClient | None = None,
        crypto: CryptoEngine | None = None,
        renderer: HtmlRenderer | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Create a connection.

        Args:
            client: Gmail API client. If None, creates a new one.
            crypto: Crypto engine. If None, uses gpg/openssl.
            renderer: HTML renderer. If None, uses the configured command.
            settings: Application settings. If None, uses default settings.
        """
        from gmail_reader.config import get_settings
        from gmail_reader.crypto.gnupg import GnuPG
        from gmail_reader.rendering.html import LynxRenderer

        self.settings = settings or get_settings()
        self.client = client or GmailClient(self.settings)
        self.crypto = crypto or GnuPG(self.settings)
        self.renderer = renderer or LynxRenderer(self.settings)
        self.materializer = BodyMaterializer(self.renderer)
        self.trust = TrustEngine(self.crypto, self.client)

        self._pool_lock = threading.Lock()
        self._messages: dict[str, Message] = {}
        self._drafts: dict[str, Draft] = {}
        self._labels: dict[str, Label] = {}

    def message(self, message_id: str) -> Message:
        with self._pool_lock:
            msg = self._messages.get(message_id)
            if msg is None:
                msg = self._messages[message_id] = Message(self, message_id)
            return msg

    def draft(self, draft_id: str) -> Draft:
        with self._pool_lock:
            draft = self._drafts.get(draft_id)
            if draft is None:
                draft = self._drafts[draft_id] = Draft(self, draft_id)
            return draft

    def label(self, label_id: str) -> Label:
        """Return the pooled label, which may not be loaded yet."""

        with self._pool_lock:
            label = self._labels.get(label_id)
            if label is None:
                label = self._labels[label_id] = Label(label_id)
            return label

    async def resolve_label(self, label_id: str) -> Label:
        """Return the pooled label with its metadata loaded.

        Raises:
            RemoteFetchError: If the label cannot be fetched.
        """

        label = self.label(label_id)
        await label.load(self.client)
        return label

    async def load_labels(self) -> list[Label]:
        """Fetch every label of the account into the pool."""

        labels = []
        for response in await self.client.list_labels():
            label_id = response.get("id")
            if not label_id:
                continue
            label = self.label(str(label_id))
            await label.update(response)
            labels.append(label)
        logger.info("labels_loaded", count=len(labels))
        return labels
