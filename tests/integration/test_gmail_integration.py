"""Integration tests against a real Gmail account and real gpg.

These need ``credentials.json``/``token.json`` for a test account and a
``GMAIL_READER_TEST_MESSAGE_ID`` pointing at a message in it.
"""

import os
import shutil

import pytest

from gmail_reader.config import get_settings
from gmail_reader.gmail.client import GmailClient
from gmail_reader.models import FetchLevel
from gmail_reader.store import Connection

MESSAGE_ID = os.environ.get("GMAIL_READER_TEST_MESSAGE_ID")

requires_account = pytest.mark.skipif(
    MESSAGE_ID is None or not get_settings().gmail_token_path.exists(),
    reason="no Gmail test account configured",
)


@pytest.mark.integration
class TestGmailIntegration:
    """Integration tests for Gmail API."""

    @requires_account
    @pytest.mark.asyncio
    async def test_fetch_levels_against_gmail(self) -> None:
        """Fetch a real message level by level."""
        client = GmailClient()
        await client.authenticate()
        msg = Connection(client=client).message(MESSAGE_ID)

        await msg.ensure_level(FetchLevel.MINIMAL)
        assert await msg.thread_id()

        await msg.ensure_level(FetchLevel.FULL)
        assert msg.level is FetchLevel.FULL
        assert isinstance(await msg.get_body(), str)

    @requires_account
    @pytest.mark.asyncio
    async def test_labels_resolve(self) -> None:
        client = GmailClient()
        await client.authenticate()

        labels = await Connection(client=client).load_labels()

        assert any(label.id == "INBOX" for label in labels)

    @pytest.mark.skipif(shutil.which("gpg") is None, reason="gpg not installed")
    @pytest.mark.asyncio
    async def test_gpg_rejects_garbage_signature(self) -> None:
        from gmail_reader.crypto.gnupg import GnuPG
        from gmail_reader.exceptions import CryptoError

        try:
            status = await GnuPG().verify(b"hello\r\n", b"not a signature")
        except CryptoError:
            return
        assert not status.good
