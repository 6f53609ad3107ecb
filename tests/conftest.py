"""Pytest configuration and shared fixtures."""

import pytest

from tests.fakes import FakeCrypto, FakeGmailClient, FakeRenderer


@pytest.fixture
def mock_settings():
    """Provide mock settings for testing."""
    from gmail_reader.config import Settings

    return Settings(
        render_timeout=1.0,
        crypto_timeout=1.0,
        log_level="DEBUG",
        debug=True,
        max_retries=0,
    )


@pytest.fixture
def gmail() -> FakeGmailClient:
    return FakeGmailClient()


@pytest.fixture
def crypto() -> FakeCrypto:
    return FakeCrypto()


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def conn(gmail, crypto, renderer, mock_settings):
    """Connection wired to in-memory collaborators."""
    from gmail_reader.store import Connection

    return Connection(client=gmail, crypto=crypto, renderer=renderer, settings=mock_settings)


@pytest.fixture
def sample_email_data() -> dict:
    """Provide sample Gmail message data structure."""
    return {
        "id": "msg123456",
        "threadId": "thread789",
        "labelIds": ["INBOX", "UNREAD"],
        "snippet": "Weekly Newsletter - Python Tips",
        "payload": {
            "mimeType": "multipart/alternative",
            "headers": [
                {"name": "Subject", "value": "Weekly Newsletter - Python Tips"},
                {"name": "From", "value": "newsletter@python.org"},
                {"name": "To", "value": "user@example.com"},
            ],
            "body": {},
            "parts": [
                {
                    "mimeType": "text/plain",
                    "headers": [{"name": "Content-Type", "value": "text/plain; charset=UTF-8"}],
                    "body": {"data": "V2VsY29tZSE="},
                },
                {
                    "mimeType": "image/png",
                    "filename": "logo.png",
                    "headers": [{"name": "Content-Disposition", "value": 'attachment; filename="logo.png"'}],
                    "body": {"attachmentId": "att-1"},
                },
            ],
        },
    }
