"""Gmail API client implementation.

This module provides a client for interacting with the Gmail API.

Notes:
    The Google API client is synchronous. This project wraps those calls using
    `asyncio.to_thread` so the rest of the codebase can remain async-friendly.
    Cancelling an awaiting task abandons the thread's result; nothing in the
    caller's state is touched.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable

import structlog

from gmail_reader.config import Settings
from gmail_reader.exceptions import AuthenticationError, ConfigurationError, RemoteFetchError
from gmail_reader.utils import retry_on_failure

logger = structlog.get_logger()


def is_transient_error(exc: Exception) -> bool:
    """Return whether a Gmail API failure is worth retrying."""

    status = getattr(getattr(exc, "resp", None), "status", None)
    if status is not None:
        return int(status) == 429 or int(status) >= 500
    return isinstance(exc, (OSError, TimeoutError))


class GmailClient:
    """Gmail API client for message, draft, label and attachment operations.

    This client handles authentication and wraps each API call so that
    failures surface as :class:`RemoteFetchError`.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize Gmail client.

        Args:
            settings: Application settings. If None, uses default settings.
        """
        from gmail_reader.config import get_settings

        self.settings = settings or get_settings()
        self._service: Any | None = None
        logger.info("gmail_client_initialized")

    @property
    def user_id(self) -> str:
        return self.settings.gmail_user_id

    async def authenticate(self) -> None:
        """Authenticate with Gmail API using OAuth2.

        Raises:
            AuthenticationError: If authentication fails.
        """

        if self._service is not None:
            return

        credentials_path = Path(self.settings.gmail_credentials_path)
        token_path = Path(self.settings.gmail_token_path)
        scope = self.settings.gmail_scope

        if not credentials_path.exists():
            raise ConfigurationError(
                f"Gmail credentials file not found: {credentials_path}. "
                "See README.md -> Gmail API Setup."
            )

        logger.info(
            "gmail_authentication_started",
            credentials_path=str(credentials_path),
            token_path=str(token_path),
            scope=scope,
        )

        try:
            self._service = await asyncio.to_thread(
                self._build_service,
                credentials_path,
                token_path,
                scope,
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("gmail_authentication_failed", error=str(exc))
            raise AuthenticationError(str(exc)) from exc

        logger.info("gmail_authentication_completed")

    async def get_message(
        self,
        message_id: str,
        *,
        format: str = "metadata",
        metadata_headers: list[str] | None = None,
    ) -> dict[str, Any]:
        """Get a specific message by ID.

        Args:
            message_id: The Gmail message ID.
            format: One of ``minimal``, ``metadata``, ``full`` or ``raw``.
            metadata_headers: Headers to include with ``format=metadata``.

        Returns:
            Message resource dictionary.

        Raises:
            RemoteFetchError: If the API request fails.
        """

        logger.debug("getting_message", message_id=message_id, format=format)

        def request(users: Any) -> Any:
            return users.messages().get(
                userId=self.user_id,
                id=message_id,
                format=format,
                metadataHeaders=metadata_headers,
            )

        return await self._call("get_message", self._execute_sync, request, message_id=message_id)

    async def get_draft(self, draft_id: str, *, format: str = "metadata") -> dict[str, Any]:
        """Get a draft resource; its message is under the ``message`` key."""

        logger.debug("getting_draft", draft_id=draft_id, format=format)

        def request(users: Any) -> Any:
            return users.drafts().get(userId=self.user_id, id=draft_id, format=format)

        return await self._call("get_draft", self._execute_sync, request, draft_id=draft_id)

    async def modify_message_labels(
        self,
        message_id: str,
        add: list[str] | None = None,
        remove: list[str] | None = None,
    ) -> list[str]:
        """Add and remove labels on a message.

        Returns:
            The message's label IDs after the change.
        """

        body = {"addLabelIds": list(add or []), "removeLabelIds": list(remove or [])}

        def request(users: Any) -> Any:
            return users.messages().modify(userId=self.user_id, id=message_id, body=body)

        response = await self._call(
            "modify_message_labels", self._execute_sync, request, message_id=message_id
        )
        logger.info(
            "message_labels_modified",
            message_id=message_id,
            added=body["addLabelIds"],
            removed=body["removeLabelIds"],
            label_ids=response.get("labelIds"),
        )
        return [str(x) for x in response.get("labelIds") or []]

    async def get_attachment(self, message_id: str, attachment_id: str) -> str:
        """Fetch attachment data, still in URL-safe base64."""

        def request(users: Any) -> Any:
            return users.messages().attachments().get(
                userId=self.user_id, messageId=message_id, id=attachment_id
            )

        response = await self._call(
            "get_attachment", self._execute_sync, request, message_id=message_id
        )
        return str(response.get("data") or "")

    async def get_label(self, label_id: str) -> dict[str, Any]:
        def request(users: Any) -> Any:
            return users.labels().get(userId=self.user_id, id=label_id)

        return await self._call("get_label", self._execute_sync, request, label_id=label_id)

    async def list_labels(self) -> list[dict[str, Any]]:
        def request(users: Any) -> Any:
            return users.labels().list(userId=self.user_id)

        response = await self._call("list_labels", self._execute_sync, request)
        return list(response.get("labels") or [])

    async def update_draft(self, draft_id: str, raw: str) -> dict[str, Any]:
        """Replace a draft's content.

        Args:
            draft_id: The draft ID.
            raw: Full RFC 2822 message, already in URL-safe base64.
        """

        body = {"id": draft_id, "message": {"raw": raw}}

        def request(users: Any) -> Any:
            return users.drafts().update(userId=self.user_id, id=draft_id, body=body)

        return await self._call("update_draft", self._execute_sync, request, draft_id=draft_id)

    async def send_draft(self, draft_id: str) -> dict[str, Any]:
        def request(users: Any) -> Any:
            return users.drafts().send(userId=self.user_id, body={"id": draft_id})

        response = await self._call("send_draft", self._execute_sync, request, draft_id=draft_id)
        logger.info("draft_sent", draft_id=draft_id, message_id=response.get("id"))
        return response

    async def delete_draft(self, draft_id: str) -> None:
        def request(users: Any) -> Any:
            return users.drafts().delete(userId=self.user_id, id=draft_id)

        await self._call("delete_draft", self._execute_sync, request, draft_id=draft_id)
        logger.info("draft_deleted", draft_id=draft_id)

    async def _call(self, operation: str, func: Callable[..., Any], *args: Any, **context: Any) -> Any:
        await self._ensure_authenticated()
        try:
            return await asyncio.to_thread(func, *args)
        except Exception as exc:  # noqa: BLE001
            logger.exception(f"gmail_{operation}_failed", error=str(exc), **context)
            raise RemoteFetchError(str(exc)) from exc

    async def _ensure_authenticated(self) -> None:
        if self._service is None:
            raise AuthenticationError(
                "Gmail client is not authenticated. Call await GmailClient.authenticate() first."
            )

    def _build_service(self, credentials_path: Path, token_path: Path, scope: str) -> Any:
        # Imported lazily to keep import-time cost low and tests fast.
        from google.auth.transport.requests import Request
        from google.oauth2.credentials import Credentials
        from google_auth_oauthlib.flow import InstalledAppFlow
        from googleapiclient.discovery import build

        creds: Credentials | None = None
        if token_path.exists():
            creds = Credentials.from_authorized_user_file(str(token_path), scopes=[scope])

        if creds is not None and creds.expired and creds.refresh_token:
            creds.refresh(Request())

        if creds is None or not creds.valid:
            flow = InstalledAppFlow.from_client_secrets_file(str(credentials_path), scopes=[scope])
            creds = flow.run_local_server(port=0)
            token_path.parent.mkdir(parents=True, exist_ok=True)
            token_path.write_text(creds.to_json(), encoding="utf-8")

        # cache_discovery=False prevents writing discovery docs to disk.
        return build("gmail", "v1", credentials=creds, cache_discovery=False)

    def _execute_sync(self, build_request: Callable[[Any], Any]) -> dict[str, Any]:
        assert self._service is not None

        @retry_on_failure(
            max_retries=self.settings.max_retries,
            delay=self.settings.retry_delay,
            should_retry=is_transient_error,
        )
        def execute() -> dict[str, Any]:
            return build_request(self._service.users()).execute() or {}

        return execute()
