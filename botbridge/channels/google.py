"""Google service-account authorization and the Chat REST API."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from enum import Enum
from pathlib import Path
from typing import Any

import httpx
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

logger = logging.getLogger(__name__)

CHAT_BOT_SCOPE = "https://www.googleapis.com/auth/chat.bot"
CHAT_API_BASE_URL = "https://chat.googleapis.com/v1"


class AuthFailurePolicy(str, Enum):
    """What happens after a failed credential exchange.

    ``FAIL_FAST`` keeps the failure and re-raises it for every later caller.
    ``RETRY`` forgets it so the next call starts a fresh exchange.
    """

    FAIL_FAST = "fail_fast"
    RETRY = "retry"


class ChatApiError(Exception):
    """Raised when the Chat API rejects a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GoogleServiceAuth:
    """Authorize a service account for a list of scopes.

    The credentials file is the JSON key downloaded for the service account
    (``client_email``, ``private_key``, ...). One exchange is made per
    instance; every caller shares its outcome.
    """

    def __init__(
        self,
        credentials_path: str,
        scopes: Sequence[str] = (CHAT_BOT_SCOPE,),
        failure_policy: AuthFailurePolicy = AuthFailurePolicy.FAIL_FAST,
    ) -> None:
        self.credentials_path = credentials_path
        self.scopes = list(scopes)
        self.failure_policy = failure_policy
        self._authorization: asyncio.Future[service_account.Credentials] | None = None
        self._refreshing: asyncio.Future[None] | None = None

    async def authorize(self) -> service_account.Credentials:
        """Return the shared credentials, refreshing an expired access token."""

        # The task is stored before the first await, so concurrent callers on
        # the event loop can never start a second exchange.
        if self._authorization is None:
            task = asyncio.ensure_future(self._exchange())
            if self.failure_policy is AuthFailurePolicy.RETRY:
                task.add_done_callback(self._forget_failure)
            self._authorization = task
        credentials = await asyncio.shield(self._authorization)
        if not credentials.valid:
            await self._refresh(credentials)
        return credentials

    def _forget_failure(self, task: asyncio.Future[Any]) -> None:
        if task.cancelled() or task.exception() is not None:
            logger.warning("Google authorization failed, next call will retry")
            if self._authorization is task:
                self._authorization = None

    async def _refresh(self, credentials: service_account.Credentials) -> None:
        # one refresh at a time; a failed refresh is retried by the next caller
        if self._refreshing is None:
            logger.info("Google access token expired, refreshing")
            task = asyncio.ensure_future(
                asyncio.to_thread(credentials.refresh, GoogleAuthRequest())
            )
            task.add_done_callback(self._refresh_done)
            self._refreshing = task
        await asyncio.shield(self._refreshing)

    def _refresh_done(self, task: asyncio.Future[None]) -> None:
        if self._refreshing is task:
            self._refreshing = None
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Google token refresh failed: %s", task.exception())

    def _load_credentials(self) -> service_account.Credentials:
        """Read the key file and fetch the first access token (blocking)."""

        if not self.credentials_path:
            raise RuntimeError("GOOGLE_APPLICATION_CREDENTIALS not configured")
        path = Path(self.credentials_path).resolve()
        with path.open(encoding="utf-8") as f:
            info = json.load(f)
        credentials = service_account.Credentials.from_service_account_info(
            info, scopes=self.scopes
        )
        # google-auth refreshes synchronously over requests
        credentials.refresh(GoogleAuthRequest())
        logger.info("Authorized Google service account %s", info.get("client_email"))
        return credentials

    async def _exchange(self) -> service_account.Credentials:
        return await asyncio.to_thread(self._load_credentials)


class ChatApiClient:
    """Minimal async client for ``spaces.messages.create``."""

    def __init__(
        self,
        base_url: str = CHAT_API_BASE_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def create_message(
        self, credentials: Any, parent: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        """Post ``body`` as a new message in ``parent`` (``spaces/...``)."""

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                f"{self.base_url}/{parent}/messages",
                json=body,
                headers={"Authorization": f"Bearer {credentials.token}"},
            )

        if response.status_code >= 400:
            error_detail = response.text
            try:
                error_detail = response.json().get("error", {}).get("message", error_detail)
            except (ValueError, AttributeError):
                pass
            raise ChatApiError(
                f"Chat API error ({response.status_code}): {error_detail}",
                status_code=response.status_code,
            )
        return response.json() if response.content else {}
