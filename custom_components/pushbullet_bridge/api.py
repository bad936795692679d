# custom_components/pushbullet_bridge/api.py
"""Async Pushbullet REST client (HA-friendly).

This module encapsulates all HTTP interactions with the Pushbullet v2 API and
exposes a small surface used by the integration:

- Account probe (`async_get_user`) for the config flow.
- Device enumeration and creation (endpoint identity resolution).
- Push history queries with `modified_after` / `limit` and cursor pagination.
- Push deletion and outbound note/link/file pushes (incl. upload-request flow).

Error handling:
- **401/403** raise `PushbulletAuthError` (mapped to `ConfigEntryAuthFailed` by
  the integration).
- **408/429/5xx** and network errors are retried with jittered exponential
  backoff honoring `Retry-After`; after the last attempt they surface as
  `PushbulletRateLimitError`, `PushbulletHTTPError` or `PushbulletError`.
- Other 4xx responses raise `PushbulletHTTPError` without retry.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
import re
from collections.abc import Mapping
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any

import aiohttp

from .const import (
    API_BACKOFF_FACTOR,
    API_BASE_URL,
    API_INITIAL_BACKOFF_S,
    API_MAX_RETRIES,
    API_MAX_RETRY_AFTER_S,
    API_TIMEOUT_S,
    DEVICE_ICON,
    DEVICE_MANUFACTURER,
    DEVICE_MODEL,
    HISTORY_MAX_PAGES,
    PUSH_TYPE_FILE,
    PUSH_TYPE_LINK,
    PUSH_TYPE_NOTE,
)

_LOGGER = logging.getLogger(__name__)

HTTP_OK_MIN = 200
HTTP_OK_MAX = 300
HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_REQUEST_TIMEOUT = 408
HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR_MIN = 500
HTTP_SERVER_ERROR_MAX = 600

_ERROR_SNIPPET_MAX = 300


# --- Custom Exceptions ---
class PushbulletError(Exception):
    """Base exception for Pushbullet API errors."""


class PushbulletAuthError(PushbulletError):
    """Raised when the API key is rejected (401/403)."""

    def __init__(self, status: int, detail: str | None = None):
        super().__init__(f"Authentication failed {status}: {detail or ''}".strip())
        self.status = status
        self.detail = detail


class PushbulletRateLimitError(PushbulletError):
    """Raised on 429 rate-limiting errors after retries."""

    def __init__(self, detail: str | None = None):
        super().__init__(f"Rate limited by Pushbullet: {detail or ''}".strip())
        self.detail = detail


class PushbulletHTTPError(PushbulletError):
    """Raised for unexpected HTTP status codes."""

    def __init__(self, status: int, detail: str | None = None):
        super().__init__(f"HTTP Error {status}: {detail or ''}".strip())
        self.status = status
        self.detail = detail


# --- Retry helpers ---


def _compute_delay(attempt: int, retry_after: str | None) -> float:
    """Return a retry delay honoring Retry-After with jittered exponential fallback."""

    delay: float | None = None
    if retry_after:
        try:
            delay = float(retry_after)
        except (TypeError, ValueError):
            try:
                retry_dt = parsedate_to_datetime(retry_after)
            except (TypeError, ValueError):
                retry_dt = None
            if retry_dt is not None:
                if retry_dt.tzinfo is None:
                    retry_dt = retry_dt.replace(tzinfo=UTC)
                now = datetime.now(UTC)
                delay = max(0.0, (retry_dt - now).total_seconds())

    if delay is None:
        exponent = max(0, attempt - 1)
        backoff = (API_BACKOFF_FACTOR**exponent) * API_INITIAL_BACKOFF_S
        delay = random.uniform(0.0, backoff)

    return min(delay, API_MAX_RETRY_AFTER_S)


# --- Redaction ---

_RE_ACCESS_TOKEN = re.compile(r"o\.[A-Za-z0-9]{16,}")
_RE_EMAIL = re.compile(r"([A-Za-z0-9._%+-])([A-Za-z0-9._%+-]*)(@[^,\s]+)")


def _redact(s: str) -> str:
    """Redact access tokens and email addresses from a string for safe logging."""
    s = _RE_ACCESS_TOKEN.sub("<token-redacted>", s)
    s = _RE_EMAIL.sub(r"\1***\3", s)
    return s


def _error_detail(body: str) -> str:
    """Extract the error message from a Pushbullet error body."""

    if not body:
        return ""
    try:
        parsed = json.loads(body)
    except ValueError:
        return _redact(body[:_ERROR_SNIPPET_MAX])
    if isinstance(parsed, Mapping):
        error = parsed.get("error")
        if isinstance(error, Mapping):
            message = error.get("message") or error.get("type")
            if message:
                return _redact(str(message)[:_ERROR_SNIPPET_MAX])
    return _redact(body[:_ERROR_SNIPPET_MAX])


def target_params(receiver: str) -> dict[str, str]:
    """Return the push target fields for a receiver string.

    Receivers containing ``@`` are addressed by email, everything else is
    treated as a device iden. An empty receiver targets all devices.
    """

    receiver = receiver.strip()
    if not receiver:
        return {}
    if "@" in receiver:
        return {"email": receiver}
    return {"device_iden": receiver}


class PushbulletClient:
    """Thin async wrapper around the Pushbullet v2 REST API."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        api_key: str,
        *,
        base_url: str = API_BASE_URL,
        max_retries: int = API_MAX_RETRIES,
    ) -> None:
        self._session = session
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._max_retries = max_retries

    @property
    def api_key(self) -> str:
        """Return the API key used for requests and the event stream."""
        return self._api_key

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(  # noqa: PLR0912
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json_body: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = f"{self._base_url}/{path.lstrip('/')}"
        headers = {"Access-Token": self._api_key, "Accept": "application/json"}
        retries_used = 0
        while True:
            attempt = retries_used + 1
            try:
                timeout = aiohttp.ClientTimeout(total=API_TIMEOUT_S)
                async with self._session.request(
                    method,
                    url,
                    headers=headers,
                    params=dict(params) if params else None,
                    json=dict(json_body) if json_body is not None else None,
                    timeout=timeout,
                ) as response:
                    status = response.status
                    try:
                        body = await response.text()
                    except UnicodeDecodeError as err:
                        raise PushbulletError(
                            f"Undecodable response body from {path}"
                        ) from err
                    _LOGGER.debug(
                        "Pushbullet %s %s: status=%d", method, path, status
                    )

                    if HTTP_OK_MIN <= status < HTTP_OK_MAX:
                        if not body:
                            return {}
                        try:
                            parsed = json.loads(body)
                        except ValueError as err:
                            raise PushbulletError(
                                f"Malformed JSON from {path}"
                            ) from err
                        return parsed if isinstance(parsed, dict) else {}

                    detail = _error_detail(body)

                    if status in (HTTP_UNAUTHORIZED, HTTP_FORBIDDEN):
                        raise PushbulletAuthError(status, detail)

                    if status in (HTTP_REQUEST_TIMEOUT, HTTP_TOO_MANY_REQUESTS) or (
                        HTTP_SERVER_ERROR_MIN <= status < HTTP_SERVER_ERROR_MAX
                    ):
                        if retries_used < self._max_retries:
                            delay = _compute_delay(
                                attempt, response.headers.get("Retry-After")
                            )
                            _LOGGER.info(
                                "Pushbullet %s %s failed with status %d. Retrying in %.2f seconds (attempt %d/%d)...",
                                method,
                                path,
                                status,
                                delay,
                                retries_used + 1,
                                self._max_retries,
                            )
                            retries_used += 1
                            await asyncio.sleep(delay)
                            continue
                        if status == HTTP_TOO_MANY_REQUESTS:
                            raise PushbulletRateLimitError(detail)

                    raise PushbulletHTTPError(status, detail)

            except asyncio.CancelledError:
                raise
            except (TimeoutError, aiohttp.ClientError) as err:
                if retries_used < self._max_retries:
                    delay = _compute_delay(attempt, None)
                    _LOGGER.info(
                        "Pushbullet %s %s failed with %s. Retrying in %.2f seconds (attempt %d/%d)...",
                        method,
                        path,
                        type(err).__name__,
                        delay,
                        retries_used + 1,
                        self._max_retries,
                    )
                    retries_used += 1
                    await asyncio.sleep(delay)
                    continue
                raise PushbulletError(
                    f"Pushbullet request {method} {path} failed after retries: {err}"
                ) from err

    # ------------------------------------------------------------------
    # Account / devices
    # ------------------------------------------------------------------

    async def async_get_user(self) -> dict[str, Any]:
        """Return the account owner (used to validate the API key)."""
        return await self._request("GET", "users/me")

    async def async_list_devices(self) -> list[dict[str, Any]]:
        """Return all devices registered on the account."""
        data = await self._request("GET", "devices")
        devices = data.get("devices")
        if not isinstance(devices, list):
            raise PushbulletError("Device list response lacks a 'devices' array")
        return [d for d in devices if isinstance(d, dict)]

    async def async_create_device(self, nickname: str) -> dict[str, Any]:
        """Create a device with the given nickname and return it."""
        return await self._request(
            "POST",
            "devices",
            json_body={
                "nickname": nickname,
                "model": DEVICE_MODEL,
                "manufacturer": DEVICE_MANUFACTURER,
                "icon": DEVICE_ICON,
            },
        )

    # ------------------------------------------------------------------
    # Pushes
    # ------------------------------------------------------------------

    async def async_history(
        self,
        *,
        modified_after: float | None = None,
        limit: int | None = None,
        max_pages: int | None = HISTORY_MAX_PAGES,
    ) -> list[dict[str, Any]]:
        """Return pushes newest-first, following pagination cursors.

        When ``limit`` is given only a single page is requested. ``max_pages=None``
        follows the cursor until the service stops returning one; callers that
        advance a ``modified_after`` watermark must use it, since the pages past
        the cap hold the oldest records.
        """

        params: dict[str, Any] = {}
        if modified_after is not None:
            params["modified_after"] = modified_after
        if limit is not None:
            params["limit"] = limit

        pushes: list[dict[str, Any]] = []
        pages = 0
        while True:
            data = await self._request("GET", "pushes", params=params)
            page = data.get("pushes")
            if not isinstance(page, list):
                raise PushbulletError("History response lacks a 'pushes' array")
            pushes.extend(p for p in page if isinstance(p, dict))
            pages += 1

            cursor = data.get("cursor")
            if limit is not None or not cursor:
                break
            if max_pages is not None and pages >= max(1, max_pages):
                _LOGGER.warning(
                    "History pagination stopped after %d pages; older pushes were not fetched",
                    pages,
                )
                break
            params["cursor"] = cursor
        return pushes

    async def async_delete_push(self, iden: str) -> None:
        """Delete a push by iden."""
        await self._request("DELETE", f"pushes/{iden}")

    async def async_push_note(
        self, receiver: str, title: str | None, body: str | None
    ) -> dict[str, Any]:
        """Send a note push."""
        payload: dict[str, Any] = {"type": PUSH_TYPE_NOTE, **target_params(receiver)}
        if title is not None:
            payload["title"] = title
        if body is not None:
            payload["body"] = body
        return await self._request("POST", "pushes", json_body=payload)

    async def async_push_link(
        self, receiver: str, title: str | None, url: str, body: str | None = None
    ) -> dict[str, Any]:
        """Send a link push."""
        payload: dict[str, Any] = {
            "type": PUSH_TYPE_LINK,
            "url": url,
            **target_params(receiver),
        }
        if title is not None:
            payload["title"] = title
        if body is not None:
            payload["body"] = body
        return await self._request("POST", "pushes", json_body=payload)

    async def async_upload_file(
        self, file_name: str, file_type: str, content: bytes
    ) -> dict[str, Any]:
        """Upload a file and return the upload-request description."""

        upload = await self._request(
            "POST",
            "upload-request",
            json_body={"file_name": file_name, "file_type": file_type},
        )
        upload_url = upload.get("upload_url")
        if not isinstance(upload_url, str) or not upload.get("file_url"):
            raise PushbulletError("Upload request response lacks upload/file URLs")

        form = aiohttp.FormData()
        form.add_field("file", content, filename=file_name, content_type=file_type)
        try:
            async with self._session.post(
                upload_url,
                data=form,
                timeout=aiohttp.ClientTimeout(total=API_TIMEOUT_S * 4),
            ) as response:
                if not HTTP_OK_MIN <= response.status < HTTP_OK_MAX:
                    detail = _error_detail(await response.text())
                    raise PushbulletHTTPError(response.status, detail)
        except (TimeoutError, aiohttp.ClientError) as err:
            raise PushbulletError(f"File upload failed: {err}") from err
        return upload

    async def async_push_file(
        self,
        receiver: str,
        file_name: str,
        file_type: str,
        content: bytes,
        body: str | None = None,
    ) -> dict[str, Any]:
        """Upload a file and send it as a file push."""

        upload = await self.async_upload_file(file_name, file_type, content)
        payload: dict[str, Any] = {
            "type": PUSH_TYPE_FILE,
            "file_name": upload.get("file_name", file_name),
            "file_type": upload.get("file_type", file_type),
            "file_url": upload["file_url"],
            **target_params(receiver),
        }
        if body is not None:
            payload["body"] = body
        return await self._request("POST", "pushes", json_body=payload)
