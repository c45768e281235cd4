"""
HTTP client for the consultation backend.

Thin aiohttp wrapper that unwraps the backend response envelope:

    {"success": true, "message": "...", "data": {...}}
    {"success": false, "message": "...", "error": {"code": "...", "message": "..."}}

Every failure (transport, timeout, non-2xx, error envelope, unreadable body)
surfaces as ApiError so callers handle exactly one exception type.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from config import API_CONFIG

logger = logging.getLogger("consult-video.api")


class ApiError(Exception):
    """Backend request failed."""

    def __init__(self, message: str, status: int = 0, code: Optional[str] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.details = details

    @property
    def is_auth_error(self) -> bool:
        return self.status == 401

    @property
    def is_not_found(self) -> bool:
        return self.status == 404

    @property
    def is_server_error(self) -> bool:
        return self.status >= 500

    @property
    def is_network_error(self) -> bool:
        return self.status == 0 or self.code == "NETWORK_ERROR"

    @property
    def is_timeout(self) -> bool:
        return self.status == 408 or self.code == "TIMEOUT_ERROR"

    def __repr__(self) -> str:
        return f"ApiError(status={self.status}, code={self.code!r}, message={self.message!r})"


class ApiClient:
    """
    Async client for the consultation backend.

    Example:
        async with ApiClient() as client:
            data = await client.get("/consultations/abc/video-token")
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        auth_token: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = (base_url or API_CONFIG["base_url"]).rstrip("/")
        self.timeout = timeout if timeout is not None else API_CONFIG["timeout"]
        self._auth_token = auth_token if auth_token is not None else API_CONFIG["auth_token"]
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "ApiClient":
        self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"Content-Type": "application/json", "Accept": "application/json"}
            if self._auth_token:
                headers["Authorization"] = f"Bearer {self._auth_token}"
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Sends a request and returns the envelope's `data`.

        Raises:
            ApiError: on any failure
        """
        session = self._ensure_session()
        url = f"{self.base_url}{path}"
        query = {k: str(v) for k, v in (params or {}).items() if v is not None}

        try:
            async with session.request(method, url, json=json, params=query or None) as response:
                if response.status == 204:
                    return None
                try:
                    body = await response.json(content_type=None)
                except ValueError as e:
                    raise ApiError(
                        f"Invalid response body from {path}", response.status, "INVALID_RESPONSE"
                    ) from e
                return self._unwrap(path, response.status, body)

        except ApiError:
            raise
        except asyncio.TimeoutError as e:
            logger.warning(f"{method} {path} timed out after {self.timeout}s")
            raise ApiError("Request timed out", 408, "TIMEOUT_ERROR") from e
        except aiohttp.ClientError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise ApiError("Network error. Please check your connection.", 0, "NETWORK_ERROR") from e

    def _unwrap(self, path: str, status: int, body: Any) -> Any:
        is_envelope = isinstance(body, dict) and "success" in body
        ok = 200 <= status < 300

        if is_envelope and ok and body.get("success"):
            return body.get("data")
        if not is_envelope and ok:
            return body

        error = body.get("error") if isinstance(body, dict) else None
        error = error if isinstance(error, dict) else {}
        message = (
            error.get("message")
            or (body.get("message") if isinstance(body, dict) else None)
            or "An error occurred"
        )
        logger.warning(f"{path} returned {status}: {message}")
        raise ApiError(message, status, error.get("code"), error.get("details"))

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Any = None) -> Any:
        return await self.request("POST", path, json=json)
