# upstream.py
"""Authenticated access to the third-party evaluation service.

``CredentialStore`` holds the bearer token shared by every request. It only
moves from valid to invalid inside this process (on an upstream 401); a new
token has to be supplied from outside through ``replace``.

``UpstreamClient`` is a thin wrapper over ``httpx.AsyncClient`` that turns
transport and status problems into the ``errors`` taxonomy, so callers never
see httpx exceptions.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Mapping, Optional

import httpx

from errors import (
    CredentialUnavailable,
    Unauthorized,
    UpstreamDecodeError,
    UpstreamFailure,
    UpstreamHTTPError,
    UpstreamTimeout,
)

logger = logging.getLogger(__name__)


class CredentialStore:
    def __init__(self, token: Optional[str] = None, token_type: str = "Bearer") -> None:
        self._token = token or None
        self._token_type = token_type
        self._lock = threading.Lock()

    @property
    def is_configured(self) -> bool:
        with self._lock:
            return self._token is not None

    def authorization_header(self) -> Dict[str, str]:
        with self._lock:
            token = self._token
        if token is None:
            raise CredentialUnavailable("Service unavailable: access token not configured")
        return {"Authorization": f"{self._token_type} {token}"}

    def invalidate(self) -> None:
        with self._lock:
            was_valid = self._token is not None
            self._token = None
        if was_valid:
            logger.warning("Access token invalidated after upstream rejection")

    def replace(self, token: str) -> None:
        if not token:
            raise ValueError("token must be non-empty")
        with self._lock:
            self._token = token
        logger.info("Access token replaced")


class UpstreamClient:
    def __init__(self, credentials: CredentialStore, http_client: httpx.AsyncClient) -> None:
        self.credentials = credentials
        self._http = http_client

    async def fetch(
        self,
        url: str,
        params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """GET ``url`` with the current credential and return the decoded JSON body."""
        headers = self.credentials.authorization_header()
        kwargs: Dict[str, Any] = {"headers": headers, "params": params}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            resp = await self._http.get(url, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("Upstream request timed out", extra={"url": url})
            raise UpstreamTimeout(f"Upstream request timed out: {url}") from exc
        except httpx.HTTPError as exc:
            logger.warning("Upstream request failed", extra={"url": url, "reason": str(exc)})
            raise UpstreamFailure(f"Failed to fetch data: {exc}") from exc

        if resp.status_code == 401:
            logger.warning("Upstream returned 401", extra={"url": url})
            raise Unauthorized()
        if resp.status_code >= 400:
            logger.warning("Upstream returned error status", extra={"url": url, "status": resp.status_code})
            raise UpstreamHTTPError(
                f"Upstream responded with status {resp.status_code}", status=resp.status_code
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamDecodeError(f"Upstream returned a non-JSON body: {url}") from exc

    async def aclose(self) -> None:
        await self._http.aclose()
