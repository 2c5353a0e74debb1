"""Asynchronous client for the remote profile API."""

from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from ..progress_model import LearnerProfile

logger = logging.getLogger(__name__)


class RemoteStoreError(RuntimeError):
    """Remote store call failed; ``status_code`` is set for HTTP-level failures."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RemoteTransportError(RemoteStoreError):
    """Network failure, timeout or server-side error."""


class RemoteDecodeError(RemoteStoreError):
    """The remote answered with a payload that is not a profile."""


class RemoteConflictError(RemoteStoreError):
    """The remote holds a newer copy than the one being written."""


class RemoteAuthError(RemoteStoreError):
    """The remote rejected our credentials or denied access."""


class RemoteProfileStore(Protocol):
    async def fetch_profile(self, profile_id: str) -> Optional[LearnerProfile]: ...

    async def save_profile(self, profile: LearnerProfile) -> LearnerProfile: ...

    async def delete_profile(self, profile_id: str) -> None: ...


def _error_for_status(response: httpx.Response, action: str) -> RemoteStoreError:
    status = response.status_code
    message = f"Remote {action} failed with HTTP {status}"
    if status in (409, 412):
        return RemoteConflictError(message, status_code=status)
    if status in (401, 403):
        return RemoteAuthError(message, status_code=status)
    if status >= 500:
        return RemoteTransportError(message, status_code=status)
    return RemoteStoreError(message, status_code=status)


class HttpRemoteProfileStore:
    """Talks to ``{base_url}/api/profiles/{profile_id}``.

    Pass ``client`` to share a connection pool (or an ASGI transport in tests);
    otherwise a short-lived client is opened per call and closed afterwards.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 15.0,
        api_token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._api_token = api_token
        self._client = client

    def _url(self, profile_id: str) -> str:
        return f"{self._base_url}/api/profiles/{quote(profile_id, safe='')}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"
        return headers

    async def _request(self, method: str, profile_id: str, **kwargs) -> httpx.Response:
        local_client = self._client or httpx.AsyncClient(timeout=self._timeout)
        close_client = self._client is None
        try:
            return await local_client.request(method, self._url(profile_id), headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            raise RemoteTransportError(f"Remote profile request failed: {exc}") from exc
        finally:
            if close_client:
                await local_client.aclose()

    @staticmethod
    def _decode(response: httpx.Response) -> LearnerProfile:
        try:
            return LearnerProfile.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise RemoteDecodeError(f"Remote profile payload is invalid: {exc}") from exc

    async def fetch_profile(self, profile_id: str) -> Optional[LearnerProfile]:
        response = await self._request("GET", profile_id)
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise _error_for_status(response, "fetch")
        return self._decode(response)

    async def save_profile(self, profile: LearnerProfile) -> LearnerProfile:
        response = await self._request("PUT", profile.profile_id, json=profile.model_dump(mode="json"))
        if response.status_code not in (200, 201):
            raise _error_for_status(response, "save")
        stored = self._decode(response)
        logger.debug("Remote confirmed profile %s at %s", stored.profile_id, stored.metadata.last_synced_at)
        return stored

    async def delete_profile(self, profile_id: str) -> None:
        response = await self._request("DELETE", profile_id)
        if response.status_code in (200, 204, 404):
            return
        raise _error_for_status(response, "delete")


__all__ = [
    "HttpRemoteProfileStore",
    "RemoteAuthError",
    "RemoteConflictError",
    "RemoteDecodeError",
    "RemoteProfileStore",
    "RemoteStoreError",
    "RemoteTransportError",
]
