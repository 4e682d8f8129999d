"""Remote store and auth provider contracts, plus their HTTP implementations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import replace
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

import httpx

from config import settings
from curation.types import (
    ItemRecord,
    ProfileSettings,
    RemoteStoreError,
    changes_to_payload,
)

logger = logging.getLogger(__name__)


class BaseRemoteStore(ABC):
    """Owner-scoped persistence for item rows and the settings profile."""

    @abstractmethod
    async def fetch_all(self, owner: str) -> List[ItemRecord]:
        raise NotImplementedError

    @abstractmethod
    async def insert(self, owner: str, record: ItemRecord) -> str:
        raise NotImplementedError

    @abstractmethod
    async def update(self, owner: str, item_id: str, fields: Mapping[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, owner: str, item_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete_many(self, owner: str, item_ids: Iterable[str]) -> int:
        raise NotImplementedError

    @abstractmethod
    async def fetch_profile(self, owner: str) -> ProfileSettings:
        raise NotImplementedError

    @abstractmethod
    async def update_profile(self, owner: str, fields: Mapping[str, Any]) -> None:
        raise NotImplementedError


class BaseAuthProvider(ABC):
    """Source of the current owner identity and its profile settings."""

    def __init__(self) -> None:
        self._owner: Optional[str] = None
        self._email: Optional[str] = None
        self._profile = ProfileSettings()

    def current_owner(self) -> Optional[str]:
        return self._owner

    @property
    def email(self) -> Optional[str]:
        return self._email

    @property
    def profile(self) -> ProfileSettings:
        return self._profile

    def update_profile(self, **fields: Any) -> ProfileSettings:
        """Change local profile state only; persistence goes through the remote store."""
        self._profile = replace(self._profile, **fields)
        return self._profile

    @abstractmethod
    async def login(self, credential: str) -> str:
        raise NotImplementedError

    async def logout(self) -> None:
        self._owner = None
        self._email = None
        self._profile = ProfileSettings()


def create_http_client(
    base_url: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=base_url or settings.CURATOR_API_URL,
        timeout=settings.REMOTE_TIMEOUT_SECONDS,
        transport=transport,
    )


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict) and "detail" in payload:
        return str(payload["detail"])
    return str(payload)[:200]


async def _request(client: httpx.AsyncClient, method: str, path: str, **kwargs: Any) -> Any:
    try:
        response = await client.request(method, path, **kwargs)
    except httpx.HTTPError as exc:
        raise RemoteStoreError(f"{method} {path} failed: {exc}") from exc
    if response.status_code >= 400:
        raise RemoteStoreError(
            f"{method} {path} returned {response.status_code}: {_error_detail(response)}",
            status_code=response.status_code,
        )
    return response.json()


class HttpRemoteStore(BaseRemoteStore):
    """Remote store backed by the Curator API's /items and /profile routes."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def fetch_all(self, owner: str) -> List[ItemRecord]:
        payload = await _request(self._client, "GET", "/items", params={"user_id": owner})
        return [ItemRecord.from_payload(row) for row in payload.get("items", [])]

    async def insert(self, owner: str, record: ItemRecord) -> str:
        body = {**record.to_payload(), "user_id": owner}
        payload = await _request(self._client, "POST", "/items", json=body)
        item_id = str(payload.get("id") or "")
        if not item_id:
            raise RemoteStoreError("Insert response did not include an id")
        return item_id

    async def update(self, owner: str, item_id: str, fields: Mapping[str, Any]) -> None:
        body = {**changes_to_payload(fields), "user_id": owner}
        await _request(self._client, "PATCH", f"/items/{item_id}", json=body)

    async def delete(self, owner: str, item_id: str) -> None:
        await _request(self._client, "DELETE", f"/items/{item_id}", params={"user_id": owner})

    async def delete_many(self, owner: str, item_ids: Iterable[str]) -> int:
        body = {"ids": list(item_ids), "user_id": owner}
        payload = await _request(self._client, "POST", "/items/bulk_delete", json=body)
        return int(payload.get("deleted_count", 0) or 0)

    async def fetch_profile(self, owner: str) -> ProfileSettings:
        payload = await _request(self._client, "GET", "/profile", params={"user_id": owner})
        return ProfileSettings.from_payload(payload)

    async def update_profile(self, owner: str, fields: Mapping[str, Any]) -> None:
        body: Dict[str, Any] = {**fields, "user_id": owner}
        await _request(self._client, "PATCH", "/profile", json=body)


class HttpAuthProvider(BaseAuthProvider):
    """Resolves identity from a session token via /auth/me.

    The bearer header is installed on the shared client, so an
    ``HttpRemoteStore`` over the same client is scoped to the same owner.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        super().__init__()
        self._client = client

    async def login(self, credential: str) -> str:
        self._client.headers["Authorization"] = f"Bearer {credential}"
        try:
            payload = await _request(self._client, "GET", "/auth/me")
        except RemoteStoreError:
            self._client.headers.pop("Authorization", None)
            raise
        self._owner = str(payload["user_id"])
        self._email = payload.get("email")
        self._profile = ProfileSettings.from_payload(payload.get("settings"))
        logger.info("auth_login user=%s app_lock_enabled=%s", self._owner, self._profile.app_lock_enabled)
        return self._owner

    async def logout(self) -> None:
        owner = self._owner
        self._client.headers.pop("Authorization", None)
        await super().logout()
        logger.info("auth_logout user=%s", owner)
