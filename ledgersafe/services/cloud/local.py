"""
Local Cloud Implementations

A key/value-backed identity provider and remote document store. They keep
the sync machinery usable on a single device, or between devices that
share a key/value backend, without any cloud SDK. Real providers
implement the same interfaces.
"""

import inspect
from typing import Any, Callable, Optional

import structlog

from ledgersafe.services.cloud.interface import (
    AuthRequiredError,
    IdentityListener,
    IdentityProviderInterface,
    Principal,
    RemoteDocumentStoreInterface,
)
from ledgersafe.services.storage.interface import KeyValueStoreInterface


logger = structlog.get_logger(__name__)


class LocalIdentityProvider(IdentityProviderInterface):
    """
    Identity from a login hint, remembered in the key/value store.

    Call load() once at startup to pick up a principal signed in during
    an earlier session.
    """

    USER_KEY = "cloud_user_v1"

    def __init__(
        self,
        kv: KeyValueStoreInterface,
        provider: str = "local",
        prefix: str = "ledgersafe_",
    ):
        self._kv = kv
        self._provider = provider
        self._key = prefix + self.USER_KEY
        self._principal: Optional[Principal] = None
        self._listeners: list[IdentityListener] = []

    async def load(self) -> Optional[Principal]:
        raw = await self._kv.get(self._key)
        self._principal = Principal.model_validate(raw) if isinstance(raw, dict) else None
        return self._principal

    def current_principal(self) -> Optional[Principal]:
        return self._principal

    async def sign_in(self, hint: Optional[str] = None) -> Principal:
        if not hint or not hint.strip():
            raise AuthRequiredError("Sign-in cancelled")
        email = hint.strip()
        principal = Principal(
            provider=self._provider,
            user_id=email.lower(),
            display_name=email.split("@")[0],
            email=email,
        )
        await self._kv.set(self._key, principal.model_dump())
        self._principal = principal
        await self._notify(principal)
        return principal

    async def sign_out(self) -> None:
        if self._principal is None:
            return
        await self._kv.remove(self._key)
        self._principal = None
        await self._notify(None)

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _notify(self, principal: Optional[Principal]) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(principal)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error("identity_listener_failed", error=str(e))


class KeyValueRemoteDocumentStore(RemoteDocumentStoreInterface):
    """Remote documents stored as key/value entries under a namespace."""

    def __init__(
        self,
        kv: KeyValueStoreInterface,
        prefix: str = "mock_cloud_store_v1",
    ):
        self._kv = kv
        self._prefix = prefix

    async def read(self, principal_key: str) -> Optional[dict[str, Any]]:
        return await self._kv.get(f"{self._prefix}:{principal_key}")

    async def write(self, principal_key: str, document: dict[str, Any]) -> None:
        await self._kv.set(f"{self._prefix}:{principal_key}", document)
