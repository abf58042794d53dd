"""
Abstract Cloud Interfaces

DESIGN DECISION: The cloud is two opaque capabilities.
- An identity provider that can say who is signed in, sign in and out,
  and notify listeners when that changes
- A remote document store holding one document per principal

Provider protocols (OAuth flows, SDK specifics) live behind these
interfaces. The reconciler only ever sees a Principal and a dict.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import BaseModel, Field

from ledgersafe.models.results import ErrorKind


class Principal(BaseModel):
    """A signed-in user."""

    provider: str = Field(..., description="Identity provider name, e.g. 'google'")
    user_id: str = Field(..., min_length=1)
    display_name: str = ""
    email: str = ""

    @property
    def key(self) -> str:
        """Stable identifier used for the remote document and sync stamps."""
        return f"{self.provider}:{self.user_id}"


IdentityListener = Callable[[Optional[Principal]], Union[None, Awaitable[None]]]


class IdentityProviderInterface(ABC):
    """Who is signed in."""

    @abstractmethod
    def current_principal(self) -> Optional[Principal]:
        """The signed-in principal, or None."""
        pass

    @abstractmethod
    async def sign_in(self, hint: Optional[str] = None) -> Principal:
        """
        Run the sign-in flow.

        Args:
            hint: Optional login hint (e.g. an email address)

        Returns:
            The signed-in principal

        Raises:
            AuthRequiredError: If the user cancelled or sign-in was refused
        """
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        """Sign out the current principal, if any."""
        pass

    @abstractmethod
    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """
        Register a listener for sign-in/sign-out changes.

        The listener receives the new principal (None on sign-out).

        Returns:
            A function that unsubscribes the listener
        """
        pass


class RemoteDocumentStoreInterface(ABC):
    """One opaque JSON document per principal."""

    @abstractmethod
    async def read(self, principal_key: str) -> Optional[dict[str, Any]]:
        """
        Read the principal's document.

        Returns:
            The document, or None if none has been written yet

        Raises:
            TransientNetworkError: Remote temporarily unreachable
            AuthRevokedError: Credentials no longer accepted
        """
        pass

    @abstractmethod
    async def write(self, principal_key: str, document: dict[str, Any]) -> None:
        """
        Replace the principal's document.

        Raises:
            TransientNetworkError: Remote temporarily unreachable
            AuthRevokedError: Credentials no longer accepted
        """
        pass


# =============================================================================
# EXCEPTIONS
# =============================================================================

class CloudError(Exception):
    """Base exception for identity and remote document operations."""
    kind: ErrorKind = ErrorKind.TRANSIENT_NETWORK


class AuthRequiredError(CloudError):
    """No principal is signed in, or sign-in was cancelled."""
    kind = ErrorKind.AUTH_REQUIRED


class AuthRevokedError(CloudError):
    """The remote rejected our credentials. Never retried."""
    kind = ErrorKind.AUTH_REVOKED


class TransientNetworkError(CloudError):
    """The remote is temporarily unreachable. Retried with backoff."""
    kind = ErrorKind.TRANSIENT_NETWORK


class RemoteTimeoutError(TransientNetworkError):
    """A remote call did not finish within its timeout."""
    kind = ErrorKind.TIMEOUT


class SignInTimeoutError(CloudError):
    """Sign-in did not finish within its timeout."""
    kind = ErrorKind.TIMEOUT
