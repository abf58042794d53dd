"""
Cloud Services Package

Identity and remote document interfaces, plus key/value-backed local
implementations.
"""

from ledgersafe.services.cloud.interface import (
    AuthRequiredError,
    AuthRevokedError,
    CloudError,
    IdentityListener,
    IdentityProviderInterface,
    Principal,
    RemoteDocumentStoreInterface,
    RemoteTimeoutError,
    SignInTimeoutError,
    TransientNetworkError,
)
from ledgersafe.services.cloud.local import (
    KeyValueRemoteDocumentStore,
    LocalIdentityProvider,
)

__all__ = [
    # Interfaces
    "IdentityListener",
    "IdentityProviderInterface",
    "Principal",
    "RemoteDocumentStoreInterface",
    # Exceptions
    "AuthRequiredError",
    "AuthRevokedError",
    "CloudError",
    "RemoteTimeoutError",
    "SignInTimeoutError",
    "TransientNetworkError",
    # Local implementations
    "KeyValueRemoteDocumentStore",
    "LocalIdentityProvider",
]
