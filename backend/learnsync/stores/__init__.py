"""Local and remote persistence for learner profiles."""

from .local import LocalProfileStore
from .remote import (
    HttpRemoteProfileStore,
    RemoteAuthError,
    RemoteConflictError,
    RemoteDecodeError,
    RemoteProfileStore,
    RemoteStoreError,
    RemoteTransportError,
)

__all__ = [
    "HttpRemoteProfileStore",
    "LocalProfileStore",
    "RemoteAuthError",
    "RemoteConflictError",
    "RemoteDecodeError",
    "RemoteProfileStore",
    "RemoteStoreError",
    "RemoteTransportError",
]
