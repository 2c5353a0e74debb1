"""Repository layer for the profile server."""

from .remote_profiles import RemoteProfileRepository, StaleProfileError

__all__ = ["RemoteProfileRepository", "StaleProfileError"]
