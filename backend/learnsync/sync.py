"""Coordinates the local store, the remote store and the merge engine."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Literal, Optional, Set, Tuple

from .merge import merge_profiles
from .progress_model import LearnerProfile, MergeStrategy
from .stores.local import LocalProfileStore
from .stores.remote import (
    RemoteAuthError,
    RemoteConflictError,
    RemoteDecodeError,
    RemoteProfileStore,
    RemoteTransportError,
)
from .telemetry import emit_event

logger = logging.getLogger(__name__)

SyncStatus = Literal["idle", "syncing", "failed"]
SyncListener = Callable[[str, "SyncState"], None]
SyncCallback = Callable[[Optional[LearnerProfile]], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SyncState:
    status: SyncStatus = "idle"
    message: Optional[str] = None
    updated_at: datetime = field(default_factory=_utcnow)


class SyncCancelled(Exception):
    """Raised inside a sync when its token was cancelled."""


class CancellationToken:
    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise SyncCancelled()


def describe_sync_error(exc: BaseException) -> str:
    """User-facing message for a failed sync."""
    if isinstance(exc, RemoteTransportError):
        return "Network problem while syncing. Check your connection and try again."
    if isinstance(exc, RemoteDecodeError):
        return "The cloud copy of your profile could not be read. Please try again later."
    if isinstance(exc, RemoteConflictError):
        return "Your profile was changed on another device. Please sync again."
    if isinstance(exc, RemoteAuthError):
        if exc.status_code == 403:
            return "You do not have permission to sync this profile."
        return "Your session has expired. Please sign in again."
    if isinstance(exc, OSError):
        return "Your profile could not be saved on this device. Free up some storage and try again."
    return "Something went wrong while syncing your profile. Please try again."


class SyncOrchestrator:
    """Runs at most one remote round trip per profile id at a time.

    ``schedule_sync`` persists locally before returning, then debounces and
    coalesces remote syncs: while one is in flight only the most recent
    request is kept, and it runs once the in-flight sync finishes.
    """

    def __init__(
        self,
        local_store: LocalProfileStore,
        remote_store: Optional[RemoteProfileStore],
        *,
        debounce_seconds: float = 2.0,
        clock: Optional[Callable[[], datetime]] = None,
        device_identifier: Optional[str] = None,
    ) -> None:
        self._local = local_store
        self._remote = remote_store
        self._debounce = max(0.0, debounce_seconds)
        self._clock = clock or _utcnow
        self._device_identifier = device_identifier
        self._locks: Dict[str, asyncio.Lock] = {}
        self._states: Dict[str, SyncState] = {}
        self._state = SyncState(updated_at=self._clock())
        self._listeners: List[SyncListener] = []
        self._pending: Dict[str, Tuple[LearnerProfile, List[SyncCallback]]] = {}
        self._runners: Dict[str, asyncio.Task] = {}
        self._tokens: Dict[str, Set[CancellationToken]] = {}

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def remote_enabled(self) -> bool:
        return self._remote is not None

    def state_for(self, profile_id: str) -> SyncState:
        return self._states.get(profile_id, SyncState(updated_at=self._clock()))

    def add_listener(self, listener: SyncListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: SyncListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _set_state(self, profile_id: str, status: SyncStatus, message: Optional[str] = None) -> None:
        state = SyncState(status=status, message=message, updated_at=self._clock())
        self._states[profile_id] = state
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(profile_id, state)
            except Exception:  # noqa: BLE001
                logger.exception("Sync state listener failed for %s", profile_id)

    def _lock_for(self, profile_id: str) -> asyncio.Lock:
        lock = self._locks.get(profile_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[profile_id] = lock
        return lock

    def _skips_remote(self, profile: LearnerProfile) -> bool:
        return self._remote is None or profile.is_anonymous

    async def perform_sync(
        self,
        profile: LearnerProfile,
        token: Optional[CancellationToken] = None,
    ) -> Optional[LearnerProfile]:
        """Pull, merge with ``newest``, push and persist. Returns ``None`` on failure."""
        return await self._sync(profile, "newest", token)

    async def refresh_from_cloud(
        self,
        profile: LearnerProfile,
        strategy: MergeStrategy = "newest",
        token: Optional[CancellationToken] = None,
    ) -> Optional[LearnerProfile]:
        return await self._sync(profile, strategy, token)

    async def _sync(
        self,
        profile: LearnerProfile,
        strategy: MergeStrategy,
        token: Optional[CancellationToken],
    ) -> Optional[LearnerProfile]:
        if self._skips_remote(profile):
            return profile.model_copy(deep=True)
        async with self._lock_for(profile.profile_id):
            return await self._sync_unlocked(profile, strategy, token or CancellationToken())

    def _reconcile(
        self,
        local: LearnerProfile,
        remote: Optional[LearnerProfile],
        strategy: MergeStrategy,
    ) -> LearnerProfile:
        if remote is None:
            return local.model_copy(deep=True)
        merged = merge_profiles(local, remote, strategy, device_identifier=self._device_identifier)
        emit_event(
            "profile_merged",
            profile_id=local.profile_id,
            strategy=strategy,
            total_questions=merged.progress.total_questions_answered,
            updated_at=merged.metadata.updated_at,
        )
        return merged

    async def _sync_unlocked(
        self,
        profile: LearnerProfile,
        strategy: MergeStrategy,
        token: CancellationToken,
    ) -> Optional[LearnerProfile]:
        assert self._remote is not None
        profile_id = profile.profile_id
        tokens = self._tokens.setdefault(profile_id, set())
        tokens.add(token)
        self._set_state(profile_id, "syncing")
        emit_event("sync_started", profile_id=profile_id, strategy=strategy)
        try:
            token.raise_if_cancelled()
            remote = await self._remote.fetch_profile(profile_id)
            token.raise_if_cancelled()
            candidate = self._reconcile(profile, remote, strategy)
            try:
                stored = await self._remote.save_profile(candidate)
            except RemoteConflictError:
                logger.info("Remote copy of %s changed during sync; merging and retrying once", profile_id)
                token.raise_if_cancelled()
                latest = await self._remote.fetch_profile(profile_id)
                token.raise_if_cancelled()
                candidate = self._reconcile(candidate, latest, "newest")
                stored = await self._remote.save_profile(candidate)
            token.raise_if_cancelled()
            if profile_id in self._pending:
                # the queued request carries newer local edits and will persist its own merge
                saved = stored
            else:
                saved = self._local.save_profile(stored)
        except (SyncCancelled, asyncio.CancelledError) as exc:
            logger.info("Sync of %s cancelled", profile_id)
            if self.state_for(profile_id).status == "syncing":
                self._set_state(profile_id, "idle")
            emit_event("sync_cancelled", profile_id=profile_id)
            if isinstance(exc, asyncio.CancelledError):
                raise
            return None
        except Exception as exc:  # noqa: BLE001
            message = describe_sync_error(exc)
            logger.warning("Sync of %s failed: %s", profile_id, exc)
            self._set_state(profile_id, "failed", message)
            emit_event("sync_failed", profile_id=profile_id, error=type(exc).__name__, message=message)
            return None
        finally:
            tokens.discard(token)

        self._set_state(profile_id, "idle")
        emit_event(
            "sync_completed",
            profile_id=profile_id,
            strategy=strategy,
            last_synced_at=saved.metadata.last_synced_at,
        )
        return saved

    def schedule_sync(
        self,
        profile: LearnerProfile,
        on_complete: Optional[SyncCallback] = None,
    ) -> Optional[asyncio.Task]:
        """Save locally now and queue a debounced remote sync.

        Returns the task that will carry out the sync, or ``None`` when the
        profile is not synced remotely or no event loop is running.
        """
        saved = self._local.save_profile(profile)
        if self._skips_remote(saved):
            if on_complete is not None:
                on_complete(saved)
            return None

        profile_id = saved.profile_id
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.info("No running event loop; remote sync of %s deferred to the next explicit sync", profile_id)
            return None

        previous = self._pending.get(profile_id)
        callbacks = list(previous[1]) if previous else []
        if on_complete is not None:
            callbacks.append(on_complete)
        self._pending[profile_id] = (saved, callbacks)

        runner = self._runners.get(profile_id)
        if runner is not None and not runner.done():
            logger.debug("Coalescing sync request for %s", profile_id)
            return runner

        runner = loop.create_task(self._run_scheduled(profile_id))
        self._runners[profile_id] = runner
        return runner

    async def _run_scheduled(self, profile_id: str) -> Optional[LearnerProfile]:
        result: Optional[LearnerProfile] = None
        try:
            while True:
                await asyncio.sleep(self._debounce)
                request = self._pending.pop(profile_id, None)
                if request is None:
                    return result
                profile, callbacks = request
                result = await self._sync(profile, "newest", CancellationToken())
                for callback in callbacks:
                    try:
                        callback(result)
                    except Exception:  # noqa: BLE001
                        logger.exception("Sync completion callback failed for %s", profile_id)
        finally:
            if self._runners.get(profile_id) is asyncio.current_task():
                self._runners.pop(profile_id, None)

    def cancel_sync(self, profile_id: Optional[str] = None) -> None:
        """Cancel scheduled and in-flight syncs; never raises."""
        if profile_id is None:
            profile_ids = set(self._pending) | set(self._runners) | set(self._tokens) | set(self._states)
        else:
            profile_ids = {profile_id}

        for identifier in profile_ids:
            self._pending.pop(identifier, None)
            for token in list(self._tokens.get(identifier, ())):
                token.cancel()
            runner = self._runners.pop(identifier, None)
            if runner is not None and not runner.done():
                runner.cancel()
            if self.state_for(identifier).status == "syncing":
                self._set_state(identifier, "idle")
        logger.debug("Cancelled syncs for %s", profile_id or "all profiles")

    async def delete_remote(self, profile_id: str) -> bool:
        """Remove the remote copy; a missing copy counts as deleted."""
        if self._remote is None:
            return True
        async with self._lock_for(profile_id):
            try:
                await self._remote.delete_profile(profile_id)
            except Exception as exc:  # noqa: BLE001
                message = describe_sync_error(exc)
                logger.warning("Deleting remote profile %s failed: %s", profile_id, exc)
                self._set_state(profile_id, "failed", message)
                return False
        logger.info("Deleted remote profile %s", profile_id)
        return True


__all__ = [
    "CancellationToken",
    "SyncCancelled",
    "SyncOrchestrator",
    "SyncState",
    "SyncStatus",
    "describe_sync_error",
]
