"""High-level learner profile operations used by the app layer."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from .achievements import AchievementProgress
from .aggregator import ProgressAggregator
from .progress_model import (
    DEFAULT_LOCALE,
    ExamSessionSummary,
    LearnerProfile,
    LearningRecommendation,
    ProfileMetadata,
    ProfilePreferences,
    ProfileProgress,
    QuizSessionSummary,
    UnlockedAchievement,
)
from .stores.local import LocalProfileStore
from .sync import SyncOrchestrator
from .telemetry import emit_event

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProfileService:
    """Owns the in-memory current profile.

    Every mutation is written to the local store before the method returns;
    remote syncs are scheduled afterwards and never block the caller.
    """

    def __init__(
        self,
        local_store: LocalProfileStore,
        orchestrator: SyncOrchestrator,
        aggregator: Optional[ProgressAggregator] = None,
        *,
        device_identifier: Optional[str] = None,
        locale: str = DEFAULT_LOCALE,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._local = local_store
        self._orchestrator = orchestrator
        self._clock = clock or _utcnow
        self._aggregator = aggregator or ProgressAggregator(clock=self._clock)
        self._device_identifier = device_identifier
        self._locale = locale
        self._pending_sync: Optional[asyncio.Task] = None
        self.last_recommendations: List[LearningRecommendation] = []
        self.last_unlocked_achievements: List[UnlockedAchievement] = []
        self._profile = self._load_initial()

    def _load_initial(self) -> LearnerProfile:
        profile = self._local.load_current_profile()
        if profile is not None:
            return profile
        profile = self._local.load_or_create_anonymous_profile(
            locale=self._locale,
            device_identifier=self._device_identifier,
        )
        self._local.set_current_profile_id(profile.profile_id)
        return profile

    @property
    def current(self) -> LearnerProfile:
        return self._profile.model_copy(deep=True)

    @property
    def is_signed_in(self) -> bool:
        return not self._profile.is_anonymous

    @property
    def pending_sync(self) -> Optional[asyncio.Task]:
        return self._pending_sync

    def _adopt(self, result: Optional[LearnerProfile]) -> None:
        if result is None or result.profile_id != self._profile.profile_id:
            return
        if result.metadata.updated_at < self._profile.metadata.updated_at:
            # A newer local edit is already queued behind this sync.
            return
        self._profile = result

    def _commit(self, profile: LearnerProfile) -> LearnerProfile:
        self._profile = profile
        task = self._orchestrator.schedule_sync(profile, on_complete=self._adopt)
        if task is not None:
            self._pending_sync = task
        return self.current

    def _touch(self, profile: LearnerProfile) -> None:
        profile.metadata.updated_at = self._clock()
        if self._device_identifier:
            profile.metadata.last_device_identifier = self._device_identifier

    def record_quiz(self, summary: QuizSessionSummary) -> List[LearningRecommendation]:
        known = {item.achievement_id for item in self._profile.progress.achievements}
        updated, recommendations = self._aggregator.apply_quiz_outcome(summary, self._profile)
        self.last_unlocked_achievements = [
            item.model_copy(deep=True)
            for item in updated.progress.achievements
            if item.achievement_id not in known
        ]
        self._touch(updated)
        self._commit(updated)
        self.last_recommendations = recommendations
        return [item.model_copy(deep=True) for item in recommendations]

    def achievement_progress(self) -> List[AchievementProgress]:
        return self._aggregator.achievements.progress_for(self._profile.progress)

    def record_exam(self, summary: ExamSessionSummary) -> LearnerProfile:
        updated = self._aggregator.apply_exam_outcome(summary, self._profile)
        self._touch(updated)
        self.last_recommendations = [item.model_copy(deep=True) for item in updated.progress.recommendations]
        return self._commit(updated)

    def record_corrected_mistakes(self, count: int) -> LearnerProfile:
        if count <= 0:
            return self.current
        updated = self._aggregator.record_corrected_mistakes(self._profile, count)
        self._touch(updated)
        return self._commit(updated)

    def update_display_name(self, name: Optional[str]) -> LearnerProfile:
        trimmed = name.strip() if name else ""
        updated = self._profile.model_copy(deep=True)
        updated.custom_display_name = trimmed or None
        self._touch(updated)
        return self._commit(updated)

    def update_preferences(self, **changes: Any) -> LearnerProfile:
        unknown = set(changes) - set(ProfilePreferences.model_fields)
        if unknown:
            raise ValueError(f"Unknown preference field(s): {', '.join(sorted(unknown))}")
        updated = self._profile.model_copy(deep=True)
        updated.preferences = ProfilePreferences.model_validate(
            {**updated.preferences.model_dump(), **changes}
        )
        self._touch(updated)
        return self._commit(updated)

    async def sync_now(self) -> Optional[LearnerProfile]:
        result = await self._orchestrator.perform_sync(self._profile)
        self._adopt(result)
        return result

    async def reset_progress(self) -> LearnerProfile:
        """Wipe progress while keeping identity; a signed-in profile also loses its cloud copy."""
        profile_id = self._profile.profile_id
        self._orchestrator.cancel_sync(profile_id)
        self._pending_sync = None

        updated = self._profile.model_copy(deep=True)
        updated.progress = ProfileProgress()
        updated.metadata.last_synced_at = None
        self._touch(updated)
        self._profile = self._local.save_profile(updated)
        self.last_recommendations = []
        self.last_unlocked_achievements = []
        emit_event("profile_reset", profile_id=profile_id, anonymous=updated.is_anonymous)

        if self.is_signed_in and self._orchestrator.remote_enabled:
            if await self._orchestrator.delete_remote(profile_id):
                self._adopt(await self._orchestrator.perform_sync(self._profile))
        return self.current

    async def sign_in(
        self,
        external_id: str,
        *,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> LearnerProfile:
        """Switch to an authenticated profile, carrying over local progress and preferences."""
        previous = self._profile
        if previous.profile_id != external_id:
            self._orchestrator.cancel_sync(previous.profile_id)
        now = self._clock()
        signed_in = LearnerProfile(
            profile_id=external_id,
            auth_method="authenticated",
            full_name=full_name or previous.full_name,
            email=email or previous.email,
            custom_display_name=previous.custom_display_name,
            locale=previous.locale,
            avatar_ref=previous.avatar_ref,
            progress=previous.progress.model_copy(deep=True),
            preferences=previous.preferences.model_copy(deep=True),
            metadata=ProfileMetadata(
                created_at=previous.metadata.created_at,
                updated_at=now,
                last_synced_at=None,
                last_device_identifier=self._device_identifier,
            ),
        )
        self._profile = self._local.save_profile(signed_in)
        self._local.set_current_profile_id(external_id)
        logger.info("Signed in as %s", external_id)

        self._adopt(await self._orchestrator.refresh_from_cloud(self._profile, "newest"))
        return self.current

    def sign_out(self) -> LearnerProfile:
        """Return to this device's anonymous profile, keeping the signed-in progress."""
        if not self.is_signed_in:
            return self.current
        signed_in = self._profile
        self._orchestrator.cancel_sync(signed_in.profile_id)
        self._pending_sync = None

        anonymous = self._local.load_or_create_anonymous_profile(
            locale=self._locale,
            device_identifier=self._device_identifier,
        )
        anonymous.progress = signed_in.progress.model_copy(deep=True)
        self._touch(anonymous)
        self._profile = self._local.save_profile(anonymous)
        self._local.set_current_profile_id(anonymous.profile_id)
        self._local.delete_profile(signed_in.profile_id)
        self.last_recommendations = []
        self.last_unlocked_achievements = []
        emit_event(
            "profile_signed_out",
            profile_id=signed_in.profile_id,
            anonymous_profile_id=anonymous.profile_id,
        )
        return self.current


__all__ = ["ProfileService"]
