"""Database-backed storage for synced learner profiles."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ..db.models import RemoteProfileModel
from ..progress_model import LearnerProfile

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StaleProfileError(RuntimeError):
    """The stored copy was updated after the one being written."""


class RemoteProfileRepository:
    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or _utcnow

    @staticmethod
    def _find(session: Session, profile_id: str) -> Optional[RemoteProfileModel]:
        stmt = select(RemoteProfileModel).where(RemoteProfileModel.profile_id == profile_id)
        return session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def _to_domain(model: RemoteProfileModel) -> Optional[LearnerProfile]:
        try:
            return LearnerProfile.model_validate(model.payload)
        except ValidationError:
            logger.exception("Stored profile %s has an invalid payload", model.profile_id)
            return None

    def get(self, session: Session, profile_id: str) -> Optional[LearnerProfile]:
        model = self._find(session, profile_id)
        if model is None:
            return None
        return self._to_domain(model)

    def upsert(self, session: Session, profile: LearnerProfile) -> LearnerProfile:
        """Store ``profile`` and return the confirmed copy with a fresh ``last_synced_at``."""
        model = self._find(session, profile.profile_id)
        if model is None:
            model = RemoteProfileModel(profile_id=profile.profile_id)
            session.add(model)
        else:
            existing = self._to_domain(model)
            if existing is not None and existing.metadata.updated_at > profile.metadata.updated_at:
                raise StaleProfileError(
                    f"Profile {profile.profile_id} was updated at {existing.metadata.updated_at.isoformat()}"
                )

        stored = profile.model_copy(deep=True)
        stored.metadata.last_synced_at = self._clock()
        model.auth_method = stored.auth_method
        model.payload = stored.model_dump(mode="json")
        model.updated_at = stored.metadata.updated_at
        model.last_synced_at = stored.metadata.last_synced_at
        session.flush()
        return stored

    def delete(self, session: Session, profile_id: str) -> bool:
        result = session.execute(delete(RemoteProfileModel).where(RemoteProfileModel.profile_id == profile_id))
        return bool(result.rowcount)


__all__ = ["RemoteProfileRepository", "StaleProfileError"]
