"""REST endpoints backing ``HttpRemoteProfileStore``."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status
from sqlalchemy.orm import Session

from .config import Settings, get_settings
from .db.session import get_session_dependency
from .progress_model import LearnerProfile
from .repositories.remote_profiles import RemoteProfileRepository, StaleProfileError
from .telemetry import emit_event

router = APIRouter(prefix="/api/profiles", tags=["profiles"])
logger = logging.getLogger(__name__)

_repository = RemoteProfileRepository()


def get_profile_repository() -> RemoteProfileRepository:
    return _repository


def require_api_token(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    expected = settings.server_api_token
    if not expected:
        return
    if authorization != f"Bearer {expected}":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing API token.")


@router.get(
    "/{profile_id}",
    response_model=LearnerProfile,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_api_token)],
)
def get_remote_profile(
    profile_id: str,
    session: Session = Depends(get_session_dependency),
    repository: RemoteProfileRepository = Depends(get_profile_repository),
) -> LearnerProfile:
    profile = repository.get(session, profile_id)
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Profile '{profile_id}' was not found.",
        )
    return profile


@router.put(
    "/{profile_id}",
    response_model=LearnerProfile,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_api_token)],
)
def put_remote_profile(
    profile_id: str,
    profile: LearnerProfile,
    session: Session = Depends(get_session_dependency),
    repository: RemoteProfileRepository = Depends(get_profile_repository),
) -> LearnerProfile:
    if profile.profile_id != profile_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Profile id in the body does not match the URL.",
        )
    try:
        stored = repository.upsert(session, profile)
    except StaleProfileError as exc:
        logger.info("Rejected stale write for %s: %s", profile_id, exc)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    emit_event(
        "remote_profile_stored",
        profile_id=profile_id,
        updated_at=stored.metadata.updated_at,
        last_synced_at=stored.metadata.last_synced_at,
    )
    return stored


@router.delete(
    "/{profile_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_api_token)],
)
def delete_remote_profile(
    profile_id: str,
    session: Session = Depends(get_session_dependency),
    repository: RemoteProfileRepository = Depends(get_profile_repository),
) -> Response:
    deleted = repository.delete(session, profile_id)
    logger.info("Delete of remote profile %s (existed=%s)", profile_id, deleted)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["get_profile_repository", "require_api_token", "router"]
