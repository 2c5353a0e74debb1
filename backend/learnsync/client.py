"""Wire the on-device components together from settings."""

from __future__ import annotations

import random
from typing import Optional

from .aggregator import ProgressAggregator
from .config import Settings, get_settings
from .profile_service import ProfileService
from .question_bank import LocalQuestionBank, QuestionBank, RemoteQuestionBank
from .question_selector import QuestionSelector, SessionPlanner
from .stores.local import LocalProfileStore
from .stores.remote import HttpRemoteProfileStore
from .sync import SyncOrchestrator
from .usage_tracker import FileUsedQuestionTracker


def build_remote_store(settings: Settings) -> Optional[HttpRemoteProfileStore]:
    if not settings.remote_url:
        return None
    return HttpRemoteProfileStore(
        settings.remote_url,
        timeout_seconds=settings.remote_timeout_seconds,
        api_token=settings.remote_api_token,
    )


def build_profile_service(settings: Optional[Settings] = None) -> ProfileService:
    settings = settings or get_settings()
    local_store = LocalProfileStore(settings.profiles_dir)
    orchestrator = SyncOrchestrator(
        local_store,
        build_remote_store(settings),
        debounce_seconds=settings.sync_debounce_seconds,
        device_identifier=settings.device_identifier,
    )
    return ProfileService(
        local_store,
        orchestrator,
        ProgressAggregator(),
        device_identifier=settings.device_identifier,
    )


def build_question_bank(settings: Settings) -> QuestionBank:
    local_bank = LocalQuestionBank(settings.resolved_question_bank_dir)
    if not settings.question_bank_url:
        return local_bank
    return RemoteQuestionBank(
        settings.question_bank_url,
        fallback=local_bank,
        timeout_seconds=settings.remote_timeout_seconds,
    )


def build_session_planner(
    settings: Optional[Settings] = None,
    *,
    rng: Optional[random.Random] = None,
) -> SessionPlanner:
    settings = settings or get_settings()
    return SessionPlanner(
        build_question_bank(settings),
        FileUsedQuestionTracker(settings.usage_path),
        version=settings.question_bank_version,
        selector=QuestionSelector(rng),
    )


__all__ = [
    "build_profile_service",
    "build_question_bank",
    "build_remote_store",
    "build_session_planner",
]
