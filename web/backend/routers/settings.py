#!/usr/bin/env python3
"""
Settings endpoints - view and change notification preferences.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import sessionmaker

from database.repositories import PreferenceRepository
from database.uow import notification_uow
from notification.exceptions import InvalidPreferencesError
from ..dependencies import get_session_factory
from ..exceptions import InvalidSettingsException
from ..models.requests import SettingsUpdate
from ..models.responses import SettingsResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("", response_model=SettingsResponse)
def get_settings(
    location_id: str = Query(..., alias="locationId", min_length=1),
    user_id: Optional[str] = Query(None, alias="userId"),
    session_factory: sessionmaker = Depends(get_session_factory)
):
    """Get preferences, creating the defaults on first access."""
    with notification_uow(session_factory) as repos:
        record = repos.preferences.get_or_create(location_id, user_id)
        settings = PreferenceRepository.to_settings(record)
    return SettingsResponse(success=True, preferences=settings.model_dump())


@router.post("", response_model=SettingsResponse)
def update_settings(
    request: SettingsUpdate,
    session_factory: sessionmaker = Depends(get_session_factory)
):
    """Partially update preferences; only the sections sent are changed."""
    try:
        with notification_uow(session_factory) as repos:
            settings = repos.preferences.update(
                request.location_id,
                request.user_id,
                channels=request.channels,
                filters=request.filters,
                features=request.features
            )
    except InvalidPreferencesError as e:
        raise InvalidSettingsException(str(e)) from e

    logger.info(f"Preferences updated for location: {request.location_id}")
    return SettingsResponse(success=True, preferences=settings.model_dump())


@router.delete("", response_model=SettingsResponse)
def reset_settings(
    location_id: str = Query(..., alias="locationId", min_length=1),
    user_id: Optional[str] = Query(None, alias="userId"),
    session_factory: sessionmaker = Depends(get_session_factory)
):
    """Reset preferences to defaults."""
    with notification_uow(session_factory) as repos:
        settings = repos.preferences.reset(location_id, user_id)

    logger.info(f"Preferences reset for location: {location_id}")
    return SettingsResponse(
        success=True,
        message="Preferences reset to defaults",
        preferences=settings.model_dump()
    )
