#!/usr/bin/env python3
"""
FastAPI dependencies for dependency injection.
"""

import logging
import threading
from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import sessionmaker

from core.app_context import AppContext
from core.config_loader import get_config
from notification.service import NotificationService
from notification.subscriptions import PushSubscriptionManager

logger = logging.getLogger(__name__)

_context: Optional[AppContext] = None
_context_lock = threading.Lock()


def get_app_context() -> AppContext:
    """
    FastAPI dependency that returns the process-wide AppContext.

    Built on first use from get_config(). Tests replace it through
    app.dependency_overrides.
    """
    global _context
    if _context is None:
        with _context_lock:
            if _context is None:
                _context = AppContext.build(get_config())
    return _context


def close_app_context() -> None:
    global _context
    with _context_lock:
        if _context is not None:
            _context.close()
            _context = None


def get_notification_service(context: AppContext = Depends(get_app_context)) -> NotificationService:
    return context.notification_service


def get_subscription_manager(context: AppContext = Depends(get_app_context)) -> PushSubscriptionManager:
    return context.subscription_manager


def get_session_factory(context: AppContext = Depends(get_app_context)) -> sessionmaker:
    """
    Session factory for routes that use repositories directly.

    Usage:
        @router.get("/endpoint")
        def my_endpoint(session_factory: sessionmaker = Depends(get_session_factory)):
            with notification_uow(session_factory) as repos:
                ...
    """
    return context.session_factory
