#!/usr/bin/env python3
"""
Test suite configuration and utilities.

All tests can be run with standard Python tools:

    # Run all tests (Redis tests skip unless REDIS_URL is set)
    python -m pytest tests/ -v

    # Run only unit tests
    python -m pytest tests/unit -v

    # Using unittest
    python -m unittest discover tests -v

Database:
    Repository, subscription and dispatcher tests run against an in-memory
    SQLite database (one shared connection via StaticPool), so no server is
    needed. The schema is the same one init_db() creates on PostgreSQL.
"""

import os
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database.database import build_session_factory, init_db

REDIS_URL = os.environ.get("REDIS_URL")


def make_test_engine():
    """Fresh in-memory SQLite engine with all tables created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )

    # pysqlite defers BEGIN, which breaks SAVEPOINT; let SQLAlchemy emit it
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    init_db(engine)
    return engine


def make_session_factory(engine=None) -> sessionmaker:
    return build_session_factory(engine or make_test_engine())


def make_request_data(
    account_id: str = "loc-1",
    user_id: str = "user-1",
    message_text: str = "Hello there",
    **overrides
) -> dict:
    """Job payload for a normalized inbound message."""
    data = {
        "account_id": account_id,
        "user_id": user_id,
        "event_type": "InboundMessage",
        "message_text": message_text,
        "contact_name": "Jane Doe",
        "contact_id": "contact-1",
        "conversation_id": "conv-1",
        "message_id": "msg-1",
    }
    data.update(overrides)
    return data


def save_preferences(
    session_factory: sessionmaker,
    account_id: str = "loc-1",
    user_id: Optional[str] = None,
    **documents
):
    """Store preferences for an account (or one user) through the repository."""
    from database.uow import notification_uow

    with notification_uow(session_factory) as repos:
        return repos.preferences.update(account_id, user_id, **documents)
