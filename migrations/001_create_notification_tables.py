#!/usr/bin/env python3
"""
Migration: Create notification tables

This migration creates:
1. notification_preference, one row per account plus optional per-user overrides
2. push_subscription, with a partial unique index allowing one active
   subscription per (account_id, user_id)
3. notification_log, the append-only delivery log, with its reporting indexes

Date: 2026-10-12
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy import create_engine, text
from core.config_loader import load_config


def migrate():
    """Create the notification tables and indexes."""
    engine = create_engine(load_config().database.url)

    with engine.connect() as conn:
        conn.execute(text("""
            CREATE TABLE IF NOT EXISTS notification_preference (
                id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                account_id TEXT NOT NULL,
                user_id TEXT,
                channels JSONB NOT NULL DEFAULT '{}'::jsonb,
                filters JSONB NOT NULL DEFAULT '{}'::jsonb,
                features JSONB NOT NULL DEFAULT '{}'::jsonb,
                created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
            )
        """))

        conn.execute(text("""
            CREATE INDEX IF NOT EXISTS ix_notification_preference_account_id
            ON notification_preference (account_id)
        """))

        conn.execute(text("""
            CREATE UNIQUE INDEX IF NOT EXISTS uq_notification_preference_account_user
            ON notification_preference (account_id, coalesce(user_id, ''))
        """))

        conn.execute(text("""
            CREATE TABLE IF NOT EXISTS push_subscription (
                id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                account_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                endpoint TEXT NOT NULL UNIQUE,
                keys JSONB NOT NULL DEFAULT '{}'::jsonb,
                browser TEXT,
                os TEXT,
                device_id TEXT,
                user_agent TEXT,
                is_active BOOLEAN NOT NULL DEFAULT true,
                is_expired BOOLEAN NOT NULL DEFAULT false,
                expired_at TIMESTAMPTZ,
                expired_reason TEXT,
                last_used_at TIMESTAMPTZ DEFAULT now(),
                created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
            )
        """))

        # Keep only the newest active subscription per user before the
        # unique index goes on
        conn.execute(text("""
            UPDATE push_subscription ps
            SET is_active = false, updated_at = now()
            WHERE ps.is_active
              AND EXISTS (
                  SELECT 1 FROM push_subscription newer
                  WHERE newer.account_id = ps.account_id
                    AND newer.user_id = ps.user_id
                    AND newer.is_active
                    AND newer.updated_at > ps.updated_at
              )
        """))

        conn.execute(text("""
            CREATE UNIQUE INDEX IF NOT EXISTS uq_push_subscription_active_user
            ON push_subscription (account_id, user_id) WHERE is_active
        """))

        conn.execute(text("""
            CREATE INDEX IF NOT EXISTS ix_push_subscription_account_id
            ON push_subscription (account_id)
        """))

        conn.execute(text("""
            CREATE INDEX IF NOT EXISTS idx_push_subscription_account_active
            ON push_subscription (account_id, is_active)
        """))

        conn.execute(text("""
            CREATE TABLE IF NOT EXISTS notification_log (
                id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                account_id TEXT NOT NULL,
                user_id TEXT,
                contact_id TEXT,
                conversation_id TEXT,
                message_id TEXT,
                channel TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'sent',
                error TEXT,
                is_priority BOOLEAN NOT NULL DEFAULT false,
                was_filtered BOOLEAN NOT NULL DEFAULT false,
                filter_reason TEXT,
                message_preview TEXT,
                created_at TIMESTAMPTZ NOT NULL DEFAULT now()
            )
        """))

        conn.execute(text("""
            CREATE INDEX IF NOT EXISTS idx_notification_log_account_created
            ON notification_log (account_id, created_at)
        """))

        conn.execute(text("""
            CREATE INDEX IF NOT EXISTS idx_notification_log_channel_status
            ON notification_log (channel, status)
        """))

        conn.execute(text("""
            CREATE INDEX IF NOT EXISTS idx_notification_log_created
            ON notification_log (created_at)
        """))

        conn.commit()
        print("Successfully created notification_preference, push_subscription and notification_log tables")
        print("Successfully created indexes")


def rollback():
    """Drop the notification tables."""
    engine = create_engine(load_config().database.url)

    with engine.connect() as conn:
        conn.execute(text("DROP TABLE IF EXISTS notification_log"))
        conn.execute(text("DROP TABLE IF EXISTS push_subscription"))
        conn.execute(text("DROP TABLE IF EXISTS notification_preference"))

        conn.commit()
        print("Successfully dropped notification tables")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Migration for the notification tables")
    parser.add_argument("--rollback", action="store_true", help="Rollback the migration")

    args = parser.parse_args()

    if args.rollback:
        rollback()
    else:
        migrate()
