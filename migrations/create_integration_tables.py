"""
Create calendar connection, profile entitlement and waitlist tables

- profiles: plan + stripe_customer_id columns (table may already exist from signup)
- calendar_connections: one row per user (UNIQUE user_id backs the upsert)
- waitlist_leads: UNIQUE email
"""

# Ensure this script can be run directly from repo root
import sys
from pathlib import Path

# Add repo root to sys.path so "app" package is importable
CURRENT_DIR = Path(__file__).resolve().parent
ROOT_DIR = CURRENT_DIR.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from sqlalchemy import text
from app.database import engine


def upgrade():
    with engine.connect() as conn:
        conn.execute(
            text(
                """
                CREATE TABLE IF NOT EXISTS profiles (
                    id VARCHAR(64) PRIMARY KEY,
                    email VARCHAR(255),
                    plan VARCHAR(20) NOT NULL DEFAULT 'free',
                    stripe_customer_id VARCHAR(255),
                    created_at TIMESTAMP DEFAULT NOW(),
                    updated_at TIMESTAMP DEFAULT NOW()
                );
                """
            )
        )
        conn.execute(
            text(
                """
                ALTER TABLE profiles
                ADD COLUMN IF NOT EXISTS plan VARCHAR(20) NOT NULL DEFAULT 'free';
                """
            )
        )
        conn.execute(
            text(
                """
                ALTER TABLE profiles
                ADD COLUMN IF NOT EXISTS stripe_customer_id VARCHAR(255);
                """
            )
        )
        conn.execute(
            text(
                """
                CREATE INDEX IF NOT EXISTS ix_profiles_stripe_customer_id
                ON profiles (stripe_customer_id);
                """
            )
        )

        conn.execute(
            text(
                """
                CREATE TABLE IF NOT EXISTS calendar_connections (
                    id SERIAL PRIMARY KEY,
                    user_id VARCHAR(64) NOT NULL UNIQUE,
                    provider VARCHAR(20) NOT NULL DEFAULT 'google',
                    access_token TEXT NOT NULL,
                    refresh_token TEXT,
                    token_expires_at TIMESTAMP NULL,
                    calendar_id VARCHAR(500),
                    calendar_email VARCHAR(500),
                    sync_enabled BOOLEAN NOT NULL DEFAULT TRUE,
                    connected_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP DEFAULT NOW()
                );
                """
            )
        )

        conn.execute(
            text(
                """
                CREATE TABLE IF NOT EXISTS waitlist_leads (
                    id SERIAL PRIMARY KEY,
                    email VARCHAR(255) NOT NULL UNIQUE,
                    name VARCHAR(255) NOT NULL,
                    practice_type VARCHAR(100) NOT NULL,
                    created_at TIMESTAMP DEFAULT NOW()
                );
                """
            )
        )

        conn.commit()
        print("Migration create_integration_tables applied successfully")


def downgrade():
    with engine.connect() as conn:
        conn.execute(text("DROP TABLE IF EXISTS waitlist_leads"))
        conn.execute(text("DROP TABLE IF EXISTS calendar_connections"))
        # profiles is owned by signup; only drop the billing columns
        conn.execute(text("DROP INDEX IF EXISTS ix_profiles_stripe_customer_id"))
        conn.execute(text("ALTER TABLE profiles DROP COLUMN IF EXISTS stripe_customer_id"))
        conn.execute(text("ALTER TABLE profiles DROP COLUMN IF EXISTS plan"))
        conn.commit()
        print("Migration create_integration_tables rolled back")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Manage calendar/billing/waitlist tables")
    parser.add_argument("--down", action="store_true", help="Rollback the migration")
    args = parser.parse_args()

    if args.down:
        downgrade()
    else:
        upgrade()
