"""Calendar credential store - Database operations for calendar connections"""

from datetime import datetime
from typing import Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from ...models import CalendarConnection

_UPSERT_COLUMNS = (
    "provider",
    "access_token",
    "refresh_token",
    "token_expires_at",
    "calendar_id",
    "calendar_email",
    "sync_enabled",
    "connected_at",
)


def _dialect_insert(db: Session):
    """INSERT construct that supports ON CONFLICT for the bound dialect"""
    if db.get_bind().dialect.name == "postgresql":
        return postgresql.insert
    return sqlite.insert


class CredentialStore:
    """One calendar connection per user, written only through an atomic upsert"""

    @staticmethod
    def get(db: Session, user_id: str) -> Optional[CalendarConnection]:
        return db.query(CalendarConnection).filter(CalendarConnection.user_id == user_id).first()

    @staticmethod
    def upsert(db: Session, values: dict) -> CalendarConnection:
        """Insert or replace the connection row keyed on user_id (last write wins)"""
        insert = _dialect_insert(db)
        stmt = insert(CalendarConnection).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id"],
            set_={
                **{column: stmt.excluded[column] for column in _UPSERT_COLUMNS if column in values},
                "updated_at": datetime.utcnow(),
            },
        )
        try:
            db.execute(stmt)
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.expire_all()
        return CredentialStore.get(db, values["user_id"])

    @staticmethod
    def update_tokens(
        db: Session,
        user_id: str,
        access_token: str,
        token_expires_at: Optional[datetime],
        refresh_token: Optional[str] = None,
    ) -> None:
        """Targeted update after a refresh grant; the refresh token is replaced only when reissued"""
        values = {
            "access_token": access_token,
            "token_expires_at": token_expires_at,
            "updated_at": datetime.utcnow(),
        }
        if refresh_token:
            values["refresh_token"] = refresh_token
        try:
            db.query(CalendarConnection).filter(CalendarConnection.user_id == user_id).update(
                values, synchronize_session=False
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

    @staticmethod
    def delete(db: Session, user_id: str) -> int:
        """Delete the user's connection; returns the number of rows removed (0 is fine)"""
        try:
            deleted = (
                db.query(CalendarConnection)
                .filter(CalendarConnection.user_id == user_id)
                .delete(synchronize_session=False)
            )
            db.commit()
            return deleted
        except Exception:
            db.rollback()
            raise
