"""
Session store adapter: the one persisted refresh token per user.

Writes are single UPDATE statements against users.refresh_token, so a
compare_and_set is serialized by the database row lock and two callers
presenting the same expected value cannot both win.
"""
from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from models.db_storage import DBStorage, StoreUnavailable
from models.user import User


class SessionStore:
    def __init__(self, storage: DBStorage):
        self.storage = storage

    def get(self, user_id: str) -> str | None:
        session = self.storage.get_session()
        try:
            row = session.query(User.refresh_token).filter(User.id == user_id).first()
            # End the read transaction so the next read sees other writers
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreUnavailable(str(exc)) from exc
        return row[0] if row else None

    def set(self, user_id: str, token: str | None) -> None:
        """Overwrite the stored token unconditionally (None clears it)."""
        self._execute(
            update(User)
            .where(User.id == user_id)
            .values(refresh_token=token)
        )

    def compare_and_set(self, user_id: str, expected: str, token: str | None) -> bool:
        """Overwrite only if the stored token still equals ``expected``."""
        rowcount = self._execute(
            update(User)
            .where(User.id == user_id, User.refresh_token == expected)
            .values(refresh_token=token)
        )
        return rowcount == 1

    def _execute(self, statement) -> int:
        session = self.storage.get_session()
        try:
            result = session.execute(statement.execution_options(synchronize_session=False))
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreUnavailable(str(exc)) from exc
        return result.rowcount
