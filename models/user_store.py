"""
User record store: create / find / update-by-id over the users table.

Every database failure surfaces as StoreUnavailable; unique constraint
violations surface as DuplicateRecord so callers can report a conflict.
"""
from __future__ import annotations

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models.db_storage import DBStorage, DuplicateRecord, StoreUnavailable
from models.user import User


def normalize_identifier(value: str | None) -> str:
    return (value or "").strip().lower()


class UserStore:
    def __init__(self, storage: DBStorage):
        self.storage = storage

    def get(self, user_id: str) -> User | None:
        try:
            return self.storage.get(User, user_id)
        except SQLAlchemyError as exc:
            self.storage.rollback()
            raise StoreUnavailable(str(exc)) from exc

    def find_by_identifier(self, identifier: str) -> User | None:
        """Match either the username or the email, case-insensitively."""
        value = normalize_identifier(identifier)
        session = self.storage.get_session()
        try:
            return (
                session.query(User)
                .filter(or_(User.username == value, User.email == value))
                .first()
            )
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreUnavailable(str(exc)) from exc

    def exists(self, username: str | None = None, email: str | None = None,
               exclude_id: str | None = None) -> bool:
        clauses = []
        if username:
            clauses.append(User.username == normalize_identifier(username))
        if email:
            clauses.append(User.email == normalize_identifier(email))
        if not clauses:
            return False

        session = self.storage.get_session()
        try:
            query = session.query(User.id).filter(or_(*clauses))
            if exclude_id:
                query = query.filter(User.id != exclude_id)
            return query.first() is not None
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreUnavailable(str(exc)) from exc

    def create(self, **fields) -> User:
        user = User(**fields)
        try:
            self.storage.new(user)
            self.storage.save()
        except IntegrityError as exc:
            raise DuplicateRecord(str(getattr(exc, "orig", exc))) from exc
        except SQLAlchemyError as exc:
            raise StoreUnavailable(str(exc)) from exc
        return user

    def update_field(self, user_id: str, field: str, value) -> User | None:
        return self.update_fields(user_id, {field: value})

    def update_fields(self, user_id: str, changes: dict) -> User | None:
        """Apply every change in one commit; nothing is written if any fails."""
        user = self.get(user_id)
        if user is None:
            return None
        for field, value in changes.items():
            setattr(user, field, value)
        try:
            self.storage.new(user)
            self.storage.save()
        except IntegrityError as exc:
            raise DuplicateRecord(str(getattr(exc, "orig", exc))) from exc
        except SQLAlchemyError as exc:
            raise StoreUnavailable(str(exc)) from exc
        return user
