"""
Session manager: register, login, logout, refresh, password change and
profile updates.

Each user has at most one valid refresh token: the one stored on their
record. Login overwrites it, refresh rotates it with an atomic
compare-and-set, logout clears it. Access tokens are never stored.

Operations return services.results.Success / Failure and do not raise for
domain failures; a StoreUnavailable from the store layer becomes a
STORE_UNAVAILABLE failure.
"""
from __future__ import annotations

import logging
from functools import wraps

from models.db_storage import DuplicateRecord, StoreUnavailable
from models.schemas.user import UserOutSchema
from models.user import User
from models.user_store import normalize_identifier
from services.results import ErrorCode, Failure, LoginResult, Success
from utils.media import MediaUploadError
from utils.security import hash_password, verify_password
from utils.tokens import TokenCodec, TokenError, TokenKind

logger = logging.getLogger(__name__)

user_out_schema = UserOutSchema()


def _store_guard(fn):
    """Turn a store outage into a STORE_UNAVAILABLE failure."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except StoreUnavailable:
            logger.exception("Store unavailable during %s", fn.__name__)
            return Failure(ErrorCode.STORE_UNAVAILABLE, "The user store is unavailable")

    return wrapper


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class SessionManager:
    def __init__(self, users, sessions, codec: TokenCodec, media):
        self.users = users
        self.sessions = sessions
        self.codec = codec
        self.media = media

    @staticmethod
    def profile(user: User) -> dict:
        """Public view of a user: no password hash, no refresh token."""
        return user_out_schema.dump(user)

    @_store_guard
    def register(self, username, email, full_name, password, avatar_path=None, cover_image_path=None):
        fields = {
            "username": username,
            "email": email,
            "full_name": full_name,
            "password": password,
        }
        empty = sorted(name for name, value in fields.items() if _blank(value))
        if empty:
            return Failure(ErrorCode.MISSING_FIELD, "All fields are required", {"fields": empty})
        if not avatar_path:
            return Failure(ErrorCode.MISSING_REQUIRED_ASSET, "Avatar file is required")

        username = normalize_identifier(username)
        email = normalize_identifier(email)
        if self.users.exists(username=username, email=email):
            return Failure(ErrorCode.DUPLICATE_PRINCIPAL, "Username or email already exists")

        try:
            avatar_url = self.media.upload(avatar_path)
        except MediaUploadError:
            return Failure(ErrorCode.ASSET_UPLOAD_FAILED, "Avatar upload failed")

        cover_url = ""
        if cover_image_path:
            try:
                cover_url = self.media.upload(cover_image_path)
            except MediaUploadError:
                logger.warning("Cover image upload failed for %s; continuing without it", username)

        try:
            user = self.users.create(
                username=username,
                email=email,
                full_name=full_name.strip(),
                password_hash=hash_password(password),
                avatar=avatar_url,
                cover_image=cover_url,
            )
        except DuplicateRecord:
            return Failure(ErrorCode.DUPLICATE_PRINCIPAL, "Username or email already exists")

        logger.info("Registered user %s", user.id)
        return Success(self.profile(user))

    @_store_guard
    def login(self, identifier, password):
        if _blank(identifier) or _blank(password):
            return Failure(ErrorCode.MISSING_CREDENTIALS, "Username or email and password are required")

        user = self.users.find_by_identifier(identifier)
        if user is None:
            return Failure(ErrorCode.PRINCIPAL_NOT_FOUND, "User does not exist")
        if not verify_password(password, user.password_hash):
            logger.warning("Failed login for user %s", user.id)
            return Failure(ErrorCode.INVALID_CREDENTIALS, "Invalid user credentials")

        tokens = self.codec.issue_pair(user.id)
        self.sessions.set(user.id, tokens.refresh_token)
        logger.info("User %s logged in", user.id)
        return Success(LoginResult(tokens=tokens, profile=self.profile(user)))

    @_store_guard
    def logout(self, principal_id):
        self.sessions.set(principal_id, None)
        logger.info("User %s logged out", principal_id)
        return Success(None)

    @_store_guard
    def refresh(self, presented):
        if _blank(presented):
            return Failure(ErrorCode.MISSING_TOKEN, "Refresh token is required")

        try:
            principal_id = self.codec.verify(TokenKind.REFRESH, presented)
        except TokenError as exc:
            logger.warning("Rejected refresh token: %s", exc)
            return Failure(ErrorCode.INVALID_REFRESH_TOKEN, "Refresh token is expired or used")

        if self.users.get(principal_id) is None:
            return Failure(ErrorCode.PRINCIPAL_NOT_FOUND, "User does not exist")

        tokens = self.codec.issue_pair(principal_id)
        # Rotation: only the caller still holding the stored token may replace it
        if not self.sessions.compare_and_set(principal_id, presented, tokens.refresh_token):
            logger.warning("refresh token reuse detected for user %s", principal_id)
            return Failure(ErrorCode.TOKEN_REUSE_DETECTED, "Refresh token is expired or used")

        logger.info("Rotated refresh token for user %s", principal_id)
        return Success(tokens)

    @_store_guard
    def change_secret(self, principal_id, old_password, new_password):
        if _blank(new_password):
            return Failure(ErrorCode.MISSING_FIELD, "New password is required", {"fields": ["new_password"]})

        user = self.users.get(principal_id)
        if user is None:
            return Failure(ErrorCode.PRINCIPAL_NOT_FOUND, "User does not exist")
        if not verify_password(old_password, user.password_hash):
            logger.warning("Password change rejected for user %s", principal_id)
            return Failure(ErrorCode.INVALID_CREDENTIALS, "Invalid old password")

        self.users.update_field(principal_id, "password_hash", hash_password(new_password))
        logger.info("Password changed for user %s", principal_id)
        return Success(None)

    def update_profile_field(self, principal_id, field, value):
        return self.update_profile(principal_id, {field: value})

    @_store_guard
    def update_profile(self, principal_id, changes):
        """Validate every change first, then write them in one commit."""
        if not changes:
            return Failure(ErrorCode.MISSING_FIELD, "Nothing to update")
        cleaned = {}
        for field, value in changes.items():
            if field not in User.EDITABLE_FIELDS:
                return Failure(ErrorCode.INVALID_FIELD, f"Field '{field}' cannot be updated")
            if _blank(value):
                return Failure(ErrorCode.MISSING_FIELD, f"{field} is required", {"fields": [field]})

            value = value.strip() if isinstance(value, str) else value
            if field in ("username", "email"):
                value = normalize_identifier(value)
                if self.users.exists(exclude_id=principal_id, **{field: value}):
                    return Failure(ErrorCode.DUPLICATE_PRINCIPAL, f"{field} already exists")
            cleaned[field] = value

        try:
            user = self.users.update_fields(principal_id, cleaned)
        except DuplicateRecord:
            return Failure(ErrorCode.DUPLICATE_PRINCIPAL, "Username or email already exists")
        if user is None:
            return Failure(ErrorCode.PRINCIPAL_NOT_FOUND, "User does not exist")
        return Success(self.profile(user))

    @_store_guard
    def current_profile(self, principal_id):
        user = self.users.get(principal_id)
        if user is None:
            return Failure(ErrorCode.PRINCIPAL_NOT_FOUND, "User does not exist")
        return Success(self.profile(user))

    def authenticate(self, access_token):
        """Stateless access-token check; returns the principal id."""
        if _blank(access_token):
            return Failure(ErrorCode.MISSING_TOKEN, "Access token is required")
        try:
            return Success(self.codec.verify(TokenKind.ACCESS, access_token))
        except TokenError as exc:
            return Failure(ErrorCode.INVALID_ACCESS_TOKEN, str(exc))

    def update_avatar(self, principal_id, asset_path):
        return self._replace_asset(principal_id, "avatar", asset_path)

    def update_cover_image(self, principal_id, asset_path):
        return self._replace_asset(principal_id, "cover_image", asset_path)

    def _replace_asset(self, principal_id, field, asset_path):
        if not asset_path:
            return Failure(ErrorCode.MISSING_REQUIRED_ASSET, f"{field} file is required")
        try:
            url = self.media.upload(asset_path)
        except MediaUploadError:
            return Failure(ErrorCode.ASSET_UPLOAD_FAILED, f"{field} upload failed")
        return self.update_profile_field(principal_id, field, url)
