#!/usr/bin/env python3
"""
Session manager tests.

Covers registration, login, logout, refresh rotation (including replay and
the concurrent double-refresh race), password change and profile updates.
"""
import threading

import pytest

from models.db_storage import StoreUnavailable
from services.results import ErrorCategory, ErrorCode
from services.session_manager import SessionManager
from utils.tokens import TokenKind


def _login(manager, identifier="alice", password="correct-pw"):
    result = manager.login(identifier, password)
    assert result.ok, result
    return result.value


# =========================================================================
# register
# =========================================================================

class TestRegister:
    def test_profile_is_sanitized(self, alice):
        assert alice["username"] == "alice"
        assert alice["email"] == "a@x.com"
        assert alice["avatar"] == "https://media.test/avatar.png"
        assert alice["cover_image"] == ""
        assert "password_hash" not in alice
        assert "refresh_token" not in alice
        assert "password" not in alice

    def test_identifiers_are_lowercased(self, manager, make_asset):
        result = manager.register("  Bob ", "BOB@X.COM", "Bob", "pw", avatar_path=make_asset())
        assert result.ok
        assert result.value["username"] == "bob"
        assert result.value["email"] == "bob@x.com"

    def test_blank_fields_are_reported_together(self, manager, make_asset, media):
        result = manager.register("  ", "a@x.com", "", "pw", avatar_path=make_asset())
        assert result.code is ErrorCode.MISSING_FIELD
        assert result.category is ErrorCategory.VALIDATION
        assert result.details == {"fields": ["full_name", "username"]}
        assert media.uploaded == []

    def test_avatar_required(self, manager):
        result = manager.register("alice", "a@x.com", "Alice", "pw")
        assert result.code is ErrorCode.MISSING_REQUIRED_ASSET

    def test_duplicate_checked_before_upload(self, manager, alice, make_asset, media):
        uploads_before = list(media.uploaded)
        result = manager.register("ALICE", "other@x.com", "A", "pw", avatar_path=make_asset("dup.png"))
        assert result.code is ErrorCode.DUPLICATE_PRINCIPAL
        assert result.category is ErrorCategory.CONFLICT
        assert media.uploaded == uploads_before

    def test_duplicate_email(self, manager, alice, make_asset):
        result = manager.register("alice2", "A@X.com", "A", "pw", avatar_path=make_asset())
        assert result.code is ErrorCode.DUPLICATE_PRINCIPAL

    def test_failed_avatar_upload_creates_nothing(self, manager, make_asset, media, users):
        media.failing.add("broken.png")
        result = manager.register("carol", "c@x.com", "Carol", "pw", avatar_path=make_asset("broken.png"))
        assert result.code is ErrorCode.ASSET_UPLOAD_FAILED
        assert result.category is ErrorCategory.DEPENDENCY
        assert users.find_by_identifier("carol") is None

    def test_failed_cover_upload_is_tolerated(self, manager, make_asset, media):
        media.failing.add("cover.png")
        result = manager.register(
            "dave", "d@x.com", "Dave", "pw",
            avatar_path=make_asset(), cover_image_path=make_asset("cover.png"),
        )
        assert result.ok
        assert result.value["cover_image"] == ""

    def test_cover_image_uploaded(self, manager, make_asset):
        result = manager.register(
            "erin", "e@x.com", "Erin", "pw",
            avatar_path=make_asset(), cover_image_path=make_asset("cover.png"),
        )
        assert result.value["cover_image"] == "https://media.test/cover.png"


# =========================================================================
# login / logout
# =========================================================================

class TestLogin:
    def test_unknown_principal(self, manager):
        result = manager.login("alice", "correct-pw")
        assert result.code is ErrorCode.PRINCIPAL_NOT_FOUND
        assert result.category is ErrorCategory.NOT_FOUND

    @pytest.mark.parametrize("identifier,password", [(None, None), ("", "pw"), ("alice", ""), ("  ", "  ")])
    def test_missing_credentials(self, manager, alice, identifier, password):
        result = manager.login(identifier, password)
        assert result.code is ErrorCode.MISSING_CREDENTIALS

    def test_success_stores_refresh_token(self, manager, alice, sessions, codec):
        login = _login(manager)
        assert sessions.get(alice["id"]) == login.tokens.refresh_token
        assert codec.verify(TokenKind.ACCESS, login.tokens.access_token) == alice["id"]
        assert login.profile["id"] == alice["id"]
        assert "refresh_token" not in login.profile

    def test_login_by_email(self, manager, alice):
        assert _login(manager, "A@x.com").profile["username"] == "alice"

    def test_wrong_password_leaves_token_unchanged(self, manager, alice, sessions):
        first = _login(manager)
        result = manager.login("alice", "wrong-pw")
        assert result.code is ErrorCode.INVALID_CREDENTIALS
        assert result.category is ErrorCategory.AUTHENTICATION
        assert sessions.get(alice["id"]) == first.tokens.refresh_token

    def test_second_login_replaces_first_session(self, manager, alice):
        first = _login(manager)
        second = _login(manager)
        assert manager.refresh(first.tokens.refresh_token).code is ErrorCode.TOKEN_REUSE_DETECTED
        assert manager.refresh(second.tokens.refresh_token).ok


class TestLogout:
    def test_logout_clears_and_is_idempotent(self, manager, alice, sessions):
        _login(manager)
        assert manager.logout(alice["id"]).ok
        assert sessions.get(alice["id"]) is None
        assert manager.logout(alice["id"]).ok
        assert sessions.get(alice["id"]) is None

    def test_prior_tokens_fail_after_logout(self, manager, alice):
        login = _login(manager)
        rotated = manager.refresh(login.tokens.refresh_token).value
        manager.logout(alice["id"])
        for token in (login.tokens.refresh_token, rotated.refresh_token):
            result = manager.refresh(token)
            assert not result.ok
            assert result.code is ErrorCode.TOKEN_REUSE_DETECTED


# =========================================================================
# refresh
# =========================================================================

class TestRefresh:
    def test_rotation_invalidates_previous_token(self, manager, alice, sessions):
        login = _login(manager)
        r1 = login.tokens.refresh_token

        second = manager.refresh(r1)
        assert second.ok
        r2 = second.value.refresh_token
        assert r2 != r1
        assert sessions.get(alice["id"]) == r2

        replay = manager.refresh(r1)
        assert replay.code is ErrorCode.TOKEN_REUSE_DETECTED
        assert replay.category is ErrorCategory.AUTHENTICATION
        # a rejected replay does not disturb the current session
        assert sessions.get(alice["id"]) == r2

        third = manager.refresh(r2)
        assert third.ok
        assert sessions.get(alice["id"]) == third.value.refresh_token

    def test_reuse_is_logged_distinctly(self, manager, alice, caplog):
        r1 = _login(manager).tokens.refresh_token
        manager.refresh(r1)
        with caplog.at_level("WARNING", logger="services.session_manager"):
            manager.refresh(r1)
        assert "refresh token reuse detected" in caplog.text

    @pytest.mark.parametrize("token", [None, "", "   "])
    def test_missing_token(self, manager, token):
        assert manager.refresh(token).code is ErrorCode.MISSING_TOKEN

    def test_garbage_token(self, manager):
        assert manager.refresh("not-a-token").code is ErrorCode.INVALID_REFRESH_TOKEN

    def test_access_token_cannot_refresh(self, manager, alice):
        login = _login(manager)
        assert manager.refresh(login.tokens.access_token).code is ErrorCode.INVALID_REFRESH_TOKEN

    def test_expired_token(self, manager, alice, clock, sessions):
        r1 = _login(manager).tokens.refresh_token
        clock.advance(days=11)
        assert manager.refresh(r1).code is ErrorCode.INVALID_REFRESH_TOKEN
        assert sessions.get(alice["id"]) == r1

    def test_principal_removed(self, manager, codec):
        token = codec.issue(TokenKind.REFRESH, "ghost-id")
        assert manager.refresh(token).code is ErrorCode.PRINCIPAL_NOT_FOUND

    def test_concurrent_refresh_has_single_winner(self, manager, alice, storage, sessions):
        r1 = _login(manager).tokens.refresh_token
        barrier = threading.Barrier(2)
        results = []
        lock = threading.Lock()

        def worker():
            barrier.wait()
            try:
                result = manager.refresh(r1)
            finally:
                storage.close()
            with lock:
                results.append(result)

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert len(results) == 2
        winners = [r for r in results if r.ok]
        losers = [r for r in results if not r.ok]
        assert len(winners) == 1
        assert [r.code for r in losers] == [ErrorCode.TOKEN_REUSE_DETECTED]
        assert sessions.get(alice["id"]) == winners[0].value.refresh_token


# =========================================================================
# change_secret / profile updates
# =========================================================================

class TestChangeSecret:
    def test_wrong_old_password(self, manager, alice):
        result = manager.change_secret(alice["id"], "nope", "new-pw")
        assert result.code is ErrorCode.INVALID_CREDENTIALS

    def test_change_keeps_session_and_swaps_password(self, manager, alice, sessions):
        login = _login(manager)
        assert manager.change_secret(alice["id"], "correct-pw", "new-pw").ok
        assert sessions.get(alice["id"]) == login.tokens.refresh_token
        assert manager.login("alice", "correct-pw").code is ErrorCode.INVALID_CREDENTIALS
        assert manager.login("alice", "new-pw").ok

    def test_blank_new_password(self, manager, alice):
        assert manager.change_secret(alice["id"], "correct-pw", " ").code is ErrorCode.MISSING_FIELD

    def test_unknown_principal(self, manager):
        assert manager.change_secret("ghost", "a", "b").code is ErrorCode.PRINCIPAL_NOT_FOUND


class TestProfileUpdates:
    def test_update_full_name(self, manager, alice, sessions):
        login = _login(manager)
        result = manager.update_profile_field(alice["id"], "full_name", "  Alice Liddell ")
        assert result.value["full_name"] == "Alice Liddell"
        assert sessions.get(alice["id"]) == login.tokens.refresh_token

    def test_empty_value(self, manager, alice):
        result = manager.update_profile_field(alice["id"], "full_name", "")
        assert result.code is ErrorCode.MISSING_FIELD

    def test_protected_field(self, manager, alice):
        result = manager.update_profile_field(alice["id"], "refresh_token", "forged")
        assert result.code is ErrorCode.INVALID_FIELD

    def test_email_taken(self, manager, alice, make_asset):
        manager.register("bob", "bob@x.com", "Bob", "pw", avatar_path=make_asset())
        result = manager.update_profile_field(alice["id"], "email", "BOB@x.com")
        assert result.code is ErrorCode.DUPLICATE_PRINCIPAL

    def test_unknown_principal(self, manager):
        result = manager.update_profile_field("ghost", "full_name", "X")
        assert result.code is ErrorCode.PRINCIPAL_NOT_FOUND

    def test_conflict_leaves_every_field_untouched(self, manager, alice, make_asset):
        manager.register("bob", "bob@x.com", "Bob", "pw", avatar_path=make_asset())
        result = manager.update_profile(alice["id"], {"full_name": "Changed", "email": "bob@x.com"})
        assert result.code is ErrorCode.DUPLICATE_PRINCIPAL
        profile = manager.current_profile(alice["id"]).value
        assert profile["full_name"] == "Alice"
        assert profile["email"] == "a@x.com"

    def test_update_several_fields(self, manager, alice):
        result = manager.update_profile(alice["id"], {"full_name": "Al", "email": " AL@x.com "})
        assert result.value["full_name"] == "Al"
        assert result.value["email"] == "al@x.com"

    def test_update_avatar(self, manager, alice, make_asset):
        result = manager.update_avatar(alice["id"], make_asset("new.png"))
        assert result.value["avatar"] == "https://media.test/new.png"

    def test_update_cover_requires_file(self, manager, alice):
        assert manager.update_cover_image(alice["id"], None).code is ErrorCode.MISSING_REQUIRED_ASSET

    def test_update_avatar_upload_failure(self, manager, alice, make_asset, media):
        media.failing.add("bad.png")
        result = manager.update_avatar(alice["id"], make_asset("bad.png"))
        assert result.code is ErrorCode.ASSET_UPLOAD_FAILED


class TestAuthenticate:
    def test_access_token(self, manager, alice):
        login = _login(manager)
        assert manager.authenticate(login.tokens.access_token).value == alice["id"]

    def test_refresh_token_is_not_access(self, manager, alice):
        login = _login(manager)
        assert manager.authenticate(login.tokens.refresh_token).code is ErrorCode.INVALID_ACCESS_TOKEN

    def test_current_profile(self, manager, alice):
        assert manager.current_profile(alice["id"]).value["username"] == "alice"
        assert manager.current_profile("ghost").code is ErrorCode.PRINCIPAL_NOT_FOUND


class _BrokenSessions:
    def get(self, user_id):
        raise StoreUnavailable("down")

    def set(self, user_id, token):
        raise StoreUnavailable("down")

    def compare_and_set(self, user_id, expected, token):
        raise StoreUnavailable("down")


def test_store_outage_becomes_dependency_failure(users, codec, media, alice):
    manager = SessionManager(users=users, sessions=_BrokenSessions(), codec=codec, media=media)
    result = manager.login("alice", "correct-pw")
    assert result.code is ErrorCode.STORE_UNAVAILABLE
    assert result.category is ErrorCategory.DEPENDENCY
    assert manager.logout(alice["id"]).code is ErrorCode.STORE_UNAVAILABLE
