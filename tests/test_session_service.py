from __future__ import annotations

import unittest
from datetime import timedelta
from unittest import mock

from sqlalchemy.exc import OperationalError

from models.user import User
from services.errors import (
    DuplicateEmail,
    InvalidCredentials,
    InvalidOrExpiredRefreshToken,
    InvalidRefreshToken,
    RegistrationFailed,
    Unexpected,
    UserNotFound,
    ValidationError,
    WrongKind,
)
from tests.support import make_app, unique_email
from utils.security import REFRESH, TokenCodec, token_digest, utcnow, verify_password


class SessionServiceTestCase(unittest.TestCase):
    def setUp(self):
        self.app, self.storage = make_app()
        self.service = self.app.extensions["session_service"]

    def tearDown(self):
        self.storage.close()

    def _register(self, email=None, password="password1", name="Ann"):
        return self.service.register(email or unique_email(), password, name)

    # register

    def test_register_then_verify_access_token(self):
        result = self._register()
        payload = self.service.verify_access_token(result.access_token)
        self.assertEqual(payload.subject_id, result.user.id)
        self.assertEqual(payload.subject_email, result.user.email)

    def test_register_normalizes_email_and_hashes_password(self):
        result = self.service.register("  Ann@X.COM ", "password1", " Ann ")
        self.assertEqual(result.user.email, "ann@x.com")
        self.assertEqual(result.user.name, "Ann")
        self.assertNotEqual(result.user.password_hash, "password1")
        self.assertTrue(result.user.password_hash.startswith("$argon2"))

    def test_register_stores_digest_of_refresh_token(self):
        result = self._register()
        record = self.storage.get_refresh_token(result.user.id)
        self.assertEqual(record.token_hash, token_digest(result.refresh_token))
        self.assertFalse(record.is_revoked)
        self.assertGreater(record.expires_at, utcnow() + timedelta(days=6))

    def test_register_validation(self):
        with self.assertRaises(ValidationError):
            self._register(password="short")
        with self.assertRaises(ValidationError):
            self._register(name="   ")
        with self.assertRaises(ValidationError):
            self.service.register("  ", "password1", "Ann")

    def test_register_duplicate_email(self):
        email = unique_email()
        self._register(email=email)
        with self.assertRaises(DuplicateEmail):
            self._register(email=email.upper())

    def test_register_unexpected_store_failure_is_opaque(self):
        failure = OperationalError("INSERT", {}, Exception("database is locked"))
        with mock.patch.object(self.storage, "upsert_refresh_token", side_effect=failure):
            with self.assertRaises(RegistrationFailed) as ctx:
                self._register()
        self.assertEqual(ctx.exception.message, "Registration failed")

    # login

    def test_login_failures_are_indistinguishable(self):
        email = unique_email()
        self._register(email=email)
        with self.assertRaises(InvalidCredentials) as wrong_password:
            self.service.login(email, "wrong-password")
        with self.assertRaises(InvalidCredentials) as unknown_email:
            self.service.login(unique_email("ghost"), "password1")
        self.assertEqual(wrong_password.exception.message, unknown_email.exception.message)
        self.assertEqual(wrong_password.exception.status, unknown_email.exception.status)
        self.assertEqual(wrong_password.exception.message, "Invalid credentials")

    def test_unknown_email_still_runs_password_check(self):
        self._register()
        with mock.patch("services.session_service.verify_password", wraps=verify_password) as check:
            with self.assertRaises(InvalidCredentials):
                self.service.login(unique_email("ghost"), "password1")
        check.assert_called_once()
        self.assertTrue(check.call_args.args[1].startswith("$argon2"))

    def test_login_store_failure_is_opaque(self):
        email = unique_email()
        self._register(email=email)
        failure = OperationalError("UPDATE", {}, Exception("database is locked"))
        with mock.patch.object(self.storage, "upsert_refresh_token", side_effect=failure):
            with self.assertRaises(Unexpected) as ctx:
                self.service.login(email, "password1")
        self.assertEqual(ctx.exception.status, 500)
        self.assertEqual(ctx.exception.message, "An unexpected error occurred")

    def test_consecutive_logins_rotate_refresh_token(self):
        email = unique_email()
        self._register(email=email)
        first = self.service.login(email, "password1")
        second = self.service.login(email, "password1")
        self.assertNotEqual(first.refresh_token, second.refresh_token)
        with self.assertRaises(InvalidOrExpiredRefreshToken):
            self.service.refresh(first.refresh_token)
        self.assertEqual(self.service.refresh(second.refresh_token).user.id, second.user.id)

    # refresh

    def test_refresh_rotates_and_old_token_replays_fail(self):
        registered = self._register()
        refreshed = self.service.refresh(registered.refresh_token)
        self.assertNotEqual(refreshed.refresh_token, registered.refresh_token)
        self.assertEqual(self.service.verify_access_token(refreshed.access_token).subject_id, registered.user.id)
        with self.assertRaises(InvalidOrExpiredRefreshToken):
            self.service.refresh(registered.refresh_token)

    def test_same_token_refreshed_twice_only_first_wins(self):
        token = self._register().refresh_token
        outcomes = []
        for _ in range(2):
            try:
                self.service.refresh(token)
                outcomes.append("ok")
            except InvalidOrExpiredRefreshToken:
                outcomes.append("rejected")
        self.assertEqual(outcomes, ["ok", "rejected"])

    def test_rotation_is_compare_and_swap(self):
        registered = self._register()
        user_id = registered.user.id
        current = token_digest(registered.refresh_token)
        expires = utcnow() + timedelta(days=7)
        self.assertTrue(self.storage.rotate_refresh_token(user_id, current, "a" * 64, expires, utcnow()))
        # The losing writer still holds the pre-rotation digest
        self.assertFalse(self.storage.rotate_refresh_token(user_id, current, "b" * 64, expires, utcnow()))
        self.storage.save()
        self.assertEqual(self.storage.get_refresh_token(user_id).token_hash, "a" * 64)

    def test_refresh_losing_rotation_race_is_rejected(self):
        registered = self._register()
        # Pre-checks pass, but a concurrent refresh already swapped the digest
        with mock.patch.object(self.storage, "rotate_refresh_token", return_value=False) as rotate:
            with self.assertRaises(InvalidOrExpiredRefreshToken):
                self.service.refresh(registered.refresh_token)
        rotate.assert_called_once()
        record = self.storage.get_refresh_token(registered.user.id)
        self.assertEqual(record.token_hash, token_digest(registered.refresh_token))

    def test_logout_then_refresh_fails(self):
        registered = self._register()
        self.service.logout(registered.user.id)
        with self.assertRaises(InvalidOrExpiredRefreshToken):
            self.service.refresh(registered.refresh_token)

    def test_logout_is_idempotent(self):
        registered = self._register()
        self.service.logout(registered.user.id)
        self.service.logout(registered.user.id)
        self.service.logout("no-such-user")
        self.assertTrue(self.storage.get_refresh_token(registered.user.id).is_revoked)

    def test_login_after_logout_starts_new_session(self):
        email = unique_email()
        registered = self._register(email=email)
        self.service.logout(registered.user.id)
        fresh = self.service.login(email, "password1")
        self.assertFalse(self.storage.get_refresh_token(registered.user.id).is_revoked)
        self.service.refresh(fresh.refresh_token)

    def test_expired_record_rejects_token_still_valid_by_signature(self):
        registered = self._register()
        record = self.storage.get_refresh_token(registered.user.id)
        record.expires_at = utcnow() - timedelta(seconds=1)
        self.storage.save()
        with self.assertRaises(InvalidOrExpiredRefreshToken):
            self.service.refresh(registered.refresh_token)

    def test_wrong_secret_fails_before_store_lookup(self):
        registered = self._register()
        forged = TokenCodec(
            access_secret="forged-access-secret-0123456789abcdef",
            refresh_secret="forged-refresh-secret-0123456789abcde",
        ).issue(registered.user.id, registered.user.email, REFRESH)
        with mock.patch.object(self.storage, "get_refresh_token") as lookup:
            with self.assertRaises(InvalidRefreshToken):
                self.service.refresh(forged)
        lookup.assert_not_called()

    def test_access_token_cannot_refresh(self):
        registered = self._register()
        with self.assertRaises(InvalidRefreshToken) as ctx:
            self.service.refresh(registered.access_token)
        self.assertIsInstance(ctx.exception.__cause__, WrongKind)

    def test_refresh_token_is_not_an_access_token(self):
        registered = self._register()
        with self.assertRaises(WrongKind):
            self.service.verify_access_token(registered.refresh_token)

    def test_refresh_for_deleted_user(self):
        registered = self._register()
        session = self.storage.get_session()
        session.delete(session.get(User, registered.user.id))
        self.storage.save()
        with self.assertRaises(InvalidOrExpiredRefreshToken):
            self.service.refresh(registered.refresh_token)

    # account maintenance

    def test_change_password(self):
        email = unique_email()
        registered = self._register(email=email)
        with self.assertRaises(InvalidCredentials):
            self.service.change_password(registered.user.id, "wrong-password", "password2")
        with self.assertRaises(ValidationError):
            self.service.change_password(registered.user.id, "password1", "password1")
        with self.assertRaises(ValidationError):
            self.service.change_password(registered.user.id, "password1", "short")
        self.service.change_password(registered.user.id, "password1", "password2")
        self.service.login(email, "password2")
        with self.assertRaises(InvalidCredentials):
            self.service.login(email, "password1")

    def test_update_profile(self):
        taken = unique_email("taken")
        self._register(email=taken)
        registered = self._register()
        user = self.service.update_profile(registered.user.id, name=" Annie ", email=" NEW@X.com ")
        self.assertEqual((user.name, user.email), ("Annie", "new@x.com"))
        with self.assertRaises(DuplicateEmail):
            self.service.update_profile(registered.user.id, email=taken)
        with self.assertRaises(ValidationError):
            self.service.update_profile(registered.user.id, name="")

    def test_update_profile_rejects_without_partial_changes(self):
        registered = self._register(name="Ann")
        with self.assertRaises(ValidationError):
            self.service.update_profile(registered.user.id, name="Annie", email="   ")
        self.storage.save()
        self.assertEqual(self.service.get_user(registered.user.id).name, "Ann")

    def test_set_role(self):
        registered = self._register()
        self.assertEqual(registered.user.role, "user")
        self.assertEqual(self.service.set_role(registered.user.id, "admin").role, "admin")
        with self.assertRaises(ValidationError):
            self.service.set_role(registered.user.id, "owner")
        with self.assertRaises(UserNotFound):
            self.service.set_role("missing", "admin")


if __name__ == "__main__":
    unittest.main()
