# Overview: Pytest coverage for authentication, sessions and admin user management.

from datetime import timedelta

import pytest

from invtrack.models import ActivityLogEntry, SessionToken
from invtrack.services import auth_service, session_service, user_service
from invtrack.services.auth_service import PasswordValidationError
from invtrack.services.user_service import UserNotFoundError
from invtrack.time_utils import utcnow
from invtrack.validation import ConflictError, ValidationError
from conftest import TEST_PASSWORD


class TestPasswords:

    @pytest.mark.parametrize("password", ["short1", "allletters", "12345678", ""])
    def test_weak_passwords_are_rejected(self, password):
        with pytest.raises(PasswordValidationError):
            auth_service.validate_password_strength(password)

    def test_hash_round_trip(self):
        hashed = auth_service.hash_password("Password1")
        assert hashed != "Password1"
        assert auth_service.verify_password("Password1", hashed)
        assert not auth_service.verify_password("Password2", hashed)
        assert not auth_service.verify_password("Password1", "not-a-bcrypt-hash")


class TestCreateUser:

    def test_creates_with_normalized_email(self, db_session):
        user = auth_service.create_user("  Someone@Example.COM ", "Password1", name="Someone")
        assert user.email == "someone@example.com"
        assert user.role == "power_user"
        assert user.is_active is True

    def test_duplicate_email_conflicts(self, db_session, user):
        with pytest.raises(ConflictError):
            auth_service.create_user(user.email.upper(), "Password1")

    def test_invalid_input(self, db_session):
        with pytest.raises(ValidationError):
            auth_service.create_user("not-an-email", "Password1")
        with pytest.raises(ValidationError):
            auth_service.create_user("a@example.com", "Password1", role="superuser")
        with pytest.raises(PasswordValidationError):
            auth_service.create_user("a@example.com", "weak")


class TestAuthenticate:

    def test_valid_credentials_set_last_login(self, db_session, user):
        authed = auth_service.authenticate("OPERATOR@example.com", TEST_PASSWORD)
        assert authed.id == user.id
        assert authed.last_login_at is not None

    def test_wrong_password_or_inactive(self, db_session, user):
        assert auth_service.authenticate(user.email, "Wrong1234") is None
        user.is_active = False
        db_session.commit()
        assert auth_service.authenticate(user.email, TEST_PASSWORD) is None


class TestSessions:

    def test_token_is_stored_hashed(self, db_session, user):
        session, token = session_service.create_session(user.id)
        assert session.token_hash == session_service.hash_token(token)
        assert token not in session.token_hash
        assert session_service.validate_session(token).id == user.id

    def test_expired_and_revoked_tokens(self, db_session, user):
        session, token = session_service.create_session(user.id)
        session.expires_at = utcnow() - timedelta(minutes=1)
        db_session.commit()
        assert session_service.validate_session(token) is None

        _, token2 = session_service.create_session(user.id)
        assert session_service.revoke_session(token2) is True
        assert session_service.validate_session(token2) is None
        assert session_service.revoke_session(token2) is False


class TestUpdateUser:

    def test_role_change_is_logged(self, db_session, admin, user):
        updated = user_service.update_user(admin, user.id, role="admin")

        assert updated.role == "admin"
        entry = db_session.query(ActivityLogEntry).filter_by(activity_type="role_changed").one()
        assert entry.user_id == admin.id
        assert entry.details == {"email": user.email, "from": "power_user", "to": "admin"}

    def test_deactivation_revokes_sessions(self, db_session, admin, user):
        _, token = session_service.create_session(user.id)

        user_service.update_user(admin, user.id, is_active=False)

        assert session_service.validate_session(token) is None
        assert db_session.query(SessionToken).filter_by(user_id=user.id, is_revoked=False).count() == 0

    def test_admin_cannot_demote_or_deactivate_self(self, db_session, admin):
        with pytest.raises(ConflictError):
            user_service.update_user(admin, admin.id, role="power_user")
        with pytest.raises(ConflictError):
            user_service.update_user(admin, admin.id, is_active=False)
        # Renaming yourself is fine
        assert user_service.update_user(admin, admin.id, name="Boss").name == "Boss"

    def test_unknown_user_and_bad_role(self, db_session, admin, user):
        with pytest.raises(UserNotFoundError):
            user_service.update_user(admin, 9999, role="admin")
        with pytest.raises(ValidationError):
            user_service.update_user(admin, user.id, role="superuser")
