"""
Tests for src/operator_auth.py — operator profiles and sign-in.
"""
import json

import pytest

from exceptions import AuthenticationError
from operator_auth import OPERATORS_FILE_NAME, OperatorAuth


@pytest.fixture
def auth(tmp_path):
    auth = OperatorAuth(tmp_path)
    auth.register_operator("Ops@Example.com", "s3cret", name="Jane Smith")
    return auth


class TestRegistration:

    def test_profile_stored_with_hash(self, auth, tmp_path):
        with open(tmp_path / OPERATORS_FILE_NAME, 'r', encoding='utf-8') as f:
            operators = json.load(f)

        profile = operators["ops@example.com"]
        assert profile['name'] == "Jane Smith"
        assert profile['active'] is True
        assert "s3cret" not in json.dumps(profile)
        assert len(profile['salt']) == 32

    def test_register_returns_public_profile(self, tmp_path):
        profile = OperatorAuth(tmp_path).register_operator("a@b.c", "pw")
        assert 'password_hash' not in profile
        assert 'salt' not in profile
        assert profile['name'] == "a@b.c"

    def test_register_requires_credentials(self, tmp_path):
        with pytest.raises(ValueError):
            OperatorAuth(tmp_path).register_operator("  ", "pw")


class TestSignIn:

    def test_sign_in_success(self, auth):
        profile = auth.sign_in("  OPS@example.com ", "s3cret")

        assert auth.is_signed_in
        assert profile['email'] == "ops@example.com"
        assert auth.current_operator == profile

    def test_wrong_password(self, auth):
        with pytest.raises(AuthenticationError, match="Invalid email or password") as exc_info:
            auth.sign_in("ops@example.com", "nope")
        assert exc_info.value.email == "ops@example.com"
        assert not auth.is_signed_in

    def test_unknown_operator(self, auth):
        with pytest.raises(AuthenticationError):
            auth.sign_in("ghost@example.com", "s3cret")

    @pytest.mark.parametrize("email, password", [("", "s3cret"), ("ops@example.com", "")])
    def test_blank_credentials(self, auth, email, password):
        with pytest.raises(AuthenticationError, match="required"):
            auth.sign_in(email, password)

    def test_deactivated_operator(self, auth):
        assert auth.set_operator_active("ops@example.com", False) is True

        with pytest.raises(AuthenticationError, match="disabled"):
            auth.sign_in("ops@example.com", "s3cret")

    def test_set_active_unknown_operator(self, auth):
        assert auth.set_operator_active("ghost@example.com", False) is False

    def test_corrupt_operators_file(self, tmp_path):
        (tmp_path / OPERATORS_FILE_NAME).write_text("{broken", encoding='utf-8')
        with pytest.raises(AuthenticationError):
            OperatorAuth(tmp_path).sign_in("ops@example.com", "s3cret")


class TestAuthSignal:

    def test_sign_in_and_out_emit(self, auth, qtbot):
        with qtbot.waitSignal(auth.auth_state_changed, timeout=1000) as blocker:
            auth.sign_in("ops@example.com", "s3cret")
        assert blocker.args == [True]

        with qtbot.waitSignal(auth.auth_state_changed, timeout=1000) as blocker:
            auth.sign_out()
        assert blocker.args == [False]
        assert auth.current_operator is None

    def test_sign_out_when_signed_out_is_silent(self, auth, qtbot):
        with qtbot.assertNotEmitted(auth.auth_state_changed):
            auth.sign_out()
