from techcare.exceptions import (
    AuthProviderError,
    EmailAlreadyRegisteredError,
    ProfileFetchTimeout,
    ProvisioningError,
    classify_provider_error,
)


class ProviderFailure(Exception):
    def __init__(self, message, status=None, code=None):
        super().__init__(message)
        self.status = status
        self.code = code


class TestClassifyProviderError:
    def test_status_400_is_transient(self):
        """Should mark 400 responses transient."""
        error = classify_provider_error(ProviderFailure("bad request", status=400))
        assert error.is_transient is True
        assert error.status == 400

    def test_refresh_token_message_is_transient(self):
        """Should mark refresh-token failures transient whatever the status."""
        error = classify_provider_error(ProviderFailure("Invalid Refresh Token: Not Found"))
        assert error.is_transient is True

    def test_server_error_is_fatal(self):
        """Should leave other failures fatal and keep the provider code."""
        error = classify_provider_error(ProviderFailure("boom", status=500, code="unexpected"))
        assert error.is_transient is False
        assert error.code == "unexpected"

    def test_passes_through_existing(self):
        """Should not re-wrap an AuthProviderError."""
        original = AuthProviderError("x", is_transient=True)
        assert classify_provider_error(original) is original

    def test_non_int_status_ignored(self):
        """Should ignore a status attribute that is not an int."""
        error = classify_provider_error(ProviderFailure("x", status="400"))
        assert error.status is None
        assert error.is_transient is False


class TestHierarchy:
    def test_email_taken_is_provisioning_error(self):
        """Should be catchable as a provisioning failure."""
        error = EmailAlreadyRegisteredError("a@b.com")
        assert isinstance(error, ProvisioningError)
        assert error.to_dict() == {
            "error": "EMAIL_ALREADY_EXISTS",
            "message": "An account with this email already exists",
            "details": {"email": "a@b.com"},
        }

    def test_timeout_message(self):
        """Should describe the operation and deadline."""
        error = ProfileFetchTimeout("get_profile", "u1", 12.0)
        assert error.message == "get_profile timed out after 12s"
        assert error.code == "PROFILE_FETCH_TIMEOUT"
        assert error.user_id == "u1"
