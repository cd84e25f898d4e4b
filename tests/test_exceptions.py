# ABOUTME: Tests for the error hierarchy and backend status mapping
# ABOUTME: Every backend failure surfaces as a typed Finscope error

import httpx
import pytest

from finscope.exceptions import (
    AuthenticationError,
    BackendError,
    ConsistencyError,
    FinscopeError,
    NoTenantAssociationError,
    NotFoundError,
    PermissionDeniedError,
    SessionExpiredError,
    TransientError,
    ValidationError,
    raise_for_backend,
)


class TestHierarchy:
    def test_tenant_errors_are_permission_errors(self):
        assert issubclass(NoTenantAssociationError, PermissionDeniedError)
        assert issubclass(SessionExpiredError, AuthenticationError)
        assert issubclass(AuthenticationError, FinscopeError)

    def test_only_transient_is_retryable(self):
        assert TransientError("x").retryable
        assert not ConsistencyError("x").retryable
        assert not NotFoundError("x").retryable

    def test_to_dict(self):
        error = ConsistencyError("Selecione a conta", title="Conta obrigatória")
        assert error.to_dict() == {
            "title": "Conta obrigatória",
            "description": "Selecione a conta",
            "kind": "consistency",
            "retryable": False,
        }

    def test_title_override_is_per_instance(self):
        ConsistencyError("x", title="Outro")
        assert ConsistencyError("y").title == "Operação inconsistente"


class TestRaiseForBackend:
    """Test HTTP status to error mapping."""

    @pytest.mark.parametrize(
        "status,error",
        [
            (401, SessionExpiredError),
            (403, PermissionDeniedError),
            (404, NotFoundError),
            (406, NotFoundError),
            (400, ValidationError),
            (409, ValidationError),
            (422, ValidationError),
            (408, TransientError),
            (429, TransientError),
            (500, TransientError),
            (503, TransientError),
            (418, BackendError),
        ],
    )
    def test_mapping(self, status, error):
        with pytest.raises(error):
            raise_for_backend(httpx.Response(status, json={"message": "boom"}))

    def test_success_passes(self):
        raise_for_backend(httpx.Response(200, json=[]))
        raise_for_backend(httpx.Response(201, json=[]))

    def test_uses_backend_message(self):
        response = httpx.Response(409, json={"message": "duplicate key value"})
        with pytest.raises(ValidationError, match="duplicate key value"):
            raise_for_backend(response)

    def test_auth_error_description(self):
        response = httpx.Response(400, json={"error_description": "Invalid login credentials"})
        with pytest.raises(ValidationError, match="Invalid login credentials"):
            raise_for_backend(response)

    def test_plain_text_body(self):
        with pytest.raises(TransientError, match="Bad Gateway"):
            raise_for_backend(httpx.Response(502, text="Bad Gateway"))

    def test_backend_error_keeps_status(self):
        with pytest.raises(BackendError) as exc:
            raise_for_backend(httpx.Response(418, json={}))
        assert exc.value.status_code == 418
