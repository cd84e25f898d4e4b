# ABOUTME: Custom exception hierarchy for Finscope
# ABOUTME: Every error carries a short title, a description and a retry hint

from enum import Enum

import httpx


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    VALIDATION_FAILED = "validation_failed"
    TRANSIENT = "transient"
    CONSISTENCY = "consistency"


class FinscopeError(Exception):
    """Base exception for all Finscope errors."""

    title = "Erro"
    kind = ErrorKind.VALIDATION_FAILED
    retryable = False

    def __init__(self, description: str, title: str | None = None) -> None:
        super().__init__(description)
        self.description = description
        if title is not None:
            self.title = title

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "kind": self.kind.value,
            "retryable": self.retryable,
        }


class ConfigurationError(FinscopeError):
    """Required settings are missing or malformed."""

    title = "Configuração inválida"


class ValidationError(FinscopeError):
    """Invalid input provided to an operation."""

    title = "Dados inválidos"


class NotFoundError(FinscopeError):
    """Record doesn't exist within the current tenant."""

    title = "Não encontrado"
    kind = ErrorKind.NOT_FOUND


class PermissionDeniedError(FinscopeError):
    """The backend refused access to the requested rows."""

    title = "Acesso negado"
    kind = ErrorKind.PERMISSION_DENIED


class NoTenantAssociationError(PermissionDeniedError):
    """User is not linked to any company."""

    title = "Acesso Restrito"


class AuthenticationError(PermissionDeniedError):
    """Failed to authenticate with the backend."""

    title = "Falha de autenticação"


class SessionExpiredError(AuthenticationError):
    """Session token expired, re-auth needed."""


class CredentialsNotFoundError(AuthenticationError):
    """Credentials not found in environment or 1Password."""


class TransientError(FinscopeError):
    """Network or backend outage; the caller may retry."""

    title = "Serviço indisponível"
    kind = ErrorKind.TRANSIENT
    retryable = True


class ConsistencyError(FinscopeError):
    """Write would break a financial invariant."""

    title = "Operação inconsistente"
    kind = ErrorKind.CONSISTENCY


class BackendError(FinscopeError):
    """Unexpected error from the backend API."""

    title = "Erro no servidor"

    def __init__(self, description: str, status_code: int | None = None) -> None:
        super().__init__(description)
        self.status_code = status_code


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        return (
            data.get("message")
            or data.get("msg")
            or data.get("error_description")
            or data.get("error")
            or f"HTTP {response.status_code}"
        )
    return str(data)


def raise_for_backend(response: httpx.Response) -> None:
    """
    Translate an unsuccessful backend response into a Finscope error.

    Args:
        response: Response returned by the auth or REST endpoint

    Raises:
        FinscopeError subclass matching the HTTP status
    """
    status = response.status_code
    if status < 400:
        return

    message = _error_message(response)
    if status == 401:
        raise SessionExpiredError(message)
    if status == 403:
        raise PermissionDeniedError(message)
    # PostgREST answers 406 when a single-object request matched no rows
    if status in (404, 406):
        raise NotFoundError(message)
    if status in (400, 409, 422):
        raise ValidationError(message)
    if status in (408, 429) or status >= 500:
        raise TransientError(message)
    raise BackendError(message, status_code=status)
