# ABOUTME: Authentication and HTTP session for the hosted Supabase backend
# ABOUTME: Handles password login, session persistence, and table/RPC access

import base64
import json
import logging
from pathlib import Path
from typing import Any

import httpx

from finscope.config import Settings, get_credentials
from finscope.exceptions import AuthenticationError, TransientError, raise_for_backend

logger = logging.getLogger(__name__)


def load_session(path: Path) -> dict | None:
    """Load saved session from disk."""
    if not path.exists():
        return None

    try:
        with open(path) as f:
            session = json.load(f)
        logger.debug("Loaded existing session from disk")
        return session
    except (json.JSONDecodeError, IOError) as e:
        logger.warning(f"Failed to load session file: {e}")
        return None


def save_session(path: Path, session: dict) -> None:
    """Save session data to disk with restricted permissions."""
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        json.dump(session, f)

    path.chmod(0o600)
    logger.debug("Saved session to disk")


def clear_session(path: Path) -> None:
    """Remove saved session from disk."""
    if path.exists():
        path.unlink()
        logger.debug("Cleared session from disk")


def decode_jwt(token: str) -> dict:
    """Decode JWT payload without verification."""
    try:
        payload_b64 = token.split(".")[1]
    except IndexError:
        raise AuthenticationError("Malformed access token") from None
    # Add padding if needed
    payload_b64 += "=" * (-len(payload_b64) % 4)
    return json.loads(base64.urlsafe_b64decode(payload_b64))


class SupabaseSession:
    """
    Manages an authenticated session with the Supabase project.

    Logs in with email/password against the auth endpoint and talks to
    tables and RPC functions through the REST endpoint. Every request
    carries the configured timeout; network failures surface as
    TransientError.
    """

    def __init__(
        self,
        settings: Settings,
        session_data: dict | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self._client: httpx.AsyncClient | None = None
        self._session_data: dict | None = session_data
        self._transport = transport

    @property
    def user_id(self) -> str:
        """The authenticated user's id (JWT `sub` claim)."""
        if self._session_data and self._session_data.get("user_id"):
            return self._session_data["user_id"]
        raise AuthenticationError("User ID not available - login first")

    def _base_headers(self) -> dict:
        return {
            "apikey": self.settings.supabase_key,
            "Accept": "application/json",
        }

    async def login(self) -> None:
        """Authenticate with email and password and keep the access token."""
        email, password = get_credentials()

        logger.info("Logging in to Supabase...")

        async with httpx.AsyncClient(
            timeout=self.settings.request_timeout, transport=self._transport
        ) as client:
            try:
                response = await client.post(
                    f"{self.settings.auth_url}/token",
                    params={"grant_type": "password"},
                    json={"email": email, "password": password},
                    headers=self._base_headers(),
                )
            except httpx.TransportError as e:
                raise TransientError(f"Login request failed: {e}") from e

        if response.status_code != 200:
            raise AuthenticationError(
                f"Login failed with status {response.status_code}: {response.text}"
            )

        data = response.json()
        access_token = data.get("access_token")
        if not access_token:
            raise AuthenticationError("Login response did not contain an access token")

        user_id = (data.get("user") or {}).get("id") or decode_jwt(access_token).get("sub")
        self._session_data = {
            "access_token": access_token,
            "refresh_token": data.get("refresh_token"),
            "user_id": user_id,
        }
        await self._reset_client()

        logger.info(f"Successfully logged in to Supabase (user_id: {user_id})")

    async def is_valid(self) -> bool:
        """Check if the current session is still valid."""
        if not self._session_data or not self._session_data.get("access_token"):
            return False

        try:
            client = self._get_client()
            response = await client.get(
                f"{self.settings.auth_url}/user",
                headers={"Authorization": f"Bearer {self._session_data['access_token']}"},
            )
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.debug(f"Session validation failed: {e}")
            return False

    async def ensure_authenticated(self) -> None:
        """Ensure we have a valid authenticated session."""
        if self._session_data is None:
            self._session_data = load_session(self.settings.session_file)

        if self._session_data and await self.is_valid():
            logger.info("Using cached session")
            return

        logger.info("Cached session invalid, performing fresh login")
        await self.login()
        save_session(self.settings.session_file, self._session_data or {})

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the authenticated REST client."""
        if self._client is None:
            if not self._session_data:
                raise AuthenticationError("Not authenticated - call ensure_authenticated() first")

            access_token = self._session_data.get("access_token", "")
            self._client = httpx.AsyncClient(
                base_url=self.settings.rest_url,
                timeout=self.settings.request_timeout,
                headers={
                    **self._base_headers(),
                    "Authorization": f"Bearer {access_token}",
                },
                transport=self._transport,
            )
        return self._client

    async def _reset_client(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Make an authenticated REST request and map failures to Finscope errors."""
        client = self._get_client()
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientError(f"{method} {path} timed out") from e
        except httpx.TransportError as e:
            raise TransientError(f"{method} {path} failed: {e}") from e
        raise_for_backend(response)
        return response

    async def select(
        self,
        table: str,
        filters: dict[str, str] | None = None,
        columns: str = "*",
        order: str | None = None,
    ) -> list[dict]:
        """Read rows from a table using PostgREST filter syntax (`col=eq.value`)."""
        params: dict[str, str] = {"select": columns, **(filters or {})}
        if order:
            params["order"] = order
        logger.debug(f"SELECT {table} {params}")
        response = await self.request("GET", f"/{table}", params=params)
        return response.json()

    async def insert(self, table: str, row: dict) -> dict:
        """Insert one row and return it as stored."""
        response = await self.request(
            "POST",
            f"/{table}",
            json=row,
            headers={"Prefer": "return=representation"},
        )
        rows = response.json()
        return rows[0] if isinstance(rows, list) else rows

    async def update(self, table: str, filters: dict[str, str], changes: dict) -> list[dict]:
        """Update matching rows and return them as stored."""
        response = await self.request(
            "PATCH",
            f"/{table}",
            params=filters,
            json=changes,
            headers={"Prefer": "return=representation"},
        )
        return response.json()

    async def delete(self, table: str, filters: dict[str, str]) -> list[dict]:
        """Delete matching rows and return them."""
        response = await self.request(
            "DELETE",
            f"/{table}",
            params=filters,
            headers={"Prefer": "return=representation"},
        )
        return response.json()

    async def rpc(self, function: str, args: dict | None = None) -> Any:
        """Call a server-side function."""
        response = await self.request("POST", f"/rpc/{function}", json=args or {})
        return response.json()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._reset_client()
