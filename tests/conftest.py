# ABOUTME: Pytest fixtures for Finscope tests
# ABOUTME: Provides an in-memory PostgREST-style backend behind httpx.MockTransport

import json
import uuid
from collections.abc import Callable

import httpx
import pytest

from finscope.auth import SupabaseSession
from finscope.config import Settings
from finscope.store import EntityStore
from finscope.types import AccessLevel, Scope

TENANT_A = "co-a"
TENANT_B = "co-b"


def _as_text(value: object) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def _matches(row: dict, column: str, op: str, value: str) -> bool:
    if column not in row:
        return False
    actual = _as_text(row[column])
    if op == "eq":
        return actual == value
    if op == "gte":
        return actual >= value
    if op == "lte":
        return actual <= value
    raise AssertionError(f"Unsupported filter operator: {op}")


class FakeBackend:
    """
    Just enough of the Supabase REST and auth endpoints for the store.

    `leaky` ignores the company_id filter, like a table without row-level
    security; `failing` makes requests to the named tables answer 503.
    """

    def __init__(self) -> None:
        self.tables: dict[str, list[dict]] = {}
        self.rpc_handlers: dict[str, Callable[[dict], object]] = {}
        self.requests: list[httpx.Request] = []
        self.failing: set[str] = set()
        self.leaky = False

    def seed(self, table: str, *rows: dict) -> None:
        self.tables.setdefault(table, []).extend(dict(r) for r in rows)

    def _filters(self, request: httpx.Request) -> list[tuple[str, str, str]]:
        filters = []
        for key, raw in request.url.params.multi_items():
            if key in ("select", "order"):
                continue
            if key == "and":
                for clause in raw.strip("()").split(","):
                    column, op, value = clause.split(".", 2)
                    filters.append((column, op, value))
                continue
            if self.leaky and key == "company_id":
                continue
            op, value = raw.split(".", 1)
            filters.append((key, op, value))
        return filters

    def _select(self, table: str, request: httpx.Request) -> list[dict]:
        filters = self._filters(request)
        return [
            row
            for row in self.tables.get(table, [])
            if all(_matches(row, c, op, v) for c, op, v in filters)
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.startswith("/auth/v1/"):
            if path.endswith("/token"):
                return httpx.Response(
                    200, json={"access_token": "token", "user": {"id": "user-a"}}
                )
            return httpx.Response(200, json={"id": "user-a"})

        name = path.removeprefix("/rest/v1/")
        if name.startswith("rpc/"):
            args = json.loads(request.content or b"{}")
            return httpx.Response(200, json=self.rpc_handlers[name[4:]](args))

        if name in self.failing:
            return httpx.Response(503, json={"message": "Service unavailable"})

        if request.method == "GET":
            return httpx.Response(200, json=self._select(name, request))

        if request.method == "POST":
            row = json.loads(request.content)
            row.setdefault("id", str(uuid.uuid4()))
            self.tables.setdefault(name, []).append(row)
            return httpx.Response(201, json=[row])

        matched = self._select(name, request)
        if request.method == "PATCH":
            changes = json.loads(request.content)
            for row in matched:
                row.update(changes)
            return httpx.Response(200, json=matched)

        if request.method == "DELETE":
            self.tables[name] = [r for r in self.tables.get(name, []) if r not in matched]
            return httpx.Response(200, json=matched)

        return httpx.Response(405)

    def rest_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.startswith("/rest/v1/")]


@pytest.fixture
def settings(tmp_path):
    return Settings(
        supabase_url="https://test.supabase.co",
        supabase_key="anon-key",
        session_dir=tmp_path,
    )


@pytest.fixture
def backend():
    backend = FakeBackend()
    backend.seed(
        "companies",
        {"id": TENANT_A, "name": "Alfa Serviços", "owner_id": "user-a"},
        {"id": TENANT_B, "name": "Beta Engenharia", "owner_id": "user-b"},
    )
    backend.seed(
        "profiles",
        {"id": "user-a", "company_id": TENANT_A, "name": "Ana", "role": "admin", "active": True},
        {"id": "user-c", "company_id": TENANT_A, "name": "Caio", "role": "user", "active": True},
        {"id": "user-x", "company_id": None, "name": "Xavier", "role": "user", "active": True},
    )
    backend.seed(
        "bank_accounts",
        {"id": "ba-1", "company_id": TENANT_A, "name": "Itaú PJ", "bank": "Itaú",
         "account_type": "checking", "balance": 1000.00, "is_active": True},
        {"id": "ba-2", "company_id": TENANT_A, "name": "Caixa", "bank": "Caixa",
         "account_type": "savings", "balance": -250.50, "is_active": True},
        {"id": "ba-3", "company_id": TENANT_A, "name": "Antiga", "bank": "Bradesco",
         "account_type": "checking", "balance": 500.00, "is_active": False},
        {"id": "ba-9", "company_id": TENANT_B, "name": "Beta Conta", "bank": "Nubank",
         "account_type": "checking", "balance": 99999.00, "is_active": True},
    )
    backend.seed(
        "credit_cards",
        {"id": "cc-1", "company_id": TENANT_A, "name": "Visa Empresa", "brand": "visa",
         "credit_limit": 1000, "used_limit": 300, "available_limit": 650, "is_active": True},
        {"id": "cc-9", "company_id": TENANT_B, "name": "Beta Card", "brand": "elo",
         "credit_limit": 5000, "used_limit": 0, "available_limit": 5000, "is_active": True},
    )
    backend.seed(
        "payments",
        {"id": "pay-1", "company_id": TENANT_A, "provider_id": "prov-1",
         "provider_name": "João Silva", "amount": 450.00, "due_date": "2025-03-10",
         "status": "pending", "type": "full", "description": "Missão Recife"},
        {"id": "pay-9", "company_id": TENANT_B, "provider_id": "prov-9",
         "provider_name": "Beta Prestador", "amount": 10.00, "due_date": "2025-03-10",
         "status": "pending", "type": "full", "description": ""},
    )
    backend.seed(
        "service_providers",
        {"id": "prov-1", "company_id": TENANT_A, "name": "João Silva", "current_balance": 0},
        {"id": "prov-9", "company_id": TENANT_B, "name": "Beta Prestador", "current_balance": 0},
    )
    backend.seed(
        "missions",
        {"id": "mis-1", "company_id": TENANT_A, "title": "Instalação Recife",
         "client_name": "Cliente X", "status": "completed", "service_value": 1000,
         "company_percentage": 10, "provider_percentage": 90, "is_approved": True,
         "provider_id": None, "assigned_providers": ["prov-1", "prov-2"]},
    )
    backend.seed(
        "pending_revenues",
        {"id": "rev-1", "company_id": TENANT_A, "mission_id": "mis-1",
         "client_name": "Cliente X", "total_amount": 1000, "company_amount": 100,
         "provider_amount": 900, "due_date": "2025-03-14", "status": "pending"},
        {"id": "rev-2", "company_id": TENANT_A, "client_name": "Cliente Y",
         "total_amount": 500, "due_date": "2025-04-30", "status": "pending"},
        {"id": "rev-3", "company_id": TENANT_A, "client_name": "Cliente Z",
         "total_amount": 300, "due_date": "2025-02-01", "status": "received",
         "received_at": "2025-02-03T10:15:00.123+00:00"},
        {"id": "rev-9", "company_id": TENANT_B, "client_name": "Cliente Beta",
         "total_amount": 777, "due_date": "2025-03-11", "status": "pending"},
    )
    return backend


@pytest.fixture
async def session(settings, backend):
    session = SupabaseSession(
        settings,
        session_data={"access_token": "token", "user_id": "user-a"},
        transport=httpx.MockTransport(backend.handler),
    )
    yield session
    await session.close()


@pytest.fixture
def store(session):
    return EntityStore(session)


@pytest.fixture
def scope_a():
    return Scope(user_id="user-a", tenant_id=TENANT_A, access_level=AccessLevel.OWNER)
