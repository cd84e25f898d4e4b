# ABOUTME: Tenant-scoped data access for Finscope entities
# ABOUTME: Every read and write is filtered by company_id; invariants are checked before writing

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, TypeVar

from finscope.exceptions import (
    ConsistencyError,
    NoTenantAssociationError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from finscope.status import (
    TERMINAL_STATUSES,
    check_transition,
    parse_status,
    require_funding_account,
)
from finscope.types import (
    BankAccount,
    ConfirmedRevenue,
    CreditCard,
    Expense,
    FundingAccountType,
    Mission,
    Payment,
    PaymentStatus,
    PaymentType,
    PendingRevenue,
    PendingRevenueStatus,
    Profile,
    Record,
    ServiceProvider,
    Tenant,
    Transaction,
    build,
    to_decimal,
)

if TYPE_CHECKING:
    from finscope.auth import SupabaseSession

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=Record)

TABLES: dict[type[Record], str] = {
    BankAccount: "bank_accounts",
    CreditCard: "credit_cards",
    Transaction: "transactions",
    Payment: "payments",
    Expense: "expenses",
    Mission: "missions",
    ServiceProvider: "service_providers",
    ConfirmedRevenue: "confirmed_revenues",
    PendingRevenue: "pending_revenues",
}

ORDERING: dict[type[Record], str] = {
    Transaction: "date.desc",
    Payment: "due_date.asc",
    Expense: "date.desc",
    ConfirmedRevenue: "received_date.desc",
    PendingRevenue: "due_date.asc",
}

TENANT_COLUMN = "company_id"


def _eq(value: object) -> str:
    return f"eq.{value}"


def _date_range(column: str, start: date | None, end: date | None) -> dict[str, str]:
    bounds = []
    if start:
        bounds.append(f"{column}.gte.{start.isoformat()}")
    if end:
        bounds.append(f"{column}.lte.{end.isoformat()}")
    return {"and": f"({','.join(bounds)})"} if bounds else {}


def _columns(model: type[Record], changes: dict) -> dict:
    """Rename model field names in `changes` to their backend column names."""
    renamed = {}
    for key, value in changes.items():
        field = model.model_fields.get(key)
        renamed[field.alias if field and field.alias else key] = value
    return renamed


def _check_card(card: CreditCard) -> None:
    if card.used_limit > card.limit:
        raise ValidationError(
            f"Limite utilizado ({card.used_limit}) excede o limite do cartão ({card.limit})."
        )


def _check_split(mission: Mission) -> None:
    if not mission.split_is_consistent:
        raise ValidationError(
            "Os percentuais da empresa e do prestador devem somar 100% "
            f"(recebido {mission.company_percentage} + {mission.provider_percentage})."
        )


def _check_invariants(record: Record) -> None:
    """Row rules enforced on every write; stored rows may predate them."""
    if isinstance(record, CreditCard):
        _check_card(record)
    elif isinstance(record, Mission):
        _check_split(record)


class EntityStore:
    """
    Typed, tenant-scoped access to the backend tables.

    `tenant_id` is the mandatory first argument of every operation. An empty
    tenant never reaches the backend: reads return nothing, writes are refused.
    Rows the backend returns for another tenant are dropped.
    """

    def __init__(self, session: "SupabaseSession") -> None:
        self.session = session

    # -- generic operations -------------------------------------------------

    def _own_rows(self, tenant_id: str, table: str, rows: list[dict]) -> list[dict]:
        own = [row for row in rows if row.get(TENANT_COLUMN) == tenant_id]
        if len(own) != len(rows):
            logger.warning(
                f"Dropped {len(rows) - len(own)} {table} row(s) outside tenant {tenant_id}"
            )
        return own

    @staticmethod
    def _require_tenant(tenant_id: str | None) -> str:
        if not tenant_id:
            raise NoTenantAssociationError(
                "Usuário não está associado a nenhuma empresa. "
                "Entre em contato com o administrador."
            )
        return tenant_id

    async def fetch(
        self,
        tenant_id: str | None,
        model: type[R],
        filters: dict[str, str] | None = None,
    ) -> list[R]:
        """
        Read all rows of an entity type belonging to a tenant.

        Args:
            tenant_id: Owning tenant; empty returns [] without querying
            model: Entity model (selects the table)
            filters: Extra PostgREST filters

        Returns:
            Validated entity models
        """
        table = TABLES[model]
        if not tenant_id:
            logger.warning(f"Refusing unscoped query on {table}")
            return []

        params = {**(filters or {}), TENANT_COLUMN: _eq(tenant_id)}
        rows = await self.session.select(table, params, order=ORDERING.get(model))
        return [build(model, row) for row in self._own_rows(tenant_id, table, rows)]

    async def get(self, tenant_id: str | None, model: type[R], record_id: str) -> R:
        """Read one row by id; NotFoundError if it isn't in the tenant."""
        rows = await self.fetch(tenant_id, model, {"id": _eq(record_id)})
        if not rows:
            raise NotFoundError(f"{model.__name__} {record_id} não encontrado.")
        return rows[0]

    async def insert(self, tenant_id: str | None, record: R) -> R:
        """Insert a record stamped with the tenant id."""
        tenant_id = self._require_tenant(tenant_id)
        if record.tenant_id and record.tenant_id != tenant_id:
            raise PermissionDeniedError("Registro pertence a outra empresa.")

        _check_invariants(record)
        model = type(record)
        table = TABLES[model]
        row = record.model_copy(update={"tenant_id": tenant_id}).to_row()
        stored = await self.session.insert(table, row)
        logger.info(f"Inserted {table} row {stored.get('id')} for tenant {tenant_id}")
        return build(model, stored)

    async def update(
        self,
        tenant_id: str | None,
        model: type[R],
        record_id: str,
        changes: dict,
        current: R | None = None,
    ) -> R:
        """
        Apply changes to a record after re-validating the whole row.

        The complete row is written back so derived columns stay in step.

        Raises:
            PermissionDeniedError: when the change would move the row to another tenant
            ValidationError: when the merged row is invalid
        """
        tenant_id = self._require_tenant(tenant_id)
        if {"tenant_id", TENANT_COLUMN, "id"} & changes.keys():
            raise PermissionDeniedError("A empresa e o id de um registro não podem ser alterados.")

        table = TABLES[model]
        if current is None:
            current = await self.get(tenant_id, model, record_id)
        merged = build(
            model,
            {**current.model_dump(by_alias=True), **_columns(model, changes)},
        )
        _check_invariants(merged)

        payload = merged.to_row()
        payload.pop("id", None)
        payload.pop(TENANT_COLUMN, None)
        # to_row drops None values; explicit clears must still reach the backend
        payload.update({k: None for k, v in _columns(model, changes).items() if v is None})
        rows = await self.session.update(
            table, {"id": _eq(record_id), TENANT_COLUMN: _eq(tenant_id)}, payload
        )
        rows = self._own_rows(tenant_id, table, rows)
        if not rows:
            raise NotFoundError(f"{model.__name__} {record_id} não encontrado.")
        logger.info(f"Updated {table} row {record_id}")
        return build(model, rows[0])

    async def delete(self, tenant_id: str | None, model: type[Record], record_id: str) -> None:
        tenant_id = self._require_tenant(tenant_id)
        table = TABLES[model]
        rows = await self.session.delete(
            table, {"id": _eq(record_id), TENANT_COLUMN: _eq(tenant_id)}
        )
        if not rows:
            raise NotFoundError(f"{model.__name__} {record_id} não encontrado.")
        logger.info(f"Deleted {table} row {record_id}")

    # -- tenant resolution --------------------------------------------------

    async def fetch_profile(self, user_id: str) -> Profile | None:
        rows = await self.session.select("profiles", {"id": _eq(user_id)})
        return build(Profile, rows[0]) if rows else None

    async def fetch_tenant(self, tenant_id: str) -> Tenant | None:
        rows = await self.session.select("companies", {"id": _eq(tenant_id)})
        return build(Tenant, rows[0]) if rows else None

    # -- accounts -----------------------------------------------------------

    async def fetch_bank_accounts(
        self, tenant_id: str | None, active_only: bool = False
    ) -> list[BankAccount]:
        filters = {"is_active": "eq.true"} if active_only else None
        return await self.fetch(tenant_id, BankAccount, filters)

    async def fetch_credit_cards(self, tenant_id: str | None) -> list[CreditCard]:
        return await self.fetch(tenant_id, CreditCard)

    async def fetch_raw_credit_cards(self, tenant_id: str | None) -> list[dict]:
        """Stored card rows as-is, including the persisted available_limit."""
        if not tenant_id:
            return []
        rows = await self.session.select(
            TABLES[CreditCard], {TENANT_COLUMN: _eq(tenant_id)}
        )
        return self._own_rows(tenant_id, TABLES[CreditCard], rows)

    async def create_credit_card(self, tenant_id: str | None, card: CreditCard) -> CreditCard:
        return await self.insert(tenant_id, card)

    async def adjust_card_usage(
        self, tenant_id: str | None, card_id: str, delta: Decimal
    ) -> CreditCard:
        """
        Charge (positive delta) or release (negative delta) credit on a card.

        Raises:
            ValidationError: if usage would go below zero or above the limit
        """
        try:
            delta = to_decimal(delta)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        card = await self.get(tenant_id, CreditCard, card_id)
        used = card.used_limit + delta
        if used < 0:
            raise ValidationError("O limite utilizado não pode ficar negativo.")
        return await self.update(tenant_id, CreditCard, card_id, {"used_limit": used}, current=card)

    # -- transactions -------------------------------------------------------

    async def fetch_transactions(
        self,
        tenant_id: str | None,
        start: date | None = None,
        end: date | None = None,
        status: str | None = None,
    ) -> list[Transaction]:
        filters = _date_range("date", start, end)
        if status:
            filters["status"] = _eq(status)
        return await self.fetch(tenant_id, Transaction, filters)

    # -- payments -----------------------------------------------------------

    async def fetch_payments(
        self,
        tenant_id: str | None,
        provider_id: str | None = None,
        status: str | None = None,
    ) -> list[Payment]:
        filters = {}
        if provider_id:
            filters["provider_id"] = _eq(provider_id)
        if status:
            filters["status"] = _eq(status)
        return await self.fetch(tenant_id, Payment, filters)

    async def _check_funding_account(
        self, tenant_id: str, account_id: str, account_type: FundingAccountType
    ) -> None:
        model = BankAccount if account_type == FundingAccountType.BANK_ACCOUNT else CreditCard
        try:
            await self.get(tenant_id, model, account_id)
        except NotFoundError:
            raise ConsistencyError(
                f"Conta {account_id} não pertence a esta empresa.", title="Conta inválida"
            ) from None

    async def create_payment(self, tenant_id: str | None, payment: Payment) -> Payment:
        tenant_id = self._require_tenant(tenant_id)
        if payment.status == PaymentStatus.COMPLETED:
            account_type = require_funding_account(payment.account_id, payment.account_type)
            await self._check_funding_account(tenant_id, payment.account_id or "", account_type)
        return await self.insert(tenant_id, payment)

    async def update_payment(
        self,
        tenant_id: str | None,
        payment_id: str,
        changes: dict,
        current: Payment | None = None,
    ) -> Payment:
        """
        Edit a payment; status changes must follow the status machine.

        A payment in a terminal status only changes status through
        correct_payment_status.
        """
        if current is None:
            current = await self.get(tenant_id, Payment, payment_id)
        target = changes.get("status")
        if target is not None and parse_status(target) != current.status:
            check_transition(
                current, target, changes.get("account_id"), changes.get("account_type")
            )
        merged_account = changes.get("account_id", current.account_id)
        merged_type = changes.get("account_type", current.account_type)
        if parse_status(target or current.status) == PaymentStatus.COMPLETED:
            account_type = require_funding_account(merged_account, merged_type)
            await self._check_funding_account(tenant_id or "", merged_account, account_type)
        return await self.update(tenant_id, Payment, payment_id, changes, current=current)

    async def transition_payment(
        self,
        tenant_id: str | None,
        payment_id: str,
        status: PaymentStatus | str,
        account_id: str | None = None,
        account_type: FundingAccountType | str | None = None,
    ) -> Payment:
        changes: dict = {"status": parse_status(status)}
        if account_id:
            changes["account_id"] = account_id
        if account_type:
            changes["account_type"] = account_type
        return await self.update_payment(tenant_id, payment_id, changes)

    async def mark_payment_paid(
        self,
        tenant_id: str | None,
        payment_id: str,
        account_id: str | None,
        account_type: FundingAccountType | str | None,
        payment_date: date | None = None,
    ) -> Payment:
        """
        Complete a payment from a funding bank account or credit card.

        Raises:
            ConsistencyError: without a funding account, with an account from
                another tenant, or when the payment is already settled
        """
        funding = require_funding_account(account_id, account_type)
        current = await self.get(tenant_id, Payment, payment_id)
        check_transition(current, PaymentStatus.COMPLETED, account_id, funding)
        return await self.update_payment(
            tenant_id,
            payment_id,
            {
                "status": PaymentStatus.COMPLETED,
                "payment_date": payment_date or date.today(),
                "account_id": account_id,
                "account_type": funding,
            },
            current=current,
        )

    async def correct_payment_status(
        self,
        tenant_id: str | None,
        payment_id: str,
        status: PaymentStatus | str,
    ) -> Payment:
        """
        Explicit status edit that may reopen a settled payment.

        Reopening clears the payment date; the funding account rule for
        `completed` still applies.
        """
        current = await self.get(tenant_id, Payment, payment_id)
        target = parse_status(status)
        changes: dict = {"status": target}
        if target == PaymentStatus.COMPLETED:
            funding = require_funding_account(current.account_id, current.account_type)
            await self._check_funding_account(tenant_id or "", current.account_id or "", funding)
        elif current.status in TERMINAL_STATUSES:
            changes["payment_date"] = None
        logger.warning(
            f"Payment {payment_id} status corrected from {current.status.value} to {target.value}"
        )
        return await self.update(tenant_id, Payment, payment_id, changes, current=current)

    async def pending_total_for_provider(self, tenant_id: str | None, provider_id: str) -> Decimal:
        """Pending amount owed to a provider, excluding balance settlements."""
        payments = await self.fetch_payments(tenant_id, provider_id, PaymentStatus.PENDING.value)
        return sum(
            (p.amount for p in payments if p.type != PaymentType.BALANCE_PAYMENT),
            Decimal("0.00"),
        )

    async def settle_pending_payments(
        self,
        tenant_id: str | None,
        provider_id: str,
        amount: Decimal,
        account_id: str | None,
        account_type: FundingAccountType | str | None,
        payment_date: date | None = None,
    ) -> dict:
        """
        Settle a provider's pending payments server-side; returns the RPC summary.

        Settled payments become completed, so the same funding account rule
        as mark_payment_paid applies.

        Raises:
            ValidationError: for a non-positive amount or a rejected settlement
            ConsistencyError: without a funding account or with one from another tenant
        """
        try:
            amount = to_decimal(amount)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        if amount <= 0:
            raise ValidationError("O valor da liquidação deve ser positivo.")
        funding = require_funding_account(account_id, account_type)
        tenant_id = self._require_tenant(tenant_id)
        await self.get(tenant_id, ServiceProvider, provider_id)
        await self._check_funding_account(tenant_id, account_id or "", funding)
        result = await self.session.rpc(
            "manually_settle_pending_payments",
            {
                "p_provider_id": provider_id,
                "p_settlement_amount": str(amount),
                "p_payment_date": (payment_date or date.today()).isoformat(),
                "p_account_id": account_id,
                "p_account_type": funding.value,
            },
        )
        if not (result or {}).get("success"):
            raise ValidationError((result or {}).get("message") or "Falha ao liquidar pagamentos.")
        return result

    # -- expenses, missions, providers --------------------------------------

    async def fetch_expenses(
        self, tenant_id: str | None, mission_id: str | None = None
    ) -> list[Expense]:
        filters = {"mission_id": _eq(mission_id)} if mission_id else None
        return await self.fetch(tenant_id, Expense, filters)

    async def fetch_missions(
        self, tenant_id: str | None, approved: bool | None = None
    ) -> list[Mission]:
        filters = None
        if approved is not None:
            filters = {"is_approved": f"eq.{str(approved).lower()}"}
        return await self.fetch(tenant_id, Mission, filters)

    async def fetch_provider_missions(
        self, tenant_id: str | None, provider_id: str
    ) -> list[Mission]:
        """Approved missions where the provider leads or is co-assigned."""
        missions = await self.fetch_missions(tenant_id, approved=True)
        return [m for m in missions if m.involves(provider_id)]

    async def fetch_providers(self, tenant_id: str | None) -> list[ServiceProvider]:
        return await self.fetch(tenant_id, ServiceProvider)

    async def recalculate_provider_balance(
        self, tenant_id: str | None, provider_id: str
    ) -> Decimal:
        """Ask the backend to recompute and persist a provider's balance."""
        await self.get(tenant_id, ServiceProvider, provider_id)
        result = await self.session.rpc(
            "recalculate_provider_balance", {"provider_uuid": provider_id}
        )
        return to_decimal(result)

    async def fetch_confirmed_revenues(
        self,
        tenant_id: str | None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[ConfirmedRevenue]:
        return await self.fetch(
            tenant_id, ConfirmedRevenue, _date_range("received_date", start, end)
        )

    async def fetch_pending_revenues(
        self,
        tenant_id: str | None,
        status: PendingRevenueStatus | str | None = None,
    ) -> list[PendingRevenue]:
        filters = None
        if status:
            try:
                filters = {"status": _eq(PendingRevenueStatus(status).value)}
            except ValueError:
                raise ValidationError(f"Status de receita desconhecido: {status}") from None
        return await self.fetch(tenant_id, PendingRevenue, filters)

    async def convert_pending_revenue(
        self,
        tenant_id: str | None,
        revenue_id: str,
        account_id: str | None,
        account_type: FundingAccountType | str | None,
        payment_method: str | None = None,
    ) -> dict:
        """
        Record a pending revenue as received into one of the tenant's accounts.

        The backend creates the confirmed revenue and marks the pending one
        received in a single call.

        Raises:
            ConsistencyError: without a receiving account, with one from another
                tenant, or when the revenue is no longer pending
            NotFoundError: if the revenue is not in the tenant
        """
        funding = require_funding_account(account_id, account_type)
        tenant_id = self._require_tenant(tenant_id)
        revenue = await self.get(tenant_id, PendingRevenue, revenue_id)
        if revenue.status != PendingRevenueStatus.PENDING:
            raise ConsistencyError(
                f"Receita {revenue_id} não está pendente ({revenue.status.value}).",
                title="Receita já processada",
            )
        await self._check_funding_account(tenant_id, account_id or "", funding)

        args = {
            "pending_revenue_id": revenue_id,
            "account_id": account_id,
            "account_type": funding.value,
        }
        if payment_method:
            args["payment_method"] = payment_method
        result = await self.session.rpc("convert_pending_to_confirmed_revenue", args)
        if isinstance(result, dict) and result.get("success") is False:
            raise ValidationError(result.get("message") or "Falha ao confirmar a receita.")
        logger.info(f"Converted pending revenue {revenue_id} for tenant {tenant_id}")
        return result if isinstance(result, dict) else {"success": True}

    async def set_mission_split(
        self, tenant_id: str | None, mission_id: str, company_percentage: Decimal
    ) -> Mission:
        """
        Change a mission's revenue split; the provider share is the complement.

        This is also how a stored mission with an inconsistent split is repaired.
        """
        try:
            company = Decimal(str(company_percentage))
        except InvalidOperation as e:
            raise ValidationError(f"Percentual inválido: {company_percentage!r}") from e
        return await self.update(
            tenant_id,
            Mission,
            mission_id,
            {"company_percentage": company, "provider_percentage": Decimal("100") - company},
        )
