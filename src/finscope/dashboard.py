# ABOUTME: Application financial state for one tenant scope
# ABOUTME: Loads sections in parallel, tolerates partial failure, and assembles the dashboard

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import date
from typing import Any

from finscope import aggregator, views
from finscope.exceptions import NoTenantAssociationError
from finscope.result import Err, Ok, capture
from finscope.store import EntityStore
from finscope.types import Scope

logger = logging.getLogger(__name__)

SECTIONS = (
    "bank_accounts",
    "credit_cards",
    "transactions",
    "payments",
    "missions",
    "expenses",
    "providers",
    "revenues",
    "pending_revenues",
)

# section each summary card is computed from
CARD_SECTIONS = {
    "bank_balance": "bank_accounts",
    "credit_available": "credit_cards",
    "income": "transactions",
    "expenses": "transactions",
    "net": "transactions",
    "pending_payments": "payments",
    "overdue_payments": "payments",
    "pending_revenues": "pending_revenues",
}


class FinancialState:
    """
    The financial data of one tenant, loaded once and refreshed on demand.

    Each section is fetched independently; a failed section keeps its error
    and the rest of the dashboard still renders. Use as an async context
    manager to load on entry and drop everything on exit.
    """

    def __init__(
        self,
        store: EntityStore,
        scope: Scope,
        today: date | None = None,
        urgent_days: int = 3,
    ) -> None:
        self.store = store
        self.scope = scope
        self.today = today or date.today()
        self.urgent_days = urgent_days
        self.sections: dict[str, Ok | Err] = {}

    def _loader(self, section: str) -> Callable[[], Awaitable[Any]]:
        tenant = self.scope.tenant_id
        loaders: dict[str, Callable[[], Awaitable[Any]]] = {
            "bank_accounts": lambda: self.store.fetch_bank_accounts(tenant),
            "credit_cards": lambda: self.store.fetch_credit_cards(tenant),
            "transactions": lambda: self.store.fetch_transactions(tenant),
            "payments": lambda: self.store.fetch_payments(tenant),
            "missions": lambda: self.store.fetch_missions(tenant),
            "expenses": lambda: self.store.fetch_expenses(tenant),
            "providers": lambda: self.store.fetch_providers(tenant),
            "revenues": lambda: self.store.fetch_confirmed_revenues(tenant),
            "pending_revenues": lambda: self.store.fetch_pending_revenues(tenant),
        }
        try:
            return loaders[section]
        except KeyError:
            raise ValueError(f"Unknown section: {section}") from None

    async def load(self, sections: tuple[str, ...] = SECTIONS) -> dict[str, Ok | Err]:
        """Fetch the given sections concurrently; failures are kept per section."""
        results = await asyncio.gather(*(capture(self._loader(s)()) for s in sections))
        self.sections.update(zip(sections, results))
        failed = [s for s, r in zip(sections, results) if not r.ok]
        if failed:
            logger.warning(f"Failed to load section(s) {', '.join(failed)}")
        return self.sections

    async def refresh(self, section: str) -> Ok | Err:
        """Reload one section (the retry action of a failed card)."""
        self.sections[section] = await capture(self._loader(section)())
        return self.sections[section]

    def rows(self, section: str) -> list:
        """Loaded rows of a section, or [] if it failed or was never loaded."""
        result = self.sections.get(section)
        return result.value if isinstance(result, Ok) else []

    @property
    def errors(self) -> dict[str, Err]:
        return {s: r for s, r in self.sections.items() if isinstance(r, Err)}

    def summary(self, start: date | None = None, end: date | None = None) -> dict:
        """
        Dashboard view model.

        Args:
            start: First day of the cash-flow window (default: first of this month)
            end: Last day of the cash-flow window (default: today)
        """
        if not self.scope.is_resolved:
            return {
                "restricted": views.error_banner(
                    NoTenantAssociationError(
                        "Usuário não está associado a nenhuma empresa. "
                        "Entre em contato com o administrador."
                    )
                ),
                "cards": [],
                "errors": {},
            }

        start = start or self.today.replace(day=1)
        end = end or self.today
        balance = aggregator.bank_balance(self.rows("bank_accounts"))
        credit = aggregator.credit_summary(self.rows("credit_cards"))
        transactions = self.rows("transactions")
        flow = aggregator.cash_flow(transactions, start, end)
        payments = self.rows("payments")
        totals = aggregator.pending_payments(payments)
        pending_revenues = aggregator.pending_revenue_summary(
            self.rows("pending_revenues"), self.today
        )
        errors = self.errors

        cards = [
            *views.dashboard_cards(balance, credit, flow, totals),
            views.pending_revenue_card(pending_revenues),
        ]
        for i, card in enumerate(cards):
            failed = errors.get(CARD_SECTIONS[card["key"]])
            if failed is not None:
                cards[i] = views.unavailable_card(card, failed.error)
        health = None
        if not {"bank_accounts", "transactions"} & errors.keys():
            health = aggregator.cash_health(balance, flow.income, flow.expenses).model_dump(
                mode="json"
            )

        return {
            "restricted": None,
            "tenant_id": self.scope.tenant_id,
            "period": {"start": start.isoformat(), "end": end.isoformat()},
            "cards": cards,
            "calendar": views.payment_calendar(payments, self.today, self.urgent_days),
            "chart": views.cash_flow_chart(
                aggregator.monthly_cash_flow(transactions, today=self.today)
            ),
            "health": health,
            "recent_transactions": views.transaction_rows(transactions[:10]),
            "errors": {s: views.error_banner(e.error) for s, e in errors.items()},
        }

    async def close(self) -> None:
        self.sections.clear()

    async def __aenter__(self) -> "FinancialState":
        await self.load()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
