# ABOUTME: Financial report tools for Finscope
# ABOUTME: Dashboard, cash flow, projections, liquidity health and revenue reports

from datetime import date
from typing import TYPE_CHECKING

from finscope import aggregator, views
from finscope.client import parse_day, restricted_response, surface_errors, with_auth_retry
from finscope.dashboard import FinancialState

if TYPE_CHECKING:
    from collections.abc import Callable

    from fastmcp import FastMCP

    from finscope.client import ToolContext


def register_report_tools(mcp: "FastMCP", get_context: "Callable") -> None:
    """Register financial report tools with the MCP server."""

    @mcp.tool
    @with_auth_retry
    @surface_errors
    async def get_dashboard(start_date: str | None = None, end_date: str | None = None) -> dict:
        """
        Get the financial dashboard: summary cards, payment calendar,
        six-month cash flow chart, liquidity health and recent transactions.

        Sections that fail to load are listed under "errors" with a retry
        hint; the others are still returned.

        Args:
            start_date: Cash-flow window start (YYYY-MM-DD, default: first of month)
            end_date: Cash-flow window end (YYYY-MM-DD, default: today)
        """
        ctx: ToolContext = await get_context()
        if blocked := restricted_response(ctx.scope):
            return blocked

        async with FinancialState(
            ctx.store, ctx.scope, urgent_days=ctx.settings.urgent_days
        ) as state:
            return state.summary(parse_day(start_date), parse_day(end_date))

    @mcp.tool
    @with_auth_retry
    @surface_errors
    async def get_cash_flow(
        start_date: str | None = None,
        end_date: str | None = None,
        months: int = 6,
    ) -> dict:
        """
        Income, expenses and net result of completed transactions.

        Args:
            start_date: Window start (YYYY-MM-DD)
            end_date: Window end (YYYY-MM-DD)
            months: Months in the monthly chart series
        """
        ctx: ToolContext = await get_context()
        if blocked := restricted_response(ctx.scope):
            return blocked

        start, end = parse_day(start_date), parse_day(end_date)
        transactions = await ctx.store.fetch_transactions(ctx.scope.tenant_id)
        flow = aggregator.cash_flow(transactions, start, end)
        return {
            "period": {
                "start": start.isoformat() if start else None,
                "end": end.isoformat() if end else None,
            },
            "income": views.format_currency(flow.income),
            "expenses": views.format_currency(flow.expenses),
            "net": views.format_currency(flow.net),
            "totals": flow.model_dump(mode="json"),
            "chart": views.cash_flow_chart(
                aggregator.monthly_cash_flow(transactions, months=max(months, 1))
            ),
        }

    @mcp.tool
    @with_auth_retry
    @surface_errors
    async def get_cash_health() -> dict:
        """
        Liquidity indicators for the current month: liquidity ratio, days of
        cash and safety margin, each graded good, warning or danger.
        """
        ctx: ToolContext = await get_context()
        if blocked := restricted_response(ctx.scope):
            return blocked

        tenant = ctx.scope.tenant_id
        today = date.today()
        balance = aggregator.bank_balance(await ctx.store.fetch_bank_accounts(tenant))
        flow = aggregator.cash_flow(
            await ctx.store.fetch_transactions(tenant, start=today.replace(day=1), end=today)
        )
        return aggregator.cash_health(balance, flow.income, flow.expenses).model_dump(mode="json")

    @mcp.tool
    @with_auth_retry
    @surface_errors
    async def get_revenue_summary(
        start_date: str | None = None, end_date: str | None = None
    ) -> dict:
        """
        Confirmed revenues received in a period, split into company and provider shares.

        Args:
            start_date: Period start (YYYY-MM-DD)
            end_date: Period end (YYYY-MM-DD)
        """
        ctx: ToolContext = await get_context()
        if blocked := restricted_response(ctx.scope):
            return blocked

        start, end = parse_day(start_date), parse_day(end_date)
        revenues = await ctx.store.fetch_confirmed_revenues(ctx.scope.tenant_id, start, end)
        summary = aggregator.revenue_summary(revenues, start, end)
        return {
            **summary.model_dump(mode="json"),
            "total_display": views.format_currency(summary.total),
            "company_display": views.format_currency(summary.company),
            "provider_display": views.format_currency(summary.provider),
        }

    @mcp.tool
    @with_auth_retry
    @surface_errors
    async def get_pending_revenues(status: str | None = "pending") -> dict:
        """
        Revenues still to be received from clients, soonest due first.

        Args:
            status: pending, received or cancelled (None for all)

        Returns:
            Pending total, count and how many are due within a week, plus rows
        """
        ctx: ToolContext = await get_context()
        if blocked := restricted_response(ctx.scope):
            return blocked

        revenues = await ctx.store.fetch_pending_revenues(ctx.scope.tenant_id, status)
        summary = aggregator.pending_revenue_summary(revenues)
        return {
            **summary.model_dump(mode="json"),
            "total_display": views.format_currency(summary.total),
            "revenues": views.pending_revenue_rows(revenues),
        }

    @mcp.tool
    @with_auth_retry
    @surface_errors
    async def convert_pending_revenue(
        revenue_id: str,
        account_id: str,
        account_type: str,
        payment_method: str | None = None,
    ) -> dict:
        """
        Record a pending revenue as received, creating the confirmed revenue.

        Args:
            revenue_id: Pending revenue to confirm
            account_id: Receiving account or card ID (must belong to the company)
            account_type: bank_account or credit_card
            payment_method: How the client paid (e.g. pix, boleto)
        """
        ctx: ToolContext = await get_context()
        if blocked := restricted_response(ctx.scope):
            return blocked

        return await ctx.store.convert_pending_revenue(
            ctx.scope.tenant_id, revenue_id, account_id, account_type, payment_method
        )

    @mcp.tool
    @with_auth_retry
    @surface_errors
    async def get_cash_flow_projections() -> dict:
        """
        Expected cash flow for the next 7, 30, 60 and 90 days.

        Uses this month's completed income and expenses as the run rate and
        adds pending or overdue payments due within each horizon. Pending
        income transactions are listed as upcoming receivables.
        """
        ctx: ToolContext = await get_context()
        if blocked := restricted_response(ctx.scope):
            return blocked

        tenant = ctx.scope.tenant_id
        today = date.today()
        transactions = await ctx.store.fetch_transactions(tenant)
        payments = await ctx.store.fetch_payments(tenant)
        flow = aggregator.cash_flow(transactions, today.replace(day=1), today)
        projections = aggregator.cash_flow_projections(
            flow.income, flow.expenses, payments, today
        )
        return {
            "monthly_income": str(flow.income),
            "monthly_expenses": str(flow.expenses),
            "projections": views.projection_rows(projections),
            "receivables": views.receivable_rows(aggregator.upcoming_receivables(transactions)),
        }
