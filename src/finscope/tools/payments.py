# ABOUTME: Payment tools for Finscope
# ABOUTME: List, schedule, settle and correct provider payments

from datetime import date
from typing import TYPE_CHECKING

from finscope import aggregator, views
from finscope.client import parse_day, restricted_response, surface_errors, with_auth_retry
from finscope.status import parse_status
from finscope.types import Payment, build

if TYPE_CHECKING:
    from collections.abc import Callable

    from fastmcp import FastMCP

    from finscope.client import ToolContext


def register_payment_tools(mcp: "FastMCP", get_context: "Callable") -> None:
    """Register payment tools with the MCP server."""

    @mcp.tool
    @with_auth_retry
    @surface_errors
    async def list_payments(
        status: str | None = None,
        provider_id: str | None = None,
    ) -> dict:
        """
        List payments with urgency and display labels.

        Args:
            status: pending, partial, completed, overdue or cancelled
            provider_id: Only payments to this provider

        Returns:
            Payment rows plus pending/overdue totals
        """
        ctx: ToolContext = await get_context()
        if blocked := restricted_response(ctx.scope):
            return blocked

        if status:
            status = parse_status(status).value
        payments = await ctx.store.fetch_payments(ctx.scope.tenant_id, provider_id, status)
        totals = aggregator.pending_payments(payments)
        return {
            "payments": views.payment_rows(payments, urgent_days=ctx.settings.urgent_days),
            "totals": totals.model_dump(mode="json"),
        }

    @mcp.tool
    @with_auth_retry
    @surface_errors
    async def get_payment_calendar() -> dict:
        """
        Open payments grouped as overdue, urgent (due within a few days) and upcoming.
        """
        ctx: ToolContext = await get_context()
        if blocked := restricted_response(ctx.scope):
            return blocked

        payments = await ctx.store.fetch_payments(ctx.scope.tenant_id)
        return views.payment_calendar(payments, urgent_days=ctx.settings.urgent_days)

    @mcp.tool
    @with_auth_retry
    @surface_errors
    async def create_payment(
        provider_name: str,
        amount: str,
        due_date: str,
        provider_id: str | None = None,
        description: str = "",
        type: str = "full",
        installments: int | None = None,
        current_installment: int | None = None,
    ) -> dict:
        """
        Schedule a new pending payment to a provider.

        Args:
            provider_name: Display name of the payee
            amount: Decimal amount (e.g. "1500.00")
            due_date: Due date (YYYY-MM-DD)
            provider_id: Registered provider ID, if any
            description: Free text
            type: full, installment, advance, balance_payment or advance_payment
            installments: Number of installments for installment payments
            current_installment: Which installment this is
        """
        ctx: ToolContext = await get_context()
        if blocked := restricted_response(ctx.scope):
            return blocked

        payment = build(
            Payment,
            {
                "provider_id": provider_id,
                "provider_name": provider_name,
                "amount": amount,
                "due_date": parse_day(due_date),
                "description": description,
                "type": type,
                "installments": installments,
                "current_installment": current_installment,
            },
        )
        stored = await ctx.store.create_payment(ctx.scope.tenant_id, payment)
        return stored.model_dump(mode="json")

    @mcp.tool
    @with_auth_retry
    @surface_errors
    async def mark_payment_paid(
        payment_id: str,
        account_id: str,
        account_type: str,
        payment_date: str | None = None,
    ) -> dict:
        """
        Mark a payment as paid from a bank account or credit card.

        Args:
            payment_id: Payment to settle
            account_id: Funding account or card ID (must belong to the company)
            account_type: bank_account or credit_card
            payment_date: Date paid (YYYY-MM-DD, default: today)
        """
        ctx: ToolContext = await get_context()
        if blocked := restricted_response(ctx.scope):
            return blocked

        payment = await ctx.store.mark_payment_paid(
            ctx.scope.tenant_id,
            payment_id,
            account_id,
            account_type,
            parse_day(payment_date) or date.today(),
        )
        return payment.model_dump(mode="json")

    @mcp.tool
    @with_auth_retry
    @surface_errors
    async def update_payment_status(
        payment_id: str,
        status: str,
        account_id: str | None = None,
        account_type: str | None = None,
    ) -> dict:
        """
        Move a payment along its lifecycle.

        pending -> partial, completed, overdue, cancelled
        partial -> completed, overdue, cancelled
        overdue -> completed, cancelled
        completed and cancelled are final; use correct_payment_status to reopen.
        """
        ctx: ToolContext = await get_context()
        if blocked := restricted_response(ctx.scope):
            return blocked

        payment = await ctx.store.transition_payment(
            ctx.scope.tenant_id, payment_id, status, account_id, account_type
        )
        return payment.model_dump(mode="json")

    @mcp.tool
    @with_auth_retry
    @surface_errors
    async def correct_payment_status(payment_id: str, status: str) -> dict:
        """
        Explicitly overwrite a payment's status, including reopening a settled one.

        Use only to fix mistakes; normal changes go through update_payment_status.
        """
        ctx: ToolContext = await get_context()
        if blocked := restricted_response(ctx.scope):
            return blocked

        payment = await ctx.store.correct_payment_status(ctx.scope.tenant_id, payment_id, status)
        return payment.model_dump(mode="json")

    @mcp.tool
    @with_auth_retry
    @surface_errors
    async def settle_provider_payments(
        provider_id: str,
        amount: str,
        account_id: str,
        account_type: str,
        payment_date: str | None = None,
    ) -> dict:
        """
        Settle a provider's pending payments up to an amount.

        Settled payments are completed, so they need a funding account.

        Args:
            provider_id: Provider whose pending payments are settled
            amount: Amount paid to the provider
            account_id: Funding account or card ID (must belong to the company)
            account_type: bank_account or credit_card
            payment_date: Settlement date (YYYY-MM-DD, default: today)
        """
        ctx: ToolContext = await get_context()
        if blocked := restricted_response(ctx.scope):
            return blocked

        tenant = ctx.scope.tenant_id
        pending = await ctx.store.pending_total_for_provider(tenant, provider_id)
        result = await ctx.store.settle_pending_payments(
            tenant, provider_id, amount, account_id, account_type, parse_day(payment_date)
        )
        return {"pending_before": str(pending), **result}
