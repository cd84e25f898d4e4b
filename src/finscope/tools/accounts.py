# ABOUTME: Bank account and credit card tools for Finscope
# ABOUTME: List accounts and cards, summarize balances and credit utilization

from typing import TYPE_CHECKING

from finscope import aggregator, views
from finscope.client import restricted_response, surface_errors, with_auth_retry

if TYPE_CHECKING:
    from collections.abc import Callable

    from fastmcp import FastMCP

    from finscope.client import ToolContext


def register_account_tools(mcp: "FastMCP", get_context: "Callable") -> None:
    """Register account tools with the MCP server."""

    @mcp.tool
    @with_auth_retry
    @surface_errors
    async def get_bank_accounts(active_only: bool = False) -> dict:
        """
        List the company's bank accounts and credit cards.

        Args:
            active_only: Only include active bank accounts

        Returns:
            Accounts and cards with display labels
        """
        ctx: ToolContext = await get_context()
        if blocked := restricted_response(ctx.scope):
            return blocked

        tenant = ctx.scope.tenant_id
        accounts = await ctx.store.fetch_bank_accounts(tenant, active_only=active_only)
        cards = await ctx.store.fetch_credit_cards(tenant)
        return {
            "accounts": views.account_rows(accounts, cards),
            "total_accounts": len(accounts),
            "total_cards": len(cards),
        }

    @mcp.tool
    @with_auth_retry
    @surface_errors
    async def get_accounts_summary() -> dict:
        """
        Summarize bank balances and credit card utilization.

        Inactive bank accounts are excluded from the balance. Utilization is
        graded Excelente (up to 30%), Moderado (up to 60%) or Alto.
        """
        ctx: ToolContext = await get_context()
        if blocked := restricted_response(ctx.scope):
            return blocked

        tenant = ctx.scope.tenant_id
        balance = aggregator.bank_balance(await ctx.store.fetch_bank_accounts(tenant))
        credit = aggregator.credit_summary(await ctx.store.fetch_credit_cards(tenant))
        return {
            "bank_balance": str(balance),
            "bank_balance_display": views.format_currency(balance),
            "credit": credit.model_dump(mode="json"),
            "utilization": views.format_percent(credit.utilization_pct),
            "utilization_band": views.utilization_band(credit.utilization_pct),
            "recommendation": views.utilization_advice(credit.utilization_pct),
        }

    @mcp.tool
    @with_auth_retry
    @surface_errors
    async def adjust_card_usage(card_id: str, amount: str) -> dict:
        """
        Charge or release credit on a card.

        Args:
            card_id: Credit card ID
            amount: Decimal amount; positive charges, negative releases

        Returns:
            The card with its recomputed available limit
        """
        ctx: ToolContext = await get_context()
        if blocked := restricted_response(ctx.scope):
            return blocked

        card = await ctx.store.adjust_card_usage(ctx.scope.tenant_id, card_id, amount)
        return card.model_dump(mode="json")

    @mcp.tool
    @with_auth_retry
    @surface_errors
    async def check_card_consistency() -> dict:
        """
        Find stored credit cards whose available limit disagrees with limit - used.

        These rows predate the single update path; saving the card again
        rewrites the available limit.
        """
        ctx: ToolContext = await get_context()
        if blocked := restricted_response(ctx.scope):
            return blocked

        rows = await ctx.store.fetch_raw_credit_cards(ctx.scope.tenant_id)
        mismatches = aggregator.card_usage_mismatches(rows)
        return {
            "checked": len(rows),
            "mismatches": [m.model_dump(mode="json") for m in mismatches],
        }
