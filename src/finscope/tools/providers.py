# ABOUTME: Service provider tools for Finscope
# ABOUTME: Provider listing, balance statements and server-side balance recalculation

from typing import TYPE_CHECKING

from finscope import aggregator, views
from finscope.client import restricted_response, surface_errors, with_auth_retry
from finscope.types import ServiceProvider

if TYPE_CHECKING:
    from collections.abc import Callable

    from fastmcp import FastMCP

    from finscope.client import ToolContext


def register_provider_tools(mcp: "FastMCP", get_context: "Callable") -> None:
    """Register service provider tools with the MCP server."""

    @mcp.tool
    @with_auth_retry
    @surface_errors
    async def list_providers() -> list[dict] | dict:
        """List the company's service providers with their stored balances."""
        ctx: ToolContext = await get_context()
        if blocked := restricted_response(ctx.scope):
            return blocked

        providers = await ctx.store.fetch_providers(ctx.scope.tenant_id)
        return [
            {
                "id": p.id,
                "name": p.name,
                "service": p.service,
                "active": p.active,
                "current_balance": views.format_currency(p.current_balance),
            }
            for p in providers
        ]

    @mcp.tool
    @with_auth_retry
    @surface_errors
    async def get_provider_statement(provider_id: str) -> dict:
        """
        Compute what the company owes a provider.

        Earnings come from approved missions: the lead provider gets the
        whole provider share, co-assigned providers split it evenly.
        Completed payments are subtracted. The stored balance is reported
        next to the computed one so drift is visible.

        Args:
            provider_id: Service provider ID
        """
        ctx: ToolContext = await get_context()
        if blocked := restricted_response(ctx.scope):
            return blocked

        tenant = ctx.scope.tenant_id
        provider = await ctx.store.get(tenant, ServiceProvider, provider_id)
        missions = await ctx.store.fetch_provider_missions(tenant, provider_id)
        payments = await ctx.store.fetch_payments(tenant, provider_id)
        statement = aggregator.provider_statement(missions, payments, provider_id)
        return {
            **views.provider_balance_card(provider.name, statement),
            "stored_balance": str(provider.current_balance),
            "in_sync": provider.current_balance == statement.balance,
        }

    @mcp.tool
    @with_auth_retry
    @surface_errors
    async def recalculate_provider_balance(provider_id: str) -> dict:
        """
        Recompute and persist a provider's balance on the server.

        Args:
            provider_id: Service provider ID
        """
        ctx: ToolContext = await get_context()
        if blocked := restricted_response(ctx.scope):
            return blocked

        balance = await ctx.store.recalculate_provider_balance(ctx.scope.tenant_id, provider_id)
        return {
            "provider_id": provider_id,
            "balance": str(balance),
            "balance_display": views.format_currency(balance),
        }
