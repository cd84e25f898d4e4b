# ABOUTME: Mission and expense tools for Finscope
# ABOUTME: Mission revenue splits and travel expense summaries

from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from finscope import aggregator, views
from finscope.client import restricted_response, surface_errors, with_auth_retry
from finscope.exceptions import ValidationError

if TYPE_CHECKING:
    from collections.abc import Callable

    from fastmcp import FastMCP

    from finscope.client import ToolContext


def register_mission_tools(mcp: "FastMCP", get_context: "Callable") -> None:
    """Register mission and expense tools with the MCP server."""

    @mcp.tool
    @with_auth_retry
    @surface_errors
    async def list_missions(approved: bool | None = None) -> list[dict] | dict:
        """
        List missions with their company/provider revenue split.

        Args:
            approved: Filter by approval (None for all)
        """
        ctx: ToolContext = await get_context()
        if blocked := restricted_response(ctx.scope):
            return blocked

        missions = await ctx.store.fetch_missions(ctx.scope.tenant_id, approved=approved)
        return [
            {
                "id": m.id,
                "title": m.title,
                "client_name": m.client_name,
                "status": m.status,
                "is_approved": m.is_approved,
                "service_value": views.format_currency(m.service_value),
                "company_share": views.format_currency(m.company_value),
                "company_percentage": str(m.company_percentage),
                "provider_share": views.format_currency(m.provider_value),
                "provider_percentage": str(m.provider_percentage),
                "providers": len(m.assigned_providers) or (1 if m.provider_id else 0),
                "split_consistent": m.split_is_consistent,
            }
            for m in missions
        ]

    @mcp.tool
    @with_auth_retry
    @surface_errors
    async def set_mission_split(mission_id: str, company_percentage: str) -> dict:
        """
        Change how a mission's service value is split.

        The provider gets the remainder so both shares always total 100%.

        Args:
            mission_id: Mission ID
            company_percentage: Company share, 0 to 100
        """
        ctx: ToolContext = await get_context()
        if blocked := restricted_response(ctx.scope):
            return blocked

        try:
            company = Decimal(company_percentage)
        except InvalidOperation:
            raise ValidationError(f"Percentual inválido: {company_percentage}") from None
        mission = await ctx.store.set_mission_split(ctx.scope.tenant_id, mission_id, company)
        return mission.model_dump(mode="json")

    @mcp.tool
    @with_auth_retry
    @surface_errors
    async def get_expense_summary(mission_id: str | None = None) -> dict:
        """
        Summarize expenses by status and category.

        Args:
            mission_id: Only expenses of this mission (default: all)

        Returns:
            Totals, amounts advanced by employees and still unreimbursed, and rows
        """
        ctx: ToolContext = await get_context()
        if blocked := restricted_response(ctx.scope):
            return blocked

        expenses = await ctx.store.fetch_expenses(ctx.scope.tenant_id, mission_id)
        summary = aggregator.expense_summary(expenses)
        return {
            "summary": summary.model_dump(mode="json"),
            "by_category": {
                views.label(views.EXPENSE_CATEGORY_LABELS, k): views.format_currency(v)
                for k, v in summary.by_category.items()
            },
            "expenses": views.expense_rows(expenses),
        }
