# ABOUTME: MCP server entry point for Finscope
# ABOUTME: Configures FastMCP and registers the tenant-scoped finance tools

import logging
import os

from fastmcp import FastMCP

from finscope.client import get_context
from finscope.tools.accounts import register_account_tools
from finscope.tools.missions import register_mission_tools
from finscope.tools.payments import register_payment_tools
from finscope.tools.providers import register_provider_tools
from finscope.tools.reports import register_report_tools

logger = logging.getLogger(__name__)


def create_server(context_factory=get_context) -> FastMCP:
    """
    Create and configure the Finscope MCP server.

    Args:
        context_factory: Async callable returning a ToolContext

    Returns:
        Configured FastMCP server instance
    """
    mcp = FastMCP(
        name="finscope",
        instructions="""
Finscope gives access to a company's back-office finances: bank accounts,
credit cards, transactions, provider payments, missions and expenses. Every
query is limited to the company of the logged-in user. You can:

- Check bank balances and credit card utilization
- See payments that are overdue, urgent (due within a few days) or upcoming
- Mark payments as paid from a bank account or credit card
- Compute what the company owes each service provider
- Adjust a mission's company/provider revenue split
- Review expenses, confirmed revenues and cash flow
- Track revenues still to be received and confirm them into an account
- Project cash flow for the next 7 to 90 days

Rules enforced on every write:
- A payment can only be completed, or settled, with the funding account it was paid from
- A pending revenue is confirmed into one of the company's own accounts
- Completed and cancelled payments are final unless explicitly corrected
- A card's available limit is always its limit minus what is used
- Mission company and provider percentages always total 100

Users without a company get a restricted-access error from every tool.
Errors carry a title, a description and whether retrying may help.
""",
    )

    register_account_tools(mcp, context_factory)
    register_payment_tools(mcp, context_factory)
    register_provider_tools(mcp, context_factory)
    register_mission_tools(mcp, context_factory)
    register_report_tools(mcp, context_factory)

    return mcp


def main() -> None:
    """Run the MCP server."""
    logging.basicConfig(
        level=os.environ.get("FINSCOPE_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    server = create_server()
    server.run()


if __name__ == "__main__":
    main()
