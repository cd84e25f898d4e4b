# ABOUTME: Tests for the financial state and dashboard assembly
# ABOUTME: Parallel section loading, partial failure and retry

from datetime import date
from decimal import Decimal

import pytest

from conftest import TENANT_A
from finscope.dashboard import SECTIONS, FinancialState
from finscope.exceptions import TransientError
from finscope.result import Err, Ok, capture
from finscope.scope import restricted

TODAY = date(2025, 3, 10)


class TestCapture:
    async def test_wraps_value(self):
        async def ok():
            return 1

        result = await capture(ok())
        assert result == Ok(1)
        assert result.ok

    async def test_wraps_finscope_error(self):
        async def fail():
            raise TransientError("down")

        result = await capture(fail())
        assert isinstance(result, Err)
        assert not result.ok
        assert result.error.retryable

    async def test_other_errors_propagate(self):
        async def bug():
            raise KeyError("x")

        with pytest.raises(KeyError):
            await capture(bug())


class TestFinancialState:
    """Test loading and summarizing a tenant's data."""

    async def test_loads_all_sections(self, store, scope_a):
        async with FinancialState(store, scope_a, today=TODAY) as state:
            assert set(state.sections) == set(SECTIONS)
            assert state.errors == {}
            assert len(state.rows("bank_accounts")) == 3

    async def test_summary_cards(self, store, scope_a):
        async with FinancialState(store, scope_a, today=TODAY) as state:
            summary = state.summary()
        cards = {c["key"]: c for c in summary["cards"]}
        assert summary["restricted"] is None
        assert summary["tenant_id"] == TENANT_A
        assert summary["period"] == {"start": "2025-03-01", "end": "2025-03-10"}
        assert Decimal(cards["bank_balance"]["value"]) == Decimal("749.50")
        assert Decimal(cards["credit_available"]["value"]) == Decimal("700.00")
        assert cards["credit_available"]["band"] == "Excelente"
        assert Decimal(cards["pending_revenues"]["value"]) == Decimal("1500.00")
        assert cards["pending_revenues"]["urgent_count"] == 1
        assert summary["health"]["cash_days"] >= 0
        assert summary["calendar"]["counts"]["urgent"] == 1
        assert len(summary["chart"]["labels"]) == 6

    async def test_failed_section_does_not_block_others(self, store, scope_a, backend):
        backend.failing.add("payments")
        state = FinancialState(store, scope_a, today=TODAY)
        await state.load()

        assert set(state.errors) == {"payments"}
        assert state.rows("payments") == []
        summary = state.summary()
        assert summary["errors"]["payments"]["action"] == "Tentar novamente"
        assert len(summary["cards"]) == 8
        cards = {c["key"]: c for c in summary["cards"]}
        for key in ("pending_payments", "overdue_payments"):
            assert cards[key]["unavailable"] is True
            assert cards[key]["value"] is None
            assert cards[key]["display"] is None
            assert cards[key]["error"]["retryable"] is True
        assert Decimal(cards["bank_balance"]["value"]) == Decimal("749.50")
        assert "unavailable" not in cards["bank_balance"]
        assert summary["health"] is not None

    async def test_failed_balance_is_not_shown_as_zero(self, store, scope_a, backend):
        backend.failing.add("bank_accounts")
        async with FinancialState(store, scope_a, today=TODAY) as state:
            summary = state.summary()
        cards = {c["key"]: c for c in summary["cards"]}
        assert cards["bank_balance"]["unavailable"] is True
        assert cards["bank_balance"]["value"] is None
        assert cards["bank_balance"]["error"]["action"] == "Tentar novamente"
        assert summary["health"] is None
        assert Decimal(cards["credit_available"]["value"]) == Decimal("700.00")

    async def test_refresh_retries_failed_section(self, store, scope_a, backend):
        backend.failing.add("payments")
        state = FinancialState(store, scope_a, today=TODAY)
        await state.load()

        backend.failing.clear()
        result = await state.refresh("payments")
        assert result.ok
        assert state.errors == {}
        assert [p.id for p in state.rows("payments")] == ["pay-1"]

    async def test_restricted_scope(self, store, backend):
        async with FinancialState(store, restricted("user-x"), today=TODAY) as state:
            summary = state.summary()
        assert summary["restricted"]["title"] == "Acesso Restrito"
        assert summary["cards"] == []
        assert backend.rest_requests() == []

    async def test_close_drops_data(self, store, scope_a):
        state = FinancialState(store, scope_a, today=TODAY)
        await state.load()
        await state.close()
        assert state.rows("bank_accounts") == []

    async def test_unknown_section(self, store, scope_a):
        state = FinancialState(store, scope_a, today=TODAY)
        with pytest.raises(ValueError):
            await state.refresh("bogus")
