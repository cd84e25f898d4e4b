# ABOUTME: Tests for derived financial metrics
# ABOUTME: Balances, credit utilization, cash flow, provider earnings and health indicators

from datetime import date
from decimal import Decimal

from finscope import aggregator
from finscope.types import (
    BankAccount,
    ConfirmedRevenue,
    CreditCard,
    Expense,
    Mission,
    Payment,
    PendingRevenue,
    Transaction,
)


def _txn(type_: str, amount: str, day: str, status: str = "completed") -> Transaction:
    return Transaction(type=type_, amount=Decimal(amount), date=day, status=status)


def _payment(amount: str, status: str, provider_id: str = "prov-1") -> Payment:
    return Payment(
        provider_id=provider_id, amount=Decimal(amount), due_date="2025-03-10", status=status
    )


class TestBankBalance:
    def test_sums_active_accounts_including_negative(self):
        accounts = [
            BankAccount(name="A", balance=Decimal("1000.00")),
            BankAccount(name="B", balance=Decimal("-250.50")),
            BankAccount(name="C", balance=Decimal("500.00"), is_active=False),
        ]
        assert aggregator.bank_balance(accounts) == Decimal("749.50")

    def test_empty(self):
        assert aggregator.bank_balance([]) == Decimal("0.00")


class TestCreditSummary:
    def test_empty_collection_is_all_zero(self):
        summary = aggregator.credit_summary([])
        assert summary.total_limit == Decimal("0.00")
        assert summary.total_used == Decimal("0.00")
        assert summary.total_available == Decimal("0.00")
        assert summary.utilization_pct == Decimal("0.00")

    def test_utilization(self):
        cards = [
            CreditCard(name="A", limit=Decimal("1000"), used_limit=Decimal("300")),
            CreditCard(name="B", limit=Decimal("1000"), used_limit=Decimal("300")),
        ]
        summary = aggregator.credit_summary(cards)
        assert summary.total_limit == Decimal("2000.00")
        assert summary.total_available == Decimal("1400.00")
        assert summary.utilization_pct == Decimal("30.00")

    def test_zero_limit_has_zero_utilization(self):
        cards = [CreditCard(name="A", limit=Decimal("0"))]
        assert aggregator.credit_summary(cards).utilization_pct == Decimal("0.00")


class TestCashFlow:
    """Test income/expense totals over a date window."""

    def test_counts_only_completed_in_range(self):
        txns = [
            _txn("income", "1000", "2025-03-05"),
            _txn("expense", "300", "2025-03-10"),
            _txn("expense", "50", "2025-03-11", status="pending"),
            _txn("income", "999", "2025-02-28"),
            _txn("transfer", "400", "2025-03-12"),
        ]
        flow = aggregator.cash_flow(txns, date(2025, 3, 1), date(2025, 3, 31))
        assert flow.income == Decimal("1000.00")
        assert flow.expenses == Decimal("300.00")
        assert flow.net == Decimal("700.00")

    def test_bounds_are_inclusive(self):
        txns = [_txn("income", "10", "2025-03-01"), _txn("income", "5", "2025-03-31")]
        flow = aggregator.cash_flow(txns, date(2025, 3, 1), date(2025, 3, 31))
        assert flow.income == Decimal("15.00")

    def test_monthly_series_oldest_first(self):
        txns = [
            _txn("income", "100", "2025-03-02"),
            _txn("expense", "40", "2025-01-15"),
            _txn("income", "70", "2024-08-01"),
        ]
        points = aggregator.monthly_cash_flow(txns, months=3, today=date(2025, 3, 20))
        assert [p.month for p in points] == ["2025-01", "2025-02", "2025-03"]
        assert points[0].net == Decimal("-40.00")
        assert points[1].net == Decimal("0.00")
        assert points[2].income == Decimal("100.00")


class TestPendingPayments:
    def test_splits_open_and_overdue(self):
        payments = [
            _payment("100", "pending"),
            _payment("50", "partial"),
            _payment("30", "overdue"),
            _payment("999", "completed"),
            _payment("999", "cancelled"),
        ]
        totals = aggregator.pending_payments(payments)
        assert totals.pending == Decimal("150.00")
        assert totals.pending_count == 2
        assert totals.overdue == Decimal("30.00")
        assert totals.overdue_count == 1


class TestProviderEarnings:
    """Test how providers earn from shared missions."""

    def _shared_mission(self, **extra) -> Mission:
        return Mission(
            id="mis-1",
            title="Recife",
            service_value=Decimal("1000"),
            company_percentage=Decimal("10"),
            provider_percentage=Decimal("90"),
            is_approved=True,
            assigned_providers=["p1", "p2"],
            **extra,
        )

    def test_assigned_providers_split_evenly(self):
        mission = self._shared_mission()
        assert aggregator.mission_earned_value(mission, "p1") == Decimal("450.00")
        assert aggregator.mission_earned_value(mission, "p2") == Decimal("450.00")

    def test_lead_provider_gets_full_value(self):
        mission = self._shared_mission(provider_id="p0")
        assert aggregator.mission_earned_value(mission, "p0") == Decimal("900.00")

    def test_uninvolved_provider_earns_nothing(self):
        assert aggregator.mission_earned_value(self._shared_mission(), "p9") == Decimal("0.00")

    def test_unapproved_missions_are_ignored(self):
        missions = [
            self._shared_mission(),
            Mission(
                title="Rascunho",
                service_value=Decimal("500"),
                provider_percentage=Decimal("100"),
                assigned_providers=["p1"],
            ),
        ]
        earnings = aggregator.provider_earnings(missions, "p1")
        assert len(earnings) == 1
        assert earnings[0].shared_with == 2

    def test_statement_balance(self):
        payments = [
            _payment("200", "completed", provider_id="p1"),
            _payment("100", "pending", provider_id="p1"),
            _payment("50", "completed", provider_id="p2"),
        ]
        statement = aggregator.provider_statement([self._shared_mission()], payments, "p1")
        assert statement.earned == Decimal("450.00")
        assert statement.paid == Decimal("200.00")
        assert statement.balance == Decimal("250.00")
        assert aggregator.provider_balance(
            [self._shared_mission()], payments, "p1"
        ) == Decimal("250.00")


class TestExpenseSummary:
    def test_totals(self):
        expenses = [
            Expense(amount=Decimal("100"), category="fuel", is_advanced=True),
            Expense(
                amount=Decimal("40"), category="meals", is_advanced=True, status="reimbursed"
            ),
            Expense(amount=Decimal("10"), category="fuel", status="approved"),
        ]
        summary = aggregator.expense_summary(expenses)
        assert summary.total == Decimal("150.00")
        assert summary.advanced_total == Decimal("140.00")
        assert summary.pending_reimbursement == Decimal("100.00")
        assert summary.by_category["fuel"] == Decimal("110.00")
        assert summary.by_status["reimbursed"] == Decimal("40.00")


class TestRevenueSummary:
    def test_totals_in_range(self):
        revenues = [
            ConfirmedRevenue(
                total_amount=Decimal("1000"),
                company_amount=Decimal("100"),
                provider_amount=Decimal("900"),
                received_date="2025-03-04",
            ),
            ConfirmedRevenue(total_amount=Decimal("500"), received_date="2025-01-04"),
        ]
        summary = aggregator.revenue_summary(revenues, date(2025, 3, 1), date(2025, 3, 31))
        assert summary.count == 1
        assert summary.total == Decimal("1000.00")
        assert summary.provider == Decimal("900.00")


class TestCashHealth:
    def test_healthy(self):
        health = aggregator.cash_health(Decimal("30000"), Decimal("12000"), Decimal("6000"))
        assert health.liquidity_ratio == Decimal("5.00")
        assert health.cash_days == 150
        assert health.safety_margin == Decimal("50.00")
        assert [i.status for i in health.indicators] == ["good", "good", "good"]

    def test_danger(self):
        health = aggregator.cash_health(Decimal("1000"), Decimal("3000"), Decimal("3000"))
        assert health.cash_days == 10
        assert health.safety_margin == Decimal("0.00")
        assert [i.status for i in health.indicators] == ["danger", "danger", "danger"]

    def test_no_activity(self):
        health = aggregator.cash_health(Decimal("100"), Decimal("0"), Decimal("0"))
        assert health.liquidity_ratio == Decimal("0.00")
        assert health.cash_days == 0


class TestCardUsageMismatches:
    def test_reports_drifted_rows(self):
        rows = [
            {"id": "cc-1", "name": "Visa", "credit_limit": 1000, "used_limit": 300,
             "available_limit": 650},
            {"id": "cc-2", "name": "Elo", "credit_limit": 500, "used_limit": 0,
             "available_limit": 500},
        ]
        mismatches = aggregator.card_usage_mismatches(rows)
        assert len(mismatches) == 1
        assert mismatches[0].card_id == "cc-1"
        assert mismatches[0].expected_available == Decimal("700.00")


class TestPendingRevenueSummary:
    def _revenue(self, amount: str, due: str, status: str = "pending") -> PendingRevenue:
        return PendingRevenue(total_amount=Decimal(amount), due_date=due, status=status)

    def test_counts_pending_and_urgent(self):
        revenues = [
            self._revenue("1000", "2025-03-14"),
            self._revenue("200", "2025-03-17"),
            self._revenue("300", "2025-03-18"),
            self._revenue("50", "2025-03-01"),
            self._revenue("999", "2025-03-11", status="received"),
            self._revenue("999", "2025-03-11", status="cancelled"),
        ]
        summary = aggregator.pending_revenue_summary(revenues, today=date(2025, 3, 10))
        assert summary.total == Decimal("1550.00")
        assert summary.count == 4
        assert summary.urgent_count == 3

    def test_empty(self):
        summary = aggregator.pending_revenue_summary([], today=date(2025, 3, 10))
        assert summary.total == Decimal("0.00")
        assert summary.count == 0


class TestCashFlowProjections:
    """Run rate scaled per horizon plus scheduled open payments."""

    TODAY = date(2025, 3, 10)

    def _payment(self, amount: str, due: str, status: str = "pending") -> Payment:
        return Payment(amount=Decimal(amount), due_date=due, status=status)

    def test_horizons_include_payments_due_within_them(self):
        payments = [
            self._payment("450", "2025-03-12"),
            self._payment("200", "2025-03-01", status="overdue"),
            self._payment("1000", "2025-04-20"),
            self._payment("5000", "2025-06-01"),
            self._payment("999", "2025-03-11", status="completed"),
        ]
        projections = aggregator.cash_flow_projections(
            Decimal("3000"), Decimal("1500"), payments, today=self.TODAY
        )
        by_days = {p.days: p for p in projections}

        assert [p.days for p in projections] == [7, 30, 60, 90]
        assert by_days[7].expected_income == Decimal("700.00")
        assert by_days[7].expected_expenses == Decimal("1000.00")
        assert by_days[7].scheduled_payments == Decimal("650.00")
        assert by_days[7].status == "negative"
        assert by_days[30].net == Decimal("850.00")
        assert by_days[30].status == "positive"
        assert by_days[60].expected_expenses == Decimal("4650.00")
        assert by_days[60].status == "positive"
        assert by_days[90].net == Decimal("-2150.00")
        assert by_days[90].status == "warning"

    def test_long_horizon_needs_a_cushion_to_be_positive(self):
        projections = aggregator.cash_flow_projections(
            Decimal("3000"), Decimal("1500"), [], today=self.TODAY
        )
        by_days = {p.days: p for p in projections}
        assert by_days[60].net == Decimal("3000.00")
        assert by_days[60].status == "positive"
        assert by_days[90].net == Decimal("4500.00")
        assert by_days[90].status == "warning"

    def test_short_shortfall_is_negative_long_is_warning(self):
        projections = aggregator.cash_flow_projections(
            Decimal("0"), Decimal("300"), [], today=self.TODAY
        )
        assert [p.status for p in projections] == ["negative", "negative", "warning", "warning"]


class TestUpcomingReceivables:
    def test_pending_income_soonest_first(self):
        transactions = [
            _txn("income", "800", "2025-03-20", status="pending"),
            _txn("income", "300", "2025-03-15", status="pending"),
            _txn("income", "999", "2025-03-12"),
            _txn("expense", "50", "2025-03-11", status="pending"),
        ]
        receivables = aggregator.upcoming_receivables(transactions)
        assert [r.amount for r in receivables] == [Decimal("300.00"), Decimal("800.00")]
        assert receivables[0].probability == 85
