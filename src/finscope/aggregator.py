# ABOUTME: Derived financial metrics over tenant-scoped entity collections
# ABOUTME: Pure functions; all money is Decimal, never float

import math
from collections import defaultdict
from collections.abc import Iterable
from datetime import date, timedelta
from decimal import Decimal

from pydantic import BaseModel, Field

from finscope.status import OPEN_STATUSES
from finscope.types import (
    HUNDRED,
    BankAccount,
    ConfirmedRevenue,
    CreditCard,
    Expense,
    ExpenseStatus,
    Mission,
    Payment,
    PaymentStatus,
    PendingRevenue,
    PendingRevenueStatus,
    Transaction,
    TransactionStatus,
    TransactionType,
    to_decimal,
)

ZERO = Decimal("0.00")


def _total(values: Iterable[Decimal]) -> Decimal:
    return sum(values, ZERO)


class CreditSummary(BaseModel):
    total_limit: Decimal = ZERO
    total_used: Decimal = ZERO
    total_available: Decimal = ZERO
    utilization_pct: Decimal = ZERO


class CashFlow(BaseModel):
    income: Decimal = ZERO
    expenses: Decimal = ZERO
    net: Decimal = ZERO


class PaymentTotals(BaseModel):
    pending: Decimal = ZERO
    overdue: Decimal = ZERO
    pending_count: int = 0
    overdue_count: int = 0


class MissionEarning(BaseModel):
    mission_id: str | None
    title: str
    client_name: str
    earned_value: Decimal
    shared_with: int = Field(default=1, description="Providers sharing the provider value")


class ProviderStatement(BaseModel):
    provider_id: str
    earned: Decimal
    paid: Decimal
    balance: Decimal
    missions: list[MissionEarning] = Field(default_factory=list)


class ExpenseSummary(BaseModel):
    total: Decimal = ZERO
    advanced_total: Decimal = ZERO
    pending_reimbursement: Decimal = ZERO
    by_status: dict[str, Decimal] = Field(default_factory=dict)
    by_category: dict[str, Decimal] = Field(default_factory=dict)


class RevenueSummary(BaseModel):
    total: Decimal = ZERO
    company: Decimal = ZERO
    provider: Decimal = ZERO
    count: int = 0


class CashFlowPoint(BaseModel):
    month: str  # YYYY-MM
    income: Decimal = ZERO
    expenses: Decimal = ZERO
    net: Decimal = ZERO


class HealthIndicator(BaseModel):
    metric: str
    value: Decimal
    status: str  # good, warning, danger


class CashHealth(BaseModel):
    liquidity_ratio: Decimal
    cash_days: int
    safety_margin: Decimal
    indicators: list[HealthIndicator]


class PendingRevenueSummary(BaseModel):
    total: Decimal = ZERO
    count: int = 0
    urgent_count: int = Field(default=0, description="Due within the urgency window or overdue")


class CashFlowProjection(BaseModel):
    period: str
    days: int
    expected_income: Decimal
    expected_expenses: Decimal
    scheduled_payments: Decimal
    net: Decimal
    status: str  # positive, negative, warning


class Receivable(BaseModel):
    transaction_id: str | None
    description: str
    amount: Decimal
    expected_date: date
    probability: int = 85


class CardMismatch(BaseModel):
    card_id: str | None
    name: str
    stored_available: Decimal
    expected_available: Decimal


def percentage(part: Decimal, whole: Decimal) -> Decimal:
    """part / whole * 100, or 0 when whole is not positive."""
    if whole <= 0:
        return ZERO
    return to_decimal(part / whole * HUNDRED)


def bank_balance(accounts: Iterable[BankAccount]) -> Decimal:
    """Sum of balances of active accounts; negative balances count."""
    return _total(a.balance for a in accounts if a.is_active)


def credit_summary(cards: Iterable[CreditCard]) -> CreditSummary:
    cards = list(cards)
    total_limit = _total(c.limit for c in cards)
    total_used = _total(c.used_limit for c in cards)
    return CreditSummary(
        total_limit=total_limit,
        total_used=total_used,
        total_available=total_limit - total_used,
        utilization_pct=percentage(total_used, total_limit),
    )


def _in_range(day: date | None, start: date | None, end: date | None) -> bool:
    if day is None:
        return start is None and end is None
    return (start is None or day >= start) and (end is None or day <= end)


def cash_flow(
    transactions: Iterable[Transaction],
    start: date | None = None,
    end: date | None = None,
) -> CashFlow:
    """
    Income and expenses of completed transactions dated within [start, end].

    Transfers move money between the tenant's own accounts and are ignored.
    """
    income = expenses = ZERO
    for txn in transactions:
        if txn.status != TransactionStatus.COMPLETED or not _in_range(txn.date, start, end):
            continue
        if txn.type == TransactionType.INCOME:
            income += txn.amount
        elif txn.type == TransactionType.EXPENSE:
            expenses += txn.amount
    return CashFlow(income=income, expenses=expenses, net=income - expenses)


def pending_payments(payments: Iterable[Payment]) -> PaymentTotals:
    """Open (pending or partial) and overdue payment totals."""
    totals = PaymentTotals()
    for p in payments:
        if p.status in OPEN_STATUSES:
            totals.pending += p.amount
            totals.pending_count += 1
        elif p.status == PaymentStatus.OVERDUE:
            totals.overdue += p.amount
            totals.overdue_count += 1
    return totals


def mission_earned_value(mission: Mission, provider_id: str) -> Decimal:
    """
    What a provider earns from one mission.

    The lead provider receives the whole provider value. Co-assigned
    providers split it evenly, so with three providers the cents that do
    not divide are not paid to anyone.
    """
    if mission.provider_id == provider_id:
        return mission.provider_value
    if provider_id in mission.assigned_providers:
        return to_decimal(mission.provider_value / len(mission.assigned_providers))
    return ZERO


def provider_earnings(missions: Iterable[Mission], provider_id: str) -> list[MissionEarning]:
    """Per-mission earnings from approved missions involving the provider."""
    earnings = []
    for mission in missions:
        if not mission.is_approved or not mission.involves(provider_id):
            continue
        shared = 1 if mission.provider_id == provider_id else len(mission.assigned_providers)
        earnings.append(
            MissionEarning(
                mission_id=mission.id,
                title=mission.title,
                client_name=mission.client_name,
                earned_value=mission_earned_value(mission, provider_id),
                shared_with=shared,
            )
        )
    return earnings


def provider_paid(payments: Iterable[Payment], provider_id: str) -> Decimal:
    return _total(
        p.amount
        for p in payments
        if p.provider_id == provider_id and p.status == PaymentStatus.COMPLETED
    )


def provider_balance(
    missions: Iterable[Mission], payments: Iterable[Payment], provider_id: str
) -> Decimal:
    """Approved mission earnings minus completed payments to the provider."""
    earned = _total(e.earned_value for e in provider_earnings(missions, provider_id))
    return earned - provider_paid(payments, provider_id)


def provider_statement(
    missions: Iterable[Mission], payments: Iterable[Payment], provider_id: str
) -> ProviderStatement:
    earnings = provider_earnings(missions, provider_id)
    earned = _total(e.earned_value for e in earnings)
    paid = provider_paid(payments, provider_id)
    return ProviderStatement(
        provider_id=provider_id,
        earned=earned,
        paid=paid,
        balance=earned - paid,
        missions=earnings,
    )


def expense_summary(expenses: Iterable[Expense]) -> ExpenseSummary:
    """
    Expense totals by status and category.

    `pending_reimbursement` is what employees advanced out of pocket and
    has not been reimbursed yet.
    """
    summary = ExpenseSummary()
    by_status: dict[str, Decimal] = defaultdict(lambda: ZERO)
    by_category: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for e in expenses:
        summary.total += e.amount
        by_status[e.status.value] += e.amount
        by_category[e.category] += e.amount
        if e.is_advanced:
            summary.advanced_total += e.amount
            if e.status != ExpenseStatus.REIMBURSED:
                summary.pending_reimbursement += e.amount
    summary.by_status = dict(by_status)
    summary.by_category = dict(by_category)
    return summary


def revenue_summary(
    revenues: Iterable[ConfirmedRevenue],
    start: date | None = None,
    end: date | None = None,
) -> RevenueSummary:
    summary = RevenueSummary()
    for r in revenues:
        if not _in_range(r.received_date, start, end):
            continue
        summary.total += r.total_amount
        summary.company += r.company_amount
        summary.provider += r.provider_amount
        summary.count += 1
    return summary


def _shift_month(year: int, month: int, back: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) - back
    return index // 12, index % 12 + 1


def monthly_cash_flow(
    transactions: Iterable[Transaction], months: int = 6, today: date | None = None
) -> list[CashFlowPoint]:
    """Completed income/expenses per calendar month, oldest first, ending this month."""
    today = today or date.today()
    keys = [
        "%04d-%02d" % _shift_month(today.year, today.month, back)
        for back in range(months - 1, -1, -1)
    ]
    points = {k: CashFlowPoint(month=k) for k in keys}
    for txn in transactions:
        point = points.get(txn.date.strftime("%Y-%m"))
        if point is None or txn.status != TransactionStatus.COMPLETED:
            continue
        if txn.type == TransactionType.INCOME:
            point.income += txn.amount
        elif txn.type == TransactionType.EXPENSE:
            point.expenses += txn.amount
    for point in points.values():
        point.net = point.income - point.expenses
    return [points[k] for k in keys]


def _grade(value: Decimal, good: Decimal, warning: Decimal) -> str:
    if value >= good:
        return "good"
    if value >= warning:
        return "warning"
    return "danger"


def cash_health(
    balance: Decimal, monthly_income: Decimal, monthly_expenses: Decimal
) -> CashHealth:
    """
    Liquidity indicators for the cash-flow analysis panel.

    liquidity: balance / monthly expenses (good >= 2, warning >= 1)
    cash days: days of expenses covered by the balance (good >= 60, warning >= 30)
    safety margin: (income - expenses) / income % (good >= 15, warning >= 5)
    """
    if monthly_expenses > 0:
        liquidity = to_decimal(balance / monthly_expenses)
        cash_days = max(math.floor(balance / (monthly_expenses / 30)), 0)
    else:
        liquidity = ZERO
        cash_days = 0
    if monthly_income > 0:
        margin = to_decimal((monthly_income - monthly_expenses) / monthly_income * HUNDRED)
    else:
        margin = ZERO

    return CashHealth(
        liquidity_ratio=liquidity,
        cash_days=cash_days,
        safety_margin=margin,
        indicators=[
            HealthIndicator(
                metric="Liquidez Corrente",
                value=liquidity,
                status=_grade(liquidity, Decimal(2), Decimal(1)),
            ),
            HealthIndicator(
                metric="Dias de Caixa",
                value=Decimal(cash_days),
                status=_grade(Decimal(cash_days), Decimal(60), Decimal(30)),
            ),
            HealthIndicator(
                metric="Margem de Segurança",
                value=margin,
                status=_grade(margin, Decimal(15), Decimal(5)),
            ),
        ],
    )


def card_usage_mismatches(rows: Iterable[dict]) -> list[CardMismatch]:
    """Stored card rows whose available limit disagrees with limit - used."""
    mismatches = []
    for row in rows:
        limit = to_decimal(row.get("credit_limit"))
        used = to_decimal(row.get("used_limit"))
        stored = to_decimal(row.get("available_limit"))
        if stored != limit - used:
            mismatches.append(
                CardMismatch(
                    card_id=row.get("id"),
                    name=row.get("name", ""),
                    stored_available=stored,
                    expected_available=limit - used,
                )
            )
    return mismatches


def pending_revenue_summary(
    revenues: Iterable[PendingRevenue], today: date | None = None, urgent_days: int = 7
) -> PendingRevenueSummary:
    """Amount still to be received; overdue items count as urgent."""
    today = today or date.today()
    summary = PendingRevenueSummary()
    for r in revenues:
        if r.status != PendingRevenueStatus.PENDING:
            continue
        summary.total += r.total_amount
        summary.count += 1
        if (r.due_date - today).days <= urgent_days:
            summary.urgent_count += 1
    return summary


# days ahead, label, net above which the outlook is positive, status otherwise
PROJECTION_HORIZONS = (
    (7, "Próximos 7 dias", ZERO, "negative"),
    (30, "Próximos 30 dias", ZERO, "negative"),
    (60, "Próximos 60 dias", ZERO, "warning"),
    (90, "Próximos 90 dias", Decimal("5000"), "warning"),
)


def cash_flow_projections(
    monthly_income: Decimal,
    monthly_expenses: Decimal,
    payments: Iterable[Payment],
    today: date | None = None,
) -> list[CashFlowProjection]:
    """
    Expected cash flow over the next 7, 30, 60 and 90 days.

    Income and expenses are the monthly run rate scaled to the horizon.
    Pending and overdue payments due by the end of a horizon are added to
    its expenses.
    """
    today = today or date.today()
    scheduled = [
        p for p in payments if p.status in (PaymentStatus.PENDING, PaymentStatus.OVERDUE)
    ]
    projections = []
    for days, period, threshold, shortfall in PROJECTION_HORIZONS:
        horizon = today + timedelta(days=days)
        due = _total(p.amount for p in scheduled if p.due_date <= horizon)
        income = to_decimal(monthly_income * days / 30)
        expenses = to_decimal(monthly_expenses * days / 30) + due
        net = income - expenses
        projections.append(
            CashFlowProjection(
                period=period,
                days=days,
                expected_income=income,
                expected_expenses=expenses,
                scheduled_payments=due,
                net=net,
                status="positive" if net > threshold else shortfall,
            )
        )
    return projections


def upcoming_receivables(transactions: Iterable[Transaction]) -> list[Receivable]:
    """Pending income transactions, soonest first."""
    receivables = [
        Receivable(
            transaction_id=t.id,
            description=t.description,
            amount=t.amount,
            expected_date=t.date,
        )
        for t in transactions
        if t.type == TransactionType.INCOME and t.status == TransactionStatus.PENDING
    ]
    return sorted(receivables, key=lambda r: r.expected_date)
