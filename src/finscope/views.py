# ABOUTME: Presentation-ready view models for dashboards, tables and calendars
# ABOUTME: Label lookups, currency formatting and due-date urgency classification

from collections.abc import Iterable
from datetime import date
from decimal import Decimal

from finscope.aggregator import (
    CashFlow,
    CashFlowPoint,
    CashFlowProjection,
    CreditSummary,
    PaymentTotals,
    PendingRevenueSummary,
    ProviderStatement,
    Receivable,
    percentage,
)
from finscope.exceptions import FinscopeError
from finscope.status import TERMINAL_STATUSES
from finscope.types import (
    BankAccount,
    CreditCard,
    Expense,
    Payment,
    PaymentStatus,
    PendingRevenue,
    Transaction,
    to_decimal,
)

PAYMENT_STATUS_LABELS = {
    "pending": "Pendente",
    "partial": "Parcial",
    "completed": "Concluído",
    "overdue": "Em Atraso",
    "cancelled": "Cancelado",
}

PAYMENT_TYPE_LABELS = {
    "full": "Integral",
    "installment": "Parcelado",
    "advance": "Adiantamento",
    "balance_payment": "Pagamento de Saldo",
    "advance_payment": "Adiantamento de Saldo",
}

TRANSACTION_CATEGORY_LABELS = {
    "service_payment": "Pagamento de Serviços",
    "client_payment": "Recebimento de Cliente",
    "fuel": "Combustível",
    "accommodation": "Hospedagem",
    "meals": "Alimentação",
    "materials": "Materiais",
    "maintenance": "Manutenção",
    "office_expense": "Despesa de Escritório",
    "other": "Outros",
}

TRANSACTION_STATUS_LABELS = {
    "pending": "Pendente",
    "completed": "Concluída",
    "cancelled": "Cancelada",
}

EXPENSE_STATUS_LABELS = {
    "pending": "Pendente",
    "approved": "Aprovado",
    "reimbursed": "Reembolsado",
}

EXPENSE_CATEGORY_LABELS = {
    "fuel": "Combustível",
    "accommodation": "Hospedagem",
    "meals": "Alimentação",
    "transportation": "Transporte",
    "materials": "Materiais",
    "other": "Outros",
}

ACCOUNT_TYPE_LABELS = {
    "checking": "Conta Corrente",
    "savings": "Poupança",
    "investment": "Investimento",
}

REVENUE_STATUS_LABELS = {
    "pending": "Pendente",
    "received": "Recebida",
    "cancelled": "Cancelada",
}


def label(labels: dict[str, str], key: str | None) -> str:
    """Look up a display label, falling back to the raw key."""
    if key is None:
        return ""
    key = getattr(key, "value", key)
    return labels.get(key, key)


def format_currency(amount: Decimal | int | str | None) -> str:
    """Format an amount as Brazilian reais: R$ 1.234,56."""
    value = to_decimal(amount)
    sign = "-" if value < 0 else ""
    grouped = f"{abs(value):,.2f}"
    # swap US separators for pt-BR ones
    grouped = grouped.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{sign}R$ {grouped}"


def format_percent(value: Decimal) -> str:
    return f"{to_decimal(value):.1f}%"


def utilization_band(pct: Decimal) -> str:
    if pct <= 30:
        return "Excelente"
    if pct <= 60:
        return "Moderado"
    return "Alto"


def utilization_advice(pct: Decimal) -> str:
    if pct <= 30:
        return "Excelente controle! Mantenha a utilização abaixo de 30%."
    if pct <= 60:
        return "Utilize com moderação. Tente reduzir para menos de 30%."
    return "Atenção! Alta utilização pode impactar seu score."


def days_until(due: date, today: date) -> int:
    return (due - today).days


def classify_due(
    due: date, today: date, status: PaymentStatus | str, urgent_days: int = 3
) -> str:
    """
    Calendar urgency of a payment.

    Returns:
        "settled" for completed/cancelled payments, otherwise "overdue" when
        flagged or past due, "urgent" when due within `urgent_days`, else
        "upcoming"
    """
    status = PaymentStatus(status)
    if status in TERMINAL_STATUSES:
        return "settled"
    days = days_until(due, today)
    if status == PaymentStatus.OVERDUE or days < 0:
        return "overdue"
    if days <= urgent_days:
        return "urgent"
    return "upcoming"


def urgency_text(days: int) -> str:
    if days < 0:
        return f"{abs(days)} dia(s) em atraso"
    if days == 0:
        return "Vence hoje"
    if days == 1:
        return "Vence amanhã"
    return f"Vence em {days} dias"


def _card(key: str, title: str, amount: Decimal, **extra) -> dict:
    return {
        "key": key,
        "title": title,
        "value": str(amount),
        "display": format_currency(amount),
        **extra,
    }


def dashboard_cards(
    balance: Decimal,
    credit: CreditSummary,
    flow: CashFlow,
    payments: PaymentTotals,
) -> list[dict]:
    """Summary cards shown at the top of the dashboard."""
    return [
        _card(
            "bank_balance",
            "Saldo em Contas",
            balance,
            tone="negative" if balance < 0 else "neutral",
        ),
        _card(
            "credit_available",
            "Limite Disponível",
            credit.total_available,
            utilization=format_percent(credit.utilization_pct),
            band=utilization_band(credit.utilization_pct),
            advice=utilization_advice(credit.utilization_pct),
        ),
        _card("income", "Receitas", flow.income, tone="positive"),
        _card("expenses", "Despesas", flow.expenses, tone="negative"),
        _card(
            "net",
            "Resultado Líquido",
            flow.net,
            tone="negative" if flow.net < 0 else "positive",
        ),
        _card(
            "pending_payments",
            "Pagamentos Pendentes",
            payments.pending,
            count=payments.pending_count,
        ),
        _card(
            "overdue_payments",
            "Pagamentos em Atraso",
            payments.overdue,
            count=payments.overdue_count,
        ),
    ]


def pending_revenue_card(summary: PendingRevenueSummary) -> dict:
    return _card(
        "pending_revenues",
        "Receitas Pendentes",
        summary.total,
        count=summary.count,
        urgent_count=summary.urgent_count,
    )


def unavailable_card(card: dict, error: FinscopeError) -> dict:
    """A card whose data failed to load; the figure is withheld, not zero."""
    return {
        "key": card["key"],
        "title": card["title"],
        "value": None,
        "display": None,
        "unavailable": True,
        "error": error_banner(error),
    }


def payment_rows(
    payments: Iterable[Payment], today: date | None = None, urgent_days: int = 3
) -> list[dict]:
    today = today or date.today()
    rows = []
    for p in payments:
        days = days_until(p.due_date, today)
        rows.append(
            {
                "id": p.id,
                "provider": p.provider_name,
                "description": p.description,
                "amount": str(p.amount),
                "amount_display": format_currency(p.amount),
                "due_date": p.due_date.isoformat(),
                "payment_date": p.payment_date.isoformat() if p.payment_date else None,
                "status": p.status.value,
                "status_label": label(PAYMENT_STATUS_LABELS, p.status),
                "type_label": label(PAYMENT_TYPE_LABELS, p.type),
                "installment": (
                    f"{p.current_installment}/{p.installments}" if p.installments else None
                ),
                "urgency": classify_due(p.due_date, today, p.status, urgent_days),
                "urgency_text": urgency_text(days),
                "editable": p.status not in TERMINAL_STATUSES,
            }
        )
    return rows


def transaction_rows(transactions: Iterable[Transaction]) -> list[dict]:
    rows = []
    for t in transactions:
        signed = -t.amount if t.type.value == "expense" else t.amount
        rows.append(
            {
                "id": t.id,
                "date": t.date.isoformat(),
                "description": t.description,
                "type": t.type.value,
                "category": t.category,
                "category_label": label(TRANSACTION_CATEGORY_LABELS, t.category),
                "status_label": label(TRANSACTION_STATUS_LABELS, t.status),
                "amount": str(t.amount),
                "amount_display": format_currency(signed),
            }
        )
    return rows


def expense_rows(expenses: Iterable[Expense]) -> list[dict]:
    return [
        {
            "id": e.id,
            "date": e.date.isoformat() if e.date else None,
            "employee": e.employee_name,
            "description": e.description,
            "category_label": label(EXPENSE_CATEGORY_LABELS, e.category),
            "status_label": label(EXPENSE_STATUS_LABELS, e.status),
            "amount_display": format_currency(e.amount),
            "is_advanced": e.is_advanced,
        }
        for e in expenses
    ]


def account_rows(accounts: Iterable[BankAccount], cards: Iterable[CreditCard]) -> list[dict]:
    """Bank accounts and credit cards as one listing."""
    rows = [
        {
            "id": a.id,
            "kind": "bank_account",
            "name": a.name,
            "bank": a.bank,
            "type_label": label(ACCOUNT_TYPE_LABELS, a.account_type),
            "balance_display": format_currency(a.balance),
            "is_active": a.is_active,
        }
        for a in accounts
    ]
    for c in cards:
        used_pct = percentage(c.used_limit, c.limit)
        rows.append(
            {
                "id": c.id,
                "kind": "credit_card",
                "name": c.name,
                "bank": c.bank,
                "type_label": "Cartão de Crédito",
                "limit_display": format_currency(c.limit),
                "available_display": format_currency(c.available_limit),
                "utilization": format_percent(used_pct),
                "band": utilization_band(used_pct),
                "is_active": c.is_active,
            }
        )
    return rows


def pending_revenue_rows(
    revenues: Iterable[PendingRevenue], today: date | None = None, urgent_days: int = 7
) -> list[dict]:
    today = today or date.today()
    rows = []
    for r in revenues:
        days = days_until(r.due_date, today)
        rows.append(
            {
                "id": r.id,
                "client": r.client_name,
                "description": r.description,
                "amount": str(r.total_amount),
                "amount_display": format_currency(r.total_amount),
                "company_display": format_currency(r.company_amount),
                "provider_display": format_currency(r.provider_amount),
                "due_date": r.due_date.isoformat(),
                "status": r.status.value,
                "status_label": label(REVENUE_STATUS_LABELS, r.status),
                "urgent": r.status.value == "pending" and days <= urgent_days,
            }
        )
    return rows


def projection_rows(projections: Iterable[CashFlowProjection]) -> list[dict]:
    return [
        {
            "period": p.period,
            "days": p.days,
            "expected_income": format_currency(p.expected_income),
            "expected_expenses": format_currency(p.expected_expenses),
            "net": format_currency(p.net),
            "net_value": str(p.net),
            "status": p.status,
        }
        for p in projections
    ]


def receivable_rows(receivables: Iterable[Receivable]) -> list[dict]:
    return [
        {
            "id": r.transaction_id,
            "client": r.description,
            "amount": format_currency(r.amount),
            "expected_date": r.expected_date.isoformat(),
            "probability": f"{r.probability}%",
        }
        for r in receivables
    ]


def payment_calendar(
    payments: Iterable[Payment], today: date | None = None, urgent_days: int = 3
) -> dict:
    """
    Open payments grouped by urgency, soonest first.

    Settled payments are left out of the calendar.
    """
    today = today or date.today()
    payments = list(payments)
    groups: dict[str, list[dict]] = {"overdue": [], "urgent": [], "upcoming": []}
    totals = {k: Decimal("0.00") for k in groups}
    for row, p in zip(payment_rows(payments, today, urgent_days), payments):
        if row["urgency"] == "settled":
            continue
        groups[row["urgency"]].append(row)
        totals[row["urgency"]] += p.amount
    for rows in groups.values():
        rows.sort(key=lambda r: r["due_date"])
    upcoming_total = sum(totals.values(), Decimal("0.00"))
    return {
        "as_of_date": today.isoformat(),
        "total": str(upcoming_total),
        "total_display": format_currency(upcoming_total),
        "counts": {k: len(v) for k, v in groups.items()},
        "totals": {k: format_currency(v) for k, v in totals.items()},
        **groups,
    }


def cash_flow_chart(points: Iterable[CashFlowPoint]) -> dict:
    """Chart series with one entry per month."""
    points = list(points)
    return {
        "labels": [p.month for p in points],
        "series": {
            "income": [str(p.income) for p in points],
            "expenses": [str(p.expenses) for p in points],
            "net": [str(p.net) for p in points],
        },
    }


def provider_balance_card(name: str, statement: ProviderStatement) -> dict:
    return {
        "provider_id": statement.provider_id,
        "name": name,
        "earned": format_currency(statement.earned),
        "paid": format_currency(statement.paid),
        "balance": format_currency(statement.balance),
        "balance_value": str(statement.balance),
        "owes_provider": statement.balance > 0,
        "missions": [
            {
                "mission_id": m.mission_id,
                "title": m.title,
                "client_name": m.client_name,
                "earned": format_currency(m.earned_value),
                "shared_with": m.shared_with,
            }
            for m in statement.missions
        ],
    }


def error_banner(error: FinscopeError) -> dict:
    """What the UI shows for a failed section, with a retry action when it helps."""
    banner = error.to_dict()
    banner["action"] = "Tentar novamente" if error.retryable else None
    return banner
