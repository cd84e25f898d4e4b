# ABOUTME: Payment status state machine
# ABOUTME: Validates transitions and the funding-account rule for completed payments

from finscope.exceptions import ConsistencyError, ValidationError
from finscope.types import FundingAccountType, Payment, PaymentStatus

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset(
        {
            PaymentStatus.PARTIAL,
            PaymentStatus.COMPLETED,
            PaymentStatus.OVERDUE,
            PaymentStatus.CANCELLED,
        }
    ),
    PaymentStatus.PARTIAL: frozenset(
        {PaymentStatus.COMPLETED, PaymentStatus.OVERDUE, PaymentStatus.CANCELLED}
    ),
    PaymentStatus.OVERDUE: frozenset({PaymentStatus.COMPLETED, PaymentStatus.CANCELLED}),
    PaymentStatus.COMPLETED: frozenset(),
    PaymentStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, nxt in PAYMENT_TRANSITIONS.items() if not nxt)
OPEN_STATUSES = frozenset({PaymentStatus.PENDING, PaymentStatus.PARTIAL})


def can_transition(current: PaymentStatus, target: PaymentStatus) -> bool:
    """Whether a payment may move from `current` to `target`."""
    return target in PAYMENT_TRANSITIONS[PaymentStatus(current)]


def require_funding_account(
    account_id: str | None, account_type: FundingAccountType | str | None
) -> FundingAccountType:
    """
    Check that a completed payment names the account it was paid from.

    Raises:
        ConsistencyError: if the account reference is missing or unknown
    """
    if not account_id or not account_type:
        raise ConsistencyError(
            "Selecione a conta utilizada para o pagamento antes de marcá-lo como pago.",
            title="Conta obrigatória",
        )
    try:
        return FundingAccountType(account_type)
    except ValueError:
        raise ConsistencyError(
            f"Tipo de conta inválido: {account_type}", title="Conta obrigatória"
        ) from None


def check_transition(
    payment: Payment,
    target: PaymentStatus | str,
    account_id: str | None = None,
    account_type: FundingAccountType | str | None = None,
) -> PaymentStatus:
    """
    Validate a status change for a payment.

    The funding account may come from the call or already be set on the payment.

    Returns:
        The target status as a PaymentStatus

    Raises:
        ConsistencyError: for an illegal transition or a completion without account
    """
    target = parse_status(target)
    if not can_transition(payment.status, target):
        raise ConsistencyError(
            f"Pagamento {payment.id} não pode passar de "
            f"'{payment.status.value}' para '{target.value}'.",
            title="Transição inválida",
        )
    if target == PaymentStatus.COMPLETED:
        require_funding_account(
            account_id or payment.account_id, account_type or payment.account_type
        )
    return target


def parse_status(value: PaymentStatus | str) -> PaymentStatus:
    """Read a payment status from user input."""
    try:
        return PaymentStatus(value)
    except ValueError:
        raise ValidationError(f"Status de pagamento inválido: {value}") from None
