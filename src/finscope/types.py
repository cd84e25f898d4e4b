# ABOUTME: Pydantic models for Finscope entities and tool I/O
# ABOUTME: Defines accounts, cards, transactions, payments, expenses, missions and scope

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, TypeVar

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError as PydanticValidationError,
    computed_field,
    model_validator,
)

from finscope.exceptions import ValidationError

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value: Any) -> Decimal:
    """
    Convert a backend number (int, float, str or None) to Decimal cents.

    Raises:
        ValueError: for non-numeric, infinite or NaN values and amounts too
            large to hold in cents
    """
    if value is None or value == "":
        return Decimal("0.00")
    try:
        # str() first so floats keep their shortest repr instead of binary noise
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
        if not amount.is_finite():
            raise ValueError(f"Not a monetary amount: {value!r}")
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as e:
        raise ValueError(f"Not a monetary amount: {value!r}") from e


_TIMESTAMP = TypeAdapter(datetime)


def to_date(value: Any) -> Any:
    """Accept plain dates and ISO timestamps for date fields."""
    if isinstance(value, str) and len(value) > 10:
        return _TIMESTAMP.validate_python(value).date()
    return value


Money = Annotated[Decimal, BeforeValidator(to_decimal)]
Day = Annotated[date, BeforeValidator(to_date)]


class Record(BaseModel):
    """Base for tenant-owned rows; `company_id` is exposed as `tenant_id`."""

    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    tenant_id: str | None = Field(default=None, alias="company_id")

    def to_row(self) -> dict:
        """Serialize to the backend column layout."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class AccessLevel(str, Enum):
    NONE = "none"
    MEMBER = "member"
    OWNER = "owner"


class Scope(BaseModel):
    """The resolved tenant of the current user."""

    user_id: str
    tenant_id: str | None = None
    access_level: AccessLevel = AccessLevel.NONE

    @property
    def is_resolved(self) -> bool:
        return bool(self.tenant_id) and self.access_level != AccessLevel.NONE


class Tenant(BaseModel):
    """A company; the isolation boundary for all financial data."""

    id: str
    name: str
    owner_id: str | None = None


class Profile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    tenant_id: str | None = Field(default=None, alias="company_id")
    name: str = ""
    email: str | None = None
    role: str = "user"
    active: bool = True


class AccountType(str, Enum):
    CHECKING = "checking"
    SAVINGS = "savings"
    INVESTMENT = "investment"


class FundingAccountType(str, Enum):
    BANK_ACCOUNT = "bank_account"
    CREDIT_CARD = "credit_card"


class BankAccount(Record):
    name: str
    bank: str = ""
    account_type: AccountType = AccountType.CHECKING
    balance: Money = Decimal("0.00")
    is_active: bool = True


class CreditCard(Record):
    """
    A company credit card.

    The available limit is always projected from the limit and the used
    amount; whatever the backend stored in `available_limit` is ignored.
    """

    name: str
    bank: str = ""
    brand: str = "other"
    limit: Money = Field(default=Decimal("0.00"), alias="credit_limit", ge=0)
    used_limit: Money = Field(default=Decimal("0.00"), ge=0)
    is_active: bool = True

    @computed_field  # type: ignore[prop-decorator]
    @property
    def available_limit(self) -> Decimal:
        return self.limit - self.used_limit


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Transaction(Record):
    type: TransactionType
    category: str = "other"
    amount: Money = Field(ge=0)
    date: Day
    status: TransactionStatus = TransactionStatus.PENDING
    description: str = ""
    account_id: str | None = None
    account_type: FundingAccountType | None = None
    mission_id: str | None = None


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETED = "completed"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PaymentType(str, Enum):
    FULL = "full"
    INSTALLMENT = "installment"
    ADVANCE = "advance"
    BALANCE_PAYMENT = "balance_payment"
    ADVANCE_PAYMENT = "advance_payment"


class Payment(Record):
    provider_id: str | None = None
    provider_name: str = ""
    amount: Money = Field(ge=0)
    due_date: Day
    payment_date: Day | None = None
    status: PaymentStatus = PaymentStatus.PENDING
    type: PaymentType = PaymentType.FULL
    description: str = ""
    installments: int | None = Field(default=None, ge=1)
    current_installment: int | None = Field(default=None, ge=1)
    account_id: str | None = None
    account_type: FundingAccountType | None = None

    @model_validator(mode="after")
    def _check_installments(self) -> "Payment":
        if (
            self.installments is not None
            and self.current_installment is not None
            and self.current_installment > self.installments
        ):
            raise ValueError("current_installment cannot exceed installments")
        return self


class ExpenseStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REIMBURSED = "reimbursed"


class AccommodationDetails(BaseModel):
    actual_cost: Money = Decimal("0.00")
    invoice_amount: Money = Decimal("0.00")
    net_amount: Money = Decimal("0.00")


class TravelDetails(BaseModel):
    kilometers: Decimal = Decimal("0")
    rate_per_km: Money = Decimal("0.00")
    total_revenue: Money = Decimal("0.00")


class Expense(Record):
    mission_id: str | None = None
    employee_id: str | None = None
    employee_name: str = ""
    category: str = "other"
    description: str = ""
    amount: Money = Field(ge=0)
    date: Day | None = None
    is_advanced: bool = False
    status: ExpenseStatus = ExpenseStatus.PENDING
    accommodation_details: AccommodationDetails | None = None
    travel_details: TravelDetails | None = None

    @model_validator(mode="before")
    @classmethod
    def _fold_travel_columns(cls, data: Any) -> Any:
        # The backend stores travel figures as flat columns
        if isinstance(data, dict) and "travel_details" not in data:
            km = data.get("travel_km")
            if km is not None:
                data = dict(data)
                data["travel_details"] = {
                    "kilometers": km,
                    "rate_per_km": data.get("travel_km_rate"),
                    "total_revenue": data.get("travel_total_value"),
                }
        return data

    def to_row(self) -> dict:
        row = self.model_dump(
            by_alias=True, mode="json", exclude_none=True, exclude={"travel_details"}
        )
        if self.travel_details:
            row["travel_km"] = str(self.travel_details.kilometers)
            row["travel_km_rate"] = str(self.travel_details.rate_per_km)
            row["travel_total_value"] = str(self.travel_details.total_revenue)
        return row


class Mission(Record):
    """
    A unit of billable work with a company/provider revenue split.

    Missing percentages are completed from the other side of the split;
    when both are absent the whole service value stays with the company.
    Stored rows whose split does not total 100 still load, flagged by
    `split_is_consistent`; the store refuses to write them.
    """

    title: str
    client_name: str = ""
    status: str = "planning"
    service_value: Money = Field(default=Decimal("0.00"), ge=0)
    company_percentage: Decimal = Field(default=HUNDRED, ge=0, le=100)
    provider_percentage: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    is_approved: bool = False
    provider_id: str | None = None
    assigned_providers: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _complete_split(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        company = data.get("company_percentage")
        provider = data.get("provider_percentage")
        try:
            if company is None and provider is None:
                company, provider = HUNDRED, Decimal("0")
            elif company is None:
                company = HUNDRED - Decimal(str(provider))
            elif provider is None:
                provider = HUNDRED - Decimal(str(company))
        except InvalidOperation as e:
            raise ValueError(f"Invalid percentage: {company!r} / {provider!r}") from e
        data["company_percentage"] = company
        data["provider_percentage"] = provider
        if data.get("assigned_providers") is None:
            data["assigned_providers"] = []
        return data

    @property
    def split_is_consistent(self) -> bool:
        return self.company_percentage + self.provider_percentage == HUNDRED

    @computed_field  # type: ignore[prop-decorator]
    @property
    def provider_value(self) -> Decimal:
        return to_decimal(self.service_value * self.provider_percentage / HUNDRED)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def company_value(self) -> Decimal:
        return self.service_value - self.provider_value

    def involves(self, provider_id: str) -> bool:
        return self.provider_id == provider_id or provider_id in self.assigned_providers


class ServiceProvider(Record):
    name: str
    email: str | None = None
    phone: str | None = None
    service: str = ""
    current_balance: Money = Decimal("0.00")
    active: bool = True


class ConfirmedRevenue(Record):
    mission_id: str | None = None
    client_name: str = ""
    total_amount: Money = Decimal("0.00")
    company_amount: Money = Decimal("0.00")
    provider_amount: Money = Decimal("0.00")
    received_date: Day
    account_id: str | None = None
    account_type: FundingAccountType | None = None


class PendingRevenueStatus(str, Enum):
    PENDING = "pending"
    RECEIVED = "received"
    CANCELLED = "cancelled"


class PendingRevenue(Record):
    """Money a client still owes for a mission; becomes a ConfirmedRevenue when received."""

    mission_id: str | None = None
    client_name: str = ""
    description: str = ""
    total_amount: Money = Field(default=Decimal("0.00"), ge=0)
    company_amount: Money = Decimal("0.00")
    provider_amount: Money = Decimal("0.00")
    due_date: Day
    status: PendingRevenueStatus = PendingRevenueStatus.PENDING
    received_at: datetime | None = None
    account_id: str | None = None
    account_type: FundingAccountType | None = None


M = TypeVar("M", bound=BaseModel)


def build(model: type[M], data: Any) -> M:
    """
    Validate data into a model, reporting failures as Finscope errors.

    Raises:
        ValidationError: with the first offending field in the description
    """
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(p) for p in first.get("loc", ())) or model.__name__
        raise ValidationError(f"{model.__name__}.{where}: {first.get('msg')}") from e
