from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_serializer, field_validator
from enum import Enum
from typing import Annotated, Dict, Literal, Optional, Union
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_DOWN


# Amounts are fixed-point with four decimal places.
AMOUNT_QUANTUM = Decimal("0.0001")

MAX_CLIENT_ID = 2**16 - 1
MAX_TX_ID = 2**32 - 1

# Largest single amount, and the exclusive bound on the magnitude of any
# balance. With four fractional digits a balance below BALANCE_LIMIT fits the
# default 28-digit decimal context exactly.
MAX_AMOUNT = Decimal("1000000000000000")
BALANCE_LIMIT = Decimal("1000000000000000000000000")


def format_amount(amount: Decimal) -> str:
    """Render an amount as decimal text with at least one fractional digit."""
    text = format(amount.quantize(AMOUNT_QUANTUM).normalize(), "f")
    if "." not in text:
        text += ".0"
    return text


class OperationType(str, Enum):
    deposit = "deposit"
    withdrawal = "withdrawal"
    dispute = "dispute"
    resolve = "resolve"
    chargeback = "chargeback"


class OperationBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    client: int = Field(..., ge=0, le=MAX_CLIENT_ID, description="Target account identifier")
    tx: int = Field(..., ge=0, le=MAX_TX_ID, description="Transaction identifier")


class AmountOperation(OperationBase):
    amount: Decimal = Field(..., ge=0, le=MAX_AMOUNT, description="Non-negative amount moved by this operation")

    @field_validator("amount")
    @classmethod
    def quantize_amount(cls, v):
        try:
            return v.quantize(AMOUNT_QUANTUM, rounding=ROUND_DOWN)
        except InvalidOperation:
            raise ValueError("Amount is out of range")


class ReferenceOperation(OperationBase):
    """An operation that points at a previously recorded deposit or withdrawal."""

    @property
    def amount(self) -> Optional[Decimal]:
        # Reference kinds carry no amount of their own; any supplied value is ignored.
        return None


class Deposit(AmountOperation):
    type: Literal["deposit"] = "deposit"


class Withdrawal(AmountOperation):
    type: Literal["withdrawal"] = "withdrawal"


class Dispute(ReferenceOperation):
    type: Literal["dispute"] = "dispute"


class Resolve(ReferenceOperation):
    type: Literal["resolve"] = "resolve"


class Chargeback(ReferenceOperation):
    type: Literal["chargeback"] = "chargeback"


OperationUnion = Union[Deposit, Withdrawal, Dispute, Resolve, Chargeback]
Operation = Annotated[OperationUnion, Field(discriminator="type")]

operation_adapter = TypeAdapter(Operation)


class RecordedOperation(BaseModel):
    """History entry for a deposit or withdrawal that can later be disputed."""

    amount: Decimal = Field(..., frozen=True)
    disputed: bool = False


class Account(BaseModel):
    client: int
    available: Decimal = Decimal("0")
    held: Decimal = Decimal("0")
    locked: bool = False
    history: Dict[int, RecordedOperation] = Field(default_factory=dict)

    @property
    def total(self) -> Decimal:
        return self.available + self.held


class AccountSnapshot(BaseModel):
    client: int = Field(..., description="Account identifier")
    available: Decimal = Field(..., description="Funds usable for withdrawal")
    held: Decimal = Field(..., description="Funds frozen pending dispute resolution")
    total: Decimal = Field(..., description="available + held")
    locked: bool = Field(..., description="Whether a chargeback froze the account")

    @field_serializer("available", "held", "total")
    def serialize_amount(self, v: Decimal) -> str:
        return format_amount(v)

    @classmethod
    def from_account(cls, account: Account) -> "AccountSnapshot":
        return cls(
            client=account.client,
            available=account.available,
            held=account.held,
            total=account.total,
            locked=account.locked,
        )


class ReplaySummary(BaseModel):
    applied: int = Field(0, description="Operations applied successfully")
    rejected: int = Field(0, description="Operations rejected by a business rule")
    rejections: Dict[str, int] = Field(default_factory=dict, description="Rejection counts per error code")


class OperationResponse(BaseModel):
    status: Literal["applied"] = Field(..., description="Operation status")
    type: OperationType = Field(..., description="Operation kind")
    tx: int = Field(..., description="Transaction identifier")
    account: AccountSnapshot = Field(..., description="Account state after the operation")
    timestamp: datetime = Field(default_factory=datetime.now, description="Processing timestamp")


class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Error description")
    error_code: str = Field(..., description="Machine-readable error code")
    timestamp: datetime = Field(default_factory=datetime.now, description="Error timestamp")


class HealthResponse(BaseModel):
    status: str = Field(..., description="Service health status")
    timestamp: datetime = Field(default_factory=datetime.now)
    accounts_count: int = Field(..., description="Number of accounts in the ledger")
    locked_accounts_count: int = Field(..., description="Number of accounts frozen by a chargeback")
