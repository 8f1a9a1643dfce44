from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .models import to_money

TransactionType = Literal["income", "expense"]
MAX_AMOUNT = Decimal("9999999999.99")


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    try:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    except OverflowError as exc:
        raise ValueError("date out of range") from exc


def _coerce_amount(value: Any) -> Any:
    if isinstance(value, bool):
        raise ValueError("amount must be a number")
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, str):
        return value.strip()
    return value


class ApiErrorDetail(BaseModel):
    field: str
    message: str


class ApiErrorPayload(BaseModel):
    code: str
    message: str
    details: list[ApiErrorDetail] = Field(default_factory=list)


class ApiErrorResponse(BaseModel):
    error: ApiErrorPayload


class HealthResponse(BaseModel):
    status: str


class TransactionCreate(BaseModel):
    type: TransactionType
    date: datetime
    category: Optional[str] = Field(default=None, max_length=100)
    categoryId: Optional[int] = Field(default=None, gt=0)
    description: Optional[str] = None
    amount: Decimal = Field(ge=0, le=MAX_AMOUNT, allow_inf_nan=False)
    accountId: Optional[int] = Field(default=None, gt=0)
    userId: Optional[int] = Field(default=None, gt=0)

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, value: Any) -> Any:
        return _coerce_amount(value)

    @field_validator("amount")
    @classmethod
    def normalize_amount(cls, value: Decimal) -> Decimal:
        return to_money(value)

    @field_validator("date")
    @classmethod
    def normalize_date(cls, value: datetime) -> datetime:
        return _naive_utc(value)

    @model_validator(mode="after")
    def require_category(self) -> "TransactionCreate":
        if not self.category and self.categoryId is None:
            raise ValueError("category or categoryId is required")
        return self


class TransactionUpdate(BaseModel):
    """Partial update; only keys present in the request body are applied."""

    type: Optional[TransactionType] = None
    date: Optional[datetime] = None
    category: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    amount: Optional[Decimal] = Field(default=None, ge=0, le=MAX_AMOUNT, allow_inf_nan=False)
    accountId: Optional[int] = Field(default=None, gt=0)
    userId: Optional[int] = Field(default=None, gt=0)
    categoryId: Optional[int] = Field(default=None, gt=0)
    isDeleted: Optional[bool] = None

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, value: Any) -> Any:
        if value is None:
            return value
        return _coerce_amount(value)

    @field_validator("amount")
    @classmethod
    def normalize_amount(cls, value: Optional[Decimal]) -> Optional[Decimal]:
        return to_money(value) if value is not None else None

    @field_validator("date")
    @classmethod
    def normalize_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _naive_utc(value)

    @model_validator(mode="after")
    def reject_null_required(self) -> "TransactionUpdate":
        for name in ("type", "date", "amount", "userId", "isDeleted"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class AccountResponse(BaseModel):
    id: int
    name: str
    type: str
    currency: str
    initialBalance: Decimal


class CategoryResponse(BaseModel):
    id: int
    name: str
    type: str
    color: str


class TagResponse(BaseModel):
    id: int
    name: str


class TransactionResponse(BaseModel):
    id: int
    type: str
    date: datetime
    category: Optional[str] = None
    description: Optional[str] = None
    amount: Decimal
    isDeleted: bool
    userId: int
    accountId: Optional[int] = None
    categoryId: Optional[int] = None
    createdAt: datetime
    updatedAt: datetime
    account: Optional[AccountResponse] = None
    categoryRef: Optional[CategoryResponse] = None
    tags: list[TagResponse] = Field(default_factory=list)


class SummaryCounts(BaseModel):
    income: int
    expense: int


class SummaryResponse(BaseModel):
    totalIncome: float
    totalExpense: float
    balance: float
    usagePercent: float
    counts: SummaryCounts
