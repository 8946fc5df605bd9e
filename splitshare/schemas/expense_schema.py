from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from typing import Optional, List, Dict
from datetime import datetime, timezone
from decimal import Decimal
from splitshare.models.expenses import ExpenseCategory
from splitshare.services.split_calculator import SplitType, ParticipantSpec

MAX_EXPENSE_AMOUNT = Decimal("999999.99")


def _ensure_not_in_future(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return value
    now = datetime.now(timezone.utc) if value.tzinfo else datetime.now()
    if value > now:
        raise ValueError("Date cannot be in the future")
    return value


class ParticipantIn(BaseModel):
    user_id: str
    amount: Optional[Decimal] = Field(None, gt=0, decimal_places=2)
    percentage: Optional[Decimal] = Field(None, gt=0, le=100, decimal_places=2)
    shares: Optional[int] = Field(None, gt=0)

    def to_spec(self) -> ParticipantSpec:
        return ParticipantSpec(
            user_id=self.user_id,
            amount=self.amount,
            percentage=self.percentage,
            shares=self.shares
        )


class ExpenseFields(BaseModel):
    description: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = Field(..., gt=0, le=MAX_EXPENSE_AMOUNT, decimal_places=2)
    currency: str = Field(..., pattern=r"^[A-Z]{3}$")
    date: datetime
    group_id: Optional[str] = None
    category: ExpenseCategory = ExpenseCategory.other
    receipt: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=1000)


class ExpenseBase(ExpenseFields):

    @field_validator("date")
    @classmethod
    def date_not_in_future(cls, value):
        return _ensure_not_in_future(value)


class ExpenseCreate(ExpenseBase):
    paid_by: Optional[str] = None  # defaults to the caller
    split_type: SplitType
    participants: List[ParticipantIn] = Field(..., min_length=1)


class ExpenseUpdate(BaseModel):
    description: Optional[str] = Field(None, min_length=1, max_length=255)
    amount: Optional[Decimal] = Field(None, gt=0, le=MAX_EXPENSE_AMOUNT, decimal_places=2)
    currency: Optional[str] = Field(None, pattern=r"^[A-Z]{3}$")
    date: Optional[datetime] = None
    paid_by: Optional[str] = None
    group_id: Optional[str] = None
    category: Optional[ExpenseCategory] = None
    receipt: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=1000)
    split_type: Optional[SplitType] = None
    participants: Optional[List[ParticipantIn]] = Field(None, min_length=1)

    @field_validator("date")
    @classmethod
    def date_not_in_future(cls, value):
        return _ensure_not_in_future(value)

    @model_validator(mode="after")
    def check_split_configuration(self):
        if (self.split_type is None) != (self.participants is None):
            raise ValueError("split_type and participants must be provided together")
        return self

    @property
    def changes_splits(self) -> bool:
        return self.split_type is not None and self.participants is not None


class SplitCalculationRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, le=MAX_EXPENSE_AMOUNT, decimal_places=2)
    split_type: SplitType
    participants: List[ParticipantIn] = Field(..., min_length=1)


class CalculatedSplitOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    amount: Decimal
    percentage: Optional[Decimal] = None
    shares: Optional[int] = None


class ExpenseSplitOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    expense_id: str
    user_id: str
    amount: Decimal
    percentage: Optional[Decimal] = None
    shares: Optional[int] = None
    settled: bool
    created_at: datetime


class ExpenseOut(ExpenseFields):
    model_config = ConfigDict(from_attributes=True)

    id: str
    paid_by: str
    created_at: datetime
    updated_at: datetime


class ExpenseWithSplits(ExpenseOut):
    splits: List[ExpenseSplitOut] = []


class ExpenseListOut(BaseModel):
    expenses: List[ExpenseWithSplits]
    total_count: int


class ExpenseFilters(BaseModel):
    group_id: Optional[str] = None
    user_id: Optional[str] = None
    category: Optional[ExpenseCategory] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    settled: Optional[bool] = None
    search: Optional[str] = None
    amount_min: Optional[Decimal] = None
    amount_max: Optional[Decimal] = None
    paid_by_user_id: Optional[str] = None
    limit: int = Field(50, ge=1, le=200)
    offset: int = Field(0, ge=0)


class MonthlyAmount(BaseModel):
    month: str
    amount: Decimal


class ExpenseSummary(BaseModel):
    total_expenses: int
    total_amount: Decimal
    currency: str
    category_breakdown: Dict[str, Decimal]
    monthly_trend: List[MonthlyAmount]
