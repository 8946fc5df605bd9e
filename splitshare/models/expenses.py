import enum
import uuid
from sqlalchemy.sql import func
from sqlalchemy import (
    Column, String, DateTime, DECIMAL, Text, Boolean, Integer, Enum, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from splitshare.db.database import Base


class ExpenseCategory(str, enum.Enum):
    food = "food"
    transportation = "transportation"
    accommodation = "accommodation"
    entertainment = "entertainment"
    shopping = "shopping"
    utilities = "utilities"
    healthcare = "healthcare"
    education = "education"
    other = "other"


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    description = Column(String(255), nullable=False)
    amount = Column(DECIMAL(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    date = Column(DateTime(timezone=True), nullable=False, index=True)
    paid_by = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    group_id = Column(String, ForeignKey("groups.id", ondelete="CASCADE"), nullable=True, index=True)  # None for peer expenses
    category = Column(Enum(ExpenseCategory), nullable=False, default=ExpenseCategory.other)
    receipt = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    splits = relationship(
        "ExpenseSplit",
        back_populates="expense",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class ExpenseSplit(Base):
    __tablename__ = "expense_splits"
    __table_args__ = (UniqueConstraint("expense_id", "user_id", name="uq_expense_split_user"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    expense_id = Column(String, ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(DECIMAL(10, 2), nullable=False)
    percentage = Column(DECIMAL(5, 2), nullable=True)  # percentage splits only
    shares = Column(Integer, nullable=True)  # shares splits only
    settled = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    expense = relationship("Expense", back_populates="splits")
