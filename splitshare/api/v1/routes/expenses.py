from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from splitshare.api.deps import get_current_user_id, get_notifier
from splitshare.db.database import get_db
from splitshare.models.expenses import ExpenseCategory
from splitshare.schemas.expense_schema import (
    CalculatedSplitOut, ExpenseCreate, ExpenseFilters, ExpenseListOut, ExpenseSplitOut,
    ExpenseSummary, ExpenseUpdate, ExpenseWithSplits, SplitCalculationRequest
)
from splitshare.services.expense_service import (
    count_expenses, create_expense, delete_expense, get_expense_for_user, get_expense_splits,
    get_expense_summary, get_group_expenses, get_user_splits, list_expenses, preview_splits,
    settle_expense_split, unsettle_expense_split, update_expense
)
from splitshare.services.notification_service import ExpenseNotifier

router = APIRouter(prefix="/expenses", tags=["expenses"])


def get_expense_filters(
    group_id: Optional[str] = None,
    user_id: Optional[str] = None,
    category: Optional[ExpenseCategory] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    settled: Optional[bool] = None,
    search: Optional[str] = None,
    amount_min: Optional[Decimal] = None,
    amount_max: Optional[Decimal] = None,
    paid_by_user_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0)
) -> ExpenseFilters:
    return ExpenseFilters(
        group_id=group_id,
        user_id=user_id,
        category=category,
        date_from=date_from,
        date_to=date_to,
        settled=settled,
        search=search,
        amount_min=amount_min,
        amount_max=amount_max,
        paid_by_user_id=paid_by_user_id,
        limit=limit,
        offset=offset
    )


@router.post("", response_model=ExpenseWithSplits, status_code=201)
def create_new_expense(
    expense_data: ExpenseCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    notifier: ExpenseNotifier = Depends(get_notifier)
):
    """Create a new expense and compute its splits"""
    return create_expense(db, expense_data, user_id, notifier)


@router.get("", response_model=ExpenseListOut)
def get_expenses_list(
    filters: ExpenseFilters = Depends(get_expense_filters),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """List expenses visible to the caller"""
    return {
        "expenses": list_expenses(db, filters, user_id),
        "total_count": count_expenses(db, filters, user_id)
    }


@router.post("/calculate", response_model=List[CalculatedSplitOut])
def calculate_expense_splits(
    request: SplitCalculationRequest,
    user_id: str = Depends(get_current_user_id)
):
    """Preview split amounts without saving anything"""
    return preview_splits(request)


@router.get("/summary", response_model=ExpenseSummary)
def get_expenses_summary(
    filters: ExpenseFilters = Depends(get_expense_filters),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Totals, category breakdown and monthly trend"""
    return get_expense_summary(db, filters, user_id)


@router.get("/user/splits", response_model=List[ExpenseSplitOut])
def get_my_splits(
    settled: Optional[bool] = None,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Get the caller's splits, optionally filtered by settlement state"""
    return get_user_splits(db, user_id, settled)


@router.get("/groups/{group_id}", response_model=List[ExpenseWithSplits])
def get_group_expenses_list(
    group_id: str,
    filters: ExpenseFilters = Depends(get_expense_filters),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Get all expenses for a group"""
    return get_group_expenses(db, group_id, user_id, filters)


@router.post("/splits/{split_id}/settle")
def settle_expense_split_endpoint(
    split_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    notifier: ExpenseNotifier = Depends(get_notifier)
):
    """Mark an expense split as settled"""
    split = settle_expense_split(db, split_id, user_id, notifier)
    return {"message": "Expense split settled successfully", "split": ExpenseSplitOut.model_validate(split)}


@router.delete("/splits/{split_id}/settle")
def unsettle_expense_split_endpoint(
    split_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    notifier: ExpenseNotifier = Depends(get_notifier)
):
    """Mark an expense split as not settled"""
    split = unsettle_expense_split(db, split_id, user_id, notifier)
    return {"message": "Expense split unsettled successfully", "split": ExpenseSplitOut.model_validate(split)}


@router.get("/{expense_id}", response_model=ExpenseWithSplits)
def get_expense_details(
    expense_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Get expense details with splits"""
    return get_expense_for_user(db, expense_id, user_id)


@router.get("/{expense_id}/splits", response_model=List[ExpenseSplitOut])
def get_expense_splits_list(
    expense_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Get the splits of an expense"""
    return get_expense_splits(db, expense_id, user_id)


@router.patch("/{expense_id}", response_model=ExpenseWithSplits)
def update_existing_expense(
    expense_id: str,
    update_data: ExpenseUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    notifier: ExpenseNotifier = Depends(get_notifier)
):
    """Update an expense (payer, participants or group members)"""
    return update_expense(db, expense_id, update_data, user_id, notifier)


@router.delete("/{expense_id}")
def delete_existing_expense(
    expense_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    notifier: ExpenseNotifier = Depends(get_notifier)
):
    """Delete an expense (payer or group admin only)"""
    delete_expense(db, expense_id, user_id, notifier)
    return {"message": "Expense deleted successfully"}
