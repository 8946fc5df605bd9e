import logging
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session, selectinload

from splitshare.core.errors import AuthorizationError, NotFoundError, ValidationError
from splitshare.models.expenses import Expense, ExpenseSplit
from splitshare.schemas.expense_schema import (
    ExpenseCreate, ExpenseFilters, ExpenseSummary, ExpenseUpdate, MonthlyAmount,
    ParticipantIn, SplitCalculationRequest
)
from splitshare.services import access_guard
from splitshare.services.access_guard import (
    ExpenseAccessContext, GroupAccessContext, SplitAccessContext
)
from splitshare.services.group_service import (
    get_existing_user_ids, get_group, get_group_member_ids, is_group_admin, is_group_member
)
from splitshare.services.notification_service import ExpenseNotifier
from splitshare.services.split_calculator import CalculatedSplit, SplitType, calculate_splits

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "USD"
NON_NULLABLE_FIELDS = ("description", "amount", "currency", "date", "paid_by", "category")


# Access context gathering

def build_group_context(db: Session, group_id: Optional[str], user_id: str) -> GroupAccessContext:
    """Collect what user_id is to group_id for the creation rule"""
    if group_id is None:
        return GroupAccessContext(user_id=user_id)

    group = get_group(db, group_id)
    if not group:
        raise NotFoundError("Group not found")

    return GroupAccessContext(
        user_id=user_id,
        group_id=group_id,
        is_group_member=is_group_member(db, group_id, user_id),
        is_group_admin=is_group_admin(db, group_id, user_id),
        is_group_creator=group.created_by == user_id
    )


def build_access_context(db: Session, expense: Expense, user_id: str) -> ExpenseAccessContext:
    """Collect what user_id is to an existing expense"""
    group_context = build_group_context(db, expense.group_id, user_id)

    return ExpenseAccessContext(
        user_id=user_id,
        payer_id=expense.paid_by,
        group_id=expense.group_id,
        participant_ids=frozenset(split.user_id for split in expense.splits),
        is_group_member=group_context.is_group_member,
        is_group_admin=group_context.is_group_admin,
        is_group_creator=group_context.is_group_creator
    )


def validate_participants(db: Session, group_id: Optional[str], participant_ids: Sequence[str]) -> None:
    """Every participant must be a known user and, for group expenses, a member"""
    participant_ids = list(participant_ids)
    access_guard.ensure_valid_participants(
        participant_ids,
        get_existing_user_ids(db, participant_ids),
        get_group_member_ids(db, group_id) if group_id else None
    )


def _validate_payer(db: Session, paid_by: str) -> None:
    if not get_existing_user_ids(db, [paid_by]):
        raise ValidationError("Payer must be a valid user")


def _calculate(amount: Decimal, split_type: SplitType, participants: Iterable[ParticipantIn]) -> List[CalculatedSplit]:
    calculated = calculate_splits(amount, split_type, [p.to_spec() for p in participants])
    # Small totals or tiny shares can round a participant down to 0.00
    for split in calculated:
        if split.amount <= 0:
            raise ValidationError(f"Split amount for user {split.user_id} must be positive")
    return calculated


def _add_splits(db: Session, expense: Expense, calculated: Iterable[CalculatedSplit]) -> None:
    for split in calculated:
        db.add(ExpenseSplit(
            expense_id=expense.id,
            user_id=split.user_id,
            amount=split.amount,
            percentage=split.percentage,
            shares=split.shares,
            settled=False
        ))


def _notify(notifier: Optional[ExpenseNotifier], event: str, *args) -> None:
    if notifier is not None:
        getattr(notifier, event)(*args)


# Expense mutations

def create_expense(
    db: Session,
    expense_data: ExpenseCreate,
    created_by: str,
    notifier: Optional[ExpenseNotifier] = None
) -> Expense:
    """Create a new expense together with its splits in one transaction"""
    access_guard.ensure_can_create(build_group_context(db, expense_data.group_id, created_by))

    paid_by = expense_data.paid_by or created_by
    _validate_payer(db, paid_by)
    validate_participants(db, expense_data.group_id, [p.user_id for p in expense_data.participants])

    calculated = _calculate(expense_data.amount, expense_data.split_type, expense_data.participants)

    try:
        expense = Expense(
            description=expense_data.description,
            amount=expense_data.amount,
            currency=expense_data.currency,
            date=expense_data.date,
            paid_by=paid_by,
            group_id=expense_data.group_id,
            category=expense_data.category,
            receipt=expense_data.receipt,
            notes=expense_data.notes
        )
        db.add(expense)
        db.flush()
        _add_splits(db, expense, calculated)
        db.commit()
    except Exception:
        db.rollback()
        raise

    expense = get_expense(db, expense.id)
    logger.info(
        f"Expense {expense.id} created by {created_by}: {expense.amount} {expense.currency} "
        f"split {expense_data.split_type.value} between {len(calculated)} participants"
    )
    _notify(notifier, "expense_created", expense, created_by)
    return expense


def get_expense(db: Session, expense_id: str) -> Optional[Expense]:
    """Get an expense by ID"""
    return db.query(Expense).options(selectinload(Expense.splits)).filter(Expense.id == expense_id).first()


def get_expense_or_404(db: Session, expense_id: str) -> Expense:
    expense = get_expense(db, expense_id)
    if not expense:
        raise NotFoundError("Expense not found")
    return expense


def get_expense_for_user(db: Session, expense_id: str, user_id: str) -> Expense:
    """Get an expense the user is allowed to view"""
    expense = get_expense_or_404(db, expense_id)
    access_guard.ensure_can_view(build_access_context(db, expense, user_id))
    return expense


def update_expense(
    db: Session,
    expense_id: str,
    update_data: ExpenseUpdate,
    user_id: str,
    notifier: Optional[ExpenseNotifier] = None
) -> Expense:
    """
    Update an expense, optionally replacing its splits.

    Changing the amount requires a new split configuration so the splits keep
    reconciling with the total. Moving the expense to another group requires
    the caller and every participant to belong to that group.
    """
    expense = get_expense_or_404(db, expense_id)
    access_guard.ensure_can_update(build_access_context(db, expense, user_id))

    changes = update_data.model_dump(exclude_unset=True, exclude={"split_type", "participants"})
    for field in NON_NULLABLE_FIELDS:
        if field in changes and changes[field] is None:
            del changes[field]
    if "paid_by" in changes:
        _validate_payer(db, changes["paid_by"])

    new_amount = changes.get("amount", expense.amount)
    if new_amount != expense.amount and not update_data.changes_splits:
        raise ValidationError("Split configuration is required when changing the expense amount")

    target_group_id = changes.get("group_id", expense.group_id)
    if target_group_id != expense.group_id:
        access_guard.ensure_can_create(build_group_context(db, target_group_id, user_id))

    calculated = None
    if update_data.changes_splits:
        validate_participants(db, target_group_id, [p.user_id for p in update_data.participants])
        calculated = _calculate(new_amount, update_data.split_type, update_data.participants)
    elif target_group_id != expense.group_id:
        validate_participants(db, target_group_id, [split.user_id for split in expense.splits])

    try:
        for field, value in changes.items():
            setattr(expense, field, value)

        if calculated is not None:
            # Old rows must be gone before the (expense_id, user_id) pairs are reinserted
            expense.splits.clear()
            db.flush()
            _add_splits(db, expense, calculated)

        db.commit()
    except Exception:
        db.rollback()
        raise

    expense = get_expense(db, expense.id)
    logger.info(f"Expense {expense.id} updated by {user_id} (splits replaced: {calculated is not None})")
    _notify(notifier, "expense_updated", expense, user_id)
    return expense


def delete_expense(
    db: Session,
    expense_id: str,
    user_id: str,
    notifier: Optional[ExpenseNotifier] = None
) -> None:
    """Delete an expense (payer or group admin only); splits cascade"""
    expense = get_expense_or_404(db, expense_id)
    access_guard.ensure_can_delete(build_access_context(db, expense, user_id))

    group_id = expense.group_id
    try:
        db.delete(expense)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Expense {expense_id} deleted by {user_id}")
    _notify(notifier, "expense_deleted", expense_id, group_id, user_id)


# Splits

def get_expense_splits(db: Session, expense_id: str, user_id: str) -> List[ExpenseSplit]:
    """Get all splits of an expense the user can view"""
    return list(get_expense_for_user(db, expense_id, user_id).splits)


def get_split_or_404(db: Session, split_id: str) -> ExpenseSplit:
    split = db.query(ExpenseSplit).filter(ExpenseSplit.id == split_id).first()
    if not split:
        raise NotFoundError("Expense split not found")
    return split


def _split_context(split: ExpenseSplit, user_id: str) -> SplitAccessContext:
    return SplitAccessContext(user_id=user_id, split_user_id=split.user_id, payer_id=split.expense.paid_by)


def _set_settled(db: Session, split: ExpenseSplit, settled: bool) -> ExpenseSplit:
    split.settled = settled
    db.commit()
    db.refresh(split)
    return split


def settle_expense_split(
    db: Session,
    split_id: str,
    user_id: str,
    notifier: Optional[ExpenseNotifier] = None
) -> ExpenseSplit:
    """Mark a split as settled (the ower or the payer)"""
    split = get_split_or_404(db, split_id)
    access_guard.ensure_can_settle(_split_context(split, user_id))

    split = _set_settled(db, split, True)
    logger.info(f"Split {split_id} settled by {user_id}")
    _notify(notifier, "split_settled", split, user_id)
    return split


def unsettle_expense_split(
    db: Session,
    split_id: str,
    user_id: str,
    notifier: Optional[ExpenseNotifier] = None
) -> ExpenseSplit:
    """Reopen a settled split (the ower or the payer)"""
    split = get_split_or_404(db, split_id)
    access_guard.ensure_can_unsettle(_split_context(split, user_id))

    split = _set_settled(db, split, False)
    logger.info(f"Split {split_id} unsettled by {user_id}")
    _notify(notifier, "split_unsettled", split, user_id)
    return split


def get_user_splits(db: Session, user_id: str, settled: Optional[bool] = None) -> List[ExpenseSplit]:
    """Get the splits a user owes, newest first"""
    query = db.query(ExpenseSplit).filter(ExpenseSplit.user_id == user_id)
    if settled is not None:
        query = query.filter(ExpenseSplit.settled == settled)
    return query.order_by(ExpenseSplit.created_at.desc()).all()


def preview_splits(request: SplitCalculationRequest) -> List[CalculatedSplit]:
    """Run the calculator without persisting anything"""
    if len({p.user_id for p in request.participants}) != len(request.participants):
        raise ValidationError("Each participant may only appear once per expense")
    return _calculate(request.amount, request.split_type, request.participants)


# Queries

def _ensure_group_access(db: Session, group_id: Optional[str], user_id: str) -> None:
    if group_id and not is_group_member(db, group_id, user_id):
        raise AuthorizationError(access_guard.NOT_GROUP_MEMBER)


def _effective_filters(filters: ExpenseFilters, user_id: str) -> ExpenseFilters:
    # Only inside a group may the caller look at another member's expenses
    if filters.group_id:
        return filters
    return filters.model_copy(update={"user_id": user_id})


def _build_expense_query(db: Session, filters: ExpenseFilters) -> Query:
    query = db.query(Expense)

    if filters.group_id:
        query = query.filter(Expense.group_id == filters.group_id)

    if filters.user_id:
        query = query.filter(or_(
            Expense.paid_by == filters.user_id,
            Expense.splits.any(ExpenseSplit.user_id == filters.user_id)
        ))

    if filters.category:
        query = query.filter(Expense.category == filters.category)

    if filters.date_from:
        query = query.filter(Expense.date >= filters.date_from)
    if filters.date_to:
        query = query.filter(Expense.date <= filters.date_to)

    if filters.settled is not None:
        query = query.filter(Expense.splits.any(ExpenseSplit.settled == filters.settled))

    if filters.search:
        query = query.filter(Expense.description.ilike(f"%{filters.search}%"))

    if filters.amount_min is not None:
        query = query.filter(Expense.amount >= filters.amount_min)
    if filters.amount_max is not None:
        query = query.filter(Expense.amount <= filters.amount_max)

    if filters.paid_by_user_id:
        query = query.filter(Expense.paid_by == filters.paid_by_user_id)

    return query


def list_expenses(db: Session, filters: ExpenseFilters, user_id: str) -> List[Expense]:
    """List expenses visible to the user, newest first"""
    _ensure_group_access(db, filters.group_id, user_id)
    query = _build_expense_query(db, _effective_filters(filters, user_id))
    return query.options(selectinload(Expense.splits)) \
        .order_by(Expense.date.desc()) \
        .offset(filters.offset) \
        .limit(filters.limit) \
        .all()


def count_expenses(db: Session, filters: ExpenseFilters, user_id: str) -> int:
    """Count expenses matching the filters, ignoring pagination"""
    _ensure_group_access(db, filters.group_id, user_id)
    return _build_expense_query(db, _effective_filters(filters, user_id)).count()


def get_group_expenses(db: Session, group_id: str, user_id: str, filters: Optional[ExpenseFilters] = None) -> List[Expense]:
    """Get all expenses for a group (members only)"""
    if not get_group(db, group_id):
        raise NotFoundError("Group not found")
    filters = (filters or ExpenseFilters()).model_copy(update={"group_id": group_id})
    return list_expenses(db, filters, user_id)


def get_expense_summary(db: Session, filters: ExpenseFilters, user_id: str) -> ExpenseSummary:
    """
    Summarise expenses matching the filters.

    Returns the expense count, total amount, per-category totals and a
    month-by-month (YYYY-MM) trend over the last twelve months.
    """
    _ensure_group_access(db, filters.group_id, user_id)
    filters = _effective_filters(filters, user_id)
    base = _build_expense_query(db, filters)

    total_expenses = base.count()
    total_amount = base.with_entities(func.sum(Expense.amount)).scalar() or Decimal("0")

    category_breakdown = {
        category.value: amount or Decimal("0")
        for category, amount in base.with_entities(Expense.category, func.sum(Expense.amount))
        .group_by(Expense.category).all()
    }

    currencies = {row[0] for row in base.with_entities(Expense.currency).distinct().all()}
    if not currencies:
        currency = DEFAULT_CURRENCY
    elif len(currencies) == 1:
        currency = currencies.pop()
    else:
        currency = "MIXED"

    trend_start = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(days=365)
    monthly = OrderedDict()
    rows = base.with_entities(Expense.date, Expense.amount) \
        .filter(Expense.date >= trend_start) \
        .order_by(Expense.date.asc()).all()
    for date, amount in rows:
        month = date.strftime("%Y-%m")
        monthly[month] = monthly.get(month, Decimal("0")) + amount

    return ExpenseSummary(
        total_expenses=total_expenses,
        total_amount=total_amount,
        currency=currency,
        category_breakdown=category_breakdown,
        monthly_trend=[MonthlyAmount(month=month, amount=amount) for month, amount in monthly.items()]
    )
