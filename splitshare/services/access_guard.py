"""
Expense access rules.

Pure predicates deciding which user may create, view, update or delete an
expense and settle or unsettle one of its splits. The guard never touches the
database: the caller gathers the relationship facts (payer, participant,
group member, group admin, group creator) into a context object first.

Each rule comes as a boolean predicate (can_*) and an enforcing variant
(ensure_*) that raises AuthorizationError with the client-facing message.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional

from splitshare.core.errors import AuthorizationError, ValidationError

NOT_GROUP_MEMBER = "Access denied: You are not a member of this group"
CANNOT_VIEW = "Access denied: You do not have permission to view this expense"
CANNOT_UPDATE = "Access denied: You do not have permission to update this expense"
CANNOT_DELETE = "Access denied: Only the payer or group admin can delete this expense"
CANNOT_SETTLE = "Access denied: You can only settle your own splits or splits owed to you"
CANNOT_UNSETTLE = "Access denied: You can only unsettle your own splits or splits owed to you"
INVALID_PARTICIPANTS = "One or more participants are invalid users"


@dataclass(frozen=True)
class GroupAccessContext:
    """What the acting user is to an expense's group"""
    user_id: str
    group_id: Optional[str] = None
    is_group_member: bool = False
    is_group_admin: bool = False
    is_group_creator: bool = False


@dataclass(frozen=True)
class ExpenseAccessContext:
    """What the acting user is to an existing expense"""
    user_id: str
    payer_id: str
    group_id: Optional[str] = None
    participant_ids: FrozenSet[str] = field(default_factory=frozenset)
    is_group_member: bool = False
    is_group_admin: bool = False
    is_group_creator: bool = False

    @property
    def is_payer(self) -> bool:
        return self.user_id == self.payer_id

    @property
    def is_participant(self) -> bool:
        return self.user_id in self.participant_ids


@dataclass(frozen=True)
class SplitAccessContext:
    user_id: str
    split_user_id: str
    payer_id: str


def can_create(context: GroupAccessContext) -> bool:
    if context.group_id is None:
        return True
    return context.is_group_creator or context.is_group_member


def can_view(context: ExpenseAccessContext) -> bool:
    if context.is_payer or context.is_participant:
        return True
    if context.group_id is None:
        return False
    return context.is_group_creator or context.is_group_member


def can_update(context: ExpenseAccessContext) -> bool:
    return can_view(context)


def can_delete(context: ExpenseAccessContext) -> bool:
    """Only the payer or a group admin; the group creator counts as admin"""
    if context.is_payer:
        return True
    if context.group_id is None:
        return False
    return context.is_group_admin or context.is_group_creator


def can_settle(context: SplitAccessContext) -> bool:
    """The ower (split user) or the one owed (expense payer)"""
    return context.user_id in (context.split_user_id, context.payer_id)


def can_unsettle(context: SplitAccessContext) -> bool:
    return can_settle(context)


def _ensure(allowed: bool, message: str) -> None:
    if not allowed:
        raise AuthorizationError(message)


def ensure_can_create(context: GroupAccessContext) -> None:
    _ensure(can_create(context), NOT_GROUP_MEMBER)


def ensure_can_view(context: ExpenseAccessContext) -> None:
    _ensure(can_view(context), CANNOT_VIEW)


def ensure_can_update(context: ExpenseAccessContext) -> None:
    _ensure(can_update(context), CANNOT_UPDATE)


def ensure_can_delete(context: ExpenseAccessContext) -> None:
    _ensure(can_delete(context), CANNOT_DELETE)


def ensure_can_settle(context: SplitAccessContext) -> None:
    _ensure(can_settle(context), CANNOT_SETTLE)


def ensure_can_unsettle(context: SplitAccessContext) -> None:
    _ensure(can_unsettle(context), CANNOT_UNSETTLE)


def ensure_valid_participants(
    participant_ids: Iterable[str],
    known_user_ids: Iterable[str],
    group_member_ids: Optional[Iterable[str]] = None,
) -> None:
    """
    Check every participant is a known user and, for group expenses, a member
    of that group.

    Args:
        participant_ids: Users the expense is split between
        known_user_ids: Subset of participant_ids that exist as users
        group_member_ids: Members of the owning group (creator included), None
            for expenses outside any group

    Raises:
        ValidationError: Empty participant list, a duplicate participant, an
            unknown user or a participant outside the owning group
    """
    participant_ids = list(participant_ids)
    if not participant_ids:
        raise ValidationError("At least one participant is required")

    if len(set(participant_ids)) != len(participant_ids):
        raise ValidationError("Each participant may only appear once per expense")

    if not set(participant_ids) <= set(known_user_ids):
        raise ValidationError(INVALID_PARTICIPANTS)

    if group_member_ids is not None:
        members = set(group_member_ids)
        for participant_id in participant_ids:
            if participant_id not in members:
                raise ValidationError(f"User {participant_id} is not a member of the group")
