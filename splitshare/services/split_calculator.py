"""
Split Calculator Module

Converts an expense total, a split type and a list of participant
specifications into concrete per-participant amounts.

Supported split types:
1. equal      - total / participant count, rounded to the cent
2. exact      - caller supplied amounts, must add up to the total
3. percentage - total * percentage / 100, percentages must add up to 100
4. shares     - total * shares / total shares

All arithmetic is done with Decimal. Amounts are rounded to the nearest cent
with ROUND_HALF_UP. Equal splits are rounded per participant and the rounding
remainder is NOT redistributed, so the rounded shares may differ from the
total by up to (n - 1) cents.

Every function here is pure: no I/O, no shared state, and the output order
matches the input participant order.

Example Usage:
    from splitshare.services.split_calculator import (
        ParticipantSpec, SplitType, calculate_splits
    )

    splits = calculate_splits(
        Decimal("600"),
        SplitType.shares,
        [ParticipantSpec("u1", shares=3), ParticipantSpec("u2", shares=2)],
    )
    # [CalculatedSplit(user_id='u1', amount=Decimal('360.00'), shares=3), ...]
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Dict, List, Optional, Sequence, Union

from splitshare.core.errors import ValidationError

logger = logging.getLogger(__name__)

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
TOLERANCE = Decimal("0.01")
HUNDRED = Decimal("100")


class SplitType(str, Enum):
    equal = "equal"
    exact = "exact"
    percentage = "percentage"
    shares = "shares"


@dataclass(frozen=True)
class ParticipantSpec:
    user_id: str
    amount: Optional[Decimal] = None
    percentage: Optional[Decimal] = None
    shares: Optional[int] = None


@dataclass(frozen=True)
class CalculatedSplit:
    user_id: str
    amount: Decimal
    percentage: Optional[Decimal] = None
    shares: Optional[int] = None


def to_decimal(value: Number) -> Decimal:
    """Convert a number to Decimal going through str to avoid binary float noise"""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Decimal) -> Decimal:
    """
    Round a Decimal value to the cent.

    Example:
        >>> round_money(Decimal("33.335"))
        Decimal('33.34')
    """
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_number(value: Decimal) -> str:
    """
    Render a number for error messages without trailing zeros.

    Example:
        >>> format_number(Decimal("105.00"))
        '105'
    """
    normalized = value.normalize()
    if normalized == normalized.to_integral_value():
        return format(normalized.quantize(Decimal(1)), "f")
    return format(normalized, "f")


def is_within_tolerance(actual: Decimal, expected: Decimal, tolerance: Decimal = TOLERANCE) -> bool:
    return abs(actual - expected) < tolerance


class SplitStrategy(ABC):
    """Base class for split strategies"""

    # Participant attribute every participant must carry, None when nothing is required
    required_field: Optional[str] = None
    missing_field_message: str = ""

    def calculate(self, total_amount: Decimal, participants: Sequence[ParticipantSpec]) -> List[CalculatedSplit]:
        self._ensure_required_field(participants)
        return self._calculate(total_amount, participants)

    def _ensure_required_field(self, participants: Sequence[ParticipantSpec]) -> None:
        if self.required_field is None:
            return
        if any(getattr(p, self.required_field) is None for p in participants):
            raise ValidationError(self.missing_field_message)

    @abstractmethod
    def _calculate(self, total_amount: Decimal, participants: Sequence[ParticipantSpec]) -> List[CalculatedSplit]:
        """
        Calculate split amounts for participants.

        Args:
            total_amount: Total expense amount
            participants: Participants whose required field is known to be set

        Returns:
            List of CalculatedSplit objects in participant order
        """


class EqualSplit(SplitStrategy):

    def _calculate(self, total_amount, participants):
        if not participants:
            return []
        share = round_money(total_amount / len(participants))
        return [CalculatedSplit(user_id=p.user_id, amount=share) for p in participants]


class ExactSplit(SplitStrategy):
    required_field = "amount"
    missing_field_message = "All participants must have exact amounts specified"

    def _calculate(self, total_amount, participants):
        amounts = [to_decimal(p.amount) for p in participants]
        split_total = sum(amounts, Decimal("0"))
        if not is_within_tolerance(split_total, total_amount):
            raise ValidationError(
                f"Split amounts ({format_number(split_total)}) do not equal "
                f"total amount ({format_number(total_amount)})"
            )
        return [
            CalculatedSplit(user_id=p.user_id, amount=amount)
            for p, amount in zip(participants, amounts)
        ]


class PercentageSplit(SplitStrategy):
    required_field = "percentage"
    missing_field_message = "All participants must have percentages specified"

    def _calculate(self, total_amount, participants):
        percentages = [to_decimal(p.percentage) for p in participants]
        percentage_total = sum(percentages, Decimal("0"))
        if not is_within_tolerance(percentage_total, HUNDRED):
            raise ValidationError(
                f"Split percentages ({format_number(percentage_total)}%) do not equal 100%"
            )
        return [
            CalculatedSplit(
                user_id=p.user_id,
                amount=round_money(total_amount * percentage / HUNDRED),
                percentage=percentage,
            )
            for p, percentage in zip(participants, percentages)
        ]


class SharesSplit(SplitStrategy):
    required_field = "shares"
    missing_field_message = "All participants must have shares specified"

    def _calculate(self, total_amount, participants):
        total_shares = sum(p.shares for p in participants)
        if total_shares == 0:
            raise ValidationError("Total shares cannot be zero")
        return [
            CalculatedSplit(
                user_id=p.user_id,
                amount=round_money(total_amount * to_decimal(p.shares) / to_decimal(total_shares)),
                shares=p.shares,
            )
            for p in participants
        ]


SPLIT_STRATEGIES: Dict[SplitType, SplitStrategy] = {
    SplitType.equal: EqualSplit(),
    SplitType.exact: ExactSplit(),
    SplitType.percentage: PercentageSplit(),
    SplitType.shares: SharesSplit(),
}


def resolve_split_type(split_type: Union[SplitType, str]) -> SplitType:
    try:
        return SplitType(split_type)
    except ValueError:
        raise ValidationError(f"Unsupported split type: {getattr(split_type, 'value', split_type)}")


def calculate_splits(
    total_amount: Number,
    split_type: Union[SplitType, str],
    participants: Sequence[ParticipantSpec],
) -> List[CalculatedSplit]:
    """
    Partition total_amount among participants according to split_type.

    Args:
        total_amount: Positive expense total
        split_type: One of the SplitType values
        participants: Participant specifications carrying the field the
            split type requires (amount, percentage or shares)

    Returns:
        One CalculatedSplit per participant, in input order

    Raises:
        ValidationError: Unsupported split type, a participant missing the
            required field, or inputs that do not reconcile with the total
    """
    resolved = resolve_split_type(split_type)
    splits = SPLIT_STRATEGIES[resolved].calculate(to_decimal(total_amount), participants)
    logger.debug(f"Calculated {len(splits)} {resolved.value} splits for total {total_amount}")
    return splits
