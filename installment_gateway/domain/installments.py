"""Installment plan generation for service purchases"""

from datetime import date, timedelta
from typing import List, Optional, Sequence

from installment_gateway.domain.exceptions import InvalidSplitError, ValidationError
from installment_gateway.domain.models import InstallmentPolicy, Split, Tranche


def default_splits(percentages: Sequence[int], interval_days: int) -> List[Split]:
    """
    Build a split schedule from bare percentages.

    The first split is due immediately, every following one ``interval_days``
    after the previous.

    Example:
        [30, 70], 15 days → [Split(30, 0), Split(70, 15)]
    """
    return [
        Split(percentage=pct, due_offset_days=i * interval_days)
        for i, pct in enumerate(percentages)
    ]


def validate_splits(splits: Sequence[Split]) -> None:
    """
    Check a split schedule.

    Raises:
        InvalidSplitError: Non-positive percentage, percentages not summing
            to 100, negative or decreasing due offsets
    """
    if not splits:
        raise InvalidSplitError("Split schedule cannot be empty")

    for split in splits:
        if split.percentage <= 0:
            raise InvalidSplitError(f"Split percentage must be positive, got {split.percentage}")
        if split.due_offset_days < 0:
            raise InvalidSplitError(f"Due offset cannot be negative, got {split.due_offset_days}")

    total = sum(split.percentage for split in splits)
    if total != 100:
        raise InvalidSplitError(f"Split percentages must total 100, got {total}")

    offsets = [split.due_offset_days for split in splits[1:]]
    if offsets != sorted(offsets):
        raise InvalidSplitError("Split due offsets must not decrease")


def _percent_of(amount_cents: int, percentage: int) -> int:
    """Integer percentage with half-up rounding"""
    return (amount_cents * percentage + 50) // 100


def plan(
    price_cents: int,
    splits: Sequence[Split],
    purchase_date: date | None = None,
) -> List[Tranche]:
    """
    Split a service price into tranches.

    Requirements:
    - No splits → a single 100% tranche due on the purchase date
    - Each tranche is price * percentage / 100, rounded half-up
    - Last tranche absorbs rounding remainder so the total is exact
    - Tranche 1 is due on the purchase date, tranche i>1 on
      purchase date + due_offset_days

    Example:
        1000 with [30% +0d, 70% +15d] → [300 due day 0, 700 due day 15]
        1001 with [33%, 33%, 34%] → [330, 330, 341]

    Raises:
        ValidationError: Non-positive price
        InvalidSplitError: Malformed schedule, or price too small for every
            tranche to get a positive amount
    """
    if price_cents <= 0:
        raise ValidationError(f"Price must be positive, got {price_cents}")

    if purchase_date is None:
        purchase_date = date.today()

    if not splits:
        return [
            Tranche(
                installment_number=1,
                percentage=100,
                amount_cents=price_cents,
                due_date=purchase_date,
            )
        ]

    validate_splits(splits)

    tranches = []
    allocated = 0
    for number, split in enumerate(splits, start=1):
        amount = _percent_of(price_cents, split.percentage)
        allocated += amount
        due_date = purchase_date if number == 1 else purchase_date + timedelta(days=split.due_offset_days)
        tranches.append(
            Tranche(
                installment_number=number,
                percentage=split.percentage,
                amount_cents=amount,
                due_date=due_date,
            )
        )

    # Last tranche absorbs remainder to ensure exact total
    tranches[-1].amount_cents += price_cents - allocated

    if any(t.amount_cents <= 0 for t in tranches):
        raise InvalidSplitError(f"Price {price_cents} is too small to split into {len(tranches)} tranches")

    return tranches


def plan_for_policy(
    price_cents: int,
    policy: Optional[InstallmentPolicy],
    purchase_date: date | None = None,
) -> List[Tranche]:
    """Plan against an account policy; a missing or disabled policy means paying in full"""
    if policy is None or not policy.enabled:
        return plan(price_cents, [], purchase_date)
    return plan(price_cents, policy.splits, purchase_date)
