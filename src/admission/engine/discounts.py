"""Discount evaluation pipeline.

Each discount kind maps to one stateless handler that decides eligibility.
The amount is computed once, here, for every kind.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from admission.engine.models import DiscountContext, DiscountEvaluation
from admission.store.models import (
    AssignmentTarget,
    Discount,
    DiscountKind,
    DiscountValueType,
    as_utc_naive,
)

if TYPE_CHECKING:
    from admission.engine.history import RegistrationHistory

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Verdict = tuple[bool, str]
Handler = Callable[[Discount, DiscountContext, "RegistrationHistory"], Verdict]


def _quantize(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_amount(discount: Discount, base_fee: Decimal) -> Decimal:
    """Compute the discount amount for a base fee.

    Percent values apply to the base fee, flat values are taken as-is. The
    optional cap applies next, and the result never exceeds the base fee or
    drops below zero.
    """
    if discount.value_type == DiscountValueType.PERCENT.value:
        raw = base_fee * discount.value / Decimal(100)
    else:
        raw = discount.value

    capped = raw
    if discount.max_discount_amount is not None:
        capped = min(raw, discount.max_discount_amount)

    return _quantize(max(ZERO, min(capped, base_fee)))


def _config_int(discount: Discount, key: str, default: int) -> int:
    value = discount.config.get(key, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Discount %s has non-integer %s=%r", discount.id, key, value)
        return default


def _early_bird(
    discount: Discount, context: DiscountContext, _history: RegistrationHistory
) -> Verdict:
    raw_cutoff = discount.config.get("cutoff")
    if raw_cutoff:
        try:
            cutoff = as_utc_naive(datetime.fromisoformat(str(raw_cutoff)))
        except ValueError:
            return False, f"early-bird cutoff '{raw_cutoff}' is not a valid date"
    elif discount.valid_until is not None:
        cutoff = discount.valid_until
    else:
        return False, "early-bird cutoff is not configured"

    if context.now >= cutoff:
        return False, f"early-bird cutoff {cutoff.isoformat()} has passed"
    return True, f"registered before early-bird cutoff {cutoff.isoformat()}"


def _loyalty(discount: Discount, context: DiscountContext, history: RegistrationHistory) -> Verdict:
    required = _config_int(discount, "min_completed", 1)
    finished = history.count_finished(context.student_id)
    if finished < required:
        return False, f"student finished {finished} of {required} required batches"
    return True, f"student finished {finished} batches"


def _individual(
    discount: Discount, context: DiscountContext, history: RegistrationHistory
) -> Verdict:
    targets = {
        AssignmentTarget.STUDENT.value: context.student_id,
        AssignmentTarget.BATCH.value: context.batch_id,
        AssignmentTarget.COURSE.value: context.course_id,
    }
    for assignment in history.assignments_for(discount.id):
        if targets.get(assignment.target_type) != assignment.target_id:
            continue
        if assignment.covers(context.now):
            return True, f"assigned to {assignment.target_type} {assignment.target_id}"
    return False, "no current assignment targets this registration"


def _combo(discount: Discount, context: DiscountContext, history: RegistrationHistory) -> Verdict:
    required = {str(batch_id) for batch_id in discount.config.get("required_batch_ids") or []}
    if not required:
        return False, "combo discount lists no required batches"

    missing = required - history.finished_batch_ids(context.student_id)
    if missing:
        return False, f"student has not finished {len(missing)} required batches"
    return True, "student finished every required batch"


def _group(discount: Discount, context: DiscountContext, _history: RegistrationHistory) -> Verdict:
    minimum = _config_int(discount, "min_group_size", 2)
    if context.group_size < minimum:
        return False, f"group of {context.group_size} is below minimum {minimum}"
    return True, f"group of {context.group_size} meets minimum {minimum}"


def _generic(
    _discount: Discount, _context: DiscountContext, _history: RegistrationHistory
) -> Verdict:
    return True, "generic discount"


HANDLERS: dict[DiscountKind, Handler] = {
    DiscountKind.EARLY_BIRD: _early_bird,
    DiscountKind.LOYALTY: _loyalty,
    DiscountKind.INDIVIDUAL: _individual,
    DiscountKind.COMBO: _combo,
    DiscountKind.GROUP: _group,
    DiscountKind.GENERIC: _generic,
}

_unhandled = set(DiscountKind) - HANDLERS.keys()
if _unhandled:
    raise RuntimeError(f"Discount kinds without a handler: {sorted(_unhandled)}")


def register_handler(kind: DiscountKind, handler: Handler) -> None:
    """Install or replace the handler for a discount kind."""
    HANDLERS[DiscountKind(kind)] = handler


def evaluate(
    discount: Discount,
    context: DiscountContext,
    history: RegistrationHistory,
) -> DiscountEvaluation:
    """Decide whether a discount applies and how much it is worth.

    Args:
        discount: The discount programme to evaluate.
        context: Registration context.
        history: Read-only access to registration history and assignments.

    Returns:
        DiscountEvaluation; a zero amount after capping is still applicable.
    """
    if not discount.is_active:
        return DiscountEvaluation.rejected("discount is inactive")
    if not discount.is_valid_at(context.now):
        return DiscountEvaluation.rejected("discount is outside its validity window")
    if discount.min_base_fee is not None and context.base_fee < discount.min_base_fee:
        return DiscountEvaluation.rejected(
            f"base fee {context.base_fee} is below the minimum {discount.min_base_fee}"
        )

    handler = HANDLERS[discount.discount_kind]
    applicable, reason = handler(discount, context, history)
    if not applicable:
        logger.debug("Discount %s not applicable: %s", discount.id, reason)
        return DiscountEvaluation.rejected(reason)

    amount = compute_amount(discount, context.base_fee)
    if amount == ZERO:
        reason = f"{reason}; amount resolves to zero"
    return DiscountEvaluation(applicable=True, amount=amount, reason=reason)
