# Overview: Pure installment schedule generation; no database access.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from ..errors import InvalidSchedule
from closet.money import split_evenly
from closet.time_utils import add_months, today as business_today


# Twenty years of monthly installments
MAX_INSTALLMENTS = 240


@dataclass(frozen=True)
class ScheduleRow:
    sequence: int
    due_date: date
    amount_due_cents: int

    def to_dict(self) -> dict:
        return {
            "installment_number": self.sequence,
            "due_date": self.due_date.isoformat(),
            "amount_due_cents": self.amount_due_cents,
        }


def generate_schedule(
    total_cents: int,
    entry_payment_cents: int,
    num_installments: int,
    start_date: date | None = None,
    created_on: date | None = None,
) -> list[ScheduleRow]:
    """
    Split what is left after the entry payment into monthly installments.

    - principal = total - entry, floored to the cent per installment
    - the leftover cents all land on the last installment
    - due dates are start_date + k calendar months (k = 1..n), each computed
      from start_date and clamped to the end of shorter months
    - start_date defaults to created_on (the sale date), falling back to today
    - a single installment is due on start_date itself

    Raises InvalidSchedule for a non-positive principal or count, a negative
    entry, or more than MAX_INSTALLMENTS rows. A principal smaller than the
    count is valid: the early rows are 0 and the last one carries it all.
    """
    if num_installments is None or num_installments <= 0:
        raise InvalidSchedule(
            "num_installments must be > 0",
            details={"num_installments": num_installments},
        )
    if entry_payment_cents is None:
        entry_payment_cents = 0
    if entry_payment_cents < 0:
        raise InvalidSchedule(
            "entry payment cannot be negative",
            details={"entry_payment_cents": entry_payment_cents},
        )

    principal = total_cents - entry_payment_cents
    if principal <= 0:
        raise InvalidSchedule(
            "nothing left to finance after the entry payment",
            details={"total_cents": total_cents, "entry_payment_cents": entry_payment_cents},
        )
    if num_installments > MAX_INSTALLMENTS:
        raise InvalidSchedule(
            f"at most {MAX_INSTALLMENTS} installments",
            details={"num_installments": num_installments, "max": MAX_INSTALLMENTS},
        )

    anchor = start_date or created_on or business_today()

    if num_installments == 1:
        return [ScheduleRow(sequence=1, due_date=anchor, amount_due_cents=principal)]

    amounts = split_evenly(principal, num_installments)
    return [
        ScheduleRow(sequence=i, due_date=add_months(anchor, i), amount_due_cents=amount)
        for i, amount in enumerate(amounts, start=1)
    ]
