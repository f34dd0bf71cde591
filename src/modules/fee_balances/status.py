"""Balance arithmetic and the status rule.

Payment application, recalculation and the status sweep write
``outstanding_balance`` and ``status`` through here; reconciliation strategies
use ``resolve_status`` for the same rule.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

from src.modules.fee_balances.models import FeeBalanceStatus, StudentFeeBalance
from src.shared.utils.money import ZERO, round_money


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def outstanding_amount(total_amount: Decimal, amount_paid: Decimal) -> Decimal:
    """max(0, total - paid)."""
    return max(ZERO, round_money(total_amount - amount_paid))


def resolve_status(
    amount_paid: Decimal,
    total_amount: Decimal,
    due_date: date | None,
    today: date | None = None,
    *,
    consider_overdue: bool = True,
) -> FeeBalanceStatus:
    """
    Status of a balance, evaluated in order:

    1. nothing outstanding -> Paid
    2. something paid -> Partial
    3. past due date -> Overdue (skipped when ``consider_overdue`` is False)
    4. otherwise -> Outstanding
    """
    if outstanding_amount(total_amount, amount_paid) <= ZERO:
        return FeeBalanceStatus.PAID
    if amount_paid > ZERO:
        return FeeBalanceStatus.PARTIAL
    if consider_overdue and due_date is not None and due_date < (today or today_utc()):
        return FeeBalanceStatus.OVERDUE
    return FeeBalanceStatus.OUTSTANDING


def apply_amounts(
    balance: StudentFeeBalance,
    total_amount: Decimal,
    amount_paid: Decimal,
    today: date | None = None,
    *,
    consider_overdue: bool = True,
) -> bool:
    """Write amounts, outstanding and status to ``balance``. Returns True if anything changed."""
    total_amount = round_money(total_amount)
    amount_paid = round_money(amount_paid)
    outstanding = outstanding_amount(total_amount, amount_paid)
    status = resolve_status(
        amount_paid, total_amount, balance.due_date, today, consider_overdue=consider_overdue
    ).value

    changed = (
        balance.total_amount != total_amount
        or balance.amount_paid != amount_paid
        or balance.outstanding_balance != outstanding
        or balance.status != status
    )
    balance.total_amount = total_amount
    balance.amount_paid = amount_paid
    balance.outstanding_balance = outstanding
    balance.status = status
    return changed
