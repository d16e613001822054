"""Interest calculator: per-period amount and accrued total."""

from decimal import Decimal

from src.models.loan import InterestType


HUNDRED = Decimal("100")


def interest_per_period(
    principal: Decimal,
    interest_type: InterestType,
    interest_rate: Decimal,
) -> Decimal:
    """
    Interest owed for one period.

    FIXED rates are already a currency amount. PERCENTAGE rates apply to the
    original principal, not the outstanding balance.
    """
    if interest_type == InterestType.PERCENTAGE:
        return principal * interest_rate / HUNDRED
    return interest_rate


def interest_accrued(per_period: Decimal, periods_unpaid: int) -> Decimal:
    """Interest owed for all unpaid periods."""
    return per_period * periods_unpaid
