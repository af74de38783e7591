"""Offline repayment calculations.

Pure functions over a snapshot of houses and payments, so dashboards keep
working without the remote service. Interest is flat: a percentage of the
loan amount, not amortized.

    loan_amount       = total_cost - down_payment
    interest_amount   = loan_amount * interest_rate / 100
    total_loan_amount = loan_amount + interest_amount
    progress          = total_paid / total_loan_amount * 100   (0 if nothing is owed)
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from hometrack.models import DashboardSummary, House, HouseProgress, HouseWithProgress, Payment


def _percentage(paid: float, payable: float) -> float:
    if payable == 0:
        return 0.0
    return paid / payable * 100.0


def loan_figures(house: House) -> tuple[float, float, float]:
    """Return (loan_amount, interest_amount, total_loan_amount) for a house."""
    loan_amount = house.total_cost - house.down_payment
    interest_amount = loan_amount * (house.interest_rate / 100.0)
    return loan_amount, interest_amount, loan_amount + interest_amount


def total_paid_for(house_id: str, payments: Iterable[Payment]) -> float:
    return sum(p.amount for p in payments if p.house_id == house_id)


def calculate_house_progress(house: House, payments: Iterable[Payment]) -> HouseProgress:
    """Compute repayment progress for one house.

    Args:
        house: The house.
        payments: Any payments; only those referencing the house are counted.

    Returns:
        HouseProgress with a progress percentage of exactly 0 when nothing
        is payable.
    """
    _, interest_amount, total_loan_amount = loan_figures(house)
    total_paid = total_paid_for(house.id, payments)

    return HouseProgress(
        total_paid=total_paid,
        remaining_balance=total_loan_amount - total_paid,
        progress_percentage=_percentage(total_paid, total_loan_amount),
        interest_amount=interest_amount,
        down_payment=house.down_payment,
        loan_term_years=house.loan_term_years,
        total_loan_amount=total_loan_amount,
    )


def calculate_houses_with_progress(
    houses: Sequence[House], payments: Sequence[Payment]
) -> list[HouseWithProgress]:
    """Pair every house with its repayment figures, preserving house order."""
    results: list[HouseWithProgress] = []
    for house in houses:
        progress = calculate_house_progress(house, payments)
        results.append(
            HouseWithProgress(
                house=house,
                total_paid=progress.total_paid,
                remaining_balance=progress.remaining_balance,
                progress_percentage=progress.progress_percentage,
                interest_amount=progress.interest_amount,
                total_amount_to_pay=progress.total_loan_amount,
            )
        )
    return results


def calculate_dashboard_summary(
    houses: Sequence[House], payments: Sequence[Payment]
) -> DashboardSummary:
    """Aggregate repayment figures across all houses.

    Payments referencing a house that is not in ``houses`` are ignored, so a
    stale payment list cannot push progress past what is actually owed.
    Safe with zero houses: returns a zero-valued summary.
    """
    live_ids = {house.id for house in houses}
    live_payments = [p for p in payments if p.house_id in live_ids]

    total_cost = 0.0
    total_interest = 0.0
    for house in houses:
        _, interest_amount, total_loan_amount = loan_figures(house)
        total_cost += total_loan_amount
        total_interest += interest_amount

    total_paid = sum(p.amount for p in live_payments)

    return DashboardSummary(
        total_houses=len(houses),
        total_cost=total_cost,
        total_paid=total_paid,
        remaining_balance=total_cost - total_paid,
        total_interest=total_interest,
        overall_progress=_percentage(total_paid, total_cost),
        total_payments=len(live_payments),
    )
