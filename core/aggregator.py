"""
Result aggregation for detected subscriptions.
Derives monthly/yearly totals, counts and category rollups from the item
list. Item-derived totals are the source of truth; totals reported by the
classifier are never used directly.
"""
from typing import Dict, Iterable, List, Optional, Sequence

from core.exceptions import ValidationError
from core.schema import AnalysisResult, CategoryTotal, SimulationResult, SubscriptionItem

MONTHS_PER_YEAR = 12


def monthly_equivalent(item: SubscriptionItem) -> float:
    """Cost of the item spread over one month."""
    if item.frequency == "yearly":
        return item.amount / MONTHS_PER_YEAR
    return item.amount


def yearly_equivalent(item: SubscriptionItem) -> float:
    """Cost of the item over one year."""
    if item.frequency == "monthly":
        return item.amount * MONTHS_PER_YEAR
    return item.amount


def _summarize(items: Iterable[SubscriptionItem]) -> tuple:
    """
    Single pass over items computing totals, count and category sums.

    Returns:
        Tuple of (monthly_total, yearly_total, count, category_sums)
    """
    monthly_sum = 0.0
    yearly_sum = 0.0
    count = 0
    categories: Dict[str, float] = {}

    for item in items:
        count += 1
        if item.frequency == "monthly":
            monthly_sum += item.amount
        else:
            yearly_sum += item.amount
        categories[item.category] = categories.get(item.category, 0.0) + item.amount

    total_monthly = monthly_sum + yearly_sum / MONTHS_PER_YEAR
    total_yearly = yearly_sum + monthly_sum * MONTHS_PER_YEAR
    return total_monthly, total_yearly, count, categories


def _to_breakdown(categories: Dict[str, float]) -> List[CategoryTotal]:
    # dict keeps first-seen order
    return [CategoryTotal(category=name, amount=round(amount, 2)) for name, amount in categories.items()]


def build_category_breakdown(items: Iterable[SubscriptionItem]) -> Dict[str, float]:
    """
    Group items by category, summing the raw amount (not the monthly value).

    Args:
        items: Subscription items

    Returns:
        Mapping category -> summed amount, rounded to cents
    """
    _, _, _, categories = _summarize(items)
    return {name: round(amount, 2) for name, amount in categories.items()}


def aggregate(
    items: Sequence[SubscriptionItem],
    insights: Optional[Sequence[str]] = None,
) -> AnalysisResult:
    """
    Build the authoritative analysis result from classifier items.

    Args:
        items: Validated subscription items
        insights: Free-text insights to carry along

    Returns:
        AnalysisResult with derived totals and category breakdown
    """
    total_monthly, total_yearly, count, categories = _summarize(items)
    return AnalysisResult(
        total_monthly=round(total_monthly, 2),
        total_yearly=round(total_yearly, 2),
        subscription_count=count,
        items=list(items),
        insights=list(insights or []),
        category_breakdown=_to_breakdown(categories),
    )


def recompute_with_exclusions(
    items: Sequence[SubscriptionItem],
    active_flags: Sequence[bool],
) -> SimulationResult:
    """
    Recompute totals as if inactive items were cancelled (what-if simulation).

    Args:
        items: Items of an analysis result
        active_flags: One flag per item, aligned by position

    Returns:
        SimulationResult over the active items only

    Raises:
        ValidationError: If the flag count does not match the item count
    """
    if len(active_flags) != len(items):
        raise ValidationError(
            "Active flags must have one entry per item",
            details={"items": len(items), "flags": len(active_flags)}
        )

    active_items = (item for item, active in zip(items, active_flags) if active)
    total_monthly, total_yearly, count, categories = _summarize(active_items)
    return SimulationResult(
        total_monthly=round(total_monthly, 2),
        total_yearly=round(total_yearly, 2),
        active_count=count,
        category_breakdown=_to_breakdown(categories),
    )


def potential_savings(full: AnalysisResult, simulated: SimulationResult) -> Dict[str, float]:
    """Difference between the full ledger and a simulated one."""
    return {
        "monthly": round(full.total_monthly - simulated.total_monthly, 2),
        "yearly": round(full.total_yearly - simulated.total_yearly, 2),
    }
