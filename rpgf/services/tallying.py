"""
Results Tallying Engine

Aggregates per-voter allocations into one integer result per application
and derives proportional weights from a finished tally.

All arithmetic is exact: averages and medians go through Decimal and are
rounded half-up to an integer, so results never depend on float error or
on the order ballots are read in.
"""

from collections.abc import Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal

import structlog

from rpgf.errors import NoVotesAllocatedError, ValidationError
from rpgf.models.result import ResultMethod

logger = structlog.get_logger(__name__)


def round_half_up(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_HALF_UP))


def _aggregate(values: list[int], method: ResultMethod) -> int:
    if not values:
        return 0
    if method == ResultMethod.SUM:
        return sum(values)
    if method == ResultMethod.AVG:
        return round_half_up(Decimal(sum(values)) / Decimal(len(values)))
    if method == ResultMethod.MEDIAN:
        ordered = sorted(values)
        mid = len(ordered) // 2
        if len(ordered) % 2:
            return ordered[mid]
        return round_half_up(Decimal(ordered[mid - 1] + ordered[mid]) / 2)
    raise ValueError(f"Unknown result method: {method}")


def tally(
    application_ids: Iterable[str],
    ballots: Iterable[Mapping[str, int]],
    method: ResultMethod,
) -> dict[str, int]:
    """
    Compute one result per application.

    Every ballot contributes to every application; an application missing
    from a ballot counts as a zero allocation from that voter.
    """
    method = ResultMethod(method)
    application_ids = list(application_ids)
    per_application: dict[str, list[int]] = {app_id: [] for app_id in application_ids}

    for allocations in ballots:
        for app_id in application_ids:
            per_application[app_id].append(allocations.get(app_id, 0))

    return {
        app_id: _aggregate(values, method)
        for app_id, values in per_application.items()
    }


def distribute_remainder(weights: dict[str, int], total: int) -> dict[str, int]:
    """
    Adjust group weights by +-1 until they sum exactly to ``total``.

    Groups are visited in descending weight order, ties broken by key, and
    the visit cycles until the remainder is used up. A group is never taken
    below zero.
    """
    adjusted = dict(weights)
    remainder = total - sum(adjusted.values())
    if remainder == 0 or not adjusted:
        return adjusted

    order = sorted(adjusted, key=lambda key: (-adjusted[key], key))
    step = 1 if remainder > 0 else -1

    while remainder != 0:
        progressed = False
        for key in order:
            if remainder == 0:
                break
            if step < 0 and adjusted[key] == 0:
                continue
            adjusted[key] += step
            remainder -= step
            progressed = True
        if not progressed:
            raise ValueError("Cannot distribute remainder: all groups are at zero")

    return adjusted


def compute_weights(
    results: Mapping[str, int],
    grouping: Mapping[str, str],
    total: int = 1_000_000,
) -> dict[str, int]:
    """
    Derive integer weights per group from per-application results.

    Args:
        results: application id -> final allocation
        grouping: application id -> group key (e.g. the account receiving funds)
        total: The exact sum the returned weights add up to

    Returns:
        group key -> weight, omitting groups whose weight is zero

    Raises:
        NoVotesAllocatedError: If the results carry no votes at all
        ValidationError: If an application has no group key
    """
    unmapped = sorted(app_id for app_id in results if not grouping.get(app_id))
    if unmapped:
        raise ValidationError(
            "Applications without a weight group",
            application_ids=unmapped,
        )

    total_votes = sum(results.values())
    if total_votes == 0:
        raise NoVotesAllocatedError("No votes have been allocated in this round")

    weights: dict[str, int] = {}
    for app_id, allocation in results.items():
        share = Decimal(allocation) / Decimal(total_votes) * Decimal(total)
        key = grouping[app_id]
        weights[key] = weights.get(key, 0) + round_half_up(share)

    remainder = total - sum(weights.values())
    if remainder:
        logger.debug("weight_remainder_distributed", remainder=remainder, groups=len(weights))

    weights = distribute_remainder(weights, total)
    return {key: weight for key, weight in weights.items() if weight > 0}
