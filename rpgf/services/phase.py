"""
Round Phase Resolution

A round's phase is never stored; it is derived from the schedule and the
current instant every time it is needed.
"""

from datetime import datetime, timedelta

from rpgf.errors import ValidationError
from rpgf.models.round import Round, RoundPhase, RoundSchedule


def resolve_round_phase(schedule: RoundSchedule, now: datetime) -> RoundPhase:
    """
    Resolve the phase for ``now`` from the first boundary not yet passed.

    Each boundary is the inclusive start of the following phase.
    """
    if now < schedule.application_start:
        return RoundPhase.PENDING_INTAKE
    if now < schedule.application_end:
        return RoundPhase.INTAKE
    if now < schedule.voting_start:
        return RoundPhase.PENDING_VOTING
    if now < schedule.voting_end:
        return RoundPhase.VOTING
    if now < schedule.results_start:
        return RoundPhase.PENDING_RESULTS
    return RoundPhase.RESULTS


def round_phase(round_: Round, now: datetime) -> RoundPhase | None:
    """Phase of a round, or None while it is an unpublished draft."""
    if not round_.published or round_.schedule is None:
        return None
    return resolve_round_phase(round_.schedule, now)


def validate_schedule_for_publication(schedule: RoundSchedule, now: datetime) -> None:
    """
    A schedule may only be published if its boundaries are strictly
    increasing up to results and none of them has passed yet.
    """
    boundaries = schedule.boundaries()
    for (earlier_name, earlier), (later_name, later) in zip(boundaries, boundaries[1:]):
        if not earlier < later:
            raise ValidationError(
                f"{earlier_name} must be before {later_name}",
                field=earlier_name,
            )
    for name, instant in boundaries:
        if instant <= now:
            raise ValidationError(f"{name} must be in the future", field=name)


def schedule_forcing_phase(phase: RoundPhase, now: datetime) -> RoundSchedule:
    """Build a schedule that resolves to ``phase`` at ``now``."""
    day = timedelta(days=1)
    # index of the first boundary still ahead of now
    offsets = {
        RoundPhase.PENDING_INTAKE: 0,
        RoundPhase.INTAKE: 1,
        RoundPhase.PENDING_VOTING: 2,
        RoundPhase.VOTING: 3,
        RoundPhase.PENDING_RESULTS: 4,
        RoundPhase.RESULTS: 5,
    }
    first_future = offsets[RoundPhase(phase)]
    instants = [
        now - (first_future - i) * day if i < first_future else now + (i - first_future + 1) * day
        for i in range(5)
    ]
    return RoundSchedule(
        application_start=instants[0],
        application_end=instants[1],
        voting_start=instants[2],
        voting_end=instants[3],
        results_start=instants[4],
    )
