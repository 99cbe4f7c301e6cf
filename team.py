#!/usr/bin/env python3
from __future__ import annotations

import math
from typing import Callable, Protocol

# Inclusive integer roll, e.g. random.randint
CasualtyRoll = Callable[[int, int], int]

# Share of the deployed team that can be lost on success / failure
LOW_CASUALTIES = 0.5
HIGH_CASUALTIES = 1.0


class OperationTeam(Protocol):
    team_size: int
    team_lost: int


def resolve_team_casualties(team_count: int, team: OperationTeam, success: bool, roll: CasualtyRoll) -> int:
    """
    Remove support staff lost on a team action and return how many died.

    Only the members actually deployed (``team_count`` capped by the current
    team size) are at risk. A success loses at most half of them, rounded up;
    a failure can lose all of them.
    """
    deployed = min(team_count, team.team_size)
    if deployed <= 0:
        return 0
    if success:
        max_losses = math.ceil(deployed * LOW_CASUALTIES)
    else:
        max_losses = math.floor(deployed * HIGH_CASUALTIES)
    losses = min(roll(0, max_losses), team.team_size)
    team.team_size -= losses
    team.team_lost += losses
    return losses
