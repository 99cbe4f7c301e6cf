#!/usr/bin/env python3
from __future__ import annotations

import math
from typing import TYPE_CHECKING

from actions import Attempt
from actor import Actor
from config import SIM_CONFIG

if TYPE_CHECKING:
    from engine import Engine

RANKS_PER_SKILL_POINT = float(SIM_CONFIG.get("ranks_per_skill_point", 3))
RANK_TO_FACTION_REP_FACTOR = float(SIM_CONFIG.get("rank_to_faction_rep_factor", 2))
RANK_NEEDED_FOR_FACTION = float(SIM_CONFIG.get("rank_needed_for_faction", 25))


def change_rank(engine: "Engine", actor: Actor, change: float) -> int:
    """
    Apply a rank delta and pay out anything it unlocks.

    Rank is floored at 0. Members of the faction earn reputation for the
    delta, scaled by their favor. Every ``RANKS_PER_SKILL_POINT`` of max rank
    grants one skill point; a big jump can grant several at once. Returns the
    number of skill points granted.
    """
    if change is None or math.isnan(change):
        raise ValueError("NaN passed into change_rank()")
    engine.rank = max(0.0, engine.rank + change)
    engine.max_rank = max(engine.rank, engine.max_rank)

    favor = actor.faction_favor()
    if favor is not None:
        favor_bonus = 1 + favor / 100
        actor.gain_faction_reputation(RANK_TO_FACTION_REP_FACTOR * change * favor_bonus)

    rank_needed = (engine.total_skill_points + 1) * RANKS_PER_SKILL_POINT
    if engine.max_rank < rank_needed:
        return 0
    gained = math.floor((engine.max_rank - rank_needed) / RANKS_PER_SKILL_POINT + 1)
    engine.skill_points += gained
    engine.total_skill_points += gained
    return gained


def join_faction(engine: "Engine", actor: Actor) -> Attempt:
    if actor.faction_favor() is not None:
        return Attempt(True, "Already a member of the faction")
    if engine.rank >= RANK_NEEDED_FOR_FACTION:
        actor.join_faction()
        return Attempt(True, "Joined the faction")
    return Attempt(False, f"Insufficient rank ({engine.rank:.1f} / {RANK_NEEDED_FOR_FACTION:g})")
