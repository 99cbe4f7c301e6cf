import math
import random
from dataclasses import dataclass

import pytest

from actor import SimulatedActor
from engine import Engine
from skills import SKILLS, Skill, compute_skill_multipliers
from team import resolve_team_casualties


def _make_engine(seed: int = 1) -> Engine:
    return Engine(rng=random.Random(seed))


@dataclass
class _Team:
    team_size: int
    team_lost: int = 0


def _max_roll(lo: int, hi: int) -> int:
    return hi


# ---------- rank ----------


def test_rank_change_rejects_nan() -> None:
    engine = _make_engine()
    with pytest.raises(ValueError):
        engine.change_rank(SimulatedActor(), math.nan)


def test_rank_never_negative_and_max_rank_tracks_peak() -> None:
    engine = _make_engine()
    actor = SimulatedActor()

    engine.change_rank(actor, 4)
    engine.change_rank(actor, -10)

    assert engine.rank == 0
    assert engine.max_rank == 4


def test_skill_point_per_three_rank() -> None:
    engine = _make_engine()
    actor = SimulatedActor()

    assert engine.change_rank(actor, 2) == 0
    assert engine.change_rank(actor, 1) == 1
    assert engine.skill_points == 1
    assert engine.total_skill_points == 1


def test_big_rank_jump_grants_several_points() -> None:
    engine = _make_engine()
    actor = SimulatedActor()

    assert engine.change_rank(actor, 30) == 10
    assert engine.total_skill_points == 10

    # 33 needed for the eleventh point
    assert engine.change_rank(actor, 2) == 0
    assert engine.change_rank(actor, 1) == 1


def test_losing_rank_does_not_take_points_back() -> None:
    engine = _make_engine()
    actor = SimulatedActor()
    engine.change_rank(actor, 9)
    engine.change_rank(actor, -9)
    assert engine.skill_points == 3

    # points only come back once the old peak is passed
    assert engine.change_rank(actor, 9) == 0


def test_members_earn_reputation_scaled_by_favor() -> None:
    engine = _make_engine()
    actor = SimulatedActor(faction_member=True, favor=50)

    engine.change_rank(actor, 10)

    assert actor.reputation == pytest.approx(2 * 10 * 1.5)


def test_non_members_earn_no_reputation() -> None:
    engine = _make_engine()
    actor = SimulatedActor()
    engine.change_rank(actor, 10)
    assert actor.reputation == 0


def test_join_faction_needs_rank() -> None:
    engine = _make_engine()
    actor = SimulatedActor()
    engine.rank = 24.9
    assert not engine.join_faction(actor).success
    assert not actor.faction_member

    engine.rank = 25
    assert engine.join_faction(actor).success
    assert actor.faction_member


# ---------- skills ----------


def test_skill_table_is_complete() -> None:
    assert len(SKILLS) == 12
    assert SKILLS["Overclock"].max_level == 90
    assert math.isinf(SKILLS["Tracer"].max_level)


def test_skill_cost_for_several_levels() -> None:
    skill = Skill(name="x", base_cost=3, cost_inc=2.1)
    # 3 + (3 + 2.1) + (3 + 4.2)
    assert skill.calculate_cost(0, 3) == 15
    assert skill.calculate_cost(5) == math.floor(3 + 2.1 * 5)


def test_skill_upgrade_checks() -> None:
    overclock = SKILLS["Overclock"]
    assert overclock.can_upgrade(90, 1e9)[0] is False
    assert overclock.can_upgrade(0, 1e9, 0)[0] is False
    ok, error, cost = overclock.can_upgrade(0, 2)
    assert not ok and cost == 3 and "Insufficient" in error


def test_multipliers_combine_across_skills() -> None:
    mults = compute_skill_multipliers({"Reaper": 10, "Evasive System": 5})
    assert mults["EffStr"] == pytest.approx(1.2)
    assert mults["EffAgi"] == pytest.approx(1.2 * 1.2)


def test_overclock_floors_action_time_multiplier_at_zero() -> None:
    skills = {"Overclock": Skill(name="Overclock", mults={"ActionTime": -1})}
    assert compute_skill_multipliers({"Overclock": 150}, skills)["ActionTime"] == 0


# ---------- team casualties ----------


def test_success_loses_at_most_half_rounded_up() -> None:
    team = _Team(team_size=10)
    lost = resolve_team_casualties(5, team, True, _max_roll)
    assert lost == 3
    assert team.team_size == 7
    assert team.team_lost == 3


def test_failure_can_lose_everyone_deployed() -> None:
    team = _Team(team_size=10)
    assert resolve_team_casualties(4, team, False, _max_roll) == 4
    assert team.team_size == 6


def test_deployment_capped_by_team_size() -> None:
    team = _Team(team_size=2)
    assert resolve_team_casualties(8, team, False, _max_roll) == 2
    assert team.team_size == 0


def test_no_team_no_roll() -> None:
    def _roll(lo: int, hi: int) -> int:
        raise AssertionError("roll should not be needed")

    team = _Team(team_size=0)
    assert resolve_team_casualties(3, team, False, _roll) == 0
    assert resolve_team_casualties(0, _Team(team_size=5), True, _roll) == 0
