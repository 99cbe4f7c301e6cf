import random

import pytest

from actions import STAT_NAMES, ActionIdentifier, ActionType, OperationName
from actor import SimulatedActor
from engine import Engine
from formulas import (
    add_offset,
    difficulty_multiplier,
    get_action_stats,
    get_action_time,
    get_availability,
    get_est_success_chance,
    get_success_chance,
)

COMBAT_STATS = ("strength", "defense", "dexterity", "agility")


def _make_actor(exp: float = 0.0, stats=STAT_NAMES) -> SimulatedActor:
    actor = SimulatedActor()
    for stat in stats:
        actor.exp[stat] = exp
    return actor


def _make_engine(actor: SimulatedActor, seed: int = 1) -> Engine:
    engine = Engine(rng=random.Random(seed))
    engine.init(actor)
    return engine


def _calm_city(engine: Engine) -> None:
    city = engine.get_current_city()
    city.pop = 1e9
    city.pop_est = 1e9
    city.chaos = 0.0
    city.comms = 100


def test_difficulty_multiplier() -> None:
    assert difficulty_multiplier(0) == 0
    assert difficulty_multiplier(1) == pytest.approx(1 + 1 / 650)


def test_add_offset_stays_within_band() -> None:
    rng = random.Random(9)
    for _ in range(100):
        assert 90 <= add_offset(100, 10, rng) <= 110
    assert add_offset(100, 150, rng) == 100


def test_contract_without_count_is_unavailable() -> None:
    actor = _make_actor()
    engine = _make_engine(actor)
    engine.contracts["Tracking"].count = 0.5

    availability = get_availability(engine.contracts["Tracking"], engine)

    assert not availability.available
    assert availability.error == "Insufficient action count"


def test_raid_needs_known_communities() -> None:
    actor = _make_actor(1e200)
    engine = _make_engine(actor)
    raid = engine.operations[OperationName.RAID]
    engine.get_current_city().comms = 0

    assert not get_availability(raid, engine).available
    assert get_success_chance(raid, engine, actor) == 0


def test_operation_team_count_must_fit_team() -> None:
    actor = _make_actor()
    engine = _make_engine(actor)
    sting = engine.operations[OperationName.STING]
    sting.team_count = 3
    engine.team_size = 2

    assert not get_availability(sting, engine).available
    engine.team_size = 3
    assert get_availability(sting, engine).available


def test_black_op_chain_gates() -> None:
    actor = _make_actor()
    engine = _make_engine(actor)
    typhoon = engine.black_operations["Operation Typhoon"]
    zero = engine.black_operations["Operation Zero"]

    assert get_availability(zero, engine).error == "Have not completed the previous Black Operation"
    assert get_availability(typhoon, engine).error == "Insufficient rank"

    engine.rank = 2500
    assert get_availability(typhoon, engine).available

    engine.num_black_ops_complete = 1
    assert get_availability(typhoon, engine).error == "Already completed"


def test_general_actions_always_available() -> None:
    actor = _make_actor()
    engine = _make_engine(actor)
    engine.stamina = 0
    for action in engine.general_actions.values():
        assert get_availability(action, engine).available


def test_action_time_never_below_one_second() -> None:
    actor = _make_actor(1e200)
    engine = _make_engine(actor)
    engine.set_skill_level("Overclock", 90)

    for table in (engine.contracts, engine.operations, engine.black_operations, engine.general_actions):
        for action in table.values():
            assert get_action_time(action, engine, actor) >= 1


def test_general_action_times_are_fixed() -> None:
    actor = _make_actor()
    engine = _make_engine(actor)
    assert get_action_time(engine.general_actions["Training"], engine, actor) == 30
    assert get_action_time(engine.general_actions["Diplomacy"], engine, actor) == 60
    assert get_action_time(engine.general_actions["Recruitment"], engine, actor) >= 10


def test_weak_actor_contract_time_scales_with_difficulty() -> None:
    actor = _make_actor()
    engine = _make_engine(actor)
    # stats of 1 put the stat factor just above 1
    assert get_action_time(engine.contracts["Tracking"], engine, actor) == 13


def test_assassination_reaches_certainty_with_extreme_combat_stats() -> None:
    actor = _make_actor(1e200, COMBAT_STATS)
    engine = _make_engine(actor)
    engine.rank = 1e10
    _calm_city(engine)

    chance = get_success_chance(engine.operations[OperationName.ASSASSINATION], engine, actor)

    assert chance == 1


def test_zero_stamina_means_zero_chance() -> None:
    actor = _make_actor(1e200)
    engine = _make_engine(actor)
    _calm_city(engine)
    engine.stamina = 0

    assert get_success_chance(engine.contracts["Tracking"], engine, actor) == 0


def test_general_actions_succeed_except_recruitment() -> None:
    actor = _make_actor()
    engine = _make_engine(actor)
    assert get_success_chance(engine.general_actions["Training"], engine, actor) == 1
    engine.team_size = 10
    assert get_success_chance(engine.general_actions["Recruitment"], engine, actor) < 1


def test_chance_always_in_unit_interval() -> None:
    rng = random.Random(21)
    for exp in (0.0, 1e3, 1e6, 1e12, 1e200):
        actor = _make_actor(exp)
        engine = _make_engine(actor, seed=rng.randint(0, 1000))
        engine.get_current_city().chaos = rng.uniform(0, 500)
        engine.rank = 1e9
        for table in (engine.contracts, engine.operations, engine.black_operations):
            for action in table.values():
                assert 0 <= get_success_chance(action, engine, actor) <= 1


def test_estimate_band_is_ordered() -> None:
    actor = _make_actor(1e4)
    engine = _make_engine(actor)
    engine.get_current_city().pop_est = engine.get_current_city().pop * 0.5

    low, high = get_est_success_chance(engine.contracts["Retirement"], engine, actor)

    assert 0 <= low <= high <= 1


def test_chaos_above_threshold_lowers_chance() -> None:
    actor = _make_actor(1e4)
    engine = _make_engine(actor)
    _calm_city(engine)
    bounty = engine.contracts["Bounty Hunter"]
    calm = get_success_chance(bounty, engine, actor)

    engine.get_current_city().chaos = 500
    assert get_success_chance(bounty, engine, actor) < calm


def test_failure_pays_half_experience() -> None:
    actor = _make_actor(1e4)
    engine = _make_engine(actor)
    tracking = engine.contracts["Tracking"]

    win = get_action_stats(tracking, engine, actor, True)
    loss = get_action_stats(tracking, engine, actor, False)

    assert loss.total_exp() == pytest.approx(win.total_exp() / 2)
    assert win.exp["hacking"] == 0
    assert win.money == 0


def test_identifier_lookup_matches_catalog_object() -> None:
    actor = _make_actor()
    engine = _make_engine(actor)
    action = engine.get_action_object(ActionIdentifier(ActionType.GENERAL, "Diplomacy"))
    assert action is engine.general_actions["Diplomacy"]
