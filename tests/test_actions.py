import math
import random

import pytest

from actions import (
    BLACK_OPERATION_NAMES,
    ActionIdentifier,
    ActionType,
    Contract,
    Operation,
    all_action_ids,
    create_black_operations,
    create_contracts,
    create_general_actions,
    create_operations,
    dump_levelable,
    find_action_id,
    load_levelable,
)


def test_catalog_sizes() -> None:
    rng = random.Random(0)
    assert list(create_contracts(rng)) == ["Tracking", "Bounty Hunter", "Retirement"]
    assert len(create_operations(rng)) == 6
    assert len(create_general_actions()) == 6
    black_ops = create_black_operations()
    assert len(black_ops) == 21
    assert black_ops["Operation Typhoon"].n == 0
    assert black_ops["Operation Daedalus"].n == 20
    assert len(all_action_ids()) == 3 + 6 + 21 + 6


def test_black_op_chain_order_and_rank_requirements_increase() -> None:
    black_ops = create_black_operations()
    ranks = [black_ops[name].reqd_rank for name in BLACK_OPERATION_NAMES]
    assert ranks == sorted(ranks)
    assert [black_ops[name].n for name in BLACK_OPERATION_NAMES] == list(range(21))


def test_catalog_instances_are_independent_per_build() -> None:
    first = create_contracts(random.Random(1))
    second = create_contracts(random.Random(1))
    first["Tracking"].level = 5
    assert second["Tracking"].level == 1


def test_find_action_id_is_case_and_space_insensitive() -> None:
    assert find_action_id("contract", "bounty hunter") == ActionIdentifier(ActionType.CONTRACT, "Bounty Hunter")
    assert find_action_id("Black Ops", "operationtyphoon") == ActionIdentifier(ActionType.BLACK_OP, "Operation Typhoon")
    assert find_action_id("gen", "HYPERBOLIC regeneration chamber").name == "Hyperbolic Regeneration Chamber"
    assert find_action_id("nonsense", "Tracking") is None
    assert find_action_id("contract", "Assassination") is None


def test_identifiers_compare_by_value() -> None:
    assert ActionIdentifier(ActionType.OPERATION, "Raid") == ActionIdentifier(ActionType.OPERATION, "Raid")
    assert ActionIdentifier(ActionType.OPERATION, "Raid") != ActionIdentifier(ActionType.CONTRACT, "Raid")


def test_difficulty_grows_with_level() -> None:
    contract = Contract(name="x", base_difficulty=100, difficulty_fac=1.5, level=3)
    assert contract.get_difficulty() == pytest.approx(225.0)


def test_nan_difficulty_raises() -> None:
    contract = Contract(name="x", base_difficulty=math.nan)
    with pytest.raises(ValueError):
        contract.get_difficulty()


def test_max_level_grows_after_enough_successes() -> None:
    contract = Contract(name="x")
    assert contract.successes_needed_for_next_level(3) == 3

    contract.successes = 2
    contract.set_max_level(3)
    assert contract.max_level == 1

    contract.successes = 3
    contract.set_max_level(3)
    assert contract.max_level == 2
    # ceil(0.5 * 2 * (2 * 3 + 1))
    assert contract.successes_needed_for_next_level(3) == 7


def test_growth_is_drawn_from_tenths_of_range() -> None:
    contract = Contract(name="x", growth_range=(5, 75))
    rng = random.Random(3)
    for _ in range(50):
        assert 0.5 <= contract.growth(rng) <= 7.5


def test_load_levelable_merges_by_name() -> None:
    target = create_operations(random.Random(2))
    fresh_raid_count = target["Raid"].count
    saved = dump_levelable(create_operations(random.Random(5)))
    saved["Investigation"].update({"level": 9, "max_level": 4, "successes": 12, "team_count": 3})
    saved["Old Removed Operation"] = {"count": 10}
    del saved["Raid"]

    load_levelable(saved, target)

    assert "Old Removed Operation" not in target
    assert target["Raid"].count == fresh_raid_count
    investigation = target["Investigation"]
    assert investigation.max_level == 4
    assert investigation.level == 4
    assert investigation.successes == 12
    assert investigation.team_count == 3
    assert isinstance(investigation, Operation)


def test_load_levelable_ignores_malformed_records() -> None:
    target = create_contracts(random.Random(2))
    before = target["Tracking"].count
    load_levelable({"Tracking": "garbage"}, target)
    assert target["Tracking"].count == before
