import math
import random

import pytest

from world import (
    CITY_NAMES,
    DEFAULT_CITY,
    City,
    create_cities,
    decay_chaos,
    random_event,
    trigger_migration,
    trigger_potential_migration,
)


class _ScriptedRng:
    """Fixed roll for the event table, cities picked in catalog order."""

    def __init__(self, roll: float) -> None:
        self.roll = roll
        self._picks = 0

    def random(self) -> float:
        return self.roll

    def choice(self, seq):
        self._picks += 1
        return seq[(self._picks - 1) % len(seq)]

    def randint(self, lo: int, hi: int) -> int:
        return lo


def _city(**kwargs) -> City:
    base = {"name": "Testville", "pop": 1e9, "pop_est": 1e9, "comms": 10, "chaos": 0.0}
    base.update(kwargs)
    return City(**base)


def test_create_cities_covers_fixed_regions() -> None:
    cities = create_cities(random.Random(4))

    assert list(cities) == CITY_NAMES
    assert DEFAULT_CITY in cities
    for city in cities.values():
        assert 1e9 <= city.pop <= 1.5e9
        assert 5 <= city.comms <= 150
        assert city.chaos == 0
        assert city.pop_est > 0


def test_chaos_never_goes_negative() -> None:
    city = _city(chaos=3.0)

    city.change_chaos_by_count(-10)
    assert city.chaos == 0

    city.change_chaos_by_count(5)
    city.change_chaos_by_percentage(-250)
    assert city.chaos == 0


def test_chaos_percentage_scales_current_value() -> None:
    city = _city(chaos=50.0)
    city.change_chaos_by_percentage(10)
    assert city.chaos == pytest.approx(55.0)


@pytest.mark.parametrize(
    "mutate",
    [
        lambda c: c.change_chaos_by_count(math.nan),
        lambda c: c.change_chaos_by_percentage(math.nan),
        lambda c: c.change_population_by_count(math.nan),
        lambda c: c.change_population_by_percentage(math.nan),
        lambda c: c.improve_population_estimate_by_count(math.nan),
        lambda c: c.improve_population_estimate_by_percentage(math.nan),
        lambda c: c.improve_population_estimate_by_percentage(5, skill_mult=math.nan),
    ],
)
def test_mutators_reject_nan(mutate) -> None:
    with pytest.raises(ValueError):
        mutate(_city())


def test_population_by_percentage_non_zero_moves_at_least_one() -> None:
    city = _city(pop=10.0, pop_est=10.0)

    change = city.change_population_by_percentage(-1, change_est_equally=True, non_zero=True)

    assert change == -1
    assert city.pop == 9
    assert city.pop_est == 9


def test_population_by_count_moves_estimate_and_floors_it() -> None:
    city = _city(pop=100.0, pop_est=0.0)
    city.change_population_by_count(-1, est_change=-1)
    assert city.pop == 99
    assert city.pop_est == 0


def test_estimate_improvement_by_count_does_not_overshoot() -> None:
    city = _city(pop=1000.0, pop_est=900.0)
    city.improve_population_estimate_by_count(500)
    assert city.pop_est == 1000

    city = _city(pop=1000.0, pop_est=2000.0)
    city.improve_population_estimate_by_count(300)
    assert city.pop_est == 1700


def test_estimate_improvement_by_percentage_moves_toward_truth() -> None:
    city = _city(pop=1000.0, pop_est=500.0)
    city.improve_population_estimate_by_percentage(10)
    assert city.pop_est == pytest.approx(550.0)

    city.improve_population_estimate_by_percentage(100)
    assert city.pop_est == 1000


def test_trigger_migration_moves_people_between_distinct_cities() -> None:
    rng = random.Random(7)
    cities = create_cities(rng)
    total_before = sum(c.pop for c in cities.values())

    trigger_migration(cities, "Aevum", rng)

    total_after = sum(c.pop for c in cities.values())
    assert cities["Aevum"].pop < 1.5e9
    # people only move, apart from the small growth bonus at the destination
    assert total_after - total_before in (0, 2)


def test_potential_migration_validates_chance() -> None:
    cities = create_cities(random.Random(1))
    with pytest.raises(ValueError):
        trigger_potential_migration(cities, "Aevum", math.nan)


def test_potential_migration_zero_chance_is_a_no_op() -> None:
    cities = create_cities(random.Random(1))
    before = {name: c.pop for name, c in cities.items()}
    trigger_potential_migration(cities, "Aevum", 0, random.Random(2))
    assert {name: c.pop for name, c in cities.items()} == before


def test_riot_event_raises_chaos_and_logs() -> None:
    cities = create_cities(random.Random(3))
    lines = []

    kind = random_event(cities, _ScriptedRng(0.6), lines.append)

    assert kind == "riots"
    assert cities["Aevum"].chaos == pytest.approx(1.05)
    assert len(lines) == 1 and "riots" in lines[0]


def test_new_community_event_adds_people_and_a_community() -> None:
    cities = create_cities(random.Random(3))
    before_pop = cities["Aevum"].pop
    before_comms = cities["Aevum"].comms

    kind = random_event(cities, _ScriptedRng(0.01))

    assert kind == "new_community"
    assert cities["Aevum"].comms == before_comms + 1
    assert cities["Aevum"].pop == before_pop + round(before_pop * 10 / 100) + 2


def test_community_migration_without_communities_forms_one_instead() -> None:
    cities = create_cities(random.Random(3))
    cities["Aevum"].comms = 0

    kind = random_event(cities, _ScriptedRng(0.07))

    assert kind == "new_community"
    assert cities["Aevum"].comms == 1


def test_top_of_event_table_does_nothing() -> None:
    cities = create_cities(random.Random(3))
    snapshot = {name: (c.pop, c.comms, c.chaos) for name, c in cities.items()}

    assert random_event(cities, _ScriptedRng(0.95)) == "none"
    assert {name: (c.pop, c.comms, c.chaos) for name, c in cities.items()} == snapshot


def test_many_events_keep_every_region_well_formed() -> None:
    rng = random.Random(12345)
    cities = create_cities(rng)
    kinds = set()

    for _ in range(10_000):
        kinds.add(random_event(cities, rng))

    assert {"riots", "migration", "new_synthoids", "less_synthoids"} <= kinds
    for city in cities.values():
        assert math.isfinite(city.pop) and city.pop >= 0
        assert math.isfinite(city.chaos) and city.chaos >= 0
        assert city.comms >= 0
        assert city.pop_est >= 0


def test_decay_chaos_is_slow_and_floored() -> None:
    cities = {"a": _city(name="a", chaos=1.0), "b": _city(name="b", chaos=0.0)}
    decay_chaos(cities, 100)
    assert cities["a"].chaos == pytest.approx(0.99)
    assert cities["b"].chaos == 0
