#!/usr/bin/env python3
from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from config import SIM_CONFIG
from formulas import add_offset

# Fixed set of cities the engine tracks
CITY_NAMES: List[str] = ["Aevum", "Chongqing", "Sector-12", "New Tokyo", "Ishima", "Volhaven"]
DEFAULT_CITY = "Sector-12"

POPULATION_THRESHOLD = float(SIM_CONFIG.get("population_threshold", 1e9))
BASE_POP_GROWTH = float(SIM_CONFIG.get("base_pop_growth", 2))
POP_GROWTH_CEILING = float(SIM_CONFIG.get("pop_growth_ceiling", 1e12))
CHAOS_DECAY_PER_SECOND = float(SIM_CONFIG.get("chaos_decay_per_second", 0.0001))

# Random event table: cumulative upper bounds of each bucket, rolled once per firing
EVENT_NEW_COMMUNITY = 0.05
EVENT_COMMUNITY_MIGRATION = 0.1
EVENT_NEW_SYNTHOIDS = 0.3
EVENT_MIGRATION = 0.5
EVENT_RIOTS = 0.7
EVENT_LESS_SYNTHOIDS = 0.9

EventLogger = Optional[Callable[[str], None]]


def _check_number(value: float, where: str) -> None:
    if value is None or math.isnan(value):
        raise ValueError(f"NaN passed into City.{where}()")


@dataclass
class City:
    name: str
    pop: float = 0.0  # real synthoid population
    pop_est: float = 0.0  # the operator's belief about pop
    comms: int = 0  # known synthoid communities
    chaos: float = 0.0

    def change_chaos_by_count(self, n: float) -> None:
        _check_number(n, "change_chaos_by_count")
        if n == 0:
            return
        self.chaos = max(0.0, self.chaos + n)

    def change_chaos_by_percentage(self, p: float) -> None:
        """Scale chaos by ``1 + p/100``; ``p`` is a percentage (2 for 2%)."""
        _check_number(p, "change_chaos_by_percentage")
        if p == 0:
            return
        self.chaos = max(0.0, self.chaos + self.chaos * (p / 100))

    def change_population_by_count(
        self,
        n: float,
        est_change: float = 0.0,
        est_offset: float = 0.0,
        rng=random,
    ) -> None:
        """
        Shift the real population by ``n``.

        ``est_change`` moves the estimate by a fixed amount and ``est_offset``
        then jitters it by up to that percentage either way.
        """
        _check_number(n, "change_population_by_count")
        self.pop += n
        if est_change and not math.isnan(est_change):
            self.pop_est += est_change
        if est_offset:
            self.pop_est = add_offset(self.pop_est, est_offset, rng)
        self.pop_est = max(self.pop_est, 0.0)

    def change_population_by_percentage(
        self,
        p: float,
        change_est_equally: bool = False,
        non_zero: bool = False,
    ) -> int:
        _check_number(p, "change_population_by_percentage")
        if p == 0:
            return 0
        change = round(self.pop * (p / 100))
        # population always moves by at least one when asked to
        if non_zero and change == 0:
            change = 1 if p > 0 else -1
        self.pop += change
        if change_est_equally:
            self.pop_est = max(0.0, self.pop_est + change)
        return change

    def improve_population_estimate_by_count(self, n: float) -> None:
        _check_number(n, "improve_population_estimate_by_count")
        n = max(0.0, n)
        diff = abs(self.pop_est - self.pop)
        if diff <= n:
            self.pop_est = self.pop
        elif self.pop_est < self.pop:
            self.pop_est += n
        else:
            self.pop_est -= n

    def improve_population_estimate_by_percentage(self, p: float, skill_mult: float = 1.0) -> None:
        _check_number(p * skill_mult, "improve_population_estimate_by_percentage")
        p = max(0.0, (p * skill_mult) / 100)
        diff = abs(self.pop_est - self.pop)
        if diff <= p * self.pop_est:
            self.pop_est = self.pop
        elif self.pop_est < self.pop:
            self.pop_est = max(0.0, self.pop_est * (1 + p))
        else:
            self.pop_est = max(0.0, self.pop_est * (1 - p))


# ---------- City generation ----------


def create_city(name: str, rng=random) -> City:
    pop = rng.randint(int(POPULATION_THRESHOLD), int(1.5 * POPULATION_THRESHOLD))
    return City(
        name=name,
        pop=float(pop),
        pop_est=pop * (rng.random() + 0.5),
        comms=rng.randint(5, 150),
        chaos=0.0,
    )


def create_cities(rng=random) -> Dict[str, City]:
    return {name: create_city(name, rng) for name in CITY_NAMES}


def _pick_two(rng) -> tuple[str, str]:
    source = rng.choice(CITY_NAMES)
    dest = rng.choice(CITY_NAMES)
    while dest == source:
        dest = rng.choice(CITY_NAMES)
    return source, dest


def _grow_if_small(city: City) -> None:
    if city.pop < POP_GROWTH_CEILING:
        city.pop += BASE_POP_GROWTH


# ---------- Migration ----------


def trigger_migration(cities: Dict[str, City], source_name: str, rng=random) -> None:
    dest_name = rng.choice(CITY_NAMES)
    while dest_name == source_name:
        dest_name = rng.choice(CITY_NAMES)
    source = cities[source_name]
    dest = cities[dest_name]

    roll = rng.random()
    percentage = rng.randint(3, 15) / 100
    if roll < 0.05 and source.comms > 0:
        # a whole community moves, dragging more people along
        percentage *= rng.randint(2, 4)
        source.comms -= 1
        dest.comms += 1

    count = round(source.pop * percentage)
    source.pop -= count
    dest.pop += count
    _grow_if_small(dest)


def trigger_potential_migration(cities: Dict[str, City], source_name: str, chance: float, rng=random) -> None:
    if chance is None or math.isnan(chance):
        raise ValueError("Invalid 'chance' passed into trigger_potential_migration()")
    if chance > 1:
        chance /= 100
    if rng.random() < chance:
        trigger_migration(cities, source_name, rng)


# ---------- Random world events ----------


def _new_community(city: City, rng) -> None:
    city.comms += 1
    count = round(city.pop * rng.randint(10, 20) / 100)
    city.pop += count
    _grow_if_small(city)


def random_event(cities: Dict[str, City], rng=random, log: EventLogger = None) -> str:
    """
    Apply one entry of the weighted event table to a random source city.

    Returns the event kind so callers and tests can see which bucket fired.
    ``log`` receives the narrative line; pass None when event logging is off.
    """
    chance = rng.random()
    source_name, dest_name = _pick_two(rng)
    source = cities[source_name]
    dest = cities[dest_name]

    def emit(text: str) -> None:
        if log is not None:
            log(text)

    if chance <= EVENT_NEW_COMMUNITY:
        _new_community(source, rng)
        emit("Intelligence indicates that a new Synthoid community was formed in a city")
        return "new_community"

    if chance <= EVENT_COMMUNITY_MIGRATION:
        if source.comms <= 0:
            # nothing to migrate, the community forms in place instead
            _new_community(source, rng)
            emit("Intelligence indicates that a new Synthoid community was formed in a city")
            return "new_community"
        source.comms -= 1
        dest.comms += 1
        count = round(source.pop * rng.randint(10, 20) / 100)
        source.pop -= count
        dest.pop += count
        _grow_if_small(dest)
        emit(f"Intelligence indicates that a Synthoid community migrated from {source_name} to some other city")
        return "community_migration"

    if chance <= EVENT_NEW_SYNTHOIDS:
        count = round(source.pop * rng.randint(8, 24) / 100)
        source.pop += count
        _grow_if_small(source)
        emit(f"Intelligence indicates that the Synthoid population of {source_name} just changed significantly")
        return "new_synthoids"

    if chance <= EVENT_MIGRATION:
        trigger_migration(cities, source_name, rng)
        emit(
            f"Intelligence indicates that a large number of Synthoids migrated from {source_name} to some other city"
        )
        return "migration"

    if chance <= EVENT_RIOTS:
        source.change_chaos_by_count(1)
        source.change_chaos_by_percentage(rng.randint(5, 20))
        emit(f"Tensions between Synthoids and humans lead to riots in {source_name}! Chaos increased")
        return "riots"

    if chance <= EVENT_LESS_SYNTHOIDS:
        count = round(source.pop * rng.randint(8, 20) / 100)
        source.pop -= count
        emit(f"Intelligence indicates that the Synthoid population of {source_name} just changed significantly")
        return "less_synthoids"

    return "none"


def decay_chaos(cities: Dict[str, City], seconds: int) -> None:
    """Chaos goes down very slowly on its own."""
    for city in cities.values():
        city.chaos = max(0.0, city.chaos - CHAOS_DECAY_PER_SECOND * seconds)
