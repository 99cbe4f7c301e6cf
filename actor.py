#!/usr/bin/env python3
"""
The character the engine acts through.

The engine never reaches into a global player object. Every call that needs
stats, damage or money takes an ``Actor``; ``SimulatedActor`` is the in-repo
implementation used by the server, the headless runner and the tests.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol

from actions import STAT_NAMES

HOSPITAL_COST_PER_HP = 100e3


@dataclass
class RewardVector:
    """Experience per stat plus money produced by one completed action."""

    exp: Dict[str, float] = field(default_factory=dict)
    money: float = 0.0

    def total_exp(self) -> float:
        return sum(self.exp.values())


class Actor(Protocol):
    name: str

    def effective_stat(self, stat: str) -> float: ...

    def take_damage(self, amount: float) -> bool:
        """Apply damage; True when the actor was incapacitated by it."""
        ...

    def regenerate_hp(self, amount: float) -> None: ...

    def gain_experience(self, reward: RewardVector) -> None: ...

    def gain_money(self, amount: float) -> None: ...

    def has_bypass_flag(self) -> bool: ...

    def has_other_work(self) -> bool: ...

    def cancel_other_work(self) -> None: ...

    def hospitalization_cost(self, damage: float) -> float: ...

    def faction_favor(self) -> Optional[float]:
        """Favor with the allegiance group, or None when not a member."""
        ...

    def join_faction(self) -> None: ...

    def gain_faction_reputation(self, amount: float) -> None: ...


def calculate_skill(exp: float, mult: float = 1.0) -> int:
    """Stat level reached with ``exp`` experience (never below 1)."""
    return max(math.floor(mult * (32 * math.log(exp + 534.6) - 200)), 1)


@dataclass
class SimulatedActor:
    name: str = "Agent"
    exp: Dict[str, float] = field(default_factory=lambda: {stat: 0.0 for stat in STAT_NAMES})
    stat_mults: Dict[str, float] = field(default_factory=dict)
    hp: float = 10.0
    money: float = 0.0
    other_work: Optional[str] = None  # whatever else the host has the actor doing
    bypass: bool = False  # keeps other work running alongside actions
    faction_member: bool = False
    favor: float = 0.0
    reputation: float = 0.0
    hospitalizations: int = 0

    def effective_stat(self, stat: str) -> float:
        if stat not in self.exp:
            raise KeyError(f"Unknown stat: {stat}")
        return float(calculate_skill(self.exp[stat], self.stat_mults.get(stat, 1.0)))

    @property
    def max_hp(self) -> float:
        return math.floor(10 + self.effective_stat("defense") / 10)

    def take_damage(self, amount: float) -> bool:
        self.hp -= amount
        if self.hp <= 0:
            self.hospitalize()
            return True
        return False

    def hospitalize(self) -> None:
        self.hospitalizations += 1
        self.hp = self.max_hp

    def regenerate_hp(self, amount: float) -> None:
        self.hp = min(self.max_hp, self.hp + amount)

    def gain_experience(self, reward: RewardVector) -> None:
        for stat, value in reward.exp.items():
            if value:
                self.exp[stat] = max(0.0, self.exp.get(stat, 0.0) + value)

    def gain_money(self, amount: float) -> None:
        self.money += amount

    def has_bypass_flag(self) -> bool:
        return self.bypass

    def has_other_work(self) -> bool:
        return self.other_work is not None

    def cancel_other_work(self) -> None:
        self.other_work = None

    def hospitalization_cost(self, damage: float) -> float:
        return max(0.0, damage) * HOSPITAL_COST_PER_HP

    def faction_favor(self) -> Optional[float]:
        return self.favor if self.faction_member else None

    def join_faction(self) -> None:
        self.faction_member = True

    def gain_faction_reputation(self, amount: float) -> None:
        self.reputation += amount
