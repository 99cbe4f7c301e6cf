#!/usr/bin/env python3
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from config import CATALOG_CONFIG


class Mult:
    """Names of the multipliers skills feed into."""

    SUCCESS_CHANCE_ALL = "SuccessChanceAll"
    SUCCESS_CHANCE_STEALTH = "SuccessChanceStealth"
    SUCCESS_CHANCE_KILL = "SuccessChanceKill"
    SUCCESS_CHANCE_CONTRACT = "SuccessChanceContract"
    SUCCESS_CHANCE_OPERATION = "SuccessChanceOperation"
    SUCCESS_CHANCE_ESTIMATE = "SuccessChanceEstimate"
    ACTION_TIME = "ActionTime"
    EFF_STR = "EffStr"
    EFF_DEF = "EffDef"
    EFF_DEX = "EffDex"
    EFF_AGI = "EffAgi"
    EFF_CHA = "EffCha"
    STAMINA = "Stamina"
    MONEY = "Money"
    EXP_GAIN = "ExpGain"


# stat name -> multiplier applied to it when computing effective stats
EFFECTIVE_STAT_MULTS: Dict[str, str] = {
    "strength": Mult.EFF_STR,
    "defense": Mult.EFF_DEF,
    "dexterity": Mult.EFF_DEX,
    "agility": Mult.EFF_AGI,
    "charisma": Mult.EFF_CHA,
}


@dataclass
class Skill:
    name: str
    base_cost: float = 1.0
    cost_inc: float = 1.0
    max_level: float = math.inf
    # multiplier name -> percentage gained per level (may be negative)
    mults: Dict[str, float] = field(default_factory=dict)

    def calculate_cost(self, current_level: int, count: int = 1) -> int:
        """Total points for ``count`` levels starting from ``current_level``."""
        total = count * self.base_cost + self.cost_inc * (count * current_level + count * (count - 1) / 2)
        return math.floor(total)

    def can_upgrade(self, current_level: int, skill_points: float, count: int = 1) -> tuple[bool, str, int]:
        if not isinstance(count, int) or count < 1:
            return False, f"Invalid skill level count: {count}", 0
        if current_level + count > self.max_level:
            return False, "Skill is already at max level", 0
        cost = self.calculate_cost(current_level, count)
        if cost > skill_points:
            return False, f"Insufficient skill points (need {cost})", cost
        return True, "", cost


def _load_skills(catalog: Mapping[str, Any]) -> Dict[str, Skill]:
    skills: Dict[str, Skill] = {}
    for entry in catalog.get("skills", []):
        max_level = entry.get("max_level")
        skills[entry["name"]] = Skill(
            name=entry["name"],
            base_cost=float(entry.get("base_cost", 1)),
            cost_inc=float(entry.get("cost_inc", 1)),
            max_level=float(max_level) if max_level is not None else math.inf,
            mults={k: float(v) for k, v in entry.get("mults", {}).items()},
        )
    return skills


SKILLS: Dict[str, Skill] = _load_skills(CATALOG_CONFIG)


def compute_skill_multipliers(levels: Mapping[str, int], skills: Optional[Mapping[str, Skill]] = None) -> Dict[str, float]:
    """Rebuild every multiplier from the current levels. Unset multipliers mean 1."""
    skills = SKILLS if skills is None else skills
    mults: Dict[str, float] = {}
    for skill in skills.values():
        level = levels.get(skill.name, 0)
        if not level:
            continue
        for mult_name, base in skill.mults.items():
            factor = 1 + (base * level) / 100
            mults[mult_name] = max(0.0, mults.get(mult_name, 1.0) * factor)
    return mults
