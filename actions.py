#!/usr/bin/env python3
"""Action catalog: identifiers, the four action kinds and their per-engine instances."""
from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple

from config import CATALOG_CONFIG

logger = logging.getLogger(__name__)

STAT_NAMES: Tuple[str, ...] = (
    "hacking",
    "strength",
    "defense",
    "dexterity",
    "agility",
    "charisma",
    "intelligence",
)


class ActionType(str, Enum):
    CONTRACT = "Contracts"
    OPERATION = "Operations"
    BLACK_OP = "Black Operations"
    GENERAL = "General Actions"


class ContractName:
    TRACKING = "Tracking"
    BOUNTY_HUNTER = "Bounty Hunter"
    RETIREMENT = "Retirement"


class OperationName:
    INVESTIGATION = "Investigation"
    UNDERCOVER = "Undercover Operation"
    STING = "Sting Operation"
    RAID = "Raid"
    STEALTH_RETIREMENT = "Stealth Retirement Operation"
    ASSASSINATION = "Assassination"


class GeneralActionName:
    TRAINING = "Training"
    FIELD_ANALYSIS = "Field Analysis"
    RECRUITMENT = "Recruitment"
    DIPLOMACY = "Diplomacy"
    HYPERBOLIC_REGEN = "Hyperbolic Regeneration Chamber"
    INCITE_VIOLENCE = "Incite Violence"


CONTRACT_NAMES: Tuple[str, ...] = tuple(entry["name"] for entry in CATALOG_CONFIG.get("contracts", []))
OPERATION_NAMES: Tuple[str, ...] = tuple(entry["name"] for entry in CATALOG_CONFIG.get("operations", []))
BLACK_OPERATION_NAMES: Tuple[str, ...] = tuple(
    entry["name"] for entry in CATALOG_CONFIG.get("black_operations", [])
)
GENERAL_ACTION_NAMES: Tuple[str, ...] = tuple(
    entry["name"] for entry in CATALOG_CONFIG.get("general_actions", [])
)


@dataclass(frozen=True)
class ActionIdentifier:
    """Value handle for a catalog entry. Never holds the mutable action itself."""

    type: ActionType
    name: str

    def __str__(self) -> str:
        return f"{self.type.value}: {self.name}"


@dataclass
class Availability:
    available: bool
    error: str = ""


@dataclass
class Attempt:
    """Outcome of an operator request: ``success`` plus a human-readable message."""

    success: bool
    message: str


def _even_weights() -> Dict[str, float]:
    return {stat: 1 / len(STAT_NAMES) for stat in STAT_NAMES}


def _default_decays() -> Dict[str, float]:
    return {stat: 0.9 for stat in STAT_NAMES}


@dataclass
class Action:
    name: str
    desc: str = ""
    base_difficulty: float = 100.0
    difficulty_fac: float = 1.01
    reward_fac: float = 1.02
    rank_gain: float = 0.0
    rank_loss: float = 0.0
    hp_loss: float = 0.0
    is_stealth: bool = False
    is_kill: bool = False
    weights: Dict[str, float] = field(default_factory=_even_weights)
    decays: Dict[str, float] = field(default_factory=_default_decays)

    type: ClassVar[ActionType]

    @property
    def id(self) -> ActionIdentifier:
        return ActionIdentifier(self.type, self.name)

    def get_difficulty(self) -> float:
        return self.base_difficulty


@dataclass
class LevelableAction(Action):
    """Shared state of contracts and operations: a regenerating count and a level."""

    count: float = 0.0
    growth_range: Tuple[int, int] = (0, 0)
    successes: int = 0
    failures: int = 0
    level: int = 1
    max_level: int = 1
    auto_level: bool = True

    def growth(self, rng=random) -> float:
        lo, hi = self.growth_range
        return rng.randint(lo, hi) / 10

    def get_difficulty(self) -> float:
        difficulty = self.base_difficulty * pow(self.difficulty_fac, self.level - 1)
        if math.isnan(difficulty):
            raise ValueError(f"Calculated NaN difficulty for {self.name}")
        return difficulty

    def successes_needed_for_next_level(self, successes_per_level: float) -> int:
        return math.ceil(0.5 * self.max_level * (2 * successes_per_level + (self.max_level - 1)))

    def set_max_level(self, successes_per_level: float) -> None:
        if self.successes >= self.successes_needed_for_next_level(successes_per_level):
            self.max_level += 1

    def reward_multiplier(self) -> float:
        return pow(self.reward_fac, self.level - 1)


@dataclass
class Contract(LevelableAction):
    type: ClassVar[ActionType] = ActionType.CONTRACT


@dataclass
class Operation(LevelableAction):
    reqd_rank: float = 0.0
    team_count: int = 0

    type: ClassVar[ActionType] = ActionType.OPERATION


@dataclass
class BlackOperation(Action):
    n: int = 0  # position in the chain; requires exactly n completed before it
    reqd_rank: float = 0.0
    team_count: int = 0

    type: ClassVar[ActionType] = ActionType.BLACK_OP


@dataclass
class GeneralAction(Action):
    action_time: Optional[float] = None  # None means the time depends on stats

    type: ClassVar[ActionType] = ActionType.GENERAL


# ---------- Catalog construction ----------


def _base_fields(entry: Mapping[str, Any]) -> Dict[str, Any]:
    weights = {stat: 0.0 for stat in STAT_NAMES}
    weights.update({k: float(v) for k, v in entry.get("weights", {}).items()})
    decays = _default_decays()
    decays.update({k: float(v) for k, v in entry.get("decays", {}).items()})
    unknown = (set(weights) | set(decays)) - set(STAT_NAMES)
    if unknown:
        raise ValueError(f"Unknown stat(s) {sorted(unknown)} in catalog entry {entry.get('name')!r}")
    return {
        "name": entry["name"],
        "desc": entry.get("desc", ""),
        "base_difficulty": float(entry.get("base_difficulty", 100)),
        "difficulty_fac": float(entry.get("difficulty_fac", 1.01)),
        "reward_fac": float(entry.get("reward_fac", 1.02)),
        "rank_gain": float(entry.get("rank_gain", 0)),
        "rank_loss": float(entry.get("rank_loss", 0)),
        "hp_loss": float(entry.get("hp_loss", 0)),
        "is_stealth": bool(entry.get("is_stealth", False)),
        "is_kill": bool(entry.get("is_kill", False)),
        "weights": weights,
        "decays": decays,
    }


def _levelable_fields(entry: Mapping[str, Any], rng) -> Dict[str, Any]:
    lo, hi = entry.get("count_range", [1, 100])
    growth_lo, growth_hi = entry.get("growth_range", [1, 20])
    return {
        **_base_fields(entry),
        "count": float(rng.randint(int(lo), int(hi))),
        "growth_range": (int(growth_lo), int(growth_hi)),
    }


def create_contracts(rng=random, catalog: Mapping[str, Any] = CATALOG_CONFIG) -> Dict[str, Contract]:
    return {e["name"]: Contract(**_levelable_fields(e, rng)) for e in catalog.get("contracts", [])}


def create_operations(rng=random, catalog: Mapping[str, Any] = CATALOG_CONFIG) -> Dict[str, Operation]:
    return {
        e["name"]: Operation(**_levelable_fields(e, rng), reqd_rank=float(e.get("reqd_rank", 0)))
        for e in catalog.get("operations", [])
    }


def create_black_operations(catalog: Mapping[str, Any] = CATALOG_CONFIG) -> Dict[str, BlackOperation]:
    return {
        e["name"]: BlackOperation(**_base_fields(e), n=i, reqd_rank=float(e.get("reqd_rank", 0)))
        for i, e in enumerate(catalog.get("black_operations", []))
    }


def create_general_actions(catalog: Mapping[str, Any] = CATALOG_CONFIG) -> Dict[str, GeneralAction]:
    actions: Dict[str, GeneralAction] = {}
    for e in catalog.get("general_actions", []):
        action_time = e.get("action_time")
        actions[e["name"]] = GeneralAction(
            **_base_fields(e),
            action_time=float(action_time) if action_time is not None else None,
        )
    return actions


# ---------- Save merge ----------

_LEVELABLE_SAVE_KEYS = ("count", "successes", "failures", "level", "max_level", "auto_level")


def dump_levelable(actions: Mapping[str, LevelableAction]) -> Dict[str, Dict[str, Any]]:
    out: Dict[str, Dict[str, Any]] = {}
    for name, action in actions.items():
        rec = {key: getattr(action, key) for key in _LEVELABLE_SAVE_KEYS}
        if isinstance(action, Operation):
            rec["team_count"] = action.team_count
        out[name] = rec
    return out


def load_levelable(saved: Optional[Mapping[str, Any]], target: Mapping[str, LevelableAction]) -> None:
    """
    Copy saved per-session counters onto freshly built catalog entries.

    Static data always comes from the current catalog. Saved names the catalog
    no longer knows are dropped; catalog entries missing from the save keep
    their fresh values.
    """
    if not saved:
        return
    for name, rec in saved.items():
        action = target.get(name)
        if action is None:
            logger.warning("Dropping saved data for unknown action %r", name)
            continue
        if not isinstance(rec, Mapping):
            logger.warning("Ignoring malformed saved data for action %r", name)
            continue
        for key in _LEVELABLE_SAVE_KEYS:
            if key not in rec:
                continue
            if key == "auto_level":
                action.auto_level = bool(rec[key])
            elif key in ("successes", "failures", "level", "max_level"):
                setattr(action, key, int(rec[key]))
            else:
                setattr(action, key, max(0.0, float(rec[key])))
        if isinstance(action, Operation) and "team_count" in rec:
            action.team_count = max(0, int(rec["team_count"]))
        action.max_level = max(1, action.max_level)
        action.level = min(max(1, action.level), action.max_level)


# ---------- Lookup by operator text ----------

_TYPE_SHORTHANDS: Dict[str, ActionType] = {
    "contract": ActionType.CONTRACT,
    "contracts": ActionType.CONTRACT,
    "contr": ActionType.CONTRACT,
    "operation": ActionType.OPERATION,
    "operations": ActionType.OPERATION,
    "op": ActionType.OPERATION,
    "ops": ActionType.OPERATION,
    "blackoperation": ActionType.BLACK_OP,
    "blackoperations": ActionType.BLACK_OP,
    "blackop": ActionType.BLACK_OP,
    "blackops": ActionType.BLACK_OP,
    "general": ActionType.GENERAL,
    "generalaction": ActionType.GENERAL,
    "generalactions": ActionType.GENERAL,
    "gen": ActionType.GENERAL,
}

NAMES_BY_TYPE: Dict[ActionType, Tuple[str, ...]] = {
    ActionType.CONTRACT: CONTRACT_NAMES,
    ActionType.OPERATION: OPERATION_NAMES,
    ActionType.BLACK_OP: BLACK_OPERATION_NAMES,
    ActionType.GENERAL: GENERAL_ACTION_NAMES,
}


def _squash(text: str) -> str:
    return "".join(text.lower().split())


def parse_action_type(text: str) -> Optional[ActionType]:
    return _TYPE_SHORTHANDS.get(_squash(text))


def find_action_id(type_text: str, name_text: str) -> Optional[ActionIdentifier]:
    """Resolve loose operator input (any case, any spacing) to an identifier."""
    if not type_text or not name_text:
        return None
    action_type = parse_action_type(type_text)
    if action_type is None:
        return None
    wanted = _squash(name_text)
    for name in NAMES_BY_TYPE[action_type]:
        if _squash(name) == wanted:
            return ActionIdentifier(action_type, name)
    return None


def all_action_ids() -> List[ActionIdentifier]:
    return [ActionIdentifier(t, name) for t, names in NAMES_BY_TYPE.items() for name in names]
