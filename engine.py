#!/usr/bin/env python3
"""
Engine state and the action/clock loop.

One ``Engine`` owns the cities, the per-session action catalogs and all
progression counters. The host feeds it game cycles with ``store_cycles``
and calls ``process`` from its loop; every call that touches the character
receives the ``Actor`` explicitly.
"""
from __future__ import annotations

import asyncio
import logging
import math
import random
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Deque, Dict, List, Mapping, Optional

from actions import (
    Action,
    ActionIdentifier,
    ActionType,
    Attempt,
    BlackOperation,
    Contract,
    ContractName,
    GeneralAction,
    GeneralActionName,
    LevelableAction,
    NAMES_BY_TYPE,
    Operation,
    OperationName,
    create_black_operations,
    create_contracts,
    create_general_actions,
    create_operations,
    dump_levelable,
    load_levelable,
)
from actor import Actor, RewardVector
from config import SIM_CONFIG
from console import execute_commands
from formulas import (
    add_offset,
    attempt,
    diplomacy_percentage,
    difficulty_multiplier,
    field_analysis_effectiveness,
    get_action_stats,
    get_action_time,
    get_availability,
)
from progression import change_rank, join_faction
from skills import EFFECTIVE_STAT_MULTS, SKILLS, Mult, compute_skill_multipliers
from team import resolve_team_casualties
from world import (
    CITY_NAMES,
    DEFAULT_CITY,
    City,
    create_cities,
    decay_chaos,
    random_event,
    trigger_potential_migration,
)

logger = logging.getLogger(__name__)

CYCLES_PER_SECOND = int(SIM_CONFIG.get("cycles_per_second", 5))
MAX_SECONDS_PER_PROCESS = int(SIM_CONFIG.get("max_seconds_per_process", 5))
STAMINA_GAIN_PER_SECOND = float(SIM_CONFIG.get("stamina_gain_per_second", 0.0085))
BASE_STAMINA_LOSS = float(SIM_CONFIG.get("base_stamina_loss", 0.285))
MAX_STAMINA_TO_GAIN_FACTOR = float(SIM_CONFIG.get("max_stamina_to_gain_factor", 70000))
ACTION_COUNT_GROWTH_PERIOD = float(SIM_CONFIG.get("action_count_growth_period", 480))
CONTRACT_SUCCESSES_PER_LEVEL = float(SIM_CONFIG.get("contract_successes_per_level", 3))
OPERATION_SUCCESSES_PER_LEVEL = float(SIM_CONFIG.get("operation_successes_per_level", 2.5))
CONTRACT_BASE_MONEY_GAIN = float(SIM_CONFIG.get("contract_base_money_gain", 250e3))
BASE_STAT_GAIN = float(SIM_CONFIG.get("base_stat_gain", 1))
BASE_INT_GAIN = float(SIM_CONFIG.get("base_int_gain", 0.003))
HRC_HP_GAIN = float(SIM_CONFIG.get("hrc_hp_gain", 2))
HRC_STAMINA_GAIN = float(SIM_CONFIG.get("hrc_stamina_gain", 1))  # percent of max stamina
RANDOM_EVENT_MIN_SECONDS = int(SIM_CONFIG.get("random_event_min_seconds", 240))
RANDOM_EVENT_MAX_SECONDS = int(SIM_CONFIG.get("random_event_max_seconds", 600))
MAX_CONSOLE_ENTRIES = int(SIM_CONFIG.get("max_console_entries", 100))
MAX_CONSOLE_HISTORY = int(SIM_CONFIG.get("max_console_history", 50))

TRAINING_EXP = 30.0
FIELD_ANALYSIS_EXP = 20.0
FIELD_ANALYSIS_RANK = 0.1
TRAINING_STAMINA_BONUS = 0.04
INCITE_GROWTH_SECONDS = 60 * 3

CONSOLE_BANNER = ["Operations Console", "Type 'help' to see console commands"]


@dataclass
class LoggingFlags:
    general: bool = True
    contracts: bool = True
    ops: bool = True
    blackops: bool = True
    events: bool = True


@dataclass
class Engine:
    rng: Any = field(default=random, repr=False, compare=False)

    cities: Dict[str, City] = field(default_factory=dict)
    city: str = DEFAULT_CITY

    # the single running action and its clock
    action: Optional[ActionIdentifier] = None
    action_time_to_complete: float = 0.0
    action_time_current: float = 0.0
    action_time_overflow: float = 0.0
    stored_cycles: int = 0
    random_event_counter: Optional[int] = None

    stamina: float = 1.0
    max_stamina: float = 1.0
    stamina_bonus: float = 0.0

    rank: float = 0.0
    max_rank: float = 0.0
    skill_points: int = 0
    total_skill_points: int = 0
    skills: Dict[str, int] = field(default_factory=dict)
    skill_multipliers: Dict[str, float] = field(default_factory=dict)

    team_size: int = 0
    team_lost: int = 0
    num_hosp: int = 0
    money_lost: float = 0.0
    num_black_ops_complete: int = 0

    contracts: Dict[str, Contract] = field(default_factory=dict)
    operations: Dict[str, Operation] = field(default_factory=dict)
    black_operations: Dict[str, BlackOperation] = field(default_factory=dict)
    general_actions: Dict[str, GeneralAction] = field(default_factory=dict)

    logging_flags: LoggingFlags = field(default_factory=LoggingFlags)
    automate_enabled: bool = False
    automate_action_high: Optional[ActionIdentifier] = None
    automate_thresh_high: float = 0.0
    automate_action_low: Optional[ActionIdentifier] = None
    automate_thresh_low: float = 0.0

    console_history: Deque[str] = field(default_factory=lambda: deque(maxlen=MAX_CONSOLE_HISTORY))
    console_logs: Deque[str] = field(default_factory=lambda: deque(CONSOLE_BANNER, maxlen=MAX_CONSOLE_ENTRIES))

    _next_update: Optional[asyncio.Future] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.cities:
            self.cities = create_cities(self.rng)
        if not self.contracts:
            self.contracts = create_contracts(self.rng)
        if not self.operations:
            self.operations = create_operations(self.rng)
        if not self.black_operations:
            self.black_operations = create_black_operations()
        if not self.general_actions:
            self.general_actions = create_general_actions()
        if self.random_event_counter is None:
            self.random_event_counter = self._roll_event_delay()
        self.update_skill_multipliers()

    def init(self, actor: Actor) -> None:
        """Size stamina to the actor's stats and fill it."""
        self.calculate_max_stamina(actor)
        self.stamina = self.max_stamina

    # ---------- Lookups ----------

    def get_current_city(self) -> City:
        return self.cities[self.city]

    def switch_city(self, name: str) -> Attempt:
        if name not in self.cities:
            return Attempt(False, f"Invalid city: {name}")
        self.city = name
        return Attempt(True, f"Moved to {name}")

    def get_action_object(self, action_id: ActionIdentifier) -> Action:
        kind = action_id.type
        if kind is ActionType.CONTRACT:
            table: Mapping[str, Action] = self.contracts
        elif kind is ActionType.OPERATION:
            table = self.operations
        elif kind is ActionType.BLACK_OP:
            table = self.black_operations
        elif kind is ActionType.GENERAL:
            table = self.general_actions
        else:
            raise RuntimeError(f"Unhandled action type: {kind!r}")
        if action_id.name not in table:
            raise ValueError(f"Unknown action: {action_id}")
        return table[action_id.name]

    def levelable_actions(self) -> List[LevelableAction]:
        return [*self.contracts.values(), *self.operations.values()]

    # ---------- Skills ----------

    def get_skill_level(self, name: str) -> int:
        return self.skills.get(name, 0)

    def get_skill_mult(self, name: str) -> float:
        return self.skill_multipliers.get(name, 1.0)

    def update_skill_multipliers(self) -> None:
        self.skill_multipliers = compute_skill_multipliers(self.skills)

    def set_skill_level(self, name: str, value: float) -> None:
        """Set a level directly, without spending points."""
        if name not in SKILLS:
            raise ValueError(f"Unknown skill: {name}")
        self.skills[name] = max(0, int(value))
        self.update_skill_multipliers()

    def upgrade_skill(self, name: str, count: int = 1) -> Attempt:
        skill = SKILLS.get(name)
        if skill is None:
            return Attempt(False, f"Invalid skill name: {name}")
        current = self.get_skill_level(name)
        ok, error, cost = skill.can_upgrade(current, self.skill_points, count)
        if not ok:
            return Attempt(False, f"Cannot upgrade {name}: {error}")
        self.skill_points -= cost
        self.set_skill_level(name, current + count)
        return Attempt(True, f"Upgraded skill {name} by {count} level{'s' if count > 1 else ''}")

    def get_effective_skill_level(self, actor: Actor, stat: str) -> float:
        mult_name = EFFECTIVE_STAT_MULTS.get(stat)
        value = actor.effective_stat(stat)
        if mult_name is None:
            return value
        return value * self.get_skill_mult(mult_name)

    def get_skill_mults_display(self) -> List[str]:
        return [f"{name}: x{mult:.3f}" for name, mult in self.skill_multipliers.items()]

    # ---------- Stamina ----------

    def calculate_stamina_penalty(self) -> float:
        return min(1.0, self.stamina / (0.5 * self.max_stamina))

    def calculate_max_stamina(self, actor: Actor) -> None:
        base = pow(self.get_effective_skill_level(actor, "agility"), 0.8)
        # never 0, the stamina penalty divides by it
        max_stamina = max(1e-9, (base + self.stamina_bonus) * self.get_skill_mult(Mult.STAMINA))
        if self.max_stamina == max_stamina:
            return
        old_max = self.max_stamina
        self.max_stamina = max_stamina
        if old_max > 0 and math.isfinite(old_max):
            self.stamina = min(max(0.0, self.max_stamina * self.stamina / old_max), max_stamina)
        else:
            self.stamina = max_stamina

    def calculate_stamina_gain_per_second(self, actor: Actor) -> float:
        eff_agility = self.get_effective_skill_level(actor, "agility")
        max_stamina_bonus = self.max_stamina / MAX_STAMINA_TO_GAIN_FACTOR
        gain = (STAMINA_GAIN_PER_SECOND + max_stamina_bonus) * pow(eff_agility, 0.17)
        return max(0.0, gain * self.get_skill_mult(Mult.STAMINA))

    def _spend_stamina(self, amount: float) -> None:
        self.stamina = max(0.0, self.stamina - amount)

    # ---------- Progression ----------

    def change_rank(self, actor: Actor, change: float) -> int:
        return change_rank(self, actor, change)

    def join_faction(self, actor: Actor) -> Attempt:
        return join_faction(self, actor)

    def prestige(self, actor: Actor) -> None:
        self.reset_action()
        # quietly fails on insufficient rank
        self.join_faction(actor)

    # ---------- Action control ----------

    def reset_action(self) -> None:
        self.action = None
        self.action_time_current = 0.0
        self.action_time_to_complete = 0.0

    def start_action(self, action_id: Optional[ActionIdentifier], actor: Actor) -> Attempt:
        """Start ``action_id``, or stop whatever is running when it is None."""
        if action_id is None:
            self.reset_action()
            self.action_time_overflow = 0.0
            return Attempt(True, "Stopped current action")
        if not actor.has_bypass_flag():
            actor.cancel_other_work()
        action = self.get_action_object(action_id)
        availability = get_availability(action, self)
        if not availability.available:
            return Attempt(False, f"Could not start action {action.name}: {availability.error}")
        self.reset_action()
        self.action = action_id
        self.action_time_current = 0.0
        self.action_time_to_complete = get_action_time(action, self, actor)
        return Attempt(True, f"Started action {action.name}")

    def set_action_level(self, action_id: ActionIdentifier, level: int, actor: Optional[Actor] = None) -> Attempt:
        action = self.get_action_object(action_id)
        if not isinstance(action, LevelableAction):
            return Attempt(False, f"{action.name} has no levels")
        if level < 1 or level > action.max_level:
            return Attempt(False, f"Level must be between 1 and {action.max_level}")
        action.level = int(level)
        if self.action == action_id and actor is not None:
            # restart so the new difficulty applies to the running attempt
            self.start_action(action_id, actor)
        return Attempt(True, f"{action.name} set to level {level}")

    def set_auto_level(self, action_id: ActionIdentifier, enabled: bool) -> Attempt:
        action = self.get_action_object(action_id)
        if not isinstance(action, LevelableAction):
            return Attempt(False, f"{action.name} has no levels")
        action.auto_level = bool(enabled)
        return Attempt(True, f"Auto-level {'enabled' if enabled else 'disabled'} for {action.name}")

    def set_team_count(self, action_id: ActionIdentifier, count: int) -> Attempt:
        action = self.get_action_object(action_id)
        if not isinstance(action, (Operation, BlackOperation)):
            return Attempt(False, f"{action.name} does not use a team")
        if count < 0 or count > self.team_size:
            return Attempt(False, f"Team count must be between 0 and {self.team_size}")
        action.team_count = int(count)
        return Attempt(True, f"Team size for {action.name} set to {count}")

    # ---------- Resolution ----------

    def _get_team_casualties_roll(self, lo: int, hi: int) -> int:
        return self.rng.randint(lo, hi)

    def _apply_failure_penalties(
        self, actor: Actor, action: Action, rank_scale: float, diff_mult: float
    ) -> tuple[float, float, bool]:
        loss = 0.0
        damage = 0.0
        hospitalized = False
        if action.rank_loss:
            loss = add_offset(action.rank_loss * rank_scale, 10, self.rng)
            self.change_rank(actor, -loss)
        if action.hp_loss:
            damage = math.ceil(add_offset(action.hp_loss * diff_mult, 10, self.rng))
            cost = actor.hospitalization_cost(damage)
            if actor.take_damage(damage):
                hospitalized = True
                self.num_hosp += 1
                self.money_lost += cost
        return loss, damage, hospitalized

    @staticmethod
    def _loss_text(actor: Actor, loss: float, damage: float, hospitalized: bool) -> str:
        text = ""
        if loss > 0:
            text += f" Lost {loss:.3f} rank."
        if damage > 0:
            text += f" Took {damage:.0f} damage."
            if hospitalized:
                text += f" {actor.name} was hospitalized."
        return text

    def complete_action(self, actor: Actor, action_id: ActionIdentifier) -> RewardVector:
        """Resolve ``action_id`` once and return what the actor earned."""
        action = self.get_action_object(action_id)
        kind = action.type
        if kind is ActionType.CONTRACT or kind is ActionType.OPERATION:
            return self._complete_levelable(actor, action)
        if kind is ActionType.BLACK_OP:
            return self._complete_black_op(actor, action)
        if kind is ActionType.GENERAL:
            return self._complete_general(actor, action)
        raise RuntimeError(f"Unhandled action type in complete_action: {kind!r}")

    def _complete_levelable(self, actor: Actor, action: LevelableAction) -> RewardVector:
        is_operation = action.type is ActionType.OPERATION
        diff_mult = difficulty_multiplier(action.get_difficulty())
        reward_mult = action.reward_multiplier()
        self._spend_stamina(BASE_STAMINA_LOSS * diff_mult)

        success = attempt(action, self, actor, self.rng)
        reward = get_action_stats(action, self, actor, success)
        action.count = max(0.0, action.count - 1)

        if success:
            action.successes += 1
            money = 0.0
            if not is_operation:
                money = CONTRACT_BASE_MONEY_GAIN * reward_mult * self.get_skill_mult(Mult.MONEY)
                reward.money = money
            action.set_max_level(OPERATION_SUCCESSES_PER_LEVEL if is_operation else CONTRACT_SUCCESSES_PER_LEVEL)
            gain = 0.0
            if action.rank_gain:
                gain = add_offset(action.rank_gain * reward_mult, 10, self.rng)
                self.change_rank(actor, gain)
            if is_operation and self.logging_flags.ops:
                self.log(f"{actor.name}: {action.name} successfully completed! Gained {gain:.3f} rank.")
            elif not is_operation and self.logging_flags.contracts:
                self.log(
                    f"{actor.name}: {action.name} contract successfully completed! "
                    f"Gained {gain:.3f} rank and ${money:,.0f}."
                )
        else:
            action.failures += 1
            loss, damage, hospitalized = self._apply_failure_penalties(actor, action, reward_mult, diff_mult)
            loss_text = self._loss_text(actor, loss, damage, hospitalized)
            if is_operation and self.logging_flags.ops:
                self.log(f"{actor.name}: {action.name} failed!{loss_text}")
            elif not is_operation and self.logging_flags.contracts:
                self.log(f"{actor.name}: {action.name} contract failed!{loss_text}")

        if is_operation:
            self._complete_operation(action, success)
        else:
            self._complete_contract(action, success)

        if action.auto_level:
            action.level = action.max_level
        return reward

    def _complete_contract(self, action: Contract, success: bool) -> None:
        if not success:
            return
        city = self.get_current_city()
        est_mult = self.get_skill_mult(Mult.SUCCESS_CHANCE_ESTIMATE)
        if action.name == ContractName.TRACKING:
            city.improve_population_estimate_by_count(self.rng.randint(100, 1000) * est_mult)
        elif action.name == ContractName.BOUNTY_HUNTER:
            city.change_population_by_count(-1, est_change=-1)
            city.change_chaos_by_count(0.02)
        elif action.name == ContractName.RETIREMENT:
            city.change_population_by_count(-1, est_change=-1)
            city.change_chaos_by_count(0.04)
        else:
            raise RuntimeError(f"Invalid contract name in _complete_contract: {action.name}")

    def _complete_operation(self, action: Operation, success: bool) -> None:
        deaths = resolve_team_casualties(action.team_count, self, success, self._get_team_casualties_roll)
        if deaths > 0 and self.logging_flags.ops:
            self.log(f"Lost {deaths} team members during this {action.name}")

        city = self.get_current_city()
        est_mult = self.get_skill_mult(Mult.SUCCESS_CHANCE_ESTIMATE)
        name = action.name
        if name == OperationName.INVESTIGATION:
            if success:
                city.improve_population_estimate_by_percentage(0.4 * est_mult)
            else:
                trigger_potential_migration(self.cities, self.city, 0.1, self.rng)
        elif name == OperationName.UNDERCOVER:
            if success:
                city.improve_population_estimate_by_percentage(0.8 * est_mult)
            else:
                trigger_potential_migration(self.cities, self.city, 0.15, self.rng)
        elif name == OperationName.STING:
            if success:
                city.change_population_by_percentage(-0.1, change_est_equally=True, non_zero=True)
            city.change_chaos_by_count(0.1)
        elif name == OperationName.RAID:
            if success:
                city.change_population_by_percentage(-1, change_est_equally=True, non_zero=True)
                city.comms = max(0, city.comms - 1)
            else:
                change = self.rng.randint(-10, -5) / 10
                city.change_population_by_percentage(change, change_est_equally=False, non_zero=True)
            city.change_chaos_by_percentage(self.rng.randint(1, 5))
        elif name == OperationName.STEALTH_RETIREMENT:
            if success:
                city.change_population_by_percentage(-0.5, change_est_equally=True, non_zero=True)
            city.change_chaos_by_percentage(self.rng.randint(-3, -1))
        elif name == OperationName.ASSASSINATION:
            if success:
                city.change_population_by_count(-1, est_change=-1)
            city.change_chaos_by_percentage(self.rng.randint(-5, 5))
        else:
            raise RuntimeError(f"Invalid operation name in _complete_operation: {name}")

    def _complete_black_op(self, actor: Actor, action: BlackOperation) -> RewardVector:
        diff_mult = difficulty_multiplier(action.get_difficulty())
        self._spend_stamina(BASE_STAMINA_LOSS * diff_mult)

        if attempt(action, self, actor, self.rng):
            reward = get_action_stats(action, self, actor, True)
            self.num_black_ops_complete += 1
            gain = 0.0
            if action.rank_gain:
                gain = add_offset(action.rank_gain, 10, self.rng)
                self.change_rank(actor, gain)
            deaths = resolve_team_casualties(action.team_count, self, True, self._get_team_casualties_roll)
            if self.logging_flags.blackops:
                self.log(f"{actor.name}: {action.name} successful! Gained {gain:.1f} rank.")
        else:
            reward = get_action_stats(action, self, actor, False)
            loss, damage, hospitalized = self._apply_failure_penalties(actor, action, 1.0, diff_mult)
            deaths = resolve_team_casualties(action.team_count, self, False, self._get_team_casualties_roll)
            if self.logging_flags.blackops:
                self.log(f"{actor.name}: {action.name} failed!{self._loss_text(actor, loss, damage, hospitalized)}")

        # black ops never repeat
        self.reset_action()

        if deaths > 0 and self.logging_flags.blackops:
            self.log(f"{actor.name}: You lost {deaths} team members during {action.name}.")
        return reward

    def _complete_general(self, actor: Actor, action: GeneralAction) -> RewardVector:
        reward = RewardVector()
        name = action.name
        if name == GeneralActionName.TRAINING:
            self._spend_stamina(0.5 * BASE_STAMINA_LOSS)
            stamina_gain = TRAINING_STAMINA_BONUS * self.get_skill_mult(Mult.STAMINA)
            for stat in ("strength", "defense", "dexterity", "agility"):
                reward.exp[stat] = TRAINING_EXP
            self.stamina_bonus += stamina_gain
            if self.logging_flags.general:
                self.log(
                    f"{actor.name}: Training completed. Gained {TRAINING_EXP:.0f} str, def, dex and agi exp, "
                    f"{stamina_gain:.3f} max stamina."
                )
        elif name == GeneralActionName.FIELD_ANALYSIS:
            eff = field_analysis_effectiveness(actor)
            reward.exp["hacking"] = FIELD_ANALYSIS_EXP
            reward.exp["charisma"] = FIELD_ANALYSIS_EXP
            reward.exp["intelligence"] = BASE_INT_GAIN
            self.change_rank(actor, FIELD_ANALYSIS_RANK)
            self.get_current_city().improve_population_estimate_by_percentage(
                eff * self.get_skill_mult(Mult.SUCCESS_CHANCE_ESTIMATE)
            )
            if self.logging_flags.general:
                self.log(
                    f"{actor.name}: Field analysis completed. Gained {FIELD_ANALYSIS_RANK} rank, "
                    f"{FIELD_ANALYSIS_EXP:.0f} hacking exp, and {FIELD_ANALYSIS_EXP:.0f} charisma exp."
                )
        elif name == GeneralActionName.RECRUITMENT:
            action_time = get_action_time(action, self, actor) * 1000
            if attempt(action, self, actor, self.rng):
                reward.exp["charisma"] = 2 * BASE_STAT_GAIN * action_time
                self.team_size += 1
                if self.logging_flags.general:
                    self.log(
                        f"{actor.name}: Successfully recruited a team member! "
                        f"Gained {reward.exp['charisma']:.1f} charisma exp."
                    )
            else:
                reward.exp["charisma"] = BASE_STAT_GAIN * action_time
                if self.logging_flags.general:
                    self.log(
                        f"{actor.name}: Failed to recruit a team member. "
                        f"Gained {reward.exp['charisma']:.1f} charisma exp."
                    )
        elif name == GeneralActionName.DIPLOMACY:
            pct = diplomacy_percentage(actor)
            self.get_current_city().change_chaos_by_percentage(-pct)
            if self.logging_flags.general:
                self.log(f"{actor.name}: Diplomacy completed. Chaos levels in the current city fell by {pct:.2f}%.")
        elif name == GeneralActionName.HYPERBOLIC_REGEN:
            actor.regenerate_hp(HRC_HP_GAIN)
            before = self.stamina
            stamina_gain = self.max_stamina * (HRC_STAMINA_GAIN / 100)
            self.stamina = min(self.max_stamina, self.stamina + stamina_gain)
            if self.logging_flags.general:
                self.log(
                    f"{actor.name}: Rested in Hyperbolic Regeneration Chamber. "
                    f"Restored {self.stamina - before:.3f} stamina."
                )
        elif name == GeneralActionName.INCITE_VIOLENCE:
            for levelable in self.levelable_actions():
                levelable.count += INCITE_GROWTH_SECONDS * levelable.growth(self.rng) / ACTION_COUNT_GROWTH_PERIOD
            if self.logging_flags.general:
                self.log(f"{actor.name}: Incited violence in the synthoid communities.")
            for city in self.cities.values():
                city.change_chaos_by_count(10)
                city.change_chaos_by_count(city.chaos / math.log10(city.chaos))
        else:
            raise RuntimeError(f"Invalid general action name in _complete_general: {name}")
        return reward

    def process_action(self, seconds: float, actor: Actor) -> None:
        """Advance the running action by ``seconds`` and resolve it when due."""
        if self.action is None:
            return
        action_id = self.action
        action = self.get_action_object(action_id)
        if not get_availability(action, self).available:
            self.reset_action()
            return

        # overflow from the previous completion is only applied now, in case
        # automation switched actions in between
        self.action_time_current += seconds + self.action_time_overflow
        self.action_time_overflow = 0.0
        if self.action_time_current < self.action_time_to_complete:
            return

        self.action_time_overflow = self.action_time_current - self.action_time_to_complete
        reward = self.complete_action(actor, action_id)
        if reward.money:
            actor.gain_money(reward.money)
        actor.gain_experience(reward)
        if action.type is not ActionType.BLACK_OP:
            if not self.start_action(action_id, actor).success:
                self.reset_action()

    # ---------- Clock ----------

    def store_cycles(self, num_cycles: int = 0) -> None:
        self.stored_cycles = max(0, int(self.stored_cycles + num_cycles))

    def _roll_event_delay(self) -> int:
        return self.rng.randint(RANDOM_EVENT_MIN_SECONDS, RANDOM_EVENT_MAX_SECONDS)

    def random_event(self) -> str:
        return random_event(self.cities, self.rng, self.log if self.logging_flags.events else None)

    def process(self, actor: Actor) -> int:
        """
        Consume buffered cycles in whole seconds and run one engine step.

        At most ``MAX_SECONDS_PER_PROCESS`` seconds are processed per call;
        the remaining cycles stay buffered for later calls. Returns the number
        of seconds processed.
        """
        if actor.has_other_work() and not actor.has_bypass_flag():
            if self.action is not None:
                msg = "Your action was cancelled because you started doing something else."
                if self.automate_enabled:
                    msg += " Your automation was disabled as well."
                    self.automate_enabled = False
                self.log(msg)
                logger.info("Action cancelled by other work for %s", actor.name)
            self.reset_action()

        if self.stamina <= 0 and self.action is not None:
            self.log("Your action was cancelled because your stamina hit 0")
            self.reset_action()

        if self.stored_cycles < CYCLES_PER_SECOND:
            return 0
        seconds = min(self.stored_cycles // CYCLES_PER_SECOND, MAX_SECONDS_PER_PROCESS)
        self.stored_cycles -= seconds * CYCLES_PER_SECOND

        self.calculate_max_stamina(actor)
        self.stamina = min(self.max_stamina, self.stamina + self.calculate_stamina_gain_per_second(actor) * seconds)

        for levelable in self.levelable_actions():
            levelable.count += seconds * levelable.growth(self.rng) / ACTION_COUNT_GROWTH_PERIOD

        decay_chaos(self.cities, seconds)

        self.random_event_counter -= seconds
        if self.random_event_counter <= 0:
            self.random_event()
            # add rather than set, the counter may have gone past zero
            self.random_event_counter += self._roll_event_delay()

        self.process_action(seconds, actor)
        self._run_automation(actor)

        if self._next_update is not None:
            if not self._next_update.done():
                self._next_update.set_result(seconds * 1000)
            self._next_update = None
        return seconds

    def next_update(self) -> asyncio.Future:
        """Future resolved with the processed milliseconds after the next step."""
        if self._next_update is None or self._next_update.done():
            self._next_update = asyncio.get_running_loop().create_future()
        return self._next_update

    # ---------- Automation ----------

    def _run_automation(self, actor: Actor) -> None:
        if not self.automate_enabled:
            return
        if self.stamina <= self.automate_thresh_low and self.action != self.automate_action_low:
            self.start_action(self.automate_action_low, actor)
        elif self.stamina >= self.automate_thresh_high and self.action != self.automate_action_high:
            self.start_action(self.automate_action_high, actor)

    def set_automate_action(self, high: bool, action_id: Optional[ActionIdentifier]) -> None:
        if high:
            self.automate_action_high = action_id
        else:
            self.automate_action_low = action_id

    def set_automate_threshold(self, high: bool, value: float) -> None:
        if math.isnan(value):
            raise ValueError("NaN stamina threshold")
        if high:
            self.automate_thresh_high = value
        else:
            self.automate_thresh_low = value

    def enable_automation(self, enabled: bool = True) -> Attempt:
        if not enabled:
            self.automate_enabled = False
            return Attempt(True, "Automation disabled")
        if self.automate_action_low is None or self.automate_action_high is None:
            return Attempt(False, "Failed to enable automation. Actions were not set")
        self.automate_enabled = True
        return Attempt(True, "Automation enabled")

    # ---------- Console ----------

    def post_to_console(self, text: str, save_to_logs: bool = True) -> None:
        if save_to_logs:
            self.console_logs.append(text)

    def log(self, text: str) -> None:
        self.post_to_console(f"[{datetime.now().strftime('%Y-%m-%d %H:%M:%S')}] {text}")

    def clear_console(self) -> None:
        self.console_logs.clear()

    def execute_console_commands(self, commands: str, actor: Actor) -> None:
        execute_commands(self, commands, actor)

    # ---------- Persistence ----------

    _SCALAR_KEYS = (
        "city",
        "action_time_to_complete",
        "action_time_current",
        "action_time_overflow",
        "stored_cycles",
        "random_event_counter",
        "stamina",
        "max_stamina",
        "stamina_bonus",
        "rank",
        "max_rank",
        "skill_points",
        "total_skill_points",
        "team_size",
        "team_lost",
        "num_hosp",
        "money_lost",
        "num_black_ops_complete",
        "automate_enabled",
        "automate_thresh_high",
        "automate_thresh_low",
    )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready state. Skill multipliers are derived and left out."""
        data: Dict[str, Any] = {key: getattr(self, key) for key in self._SCALAR_KEYS}
        data["action"] = _id_to_dict(self.action)
        data["automate_action_high"] = _id_to_dict(self.automate_action_high)
        data["automate_action_low"] = _id_to_dict(self.automate_action_low)
        data["cities"] = {name: asdict(city) for name, city in self.cities.items()}
        data["skills"] = dict(self.skills)
        data["logging"] = asdict(self.logging_flags)
        data["contracts"] = dump_levelable(self.contracts)
        data["operations"] = dump_levelable(self.operations)
        data["black_operations"] = {name: {"team_count": op.team_count} for name, op in self.black_operations.items()}
        data["console_history"] = list(self.console_history)
        data["console_logs"] = list(self.console_logs)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], actor: Actor, rng=random) -> "Engine":
        engine = cls(rng=rng)
        for key in cls._SCALAR_KEYS:
            if key in data:
                setattr(engine, key, data[key])
        if engine.city not in CITY_NAMES:
            logger.warning("Saved city %r unknown, falling back to %s", engine.city, DEFAULT_CITY)
            engine.city = DEFAULT_CITY
        engine.action = _id_from_dict(data.get("action"))
        engine.automate_action_high = _id_from_dict(data.get("automate_action_high"))
        engine.automate_action_low = _id_from_dict(data.get("automate_action_low"))

        for name, rec in (data.get("cities") or {}).items():
            if name not in engine.cities:
                logger.warning("Dropping saved data for unknown city %r", name)
                continue
            city = engine.cities[name]
            city.pop = float(rec.get("pop", city.pop))
            city.pop_est = float(rec.get("pop_est", city.pop_est))
            city.comms = max(0, int(rec.get("comms", city.comms)))
            city.chaos = max(0.0, float(rec.get("chaos", city.chaos)))

        engine.skills = {name: max(0, int(level)) for name, level in (data.get("skills") or {}).items() if name in SKILLS}
        engine.logging_flags = LoggingFlags(**{k: bool(v) for k, v in (data.get("logging") or {}).items() if k in asdict(LoggingFlags())})
        load_levelable(data.get("contracts"), engine.contracts)
        load_levelable(data.get("operations"), engine.operations)
        for name, rec in (data.get("black_operations") or {}).items():
            if name in engine.black_operations:
                engine.black_operations[name].team_count = max(0, int(rec.get("team_count", 0)))
        engine.console_history.extend(data.get("console_history") or [])
        if "console_logs" in data:
            engine.console_logs.clear()
            engine.console_logs.extend(data["console_logs"])

        engine.update_skill_multipliers()
        if not math.isfinite(engine.stamina) or not math.isfinite(engine.max_stamina) or engine.max_stamina == 0:
            logger.warning("Invalid stamina in save (%r / %r), recalculating", engine.stamina, engine.max_stamina)
            engine.stamina = 1.0
            engine.max_stamina = 1.0
            engine.calculate_max_stamina(actor)
        return engine


def _id_to_dict(action_id: Optional[ActionIdentifier]) -> Optional[Dict[str, str]]:
    if action_id is None:
        return None
    return {"type": action_id.type.value, "name": action_id.name}


def _id_from_dict(data: Optional[Mapping[str, Any]]) -> Optional[ActionIdentifier]:
    if not data:
        return None
    try:
        action_id = ActionIdentifier(ActionType(data["type"]), str(data["name"]))
    except (KeyError, ValueError):
        logger.warning("Dropping malformed saved action %r", data)
        return None
    if action_id.name not in NAMES_BY_TYPE[action_id.type]:
        logger.warning("Dropping saved action %s that no longer exists", action_id)
        return None
    return action_id
