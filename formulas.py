#!/usr/bin/env python3
"""
Pure success, timing and reward formulas.

Everything here reads engine and actor state and returns numbers; nothing
mutates. ``difficulty_multiplier`` is the single source for reward shaping,
stamina cost and damage scaling.
"""
from __future__ import annotations

import math
import random
from typing import TYPE_CHECKING, Tuple

from actions import Action, ActionType, Availability, GeneralActionName, OperationName
from actor import Actor, RewardVector
from config import SIM_CONFIG
from skills import Mult

if TYPE_CHECKING:
    from engine import Engine

DIFF_MULT_EXPONENTIAL_FACTOR = float(SIM_CONFIG.get("diff_mult_exponential_factor", 0.28))
DIFF_MULT_LINEAR_FACTOR = float(SIM_CONFIG.get("diff_mult_linear_factor", 650))
DIFFICULTY_TO_TIME_FACTOR = float(SIM_CONFIG.get("difficulty_to_time_factor", 10))
EFF_AGI_LINEAR_FACTOR = float(SIM_CONFIG.get("eff_agi_linear_factor", 10e3))
EFF_DEX_LINEAR_FACTOR = float(SIM_CONFIG.get("eff_dex_linear_factor", 10e3))
EFF_AGI_EXPONENTIAL_FACTOR = float(SIM_CONFIG.get("eff_agi_exponential_factor", 0.04))
EFF_DEX_EXPONENTIAL_FACTOR = float(SIM_CONFIG.get("eff_dex_exponential_factor", 0.035))
POPULATION_THRESHOLD = float(SIM_CONFIG.get("population_threshold", 1e9))
POPULATION_EXPONENT = float(SIM_CONFIG.get("population_exponent", 0.7))
CHAOS_THRESHOLD = float(SIM_CONFIG.get("chaos_threshold", 50))
BASE_STAT_GAIN = float(SIM_CONFIG.get("base_stat_gain", 1))
BASE_INT_GAIN = float(SIM_CONFIG.get("base_int_gain", 0.003))
BASE_RECRUITMENT_TIME_NEEDED = float(SIM_CONFIG.get("base_recruitment_time_needed", 300))


def add_offset(midpoint: float, percentage: float, rng=random) -> float:
    """Jitter ``midpoint`` uniformly by up to ``percentage`` percent either way."""
    if percentage < 0 or percentage > 100:
        return midpoint
    offset = midpoint * (percentage / 100)
    return midpoint + (rng.random() * (offset * 2) - offset)


def difficulty_multiplier(difficulty: float) -> float:
    return pow(difficulty, DIFF_MULT_EXPONENTIAL_FACTOR) + difficulty / DIFF_MULT_LINEAR_FACTOR


def intelligence_bonus(intelligence: float, weight: float = 1.0) -> float:
    return 1 + (weight * pow(max(0.0, intelligence), 0.8)) / 600


# ---------- Availability ----------


def get_availability(action: Action, engine: "Engine") -> Availability:
    kind = action.type
    if kind is ActionType.CONTRACT:
        if action.count < 1:
            return Availability(False, "Insufficient action count")
        return Availability(True)
    if kind is ActionType.OPERATION:
        if action.count < 1:
            return Availability(False, "Insufficient action count")
        if action.team_count > engine.team_size:
            return Availability(False, f"Insufficient team members ({engine.team_size} / {action.team_count})")
        if action.name == OperationName.RAID and engine.get_current_city().comms <= 0:
            return Availability(False, "No known Synthoid communities in current city")
        return Availability(True)
    if kind is ActionType.BLACK_OP:
        if engine.num_black_ops_complete < action.n:
            return Availability(False, "Have not completed the previous Black Operation")
        if engine.num_black_ops_complete > action.n:
            return Availability(False, "Already completed")
        if engine.rank < action.reqd_rank:
            return Availability(False, "Insufficient rank")
        if action.team_count > engine.team_size:
            return Availability(False, f"Insufficient team members ({engine.team_size} / {action.team_count})")
        return Availability(True)
    if kind is ActionType.GENERAL:
        return Availability(True)
    raise RuntimeError(f"Unhandled action type in get_availability: {kind!r}")


# ---------- Time ----------


def recruitment_time(engine: "Engine", actor: Actor) -> float:
    eff_charisma = engine.get_effective_skill_level(actor, "charisma")
    charisma_factor = pow(eff_charisma, 0.81) + eff_charisma / 90
    return max(10, round(BASE_RECRUITMENT_TIME_NEEDED - charisma_factor))


def get_action_time(action: Action, engine: "Engine", actor: Actor) -> float:
    """Seconds needed to complete ``action``; never below 1."""
    kind = action.type
    if kind is ActionType.GENERAL:
        if action.action_time is not None:
            return max(1.0, action.action_time)
        if action.name == GeneralActionName.RECRUITMENT:
            return recruitment_time(engine, actor)
        raise RuntimeError(f"General action without a time: {action.name}")
    if kind not in (ActionType.CONTRACT, ActionType.OPERATION, ActionType.BLACK_OP):
        raise RuntimeError(f"Unhandled action type in get_action_time: {kind!r}")

    base_time = action.get_difficulty() / DIFFICULTY_TO_TIME_FACTOR
    skill_fac = engine.get_skill_mult(Mult.ACTION_TIME)  # always <= 1
    eff_agility = engine.get_effective_skill_level(actor, "agility")
    eff_dexterity = engine.get_effective_skill_level(actor, "dexterity")
    stat_fac = 0.5 * (
        pow(eff_agility, EFF_AGI_EXPONENTIAL_FACTOR)
        + pow(eff_dexterity, EFF_DEX_EXPONENTIAL_FACTOR)
        + eff_agility / EFF_AGI_LINEAR_FACTOR
        + eff_dexterity / EFF_DEX_LINEAR_FACTOR
    )
    stat_fac = max(stat_fac, 1e-9)
    return math.ceil(max(1.0, (base_time * skill_fac) / stat_fac))


# ---------- Success chance ----------


def recruitment_success_chance(engine: "Engine", actor: Actor) -> float:
    return min(1.0, pow(actor.effective_stat("charisma"), 0.45) / (engine.team_size + 1))


def team_success_bonus(action: Action, engine: "Engine") -> float:
    team_count = min(action.team_count, engine.team_size)
    if team_count > 0:
        return pow(team_count, 0.05)
    return 1.0


def chaos_competence_penalty(engine: "Engine", est: bool = False) -> float:
    city = engine.get_current_city()
    pop = city.pop_est if est else city.pop
    return pow(max(0.0, pop) / POPULATION_THRESHOLD, POPULATION_EXPONENT)


def chaos_difficulty_bonus(engine: "Engine") -> float:
    city = engine.get_current_city()
    if city.chaos > CHAOS_THRESHOLD:
        return pow(1 + (city.chaos - CHAOS_THRESHOLD), 0.5)
    return 1.0


def get_success_chance(action: Action, engine: "Engine", actor: Actor, est: bool = False) -> float:
    """
    Probability in [0, 1] that one attempt at ``action`` succeeds.

    ``est`` swaps the real population for the operator's estimate; use it only
    for display. Resolution always uses the real numbers.
    """
    kind = action.type
    if kind is ActionType.GENERAL:
        if action.name == GeneralActionName.RECRUITMENT:
            return recruitment_success_chance(engine, actor)
        return 1.0
    if kind not in (ActionType.CONTRACT, ActionType.OPERATION, ActionType.BLACK_OP):
        raise RuntimeError(f"Unhandled action type in get_success_chance: {kind!r}")

    difficulty = action.get_difficulty()
    competence = 0.0
    for stat, weight in action.weights.items():
        if weight == 0:
            continue
        eff = engine.get_effective_skill_level(actor, stat)
        competence += weight * pow(max(0.0, eff), action.decays.get(stat, 0.9))

    competence *= intelligence_bonus(actor.effective_stat("intelligence"), 0.75)
    competence *= engine.calculate_stamina_penalty()

    if kind is ActionType.CONTRACT:
        competence *= chaos_competence_penalty(engine, est)
        difficulty *= chaos_difficulty_bonus(engine)
        competence *= engine.get_skill_mult(Mult.SUCCESS_CHANCE_CONTRACT)
    elif kind is ActionType.OPERATION:
        if action.name == OperationName.RAID and engine.get_current_city().comms <= 0:
            return 0.0
        competence *= team_success_bonus(action, engine)
        competence *= chaos_competence_penalty(engine, est)
        difficulty *= chaos_difficulty_bonus(engine)
        competence *= engine.get_skill_mult(Mult.SUCCESS_CHANCE_OPERATION)
    else:
        # black ops ignore city conditions
        competence *= team_success_bonus(action, engine)
        competence *= engine.get_skill_mult(Mult.SUCCESS_CHANCE_OPERATION)

    competence *= engine.get_skill_mult(Mult.SUCCESS_CHANCE_ALL)
    if action.is_stealth:
        competence *= engine.get_skill_mult(Mult.SUCCESS_CHANCE_STEALTH)
    if action.is_kill:
        competence *= engine.get_skill_mult(Mult.SUCCESS_CHANCE_KILL)

    chance = competence / difficulty
    if math.isnan(chance):
        raise ValueError(f"Success chance for {action.name} calculated to be NaN")
    return min(1.0, max(0.0, chance))


def get_est_success_chance(action: Action, engine: "Engine", actor: Actor) -> Tuple[float, float]:
    """Displayed (low, high) band: the estimate widened by its distance from the truth."""
    est = get_success_chance(action, engine, actor, est=True)
    real = get_success_chance(action, engine, actor)
    diff = abs(real - est)
    return max(0.0, est - diff), min(1.0, est + diff)


def attempt(action: Action, engine: "Engine", actor: Actor, rng=random) -> bool:
    return rng.random() < get_success_chance(action, engine, actor)


# ---------- Rewards ----------


def get_action_stats(action: Action, engine: "Engine", actor: Actor, success: bool) -> RewardVector:
    """Experience earned by a contract, operation or black op attempt."""
    diff_mult = difficulty_multiplier(action.get_difficulty())
    time = get_action_time(action, engine, actor)
    success_mult = 1 if success else 0.5

    unweighted_gain = time * BASE_STAT_GAIN * success_mult * diff_mult
    unweighted_int_gain = time * BASE_INT_GAIN * success_mult * diff_mult
    skill_mult = engine.get_skill_mult(Mult.EXP_GAIN)

    exp = {}
    for stat, weight in action.weights.items():
        base = unweighted_int_gain if stat == "intelligence" else unweighted_gain
        exp[stat] = base * weight * skill_mult
    return RewardVector(exp=exp)


def diplomacy_percentage(actor: Actor) -> float:
    """Percent by which Diplomacy lowers city chaos (2 means 2%)."""
    charisma = actor.effective_stat("charisma")
    return pow(charisma, 0.045) + charisma / 1e3


def field_analysis_effectiveness(actor: Actor) -> float:
    eff = (
        0.04 * pow(actor.effective_stat("hacking"), 0.3)
        + 0.04 * pow(actor.effective_stat("intelligence"), 0.9)
        + 0.02 * pow(actor.effective_stat("charisma"), 0.3)
    )
    if math.isnan(eff) or eff < 0:
        raise ValueError("Field Analysis effectiveness calculated to be NaN or negative")
    return eff
