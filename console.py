#!/usr/bin/env python3
"""
Text command dispatcher for the engine console.

Input is split on ``;`` into commands and each command into shell-style
tokens, so quoted names ("Bounty Hunter") survive. Every outcome, good or
bad, is written back to the console transcript; nothing here raises on
operator typos.
"""
from __future__ import annotations

import logging
import math
import shlex
from typing import TYPE_CHECKING, Callable, Dict, List

from actions import find_action_id, parse_action_type
from actor import Actor
from skills import SKILLS

if TYPE_CHECKING:
    from engine import Engine

logger = logging.getLogger(__name__)

INVALID_COMMAND = "Invalid console command"

HELP_TOPICS: Dict[str, List[str]] = {
    "helpList": [
        "Use 'help [command]' to get more information about a particular console command.",
        "",
        "    automate [var] [val] [hi/low] Configure simple automation for the engine",
        "    clear/cls                     Clear the console",
        "    help [cmd]                    Display this help text, or help text for a specific command",
        "    log [en/dis] [type]           Enable or disable logging for events and actions",
        "    skill [action] [name]         Level or display info about your skills",
        "    start [type] [name]           Start an action",
        "    stop                          Stop your current action",
    ],
    "automate": [
        "automate [var] [val] [hi/low]",
        "",
        "Switch between two actions depending on stamina. When stamina falls to or below the low",
        "threshold the low action starts; when it reaches the high threshold the high action starts.",
        "",
        "    automate stamina 100 hi",
        "    automate general 'Hyperbolic Regeneration Chamber' low",
        "    automate contract Tracking hi",
        "",
        "Use 'automate status', 'automate enable' and 'automate disable' to inspect and toggle it.",
    ],
    "clear": ["clear", "", "Clears the console"],
    "cls": ["cls", "", "Clears the console"],
    "help": [
        "help [command]",
        "",
        "Running 'help' with no arguments displays the general help text. Pass a command name",
        "for help on that specific command.",
    ],
    "log": [
        "log [en/dis] [type]",
        "",
        "Enable or disable logging. Valid types: all, general, contracts, ops, blackops, events",
    ],
    "skill": [
        "skill [action] [name]",
        "",
        "    skill list            Display all skills and their levels",
        "    skill list [name]     Display the level of one skill",
        "    skill level [name]    Spend skill points to raise a skill by one level",
    ],
    "start": [
        "start [type] [name]",
        "",
        "Start an action. Valid types: contract, operation, blackop, general.",
        "Names with spaces must be quoted: start contract 'Bounty Hunter'",
    ],
    "stop": ["stop", "", "Stop your current action and go idle."],
}

_LOG_CATEGORIES: Dict[str, str] = {
    "general": "general",
    "gen": "general",
    "contract": "contracts",
    "contracts": "contracts",
    "ops": "ops",
    "op": "ops",
    "operations": "ops",
    "operation": "ops",
    "blackops": "blackops",
    "blackop": "blackops",
    "events": "events",
    "event": "events",
    "random": "events",
}


def parse_command_args(command: str) -> List[str]:
    try:
        return shlex.split(command)
    except ValueError:
        # unbalanced quotes; fall back to whitespace tokens
        return command.split()


def _add_history(engine: "Engine", command: str) -> None:
    history = engine.console_history
    if history and history[-1] == command:
        return
    history.append(command)


def execute_commands(engine: "Engine", commands: str, actor: Actor) -> None:
    """Run a ``;``-separated batch of console commands in order."""
    commands = commands.strip()
    if not commands:
        return
    _add_history(engine, commands)
    for command in commands.split(";"):
        command = command.strip()
        if command:
            execute_command(engine, command, actor)


def execute_command(engine: "Engine", command: str, actor: Actor) -> None:
    engine.post_to_console(f"> {command}")
    args = parse_command_args(command)
    if not args:
        return
    name = args[0].lower()
    handler = _HANDLERS.get(name)
    if handler is None:
        logger.debug("Unknown console command %r", args[0])
        engine.post_to_console(f"{INVALID_COMMAND}: {args[0]}")
        return
    handler(engine, args[1:], actor)


# ---------- Handlers ----------


def _cmd_help(engine: "Engine", args: List[str], actor: Actor) -> None:
    if not args:
        for line in HELP_TOPICS["helpList"]:
            engine.post_to_console(line)
        return
    topics = [a.lower() for a in args if a.lower() in HELP_TOPICS]
    if not topics:
        engine.post_to_console(f"Invalid argument(s) for 'help' command: {' '.join(args)}")
        return
    # unknown topics among known ones are skipped
    for topic in topics:
        for line in HELP_TOPICS[topic]:
            engine.post_to_console(line)


def _cmd_clear(engine: "Engine", args: List[str], actor: Actor) -> None:
    engine.clear_console()


def _cmd_stop(engine: "Engine", args: List[str], actor: Actor) -> None:
    engine.post_to_console(engine.start_action(None, actor).message)


def _cmd_start(engine: "Engine", args: List[str], actor: Actor) -> None:
    if len(args) != 2:
        engine.post_to_console("Invalid usage of 'start' console command: start [type] [name]")
        engine.post_to_console("Use 'help start' for more info")
        return
    action_type = parse_action_type(args[0])
    if action_type is None:
        engine.post_to_console(f"Invalid action type specified: {args[0]}")
        return
    action_id = find_action_id(args[0], args[1])
    if action_id is None:
        engine.post_to_console(f"Invalid action name specified: {args[1]}")
        return
    result = engine.start_action(action_id, actor)
    engine.post_to_console(result.message)


def _cmd_skill(engine: "Engine", args: List[str], actor: Actor) -> None:
    if not args:
        engine.post_to_console("Invalid usage of 'skill' console command: skill [action] [name]")
        return
    sub = args[0].lower()
    if sub == "list":
        if len(args) == 1:
            engine.post_to_console("Skills: ")
            for skill_name in SKILLS:
                engine.post_to_console(f"{skill_name}: Level {engine.get_skill_level(skill_name)}")
            engine.post_to_console(" ")
            engine.post_to_console("Effects: ")
            for line in engine.get_skill_mults_display():
                engine.post_to_console(line)
            return
        skill_name = _find_skill(" ".join(args[1:]))
        if skill_name is None:
            engine.post_to_console(f"Invalid skill name: {' '.join(args[1:])}")
            return
        engine.post_to_console(f"{skill_name}: Level {engine.get_skill_level(skill_name)}")
        return
    if sub in ("level", "lvl"):
        if len(args) < 2:
            engine.post_to_console("Invalid usage of 'skill level' console command: skill level [name]")
            return
        skill_name = _find_skill(" ".join(args[1:]))
        if skill_name is None:
            engine.post_to_console(f"Invalid skill name: {' '.join(args[1:])}")
            return
        engine.post_to_console(engine.upgrade_skill(skill_name).message)
        return
    engine.post_to_console(f"Invalid 'skill' console command: {args[0]}")


def _find_skill(text: str):
    if text in SKILLS:
        return text
    wanted = "".join(text.lower().split())
    for name in SKILLS:
        if "".join(name.lower().split()) == wanted:
            return name
    return None


def _cmd_log(engine: "Engine", args: List[str], actor: Actor) -> None:
    if len(args) != 2:
        engine.post_to_console("Invalid usage of log command: log [enable/disable] [action/event]")
        engine.post_to_console("Use 'help log' for more details and examples")
        return
    toggle = args[0].lower()
    if toggle in ("en", "enable", "on"):
        flag = True
    elif toggle in ("d", "dis", "disable", "off"):
        flag = False
    else:
        engine.post_to_console(f"Invalid argument for log command: {args[0]}")
        return

    category = args[1].lower()
    flags = engine.logging_flags
    if category == "all":
        for attr in ("general", "contracts", "ops", "blackops", "events"):
            setattr(flags, attr, flag)
        engine.post_to_console(f"Logging {'enabled' if flag else 'disabled'} for everything")
        return
    attr = _LOG_CATEGORIES.get(category)
    if attr is None:
        engine.post_to_console(f"Invalid action/event type specified: {args[1]}")
        engine.post_to_console("Examples of valid action/event identifiers are: [general, contracts, ops, blackops, events]")
        return
    setattr(flags, attr, flag)
    engine.post_to_console(f"Logging {'enabled' if flag else 'disabled'} for {attr}")


def _cmd_automate(engine: "Engine", args: List[str], actor: Actor) -> None:
    if len(args) == 1:
        sub = args[0].lower()
        if sub in ("status", "s", "info", "i"):
            _automate_status(engine)
        elif sub in ("en", "on", "enable", "e", "true", "t"):
            engine.post_to_console(engine.enable_automation(True).message)
        elif sub in ("dis", "off", "disable", "d", "false", "f"):
            engine.post_to_console(engine.enable_automation(False).message)
        else:
            engine.post_to_console(f"Invalid argument for 'automate' console command: {args[0]}")
        return

    if len(args) != 3:
        engine.post_to_console("Invalid usage of 'automate' console command: automate [var] [val] [hi/low]")
        return

    level = args[2].lower()
    if level in ("hi", "high"):
        high = True
    elif level in ("lo", "low"):
        high = False
    else:
        engine.post_to_console("Invalid argument for 'automate' console command: " + args[2])
        return

    var = args[0].lower()
    if var in ("stamina", "stam"):
        try:
            value = float(args[1])
        except ValueError:
            value = math.nan
        if math.isnan(value):
            engine.post_to_console(f"Invalid value specified for stamina threshold (must be numeric): {args[1]}")
            return
        engine.set_automate_threshold(high, value)
        engine.post_to_console(f"Automate ({'HIGH' if high else 'LOW'}) stamina threshold set to {value}")
        return

    action_type = parse_action_type(args[0])
    if action_type is None:
        engine.post_to_console(f"Invalid use of automate command: {args[0]}")
        return
    action_id = find_action_id(args[0], args[1])
    if action_id is None:
        engine.post_to_console(f"Invalid action name specified: {args[1]}")
        return
    engine.set_automate_action(high, action_id)
    engine.post_to_console(f"Automate ({'HIGH' if high else 'LOW'}) action set to {action_id.name}")


def _automate_status(engine: "Engine") -> None:
    def describe(action_id) -> str:
        return "N/A" if action_id is None else action_id.name

    engine.post_to_console(f"Automation: {'enabled' if engine.automate_enabled else 'disabled'}")
    engine.post_to_console(f"When your stamina drops to {engine.automate_thresh_low:.0f}, you will automatically")
    engine.post_to_console(f"switch to {describe(engine.automate_action_low)}. When your stamina recovers to")
    engine.post_to_console(f"{engine.automate_thresh_high:.0f}, you will automatically switch to {describe(engine.automate_action_high)}.")


_HANDLERS: Dict[str, Callable[["Engine", List[str], Actor], None]] = {
    "automate": _cmd_automate,
    "clear": _cmd_clear,
    "cls": _cmd_clear,
    "help": _cmd_help,
    "log": _cmd_log,
    "skill": _cmd_skill,
    "start": _cmd_start,
    "stop": _cmd_stop,
}
