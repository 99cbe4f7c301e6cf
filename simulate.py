#!/usr/bin/env python3
"""
Headless engine session driven by stamina automation.

Metrics are appended to the run directory every ``--interval`` simulated
seconds, and a final snapshot is saved alongside them.

Example:
    python simulate.py --seconds 7200 --seed 1 --high contract Tracking --low general "Hyperbolic Regeneration Chamber" --thresh-high 0.9 --thresh-low 0.5
"""
from __future__ import annotations

import argparse
import random
from pathlib import Path
from typing import List, Optional

from actions import ActionIdentifier, find_action_id
from actor import SimulatedActor
from engine import CYCLES_PER_SECOND, Engine
from storage import RunStore


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a headless engine session.")
    parser.add_argument("--seconds", type=int, default=3600, help="Simulated seconds to run.")
    parser.add_argument("--seed", type=int, default=None, help="Seed for the engine RNG.")
    parser.add_argument("--high", nargs=2, metavar=("TYPE", "NAME"), default=["contract", "Tracking"],
                        help="Action to run while stamina is high.")
    parser.add_argument("--low", nargs=2, metavar=("TYPE", "NAME"), default=["general", "Training"],
                        help="Action to run while stamina is low.")
    parser.add_argument("--thresh-high", type=float, default=0.9, help="High stamina threshold, as a fraction of max.")
    parser.add_argument("--thresh-low", type=float, default=0.5, help="Low stamina threshold, as a fraction of max.")
    parser.add_argument("--interval", type=int, default=60, help="Seconds between metrics records.")
    parser.add_argument("--run-dir", type=Path, default=None, help="Directory to store run artifacts (defaults to runs/...).")
    parser.add_argument("--run-name", type=str, default=None, help="Optional run name. Defaults to sim_<timestamp>.")
    return parser.parse_args(argv)


def _resolve(pair: List[str]) -> ActionIdentifier:
    action_id = find_action_id(pair[0], pair[1])
    if action_id is None:
        raise SystemExit(f"Unknown action: {pair[0]} {pair[1]}")
    return action_id


def run_session(engine: Engine, actor: SimulatedActor, seconds: int, interval: int, store: Optional[RunStore] = None) -> int:
    """Feed ``seconds`` worth of cycles through ``process``; returns seconds actually processed."""
    elapsed = 0
    next_record = interval
    while elapsed < seconds:
        engine.store_cycles(CYCLES_PER_SECOND)
        elapsed += engine.process(actor)
        if store is not None and elapsed >= next_record:
            store.record(engine, actor, elapsed)
            next_record += interval
    return elapsed


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    store_config = {k: (str(v) if isinstance(v, Path) else v) for k, v in vars(args).items()}
    rng = random.Random(args.seed)

    actor = SimulatedActor()
    engine = Engine(rng=rng)
    engine.init(actor)
    engine.set_automate_action(True, _resolve(args.high))
    engine.set_automate_action(False, _resolve(args.low))
    engine.set_automate_threshold(True, args.thresh_high * engine.max_stamina)
    engine.set_automate_threshold(False, args.thresh_low * engine.max_stamina)
    engine.enable_automation(True)
    engine.start_action(engine.automate_action_high, actor)

    with RunStore(run_type="sim", root=args.run_dir or Path("runs"), name=args.run_name, config=store_config) as store:
        print(f"[sim] running {args.seconds}s into {store.dir}")
        elapsed = run_session(engine, actor, args.seconds, args.interval, store)
        path = store.save_snapshot(engine)
        store.record(engine, actor, elapsed, event="end")
        print(f"[sim] done: rank={engine.rank:.2f} money={actor.money:,.0f} saved to {path}")


if __name__ == "__main__":
    main()
