import json
import random

from actor import SimulatedActor
from engine import Engine
from simulate import main, run_session


def test_run_session_processes_requested_seconds() -> None:
    actor = SimulatedActor()
    engine = Engine(rng=random.Random(4))
    engine.init(actor)

    assert run_session(engine, actor, 90, interval=30) == 90


def test_cli_writes_metrics_and_snapshot(tmp_path) -> None:
    main(
        [
            "--seconds", "180",
            "--seed", "5",
            "--interval", "60",
            "--run-dir", str(tmp_path),
            "--run-name", "cli",
        ]
    )

    run_dir = tmp_path / "cli"
    records = [json.loads(line) for line in (run_dir / "metrics.jsonl").read_text().splitlines()]
    assert [r["elapsed"] for r in records if "event" not in r] == [60, 120, 180]
    assert records[-1]["event"] == "end"
    assert (run_dir / "saves" / "engine.json").exists()
    meta = json.loads((run_dir / "meta.json").read_text())
    assert meta["config"]["seed"] == 5
    assert meta["summary"]["records"] == 4
    assert (run_dir / "saves" / "engine.console.txt").exists()
