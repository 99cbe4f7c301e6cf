#!/usr/bin/env python3
"""Lightweight persistent storage for engine saves and headless runs."""
from __future__ import annotations

import json
import logging
import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from actor import Actor
from engine import Engine

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")


def session_metrics(engine: Engine, actor: Actor, elapsed: int) -> Dict[str, Any]:
    city = engine.get_current_city()
    return {
        "elapsed": elapsed,
        "rank": engine.rank,
        "skill_points": engine.skill_points,
        "stamina": engine.stamina,
        "max_stamina": engine.max_stamina,
        "action": engine.action.name if engine.action else None,
        "money": getattr(actor, "money", None),
        "hospitalizations": engine.num_hosp,
        "team_size": engine.team_size,
        "black_ops_complete": engine.num_black_ops_complete,
        "city": city.name,
        "city_chaos": city.chaos,
        "city_pop": city.pop,
    }


@dataclass
class RunStore:
    """
    Run directory for a headless engine session.

    Creates a dedicated directory under ``runs/`` (by default) with:
    - ``meta.json`` holding the session flags, start time and, once closed,
      a summary (records written, peak rank, last snapshot).
    - ``metrics.jsonl`` append-only session metrics, one record per interval.
    - ``saves/*.json`` engine snapshots, each next to a ``.console.txt``
      copy of the operations console transcript.
    """

    run_type: str
    root: Path = Path("runs")
    name: Optional[str] = None
    config: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.started_utc = _timestamp()
        self.name = self.name or f"{self.run_type}_{self.started_utc}"
        self.dir = (self.root / self.name).resolve()
        self.dir.mkdir(parents=True, exist_ok=True)

        self.records = 0
        self.peak_rank = 0.0
        self.last_snapshot: Optional[Path] = None
        self._write_meta()

        self.metrics_path = self.dir / "metrics.jsonl"
        self._metrics_fh = self.metrics_path.open("a", encoding="utf-8")

        self.save_dir = self.dir / "saves"
        self.save_dir.mkdir(exist_ok=True)

    def _write_meta(self, **summary: Any) -> None:
        meta = {"run_type": self.run_type, "created_utc": self.started_utc, "config": self.config}
        if summary:
            meta["summary"] = summary
        (self.dir / "meta.json").write_text(json.dumps(meta, indent=2), encoding="utf-8")

    def log(self, record: Dict[str, Any]) -> None:
        """Append a raw metrics record."""
        if not self._metrics_fh:
            return
        rec = {"ts": time.time(), **record}
        self._metrics_fh.write(json.dumps(rec) + "\n")
        self._metrics_fh.flush()
        self.records += 1
        rank = record.get("rank")
        if isinstance(rank, (int, float)):
            self.peak_rank = max(self.peak_rank, float(rank))

    def record(self, engine: Engine, actor: Actor, elapsed: int, event: Optional[str] = None) -> Dict[str, Any]:
        rec = session_metrics(engine, actor, elapsed)
        if event is not None:
            rec = {"event": event, **rec}
        self.log(rec)
        return rec

    def save_snapshot(self, engine: Engine, elapsed: Optional[int] = None) -> Path:
        """Save the engine as ``engine.json``, or ``engine_<elapsed>s.json`` mid-run."""
        stem = "engine" if elapsed is None else f"engine_{elapsed:06d}s"
        path = save_engine(self.save_dir / f"{stem}.json", engine)
        (self.save_dir / f"{stem}.console.txt").write_text("\n".join(engine.console_logs) + "\n", encoding="utf-8")
        self.last_snapshot = path
        return path

    def close(self) -> None:
        if self._metrics_fh:
            self._metrics_fh.close()
            self._metrics_fh = None
            self._write_meta(
                ended_utc=_timestamp(),
                records=self.records,
                peak_rank=self.peak_rank,
                last_snapshot=self.last_snapshot.name if self.last_snapshot else None,
            )

    def __enter__(self) -> "RunStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()


def save_engine(path: Path, engine: Engine) -> Path:
    path = Path(path).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(engine.to_dict(), indent=2), encoding="utf-8")
    tmp.replace(path)
    return path


def load_engine(path: Path, actor: Actor, rng=random) -> Engine:
    """
    Restore an engine from ``path``.

    A missing or unreadable file yields a fresh engine initialised for
    ``actor`` rather than an error; the caller still gets a playable session.
    """
    path = Path(path)
    if not path.exists():
        logger.info("No save at %s, starting a new engine", path)
        return _fresh(actor, rng)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Could not read save %s (%s), starting a new engine", path, exc)
        return _fresh(actor, rng)
    if not isinstance(data, dict):
        logger.warning("Save %s does not hold an object, starting a new engine", path)
        return _fresh(actor, rng)
    return Engine.from_dict(data, actor, rng=rng)


def _fresh(actor: Actor, rng) -> Engine:
    engine = Engine(rng=rng)
    engine.init(actor)
    return engine
