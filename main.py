#!/usr/bin/env python3
from __future__ import annotations

import asyncio
import os
import random
import traceback
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from actor import SimulatedActor
from config import SIM_CONFIG
from engine import CYCLES_PER_SECOND, Engine
from formulas import get_action_time, get_est_success_chance
from storage import load_engine, save_engine

TICK_DELAY: float = float(SIM_CONFIG.get("tick_delay", 0.2))
AUTOSAVE_PATH: str = os.environ.get("AUTOSAVE_PATH", SIM_CONFIG.get("autosave_path", ""))
CONSOLE_TAIL: int = 40

BASE_DIR = Path(__file__).resolve().parent

_simulation_task: asyncio.Task | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global engine
    if AUTOSAVE_PATH:
        async with engine_lock:
            engine = load_engine(BASE_DIR / AUTOSAVE_PATH, actor)
        print(f"SIM: loaded engine state from {AUTOSAVE_PATH}")
    await start_simulation()
    try:
        yield
    finally:
        if _simulation_task:
            _simulation_task.cancel()
            await asyncio.gather(_simulation_task, return_exceptions=True)
        if AUTOSAVE_PATH:
            async with engine_lock:
                path = save_engine(BASE_DIR / AUTOSAVE_PATH, engine)
            print(f"SIM: saved engine state to {path}")


app = FastAPI(lifespan=lifespan)

print(">>> Starting engine host with TICK_DELAY =", TICK_DELAY)

actor = SimulatedActor()
engine: Engine = Engine()
engine.init(actor)
engine_lock = asyncio.Lock()


class ConsoleRequest(BaseModel):
    command: str


def _city_payload(name: str) -> Dict[str, Any]:
    city = engine.cities[name]
    return {
        "name": city.name,
        "pop_est": city.pop_est,
        "comms": city.comms,
        "chaos": city.chaos,
        "current": name == engine.city,
    }


def _action_payload() -> Dict[str, Any] | None:
    if engine.action is None:
        return None
    action = engine.get_action_object(engine.action)
    low, high = get_est_success_chance(action, engine, actor)
    return {
        "type": engine.action.type.value,
        "name": engine.action.name,
        "time_current": engine.action_time_current,
        "time_to_complete": engine.action_time_to_complete,
        "est_success_chance": [low, high],
    }


def state_payload() -> Dict[str, Any]:
    """Operator-facing snapshot. Real populations stay hidden, only estimates go out."""
    return {
        "tick_delay": TICK_DELAY,
        "tick_delay_ms": int(TICK_DELAY * 1000),
        "city": engine.city,
        "cities": [_city_payload(name) for name in engine.cities],
        "action": _action_payload(),
        "rank": engine.rank,
        "skill_points": engine.skill_points,
        "stamina": engine.stamina,
        "max_stamina": engine.max_stamina,
        "team_size": engine.team_size,
        "num_black_ops_complete": engine.num_black_ops_complete,
        "skills": dict(engine.skills),
        "automate_enabled": engine.automate_enabled,
        "actor": {"name": actor.name, "hp": actor.hp, "max_hp": actor.max_hp, "money": actor.money},
        "contracts": {
            name: {"count": c.count, "level": c.level, "max_level": c.max_level, "time": get_action_time(c, engine, actor)}
            for name, c in engine.contracts.items()
        },
        "operations": {
            name: {
                "count": op.count,
                "level": op.level,
                "max_level": op.max_level,
                "team_count": op.team_count,
                "time": get_action_time(op, engine, actor),
            }
            for name, op in engine.operations.items()
        },
        "console_tail": list(engine.console_logs)[-CONSOLE_TAIL:],
    }


@app.get("/")
async def index():
    """Lightweight health endpoint for the backend."""
    return JSONResponse({"status": "ok", "service": "engine-host"})


@app.get("/state")
async def state_endpoint():
    async with engine_lock:
        data = state_payload()
    return JSONResponse(data)


@app.get("/city/{name}")
async def city_detail(name: str):
    """Return one region's operator view."""
    async with engine_lock:
        if name not in engine.cities:
            return JSONResponse({"error": "not found"}, status_code=404)
        data = _city_payload(name)
    return JSONResponse(data)


@app.post("/console")
async def console_endpoint(req: ConsoleRequest):
    """Execute a console line and return the transcript tail."""
    async with engine_lock:
        engine.execute_console_commands(req.command, actor)
        tail = list(engine.console_logs)[-CONSOLE_TAIL:]
    return JSONResponse({"logs": tail})


@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    print("WS: incoming connection")
    await ws.accept()
    print("WS: client accepted")
    try:
        while True:
            async with engine_lock:
                payload = state_payload()
            await ws.send_json(payload)
            await asyncio.sleep(TICK_DELAY)
    except WebSocketDisconnect:
        print("WS: client disconnected")
        return
    except Exception:
        print("WS: unexpected error in websocket handler:")
        traceback.print_exc()
        return


async def start_simulation() -> None:
    global _simulation_task
    random.seed()
    print(">>> startup: simulation task starting")
    cycles_per_tick = max(1, round(TICK_DELAY * CYCLES_PER_SECOND))

    async def run():
        elapsed = 0
        while True:
            try:
                async with engine_lock:
                    engine.store_cycles(cycles_per_tick)
                    seconds = engine.process(actor)
                elapsed += seconds
                if seconds and elapsed % 60 == 0:
                    current = engine.action.name if engine.action else "idle"
                    print(f"SIM: {elapsed}s rank={engine.rank:.2f} action={current}")
                await asyncio.sleep(TICK_DELAY)
            except Exception:
                print("SIM: error in background loop:")
                traceback.print_exc()
                await asyncio.sleep(1.0)

    _simulation_task = asyncio.create_task(run())


if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", SIM_CONFIG.get("port", 8000)))
    reload_flag = os.environ.get("RELOAD", "").lower() in {"1", "true", "yes", "on"}
    uvicorn.run("main:app", host=host, port=port, reload=reload_flag)
