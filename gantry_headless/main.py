from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, Header, HTTPException
import uvicorn

from gantry_headless.commands import handle_command
from gantry_headless.config import load_service_config
from gantry_headless.controller import GantryController
from gantry_headless.devices import SimulatedGantry

REPO_ROOT = Path(__file__).resolve().parent.parent
CONFIG, CONFIG_WARNING = load_service_config(REPO_ROOT)

GEOMETRY = CONFIG.geometry()
RIG = SimulatedGantry(GEOMETRY, start=(CONFIG.sim_start_x, CONFIG.sim_start_y, CONFIG.sim_start_z))
CONTROLLER = GantryController(RIG.directory, GEOMETRY)
TICK_TASK: Optional[asyncio.Task[Any]] = None
STOP_REQUESTED = False

app = FastAPI(title="Welder Gantry Headless Service", version="0.1.0")


def _require_token(token: str) -> None:
    expected = CONFIG.api_token.strip()
    if not expected:
        return
    if token.strip() != expected:
        raise HTTPException(status_code=401, detail="Invalid API token.")


async def _tick_loop() -> None:
    interval_s = 1.0 / max(1e-3, float(CONFIG.tick_hz))
    last_tick_s = time.monotonic()

    while not STOP_REQUESTED:
        tick_start_s = time.monotonic()
        dt_s = max(0.0, tick_start_s - last_tick_s)
        last_tick_s = tick_start_s

        try:
            RIG.advance(dt_s)
            CONTROLLER.tick(dt_s)
        except Exception as exc:
            logging.exception("Controller tick failed")
            CONTROLLER.state.echo(f"Controller tick error: {exc}")
            CONTROLLER.abort()

        elapsed = time.monotonic() - tick_start_s
        sleep_s = max(0.0, interval_s - elapsed)
        if sleep_s > 0.0:
            await asyncio.sleep(sleep_s)


@app.on_event("startup")
async def _on_startup() -> None:
    global TICK_TASK, STOP_REQUESTED

    logging.basicConfig(level=logging.INFO)
    if CONFIG_WARNING:
        logging.warning(CONFIG_WARNING)

    STOP_REQUESTED = False
    TICK_TASK = asyncio.create_task(_tick_loop())


@app.on_event("shutdown")
async def _on_shutdown() -> None:
    global TICK_TASK, STOP_REQUESTED

    STOP_REQUESTED = True
    CONTROLLER.abort()

    if TICK_TASK is not None:
        TICK_TASK.cancel()
        try:
            await TICK_TASK
        except asyncio.CancelledError:
            pass
        TICK_TASK = None


@app.get("/health")
def health() -> Dict[str, Any]:
    return {
        "ok": True,
        "service": "welder-gantry-headless",
        "phase": CONTROLLER.state.phase,
        "ticking": TICK_TASK is not None and not TICK_TASK.done(),
    }


@app.get("/state")
async def get_state(
    x_api_token: Optional[str] = Header(default="", alias="X-API-Token"),
) -> Dict[str, Any]:
    _require_token(x_api_token or "")
    return CONTROLLER.snapshot()


@app.get("/map")
async def get_map(
    x_api_token: Optional[str] = Header(default="", alias="X-API-Token"),
) -> Dict[str, Any]:
    _require_token(x_api_token or "")
    return {"lines": CONTROLLER.map_lines()}


@app.get("/debug")
async def get_debug(
    x_api_token: Optional[str] = Header(default="", alias="X-API-Token"),
) -> Dict[str, Any]:
    _require_token(x_api_token or "")
    return {"lines": CONTROLLER.debug_lines()}


@app.post("/command")
async def post_command(
    payload: Dict[str, Any] = Body(...),
    x_api_token: Optional[str] = Header(default="", alias="X-API-Token"),
) -> Dict[str, Any]:
    _require_token(x_api_token or "")

    command = str(payload.get("command", "")).strip()
    if not command:
        raise HTTPException(status_code=400, detail="command is required")

    ok, msg = handle_command(CONTROLLER, command)
    return {"ok": ok, "message": msg, "state": CONTROLLER.snapshot()}


def main() -> None:
    uvicorn.run(
        "gantry_headless.main:app",
        host=CONFIG.host,
        port=CONFIG.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
