from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import numpy as np
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import HTMLResponse
from fastapi.staticfiles import StaticFiles

from .controller import DodgeConfig, DodgeController
from .events import ACTIVATE, POINTER_LEAVE, POINTER_MOVE, POINTER_OVER, RESIZE, SCROLL, InputBus
from .geometry import PlayGeometry, parse_play_geometry
from .protocol import merge_config, parse_client_msg, parse_pointer_sample, require_float
from .timers import AsyncioScheduler, Scheduler

logger = logging.getLogger("dodge")

BUNDLED_STATIC_DIR = Path(__file__).resolve().parent / "static"


def create_app(*, static_dir: Path | None = None) -> FastAPI:
    app = FastAPI(title="Dodge Button")

    @app.websocket("/ws")
    async def ws_endpoint(ws: WebSocket) -> None:
        await ws.accept()
        session = ClientSession(scheduler=AsyncioScheduler())
        sender = asyncio.create_task(_send_loop(ws, session))
        try:
            while True:
                message = await ws.receive()
                if sender.done():
                    # nothing reaches the client any more
                    return
                if message.get("type") == "websocket.disconnect":
                    return
                text = message.get("text")
                if text is None:
                    session.send({"t": "error", "message": "Binary frames are not supported"})
                    continue
                try:
                    _handle_text_message(text, session)
                except ValueError as exc:
                    # Bad JSON, bad geometry or out of range config.
                    logger.warning("Rejected client message: %s", exc)
                    session.send({"t": "error", "message": str(exc)})
        except WebSocketDisconnect:
            return
        except Exception as exc:
            logger.exception("WebSocket error: %s", exc)
            try:
                await ws.send_text(json.dumps({"t": "error", "message": str(exc)}))
            except Exception:
                logger.debug("Could not report error to a closed socket")
        finally:
            await _finish_session(session, sender)

    directory = static_dir if static_dir is not None else BUNDLED_STATIC_DIR
    if directory.exists():
        app.mount("/", StaticFiles(directory=str(directory), html=True), name="app")
    else:

        @app.get("/", response_class=HTMLResponse)
        async def root() -> str:
            return (
                "<!doctype html><html><head><meta charset='utf-8'/>"
                "<title>Dodge Button</title></head>"
                "<body><h1>Dodge Button server</h1><p>No page found in the static directory.</p></body></html>"
            )

    return app


class SessionView:
    """Forwards button rendering to the client as websocket frames."""

    def __init__(self, send: Callable[[dict[str, Any]], None]) -> None:
        self._send = send

    def place(self, left: int, top: int) -> None:
        self._send({"t": "button.place", "left": left, "top": top})

    def show_resting(self, resting: bool) -> None:
        self._send({"t": "button.resting", "resting": resting})

    def show_alert(self, alert: bool) -> None:
        self._send({"t": "button.alert", "alert": alert})

    def show_hit(self, hit: bool) -> None:
        self._send({"t": "button.hit", "hit": hit})


@dataclass
class ClientSession:
    scheduler: Scheduler
    config: DodgeConfig = field(default_factory=DodgeConfig)
    bus: InputBus = field(default_factory=InputBus, repr=False)
    geometry: PlayGeometry | None = None
    controller: DodgeController | None = field(default=None, repr=False)
    rng: np.random.Generator = field(default_factory=np.random.default_rng, repr=False)
    outbox: asyncio.Queue = field(default_factory=asyncio.Queue, repr=False)

    def send(self, msg: dict[str, Any]) -> None:
        self.outbox.put_nowait(msg)

    def close(self) -> None:
        if self.controller is not None:
            self.controller.close()
            self.controller = None


async def _send_loop(ws: WebSocket, session: ClientSession) -> None:
    try:
        while True:
            msg = await session.outbox.get()
            await ws.send_text(json.dumps(msg))
    except Exception:
        # Stop the motion tick from filling the outbox.
        session.close()
        raise


async def _finish_session(session: ClientSession, sender: asyncio.Task) -> None:
    session.close()
    sender.cancel()
    (result,) = await asyncio.gather(sender, return_exceptions=True)
    if isinstance(result, Exception):
        logger.warning("Sending to the client failed: %s", result)


def _build_controller(session: ClientSession) -> DodgeController:
    if session.geometry is None:
        raise ValueError("Send 'hello' with the play geometry first")
    session.close()
    controller = DodgeController(
        session.geometry,
        SessionView(session.send),
        session.scheduler,
        config=session.config,
        rng=session.rng,
    )
    controller.attach(session.bus)
    session.controller = controller
    logger.info("Button ready within bounds %s", controller.bounds)
    return controller


def _require_controller(session: ClientSession) -> DodgeController:
    if session.controller is None:
        raise ValueError("Send 'hello' with the play geometry first")
    return session.controller


def _handle_text_message(text: str, session: ClientSession) -> None:
    payload = json.loads(text)
    msg = parse_client_msg(payload)

    if msg.t == "hello":
        session.geometry = parse_play_geometry(msg.raw.get("geometry"))
        try:
            controller = _build_controller(session)
        except ValueError:
            session.geometry = None
            raise
        left_bound, top_bound = controller.bounds
        session.send({"t": "server.state", "ok": True, "ready": True, "bounds": [left_bound, top_bound]})
        return

    if msg.t == "config":
        session.config = merge_config(session.config, msg.raw)
        if session.geometry is not None:
            _build_controller(session)
        session.send({"t": "server.state", "configured": True})
        return

    if msg.t in (POINTER_MOVE, POINTER_OVER):
        _require_controller(session)
        sample = parse_pointer_sample(msg.raw)
        session.bus.publish(msg.t, sample=sample, now_ms=session.scheduler.now_ms())
        return

    if msg.t in (POINTER_LEAVE, RESIZE):
        _require_controller(session)
        ts_ms = require_float(msg.raw, "ts")
        session.bus.publish(msg.t, ts_ms=ts_ms, now_ms=session.scheduler.now_ms())
        return

    if msg.t == SCROLL:
        _require_controller(session)
        session.bus.publish(
            SCROLL,
            scroll_x=require_float(msg.raw, "scrollX"),
            scroll_y=require_float(msg.raw, "scrollY"),
            ts_ms=require_float(msg.raw, "ts"),
            now_ms=session.scheduler.now_ms(),
        )
        return

    if msg.t == ACTIVATE:
        _require_controller(session)
        x = msg.raw.get("x")
        y = msg.raw.get("y")
        if x is not None and y is not None:
            x = require_float(msg.raw, "x")
            y = require_float(msg.raw, "y")
        session.bus.publish(ACTIVATE, x=x, y=y, now_ms=session.scheduler.now_ms())
        return

    session.send({"t": "error", "message": f"Unknown message type: {msg.t}"})
