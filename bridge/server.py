"""
FastAPI websocket server for the simulator bridge.
Receives telemetry events, runs the planner stack and sends back trajectories.
"""

import logging
import time
from pathlib import Path

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from bridge.codec import MANUAL_EVENT, MANUAL_MESSAGE, TelemetryMessage, decode_event, encode_control

# Planning must finish well inside one 20 ms tick.
SLOW_TICK_SECONDS = 0.005


def _get_bridge_logger() -> logging.Logger:
    log_path = Path(__file__).resolve().parents[1] / "tmp" / "logs" / "planner_bridge.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)

    bridge_logger = logging.getLogger("planner_bridge")
    bridge_logger.setLevel(logging.INFO)

    if not any(isinstance(h, logging.FileHandler) and h.baseFilename == str(log_path)
               for h in bridge_logger.handlers):
        handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        formatter = logging.Formatter("%(asctime)s %(levelname)s %(message)s")
        handler.setFormatter(formatter)
        bridge_logger.addHandler(handler)
        bridge_logger.propagate = False

    return bridge_logger


logger = _get_bridge_logger()


def handle_message(stack, message: str):
    """Process one simulator frame; returns the reply text or None."""
    try:
        event = decode_event(message)
    except ValueError as e:
        logger.warning(f"Dropping malformed frame: {e}")
        return None
    if event is None:
        return None

    name, payload = event
    if name == MANUAL_EVENT and payload is None:
        # Manual driving
        return MANUAL_MESSAGE
    if name != "telemetry" or payload is None:
        return None

    try:
        telemetry = TelemetryMessage.model_validate(payload).to_telemetry(timestamp=time.time())
    except (ValidationError, ValueError) as e:
        logger.warning(f"Dropping invalid telemetry: {e}")
        return None

    start_time = time.time()
    trajectory = stack.process_telemetry(telemetry)
    duration = time.time() - start_time
    if duration > SLOW_TICK_SECONDS:
        logger.warning(
            "[SLOW] planning tick duration=%.4fs prev_points=%d vehicles=%d",
            duration,
            len(telemetry.previous_path),
            len(telemetry.observations),
        )
    return encode_control(trajectory)


def create_app(stack) -> FastAPI:
    """Build the bridge app around a planner stack."""
    app = FastAPI(title="Highway Planner Bridge Server")
    app.state.stack = stack

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/health")
    async def health():
        return {
            "status": "ok",
            "ticks": stack.tick_count,
            "degraded_ticks": stack.degraded_ticks,
            "lane": stack.state.lane,
            "reference_speed": stack.state.reference_speed,
        }

    async def session(ws: WebSocket):
        await ws.accept()
        stack.reset_session()
        logger.info("Environment session connected!")
        try:
            while True:
                message = await ws.receive_text()
                reply = handle_message(stack, message)
                if reply is not None:
                    await ws.send_text(reply)
        except WebSocketDisconnect as e:
            logger.info(f"Disconnected from session (code={e.code})")

    # The simulator connects through the socket.io path; plain "/" is kept for tools.
    app.add_api_websocket_route("/socket.io/", session)
    app.add_api_websocket_route("/", session)
    return app
