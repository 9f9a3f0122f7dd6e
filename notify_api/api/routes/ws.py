"""WebSocket echo channel with per-message rate limiting.

Each inbound message is one admission check against the ``websocket`` tier,
keyed by a connection id assigned on accept. Rejected messages are answered
with an error frame; the connection itself stays open.
"""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from notify_api.core.errors import RateLimiterUnavailableError
from notify_api.core.exception_handlers import error_body
from notify_api.core.rate_limit import websocket_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(tags=["WebSocket"])


@router.websocket("/ws")
async def websocket_echo(websocket: WebSocket) -> None:
    await websocket.accept()
    connection_id = str(uuid.uuid4())
    websocket.state.connection_id = connection_id
    logger.info("ws.connected", extra={"connection_id": connection_id})

    try:
        while True:
            message = await websocket.receive_text()

            limiter = websocket_rate_limit.limiter()
            if limiter is not None:
                try:
                    decision = await limiter.check(websocket)
                except RateLimiterUnavailableError as exc:
                    await websocket.send_json(error_body(503, exc.message))
                    continue
                if not decision.allowed:
                    await websocket.send_json(
                        error_body(429, limiter.exceeded_error(decision).message)
                    )
                    continue

            await websocket.send_json({"type": "echo", "data": message})
    except WebSocketDisconnect as exc:
        logger.info(
            "ws.disconnected",
            extra={"connection_id": connection_id, "close_code": exc.code},
        )
