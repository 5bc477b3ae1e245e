import asyncio
import logging
import uuid

from fastapi import APIRouter, WebSocket
from pydantic import ValidationError

from live_poll.core.errors import InvalidMessage
from live_poll.dependencies import get_runtime
from live_poll.schemas.messages import Connected, ErrorMessage, inbound_adapter
from live_poll.services.outbox import Delivery

logger = logging.getLogger("api")

router = APIRouter()


@router.websocket("/ws")
async def participant_socket(websocket: WebSocket):
    runtime = get_runtime(websocket)
    coordinator = runtime.coordinator
    await websocket.accept()
    connection_id = uuid.uuid4().hex[:12]
    queue = runtime.outbox.open(connection_id)
    logger.info("Socket connected connection=%s", connection_id)

    async def send_loop():
        await websocket.send_json(Connected(connection_id=connection_id).model_dump(mode="json"))
        while True:
            delivery: Delivery = await queue.get()
            await websocket.send_json(delivery.payload())
            if delivery.disconnect or connection_id in runtime.outbox.slow_consumers:
                await websocket.close()
                return

    async def receive_loop():
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return
            raw = message.get("text")
            if raw is None:
                logger.info("Binary frame rejected connection=%s", connection_id)
                coordinator.reject(connection_id, InvalidMessage("Frames must be JSON text"))
                continue
            try:
                action = inbound_adapter.validate_json(raw)
            except ValidationError as exc:
                logger.info("Malformed frame connection=%s errors=%s", connection_id, exc.error_count())
                coordinator.reject(connection_id, InvalidMessage())
                continue
            try:
                await coordinator.handle(connection_id, action)
            except Exception:
                logger.exception("Action failed connection=%s action=%s", connection_id, action.type)
                runtime.outbox.dispatch(
                    [Delivery(connection_id, ErrorMessage(kind="InternalError", message="Something went wrong"))]
                )

    sender = asyncio.create_task(send_loop())
    receiver = asyncio.create_task(receive_loop())
    try:
        done, pending = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.info("Socket closed with error connection=%s error=%r", connection_id, task.exception())
    finally:
        runtime.outbox.close(connection_id)
        await coordinator.on_disconnect(connection_id)
        logger.info("Socket disconnected connection=%s", connection_id)
