import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Set

from pydantic import BaseModel


@dataclass(frozen=True)
class Delivery:
    """One outbound message for one connection."""

    target: str
    message: BaseModel
    disconnect: bool = False

    def payload(self) -> dict:
        return self.message.model_dump(mode="json")


class Outbox:
    """Bounded per-connection queues drained by each socket's sender task.

    ``dispatch`` never waits, so it is safe to call while holding a
    session lock.
    """

    def __init__(self, max_queue: int = 256):
        self.logger = logging.getLogger("engine")
        self.max_queue = max_queue
        self._queues: Dict[str, asyncio.Queue] = {}
        self.slow_consumers: Set[str] = set()

    def open(self, connection_id: str) -> asyncio.Queue:
        queue = asyncio.Queue(maxsize=self.max_queue)
        self._queues[connection_id] = queue
        return queue

    def close(self, connection_id: str) -> None:
        self._queues.pop(connection_id, None)
        self.slow_consumers.discard(connection_id)

    def dispatch(self, deliveries: Iterable[Delivery]) -> int:
        sent = 0
        for delivery in deliveries:
            queue = self._queues.get(delivery.target)
            if queue is None:
                continue
            try:
                queue.put_nowait(delivery)
                sent += 1
            except asyncio.QueueFull:
                self.slow_consumers.add(delivery.target)
                self.logger.warning(
                    "Outbound queue full, dropping message connection=%s type=%s",
                    delivery.target,
                    getattr(delivery.message, "type", None),
                )
        return sent
