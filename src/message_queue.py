import threading
from dataclasses import dataclass
from queue import Empty, Queue
from typing import Optional

from models import ProcessingResult, TransactionRecord


@dataclass(frozen=True)
class ShardMessage:
    """A record routed to a shard, with the verdict of any check the publisher already made."""

    record: TransactionRecord
    rejection: Optional[ProcessingResult] = None


class InMemoryQueue:
    """
    Thread-safe FIFO feeding one shard worker.
    All synchronization is internal - callers never need to lock.
    """

    DEFAULT_TIMEOUT = 0.1

    def __init__(self):
        self._queue: Queue[ShardMessage] = Queue()
        self._shutdown_event = threading.Event()
        self._published = 0

    @property
    def published(self) -> int:
        return self._published

    def publish_message(self, message: ShardMessage) -> None:
        """Append message. Must not be called after shutdown()."""
        if self._shutdown_event.is_set():
            raise RuntimeError("queue is shut down")
        self._published += 1
        self._queue.put(message)

    def consume_message(self, timeout: float = DEFAULT_TIMEOUT) -> Optional[ShardMessage]:
        """
        Get next message in publish order.
        Returns None if queue is empty after timeout.
        """
        try:
            return self._queue.get(timeout=timeout)
        except Empty:
            return None

    def is_drained(self) -> bool:
        """True once shutdown has been signaled and every message was consumed."""
        return self._shutdown_event.is_set() and self._queue.empty()

    def shutdown(self) -> None:
        """Signal no more messages will be published."""
        self._shutdown_event.set()
