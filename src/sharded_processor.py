import logging
import threading
from typing import Dict, Iterable, List, Set, Union

from csv_codec import MalformedInputError, read_records
from ledger import Ledger
from message_queue import InMemoryQueue, ShardMessage
from models import AccountSnapshot, ProcessingResult, ProcessingStats, TransactionRecord

logger = logging.getLogger(__name__)


class ShardedTransactionProcessor:
    """
    Replays records with one worker thread per shard of client ids.

    Every client maps to exactly one shard (client_id % num_workers) and each
    shard has its own Ledger and queue, so records for a client are applied
    in input order by a single writer. Deposit/withdrawal transaction ids are
    globally unique, so duplicates are detected here, in input order, before
    routing.
    """

    def __init__(self, num_workers: int = 4, stop_on_malformed: bool = False):
        if num_workers < 1:
            raise ValueError(f"num_workers must be at least 1, got {num_workers}")
        self._num_workers = num_workers
        self._stop_on_malformed = stop_on_malformed
        self._ledgers: List[Ledger] = [Ledger() for _ in range(num_workers)]
        self._queues: List[InMemoryQueue] = [InMemoryQueue() for _ in range(num_workers)]
        self._claimed_transaction_ids: Set[int] = set()
        self._worker_errors: List[BaseException] = []
        self._errors_lock = threading.Lock()
        self.stats = ProcessingStats()

    def shard_for(self, client_id: int) -> int:
        return client_id % self._num_workers

    def process_file(self, filepath: str) -> Dict[int, AccountSnapshot]:
        """Process CSV file and return final account states."""
        logger.info(f"Processing {filepath} with {self._num_workers} workers")
        return self.run(read_records(filepath))

    def run(self, records: Iterable[Union[TransactionRecord, MalformedInputError]]) -> Dict[int, AccountSnapshot]:
        workers = []
        for shard in range(self._num_workers):
            worker = threading.Thread(target=self._consume_messages, args=(shard,), name=f"shard-{shard}")
            worker.start()
            workers.append(worker)

        try:
            self._publish_records(records)
        finally:
            for queue in self._queues:
                queue.shutdown()
            for worker in workers:
                worker.join()

        if self._worker_errors:
            raise self._worker_errors[0]

        for shard, queue in enumerate(self._queues):
            logger.info(f"Shard {shard} applied {queue.published} records")
        logger.info(f"Processing complete. {self.stats.summary()}")

        accounts: Dict[int, AccountSnapshot] = {}
        for ledger in self._ledgers:
            accounts.update(ledger.snapshot())
        return accounts

    def _publish_records(self, records: Iterable[Union[TransactionRecord, MalformedInputError]]) -> None:
        """Route records to shard queues in input order."""
        for record in records:
            if isinstance(record, MalformedInputError):
                if self._stop_on_malformed:
                    raise record
                self.stats.record_malformed()
                logger.warning(f"Skipping malformed row: {record}")
                continue

            rejection = None
            if record.transaction_type.carries_amount:
                if record.transaction_id in self._claimed_transaction_ids:
                    logger.info(f"{record.transaction_type.value.capitalize()} tx {record.transaction_id}: duplicate transaction id, skipping")
                    rejection = ProcessingResult.DUPLICATE_TRANSACTION
                else:
                    self._claimed_transaction_ids.add(record.transaction_id)

            # Rejected records are still routed: the client counts as referenced.
            self._queues[self.shard_for(record.client_id)].publish_message(ShardMessage(record, rejection))

    def _consume_messages(self, shard: int) -> None:
        """Worker thread body; failures are kept for run() to re-raise after join."""
        try:
            self._apply_messages(shard)
        except Exception as e:
            logger.error(f"Shard {shard} worker failed: {e!r}")
            with self._errors_lock:
                self._worker_errors.append(e)

    def _apply_messages(self, shard: int) -> None:
        """Worker loop: pull from the shard queue and apply to the shard ledger."""
        queue = self._queues[shard]
        ledger = self._ledgers[shard]
        while True:
            message = queue.consume_message()
            if message is None:
                if queue.is_drained():
                    break
                continue

            if message.rejection is not None:
                ledger.get_or_create_account(message.record.client_id)
                result = message.rejection
            else:
                result = ledger.apply(message.record)

            self.stats.record_result(result)
            if result.is_rejection:
                logger.debug(f"Shard {shard} rejected {message.record}: {result.value}")
