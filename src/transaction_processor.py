import logging
from typing import Dict, Iterable, Optional, Union

from csv_codec import MalformedInputError, read_records
from ledger import Ledger
from models import AccountSnapshot, ProcessingResult, ProcessingStats, TransactionRecord

logger = logging.getLogger(__name__)


class TransactionProcessor:
    """
    Replays records against a Ledger strictly in input order.
    Rejected records are counted and skipped; processing never stops early
    except for a malformed row when stop_on_malformed is set.
    """

    def __init__(self, ledger: Optional[Ledger] = None, stop_on_malformed: bool = False):
        self._ledger = ledger if ledger is not None else Ledger()
        self._stop_on_malformed = stop_on_malformed
        self.stats = ProcessingStats()

    @property
    def ledger(self) -> Ledger:
        return self._ledger

    def process_file(self, filepath: str) -> Dict[int, AccountSnapshot]:
        """Process CSV file and return final account states."""
        logger.info(f"Processing {filepath}")
        return self.run(read_records(filepath))

    def run(self, records: Iterable[Union[TransactionRecord, MalformedInputError]]) -> Dict[int, AccountSnapshot]:
        for record in records:
            if isinstance(record, MalformedInputError):
                self.handle_malformed(record)
                continue
            self.process_record(record)

        logger.info(f"Processing complete. {self.stats.summary()}")
        return self._ledger.snapshot()

    def process_record(self, record: TransactionRecord) -> ProcessingResult:
        result = self._ledger.apply(record)
        self.stats.record_result(result)
        if result.is_rejection:
            logger.debug(f"Rejected {record}: {result.value}")
        return result

    def handle_malformed(self, error: MalformedInputError) -> None:
        if self._stop_on_malformed:
            raise error
        self.stats.record_malformed()
        logger.warning(f"Skipping malformed row: {error}")
