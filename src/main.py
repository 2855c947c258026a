import sys
import logging
from typing import List, Optional

from config import EngineConfig, load_config
from csv_codec import MalformedInputError, write_accounts
from sharded_processor import ShardedTransactionProcessor
from transaction_processor import TransactionProcessor

logger = logging.getLogger(__name__)


def build_processor(config: EngineConfig):
    if config.num_workers > 1:
        return ShardedTransactionProcessor(num_workers=config.num_workers, stop_on_malformed=config.strict)
    return TransactionProcessor(stop_on_malformed=config.strict)


def main(argv: Optional[List[str]] = None) -> None:
    if argv is None:
        argv = sys.argv

    if len(argv) != 2:
        print("Usage: python main.py <input.csv>", file=sys.stderr)
        sys.exit(1)

    try:
        config = load_config()
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    logging.basicConfig(
        level=config.log_level,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    filepath = argv[1]
    processor = build_processor(config)
    try:
        accounts = processor.process_file(filepath)
    except OSError as e:
        logger.error(f"Cannot read {filepath}: {e}")
        sys.exit(1)
    except MalformedInputError as e:
        logger.error(f"Malformed input in {filepath}: {e}")
        sys.exit(1)

    write_accounts(accounts, sys.stdout)

    print(processor.stats.summary(), file=sys.stderr)


if __name__ == "__main__":
    main()
