import csv
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, Iterator, TextIO, Union

from models import (
    AMOUNT_CONTEXT,
    MAX_AMOUNT,
    MAX_AMOUNT_SCALE,
    AccountSnapshot,
    TransactionRecord,
    TransactionType,
    is_valid_amount,
)

INPUT_COLUMNS = ("type", "client", "tx", "amount")
OUTPUT_COLUMNS = ("client", "available", "held", "total", "locked")

MAX_CLIENT_ID = 2**16 - 1
MAX_TRANSACTION_ID = 2**32 - 1

OUTPUT_PRECISION = Decimal("0.0001")


class MalformedInputError(ValueError):
    """Raised (or yielded) for input rows that cannot be decoded into a TransactionRecord."""

    def __init__(self, reason: str, line_number: int = 0, row=None):
        self.reason = reason
        self.line_number = line_number
        self.row = row
        location = f"line {line_number}: " if line_number else ""
        super().__init__(f"{location}{reason}")


def _parse_id(value: str, field: str, maximum: int) -> int:
    if not (value.isascii() and value.isdigit()):
        raise MalformedInputError(f"{field} is not an unsigned integer: {value!r}")
    parsed = int(value)
    if parsed > maximum:
        raise MalformedInputError(f"{field} out of range: {parsed}")
    return parsed


def _parse_amount(value: str) -> Decimal:
    try:
        amount = Decimal(value)
    except InvalidOperation:
        raise MalformedInputError(f"amount is not a decimal: {value!r}") from None
    if not amount.is_finite():
        raise MalformedInputError(f"amount is not finite: {value!r}")
    if amount < 0:
        raise MalformedInputError(f"amount is negative: {value!r}")
    if not is_valid_amount(amount):
        raise MalformedInputError(f"amount exceeds {MAX_AMOUNT} or {MAX_AMOUNT_SCALE} decimal places: {value!r}")
    return amount


def parse_row(row: Dict[str, str]) -> TransactionRecord:
    """Parse a header-keyed CSV row into a TransactionRecord."""
    extra = [value.strip() for value in row.get(None, []) if value.strip()]
    if extra:
        raise MalformedInputError(f"too many columns: {extra!r}")

    normalized = {k: (v or "").strip() for k, v in row.items() if k is not None}

    transaction_type_str = normalized["type"].lower()
    try:
        transaction_type = TransactionType(transaction_type_str)
    except ValueError:
        raise MalformedInputError(f"unknown transaction type: {transaction_type_str!r}") from None

    client_id = _parse_id(normalized["client"], "client", MAX_CLIENT_ID)
    transaction_id = _parse_id(normalized["tx"], "tx", MAX_TRANSACTION_ID)

    amount = None
    amount_str = normalized.get("amount", "")
    if transaction_type.carries_amount:
        if not amount_str:
            raise MalformedInputError(f"{transaction_type.value} requires an amount")
        amount = _parse_amount(amount_str)
    elif amount_str:
        raise MalformedInputError(f"{transaction_type.value} must not carry an amount")

    return TransactionRecord(
        transaction_type=transaction_type,
        client_id=client_id,
        transaction_id=transaction_id,
        amount=amount,
    )


def decode_records(stream: TextIO) -> Iterator[Union[TransactionRecord, MalformedInputError]]:
    """
    Lazily decode CSV text into records.

    Yields a TransactionRecord per valid row and a MalformedInputError per
    invalid one, leaving the skip-or-abort decision to the caller. A header
    without the required columns raises MalformedInputError immediately.
    """
    reader = csv.DictReader(stream, restval="", skipinitialspace=True)
    if reader.fieldnames is None:
        return

    reader.fieldnames = [name.strip().lower() for name in reader.fieldnames]
    missing = [column for column in INPUT_COLUMNS[:3] if column not in reader.fieldnames]
    if missing:
        raise MalformedInputError(f"header is missing columns: {', '.join(missing)}", line_number=1)

    for row in reader:
        if not any((value or "").strip() for key, value in row.items() if key is not None):
            continue
        try:
            record = parse_row(row)
        except MalformedInputError as e:
            yield MalformedInputError(e.reason, line_number=reader.line_num, row=row)
            continue
        yield record


def format_amount(value: Decimal) -> str:
    """Format decimal with exactly 4 decimal places (half-even rounding)."""
    return f"{value.quantize(OUTPUT_PRECISION, context=AMOUNT_CONTEXT):f}"


def write_accounts(accounts: Dict[int, AccountSnapshot], stream: TextIO) -> None:
    """Write account snapshots as CSV, sorted by client id."""
    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(OUTPUT_COLUMNS)
    for client_id in sorted(accounts.keys()):
        account = accounts[client_id]
        writer.writerow([
            client_id,
            format_amount(account.available),
            format_amount(account.held),
            format_amount(account.total),
            str(account.locked).lower(),
        ])


def read_records(filepath: str) -> Iterable[Union[TransactionRecord, MalformedInputError]]:
    """Open a CSV file and decode it; the file is closed once the records are exhausted."""
    with open(filepath, "r", newline="") as f:
        yield from decode_records(f)
