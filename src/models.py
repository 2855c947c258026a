import threading
from collections import Counter
from dataclasses import dataclass
from decimal import Context, Decimal
from enum import Enum
from typing import Dict, Optional

# Largest single amount accepted, and the most fractional digits it may carry.
MAX_AMOUNT = Decimal("79228162514264337593543950335")
MAX_AMOUNT_SCALE = 28

# Balance arithmetic precision. A bounded amount has at most 57 significant
# digits, so sums of up to 10**23 such amounts are exact.
AMOUNT_CONTEXT = Context(prec=80)


def is_valid_amount(amount: Optional[Decimal]) -> bool:
    """Non-negative, finite, within MAX_AMOUNT and with at most MAX_AMOUNT_SCALE fractional digits."""
    if amount is None or not amount.is_finite():
        return False
    return Decimal("0") <= amount <= MAX_AMOUNT and amount.as_tuple().exponent >= -MAX_AMOUNT_SCALE


class TransactionType(Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    DISPUTE = "dispute"
    RESOLVE = "resolve"
    CHARGEBACK = "chargeback"

    @property
    def carries_amount(self) -> bool:
        return self in (TransactionType.DEPOSIT, TransactionType.WITHDRAWAL)


class DisputeState(Enum):
    NORMAL = "normal"
    DISPUTED = "disputed"
    CHARGED_BACK = "charged_back"


class ProcessingResult(Enum):
    SUCCESS = "success"
    DUPLICATE_TRANSACTION = "duplicate_transaction"
    UNKNOWN_REFERENCE = "unknown_reference"
    INVALID_STATE_TRANSITION = "invalid_state_transition"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    ACCOUNT_LOCKED = "account_locked"
    CLIENT_MISMATCH = "client_mismatch"
    INVALID_AMOUNT = "invalid_amount"

    @property
    def is_rejection(self) -> bool:
        return self is not ProcessingResult.SUCCESS


@dataclass(frozen=True)
class TransactionRecord:
    transaction_type: TransactionType
    client_id: int
    transaction_id: int
    amount: Optional[Decimal] = None

    def __repr__(self) -> str:
        return f"TransactionRecord({self.transaction_type.value}, client={self.client_id}, tx={self.transaction_id}, amount={self.amount})"


@dataclass
class DepositRecord:
    """Retained copy of an accepted deposit, used to resolve disputes by transaction id."""

    client_id: int
    transaction_id: int
    amount: Decimal
    state: DisputeState = DisputeState.NORMAL


@dataclass(frozen=True)
class AccountSnapshot:
    client_id: int
    available: Decimal
    held: Decimal
    total: Decimal
    locked: bool


@dataclass
class ClientAccount:
    client_id: int
    available: Decimal = Decimal("0")
    held: Decimal = Decimal("0")
    locked: bool = False

    @property
    def total(self) -> Decimal:
        return AMOUNT_CONTEXT.add(self.available, self.held)

    def credit(self, amount: Decimal) -> None:
        self.available = AMOUNT_CONTEXT.add(self.available, amount)

    def debit(self, amount: Decimal) -> None:
        self.available = AMOUNT_CONTEXT.subtract(self.available, amount)

    def hold(self, amount: Decimal) -> None:
        self.available = AMOUNT_CONTEXT.subtract(self.available, amount)
        self.held = AMOUNT_CONTEXT.add(self.held, amount)

    def release_hold(self, amount: Decimal) -> None:
        self.held = AMOUNT_CONTEXT.subtract(self.held, amount)
        self.available = AMOUNT_CONTEXT.add(self.available, amount)

    def remove_held(self, amount: Decimal) -> None:
        self.held = AMOUNT_CONTEXT.subtract(self.held, amount)

    def lock(self) -> None:
        self.locked = True

    def snapshot(self) -> AccountSnapshot:
        return AccountSnapshot(
            client_id=self.client_id,
            available=self.available,
            held=self.held,
            total=self.total,
            locked=self.locked,
        )


class ProcessingStats:
    """Thread-safe counters for tracking processing statistics."""

    def __init__(self):
        self._lock = threading.Lock()
        self._results: Counter = Counter()
        self.processed = 0
        self.failed = 0
        self.malformed = 0

    def record_result(self, result: ProcessingResult) -> None:
        with self._lock:
            self._results[result] += 1
            if result.is_rejection:
                self.failed += 1
            else:
                self.processed += 1

    def record_malformed(self) -> None:
        with self._lock:
            self.malformed += 1

    def count(self, result: ProcessingResult) -> int:
        with self._lock:
            return self._results[result]

    def rejections(self) -> Dict[ProcessingResult, int]:
        """Rejection counts keyed by kind, omitting kinds that never occurred."""
        with self._lock:
            return {result: n for result, n in self._results.items() if result.is_rejection}

    def summary(self) -> str:
        return f"Processed: {self.processed}, Failed: {self.failed}, Malformed: {self.malformed}"
