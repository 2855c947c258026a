import logging
from typing import Dict, Optional, Set

from models import (
    AccountSnapshot,
    ClientAccount,
    DepositRecord,
    DisputeState,
    ProcessingResult,
    TransactionRecord,
    TransactionType,
    is_valid_amount,
)

logger = logging.getLogger(__name__)


class Ledger:
    """
    Account state machine.
    Owns client accounts and the deposit history that dispute, resolve and
    chargeback records refer back to. All mutation goes through apply().
    """

    def __init__(self):
        self._accounts: Dict[int, ClientAccount] = {}
        self._deposits: Dict[int, DepositRecord] = {}
        self._seen_transaction_ids: Set[int] = set()

    def __len__(self) -> int:
        return len(self._accounts)

    def get_or_create_account(self, client_id: int) -> ClientAccount:
        """Get existing account or create new one."""
        if client_id not in self._accounts:
            self._accounts[client_id] = ClientAccount(client_id=client_id)
        return self._accounts[client_id]

    def get_account(self, client_id: int) -> Optional[AccountSnapshot]:
        account = self._accounts.get(client_id)
        return account.snapshot() if account is not None else None

    def get_deposit(self, transaction_id: int) -> Optional[DepositRecord]:
        """Retrieve stored deposit by transaction id."""
        return self._deposits.get(transaction_id)

    def snapshot(self) -> Dict[int, AccountSnapshot]:
        """Return read-only copies of all accounts (for final output)."""
        return {client_id: account.snapshot() for client_id, account in self._accounts.items()}

    def apply(self, record: TransactionRecord) -> ProcessingResult:
        """
        Apply a single record.

        Returns:
            SUCCESS when the record changed state, otherwise the rejection kind.
            A rejected record leaves every account and deposit untouched.
        """
        account = self.get_or_create_account(record.client_id)

        if record.transaction_type.carries_amount:
            if record.transaction_id in self._seen_transaction_ids:
                logger.info(f"{record.transaction_type.value.capitalize()} tx {record.transaction_id}: duplicate transaction id, skipping")
                return ProcessingResult.DUPLICATE_TRANSACTION
            self._seen_transaction_ids.add(record.transaction_id)

            if not is_valid_amount(record.amount):
                logger.warning(f"{record.transaction_type.value.capitalize()} tx {record.transaction_id}: invalid amount {record.amount}")
                return ProcessingResult.INVALID_AMOUNT

        match record.transaction_type:
            case TransactionType.DEPOSIT:
                return self._handle_deposit(account, record)
            case TransactionType.WITHDRAWAL:
                return self._handle_withdrawal(account, record)
            case TransactionType.DISPUTE:
                return self._handle_dispute(record)
            case TransactionType.RESOLVE:
                return self._handle_resolve(record)
            case TransactionType.CHARGEBACK:
                return self._handle_chargeback(record)

    def _handle_deposit(self, account: ClientAccount, record: TransactionRecord) -> ProcessingResult:
        if account.locked:
            logger.info(f"Deposit tx {record.transaction_id}: account {account.client_id} is locked")
            return ProcessingResult.ACCOUNT_LOCKED

        account.credit(record.amount)
        self._deposits[record.transaction_id] = DepositRecord(
            client_id=record.client_id,
            transaction_id=record.transaction_id,
            amount=record.amount,
        )
        return ProcessingResult.SUCCESS

    def _handle_withdrawal(self, account: ClientAccount, record: TransactionRecord) -> ProcessingResult:
        if account.locked:
            logger.info(f"Withdrawal tx {record.transaction_id}: account {account.client_id} is locked")
            return ProcessingResult.ACCOUNT_LOCKED

        if account.available < record.amount:
            logger.info(f"Withdrawal tx {record.transaction_id}: insufficient funds (available {account.available}, requested {record.amount})")
            return ProcessingResult.INSUFFICIENT_FUNDS

        account.debit(record.amount)
        return ProcessingResult.SUCCESS

    def _find_disputed_deposit(self, record: TransactionRecord, *, expected: DisputeState):
        """
        Look up the deposit a dispute-family record refers to and check it is
        in the expected state. Returns (deposit, owner account, None) on
        success or (None, None, rejection).
        """
        action = record.transaction_type.value.capitalize()
        deposit = self._deposits.get(record.transaction_id)

        if deposit is None:
            if record.transaction_id in self._seen_transaction_ids:
                logger.info(f"{action} for tx {record.transaction_id}: only deposits can be disputed")
            else:
                logger.info(f"{action} for tx {record.transaction_id}: transaction not found")
            return None, None, ProcessingResult.UNKNOWN_REFERENCE

        if deposit.client_id != record.client_id:
            logger.warning(f"{action} for tx {record.transaction_id}: client mismatch (expected {deposit.client_id}, got {record.client_id})")
            return None, None, ProcessingResult.CLIENT_MISMATCH

        account = self._accounts[deposit.client_id]
        if account.locked:
            logger.info(f"{action} for tx {record.transaction_id}: account {account.client_id} is locked")
            return None, None, ProcessingResult.ACCOUNT_LOCKED

        if deposit.state is not expected:
            logger.info(f"{action} for tx {record.transaction_id}: deposit is {deposit.state.value}, expected {expected.value}")
            return None, None, ProcessingResult.INVALID_STATE_TRANSITION

        return deposit, account, None

    def _handle_dispute(self, record: TransactionRecord) -> ProcessingResult:
        deposit, account, rejection = self._find_disputed_deposit(record, expected=DisputeState.NORMAL)
        if rejection is not None:
            return rejection

        account.hold(deposit.amount)
        deposit.state = DisputeState.DISPUTED
        return ProcessingResult.SUCCESS

    def _handle_resolve(self, record: TransactionRecord) -> ProcessingResult:
        deposit, account, rejection = self._find_disputed_deposit(record, expected=DisputeState.DISPUTED)
        if rejection is not None:
            return rejection

        account.release_hold(deposit.amount)
        deposit.state = DisputeState.NORMAL
        return ProcessingResult.SUCCESS

    def _handle_chargeback(self, record: TransactionRecord) -> ProcessingResult:
        deposit, account, rejection = self._find_disputed_deposit(record, expected=DisputeState.DISPUTED)
        if rejection is not None:
            return rejection

        account.remove_held(deposit.amount)
        account.lock()
        deposit.state = DisputeState.CHARGED_BACK
        return ProcessingResult.SUCCESS
