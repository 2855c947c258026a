import sys
import os
import random
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from ledger import Ledger
from models import ProcessingResult, TransactionRecord, TransactionType
from sharded_processor import ShardedTransactionProcessor
from transaction_processor import TransactionProcessor


def random_records(seed, count=2000, num_clients=20):
    """Build a random but plausible record stream, mixing valid and invalid references."""
    rng = random.Random(seed)
    records = []
    deposits = []
    next_tx = 1
    for _ in range(count):
        client_id = rng.randint(1, num_clients)
        roll = rng.random()
        if roll < 0.4 or not deposits:
            amount = Decimal(rng.randint(1, 100000)) / Decimal("10000")
            records.append(TransactionRecord(TransactionType.DEPOSIT, client_id, next_tx, amount))
            deposits.append((client_id, next_tx))
            next_tx += 1
        elif roll < 0.65:
            amount = Decimal(rng.randint(1, 100000)) / Decimal("10000")
            tx_id = next_tx if rng.random() < 0.95 else rng.randint(1, next_tx)
            records.append(TransactionRecord(TransactionType.WITHDRAWAL, client_id, tx_id, amount))
            next_tx += 1
        else:
            owner, tx_id = rng.choice(deposits)
            if rng.random() < 0.05:
                owner = client_id
            kind = rng.choice([TransactionType.DISPUTE, TransactionType.DISPUTE, TransactionType.RESOLVE, TransactionType.CHARGEBACK])
            records.append(TransactionRecord(kind, owner, tx_id))
    return records


class TestTransactionProcessorLargeScale:
    def test_1000_accounts_6000_transactions(self):
        num_clients = 1000
        records = []
        tx_id = 1

        # Each client: deposits 100, 200, 300, withdrawals 50, 100, then an extra 50 = 500
        for client_id in range(1, num_clients + 1):
            for amount in ("100", "200", "300"):
                records.append(TransactionRecord(TransactionType.DEPOSIT, client_id, tx_id, Decimal(amount)))
                tx_id += 1
            for amount in ("50", "100"):
                records.append(TransactionRecord(TransactionType.WITHDRAWAL, client_id, tx_id, Decimal(amount)))
                tx_id += 1

        for client_id in range(1, num_clients + 1):
            records.append(TransactionRecord(TransactionType.DEPOSIT, client_id, tx_id, Decimal("50")))
            tx_id += 1

        processor = TransactionProcessor()
        accounts = processor.run(records)

        assert len(accounts) == num_clients
        assert processor.stats.processed == 6000
        for client_id in range(1, num_clients + 1):
            assert accounts[client_id].available == Decimal("500"), f"Client {client_id}"
            assert accounts[client_id].held == Decimal("0")
            assert accounts[client_id].locked is False

    def test_with_disputes_resolves_chargebacks(self, tmp_path):
        rows = ["type, client, tx, amount"]

        # Client 1-10: normal deposits only, 500 each
        for client_id in range(1, 11):
            rows.append(f"deposit, {client_id}, {client_id * 100 + 1}, 100")
            rows.append(f"deposit, {client_id}, {client_id * 100 + 2}, 150")
            rows.append(f"deposit, {client_id}, {client_id * 100 + 3}, 250")

        # Client 11-20: deposit -> dispute -> resolve, 500 each
        for client_id in range(11, 21):
            rows.append(f"deposit, {client_id}, {client_id * 100 + 1}, 100")
            rows.append(f"deposit, {client_id}, {client_id * 100 + 2}, 150")
            rows.append(f"deposit, {client_id}, {client_id * 100 + 3}, 250")
        for client_id in range(11, 21):
            rows.append(f"dispute, {client_id}, {client_id * 100 + 1},")
        for client_id in range(11, 21):
            rows.append(f"resolve, {client_id}, {client_id * 100 + 1},")

        # Client 21-30: deposit -> dispute -> chargeback, 400 each and locked
        for client_id in range(21, 31):
            rows.append(f"deposit, {client_id}, {client_id * 100 + 1}, 100")
            rows.append(f"deposit, {client_id}, {client_id * 100 + 2}, 150")
            rows.append(f"deposit, {client_id}, {client_id * 100 + 3}, 250")
        for client_id in range(21, 31):
            rows.append(f"dispute, {client_id}, {client_id * 100 + 1},")
        for client_id in range(21, 31):
            rows.append(f"chargeback, {client_id}, {client_id * 100 + 1},")

        # Client 31-40: deposit -> withdrawal -> dispute, 150 held of 300
        for client_id in range(31, 41):
            rows.append(f"deposit, {client_id}, {client_id * 100 + 1}, 150")
            rows.append(f"deposit, {client_id}, {client_id * 100 + 2}, 250")
            rows.append(f"withdrawal, {client_id}, {client_id * 100 + 3}, 100")
        for client_id in range(31, 41):
            rows.append(f"dispute, {client_id}, {client_id * 100 + 1},")

        csv_file = tmp_path / "disputes_test.csv"
        csv_file.write_text('\n'.join(rows))

        accounts = TransactionProcessor().process_file(str(csv_file))

        for client_id in range(1, 21):
            assert accounts[client_id].available == Decimal("500"), f"Client {client_id}"
            assert accounts[client_id].held == Decimal("0")
            assert accounts[client_id].locked is False

        for client_id in range(21, 31):
            assert accounts[client_id].available == Decimal("400"), f"Client {client_id}"
            assert accounts[client_id].held == Decimal("0")
            assert accounts[client_id].total == Decimal("400")
            assert accounts[client_id].locked is True

        for client_id in range(31, 41):
            assert accounts[client_id].available == Decimal("150"), f"Client {client_id}"
            assert accounts[client_id].held == Decimal("150")
            assert accounts[client_id].total == Decimal("300")
            assert accounts[client_id].locked is False


class TestLedgerProperties:
    @pytest.mark.parametrize("seed", range(5))
    def test_invariants_hold_after_every_step(self, seed):
        ledger = Ledger()
        for record in random_records(seed):
            before = ledger.snapshot()
            result = ledger.apply(record)
            after = ledger.snapshot()

            for client_id, account in after.items():
                assert account.total == account.available + account.held
                assert account.held >= 0

                previous = before.get(client_id)
                if previous is not None and previous.locked:
                    assert account == previous, f"locked account {client_id} changed on {record}"

            if result.is_rejection:
                touched = {client_id: account for client_id, account in after.items() if client_id in before}
                assert touched == before, f"rejected {record} ({result.value}) changed state"

    @pytest.mark.parametrize("seed", range(3))
    def test_sharded_replay_matches_sequential(self, seed):
        records = random_records(seed)

        sequential = TransactionProcessor()
        expected = sequential.run(records)

        sharded = ShardedTransactionProcessor(num_workers=4)
        actual = sharded.run(records)

        assert actual == expected
        assert sharded.stats.processed == sequential.stats.processed
        assert sharded.stats.count(ProcessingResult.DUPLICATE_TRANSACTION) == sequential.stats.count(ProcessingResult.DUPLICATE_TRANSACTION)
