"""
Test suite for money movement

Covers withdraw, deposit and transfer semantics, rejected operations leaving
state untouched, crash atomicity and concurrent balance updates.
"""

import tempfile
import threading
from datetime import date
from pathlib import Path

import pytest

from banking_app.audit import AuditTrail, AuditEventType
from banking_app.errors import (
    InsufficientFundsError, NotFoundError, ValidationError,
    ACCOUNT_NOT_FOUND, RECIPIENT_NOT_FOUND, INVALID_AMOUNT, CARD_MISMATCH, INVALID_CARD_INFO,
    SELF_TRANSFER, INSUFFICIENT_BALANCE, INSUFFICIENT_CARD_BALANCE
)
from banking_app.ledger_store import LedgerStore
from banking_app.money_movement import AccountLockManager, MoneyMovementEngine
from banking_app.onboarding import AccountCandidate, AccountOnboarding
from banking_app.passwords import PasswordHasher
from banking_app.storage import InMemoryStorage, SQLiteStorage


class MoneyMovementFixture:
    """Shared wiring: two fresh accounts with 500 each"""

    def build(self, storage):
        self.storage = storage
        self.store = LedgerStore(self.storage)
        self.audit_trail = AuditTrail(self.storage)
        self.locks = AccountLockManager()
        self.onboarding = AccountOnboarding(
            self.store,
            password_hasher=PasswordHasher(n=1024),
            audit_trail=self.audit_trail,
            lock_manager=self.locks,
            today=lambda: date(2024, 6, 1)
        )
        self.engine = MoneyMovementEngine(self.store, audit_trail=self.audit_trail, lock_manager=self.locks)

        self.alice = self.onboarding.create_account(AccountCandidate(
            first_name="Alice", last_name="Smith", email="alice@example.com",
            phone="5551000", password="alice-password"
        ))
        self.bob = self.onboarding.create_account(AccountCandidate(
            first_name="Bob", last_name="Jones", email="bob@example.com",
            phone="5552000", password="bob-password"
        ))

    def balances(self, account):
        stored = self.store.find_by_id(account.id)
        return stored.balance, stored.card_balance


class TestWithdraw(MoneyMovementFixture):
    """Test moving funds from balance to card balance"""

    def setup_method(self):
        """Set up test fixtures"""
        self.build(InMemoryStorage())

    def test_withdraw(self):
        """500/0 withdraw 200 gives 300/200"""
        account = self.engine.withdraw(self.alice.id, self.alice.card_number, 200)

        assert (account.balance, account.card_balance) == (300, 200)
        assert self.balances(self.alice) == (300, 200)

    def test_withdraw_entire_balance(self):
        self.engine.withdraw(self.alice.id, self.alice.card_number, 500)
        assert self.balances(self.alice) == (0, 500)

    def test_card_mismatch(self):
        """Another account's card is refused and nothing changes"""
        with pytest.raises(ValidationError) as exc_info:
            self.engine.withdraw(self.alice.id, self.bob.card_number, 100)

        assert exc_info.value.code == CARD_MISMATCH
        assert self.balances(self.alice) == (500, 0)
        assert self.balances(self.bob) == (500, 0)

    def test_insufficient_balance(self):
        with pytest.raises(InsufficientFundsError) as exc_info:
            self.engine.withdraw(self.alice.id, self.alice.card_number, 501)

        assert exc_info.value.code == INSUFFICIENT_BALANCE
        assert self.balances(self.alice) == (500, 0)

    @pytest.mark.parametrize("amount", [0, -10, 1.5, True, "100"])
    def test_invalid_amount(self, amount):
        with pytest.raises(ValidationError) as exc_info:
            self.engine.withdraw(self.alice.id, self.alice.card_number, amount)

        assert exc_info.value.code == INVALID_AMOUNT
        assert self.balances(self.alice) == (500, 0)

    def test_unknown_account(self):
        with pytest.raises(NotFoundError) as exc_info:
            self.engine.withdraw("missing", self.alice.card_number, 10)
        assert exc_info.value.code == ACCOUNT_NOT_FOUND

    def test_withdraw_is_audited(self):
        self.engine.withdraw(self.alice.id, self.alice.card_number, 50)

        events = self.audit_trail.get_events_by_type(AuditEventType.WITHDRAWAL)
        assert len(events) == 1
        assert events[0].metadata["amount"] == 50
        assert events[0].metadata["card_number"].startswith("*")


class TestDeposit(MoneyMovementFixture):
    """Test moving funds from card balance to balance"""

    def setup_method(self):
        """Set up test fixtures"""
        self.build(InMemoryStorage())
        self.engine.withdraw(self.alice.id, self.alice.card_number, 200)

    def deposit(self, amount, **overrides):
        card = dict(
            card_number=self.alice.card_number,
            month=self.alice.expiration_month,
            year=self.alice.expiration_year,
            cvv=self.alice.card_verification_value
        )
        card.update(overrides)
        return self.engine.deposit(self.alice.id, amount=amount, **card)

    def test_deposit(self):
        """300/200 deposit 100 gives 400/100"""
        account = self.deposit(100)

        assert (account.balance, account.card_balance) == (400, 100)
        assert self.balances(self.alice) == (400, 100)

    def test_expiry_is_five_years_out(self):
        assert (self.alice.expiration_month, self.alice.expiration_year) == ("06", "2029")

    @pytest.mark.parametrize("field", ["card_number", "month", "year", "cvv"])
    def test_any_card_field_mismatch(self, field):
        """Each of the four card fields must match exactly"""
        wrong = {
            "card_number": self.bob.card_number,
            "month": "13",
            "year": "1999",
            "cvv": "xyz",
        }
        with pytest.raises(ValidationError) as exc_info:
            self.deposit(100, **{field: wrong[field]})

        assert exc_info.value.code == INVALID_CARD_INFO
        assert self.balances(self.alice) == (300, 200)

    def test_insufficient_card_balance(self):
        with pytest.raises(InsufficientFundsError) as exc_info:
            self.deposit(201)

        assert exc_info.value.code == INSUFFICIENT_CARD_BALANCE
        assert self.balances(self.alice) == (300, 200)

    def test_deposit_then_withdraw_restores_state(self):
        self.deposit(150)
        self.engine.withdraw(self.alice.id, self.alice.card_number, 150)
        assert self.balances(self.alice) == (300, 200)


class TestTransfer(MoneyMovementFixture):
    """Test peer transfers between cash balances"""

    def setup_method(self):
        """Set up test fixtures"""
        self.build(InMemoryStorage())

    def test_transfer(self):
        """Sender 500 sends 150 to recipient 500: 350 and 650"""
        outcome = self.engine.transfer(self.alice.id, self.bob.account_number, 150)

        assert outcome.amount == 150
        assert outcome.sender.balance == 350
        assert outcome.to_dict()["message"] == "Money sent successfully"
        assert self.balances(self.alice) == (350, 0)
        assert self.balances(self.bob) == (650, 0)

    def test_full_scenario(self):
        """Withdraw, deposit, then transfer from the remaining balance"""
        self.engine.withdraw(self.alice.id, self.alice.card_number, 200)
        self.engine.deposit(
            self.alice.id, self.alice.card_number, self.alice.expiration_month,
            self.alice.expiration_year, self.alice.card_verification_value, 100
        )
        self.engine.transfer(self.alice.id, self.bob.account_number, 150)

        assert self.balances(self.alice) == (250, 100)
        assert self.balances(self.bob) == (650, 0)

    def test_card_balance_does_not_count_for_transfers(self):
        self.engine.withdraw(self.alice.id, self.alice.card_number, 400)

        with pytest.raises(InsufficientFundsError):
            self.engine.transfer(self.alice.id, self.bob.account_number, 200)
        assert self.balances(self.alice) == (100, 400)

    def test_self_transfer(self):
        """Sending to one's own account number is refused"""
        with pytest.raises(ValidationError) as exc_info:
            self.engine.transfer(self.alice.id, self.alice.account_number, 100)

        assert exc_info.value.code == SELF_TRANSFER
        assert "Use deposit instead" in exc_info.value.message
        assert self.balances(self.alice) == (500, 0)

    def test_unknown_recipient(self):
        with pytest.raises(NotFoundError) as exc_info:
            self.engine.transfer(self.alice.id, "000000001", 100)

        assert exc_info.value.code == RECIPIENT_NOT_FOUND
        assert self.balances(self.alice) == (500, 0)

    def test_insufficient_balance(self):
        with pytest.raises(InsufficientFundsError):
            self.engine.transfer(self.alice.id, self.bob.account_number, 501)

        assert self.balances(self.alice) == (500, 0)
        assert self.balances(self.bob) == (500, 0)

    def test_transfer_conserves_total(self):
        before = sum(a.two_pocket_total for a in self.store.find_all())
        self.engine.transfer(self.alice.id, self.bob.account_number, 77)
        self.engine.transfer(self.bob.id, self.alice.account_number, 12)
        after = sum(a.two_pocket_total for a in self.store.find_all())

        assert before == after

    def test_transfer_audits_both_sides(self):
        outcome = self.engine.transfer(self.alice.id, self.bob.account_number, 10)

        events = self.audit_trail.get_events_by_type(AuditEventType.TRANSFER)
        assert {e.metadata["direction"] for e in events} == {"out", "in"}
        assert {e.metadata["transfer_id"] for e in events} == {outcome.transfer_id}
        assert all(e.actor_id == self.alice.id for e in events)

    def test_crash_between_writes_rolls_back_both(self):
        """A failure after the debit is saved leaves neither side changed"""
        original_save = self.store.save
        calls = []

        def failing_save(account):
            calls.append(account.id)
            if len(calls) == 2:
                raise RuntimeError("simulated crash before credit")
            original_save(account)

        self.store.save = failing_save

        with pytest.raises(RuntimeError):
            self.engine.transfer(self.alice.id, self.bob.account_number, 100)

        self.store.save = original_save
        assert self.balances(self.alice) == (500, 0)
        assert self.balances(self.bob) == (500, 0)
        assert self.audit_trail.get_events_by_type(AuditEventType.TRANSFER) == []

    def test_lookups(self):
        assert self.engine.find_by_account_number(self.bob.account_number).id == self.bob.id
        assert self.engine.find_by_card_number(self.bob.card_number).id == self.bob.id

        with pytest.raises(NotFoundError):
            self.engine.find_by_account_number("000000001")
        with pytest.raises(NotFoundError):
            self.engine.find_by_card_number("0000000000000000")


class TestConcurrentMoneyMovement(MoneyMovementFixture):
    """Concurrent operations never lose updates or overdraw"""

    def setup_method(self):
        """Set up test fixtures"""
        self.build(InMemoryStorage())

    def run_threads(self, target, count):
        failures = []

        def wrapped(index):
            try:
                target(index)
            except InsufficientFundsError as e:
                failures.append(e)

        threads = [threading.Thread(target=wrapped, args=(i,)) for i in range(count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return failures

    def test_concurrent_transfers_never_overdraw(self):
        """Ten transfers of 100 from 500: exactly five succeed"""
        failures = self.run_threads(
            lambda i: self.engine.transfer(self.alice.id, self.bob.account_number, 100), 10
        )

        assert len(failures) == 5
        assert self.balances(self.alice) == (0, 0)
        assert self.balances(self.bob) == (1000, 0)

    def test_concurrent_opposite_transfers_do_not_deadlock(self):
        """A to B and B to A at the same time both complete"""
        def move(index):
            if index % 2:
                self.engine.transfer(self.alice.id, self.bob.account_number, 10)
            else:
                self.engine.transfer(self.bob.id, self.alice.account_number, 10)

        failures = self.run_threads(move, 20)

        assert failures == []
        assert self.balances(self.alice) == (500, 0)
        assert self.balances(self.bob) == (500, 0)

    def test_concurrent_withdrawals_no_lost_update(self):
        failures = self.run_threads(
            lambda i: self.engine.withdraw(self.alice.id, self.alice.card_number, 10), 25
        )

        assert failures == []
        assert self.balances(self.alice) == (250, 250)


class TestSQLiteMoneyMovement(MoneyMovementFixture):
    """The same guarantees on the persistent backend"""

    def setup_method(self):
        """Set up test fixtures"""
        self.temp_dir = tempfile.TemporaryDirectory()
        self.build(SQLiteStorage(Path(self.temp_dir.name) / "bank.db"))

    def teardown_method(self):
        self.storage.close()
        self.temp_dir.cleanup()

    def test_scenario_and_rollback(self):
        self.engine.withdraw(self.alice.id, self.alice.card_number, 200)
        self.engine.transfer(self.alice.id, self.bob.account_number, 150)

        with pytest.raises(ValidationError):
            self.engine.withdraw(self.alice.id, self.bob.card_number, 1)

        assert self.balances(self.alice) == (150, 200)
        assert self.balances(self.bob) == (650, 0)
        assert self.audit_trail.verify_integrity()["valid"]

    def test_concurrent_transfers_never_overdraw(self):
        failures = []

        def send():
            try:
                self.engine.transfer(self.alice.id, self.bob.account_number, 100)
            except InsufficientFundsError as e:
                failures.append(e)

        threads = [threading.Thread(target=send) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(failures) == 3
        assert self.balances(self.alice) == (0, 0)
        assert self.balances(self.bob) == (1000, 0)
