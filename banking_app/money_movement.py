"""
Money Movement Module

Withdrawals (cash balance to card balance), deposits (card balance to cash
balance) and peer transfers (cash balance to another account's cash balance).

Every operation follows the same discipline: take the per-account locks, open
a store transaction, re-read the accounts inside it, validate, then write.
Nothing read before the boundary is trusted for the balance check, and any
rejection inside the boundary rolls the transaction back untouched.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, Optional
import threading
import uuid

from .accounts import Account, mask_card_number
from .audit import AuditTrail, AuditEventType
from .errors import (
    BankingError, InsufficientFundsError, NotFoundError, ValidationError,
    ACCOUNT_NOT_FOUND, RECIPIENT_NOT_FOUND, INVALID_AMOUNT, CARD_MISMATCH,
    INVALID_CARD_INFO, SELF_TRANSFER, INSUFFICIENT_BALANCE, INSUFFICIENT_CARD_BALANCE
)
from .ledger_store import LedgerStore
from .logging_config import get_logger, log_action


class AccountLockManager:
    """
    One re-entrant lock per account id.

    Locks for several accounts are always taken in sorted id order, so two
    transfers running in opposite directions cannot deadlock.
    """

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, account_id: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[account_id] = lock
            return lock

    @contextmanager
    def hold(self, *account_ids: str):
        """Hold the locks of every given account for the duration of the block"""
        locks = [self._lock_for(account_id) for account_id in sorted(set(account_ids))]
        acquired = []
        try:
            for lock in locks:
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    def discard(self, account_id: str) -> None:
        """Forget the lock of a removed account"""
        with self._registry_lock:
            self._locks.pop(account_id, None)


@dataclass
class TransferOutcome:
    """Result of a successful transfer, as seen by the sender"""
    transfer_id: str
    sender: Account
    recipient_account_number: str
    amount: int
    completed_at: datetime
    message: str = "Money sent successfully"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transfer_id": self.transfer_id,
            "message": self.message,
            "amount": self.amount,
            "recipient_account_number": self.recipient_account_number,
            "sender_balance": self.sender.balance,
            "completed_at": self.completed_at.isoformat(),
        }


class MoneyMovementEngine:
    """
    Applies withdraw, deposit and transfer with balance and ownership checks
    """

    def __init__(
        self,
        store: LedgerStore,
        audit_trail: Optional[AuditTrail] = None,
        lock_manager: Optional[AccountLockManager] = None
    ):
        self.store = store
        self.audit_trail = audit_trail
        self.locks = lock_manager or AccountLockManager()
        self.logger = get_logger("banking_app.money_movement")

    def withdraw(self, account_id: str, card_number: str, amount: int) -> Account:
        """
        Move funds from the cash balance to the card balance

        Raises:
            ValidationError: non-positive amount (INVALID_AMOUNT) or card number
                not registered to the account (CARD_MISMATCH)
            NotFoundError: unknown account
            InsufficientFundsError: amount exceeds the cash balance
        """
        self._check_amount(amount, "withdraw", account_id)

        with self.locks.hold(account_id):
            with self.store.atomic():
                account = self._require(account_id, "withdraw")

                if not account.card_matches(card_number):
                    raise self._reject(
                        ValidationError("Card not registered for this account", code=CARD_MISMATCH),
                        "withdraw", account_id
                    )

                if amount > account.balance:
                    raise self._reject(
                        InsufficientFundsError("Insufficient balance", code=INSUFFICIENT_BALANCE),
                        "withdraw", account_id
                    )

                account.balance -= amount
                account.card_balance += amount
                account.updated_at = datetime.now(timezone.utc)
                self.store.save(account)
                self._audit(AuditEventType.WITHDRAWAL, account, {
                    "amount": amount,
                    "card_number": mask_card_number(card_number),
                    "balance": account.balance,
                    "card_balance": account.card_balance
                })

        log_action(
            self.logger, "info", "Withdrawal completed",
            account_id=account_id, action="withdraw", resource="account",
            extra={"amount": amount, "card_number": mask_card_number(card_number)}
        )
        return account

    def deposit(
        self,
        account_id: str,
        card_number: str,
        month: str,
        year: str,
        cvv: str,
        amount: int
    ) -> Account:
        """
        Move funds from the card balance to the cash balance

        All four card fields must match the registered card exactly.

        Raises:
            ValidationError: non-positive amount (INVALID_AMOUNT) or any card
                field mismatch (INVALID_CARD_INFO)
            NotFoundError: unknown account
            InsufficientFundsError: amount exceeds the card balance
        """
        self._check_amount(amount, "deposit", account_id)

        with self.locks.hold(account_id):
            with self.store.atomic():
                account = self._require(account_id, "deposit")

                if not account.card_details_match(card_number, month, year, cvv):
                    raise self._reject(
                        ValidationError("Invalid card information", code=INVALID_CARD_INFO),
                        "deposit", account_id
                    )

                if amount > account.card_balance:
                    raise self._reject(
                        InsufficientFundsError("Insufficient card balance", code=INSUFFICIENT_CARD_BALANCE),
                        "deposit", account_id
                    )

                account.balance += amount
                account.card_balance -= amount
                account.updated_at = datetime.now(timezone.utc)
                self.store.save(account)
                self._audit(AuditEventType.DEPOSIT, account, {
                    "amount": amount,
                    "card_number": mask_card_number(card_number),
                    "balance": account.balance,
                    "card_balance": account.card_balance
                })

        log_action(
            self.logger, "info", "Deposit completed",
            account_id=account_id, action="deposit", resource="account",
            extra={"amount": amount, "card_number": mask_card_number(card_number)}
        )
        return account

    def transfer(self, sender_id: str, recipient_account_number: str, amount: int) -> TransferOutcome:
        """
        Send cash balance to another account, identified by account number

        Debit and credit commit in one store transaction; a failure between
        the two writes rolls both back.

        Raises:
            ValidationError: non-positive amount (INVALID_AMOUNT) or recipient
                is the sender's own account (SELF_TRANSFER)
            NotFoundError: unknown sender (ACCOUNT_NOT_FOUND) or recipient
                (RECIPIENT_NOT_FOUND)
            InsufficientFundsError: amount exceeds the sender's cash balance
        """
        self._check_amount(amount, "transfer", sender_id)

        # Account ids and numbers never change, so they are safe to resolve
        # before locking; balances are read again inside the boundary.
        sender = self._require(sender_id, "transfer")
        if recipient_account_number == sender.account_number:
            raise self._reject(
                ValidationError(
                    "You cannot send money to your own account. Use deposit instead.",
                    code=SELF_TRANSFER
                ),
                "transfer", sender_id
            )

        recipient = self.store.find_by_account_number(recipient_account_number)
        if not recipient:
            raise self._reject(
                NotFoundError("Invalid account number", code=RECIPIENT_NOT_FOUND),
                "transfer", sender_id
            )
        recipient_id = recipient.id

        with self.locks.hold(sender_id, recipient_id):
            with self.store.atomic():
                sender = self._require(sender_id, "transfer")
                recipient = self.store.find_by_id(recipient_id)
                if not recipient:
                    raise self._reject(
                        NotFoundError("Invalid account number", code=RECIPIENT_NOT_FOUND),
                        "transfer", sender_id
                    )

                if amount > sender.balance:
                    raise self._reject(
                        InsufficientFundsError("Insufficient balance", code=INSUFFICIENT_BALANCE),
                        "transfer", sender_id
                    )

                now = datetime.now(timezone.utc)
                sender.balance -= amount
                sender.updated_at = now
                recipient.balance += amount
                recipient.updated_at = now
                self.store.save(sender)
                self.store.save(recipient)

                outcome = TransferOutcome(
                    transfer_id=str(uuid.uuid4()),
                    sender=sender,
                    recipient_account_number=recipient.account_number,
                    amount=amount,
                    completed_at=now
                )
                self._audit(AuditEventType.TRANSFER, sender, {
                    "transfer_id": outcome.transfer_id,
                    "amount": amount,
                    "direction": "out",
                    "counterparty_account_number": recipient.account_number,
                    "balance": sender.balance
                })
                self._audit(AuditEventType.TRANSFER, recipient, {
                    "transfer_id": outcome.transfer_id,
                    "amount": amount,
                    "direction": "in",
                    "counterparty_account_number": sender.account_number,
                    "balance": recipient.balance
                }, actor_id=sender.id)

        log_action(
            self.logger, "info", "Transfer completed",
            account_id=sender_id, action="transfer", resource="account",
            extra={
                "transfer_id": outcome.transfer_id,
                "amount": amount,
                "recipient_account_number": recipient_account_number
            }
        )
        return outcome

    def find_by_account_number(self, account_number: str) -> Account:
        """Get the account holding an account number or raise NotFoundError"""
        account = self.store.find_by_account_number(account_number)
        if not account:
            raise NotFoundError(f"No account with account number {account_number}")
        return account

    def find_by_card_number(self, card_number: str) -> Account:
        """Get the account holding a card number or raise NotFoundError"""
        account = self.store.find_by_card_number(card_number)
        if not account:
            raise NotFoundError(f"No account with card number {mask_card_number(card_number)}")
        return account

    def _check_amount(self, amount: Any, action: str, account_id: str) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise self._reject(
                ValidationError("Amount must be a positive integer", code=INVALID_AMOUNT),
                action, account_id
            )

    def _require(self, account_id: str, action: str) -> Account:
        account = self.store.find_by_id(account_id)
        if not account:
            raise self._reject(
                NotFoundError(f"Account {account_id} not found", code=ACCOUNT_NOT_FOUND),
                action, account_id
            )
        return account

    def _reject(self, error: BankingError, action: str, account_id: str) -> BankingError:
        """Log a business rejection and hand the error back for raising"""
        log_action(
            self.logger, "warning", f"{action} rejected: {error.message}",
            account_id=account_id, action=action, resource="account",
            extra={"code": error.code}
        )
        return error

    def _audit(
        self,
        event_type: AuditEventType,
        account: Account,
        metadata: Dict[str, Any],
        actor_id: Optional[str] = None
    ) -> None:
        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=event_type,
                entity_type="account",
                entity_id=account.id,
                metadata=metadata,
                actor_id=actor_id or account.id
            )
