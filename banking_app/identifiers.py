"""
Identifier Generation Module

Draws account numbers, card numbers and card verification values. Uniqueness
is checked against the ledger store before a value is handed out; the store's
unique indexes remain the final word when two creators race.
"""

import random
from datetime import date
from typing import Optional, Tuple

from .accounts import CARD_NUMBER_LENGTH


ACCOUNT_NUMBER_MIN = 100000000
ACCOUNT_NUMBER_MAX = 999999999


def expiration_for(issued_on: date, validity_years: int = 5) -> Tuple[str, str]:
    """
    Card expiry as (MM, YYYY), the given number of years after issue.

    Only the month and year are kept, so a Feb 29 issue date needs no
    day clamping.
    """
    return f"{issued_on.month:02d}", f"{issued_on.year + validity_years:04d}"


class IdentifierGenerator:
    """
    Generates identifiers that are not yet present in the store.

    Each generator owns its random source; SystemRandom draws from the OS,
    so nothing is shared between requests or workers.
    """

    def __init__(self, store: 'LedgerStore', rng: Optional[random.Random] = None):
        self.store = store
        self._rng = rng or random.SystemRandom()

    def generate_account_number(self) -> str:
        """Uniformly random 9-digit number, redrawn while already taken"""
        while True:
            candidate = str(self._rng.randint(ACCOUNT_NUMBER_MIN, ACCOUNT_NUMBER_MAX))
            if not self.store.exists_by_account_number(candidate):
                return candidate

    def generate_card_number(self) -> str:
        """16 independent random digits (leading zeros allowed), redrawn while taken"""
        while True:
            candidate = "".join(str(self._rng.randrange(10)) for _ in range(CARD_NUMBER_LENGTH))
            if not self.store.exists_by_card_number(candidate):
                return candidate

    def generate_cvv(self) -> str:
        """Zero-padded 3-digit value; not required to be unique"""
        return f"{self._rng.randrange(1000):03d}"
