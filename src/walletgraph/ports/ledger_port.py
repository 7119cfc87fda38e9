from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import List, Optional

from walletgraph.core.dto import RawTransaction


class LedgerPort(ABC):
    """
    Abstract Class for the external ledger API (balances and transaction pages).
    """

    # --- Balance lookup ---

    @abstractmethod
    def get_balance(self, address: str) -> Decimal:
        raise NotImplementedError

    # --- One page of normal transactions, newest first ---

    @abstractmethod
    def get_transactions(
        self,
        address: str,
        page: int = 1,
        offset: int = 10,
        timeout: Optional[float] = None,
    ) -> List[RawTransaction]:
        raise NotImplementedError
