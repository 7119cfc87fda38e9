from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Tuple

FETCH_TRANSACTIONS_TASK = "fetch_transactions"


@dataclass(frozen=True)
class RawTransaction:
    tx_hash: str
    block_number: int
    timestamp: int
    from_address: str
    to_address: str          # empty for contract creation
    value: Decimal           # ETH, 6 decimal places
    gas_price: str = "0"
    gas_used: str = "0"
    function_name: str = ""
    is_error: bool = False


@dataclass(frozen=True)
class FetchTask:
    """Message sent to the transaction fetcher workers."""

    address: str
    page: int = 1
    offset: int = 10
    api_url: Optional[str] = None
    api_key: Optional[str] = None
    task: str = FETCH_TRANSACTIONS_TASK


@dataclass(frozen=True)
class FetchResult:
    """Message returned by a fetcher worker. ``error`` set means the task failed."""

    address: str
    page: int
    transactions: Tuple[RawTransaction, ...] = ()
    has_more_transactions: bool = False
    next_page: Optional[int] = None
    error: Optional[str] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class WalletSummary:
    address: str
    balance: Decimal
    transaction_count: int
    recent_transactions: List[RawTransaction] = field(default_factory=list)
