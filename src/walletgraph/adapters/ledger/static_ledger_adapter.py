from decimal import Decimal
from typing import Dict, List, Optional

from walletgraph.core.dto import RawTransaction
from walletgraph.ports.ledger_port import LedgerPort


class StaticLedgerAdapter(LedgerPort):
    def __init__(self,
                 transactions: Optional[List[RawTransaction]] = None,
                 balances: Optional[Dict[str, Decimal]] = None,
                 ):
        self._txs = transactions or []
        self._balances = {k.lower(): v for k, v in (balances or {}).items()}
        self.calls: List[tuple] = []

    def get_balance(self, address):
        self.calls.append(("balance", address.lower()))
        return self._balances.get(address.lower(), Decimal("0"))

    def get_transactions(self, address, page=1, offset=10, timeout=None):
        self.calls.append(("txlist", address.lower(), page, offset))
        ad = address.lower()
        items = [
            t for t in self._txs
            if t.from_address.lower() == ad or t.to_address.lower() == ad
        ]
        # newest first, like the live API with sort=desc
        items.sort(key=lambda x: (x.block_number, x.timestamp), reverse=True)
        start = (max(page, 1) - 1) * offset
        return items[start:start + offset]
