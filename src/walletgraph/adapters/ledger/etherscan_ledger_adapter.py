from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Callable, Dict, List, Optional
import time

import requests

from walletgraph.config.settings import (
    ETHERSCAN_API_KEY,
    ETHERSCAN_CHAIN_ID,
    ETHERSCAN_BASE_URL,
    ETHERSCAN_REQUESTS_PER_SEC,
    FETCH_TIMEOUT_SEC,
    WALLET_MAX_RETRIES,
    WALLET_RETRY_DELAY_SEC,
    WALLET_TIMEOUT_SEC,
)

from walletgraph.adapters.ledger.rate_limiter import SimpleRateLimiter
from walletgraph.config.logging import get_logger
from walletgraph.core.dto import RawTransaction
from walletgraph.core.errors import DataSourceError, NetworkError, RateLimitError, ValidationError
from walletgraph.ports.ledger_port import LedgerPort

logger = get_logger(__name__)

WEI_PER_ETH = Decimal("1000000000000000000")
ETH_PLACES = Decimal("0.000001")


def wei_to_eth(raw: Any) -> Decimal:
    try:
        wei = Decimal(str(raw or "0"))
    except (InvalidOperation, ValueError):
        wei = Decimal("0")
    return (wei / WEI_PER_ETH).quantize(ETH_PLACES, rounding=ROUND_HALF_UP)


class EtherscanLedgerAdapter(LedgerPort):

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        chain_id: int = ETHERSCAN_CHAIN_ID,
        requests_per_sec: float = ETHERSCAN_REQUESTS_PER_SEC,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        rate_limiter: Optional[SimpleRateLimiter] = None,
    ) -> None:
        self._api_key = api_key or ETHERSCAN_API_KEY
        self._chainid = chain_id
        self._base_url = base_url or ETHERSCAN_BASE_URL
        self._balance_timeout = WALLET_TIMEOUT_SEC
        self._balance_retries = WALLET_MAX_RETRIES
        self._balance_retry_delay = WALLET_RETRY_DELAY_SEC
        self._sleep = sleep

        self._rl = rate_limiter or SimpleRateLimiter(requests_per_sec)
        self._session = session or requests.Session()

    # ---------- internal ----------

    def _request(self, params: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        """Single attempt. Classifies every failure into the error taxonomy."""
        req = dict(params)
        req["apikey"] = self._api_key
        req["chainid"] = str(self._chainid)

        self._rl.wait()
        try:
            resp = self._session.get(self._base_url, params=req, timeout=timeout)
        except (requests.Timeout, requests.ConnectionError) as e:
            raise NetworkError(f"Etherscan request failed: {e}") from e

        if resp.status_code == 429:
            raise RateLimitError("Etherscan HTTP 429")
        try:
            resp.raise_for_status()
        except requests.HTTPError as e:
            raise NetworkError(f"Etherscan HTTP error: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise ValidationError("Etherscan returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise ValidationError(f"Invalid Etherscan response: {data!r}")

        status = str(data.get("status", "1"))
        message = str(data.get("message", "OK"))
        result = data.get("result")

        if status == "0" and message.upper().startswith("NOTOK"):
            detail = str(result or message)
            if "rate limit" in detail.lower():
                raise RateLimitError(detail)
            raise DataSourceError(f"Etherscan API error: {detail}")

        if status == "0" and "no transactions found" in message.lower():
            data["result"] = []

        return data

    def _call_with_retries(self, params: Dict[str, Any]) -> Dict[str, Any]:
        last_err: Optional[Exception] = None

        for attempt in range(1, self._balance_retries + 1):
            try:
                return self._request(params, timeout=self._balance_timeout)
            except DataSourceError as e:
                last_err = e
                logger.warning(
                    "Etherscan %s attempt %d/%d failed: %s",
                    params.get("action"), attempt, self._balance_retries, e,
                )
                if attempt < self._balance_retries:
                    self._sleep(self._balance_retry_delay)

        raise DataSourceError(f"Etherscan failed after retries: {last_err}")

    @staticmethod
    def _to_transaction(r: Dict[str, Any]) -> RawTransaction:
        return RawTransaction(
            tx_hash=r.get("hash", ""),
            block_number=int(r.get("blockNumber") or 0),
            timestamp=int(r.get("timeStamp") or 0),
            from_address=(r.get("from") or "").lower(),
            to_address=(r.get("to") or "").lower(),
            value=wei_to_eth(r.get("value")),
            gas_price=str(r.get("gasPrice") or "0"),
            gas_used=str(r.get("gasUsed") or "0"),
            function_name=r.get("functionName") or "",
            is_error=str(r.get("isError", "0")) == "1",
        )

    # ---------- port methods ----------

    def get_balance(self, address: str) -> Decimal:
        data = self._call_with_retries({
            "module": "account",
            "action": "balance",
            "address": address,
            "tag": "latest",
        })
        return wei_to_eth(data.get("result"))

    def get_transactions(
        self,
        address: str,
        page: int = 1,
        offset: int = 10,
        timeout: Optional[float] = None,
    ) -> List[RawTransaction]:
        data = self._request({
            "module": "account",
            "action": "txlist",
            "address": address,
            "startblock": 0,
            "endblock": 99999999,
            "page": page,
            "offset": offset,
            "sort": "desc",
        }, timeout=timeout or FETCH_TIMEOUT_SEC)

        rows = data.get("result")
        if not isinstance(rows, list):
            raise ValidationError(f"Invalid txlist result: {rows!r}")

        return [self._to_transaction(r) for r in rows if isinstance(r, dict)]

    def close(self) -> None:
        self._session.close()
