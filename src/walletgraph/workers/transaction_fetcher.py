"""Background transaction fetcher.

Callers hand a ``FetchTask`` message to a worker pool and get a
``FetchResult`` message back. Workers share nothing mutable with the
caller, and no exception crosses back: failures come back as a result whose
``error`` is set.
"""

from __future__ import annotations

import random
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Tuple

from walletgraph.adapters.ledger.etherscan_ledger_adapter import EtherscanLedgerAdapter
from walletgraph.adapters.ledger.rate_limiter import SimpleRateLimiter, jittered_page_delay, linear_backoff
from walletgraph.config.logging import get_logger
from walletgraph.config.settings import (
    ETHERSCAN_API_KEY,
    ETHERSCAN_BASE_URL,
    ETHERSCAN_REQUESTS_PER_SEC,
    FETCH_MAX_JITTER_SEC,
    FETCH_MAX_RETRIES,
    FETCH_RETRY_DELAY_SEC,
    FETCH_TIMEOUT_SEC,
    FETCH_WORKERS,
)
from walletgraph.core.dto import FETCH_TRANSACTIONS_TASK, FetchResult, FetchTask, RawTransaction
from walletgraph.core.errors import DataSourceError, RateLimitError, ValidationError
from walletgraph.ports.ledger_port import LedgerPort

logger = get_logger(__name__)


def run_fetch_task(
    task: FetchTask,
    ledger: LedgerPort,
    max_retries: int = FETCH_MAX_RETRIES,
    retry_delay: float = FETCH_RETRY_DELAY_SEC,
    max_jitter: float = FETCH_MAX_JITTER_SEC,
    timeout: float = FETCH_TIMEOUT_SEC,
    sleep: Callable[[float], None] = time.sleep,
    rng: Optional[random.Random] = None,
) -> FetchResult:
    """Fetch one page for ``task.address``; at most ``max_retries`` ledger calls."""
    logger.info("Fetching transactions for %s, page %d, offset %d", task.address, task.page, task.offset)
    try:
        sleep(jittered_page_delay(task.page, cap=max_jitter, rng=rng))

        rows: Optional[List[RawTransaction]] = None
        last_err: Optional[Exception] = None
        attempt = 0
        while attempt < max_retries:
            attempt += 1
            try:
                rows = ledger.get_transactions(task.address, task.page, task.offset, timeout=timeout)
                break
            except ValidationError as e:
                # malformed response, a retry would get the same thing
                last_err = e
                break
            except RateLimitError as e:
                last_err = e
                logger.warning("Rate limited on %s (attempt %d/%d)", task.address, attempt, max_retries)
            except DataSourceError as e:
                last_err = e
                logger.warning("Fetch attempt %d/%d for %s failed: %s", attempt, max_retries, task.address, e)
            if attempt < max_retries:
                sleep(linear_backoff(attempt, retry_delay))

        if rows is None:
            logger.error("Giving up on %s page %d after %d attempt(s): %s", task.address, task.page, attempt, last_err)
            return FetchResult(address=task.address, page=task.page, error=str(last_err), attempts=attempt)

        logger.info("Found %d transactions for %s on page %d", len(rows), task.address, task.page)
        return FetchResult(
            address=task.address,
            page=task.page,
            transactions=tuple(rows),
            has_more_transactions=len(rows) == task.offset,
            next_page=task.page + 1,
            attempts=attempt,
        )
    except Exception as e:
        logger.exception("Unexpected fetch failure for %s", task.address)
        return FetchResult(address=task.address, page=task.page, error=f"{e.__class__.__name__}: {e}")


class TransactionFetcher:
    """
    Worker pool running ``run_fetch_task``.

    With ``ledger`` set every task uses that adapter; otherwise each task gets
    its own Etherscan adapter built from the task's ``api_url``/``api_key``.
    Adapters for the same url and key share one rate limiter.
    """

    def __init__(
        self,
        ledger: Optional[LedgerPort] = None,
        max_workers: int = FETCH_WORKERS,
        max_retries: int = FETCH_MAX_RETRIES,
        retry_delay: float = FETCH_RETRY_DELAY_SEC,
        max_jitter: float = FETCH_MAX_JITTER_SEC,
        timeout: float = FETCH_TIMEOUT_SEC,
        sleep: Callable[[float], None] = time.sleep,
        requests_per_sec: float = ETHERSCAN_REQUESTS_PER_SEC,
    ) -> None:
        self._ledger = ledger
        self._requests_per_sec = requests_per_sec
        self._limiters: Dict[Tuple[str, Optional[str]], SimpleRateLimiter] = {}
        self._limiters_lock = threading.Lock()
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._max_jitter = max_jitter
        self._timeout = timeout
        self._sleep = sleep
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="tx-fetch")

    def limiter_for(self, api_url: Optional[str] = None, api_key: Optional[str] = None) -> SimpleRateLimiter:
        key = (api_url or ETHERSCAN_BASE_URL, api_key or ETHERSCAN_API_KEY)
        with self._limiters_lock:
            limiter = self._limiters.get(key)
            if limiter is None:
                limiter = self._limiters[key] = SimpleRateLimiter(self._requests_per_sec)
            return limiter

    def _run(self, task: FetchTask) -> FetchResult:
        if task.task != FETCH_TRANSACTIONS_TASK:
            logger.error("Unknown fetcher task: %s", task.task)
            return FetchResult(address=task.address, page=task.page, error=f"Unknown task: {task.task}")

        ledger = self._ledger
        owned = None
        if ledger is None:
            owned = EtherscanLedgerAdapter(
                api_key=task.api_key,
                base_url=task.api_url,
                rate_limiter=self.limiter_for(task.api_url, task.api_key),
            )
            ledger = owned
        try:
            return run_fetch_task(
                task,
                ledger,
                max_retries=self._max_retries,
                retry_delay=self._retry_delay,
                max_jitter=self._max_jitter,
                timeout=self._timeout,
                sleep=self._sleep,
            )
        finally:
            if owned is not None:
                owned.close()

    def submit(self, task: FetchTask) -> "Future[FetchResult]":
        return self._pool.submit(self._run, task)

    def fetch(self, task: FetchTask) -> FetchResult:
        return self.submit(task).result()

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)

    def __enter__(self) -> "TransactionFetcher":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()
