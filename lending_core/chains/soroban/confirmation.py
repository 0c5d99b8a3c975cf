"""Poll a submitted transaction until it lands, with bounded backoff."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

from ...config import ConfirmationConfig
from ...errors import TransactionFailed, TransactionTimeout
from .client import SorobanClient

logger = logging.getLogger(__name__)


def compute_delay(attempt: int, config: ConfirmationConfig) -> float:
    """Delay before poll ``attempt + 1``: doubles from base, capped at max."""
    return min(config.base_delay * (2 ** attempt), config.max_delay)


async def wait_for_transaction(
    client: SorobanClient,
    tx_hash: str,
    config: ConfirmationConfig,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    monotonic: Callable[[], float] = time.monotonic,
) -> dict[str, Any]:
    """Return the ``getTransaction`` result once the status is SUCCESS.

    Raises:
        TransactionFailed: the transaction landed with status FAILED.
        TransactionTimeout: still NOT_FOUND after ``max_attempts`` polls or
            ``timeout`` seconds, whichever comes first.
    """
    started = monotonic()
    attempts = 0

    while attempts < config.max_attempts:
        attempts += 1
        result = await client.get_transaction(tx_hash)
        status = result.get("status", "NOT_FOUND")

        if status == "SUCCESS":
            logger.info("Transaction %s confirmed after %d polls", tx_hash, attempts)
            return result
        if status == "FAILED":
            logger.error("Transaction %s failed on chain", tx_hash)
            raise TransactionFailed(tx_hash, status)

        elapsed = monotonic() - started
        if attempts >= config.max_attempts or elapsed >= config.timeout:
            break

        delay = min(compute_delay(attempts - 1, config), config.timeout - elapsed)
        logger.debug(
            "Transaction %s is %s, polling again in %.1fs (%d/%d)",
            tx_hash, status, delay, attempts, config.max_attempts,
        )
        await sleep(delay)

    elapsed = monotonic() - started
    logger.warning("Gave up waiting for %s after %d polls", tx_hash, attempts)
    raise TransactionTimeout(tx_hash, attempts, elapsed)
