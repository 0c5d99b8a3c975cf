"""Unit tests for transaction confirmation polling."""
from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from lending_core.chains.soroban.confirmation import compute_delay, wait_for_transaction
from lending_core.config import ConfirmationConfig
from lending_core.errors import TransactionFailed, TransactionTimeout


class FakeTime:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture()
def config() -> ConfirmationConfig:
    return ConfirmationConfig(max_attempts=6, base_delay=1.0, max_delay=4.0, timeout=100.0)


def _client(*statuses: str) -> AsyncMock:
    client = AsyncMock()
    client.get_transaction = AsyncMock(
        side_effect=[{"status": s, "ledger": 10} for s in statuses]
    )
    return client


class TestComputeDelay:
    def test_doubles_then_caps(self, config: ConfirmationConfig) -> None:
        assert [compute_delay(i, config) for i in range(5)] == [1.0, 2.0, 4.0, 4.0, 4.0]


class TestWaitForTransaction:
    @pytest.mark.asyncio
    async def test_returns_on_success(self, config: ConfirmationConfig) -> None:
        fake = FakeTime()
        client = _client("NOT_FOUND", "NOT_FOUND", "SUCCESS")

        result = await wait_for_transaction(
            client, "abc", config, sleep=fake.sleep, monotonic=fake.monotonic
        )

        assert result["status"] == "SUCCESS"
        assert fake.sleeps == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_failed_raises(self, config: ConfirmationConfig) -> None:
        fake = FakeTime()
        client = _client("NOT_FOUND", "FAILED")

        with pytest.raises(TransactionFailed):
            await wait_for_transaction(
                client, "abc", config, sleep=fake.sleep, monotonic=fake.monotonic
            )

    @pytest.mark.asyncio
    async def test_attempts_exhausted(self, config: ConfirmationConfig) -> None:
        fake = FakeTime()
        client = _client(*["NOT_FOUND"] * 6)

        with pytest.raises(TransactionTimeout) as exc_info:
            await wait_for_transaction(
                client, "abc", config, sleep=fake.sleep, monotonic=fake.monotonic
            )

        assert exc_info.value.details["attempts"] == 6
        # No sleep after the final poll
        assert fake.sleeps == [1.0, 2.0, 4.0, 4.0, 4.0]

    @pytest.mark.asyncio
    async def test_timeout_bounds_total_wait(self) -> None:
        fake = FakeTime()
        config = ConfirmationConfig(max_attempts=50, base_delay=2.0, max_delay=8.0, timeout=5.0)
        client = _client(*["NOT_FOUND"] * 50)

        with pytest.raises(TransactionTimeout):
            await wait_for_transaction(
                client, "abc", config, sleep=fake.sleep, monotonic=fake.monotonic
            )

        assert sum(fake.sleeps) <= 5.0
        assert client.get_transaction.await_count == 3
